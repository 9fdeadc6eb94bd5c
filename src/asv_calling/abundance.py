"""
Sequence-abundance tables.

An abundance table is a DataFrame with run-tagged sample ids as rows and
sequence ids as columns. Sequence ids are content-addressed (MD5 of the
sequence), so the same sequence gets the same column in every run and
tables can be merged without a shared registry. The id -> sequence
mapping travels with each table as a plain dict and is persisted as a
FASTA file next to the counts.
"""

from __future__ import annotations

import hashlib
import logging
from os import PathLike
from pathlib import Path
from typing import Dict, Iterable, Literal, Sequence, Tuple, Union

import pandas as pd
from Bio import SeqIO
from Bio.Seq import Seq
from Bio.SeqRecord import SeqRecord

from .denoise import SampleResult
from .paths import Run

logger = logging.getLogger(__name__)

Registry = Dict[str, str]


def sequence_id(seq: str) -> str:
    """Content-addressed id of a sequence (MD5 hex digest of upper-case bases)."""
    return hashlib.md5(seq.upper().encode("ascii")).hexdigest()


def _order_columns(table: pd.DataFrame) -> pd.DataFrame:
    # Most abundant sequences first, ties broken by id for stable output
    totals = table.sum(axis=0)
    order = sorted(table.columns, key=lambda c: (-totals[c], c))
    return table[order]


def aggregate_run(
    run: Run,
    results: Iterable[SampleResult],
) -> Tuple[pd.DataFrame, Registry]:
    """
    Fold per-sample results into the run's abundance table.

    Parameters
    ----------
    run : Run
        The run the results belong to; every one of its samples gets a
        row, including samples with no contigs.
    results : iterable of SampleResult
        Per-sample results, typically the generator from ``denoise_run``.

    Returns
    -------
    table : pd.DataFrame
        Samples (tagged with the run tag) x sequence ids, integer counts.
    registry : dict
        Sequence id -> sequence.
    """
    rows: Dict[str, Dict[str, int]] = {}
    registry: Registry = {}
    for result in results:
        ids = {seq: sequence_id(seq) for seq in result.contigs.contigs}
        registry.update({sid: seq for seq, sid in ids.items()})
        rows[run.tagged(result.sample)] = {
            ids[seq]: n for seq, n in result.contigs.contigs.items()
        }

    samples = [run.tagged(s) for s in run.sample_names]
    table = pd.DataFrame.from_dict(rows, orient="index", dtype=float)
    table = table.reindex(index=samples).fillna(0).astype(int)
    table.index.name = "sample_id"
    table = _order_columns(table)

    logger.info(
        f"{run.run_id}: abundance table {table.shape[0]} samples x "
        f"{table.shape[1]} sequences, {int(table.values.sum()):,} reads"
    )
    return table, registry


def merge_tables(
    tables: Sequence[Tuple[pd.DataFrame, Registry]],
) -> Tuple[pd.DataFrame, Registry]:
    """
    Union run-level tables on the sequence axis.

    Identical sequences share one column; sample rows stay distinct and
    missing entries become 0.

    Raises
    ------
    ValueError
        If a sample id appears in more than one table, or a sequence id
        maps to different sequences.
    """
    registry: Registry = {}
    for _, reg in tables:
        for sid, seq in reg.items():
            if registry.setdefault(sid, seq) != seq:
                raise ValueError(f"Sequence id collision for {sid}")

    frames = [t for t, _ in tables]
    samples = [s for t in frames for s in t.index]
    index = pd.Index(samples)
    duplicated = sorted(set(index[index.duplicated()]))
    if duplicated:
        raise ValueError(f"Sample ids present in more than one table: {duplicated}")

    merged = pd.concat(frames, axis=0, sort=False).fillna(0).astype(int)
    merged.index.name = "sample_id"
    merged = _order_columns(merged)

    logger.info(
        f"Merged {len(frames)} tables: {merged.shape[0]} samples x "
        f"{merged.shape[1]} sequences"
    )
    return merged, registry


def save_abundance_table(
    table: pd.DataFrame,
    registry: Registry,
    results_path: Union[PathLike, str],
    name: str,
    format: Literal["csv", "excel"] = "csv",
) -> Path:
    """
    Write a table (sequences as rows, samples as columns) and its FASTA.

    Returns the path of the counts file.
    """
    results_path = Path(results_path)
    results_path.mkdir(parents=True, exist_ok=True)

    counts = table.T.rename_axis("seq_id")
    if format == "excel":
        out_fn = results_path / f"{name}.xlsx"
        counts.to_excel(out_fn)
    else:
        out_fn = results_path / f"{name}.csv"
        counts.to_csv(out_fn)

    records = [
        SeqRecord(Seq(registry[sid]), id=sid, description="")
        for sid in table.columns
    ]
    SeqIO.write(records, str(results_path / f"{name}_sequences.fasta"), "fasta")

    logger.info(f"Abundance table saved to {out_fn}")
    return out_fn


def load_abundance_table(
    results_path: Union[PathLike, str],
    name: str,
) -> Tuple[pd.DataFrame, Registry]:
    """Read a table written by ``save_abundance_table``."""
    results_path = Path(results_path)
    csv_fn = results_path / f"{name}.csv"
    xlsx_fn = results_path / f"{name}.xlsx"
    if csv_fn.exists():
        counts = pd.read_csv(csv_fn, index_col=0, dtype={"seq_id": str})
    elif xlsx_fn.exists():
        counts = pd.read_excel(xlsx_fn, index_col=0, dtype={"seq_id": str}, engine="openpyxl")
    else:
        raise FileNotFoundError(f"No abundance table '{name}' in {results_path}")

    counts.index = counts.index.astype(str)
    table = counts.T.fillna(0).astype(int)
    table.index = table.index.astype(str)
    table.index.name = "sample_id"
    table.columns.name = None

    fasta_fn = results_path / f"{name}_sequences.fasta"
    registry = {rec.id: str(rec.seq) for rec in SeqIO.parse(str(fasta_fn), "fasta")}
    missing = [sid for sid in table.columns if sid not in registry]
    if missing:
        raise ValueError(f"{fasta_fn} missing sequences for {len(missing)} ids")
    return table, registry
