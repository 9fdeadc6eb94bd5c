"""
Abundance-table reshaping and metadata joins.

This module turns the merged (samples x sequences) abundance table into
long-format records and attaches per-sample metadata and per-sequence
taxonomy to them.

Functions
---------
abundance_to_long
    Convert a wide abundance table to one row per (sequence, sample).
join_metadata
    Left-join long records onto sample metadata.
unmatched_samples
    Sample ids in an abundance table with no usable metadata.
attach_taxonomy
    Add taxonomy columns to long records.
"""
from __future__ import annotations

import logging
from typing import Optional, Sequence

import pandas as pd

logger = logging.getLogger(__name__)

LONG_COLUMNS = ["seq_id", "sample_id", "read_count"]


def abundance_to_long(
    table: pd.DataFrame,
    drop_zero: bool = False,
) -> pd.DataFrame:
    """Convert a wide abundance table to long format.

    Parameters
    ----------
    table : pd.DataFrame
        Abundance table with sample ids as index and sequence ids as
        columns (the in-memory orientation from ``asv_calling``).
    drop_zero : bool, default False
        Drop (sequence, sample) pairs with zero reads.

    Returns
    -------
    pd.DataFrame
        Columns ``seq_id``, ``sample_id``, ``read_count``.

    Examples
    --------
    >>> table = pd.DataFrame({"a": [3, 0], "b": [0, 5]}, index=["S1_M1", "S2_M1"])
    >>> abundance_to_long(table, drop_zero=True)["read_count"].tolist()
    [3, 5]
    """
    if table.shape[0] == 0 or table.shape[1] == 0:
        return pd.DataFrame({
            "seq_id": pd.Series(dtype=str),
            "sample_id": pd.Series(dtype=str),
            "read_count": pd.Series(dtype=int),
        })

    long = (
        table.rename_axis(index="sample_id", columns="seq_id")
        .stack()
        .rename("read_count")
        .reset_index()
    )
    long = long[LONG_COLUMNS].astype({"read_count": int})
    if drop_zero:
        long = long[long["read_count"] > 0].reset_index(drop=True)
    return long


def unmatched_samples(table: pd.DataFrame, meta: pd.DataFrame) -> list[str]:
    """Sample ids with no metadata row, or a row without a subject."""
    matched = meta.index[meta["subject_id"].notna()] if "subject_id" in meta.columns else meta.index
    return sorted(set(table.index) - set(matched))


def join_metadata(
    records: pd.DataFrame,
    meta: pd.DataFrame,
) -> pd.DataFrame:
    """Left-join long records onto sample metadata.

    Records whose sample has no metadata are kept with null metadata
    fields; a warning lists how many samples were affected.

    Parameters
    ----------
    records : pd.DataFrame
        Output of :func:`abundance_to_long`.
    meta : pd.DataFrame
        Sample metadata indexed by sample_id (see
        ``metadata_setup.combine_run_metadata``).
    """
    out = records.merge(meta, left_on="sample_id", right_index=True, how="left")

    if "subject_id" in out.columns:
        missing = out.loc[out["subject_id"].isna(), "sample_id"].unique()
        if len(missing):
            logger.warning(
                f"JoinMismatch: {len(missing)} samples without subject metadata "
                f"(e.g. {sorted(missing)[:5]})"
            )
    return out


def attach_taxonomy(
    records: pd.DataFrame,
    taxonomy: pd.DataFrame,
    ranks: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """Add taxonomy columns (by seq_id) to long records.

    ``ranks`` selects the taxonomy columns to carry; by default every
    column except the sequence itself.
    """
    if ranks is None:
        ranks = [c for c in taxonomy.columns if c != "sequence"]
    tax = taxonomy.loc[:, list(ranks)]
    out = records.merge(tax, left_on="seq_id", right_index=True, how="left")

    n_unassigned = out.loc[out[list(ranks)].isna().all(axis=1), "seq_id"].nunique()
    if n_unassigned:
        logger.info(f"{n_unassigned} sequences without any taxonomy assignment")
    return out
