"""
Quality trimming and filtering of paired FASTQ files.

Each sample pair of a run is trimmed and filtered into the run's
filtered directory. Files are processed in parallel across CPU cores;
each worker handles one pair and returns a FilterReport.
"""

import gzip
import io
import logging
import os
from dataclasses import dataclass
from itertools import zip_longest
from multiprocessing import Pool, cpu_count
from os import PathLike
from pathlib import Path
from typing import Iterable, List, Optional, Set, Tuple, Union

import pandas as pd
from Bio import SeqIO

from .constants import (
    CONTROL_MIN_MATCHES,
    CONTROL_WORD_SIZE,
    DEFAULT_MAX_EE,
    DEFAULT_MAX_N,
    DEFAULT_MIN_REPORT_READS,
    DEFAULT_RM_CONTROL,
    DEFAULT_TRUNC_LEN,
    DEFAULT_TRUNC_Q,
)
from .paths import Run, SamplePair
from .sequencing_read import SequencingRead, count_reads, iter_reads, reverse_complement

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilterParams:
    trunc_len: Tuple[int, int] = DEFAULT_TRUNC_LEN
    max_n: int = DEFAULT_MAX_N
    max_ee: Tuple[float, float] = DEFAULT_MAX_EE
    trunc_q: int = DEFAULT_TRUNC_Q
    rm_control: bool = DEFAULT_RM_CONTROL
    control_fasta: Optional[str] = None


@dataclass(frozen=True)
class FilterReport:
    sample: str
    reads_in: int
    reads_out: int

    @property
    def fraction_lost(self) -> float:
        if self.reads_in == 0:
            return 0.0
        return 1.0 - self.reads_out / self.reads_in


class ControlScreen:
    """
    K-mer screen for reads derived from a control sequence (e.g. PhiX).

    A read is flagged when at least ``min_matches`` of its k-mers, on
    either strand, occur in the control sequence.

    Parameters
    ----------
    control_seqs : iterable of str
        Control sequences to index.
    word_size : int, default 16
        K-mer length.
    min_matches : int, default 2
        Number of k-mer hits needed to flag a read.
    """

    def __init__(
        self,
        control_seqs: Iterable[str],
        word_size: int = CONTROL_WORD_SIZE,
        min_matches: int = CONTROL_MIN_MATCHES,
    ):
        self.word_size = word_size
        self.min_matches = min_matches
        self._kmers: Set[str] = set()
        for seq in control_seqs:
            seq = seq.upper()
            for s in (seq, reverse_complement(seq)):
                for i in range(len(s) - word_size + 1):
                    self._kmers.add(s[i:i + word_size])

    @classmethod
    def from_fasta(cls, fasta_fn: Union[PathLike, str], **kwargs) -> "ControlScreen":
        seqs = [str(rec.seq) for rec in SeqIO.parse(str(fasta_fn), "fasta")]
        if not seqs:
            raise ValueError(f"No sequences in control FASTA {fasta_fn}")
        return cls(seqs, **kwargs)

    @property
    def n_kmers(self) -> int:
        return len(self._kmers)

    def is_control(self, seq: str) -> bool:
        hits = 0
        k = self.word_size
        for i in range(len(seq) - k + 1):
            if seq[i:i + k] in self._kmers:
                hits += 1
                if hits >= self.min_matches:
                    return True
        return False


def _passes(read: SequencingRead, trunc_len: int, max_n: int, max_ee: float, trunc_q: int) -> bool:
    read.truncate_at_quality(trunc_q)
    if not read.truncate(trunc_len):
        return False
    if read.empty():
        return False
    if read.n_ambiguous() > max_n:
        return False
    return read.expected_errors() <= max_ee


def _mate_id(title: str) -> str:
    # Mates may differ only in a trailing /1 or /2
    read_id = title.split()[0] if title else ""
    if read_id.endswith(("/1", "/2")):
        read_id = read_id[:-2]
    return read_id


def _open_output(path: Path):
    # mtime=0 keeps reruns byte-identical
    return io.TextIOWrapper(gzip.GzipFile(path, "wb", mtime=0))


def _partial_path(path: Path) -> Path:
    return path.with_name(path.name + ".partial")


def _filter_pair(
    pair: SamplePair,
    params: FilterParams,
    screen: Optional[ControlScreen],
    reuse_existing: bool,
) -> FilterReport:
    """
    Filter one sample pair and return its read counts.

    Module-level so it can be dispatched to worker processes.
    """
    if reuse_existing and pair.filtered_exists():
        report = FilterReport(
            sample=pair.sample,
            reads_in=count_reads(pair.forward),
            reads_out=count_reads(pair.filtered_forward),
        )
        logger.info(f"{pair.sample}: reusing filtered files ({report.reads_out:,} reads)")
        return report

    reads_in = 0
    reads_out = 0
    pair.filtered_forward.parent.mkdir(parents=True, exist_ok=True)
    # Outputs only appear under their final names once the pair is complete
    finals = (pair.filtered_forward, pair.filtered_reverse)
    partials = tuple(_partial_path(p) for p in finals)
    for path in finals:
        if path.exists():
            path.unlink()

    try:
        with _open_output(partials[0]) as out_f, _open_output(partials[1]) as out_r:
            for fwd, rev in zip_longest(iter_reads(pair.forward), iter_reads(pair.reverse)):
                reads_in += 1
                if fwd is None or rev is None:
                    ended = pair.forward if fwd is None else pair.reverse
                    raise ValueError(
                        f"{pair.sample}: forward and reverse reads out of sync at "
                        f"record {reads_in} ({ended.name} ended early)"
                    )
                if _mate_id(fwd.title) != _mate_id(rev.title):
                    raise ValueError(
                        f"{pair.sample}: forward and reverse reads out of sync at "
                        f"record {reads_in} ({fwd.title} / {rev.title})"
                    )

                if not _passes(fwd, params.trunc_len[0], params.max_n, params.max_ee[0], params.trunc_q):
                    continue
                if not _passes(rev, params.trunc_len[1], params.max_n, params.max_ee[1], params.trunc_q):
                    continue
                if screen is not None and (screen.is_control(fwd.seq) or screen.is_control(rev.seq)):
                    continue

                out_f.write(fwd.to_fastq())
                out_r.write(rev.to_fastq())
                reads_out += 1
    except BaseException:
        for path in partials:
            if path.exists():
                path.unlink()
        raise

    for partial, final in zip(partials, finals):
        os.replace(partial, final)

    logger.info(f"{pair.sample}: {reads_in:,} reads in, {reads_out:,} reads out")
    return FilterReport(sample=pair.sample, reads_in=reads_in, reads_out=reads_out)


def _default_num_cores() -> int:
    if hasattr(os, "sched_getaffinity"):
        return max(1, len(os.sched_getaffinity(0)) - 2)
    return max(1, cpu_count() - 2)


def filter_and_trim(
    run: Run,
    params: FilterParams = FilterParams(),
    num_cores: Optional[int] = None,
    reuse_existing: bool = False,
) -> List[FilterReport]:
    """
    Trim and filter every sample pair of a run.

    Parameters
    ----------
    run : Run
        Resolved run.
    params : FilterParams
        Truncation lengths and filtering thresholds.
    num_cores : int, optional
        Number of worker processes. Defaults to (available cores - 2).
    reuse_existing : bool, default False
        Keep filtered files that already exist and only recount them.

    Returns
    -------
    list of FilterReport
        One report per sample, in run order.
    """
    num_cores = num_cores or _default_num_cores()
    run.filtered_dir.mkdir(parents=True, exist_ok=True)

    screen = None
    if params.rm_control:
        if params.control_fasta is None:
            logger.warning("Control-sequence removal requested but no control FASTA given; skipping")
        else:
            screen = ControlScreen.from_fasta(params.control_fasta)
            logger.info(f"Control screen: {screen.n_kmers:,} k-mers")

    arguments = [(pair, params, screen, reuse_existing) for pair in run.samples]
    logger.info(f"{run.run_id}: filtering {len(arguments)} sample pairs on {num_cores} cores")

    if num_cores > 1 and len(arguments) > 1:
        with Pool(processes=min(num_cores, len(arguments))) as pool:
            reports = pool.starmap(_filter_pair, arguments)
    else:
        reports = [_filter_pair(*args) for args in arguments]

    for report in reports:
        if report.reads_out == 0:
            logger.warning(f"{run.run_id}: sample {report.sample} has no reads after filtering")

    return reports


def loss_report(
    reports: Iterable[FilterReport],
    min_reads: int = DEFAULT_MIN_REPORT_READS,
) -> pd.DataFrame:
    """
    Tabulate filtering losses, worst samples first.

    Samples with fewer than ``min_reads`` input reads are left out.
    """
    rows = [
        {
            "sample": r.sample,
            "reads_in": r.reads_in,
            "reads_out": r.reads_out,
            "fraction_lost": r.fraction_lost,
        }
        for r in reports
        if r.reads_in >= min_reads
    ]
    df = pd.DataFrame(rows, columns=["sample", "reads_in", "reads_out", "fraction_lost"])
    return df.sort_values("fraction_lost", ascending=False, kind="mergesort").reset_index(drop=True)
