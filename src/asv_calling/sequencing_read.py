"""
Sequencing read parsing and quality trimming.

Provides a light-weight read object used by the filtering stage and
helpers for streaming records out of gzip-compressed FASTQ files.
"""

import gzip
import logging
from os import PathLike
from typing import Iterator, List, Optional, Tuple, Union

from Bio.Seq import reverse_complement
from Bio.SeqIO.QualityIO import FastqGeneralIterator

from .constants import PHRED_OFFSET

logger = logging.getLogger(__name__)

FastqTuple = Tuple[str, str, str]


class SequencingRead:
    """
    A single FASTQ record that can be trimmed and quality-checked.

    Parameters
    ----------
    title : str
        Record header without the leading '@'.
    seq : str
        Base calls (upper-cased on construction).
    qual : str
        Phred+33 encoded quality string, same length as ``seq``.

    Examples
    --------
    >>> read = SequencingRead("r1", "ACGTN", "IIII#")
    >>> read.truncate_at_quality(2)
    >>> read.seq
    'ACGT'
    >>> read.n_ambiguous()
    0
    """

    def __init__(self, title: str, seq: str, qual: str):
        if len(seq) != len(qual):
            raise ValueError(f"Read '{title}': sequence and quality lengths differ")
        self.title = title
        self.seq = seq.upper()
        self.qual = qual

    @property
    def phred(self) -> List[int]:
        return phred_scores(self.qual)

    def __len__(self) -> int:
        return len(self.seq)

    def empty(self) -> bool:
        """Check if trimming removed every base."""
        return len(self.seq) == 0

    def truncate_at_quality(self, trunc_q: int) -> None:
        """Cut the read before the first base with quality <= trunc_q."""
        for i, q in enumerate(self.phred):
            if q <= trunc_q:
                self.seq = self.seq[:i]
                self.qual = self.qual[:i]
                return

    def truncate(self, length: int) -> bool:
        """
        Truncate to exactly ``length`` bases.

        Returns False (and leaves the read untouched) when the read is
        shorter than ``length``. A length of 0 disables truncation.
        """
        if length <= 0:
            return True
        if len(self.seq) < length:
            return False
        self.seq = self.seq[:length]
        self.qual = self.qual[:length]
        return True

    def n_ambiguous(self) -> int:
        return sum(1 for b in self.seq if b not in "ACGT")

    def expected_errors(self) -> float:
        """Sum of per-base error probabilities, 10^(-Q/10)."""
        return sum(10 ** (-q / 10) for q in self.phred)

    def to_fastq(self) -> str:
        return f"@{self.title}\n{self.seq}\n+\n{self.qual}\n"


def phred_scores(qual: str) -> List[int]:
    return [ord(c) - PHRED_OFFSET for c in qual]


def iter_fastq(path: Union[PathLike, str]) -> Iterator[FastqTuple]:
    """Yield (title, seq, qual) tuples from a FASTQ file, gzip or plain."""
    path = str(path)
    opener = gzip.open if path.endswith(".gz") else open
    with opener(path, "rt") as handle:
        yield from FastqGeneralIterator(handle)


def iter_reads(path: Union[PathLike, str]) -> Iterator[SequencingRead]:
    for title, seq, qual in iter_fastq(path):
        yield SequencingRead(title, seq, qual)


def count_reads(path: Optional[Union[PathLike, str]]) -> int:
    """Number of records in a FASTQ file; 0 if the path is missing."""
    if path is None:
        return 0
    try:
        return sum(1 for _ in iter_fastq(path))
    except FileNotFoundError:
        return 0
