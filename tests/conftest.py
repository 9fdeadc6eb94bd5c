"""Shared fixtures: synthetic amplicons and paired FASTQ files."""
import gzip
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest
from Bio.Seq import reverse_complement

AMPLICON_LEN = 60
READ_LEN = 40
HIGH_QUAL = "I"  # Q40
LOW_QUAL = "#"   # Q2


def random_seq(rng: np.random.Generator, n: int) -> str:
    return "".join(rng.choice(list("ACGT"), size=n))


def write_fastq_gz(path: Path, records) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with gzip.open(path, "wt") as fh:
        for title, seq, qual in records:
            fh.write(f"@{title}\n{seq}\n+\n{qual}\n")
    return path


_SHIFT = {"A": "C", "C": "G", "G": "T", "T": "A"}


def shift_bases(seq: str) -> str:
    return "".join(_SHIFT[b] for b in seq)


@pytest.fixture
def amplicons():
    """
    Three amplicons and a chimera of the first two.

    A, B and C differ from each other at every position.
    """
    rng = np.random.default_rng(7)
    a = random_seq(rng, AMPLICON_LEN)
    b = shift_bases(a)
    c = shift_bases(b)
    half = AMPLICON_LEN // 2
    return {"A": a, "B": b, "C": c, "AB": a[:half] + b[half:]}


@pytest.fixture
def write_sample():
    """
    Write <sample>_1/_2.fastq.gz into a lane directory.

    Each amplicon copy gives one read pair: the forward read is the first
    READ_LEN bases, the reverse read the reverse complement of the last
    READ_LEN bases, so mates overlap by 2 * READ_LEN - AMPLICON_LEN bases.
    """
    def _write(lane_dir: Path, sample: str, copies, qual_char: str = HIGH_QUAL):
        fwd, rev = [], []
        i = 0
        for seq, n in copies:
            for _ in range(n):
                f = seq[:READ_LEN]
                r = reverse_complement(seq[-READ_LEN:])
                fwd.append((f"{sample}.{i}/1", f, qual_char * len(f)))
                rev.append((f"{sample}.{i}/2", r, qual_char * len(r)))
                i += 1
        write_fastq_gz(lane_dir / f"{sample}_1.fastq.gz", fwd)
        write_fastq_gz(lane_dir / f"{sample}_2.fastq.gz", rev)
        return lane_dir

    return _write
