"""
Per-sample denoising and pair merging.

Samples are processed one at a time: a sample's dereplicated reads are
loaded, denoised, merged and released before the next sample starts.
Each sample yields an immutable SampleResult; nothing is shared between
samples except the run's read-only error models.
"""

import logging
from dataclasses import dataclass
from typing import Iterator

from .backend import ContigSet, DenoiserBackend, ErrorModel
from .errors import DenoiseError
from .paths import Run, SamplePair

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_EMPTY = "empty"
STATUS_MERGE_FAILED = "merge_failed"


@dataclass(frozen=True)
class SampleResult:
    sample: str
    contigs: ContigSet
    status: str = STATUS_OK
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


def denoise_sample(
    pair: SamplePair,
    fwd_err: ErrorModel,
    rev_err: ErrorModel,
    backend: DenoiserBackend,
) -> SampleResult:
    """
    Denoise one filtered sample pair and merge its reads into contigs.

    Samples without filtered reads give an ``empty`` result. A
    DenoiseError (including MergeFailure) is logged and gives a
    ``merge_failed`` result with no contigs; it never propagates.
    """
    if not pair.filtered_exists():
        logger.warning(f"{pair.sample}: no filtered files, skipping")
        return SampleResult(pair.sample, ContigSet.empty(), STATUS_EMPTY, "no filtered files")

    fwd_derep = backend.dereplicate(pair.filtered_forward)
    if fwd_derep.n_reads == 0:
        logger.warning(f"{pair.sample}: no reads after filtering, skipping")
        return SampleResult(pair.sample, ContigSet.empty(), STATUS_EMPTY, "no reads after filtering")

    try:
        fwd_call = backend.infer_variants(fwd_derep, fwd_err)
        rev_derep = backend.dereplicate(pair.filtered_reverse)
        rev_call = backend.infer_variants(rev_derep, rev_err)
        contigs = backend.merge_pairs(fwd_call, fwd_derep, rev_call, rev_derep)
    except DenoiseError as e:
        logger.error(f"{pair.sample}: {e}")
        return SampleResult(pair.sample, ContigSet.empty(), STATUS_MERGE_FAILED, str(e))

    logger.info(
        f"{pair.sample}: {fwd_derep.n_reads:,} reads, {len(fwd_call)} forward / "
        f"{len(rev_call)} reverse variants, {contigs.n_merged:,} pairs merged "
        f"into {len(contigs)} contigs"
    )
    return SampleResult(pair.sample, contigs)


def denoise_run(
    run: Run,
    fwd_err: ErrorModel,
    rev_err: ErrorModel,
    backend: DenoiserBackend,
) -> Iterator[SampleResult]:
    """Yield one SampleResult per sample of the run, in run order."""
    for pair in run.samples:
        yield denoise_sample(pair, fwd_err, rev_err, backend)
