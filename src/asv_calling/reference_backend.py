"""
Pure-Python reference implementation of the denoising backend.

ReferenceDenoiser follows the usual amplicon denoising recipe closely
enough to run the whole pipeline without an external library:

- dereplication keeps per-read unique assignments and mean qualities
- error rates are tallied per quality score from reads compared to their
  nearest more-abundant anchor sequence
- a unique founds a new variant only when its abundance is too high to
  be explained as sequencing errors of an existing variant
- read pairs are merged on an exact (or near-exact) overlap
"""

import logging
from collections import Counter
from dataclasses import dataclass
from os import PathLike
from typing import Dict, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd
from rapidfuzz.distance import Hamming
from rapidfuzz.process import extractOne
from scipy import stats

from .backend import ContigSet, DenoiserBackend, DerepSet, ErrorModel, VariantCall
from .chimeras import ChimeraParams, remove_bimeras
from .constants import (
    DEFAULT_MAX_MERGE_MISMATCH,
    DEFAULT_MAX_MISMATCH,
    DEFAULT_MIN_ABUNDANCE,
    DEFAULT_MIN_OVERLAP,
    DEFAULT_OMEGA,
    MAX_PHRED,
)
from .errors import DenoiseError, MergeFailure
from .sequencing_read import iter_fastq, phred_scores, reverse_complement
from .taxonomy import KmerClassifier, TaxonomyParams, load_species_reference
from .taxonomy import add_species as add_species_exact

logger = logging.getLogger(__name__)

_PSEUDOCOUNT = 1.0
_MIN_RATE = 1e-7
_MAX_RATE = 0.75


@dataclass(frozen=True)
class DenoiseParams:
    """
    Parameters of the reference denoiser.

    max_mismatch : maximum Hamming distance at which a unique may be
        explained as an error copy of a variant.
    omega : -log10 of the abundance p-value below which a unique founds
        a new variant (40 -> p < 1e-40).
    min_abundance : smallest abundance allowed to found a variant.
    min_overlap, max_merge_mismatch : pair merging thresholds.
    """

    max_mismatch: int = DEFAULT_MAX_MISMATCH
    omega: float = DEFAULT_OMEGA
    min_abundance: int = DEFAULT_MIN_ABUNDANCE
    min_overlap: int = DEFAULT_MIN_OVERLAP
    max_merge_mismatch: int = DEFAULT_MAX_MERGE_MISMATCH


def phred_prior() -> np.ndarray:
    q = np.arange(MAX_PHRED + 1, dtype=float)
    return np.clip(10 ** (-q / 10), _MIN_RATE, _MAX_RATE)


def _mismatch_positions(a: str, b: str) -> List[int]:
    return [i for i, (x, y) in enumerate(zip(a, b)) if x != y]


class ReferenceDenoiser(DenoiserBackend):
    """
    Reference DenoiserBackend built on rapidfuzz Hamming matching.

    Parameters
    ----------
    params : DenoiseParams
        Variant inference and merging thresholds.
    chimera_params : ChimeraParams
        Consensus chimera removal thresholds.
    taxonomy_params : TaxonomyParams
        K-mer classifier settings.
    """

    def __init__(
        self,
        params: DenoiseParams = DenoiseParams(),
        chimera_params: ChimeraParams = ChimeraParams(),
        taxonomy_params: TaxonomyParams = TaxonomyParams(),
    ):
        self.params = params
        self.chimera_params = chimera_params
        self.taxonomy_params = taxonomy_params

    # -- dereplication -----------------------------------------------------

    def dereplicate(self, fastq_fn: Union[PathLike, str]) -> DerepSet:
        first_seen: Dict[str, int] = {}
        counts: List[int] = []
        qual_sums: List[np.ndarray] = []
        read_map: List[int] = []

        for _, seq, qual in iter_fastq(fastq_fn):
            seq = seq.upper()
            idx = first_seen.get(seq)
            q = np.asarray(phred_scores(qual), dtype=float)
            if idx is None:
                idx = len(counts)
                first_seen[seq] = idx
                counts.append(0)
                qual_sums.append(np.zeros(len(seq)))
            counts[idx] += 1
            qual_sums[idx] += q
            read_map.append(idx)

        seqs = list(first_seen)
        # Decreasing abundance, ties keep first-seen order
        order = sorted(range(len(seqs)), key=lambda i: -counts[i])
        rank = {old: new for new, old in enumerate(order)}

        logger.debug(f"{fastq_fn}: {len(read_map):,} reads, {len(seqs):,} unique sequences")
        return DerepSet(
            uniques=tuple(seqs[i] for i in order),
            abundances=tuple(counts[i] for i in order),
            quals=tuple(qual_sums[i] / counts[i] for i in order),
            read_map=tuple(rank[i] for i in read_map),
        )

    # -- error model -------------------------------------------------------

    def _tally(self, derep: DerepSet, mism: np.ndarray, obs: np.ndarray) -> None:
        # Uniques with no more-abundant anchor within max_mismatch become
        # anchors themselves; all others are tallied against their anchor.
        anchors: List[str] = []
        for seq, abundance, quals in zip(derep.uniques, derep.abundances, derep.quals):
            parent = None
            if anchors:
                result = extractOne(
                    seq,
                    anchors,
                    scorer=Hamming.distance,
                    score_cutoff=self.params.max_mismatch,
                )
                if result is not None and len(result[0]) == len(seq):
                    parent = result[0]
            if parent is None:
                anchors.append(seq)
                parent = seq

            q_idx = np.clip(np.rint(quals), 0, MAX_PHRED).astype(int)
            np.add.at(obs, q_idx, abundance)
            for pos in _mismatch_positions(seq, parent):
                mism[q_idx[pos]] += abundance

    def learn_error_model(
        self,
        fastq_fns: Sequence[Union[PathLike, str]],
        direction: str,
    ) -> ErrorModel:
        """
        Learn per-quality error rates from a run's filtered reads.

        Every unique read is compared to the closest more-abundant anchor
        unique within ``max_mismatch``; mismatches are counted against the
        quality of the differing base. Phred rates act as a prior so that
        sparsely observed scores stay sensible. Rates are forced to be
        non-increasing in quality.
        """
        mism = np.zeros(MAX_PHRED + 1)
        obs = np.zeros(MAX_PHRED + 1)
        n_reads = 0

        for fn in fastq_fns:
            derep = self.dereplicate(fn)
            if derep.n_reads == 0:
                continue
            n_reads += derep.n_reads
            self._tally(derep, mism, obs)

        prior = phred_prior()
        rates = (mism + prior * _PSEUDOCOUNT) / (obs + _PSEUDOCOUNT)
        rates = np.minimum.accumulate(np.clip(rates, _MIN_RATE, _MAX_RATE))

        logger.info(
            f"Learned {direction} error model from {n_reads:,} reads "
            f"({int(obs.sum()):,} bases)"
        )
        return ErrorModel(direction=direction, error_rates=rates, n_obs=obs, n_reads=n_reads)

    # -- variant inference -------------------------------------------------

    def _expected_copies(self, parent_abundance: int, seq: str, parent: str, quals: np.ndarray, err: ErrorModel) -> float:
        log_p = 0.0
        for pos, (x, y) in enumerate(zip(seq, parent)):
            rate = err.rate(quals[pos])
            log_p += np.log(rate / 3) if x != y else np.log1p(-rate)
        return parent_abundance * float(np.exp(log_p))

    def _is_significant(self, abundance: int, expected: float) -> bool:
        # P(X >= a | X >= 1) for X ~ Poisson(expected)
        if expected <= 0:
            return True
        log_p = stats.poisson.logsf(abundance - 1, expected) - stats.poisson.logsf(0, expected)
        return log_p < -self.params.omega * np.log(10)

    def infer_variants(self, derep: DerepSet, error_model: ErrorModel) -> VariantCall:
        variant_seqs: List[str] = []
        founder_abundance: List[int] = []
        variant_abundance: List[int] = []
        assignment: List[int] = []

        for seq, abundance, quals in zip(derep.uniques, derep.abundances, derep.quals):
            nearest = None
            if variant_seqs:
                result = extractOne(
                    seq,
                    variant_seqs,
                    scorer=Hamming.distance,
                    score_cutoff=self.params.max_mismatch,
                )
                if result is not None and len(result[0]) == len(seq):
                    nearest = result[2]

            significant = True
            if nearest is not None:
                expected = self._expected_copies(
                    founder_abundance[nearest], seq, variant_seqs[nearest], quals, error_model
                )
                significant = self._is_significant(abundance, expected)

            if significant and abundance >= self.params.min_abundance:
                variant_seqs.append(seq)
                founder_abundance.append(abundance)
                variant_abundance.append(abundance)
                assignment.append(len(variant_seqs) - 1)
            elif nearest is not None:
                variant_abundance[nearest] += abundance
                assignment.append(nearest)
            else:
                assignment.append(-1)

        return VariantCall(
            sequences=tuple(variant_seqs),
            abundances=tuple(variant_abundance),
            unique_to_variant=tuple(assignment),
        )

    # -- pair merging ------------------------------------------------------

    def merge_contig(self, fwd: str, rev: str) -> Optional[str]:
        """
        Join a forward variant to a reverse variant on their overlap.

        The reverse variant is reverse-complemented; the longest overlap of
        at least ``min_overlap`` bases with at most ``max_merge_mismatch``
        mismatches wins. Returns None when no such overlap exists.
        """
        rc = reverse_complement(rev)
        longest = min(len(fwd), len(rc))
        for k in range(longest, self.params.min_overlap - 1, -1):
            if len(_mismatch_positions(fwd[len(fwd) - k:], rc[:k])) <= self.params.max_merge_mismatch:
                return fwd + rc[k:]
        return None

    def merge_pairs(
        self,
        fwd_call: VariantCall,
        fwd_derep: DerepSet,
        rev_call: VariantCall,
        rev_derep: DerepSet,
    ) -> ContigSet:
        if fwd_derep.n_reads != rev_derep.n_reads:
            raise DenoiseError(
                f"Forward ({fwd_derep.n_reads}) and reverse ({rev_derep.n_reads}) "
                f"read counts differ"
            )

        pairs: Counter = Counter()
        for f_unique, r_unique in zip(fwd_derep.read_map, rev_derep.read_map):
            fv = fwd_call.unique_to_variant[f_unique]
            rv = rev_call.unique_to_variant[r_unique]
            if fv >= 0 and rv >= 0:
                pairs[(fv, rv)] += 1

        contigs: Counter = Counter()
        n_rejected = 0
        for (fv, rv), n in pairs.items():
            contig = self.merge_contig(fwd_call.sequences[fv], rev_call.sequences[rv])
            if contig is None:
                n_rejected += n
            else:
                contigs[contig] += n

        if pairs and not contigs:
            raise MergeFailure(f"None of {sum(pairs.values()):,} read pairs could be merged")

        n_merged = sum(contigs.values())
        return ContigSet(contigs=dict(contigs), n_merged=n_merged, n_rejected=n_rejected)

    # -- cross-run steps ---------------------------------------------------

    def remove_chimeras(self, table: pd.DataFrame, registry: Mapping[str, str]) -> pd.DataFrame:
        return remove_bimeras(table, registry, params=self.chimera_params)

    def assign_taxonomy(
        self,
        registry: Mapping[str, str],
        reference_fasta: Union[PathLike, str],
    ) -> pd.DataFrame:
        classifier = KmerClassifier.from_fasta(reference_fasta, params=self.taxonomy_params)
        return classifier.assign(registry)

    def add_species(
        self,
        taxonomy: pd.DataFrame,
        registry: Mapping[str, str],
        species_fasta: Optional[Union[PathLike, str]],
    ) -> pd.DataFrame:
        if species_fasta is None:
            return taxonomy
        return add_species_exact(taxonomy, registry, load_species_reference(species_fasta))
