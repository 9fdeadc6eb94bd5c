"""
Taxonomy assignment against reference training sets.

Genus-level assignment uses a k-mer classifier with bootstrap support:
the reference sharing the most k-mers with the query gives the ranks,
and each rank is kept only if enough bootstrap subsamples of the query's
k-mers agree on it. Species are added by exact sequence matching.

Reference formats follow the common amplicon training-set conventions:

- genus training FASTA headers: ``>Kingdom;Phylum;Class;Order;Family;Genus;``
- species FASTA headers: ``>ID Genus species``
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from os import PathLike
from typing import Dict, List, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd
from Bio import SeqIO

from .constants import (
    DEFAULT_MIN_BOOT,
    DEFAULT_N_BOOTSTRAP,
    SPECIES_RANK,
    TAXONOMY_RANKS,
    TAXONOMY_WORD_SIZE,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaxonomyParams:
    min_boot: int = DEFAULT_MIN_BOOT
    n_bootstrap: int = DEFAULT_N_BOOTSTRAP
    word_size: int = TAXONOMY_WORD_SIZE
    seed: int = 100


def _kmers(seq: str, k: int) -> List[str]:
    seq = seq.upper()
    return list(dict.fromkeys(seq[i:i + k] for i in range(len(seq) - k + 1)))


def parse_lineage(header: str) -> Tuple[Optional[str], ...]:
    """
    Split a training-set header into a fixed-length rank tuple.

    >>> parse_lineage("Bacteria;Firmicutes;Bacilli;")
    ('Bacteria', 'Firmicutes', 'Bacilli', None, None, None)
    """
    names = [t.strip() for t in header.split(";") if t.strip()]
    names = names[: len(TAXONOMY_RANKS)]
    return tuple(names) + (None,) * (len(TAXONOMY_RANKS) - len(names))


class KmerClassifier:
    """
    Nearest-reference k-mer classifier with bootstrap confidence.

    Parameters
    ----------
    references : list of (sequence, lineage)
        Reference sequences and their rank tuples.
    params : TaxonomyParams
        Word size, bootstrap count, minimum support and RNG seed.
    """

    def __init__(
        self,
        references: List[Tuple[str, Tuple[Optional[str], ...]]],
        params: TaxonomyParams = TaxonomyParams(),
    ):
        if not references:
            raise ValueError("KmerClassifier needs at least one reference sequence")
        self.params = params
        self.lineages = [lineage for _, lineage in references]

        # Inverted index: k-mer -> reference indices containing it
        index: Dict[str, List[int]] = {}
        for ref_idx, (seq, _) in enumerate(references):
            for kmer in _kmers(seq, params.word_size):
                index.setdefault(kmer, []).append(ref_idx)
        self._index = {k: np.asarray(v, dtype=int) for k, v in index.items()}
        self._n_refs = len(references)

    @classmethod
    def from_fasta(
        cls,
        fasta_fn: Union[PathLike, str],
        params: TaxonomyParams = TaxonomyParams(),
    ) -> "KmerClassifier":
        refs = [
            (str(rec.seq), parse_lineage(rec.description))
            for rec in SeqIO.parse(str(fasta_fn), "fasta")
        ]
        logger.info(f"Loaded {len(refs):,} taxonomy reference sequences from {fasta_fn}")
        return cls(refs, params=params)

    def _best(self, kmers: List[str]) -> int:
        hits = [self._index[k] for k in kmers if k in self._index]
        if not hits:
            return -1
        scores = np.bincount(np.concatenate(hits), minlength=self._n_refs)
        return int(np.argmax(scores))

    def classify(self, seq: str, rng: np.random.Generator) -> Tuple[Tuple[Optional[str], ...], np.ndarray]:
        """
        Classify one sequence.

        Returns
        -------
        lineage : tuple
            Assigned ranks of the best reference.
        boot : np.ndarray
            Bootstrap support (0-100) for each rank.
        """
        n_ranks = len(TAXONOMY_RANKS)
        kmers = _kmers(seq, self.params.word_size)
        best = self._best(kmers)
        if best < 0:
            return (None,) * n_ranks, np.zeros(n_ranks)

        lineage = self.lineages[best]
        n_sub = max(1, len(kmers) // 8)
        agree = np.zeros(n_ranks)
        for _ in range(self.params.n_bootstrap):
            sub = [kmers[i] for i in rng.integers(0, len(kmers), size=n_sub)]
            boot_idx = self._best(sub)
            if boot_idx < 0:
                continue
            boot_lineage = self.lineages[boot_idx]
            for r in range(n_ranks):
                if boot_lineage[: r + 1] != lineage[: r + 1]:
                    break
                agree[r] += 1
        return lineage, 100.0 * agree / self.params.n_bootstrap

    def assign(self, registry: Mapping[str, str]) -> pd.DataFrame:
        """
        Assign ranks to every sequence of a registry.

        Ranks whose bootstrap support is below ``min_boot`` are left null,
        together with all ranks below them.
        """
        rng = np.random.default_rng(self.params.seed)
        rows = []
        for seq_id, seq in registry.items():
            lineage, boot = self.classify(seq, rng)
            row = {"seq_id": seq_id}
            supported = True
            for r, rank in enumerate(TAXONOMY_RANKS):
                supported = supported and lineage[r] is not None and boot[r] >= self.params.min_boot
                row[rank] = lineage[r] if supported else None
            rows.append(row)

        columns = ["seq_id", *TAXONOMY_RANKS]
        taxonomy = pd.DataFrame(rows, columns=columns).set_index("seq_id")
        taxonomy[SPECIES_RANK] = None
        taxonomy["sequence"] = [registry[s] for s in taxonomy.index]
        return taxonomy


def load_species_reference(fasta_fn: Union[PathLike, str]) -> List[Tuple[str, str, str]]:
    """Read (sequence, genus, species) triples from a species FASTA."""
    refs = []
    for rec in SeqIO.parse(str(fasta_fn), "fasta"):
        parts = rec.description.split()
        if len(parts) < 3:
            logger.warning(f"Skipping species reference without binomial: {rec.description}")
            continue
        refs.append((str(rec.seq).upper(), parts[1], " ".join(parts[2:])))
    logger.info(f"Loaded {len(refs):,} species reference sequences from {fasta_fn}")
    return refs


def add_species(
    taxonomy: pd.DataFrame,
    registry: Mapping[str, str],
    species_refs: List[Tuple[str, str, str]],
) -> pd.DataFrame:
    """
    Fill the Species column by exact matching.

    A species is assigned when the query sequence occurs exactly within
    reference sequences of a single species, and that species' genus
    agrees with the assigned Genus (if any).
    """
    taxonomy = taxonomy.copy()
    n_assigned = 0
    for seq_id in taxonomy.index:
        query = registry[seq_id].upper()
        hits = {(genus, species) for ref, genus, species in species_refs if query in ref}
        if len(hits) != 1:
            continue
        genus, species = next(iter(hits))
        assigned_genus = taxonomy.at[seq_id, "Genus"]
        if assigned_genus is not None and not pd.isna(assigned_genus) and assigned_genus != genus:
            continue
        taxonomy.at[seq_id, SPECIES_RANK] = species
        n_assigned += 1

    logger.info(f"Species assigned to {n_assigned} of {len(taxonomy)} sequences")
    return taxonomy
