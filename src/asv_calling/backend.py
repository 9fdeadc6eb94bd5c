"""
Denoising backend interface.

The pipeline stages talk to the denoising library only through
DenoiserBackend, so the statistics behind error learning, variant
inference, chimera detection and taxonomy assignment can be swapped
without touching the pipeline.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from os import PathLike
from typing import Dict, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

FORWARD = "forward"
REVERSE = "reverse"


@dataclass(frozen=True, eq=False)
class ErrorModel:
    """
    Per-run, per-direction error rates indexed by Phred score.

    Attributes
    ----------
    direction : str
        'forward' or 'reverse'.
    error_rates : np.ndarray
        Probability that a base called with quality q is wrong, for
        q = 0..MAX_PHRED.
    n_obs : np.ndarray
        Number of observed bases at each quality score.
    n_reads : int
        Number of reads the model was learned from.
    """

    direction: str
    error_rates: np.ndarray
    n_obs: np.ndarray
    n_reads: int

    def rate(self, q: float) -> float:
        idx = int(min(max(round(q), 0), len(self.error_rates) - 1))
        return float(self.error_rates[idx])


@dataclass(frozen=True, eq=False)
class DerepSet:
    """
    Dereplicated reads of one sample and direction.

    ``uniques`` are ordered by decreasing abundance. ``read_map[i]`` is
    the index into ``uniques`` of the i-th read of the input file.
    """

    uniques: Tuple[str, ...]
    abundances: Tuple[int, ...]
    quals: Tuple[np.ndarray, ...]
    read_map: Tuple[int, ...]

    @property
    def n_reads(self) -> int:
        return len(self.read_map)

    def __len__(self) -> int:
        return len(self.uniques)


@dataclass(frozen=True, eq=False)
class VariantCall:
    """
    Inferred sequence variants of one sample and direction.

    ``unique_to_variant[u]`` gives the variant index a dereplicated
    unique was assigned to, or -1 if it was discarded.
    """

    sequences: Tuple[str, ...]
    abundances: Tuple[int, ...]
    unique_to_variant: Tuple[int, ...]

    def __len__(self) -> int:
        return len(self.sequences)


@dataclass(frozen=True)
class ContigSet:
    """Merged contigs of one sample: sequence -> read-pair count."""

    contigs: Dict[str, int] = field(default_factory=dict)
    n_merged: int = 0
    n_rejected: int = 0

    @classmethod
    def empty(cls) -> "ContigSet":
        return cls()

    @property
    def total(self) -> int:
        return sum(self.contigs.values())

    def __len__(self) -> int:
        return len(self.contigs)


class DenoiserBackend(ABC):
    """
    Abstract interface to an amplicon denoising library.

    Subclasses must implement every stage of the per-run and cross-run
    pipeline: error learning, dereplication, variant inference, pair
    merging, chimera removal and taxonomy assignment.
    """

    @abstractmethod
    def learn_error_model(
        self,
        fastq_fns: Sequence[Union[PathLike, str]],
        direction: str,
    ) -> ErrorModel:
        """Learn an error model from all filtered reads of one direction."""
        pass

    @abstractmethod
    def dereplicate(self, fastq_fn: Union[PathLike, str]) -> DerepSet:
        """Collapse identical reads of one filtered FASTQ file."""
        pass

    @abstractmethod
    def infer_variants(self, derep: DerepSet, error_model: ErrorModel) -> VariantCall:
        """Infer true sequence variants from dereplicated reads."""
        pass

    @abstractmethod
    def merge_pairs(
        self,
        fwd_call: VariantCall,
        fwd_derep: DerepSet,
        rev_call: VariantCall,
        rev_derep: DerepSet,
    ) -> ContigSet:
        """
        Merge forward and reverse variants into paired contigs.

        Raises
        ------
        MergeFailure
            If read pairs exist but none of them merge.
        """
        pass

    @abstractmethod
    def remove_chimeras(
        self,
        table: pd.DataFrame,
        registry: Mapping[str, str],
    ) -> pd.DataFrame:
        """Return the abundance table without chimeric sequence columns."""
        pass

    @abstractmethod
    def assign_taxonomy(
        self,
        registry: Mapping[str, str],
        reference_fasta: Union[PathLike, str],
    ) -> pd.DataFrame:
        """Assign ranks Kingdom..Genus to every sequence in the registry."""
        pass

    @abstractmethod
    def add_species(
        self,
        taxonomy: pd.DataFrame,
        registry: Mapping[str, str],
        species_fasta: Optional[Union[PathLike, str]],
    ) -> pd.DataFrame:
        """Fill the Species column from exact matches to a species reference."""
        pass
