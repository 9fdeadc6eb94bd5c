"""
De novo bimera detection on abundance tables.

A sequence is a bimera in a sample when it can be rebuilt exactly as the
prefix of one more-abundant "parent" joined to the suffix of another.
The consensus method flags sequences per sample and removes those that
are flagged in (nearly) every sample they occur in.
"""

import logging
from dataclasses import dataclass
from typing import List, Mapping, Sequence, Tuple

import numpy as np
import pandas as pd

from .constants import (
    CHIMERA_METHOD,
    DEFAULT_IGNORE_N_NEGATIVES,
    DEFAULT_MIN_FOLD_PARENT,
    DEFAULT_MIN_SAMPLE_FRACTION,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChimeraParams:
    method: str = CHIMERA_METHOD
    min_fold_parent: float = DEFAULT_MIN_FOLD_PARENT
    min_sample_fraction: float = DEFAULT_MIN_SAMPLE_FRACTION
    ignore_n_negatives: int = DEFAULT_IGNORE_N_NEGATIVES


def _common_prefix(a: str, b: str) -> int:
    n = min(len(a), len(b))
    i = 0
    while i < n and a[i] == b[i]:
        i += 1
    return i


def _common_suffix(a: str, b: str) -> int:
    n = min(len(a), len(b))
    i = 0
    while i < n and a[-1 - i] == b[-1 - i]:
        i += 1
    return i


def _top_two(values: Sequence[int]) -> List[Tuple[int, int]]:
    # (value, index) of the two largest entries
    return sorted(((v, i) for i, v in enumerate(values)), reverse=True)[:2]


def is_bimera(seq: str, parents: Sequence[str]) -> bool:
    """
    Check whether ``seq`` is an exact left/right join of two parents.

    Parameters
    ----------
    seq : str
        Query sequence.
    parents : sequence of str
        Candidate parent sequences (more abundant than the query).

    Returns
    -------
    bool
        True if two distinct parents, neither identical to ``seq``, cover
        it with a shared prefix and a shared suffix.

    Examples
    --------
    >>> is_bimera("AAAATTTT", ["AAAAGGGG", "CCCCTTTT"])
    True
    >>> is_bimera("AAAATTTT", ["AAAAGGGG"])
    False
    """
    parents = [p for p in parents if p != seq]
    if len(parents) < 2:
        return False

    lefts = [_common_prefix(seq, p) for p in parents]
    rights = [_common_suffix(seq, p) for p in parents]

    for left, i in _top_two(lefts):
        for right, j in _top_two(rights):
            if i != j and left + right >= len(seq):
                return True
    return False


def bimera_table(
    table: pd.DataFrame,
    registry: Mapping[str, str],
    params: ChimeraParams = ChimeraParams(),
) -> pd.DataFrame:
    """
    Count, per sequence, the samples it occurs in and is flagged in.

    Parameters
    ----------
    table : pd.DataFrame
        Abundance table (samples x sequence ids).
    registry : mapping
        Sequence id -> sequence.
    params : ChimeraParams
        Consensus thresholds.

    Returns
    -------
    pd.DataFrame
        Indexed by sequence id with columns ``nflag``, ``nsam`` and
        ``chimera`` (bool).
    """
    if params.method != "consensus":
        raise ValueError(f"Unsupported chimera method: {params.method}")

    seq_ids = list(table.columns)
    nflag = dict.fromkeys(seq_ids, 0)
    nsam = dict.fromkeys(seq_ids, 0)

    for _, row in table.iterrows():
        present = row[row > 0]
        for sid, count in present.items():
            nsam[sid] += 1
            parents = [
                registry[pid]
                for pid, pcount in present.items()
                if pid != sid and pcount >= params.min_fold_parent * count
            ]
            if is_bimera(registry[sid], parents):
                nflag[sid] += 1

    out = pd.DataFrame({"nflag": pd.Series(nflag), "nsam": pd.Series(nsam)}, index=seq_ids)
    flagged = out["nflag"] > 0
    enough = (out["nflag"] >= out["nsam"]) | (
        out["nflag"] >= (out["nsam"] - params.ignore_n_negatives) * params.min_sample_fraction
    )
    out["chimera"] = flagged & enough
    out.index.name = "seq_id"
    return out


def remove_bimeras(
    table: pd.DataFrame,
    registry: Mapping[str, str],
    params: ChimeraParams = ChimeraParams(),
) -> pd.DataFrame:
    """
    Drop chimeric sequence columns from an abundance table.

    Only columns are removed, so the total read count never increases
    and no new sequences appear.
    """
    report = bimera_table(table, registry, params=params)
    chimeric = report.index[report["chimera"]]

    total = int(np.asarray(table.values).sum())
    removed_reads = int(table[chimeric].values.sum()) if len(chimeric) else 0
    frac = removed_reads / total if total else 0.0
    logger.info(
        f"Chimera removal: {len(chimeric)} of {table.shape[1]} sequences flagged "
        f"({frac:.1%} of reads)"
    )

    return table.drop(columns=chimeric)
