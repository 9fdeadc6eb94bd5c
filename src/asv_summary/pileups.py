"""
Per-subject sequence pileups.

Two summaries of how sequences are shared across subjects, computed
separately for each specimen type:

* subject pileup: for each number of subjects N, how many sequences were
  observed (read_count > 0) in exactly N distinct subjects;
* earliest detection: for each study day D, how many sequences were first
  observed on day D in any subject. Days beyond the cap are pooled into
  the cap.

Records are long-format rows with at least ``seq_id``, ``subject_id``,
``specimen_type``, ``read_count`` and (for earliest detection)
``study_day``.
"""
from __future__ import annotations

import logging
from typing import Sequence

import pandas as pd

logger = logging.getLogger(__name__)

DEFAULT_SPECIMEN_TYPES = ("Oral swab", "Stool swab", "Sputum")
EARLIEST_DAY_CAP = 200
SUBJECT_CUTOFF = 10


def _observed(records: pd.DataFrame, specimen_types: Sequence[str]) -> pd.DataFrame:
    keep = (
        (records["read_count"] > 0)
        & records["specimen_type"].isin(list(specimen_types))
        & records["subject_id"].notna()
    )
    return records.loc[keep]


def subject_pileup(
    records: pd.DataFrame,
    specimen_types: Sequence[str] = DEFAULT_SPECIMEN_TYPES,
) -> pd.DataFrame:
    """
    Count sequences by the number of distinct subjects they occur in.

    Returns
    -------
    pd.DataFrame
        Columns ``specimen_type``, ``n_subjects``, ``n_sequences``, sorted
        by specimen type then n_subjects.

    Examples
    --------
    >>> records = pd.DataFrame({
    ...     "seq_id": ["a", "a", "b"],
    ...     "subject_id": ["P1", "P2", "P1"],
    ...     "specimen_type": ["Sputum"] * 3,
    ...     "read_count": [4, 1, 9],
    ... })
    >>> subject_pileup(records)[["n_subjects", "n_sequences"]].values.tolist()
    [[1, 1], [2, 1]]
    """
    obs = _observed(records, specimen_types)
    per_seq = (
        obs.groupby(["specimen_type", "seq_id"])["subject_id"]
        .nunique()
        .rename("n_subjects")
        .reset_index()
    )
    pileup = (
        per_seq.groupby(["specimen_type", "n_subjects"])["seq_id"]
        .nunique()
        .rename("n_sequences")
        .reset_index()
    )
    pileup["n_subjects"] = pileup["n_subjects"].astype(int)
    return pileup.sort_values(["specimen_type", "n_subjects"]).reset_index(drop=True)


def earliest_detection_pileup(
    records: pd.DataFrame,
    specimen_types: Sequence[str] = DEFAULT_SPECIMEN_TYPES,
    cap: int = EARLIEST_DAY_CAP,
) -> pd.DataFrame:
    """
    Count sequences by the study day of their first observation.

    The earliest day is taken over every subject carrying the sequence in
    that specimen type, then clamped to ``cap``.

    Returns
    -------
    pd.DataFrame
        Columns ``specimen_type``, ``earliest_day``, ``n_sequences``.
    """
    obs = _observed(records, specimen_types)
    undated = obs["study_day"].isna()
    if undated.any():
        logger.warning(f"{int(undated.sum())} observations without a study day excluded from earliest detection")
    obs = obs[~undated]

    first = (
        obs.groupby(["specimen_type", "seq_id"])["study_day"]
        .min()
        .astype(int)
        .clip(upper=cap)
        .rename("earliest_day")
        .reset_index()
    )
    pileup = (
        first.groupby(["specimen_type", "earliest_day"])["seq_id"]
        .nunique()
        .rename("n_sequences")
        .reset_index()
    )
    return pileup.sort_values(["specimen_type", "earliest_day"]).reset_index(drop=True)
