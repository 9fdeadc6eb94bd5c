# asv_summary/metadata_setup.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

import pandas as pd

from .io import load_mapping_file, load_specimen_extract, normalize_specimen_id

logger = logging.getLogger(__name__)

METADATA_COLUMNS = [
    "subject_id",
    "specimen_id",
    "specimen_type",
    "original_specimen_type",
    "collection_date",
    "flowcell_id",
    "run_id",
]


@dataclass(frozen=True)
class MetadataSpec:
    # mapping file columns
    mapping_sample_col: str = "#SampleID"
    mapping_specimen_col: Optional[str] = None  # None: the sample id is the specimen id
    mapping_type_col: str = "SpecimenType"
    mapping_flowcell_col: str = "FlowCell"
    # specimen extract columns
    extract_subject_col: str = "SubjectID"
    extract_specimen_col: str = "SpecimenID"
    extract_date_col: str = "CollectionDate"
    extract_type_col: str = "SpecimenType"


def build_run_metadata(
        mapping: pd.DataFrame,
        extract: pd.DataFrame,
        run_id: str,
        tag: str,
        spec: MetadataSpec = MetadataSpec(),
) -> pd.DataFrame:
    """
    Left join of one run's mapping file onto the specimen extract.

    Both sides are keyed on the normalised specimen identifier. Every
    mapping row is kept; rows without an extract match carry null subject
    and date fields.

    Returns a DataFrame indexed by run-tagged sample_id with
    METADATA_COLUMNS.
    """
    needed_m = [spec.mapping_sample_col, spec.mapping_type_col, spec.mapping_flowcell_col]
    if spec.mapping_specimen_col is not None:
        needed_m.append(spec.mapping_specimen_col)
    needed_e = [
        spec.extract_subject_col,
        spec.extract_specimen_col,
        spec.extract_date_col,
        spec.extract_type_col,
    ]
    missing_m = sorted(set(needed_m) - set(mapping.columns))
    missing_e = sorted(set(needed_e) - set(extract.columns))
    if missing_m:
        raise ValueError(f"{run_id} mapping file missing columns: {missing_m}")
    if missing_e:
        raise ValueError(f"Specimen extract missing columns: {missing_e}")

    specimen_col = spec.mapping_specimen_col or spec.mapping_sample_col
    m = pd.DataFrame({
        "sample": mapping[spec.mapping_sample_col].astype(str),
        "specimen_id": mapping[specimen_col],
        "specimen_type": mapping[spec.mapping_type_col],
        "flowcell_id": mapping[spec.mapping_flowcell_col],
    })
    m["_key"] = m["specimen_id"].map(normalize_specimen_id)

    e = pd.DataFrame({
        "subject_id": extract[spec.extract_subject_col],
        "collection_date": extract[spec.extract_date_col],
        "original_specimen_type": extract[spec.extract_type_col],
    })
    e["_key"] = extract[spec.extract_specimen_col].map(normalize_specimen_id)
    e = e[e["_key"].notna()]
    dups = e["_key"].duplicated(keep="first")
    if dups.any():
        logger.warning(
            f"Specimen extract: {int(dups.sum())} duplicate specimen ids, keeping first"
        )
        e = e[~dups]

    merged = m.merge(e, on="_key", how="left")
    merged["run_id"] = run_id
    merged["sample_id"] = merged["sample"] + f"_{tag}"

    n_unmatched = int(merged["subject_id"].isna().sum())
    if n_unmatched:
        logger.warning(f"{run_id}: {n_unmatched} of {len(merged)} samples have no specimen extract match")

    out = merged.set_index("sample_id")[METADATA_COLUMNS]
    return out


def add_study_day(meta: pd.DataFrame) -> pd.DataFrame:
    """
    Add ``study_day``: days since the subject's earliest collection date.

    Rows without a subject or date get a null study_day.

    Examples
    --------
    >>> meta = pd.DataFrame({
    ...     "subject_id": ["S1", "S1", "S1"],
    ...     "collection_date": pd.to_datetime(["2020-01-01", "2020-01-06", "2020-01-13"]),
    ... })
    >>> add_study_day(meta)["study_day"].tolist()
    [0, 5, 12]
    """
    meta = meta.copy()
    dates = pd.to_datetime(meta["collection_date"], errors="coerce")
    first = dates.groupby(meta["subject_id"]).transform("min")
    meta["study_day"] = (dates - first).dt.days.astype("Int64")
    return meta


def combine_run_metadata(run_metas: Iterable[pd.DataFrame]) -> pd.DataFrame:
    """Stack per-run metadata and compute study_day across all runs."""
    meta = pd.concat(list(run_metas), axis=0)
    if meta.index.duplicated().any():
        dup = sorted(set(meta.index[meta.index.duplicated()]))
        raise ValueError(f"Sample ids present in more than one run's metadata: {dup}")
    return add_study_day(meta)


def load_study_metadata(
        mapping_files: dict[str, tuple[str, str | Path]],
        extract_fn: str | Path,
        spec: MetadataSpec = MetadataSpec(),
        sheet_name: str | int = 0,
        fixed_width_runs: Iterable[str] = (),
) -> pd.DataFrame:
    """
    Load and join metadata for every run of a study.

    Parameters
    ----------
    mapping_files : dict
        run_id -> (tag, mapping file path).
    extract_fn : str or Path
        Specimen-tracking extract shared by all runs.
    fixed_width_runs : iterable of str
        Runs whose mapping files are space-aligned rather than tab-separated.
    """
    extract = load_specimen_extract(extract_fn, sheet_name=sheet_name, date_col=spec.extract_date_col)
    fixed_width_runs = set(fixed_width_runs)
    run_metas = []
    for run_id, (tag, mapping_fn) in mapping_files.items():
        mapping = load_mapping_file(
            Path(mapping_fn),
            sample_col=spec.mapping_sample_col,
            fixed_width=run_id in fixed_width_runs,
        )
        run_metas.append(build_run_metadata(mapping, extract, run_id, tag, spec=spec))
    return combine_run_metadata(run_metas)
