from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional

import pandas as pd

logger = logging.getLogger(__name__)

_EXCEL_SUFFIXES = (".xlsx", ".xlsm", ".xls")


def normalize_specimen_id(value: object) -> Optional[str]:
    """
    Canonical form of a specimen identifier for joining.

    Delimiters (whitespace, '-', '.', '_') collapse to a single '_' and
    letters are upper-cased, so 'mira-001.os' and 'MIRA_001_OS' match.
    """
    if value is None or pd.isna(value):
        return None
    s = re.sub(r"[\s\-\._]+", "_", str(value).strip())
    return s.strip("_").upper() or None


def _norm_col(c: object) -> str:
    # strip whitespace; preserve internal chars
    return str(c).strip()


def _norm_cols(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df.columns = [_norm_col(c) for c in df.columns]
    return df


def _require(df: pd.DataFrame, cols: list[str], source: str | Path) -> None:
    missing = [c for c in cols if c not in df.columns]
    if missing:
        raise ValueError(f"{source} missing required columns: {missing}")


def load_mapping_file(
    mapping_fn: str | Path,
    sample_col: str = "#SampleID",
    fixed_width: bool = False,
) -> pd.DataFrame:
    """
    Reads a per-run sample mapping file.

    Tab-separated by default (QIIME-style mapping with a '#SampleID'
    header); ``fixed_width=True`` reads space-aligned columns instead.
    Every column is read as text.
    """
    mapping_fn = Path(mapping_fn)
    if fixed_width:
        df = pd.read_fwf(mapping_fn, dtype=str)
    else:
        df = pd.read_csv(mapping_fn, sep="\t", dtype=str, comment=None)
    df = _norm_cols(df)

    _require(df, [sample_col], mapping_fn)
    df[sample_col] = df[sample_col].str.strip()
    # QIIME mapping files may carry '#' comment rows after the header
    df = df[~df[sample_col].str.startswith("#", na=True)].reset_index(drop=True)

    logger.info(f"Mapping file {mapping_fn.name}: {len(df)} samples")
    return df


def load_specimen_extract(
    extract_fn: str | Path,
    sheet_name: str | int = 0,
    date_col: str = "CollectionDate",
) -> pd.DataFrame:
    """
    Reads the specimen-tracking extract (Excel workbook or CSV).

    The collection date column is parsed to datetimes; unparseable
    values become NaT.
    """
    extract_fn = Path(extract_fn)
    if extract_fn.suffix.lower() in _EXCEL_SUFFIXES:
        df = pd.read_excel(extract_fn, sheet_name=sheet_name, dtype=str, engine="openpyxl")
    else:
        df = pd.read_csv(extract_fn, dtype=str)
    df = _norm_cols(df)

    _require(df, [date_col], extract_fn)
    df[date_col] = pd.to_datetime(df[date_col], errors="coerce")

    n_bad = int(df[date_col].isna().sum())
    if n_bad:
        logger.warning(f"{extract_fn.name}: {n_bad} rows without a valid collection date")
    return df


def load_taxonomy(taxonomy_csv: str | Path) -> pd.DataFrame:
    """Reads the taxonomy table written by the merge step, indexed by seq_id."""
    taxonomy_csv = Path(taxonomy_csv)
    tax = pd.read_csv(taxonomy_csv, dtype=str)
    tax = _norm_cols(tax)
    _require(tax, ["seq_id"], taxonomy_csv)
    return tax.set_index("seq_id")
