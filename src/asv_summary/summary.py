"""Study-level summary: merged table + metadata -> records and figures."""
from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd

from asv_calling.abundance import load_abundance_table
from asv_calling.config import PipelineConfig
from asv_calling.errors import ConfigError
from asv_calling.pipeline import MERGED_TABLE_NAME, TAXONOMY_NAME

from .io import load_taxonomy
from .metadata_setup import MetadataSpec, load_study_metadata
from .plots import FigureSpec, make_summary_figures
from .preprocess import abundance_to_long, attach_taxonomy, join_metadata, unmatched_samples

logger = logging.getLogger(__name__)

RECORDS_NAME = "sequence_records.csv"


def figures_dir_for(cfg: PipelineConfig) -> Path:
    return cfg.figures_dir if cfg.figures_dir is not None else cfg.output_root / "figures"


def summarize_study(
    cfg: PipelineConfig,
    spec: MetadataSpec = MetadataSpec(),
    figure_spec: FigureSpec = FigureSpec(),
) -> pd.DataFrame:
    """
    Join the merged abundance table to study metadata and draw the
    pileup figures.

    Writes the long-format records (non-zero counts only) and the four
    figures to the figures directory.

    Returns
    -------
    pd.DataFrame
        The joined long-format records.
    """
    if cfg.specimen_extract is None:
        raise ConfigError("summarize needs 'specimen_extract' in the configuration")
    no_mapping = [r.run_id for r in cfg.runs if r.mapping_file is None]
    if no_mapping:
        raise ConfigError(f"Runs without a 'mapping_file': {no_mapping}")

    table, _ = load_abundance_table(cfg.merged_dir, MERGED_TABLE_NAME)
    meta = load_study_metadata(
        {r.run_id: (r.tag or r.run_id, r.mapping_file) for r in cfg.runs},
        cfg.specimen_extract,
        spec=spec,
        fixed_width_runs=[r.run_id for r in cfg.runs if r.mapping_format == "fixed"],
    )

    missing = unmatched_samples(table, meta)
    if missing:
        logger.warning(f"{len(missing)} abundance-table samples have no metadata match")

    records = join_metadata(abundance_to_long(table, drop_zero=True), meta)
    taxonomy_csv = cfg.merged_dir / f"{TAXONOMY_NAME}.csv"
    if taxonomy_csv.exists():
        records = attach_taxonomy(records, load_taxonomy(taxonomy_csv))

    out_dir = figures_dir_for(cfg)
    out_dir.mkdir(parents=True, exist_ok=True)
    records.to_csv(out_dir / RECORDS_NAME, index=False)

    specimen_types = list(cfg.specimen_types) if cfg.specimen_types else None
    if specimen_types:
        make_summary_figures(records, out_dir, specimen_types, spec=figure_spec)
    else:
        make_summary_figures(records, out_dir, spec=figure_spec)
    logger.info(f"Summary written to {out_dir}")
    return records
