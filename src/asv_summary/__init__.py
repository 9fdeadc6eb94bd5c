"""
asv-summary: study-level summaries of merged ASV abundance tables.

This package joins the merged abundance table to per-sample metadata
(run mapping files and the specimen-tracking extract) and draws
per-subject sequence pileup figures.

Modules
-------
io
    Loading mapping files, the specimen extract and the taxonomy table.
metadata_setup
    Specimen-id normalisation, run metadata joins and study days.
preprocess
    Wide-to-long reshaping and metadata / taxonomy joins.
pileups
    Subject and earliest-detection pileup tables.
plots
    Faceted pileup bar charts.
summary
    End-to-end summary for a configured study.

Example
-------
>>> import asv_summary as su
>>> meta = su.load_study_metadata({"MIRA1": ("M1", "MIRA1_map.txt")}, "extract.xlsx")
>>> records = su.join_metadata(su.abundance_to_long(table, drop_zero=True), meta)
>>> su.make_summary_figures(records, "figures/")
"""

__version__ = "0.1.0"

# io
from .io import (
    load_mapping_file,
    load_specimen_extract,
    load_taxonomy,
    normalize_specimen_id,
)

# metadata setup
from .metadata_setup import (
    MetadataSpec,
    add_study_day,
    build_run_metadata,
    combine_run_metadata,
    load_study_metadata,
)

# pileups
from .pileups import (
    earliest_detection_pileup,
    subject_pileup,
)

# plots
from .plots import (
    FigureSpec,
    earliest_detection_plots,
    make_summary_figures,
    pileup_barplot,
    subject_pileup_plots,
)

# preprocess
from .preprocess import (
    abundance_to_long,
    attach_taxonomy,
    join_metadata,
    unmatched_samples,
)

__all__ = [
    # io
    "load_mapping_file",
    "load_specimen_extract",
    "load_taxonomy",
    "normalize_specimen_id",
    # metadata setup
    "MetadataSpec",
    "add_study_day",
    "build_run_metadata",
    "combine_run_metadata",
    "load_study_metadata",
    # pileups
    "earliest_detection_pileup",
    "subject_pileup",
    # plots
    "FigureSpec",
    "earliest_detection_plots",
    "make_summary_figures",
    "pileup_barplot",
    "subject_pileup_plots",
    # preprocess
    "abundance_to_long",
    "attach_taxonomy",
    "join_metadata",
    "unmatched_samples",
]
