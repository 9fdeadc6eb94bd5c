"""
ASV Calling - amplicon sequence variants from paired-end 16S rRNA runs.

This package takes each sequencing run from raw paired FASTQ files to a
per-run abundance table, then merges runs, removes chimeras and assigns
taxonomy.

Main Modules
------------
paths
    Resolve a run's paired FASTQ files and output locations.
filtering
    Quality filtering and trimming of read pairs.
denoise
    Per-sample denoise-and-merge driver over a DenoiserBackend.
reference_backend
    Built-in error-model denoiser, pair merger, chimera and taxonomy steps.
abundance
    Run aggregation, cross-run merging and table persistence.
pipeline
    Run-level and study-level orchestration.

Examples
--------
>>> from asv_calling import load_config, process_run, merge_runs
>>> cfg = load_config("mira.json")
>>> for run_cfg in cfg.runs:
...     process_run(cfg, run_cfg)
>>> merge_runs(cfg)
"""

__version__ = "0.1.0"

from .abundance import (
    aggregate_run,
    load_abundance_table,
    merge_tables,
    save_abundance_table,
    sequence_id,
)
from .backend import ContigSet, DenoiserBackend, DerepSet, ErrorModel, VariantCall
from .chimeras import ChimeraParams, bimera_table, is_bimera, remove_bimeras
from .config import PipelineConfig, RunConfig, config_from_dict, load_config
from .denoise import SampleResult, denoise_run, denoise_sample
from .errors import ConfigError, DenoiseError, MergeFailure, PairingError, PipelineError
from .filtering import ControlScreen, FilterParams, FilterReport, filter_and_trim, loss_report
from .paths import Run, SamplePair, resolve_run
from .pipeline import RunOutcome, filter_run, merge_runs, process_run
from .reference_backend import DenoiseParams, ReferenceDenoiser
from .sequencing_read import SequencingRead
from .taxonomy import KmerClassifier, TaxonomyParams

__all__ = [
    # abundance
    "aggregate_run",
    "load_abundance_table",
    "merge_tables",
    "save_abundance_table",
    "sequence_id",
    # backend
    "ContigSet",
    "DenoiserBackend",
    "DerepSet",
    "ErrorModel",
    "VariantCall",
    # chimeras
    "ChimeraParams",
    "bimera_table",
    "is_bimera",
    "remove_bimeras",
    # config
    "PipelineConfig",
    "RunConfig",
    "config_from_dict",
    "load_config",
    # denoise
    "SampleResult",
    "denoise_run",
    "denoise_sample",
    # errors
    "ConfigError",
    "DenoiseError",
    "MergeFailure",
    "PairingError",
    "PipelineError",
    # filtering
    "ControlScreen",
    "FilterParams",
    "FilterReport",
    "filter_and_trim",
    "loss_report",
    # paths
    "Run",
    "SamplePair",
    "resolve_run",
    # pipeline
    "RunOutcome",
    "filter_run",
    "merge_runs",
    "process_run",
    # reference backend
    "DenoiseParams",
    "ReferenceDenoiser",
    # reads
    "SequencingRead",
    # taxonomy
    "KmerClassifier",
    "TaxonomyParams",
]
