"""
Pipeline configuration.

A study is described by one JSON file listing its runs, data and output
roots, reference databases and metadata files, plus optional overrides
of the filtering, denoising, chimera and taxonomy parameters.

Example
-------
>>> cfg = load_config("mira.json")
>>> [r.run_id for r in cfg.runs]
['MIRA1', 'MIRA2', 'MIRA3']
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields, replace
from os import PathLike
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from .chimeras import ChimeraParams
from .constants import DEFAULT_MIN_REPORT_READS, MIRA_RUNS
from .errors import ConfigError
from .filtering import FilterParams
from .reference_backend import DenoiseParams
from .taxonomy import TaxonomyParams

logger = logging.getLogger(__name__)

MAPPING_FORMATS = ("tsv", "fixed")


@dataclass(frozen=True)
class RunConfig:
    run_id: str
    lane_id: str
    tag: Optional[str] = None
    trunc_len: Optional[Tuple[int, int]] = None
    mapping_file: Optional[Path] = None
    mapping_format: str = "tsv"


@dataclass(frozen=True)
class PipelineConfig:
    data_root: Path
    output_root: Path
    runs: Tuple[RunConfig, ...]
    genus_reference: Optional[Path] = None
    species_reference: Optional[Path] = None
    specimen_extract: Optional[Path] = None
    figures_dir: Optional[Path] = None
    specimen_types: Tuple[str, ...] = ()
    num_cores: Optional[int] = None
    min_report_reads: int = DEFAULT_MIN_REPORT_READS
    table_format: str = "csv"
    filter: FilterParams = field(default_factory=FilterParams)
    denoise: DenoiseParams = field(default_factory=DenoiseParams)
    chimera: ChimeraParams = field(default_factory=ChimeraParams)
    taxonomy: TaxonomyParams = field(default_factory=TaxonomyParams)

    @property
    def merged_dir(self) -> Path:
        return self.output_root / "merged"

    def run(self, run_id: str) -> RunConfig:
        for r in self.runs:
            if r.run_id == run_id:
                return r
        raise ConfigError(f"Run '{run_id}' not in configuration")

    def filter_params_for(self, run: RunConfig) -> FilterParams:
        if run.trunc_len is None:
            return self.filter
        return replace(self.filter, trunc_len=run.trunc_len)


_PATH_KEYS = ("genus_reference", "species_reference", "specimen_extract", "figures_dir")
_PARAM_SECTIONS = {
    "filter": FilterParams,
    "denoise": DenoiseParams,
    "chimera": ChimeraParams,
    "taxonomy": TaxonomyParams,
}


def _check_keys(section: str, given: Dict[str, Any], allowed: List[str], required: Tuple[str, ...] = ()) -> None:
    unknown = sorted(set(given) - set(allowed))
    if unknown:
        raise ConfigError(f"Unknown keys in '{section}': {unknown}")
    missing = [k for k in required if k not in given]
    if missing:
        raise ConfigError(f"Missing required keys in '{section}': {missing}")


def _params(section: str, cls, values: Dict[str, Any]):
    if not isinstance(values, dict):
        raise ConfigError(f"'{section}' must be an object")
    _check_keys(section, values, [f.name for f in fields(cls)])
    # JSON has no tuples
    values = {k: tuple(v) if isinstance(v, list) else v for k, v in values.items()}
    return cls(**values)


def _resolve(base: Path, value: Optional[str]) -> Optional[Path]:
    if value is None:
        return None
    path = Path(value)
    return path if path.is_absolute() else base / path


def config_from_dict(raw: Dict[str, Any], base_dir: Union[PathLike, str] = ".") -> PipelineConfig:
    """Build a PipelineConfig from parsed JSON; relative paths resolve against base_dir."""
    base = Path(base_dir)
    allowed = [f.name for f in fields(PipelineConfig)]
    _check_keys("config", raw, allowed, required=("data_root", "output_root", "runs"))

    if not raw["runs"]:
        raise ConfigError("'runs' must list at least one run")

    runs = []
    for i, r in enumerate(raw["runs"]):
        _check_keys(f"runs[{i}]", r, [f.name for f in fields(RunConfig)], required=("run_id", "lane_id"))
        runs.append(
            RunConfig(
                run_id=r["run_id"],
                lane_id=r["lane_id"],
                tag=r.get("tag") or MIRA_RUNS.get(r["run_id"]),
                trunc_len=tuple(r["trunc_len"]) if r.get("trunc_len") else None,
                mapping_file=_resolve(base, r.get("mapping_file")),
                mapping_format=r.get("mapping_format", "tsv"),
            )
        )

    bad_formats = [r.run_id for r in runs if r.mapping_format not in MAPPING_FORMATS]
    if bad_formats:
        raise ConfigError(f"mapping_format must be one of {MAPPING_FORMATS}; bad runs: {bad_formats}")

    tags = [r.tag or r.run_id for r in runs]
    if len(set(tags)) != len(tags):
        raise ConfigError(f"Run tags must be unique: {tags}")

    kwargs: Dict[str, Any] = {
        "data_root": _resolve(base, raw["data_root"]),
        "output_root": _resolve(base, raw["output_root"]),
        "runs": tuple(runs),
    }
    for key in _PATH_KEYS:
        if key in raw:
            kwargs[key] = _resolve(base, raw[key])
    for key, cls in _PARAM_SECTIONS.items():
        if key in raw:
            kwargs[key] = _params(key, cls, raw[key])
    if "filter" in kwargs and kwargs["filter"].control_fasta:
        control = _resolve(base, kwargs["filter"].control_fasta)
        kwargs["filter"] = replace(kwargs["filter"], control_fasta=str(control))
    if "specimen_types" in raw:
        kwargs["specimen_types"] = tuple(raw["specimen_types"])
    for key in ("num_cores", "min_report_reads", "table_format"):
        if key in raw:
            kwargs[key] = raw[key]

    if kwargs.get("table_format", "csv") not in ("csv", "excel"):
        raise ConfigError(f"table_format must be 'csv' or 'excel', got {kwargs['table_format']!r}")

    return PipelineConfig(**kwargs)


def load_config(config_fn: Union[PathLike, str]) -> PipelineConfig:
    """Load a PipelineConfig from a JSON file."""
    config_fn = Path(config_fn)
    if not config_fn.exists():
        raise FileNotFoundError(f"Config file not found: {config_fn}")
    with open(config_fn, "r") as config_file:
        try:
            raw = json.load(config_file)
        except json.JSONDecodeError as e:
            raise ConfigError(f"{config_fn} is not valid JSON: {e}") from e

    cfg = config_from_dict(raw, base_dir=config_fn.parent)
    logger.info(f"Loaded configuration for {len(cfg.runs)} runs from {config_fn}")
    return cfg
