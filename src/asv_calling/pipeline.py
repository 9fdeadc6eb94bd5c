"""
Run-level and study-level orchestration.

``process_run`` takes one sequencing run from raw FASTQ files to a
persisted abundance table. ``merge_runs`` combines the persisted run
tables, removes chimeras, assigns taxonomy and persists the results.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from .abundance import Registry, aggregate_run, load_abundance_table, merge_tables, save_abundance_table
from .backend import FORWARD, REVERSE, DenoiserBackend
from .config import PipelineConfig, RunConfig
from .denoise import STATUS_OK, SampleResult, denoise_run
from .filtering import FilterReport, filter_and_trim, loss_report
from .paths import Run, resolve_run
from .reference_backend import ReferenceDenoiser

logger = logging.getLogger(__name__)

MERGED_TABLE_NAME = "seqtab_nochim"
TAXONOMY_NAME = "taxonomy"


def run_table_name(run_id: str) -> str:
    return f"seqtab_{run_id}"


@dataclass(frozen=True)
class RunOutcome:
    run: Run
    filter_reports: List[FilterReport]
    results: List[SampleResult]
    table: pd.DataFrame
    registry: Registry

    def tracking(self) -> pd.DataFrame:
        """Reads surviving each stage, one row per sample."""
        filtered = {r.sample: r for r in self.filter_reports}
        rows = []
        for res in self.results:
            report = filtered.get(res.sample)
            rows.append({
                "sample_id": self.run.tagged(res.sample),
                "input": report.reads_in if report else 0,
                "filtered": report.reads_out if report else 0,
                "merged": res.contigs.n_merged,
                "status": res.status,
            })
        return pd.DataFrame(rows).set_index("sample_id")


def default_backend(cfg: PipelineConfig) -> DenoiserBackend:
    return ReferenceDenoiser(
        params=cfg.denoise,
        chimera_params=cfg.chimera,
        taxonomy_params=cfg.taxonomy,
    )


def resolve_configured_run(cfg: PipelineConfig, run_cfg: RunConfig) -> Run:
    return resolve_run(
        cfg.data_root,
        cfg.output_root,
        run_cfg.run_id,
        run_cfg.lane_id,
        tag=run_cfg.tag,
    )


def filter_run(
    cfg: PipelineConfig,
    run_cfg: RunConfig,
    reuse_existing: bool = False,
) -> List[FilterReport]:
    """Resolve and filter one run; writes the filter loss report."""
    run = resolve_configured_run(cfg, run_cfg)
    reports = filter_and_trim(
        run,
        cfg.filter_params_for(run_cfg),
        num_cores=cfg.num_cores,
        reuse_existing=reuse_existing,
    )
    _write_loss_report(run, reports, cfg.min_report_reads)
    return reports


def _write_loss_report(run: Run, reports: List[FilterReport], min_reads: int) -> None:
    report = loss_report(reports, min_reads=min_reads)
    run.output_dir.mkdir(parents=True, exist_ok=True)
    report.to_csv(run.output_dir / "filter_report.csv", index=False)
    if len(report) > 0:
        worst = report.iloc[0]
        logger.info(
            f"{run.run_id}: highest filtering loss {worst['fraction_lost']:.1%} "
            f"({worst['sample']})"
        )


def process_run(
    cfg: PipelineConfig,
    run_cfg: RunConfig,
    backend: Optional[DenoiserBackend] = None,
    reuse_filtered: bool = False,
) -> RunOutcome:
    """
    Resolve, filter, denoise and aggregate one run.

    Parameters
    ----------
    cfg : PipelineConfig
        Study configuration.
    run_cfg : RunConfig
        The run to process.
    backend : DenoiserBackend, optional
        Denoising implementation. Defaults to ReferenceDenoiser.
    reuse_filtered : bool, default False
        Reuse filtered FASTQ files left by an earlier attempt.

    Returns
    -------
    RunOutcome
        Filter reports, per-sample results and the persisted table.
    """
    backend = backend or default_backend(cfg)
    run = resolve_configured_run(cfg, run_cfg)
    logger.info(f"{run.run_id}: {len(run.samples)} samples, tag '{run.tag}'")

    reports = filter_and_trim(
        run,
        cfg.filter_params_for(run_cfg),
        num_cores=cfg.num_cores,
        reuse_existing=reuse_filtered,
    )
    _write_loss_report(run, reports, cfg.min_report_reads)

    with_reads = {r.sample for r in reports if r.reads_out > 0}
    usable = [p for p in run.samples if p.sample in with_reads]
    fwd_err = backend.learn_error_model([p.filtered_forward for p in usable], FORWARD)
    rev_err = backend.learn_error_model([p.filtered_reverse for p in usable], REVERSE)

    results: List[SampleResult] = []

    def _collect():
        for result in denoise_run(run, fwd_err, rev_err, backend):
            results.append(result)
            yield result

    table, registry = aggregate_run(run, _collect())
    save_abundance_table(
        table, registry, run.output_dir, run_table_name(run.run_id), format=cfg.table_format
    )

    outcome = RunOutcome(run=run, filter_reports=reports, results=results, table=table, registry=registry)
    outcome.tracking().to_csv(run.output_dir / "read_tracking.csv")

    failed = [r.sample for r in results if r.status != STATUS_OK]
    if failed:
        logger.warning(f"{run.run_id}: {len(failed)} samples with no contigs: {failed}")
    return outcome


def merge_runs(
    cfg: PipelineConfig,
    backend: Optional[DenoiserBackend] = None,
) -> Dict[str, pd.DataFrame]:
    """
    Merge the persisted run tables, remove chimeras and assign taxonomy.

    Returns
    -------
    dict
        ``{'table': chimera-free abundance table, 'taxonomy': taxonomy table}``;
        taxonomy is empty when no genus reference is configured.
    """
    backend = backend or default_backend(cfg)

    tables = []
    for run_cfg in cfg.runs:
        run_dir = Path(cfg.output_root) / run_cfg.run_id
        tables.append(load_abundance_table(run_dir, run_table_name(run_cfg.run_id)))

    merged, registry = merge_tables(tables)
    nochim = backend.remove_chimeras(merged, registry)
    registry = {sid: registry[sid] for sid in nochim.columns}

    out_dir = cfg.merged_dir
    save_abundance_table(nochim, registry, out_dir, MERGED_TABLE_NAME, format=cfg.table_format)

    taxonomy = pd.DataFrame()
    if cfg.genus_reference is not None:
        taxonomy = backend.assign_taxonomy(registry, cfg.genus_reference)
        taxonomy = backend.add_species(taxonomy, registry, cfg.species_reference)
        taxonomy.to_csv(out_dir / f"{TAXONOMY_NAME}.csv")
        logger.info(f"Taxonomy table saved to {out_dir / f'{TAXONOMY_NAME}.csv'}")
    else:
        logger.warning("No genus reference configured; skipping taxonomy assignment")

    return {"table": nochim, "taxonomy": taxonomy}
