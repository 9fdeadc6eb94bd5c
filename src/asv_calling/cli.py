"""Command-line interface: ``mira-16s <step> -c study.json``."""

import argparse
import logging
from typing import List

from .config import PipelineConfig, RunConfig, load_config
from .pipeline import filter_run, merge_runs, process_run

logger = logging.getLogger(__name__)


def _selected_runs(cfg: PipelineConfig, run_ids: List[str]) -> List[RunConfig]:
    if not run_ids:
        return list(cfg.runs)
    return [cfg.run(run_id) for run_id in run_ids]


def _filter(cfg: PipelineConfig, args) -> None:
    for run_cfg in _selected_runs(cfg, args.run):
        filter_run(cfg, run_cfg, reuse_existing=args.reuse_filtered)


def _denoise(cfg: PipelineConfig, args) -> None:
    for run_cfg in _selected_runs(cfg, args.run):
        outcome = process_run(cfg, run_cfg, reuse_filtered=args.reuse_filtered)
        n_ok = sum(r.ok for r in outcome.results)
        logger.info(f"{run_cfg.run_id}: {n_ok}/{len(outcome.results)} samples produced contigs")


def _merge(cfg: PipelineConfig, args) -> None:
    merged = merge_runs(cfg)
    logger.info(
        f"Merged table: {merged['table'].shape[0]} samples x {merged['table'].shape[1]} sequences"
    )


def _summarize(cfg: PipelineConfig, args) -> None:
    from asv_summary.summary import summarize_study

    summarize_study(cfg)


def _all(cfg: PipelineConfig, args) -> None:
    _denoise(cfg, args)
    _merge(cfg, args)
    if cfg.specimen_extract is not None:
        _summarize(cfg, args)
    else:
        logger.warning("No specimen_extract configured; skipping summary")


_COMMANDS = {
    'filter': (_filter, 'Filter and trim raw read pairs'),
    'denoise': (_denoise, 'Filter, denoise and build per-run abundance tables'),
    'merge': (_merge, 'Merge run tables, remove chimeras, assign taxonomy'),
    'summarize': (_summarize, 'Join metadata and draw pileup figures'),
    'all': (_all, 'Run every step in order'),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='mira-16s',
        description='Amplicon sequence variant calling for 16S rRNA runs',
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    for name, (_, help_text) in _COMMANDS.items():
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument(
            '-c', '--config',
            required=True,
            help='Path to the study JSON configuration',
        )
        sub.add_argument(
            '-d', '--debug',
            action='store_true',
            help='Enable debug logging',
        )
        if name in ('filter', 'denoise', 'all'):
            sub.add_argument(
                '--run',
                action='append',
                default=[],
                help='Run id to process (repeatable; default: all runs)',
            )
            sub.add_argument(
                '--reuse_filtered',
                action='store_true',
                help='Reuse filtered FASTQ files from an earlier attempt',
            )
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    cfg = load_config(args.config)
    handler, _ = _COMMANDS[args.command]
    handler(cfg, args)
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
