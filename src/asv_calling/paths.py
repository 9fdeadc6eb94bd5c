"""
Path resolution for paired-end sequencing runs.

Locates forward/reverse FASTQ files for one run and lane, pairs them by
sample name, and lays out the run's output directories.
"""

import logging
from dataclasses import dataclass
from os import PathLike
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from .constants import (
    FILTERED_DIRNAME,
    FILTERED_FORWARD_SUFFIX,
    FILTERED_REVERSE_SUFFIX,
    FORWARD_SUFFIX,
    REVERSE_SUFFIX,
)
from .errors import PairingError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SamplePair:
    """One sequencing sample: its raw and filtered forward/reverse files."""

    sample: str
    forward: Path
    reverse: Path
    filtered_forward: Path
    filtered_reverse: Path

    def filtered_exists(self) -> bool:
        return self.filtered_forward.exists() and self.filtered_reverse.exists()


@dataclass(frozen=True)
class Run:
    """
    One sequencing run (a single lane) and its paired samples.

    Attributes
    ----------
    run_id : str
        Run identifier (e.g. 'MIRA1').
    lane_id : str
        Lane identifier within the run.
    tag : str
        Suffix appended to sample names so that identical names reused
        across runs stay distinct.
    input_dir : Path
        Directory holding the raw FASTQ files.
    output_dir : Path
        Directory for run-level outputs.
    filtered_dir : Path
        Directory for filtered FASTQ files.
    samples : tuple of SamplePair
        Paired samples ordered by sample name.
    """

    run_id: str
    lane_id: str
    tag: str
    input_dir: Path
    output_dir: Path
    filtered_dir: Path
    samples: Tuple[SamplePair, ...]

    @property
    def sample_names(self) -> Tuple[str, ...]:
        return tuple(p.sample for p in self.samples)

    def get(self, sample: str) -> SamplePair:
        for pair in self.samples:
            if pair.sample == sample:
                return pair
        raise KeyError(f"Sample '{sample}' not in run {self.run_id}")

    def tagged(self, sample: str) -> str:
        """Return the run-tagged sample id used as the abundance-table row key."""
        return f"{sample}_{self.tag}"


def _strip_suffix(path: Path, suffix: str) -> str:
    return path.name[: -len(suffix)]


def _index_by_sample(directory: Path, suffix: str) -> Dict[str, Path]:
    return {
        _strip_suffix(f, suffix): f
        for f in sorted(directory.glob(f"*{suffix}"))
    }


def resolve_run(
    data_root: Union[PathLike, str],
    output_root: Union[PathLike, str],
    run_id: str,
    lane_id: str,
    tag: Optional[str] = None,
) -> Run:
    """
    Discover and pair the FASTQ files of one run.

    Parameters
    ----------
    data_root : PathLike or str
        Root data directory; files are read from ``data_root/run_id/lane_id``.
    output_root : PathLike or str
        Root output directory; outputs go to ``output_root/run_id``.
    run_id : str
        Run identifier.
    lane_id : str
        Lane identifier.
    tag : str, optional
        Sample-id suffix for this run. Defaults to ``run_id``.

    Returns
    -------
    Run
        Resolved run with samples paired by name.

    Raises
    ------
    FileNotFoundError
        If the input directory does not exist.
    PairingError
        If a forward file has no reverse file of the same sample name,
        or no pair is found.
    """
    input_dir = Path(data_root) / run_id / lane_id
    if not input_dir.exists():
        raise FileNotFoundError(f"FASTQ path does not exist: {input_dir}")

    forward = _index_by_sample(input_dir, FORWARD_SUFFIX)
    reverse = _index_by_sample(input_dir, REVERSE_SUFFIX)
    logger.info(
        f"{run_id}/{lane_id}: found {len(forward)} forward and "
        f"{len(reverse)} reverse FASTQ files"
    )

    # Every forward file needs its reverse mate; reverse-only stems are dropped
    orphan_forward = sorted(set(forward) - set(reverse))
    if orphan_forward:
        raise PairingError(
            f"{run_id}/{lane_id}: {len(forward)} forward files but "
            f"{len(reverse)} reverse files in {input_dir}; "
            f"no reverse file for {orphan_forward}"
        )

    orphan_reverse = sorted(set(reverse) - set(forward))
    if orphan_reverse:
        logger.warning(
            f"{run_id}/{lane_id}: reverse files without forward mate ignored: "
            f"{orphan_reverse}"
        )

    output_dir = Path(output_root) / run_id
    filtered_dir = output_dir / FILTERED_DIRNAME

    samples = tuple(
        SamplePair(
            sample=name,
            forward=forward[name],
            reverse=reverse[name],
            filtered_forward=filtered_dir / f"{name}{FILTERED_FORWARD_SUFFIX}",
            filtered_reverse=filtered_dir / f"{name}{FILTERED_REVERSE_SUFFIX}",
        )
        for name in sorted(forward)
    )
    if not samples:
        raise PairingError(f"{run_id}/{lane_id}: no paired FASTQ files in {input_dir}")

    return Run(
        run_id=run_id,
        lane_id=lane_id,
        tag=tag or run_id,
        input_dir=input_dir,
        output_dir=output_dir,
        filtered_dir=filtered_dir,
        samples=samples,
    )
