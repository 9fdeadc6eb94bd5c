"""
Summary figures for sequence pileups.

Each figure is a row of bar charts, one panel per specimen type, sharing
a fixed y range so figures from different studies or re-runs can be
compared side by side.

Functions
---------
pileup_barplot
    Faceted bar chart of a pileup table.
subject_pileup_plots
    Subject pileup figures (all subjects, and above the subject cutoff).
earliest_detection_plots
    Earliest-detection figures (all days, and after day 0).
make_summary_figures
    Compute pileups from records and write all four figures.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

from .pileups import (
    DEFAULT_SPECIMEN_TYPES,
    EARLIEST_DAY_CAP,
    SUBJECT_CUTOFF,
    earliest_detection_pileup,
    subject_pileup,
)

logger = logging.getLogger(__name__)

SUBJECT_PILEUP_ALL = "subject_pileup_all.png"
SUBJECT_PILEUP_OVER = "subject_pileup_over10.png"
EARLIEST_ALL = "earliest_detection_all.png"
EARLIEST_AFTER_DAY0 = "earliest_detection_after_day0.png"


@dataclass(frozen=True)
class FigureSpec:
    """Fixed figure geometry and axis ranges."""
    figsize: tuple[float, float] = (12.0, 4.0)
    dpi: int = 150
    subject_ylim: tuple[float, float] = (0, 3000)
    subject_over_ylim: tuple[float, float] = (0, 60)
    earliest_ylim: tuple[float, float] = (0, 3000)
    earliest_after_day0_ylim: tuple[float, float] = (0, 300)
    color: str = "#3182bd"


def pileup_barplot(
    pileup: pd.DataFrame,
    x_col: str,
    specimen_types: Sequence[str],
    ylim: tuple[float, float],
    *,
    xlabel: str,
    ylabel: str = "Sequences",
    title: Optional[str] = None,
    cap: Optional[int] = None,
    spec: FigureSpec = FigureSpec(),
    outpath: Optional[str | Path] = None,
):
    """Faceted bar chart of ``n_sequences`` against ``x_col``.

    Parameters
    ----------
    pileup : pd.DataFrame
        Columns ``specimen_type``, ``x_col`` and ``n_sequences``.
    specimen_types : sequence of str
        Panels, left to right. Types without data get an empty panel.
    ylim : tuple of float
        Shared y range.
    cap : int, optional
        If given, the x range is fixed to 0..cap and the tick at ``cap``
        is labelled ``'<cap>+'``.
    outpath : str or Path, optional
        If provided, the figure is saved there.

    Returns
    -------
    fig, axes
    """
    fig, axes = plt.subplots(
        1, len(specimen_types), figsize=spec.figsize, sharey=True, squeeze=False
    )
    axes = axes[0]

    for ax, stype in zip(axes, specimen_types):
        sub = pileup[pileup["specimen_type"] == stype]
        ax.bar(sub[x_col].to_numpy(), sub["n_sequences"].to_numpy(), width=0.9, color=spec.color)
        ax.set_title(stype)
        ax.set_xlabel(xlabel)
        ax.set_ylim(*ylim)
        if cap is not None:
            ticks = list(range(0, cap, 50)) + [cap]
            ax.set_xlim(-2, cap + 2)
            ax.set_xticks(ticks)
            ax.set_xticklabels([str(t) for t in ticks[:-1]] + [f"{cap}+"])
        sns.despine(ax=ax)

    axes[0].set_ylabel(ylabel)
    if title:
        fig.suptitle(title)
    fig.tight_layout()

    if outpath is not None:
        outpath = Path(outpath)
        outpath.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(outpath, dpi=spec.dpi, bbox_inches="tight")
        logger.info(f"Saved {outpath}")

    return fig, axes


def subject_pileup_plots(
    pileup: pd.DataFrame,
    out_dir: str | Path,
    specimen_types: Sequence[str] = DEFAULT_SPECIMEN_TYPES,
    cutoff: int = SUBJECT_CUTOFF,
    spec: FigureSpec = FigureSpec(),
) -> list[Path]:
    out_dir = Path(out_dir)
    paths = [out_dir / SUBJECT_PILEUP_ALL, out_dir / SUBJECT_PILEUP_OVER]

    fig, _ = pileup_barplot(
        pileup, "n_subjects", specimen_types, spec.subject_ylim,
        xlabel="Subjects", title="Sequences by number of subjects",
        spec=spec, outpath=paths[0],
    )
    plt.close(fig)

    over = pileup[pileup["n_subjects"] > cutoff]
    fig, _ = pileup_barplot(
        over, "n_subjects", specimen_types, spec.subject_over_ylim,
        xlabel="Subjects", title=f"Sequences found in more than {cutoff} subjects",
        spec=spec, outpath=paths[1],
    )
    plt.close(fig)
    return paths


def earliest_detection_plots(
    pileup: pd.DataFrame,
    out_dir: str | Path,
    specimen_types: Sequence[str] = DEFAULT_SPECIMEN_TYPES,
    cap: int = EARLIEST_DAY_CAP,
    spec: FigureSpec = FigureSpec(),
) -> list[Path]:
    out_dir = Path(out_dir)
    paths = [out_dir / EARLIEST_ALL, out_dir / EARLIEST_AFTER_DAY0]

    fig, _ = pileup_barplot(
        pileup, "earliest_day", specimen_types, spec.earliest_ylim,
        xlabel="Study day of first detection", title="Sequences by earliest detection",
        cap=cap, spec=spec, outpath=paths[0],
    )
    plt.close(fig)

    later = pileup[pileup["earliest_day"] > 0]
    fig, _ = pileup_barplot(
        later, "earliest_day", specimen_types, spec.earliest_after_day0_ylim,
        xlabel="Study day of first detection", title="Sequences first detected after day 0",
        cap=cap, spec=spec, outpath=paths[1],
    )
    plt.close(fig)
    return paths


def make_summary_figures(
    records: pd.DataFrame,
    out_dir: str | Path,
    specimen_types: Sequence[str] = DEFAULT_SPECIMEN_TYPES,
    spec: FigureSpec = FigureSpec(),
) -> dict[str, Path]:
    """Compute both pileups from joined records and write the four figures."""
    specimen_types = list(specimen_types) or list(DEFAULT_SPECIMEN_TYPES)
    subjects = subject_pileup(records, specimen_types)
    earliest = earliest_detection_pileup(records, specimen_types)

    paths = subject_pileup_plots(subjects, out_dir, specimen_types, spec=spec)
    paths += earliest_detection_plots(earliest, out_dir, specimen_types, spec=spec)
    return {p.name: p for p in paths}
