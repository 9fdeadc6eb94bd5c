import matplotlib.pyplot as plt
import pandas as pd

from asv_summary.plots import FigureSpec, make_summary_figures, pileup_barplot


def _records():
    return pd.DataFrame({
        "seq_id": ["a", "a", "b", "c", "c"],
        "subject_id": ["P1", "P2", "P1", "P3", "P3"],
        "specimen_type": ["Oral swab", "Oral swab", "Sputum", "Sputum", "Sputum"],
        "read_count": [5, 2, 8, 1, 4],
        "study_day": pd.array([0, 3, 0, 220, 240], dtype="Int64"),
    })


def test_make_summary_figures(tmp_path):
    paths = make_summary_figures(_records(), tmp_path, ["Oral swab", "Sputum", "Stool swab"])

    assert sorted(paths) == sorted([
        "subject_pileup_all.png",
        "subject_pileup_over10.png",
        "earliest_detection_all.png",
        "earliest_detection_after_day0.png",
    ])
    for path in paths.values():
        assert path.exists()
        assert path.stat().st_size > 0


def test_fixed_axes():
    spec = FigureSpec(figsize=(9.0, 3.0))
    pileup = pd.DataFrame({
        "specimen_type": ["Oral swab", "Sputum"],
        "earliest_day": [0, 200],
        "n_sequences": [4, 1],
    })

    fig, axes = pileup_barplot(
        pileup, "earliest_day", ["Oral swab", "Sputum"], (0, 50),
        xlabel="day", cap=200, spec=spec,
    )

    assert len(axes) == 2
    assert tuple(fig.get_size_inches()) == (9.0, 3.0)
    assert all(ax.get_ylim() == (0, 50) for ax in axes)
    assert axes[1].get_xticklabels()[-1].get_text() == "200+"
    plt.close(fig)
