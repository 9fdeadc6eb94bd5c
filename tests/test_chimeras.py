import pandas as pd
import pytest

from asv_calling.abundance import sequence_id
from asv_calling.chimeras import ChimeraParams, bimera_table, is_bimera, remove_bimeras


@pytest.fixture
def registry(amplicons):
    return {sequence_id(s): s for s in amplicons.values()}


def _ids(amplicons, *names):
    return [sequence_id(amplicons[n]) for n in names]


def test_is_bimera(amplicons):
    assert is_bimera(amplicons["AB"], [amplicons["A"], amplicons["B"]])
    assert not is_bimera(amplicons["AB"], [amplicons["A"]])
    assert not is_bimera(amplicons["C"], [amplicons["A"], amplicons["B"]])
    # a parent is never a chimera of itself
    assert not is_bimera(amplicons["A"], [amplicons["A"], amplicons["B"]])


def test_chimera_flagged_in_consensus(amplicons, registry):
    a, b, c, ab = _ids(amplicons, "A", "B", "C", "AB")
    table = pd.DataFrame(
        {a: [100, 80], b: [60, 50], c: [10, 0], ab: [5, 4]},
        index=["S1_M1", "S2_M1"],
    )

    report = bimera_table(table, registry)

    assert report.loc[ab, "nflag"] == 2
    assert report.loc[ab, "nsam"] == 2
    assert bool(report.loc[ab, "chimera"])
    assert not report.loc[[a, b, c], "chimera"].any()


def test_parents_must_be_more_abundant(amplicons, registry):
    a, b, ab = _ids(amplicons, "A", "B", "AB")
    # B is not min_fold_parent times as abundant as the chimera
    table = pd.DataFrame({a: [100], b: [12], ab: [10]}, index=["S1_M1"])

    report = bimera_table(table, registry, ChimeraParams(min_fold_parent=1.5))
    assert report.loc[ab, "nflag"] == 0
    assert not report.loc[ab, "chimera"]


def test_minority_flagging_is_not_chimeric(amplicons, registry):
    a, b, ab = _ids(amplicons, "A", "B", "AB")
    # flagged in one sample of four; parents absent elsewhere
    table = pd.DataFrame(
        {a: [100, 0, 0, 0], b: [100, 0, 0, 0], ab: [10, 10, 10, 10]},
        index=["S1", "S2", "S3", "S4"],
    )

    report = bimera_table(table, registry)
    assert report.loc[ab, "nflag"] == 1
    assert report.loc[ab, "nsam"] == 4
    assert not report.loc[ab, "chimera"]


def test_remove_bimeras_only_drops_columns(amplicons, registry):
    a, b, c, ab = _ids(amplicons, "A", "B", "C", "AB")
    table = pd.DataFrame({a: [100], b: [60], c: [7], ab: [5]}, index=["S1_M1"])

    out = remove_bimeras(table, registry)

    assert list(out.columns) == [a, b, c]
    assert out.values.sum() <= table.values.sum()
    pd.testing.assert_frame_equal(out, table[[a, b, c]])


def test_unknown_method_rejected(amplicons, registry):
    table = pd.DataFrame({sequence_id(amplicons["A"]): [1]}, index=["S1"])
    with pytest.raises(ValueError):
        bimera_table(table, registry, ChimeraParams(method="pooled"))
