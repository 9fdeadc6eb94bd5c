from pathlib import Path

import pandas as pd
import pytest

from asv_calling.abundance import (
    aggregate_run,
    load_abundance_table,
    merge_tables,
    save_abundance_table,
    sequence_id,
)
from asv_calling.backend import ContigSet
from asv_calling.denoise import STATUS_EMPTY, SampleResult
from asv_calling.paths import Run, SamplePair


def _run(tag="M1", samples=("S1", "S2", "S3")):
    pairs = tuple(
        SamplePair(s, Path(f"{s}_1"), Path(f"{s}_2"), Path(f"{s}_F"), Path(f"{s}_R"))
        for s in samples
    )
    return Run("MIRA1", "L001", tag, Path("in"), Path("out"), Path("out/filtered"), pairs)


def test_sequence_id_is_content_addressed():
    assert sequence_id("acgt") == sequence_id("ACGT")
    assert sequence_id("ACGT") != sequence_id("ACGA")
    assert len(sequence_id("ACGT")) == 32


def test_aggregate_run_includes_empty_samples(amplicons):
    a, b = amplicons["A"], amplicons["B"]
    results = [
        SampleResult("S1", ContigSet({a: 30, b: 20}, n_merged=50)),
        SampleResult("S2", ContigSet({a: 10}, n_merged=10)),
        SampleResult("S3", ContigSet.empty(), STATUS_EMPTY),
    ]

    table, registry = aggregate_run(_run(), iter(results))

    assert list(table.index) == ["S1_M1", "S2_M1", "S3_M1"]
    assert list(table.columns) == [sequence_id(a), sequence_id(b)]
    assert table.loc["S1_M1"].tolist() == [30, 20]
    assert table.loc["S3_M1"].sum() == 0
    assert registry == {sequence_id(a): a, sequence_id(b): b}
    assert (table.dtypes == int).all()


def test_aggregate_run_all_empty():
    results = [SampleResult("S1", ContigSet.empty(), STATUS_EMPTY)]
    table, registry = aggregate_run(_run(samples=("S1",)), results)
    assert table.shape == (1, 0)
    assert registry == {}


def test_merge_tables_unions_sequences(amplicons):
    a, b, c = (amplicons[n] for n in "ABC")
    t1 = pd.DataFrame({sequence_id(a): [5], sequence_id(b): [2]}, index=["S1_M1"])
    t2 = pd.DataFrame({sequence_id(a): [7], sequence_id(c): [1]}, index=["S1_M2"])

    merged, registry = merge_tables([
        (t1, {sequence_id(a): a, sequence_id(b): b}),
        (t2, {sequence_id(a): a, sequence_id(c): c}),
    ])

    assert list(merged.index) == ["S1_M1", "S1_M2"]
    assert merged[sequence_id(a)].tolist() == [5, 7]
    assert merged.loc["S1_M2", sequence_id(b)] == 0
    assert merged.values.sum() == t1.values.sum() + t2.values.sum()
    assert set(registry) == {sequence_id(s) for s in (a, b, c)}


def test_merge_tables_rejects_duplicate_samples(amplicons):
    sid = sequence_id(amplicons["A"])
    t = pd.DataFrame({sid: [1]}, index=["S1_M1"])
    with pytest.raises(ValueError, match="S1_M1"):
        merge_tables([(t, {sid: amplicons["A"]}), (t, {sid: amplicons["A"]})])


def test_merge_tables_lists_each_duplicate_once(amplicons):
    sid = sequence_id(amplicons["A"])
    t1 = pd.DataFrame({sid: [1, 2]}, index=["S2_M1", "S1_M1"])
    t2 = pd.DataFrame({sid: [3]}, index=["S1_M1"])
    t3 = pd.DataFrame({sid: [4, 5]}, index=["S1_M1", "S2_M1"])
    tables = [(t, {sid: amplicons["A"]}) for t in (t1, t2, t3)]

    with pytest.raises(ValueError, match=r"\['S1_M1', 'S2_M1'\]"):
        merge_tables(tables)


def test_merge_tables_rejects_id_collision(amplicons):
    sid = sequence_id(amplicons["A"])
    t1 = pd.DataFrame({sid: [1]}, index=["S1_M1"])
    t2 = pd.DataFrame({sid: [1]}, index=["S1_M2"])
    with pytest.raises(ValueError, match="collision"):
        merge_tables([(t1, {sid: amplicons["A"]}), (t2, {sid: amplicons["B"]})])


@pytest.mark.parametrize("fmt, suffix", [("csv", ".csv"), ("excel", ".xlsx")])
def test_save_and_load(tmp_path, amplicons, fmt, suffix):
    a, b = amplicons["A"], amplicons["B"]
    table = pd.DataFrame(
        {sequence_id(a): [30, 0], sequence_id(b): [20, 4]},
        index=pd.Index(["S1_M1", "S2_M1"], name="sample_id"),
    )
    registry = {sequence_id(a): a, sequence_id(b): b}

    out_fn = save_abundance_table(table, registry, tmp_path, "seqtab_MIRA1", format=fmt)

    assert out_fn == tmp_path / f"seqtab_MIRA1{suffix}"
    assert (tmp_path / "seqtab_MIRA1_sequences.fasta").exists()
    # persisted with sequences as rows
    assert table.index.name == "sample_id"

    loaded, loaded_registry = load_abundance_table(tmp_path, "seqtab_MIRA1")
    pd.testing.assert_frame_equal(loaded, table, check_names=False)
    assert loaded_registry == registry


def test_load_missing_table(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_abundance_table(tmp_path, "seqtab_MIRA9")
