import pytest
from Bio.Seq import reverse_complement

from asv_calling.filtering import ControlScreen, FilterParams, FilterReport, filter_and_trim, loss_report
from asv_calling.paths import resolve_run
from asv_calling.sequencing_read import SequencingRead, count_reads, iter_fastq

from conftest import LOW_QUAL, READ_LEN, write_fastq_gz

PARAMS = FilterParams(trunc_len=(READ_LEN, READ_LEN), rm_control=False)


def _run(tmp_path, run_id="MIRA1"):
    return resolve_run(tmp_path / "raw", tmp_path / "out", run_id, "L001")


def _lane(tmp_path, run_id="MIRA1"):
    return tmp_path / "raw" / run_id / "L001"


class TestSequencingRead:
    def test_truncate_at_quality(self):
        read = SequencingRead("r", "ACGTACGT", "IIII#III")
        read.truncate_at_quality(2)
        assert read.seq == "ACGT"
        assert read.qual == "IIII"

    def test_truncate_too_short(self):
        read = SequencingRead("r", "ACGT", "IIII")
        assert not read.truncate(10)
        assert read.seq == "ACGT"
        assert read.truncate(2)
        assert read.seq == "AC"

    def test_expected_errors(self):
        read = SequencingRead("r", "AC", "++")  # Q10 each
        assert read.expected_errors() == pytest.approx(0.2)

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            SequencingRead("r", "ACGT", "III")


def test_filter_keeps_good_pairs(tmp_path, amplicons, write_sample):
    write_sample(_lane(tmp_path), "S1", [(amplicons["A"], 5), (amplicons["B"], 3)])
    run = _run(tmp_path)

    reports = filter_and_trim(run, PARAMS, num_cores=1)

    assert reports == [FilterReport("S1", 8, 8)]
    pair = run.get("S1")
    fwd = list(iter_fastq(pair.filtered_forward))
    rev = list(iter_fastq(pair.filtered_reverse))
    assert len(fwd) == len(rev) == 8
    assert all(len(seq) == READ_LEN for _, seq, _ in fwd)


def test_low_quality_sample_filters_to_zero(tmp_path, amplicons, write_sample):
    write_sample(_lane(tmp_path), "S1", [(amplicons["A"], 4)])
    write_sample(_lane(tmp_path), "S2", [(amplicons["A"], 4)], qual_char=LOW_QUAL)
    run = _run(tmp_path)

    reports = filter_and_trim(run, PARAMS, num_cores=1)

    assert [(r.sample, r.reads_out) for r in reports] == [("S1", 4), ("S2", 0)]
    assert run.get("S2").filtered_exists()
    assert count_reads(run.get("S2").filtered_forward) == 0


def test_reads_shorter_than_trunc_len_dropped(tmp_path, amplicons, write_sample):
    write_sample(_lane(tmp_path), "S1", [(amplicons["A"], 3)])
    run = _run(tmp_path)

    reports = filter_and_trim(run, FilterParams(trunc_len=(READ_LEN + 1, READ_LEN), rm_control=False), num_cores=1)
    assert reports[0].reads_out == 0


def test_ambiguous_bases_dropped(tmp_path):
    lane = _lane(tmp_path)
    seq = "ACGT" * 10
    write_fastq_gz(lane / "S1_1.fastq.gz", [("r0/1", seq, "I" * 40), ("r1/1", "N" + seq[1:], "I" * 40)])
    write_fastq_gz(lane / "S1_2.fastq.gz", [("r0/2", seq, "I" * 40), ("r1/2", seq, "I" * 40)])

    reports = filter_and_trim(_run(tmp_path), PARAMS, num_cores=1)
    assert reports[0].reads_out == 1


def test_out_of_sync_mates_raise(tmp_path):
    lane = _lane(tmp_path)
    seq = "ACGT" * 10
    write_fastq_gz(lane / "S1_1.fastq.gz", [("r0/1", seq, "I" * 40)])
    write_fastq_gz(lane / "S1_2.fastq.gz", [("r7/2", seq, "I" * 40)])

    with pytest.raises(ValueError, match="out of sync"):
        filter_and_trim(_run(tmp_path), PARAMS, num_cores=1)


def test_short_mate_file_raises(tmp_path):
    lane = _lane(tmp_path)
    seq = "ACGT" * 10
    write_fastq_gz(lane / "S1_1.fastq.gz", [(f"r{i}/1", seq, "I" * 40) for i in range(3)])
    write_fastq_gz(lane / "S1_2.fastq.gz", [(f"r{i}/2", seq, "I" * 40) for i in range(2)])

    with pytest.raises(ValueError, match="out of sync at record 3"):
        filter_and_trim(_run(tmp_path), PARAMS, num_cores=1)


def test_failed_pair_leaves_nothing_to_reuse(tmp_path):
    lane = _lane(tmp_path)
    seq = "ACGT" * 10
    write_fastq_gz(lane / "S1_1.fastq.gz", [(f"r{i}/1", seq, "I" * 40) for i in range(3)])
    write_fastq_gz(lane / "S1_2.fastq.gz", [(f"r{i}/2", seq, "I" * 40) for i in (0, 1, 9)])
    run = _run(tmp_path)

    with pytest.raises(ValueError, match="out of sync"):
        filter_and_trim(run, PARAMS, num_cores=1)

    assert not run.get("S1").filtered_exists()
    assert list(run.filtered_dir.iterdir()) == []
    with pytest.raises(ValueError, match="out of sync"):
        filter_and_trim(run, PARAMS, num_cores=1, reuse_existing=True)


def test_refilter_replaces_previous_outputs(tmp_path, amplicons, write_sample):
    write_sample(_lane(tmp_path), "S1", [(amplicons["A"], 4)])
    run = _run(tmp_path)
    filter_and_trim(run, PARAMS, num_cores=1)

    write_sample(_lane(tmp_path), "S1", [(amplicons["A"], 2)])
    reports = filter_and_trim(run, PARAMS, num_cores=1)

    assert reports == [FilterReport("S1", 2, 2)]
    assert count_reads(run.get("S1").filtered_reverse) == 2
    assert sorted(p.name for p in run.filtered_dir.iterdir()) == sorted(
        [run.get("S1").filtered_forward.name, run.get("S1").filtered_reverse.name]
    )


def test_control_reads_removed(tmp_path, amplicons, write_sample):
    write_sample(_lane(tmp_path), "S1", [(amplicons["A"], 5), (amplicons["C"], 4)])
    control_fasta = tmp_path / "phix.fasta"
    control_fasta.write_text(f">phiX\n{amplicons['C']}\n")
    params = FilterParams(trunc_len=(READ_LEN, READ_LEN), rm_control=True, control_fasta=str(control_fasta))

    reports = filter_and_trim(_run(tmp_path), params, num_cores=1)
    assert reports[0].reads_out == 5


def test_control_screen_both_strands(amplicons):
    screen = ControlScreen([amplicons["C"]])
    assert screen.is_control(amplicons["C"][:READ_LEN])
    assert screen.is_control(reverse_complement(amplicons["C"])[:READ_LEN])
    assert not screen.is_control(amplicons["A"])


def test_rerun_is_byte_identical(tmp_path, amplicons, write_sample):
    write_sample(_lane(tmp_path), "S1", [(amplicons["A"], 5), (amplicons["B"], 2)])
    write_sample(_lane(tmp_path), "S2", [(amplicons["C"], 3)])
    run = _run(tmp_path)

    filter_and_trim(run, PARAMS, num_cores=1)
    first = {p.sample: p.filtered_forward.read_bytes() for p in run.samples}
    filter_and_trim(run, PARAMS, num_cores=2)
    second = {p.sample: p.filtered_forward.read_bytes() for p in run.samples}

    assert first == second


def test_reuse_existing_recounts(tmp_path, amplicons, write_sample):
    write_sample(_lane(tmp_path), "S1", [(amplicons["A"], 6)])
    run = _run(tmp_path)
    filter_and_trim(run, PARAMS, num_cores=1)
    mtime = run.get("S1").filtered_forward.stat().st_mtime_ns

    reports = filter_and_trim(run, PARAMS, num_cores=1, reuse_existing=True)

    assert reports == [FilterReport("S1", 6, 6)]
    assert run.get("S1").filtered_forward.stat().st_mtime_ns == mtime


def test_loss_report_order_and_threshold():
    reports = [
        FilterReport("S1", 2000, 1800),
        FilterReport("S2", 2000, 1000),
        FilterReport("S3", 500, 0),
        FilterReport("S4", 4000, 3600),
    ]
    df = loss_report(reports, min_reads=1000)

    assert list(df["sample"]) == ["S2", "S1", "S4"]
    assert df.loc[0, "fraction_lost"] == pytest.approx(0.5)
