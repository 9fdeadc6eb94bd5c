import logging

import numpy as np
import pytest

from asv_calling.backend import FORWARD, REVERSE, ContigSet, DenoiserBackend, ErrorModel
from asv_calling.denoise import STATUS_EMPTY, STATUS_MERGE_FAILED, STATUS_OK, denoise_run, denoise_sample
from asv_calling.errors import MergeFailure
from asv_calling.filtering import FilterParams, filter_and_trim
from asv_calling.paths import resolve_run
from asv_calling.reference_backend import ReferenceDenoiser

from conftest import LOW_QUAL, READ_LEN


class FailingMergeBackend(ReferenceDenoiser):
    """Reference backend whose pair merging fails for chosen samples."""

    def __init__(self, fail_on):
        super().__init__()
        self.fail_on = set(fail_on)
        self.merged = []

    def merge_pairs(self, fwd_call, fwd_derep, rev_call, rev_derep):
        if fwd_derep.n_reads in self.fail_on:
            raise MergeFailure("no overlap")
        self.merged.append(fwd_derep.n_reads)
        return super().merge_pairs(fwd_call, fwd_derep, rev_call, rev_derep)


def _error_models():
    rates = np.full(42, 1e-4)
    return ErrorModel(FORWARD, rates, np.zeros(42), 0), ErrorModel(REVERSE, rates, np.zeros(42), 0)


def _filtered_run(tmp_path, write_sample, samples):
    lane = tmp_path / "raw" / "MIRA1" / "L001"
    for name, copies, qual in samples:
        write_sample(lane, name, copies, qual_char=qual)
    run = resolve_run(tmp_path / "raw", tmp_path / "out", "MIRA1", "L001")
    filter_and_trim(run, FilterParams(trunc_len=(READ_LEN, READ_LEN), rm_control=False), num_cores=1)
    return run


def test_denoise_sample_produces_contigs(tmp_path, amplicons, write_sample):
    run = _filtered_run(tmp_path, write_sample, [("S1", [(amplicons["A"], 8), (amplicons["B"], 5)], "I")])
    fwd_err, rev_err = _error_models()

    result = denoise_sample(run.get("S1"), fwd_err, rev_err, ReferenceDenoiser())

    assert result.ok
    assert result.contigs.contigs == {amplicons["A"]: 8, amplicons["B"]: 5}


def test_sample_without_filtered_files_is_empty(tmp_path, amplicons, write_sample):
    lane = tmp_path / "raw" / "MIRA1" / "L001"
    write_sample(lane, "S1", [(amplicons["A"], 3)])
    run = resolve_run(tmp_path / "raw", tmp_path / "out", "MIRA1", "L001")
    fwd_err, rev_err = _error_models()

    result = denoise_sample(run.get("S1"), fwd_err, rev_err, ReferenceDenoiser())

    assert result.status == STATUS_EMPTY
    assert len(result.contigs) == 0


def test_merge_failure_is_isolated(tmp_path, amplicons, write_sample, caplog):
    run = _filtered_run(
        tmp_path,
        write_sample,
        [
            ("S1", [(amplicons["A"], 6)], "I"),
            ("S2", [(amplicons["B"], 7)], "I"),
            ("S3", [(amplicons["C"], 4)], LOW_QUAL),
        ],
    )
    fwd_err, rev_err = _error_models()
    backend = FailingMergeBackend(fail_on={7})

    with caplog.at_level(logging.ERROR):
        results = list(denoise_run(run, fwd_err, rev_err, backend))

    assert [r.sample for r in results] == ["S1", "S2", "S3"]
    assert [r.status for r in results] == [STATUS_OK, STATUS_MERGE_FAILED, STATUS_EMPTY]
    assert results[0].contigs.contigs == {amplicons["A"]: 6}
    assert results[1].contigs == ContigSet.empty()
    assert "no overlap" in results[1].message
    assert "S2" in caplog.text


def test_backend_is_abstract():
    assert issubclass(ReferenceDenoiser, DenoiserBackend)
    with pytest.raises(TypeError):
        DenoiserBackend()
