import pandas as pd
import pytest

from asv_summary.pileups import earliest_detection_pileup, subject_pileup


@pytest.fixture
def records():
    rows = [
        # seq, subject, type, reads, day
        ("a", "P1", "Oral swab", 10, 0),
        ("a", "P2", "Oral swab", 3, 4),
        ("a", "P3", "Oral swab", 1, 9),
        ("b", "P1", "Oral swab", 7, 0),
        ("b", "P1", "Oral swab", 2, 30),
        ("c", "P2", "Oral swab", 0, 2),     # not observed
        ("a", "P1", "Sputum", 5, 250),
        ("d", "P2", "Sputum", 4, 12),
        ("e", "P3", "Stool swab", 9, 1),    # not in allow-list below
        ("f", None, "Sputum", 9, None),     # no subject
    ]
    df = pd.DataFrame(rows, columns=["seq_id", "subject_id", "specimen_type", "read_count", "study_day"])
    df["study_day"] = df["study_day"].astype("Int64")
    return df


TYPES = ["Oral swab", "Sputum"]


def test_subject_pileup(records):
    pileup = subject_pileup(records, TYPES)

    expected = pd.DataFrame({
        "specimen_type": ["Oral swab", "Oral swab", "Sputum"],
        "n_subjects": [1, 3, 1],
        "n_sequences": [1, 1, 2],
    })
    pd.testing.assert_frame_equal(pileup, expected, check_dtype=False)


def test_subject_pileup_ignores_zero_counts(records):
    pileup = subject_pileup(records, ["Oral swab"])
    # 'c' has only a zero count and never contributes
    assert pileup["n_sequences"].sum() == 2


def test_subject_pileup_allow_list(records):
    assert "Stool swab" not in set(subject_pileup(records, TYPES)["specimen_type"])
    assert set(subject_pileup(records, ["Stool swab"])["specimen_type"]) == {"Stool swab"}


def test_earliest_detection(records):
    pileup = earliest_detection_pileup(records, TYPES, cap=200)

    oral = pileup[pileup["specimen_type"] == "Oral swab"]
    assert oral["earliest_day"].tolist() == [0]
    assert oral["n_sequences"].tolist() == [2]

    sputum = pileup[pileup["specimen_type"] == "Sputum"]
    assert sputum["earliest_day"].tolist() == [12, 200]
    assert sputum["n_sequences"].tolist() == [1, 1]


def test_earliest_detection_cap(records):
    pileup = earliest_detection_pileup(records, ["Sputum"], cap=100)
    assert pileup["earliest_day"].max() == 100


def test_empty_records(records):
    none = records[records["read_count"] > 1000]
    assert subject_pileup(none, TYPES).empty
    assert earliest_detection_pileup(none, TYPES).empty
