import logging

import pytest

from trial_guard.models import PatientProfile
from trial_guard.normalizer import (
    canonical_performance_status,
    canonical_stage,
    normalize_and_infer,
)


def test_age_is_clamped():
    assert normalize_and_infer(PatientProfile(age=-4)).age == 0
    assert normalize_and_infer(PatientProfile(age=150)).age == 120
    assert normalize_and_infer(PatientProfile(age=61)).age == 61


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("stage   iia", "Stage IIA"),
        ("STAGE IV", "Stage IV"),
        ("IIIB", "Stage IIIB"),
        ("Stage II", "Stage II"),
        ("  ", None),
        (None, None),
    ],
)
def test_canonical_stage(raw, expected):
    assert canonical_stage(raw) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1", "ECOG 1"),
        ("PS 2", "ECOG 2"),
        ("ECOG 0", "ECOG 0"),
        ("Karnofsky 80", "Karnofsky 80"),
        ("fully active", "fully active"),
    ],
)
def test_canonical_performance_status(raw, expected):
    assert canonical_performance_status(raw) == expected


def test_biomarker_keys_rekeyed_last_write_wins():
    profile = PatientProfile(
        biomarkers={"her-2": "negative", "HER2": "positive", "er status": "positive"}
    )
    result = normalize_and_infer(profile)
    assert result.biomarkers["HER2"] == "positive"
    assert result.biomarkers["ERSTATUS"] == "positive"
    assert "her-2" not in result.biomarkers


def test_infers_from_conditions(caplog):
    profile = PatientProfile(conditions=["ER+/PR+, HER2- invasive ductal carcinoma"])
    with caplog.at_level(logging.INFO, logger="trial_guard.normalizer"):
        result = normalize_and_infer(profile)
    assert result.biomarkers == {"HER2": "negative", "ER": "positive", "PR": "positive"}
    assert any("Inferred HER2: negative" in r.message for r in caplog.records)


def test_tnbc_implies_triple_negative():
    profile = PatientProfile(conditions=["triple negative breast cancer"])
    result = normalize_and_infer(profile)
    assert result.biomarkers == {"HER2": "negative", "ER": "negative", "PR": "negative"}


def test_hormone_receptor_positive_only_for_er_pr():
    result = normalize_and_infer(PatientProfile(), raw_text="HR+ breast cancer")
    assert result.biomarkers == {"ER": "positive", "PR": "positive"}


def test_existing_biomarker_not_overwritten():
    profile = PatientProfile(
        conditions=["HER2-positive breast cancer"], biomarkers={"her2": "negative"}
    )
    assert normalize_and_infer(profile).biomarkers["HER2"] == "negative"


def test_marker_must_start_a_word():
    # "cancer-" and "cancer positive" are not ER statements
    profile = PatientProfile(conditions=["breast cancer-related fatigue", "cancer positive margins"])
    assert "ER" not in normalize_and_infer(profile).biomarkers


def test_nothing_inferred_leaves_marker_absent():
    result = normalize_and_infer(PatientProfile(conditions=["breast cancer"]))
    assert result.biomarkers == {}


def test_input_profile_not_mutated():
    profile = PatientProfile(age=200, biomarkers={"her2": "pos"}, stage="stage ii")
    normalize_and_infer(profile, raw_text="TNBC")
    assert profile.age == 200
    assert profile.biomarkers == {"her2": "pos"}
    assert profile.stage == "stage ii"


@pytest.mark.parametrize(
    "profile, raw_text",
    [
        (PatientProfile(), None),
        (
            PatientProfile(
                age=130,
                conditions=["metastatic breast cancer", "TNBC"],
                stage="stage  ivb",
                performance_status="2",
                biomarkers={"Ki-67": "40%"},
            ),
            "history of brain mets",
        ),
        (
            PatientProfile(
                conditions=["hormone receptor positive breast cancer"],
                prior_treatments=["paclitaxel"],
                stage="metastatic",
            ),
            None,
        ),
    ],
)
def test_normalize_is_idempotent(profile, raw_text):
    once = normalize_and_infer(profile, raw_text)
    assert normalize_and_infer(once) == once
    assert normalize_and_infer(once, raw_text) == once


@pytest.mark.parametrize(
    "text, expected",
    [
        ("her2pos", {"HER2": "positive"}),
        ("her2neg", {"HER2": "negative"}),
        ("prpos", {"PR": "positive"}),
        ("erneg", {"ER": "negative"}),
        ("er-negative", {"ER": "negative"}),
        ("pr negative", {"PR": "negative"}),
        ("hr-positive", {"ER": "positive", "PR": "positive"}),
        ("hormone receptor positive", {"ER": "positive", "PR": "positive"}),
    ],
)
def test_inference_phrasings(text, expected):
    result = normalize_and_infer(PatientProfile(), raw_text=text)
    assert result.biomarkers == expected
