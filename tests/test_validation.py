from trial_guard.models import PatientProfile, TrialRecord
from trial_guard.validation import validate_profile, validate_trials


def _valid_profile(**overrides) -> PatientProfile:
    data = {
        "age": 48,
        "gender": "female",
        "conditions": ["breast cancer"],
        "biomarkers": {"HER2": "negative"},
        "stage": "Stage IIA",
        "performanceStatus": "ECOG 1",
    }
    data.update(overrides)
    return PatientProfile.model_validate(data)


def test_clean_profile_is_valid():
    outcome = validate_profile(_valid_profile())
    assert outcome.is_valid
    assert outcome.errors == []
    assert outcome.warnings == []


def test_age_zero_is_only_a_warning():
    outcome = validate_profile(_valid_profile(age=0))
    assert outcome.is_valid
    assert "Age not extracted, defaulting to unknown" in outcome.warnings


def test_age_out_of_range_is_an_error():
    assert not validate_profile(_valid_profile(age=12)).is_valid
    assert not validate_profile(_valid_profile(age=121)).is_valid


def test_unknown_stage_is_an_error():
    outcome = validate_profile(_valid_profile(stage="Stage X"))
    assert not outcome.is_valid
    assert any("Invalid cancer stage" in e for e in outcome.errors)


def test_stage_zero_metastatic_is_a_contradiction():
    outcome = validate_profile(
        _valid_profile(stage="Stage 0", conditions=["metastatic breast cancer"])
    )
    assert "Impossible combination: Stage 0 cannot be metastatic" in outcome.errors


def test_ecog_out_of_range():
    outcome = validate_profile(_valid_profile(performanceStatus="ECOG 7"))
    assert outcome.errors == ["Invalid ECOG score: 7. Must be 0-5"]


def test_tnbc_with_positive_her2_is_a_contradiction():
    outcome = validate_profile(
        _valid_profile(
            conditions=["triple negative breast cancer"], biomarkers={"HER2": "positive"}
        )
    )
    assert not outcome.is_valid
    assert any(e.startswith("Biomarker contradiction") for e in outcome.errors)


def test_tnbc_with_negative_markers_is_consistent():
    outcome = validate_profile(
        _valid_profile(
            conditions=["TNBC"],
            biomarkers={"HER2": "negative", "ER": "negative", "PR": "0"},
        )
    )
    assert outcome.is_valid


def test_missing_data_warnings_do_not_block():
    outcome = validate_profile(PatientProfile(age=60, conditions=["breast cancer"]))
    assert outcome.is_valid
    assert "Cancer stage not specified - may limit trial matching accuracy" in outcome.warnings
    assert any(w.startswith("No biomarkers") for w in outcome.warnings)

    empty = validate_profile(PatientProfile(age=60))
    assert "No conditions/diagnoses extracted from patient notes" in empty.warnings


def test_validate_profile_does_not_mutate():
    profile = _valid_profile(stage="stage iia")
    validate_profile(profile)
    assert profile.stage == "stage iia"


def _trial(**overrides) -> dict:
    data = {
        "nctId": "NCT05234567",
        "title": "First-Line Tucatinib Plus Trastuzumab",
        "phase": "Phase 2",
        "briefSummary": "Investigates tucatinib combination therapy in HER2+ disease.",
        "inclusionCriteria": ["Age 18-75 years", "HER2-positive breast cancer", "ECOG 0-1"],
        "exclusionCriteria": ["Prior anti-HER2 therapy", "Cardiac dysfunction"],
        "cancerType": "breast",
    }
    data.update(overrides)
    return data


def test_valid_trials():
    outcome = validate_trials([TrialRecord.model_validate(_trial())])
    assert outcome.is_valid
    assert outcome.warnings == []


def test_malformed_nct_id_names_index_and_id():
    outcome = validate_trials([_trial(), _trial(nctId="NCT123")])
    assert not outcome.is_valid
    assert outcome.errors == [
        'Trial 2: Invalid NCT ID format "NCT123". Must be NCT + 8 digits'
    ]


def test_structural_errors_are_aggregated():
    outcome = validate_trials(
        [
            _trial(
                title="Short",
                phase="Phase 4",
                briefSummary="Too short",
                inclusionCriteria=["one", "two"],
                exclusionCriteria=["one"],
                cancerType="melanoma",
            )
        ]
    )
    assert outcome.errors == [
        "Trial 1: Title missing or too short",
        'Trial 1: Invalid phase "Phase 4". Must be Phase 1, 2, or 3',
        "Trial 1: Brief summary missing or too short",
        "Trial 1: Must have at least 3 inclusion criteria",
        "Trial 1: Must have at least 2 exclusion criteria",
    ]
    assert outcome.warnings == ['Trial 1: Invalid or missing cancerType "melanoma"']


def test_missing_fields_are_reported_not_raised():
    outcome = validate_trials([{}])
    assert len(outcome.errors) == 6
    assert len(outcome.warnings) == 1


def test_non_mapping_entries_are_reported_not_raised():
    outcome = validate_trials([None, "NCT05234567", _trial(), ["Phase 2"]])
    assert outcome.errors == [
        "Trial 1: Malformed trial record",
        "Trial 2: Malformed trial record",
        "Trial 4: Malformed trial record",
    ]
