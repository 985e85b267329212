import pytest

from trial_guard.models import AIVerdict, PatientProfile, TrialRecord


@pytest.fixture
def her2_positive_trial() -> TrialRecord:
    return TrialRecord.model_validate(
        {
            "nctId": "NCT05123456",
            "title": "Study of Trastuzumab Deruxtecan in HER2+ Breast Cancer After Prior Therapy",
            "phase": "Phase 3",
            "briefSummary": (
                "Evaluates trastuzumab deruxtecan in patients with HER2-positive breast cancer "
                "who progressed on prior anti-HER2 therapy."
            ),
            "inclusionCriteria": [
                "Age 18 years or older",
                "HER2-positive breast cancer (IHC 3+ or FISH+)",
                "Stage III or IV disease",
            ],
            "exclusionCriteria": [
                "Active brain metastases requiring immediate treatment",
                "LVEF <50%",
            ],
            "cancerType": "breast",
            "matchType": "perfect",
            "matchScore": 92,
        }
    )


@pytest.fixture
def neutral_trial() -> TrialRecord:
    return TrialRecord(
        nct_id="NCT05999999",
        title="Exercise Program During Endocrine Therapy",
        phase="Phase 2",
        brief_summary="Supervised exercise for patients receiving endocrine therapy.",
        inclusion_criteria=[
            "Age 18 years or older",
            "Receiving endocrine therapy",
            "Able to walk unassisted",
        ],
        exclusion_criteria=["Unstable angina", "Pregnancy"],
        cancer_type="breast",
    )


@pytest.fixture
def patient() -> PatientProfile:
    return PatientProfile(
        age=52,
        gender="female",
        conditions=["breast cancer"],
        biomarkers={"HER2": "positive", "ER": "positive"},
        stage="Stage II",
        performance_status="ECOG 0",
    )


@pytest.fixture
def ai_verdict() -> AIVerdict:
    return AIVerdict(
        match_score=88,
        confidence_level="high",
        inclusion_matches=["Age 52 meets requirement"],
        explanation="Patient meets the listed inclusion criteria.",
    )
