"""Plausibility checks for extracted patient profiles and catalog trial records.

Errors mark a record that should not be trusted (impossible values,
contradictions); warnings only lower confidence and never block matching.
"""

import re
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError

from trial_guard.biomarkers import status_from_value
from trial_guard.models import (
    BiomarkerStatus,
    CancerType,
    PatientProfile,
    TrialPhase,
    TrialRecord,
    ValidationOutcome,
)
from trial_guard.normalizer import TNBC_PHRASES, canonical_biomarker_key


MIN_ADULT_AGE = 18
MAX_AGE = 120
MAX_ECOG = 5

VALID_STAGES = (
    "I", "IA", "IB",
    "II", "IIA", "IIB",
    "III", "IIIA", "IIIB", "IIIC",
    "IV", "IVA", "IVB",
)
TNBC_EXCLUDED_MARKERS = ("HER2", "ER", "PR")

NCT_ID_PATTERN = re.compile(r"^NCT\d{8}$")
MIN_TITLE_LENGTH = 10
MIN_SUMMARY_LENGTH = 20
MIN_INCLUSION_CRITERIA = 3
MIN_EXCLUSION_CRITERIA = 2

_ECOG = re.compile(r"ECOG\s*(\d+)", re.IGNORECASE)
_STAGE_WORD = re.compile(r"STAGE\s*")


def stage_token(stage: str) -> str:
    """Upper-cased stage with the word "STAGE" removed ("Stage iia" -> "IIA")."""
    return _STAGE_WORD.sub("", stage.upper()).strip()


def parse_ecog(performance_status: Optional[str]) -> Optional[int]:
    if not performance_status:
        return None
    match = _ECOG.search(performance_status)
    return int(match.group(1)) if match else None


def _mentions_any(texts: Iterable[str], phrases: Iterable[str]) -> bool:
    lowered = [t.lower() for t in texts]
    return any(p in t for t in lowered for p in phrases)


def validate_profile(profile: PatientProfile) -> ValidationOutcome:
    """Validate an extracted profile for realistic values and contradictions."""
    errors: List[str] = []
    warnings: List[str] = []

    if profile.age == 0:
        warnings.append("Age not extracted, defaulting to unknown")
    elif profile.age < MIN_ADULT_AGE:
        errors.append(f"Age {profile.age} is below minimum ({MIN_ADULT_AGE} years)")
    elif profile.age > MAX_AGE:
        errors.append(f"Age {profile.age} is unrealistic (max {MAX_AGE} years)")

    if profile.stage:
        token = stage_token(profile.stage)
        if not any(token.startswith(valid) for valid in VALID_STAGES):
            errors.append(
                f'Invalid cancer stage: "{profile.stage}". Must be I, II, III, or IV'
            )
        if token == "0" and _mentions_any(profile.conditions, ("metastatic",)):
            errors.append("Impossible combination: Stage 0 cannot be metastatic")

    ecog = parse_ecog(profile.performance_status)
    if ecog is not None and not 0 <= ecog <= MAX_ECOG:
        errors.append(f"Invalid ECOG score: {ecog}. Must be 0-{MAX_ECOG}")

    if _mentions_any(profile.conditions, TNBC_PHRASES):
        positive = sorted(
            {
                canonical_biomarker_key(key)
                for key, value in profile.biomarkers.items()
                if canonical_biomarker_key(key) in TNBC_EXCLUDED_MARKERS
                and status_from_value(value) is BiomarkerStatus.POSITIVE
            }
        )
        if positive:
            errors.append(
                "Biomarker contradiction: Triple Negative Breast Cancer cannot be "
                f"HER2+, ER+, or PR+ (found {', '.join(m + '+' for m in positive)})"
            )

    if not profile.conditions:
        warnings.append("No conditions/diagnoses extracted from patient notes")

    if not profile.stage and _mentions_any(profile.conditions, ("cancer",)):
        warnings.append(
            "Cancer stage not specified - may limit trial matching accuracy"
        )

    if not profile.biomarkers and _mentions_any(profile.conditions, ("breast cancer",)):
        warnings.append(
            "No biomarkers (HER2, ER, PR) extracted - critical for breast cancer "
            "trial matching"
        )

    return ValidationOutcome(errors=errors, warnings=warnings)


def validate_trials(
    trials: Iterable[Union[TrialRecord, Dict[str, Any]]]
) -> ValidationOutcome:
    """Validate catalog trials; messages are prefixed with the 1-based ordinal."""
    errors: List[str] = []
    warnings: List[str] = []
    phases = {phase.value for phase in TrialPhase}
    cancer_types = {ct.value for ct in CancerType}

    for index, raw in enumerate(trials, start=1):
        prefix = f"Trial {index}:"
        try:
            trial = raw if isinstance(raw, TrialRecord) else TrialRecord.model_validate(raw)
        except ValidationError:
            errors.append(f"{prefix} Malformed trial record")
            continue

        if not NCT_ID_PATTERN.match(trial.nct_id or ""):
            errors.append(
                f'{prefix} Invalid NCT ID format "{trial.nct_id}". '
                "Must be NCT + 8 digits"
            )
        if len(trial.title) < MIN_TITLE_LENGTH:
            errors.append(f"{prefix} Title missing or too short")
        if trial.phase not in phases:
            errors.append(
                f'{prefix} Invalid phase "{trial.phase}". Must be Phase 1, 2, or 3'
            )
        if len(trial.brief_summary) < MIN_SUMMARY_LENGTH:
            errors.append(f"{prefix} Brief summary missing or too short")
        if len(trial.inclusion_criteria) < MIN_INCLUSION_CRITERIA:
            errors.append(
                f"{prefix} Must have at least {MIN_INCLUSION_CRITERIA} inclusion criteria"
            )
        if len(trial.exclusion_criteria) < MIN_EXCLUSION_CRITERIA:
            errors.append(
                f"{prefix} Must have at least {MIN_EXCLUSION_CRITERIA} exclusion criteria"
            )
        if trial.cancer_type not in cancer_types:
            warnings.append(
                f'{prefix} Invalid or missing cancerType "{trial.cancer_type}"'
            )

    return ValidationOutcome(errors=errors, warnings=warnings)


__all__ = ["parse_ecog", "stage_token", "validate_profile", "validate_trials"]
