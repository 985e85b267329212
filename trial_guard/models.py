"""Value objects shared by the guardrail core and its collaborators.

Models accept the camelCase keys produced by the upstream extraction and
assessment prompts (``priorTreatments``, ``nctId``...) as well as snake_case
field names, and are tolerant of missing or loosely typed values: the
extraction collaborator may hand over an empty-but-well-typed profile and the
core must never fail on it.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel


class BiomarkerStatus(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    UNKNOWN = "unknown"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"
    UNKNOWN = "unknown"


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class OverrideStatus(str, Enum):
    MATCH = "match"
    UNCERTAIN = "uncertain"
    EXCLUDE = "exclude"


class OverridePolicy(str, Enum):
    """How competing guardrail overrides are resolved within one evaluation."""

    LAST_TRIGGERED = "last_triggered"
    STRICTEST = "strictest"


class TrialPhase(str, Enum):
    PHASE_1 = "Phase 1"
    PHASE_2 = "Phase 2"
    PHASE_3 = "Phase 3"


class CancerType(str, Enum):
    BREAST = "breast"
    LUNG = "lung"
    COLORECTAL = "colorectal"
    PROSTATE = "prostate"
    OTHER = "other"


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v is not None]
    return [str(value)]


def _as_str_dict(value: Any) -> Dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): str(v) for k, v in value.items() if v is not None}


def _as_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


class _Model(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    def to_dict(self) -> Dict:
        return self.model_dump(mode="json", by_alias=True)


class PatientProfile(_Model):
    age: int = 0
    gender: Gender = Gender.UNKNOWN
    conditions: List[str] = Field(default_factory=list)
    medications: List[str] = Field(default_factory=list)
    allergies: List[str] = Field(default_factory=list)
    biomarkers: Dict[str, str] = Field(default_factory=dict)
    stage: Optional[str] = None
    prior_treatments: List[str] = Field(default_factory=list)
    performance_status: Optional[str] = None
    lab_values: Dict[str, str] = Field(default_factory=dict)

    @field_validator("age", mode="before")
    @classmethod
    def _coerce_age(cls, value: Any) -> int:
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return 0

    @field_validator("gender", mode="before")
    @classmethod
    def _coerce_gender(cls, value: Any) -> Gender:
        try:
            return Gender(str(value).strip().lower())
        except ValueError:
            return Gender.UNKNOWN

    @field_validator(
        "conditions", "medications", "allergies", "prior_treatments", mode="before"
    )
    @classmethod
    def _coerce_lists(cls, value: Any) -> List[str]:
        return _as_str_list(value)

    @field_validator("biomarkers", "lab_values", mode="before")
    @classmethod
    def _coerce_dicts(cls, value: Any) -> Dict[str, str]:
        return _as_str_dict(value)

    @field_validator("stage", "performance_status", mode="before")
    @classmethod
    def _coerce_optional(cls, value: Any) -> Optional[str]:
        return _as_optional_str(value)


class TrialRecord(_Model):
    """A trial as supplied by the catalog; structure is checked by validate_trials."""

    nct_id: str = ""
    title: str = ""
    phase: str = ""
    brief_summary: str = ""
    inclusion_criteria: List[str] = Field(default_factory=list)
    exclusion_criteria: List[str] = Field(default_factory=list)
    cancer_type: Optional[str] = None
    match_type: Optional[str] = None
    match_score: Optional[int] = None

    @field_validator("nct_id", "title", "phase", "brief_summary", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("inclusion_criteria", "exclusion_criteria", mode="before")
    @classmethod
    def _coerce_lists(cls, value: Any) -> List[str]:
        return _as_str_list(value)

    @field_validator("cancer_type", "match_type", mode="before")
    @classmethod
    def _coerce_optional(cls, value: Any) -> Optional[str]:
        return _as_optional_str(value)

    @field_validator("match_score", mode="before")
    @classmethod
    def _coerce_score(cls, value: Any) -> Optional[int]:
        if value is None:
            return None
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return None

    def eligibility_text(self) -> str:
        """Title, summary and inclusion criteria as one lower-cased string."""
        return " ".join(
            [self.title, self.brief_summary, " ".join(self.inclusion_criteria)]
        ).lower()

    def exclusion_text(self) -> str:
        return " ".join(self.exclusion_criteria).lower()


class AIVerdict(_Model):
    """Assessment produced by the language model for one patient/trial pair."""

    match_score: int = 0
    confidence_level: ConfidenceLevel = ConfidenceLevel.LOW
    inclusion_matches: List[str] = Field(default_factory=list)
    exclusion_flags: List[str] = Field(default_factory=list)
    uncertain_factors: List[str] = Field(default_factory=list)
    explanation: str = ""
    questions_to_ask: List[str] = Field(default_factory=list)

    @field_validator("match_score", mode="before")
    @classmethod
    def _clamp_score(cls, value: Any) -> int:
        try:
            score = int(round(float(value)))
        except (TypeError, ValueError):
            return 0
        return min(100, max(0, score))

    @field_validator("confidence_level", mode="before")
    @classmethod
    def _coerce_confidence(cls, value: Any) -> ConfidenceLevel:
        try:
            return ConfidenceLevel(str(value).strip().lower())
        except ValueError:
            return ConfidenceLevel.LOW

    @field_validator(
        "inclusion_matches",
        "exclusion_flags",
        "uncertain_factors",
        "questions_to_ask",
        mode="before",
    )
    @classmethod
    def _coerce_lists(cls, value: Any) -> List[str]:
        return _as_str_list(value)

    @field_validator("explanation", mode="before")
    @classmethod
    def _coerce_explanation(cls, value: Any) -> str:
        return "" if value is None else str(value)


class GuardrailVerdict(_Model):
    should_override: bool = False
    override_score: Optional[int] = None
    override_status: Optional[OverrideStatus] = None
    flags: List[str] = Field(default_factory=list)
    reasoning: str = ""


class ValidationOutcome(_Model):
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @computed_field  # type: ignore[misc]
    @property
    def is_valid(self) -> bool:
        return not self.errors


__all__ = [
    "AIVerdict",
    "BiomarkerStatus",
    "CancerType",
    "ConfidenceLevel",
    "Gender",
    "GuardrailVerdict",
    "OverridePolicy",
    "OverrideStatus",
    "PatientProfile",
    "TrialPhase",
    "TrialRecord",
    "ValidationOutcome",
]
