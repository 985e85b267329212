"""Deterministic clinical guardrails over an AI eligibility verdict.

The language model's match score is advisory. A fixed sequence of clinical
rules runs over (patient, trial, verdict) and can force an ``exclude`` or
``uncertain`` outcome, e.g. a HER2-positive trial offered to a HER2-negative
patient.

Evaluation:
- Facts are derived once per call (HER2 status, stage class, TNBC, ECOG,
  prior-treatment text, trial eligibility text vs. exclusion text).
- Each rule returns zero or more findings: a human-readable flag and, for
  most rules, an override (score, status, reasoning).
- Findings are folded in rule order. Flags always accumulate. Overrides are
  resolved by the configured ``OverridePolicy``:
  ``LAST_TRIGGERED`` replaces the override with every later trigger (the
  historical behavior, so a later weaker rule can replace an earlier hard
  exclusion); ``STRICTEST`` keeps the most severe one.
- All rules run on every call and the engine does not raise.

Usage (programmatic):
    from trial_guard.guardrails import apply_guardrails
    verdict = apply_guardrails(profile, trial, ai_verdict)
"""

from dataclasses import dataclass
import logging
import re
from typing import Callable, List, Optional, Sequence, Tuple

from trial_guard.biomarkers import resolve_biomarker_status
from trial_guard.models import (
    AIVerdict,
    BiomarkerStatus,
    GuardrailVerdict,
    OverridePolicy,
    OverrideStatus,
    PatientProfile,
    TrialRecord,
)
from trial_guard.normalizer import TNBC_PHRASES
from trial_guard.validation import parse_ecog, stage_token


logger = logging.getLogger(__name__)

NO_OVERRIDE_REASONING = "No guardrail overrides applied"

HER2_POSITIVE_PHRASES = ("her2+", "her2-positive", "her2 positive")
HER2_NEGATIVE_PHRASES = ("her2-negative", "her2 negative") + TNBC_PHRASES
HER2_LOW_PHRASES = ("her2-low",)
_HER2_POSITIVE_RE = re.compile(r"\bher2\s*positive\b")
_HER2_NEGATIVE_RE = re.compile(r"\bher2\s*negative\b")

METASTATIC_TRIAL_PHRASES = ("metastatic", "stage iv", "advanced")
EARLY_TRIAL_PHRASES = ("early", "adjuvant", "neoadjuvant")

TRASTUZUMAB_PHRASES = ("trastuzumab", "herceptin")
TAXANE_PHRASES = ("taxane", "paclitaxel", "docetaxel")
TDM1_PHRASES = ("t-dm1", "kadcyla", "trastuzumab emtansine")
REQUIRES_PRIOR_TRASTUZUMAB = ("prior trastuzumab", "previous trastuzumab")
REQUIRES_PRIOR_TAXANE = ("prior taxane", "previous taxane")
EXCLUDES_TDM1 = ("t-dm1", "trastuzumab emtansine")

_ECOG_ZERO_TO_ONE = re.compile(
    r"ecog(?:\s+performance\s+status|\s+ps)?\s*0\s*[-–]\s*1(?!\d)"
)

BRAIN_METS_PHRASES = ("brain", "cranial")
EXCLUDES_BRAIN_METS = ("brain metasta", "cns metasta")

_EARLY_STAGE_TOKEN = re.compile(r"^I{1,3}(?!V)")

_STATUS_SEVERITY = {
    OverrideStatus.MATCH: 0,
    OverrideStatus.UNCERTAIN: 1,
    OverrideStatus.EXCLUDE: 2,
}


def _contains_any(text: str, phrases: Sequence[str]) -> bool:
    return any(p in text for p in phrases)


@dataclass(frozen=True)
class Override:
    score: int
    status: OverrideStatus
    reasoning: str

    def severity(self) -> Tuple[int, int]:
        return (_STATUS_SEVERITY[self.status], -self.score)


@dataclass(frozen=True)
class Finding:
    flag: str
    override: Optional[Override] = None


def _exclude(score: int, reasoning: str) -> Override:
    return Override(score=score, status=OverrideStatus.EXCLUDE, reasoning=reasoning)


def _uncertain(score: int, reasoning: str) -> Override:
    return Override(score=score, status=OverrideStatus.UNCERTAIN, reasoning=reasoning)


@dataclass(frozen=True)
class MatchFacts:
    """Everything the rules look at, computed once per evaluation."""

    her2: BiomarkerStatus
    is_metastatic: bool
    is_early_stage: bool
    is_tnbc: bool
    has_brain_mets: bool
    ecog: Optional[int]
    prior_treatments: str
    trial_text: str
    exclusion_text: str
    assessment_text: str

    @classmethod
    def derive(
        cls, patient: PatientProfile, trial: TrialRecord, assessment: AIVerdict
    ) -> "MatchFacts":
        conditions = [c.lower() for c in patient.conditions]
        stage = patient.stage or ""
        token = stage_token(stage) if stage else ""
        is_metastatic = (
            "IV" in token
            or "metastatic" in stage.lower()
            or any("metastatic" in c for c in conditions)
        )
        is_early_stage = bool(token and _EARLY_STAGE_TOKEN.match(token)) and not is_metastatic
        prior_treatments = " ".join(t.lower() for t in patient.prior_treatments)
        has_brain_mets = any(
            _contains_any(c, BRAIN_METS_PHRASES) for c in conditions
        ) or _contains_any(prior_treatments, BRAIN_METS_PHRASES)

        return cls(
            her2=resolve_biomarker_status(patient.biomarkers, "HER2"),
            is_metastatic=is_metastatic,
            is_early_stage=is_early_stage,
            is_tnbc=any(_contains_any(c, TNBC_PHRASES) for c in conditions),
            has_brain_mets=has_brain_mets,
            ecog=parse_ecog(patient.performance_status),
            prior_treatments=prior_treatments,
            trial_text=trial.eligibility_text(),
            exclusion_text=trial.exclusion_text(),
            assessment_text=assessment.explanation.lower(),
        )

    @property
    def trial_requires_her2_positive(self) -> bool:
        return _contains_any(self.trial_text, HER2_POSITIVE_PHRASES) or bool(
            _HER2_POSITIVE_RE.search(self.trial_text)
        )

    @property
    def trial_requires_her2_negative(self) -> bool:
        mentions_negative = _contains_any(
            self.trial_text, HER2_NEGATIVE_PHRASES
        ) or bool(_HER2_NEGATIVE_RE.search(self.trial_text))
        return (
            mentions_negative
            and not self.trial_requires_her2_positive
            and not _contains_any(self.trial_text, HER2_LOW_PHRASES)
        )


Rule = Callable[[MatchFacts], List[Finding]]


def her2_requirement(facts: MatchFacts) -> List[Finding]:
    findings: List[Finding] = []
    if facts.trial_requires_her2_positive:
        if facts.her2 is BiomarkerStatus.NEGATIVE:
            findings.append(Finding(
                "HER2 status mismatch: Trial requires HER2+, patient is HER2-",
                _exclude(15, "Hard exclusion: Patient is HER2-negative but trial requires "
                             "HER2-positive status. This is a fundamental eligibility criterion."),
            ))
        elif facts.her2 is BiomarkerStatus.UNKNOWN:
            findings.append(Finding(
                "HER2 status unknown: Trial requires HER2+, patient status not documented",
                _uncertain(45, "Uncertain match: HER2 status not documented. Additional testing "
                               "required to determine eligibility for this HER2-positive trial."),
            ))
    if facts.trial_requires_her2_negative:
        if facts.her2 is BiomarkerStatus.POSITIVE:
            findings.append(Finding(
                "HER2 status mismatch: Trial requires HER2-, patient is HER2+",
                _exclude(15, "Hard exclusion: Patient is HER2-positive but trial requires "
                             "HER2-negative status."),
            ))
        elif facts.her2 is BiomarkerStatus.UNKNOWN:
            findings.append(Finding(
                "HER2 status unknown: Trial requires HER2-, patient status not documented",
                _uncertain(45, "Uncertain match: HER2 status not documented. Additional testing "
                               "required to determine eligibility for this HER2-negative trial."),
            ))
    return findings


def stage_requirement(facts: MatchFacts) -> List[Finding]:
    findings: List[Finding] = []
    if _contains_any(facts.trial_text, METASTATIC_TRIAL_PHRASES) and facts.is_early_stage:
        findings.append(Finding(
            "Stage mismatch: Trial for metastatic disease, patient has early-stage cancer",
            _exclude(20, "Hard exclusion: Trial is for metastatic/advanced breast cancer, "
                         "but patient has early-stage disease."),
        ))
    if _contains_any(facts.trial_text, EARLY_TRIAL_PHRASES) and facts.is_metastatic:
        findings.append(Finding(
            "Stage mismatch: Trial for early-stage disease, patient has metastatic cancer",
            _exclude(20, "Hard exclusion: Trial is for early-stage breast cancer, "
                         "but patient has metastatic disease."),
        ))
    return findings


def prior_treatment_requirement(facts: MatchFacts) -> List[Finding]:
    findings: List[Finding] = []
    treatments = facts.prior_treatments
    if _contains_any(facts.trial_text, REQUIRES_PRIOR_TRASTUZUMAB) and not _contains_any(
        treatments, TRASTUZUMAB_PHRASES
    ):
        findings.append(Finding(
            "Prior treatment requirement: Trial requires prior trastuzumab, "
            "patient has not received it",
            _exclude(25, "Hard exclusion: Trial requires prior trastuzumab therapy, but "
                         "patient treatment history does not include it."),
        ))
    if _contains_any(facts.trial_text, REQUIRES_PRIOR_TAXANE) and not _contains_any(
        treatments, TAXANE_PHRASES
    ):
        findings.append(Finding(
            "Prior treatment requirement: Trial requires prior taxane, "
            "patient has not received it",
            _exclude(25, "Hard exclusion: Trial requires prior taxane-based therapy, but "
                         "patient treatment history does not include it."),
        ))
    if _contains_any(facts.exclusion_text, EXCLUDES_TDM1) and _contains_any(
        treatments, TDM1_PHRASES
    ):
        findings.append(Finding(
            "Prior treatment exclusion: Trial excludes prior T-DM1, patient has received it",
            _exclude(15, "Hard exclusion: Trial excludes patients with prior T-DM1 therapy, "
                         "but patient has received it."),
        ))
    return findings


def ecog_requirement(facts: MatchFacts) -> List[Finding]:
    if facts.ecog is None or facts.ecog <= 1:
        return []
    if not _ECOG_ZERO_TO_ONE.search(facts.trial_text):
        return []
    return [Finding(
        f"ECOG performance status: Trial requires ECOG 0-1, patient is ECOG {facts.ecog}",
        _exclude(30, "Hard exclusion: Trial requires ECOG performance status 0-1, "
                     f"but patient has ECOG {facts.ecog}."),
    )]


def tnbc_subtype(facts: MatchFacts) -> List[Finding]:
    trial_for_tnbc = _contains_any(facts.trial_text, TNBC_PHRASES)
    if trial_for_tnbc and not facts.is_tnbc and facts.her2 is BiomarkerStatus.POSITIVE:
        return [Finding(
            "Subtype mismatch: Trial for TNBC, patient is HER2+",
            _exclude(15, "Hard exclusion: Trial is for triple-negative breast cancer, "
                         "but patient is HER2-positive."),
        )]
    return []


def brain_metastases(facts: MatchFacts) -> List[Finding]:
    if _contains_any(facts.exclusion_text, EXCLUDES_BRAIN_METS) and facts.has_brain_mets:
        return [Finding(
            "Brain metastases: Trial excludes brain/CNS metastases, patient has them",
            _exclude(20, "Hard exclusion: Trial excludes patients with brain metastases, "
                         "but patient has documented CNS involvement."),
        )]
    return []


def ai_consistency(facts: MatchFacts) -> List[Finding]:
    """Flag explanation text that contradicts known patient facts. Never overrides."""
    text = facts.assessment_text
    findings: List[Finding] = []
    if facts.her2 is BiomarkerStatus.POSITIVE and _contains_any(
        text, ("her2-negative", "her2 negative")
    ):
        findings.append(Finding(
            "AI consistency error: Assessment mentions HER2-negative but patient is HER2-positive"
        ))
    if facts.her2 is BiomarkerStatus.NEGATIVE and _contains_any(
        text, ("her2-positive", "her2 positive")
    ):
        findings.append(Finding(
            "AI consistency error: Assessment mentions HER2-positive but patient is HER2-negative"
        ))
    if facts.is_metastatic and _contains_any(text, ("early-stage", "early stage")):
        findings.append(Finding(
            "AI consistency error: Assessment mentions early-stage but patient has "
            "metastatic disease"
        ))
    return findings


# Order matters: with LAST_TRIGGERED the later rule's override wins.
RULES: Tuple[Rule, ...] = (
    her2_requirement,
    stage_requirement,
    prior_treatment_requirement,
    ecog_requirement,
    tnbc_subtype,
    brain_metastases,
    ai_consistency,
)


def _resolve(
    current: Optional[Override], candidate: Override, policy: OverridePolicy
) -> Override:
    if current is None or policy is OverridePolicy.LAST_TRIGGERED:
        return candidate
    # STRICTEST: exclude > uncertain > match, then the lower score; ties keep the earlier.
    if candidate.severity() > current.severity():
        return candidate
    return current


def apply_guardrails(
    patient: PatientProfile,
    trial: TrialRecord,
    assessment: AIVerdict,
    *,
    policy: OverridePolicy = OverridePolicy.LAST_TRIGGERED,
) -> GuardrailVerdict:
    """Evaluate every rule in order and fold the findings into one verdict."""
    facts = MatchFacts.derive(patient, trial, assessment)
    flags: List[str] = []
    override: Optional[Override] = None

    for rule in RULES:
        for finding in rule(facts):
            logger.debug(
                "Guardrail %s triggered for %s: %s",
                rule.__name__,
                trial.nct_id or "<no id>",
                finding.flag,
            )
            flags.append(finding.flag)
            if finding.override is not None:
                override = _resolve(override, finding.override, policy)

    if override is None:
        return GuardrailVerdict(
            should_override=False, flags=flags, reasoning=NO_OVERRIDE_REASONING
        )
    return GuardrailVerdict(
        should_override=True,
        override_score=override.score,
        override_status=override.status,
        flags=flags,
        reasoning=override.reasoning,
    )


__all__ = [
    "Finding",
    "MatchFacts",
    "NO_OVERRIDE_REASONING",
    "Override",
    "RULES",
    "apply_guardrails",
]
