"""Profile normalization and biomarker inference.

Fixes common extraction slips (out-of-range age, inconsistent stage and ECOG
notation, biomarker keys like "her-2" or "ER status") and fills in HER2/ER/PR
from the patient's own text when the extractor left them blank. Inferring a
status that is stated somewhere in the notes avoids spurious "HER2 unknown"
guardrail verdicts downstream.

Usage (programmatic):
    from trial_guard.normalizer import normalize_and_infer
    profile = normalize_and_infer(profile, raw_text=notes)
"""

import logging
import re
from typing import Dict, Iterable, List, Optional, Tuple

from trial_guard.models import PatientProfile


logger = logging.getLogger(__name__)

MIN_AGE = 0
MAX_AGE = 120

INFERRED_MARKERS = ("HER2", "ER", "PR")

TNBC_PHRASES = ("triple negative", "triple-negative", "tnbc")
HORMONE_RECEPTOR_POSITIVE_PHRASES = ("hr+", "hr-positive", "hormone receptor positive")

_STAGE_PREFIX = re.compile(r"^stage\s*", re.IGNORECASE)
_STAGE_NUMERAL = re.compile(r"^(?:0|I{1,3}|IV|V)[A-C]?\d?$", re.IGNORECASE)
_BARE_DIGIT = re.compile(r"(?<!\d)(\d)(?!\d)")
_NON_ALNUM = re.compile(r"[^A-Z0-9]")


def canonical_biomarker_key(key: str) -> str:
    return _NON_ALNUM.sub("", str(key).upper())


def canonical_stage(stage: Optional[str]) -> Optional[str]:
    """Return ``"Stage <token>"`` or None for a blank stage."""
    if stage is None:
        return None
    collapsed = " ".join(stage.split())
    token = _STAGE_PREFIX.sub("", collapsed).strip()
    if not token:
        return None
    if _STAGE_NUMERAL.match(token):
        token = token.upper()
    return f"Stage {token}"


def canonical_performance_status(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    if value.strip().upper().startswith("ECOG"):
        return value
    match = _BARE_DIGIT.search(value)
    if match:
        return f"ECOG {match.group(1)}"
    return value


def _positive_variants(marker: str) -> Tuple[str, ...]:
    m = marker.lower()
    return (f"{m}+", f"{m}-positive", f"{m} positive", f"{m}pos")


def _negative_variants(marker: str) -> Tuple[str, ...]:
    m = marker.lower()
    return (f"{m}-", f"{m}-negative", f"{m} negative", f"{m}neg")


def _mentions(corpus: str, phrases: Iterable[str]) -> bool:
    # A phrase only counts at a word start: "cancer-" must not read as "er-".
    for phrase in phrases:
        if re.search(r"(?<![a-z])" + re.escape(phrase), corpus):
            return True
    return False


def _inference_branches(marker: str) -> List[Tuple[str, Tuple[str, ...], str]]:
    """Ordered (value, phrases, source) branches; first hit wins."""
    branches = [
        ("positive", _positive_variants(marker), "patient text"),
        ("negative", _negative_variants(marker), "patient text"),
        ("negative", TNBC_PHRASES, "TNBC"),
    ]
    if marker in ("ER", "PR"):
        branches.append(("positive", HORMONE_RECEPTOR_POSITIVE_PHRASES, "HR+ status"))
    return branches


def infer_biomarker(marker: str, corpus: str) -> Optional[str]:
    for value, phrases, source in _inference_branches(marker):
        if _mentions(corpus, phrases):
            logger.info("Inferred %s: %s from %s", marker, value, source)
            return value
    return None


def build_corpus(profile: PatientProfile, raw_text: Optional[str] = None) -> str:
    parts = [
        *profile.conditions,
        *profile.medications,
        *profile.prior_treatments,
        raw_text or "",
    ]
    return " ".join(parts).lower()


def normalize_and_infer(
    profile: PatientProfile, raw_text: Optional[str] = None
) -> PatientProfile:
    """Return a corrected copy of ``profile``; never raises."""
    age = min(MAX_AGE, max(MIN_AGE, profile.age))

    biomarkers: Dict[str, str] = {}
    for key, value in profile.biomarkers.items():
        new_key = canonical_biomarker_key(key)
        if new_key:
            biomarkers[new_key] = value

    corpus = build_corpus(profile, raw_text)
    for marker in INFERRED_MARKERS:
        if marker in biomarkers:
            continue
        inferred = infer_biomarker(marker, corpus)
        if inferred is not None:
            biomarkers[marker] = inferred

    return profile.model_copy(
        update={
            "age": age,
            "stage": canonical_stage(profile.stage),
            "performance_status": canonical_performance_status(
                profile.performance_status
            ),
            "biomarkers": biomarkers,
        }
    )


__all__ = [
    "canonical_biomarker_key",
    "canonical_performance_status",
    "canonical_stage",
    "infer_biomarker",
    "normalize_and_infer",
]
