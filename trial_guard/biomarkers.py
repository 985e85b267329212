"""Tri-state biomarker status from free-form values ("3+", "HER2 negative", ...)."""

from typing import Mapping, Optional

from trial_guard.models import BiomarkerStatus


_POSITIVE_EXACT = ("3+", "2+")
_NEGATIVE_EXACT = ("0", "1+")


def find_biomarker_key(biomarkers: Mapping[str, str], marker: str) -> Optional[str]:
    """Return the first key whose lowercase form contains ``marker``."""
    needle = marker.lower()
    for key in biomarkers:
        if needle in key.lower():
            return key
    return None


def status_from_value(value: str) -> BiomarkerStatus:
    text = ("" if value is None else str(value)).strip().lower()
    # Positive is checked first, so "positive/negative" reads as positive.
    if "positive" in text or "+" in text or text in _POSITIVE_EXACT:
        return BiomarkerStatus.POSITIVE
    if "negative" in text or "-" in text or text in _NEGATIVE_EXACT:
        return BiomarkerStatus.NEGATIVE
    return BiomarkerStatus.UNKNOWN


def resolve_biomarker_status(
    biomarkers: Optional[Mapping[str, str]], marker: str
) -> BiomarkerStatus:
    """Resolve ``marker`` (case-insensitive substring of a key) to a status.

    An empty marker is a substring of every key and so resolves the first entry.
    """
    if not biomarkers:
        return BiomarkerStatus.UNKNOWN
    key = find_biomarker_key(biomarkers, marker)
    if key is None:
        return BiomarkerStatus.UNKNOWN
    return status_from_value(biomarkers[key])


__all__ = ["find_biomarker_key", "resolve_biomarker_status", "status_from_value"]
