"""End-to-end match: normalize, validate, assess, guard, merge.

Usage:
  uv run python -m trial_guard.pipeline --profile patient.json --trials trials.json \
      [--verdicts verdicts.json] [--raw-text "..."] [--policy strictest]

What it does:
- Normalizes the extracted profile and infers missing HER2/ER/PR
- Validates the profile and the trial catalog (advisory, never blocking)
- Obtains one AI verdict per trial (from a file, or the LLM assessor)
- Applies the deterministic guardrails and merges overrides into the result
"""

from concurrent.futures import ThreadPoolExecutor
import argparse
import json
import logging
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from trial_guard.assessment import assess_trial
from trial_guard.config import Settings, load_settings, setup_logging
from trial_guard.guardrails import apply_guardrails
from trial_guard.models import (
    AIVerdict,
    GuardrailVerdict,
    OverridePolicy,
    OverrideStatus,
    PatientProfile,
    TrialRecord,
    ValidationOutcome,
)
from trial_guard.normalizer import normalize_and_infer
from trial_guard.validation import validate_profile, validate_trials


logger = logging.getLogger(__name__)

Assessor = Callable[[PatientProfile, TrialRecord], AIVerdict]


class TrialMatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    trial: TrialRecord
    assessment: AIVerdict
    guardrail: GuardrailVerdict
    final_score: int
    final_status: Optional[OverrideStatus] = None


class MatchReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    profile: PatientProfile
    profile_validation: ValidationOutcome
    trial_validation: ValidationOutcome
    matches: List[TrialMatch] = Field(default_factory=list)

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


def merge_verdict(
    trial: TrialRecord, assessment: AIVerdict, guardrail: GuardrailVerdict
) -> TrialMatch:
    """Replace the AI score/status when the guardrails override it."""
    if guardrail.should_override and guardrail.override_score is not None:
        final_score = guardrail.override_score
        final_status = guardrail.override_status
    else:
        final_score = assessment.match_score
        final_status = None
    return TrialMatch(
        trial=trial,
        assessment=assessment,
        guardrail=guardrail,
        final_score=final_score,
        final_status=final_status,
    )


def _assess_all(
    profile: PatientProfile,
    trials: Sequence[TrialRecord],
    assess: Assessor,
    max_workers: int,
) -> List[AIVerdict]:
    if not trials:
        return []
    workers = max(1, min(max_workers, len(trials)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        # map preserves input order
        return list(pool.map(lambda t: assess(profile, t), trials))


def match_trials(
    profile: PatientProfile,
    trials: Sequence[TrialRecord],
    *,
    raw_text: Optional[str] = None,
    verdicts: Optional[Sequence[AIVerdict]] = None,
    assess: Optional[Assessor] = None,
    settings: Optional[Settings] = None,
    policy: Optional[OverridePolicy] = None,
) -> MatchReport:
    settings = settings or load_settings()
    policy = policy or settings.override_policy

    normalized = normalize_and_infer(profile, raw_text)
    profile_validation = validate_profile(normalized)
    trial_validation = validate_trials(trials)
    for message in profile_validation.errors:
        logger.warning("Profile validation error: %s", message)
    for message in trial_validation.errors:
        logger.warning("Trial validation error: %s", message)

    if verdicts is None:
        verdicts = _assess_all(
            normalized, trials, assess or assess_trial, settings.assessment_max_workers
        )
    elif len(verdicts) != len(trials):
        raise ValueError(
            f"Expected {len(trials)} verdicts, got {len(verdicts)}"
        )

    matches = [
        merge_verdict(trial, verdict, apply_guardrails(normalized, trial, verdict, policy=policy))
        for trial, verdict in zip(trials, verdicts)
    ]
    return MatchReport(
        profile=normalized,
        profile_validation=profile_validation,
        trial_validation=trial_validation,
        matches=matches,
    )


def load_profile(path: Path) -> PatientProfile:
    with path.open("r", encoding="utf-8") as f:
        return PatientProfile.model_validate(json.load(f))


def load_trials(path: Path) -> List[TrialRecord]:
    """Load a JSON array (or JSONL file) of trial records."""
    text = path.read_text(encoding="utf-8")
    if path.suffix == ".jsonl":
        items = [json.loads(line) for line in text.splitlines() if line.strip()]
    else:
        items = json.loads(text)
    return [TrialRecord.model_validate(item) for item in items]


def load_verdicts(path: Path) -> List[AIVerdict]:
    with path.open("r", encoding="utf-8") as f:
        return [AIVerdict.model_validate(item) for item in json.load(f)]


def main() -> None:
    # Load variables from .env if present (no-op if missing)
    load_dotenv()
    settings = load_settings()
    setup_logging(settings)

    parser = argparse.ArgumentParser(
        description="Match a patient profile against trials with deterministic guardrails"
    )
    parser.add_argument("--profile", type=Path, required=True, help="Patient profile JSON")
    parser.add_argument(
        "--trials", type=Path, required=True, help="Trial records (JSON array or .jsonl)"
    )
    parser.add_argument(
        "--verdicts",
        type=Path,
        default=None,
        help="Precomputed AI verdicts, one per trial in the same order (skips the LLM)",
    )
    parser.add_argument(
        "--raw-text", type=str, default=None, help="Original patient notes for inference"
    )
    parser.add_argument(
        "--policy",
        type=OverridePolicy,
        choices=list(OverridePolicy),
        default=settings.override_policy,
        help="How competing overrides are resolved",
    )
    args = parser.parse_args()

    profile = load_profile(args.profile)
    trials = load_trials(args.trials)
    verdicts = load_verdicts(args.verdicts) if args.verdicts else None

    report = match_trials(
        profile,
        trials,
        raw_text=args.raw_text,
        verdicts=verdicts,
        settings=settings,
        policy=args.policy,
    )
    print(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
