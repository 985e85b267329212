"""LLM-based fit assessment for one patient/trial pair.

Produces the advisory AIVerdict that the guardrails consume. An unparsable
reply is re-prompted once with a JSON-only instruction. Transport
errors, timeouts and a second unparsable reply degrade to a conservative
fallback verdict (score 0, low confidence, manual review) instead of failing
the whole match.

CLI (ad-hoc):
  uv run python -m trial_guard.assessment --profile patient.json --trial trial.json
"""

import argparse
import json
import logging
import os
import re
from functools import lru_cache
from typing import Dict, Optional

from dotenv import load_dotenv
from openai import OpenAI, OpenAIError

from trial_guard.config import load_settings
from trial_guard.models import AIVerdict, ConfidenceLevel, PatientProfile, TrialRecord
from trial_guard.prompts.assessment_prompt import SYSTEM_PROMPT


logger = logging.getLogger(__name__)

RETRY_INSTRUCTION = "Return valid JSON only. No markdown, no explanations."


def fallback_verdict() -> AIVerdict:
    return AIVerdict(
        match_score=0,
        confidence_level=ConfidenceLevel.LOW,
        exclusion_flags=["Unable to assess criteria due to processing error"],
        uncertain_factors=["All criteria require manual review"],
        explanation="Assessment failed. Please review trial criteria manually.",
        questions_to_ask=["Verify all eligibility criteria with trial coordinator"],
    )


def build_assessment_payload(profile: PatientProfile, trial: TrialRecord) -> str:
    criteria = {
        "inclusion": trial.inclusion_criteria,
        "exclusion": trial.exclusion_criteria,
    }
    return (
        "Patient:\n"
        + json.dumps(profile.to_dict(), ensure_ascii=False, indent=2)
        + "\n\nTrial Criteria:\n"
        + json.dumps(criteria, ensure_ascii=False, indent=2)
    )


def _strip_fences(s: str) -> str:
    s = s.strip()
    if s.startswith("```") and s.endswith("```"):
        s = re.sub(r"^```(?:json)?\s*", "", s, flags=re.IGNORECASE)
        s = re.sub(r"\s*```$", "", s)
    return s.strip()


def _coerce_json(raw: str) -> Dict:
    stripped = _strip_fences(raw)
    if not stripped:
        raise ValueError("Assessment returned empty content")
    try:
        data = json.loads(stripped)
    except json.JSONDecodeError:
        start = stripped.find("{")
        end = stripped.rfind("}")
        if start == -1 or end <= start:
            raise ValueError("Assessment returned non-JSON content. Received: " + stripped)
        try:
            data = json.loads(stripped[start : end + 1])
        except json.JSONDecodeError as exc:
            raise ValueError(
                "Assessment returned non-JSON content. Received: " + stripped
            ) from exc
    if not isinstance(data, dict):
        raise ValueError("Assessment JSON must be an object")
    return data


@lru_cache(maxsize=4)
def _get_client(timeout: float) -> OpenAI:
    return OpenAI(timeout=timeout, max_retries=1)


def _complete(client: OpenAI, model: str, user_content: str) -> str:
    resp = client.chat.completions.create(
        model=model,
        messages=[
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": user_content},
        ],
        temperature=0,
    )
    return resp.choices[0].message.content or ""


def assess_trial(
    profile: PatientProfile,
    trial: TrialRecord,
    *,
    model: Optional[str] = None,
    client: Optional[OpenAI] = None,
) -> AIVerdict:
    """Assess one pair; an unparsable reply is re-prompted once before falling back."""
    settings = load_settings()
    if client is None:
        if not os.getenv("OPENAI_API_KEY"):
            raise RuntimeError("OPENAI_API_KEY is required for LLM assessment")
        client = _get_client(settings.assessment_timeout_seconds)

    model_to_use = model or settings.llm_model_name
    user_content = build_assessment_payload(profile, trial)
    prompts = (user_content, f"{user_content}\n\n{RETRY_INSTRUCTION}")
    for attempt, prompt in enumerate(prompts, start=1):
        try:
            content = _complete(client, model_to_use, prompt)
        except OpenAIError as exc:
            logger.warning("Assessment of %s failed: %s", trial.nct_id, exc)
            return fallback_verdict()
        try:
            data = _coerce_json(content)
        except ValueError as exc:
            logger.warning(
                "Assessment of %s unparsable (attempt %d): %s", trial.nct_id, attempt, exc
            )
            continue
        return AIVerdict.model_validate(data)
    return fallback_verdict()


def main() -> None:
    load_dotenv()
    parser = argparse.ArgumentParser(
        description="Assess one patient/trial pair with the LLM (no guardrails)"
    )
    parser.add_argument("--profile", type=str, required=True, help="Patient profile JSON")
    parser.add_argument("--trial", type=str, required=True, help="Trial record JSON")
    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="OpenAI chat model id (defaults to LLM_MODEL_NAME or project default)",
    )
    args = parser.parse_args()

    with open(args.profile, "r", encoding="utf-8") as f:
        profile = PatientProfile.model_validate(json.load(f))
    with open(args.trial, "r", encoding="utf-8") as f:
        trial = TrialRecord.model_validate(json.load(f))

    verdict = assess_trial(profile, trial, model=args.model)
    print(json.dumps(verdict.to_dict(), ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
