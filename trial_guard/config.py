"""Runtime settings for the guardrail pipeline and the assessment client.

Every value comes from an environment variable and falls back to an in-code
default, so the engine runs without any configuration at all.
"""

from dataclasses import dataclass
import logging
import os
from typing import Optional

from trial_guard.models import OverridePolicy


@dataclass(frozen=True)
class Settings:
    openai_api_key: Optional[str]
    llm_model_name: str
    assessment_timeout_seconds: float
    assessment_max_workers: int
    override_policy: OverridePolicy
    log_level: str


DEFAULT_LLM_MODEL_NAME = "gpt-4o-mini"
DEFAULT_ASSESSMENT_TIMEOUT_SECONDS = 10.0
DEFAULT_ASSESSMENT_MAX_WORKERS = 4
DEFAULT_OVERRIDE_POLICY = OverridePolicy.LAST_TRIGGERED

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _parse_float(name: str, default: float) -> float:
    value = os.getenv(name, "").strip()
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _parse_int(name: str, default: int) -> int:
    value = os.getenv(name, "").strip()
    if not value:
        return default
    try:
        return max(1, int(value))
    except ValueError:
        return default


def _parse_policy(name: str) -> OverridePolicy:
    value = os.getenv(name, "").strip().lower()
    if not value:
        return DEFAULT_OVERRIDE_POLICY
    try:
        return OverridePolicy(value)
    except ValueError:
        # Unknown policy names keep the compatible default.
        return DEFAULT_OVERRIDE_POLICY


def load_settings() -> Settings:
    """Read the guardrail and assessment settings from the environment.

    Notes:
    - TRIAL_GUARD_OVERRIDE_POLICY selects how competing guardrail overrides
      are resolved ("last_triggered" or "strictest").
    - Malformed numeric values fall back to the in-code defaults.
    """
    return Settings(
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        llm_model_name=os.getenv("LLM_MODEL_NAME", DEFAULT_LLM_MODEL_NAME),
        assessment_timeout_seconds=_parse_float(
            "ASSESSMENT_TIMEOUT_SECONDS", DEFAULT_ASSESSMENT_TIMEOUT_SECONDS
        ),
        assessment_max_workers=_parse_int(
            "ASSESSMENT_MAX_WORKERS", DEFAULT_ASSESSMENT_MAX_WORKERS
        ),
        override_policy=_parse_policy("TRIAL_GUARD_OVERRIDE_POLICY"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Configure root logging from settings."""
    settings = settings or load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )


__all__ = ["Settings", "load_settings", "setup_logging"]
