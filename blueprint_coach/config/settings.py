"""Engine settings loaded from the environment.

Confidence thresholds, edge-case limits, autosave timing and model selection
are deployment-tunable, so they live here instead of in the nodes that use
them. Values come from ``.env`` (via python-dotenv) or the process environment.

Environment Variables:
- COACH_LOW_CONFIDENCE: below this the engine asks a clarifying question (default: 50)
- COACH_HIGH_CONFIDENCE: at or above this a submission may auto-advance (default: 85)
- COACH_AUTO_ADVANCE: allow high-confidence submissions to skip confirmation (default: true)
- COACH_REVIEW_BEFORE_ADVANCE: show the stage recap before moving on (default: true)
- COACH_RAMBLE_MAX_CHARS: input length that counts as rambling (default: 250)
- COACH_MULTIPLE_CLAUSE_LIMIT: comma-separated ideas allowed in one answer (default: 3)
- COACH_AUTOSAVE_DEBOUNCE_MS: autosave debounce interval (default: 600)
- COACH_SAVE_MAX_RETRIES / COACH_SAVE_BACKOFF_MS: persistence retry policy
- COACH_AI_TIMEOUT_SECONDS: suggestion generation timeout (default: 20)
- LLM_PROVIDER: "anthropic" or "openai" (default: anthropic)
- ANTHROPIC_MODEL / OPENAI_MODEL / ANTHROPIC_API_KEY / OPENAI_API_KEY
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _is_feature_enabled(feature_name: str, default: bool = False) -> bool:
    """Check if a feature is enabled via environment variable.

    Args:
        feature_name: Name of the feature flag (e.g., 'COACH_AUTO_ADVANCE')
        default: Value used when the variable is unset

    Returns:
        True if feature is enabled, False otherwise
    """
    value = os.getenv(feature_name)
    if value is None:
        return default
    return value.strip().lower() in ("true", "1", "yes", "on")


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


@dataclass
class EngineSettings:
    """Tunable parameters for the conversation engine.

    The confidence thresholds drive the graduated response:
    below ``low_confidence_threshold`` ask a clarifying question, at or above
    ``high_confidence_threshold`` a submission may commit without a confirm
    round-trip, anything in between asks for confirmation.
    """

    low_confidence_threshold: int = 50
    high_confidence_threshold: int = 85
    auto_advance_enabled: bool = True
    review_before_advance: bool = True

    ramble_max_chars: int = 250
    multiple_clause_limit: int = 3

    autosave_debounce_seconds: float = 0.6
    save_max_retries: int = 3
    save_backoff_seconds: float = 0.25

    ai_timeout_seconds: float = 20.0
    llm_provider: str = "anthropic"
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    openai_model: str = "gpt-4o-mini"
    anthropic_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    temperature: float = 0.7
    max_tokens: int = 1024

    def __post_init__(self):
        if not 0 <= self.low_confidence_threshold <= self.high_confidence_threshold <= 100:
            raise ValueError(
                "Confidence thresholds must satisfy 0 <= low <= high <= 100 "
                f"(got low={self.low_confidence_threshold}, high={self.high_confidence_threshold})"
            )
        if self.ramble_max_chars <= 0:
            raise ValueError("ramble_max_chars must be positive")
        if self.multiple_clause_limit < 1:
            raise ValueError("multiple_clause_limit must be at least 1")

    @classmethod
    def from_env(cls) -> "EngineSettings":
        """Build settings from environment variables, falling back to defaults."""
        return cls(
            low_confidence_threshold=_int_env("COACH_LOW_CONFIDENCE", 50),
            high_confidence_threshold=_int_env("COACH_HIGH_CONFIDENCE", 85),
            auto_advance_enabled=_is_feature_enabled("COACH_AUTO_ADVANCE", default=True),
            review_before_advance=_is_feature_enabled("COACH_REVIEW_BEFORE_ADVANCE", default=True),
            ramble_max_chars=_int_env("COACH_RAMBLE_MAX_CHARS", 250),
            multiple_clause_limit=_int_env("COACH_MULTIPLE_CLAUSE_LIMIT", 3),
            autosave_debounce_seconds=_int_env("COACH_AUTOSAVE_DEBOUNCE_MS", 600) / 1000.0,
            save_max_retries=_int_env("COACH_SAVE_MAX_RETRIES", 3),
            save_backoff_seconds=_int_env("COACH_SAVE_BACKOFF_MS", 250) / 1000.0,
            ai_timeout_seconds=_float_env("COACH_AI_TIMEOUT_SECONDS", 20.0),
            llm_provider=os.getenv("LLM_PROVIDER", "anthropic").strip().lower(),
            anthropic_model=os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-5-20250929"),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
        )


_settings: Optional[EngineSettings] = None


def get_settings() -> EngineSettings:
    """Return the process-wide settings, reading the environment on first use."""
    global _settings
    if _settings is None:
        _settings = EngineSettings.from_env()
    return _settings
