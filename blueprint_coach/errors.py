"""Exception taxonomy for the blueprint coach.

Only programmer errors escape the public API. Everything a user can trigger is
returned as a result (ValidationResult, TurnResult, SaveResult) and rendered as
an assistant message.

- StageGraphError / MalformedEventError: integration bugs, raised loudly
- RecapError: recap could not be built, surfaced as an ``advance_rejected`` turn
- PersistenceError: store failure, retried by the autosave coordinator
- AIGenerationError: model call failed, replaced by template suggestions
"""

from typing import Optional


class BlueprintCoachError(Exception):
    """Base class for all coach errors."""


class StageGraphError(BlueprintCoachError):
    """Out-of-range stage or step lookup."""


class MalformedEventError(BlueprintCoachError):
    """UI sent an event that does not match the event contract."""


class RecapError(BlueprintCoachError):
    """A stage recap could not be generated from the captured values."""

    def __init__(self, stage: str, missing: Optional[list] = None):
        self.stage = stage
        self.missing = list(missing or [])
        detail = f" (missing: {', '.join(self.missing)})" if self.missing else ""
        super().__init__(f"Cannot build recap for {stage}{detail}")


class PersistenceError(BlueprintCoachError):
    """Conversation store failure.

    Attributes:
        retryable: False for auth/quota style failures that will not heal on retry
    """

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class AIGenerationError(BlueprintCoachError):
    """Generative model call failed, timed out, or returned nothing usable."""
