"""
Moderation Schemas.

Outcome of the moderation gate and the classifier's structured verdict.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict

POLICY_REJECTION = "violates content policy"


class ModerationResult(BaseModel):
    """Allowed, or rejected with a human-readable reason.

    ``stage`` records which check decided a rejection: ``heuristic`` for the
    local rules, ``classifier`` for the remote harmful-content check.
    """

    allowed: bool
    reason: str | None = None
    stage: Literal["heuristic", "classifier"] | None = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def allow(cls) -> "ModerationResult":
        return cls(allowed=True)

    @classmethod
    def reject(cls, reason: str, stage: Literal["heuristic", "classifier"]) -> "ModerationResult":
        return cls(allowed=False, reason=reason, stage=stage)


class HarmVerdict(BaseModel):
    """Structured output requested from the content classifier."""

    harmful: bool
