"""
Moderation Gate.

Decides whether note text may be persisted. Two strategies exist and one is
selected by ``moderation.strategy`` in config/settings/moderation.yaml:

    heuristic             - local rules only
    heuristic_classifier  - local rules, then the remote harmful-content
                            classifier (only if the local rules pass)

The classifier stage fails closed: if the classifier cannot give a clear
"not harmful" verdict, the text is rejected as a content-policy violation.

Usage:
    from geonotes.services.moderation import create_moderation_gate

    gate = create_moderation_gate()
    result = await gate.validate("Great coffee shop, quiet patio in the evening.")
    if not result.allowed:
        print(result.reason)
"""

import re
import unicodedata
from abc import ABC, abstractmethod
from dataclasses import dataclass

from geonotes.core.config_schema import ModerationSchema
from geonotes.core.exceptions import ClassificationError, ConfigurationError
from geonotes.core.logging import get_logger, log_with_source
from geonotes.schemas.moderation import POLICY_REJECTION, ModerationResult
from geonotes.services.classifier import ContentClassifier

logger = get_logger(__name__)

REASON_EMPTY = "Note cannot be empty."
REASON_PROFANITY = "Please remove offensive language."
REASON_PATTERN = "Links, spam, or repeated characters are not allowed."
REASON_GIBBERISH = "Note looks cryptic/gibberish. Add more meaningful words."

_WHITESPACE_RUN = re.compile(r"[\r\n\t]+")
_SYMBOL_CATEGORIES = frozenset({"So", "Sk"})
_VOWELS = frozenset("aeiou")


def normalize_note_text(text: str) -> str:
    """Collapse line breaks and tabs into single spaces and trim."""
    return _WHITESPACE_RUN.sub(" ", text).strip()


def sanitize_note_for_display(text: str, max_length: int = 500) -> str:
    """Plain single-line text clamped to ``max_length`` with an ellipsis."""
    plain = normalize_note_text(text)
    return plain[:max_length] + "…" if len(plain) > max_length else plain


@dataclass(frozen=True)
class HeuristicRules:
    """Limits for the local moderation rules."""

    max_length: int = 500
    repeated_char_run: int = 5
    symbol_run: int = 6
    min_letters: int = 6
    min_vowel_ratio: float = 0.18
    max_vowel_ratio: float = 0.9
    profanity: tuple[str, ...] = ()

    @classmethod
    def from_config(cls, config: ModerationSchema) -> "HeuristicRules":
        return cls(
            max_length=config.max_length,
            repeated_char_run=config.repeated_char_run,
            symbol_run=config.symbol_run,
            min_letters=config.gibberish.min_letters,
            min_vowel_ratio=config.gibberish.min_vowel_ratio,
            max_vowel_ratio=config.gibberish.max_vowel_ratio,
            profanity=tuple(word.lower() for word in config.profanity),
        )


class HeuristicModerator:
    """Local, synchronous moderation rules. No network access."""

    def __init__(self, rules: HeuristicRules) -> None:
        self.rules = rules
        self._patterns = (
            re.compile(r"https?://", re.IGNORECASE),
            re.compile(r"@\w{2,}"),
            re.compile(r"(.)\1{%d,}" % (rules.repeated_char_run - 1), re.IGNORECASE),
        )

    def check(self, text: str) -> ModerationResult:
        trimmed = text.strip()

        if not trimmed:
            return ModerationResult.reject(REASON_EMPTY, "heuristic")
        if len(trimmed) > self.rules.max_length:
            return ModerationResult.reject(
                f"Note is too long (max {self.rules.max_length} characters).", "heuristic"
            )
        if self._contains_profanity(trimmed):
            return ModerationResult.reject(REASON_PROFANITY, "heuristic")
        if self._matches_disallowed_pattern(trimmed):
            return ModerationResult.reject(REASON_PATTERN, "heuristic")
        if self._looks_like_gibberish(trimmed):
            return ModerationResult.reject(REASON_GIBBERISH, "heuristic")
        return ModerationResult.allow()

    def _contains_profanity(self, text: str) -> bool:
        lowered = text.lower()
        return any(word in lowered for word in self.rules.profanity)

    def _matches_disallowed_pattern(self, text: str) -> bool:
        if any(pattern.search(text) for pattern in self._patterns):
            return True
        return self._longest_symbol_run(text) >= self.rules.symbol_run

    @staticmethod
    def _longest_symbol_run(text: str) -> int:
        longest = current = 0
        for char in text:
            if unicodedata.category(char) in _SYMBOL_CATEGORIES:
                current += 1
                longest = max(longest, current)
            else:
                current = 0
        return longest

    def _looks_like_gibberish(self, text: str) -> bool:
        letters = [char for char in text.lower() if "a" <= char <= "z"]
        if len(letters) < self.rules.min_letters:
            return False
        ratio = sum(1 for char in letters if char in _VOWELS) / len(letters)
        return ratio < self.rules.min_vowel_ratio or ratio > self.rules.max_vowel_ratio


# =============================================================================
# Strategies
# =============================================================================


class ModerationStrategy(ABC):
    """Contract shared by all moderation backends."""

    name: str

    @abstractmethod
    async def validate(self, text: str) -> ModerationResult: ...


class HeuristicStrategy(ModerationStrategy):
    """Local rules only."""

    name = "heuristic"

    def __init__(self, moderator: HeuristicModerator) -> None:
        self.moderator = moderator

    async def validate(self, text: str) -> ModerationResult:
        return self.moderator.check(text)


class ClassifierStrategy(ModerationStrategy):
    """Local rules, then the remote classifier. Fails closed."""

    name = "heuristic_classifier"

    def __init__(self, moderator: HeuristicModerator, classifier: ContentClassifier) -> None:
        self.moderator = moderator
        self.classifier = classifier

    async def validate(self, text: str) -> ModerationResult:
        local = self.moderator.check(text)
        if not local.allowed:
            return local

        try:
            harmful = await self.classifier.is_harmful(text.strip())
        except ClassificationError as e:
            log_with_source(
                logger, "moderation", "warning", "Classifier failed, rejecting note",
                error=e.message,
            )
            return ModerationResult.reject(POLICY_REJECTION, "classifier")
        except Exception as e:
            log_with_source(
                logger, "moderation", "error", "Unexpected classifier error, rejecting note",
                error=str(e),
                error_type=type(e).__name__,
            )
            return ModerationResult.reject(POLICY_REJECTION, "classifier")

        if harmful:
            log_with_source(logger, "moderation", "info", "Classifier flagged note as harmful")
            return ModerationResult.reject(POLICY_REJECTION, "classifier")
        return ModerationResult.allow()


def create_moderation_gate(
    config: ModerationSchema | None = None,
    classifier: ContentClassifier | None = None,
    classifier_enabled: bool | None = None,
) -> ModerationStrategy:
    """
    Build the moderation strategy selected by configuration.

    Args:
        config: Moderation settings; read from moderation.yaml if omitted
        classifier: Classifier to use; built from config if omitted
        classifier_enabled: Feature flag override; read from features.yaml
            if omitted. When false the classifier strategy is downgraded to
            heuristic-only.

    Raises:
        ConfigurationError: If the strategy name is unknown
    """
    if config is None or classifier_enabled is None:
        from geonotes.core.config import get_app_config

        app_config = get_app_config()
        config = config or app_config.moderation
        if classifier_enabled is None:
            classifier_enabled = app_config.features.moderation_classifier_enabled

    moderator = HeuristicModerator(HeuristicRules.from_config(config))

    if config.strategy == "heuristic" or not classifier_enabled:
        logger.info("Moderation gate ready", extra={"strategy": "heuristic"})
        return HeuristicStrategy(moderator)

    if config.strategy == "heuristic_classifier":
        if classifier is None:
            from geonotes.services.classifier import create_content_classifier

            classifier = create_content_classifier(config)
        logger.info("Moderation gate ready", extra={"strategy": config.strategy})
        return ClassifierStrategy(moderator, classifier)

    raise ConfigurationError(f"Unknown moderation strategy: {config.strategy}")
