"""
Content Classifier.

Remote binary harmful / not-harmful check for note text, backed by a
PydanticAI agent with structured output. Every way the call can go wrong
(provider error, timeout, open circuit, malformed output) surfaces as a
single ClassificationError so the moderation gate can fail closed.

Usage:
    from geonotes.services.classifier import create_content_classifier

    classifier = create_content_classifier()
    harmful = await classifier.is_harmful("Lovely sunset view here")
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any

import aiobreaker
from pydantic_ai import Agent

from geonotes.core.concurrency import get_semaphore
from geonotes.core.config_schema import ModerationSchema
from geonotes.core.exceptions import ClassificationError
from geonotes.core.logging import get_logger
from geonotes.core.resilience import create_circuit_breaker
from geonotes.schemas.moderation import HarmVerdict

logger = get_logger(__name__)

SYSTEM_PROMPT = (
    "You are a content moderation classifier for short public notes pinned "
    "to places on a map. Decide whether the note is harmful: harassment, hate, "
    "threats, sexual content, doxxing, spam or scams, or instructions for "
    "violence or illegal activity. Ordinary opinions, reviews and descriptions "
    "of places are not harmful. Answer only with the structured verdict."
)


class ContentClassifier(ABC):
    """Binary harmful-content check."""

    @abstractmethod
    async def is_harmful(self, text: str) -> bool:
        """
        Classify text.

        Raises:
            ClassificationError: If no trustworthy verdict could be obtained
        """


class AgentContentClassifier(ContentClassifier):
    """Classifier backed by a single-turn PydanticAI agent run."""

    def __init__(
        self,
        model: Any,
        timeout: float = 8.0,
        breaker: aiobreaker.CircuitBreaker | None = None,
    ) -> None:
        """
        Args:
            model: PydanticAI model name (e.g. "anthropic:...") or Model instance
            timeout: Seconds allowed for one classification
            breaker: Circuit breaker guarding the provider
        """
        self._model = model
        self._timeout = timeout
        self._breaker = breaker or create_circuit_breaker("classifier")
        self._agent: Agent[None, HarmVerdict] | None = None

    def _get_agent(self) -> Agent[None, HarmVerdict]:
        """Lazy initialization; only creates the agent when first called."""
        if self._agent is None:
            self._agent = Agent(
                self._model,
                output_type=HarmVerdict,
                instructions=SYSTEM_PROMPT,
            )
        return self._agent

    async def _run(self, text: str) -> Any:
        return await self._get_agent().run(text)

    async def is_harmful(self, text: str) -> bool:
        try:
            async with get_semaphore("classifier"):
                async with asyncio.timeout(self._timeout):
                    result = await self._breaker.call_async(self._run, text)
        except aiobreaker.CircuitBreakerError as e:
            raise ClassificationError("Classifier circuit open") from e
        except TimeoutError as e:
            raise ClassificationError(f"Classifier timed out after {self._timeout}s") from e
        except Exception as e:
            logger.error("Classifier call failed", extra={"error": str(e)})
            raise ClassificationError(f"Classifier call failed: {e}") from e

        verdict = getattr(result, "output", None)
        if not isinstance(verdict, HarmVerdict):
            raise ClassificationError("Classifier returned no verdict")

        logger.debug("Classifier verdict", extra={"harmful": verdict.harmful})
        return verdict.harmful


def create_content_classifier(config: ModerationSchema | None = None) -> AgentContentClassifier:
    """Build the classifier from moderation.yaml and application timeouts."""
    from geonotes.core.config import get_app_config

    app_config = get_app_config()
    config = config or app_config.moderation
    return AgentContentClassifier(
        model=config.classifier.model,
        timeout=app_config.application.timeouts.classifier,
        breaker=create_circuit_breaker(
            "classifier",
            fail_max=config.classifier.circuit_breaker_fail_max,
            timeout_duration=config.classifier.circuit_breaker_timeout,
        ),
    )
