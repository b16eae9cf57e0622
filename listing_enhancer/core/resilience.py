"""
Resilience patterns for Listing Enhancer: the AI step combinator.

Every AI-backed pipeline step follows the same policy: try the text
generator, parse its answer strictly, and if either fails fall back to a
deterministic algorithm. ``ModelFallbackRunner`` implements that policy
once; steps supply a prompt builder, a parser and a fallback.

Retry schedule (max_attempts=3, models=[a, b, c, d], retry_delay=1s):
    Attempt 1: model a
    (1s)
    Attempt 2: model b
    (1s)
    Attempt 3: model c
    → fallback
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from listing_enhancer.core.exceptions import ParseError, ProviderError
from listing_enhancer.core.interfaces import GenerationOptions, ITextGenerator
from listing_enhancer.core.models import StepSource

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class AIStep(Generic[T]):
    """
    One AI-backed step.

    Attributes:
        name: Step name used in logs and narrative notes.
        build_prompt: Returns ``(system_prompt, user_prompt)``.
        parse: Turns a raw completion into a value; raises ParseError.
        fallback: Deterministic producer used when the AI path fails.
        json_mode: Ask the provider for a JSON object response.
    """

    name: str
    build_prompt: Callable[[], tuple[str, str]]
    parse: Callable[[str], T]
    fallback: Callable[[], T]
    json_mode: bool = True


@dataclass
class StepOutcome(Generic[T]):
    """Value produced by a step plus how it was produced."""

    value: T
    source: StepSource
    model_id: str | None = None
    attempts: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        """True when the AI path was tried and the fallback had to answer."""
        return self.source == StepSource.FALLBACK and self.attempts > 0

    def narrative(self, step_name: str) -> str:
        if self.source == StepSource.AI:
            return f"{step_name}: generated with {self.model_id} (attempt {self.attempts})"
        if self.attempts == 0:
            return f"{step_name}: AI unavailable, used rule-based analysis"
        last_error = self.errors[-1] if self.errors else "unknown error"
        return (
            f"{step_name}: AI failed after {self.attempts} attempt(s) "
            f"({last_error}); degraded to rule-based fallback"
        )


class ModelFallbackRunner:
    """
    Runs AIStep instances with a bounded, linear model cycle.

    At most ``max_attempts`` generator calls are made, walking ``models``
    in order with a fixed ``retry_delay`` between attempts. Each call is
    bounded by ``timeout`` seconds. Provider failures, timeouts and parse
    failures all count as a failed attempt; a non-retryable provider error
    (e.g. rejected credentials) ends the cycle early. When attempts are exhausted,
    or no generator is configured, the step's fallback produces the value.
    """

    def __init__(
        self,
        generator: ITextGenerator | None,
        models: list[str],
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ):
        self.generator = generator
        self.models = list(models)
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens

    @property
    def enabled(self) -> bool:
        return self.generator is not None and bool(self.models)

    def model_for_attempt(self, attempt: int) -> str:
        """Model id used for the zero-based ``attempt``."""
        return self.models[attempt % len(self.models)]

    async def run(self, step: AIStep[T]) -> StepOutcome[T]:
        """
        Execute a step: AI first, fallback on failure.

        Only ProviderError, ParseError and timeouts are absorbed here.
        Anything else is a bug in the step and propagates.
        """
        if not self.enabled:
            return StepOutcome(value=step.fallback(), source=StepSource.FALLBACK)

        system_prompt, user_prompt = step.build_prompt()
        options = GenerationOptions(
            json_mode=step.json_mode,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        errors: list[str] = []
        attempts_made = 0

        for attempt in range(self.max_attempts):
            attempts_made = attempt + 1
            model_id = self.model_for_attempt(attempt)
            try:
                raw = await asyncio.wait_for(
                    self.generator.generate(system_prompt, user_prompt, model_id, options),
                    timeout=self.timeout,
                )
                value = step.parse(raw)
                return StepOutcome(
                    value=value,
                    source=StepSource.AI,
                    model_id=model_id,
                    attempts=attempt + 1,
                    errors=errors,
                )
            except asyncio.TimeoutError:
                errors.append(f"{model_id} timed out after {self.timeout:.0f}s")
            except (ProviderError, ParseError) as e:
                errors.append(f"{model_id}: {e.message or type(e).__name__}")
                if isinstance(e, ProviderError) and not e.retryable:
                    logger.warning(f"{step.name} provider error is not retryable: {e.message}")
                    break

            logger.warning(
                f"{step.name} attempt {attempt + 1}/{self.max_attempts} failed: {errors[-1]}"
            )
            if attempt < self.max_attempts - 1 and self.retry_delay > 0:
                await asyncio.sleep(self.retry_delay)

        logger.warning(f"{step.name} falling back to rule-based path after {attempts_made} attempt(s)")
        return StepOutcome(
            value=step.fallback(),
            source=StepSource.FALLBACK,
            attempts=attempts_made,
            errors=errors,
        )
