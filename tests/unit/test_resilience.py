"""
Tests for the AI step combinator: model cycling, retries, timeouts and fallback.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from listing_enhancer.core.exceptions import ParseError, ProviderError
from listing_enhancer.core.models import StepSource
from listing_enhancer.core.resilience import AIStep, ModelFallbackRunner, StepOutcome

MODELS = ["model-a", "model-b", "model-c", "model-d"]


def _parse(raw: str) -> str:
    if raw.startswith("bad"):
        raise ParseError("unusable", raw_response=raw)
    return raw.upper()


@pytest.fixture
def step() -> AIStep[str]:
    return AIStep(
        name="test step",
        build_prompt=lambda: ("system", "user"),
        parse=_parse,
        fallback=lambda: "FALLBACK",
    )


def _runner(generator, **overrides) -> ModelFallbackRunner:
    options = {"models": MODELS, "max_attempts": 3, "retry_delay": 0, "timeout": 5}
    options.update(overrides)
    return ModelFallbackRunner(generator=generator, **options)


# ─── Model Cycle ──────────────────────────────────────────────


class TestModelCycle:

    def test_model_for_attempt_wraps(self):
        runner = _runner(AsyncMock(), models=["a", "b"])
        assert [runner.model_for_attempt(i) for i in range(4)] == ["a", "b", "a", "b"]

    @pytest.mark.asyncio
    async def test_first_success_returns_ai_value(self, step):
        generator = AsyncMock()
        generator.generate.return_value = "ok"

        outcome = await _runner(generator).run(step)

        assert outcome.value == "OK"
        assert outcome.source == StepSource.AI
        assert outcome.model_id == "model-a"
        assert outcome.attempts == 1
        assert generator.generate.await_count == 1

    @pytest.mark.asyncio
    async def test_walks_models_in_order(self, step):
        generator = AsyncMock()
        generator.generate.side_effect = [
            ProviderError("rate limited", model_id="model-a"),
            "bad json",
            "fine",
        ]

        outcome = await _runner(generator).run(step)

        models_called = [call.args[2] for call in generator.generate.await_args_list]
        assert models_called == ["model-a", "model-b", "model-c"]
        assert outcome.model_id == "model-c"
        assert outcome.attempts == 3
        assert len(outcome.errors) == 2

    @pytest.mark.asyncio
    async def test_at_most_max_attempts(self, step):
        generator = AsyncMock()
        generator.generate.return_value = "bad"

        outcome = await _runner(generator).run(step)

        assert generator.generate.await_count == 3
        assert outcome.value == "FALLBACK"
        assert outcome.source == StepSource.FALLBACK
        assert outcome.degraded

    @pytest.mark.asyncio
    async def test_single_attempt_when_configured(self, step):
        generator = AsyncMock()
        generator.generate.return_value = "bad"
        outcome = await _runner(generator, max_attempts=1).run(step)
        assert outcome.attempts == 1


# ─── Failure Handling ─────────────────────────────────────────


class TestFailureHandling:

    @pytest.mark.asyncio
    async def test_non_retryable_error_stops_cycle(self, step):
        generator = AsyncMock()
        generator.generate.side_effect = ProviderError("bad key", retryable=False)

        outcome = await _runner(generator).run(step)

        assert generator.generate.await_count == 1
        assert outcome.value == "FALLBACK"
        assert outcome.attempts == 1

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failed_attempt(self, step):
        async def slow(*args, **kwargs):
            await asyncio.sleep(1)
            return "too late"

        generator = AsyncMock()
        generator.generate.side_effect = slow

        outcome = await _runner(generator, timeout=0.01, max_attempts=2).run(step)

        assert outcome.value == "FALLBACK"
        assert outcome.attempts == 2
        assert "timed out" in outcome.errors[0]

    @pytest.mark.asyncio
    async def test_unexpected_errors_propagate(self, step):
        generator = AsyncMock()
        generator.generate.side_effect = RuntimeError("bug")
        with pytest.raises(RuntimeError):
            await _runner(generator).run(step)

    @pytest.mark.asyncio
    async def test_waits_between_attempts(self, step, monkeypatch):
        sleeps: list[float] = []

        async def fake_sleep(delay):
            sleeps.append(delay)

        monkeypatch.setattr("listing_enhancer.core.resilience.asyncio.sleep", fake_sleep)
        generator = AsyncMock()
        generator.generate.return_value = "bad"

        await _runner(generator, retry_delay=1.5).run(step)

        assert sleeps == [1.5, 1.5]


# ─── Disabled Runner ──────────────────────────────────────────


class TestDisabledRunner:

    @pytest.mark.asyncio
    async def test_no_generator_uses_fallback_without_attempts(self, step):
        runner = _runner(None)
        outcome = await runner.run(step)
        assert not runner.enabled
        assert outcome.value == "FALLBACK"
        assert outcome.attempts == 0
        assert not outcome.degraded

    def test_empty_model_list_disables(self):
        assert not _runner(AsyncMock(), models=[]).enabled


class TestStepOutcomeNarrative:

    def test_ai_narrative(self):
        outcome = StepOutcome(value="x", source=StepSource.AI, model_id="model-b", attempts=2)
        assert outcome.narrative("Title") == "Title: generated with model-b (attempt 2)"

    def test_unavailable_narrative(self):
        outcome = StepOutcome(value="x", source=StepSource.FALLBACK)
        assert "AI unavailable" in outcome.narrative("Title")

    def test_degraded_narrative(self):
        outcome = StepOutcome(value="x", source=StepSource.FALLBACK, attempts=3, errors=["model-c: unusable"])
        text = outcome.narrative("Keywords")
        assert "after 3 attempt(s)" in text
        assert "model-c: unusable" in text
