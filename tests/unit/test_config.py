"""Tests for Settings validation and derived properties."""

import pytest

from listing_enhancer.config import AppEnv, Settings


def _settings(**overrides) -> Settings:
    """Create Settings isolated from .env file."""
    return Settings(_env_file=None, **overrides)


class TestDefaults:

    def test_defaults(self):
        s = _settings()
        assert s.app_env == AppEnv.DEVELOPMENT
        assert s.default_marketplace == "amazon"
        assert s.ai_max_attempts == 3
        assert s.ai_retry_delay_seconds == 1.0
        assert s.compliance_pass_threshold == 70
        assert s.is_development is True

    def test_default_weights_sum_to_one(self):
        s = _settings()
        total = s.weight_validation + s.weight_compliance + s.weight_content + s.weight_seo
        assert total == pytest.approx(1.0)


class TestScoreWeightValidator:
    """Settings refuses weight overrides that would skew the overall score."""

    def test_rejects_weights_not_summing_to_one(self):
        with pytest.raises(ValueError, match="sum to 1.0"):
            _settings(weight_seo=0.5)

    def test_rejects_negative_weight(self):
        with pytest.raises(ValueError, match="negative"):
            _settings(weight_validation=-0.1, weight_compliance=0.6)

    def test_accepts_rebalanced_weights(self):
        s = _settings(weight_validation=0.1, weight_compliance=0.4)
        assert s.weight_compliance == 0.4


class TestAIPolicyValidator:

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError, match="AI_MAX_ATTEMPTS"):
            _settings(ai_max_attempts=0)

    def test_rejects_non_positive_timeout(self):
        with pytest.raises(ValueError, match="positive"):
            _settings(ai_timeout_seconds=0)

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValueError, match="BATCH_MAX_CONCURRENCY"):
            _settings(batch_max_concurrency=0)


class TestDerivedProperties:

    def test_model_list_parsed_in_order(self):
        s = _settings(ai_models=" openai/gpt-4o , ,anthropic/claude-3-haiku,")
        assert s.model_list == ["openai/gpt-4o", "anthropic/claude-3-haiku"]

    def test_ai_unavailable_without_api_key(self):
        assert _settings(openrouter_api_key="").ai_available is False

    def test_ai_available_with_key(self):
        assert _settings(openrouter_api_key="sk-or-test").ai_available is True

    def test_ai_disabled_flag(self):
        assert _settings(openrouter_api_key="sk-or-test", ai_enabled=False).ai_available is False

    def test_production_flag(self):
        assert _settings(app_env=AppEnv.PRODUCTION).is_production is True
