"""Tests for listing_enhancer.core.sentry_config: Sentry initialization and event filtering."""

from unittest.mock import MagicMock, patch

from listing_enhancer.config import AppEnv
from listing_enhancer.core.exceptions import ListingEnhancerError, ProviderError, UnexpectedError
from listing_enhancer.core.sentry_config import _filter_events, init_sentry, report_exception


class TestInitSentry:
    """Verify Sentry SDK initialization behavior."""

    @patch("listing_enhancer.core.sentry_config.sentry_sdk.init")
    def test_skips_init_when_dsn_empty(self, mock_init: MagicMock):
        assert init_sentry(dsn="", app_env=AppEnv.PRODUCTION, app_version="0.1.0") is False
        mock_init.assert_not_called()

    @patch("listing_enhancer.core.sentry_config.sentry_sdk.init")
    def test_initializes_with_valid_dsn(self, mock_init: MagicMock):
        assert init_sentry(
            dsn="https://key@sentry.io/123",
            app_env=AppEnv.PRODUCTION,
            app_version="0.1.0",
            traces_sample_rate=0.2,
        ) is True
        mock_init.assert_called_once()
        call_kwargs = mock_init.call_args[1]
        assert call_kwargs["dsn"] == "https://key@sentry.io/123"
        assert call_kwargs["environment"] == "production"
        assert call_kwargs["release"] == "listing-enhancer@0.1.0"
        assert call_kwargs["traces_sample_rate"] == 0.2
        assert call_kwargs["send_default_pii"] is False
        assert call_kwargs["before_send"] is _filter_events

    @patch("listing_enhancer.core.sentry_config.sentry_sdk.init")
    def test_uses_environment_value(self, mock_init: MagicMock):
        init_sentry(dsn="https://key@sentry.io/1", app_env=AppEnv.STAGING, app_version="0.2.0")
        assert mock_init.call_args[1]["environment"] == "staging"


class TestReportException:

    @patch("listing_enhancer.core.sentry_config.sentry_sdk.capture_exception")
    @patch("listing_enhancer.core.sentry_config.sentry_sdk.new_scope")
    def test_tags_product_and_marketplace(self, mock_scope: MagicMock, mock_capture: MagicMock):
        scope = mock_scope.return_value.__enter__.return_value
        exc = RuntimeError("boom")

        report_exception(exc, product_id="chair-001", marketplace="etsy")

        scope.set_tag.assert_any_call("product_id", "chair-001")
        scope.set_tag.assert_any_call("marketplace", "etsy")
        mock_capture.assert_called_once_with(exc)


class TestFilterEvents:
    """Verify Sentry event filtering logic."""

    def test_scrubs_credential_headers(self):
        event = {"request": {"headers": {"Authorization": "Bearer sk-or-secret", "Accept": "application/json"}}}
        result = _filter_events(event, {})
        assert result["request"]["headers"]["Authorization"] == "[Filtered]"
        assert result["request"]["headers"]["Accept"] == "application/json"

    def test_tags_listing_enhancer_error_subclass(self):
        exc = ProviderError(message="rate limited", model_id="openai/gpt-4o", details={"status": 429})
        hint = {"exc_info": (ProviderError, exc, None)}
        result = _filter_events({}, hint)
        assert result["tags"]["error_type"] == "ProviderError"
        assert result["extra"]["status"] == 429

    def test_tags_base_error(self):
        exc = ListingEnhancerError(message="generic error")
        result = _filter_events({}, {"exc_info": (ListingEnhancerError, exc, None)})
        assert result["tags"]["error_type"] == "ListingEnhancerError"
        assert "extra" not in result

    def test_passes_regular_exception(self):
        event = {"exception": {}}
        hint = {"exc_info": (ValueError, ValueError("bad value"), None)}
        assert _filter_events(event, hint) is event

    def test_passes_event_without_exc_info(self):
        event = {"message": "something happened"}
        assert _filter_events(event, {}) is event

    def test_provider_error_tags_model_and_status(self):
        exc = ProviderError(message="bad key", model_id="openai/gpt-4o", status_code=401, retryable=False)
        result = _filter_events({}, {"exc_info": (ProviderError, exc, None)})
        assert result["tags"]["model_id"] == "openai/gpt-4o"
        assert result["tags"]["status_code"] == "401"
        assert result["tags"]["retryable"] == "false"

    def test_unexpected_error_tags_product(self):
        exc = UnexpectedError("chair-001", RuntimeError("boom"))
        result = _filter_events({}, {"exc_info": (UnexpectedError, exc, None)})
        assert result["tags"]["error_type"] == "UnexpectedError"
        assert result["tags"]["product_id"] == "chair-001"
