"""
Sentry error tracking configuration for Listing Enhancer.

When ``dsn`` is empty (the default), Sentry is completely disabled:
no SDK overhead, no network calls. Batch-boundary failures are reported
through ``report_exception``, which is a no-op until ``init_sentry`` ran.
"""

import logging

import sentry_sdk
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from listing_enhancer.config import AppEnv
from listing_enhancer.core.exceptions import ListingEnhancerError, ProviderError, UnexpectedError

SCRUBBED_HEADERS = ("authorization", "x-api-key")


def init_sentry(
    dsn: str,
    app_env: AppEnv,
    app_version: str,
    traces_sample_rate: float = 0.0,
) -> bool:
    """
    Initialize Sentry SDK for error tracking.

    Args:
        dsn: Sentry DSN. Empty string disables Sentry entirely.
        app_env: Current environment (used as Sentry ``environment``).
        app_version: Application version (used as Sentry ``release``).
        traces_sample_rate: Fraction of transactions to trace (0.0 to 1.0).

    Returns:
        True when the SDK was initialized.
    """
    if not dsn:
        return False

    sentry_sdk.init(
        dsn=dsn,
        environment=app_env.value,
        release=f"listing-enhancer@{app_version}",
        traces_sample_rate=traces_sample_rate,
        integrations=[
            AsyncioIntegration(),
            LoggingIntegration(
                level=logging.INFO,
                event_level=logging.ERROR,
            ),
        ],
        before_send=_filter_events,
        send_default_pii=False,
    )
    return True


def report_exception(exc: BaseException, product_id: str = "", marketplace: str = "") -> None:
    """Send a per-product failure to Sentry with pipeline tags."""
    with sentry_sdk.new_scope() as scope:
        if product_id:
            scope.set_tag("product_id", product_id)
        if marketplace:
            scope.set_tag("marketplace", marketplace)
        sentry_sdk.capture_exception(exc)


def _filter_events(event: dict, hint: dict) -> dict | None:
    """
    Prepare Sentry events before sending.

    - Masks API credentials in captured request headers.
    - Tags ListingEnhancerError subclasses by type; provider failures
      also carry the model and HTTP status that failed.
    """
    headers = event.get("request", {}).get("headers")
    if isinstance(headers, dict):
        for name in list(headers):
            if name.lower() in SCRUBBED_HEADERS:
                headers[name] = "[Filtered]"

    if "exc_info" not in hint:
        return event

    _, exc_value, _ = hint["exc_info"]
    if not isinstance(exc_value, ListingEnhancerError):
        return event

    tags = event.setdefault("tags", {})
    tags["error_type"] = type(exc_value).__name__
    if isinstance(exc_value, ProviderError):
        if exc_value.model_id:
            tags["model_id"] = exc_value.model_id
        if exc_value.status_code is not None:
            tags["status_code"] = str(exc_value.status_code)
        tags["retryable"] = str(exc_value.retryable).lower()
    elif isinstance(exc_value, UnexpectedError):
        tags["product_id"] = exc_value.product_id

    if exc_value.details:
        event["extra"] = {**event.get("extra", {}), **exc_value.details}
    return event
