"""
Custom exception hierarchy for Listing Enhancer.

All library exceptions inherit from ListingEnhancerError, enabling
catch-all handling at the batch boundary while allowing fine-grained
handling inside the pipeline. Most of these never escape a single
product's run: provider and parse failures are absorbed by the
AI step combinator and replaced by deterministic fallbacks.
"""


class ListingEnhancerError(Exception):
    """Base exception for all Listing Enhancer errors."""

    def __init__(self, message: str = "", details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# ─── Configuration Errors ─────────────────────────────────────


class ConfigurationError(ListingEnhancerError):
    """Configuration could not be resolved (e.g. an unknown marketplace name)."""

    pass


# ─── AI Provider Errors ───────────────────────────────────────


class ProviderError(ListingEnhancerError):
    """
    The text-generation provider failed to produce a response.

    Covers network failures, authentication errors, rate limits,
    non-2xx responses, empty bodies and per-attempt timeouts.
    """

    def __init__(
        self,
        message: str = "",
        model_id: str = "",
        status_code: int | None = None,
        retryable: bool = True,
        **kwargs,
    ):
        self.model_id = model_id
        self.status_code = status_code
        self.retryable = retryable
        super().__init__(message=message, **kwargs)


class ParseError(ListingEnhancerError):
    """The provider answered, but the response could not be used."""

    def __init__(self, message: str = "", raw_response: str = "", **kwargs):
        self.raw_response = raw_response
        super().__init__(message=message, **kwargs)


# ─── Pipeline Errors ──────────────────────────────────────────


class InvalidInputError(ListingEnhancerError):
    """Malformed input at the orchestrator entry (e.g. a null product list)."""

    pass


class UnexpectedError(ListingEnhancerError):
    """
    Any other exception raised while processing a single product.

    Caught at the batch boundary and converted into a zero-scored
    result; never propagated to sibling products.
    """

    def __init__(self, product_id: str, original: BaseException, **kwargs):
        self.product_id = product_id
        self.original = original
        message = f"Processing failed for product '{product_id}': {original}"
        super().__init__(message=message, **kwargs)


class StorageError(ListingEnhancerError):
    """Persisting products or export history failed."""

    pass
