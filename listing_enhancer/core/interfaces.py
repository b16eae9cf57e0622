"""
Abstract base classes defining the external contracts of Listing Enhancer.

The pipeline consumes two collaborators it does not implement itself:
a text-generation capability and product storage. Concrete providers
implement these interfaces so the pipeline stays loosely coupled.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from listing_enhancer.core.models import ExportRecord, Product


@dataclass(frozen=True)
class GenerationOptions:
    """Per-call options for a text generator."""

    json_mode: bool = False
    temperature: float | None = None
    max_tokens: int | None = None


class ITextGenerator(ABC):
    """Interface for large-language-model text generation."""

    @abstractmethod
    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        model_id: str,
        options: GenerationOptions | None = None,
    ) -> str:
        """
        Run one request/response completion.

        Args:
            system_prompt: Instructions framing the model's role.
            user_prompt: The product-specific request.
            model_id: Provider model identifier (e.g. ``openai/gpt-4o``).
            options: JSON mode and sampling overrides.

        Returns:
            The raw completion text (a JSON string in JSON mode).

        Raises:
            ProviderError: On network, authentication, rate-limit or
                other provider-side failure.
        """
        ...


class IProductStorage(ABC):
    """Interface for persisting products and export history."""

    @abstractmethod
    async def save(self, products: list[Product]) -> list[Product]:
        """Insert products, returning what was stored."""
        ...

    @abstractmethod
    async def update(self, products: list[Product]) -> list[Product]:
        """
        Replace stored products by product_id.

        Returns:
            The products that existed and were updated.
        """
        ...

    @abstractmethod
    async def get_by_id(self, product_id: str) -> Product | None:
        ...

    @abstractmethod
    async def list_export_history(self) -> list[ExportRecord]:
        """Return export records, newest first."""
        ...

    @abstractmethod
    async def record_export(self, record: ExportRecord) -> ExportRecord:
        ...
