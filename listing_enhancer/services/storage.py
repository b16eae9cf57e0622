"""
In-memory product storage.

Implements IProductStorage for tests, the command-line entry point and
single-process use. Products are stored as deep copies so callers can
never mutate stored state through a reference they still hold.
"""

import asyncio
import logging

from listing_enhancer.core.exceptions import StorageError
from listing_enhancer.core.interfaces import IProductStorage
from listing_enhancer.core.models import ExportRecord, Product

logger = logging.getLogger(__name__)


class InMemoryProductStorage(IProductStorage):
    """Dict-backed storage keyed by product_id."""

    def __init__(self):
        self._products: dict[str, Product] = {}
        self._exports: list[ExportRecord] = []
        self._lock = asyncio.Lock()

    async def save(self, products: list[Product]) -> list[Product]:
        async with self._lock:
            saved = []
            for product in products:
                self._products[product.product_id] = product.snapshot()
                saved.append(product.snapshot())
        logger.debug(f"Saved {len(saved)} product(s)")
        return saved

    async def update(self, products: list[Product]) -> list[Product]:
        async with self._lock:
            updated = []
            for product in products:
                if product.product_id not in self._products:
                    continue
                self._products[product.product_id] = product.snapshot()
                updated.append(product.snapshot())
        return updated

    async def get_by_id(self, product_id: str) -> Product | None:
        product = self._products.get(product_id)
        return product.snapshot() if product else None

    async def list_export_history(self) -> list[ExportRecord]:
        return sorted(self._exports, key=lambda r: r.created_at, reverse=True)

    async def record_export(self, record: ExportRecord) -> ExportRecord:
        missing = [pid for pid in record.product_ids if pid not in self._products]
        if missing:
            raise StorageError(
                f"Cannot record export for unknown products: {', '.join(missing)}",
                details={"export_id": record.export_id, "missing": missing},
            )
        async with self._lock:
            self._exports.append(record)
        return record

    def __len__(self) -> int:
        return len(self._products)
