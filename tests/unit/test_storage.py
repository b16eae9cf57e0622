"""
Tests for InMemoryProductStorage.
"""

from datetime import datetime, timedelta

import pytest

from listing_enhancer.core.exceptions import StorageError
from listing_enhancer.core.models import ExportRecord, Product
from listing_enhancer.services.storage import InMemoryProductStorage


@pytest.fixture
def storage():
    return InMemoryProductStorage()


class TestInMemoryProductStorage:

    @pytest.mark.asyncio
    async def test_save_and_get(self, storage, complete_product):
        await storage.save([complete_product])
        stored = await storage.get_by_id("chair-001")
        assert stored == complete_product
        assert len(storage) == 1

    @pytest.mark.asyncio
    async def test_stored_copy_is_independent(self, storage, complete_product):
        saved = await storage.save([complete_product])
        saved[0].bullet_points.append("Mutated: after save")
        complete_product.bullet_points.append("Mutated: original")

        stored = await storage.get_by_id("chair-001")
        assert len(stored.bullet_points) == 5

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, storage):
        assert await storage.get_by_id("nope") is None

    @pytest.mark.asyncio
    async def test_update_only_existing(self, storage, complete_product):
        await storage.save([complete_product])
        renamed = complete_product.model_copy(update={"title": "Acme Walnut Dining Chair"})
        updated = await storage.update([renamed, Product(product_id="ghost")])

        assert [p.product_id for p in updated] == ["chair-001"]
        assert (await storage.get_by_id("chair-001")).title == "Acme Walnut Dining Chair"
        assert await storage.get_by_id("ghost") is None

    @pytest.mark.asyncio
    async def test_export_history_newest_first(self, storage, complete_product):
        await storage.save([complete_product])
        now = datetime.now()
        older = ExportRecord(marketplace="amazon", product_ids=["chair-001"], created_at=now - timedelta(hours=1))
        newer = ExportRecord(marketplace="etsy", product_ids=["chair-001"], created_at=now)
        await storage.record_export(older)
        await storage.record_export(newer)

        history = await storage.list_export_history()
        assert [r.marketplace for r in history] == ["etsy", "amazon"]

    @pytest.mark.asyncio
    async def test_export_of_unknown_product_rejected(self, storage):
        with pytest.raises(StorageError) as exc_info:
            await storage.record_export(ExportRecord(marketplace="amazon", product_ids=["missing-1"]))
        assert exc_info.value.details["missing"] == ["missing-1"]
