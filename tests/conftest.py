"""
Shared test fixtures for the Listing Enhancer test suite.
"""

from unittest.mock import AsyncMock

import pytest

from listing_enhancer.core.models import Product, ProductImage
from listing_enhancer.core.resilience import ModelFallbackRunner
from listing_enhancer.guidelines.registry import GuidelineRegistry

TEST_MODELS = ["model-a", "model-b", "model-c", "model-d"]

CHAIR_DESCRIPTION = (
    "Crafted from solid oak, this dining chair features a cushioned seat and a "
    "gently curved backrest designed for long dinners. The sturdy frame is "
    "finished by hand and sealed against everyday spills, so it stays beautiful "
    "for years in busy family kitchens."
)


@pytest.fixture
def registry() -> GuidelineRegistry:
    return GuidelineRegistry()


@pytest.fixture
def complete_product() -> Product:
    """A realistic, well-filled Amazon furniture listing."""
    return Product(
        product_id="chair-001",
        title="Acme Oak Dining Chair with Cushioned Seat",
        description=CHAIR_DESCRIPTION,
        bullet_points=[
            "Solid Oak Frame: Kiln-dried hardwood for a sturdy, long-lasting build",
            "Cushioned Seat: Thick foam padding wrapped in woven fabric",
            "Curved Backrest: Supports an upright, relaxed posture at the table",
            "Simple Assembly: Four bolts and an included hex key",
            "Easy Care: Wipe the frame with a damp cloth",
        ],
        images=[
            ProductImage(url="https://cdn.shop.test/chairs/oak-chair-front.jpg", position=0, is_main=True),
            ProductImage(url="https://cdn.shop.test/chairs/oak-chair-side.jpg", position=1),
        ],
        brand="Acme",
        category="Home > Furniture > Chairs",
        price=129.99,
        material="Oak",
        attributes={"color": "Natural", "size": "Standard", "weight": "6 kg", "item_dimensions": "45x50x90 cm"},
    )


@pytest.fixture
def empty_product() -> Product:
    return Product(product_id="empty-001", title="", description="", bullet_points=[], images=[])


@pytest.fixture
def mock_generator() -> AsyncMock:
    """ITextGenerator stand-in; tests set ``generate.return_value`` or ``side_effect``."""
    generator = AsyncMock()
    generator.generate = AsyncMock(return_value="{}")
    return generator


@pytest.fixture
def runner(mock_generator) -> ModelFallbackRunner:
    return ModelFallbackRunner(
        generator=mock_generator,
        models=TEST_MODELS,
        max_attempts=3,
        retry_delay=0,
        timeout=5,
    )
