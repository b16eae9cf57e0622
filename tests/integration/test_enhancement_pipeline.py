"""
Integration tests for the full enhancement pipeline.

Runs products through a REAL orchestrator wired by ``create_orchestrator``
(registry, validator, compliance checker, content enhancer, keyword and
alt text generators, score aggregator, storage). Only the text generator
is mocked, and most scenarios run rule-based with AI switched off.

Scenarios:
    - Empty product on Amazon: invalid, low score, every gap reported
    - Overlong title: shortened to the marketplace limit
    - Contact details in the description: flagged as a critical compliance issue
    - Batch with a failing product: the other products still complete
    - AI-assisted run: model output flows into the enhanced listing
"""

import json
from unittest.mock import AsyncMock, patch

import pytest

from listing_enhancer.config import Settings
from listing_enhancer.converters.content_enhancer import ContentEnhancer
from listing_enhancer.core.models import RiskLevel, Severity, StepSource
from listing_enhancer.main import create_orchestrator
from listing_enhancer.services.enhancement_service import summarize
from listing_enhancer.services.storage import InMemoryProductStorage


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, ai_enabled=False)


@pytest.fixture
def orchestrator(settings):
    return create_orchestrator(settings)


# ─── Incomplete Product ───────────────────────────────────────


class TestEmptyProduct:

    @pytest.mark.asyncio
    async def test_empty_product_on_amazon(self, orchestrator, empty_product):
        result = await orchestrator.analyze(empty_product, "amazon")

        assert result.succeeded
        assert not result.is_valid
        assert {"title", "description", "bullet_points", "images"} <= set(result.validation.missing_fields)
        assert result.overall_score < 40
        assert any(i.field == "bullet_points" for i in result.critical_issues)

    @pytest.mark.asyncio
    async def test_empty_product_still_gets_content(self, orchestrator, empty_product):
        result = await orchestrator.analyze(empty_product, "amazon")

        enhanced = result.enhanced_product
        assert enhanced.title
        assert enhanced.description
        assert len(enhanced.bullet_points) == 5
        assert all(t.reasoning for t in result.transformations.values())
        assert empty_product.title == ""


# ─── Content Limits ───────────────────────────────────────────


class TestContentLimits:

    @pytest.mark.asyncio
    async def test_overlong_title_shortened(self, orchestrator, complete_product):
        long_title = " ".join(["Acme Oak Dining Chair with Cushioned Seat"] * 8)[:300]
        product = complete_product.model_copy(update={"title": long_title})
        assert len(product.title) == 300

        result = await orchestrator.analyze(product, "amazon")

        title = result.enhanced_product.title
        assert len(title) <= 200
        assert title.endswith("...")
        assert result.transformations["title"].changed

    @pytest.mark.asyncio
    @pytest.mark.parametrize("marketplace, limit", [("ebay", 80), ("shopify", 70), ("etsy", 140)])
    async def test_title_respects_marketplace_limit(self, orchestrator, complete_product, marketplace, limit):
        product = complete_product.model_copy(update={"title": "Acme Oak Dining Chair " * 12})
        result = await orchestrator.analyze(product, marketplace)
        assert len(result.enhanced_product.title) <= limit


# ─── Compliance ───────────────────────────────────────────────


class TestCompliance:

    @pytest.mark.asyncio
    async def test_email_in_description_flagged_critical(self, orchestrator, complete_product):
        product = complete_product.model_copy(update={
            "description": complete_product.description + " Questions? Write to sales@acme-chairs.test.",
        })

        result = await orchestrator.analyze(product, "amazon")

        email_issues = [i for i in result.critical_issues if "email addresses" in i.message]
        assert email_issues
        assert email_issues[0].field == "description"
        assert email_issues[0].severity == Severity.CRITICAL
        # one critical finding costs 10 points; the listing stays above the 70 threshold
        assert result.compliance_score == 90
        assert result.compliance.risk_level == RiskLevel.WARNING

    @pytest.mark.asyncio
    async def test_protected_brand_from_file(self, tmp_path, complete_product):
        brands = tmp_path / "brands.json"
        brands.write_text(json.dumps(["Herman Miller"]))
        orchestrator = create_orchestrator(
            Settings(_env_file=None, ai_enabled=False, protected_brands_path=str(brands))
        )
        product = complete_product.model_copy(update={"brand": "Herman Miller"})

        result = await orchestrator.analyze(product, "amazon")

        assert any("Herman Miller" in i.message for i in result.critical_issues)
        assert result.compliance_score == 90
        assert result.compliance.risk_level == RiskLevel.WARNING


# ─── Batch ────────────────────────────────────────────────────


class TestBatch:

    @pytest.mark.asyncio
    async def test_failing_product_is_isolated(self, settings, complete_product):
        class FailingEnhancer(ContentEnhancer):
            async def enhance_with_outcomes(self, product, marketplace):
                if product.product_id == "p2":
                    raise ValueError("corrupt product record")
                return await super().enhance_with_outcomes(product, marketplace)

        orchestrator = create_orchestrator(settings)
        orchestrator._content = FailingEnhancer(registry=orchestrator._registry)
        products = [complete_product.model_copy(update={"product_id": f"p{i}"}) for i in (1, 2, 3)]

        with patch("listing_enhancer.services.enhancement_service.report_exception"):
            results = await orchestrator.analyze_many(products, "amazon")

        assert [r.product_id for r in results] == ["p1", "p2", "p3"]
        assert results[1].overall_score == 0
        assert "corrupt product record" in results[1].error
        assert results[0].succeeded and results[2].succeeded
        assert results[0].overall_score == results[2].overall_score > 0

        summary = summarize(results)
        assert summary.failed_count == 1

    @pytest.mark.asyncio
    async def test_batch_persists_enhanced_products(self, settings, complete_product, empty_product):
        storage = InMemoryProductStorage()
        orchestrator = create_orchestrator(settings, storage=storage)

        await orchestrator.analyze_many([complete_product, empty_product], "etsy")

        saved = await storage.get_by_id("empty-001")
        assert saved is not None
        assert saved.title


# ─── AI-Assisted Run ──────────────────────────────────────────


class TestAIAssisted:

    @pytest.mark.asyncio
    async def test_model_output_used(self, complete_product):
        ai_title = "Acme Solid Oak Dining Chair with Cushioned Seat and Curved Backrest for Kitchen"

        async def respond(system_prompt, user_prompt, model_id, options=None):
            if "product titles" in system_prompt:
                return json.dumps({"title": ai_title, "reasoning": "Added material and use"})
            return "not json"

        generator = AsyncMock()
        generator.generate.side_effect = respond
        orchestrator = create_orchestrator(
            Settings(_env_file=None, openrouter_api_key="sk-or-test", ai_retry_delay_seconds=0),
            generator=generator,
        )

        result = await orchestrator.analyze(complete_product, "amazon")

        assert result.enhanced_product.title == ai_title
        assert result.transformations["title"].source == StepSource.AI
        assert result.succeeded
        assert "Compliance" in result.degraded_steps

    @pytest.mark.asyncio
    async def test_malformed_validation_reply_degrades(self, complete_product):
        generator = AsyncMock()
        generator.generate.return_value = json.dumps({"field_analysis": {"title": {"score": 40, "issues": 3}}})
        orchestrator = create_orchestrator(
            Settings(
                _env_file=None,
                openrouter_api_key="sk-or-test",
                ai_field_validation=True,
                ai_retry_delay_seconds=0,
            ),
            generator=generator,
        )

        result = await orchestrator.analyze(complete_product, "amazon")

        assert result.succeeded
        assert result.validation.source == StepSource.FALLBACK
        assert result.validation_score == 100
        assert result.overall_score > 0
