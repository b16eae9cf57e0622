"""
Tests for KeywordGenerator, keyword usage analysis and density checks.
"""

import json

import pytest

from listing_enhancer.core.exceptions import ParseError
from listing_enhancer.core.models import KeywordSet, StepSource
from listing_enhancer.services.keyword_generator import (
    KeywordGenerator,
    analyze_keyword_usage,
    field_density_suggestions,
)


@pytest.fixture
def generator(registry) -> KeywordGenerator:
    return KeywordGenerator(registry=registry)


# ─── Fallback ─────────────────────────────────────────────────


class TestFallbackKeywords:

    def test_primary_from_brand_category_and_title(self, generator, complete_product):
        keywords = generator.generate_fallback(complete_product)
        assert keywords.primary == ["acme", "acme chairs", "acme oak dining"]

    def test_secondary_from_title_phrases_and_attributes(self, generator, complete_product):
        keywords = generator.generate_fallback(complete_product)
        assert "oak dining chair" in keywords.secondary
        assert "chairs natural" in keywords.secondary
        # already primary
        assert "acme oak dining" not in keywords.secondary

    def test_tertiary_from_description(self, generator, complete_product):
        keywords = generator.generate_fallback(complete_product)
        assert keywords.tertiary
        assert len(keywords.tertiary) <= KeywordSet.MAX_TERTIARY

    def test_empty_product(self, generator, empty_product):
        assert generator.generate_fallback(empty_product).is_empty

    def test_tiers_are_disjoint(self, generator, complete_product):
        keywords = generator.generate_fallback(complete_product)
        lowered = [k.lower() for k in keywords.all_keywords]
        assert len(lowered) == len(set(lowered))


# ─── Response Parsing ─────────────────────────────────────────


class TestParseResponse:

    def test_json_tiers(self, generator):
        raw = json.dumps({
            "primary_keywords": ["oak chair", "Oak Chair", "dining chair"],
            "secondary_keywords": "wooden chair, kitchen seating",
            "tertiary_keywords": ["farmhouse decor"],
        })
        keywords = generator.parse_response(raw)
        assert keywords.primary == ["oak chair", "dining chair"]
        assert keywords.secondary == ["wooden chair", "kitchen seating"]
        assert keywords.tertiary == ["farmhouse decor"]

    def test_caps_each_tier(self, generator):
        raw = json.dumps({"primary_keywords": [f"keyword {i}" for i in range(12)]})
        assert len(generator.parse_response(raw).primary) == KeywordSet.MAX_PRIMARY

    def test_extracts_sections_from_text(self, generator):
        raw = (
            "Primary keywords: oak chair, dining chair\n"
            "Secondary keywords: wooden seat\n"
            "Tertiary keywords:\n- kitchen chair\n- farmhouse decor"
        )
        keywords = generator.parse_response(raw)
        assert keywords.primary == ["oak chair", "dining chair"]
        assert keywords.secondary == ["wooden seat"]
        assert keywords.tertiary == ["kitchen chair", "farmhouse decor"]

    def test_no_keywords_raises(self, generator):
        with pytest.raises(ParseError):
            generator.parse_response("I cannot help with that.")

    def test_empty_json_raises(self, generator):
        with pytest.raises(ParseError):
            generator.parse_response("{}")


class TestRun:

    @pytest.mark.asyncio
    async def test_ai_keywords(self, registry, runner, mock_generator, complete_product):
        mock_generator.generate.return_value = json.dumps({"primary_keywords": ["oak dining chair"]})
        outcome = await KeywordGenerator(registry=registry, runner=runner).run(complete_product, "etsy")
        assert outcome.source == StepSource.AI
        assert outcome.value.primary == ["oak dining chair"]

    @pytest.mark.asyncio
    async def test_falls_back_on_garbage(self, registry, runner, mock_generator, complete_product):
        mock_generator.generate.return_value = "???"
        keyword_generator = KeywordGenerator(registry=registry, runner=runner)
        outcome = await keyword_generator.run(complete_product, "etsy")
        assert outcome.degraded
        assert outcome.value == keyword_generator.generate_fallback(complete_product)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        {"primary_keywords": {"oak": "chair"}},
        {"primary_keywords": 7},
        {"primary_keywords": [{"keyword": "oak chair"}]},
        {"primary_keywords": [["oak", "chair"]]},
        {"keywords": ["oak chair"]},
    ])
    async def test_wrong_shape_falls_back(self, registry, runner, mock_generator, complete_product, payload):
        mock_generator.generate.return_value = json.dumps(payload)
        keyword_generator = KeywordGenerator(registry=registry, runner=runner)

        outcome = await keyword_generator.run(complete_product, "etsy")

        assert outcome.source == StepSource.FALLBACK
        assert outcome.attempts == 3
        assert outcome.value == keyword_generator.generate_fallback(complete_product)

    @pytest.mark.asyncio
    async def test_generate_without_runner(self, generator, complete_product):
        keywords = await generator.generate(complete_product, "amazon")
        assert keywords == generator.generate_fallback(complete_product)


# ─── Usage Analysis ───────────────────────────────────────────


class TestKeywordUsage:

    def test_found_and_missing(self):
        keywords = KeywordSet(primary=["oak chair", "walnut table"], secondary=["dining"])
        usage = analyze_keyword_usage("A sturdy oak chair for dining rooms", keywords)
        assert usage.primary_found == ["oak chair"]
        assert usage.missing_primary == ["walnut table"]
        assert usage.secondary_found == ["dining"]
        assert usage.keyword_count == 2
        assert "Add missing primary keywords: walnut table" in usage.suggestions

    def test_low_density_suggestion(self):
        text = " ".join(["word"] * 200) + " oak"
        usage = analyze_keyword_usage(text, KeywordSet(primary=["oak"]))
        assert usage.density < 1.0
        assert any("Increase keyword density" in s for s in usage.suggestions)

    def test_high_density_suggestion(self):
        usage = analyze_keyword_usage("oak oak oak chair", KeywordSet(primary=["oak"]))
        assert usage.density == 75.0
        assert any("too high" in s for s in usage.suggestions)

    def test_empty_content(self):
        usage = analyze_keyword_usage("", KeywordSet(primary=["oak"]))
        assert usage.density == 0.0
        assert usage.to_dict()["word_count"] == 0


class TestFieldDensity:

    def test_flags_overused_title(self, registry, complete_product):
        product = complete_product.model_copy(update={"title": "oak chair oak chair oak chair"})
        suggestions = field_density_suggestions(
            product, KeywordSet(primary=["oak chair"]), registry.get("amazon")
        )
        assert suggestions == [
            "Title keyword density 50.0% exceeds the recommended 20% for Amazon; reduce repetition"
        ]

    def test_within_limits(self, registry, complete_product):
        suggestions = field_density_suggestions(
            complete_product, KeywordSet(primary=["walnut"]), registry.get("amazon")
        )
        assert suggestions == []
