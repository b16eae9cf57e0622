"""
Tests for domain models: Product field resolution, KeywordSet normalisation
and result invariants.
"""

import pytest
from pydantic import ValidationError

from listing_enhancer.core.models import (
    ComplianceResult,
    EnhancementResult,
    FieldTransformation,
    Issue,
    KeywordSet,
    Product,
    ProductImage,
    RiskLevel,
    Severity,
    is_blank,
)


class TestIsBlank:

    @pytest.mark.parametrize("value", [None, "", "   ", [], {}, ()])
    def test_blank(self, value):
        assert is_blank(value)

    @pytest.mark.parametrize("value", ["x", [""], 0, 0.0, False])
    def test_not_blank(self, value):
        assert not is_blank(value)


class TestProduct:

    def test_image_urls_coerced(self):
        product = Product(images=["https://cdn.shop.test/a.jpg", "https://cdn.shop.test/b.png"])
        assert product.images[0].is_main
        assert product.images[1].position == 1
        assert product.images[1].extension == "png"

    def test_image_extension_ignores_query(self):
        image = ProductImage(url="https://cdn.shop.test/a.JPEG?w=800#top")
        assert image.extension == "jpeg"
        assert ProductImage(url="https://cdn.shop.test/image").extension == ""

    def test_keywords_deduplicated(self):
        product = Product(keywords=["Oak Chair", "oak chair", " ", "dining"])
        assert product.keywords == ["Oak Chair", "dining"]

    def test_attribute_lookup_case_insensitive(self):
        product = Product(attributes={"Color": "Natural", "size": "  "})
        assert product.attribute("color") == "Natural"
        assert product.attribute("size") is None

    def test_field_value_resolution_order(self):
        product = Product(
            bullet_points=["One: two"],
            brand="Acme",
            attributes={"shipping_profile": "Standard"},
        )
        assert product.field_value("shipping_profile") == "Standard"
        assert product.field_value("key_features") == ["One: two"]
        assert product.field_value("vendor") == "Acme"
        assert product.field_value("unknown") is None
        assert not product.has_field("unknown")

    @pytest.mark.parametrize("category, leaf", [
        ("Home > Furniture > Chairs", "Chairs"),
        ("Clothing/Shirts", "Shirts"),
        ("Lamps", "Lamps"),
        (None, None),
    ])
    def test_category_leaf(self, category, leaf):
        assert Product(category=category).category_leaf == leaf

    def test_product_type_prefers_attribute(self):
        product = Product(category="Home > Chairs", attributes={"product_type": "Dining Chair"})
        assert product.product_type == "Dining Chair"

    def test_snapshot_is_deep(self, complete_product):
        copy = complete_product.snapshot()
        copy.bullet_points.append("Extra: bullet")
        copy.attributes["color"] = "Black"
        assert len(complete_product.bullet_points) == 5
        assert complete_product.attributes["color"] == "Natural"


class TestKeywordSet:

    def test_dedupes_across_tiers(self):
        keywords = KeywordSet(primary=["Oak Chair"], secondary=["oak chair", "dining"], tertiary=["DINING", "wood"])
        assert keywords.primary == ["Oak Chair"]
        assert keywords.secondary == ["dining"]
        assert keywords.tertiary == ["wood"]

    def test_caps_tiers(self):
        keywords = KeywordSet(
            primary=[f"p{i}" for i in range(8)],
            secondary=[f"s{i}" for i in range(20)],
            tertiary=[f"t{i}" for i in range(30)],
        )
        assert (len(keywords.primary), len(keywords.secondary), len(keywords.tertiary)) == (5, 10, 15)

    def test_trims_and_drops_blanks(self):
        keywords = KeywordSet(primary=["  oak   chair ", "", "  "])
        assert keywords.primary == ["oak chair"]

    def test_empty(self):
        assert KeywordSet().is_empty


class TestResults:

    def test_risk_levels(self):
        warning = Issue(field="title", severity=Severity.WARNING, message="x")
        assert ComplianceResult(is_compliant=True, score=100).risk_level == RiskLevel.CLEAR
        assert ComplianceResult(is_compliant=True, score=95, issues=[warning]).risk_level == RiskLevel.WARNING
        assert ComplianceResult(is_compliant=False, score=40).risk_level == RiskLevel.BLOCKED

    def test_compliance_to_dict_includes_risk(self):
        assert ComplianceResult(is_compliant=False, score=40).to_dict()["risk_level"] == "blocked"

    def test_score_bounds(self):
        with pytest.raises(ValidationError):
            ComplianceResult(is_compliant=True, score=120)

    def test_transformation_requires_reasoning(self):
        with pytest.raises(ValidationError):
            FieldTransformation(field="title", before="a", after="b", reasoning="")

    def test_enhancement_result_is_frozen(self, complete_product):
        result = EnhancementResult(
            product_id="chair-001",
            marketplace="amazon",
            original_product=complete_product,
            enhanced_product=complete_product,
        )
        with pytest.raises(ValidationError):
            result.overall_score = 90
        assert result.succeeded
        assert not result.is_valid
