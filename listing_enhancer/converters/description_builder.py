"""
Rule-based description builder.

Synthesizes a templated description when one is missing or too thin,
and extends existing descriptions that lack a features paragraph or a
materials/use-case paragraph. The seller's text is always kept; it is
only truncated (with an ellipsis) when it breaks the marketplace limit.

Usage:
    builder = DescriptionBuilder()
    analysis = builder.build(product, guideline)
"""

import re
from dataclasses import dataclass, field

from listing_enhancer.converters.templates import USE_CASES, detect_family
from listing_enhancer.core.models import MarketplaceGuideline, Product, is_blank
from listing_enhancer.core.text import ELLIPSIS, truncate_with_marker

MIN_DESCRIPTION_LENGTH = 50

FEATURE_SIGNAL = re.compile(r"feature|benefit|advantage|quality|design", re.IGNORECASE)
MATERIAL_SIGNAL = re.compile(r"made (?:of|from)|material|construct|built", re.IGNORECASE)
USE_CASE_SIGNAL = re.compile(r"\buse\b|ideal for|perfect for|great for|suitable", re.IGNORECASE)


@dataclass
class DescriptionAnalysis:
    """Result of building one description."""

    original: str
    enhanced: str
    reasoning: str
    was_synthesized: bool = False
    was_truncated: bool = False
    paragraphs_added: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.original != self.enhanced

    def to_dict(self) -> dict:
        return {
            "original": self.original,
            "enhanced": self.enhanced,
            "reasoning": self.reasoning,
            "was_synthesized": self.was_synthesized,
            "was_truncated": self.was_truncated,
            "paragraphs_added": self.paragraphs_added,
        }


def has_feature_signal(text: str) -> bool:
    return bool(FEATURE_SIGNAL.search(text))


def has_material_or_use_case_signal(text: str) -> bool:
    return bool(MATERIAL_SIGNAL.search(text) or USE_CASE_SIGNAL.search(text))


class DescriptionBuilder:
    """
    Builds marketplace-ready descriptions from product data.

    Features:
    - Templated synthesis from type, brand and material
    - Family-specific use-case paragraphs (furniture, clothing, electronics)
    - Marketplace-flavoured closing sentences taken from the guideline
    - Gap filling that appends paragraphs rather than rewriting
    """

    def build(self, product: Product, guideline: MarketplaceGuideline) -> DescriptionAnalysis:
        original = (product.description or "").strip()
        limit = guideline.description.max_length

        if len(original) < MIN_DESCRIPTION_LENGTH:
            return self._synthesize_description(product, guideline, original, limit)

        paragraphs: list[str] = []
        added: list[str] = []
        if not has_feature_signal(original):
            paragraphs.append(self.features_paragraph(product))
            added.append("features")
        if not has_material_or_use_case_signal(original):
            paragraphs.append(self.use_case_paragraph(product))
            added.append("use cases")

        enhanced = "\n\n".join([original, *paragraphs])
        truncated = len(enhanced) > limit
        enhanced = truncate_with_marker(enhanced, limit)

        if added:
            reasoning = f"Description lacked {' and '.join(added)}; appended a {' and a '.join(added)} paragraph"
        else:
            reasoning = "Description already covers features and materials or use cases; no changes made"
        if truncated:
            reasoning += f"; truncated with an ellipsis to the {limit}-character limit"

        return DescriptionAnalysis(
            original=original,
            enhanced=enhanced,
            reasoning=reasoning,
            was_truncated=truncated,
            paragraphs_added=added,
        )

    def synthesize(self, product: Product, guideline: MarketplaceGuideline) -> str:
        """Write a complete templated description."""
        product_type = (product.product_type or "product").lower()
        brand = f" from {product.brand.strip()}" if not is_blank(product.brand) else ""
        material = product.material_name

        intro = f"Introducing this premium quality {product_type}{brand}."
        if material:
            intro += f" Made from {material.lower()}, it is built to last."
        intro += " Every detail is designed for dependable everyday performance."

        paragraphs = [intro, USE_CASES[detect_family(product)]]
        if guideline.description_closings:
            paragraphs.append(" ".join(guideline.description_closings))
        return "\n\n".join(paragraphs)

    def features_paragraph(self, product: Product) -> str:
        product_type = (product.product_type or "product").lower()
        text = f"Key Features: This {product_type} offers exceptional quality"
        if product.material_name:
            text += f", made from premium {product.material_name.lower()}"
        return text + "."

    def use_case_paragraph(self, product: Product) -> str:
        return USE_CASES[detect_family(product)]

    def fit(self, description: str, guideline: MarketplaceGuideline) -> str:
        """Truncate an externally written description to the marketplace maximum."""
        return truncate_with_marker(description.strip(), guideline.description.max_length)

    # ─── Internals ────────────────────────────────────────

    def _synthesize_description(
        self,
        product: Product,
        guideline: MarketplaceGuideline,
        original: str,
        limit: int,
    ) -> DescriptionAnalysis:
        synthesized = self.synthesize(product, guideline)
        enhanced = f"{original}\n\n{synthesized}" if original else synthesized
        enhanced = truncate_with_marker(enhanced, limit)

        if original:
            reasoning = (
                f"Description was too short ({len(original)} characters); kept it and "
                "added a templated overview, use cases and a closing"
            )
        else:
            reasoning = "Description was missing; wrote a templated overview with use cases and a closing"

        return DescriptionAnalysis(
            original=original,
            enhanced=enhanced,
            reasoning=reasoning,
            was_synthesized=True,
            was_truncated=enhanced.endswith(ELLIPSIS) and not synthesized.endswith(ELLIPSIS),
            paragraphs_added=["overview", "use cases", "closing"],
        )
