"""
Rule-based title optimization.

Fixes the three title problems that block or bury a listing:
    1. Missing or too short: synthesize from brand, type and attributes
    2. Too long: truncate at a word boundary with an ellipsis marker
    3. Missing key attributes: prefix brand/type/model/color that the
       title does not mention, as many as fit under the limit, keeping
       the seller's own wording intact

Titles that pass all three checks are returned unchanged.
"""

from dataclasses import dataclass

from listing_enhancer.core.models import MarketplaceGuideline, Product, is_blank
from listing_enhancer.core.text import ELLIPSIS, collapse_whitespace, truncate_with_marker

MIN_TITLE_LENGTH = 10
MAX_SYNTHESIZED_LENGTH = 150
# Over-long titles are cut this many characters short of the limit before the marker
TRUNCATION_MARGIN = 5
FALLBACK_TITLE = "Untitled Product"
PREFIX_SEPARATOR = " - "


@dataclass
class TitleAnalysis:
    """Result of optimizing one title."""

    original: str
    optimized: str
    reasoning: str
    was_synthesized: bool = False
    was_truncated: bool = False
    added_attributes: tuple[str, ...] = ()

    @property
    def changed(self) -> bool:
        return self.original != self.optimized

    def to_dict(self) -> dict:
        return {
            "original": self.original,
            "optimized": self.optimized,
            "reasoning": self.reasoning,
            "was_synthesized": self.was_synthesized,
            "was_truncated": self.was_truncated,
            "added_attributes": list(self.added_attributes),
        }


class TitleOptimizer:
    """
    Deterministic title fixer parameterized by the marketplace guideline.

    The working limit is the smaller of the marketplace maximum and
    MAX_SYNTHESIZED_LENGTH, so generated titles stay readable even where
    a marketplace allows much longer ones.
    """

    def limit_for(self, guideline: MarketplaceGuideline) -> int:
        return min(MAX_SYNTHESIZED_LENGTH, guideline.title.max_length)

    def optimize(self, product: Product, guideline: MarketplaceGuideline) -> TitleAnalysis:
        original = collapse_whitespace(product.title or "")
        limit = self.limit_for(guideline)

        if len(original) < MIN_TITLE_LENGTH:
            return self._synthesize_title(product, original, limit)

        if len(original) > limit:
            optimized = truncate_with_marker(original, limit - TRUNCATION_MARGIN + len(ELLIPSIS))
            return TitleAnalysis(
                original=original,
                optimized=optimized,
                reasoning=(
                    f"Title was {len(original)} characters; truncated to {len(optimized)} "
                    f"with an ellipsis to fit the {limit}-character limit"
                ),
                was_truncated=True,
            )

        missing = self._missing_key_attributes(product, original)
        added = _fitting_prefix(missing, limit - len(original) - len(PREFIX_SEPARATOR))
        if added:
            return TitleAnalysis(
                original=original,
                optimized=f"{' '.join(added)}{PREFIX_SEPARATOR}{original}",
                reasoning=(
                    "Title did not mention the product's key attributes; added "
                    f"{', '.join(added)} ahead of the original wording"
                ),
                added_attributes=tuple(added),
            )
        if missing:
            return TitleAnalysis(
                original=original,
                optimized=original,
                reasoning=(
                    "Title does not mention the product's key attributes, but it leaves no room "
                    f"under the {limit}-character limit to add them; no changes made"
                ),
            )

        return TitleAnalysis(
            original=original,
            optimized=original,
            reasoning="Title already meets length requirements and names key attributes; no changes made",
        )

    def synthesize(self, product: Product) -> str:
        """Build a title from brand, type and distinguishing attributes."""
        head = " ".join(
            part for part in (product.brand, product.product_type, product.model_number)
            if not is_blank(part)
        )
        details = [
            value for value in (product.color, product.size, product.material_name)
            if not is_blank(value)
        ]
        parts = [head] if head else []
        parts += details
        return collapse_whitespace(" - ".join(parts))

    def fit(self, title: str, guideline: MarketplaceGuideline) -> str:
        """Truncate an externally written title to the same limit optimize() uses."""
        return truncate_with_marker(collapse_whitespace(title), self.limit_for(guideline))

    # ─── Internals ────────────────────────────────────────

    def _synthesize_title(self, product: Product, original: str, limit: int) -> TitleAnalysis:
        synthesized = self.synthesize(product)
        if original and original.lower() not in synthesized.lower():
            synthesized = f"{synthesized} {original}".strip()

        if len(synthesized) < len(original) or not synthesized:
            synthesized = original

        if not synthesized:
            return TitleAnalysis(
                original=original,
                optimized=FALLBACK_TITLE,
                reasoning="Title was missing and the product has no brand, type or attributes to build one from; used a generic title",
                was_synthesized=True,
            )

        if synthesized == original:
            return TitleAnalysis(
                original=original,
                optimized=original,
                reasoning="Title is too short, but the product has no brand, type or attributes to extend it with; no changes made",
            )

        optimized = truncate_with_marker(synthesized, limit)
        reason = "Title was missing" if not original else f"Title was too short ({len(original)} characters)"
        return TitleAnalysis(
            original=original,
            optimized=optimized,
            reasoning=f"{reason}; built a descriptive title from brand, product type and attributes",
            was_synthesized=True,
            was_truncated=optimized.endswith(ELLIPSIS),
        )

    def _missing_key_attributes(self, product: Product, title: str) -> list[str]:
        """Key attributes present on the product but absent from the title."""
        candidates = [
            value.strip() for value in (
                product.brand, product.product_type, product.model_number, product.color,
            )
            if not is_blank(value)
        ]
        lowered = title.lower()
        if not candidates or any(value.lower() in lowered for value in candidates):
            return []
        return candidates


def _fitting_prefix(attributes: list[str], room: int) -> list[str]:
    """Attributes, in order, that fit in ``room`` characters joined by spaces."""
    chosen: list[str] = []
    for value in attributes:
        if len(" ".join([*chosen, value])) <= room:
            chosen.append(value)
    return chosen
