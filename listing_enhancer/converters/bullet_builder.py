"""
Rule-based bullet point builder.

    - No bullets: write a full set from the product family's templates
    - One or two bullets: keep them and top up from generic and
      marketplace-specific candidates, skipping any candidate whose label
      overlaps a bullet already on the list
    - Three or more: keep as they are

Bullets are never dropped. An over-long bullet is truncated with an
ellipsis to the marketplace's per-bullet limit.
"""

from dataclasses import dataclass

from listing_enhancer.converters.templates import (
    BULLET_TEMPLATES,
    GENERIC_BULLET_CANDIDATES,
    detect_family,
    fill_template,
)
from listing_enhancer.core.models import MarketplaceGuideline, Product, is_blank
from listing_enhancer.core.text import collapse_whitespace, truncate_with_marker

TARGET_BULLET_COUNT = 5
TOP_UP_MAX_EXISTING = 2


@dataclass
class BulletAnalysis:
    """Result of building one bullet list."""

    original: list[str]
    enhanced: list[str]
    reasoning: str
    added: int = 0
    truncated: int = 0

    @property
    def changed(self) -> bool:
        return self.original != self.enhanced

    def to_dict(self) -> dict:
        return {
            "original": self.original,
            "enhanced": self.enhanced,
            "reasoning": self.reasoning,
            "added": self.added,
            "truncated": self.truncated,
        }


def bullet_label(bullet: str) -> str:
    """Lower-cased text before the first colon, or the whole bullet."""
    head, _, _ = bullet.partition(":")
    return head.strip().lower()


def labels_overlap(first: str, second: str) -> bool:
    if not first or not second:
        return False
    return first in second or second in first


class BulletBuilder:
    """Fills and trims feature bullet lists for a marketplace."""

    def target_count(self, guideline: MarketplaceGuideline) -> int:
        return min(TARGET_BULLET_COUNT, guideline.bullet_points.max_count)

    def build(self, product: Product, guideline: MarketplaceGuideline) -> BulletAnalysis:
        original = [collapse_whitespace(b) for b in product.bullet_points if not is_blank(b)]
        fitted = self.fit(original, guideline)
        truncated = sum(1 for before, after in zip(original, fitted) if before != after)
        max_length = guideline.bullet_points.max_length

        if not original:
            synthesized = self.synthesize(product, guideline)
            family = detect_family(product)
            return BulletAnalysis(
                original=[],
                enhanced=synthesized,
                reasoning=(
                    f"No bullet points provided; wrote {len(synthesized)} from the "
                    f"{family.value} feature templates"
                ),
                added=len(synthesized),
            )

        if len(original) <= TOP_UP_MAX_EXISTING:
            extra = self.top_up_candidates(product, guideline, fitted)
            enhanced = fitted + extra
            reasoning = (
                f"Only {len(original)} bullet point(s) provided; kept them and added "
                f"{len(extra)} that do not repeat an existing label"
            )
            if not extra:
                reasoning = (
                    f"Only {len(original)} bullet point(s) provided, but every candidate "
                    "overlapped an existing label; kept the original bullets"
                )
            if truncated:
                reasoning += f"; truncated {truncated} over the {max_length}-character limit with an ellipsis"
            return BulletAnalysis(
                original=original,
                enhanced=enhanced,
                reasoning=reasoning,
                added=len(extra),
                truncated=truncated,
            )

        if truncated:
            reasoning = (
                f"Kept all {len(original)} bullet points; truncated {truncated} over the "
                f"{max_length}-character limit with an ellipsis"
            )
        else:
            reasoning = f"{len(original)} bullet points already provided; no changes made"
        if len(original) > guideline.bullet_points.max_count:
            reasoning += (
                f". {guideline.display_name} shows at most {guideline.bullet_points.max_count}; "
                "consider merging the rest"
            )
        return BulletAnalysis(
            original=original,
            enhanced=fitted,
            reasoning=reasoning,
            truncated=truncated,
        )

    def synthesize(self, product: Product, guideline: MarketplaceGuideline) -> list[str]:
        templates = BULLET_TEMPLATES[detect_family(product)]
        count = self.target_count(guideline)
        return self.fit([fill_template(t, product) for t in templates[:count]], guideline)

    def top_up_candidates(
        self,
        product: Product,
        guideline: MarketplaceGuideline,
        existing: list[str],
    ) -> list[str]:
        """Candidate bullets that bring ``existing`` up to the target count."""
        needed = self.target_count(guideline) - len(existing)
        labels = [bullet_label(b) for b in existing]
        chosen: list[str] = []

        for template in (*GENERIC_BULLET_CANDIDATES, *guideline.extra_bullets):
            if len(chosen) >= needed:
                break
            candidate = fill_template(template, product)
            label = bullet_label(candidate)
            if any(labels_overlap(label, seen) for seen in labels):
                continue
            labels.append(label)
            chosen.append(candidate)

        return self.fit(chosen, guideline)

    def fit(self, bullets: list[str], guideline: MarketplaceGuideline) -> list[str]:
        """Truncate each bullet to the per-bullet maximum; never drops one."""
        max_length = guideline.bullet_points.max_length
        return [truncate_with_marker(collapse_whitespace(b), max_length) for b in bullets]
