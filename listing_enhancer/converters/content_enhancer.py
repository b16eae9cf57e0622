"""
Content enhancer: title, description and bullet points.

Each field is one AI step with its own parser and a rule-based fallback
(TitleOptimizer, DescriptionBuilder, BulletBuilder). AI rewrites are held
to the same guarantees as the fallbacks: a rewrite may not be empty or
shorter than what the seller wrote, unless the original is itself over the
limit, and anything over a marketplace limit is truncated with an ellipsis
rather than rejected.
"""

import logging
from dataclasses import dataclass

from listing_enhancer.ai.parsing import parse_json_object, require_string, require_string_list
from listing_enhancer.ai.prompts import PromptType, build_system_prompt, build_user_prompt
from listing_enhancer.converters.bullet_builder import BulletBuilder
from listing_enhancer.converters.description_builder import DescriptionBuilder
from listing_enhancer.converters.title_optimizer import TitleOptimizer
from listing_enhancer.core.exceptions import ParseError
from listing_enhancer.core.models import (
    ContentEnhancement,
    MarketplaceGuideline,
    Product,
    StepSource,
    is_blank,
)
from listing_enhancer.core.resilience import AIStep, ModelFallbackRunner, StepOutcome
from listing_enhancer.core.text import collapse_whitespace
from listing_enhancer.guidelines.registry import GuidelineRegistry, get_registry

logger = logging.getLogger(__name__)

CONTENT_FIELDS = ("title", "description", "bullet_points")


@dataclass
class FieldRewrite:
    """A new value for one content field and why it changed."""

    value: str | list[str]
    reasoning: str


class ContentEnhancer:
    """
    Rewrites or fills a product's title, description and bullet points.

    Usage:
        enhancer = ContentEnhancer(runner=runner)
        content = await enhancer.enhance(product, "amazon")

        # Rule-based only, no event loop required
        content = ContentEnhancer().enhance_fallback(product, "etsy")
    """

    def __init__(
        self,
        registry: GuidelineRegistry | None = None,
        runner: ModelFallbackRunner | None = None,
        title_optimizer: TitleOptimizer | None = None,
        description_builder: DescriptionBuilder | None = None,
        bullet_builder: BulletBuilder | None = None,
    ):
        self._registry = registry or get_registry()
        self._runner = runner
        self.title_optimizer = title_optimizer or TitleOptimizer()
        self.description_builder = description_builder or DescriptionBuilder()
        self.bullet_builder = bullet_builder or BulletBuilder()

    async def enhance(self, product: Product, marketplace: str) -> ContentEnhancement:
        content, _ = await self.enhance_with_outcomes(product, marketplace)
        return content

    async def enhance_with_outcomes(
        self,
        product: Product,
        marketplace: str,
    ) -> tuple[ContentEnhancement, dict[str, StepOutcome[FieldRewrite]]]:
        """
        Enhance all three fields and report how each one was produced.

        Returns:
            The combined ContentEnhancement and the per-field StepOutcome
            (keyed by field name) for narrative and degraded-mode reporting.
        """
        guideline = self._registry.get(marketplace)
        outcomes = {
            "title": await self._run(self._title_step(product, guideline)),
            "description": await self._run(self._description_step(product, guideline)),
            "bullet_points": await self._run(self._bullets_step(product, guideline)),
        }
        logger.debug(
            f"Content enhanced for {product.product_id} on {guideline.name}: "
            + ", ".join(f"{name}={outcome.source}" for name, outcome in outcomes.items())
        )
        return self._combine(outcomes), outcomes

    def enhance_fallback(self, product: Product, marketplace: str) -> ContentEnhancement:
        guideline = self._registry.get(marketplace)
        outcomes = {
            "title": StepOutcome(value=self._fallback_title(product, guideline), source=StepSource.FALLBACK),
            "description": StepOutcome(
                value=self._fallback_description(product, guideline), source=StepSource.FALLBACK
            ),
            "bullet_points": StepOutcome(
                value=self._fallback_bullets(product, guideline), source=StepSource.FALLBACK
            ),
        }
        return self._combine(outcomes)

    # ─── Steps ────────────────────────────────────────────

    async def _run(self, step: AIStep[FieldRewrite]) -> StepOutcome[FieldRewrite]:
        if self._runner is None:
            return StepOutcome(value=step.fallback(), source=StepSource.FALLBACK)
        return await self._runner.run(step)

    def _title_step(self, product: Product, guideline: MarketplaceGuideline) -> AIStep[FieldRewrite]:
        return AIStep(
            name="title enhancement",
            build_prompt=lambda: (
                build_system_prompt(guideline, PromptType.TITLE),
                build_user_prompt(product, "Write an optimized title for this product."),
            ),
            parse=lambda raw: self.parse_title(raw, product, guideline),
            fallback=lambda: self._fallback_title(product, guideline),
        )

    def _description_step(self, product: Product, guideline: MarketplaceGuideline) -> AIStep[FieldRewrite]:
        return AIStep(
            name="description enhancement",
            build_prompt=lambda: (
                build_system_prompt(guideline, PromptType.DESCRIPTION),
                build_user_prompt(product, "Write an improved description for this product."),
            ),
            parse=lambda raw: self.parse_description(raw, product, guideline),
            fallback=lambda: self._fallback_description(product, guideline),
        )

    def _bullets_step(self, product: Product, guideline: MarketplaceGuideline) -> AIStep[FieldRewrite]:
        return AIStep(
            name="bullet point enhancement",
            build_prompt=lambda: (
                build_system_prompt(guideline, PromptType.BULLETS),
                build_user_prompt(product, "Write feature bullet points for this product."),
            ),
            parse=lambda raw: self.parse_bullets(raw, product, guideline),
            fallback=lambda: self._fallback_bullets(product, guideline),
        )

    # ─── AI Response Parsing ──────────────────────────────

    def parse_title(self, raw: str, product: Product, guideline: MarketplaceGuideline) -> FieldRewrite:
        data = parse_json_object(raw)
        title = collapse_whitespace(require_string(data, "title", raw))
        original = collapse_whitespace(product.title or "")
        limit = self.title_optimizer.limit_for(guideline)
        required = _length_floor(original, limit)
        if len(title) < required:
            raise ParseError(
                f"Rewritten title is shorter than the original ({len(title)} < {required})",
                raw_response=raw,
            )
        fitted = self.title_optimizer.fit(title, guideline)
        reasoning = _reasoning(data, f"Rewritten to lead with key attributes for {guideline.display_name}")
        if fitted != title:
            reasoning += f" (truncated to the {limit}-character limit)"
        return FieldRewrite(value=fitted, reasoning=reasoning)

    def parse_description(self, raw: str, product: Product, guideline: MarketplaceGuideline) -> FieldRewrite:
        data = parse_json_object(raw)
        description = require_string(data, "description", raw)
        original = (product.description or "").strip()
        limit = guideline.description.max_length
        required = _length_floor(original, limit)
        if len(description) < required:
            raise ParseError(
                f"Rewritten description is shorter than the original ({len(description)} < {required})",
                raw_response=raw,
            )
        fitted = self.description_builder.fit(description, guideline)
        reasoning = _reasoning(data, "Rewritten to cover features, materials and use cases")
        if fitted != description:
            reasoning += f" (truncated to the {limit}-character limit)"
        return FieldRewrite(value=fitted, reasoning=reasoning)

    def parse_bullets(self, raw: str, product: Product, guideline: MarketplaceGuideline) -> FieldRewrite:
        data = parse_json_object(raw)
        bullets = require_string_list(data, "bullet_points", raw)
        original = [b for b in product.bullet_points if not is_blank(b)]
        if not bullets:
            raise ParseError("Response contains no bullet points", raw_response=raw)
        if len(bullets) < len(original):
            raise ParseError(
                f"Response has fewer bullet points than the original ({len(bullets)} < {len(original)})",
                raw_response=raw,
            )
        bullets = bullets[:max(len(original), guideline.bullet_points.max_count)]
        fitted = self.bullet_builder.fit(bullets, guideline)
        reasoning = _reasoning(data, "Rewritten as scannable 'Label: detail' feature bullets")
        truncated = sum(1 for before, after in zip(bullets, fitted) if before != after)
        if truncated:
            reasoning += f" ({truncated} truncated to the {guideline.bullet_points.max_length}-character limit)"
        return FieldRewrite(value=fitted, reasoning=reasoning)

    # ─── Fallbacks ────────────────────────────────────────

    def _fallback_title(self, product: Product, guideline: MarketplaceGuideline) -> FieldRewrite:
        analysis = self.title_optimizer.optimize(product, guideline)
        return FieldRewrite(value=analysis.optimized, reasoning=analysis.reasoning)

    def _fallback_description(self, product: Product, guideline: MarketplaceGuideline) -> FieldRewrite:
        analysis = self.description_builder.build(product, guideline)
        return FieldRewrite(value=analysis.enhanced, reasoning=analysis.reasoning)

    def _fallback_bullets(self, product: Product, guideline: MarketplaceGuideline) -> FieldRewrite:
        analysis = self.bullet_builder.build(product, guideline)
        return FieldRewrite(value=analysis.enhanced, reasoning=analysis.reasoning)

    def _combine(self, outcomes: dict[str, StepOutcome[FieldRewrite]]) -> ContentEnhancement:
        return ContentEnhancement(
            title=outcomes["title"].value.value,
            description=outcomes["description"].value.value,
            bullet_points=list(outcomes["bullet_points"].value.value),
            reasoning={name: outcome.value.reasoning for name, outcome in outcomes.items()},
            sources={name: outcome.source for name, outcome in outcomes.items()},
        )


def _reasoning(data: dict, default: str) -> str:
    value = data.get("reasoning")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _length_floor(original: str, limit: int) -> int:
    """
    Minimum length an AI rewrite must keep.

    A rewrite may not discard what the seller wrote, unless the original
    already breaks the limit and has to be rewritten shorter anyway.
    """
    if len(original) > limit:
        return 1
    return len(original)
