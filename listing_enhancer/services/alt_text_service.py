"""
Image alt text generation.

Images that already carry alt text keep it. The rest receive alt text
built from brand, product type, the image's view (by position) and one
distinguishing attribute, styled per marketplace and capped at
MAX_ALT_TEXT_LENGTH. When AI alt text is enabled each image is one AI
step, with the rule-based text as its fallback.
"""

import logging
import re

from listing_enhancer.ai.parsing import parse_json_object, require_string
from listing_enhancer.ai.prompts import PromptType, build_system_prompt, build_user_prompt
from listing_enhancer.core.exceptions import ParseError
from listing_enhancer.core.models import (
    AltTextStyle,
    MarketplaceGuideline,
    Product,
    ProductImage,
    StepSource,
    is_blank,
)
from listing_enhancer.core.resilience import AIStep, ModelFallbackRunner, StepOutcome
from listing_enhancer.core.text import collapse_whitespace, term_pattern, truncate_with_marker
from listing_enhancer.guidelines.registry import GuidelineRegistry, get_registry

logger = logging.getLogger(__name__)

MAX_ALT_TEXT_LENGTH = 125
MIN_ALT_TEXT_LENGTH = 10

MAIN_VIEW = "main product view"
SECONDARY_VIEWS = ("front view", "side view", "back view", "top view", "detailed view")

_REDUNDANT_PREFIX = re.compile(r"^(?:image|picture|photo)\s+of\s+", re.IGNORECASE)
_LABEL_PREFIX = re.compile(r"^alt[\s_-]*text\s*:\s*", re.IGNORECASE)
_FILE_EXTENSION = re.compile(r"\.(?:jpe?g|png|gif|webp|tiff?|bmp)\b", re.IGNORECASE)
_NON_ALNUM = re.compile(r"[^A-Za-z0-9\s]")
_LINE_BREAKS = re.compile(r"[\r\n\t]+")


def view_phrase(image: ProductImage) -> str:
    if image.is_main or image.position == 0:
        return MAIN_VIEW
    return SECONDARY_VIEWS[(image.position - 1) % len(SECONDARY_VIEWS)]


def apply_style(text: str, style: AltTextStyle) -> str:
    """
    Apply a marketplace's alt text convention.

    Only ALNUM and COLLAPSE touch the spacing inside the text; the other
    styles trim the ends and leave the wording as written.
    """
    if style == AltTextStyle.ALNUM:
        return collapse_whitespace(_NON_ALNUM.sub("", text))
    if style == AltTextStyle.COLLAPSE:
        return collapse_whitespace(text)
    if style == AltTextStyle.LOWER:
        return text.lower().strip()
    return text.strip()


def clean_alt_text(text: str) -> str:
    """Strip labels, wrapping quotes and redundant "image of" openers."""
    cleaned = _LABEL_PREFIX.sub("", text.strip())
    cleaned = cleaned.strip().strip("\"'").strip()
    cleaned = _REDUNDANT_PREFIX.sub("", cleaned)
    return _LINE_BREAKS.sub(" ", cleaned).strip()


def validate_alt_text(text: str | None, guideline: MarketplaceGuideline | None = None) -> list[str]:
    """
    Check alt text for common accessibility and policy problems.

    Returns:
        Human-readable issue strings; empty when the alt text is fine.
    """
    if is_blank(text):
        return ["Alt text is empty"]

    issues: list[str] = []
    if len(text) > MAX_ALT_TEXT_LENGTH:
        issues.append(f"Alt text exceeds maximum length of {MAX_ALT_TEXT_LENGTH} characters")
    elif len(text.strip()) < MIN_ALT_TEXT_LENGTH:
        issues.append(f"Alt text is shorter than {MIN_ALT_TEXT_LENGTH} characters")
    if _REDUNDANT_PREFIX.match(text.strip()):
        issues.append('Alt text should not start with "image of", "picture of" or "photo of"')
    if _FILE_EXTENSION.search(text):
        issues.append("Alt text should not contain a file name or extension")
    if guideline:
        for term in guideline.prohibited_terms:
            if term_pattern(term).search(text):
                issues.append(f"Alt text contains prohibited term '{term}' on {guideline.display_name}")
    return issues


class AltTextGenerator:
    """
    Fills in missing image alt text for a marketplace.

    Usage:
        images = await AltTextGenerator().generate(product, "shopify")
    """

    def __init__(
        self,
        registry: GuidelineRegistry | None = None,
        runner: ModelFallbackRunner | None = None,
    ):
        self._registry = registry or get_registry()
        self._runner = runner

    async def generate(self, product: Product, marketplace: str) -> list[ProductImage]:
        images, _ = await self.generate_with_outcomes(product, marketplace)
        return images

    async def generate_with_outcomes(
        self,
        product: Product,
        marketplace: str,
    ) -> tuple[list[ProductImage], list[StepOutcome[str]]]:
        """Return updated image copies plus one outcome per image that needed alt text."""
        guideline = self._registry.get(marketplace)
        images: list[ProductImage] = []
        outcomes: list[StepOutcome[str]] = []

        for image in product.images:
            if not is_blank(image.alt_text):
                images.append(image.model_copy())
                continue
            outcome = await self._run(self._step(product, image, guideline))
            outcomes.append(outcome)
            images.append(image.model_copy(update={"alt_text": outcome.value}))

        if outcomes:
            logger.debug(f"Generated alt text for {len(outcomes)} image(s) of {product.product_id}")
        return images, outcomes

    def fallback_alt_text(self, product: Product, image: ProductImage, guideline: MarketplaceGuideline) -> str:
        subject = " ".join(
            part.strip() for part in (product.brand, product.product_type) if not is_blank(part)
        ) or "Product"
        components = [subject, view_phrase(image)]

        attribute = product.color or product.material_name or product.size
        if attribute:
            components.append(f"in {attribute.strip().lower()}")

        return self.finalize(" ".join(components), guideline)

    def finalize(self, text: str, guideline: MarketplaceGuideline) -> str:
        styled = apply_style(text, guideline.alt_text_style)
        return truncate_with_marker(styled, MAX_ALT_TEXT_LENGTH)

    def parse_response(self, raw: str, guideline: MarketplaceGuideline) -> str:
        data = parse_json_object(raw)
        cleaned = clean_alt_text(require_string(data, "alt_text", raw))
        if not cleaned:
            raise ParseError("Alt text is empty after cleanup", raw_response=raw)
        return self.finalize(cleaned, guideline)

    # ─── Internals ────────────────────────────────────────

    async def _run(self, step: AIStep[str]) -> StepOutcome[str]:
        if self._runner is None:
            return StepOutcome(value=step.fallback(), source=StepSource.FALLBACK)
        return await self._runner.run(step)

    def _step(self, product: Product, image: ProductImage, guideline: MarketplaceGuideline) -> AIStep[str]:
        request = (
            f"Write alt text for image #{image.position + 1} ({view_phrase(image)}) "
            f"of this product. Image URL: {image.url}"
        )
        return AIStep(
            name="alt text generation",
            build_prompt=lambda: (
                build_system_prompt(guideline, PromptType.ALT_TEXT),
                build_user_prompt(product, request),
            ),
            parse=lambda raw: self.parse_response(raw, guideline),
            fallback=lambda: self.fallback_alt_text(product, image, guideline),
        )
