"""
Marketplace guideline registry.

Every marketplace's structural limits, required attributes and prohibited
terms live in one data table so downstream components stay free of
marketplace string-switches. Lookups are case-insensitive and total:
an unknown marketplace resolves to the default guideline (Amazon).

Tables can be tuned without code changes by pointing the registry at a
JSON overrides file, e.g.::

    {"ebay": {"prohibited_terms": ["best seller", "wow"]},
     "bonanza": {"display_name": "Bonanza", "title": {...}, ...}}

A partial override is merged onto the built-in guideline of the same
name (or onto the default guideline for a new marketplace).
"""

import json
import logging
from pathlib import Path
from typing import Any

from listing_enhancer.core.exceptions import ConfigurationError
from listing_enhancer.core.models import (
    AltTextStyle,
    AttributeRule,
    BulletRule,
    ImageRule,
    KeywordDensity,
    LengthRule,
    MarketplaceGuideline,
)

logger = logging.getLogger(__name__)

DEFAULT_MARKETPLACE = "amazon"

_STANDARD_FORMATS = ("jpg", "jpeg", "png", "gif")


_AMAZON = MarketplaceGuideline(
    name="amazon",
    display_name="Amazon",
    title=LengthRule(min_length=10, max_length=200),
    description=LengthRule(min_length=200, max_length=2000),
    bullet_points=BulletRule(max_count=5, max_length=500),
    images=ImageRule(min_count=1, max_count=9, allowed_formats=_STANDARD_FORMATS),
    attributes=AttributeRule(
        required=("title", "description", "bullet_points", "category", "images"),
        recommended=("brand", "color", "size", "material", "item_dimensions", "weight"),
    ),
    prohibited_terms=(
        "best seller", "best-selling", "top rated", "number one", "cheapest",
        "lowest price", "free shipping", "sale", "discount", "limited time",
        "while supplies last",
    ),
    key_points=(
        "Use descriptive titles with important keywords at the beginning",
        "Create detailed bullet points focusing on features and benefits",
        "Include all relevant product specifications and dimensions",
        "Comply with Amazon's prohibited content policies",
        "Use high-quality images with white backgrounds for main photos",
    ),
    best_practices=(
        "Include the brand name in the title",
        "Avoid all caps and promotional phrases",
        "Format descriptions with paragraphs",
        "Do not include seller information or external links",
        "Start bullet points with a capital letter and keep each under 500 characters",
    ),
    description_closings=(
        "Order today and experience the difference quality makes.",
        "Add to your cart now to enjoy fast delivery with Prime.",
    ),
    extra_bullets=(
        "Fast Shipping: Eligible for quick delivery so you can start enjoying it sooner",
        "Trusted Quality: Backed by consistent quality control on every unit",
    ),
    keyword_density=KeywordDensity(title=20, description=2, bullet_points=7),
    alt_text_style=AltTextStyle.ALNUM,
)

_SHOPIFY = MarketplaceGuideline(
    name="shopify",
    display_name="Shopify",
    title=LengthRule(min_length=10, max_length=70),
    description=LengthRule(min_length=100, max_length=5000),
    bullet_points=BulletRule(max_count=10, max_length=300),
    images=ImageRule(min_count=1, max_count=10, allowed_formats=_STANDARD_FORMATS),
    attributes=AttributeRule(
        required=("title", "description", "price", "images"),
        recommended=("vendor", "product_type", "tags", "collections", "variants"),
    ),
    prohibited_terms=("best seller", "best-selling", "top rated", "number one"),
    key_points=(
        "Focus on mobile-friendly content and layout",
        "Create unique product descriptions that tell a story",
        "Optimize images for fast loading times",
        "Include clear sizing information and product details",
        "Use structured data for SEO benefits",
    ),
    best_practices=(
        "Keep titles concise but descriptive",
        "Group description information in logical sections",
        "Keep bullet point format consistent",
        "Use a consistent square aspect ratio for images",
    ),
    description_closings=(
        "Designed to fit seamlessly into your everyday routine.",
        "Shop now and make it yours today.",
    ),
    keyword_density=KeywordDensity(title=15, description=1.5, bullet_points=5),
    alt_text_style=AltTextStyle.LOWER,
)

_ETSY = MarketplaceGuideline(
    name="etsy",
    display_name="Etsy",
    title=LengthRule(min_length=10, max_length=140),
    description=LengthRule(min_length=100, max_length=5000),
    bullet_points=BulletRule(max_count=5, max_length=500),
    images=ImageRule(min_count=1, max_count=10, allowed_formats=_STANDARD_FORMATS),
    attributes=AttributeRule(
        required=("title", "description", "price", "category", "images", "shipping_profile"),
        recommended=("materials", "when_made", "who_made", "tags", "processing_time"),
    ),
    prohibited_terms=(
        "best seller", "best-selling", "top rated", "number one", "cheapest", "lowest price",
    ),
    key_points=(
        "Emphasize handmade, unique, and custom qualities",
        "Use long-tail keywords in titles and tags",
        "Tell the story behind your product and creative process",
        "Include specific details about materials and techniques",
        "Add clear information about customization options and timing",
    ),
    best_practices=(
        "Put the most important keywords at the beginning of the title",
        "Balance keyword usage with readability",
        "Avoid excessive punctuation and special characters",
    ),
    description_closings=(
        "Each piece is carefully crafted with attention to detail.",
        "Support small businesses and bring home something truly special.",
    ),
    extra_bullets=(
        "Unique Item: Made in small batches so yours stands out",
        "Artisan Quality: Carefully crafted with attention to every detail",
    ),
    keyword_density=KeywordDensity(title=25, description=3, bullet_points=6),
    alt_text_style=AltTextStyle.COLLAPSE,
)

_EBAY = MarketplaceGuideline(
    name="ebay",
    display_name="eBay",
    title=LengthRule(min_length=10, max_length=80),
    description=LengthRule(min_length=100, max_length=50000),
    bullet_points=BulletRule(max_count=5, max_length=500),
    images=ImageRule(min_count=1, max_count=12, allowed_formats=_STANDARD_FORMATS),
    attributes=AttributeRule(
        required=("title", "description", "price", "condition", "images", "item_specifics"),
        recommended=("brand", "model", "color", "size", "material", "upc", "mpn"),
    ),
    prohibited_terms=(
        "best seller", "L@@K", "***", "contact me", "email me", "outside of ebay",
        "paypal", "avoid fees",
    ),
    key_points=(
        "Use all 80 characters in your item title with relevant keywords",
        "Include specific product identifiers (MPN, UPC, etc.)",
        "Add detailed item specifics for better search visibility",
        "Create professional, thorough descriptions with spacing and formatting",
        "Use high-quality photos from multiple angles",
    ),
    best_practices=(
        "State the item condition clearly",
        "Never ask buyers to transact outside of eBay",
        "Avoid attention-grabbing symbols such as L@@K or ***",
    ),
    description_closings=(
        "Item is in excellent condition and ready to ship.",
        "Buy with confidence from a trusted seller with positive feedback.",
    ),
    extra_bullets=(
        "Reliable Shipping: Packed with care and dispatched promptly",
        "Seller Guarantee: Hassle-free returns if it is not as described",
    ),
    keyword_density=KeywordDensity(title=20, description=2.5, bullet_points=5),
)

_WALMART = MarketplaceGuideline(
    name="walmart",
    display_name="Walmart",
    title=LengthRule(min_length=10, max_length=200),
    description=LengthRule(min_length=150, max_length=4000),
    bullet_points=BulletRule(max_count=10, max_length=100),
    images=ImageRule(min_count=1, max_count=8, allowed_formats=("jpg", "jpeg", "png")),
    attributes=AttributeRule(
        required=(
            "title", "description", "product_type", "brand", "images", "price", "key_features",
        ),
        recommended=("model_number", "manufacturer", "color", "size", "upc", "gtin"),
    ),
    prohibited_terms=(
        "best seller", "top seller", "amazon", "ebay", "free shipping", "limited time",
        "clearance", "sale",
    ),
    key_points=(
        "Always include product identifiers like UPC, GTIN, ISBN",
        "Focus on detailed specifications and product dimensions",
        "Use structured bullet points with consistent formatting",
        "Include comprehensive warranty and support information",
        "Optimize all content for Walmart's search algorithm",
    ),
    best_practices=(
        "Lead the title with the brand",
        "Keep each key feature short and scannable",
        "Do not mention other retailers",
    ),
    description_closings=(
        "Built for everyday value and dependable performance.",
        "Add it to your cart today.",
    ),
    keyword_density=KeywordDensity(title=15, description=2, bullet_points=5),
)

BUILTIN_GUIDELINES: dict[str, MarketplaceGuideline] = {
    g.name: g for g in (_AMAZON, _SHOPIFY, _ETSY, _EBAY, _WALMART)
}


class GuidelineRegistry:
    """
    Case-insensitive, read-only lookup of marketplace guidelines.

    Usage:
        registry = GuidelineRegistry()
        guideline = registry.get("eBay")
    """

    def __init__(
        self,
        guidelines: dict[str, MarketplaceGuideline] | None = None,
        default: str = DEFAULT_MARKETPLACE,
        overrides_path: Path | str | None = None,
    ):
        table = dict(guidelines or BUILTIN_GUIDELINES)
        self._guidelines = {name.lower(): guideline for name, guideline in table.items()}
        if default.lower() not in self._guidelines:
            raise ConfigurationError(
                f"Default marketplace '{default}' has no guideline",
                details={"available": sorted(self._guidelines)},
            )
        self._default = default.lower()
        self._warned: set[str] = set()

        if overrides_path:
            self._apply_overrides(Path(overrides_path))

    @property
    def default_name(self) -> str:
        return self._default

    @property
    def marketplaces(self) -> list[str]:
        return sorted(self._guidelines)

    def is_known(self, marketplace: str | None) -> bool:
        return bool(marketplace) and marketplace.strip().lower() in self._guidelines

    def get(self, marketplace: str | None) -> MarketplaceGuideline:
        """
        Look up a marketplace's guideline.

        Never raises: unknown or empty names resolve to the default
        guideline and log a warning once per name.
        """
        key = (marketplace or "").strip().lower()
        guideline = self._guidelines.get(key)
        if guideline is not None:
            return guideline

        if key not in self._warned:
            self._warned.add(key)
            logger.warning(
                f"Unknown marketplace '{marketplace}', using '{self._default}' guidelines"
            )
        return self._guidelines[self._default]

    def resolve(self, marketplace: str | None, strict: bool = False) -> MarketplaceGuideline:
        """
        Like ``get``, but optionally refuses unknown marketplaces.

        Raises:
            ConfigurationError: If ``strict`` and the name is unknown.
        """
        if strict and not self.is_known(marketplace):
            raise ConfigurationError(
                f"Unknown marketplace '{marketplace}'",
                details={"available": self.marketplaces},
            )
        return self.get(marketplace)

    # ─── Overrides ────────────────────────────────────────

    def _apply_overrides(self, path: Path) -> None:
        """Merge a JSON overrides file onto the loaded table."""
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise ConfigurationError(f"Guideline overrides not found: {path}") from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Guideline overrides are not valid JSON: {e}") from e

        if not isinstance(raw, dict):
            raise ConfigurationError("Guideline overrides must be a JSON object keyed by marketplace")

        for name, override in raw.items():
            key = name.strip().lower()
            base = self._guidelines.get(key, self._guidelines[self._default])
            self._guidelines[key] = _merge_guideline(base, key, override)
            logger.info(f"Loaded guideline override for '{key}'")


def _merge_guideline(
    base: MarketplaceGuideline, name: str, override: dict[str, Any]
) -> MarketplaceGuideline:
    data = base.model_dump()
    data["name"] = name
    if name != base.name:
        data["display_name"] = name.title()
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(data.get(key), dict):
            data[key] = {**data[key], **value}
        else:
            data[key] = value
    try:
        return MarketplaceGuideline.model_validate(data)
    except ValueError as e:
        raise ConfigurationError(f"Invalid guideline override for '{name}': {e}") from e


_default_registry: GuidelineRegistry | None = None


def get_registry() -> GuidelineRegistry:
    """Shared registry with the built-in guidelines."""
    global _default_registry
    if _default_registry is None:
        _default_registry = GuidelineRegistry()
    return _default_registry
