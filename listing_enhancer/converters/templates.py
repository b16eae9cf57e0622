"""
Product families and the copy templates keyed by them.

Rule-based content synthesis picks wording by broad product family.
The family is detected from category, product type and title.
"""

import re
from enum import StrEnum

from listing_enhancer.core.models import Product
from listing_enhancer.core.text import words


class ProductFamily(StrEnum):
    FURNITURE = "furniture"
    CLOTHING = "clothing"
    ELECTRONICS = "electronics"
    GENERIC = "generic"


_FAMILY_KEYWORDS: dict[ProductFamily, tuple[str, ...]] = {
    ProductFamily.FURNITURE: (
        "furniture", "chair", "chairs", "table", "tables", "sofa", "couch", "desk",
        "bed", "shelf", "shelves", "bookcase", "dresser", "stool", "cabinet",
    ),
    ProductFamily.CLOTHING: (
        "clothing", "apparel", "shirt", "t-shirt", "dress", "jacket", "coat", "pants",
        "jeans", "sweater", "hoodie", "skirt", "shorts", "shoes", "socks",
    ),
    ProductFamily.ELECTRONICS: (
        "electronics", "electronic", "phone", "charger", "headphones", "earbuds",
        "laptop", "camera", "speaker", "cable", "tablet", "monitor", "keyboard",
    ),
}


def detect_family(product: Product) -> ProductFamily:
    """Classify a product by the first family whose keywords appear."""
    tokens = set(
        words(product.category)
        + words(product.product_type)
        + words(product.title)
    )
    for family, keywords in _FAMILY_KEYWORDS.items():
        if tokens.intersection(keywords):
            return family
    return ProductFamily.GENERIC


# ─── Description Templates ────────────────────────────────────

USE_CASES: dict[ProductFamily, str] = {
    ProductFamily.FURNITURE: (
        "Ideal for living rooms, bedrooms and home offices, it adds comfort "
        "and style to any space."
    ),
    ProductFamily.CLOTHING: (
        "Perfect for everyday wear, travel and special occasions, it pairs "
        "easily with the rest of your wardrobe."
    ),
    ProductFamily.ELECTRONICS: (
        "Great for home, office and travel, it is built to keep up with "
        "your daily routine."
    ),
    ProductFamily.GENERIC: "Ideal for everyday use at home, at work or on the go.",
}


# ─── Bullet Templates ─────────────────────────────────────────
# Placeholders: {type}, {material}, {size}, {brand}

BULLET_TEMPLATES: dict[ProductFamily, tuple[str, ...]] = {
    ProductFamily.FURNITURE: (
        "Premium Construction: Built from {material} for lasting stability",
        "Comfortable Design: Thoughtfully shaped for everyday comfort",
        "Easy Assembly: Arrives with clear instructions and all required hardware",
        "Versatile Style: Complements modern and traditional interiors alike",
        "Easy Care: Wipes clean to keep its look for years",
    ),
    ProductFamily.CLOTHING: (
        "Quality Fabric: Made from {material} for all-day comfort",
        "Comfortable Fit: Tailored cut that moves with you",
        "Easy Care: Machine washable and keeps its shape wash after wash",
        "Versatile Style: Dress it up or down for any occasion",
        "Size Options: Available in {size} to find your perfect fit",
    ),
    ProductFamily.ELECTRONICS: (
        "Reliable Performance: Engineered for consistent, dependable operation",
        "User-Friendly Design: Intuitive controls make setup and daily use simple",
        "Compact Build: Space-saving form factor fits easily on a desk or in a bag",
        "Broad Compatibility: Works with a wide range of common devices",
        "Quality Components: Built from {material} for long service life",
    ),
    ProductFamily.GENERIC: (
        "Premium Quality: Made from {material} for lasting durability",
        "Versatile Use: Suitable for a wide range of everyday tasks",
        "Thoughtful Design: Practical details make this {type} easy to use",
        "Trusted Brand: Made by {brand} with consistent attention to detail",
        "Ready to Use: Arrives ready for immediate use right out of the box",
    ),
}

# Top-up candidates for short bullet lists; marketplace extras follow these
GENERIC_BULLET_CANDIDATES: tuple[str, ...] = (
    "Premium Quality: Made from {material} for lasting durability",
    "Versatile Use: Suitable for a wide range of everyday tasks",
    "Easy to Use: Simple to set up and straightforward to care for",
    "Durable Build: Designed to hold up to daily use",
    "Great Gift: A thoughtful gift for friends and family",
)

_TEMPLATE_DEFAULTS = {
    "material": "high-quality materials",
    "size": "a range of sizes",
    "brand": "a trusted maker",
    "type": "product",
}
_PLACEHOLDER = re.compile(r"\{(" + "|".join(_TEMPLATE_DEFAULTS) + r")\}")


def fill_template(template: str, product: Product) -> str:
    """
    Substitute the product placeholders in a bullet template.

    Only {type}, {material}, {size} and {brand} are filled; any other
    braces, including ones from guideline overrides, are kept as written.
    """
    values = {
        "material": product.material_name,
        "size": product.size,
        "brand": product.brand.strip() if product.brand else None,
        "type": (product.product_type or "").lower() or None,
    }
    return _PLACEHOLDER.sub(lambda m: values[m.group(1)] or _TEMPLATE_DEFAULTS[m.group(1)], template)
