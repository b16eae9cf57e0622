"""
Prompt construction for AI-backed pipeline steps.

System prompts are built from the marketplace guideline so a model sees
the same limits the deterministic rules enforce. Each prompt type ends
with a task block naming the exact JSON keys the step's parser expects.
"""

from enum import StrEnum

from listing_enhancer.core.models import MarketplaceGuideline, Product, is_blank


class PromptType(StrEnum):
    TITLE = "title"
    DESCRIPTION = "description"
    BULLETS = "bullets"
    KEYWORDS = "keywords"
    COMPLIANCE = "compliance"
    VALIDATION = "validation"
    ALT_TEXT = "alt_text"


_ROLES: dict[PromptType, str] = {
    PromptType.TITLE: "an expert e-commerce copywriter who writes high-converting product titles",
    PromptType.DESCRIPTION: "an expert e-commerce copywriter who writes persuasive, accurate product descriptions",
    PromptType.BULLETS: "an expert e-commerce copywriter who writes scannable feature bullet points",
    PromptType.KEYWORDS: "an SEO specialist for marketplace search",
    PromptType.COMPLIANCE: "a marketplace policy compliance reviewer",
    PromptType.VALIDATION: "a product data quality analyst",
    PromptType.ALT_TEXT: "an accessibility specialist writing image alt text",
}

_TASKS: dict[PromptType, str] = {
    PromptType.TITLE: (
        "Rewrite the product title. Lead with the brand and product type, keep every "
        "fact from the existing title, and stay within the length limits.\n"
        'Respond with a JSON object: {"title": string, "reasoning": string}'
    ),
    PromptType.DESCRIPTION: (
        "Rewrite the product description. Keep every fact from the existing description, "
        "describe features, materials and use cases, and separate paragraphs with a blank line.\n"
        'Respond with a JSON object: {"description": string, "reasoning": string}'
    ),
    PromptType.BULLETS: (
        "Write feature bullet points in the form 'Label: detail'. Keep every existing "
        "bullet's information and do not return fewer bullets than the product already has.\n"
        'Respond with a JSON object: {"bullet_points": [string], "reasoning": string}'
    ),
    PromptType.KEYWORDS: (
        "Suggest search keywords in three tiers: up to 5 primary (highest intent), "
        "up to 10 secondary, up to 15 tertiary (long tail). Use lowercase.\n"
        'Respond with a JSON object: {"primary_keywords": [string], '
        '"secondary_keywords": [string], "tertiary_keywords": [string]}'
    ),
    PromptType.COMPLIANCE: (
        "Review the listing for policy violations: prohibited terms, unverifiable medical "
        "claims, external links or contact details, and missing required fields.\n"
        "Respond with a JSON object: {\"compliance_score\": 0-100, "
        "\"critical_issues\": [issue], \"warnings\": [issue], \"suggestions\": [issue], "
        "\"is_compliant\": boolean} where issue is {\"type\", \"field\", \"description\", "
        "\"location\", \"recommendation\", \"policy_reference\"}"
    ),
    PromptType.VALIDATION: (
        "Check every field against the requirements above.\n"
        "Respond with a JSON object: {\"overall_score\": 0-100, \"field_analysis\": "
        "{field: {\"score\": 0-100, \"issues\": [string], \"recommendation\": string}}, "
        "\"missing_fields\": [string], \"is_valid\": boolean}"
    ),
    PromptType.ALT_TEXT: (
        "Write concise alt text (max 125 characters) describing what the image shows. "
        "Do not start with 'image of' and do not mention file names.\n"
        'Respond with a JSON object: {"alt_text": string}'
    ),
}


def build_system_prompt(guideline: MarketplaceGuideline, prompt_type: PromptType) -> str:
    """Compose the system prompt for one step on one marketplace."""
    lines = [
        f"You are {_ROLES[prompt_type]}, specialised in {guideline.display_name} listings.",
        "",
        f"{guideline.display_name} requirements:",
        f"- Title: {guideline.title.min_length}-{guideline.title.max_length} characters",
        f"- Description: {guideline.description.min_length}-{guideline.description.max_length} characters",
        f"- Bullet points: at most {guideline.bullet_points.max_count}, "
        f"each under {guideline.bullet_points.max_length} characters",
        f"- Images: {guideline.images.min_count}-{guideline.images.max_count} "
        f"({', '.join(guideline.images.allowed_formats)})",
        f"- Required fields: {', '.join(guideline.attributes.required)}",
    ]
    if guideline.attributes.recommended:
        lines.append(f"- Recommended fields: {', '.join(guideline.attributes.recommended)}")
    if guideline.prohibited_terms:
        quoted = ", ".join(f'"{term}"' for term in guideline.prohibited_terms)
        lines.append(f"- Never use: {quoted}")
    density = guideline.keyword_density
    lines.append(
        f"- Keyword density: at most {density.title:g}% in the title, "
        f"{density.description:g}% in the description, {density.bullet_points:g}% in bullet points"
    )
    lines.append("- Never make medical or therapeutic claims, include URLs, or contact details")

    if guideline.key_points:
        lines += ["", "Key points:", *(f"- {point}" for point in guideline.key_points)]
    if guideline.best_practices:
        lines += ["", "Best practices:", *(f"- {tip}" for tip in guideline.best_practices)]

    lines += ["", "Task:", _TASKS[prompt_type]]
    return "\n".join(lines)


def format_product(product: Product) -> str:
    """Render a product as labelled lines for a user prompt."""
    lines = [f"Product ID: {product.product_id}"]

    scalar_fields = (
        ("Title", product.title),
        ("Brand", product.brand),
        ("Category", product.category),
        ("Price", product.price),
        ("Material", product.material),
        ("Condition", product.condition),
    )
    for label, value in scalar_fields:
        lines.append(f"{label}: {'(missing)' if is_blank(value) else value}")

    lines.append(f"Description: {product.description if not is_blank(product.description) else '(missing)'}")

    if product.bullet_points:
        lines.append("Bullet points:")
        lines += [f"  - {bullet}" for bullet in product.bullet_points]
    else:
        lines.append("Bullet points: (none)")

    if product.keywords:
        lines.append(f"Keywords: {', '.join(product.keywords)}")

    lines.append(f"Images: {len(product.images)}")
    for image in product.images:
        alt = f' (alt: "{image.alt_text}")' if image.alt_text else ""
        lines.append(f"  - [{image.position}] {image.url}{alt}")

    if product.attributes:
        lines.append("Attributes:")
        lines += [f"  - {name}: {value}" for name, value in product.attributes.items()]

    return "\n".join(lines)


def build_user_prompt(product: Product, request: str) -> str:
    return f"{request}\n\n{format_product(product)}"
