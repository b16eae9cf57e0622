"""
Field validator: checks a product against a marketplace's structural rules.

The deterministic ``FieldValidator`` is the reference implementation:
required fields, per-field length and format rules, price sanity and
attribute hygiene. ``AIFieldValidator`` asks a model for the same
verdict and degrades to the deterministic validator on failure.

Scoring:
    Start at 100. A missing required field costs MISSING_FIELD_PENALTY on top
    of its critical issue; other issues cost SEVERITY_DEDUCTIONS by severity.
    Deductions are totalled per field and each field's total is capped at
    the cost of that field going missing, so removing a required field can
    never raise the score.
"""

import logging
import math
from collections import defaultdict

from listing_enhancer.ai.parsing import coerce_score, parse_json_object
from listing_enhancer.ai.prompts import PromptType, build_system_prompt, build_user_prompt
from listing_enhancer.core.exceptions import ParseError
from listing_enhancer.core.models import (
    Issue,
    MarketplaceGuideline,
    Product,
    Severity,
    StepSource,
    ValidationResult,
    is_blank,
)
from listing_enhancer.core.resilience import AIStep, ModelFallbackRunner, StepOutcome
from listing_enhancer.guidelines.registry import GuidelineRegistry, get_registry

logger = logging.getLogger(__name__)

SEVERITY_DEDUCTIONS: dict[Severity, int] = {
    Severity.CRITICAL: 10,
    Severity.WARNING: 5,
    Severity.SUGGESTION: 1,
}
MISSING_FIELD_PENALTY = 10
VALID_SCORE_THRESHOLD = 70

SHORT_TITLE_LENGTH = 10
ALL_CAPS_MIN_LENGTH = 10
MAX_TITLE_PUNCTUATION = 2
PARAGRAPH_BREAK_LENGTH = 300
MIN_BULLET_LENGTH = 5
MAX_SANE_PRICE = 100_000

PLACEHOLDER_DESCRIPTION_PHRASES = (
    "lorem ipsum",
    "add description here",
    "description goes here",
    "insert description",
)
PLACEHOLDER_IMAGE_TOKENS = ("placeholder", "default", "no-image", "sample", "example", "missing")
PLACEHOLDER_ATTRIBUTE_VALUES = frozenset({"tbd", "n/a", "none", "unknown", "not specified"})


# ─── Shared Checks ────────────────────────────────────────────


def required_field_issues(
    product: Product, guideline: MarketplaceGuideline
) -> tuple[list[str], list[Issue]]:
    """
    Find required fields that are absent, blank or empty.

    Shared by the validator and the compliance checker so both report
    identical Issues for the same gap.

    Returns:
        (missing field names, one critical Issue per missing field)
    """
    missing: list[str] = []
    issues: list[Issue] = []
    for name in guideline.attributes.required:
        if product.has_field(name):
            continue
        missing.append(name)
        issues.append(Issue(
            field=name,
            severity=Severity.CRITICAL,
            message=f"Required field '{name}' is missing",
            recommendation=f"Add {name.replace('_', ' ')}; {guideline.display_name} requires it",
        ))
    return missing, issues


def parse_price(value: float | str | None) -> float | None:
    """Numeric price, or None when the value is not a finite number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        cleaned = value.strip().replace(",", "").lstrip("$€£")
        try:
            number = float(cleaned)
        except ValueError:
            return None
    return number if math.isfinite(number) else None


def score_issues(
    issues: list[Issue],
    missing_fields: list[str],
    severity_deductions: dict[Severity, int] | None = None,
    missing_field_penalty: int = MISSING_FIELD_PENALTY,
) -> int:
    """Deduct per field, capping each field's total at its missing-field cost."""
    deductions = severity_deductions or SEVERITY_DEDUCTIONS
    field_cap = missing_field_penalty + deductions[Severity.CRITICAL]

    per_field: dict[str, int] = defaultdict(int)
    for issue in issues:
        per_field[issue.field] += deductions.get(issue.severity, 0)
    for name in missing_fields:
        per_field[name] += missing_field_penalty

    total = sum(min(field_cap, amount) for amount in per_field.values())
    return max(0, min(100, 100 - total))


# ─── Deterministic Validator ──────────────────────────────────


class FieldValidator:
    """
    Deterministic, side-effect-free structural validator.

    Usage:
        result = FieldValidator().validate(product, "etsy")
    """

    def __init__(
        self,
        registry: GuidelineRegistry | None = None,
        severity_deductions: dict[Severity, int] | None = None,
        missing_field_penalty: int = MISSING_FIELD_PENALTY,
        pass_threshold: int = VALID_SCORE_THRESHOLD,
    ):
        self._registry = registry or get_registry()
        self._deductions = {**SEVERITY_DEDUCTIONS, **(severity_deductions or {})}
        self._missing_penalty = missing_field_penalty
        self._threshold = pass_threshold

    def validate(self, product: Product, marketplace: str) -> ValidationResult:
        """
        Validate a product against a marketplace's structural rules.

        Args:
            product: The product to check (not modified).
            marketplace: Marketplace name; unknown names use the default guideline.

        Returns:
            ValidationResult with issues in a stable order.
        """
        guideline = self._registry.get(marketplace)
        missing, issues = required_field_issues(product, guideline)

        issues += self._check_title(product, guideline)
        issues += self._check_description(product, guideline)
        issues += self._check_bullet_points(product, guideline)
        issues += self._check_images(product, guideline)
        issues += self._check_price(product)
        issues += self._check_attributes(product, guideline)

        score = score_issues(issues, missing, self._deductions, self._missing_penalty)
        return ValidationResult(
            is_valid=score >= self._threshold and not missing,
            score=score,
            issues=issues,
            missing_fields=missing,
            source=StepSource.FALLBACK,
        )

    def score(self, issues: list[Issue], missing_fields: list[str]) -> int:
        return score_issues(issues, missing_fields, self._deductions, self._missing_penalty)

    def is_valid(self, score: int, missing_fields: list[str]) -> bool:
        return score >= self._threshold and not missing_fields

    # ─── Field Checks ─────────────────────────────────────

    def _check_title(self, product: Product, guideline: MarketplaceGuideline) -> list[Issue]:
        if is_blank(product.title):
            return []
        title = product.title.strip()
        issues: list[Issue] = []
        rule = guideline.title

        if len(title) > rule.max_length:
            issues.append(Issue(
                field="title",
                severity=Severity.CRITICAL,
                message=f"Title is {len(title)} characters; {guideline.display_name} allows {rule.max_length}",
                recommendation=f"Shorten the title to {rule.max_length} characters or fewer",
            ))
        elif len(title) < max(rule.min_length, SHORT_TITLE_LENGTH):
            issues.append(Issue(
                field="title",
                severity=Severity.WARNING,
                message=f"Title is too short ({len(title)} characters)",
                recommendation="Describe brand, product type and key attributes in the title",
            ))

        if len(title) > ALL_CAPS_MIN_LENGTH and title.isupper():
            issues.append(Issue(
                field="title",
                severity=Severity.WARNING,
                message="Title is written in all caps",
                recommendation="Use title case instead of capital letters throughout",
            ))

        punctuation = title.count("!") + title.count("?")
        if punctuation > MAX_TITLE_PUNCTUATION:
            issues.append(Issue(
                field="title",
                severity=Severity.WARNING,
                message=f"Title contains {punctuation} exclamation or question marks",
                recommendation="Remove promotional punctuation from the title",
            ))
        return issues

    def _check_description(self, product: Product, guideline: MarketplaceGuideline) -> list[Issue]:
        if is_blank(product.description):
            return []
        description = product.description.strip()
        lowered = description.lower()
        issues: list[Issue] = []
        rule = guideline.description

        if len(description) > rule.max_length:
            issues.append(Issue(
                field="description",
                severity=Severity.CRITICAL,
                message=f"Description is {len(description)} characters; limit is {rule.max_length}",
                recommendation="Trim the description to the marketplace limit",
            ))
        elif len(description) < rule.min_length:
            issues.append(Issue(
                field="description",
                severity=Severity.WARNING,
                message=f"Description is too short ({len(description)} of {rule.min_length} characters)",
                recommendation="Add features, materials and use cases to the description",
            ))

        for phrase in PLACEHOLDER_DESCRIPTION_PHRASES:
            if phrase in lowered:
                issues.append(Issue(
                    field="description",
                    severity=Severity.CRITICAL,
                    message=f"Description contains placeholder text ('{phrase}')",
                    recommendation="Replace placeholder text with a real product description",
                ))
                break

        if len(description) > PARAGRAPH_BREAK_LENGTH and "\n\n" not in description:
            issues.append(Issue(
                field="description",
                severity=Severity.WARNING,
                message="Long description has no paragraph breaks",
                recommendation="Split the description into paragraphs separated by a blank line",
            ))
        return issues

    def _check_bullet_points(self, product: Product, guideline: MarketplaceGuideline) -> list[Issue]:
        bullets = product.bullet_points
        if not bullets:
            return []
        issues: list[Issue] = []
        rule = guideline.bullet_points

        if len(bullets) > rule.max_count:
            issues.append(Issue(
                field="bullet_points",
                severity=Severity.WARNING,
                message=f"{len(bullets)} bullet points; {guideline.display_name} shows at most {rule.max_count}",
                recommendation=f"Keep the {rule.max_count} most important bullet points",
            ))

        seen: dict[str, int] = {}
        for index, bullet in enumerate(bullets, start=1):
            text = bullet.strip()
            location = f"bullet {index}"
            if len(text) > rule.max_length:
                issues.append(Issue(
                    field="bullet_points",
                    severity=Severity.WARNING,
                    message=f"Bullet point {index} is {len(text)} characters (limit {rule.max_length})",
                    recommendation="Shorten the bullet point",
                    location=location,
                ))
            elif len(text) < MIN_BULLET_LENGTH:
                issues.append(Issue(
                    field="bullet_points",
                    severity=Severity.SUGGESTION,
                    message=f"Bullet point {index} is very short",
                    recommendation="Expand the bullet into a full feature or benefit",
                    location=location,
                ))

            key = text.lower()
            if key in seen:
                issues.append(Issue(
                    field="bullet_points",
                    severity=Severity.CRITICAL,
                    message=f"Bullet point {index} duplicates bullet point {seen[key]}",
                    recommendation="Remove or rewrite duplicate bullet points",
                    location=location,
                ))
            else:
                seen[key] = index
        return issues

    def _check_images(self, product: Product, guideline: MarketplaceGuideline) -> list[Issue]:
        images = product.images
        rule = guideline.images
        issues: list[Issue] = []

        if len(images) < rule.min_count:
            issues.append(Issue(
                field="images",
                severity=Severity.CRITICAL,
                message=f"{len(images)} image(s); at least {rule.min_count} required",
                recommendation="Add product photos",
            ))
        elif len(images) > rule.max_count:
            issues.append(Issue(
                field="images",
                severity=Severity.WARNING,
                message=f"{len(images)} images; only {rule.max_count} will be shown",
                recommendation=f"Keep the best {rule.max_count} images",
            ))

        for image in images:
            location = f"image {image.position}"
            filename = image.url.split("?", 1)[0].rsplit("/", 1)[-1].lower()
            token = next((t for t in PLACEHOLDER_IMAGE_TOKENS if t in filename), None)
            if token and not image.is_data_uri:
                issues.append(Issue(
                    field="images",
                    severity=Severity.CRITICAL,
                    message=f"Image looks like a placeholder ('{token}' in file name)",
                    recommendation="Replace placeholder images with real product photos",
                    location=location,
                ))
            if image.is_data_uri:
                continue
            if not image.extension:
                issues.append(Issue(
                    field="images",
                    severity=Severity.WARNING,
                    message="Image URL has no file extension",
                    recommendation=f"Use one of: {', '.join(rule.allowed_formats)}",
                    location=location,
                ))
            elif image.extension not in rule.allowed_formats:
                issues.append(Issue(
                    field="images",
                    severity=Severity.WARNING,
                    message=f"Image format '.{image.extension}' is not accepted",
                    recommendation=f"Convert to one of: {', '.join(rule.allowed_formats)}",
                    location=location,
                ))
        return issues

    def _check_price(self, product: Product) -> list[Issue]:
        if product.price is None or (isinstance(product.price, str) and not product.price.strip()):
            return []
        price = parse_price(product.price)
        if price is None:
            return [Issue(
                field="price",
                severity=Severity.CRITICAL,
                message=f"Price '{product.price}' is not a number",
                recommendation="Enter the price as a number, e.g. 24.99",
            )]
        if price <= 0:
            return [Issue(
                field="price",
                severity=Severity.CRITICAL,
                message="Price must be greater than zero",
                recommendation="Set a positive selling price",
            )]
        if price > MAX_SANE_PRICE:
            return [Issue(
                field="price",
                severity=Severity.WARNING,
                message=f"Price {price:,.2f} is unusually high",
                recommendation="Double-check the price for a misplaced decimal point",
            )]
        return []

    def _check_attributes(self, product: Product, guideline: MarketplaceGuideline) -> list[Issue]:
        issues: list[Issue] = []
        for name in guideline.attributes.recommended:
            if not product.has_field(name):
                issues.append(Issue(
                    field=name,
                    severity=Severity.WARNING,
                    message=f"Recommended field '{name}' is missing",
                    recommendation=f"Adding {name.replace('_', ' ')} improves search visibility",
                ))

        for key, value in product.attributes.items():
            text = "" if value is None else str(value).strip()
            if not text:
                message = f"Attribute '{key}' is empty"
            elif text.lower() in PLACEHOLDER_ATTRIBUTE_VALUES:
                message = f"Attribute '{key}' has placeholder value '{text}'"
            else:
                continue
            issues.append(Issue(
                field=f"attributes.{key}",
                severity=Severity.WARNING,
                message=message,
                recommendation=f"Provide a real value for {key} or remove it",
            ))
        return issues


# ─── AI-backed Variant ────────────────────────────────────────


class AIFieldValidator:
    """
    Model-backed validator with the same contract as FieldValidator.

    The model's per-field findings replace the rule-based issues, but
    required-field presence is always checked deterministically and
    ``is_valid`` is recomputed, so a model cannot wave through a listing
    that is missing required data.
    """

    def __init__(
        self,
        runner: ModelFallbackRunner,
        validator: FieldValidator | None = None,
        registry: GuidelineRegistry | None = None,
    ):
        self._runner = runner
        self._registry = registry or get_registry()
        self._validator = validator or FieldValidator(registry=self._registry)

    async def validate(self, product: Product, marketplace: str) -> StepOutcome[ValidationResult]:
        guideline = self._registry.get(marketplace)
        step = AIStep(
            name="field validation",
            build_prompt=lambda: (
                build_system_prompt(guideline, PromptType.VALIDATION),
                build_user_prompt(product, "Validate this product listing."),
            ),
            parse=lambda raw: self._parse(raw, product, guideline),
            fallback=lambda: self._validator.validate(product, marketplace),
        )
        return await self._runner.run(step)

    def _parse(self, raw: str, product: Product, guideline: MarketplaceGuideline) -> ValidationResult:
        data = parse_json_object(raw)
        analysis = data.get("field_analysis")
        if not isinstance(analysis, dict):
            raise ParseError("Missing 'field_analysis' object", raw_response=raw)

        missing, issues = required_field_issues(product, guideline)
        for field_name, details in analysis.items():
            if not isinstance(details, dict):
                raise ParseError(f"Analysis for '{field_name}' is not an object", raw_response=raw)
            field_issues = details.get("issues") or []
            if not isinstance(field_issues, list):
                raise ParseError(f"Issues for '{field_name}' are not a list", raw_response=raw)
            field_score = coerce_score(details.get("score"))
            severity = _severity_for_field_score(field_score)
            recommendation = str(details.get("recommendation") or "").strip()
            for text in field_issues:
                if isinstance(text, str) and text.strip():
                    issues.append(Issue(
                        field=str(field_name),
                        severity=severity,
                        message=text.strip(),
                        recommendation=recommendation,
                    ))

        score = coerce_score(data.get("overall_score"))
        if score is None:
            score = self._validator.score(issues, missing)
        elif missing:
            # the model's score cannot exceed what the missing fields allow
            score = min(score, self._validator.score(issues, missing))
        return ValidationResult(
            is_valid=self._validator.is_valid(score, missing),
            score=score,
            issues=issues,
            missing_fields=missing,
            source=StepSource.AI,
        )


def _severity_for_field_score(score: int | None) -> Severity:
    if score is None or score >= 80:
        return Severity.SUGGESTION
    if score >= 50:
        return Severity.WARNING
    return Severity.CRITICAL

