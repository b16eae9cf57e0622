"""
Composite listing readiness score.

Combines four independently computed 0-100 scores into one number:

    overall = round(0.20 * validation + 0.30 * compliance
                    + 0.25 * content + 0.25 * seo), clamped to [0, 100]

Compliance carries the most weight because a compliance failure blocks
listing approval outright. Validation carries the least because it is a
prerequisite already enforced by ``is_valid``. Content and SEO share
the remainder equally.

Content and SEO scores are measured on the product as submitted, so the
overall score describes how ready the seller's own record is.
"""

from dataclasses import dataclass

from listing_enhancer.config import Settings
from listing_enhancer.core.models import (
    ComplianceResult,
    KeywordSet,
    LengthRule,
    MarketplaceGuideline,
    Product,
    ValidationResult,
    is_blank,
)
from listing_enhancer.core.text import term_pattern

BAND_POINTS = 25
OVER_LIMIT_POINTS = 10
SHORT_FIELD_BASE_POINTS = 5
OVER_COUNT_POINTS = 15
TARGET_BULLET_COUNT = 5

PRIMARY_COVERAGE_POINTS = 50
SECONDARY_COVERAGE_POINTS = 20
TERTIARY_COVERAGE_POINTS = 10
SELLER_KEYWORD_POINTS = 4
MAX_SELLER_KEYWORD_POINTS = 20


@dataclass(frozen=True)
class ScoreWeights:
    """Per-component weights; must sum to 1.0."""

    validation: float = 0.20
    compliance: float = 0.30
    content: float = 0.25
    seo: float = 0.25

    def __post_init__(self):
        values = (self.validation, self.compliance, self.content, self.seo)
        if any(v < 0 for v in values):
            raise ValueError("Score weights must not be negative")
        if abs(sum(values) - 1.0) > 1e-6:
            raise ValueError(f"Score weights must sum to 1.0, got {sum(values):.4f}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScoreWeights":
        return cls(
            validation=settings.weight_validation,
            compliance=settings.weight_compliance,
            content=settings.weight_content,
            seo=settings.weight_seo,
        )

    @property
    def total(self) -> float:
        return self.validation + self.compliance + self.content + self.seo


def _clamp(value: float) -> int:
    return max(0, min(100, round(value)))


def _as_score(value: int | float | ValidationResult | ComplianceResult) -> float:
    if isinstance(value, (ValidationResult, ComplianceResult)):
        return value.score
    return max(0.0, min(100.0, float(value)))


def _length_points(length: int, rule: LengthRule) -> int:
    if length == 0:
        return 0
    if length > rule.max_length:
        return OVER_LIMIT_POINTS
    if length >= rule.min_length:
        return BAND_POINTS
    graded = SHORT_FIELD_BASE_POINTS + (BAND_POINTS - SHORT_FIELD_BASE_POINTS * 2) * length / rule.min_length
    return round(graded)


def _count_points(count: int, target: int, max_count: int) -> int:
    if count == 0 or target == 0:
        return 0
    if count > max_count:
        return OVER_COUNT_POINTS
    if count >= target:
        return BAND_POINTS
    return round(BAND_POINTS * count / target)


def content_score(product: Product, guideline: MarketplaceGuideline) -> int:
    """
    Score content completeness in four 25-point bands.

    Title and description lengths earn full points inside the marketplace
    range, graded points when short and a capped low score when over the
    limit. Bullet and image counts earn full points at the target count.
    """
    bullets = [b for b in product.bullet_points if not is_blank(b)]
    images = guideline.images
    points = (
        _length_points(len((product.title or "").strip()), guideline.title)
        + _length_points(len((product.description or "").strip()), guideline.description)
        + _count_points(
            len(bullets),
            min(TARGET_BULLET_COUNT, guideline.bullet_points.max_count),
            guideline.bullet_points.max_count,
        )
        + _count_points(len(product.images), max(images.min_count, 1), images.max_count)
    )
    return _clamp(points)


def _coverage(text: str, keywords: list[str]) -> float:
    if not keywords:
        return 0.0
    found = sum(1 for keyword in keywords if term_pattern(keyword).search(text))
    return found / len(keywords)


def seo_score(product: Product, keywords: KeywordSet) -> int:
    """
    Score keyword coverage of the listing text.

    Primary keywords are worth 50 points, secondary 20 and tertiary 10,
    each scaled by the share of that tier found in the title, description
    and bullets. Seller-supplied keywords add up to 20 more.
    """
    text = product.searchable_text
    points = (
        PRIMARY_COVERAGE_POINTS * _coverage(text, keywords.primary)
        + SECONDARY_COVERAGE_POINTS * _coverage(text, keywords.secondary)
        + TERTIARY_COVERAGE_POINTS * _coverage(text, keywords.tertiary)
        + min(MAX_SELLER_KEYWORD_POINTS, SELLER_KEYWORD_POINTS * len(product.keywords))
    )
    return _clamp(points)


class ScoreAggregator:
    """
    Weighted combination of validation, compliance, content and SEO scores.

    Usage:
        aggregator = ScoreAggregator()
        overall = aggregator.aggregate(validation, compliance, 80, 65)
    """

    def __init__(self, weights: ScoreWeights | None = None):
        self.weights = weights or ScoreWeights()

    def aggregate(
        self,
        validation: int | float | ValidationResult,
        compliance: int | float | ComplianceResult,
        content: int | float,
        seo: int | float,
    ) -> int:
        """
        Combine the four component scores.

        Args:
            validation: Validation score or ValidationResult.
            compliance: Compliance score or ComplianceResult.
            content: Content completeness score.
            seo: Keyword coverage score.

        Returns:
            The rounded weighted sum, clamped to 0-100.
        """
        weighted = (
            self.weights.validation * _as_score(validation)
            + self.weights.compliance * _as_score(compliance)
            + self.weights.content * _as_score(content)
            + self.weights.seo * _as_score(seo)
        )
        return _clamp(weighted)

    def breakdown(self, validation: int, compliance: int, content: int, seo: int) -> str:
        """One-line explanation of how the overall score was reached."""
        overall = self.aggregate(validation, compliance, content, seo)
        return (
            f"Overall score {overall} = validation {validation} x {self.weights.validation:.2f}"
            f" + compliance {compliance} x {self.weights.compliance:.2f}"
            f" + content {content} x {self.weights.content:.2f}"
            f" + SEO {seo} x {self.weights.seo:.2f}"
        )
