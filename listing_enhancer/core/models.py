"""
Pydantic domain models for Listing Enhancer.

These models represent the data flowing through the enhancement pipeline:
Product → (ValidationResult, ComplianceResult, ContentEnhancement, KeywordSet)
→ EnhancementResult
"""

from datetime import datetime
from enum import StrEnum
from typing import Any, ClassVar
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Severity(StrEnum):
    """Severity of a validation or compliance finding."""
    CRITICAL = "critical"
    WARNING = "warning"
    SUGGESTION = "suggestion"


class RiskLevel(StrEnum):
    """Overall compliance risk of a listing."""
    CLEAR = "clear"
    WARNING = "warning"
    BLOCKED = "blocked"


class StepSource(StrEnum):
    """Which path produced a pipeline step's output."""
    AI = "ai"
    FALLBACK = "fallback"


class AltTextStyle(StrEnum):
    """Marketplace-specific alt text clean-up applied after generation."""
    PLAIN = "plain"
    ALNUM = "alnum"          # strip everything but letters, digits and spaces
    LOWER = "lower"          # lowercase
    COLLAPSE = "collapse"    # collapse repeated whitespace


# Names that guidelines use for fields stored elsewhere on Product
FIELD_ALIASES: dict[str, str] = {
    "key_features": "bullet_points",
    "vendor": "brand",
    "materials": "material",
    "product_type": "category",
}


def is_blank(value: Any) -> bool:
    """True for None, whitespace-only strings and empty collections."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


# ─── Product Models ───────────────────────────────────────────


class ProductImage(BaseModel):
    """A single product image reference."""

    url: str = ""
    alt_text: str = ""
    position: int = Field(default=0, ge=0)
    is_main: bool = False

    @property
    def extension(self) -> str:
        """Lower-cased file extension of the URL path, or '' when there is none."""
        path = self.url.split("?", 1)[0].split("#", 1)[0]
        filename = path.rsplit("/", 1)[-1]
        if "." not in filename:
            return ""
        return filename.rsplit(".", 1)[-1].lower()

    @property
    def is_data_uri(self) -> bool:
        return "data:image/" in self.url


class Product(BaseModel):
    """
    A product record as submitted by a seller.

    The fixed schema covers the fields every marketplace cares about;
    anything else imported from a CSV or API lives in ``attributes``.
    Pipeline stages never mutate a Product in place, they work on copies.
    """

    product_id: str = Field(default_factory=lambda: uuid4().hex)
    title: str | None = None
    description: str | None = None
    bullet_points: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    images: list[ProductImage] = Field(default_factory=list)
    brand: str | None = None
    category: str | None = None
    price: float | str | None = None
    material: str | None = None
    condition: str | None = None
    attributes: dict[str, Any] = Field(default_factory=dict)

    @field_validator("images", mode="before")
    @classmethod
    def coerce_image_urls(cls, value: Any) -> Any:
        """Accept bare URL strings alongside image objects."""
        if not isinstance(value, list):
            return value
        coerced = []
        for index, item in enumerate(value):
            if isinstance(item, str):
                coerced.append({"url": item, "position": index, "is_main": index == 0})
            else:
                coerced.append(item)
        return coerced

    @field_validator("keywords", mode="after")
    @classmethod
    def dedupe_keywords(cls, value: list[str]) -> list[str]:
        seen: set[str] = set()
        unique: list[str] = []
        for keyword in value:
            cleaned = keyword.strip()
            if cleaned and cleaned.lower() not in seen:
                seen.add(cleaned.lower())
                unique.append(cleaned)
        return unique

    # ─── Field access ─────────────────────────────────────

    def attribute(self, name: str) -> str | None:
        """Case-insensitive attribute lookup; blank values read as None."""
        wanted = name.lower()
        for key, value in self.attributes.items():
            if key.lower() == wanted:
                return None if is_blank(value) else str(value).strip()
        return None

    def field_value(self, name: str) -> Any:
        """
        Resolve a guideline field name against this product.

        Schema fields win, then the attribute bag, then known aliases.
        """
        if name in Product.model_fields and name != "attributes":
            return getattr(self, name)
        if self.attribute(name) is not None:
            return self.attribute(name)
        alias = FIELD_ALIASES.get(name)
        if alias:
            return getattr(self, alias)
        return None

    def has_field(self, name: str) -> bool:
        return not is_blank(self.field_value(name))

    @property
    def category_leaf(self) -> str | None:
        """Last segment of a breadcrumb category ("Home > Furniture > Chairs" → "Chairs")."""
        if is_blank(self.category):
            return None
        for separator in (">", "/", "|"):
            if separator in self.category:
                return self.category.split(separator)[-1].strip() or None
        return self.category.strip()

    @property
    def product_type(self) -> str | None:
        return self.attribute("product_type") or self.attribute("type") or self.category_leaf

    @property
    def color(self) -> str | None:
        return self.attribute("color") or self.attribute("colour")

    @property
    def size(self) -> str | None:
        return self.attribute("size")

    @property
    def model_number(self) -> str | None:
        return self.attribute("model") or self.attribute("model_number")

    @property
    def material_name(self) -> str | None:
        if not is_blank(self.material):
            return self.material.strip()
        return self.attribute("material")

    @property
    def searchable_text(self) -> str:
        """Title, description and bullet points as one block of text."""
        parts = [self.title or "", self.description or "", *self.bullet_points]
        return "\n".join(part for part in parts if part)

    def snapshot(self) -> "Product":
        """Deep, independent copy of this product."""
        return self.model_copy(deep=True)


# ─── Guideline Models ─────────────────────────────────────────


class LengthRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    min_length: int = Field(..., ge=0)
    max_length: int = Field(..., gt=0)


class BulletRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_count: int = Field(..., gt=0)
    max_length: int = Field(..., gt=0)


class ImageRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    min_count: int = Field(..., ge=0)
    max_count: int = Field(..., gt=0)
    allowed_formats: tuple[str, ...]


class AttributeRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    required: tuple[str, ...] = Field(..., min_length=1)
    recommended: tuple[str, ...] = ()


class KeywordDensity(BaseModel):
    """Recommended keyword density per content section, in percent of words."""

    model_config = ConfigDict(frozen=True)

    title: float = 15.0
    description: float = 2.0
    bullet_points: float = 5.0


class MarketplaceGuideline(BaseModel):
    """Structural and policy rules for one marketplace."""

    model_config = ConfigDict(frozen=True)

    name: str
    display_name: str
    title: LengthRule
    description: LengthRule
    bullet_points: BulletRule
    images: ImageRule
    attributes: AttributeRule
    prohibited_terms: tuple[str, ...] = ()
    key_points: tuple[str, ...] = ()
    best_practices: tuple[str, ...] = ()
    description_closings: tuple[str, ...] = ()
    extra_bullets: tuple[str, ...] = ()
    keyword_density: KeywordDensity = KeywordDensity()
    alt_text_style: AltTextStyle = AltTextStyle.PLAIN


# ─── Findings ─────────────────────────────────────────────────


class Issue(BaseModel):
    """A single validation or compliance finding."""

    model_config = ConfigDict(frozen=True)

    field: str
    severity: Severity
    message: str
    recommendation: str = ""
    policy_reference: str | None = None
    location: str | None = None

    @property
    def is_critical(self) -> bool:
        return self.severity == Severity.CRITICAL


class ValidationResult(BaseModel):
    """Outcome of checking a product against a marketplace's structural rules."""

    is_valid: bool
    score: int = Field(..., ge=0, le=100)
    issues: list[Issue] = Field(default_factory=list)
    missing_fields: list[str] = Field(default_factory=list)
    source: StepSource = StepSource.FALLBACK

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")


class ComplianceResult(BaseModel):
    """Outcome of checking a product against prohibited-content rules."""

    is_compliant: bool
    score: int = Field(..., ge=0, le=100)
    issues: list[Issue] = Field(default_factory=list)
    source: StepSource = StepSource.FALLBACK

    @property
    def critical_issues(self) -> list[Issue]:
        return [issue for issue in self.issues if issue.is_critical]

    @property
    def risk_level(self) -> RiskLevel:
        if not self.is_compliant:
            return RiskLevel.BLOCKED
        if self.issues:
            return RiskLevel.WARNING
        return RiskLevel.CLEAR

    def to_dict(self) -> dict:
        data = self.model_dump(mode="json")
        data["risk_level"] = self.risk_level.value
        return data


# ─── Keywords ─────────────────────────────────────────────────


class KeywordSet(BaseModel):
    """
    Tiered search keywords.

    Normalised on construction: entries are trimmed, blanks dropped,
    duplicates removed case-insensitively within and across tiers
    (the earliest tier keeps a shared keyword), then each tier is capped.
    """

    MAX_PRIMARY: ClassVar[int] = 5
    MAX_SECONDARY: ClassVar[int] = 10
    MAX_TERTIARY: ClassVar[int] = 15

    primary: list[str] = Field(default_factory=list)
    secondary: list[str] = Field(default_factory=list)
    tertiary: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def normalize_tiers(self) -> "KeywordSet":
        seen: set[str] = set()
        tiers = (
            ("primary", self.MAX_PRIMARY),
            ("secondary", self.MAX_SECONDARY),
            ("tertiary", self.MAX_TERTIARY),
        )
        for name, cap in tiers:
            kept: list[str] = []
            for keyword in getattr(self, name):
                cleaned = " ".join(str(keyword).split())
                key = cleaned.lower()
                if not cleaned or key in seen:
                    continue
                if len(kept) >= cap:
                    break
                seen.add(key)
                kept.append(cleaned)
            setattr(self, name, kept)
        return self

    @property
    def all_keywords(self) -> list[str]:
        return [*self.primary, *self.secondary, *self.tertiary]

    @property
    def is_empty(self) -> bool:
        return not self.all_keywords

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")


# ─── Enhancement ──────────────────────────────────────────────


class ContentEnhancement(BaseModel):
    """Rewritten content fields with the reasoning behind each change."""

    title: str
    description: str
    bullet_points: list[str] = Field(default_factory=list)
    reasoning: dict[str, str] = Field(default_factory=dict)
    sources: dict[str, StepSource] = Field(default_factory=dict)


class FieldTransformation(BaseModel):
    """Before/after record of one field touched by the pipeline."""

    model_config = ConfigDict(frozen=True)

    field: str
    before: Any = None
    after: Any = None
    reasoning: str = Field(..., min_length=1)
    source: StepSource = StepSource.FALLBACK

    @property
    def changed(self) -> bool:
        return self.before != self.after


class EnhancementResult(BaseModel):
    """
    The complete, scored and annotated output of one pipeline run.

    Created once per product per run and never mutated afterwards.
    Rerunning the pipeline produces a new EnhancementResult.
    """

    model_config = ConfigDict(frozen=True)

    product_id: str
    marketplace: str
    original_product: Product
    enhanced_product: Product
    transformations: dict[str, FieldTransformation] = Field(default_factory=dict)
    critical_issues: list[Issue] = Field(default_factory=list)
    recommendations: list[Issue] = Field(default_factory=list)
    validation: ValidationResult | None = None
    compliance: ComplianceResult | None = None
    keywords: KeywordSet = Field(default_factory=KeywordSet)
    validation_score: int = Field(default=0, ge=0, le=100)
    compliance_score: int = Field(default=0, ge=0, le=100)
    content_score: int = Field(default=0, ge=0, le=100)
    seo_score: int = Field(default=0, ge=0, le=100)
    overall_score: int = Field(default=0, ge=0, le=100)
    processing_time_ms: float = Field(default=0.0, ge=0)
    narrative: list[str] = Field(default_factory=list)
    degraded_steps: list[str] = Field(default_factory=list)
    error: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now())

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def is_valid(self) -> bool:
        return self.validation is not None and self.validation.is_valid

    @property
    def is_compliant(self) -> bool:
        return self.compliance is not None and self.compliance.is_compliant

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")


# ─── Storage Records ──────────────────────────────────────────


class ExportRecord(BaseModel):
    """One export of enhanced listings to a marketplace file or feed."""

    export_id: str = Field(default_factory=lambda: uuid4().hex)
    marketplace: str
    product_ids: list[str] = Field(default_factory=list)
    export_format: str = "csv"
    created_at: datetime = Field(default_factory=lambda: datetime.now())
