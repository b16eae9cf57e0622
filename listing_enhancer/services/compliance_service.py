"""
Policy compliance checking service.

Checks listings for content that marketplaces reject: prohibited
promotional terms, unverifiable medical claims, counterfeit language,
off-platform contact details and protected brand names.

Two paths share one output contract. The AI path asks a model for a
structured review; the rule-based path is deterministic and idempotent
and answers whenever the AI path is unavailable or malformed.
"""

import json
import logging
import re
from difflib import SequenceMatcher
from pathlib import Path

from listing_enhancer.ai.parsing import coerce_issue, coerce_score, parse_json_object
from listing_enhancer.ai.prompts import PromptType, build_system_prompt, build_user_prompt
from listing_enhancer.core.exceptions import ParseError
from listing_enhancer.core.models import (
    ComplianceResult,
    Issue,
    MarketplaceGuideline,
    Product,
    Severity,
    StepSource,
    is_blank,
)
from listing_enhancer.core.resilience import AIStep, ModelFallbackRunner, StepOutcome
from listing_enhancer.core.text import term_pattern
from listing_enhancer.guidelines.registry import GuidelineRegistry, get_registry
from listing_enhancer.services.field_validator import required_field_issues

logger = logging.getLogger(__name__)

SEVERITY_DEDUCTIONS: dict[Severity, int] = {
    Severity.CRITICAL: 10,
    Severity.WARNING: 5,
    Severity.SUGGESTION: 2,
}
COMPLIANT_SCORE_THRESHOLD = 70

# Unverifiable health claims; marketplace-independent
MEDICAL_CLAIM_TERMS = (
    "cures", "treats", "heals", "prevents", "relieves", "reduces", "eliminates",
    "improves", "enhances", "strengthens", "therapy", "therapeutic", "medicinal",
    "remedy", "medicine", "health benefit", "clinically proven", "doctor recommended",
)

# Terms that signal counterfeit or infringing goods
COUNTERFEIT_TERMS = (
    "replica", "counterfeit", "knockoff", "fake", "bootleg", "not authentic", "unauthorized",
)
IMITATION_TERMS = ("imitation", "inspired by", "style of")

URL_PATTERN = re.compile(r"https?://\S+", re.IGNORECASE)
EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")

# Minimum similarity ratio for fuzzy brand matching (0.0 - 1.0)
FUZZY_MATCH_THRESHOLD = 0.85

MEDICAL_POLICY = "Medical Claims Policy"
IP_POLICY = "Intellectual Property Policy"
CONTACT_POLICY = "Off-Platform Contact Policy"


def compliance_score(issues: list[Issue], deductions: dict[Severity, int] | None = None) -> int:
    weights = deductions or SEVERITY_DEDUCTIONS
    return max(0, 100 - sum(weights.get(issue.severity, 0) for issue in issues))


class ComplianceChecker:
    """
    Checks products against prohibited-content rules.

    Features:
    - Marketplace prohibited-term scanning in title, description and bullets
    - Medical and therapeutic claim detection
    - Counterfeit and imitation language detection
    - External URL and email detection in descriptions
    - Exact and fuzzy protected-brand matching
    - Optional AI review with rule-based fallback
    """

    def __init__(
        self,
        registry: GuidelineRegistry | None = None,
        runner: ModelFallbackRunner | None = None,
        protected_brands: list[str] | None = None,
        protected_brands_path: Path | str | None = None,
        pass_threshold: int = COMPLIANT_SCORE_THRESHOLD,
    ):
        self._registry = registry or get_registry()
        self._runner = runner
        self._threshold = pass_threshold
        self._patterns: dict[str, re.Pattern] = {}

        brands = list(protected_brands or [])
        if protected_brands_path:
            brands += self._load_protected_brands(Path(protected_brands_path))
        self._protected_brands = {b.strip().lower(): b.strip() for b in brands if b.strip()}

    def _load_protected_brands(self, path: Path) -> list[str]:
        """Load a JSON array of protected brand names."""
        try:
            brands = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.error(f"Protected brands file not found: {path}")
            return []
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in protected brands file: {e}")
            return []
        logger.info(f"Loaded {len(brands)} protected brands from {path}")
        return [str(b) for b in brands]

    @property
    def brand_count(self) -> int:
        return len(self._protected_brands)

    def _pattern(self, term: str) -> re.Pattern:
        if term not in self._patterns:
            self._patterns[term] = term_pattern(term)
        return self._patterns[term]

    # ─── Public API ───────────────────────────────────────

    async def check(self, product: Product, marketplace: str) -> ComplianceResult:
        """Check a product, preferring the AI review when one is configured."""
        outcome = await self.run(product, marketplace)
        return outcome.value

    async def run(self, product: Product, marketplace: str) -> StepOutcome[ComplianceResult]:
        """Like ``check`` but also reports which path produced the result."""
        if self._runner is None:
            return StepOutcome(
                value=self.check_rules(product, marketplace), source=StepSource.FALLBACK
            )

        guideline = self._registry.get(marketplace)
        step = AIStep(
            name="compliance check",
            build_prompt=lambda: (
                build_system_prompt(guideline, PromptType.COMPLIANCE),
                build_user_prompt(product, "Review this listing for policy compliance."),
            ),
            parse=self._parse_ai_response,
            fallback=lambda: self.check_rules(product, marketplace),
        )
        return await self._runner.run(step)

    def check_rules(self, product: Product, marketplace: str) -> ComplianceResult:
        """
        Run the deterministic rule-based compliance check.

        Args:
            product: The product to check (not modified).
            marketplace: Marketplace whose prohibited terms apply.

        Returns:
            ComplianceResult; identical for identical input.
        """
        guideline = self._registry.get(marketplace)

        _, issues = required_field_issues(product, guideline)
        issues += self._check_prohibited_terms(product, guideline)
        issues += self._check_medical_claims(product)
        issues += self._check_counterfeit_language(product)
        issues += self._check_contact_details(product)
        issues += self._check_brand(product)

        score = compliance_score(issues)
        logger.debug(f"Rule-based compliance for {product.product_id}: {score} ({len(issues)} issues)")
        return ComplianceResult(
            is_compliant=score >= self._threshold,
            score=score,
            issues=issues,
            source=StepSource.FALLBACK,
        )

    def check_brand(self, brand: str | None) -> Issue | None:
        """
        Match a brand against the protected-brand list.

        Returns:
            A critical Issue for an exact match, a warning for a close
            fuzzy match, or None when the brand is clear.
        """
        if is_blank(brand) or not self._protected_brands:
            return None

        brand_clean = brand.strip()
        brand_lower = brand_clean.lower()

        if brand_lower in self._protected_brands:
            return Issue(
                field="brand",
                severity=Severity.CRITICAL,
                message=f"Brand '{brand_clean}' is on the protected brands list",
                recommendation="Only list this brand with proof of authorisation",
                policy_reference=IP_POLICY,
            )

        fuzzy_match = self._fuzzy_match_brand(brand_lower)
        if fuzzy_match:
            return Issue(
                field="brand",
                severity=Severity.WARNING,
                message=f"Brand '{brand_clean}' closely matches protected brand '{fuzzy_match}'",
                recommendation="Verify the brand spelling; near-matches are often flagged",
                policy_reference=IP_POLICY,
            )
        return None

    # ─── Rule Checks ──────────────────────────────────────

    def _text_fields(self, product: Product) -> list[tuple[str, str, str | None]]:
        """(field, text, location) for every scanned piece of content."""
        fields: list[tuple[str, str, str | None]] = []
        if not is_blank(product.title):
            fields.append(("title", product.title, None))
        if not is_blank(product.description):
            fields.append(("description", product.description, None))
        for index, bullet in enumerate(product.bullet_points, start=1):
            if not is_blank(bullet):
                fields.append(("bullet_points", bullet, f"bullet {index}"))
        return fields

    def _check_prohibited_terms(self, product: Product, guideline: MarketplaceGuideline) -> list[Issue]:
        issues: list[Issue] = []
        policy = f"{guideline.display_name} Prohibited Content Policy"
        for field_name, text, location in self._text_fields(product):
            for term in guideline.prohibited_terms:
                if self._pattern(term).search(text):
                    issues.append(Issue(
                        field=field_name,
                        severity=Severity.WARNING,
                        message=f"Prohibited term '{term}' found in {field_name.replace('_', ' ')}",
                        recommendation=f"Remove '{term}'; {guideline.display_name} does not allow it",
                        policy_reference=policy,
                        location=location,
                    ))
        return issues

    def _check_medical_claims(self, product: Product) -> list[Issue]:
        fields = self._text_fields(product)
        issues: list[Issue] = []
        for term in MEDICAL_CLAIM_TERMS:
            pattern = self._pattern(term)
            hit = next((f for f in fields if pattern.search(f[1])), None)
            if hit is None:
                continue
            issues.append(Issue(
                field="content",
                severity=Severity.CRITICAL,
                message=f"Unverifiable medical claim '{term}'",
                recommendation="Remove health or therapeutic claims unless the product is approved to make them",
                policy_reference=MEDICAL_POLICY,
                location=hit[2] or hit[0],
            ))
        return issues

    def _check_counterfeit_language(self, product: Product) -> list[Issue]:
        fields = self._text_fields(product)
        issues: list[Issue] = []
        for terms, severity in ((COUNTERFEIT_TERMS, Severity.CRITICAL), (IMITATION_TERMS, Severity.WARNING)):
            for term in terms:
                pattern = self._pattern(term)
                hit = next((f for f in fields if pattern.search(f[1])), None)
                if hit is None:
                    continue
                issues.append(Issue(
                    field=hit[0],
                    severity=severity,
                    message=f"Listing uses restricted term '{term}'",
                    recommendation="Do not describe items as copies or imitations of other brands",
                    policy_reference=IP_POLICY,
                    location=hit[2],
                ))
        return issues

    def _check_contact_details(self, product: Product) -> list[Issue]:
        if is_blank(product.description):
            return []
        issues: list[Issue] = []
        if URL_PATTERN.search(product.description):
            issues.append(Issue(
                field="description",
                severity=Severity.CRITICAL,
                message="Description contains external URLs",
                recommendation="Remove links to external websites",
                policy_reference=CONTACT_POLICY,
            ))
        if EMAIL_PATTERN.search(product.description):
            issues.append(Issue(
                field="description",
                severity=Severity.CRITICAL,
                message="Description contains email addresses",
                recommendation="Remove email addresses; buyers must use marketplace messaging",
                policy_reference=CONTACT_POLICY,
            ))
        return issues

    def _check_brand(self, product: Product) -> list[Issue]:
        issue = self.check_brand(product.brand)
        return [issue] if issue else []

    def _fuzzy_match_brand(self, brand_lower: str) -> str | None:
        """Find the closest protected brand above the similarity threshold."""
        best_match = None
        best_ratio = 0.0

        for protected_lower, protected in self._protected_brands.items():
            ratio = SequenceMatcher(None, brand_lower, protected_lower).ratio()
            if ratio > best_ratio:
                best_ratio = ratio
                best_match = protected

        if best_ratio >= FUZZY_MATCH_THRESHOLD:
            return best_match
        return None

    # ─── AI Path ──────────────────────────────────────────

    def _parse_ai_response(self, raw: str) -> ComplianceResult:
        data = parse_json_object(raw)
        buckets = (
            ("critical_issues", Severity.CRITICAL),
            ("warnings", Severity.WARNING),
            ("suggestions", Severity.SUGGESTION),
        )
        if not any(key in data for key, _ in buckets) and "compliance_score" not in data:
            raise ParseError("Response has no compliance fields", raw_response=raw)

        issues: list[Issue] = []
        for key, severity in buckets:
            items = data.get(key) or []
            if not isinstance(items, list):
                raise ParseError(f"'{key}' must be a list", raw_response=raw)
            for item in items:
                issue = coerce_issue(item, severity)
                if issue is not None:
                    issues.append(issue)

        raw_score = data.get("compliance_score")
        score = coerce_score(raw_score)
        if score is None and raw_score is not None:
            raise ParseError("'compliance_score' is not a number", raw_response=raw)
        if score is None:
            score = compliance_score(issues)
        return ComplianceResult(
            is_compliant=score >= self._threshold,
            score=score,
            issues=issues,
            source=StepSource.AI,
        )
