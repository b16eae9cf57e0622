"""
Enhancement orchestration service.

Runs one product through the full pipeline:
    validate → check compliance → enhance (title, description, bullets,
    image alt text) → generate keywords → score

Each AI-backed step falls back to its rule-based path on its own, so a
product always reaches the scoring step. Batch mode runs products through
a bounded worker pool and turns any unexpected per-product exception into
a zero-scored, error-annotated result without touching sibling products.

Supports optional callbacks for batch progress:
    - on_progress: called after each product finishes (success or failure)
    - cancel_check: called before each product starts; True stops new work
"""

import asyncio
import logging
import time
from collections import Counter
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum

from listing_enhancer.converters.content_enhancer import ContentEnhancer
from listing_enhancer.core.exceptions import InvalidInputError, UnexpectedError
from listing_enhancer.core.interfaces import IProductStorage
from listing_enhancer.core.logging_config import bind_product_context, clear_product_context
from listing_enhancer.core.models import (
    ContentEnhancement,
    EnhancementResult,
    FieldTransformation,
    Issue,
    KeywordSet,
    MarketplaceGuideline,
    Product,
    Severity,
    StepSource,
)
from listing_enhancer.core.resilience import StepOutcome
from listing_enhancer.core.sentry_config import report_exception
from listing_enhancer.guidelines.registry import GuidelineRegistry, get_registry
from listing_enhancer.services.alt_text_service import AltTextGenerator, validate_alt_text
from listing_enhancer.services.compliance_service import ComplianceChecker
from listing_enhancer.services.field_validator import AIFieldValidator, FieldValidator
from listing_enhancer.services.keyword_generator import (
    KeywordGenerator,
    analyze_keyword_usage,
    field_density_suggestions,
)
from listing_enhancer.services.score_aggregator import ScoreAggregator, content_score, seo_score

logger = logging.getLogger(__name__)

# Callback type aliases for batch progress reporting
ProgressCallback = Callable[["BatchProgress"], Awaitable[None]]  # (progress) -> None
CancelCheck = Callable[[], bool]  # () -> is_cancelled

TOP_ISSUE_COUNT = 5


class PipelineStep(StrEnum):
    """Stages of the per-product pipeline, used in narrative and logs."""
    START = "start"
    VALIDATE = "validate"
    CHECK_COMPLIANCE = "check_compliance"
    ENHANCE = "enhance"
    GENERATE_KEYWORDS = "generate_keywords"
    SCORE = "score"
    DONE = "done"
    FAILED = "failed"


@dataclass
class BatchProgress:
    """Progress tracker for batch analysis."""

    total: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: bool = False

    @property
    def pending(self) -> int:
        return self.total - self.completed - self.failed

    @property
    def progress_pct(self) -> float:
        if self.total == 0:
            return 0.0
        return round(((self.completed + self.failed) / self.total) * 100, 1)

    @property
    def is_done(self) -> bool:
        return self.pending == 0 or self.cancelled

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "completed": self.completed,
            "failed": self.failed,
            "pending": self.pending,
            "cancelled": self.cancelled,
            "progress_pct": self.progress_pct,
        }


@dataclass
class BatchSummary:
    """Aggregate view over a batch of results."""

    total: int = 0
    average_score: float = 0.0
    valid_count: int = 0
    compliant_count: int = 0
    failed_count: int = 0
    top_issues: list[tuple[str, int]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "average_score": self.average_score,
            "valid_count": self.valid_count,
            "compliant_count": self.compliant_count,
            "failed_count": self.failed_count,
            "top_issues": [{"message": message, "count": count} for message, count in self.top_issues],
        }


def summarize(results: list[EnhancementResult]) -> BatchSummary:
    """Average score, pass counts and the most frequent issue messages."""
    if not results:
        return BatchSummary()

    issue_counts: Counter[str] = Counter()
    for result in results:
        for issue in (*result.critical_issues, *result.recommendations):
            issue_counts[issue.message] += 1

    return BatchSummary(
        total=len(results),
        average_score=round(sum(r.overall_score for r in results) / len(results), 1),
        valid_count=sum(1 for r in results if r.is_valid),
        compliant_count=sum(1 for r in results if r.is_compliant),
        failed_count=sum(1 for r in results if not r.succeeded),
        top_issues=issue_counts.most_common(TOP_ISSUE_COUNT),
    )


def merge_issues(*groups: list[Issue]) -> list[Issue]:
    """Concatenate issue lists, dropping repeats of the same field/severity/message."""
    seen: set[tuple[str, Severity, str]] = set()
    merged: list[Issue] = []
    for group in groups:
        for issue in group:
            key = (issue.field, issue.severity, issue.message)
            if key in seen:
                continue
            seen.add(key)
            merged.append(issue)
    return merged


class EnhancementOrchestrator:
    """
    Orchestrates the enhancement and compliance pipeline.

    Pipeline steps:
    1. FieldValidator (or AIFieldValidator) → structural validation
    2. ComplianceChecker → policy and prohibited-content review
    3. ContentEnhancer + AltTextGenerator → rewritten or filled content
    4. KeywordGenerator → tiered search keywords
    5. ScoreAggregator → composite readiness score
    6. IProductStorage → persist the enhanced product (optional)

    Usage:
        orchestrator = EnhancementOrchestrator()
        result = await orchestrator.analyze(product, "amazon")
        results = await orchestrator.analyze_many(products, "etsy")
    """

    def __init__(
        self,
        registry: GuidelineRegistry | None = None,
        validator: FieldValidator | None = None,
        ai_validator: AIFieldValidator | None = None,
        compliance_checker: ComplianceChecker | None = None,
        content_enhancer: ContentEnhancer | None = None,
        keyword_generator: KeywordGenerator | None = None,
        alt_text_generator: AltTextGenerator | None = None,
        aggregator: ScoreAggregator | None = None,
        storage: IProductStorage | None = None,
        max_concurrency: int = 4,
    ):
        self._registry = registry or get_registry()
        self._validator = validator or FieldValidator(registry=self._registry)
        self._ai_validator = ai_validator  # None: rule-based validation only
        self._compliance = compliance_checker or ComplianceChecker(registry=self._registry)
        self._content = content_enhancer or ContentEnhancer(registry=self._registry)
        self._keywords = keyword_generator or KeywordGenerator(registry=self._registry)
        self._alt_text = alt_text_generator or AltTextGenerator(registry=self._registry)
        self._aggregator = aggregator or ScoreAggregator()
        self._storage = storage  # None: results are not persisted
        self._max_concurrency = max(1, max_concurrency)

    # ─── Single Product ───────────────────────────────────

    async def analyze(self, product: Product, marketplace: str) -> EnhancementResult:
        """
        Run one product through the full pipeline.

        Args:
            product: The seller's product record (never modified).
            marketplace: Target marketplace name; unknown names use the default.

        Returns:
            EnhancementResult with scores, issues, transformations and narrative.
        """
        started = time.perf_counter()
        guideline = self._registry.get(marketplace)
        original = product.snapshot()
        work = product.snapshot()
        narrative: list[str] = []
        degraded: list[str] = []

        def _record(step: PipelineStep, outcome: StepOutcome, label: str) -> None:
            narrative.append(f"[{step}] {outcome.narrative(label)}")
            if outcome.degraded:
                degraded.append(label)

        bind_product_context(product.product_id, guideline.name)
        try:
            logger.info(f"Analyzing product {product.product_id} for {guideline.display_name}")
            narrative.append(
                f"[{PipelineStep.START}] Analyzing '{original.title or original.product_id}' "
                f"for {guideline.display_name}"
            )
            if not self._registry.is_known(marketplace):
                narrative.append(
                    f"[{PipelineStep.START}] Unknown marketplace '{marketplace}'; "
                    f"using {guideline.display_name} guidelines"
                )

            # Step 1: Validate
            if self._ai_validator:
                validation_outcome = await self._ai_validator.validate(work, guideline.name)
            else:
                validation_outcome = StepOutcome(
                    value=self._validator.validate(work, guideline.name), source=StepSource.FALLBACK
                )
            validation = validation_outcome.value
            _record(PipelineStep.VALIDATE, validation_outcome, "Validation")
            narrative.append(
                f"[{PipelineStep.VALIDATE}] Score {validation.score}, {len(validation.issues)} issue(s)"
                + (f", missing: {', '.join(validation.missing_fields)}" if validation.missing_fields else "")
            )

            # Step 2: Compliance
            compliance_outcome = await self._compliance.run(work, guideline.name)
            compliance = compliance_outcome.value
            _record(PipelineStep.CHECK_COMPLIANCE, compliance_outcome, "Compliance")
            narrative.append(
                f"[{PipelineStep.CHECK_COMPLIANCE}] Score {compliance.score}, "
                f"{len(compliance.critical_issues)} critical issue(s), risk {compliance.risk_level}"
            )

            # Step 3: Enhance content
            content, content_outcomes = await self._content.enhance_with_outcomes(work, guideline.name)
            for name, outcome in content_outcomes.items():
                _record(PipelineStep.ENHANCE, outcome, name.replace("_", " ").capitalize())
            images, alt_outcomes = await self._alt_text.generate_with_outcomes(work, guideline.name)
            for outcome in alt_outcomes:
                _record(PipelineStep.ENHANCE, outcome, "Alt text")

            # Step 4: Keywords
            keyword_outcome = await self._keywords.run(work, guideline.name)
            keywords = keyword_outcome.value
            _record(PipelineStep.GENERATE_KEYWORDS, keyword_outcome, "Keywords")
            narrative.append(
                f"[{PipelineStep.GENERATE_KEYWORDS}] {len(keywords.primary)} primary, "
                f"{len(keywords.secondary)} secondary, {len(keywords.tertiary)} tertiary"
            )

            enhanced = Product.model_validate({
                **work.model_dump(),
                "title": content.title,
                "description": content.description,
                "bullet_points": content.bullet_points,
                "images": [image.model_dump() for image in images],
                "keywords": [*work.keywords, *keywords.all_keywords],
            })

            # Step 5: Score
            content_points = content_score(original, guideline)
            seo_points = seo_score(original, keywords)
            overall = self._aggregator.aggregate(validation, compliance, content_points, seo_points)
            narrative.append(
                f"[{PipelineStep.SCORE}] "
                + self._aggregator.breakdown(validation.score, compliance.score, content_points, seo_points)
            )

            issues = merge_issues(
                validation.issues,
                compliance.issues,
                self._keyword_issues(original, keywords, guideline),
                self._alt_text_issues(original, guideline),
            )

            if self._storage is not None:
                await self._save(enhanced, narrative)

            elapsed_ms = (time.perf_counter() - started) * 1000
            narrative.append(f"[{PipelineStep.DONE}] Overall score {overall} in {elapsed_ms:.0f} ms")
            if degraded:
                logger.warning(f"Product {product.product_id} completed in degraded mode: {', '.join(degraded)}")
            logger.info(f"Product {product.product_id} scored {overall} on {guideline.name}")

            return EnhancementResult(
                product_id=original.product_id,
                marketplace=guideline.name,
                original_product=original,
                enhanced_product=enhanced,
                transformations=self._transformations(original, enhanced, content, keywords, alt_outcomes),
                critical_issues=[i for i in issues if i.is_critical],
                recommendations=[i for i in issues if not i.is_critical],
                validation=validation,
                compliance=compliance,
                keywords=keywords,
                validation_score=validation.score,
                compliance_score=compliance.score,
                content_score=content_points,
                seo_score=seo_points,
                overall_score=overall,
                processing_time_ms=elapsed_ms,
                narrative=narrative,
                degraded_steps=degraded,
            )
        finally:
            clear_product_context()

    # ─── Batch ────────────────────────────────────────────

    async def analyze_many(
        self,
        products: list[Product],
        marketplace: str,
        on_progress: ProgressCallback | None = None,
        cancel_check: CancelCheck | None = None,
    ) -> list[EnhancementResult]:
        """
        Analyze multiple products with a bounded worker pool.

        Args:
            products: Products to analyze.
            marketplace: Target marketplace for every product.
            on_progress: Optional async callback invoked after each product.
                Signature: async (BatchProgress) -> None
            cancel_check: Optional sync function returning True if the batch
                is cancelled. Checked before each product starts; products
                already running finish normally.

        Returns:
            One result per started product, in input order.

        Raises:
            InvalidInputError: If ``products`` is not a list of Product.
        """
        self._check_batch_input(products)

        progress = BatchProgress(total=len(products))
        results: list[EnhancementResult | None] = [None] * len(products)
        semaphore = asyncio.Semaphore(self._max_concurrency)
        tasks: list[asyncio.Task] = []
        logger.info(
            f"Starting batch of {len(products)} product(s) on {marketplace} "
            f"(concurrency {self._max_concurrency})"
        )

        async def _run_one(index: int, product: Product) -> None:
            try:
                results[index] = await self.analyze(product, marketplace)
                progress.completed += 1
            except Exception as e:
                error = UnexpectedError(product.product_id, e)
                logger.error(error.message, exc_info=True)
                report_exception(e, product_id=product.product_id, marketplace=marketplace)
                results[index] = self._failed_result(product, marketplace, error)
                progress.failed += 1
            finally:
                semaphore.release()

            if on_progress:
                try:
                    await on_progress(progress)
                except Exception as e:
                    logger.warning(f"Progress callback failed: {e}")

        for i, product in enumerate(products):
            await semaphore.acquire()
            # Check for cancellation before starting each product
            if cancel_check and cancel_check():
                semaphore.release()
                progress.cancelled = True
                logger.info(f"Batch cancelled before product {i + 1}/{len(products)}")
                break
            tasks.append(asyncio.create_task(_run_one(i, product)))

        await asyncio.gather(*tasks)

        finished = [r for r in results if r is not None]
        logger.info(
            f"Batch finished: {progress.completed} succeeded, {progress.failed} failed, "
            f"{len(products) - len(finished)} not started"
        )
        return finished

    # ─── Internals ────────────────────────────────────────

    def _check_batch_input(self, products) -> None:
        if products is None:
            raise InvalidInputError("Product list is required")
        if not isinstance(products, list):
            raise InvalidInputError(
                f"Expected a list of products, got {type(products).__name__}",
                details={"type": type(products).__name__},
            )
        bad = [i for i, p in enumerate(products) if not isinstance(p, Product)]
        if bad:
            raise InvalidInputError(
                f"Items at positions {bad} are not Product records",
                details={"positions": bad},
            )

    async def _save(self, enhanced: Product, narrative: list[str]) -> None:
        try:
            await self._storage.save([enhanced])
            narrative.append(f"[{PipelineStep.DONE}] Saved enhanced product")
        except Exception as e:
            logger.warning(f"Failed to save product {enhanced.product_id}: {e}")
            narrative.append(f"[{PipelineStep.DONE}] Storage failed ({e}); result kept in memory")

    def _keyword_issues(self, product: Product, keywords: KeywordSet, guideline: MarketplaceGuideline) -> list[Issue]:
        if keywords.is_empty:
            return []
        usage = analyze_keyword_usage(product.searchable_text, keywords)
        messages = usage.suggestions + field_density_suggestions(product, keywords, guideline)
        return [
            Issue(field="keywords", severity=Severity.SUGGESTION, message=m, recommendation=m)
            for m in messages
        ]

    def _alt_text_issues(self, product: Product, guideline: MarketplaceGuideline) -> list[Issue]:
        issues = []
        for image in product.images:
            if not image.alt_text:
                continue
            for problem in validate_alt_text(image.alt_text, guideline):
                issues.append(Issue(
                    field="images",
                    severity=Severity.SUGGESTION,
                    message=problem,
                    recommendation="Describe what the image shows in plain words",
                    location=f"image {image.position + 1}",
                ))
        return issues

    def _transformations(
        self,
        original: Product,
        enhanced: Product,
        content: ContentEnhancement,
        keywords: KeywordSet,
        alt_outcomes: list[StepOutcome[str]],
    ) -> dict[str, FieldTransformation]:
        transformations = {
            name: FieldTransformation(
                field=name,
                before=getattr(original, name),
                after=getattr(enhanced, name),
                reasoning=content.reasoning[name],
                source=content.sources[name],
            )
            for name in ("title", "description", "bullet_points")
        }

        added = len(enhanced.keywords) - len(original.keywords)
        transformations["keywords"] = FieldTransformation(
            field="keywords",
            before=original.keywords,
            after=enhanced.keywords,
            reasoning=(
                f"Added {added} generated keyword(s) from the primary, secondary and tertiary tiers"
                if added else "No new keywords could be generated; no changes made"
            ),
        )

        if not original.images:
            image_reasoning = "No images provided; nothing to describe"
        elif alt_outcomes:
            image_reasoning = f"Generated alt text for {len(alt_outcomes)} image(s) that had none"
        else:
            image_reasoning = "All images already had alt text; no changes made"
        transformations["images"] = FieldTransformation(
            field="images",
            before=[image.alt_text for image in original.images],
            after=[image.alt_text for image in enhanced.images],
            reasoning=image_reasoning,
            source=(
                StepSource.AI
                if any(o.source == StepSource.AI for o in alt_outcomes)
                else StepSource.FALLBACK
            ),
        )
        return transformations

    def _failed_result(self, product: Product, marketplace: str, error: UnexpectedError) -> EnhancementResult:
        """Zero-scored placeholder for a product whose run raised."""
        guideline = self._registry.get(marketplace)
        snapshot = product.snapshot()
        return EnhancementResult(
            product_id=product.product_id,
            marketplace=guideline.name,
            original_product=snapshot,
            enhanced_product=snapshot,
            critical_issues=[Issue(
                field="general",
                severity=Severity.CRITICAL,
                message=error.message,
                recommendation="Check the product data and run the analysis again",
            )],
            narrative=[f"[{PipelineStep.FAILED}] {error.message}"],
            error=error.message,
        )
