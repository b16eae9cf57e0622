"""
Listing Enhancer entry point.

``create_orchestrator`` wires the pipeline from settings; ``main`` is the
``listing-enhancer`` command, which reads a JSON file of products, runs a
batch and prints the results as JSON on stdout.

Usage:
    listing-enhancer products.json --marketplace etsy
    listing-enhancer products.json --summary --no-ai > results.json
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from listing_enhancer import __version__
from listing_enhancer.ai.openrouter import OpenRouterTextGenerator
from listing_enhancer.config import Settings, get_settings
from listing_enhancer.converters.content_enhancer import ContentEnhancer
from listing_enhancer.core.exceptions import InvalidInputError, ListingEnhancerError
from listing_enhancer.core.interfaces import IProductStorage, ITextGenerator
from listing_enhancer.core.logging_config import setup_logging
from listing_enhancer.core.models import Product
from listing_enhancer.core.resilience import ModelFallbackRunner
from listing_enhancer.core.sentry_config import init_sentry
from listing_enhancer.guidelines.registry import GuidelineRegistry
from listing_enhancer.services.alt_text_service import AltTextGenerator
from listing_enhancer.services.compliance_service import ComplianceChecker
from listing_enhancer.services.enhancement_service import EnhancementOrchestrator, summarize
from listing_enhancer.services.field_validator import AIFieldValidator, FieldValidator
from listing_enhancer.services.keyword_generator import KeywordGenerator
from listing_enhancer.services.score_aggregator import ScoreAggregator, ScoreWeights

logger = logging.getLogger(__name__)


def create_runner(settings: Settings, generator: ITextGenerator | None) -> ModelFallbackRunner:
    """AI step runner; disabled (fallback-only) when AI is not available."""
    return ModelFallbackRunner(
        generator=generator if settings.ai_available else None,
        models=settings.model_list,
        max_attempts=settings.ai_max_attempts,
        retry_delay=settings.ai_retry_delay_seconds,
        timeout=settings.ai_timeout_seconds,
        temperature=settings.ai_temperature,
        max_tokens=settings.ai_max_tokens,
    )


def create_orchestrator(
    settings: Settings | None = None,
    generator: ITextGenerator | None = None,
    storage: IProductStorage | None = None,
) -> EnhancementOrchestrator:
    """
    Build an EnhancementOrchestrator from settings.

    Args:
        settings: Application settings (defaults to ``get_settings()``).
        generator: Text generator for AI steps. Ignored unless AI is
            enabled and an API key is configured.
        storage: Optional product storage for enhanced products.
    """
    settings = settings or get_settings()
    registry = GuidelineRegistry(
        default=settings.default_marketplace,
        overrides_path=settings.guidelines_path or None,
    )
    runner = create_runner(settings, generator)
    validator = FieldValidator(registry=registry, pass_threshold=settings.validation_pass_threshold)

    return EnhancementOrchestrator(
        registry=registry,
        validator=validator,
        ai_validator=(
            AIFieldValidator(runner=runner, validator=validator, registry=registry)
            if settings.ai_field_validation else None
        ),
        compliance_checker=ComplianceChecker(
            registry=registry,
            runner=runner,
            protected_brands_path=settings.protected_brands_path or None,
            pass_threshold=settings.compliance_pass_threshold,
        ),
        content_enhancer=ContentEnhancer(registry=registry, runner=runner),
        keyword_generator=KeywordGenerator(registry=registry, runner=runner),
        alt_text_generator=AltTextGenerator(
            registry=registry, runner=runner if settings.ai_alt_text else None
        ),
        aggregator=ScoreAggregator(ScoreWeights.from_settings(settings)),
        storage=storage,
        max_concurrency=settings.batch_max_concurrency,
    )


def load_products(path: Path) -> list[Product]:
    """
    Read products from a JSON file.

    Accepts either a JSON array of product objects or an object with a
    ``products`` array.

    Raises:
        InvalidInputError: If the file is unreadable or not product data.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise InvalidInputError(f"Cannot read {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise InvalidInputError(f"Invalid JSON in {path}: {e.msg}") from e

    if isinstance(data, dict):
        data = data.get("products")
    if not isinstance(data, list):
        raise InvalidInputError(f"{path} must contain a list of products")

    try:
        return [Product.model_validate(item) for item in data]
    except ValidationError as e:
        raise InvalidInputError(f"Invalid product data in {path}: {e}") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="listing-enhancer",
        description="Validate, check and enhance product listings for a marketplace.",
    )
    parser.add_argument("products", type=Path, help="JSON file with a list of products")
    parser.add_argument("-m", "--marketplace", default=None, help="Target marketplace (default from settings)")
    parser.add_argument("--summary", action="store_true", help="Include a batch summary in the output")
    parser.add_argument("--no-ai", action="store_true", help="Use rule-based analysis only")
    parser.add_argument("-o", "--output", type=Path, default=None, help="Write JSON here instead of stdout")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


async def run_batch(args: argparse.Namespace, settings: Settings) -> dict:
    products = load_products(args.products)
    marketplace = args.marketplace or settings.default_marketplace

    generator = None
    if settings.ai_available:
        generator = OpenRouterTextGenerator(
            api_key=settings.openrouter_api_key,
            base_url=settings.openrouter_base_url,
            site_url=settings.openrouter_site_url,
            app_title=settings.openrouter_app_title,
            temperature=settings.ai_temperature,
            max_tokens=settings.ai_max_tokens,
        )

    try:
        orchestrator = create_orchestrator(settings, generator=generator)
        results = await orchestrator.analyze_many(products, marketplace)
    finally:
        if generator:
            await generator.close()

    output: dict = {"marketplace": marketplace, "results": [r.to_dict() for r in results]}
    if args.summary:
        output["summary"] = summarize(results).to_dict()
    return output


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    if args.no_ai:
        settings = settings.model_copy(update={"ai_enabled": False})

    # 1. Configure structured logging (before anything else)
    setup_logging(
        app_env=settings.app_env,
        log_level=settings.log_level,
        log_format=settings.log_format,
    )

    # 2. Initialize Sentry
    init_sentry(
        dsn=settings.sentry_dsn,
        app_env=settings.app_env,
        app_version=__version__,
        traces_sample_rate=settings.sentry_traces_sample_rate,
    )

    logger.info(f"Starting {settings.app_name} v{__version__} ({settings.app_env.value})")
    try:
        output = asyncio.run(run_batch(args, settings))
    except ListingEnhancerError as e:
        logger.error(f"Batch failed: {e.message}")
        print(f"error: {e.message}", file=sys.stderr)
        return 1

    text = json.dumps(output, indent=2, ensure_ascii=False)
    if args.output:
        args.output.write_text(text + "\n", encoding="utf-8")
    else:
        print(text)
    return 0


if __name__ == "__main__":
    sys.exit(main())
