"""
Tiered search keyword generation.

Produces primary (highest intent), secondary and tertiary (long tail)
keywords for a product. The AI path asks a model for the three tiers as
JSON and, when the JSON is malformed, salvages "Primary keywords: ..."
style sections from the text. The fallback path derives keywords from
the product's own brand, category, title, attributes and description.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass, field

from listing_enhancer.ai.parsing import parse_json_object, text_items
from listing_enhancer.ai.prompts import PromptType, build_system_prompt, build_user_prompt
from listing_enhancer.core.exceptions import ParseError
from listing_enhancer.core.models import KeywordSet, MarketplaceGuideline, Product, StepSource, is_blank
from listing_enhancer.core.resilience import AIStep, ModelFallbackRunner, StepOutcome
from listing_enhancer.core.text import term_pattern, words
from listing_enhancer.guidelines.registry import GuidelineRegistry, get_registry

logger = logging.getLogger(__name__)

TITLE_PREFIX_WORDS = 3
MIN_PHRASE_LENGTH = 10
MIN_FREQUENT_WORD_LENGTH = 4
FREQUENT_WORD_COUNT = 10
MIN_BIGRAM_LENGTH = 6

LOW_DENSITY_PCT = 1.0
HIGH_DENSITY_PCT = 10.0

_SECTION_PATTERNS = {
    "primary": re.compile(r"primary[\s_]*keywords?['\"]?\s*[:;\-]?\s*(.*?)(?=secondary|tertiary|$)", re.I | re.S),
    "secondary": re.compile(r"secondary[\s_]*keywords?['\"]?\s*[:;\-]?\s*(.*?)(?=primary|tertiary|$)", re.I | re.S),
    "tertiary": re.compile(r"tertiary[\s_]*keywords?['\"]?\s*[:;\-]?\s*(.*?)(?=primary|secondary|$)", re.I | re.S),
}
_LIST_MARKER = re.compile(r"^\s*(?:[-*#•]+|\d+[.)])\s*")
_SECTION_NOISE = re.compile(r"[\[\]{}\"*#]")


@dataclass
class KeywordUsage:
    """How well a piece of content already uses a keyword set."""

    word_count: int
    keyword_count: int
    primary_found: list[str] = field(default_factory=list)
    secondary_found: list[str] = field(default_factory=list)
    tertiary_found: list[str] = field(default_factory=list)
    missing_primary: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)

    @property
    def density(self) -> float:
        """Keyword occurrences per 100 words."""
        if self.word_count == 0:
            return 0.0
        return round(self.keyword_count / self.word_count * 100, 2)

    def to_dict(self) -> dict:
        return {
            "density": self.density,
            "word_count": self.word_count,
            "keyword_count": self.keyword_count,
            "primary_found": self.primary_found,
            "secondary_found": self.secondary_found,
            "tertiary_found": self.tertiary_found,
            "missing_primary": self.missing_primary,
            "suggestions": self.suggestions,
        }


def analyze_keyword_usage(content: str, keywords: KeywordSet) -> KeywordUsage:
    """
    Measure which keywords appear in ``content`` and how densely.

    Args:
        content: Listing text (title, description and bullets).
        keywords: The keyword tiers to look for.

    Returns:
        KeywordUsage with found/missing keywords and improvement suggestions.
    """
    word_count = len(content.split())
    usage = KeywordUsage(word_count=word_count, keyword_count=0)

    tiers = (
        (keywords.primary, usage.primary_found),
        (keywords.secondary, usage.secondary_found),
        (keywords.tertiary, usage.tertiary_found),
    )
    for tier, found in tiers:
        for keyword in tier:
            matches = len(term_pattern(keyword).findall(content))
            if matches:
                found.append(keyword)
                usage.keyword_count += matches

    usage.missing_primary = [k for k in keywords.primary if k not in usage.primary_found]
    if usage.missing_primary:
        usage.suggestions.append(f"Add missing primary keywords: {', '.join(usage.missing_primary)}")
    if usage.density < LOW_DENSITY_PCT:
        usage.suggestions.append("Increase keyword density by adding more relevant keywords")
    elif usage.density > HIGH_DENSITY_PCT:
        usage.suggestions.append("Keyword density is too high; consider reducing keyword repetition")
    return usage


class KeywordGenerator:
    """
    Generates a KeywordSet for a product on a marketplace.

    Usage:
        keywords = await KeywordGenerator(runner=runner).generate(product, "etsy")
        keywords = KeywordGenerator().generate_fallback(product)
    """

    def __init__(
        self,
        registry: GuidelineRegistry | None = None,
        runner: ModelFallbackRunner | None = None,
    ):
        self._registry = registry or get_registry()
        self._runner = runner

    async def generate(self, product: Product, marketplace: str) -> KeywordSet:
        outcome = await self.run(product, marketplace)
        return outcome.value

    async def run(self, product: Product, marketplace: str) -> StepOutcome[KeywordSet]:
        if self._runner is None:
            return StepOutcome(value=self.generate_fallback(product), source=StepSource.FALLBACK)

        guideline = self._registry.get(marketplace)
        step = AIStep(
            name="keyword generation",
            build_prompt=lambda: (
                build_system_prompt(guideline, PromptType.KEYWORDS),
                build_user_prompt(product, "Suggest search keywords for this product."),
            ),
            parse=self.parse_response,
            fallback=lambda: self.generate_fallback(product),
        )
        return await self._runner.run(step)

    # ─── AI Response Parsing ──────────────────────────────

    def parse_response(self, raw: str) -> KeywordSet:
        """
        Parse keyword tiers from a model response.

        Tries strict JSON first; a reply that is not JSON at all goes
        through regex section extraction instead.

        Raises:
            ParseError: If the JSON tiers have the wrong shape, or no
                keyword is found either way.
        """
        try:
            data = parse_json_object(raw)
        except ParseError:
            logger.info("Keyword response is not JSON; extracting sections from text")
            keyword_set = self._extract_sections(raw)
        else:
            keyword_set = KeywordSet(
                primary=_as_list(data, "primary_keywords", raw),
                secondary=_as_list(data, "secondary_keywords", raw),
                tertiary=_as_list(data, "tertiary_keywords", raw),
            )

        if keyword_set.is_empty:
            raise ParseError("No keywords found in response", raw_response=raw)
        return keyword_set

    def _extract_sections(self, raw: str) -> KeywordSet:
        tiers: dict[str, list[str]] = {}
        for tier, pattern in _SECTION_PATTERNS.items():
            match = pattern.search(raw or "")
            tiers[tier] = _split_section(match.group(1)) if match else []
        return KeywordSet(**tiers)

    # ─── Fallback ─────────────────────────────────────────

    def generate_fallback(self, product: Product) -> KeywordSet:
        """Derive keywords from the product's own data."""
        brand = (product.brand or "").strip().lower()
        category = (product.category_leaf or "").lower()
        title_words = words(product.title)

        primary: list[str] = []
        if brand:
            primary.append(brand)
            if category:
                primary.append(f"{brand} {category}")
        if title_words:
            primary.append(" ".join(title_words[:TITLE_PREFIX_WORDS]))

        secondary: list[str] = []
        for i in range(len(title_words) - 2):
            phrase = " ".join(title_words[i:i + 3])
            if len(phrase) > MIN_PHRASE_LENGTH:
                secondary.append(phrase)
        for value in product.attributes.values():
            if isinstance(value, str) and not is_blank(value):
                secondary.append(f"{category} {value.strip().lower()}".strip())

        tertiary: list[str] = []
        description_words = words(product.description)
        frequent = Counter(w for w in description_words if len(w) >= MIN_FREQUENT_WORD_LENGTH)
        tertiary += [w for w, _ in frequent.most_common(FREQUENT_WORD_COUNT)]
        bigrams: list[str] = []
        for first, second in zip(description_words, description_words[1:]):
            bigram = f"{first} {second}"
            if len(bigram) >= MIN_BIGRAM_LENGTH and bigram not in bigrams:
                bigrams.append(bigram)
            if len(bigrams) >= KeywordSet.MAX_TERTIARY:
                break
        tertiary += bigrams

        return KeywordSet(primary=primary, secondary=secondary, tertiary=tertiary)


def _as_list(data: dict, key: str, raw: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if isinstance(value, str):
        return [part for part in (p.strip() for p in value.split(",")) if part]
    if isinstance(value, list):
        return text_items(value, key, raw)
    raise ParseError(f"Expected a keyword list for '{key}', got {type(value).__name__}", raw_response=raw)


def _split_section(section: str) -> list[str]:
    keywords: list[str] = []
    for part in re.split(r"[,\n]+", section):
        cleaned = _SECTION_NOISE.sub("", _LIST_MARKER.sub("", part)).strip(" :;-").lower()
        if cleaned:
            keywords.append(cleaned)
    return keywords


def field_density_suggestions(
    product: Product,
    keywords: KeywordSet,
    guideline: MarketplaceGuideline,
) -> list[str]:
    """Flag listing fields whose keyword density exceeds the marketplace maximum."""
    limits = guideline.keyword_density
    fields = (
        ("Title", product.title or "", limits.title),
        ("Description", product.description or "", limits.description),
        ("Bullet point", " ".join(product.bullet_points), limits.bullet_points),
    )
    suggestions: list[str] = []
    for label, text, max_pct in fields:
        usage = analyze_keyword_usage(text, keywords)
        if usage.word_count and usage.density > max_pct:
            suggestions.append(
                f"{label} keyword density {usage.density:.1f}% exceeds the recommended "
                f"{max_pct:g}% for {guideline.display_name}; reduce repetition"
            )
    return suggestions
