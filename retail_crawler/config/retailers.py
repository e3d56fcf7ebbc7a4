# retail_crawler/config/retailers.py

"""Declarative retailer profiles and the shared lookup tables.

``selectors.json`` holds one profile per retailer slug. The ``_defaults``
block is deep-merged underneath every retailer so a profile only has to list
what differs. Lists replace, dicts merge. ``taxonomy.json`` holds the
category keyword table, generic-term filter, animal/food vocabulary and the
known-brand list. Both files are read once by the caller and injected into
the extractors and inferers; nothing here is module-global state.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from retail_crawler.config.settings import Settings

logger = logging.getLogger("retail_crawler.config")

_DEFAULTS_KEY = "_defaults"


@dataclass(frozen=True)
class ListingSelectors:
    """Locators used on category/search pages."""

    product_links: tuple[str, ...] = ()
    pagination: bool = True
    next_page: tuple[str, ...] = ()
    page_links: tuple[str, ...] = ()


@dataclass(frozen=True)
class DetailSelectors:
    """Ordered locator candidates for every product-detail field."""

    title: tuple[str, ...] = ()
    price: tuple[str, ...] = ()
    original_price: tuple[str, ...] = ()
    description: tuple[str, ...] = ()
    images: tuple[str, ...] = ()
    brand: tuple[str, ...] = ()
    weight: tuple[str, ...] = ()
    ingredients: tuple[str, ...] = ()
    nutrition: tuple[str, ...] = ()
    out_of_stock: tuple[str, ...] = ()
    in_stock: tuple[str, ...] = ()
    add_to_cart: tuple[str, ...] = ()
    id_attributes: tuple[str, ...] = ()
    extra_prices: dict[str, tuple[str, ...]] = field(default_factory=dict)


@dataclass(frozen=True)
class ReviewSelectors:
    """Locators for DOM review blocks (used when no JSON-LD reviews)."""

    containers: tuple[str, ...] = ()
    body: tuple[str, ...] = ()
    author: tuple[str, ...] = ()
    title: tuple[str, ...] = ()
    rating: tuple[str, ...] = ()
    date: tuple[str, ...] = ()
    verified: tuple[str, ...] = ()
    helpful: tuple[str, ...] = ()
    filled_star: tuple[str, ...] = ()


@dataclass(frozen=True)
class RetailerProfile:
    """Everything the shared extractors need to know about one retailer."""

    slug: str
    label: str
    domains: tuple[str, ...]
    currency: str = "GBP"
    request_delay: float = Settings.REQUEST_DELAY
    headers: dict[str, str] = field(default_factory=dict)
    product_url_patterns: tuple[re.Pattern[str], ...] = ()
    listing_url_patterns: tuple[re.Pattern[str], ...] = ()
    review_url_patterns: tuple[re.Pattern[str], ...] = ()
    external_id_patterns: tuple[re.Pattern[str], ...] = ()
    category_url_overrides: tuple[re.Pattern[str], ...] = ()
    breadcrumb_selectors: tuple[str, ...] = ()
    breadcrumb_depth: int = 1
    brand_skip_words: tuple[str, ...] = ()
    quantity_patterns: tuple[re.Pattern[str], ...] = ()
    blocked_markers: tuple[str, ...] = ()
    listing: ListingSelectors = field(default_factory=ListingSelectors)
    detail: DetailSelectors = field(default_factory=DetailSelectors)
    review: ReviewSelectors = field(default_factory=ReviewSelectors)

    # ── URL predicates ───────────────────────────────────

    def matches_domain(self, url: str) -> bool:
        """True when the URL host is one of ours or a subdomain of one."""
        host = (urlparse(url).hostname or "").lower()
        if not host:
            return False
        return any(
            host == domain or host.endswith("." + domain)
            for domain in self.domains
        )

    def is_product_url(self, url: str) -> bool:
        """True for product-detail pages of this retailer."""
        target = request_target(url)
        return self.matches_domain(url) and any(
            p.search(target) for p in self.product_url_patterns
        )

    def is_review_url(self, url: str) -> bool:
        """True for pages carrying this retailer's product reviews."""
        if not self.matches_domain(url):
            return False
        target = request_target(url)
        if self.review_url_patterns and any(
            p.search(target) for p in self.review_url_patterns
        ):
            return True
        return self.is_product_url(url)

    def is_listing_url(self, url: str) -> bool:
        """True for category/search pages: on-domain and not a product."""
        if not self.matches_domain(url) or self.is_product_url(url):
            return False
        target = request_target(url)
        if any(p.search(target) for p in self.review_url_patterns):
            return False
        if not self.listing_url_patterns:
            return True
        return any(p.search(target) for p in self.listing_url_patterns)

    def external_id_from_url(self, url: str) -> str | None:
        """First capture group of the first matching ID pattern."""
        target = request_target(url)
        for pattern in self.external_id_patterns:
            match = pattern.search(target)
            if match:
                return match.group(1)
        return None


@dataclass(frozen=True)
class Taxonomy:
    """Shared lookup tables for category and brand inference."""

    category_patterns: dict[str, tuple[str, ...]]
    generic_terms: frozenset[str]
    animal_synonyms: dict[str, str]
    food_types: frozenset[str]
    known_brands: tuple[str, ...]
    brand_aliases: dict[str, str]
    retailer_brands: dict[str, tuple[str, ...]]
    brand_skip_words: frozenset[str]
    brand_noise_patterns: tuple[str, ...]


def request_target(url: str) -> str:
    """Return the path plus query of *url* (what URL patterns match)."""
    parsed = urlparse(url)
    target = parsed.path or "/"
    if parsed.query:
        target += "?" + parsed.query
    return target


def _deep_merge(
    base: dict[str, Any], override: dict[str, Any],
) -> dict[str, Any]:
    """Merge *override* onto *base*; nested dicts merge, everything else replaces."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _compile(patterns: list[str]) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p) for p in patterns)


def _selector_block(cls: type[Any], raw: dict[str, Any]) -> Any:
    """Build a selector dataclass, turning JSON lists into tuples."""
    kwargs: dict[str, Any] = {}
    for key, value in raw.items():
        if key not in cls.__dataclass_fields__:
            logger.warning("Unknown selector key '%s' ignored", key)
            continue
        if isinstance(value, list):
            kwargs[key] = tuple(value)
        elif isinstance(value, dict):
            kwargs[key] = {k: tuple(v) for k, v in value.items()}
        else:
            kwargs[key] = value
    return cls(**kwargs)


def build_profile(slug: str, raw: dict[str, Any]) -> RetailerProfile:
    """Turn one merged JSON profile into a :class:`RetailerProfile`."""
    return RetailerProfile(
        slug=slug,
        label=raw.get("label", slug),
        domains=tuple(d.lower() for d in raw.get("domains", [])),
        currency=raw.get("currency", "GBP"),
        request_delay=float(
            raw.get("request_delay", Settings.REQUEST_DELAY)
        ),
        headers=dict(raw.get("headers", {})),
        product_url_patterns=_compile(raw.get("product_url_patterns", [])),
        listing_url_patterns=_compile(raw.get("listing_url_patterns", [])),
        review_url_patterns=_compile(raw.get("review_url_patterns", [])),
        external_id_patterns=_compile(raw.get("external_id_patterns", [])),
        category_url_overrides=_compile(
            raw.get("category_url_overrides", [])
        ),
        breadcrumb_selectors=tuple(raw.get("breadcrumb_selectors", [])),
        breadcrumb_depth=int(raw.get("breadcrumb_depth", 1)),
        brand_skip_words=tuple(
            w.lower() for w in raw.get("brand_skip_words", [])
        ),
        quantity_patterns=tuple(
            re.compile(p, re.IGNORECASE)
            for p in raw.get("quantity_patterns", [])
        ),
        blocked_markers=tuple(
            m.lower() for m in raw.get("blocked_markers", [])
        ),
        listing=_selector_block(ListingSelectors, raw.get("listing", {})),
        detail=_selector_block(DetailSelectors, raw.get("detail", {})),
        review=_selector_block(ReviewSelectors, raw.get("review", {})),
    )


def load_profiles(path: Path | None = None) -> dict[str, RetailerProfile]:
    """Load every retailer profile from ``selectors.json``."""
    with open(path or Settings.SELECTORS_PATH, encoding="utf-8") as f:
        raw: dict[str, Any] = json.load(f)

    defaults: dict[str, Any] = raw.pop(_DEFAULTS_KEY, {})
    profiles: dict[str, RetailerProfile] = {}
    for slug, entry in raw.items():
        profiles[slug] = build_profile(slug, _deep_merge(defaults, entry))
    logger.debug("Loaded %d retailer profiles", len(profiles))
    return profiles


def load_taxonomy(path: Path | None = None) -> Taxonomy:
    """Load the category and brand lookup tables from ``taxonomy.json``."""
    with open(path or Settings.TAXONOMY_PATH, encoding="utf-8") as f:
        raw: dict[str, Any] = json.load(f)

    return Taxonomy(
        category_patterns={
            k: tuple(v) for k, v in raw.get("category_patterns", {}).items()
        },
        generic_terms=frozenset(
            t.lower() for t in raw.get("generic_terms", [])
        ),
        animal_synonyms={
            k.lower(): v for k, v in raw.get("animal_synonyms", {}).items()
        },
        food_types=frozenset(
            t.lower() for t in raw.get("food_types", [])
        ),
        known_brands=tuple(raw.get("known_brands", [])),
        brand_aliases={
            k.lower(): v for k, v in raw.get("brand_aliases", {}).items()
        },
        retailer_brands={
            k: tuple(v) for k, v in raw.get("retailer_brands", {}).items()
        },
        brand_skip_words=frozenset(
            w.lower() for w in raw.get("brand_skip_words", [])
        ),
        brand_noise_patterns=tuple(raw.get("brand_noise_patterns", [])),
    )
