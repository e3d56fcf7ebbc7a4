# retail_crawler/extractors/registry.py

"""Lookup of the extractor responsible for a URL."""

import logging
from collections.abc import Mapping
from typing import Any

from retail_crawler.config.retailers import RetailerProfile
from retail_crawler.extractors.base_extractor import Extractor
from retail_crawler.extractors.detail_extractor import DetailExtractor
from retail_crawler.extractors.listing_extractor import ListingExtractor
from retail_crawler.extractors.review_extractor import ReviewExtractor
from retail_crawler.inference.brand_detector import BrandDetector
from retail_crawler.inference.category_inferer import CategoryInferer

logger = logging.getLogger("retail_crawler.registry")

KINDS: tuple[str, ...] = ("listing", "detail", "review")


class ExtractorRegistry:
    """One listing, detail and review extractor per retailer profile."""

    def __init__(
        self,
        profiles: Mapping[str, RetailerProfile],
        inferer: CategoryInferer,
        brand_detector: BrandDetector,
    ) -> None:
        self.profiles = dict(profiles)
        self._extractors: dict[str, list[Extractor[Any]]] = {
            kind: [] for kind in KINDS
        }
        for profile in self.profiles.values():
            self._extractors["listing"].append(ListingExtractor(profile, inferer))
            self._extractors["detail"].append(
                DetailExtractor(profile, inferer, brand_detector)
            )
            self._extractors["review"].append(ReviewExtractor(profile, inferer))

    def extractors(self, kind: str) -> list[Extractor[Any]]:
        if kind not in self._extractors:
            raise ValueError(
                f"Unknown extractor kind '{kind}', expected one of {KINDS}"
            )
        return list(self._extractors[kind])

    def find(self, url: str, kind: str) -> Extractor[Any] | None:
        """The extractor of *kind* that claims *url*, or None."""
        matches = [e for e in self.extractors(kind) if e.can_handle(url)]
        if not matches:
            return None
        if len(matches) > 1:
            logger.warning(
                "[%s] %d extractors claim %s: %s; using the first",
                kind,
                len(matches),
                url,
                ", ".join(repr(e) for e in matches),
            )
        return matches[0]

    def retailer_for(self, url: str) -> RetailerProfile | None:
        """Profile whose domains include the URL host."""
        for profile in self.profiles.values():
            if profile.matches_domain(url):
                return profile
        return None
