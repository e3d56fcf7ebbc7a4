# retail_crawler/extractors/base_extractor.py

"""Abstract base class for all extractors."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import Generic, TypeVar
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from retail_crawler.config.retailers import RetailerProfile
from retail_crawler.fetch.http_fetcher import looks_blocked
from retail_crawler.inference.category_inferer import CategoryInferer

T = TypeVar("T")

_INVALID_HREF_PREFIXES = ("javascript:", "mailto:", "tel:", "#")


class Extractor(ABC, Generic[T]):
    """Turn one page of one retailer into a lazy stream of DTOs.

    ``can_handle`` is a pure URL predicate. ``extract`` is a generator: it
    parses nothing until iterated and can be consumed only once.
    """

    kind: str = ""

    def __init__(
        self,
        profile: RetailerProfile,
        inferer: CategoryInferer,
    ) -> None:
        self.profile = profile
        self.inferer = inferer
        self.logger = logging.getLogger(
            f"retail_crawler.{profile.slug}"
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.profile.slug!r})"

    @property
    def retailer_slug(self) -> str:
        return self.profile.slug

    @abstractmethod
    def can_handle(self, url: str) -> bool:
        """True if this extractor understands pages at *url*."""
        ...

    @abstractmethod
    def extract(self, html: str, url: str) -> Iterator[T]:
        """Yield DTOs parsed from *html* fetched from *url*."""
        ...

    # ── Shared helpers ───────────────────────────────────

    def _parse(self, html: str, url: str) -> BeautifulSoup | None:
        """Parse HTML, or return None for challenge/CAPTCHA pages."""
        marker = looks_blocked(html, self.profile.blocked_markers)
        if marker:
            self.logger.warning(
                "[%s] Blocked page at %s (marker: '%s')",
                self.profile.slug,
                url,
                marker,
            )
            return None
        return BeautifulSoup(html, "lxml")

    @staticmethod
    def absolute_url(href: str | None, base_url: str) -> str | None:
        """Resolve *href* against the page URL; drop non-navigational links."""
        if not href:
            return None
        href = href.strip()
        lower = href.lower()
        if not href or lower.startswith(_INVALID_HREF_PREFIXES) or "void(0)" in lower:
            return None
        absolute = urljoin(base_url, href)
        if urlparse(absolute).scheme not in ("http", "https"):
            return None
        # Fragments never change the page
        return absolute.split("#", 1)[0]

    def infer_category(self, url: str, soup: BeautifulSoup | None = None) -> str | None:
        """Retailer URL override, then breadcrumbs, then generic URL rules."""
        for pattern in self.profile.category_url_overrides:
            match = pattern.search(url)
            if match:
                mapped = self.inferer.map_segment(match.group(1))
                if mapped:
                    return mapped
        if soup is not None:
            crumb = self.inferer.extract_from_breadcrumbs(
                soup,
                self.profile.breadcrumb_selectors,
                self.profile.breadcrumb_depth,
            )
            if crumb:
                return crumb
        return self.inferer.extract_from_url(url)
