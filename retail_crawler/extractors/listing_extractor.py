# retail_crawler/extractors/listing_extractor.py

"""Category and search page extractor: product links plus the next page."""

import re
from collections.abc import Iterator
from datetime import datetime, timezone

from bs4 import BeautifulSoup

from retail_crawler.extractors.base_extractor import Extractor
from retail_crawler.extractors.selector_cascade import element_text, select_all
from retail_crawler.models.product import ListingUrl, PaginatedListingUrl

# Offset-paginated listings assume this many items per page
ITEMS_PER_PAGE = 24

_PAGE_PARAM_RE = re.compile(r"[?&]page=(\d+)", re.IGNORECASE)
_PAGE_PATH_RE = re.compile(r"/page/(\d+)", re.IGNORECASE)
_P_PATH_RE = re.compile(r"/p/(\d+)", re.IGNORECASE)
_START_PARAM_RE = re.compile(r"[?&]start=(\d+)", re.IGNORECASE)


def current_page_number(url: str) -> int:
    """Page number encoded in a listing URL; 1 when none is present."""
    for pattern in (_PAGE_PARAM_RE, _PAGE_PATH_RE, _P_PATH_RE):
        match = pattern.search(url)
        if match:
            return int(match.group(1))
    match = _START_PARAM_RE.search(url)
    if match:
        return int(match.group(1)) // ITEMS_PER_PAGE + 1
    return 1


def _is_invalid_page_link(href: str) -> bool:
    lower = href.lower()
    return any(marker in lower for marker in ("javascript:", "#", "void(0)"))


ListingItem = ListingUrl | PaginatedListingUrl


class ListingExtractor(Extractor[ListingItem]):
    """Yield every product URL on a listing page, then the next page."""

    kind = "listing"

    def can_handle(self, url: str) -> bool:
        return self.profile.is_listing_url(url)

    def extract(self, html: str, url: str) -> Iterator[ListingItem]:
        soup = self._parse(html, url)
        if soup is None:
            return
        category = self.infer_category(url, soup)
        discovered_at = datetime.now(timezone.utc).isoformat()

        count = 0
        for product_url in self.product_urls(soup, url):
            count += 1
            yield ListingUrl(
                url=product_url,
                retailer_slug=self.profile.slug,
                category=category,
                metadata={
                    "discovered_from": url,
                    "discovered_at": discovered_at,
                },
            )
        self.logger.info(
            "[%s] %d product URLs on %s", self.profile.slug, count, url
        )

        next_page = self.next_page(soup, url, category)
        if next_page is not None:
            yield next_page

    def product_urls(self, soup: BeautifulSoup, url: str) -> Iterator[str]:
        """Absolute, de-duplicated product URLs in document order."""
        seen: set[str] = set()
        for selector in self.profile.listing.product_links:
            for link in select_all(soup, selector):
                href = link.get("href")
                absolute = self.absolute_url(
                    href if isinstance(href, str) else None, url
                )
                if not absolute or absolute in seen:
                    continue
                seen.add(absolute)
                if self.profile.is_product_url(absolute):
                    yield absolute

    def next_page(
        self, soup: BeautifulSoup, url: str, category: str | None = None,
    ) -> PaginatedListingUrl | None:
        if not self.profile.listing.pagination:
            return None
        current = current_page_number(url)
        next_url = self._find_next_link(soup, url, current)
        if next_url is None:
            return None

        match = _PAGE_PARAM_RE.search(next_url)
        page_number = int(match.group(1)) if match else current + 1
        if page_number <= current:
            self.logger.debug(
                "[%s] Ignoring backwards pagination link %s",
                self.profile.slug,
                next_url,
            )
            return None
        return PaginatedListingUrl(
            url=next_url,
            retailer_slug=self.profile.slug,
            page_number=page_number,
            category=category,
            discovered_from=url,
        )

    def _find_next_link(
        self, soup: BeautifulSoup, url: str, current: int,
    ) -> str | None:
        """Explicit "next" controls first, then the link labelled current+1."""
        for selector in self.profile.listing.next_page:
            for link in select_all(soup, selector):
                next_url = self._page_href(link.get("href"), url)
                if next_url:
                    return next_url

        wanted = str(current + 1)
        for selector in self.profile.listing.page_links:
            for link in select_all(soup, selector):
                if element_text(link) != wanted:
                    continue
                next_url = self._page_href(link.get("href"), url)
                if next_url:
                    return next_url
        return None

    def _page_href(self, href: object, url: str) -> str | None:
        if not isinstance(href, str) or _is_invalid_page_link(href):
            return None
        absolute = self.absolute_url(href, url)
        if absolute == url:
            return None
        return absolute
