# retail_crawler/extractors/review_extractor.py

"""Customer review extractor.

Reviews are read from JSON-LD when the page embeds them and from the
profile's DOM review containers otherwise. A review without a positive
rating or a body is dropped.
"""

import hashlib
import re
from collections.abc import Iterator
from datetime import datetime, timezone
from typing import Any

from bs4 import BeautifulSoup, Tag

from retail_crawler.extractors.base_extractor import Extractor
from retail_crawler.extractors.selector_cascade import (
    any_match,
    element_text,
    first_text,
    select_all,
)
from retail_crawler.extractors.structured_data import (
    has_type,
    iter_json_ld,
    iter_nodes,
    node_text,
)
from retail_crawler.inference.attributes import (
    clean_text,
    normalize_rating,
    parse_first_int,
)
from retail_crawler.models.product import ProductReview

_RATING_ATTRIBUTES: tuple[str, ...] = ("data-rating", "data-score", "data-stars")
_WIDTH_RE = re.compile(r"width:\s*(\d+(?:\.\d+)?)\s*%")
_STAR_TEXT_RE = re.compile(
    r"(\d+(?:[.,]\d+)?)\s*(?:/\s*5|out\s+of\s+5|stars?)", re.IGNORECASE
)
_VERIFIED_TEXT_RE = re.compile(r"verified\s+(?:purchase|buyer|owner)", re.IGNORECASE)
_WIDTH_SELECTORS = ".rating-stars, .star-rating, .bv-rating-stars-on"
_TRUE_FLAGS = frozenset({"true", "yes", "y", "1"})

_DATE_FORMATS: tuple[str, ...] = (
    "%d %B %Y",
    "%d %b %Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d/%m/%Y",
    "%Y-%m-%d",
)
_DATE_TOKEN_RE = re.compile(
    r"\d{1,2}\s+[A-Za-z]{3,9}\s+\d{4}"
    r"|[A-Za-z]{3,9}\s+\d{1,2},\s*\d{4}"
    r"|\d{1,2}/\d{1,2}/\d{4}"
    r"|\d{4}-\d{2}-\d{2}"
)


def _json_flag(value: Any) -> bool:
    """JSON-LD booleans arrive as true, "true", "False" or 1 depending on the site."""
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_FLAGS
    return bool(value)


def parse_review_date(text: str | None) -> datetime | None:
    """ISO-8601 first, then common UK/US display formats inside the text."""
    if not text:
        return None
    text = text.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    match = _DATE_TOKEN_RE.search(text)
    if not match:
        return None
    token = " ".join(match.group(0).split())
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(token, fmt)
        except ValueError:
            continue
    return None


class ReviewExtractor(Extractor[ProductReview]):
    """Yield every usable review on a product or review page."""

    kind = "review"

    def can_handle(self, url: str) -> bool:
        return self.profile.is_review_url(url)

    def extract(self, html: str, url: str) -> Iterator[ProductReview]:
        soup = self._parse(html, url)
        if soup is None:
            return
        found = False
        for review in self._from_json_ld(soup, url):
            found = True
            yield review
        if not found:
            yield from self._from_dom(soup, url)

    def review_id(self, url: str, author: str | None, body: str, index: int) -> str:
        """Stable content-derived ID for reviews that carry none."""
        digest = hashlib.md5(
            f"{url}{author or ''}{body}".encode("utf-8")
        ).hexdigest()
        return f"{self.profile.slug}-review-{digest}-{index}"

    def _review_metadata(self, source: str, url: str) -> dict[str, Any]:
        return {
            "source": source,
            "source_url": url,
            "retailer": self.profile.slug,
            "extracted_at": datetime.now(timezone.utc).isoformat(),
        }

    # ── JSON-LD ──────────────────────────────────────────

    def _from_json_ld(self, soup: BeautifulSoup, url: str) -> Iterator[ProductReview]:
        raw_reviews: list[Any] = []
        for block in iter_json_ld(soup):
            for node in iter_nodes(block):
                if has_type(node, "Product") and isinstance(
                    node.get("review"), (list, dict)
                ):
                    review = node["review"]
                    raw_reviews.extend(review if isinstance(review, list) else [review])

        for index, data in enumerate(raw_reviews):
            if not isinstance(data, dict):
                continue
            review = self._parse_json_ld_review(data, url, index)
            if review is not None:
                yield review

    def _parse_json_ld_review(
        self, data: dict[str, Any], url: str, index: int,
    ) -> ProductReview | None:
        rating_block = data.get("reviewRating")
        if isinstance(rating_block, dict):
            rating = normalize_rating(
                node_text(rating_block.get("ratingValue")),
                rating_block.get("bestRating"),
            )
        else:
            rating = normalize_rating(node_text(data.get("ratingValue")))
        if not rating:
            return None

        body = node_text(data.get("reviewBody") or data.get("description"))
        if not body:
            return None

        author = node_text(data.get("author"))
        external_id = (
            node_text(data.get("@id"))
            or node_text(data.get("identifier"))
            or self.review_id(url, author, body, index)
        )
        return ProductReview(
            external_id=external_id,
            rating=rating,
            body=body,
            author=author,
            title=node_text(data.get("name") or data.get("headline")),
            verified_purchase=_json_flag(data.get("verifiedPurchase")),
            review_date=parse_review_date(node_text(data.get("datePublished"))),
            helpful_count=parse_first_int(node_text(data.get("upvoteCount"))) or 0,
            metadata=self._review_metadata("json-ld", url),
        )

    # ── DOM ──────────────────────────────────────────────

    def _from_dom(self, soup: BeautifulSoup, url: str) -> Iterator[ProductReview]:
        for selector in self.profile.review.containers:
            containers = select_all(soup, selector)
            if not containers:
                continue
            index = 0
            for container in containers:
                review = self._parse_dom_review(container, url, index)
                if review is not None:
                    index += 1
                    yield review
            # First selector that matches anything owns the page
            return

    def _parse_dom_review(
        self, node: Tag, url: str, index: int,
    ) -> ProductReview | None:
        selectors = self.profile.review
        rating = self.rating_from_dom(node)
        if not rating:
            return None
        body = first_text(node, selectors.body)
        if not body:
            return None
        author = first_text(node, selectors.author)

        external_id = clean_text(
            str(node.get("data-review-id") or node.get("id") or "")
        ) or self.review_id(url, author, body, index)

        return ProductReview(
            external_id=external_id,
            rating=rating,
            body=body,
            author=author,
            title=first_text(node, selectors.title),
            verified_purchase=self._is_verified(node),
            review_date=self._date(node),
            helpful_count=self._helpful_count(node),
            metadata=self._review_metadata("dom", url),
        )

    def rating_from_dom(self, node: Tag) -> float | None:
        """Rating from attributes, labels, star icons, bar width or text."""
        for attribute in _RATING_ATTRIBUTES:
            rating = normalize_rating(clean_text(str(node.get(attribute) or "")))
            if rating:
                return rating

        for selector in self.profile.review.rating:
            for element in select_all(node, selector):
                for attribute in _RATING_ATTRIBUTES:
                    rating = normalize_rating(
                        clean_text(str(element.get(attribute) or ""))
                    )
                    if rating:
                        return rating
                label = element.get("aria-label")
                if isinstance(label, str):
                    match = _STAR_TEXT_RE.search(label)
                    if match:
                        return normalize_rating(match.group(1))
                break

        for element in select_all(node, '[itemprop="ratingValue"]'):
            best = node.select_one('[itemprop="bestRating"]')
            best_value = (best.get("content") or element_text(best)) if best else None
            rating = normalize_rating(
                clean_text(str(element.get("content") or "")) or element_text(element),
                best_value,
            )
            if rating:
                return rating

        for selector in self.profile.review.filled_star:
            stars = select_all(node, selector)
            if stars:
                return normalize_rating(min(len(stars), 5))

        for element in select_all(node, _WIDTH_SELECTORS):
            style = element.get("style")
            match = _WIDTH_RE.search(style) if isinstance(style, str) else None
            if match:
                return normalize_rating(f"{match.group(1)}%")

        for selector in self.profile.review.rating:
            for element in select_all(node, selector):
                text = element_text(element) or ""
                match = _STAR_TEXT_RE.search(text)
                if match:
                    return normalize_rating(match.group(1))
                if re.fullmatch(r"\d+(?:\.\d+)?", text):
                    return normalize_rating(text)
        return None

    def _is_verified(self, node: Tag) -> bool:
        if any_match(node, self.profile.review.verified):
            return True
        if node.select_one('[data-verified="true"]') is not None:
            return True
        return bool(_VERIFIED_TEXT_RE.search(node.get_text(" ")))

    def _date(self, node: Tag) -> datetime | None:
        for selector in self.profile.review.date:
            for element in select_all(node, selector):
                raw = (
                    element.get("datetime")
                    or element.get("content")
                    or element_text(element)
                )
                parsed = parse_review_date(raw if isinstance(raw, str) else None)
                if parsed is not None:
                    return parsed
        return None

    def _helpful_count(self, node: Tag) -> int:
        for selector in self.profile.review.helpful:
            for element in select_all(node, selector):
                raw = element.get("data-helpful-count") or element_text(element)
                count = parse_first_int(raw if isinstance(raw, str) else None)
                if count is not None:
                    return count
        return 0
