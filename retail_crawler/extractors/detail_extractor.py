# retail_crawler/extractors/detail_extractor.py

"""Product-detail page extractor.

One class serves every retailer: the profile supplies the selectors and
URL patterns, while the field resolution order is shared. JSON-LD is
consulted first for every field it can carry, DOM selectors second, and
free-text inference (title parsing, URL rules) last.
"""

import re
from collections.abc import Callable, Iterator
from datetime import datetime, timezone
from typing import Any

from bs4 import BeautifulSoup, Tag

from retail_crawler.config.retailers import RetailerProfile
from retail_crawler.extractors.base_extractor import Extractor
from retail_crawler.extractors.selector_cascade import (
    any_match,
    attribute_text,
    cascade,
    element_text,
    first_attribute,
    first_text,
    select_all,
)
from retail_crawler.extractors.structured_data import (
    ParseError,
    StructuredProduct,
)
from retail_crawler.inference.attributes import (
    clean_text,
    normalize_barcode,
    parse_price_to_pence,
    parse_quantity,
    parse_weight_grams,
)
from retail_crawler.inference.brand_detector import BrandDetector
from retail_crawler.inference.category_inferer import CategoryInferer
from retail_crawler.models.product import ProductDetail, ProductImage

_BARCODE_META_SELECTORS: tuple[str, ...] = (
    'meta[itemprop="gtin13"]',
    'meta[itemprop="gtin"]',
    'meta[itemprop="ean"]',
    'meta[property="product:ean"]',
    'meta[property="product:gtin"]',
)
_BARCODE_ATTRIBUTES: tuple[str, ...] = ("data-ean", "data-gtin", "data-barcode")
_IMAGE_ATTRIBUTES: tuple[str, ...] = (
    "src", "data-src", "data-lazy-src", "data-old-hires", "content", "href",
)
_PLACEHOLDER_MARKERS = ("placeholder", "loading", "spinner", "blank.gif")

_LABEL_VALUE_RE = re.compile(r"^\s*([A-Za-z][^:]{0,60}?)\s*:\s*(.+?)\s*$")
_LABEL_AMOUNT_RE = re.compile(
    r"^\s*([A-Za-z][A-Za-z ()/-]{1,60}?)\s+"
    r"(\d+(?:[.,]\d+)?\s*(?:%|(?:g|mg|mcg|kg|kcal|kj|iu)\b).*)$",
    re.IGNORECASE,
)


def parse_nutrition(element: Tag) -> dict[str, str] | None:
    """Read a nutrition block as table rows, list items or labelled lines.

    Markup that matches none of those shapes is kept whole under ``raw``.
    """
    info: dict[str, str] = {}

    for row in element.select("tr"):
        cells = [
            c for c in (
                clean_text(cell.get_text(" ", strip=True))
                for cell in row.find_all(["th", "td"])
            ) if c
        ]
        if len(cells) >= 2:
            info[cells[0].rstrip(":")] = cells[1]
    if info:
        return info

    lines = [element_text(li) for li in element.select("li")]
    if not any(lines):
        lines = element.get_text("\n").splitlines()
    for line in lines:
        if not line:
            continue
        match = _LABEL_VALUE_RE.match(line) or _LABEL_AMOUNT_RE.match(line)
        if match:
            info[clean_text(match.group(1)) or match.group(1)] = (
                clean_text(match.group(2)) or match.group(2)
            )
    if info:
        return info

    raw = element_text(element)
    return {"raw": raw} if raw else None


class DetailExtractor(Extractor[ProductDetail]):
    """Yield at most one :class:`ProductDetail` per product page."""

    kind = "detail"

    def __init__(
        self,
        profile: RetailerProfile,
        inferer: CategoryInferer,
        brand_detector: BrandDetector,
    ) -> None:
        super().__init__(profile, inferer)
        self.brand_detector = brand_detector

    def can_handle(self, url: str) -> bool:
        return self.profile.is_product_url(url)

    def extract(self, html: str, url: str) -> Iterator[ProductDetail]:
        soup = self._parse(html, url)
        if soup is None:
            return
        detail = self.extract_detail(soup, url)
        if detail is not None:
            yield detail

    # ── Assembly ─────────────────────────────────────────

    def extract_detail(
        self, soup: BeautifulSoup, url: str,
    ) -> ProductDetail | None:
        """Resolve every field; None when title or price cannot be found."""
        structured = StructuredProduct.from_soup(soup)

        title = self._structured(structured, "name", url) or first_text(
            soup, self.profile.detail.title
        )
        price_pence = self._structured(structured, "price_pence", url)
        if price_pence is None:
            price_pence = cascade(
                soup, self.profile.detail.price, self._price_from_element
            )
        if not title or price_pence is None:
            self.logger.warning(
                "[%s] Missing %s at %s",
                self.profile.slug,
                "title" if not title else "price",
                url,
            )
            return None

        original = cascade(
            soup, self.profile.detail.original_price, self._price_from_element
        )
        if original is not None and original <= price_pence:
            original = None

        scraped_brand = self._structured(structured, "brand", url) or first_text(
            soup, self.profile.detail.brand
        )

        return ProductDetail(
            title=title,
            price_pence=price_pence,
            currency=(
                self._structured(structured, "currency", url)
                or self.profile.currency
            ),
            description=(
                self._structured(structured, "description", url)
                or first_text(soup, self.profile.detail.description)
            ),
            brand=self.brand_detector.detect(
                title,
                scraped=scraped_brand,
                retailer=self.profile.slug,
                extra_skip_words=self.profile.brand_skip_words,
            ),
            original_price_pence=original,
            weight_grams=self._weight(soup, structured, title, url),
            quantity=parse_quantity(title, self.profile.quantity_patterns),
            images=self._images(soup, structured, url),
            ingredients=first_text(soup, self.profile.detail.ingredients),
            nutritional_info=cascade(
                soup, self.profile.detail.nutrition, parse_nutrition
            ),
            in_stock=self._in_stock(soup, structured, url),
            external_id=self._external_id(soup, structured, url),
            category=self.infer_category(url, soup),
            metadata=self._metadata(soup, structured, url),
            barcode=self._barcode(soup, structured, url),
        )

    # ── Field resolvers ──────────────────────────────────

    def _structured(
        self,
        structured: StructuredProduct | None,
        accessor: str,
        url: str,
    ) -> Any:
        """Call a structured-data accessor; malformed values count as absent."""
        if structured is None:
            return None
        getter: Callable[[], Any] = getattr(structured, accessor)
        try:
            return getter()
        except ParseError as exc:
            self.logger.debug(
                "[%s] Ignoring JSON-LD %s at %s: %s",
                self.profile.slug,
                accessor,
                url,
                exc,
            )
            return None

    @staticmethod
    def _price_from_element(element: Tag) -> int | None:
        return parse_price_to_pence(
            attribute_text(element, "data-price", "content")
        )

    def _weight(
        self,
        soup: BeautifulSoup,
        structured: StructuredProduct | None,
        title: str,
        url: str,
    ) -> int | None:
        for name in self._structured(structured, "offer_names", url) or []:
            grams = parse_weight_grams(name)
            if grams is not None:
                return grams
        grams = cascade(
            soup,
            self.profile.detail.weight,
            lambda el: parse_weight_grams(element_text(el)),
        )
        if grams is not None:
            return grams
        return parse_weight_grams(title)

    def _in_stock(
        self,
        soup: BeautifulSoup,
        structured: StructuredProduct | None,
        url: str,
    ) -> bool:
        available = self._structured(structured, "availability", url)
        if available is not None:
            return available
        selectors = self.profile.detail
        if any_match(soup, selectors.out_of_stock):
            return False
        if any_match(soup, selectors.in_stock) or any_match(
            soup, selectors.add_to_cart
        ):
            return True
        # Retailers mostly mark the unavailable state only
        return True

    def _external_id(
        self,
        soup: BeautifulSoup,
        structured: StructuredProduct | None,
        url: str,
    ) -> str | None:
        from_url = self.profile.external_id_from_url(url)
        if from_url:
            return from_url
        sku = self._structured(structured, "sku", url)
        if sku:
            return sku
        offer_skus = self._structured(structured, "offer_skus", url) or []
        if offer_skus:
            return offer_skus[0]
        return first_attribute(soup, self.profile.detail.id_attributes)

    def _barcode(
        self,
        soup: BeautifulSoup,
        structured: StructuredProduct | None,
        url: str,
    ) -> str | None:
        barcode = self._structured(structured, "barcode", url)
        if barcode:
            return barcode
        barcode = cascade(
            soup,
            _BARCODE_META_SELECTORS,
            lambda el: normalize_barcode(str(el.get("content") or "")),
        )
        if barcode:
            return barcode
        return normalize_barcode(first_attribute(soup, _BARCODE_ATTRIBUTES))

    def _images(
        self,
        soup: BeautifulSoup,
        structured: StructuredProduct | None,
        url: str,
    ) -> tuple[ProductImage, ...]:
        candidates: list[tuple[str, str | None]] = [
            (src, None)
            for src in self._structured(structured, "images", url) or []
        ]
        if not candidates:
            for selector in self.profile.detail.images:
                for element in select_all(soup, selector):
                    src = self._image_source(element)
                    if src:
                        candidates.append((src, clean_text(element.get("alt"))))
                if candidates:
                    break

        images: list[ProductImage] = []
        seen: set[str] = set()
        for src, alt in candidates:
            if src.lower().startswith("data:"):
                continue
            if any(marker in src.lower() for marker in _PLACEHOLDER_MARKERS):
                continue
            absolute = self.absolute_url(src, url)
            if not absolute or absolute in seen:
                continue
            seen.add(absolute)
            images.append(
                ProductImage(
                    url=absolute, alt_text=alt, is_primary=not images,
                )
            )
        return tuple(images)

    @staticmethod
    def _image_source(element: Tag) -> str | None:
        for attribute in _IMAGE_ATTRIBUTES:
            value = element.get(attribute)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None

    def _metadata(
        self,
        soup: BeautifulSoup,
        structured: StructuredProduct | None,
        url: str,
    ) -> dict[str, Any]:
        metadata: dict[str, Any] = {
            "source_url": url,
            "extracted_at": datetime.now(timezone.utc).isoformat(),
            "retailer": self.profile.slug,
        }
        rating = self._structured(structured, "aggregate_rating", url)
        if rating:
            rating_value, review_count = rating
            if rating_value is not None:
                metadata["rating_value"] = rating_value
            if review_count is not None:
                metadata["review_count"] = review_count
        for name, selectors in self.profile.detail.extra_prices.items():
            pence = cascade(soup, selectors, self._price_from_element)
            if pence is not None:
                metadata[f"{name}_pence"] = pence
        return metadata
