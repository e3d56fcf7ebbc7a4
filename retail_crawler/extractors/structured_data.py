# retail_crawler/extractors/structured_data.py

"""Reader for schema.org Product annotations embedded as JSON-LD.

Retailers keep this markup accurate for search engines, so it drifts far
less than their HTML. Extractors prefer any field found here over DOM
selectors.
"""

import json
import logging
from collections.abc import Iterator
from typing import Any

from bs4 import BeautifulSoup

from retail_crawler.inference.attributes import (
    normalize_barcode,
    normalize_rating,
    parse_first_int,
    parse_price_to_pence,
)

logger = logging.getLogger("retail_crawler.structured_data")

GTIN_FIELDS: tuple[str, ...] = (
    "gtin13", "gtin", "gtin8", "gtin14", "gtin12", "ean", "upc",
)

_OUT_OF_STOCK_MARKERS = ("outofstock", "soldout", "discontinued")
_IN_STOCK_MARKERS = (
    "instock", "limitedavailability", "onlineonly", "instoreonly", "preorder",
)


class ParseError(ValueError):
    """Structured data was present but malformed or unusable."""


def parse_json_ld(text: str) -> Any:
    """Decode one ``<script type="application/ld+json">`` body."""
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Malformed JSON-LD: {exc}") from exc


def iter_json_ld(soup: BeautifulSoup) -> Iterator[Any]:
    """Yield every decodable JSON-LD block; malformed blocks are skipped."""
    for script in soup.select('script[type="application/ld+json"]'):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            yield parse_json_ld(raw.strip())
        except ParseError as exc:
            logger.debug("Skipping JSON-LD block: %s", exc)


def iter_nodes(data: Any) -> Iterator[dict[str, Any]]:
    """Walk lists and ``@graph`` containers, yielding every object node."""
    if isinstance(data, list):
        for item in data:
            yield from iter_nodes(item)
    elif isinstance(data, dict):
        yield data
        if "@graph" in data:
            yield from iter_nodes(data["@graph"])


def has_type(node: dict[str, Any], type_name: str) -> bool:
    """``@type`` match that tolerates lists and schema.org prefixes."""
    raw = node.get("@type")
    types = raw if isinstance(raw, list) else [raw]
    for t in types:
        if isinstance(t, str) and t.rsplit("/", 1)[-1].rsplit(":", 1)[-1] == type_name:
            return True
    return False


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def node_text(value: Any) -> str | None:
    if isinstance(value, dict):
        value = value.get("name") or value.get("@value")
    if isinstance(value, list):
        value = value[0] if value else None
    if value is None:
        return None
    text = " ".join(str(value).split())
    return text or None


class StructuredProduct:
    """Typed accessors over one JSON-LD ``Product`` node.

    Accessors return ``None`` for absent fields and raise
    :class:`ParseError` for fields that are present but unusable, so the
    caller can tell "missing" from "malformed".
    """

    def __init__(self, data: dict[str, Any]) -> None:
        self.data = data

    @classmethod
    def from_soup(cls, soup: BeautifulSoup) -> "StructuredProduct | None":
        for block in iter_json_ld(soup):
            for node in iter_nodes(block):
                if has_type(node, "Product"):
                    return cls(node)
        return None

    # ── Simple fields ────────────────────────────────────

    def name(self) -> str | None:
        return node_text(self.data.get("name"))

    def description(self) -> str | None:
        return node_text(self.data.get("description"))

    def brand(self) -> str | None:
        return node_text(self.data.get("brand"))

    def sku(self) -> str | None:
        return node_text(self.data.get("sku"))

    def category(self) -> str | None:
        return node_text(self.data.get("category"))

    # ── Offers ───────────────────────────────────────────

    def offers(self) -> list[dict[str, Any]]:
        """Flatten ``offers`` (single, list, or AggregateOffer) to a list."""
        result: list[dict[str, Any]] = []
        for offer in _as_list(self.data.get("offers")):
            if not isinstance(offer, dict):
                continue
            nested = offer.get("offers")
            if has_type(offer, "AggregateOffer") and nested:
                result.extend(o for o in _as_list(nested) if isinstance(o, dict))
                if "lowPrice" in offer or "price" in offer:
                    result.append(offer)
            else:
                result.append(offer)
        return result

    def offer_skus(self) -> list[str]:
        return [
            sku for sku in (node_text(o.get("sku")) for o in self.offers()) if sku
        ]

    def offer_names(self) -> list[str]:
        return [
            name for name in (node_text(o.get("name")) for o in self.offers()) if name
        ]

    def price_pence(self) -> int | None:
        """Price of the first offer that declares one."""
        for offer in self.offers():
            raw = offer.get("price", offer.get("lowPrice"))
            if raw is None:
                spec = offer.get("priceSpecification")
                if isinstance(spec, list):
                    spec = spec[0] if spec else None
                if isinstance(spec, dict):
                    raw = spec.get("price")
            if raw is None or raw == "":
                continue
            pence = parse_price_to_pence(raw)
            if pence is None:
                raise ParseError(f"Unusable offer price: {raw!r}")
            return pence
        return None

    def currency(self) -> str | None:
        for offer in self.offers():
            code = node_text(offer.get("priceCurrency"))
            if code:
                return code.upper()
        return None

    def availability(self) -> bool | None:
        """False if any offer is out of stock, True if any is in stock."""
        states = [
            str(o.get("availability", "")).lower().rsplit("/", 1)[-1]
            for o in self.offers()
            if o.get("availability")
        ]
        if any(s in _OUT_OF_STOCK_MARKERS for s in states):
            return False
        if any(s in _IN_STOCK_MARKERS for s in states):
            return True
        return None

    # ── Media & identifiers ──────────────────────────────

    def images(self) -> list[str]:
        urls: list[str] = []
        for item in _as_list(self.data.get("image")):
            if isinstance(item, dict):
                item = item.get("url") or item.get("contentUrl")
            if isinstance(item, str) and item.strip():
                urls.append(item.strip())
        return urls

    def barcode(self) -> str | None:
        """GTIN fields, then ``identifier``, then ``productID``, then offers."""
        for field in GTIN_FIELDS:
            barcode = normalize_barcode(node_text(self.data.get(field)))
            if barcode:
                return barcode

        for identifier in _as_list(self.data.get("identifier")):
            if isinstance(identifier, dict):
                kind = str(
                    identifier.get("propertyID")
                    or identifier.get("type")
                    or identifier.get("@type")
                    or ""
                ).lower()
                if kind and not any(k in kind for k in ("ean", "gtin", "upc")):
                    continue
                value = identifier.get("value", identifier.get("@value"))
            else:
                value = identifier
            barcode = normalize_barcode(node_text(value))
            if barcode:
                return barcode

        barcode = normalize_barcode(node_text(self.data.get("productID")))
        if barcode:
            return barcode

        for offer in self.offers():
            for field in GTIN_FIELDS:
                barcode = normalize_barcode(node_text(offer.get(field)))
                if barcode:
                    return barcode
        return None

    # ── Ratings & reviews ────────────────────────────────

    def aggregate_rating(self) -> tuple[float | None, int | None]:
        agg = self.data.get("aggregateRating")
        if not isinstance(agg, dict):
            return None, None
        rating = normalize_rating(
            node_text(agg.get("ratingValue")), agg.get("bestRating")
        )
        count = parse_first_int(
            node_text(agg.get("reviewCount") or agg.get("ratingCount"))
        )
        return rating, count

    def reviews(self) -> list[dict[str, Any]]:
        return [
            r for r in _as_list(self.data.get("review")) if isinstance(r, dict)
        ]
