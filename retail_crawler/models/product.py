# retail_crawler/models/product.py

"""Normalized value objects produced by the extractors.

Money is always held as integer minor units (pence). Every DTO exposes
``to_dict``/``from_dict`` so it can cross a queue or a JSON file unchanged.

All DTOs are hashable. Dict fields still take part in equality but are left
out of the hash, so two equal objects always hash alike.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

CURRENCY_SYMBOLS: dict[str, str] = {
    "GBP": "£",
    "EUR": "€",
    "USD": "$",
}


def _discount_percentage(
    price_pence: int, original_price_pence: int | None,
) -> float | None:
    if original_price_pence is None or original_price_pence <= price_pence:
        return None
    saving = Decimal(original_price_pence - price_pence)
    pct = saving / Decimal(original_price_pence) * 100
    return float(pct.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class ListingUrl:
    """A product page URL discovered on a category or search page."""

    url: str
    retailer_slug: str
    category: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict, hash=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "retailer_slug": self.retailer_slug,
            "category": self.category,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ListingUrl":
        return cls(
            url=data["url"],
            retailer_slug=data["retailer_slug"],
            category=data.get("category"),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class PaginatedListingUrl:
    """The next page of a category or search listing."""

    url: str
    retailer_slug: str
    page_number: int
    category: str | None = None
    discovered_from: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "retailer_slug": self.retailer_slug,
            "page_number": self.page_number,
            "category": self.category,
            "discovered_from": self.discovered_from,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PaginatedListingUrl":
        return cls(
            url=data["url"],
            retailer_slug=data["retailer_slug"],
            page_number=int(data["page_number"]),
            category=data.get("category"),
            discovered_from=data.get("discovered_from"),
        )


@dataclass(frozen=True)
class ProductImage:
    """One product image; the first image of a product is primary."""

    url: str
    alt_text: str | None = None
    is_primary: bool = False
    width: int | None = None
    height: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "alt_text": self.alt_text,
            "is_primary": self.is_primary,
            "width": self.width,
            "height": self.height,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProductImage":
        return cls(
            url=data["url"],
            alt_text=data.get("alt_text"),
            is_primary=bool(data.get("is_primary", False)),
            width=data.get("width"),
            height=data.get("height"),
        )


@dataclass(frozen=True)
class ProductPrice:
    """Current and (optional) pre-discount price in minor units."""

    price_pence: int
    original_price_pence: int | None = None
    currency: str = "GBP"

    @property
    def has_discount(self) -> bool:
        return (
            self.original_price_pence is not None
            and self.original_price_pence > self.price_pence
        )

    @property
    def discount_percentage(self) -> float | None:
        return _discount_percentage(
            self.price_pence, self.original_price_pence
        )

    def formatted(self) -> str:
        """Render the current price, e.g. ``£12.99``."""
        return format_pence(self.price_pence, self.currency)

    def to_dict(self) -> dict[str, Any]:
        return {
            "price_pence": self.price_pence,
            "original_price_pence": self.original_price_pence,
            "currency": self.currency,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProductPrice":
        return cls(
            price_pence=int(data["price_pence"]),
            original_price_pence=data.get("original_price_pence"),
            currency=data.get("currency", "GBP"),
        )


@dataclass(frozen=True)
class ProductDetail:
    """Everything extracted from a single product page."""

    title: str
    price_pence: int
    currency: str = "GBP"
    description: str | None = None
    brand: str | None = None
    original_price_pence: int | None = None
    weight_grams: int | None = None
    quantity: int | None = None
    images: tuple[ProductImage, ...] = ()
    ingredients: str | None = None
    nutritional_info: dict[str, str] | None = field(default=None, hash=False)
    in_stock: bool = True
    stock_quantity: int | None = None
    external_id: str | None = None
    category: str | None = None
    metadata: dict[str, Any] | None = field(default=None, hash=False)
    barcode: str | None = None

    @property
    def price(self) -> ProductPrice:
        return ProductPrice(
            self.price_pence, self.original_price_pence, self.currency
        )

    @property
    def has_discount(self) -> bool:
        return self.price.has_discount

    @property
    def discount_percentage(self) -> float | None:
        return self.price.discount_percentage

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "brand": self.brand,
            "price_pence": self.price_pence,
            "original_price_pence": self.original_price_pence,
            "currency": self.currency,
            "weight_grams": self.weight_grams,
            "quantity": self.quantity,
            "images": [image.to_dict() for image in self.images],
            "ingredients": self.ingredients,
            "nutritional_info": (
                dict(self.nutritional_info)
                if self.nutritional_info is not None
                else None
            ),
            "in_stock": self.in_stock,
            "stock_quantity": self.stock_quantity,
            "external_id": self.external_id,
            "category": self.category,
            "metadata": (
                dict(self.metadata) if self.metadata is not None else None
            ),
            "barcode": self.barcode,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProductDetail":
        nutritional_info = data.get("nutritional_info")
        metadata = data.get("metadata")
        return cls(
            title=data["title"],
            description=data.get("description"),
            brand=data.get("brand"),
            price_pence=int(data["price_pence"]),
            original_price_pence=data.get("original_price_pence"),
            currency=data.get("currency", "GBP"),
            weight_grams=data.get("weight_grams"),
            quantity=data.get("quantity"),
            images=tuple(
                ProductImage.from_dict(i) for i in data.get("images", [])
            ),
            ingredients=data.get("ingredients"),
            nutritional_info=(
                dict(nutritional_info)
                if nutritional_info is not None
                else None
            ),
            in_stock=bool(data.get("in_stock", True)),
            stock_quantity=data.get("stock_quantity"),
            external_id=data.get("external_id"),
            category=data.get("category"),
            metadata=dict(metadata) if metadata is not None else None,
            barcode=data.get("barcode"),
        )


@dataclass(frozen=True)
class ProductReview:
    """A single customer review, rating normalised to 0-5."""

    external_id: str
    rating: float
    body: str
    author: str | None = None
    title: str | None = None
    verified_purchase: bool = False
    review_date: datetime | None = None
    helpful_count: int = 0
    metadata: dict[str, Any] | None = field(default=None, hash=False)

    def __post_init__(self) -> None:
        if not 0.0 <= self.rating <= 5.0:
            raise ValueError(
                f"rating must be within 0-5, got {self.rating}"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "external_id": self.external_id,
            "rating": self.rating,
            "author": self.author,
            "title": self.title,
            "body": self.body,
            "verified_purchase": self.verified_purchase,
            "review_date": (
                self.review_date.isoformat() if self.review_date else None
            ),
            "helpful_count": self.helpful_count,
            "metadata": (
                dict(self.metadata) if self.metadata is not None else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProductReview":
        review_date = data.get("review_date")
        metadata = data.get("metadata")
        return cls(
            external_id=data["external_id"],
            rating=float(data["rating"]),
            author=data.get("author"),
            title=data.get("title"),
            body=data["body"],
            verified_purchase=bool(data.get("verified_purchase", False)),
            review_date=(
                datetime.fromisoformat(review_date) if review_date else None
            ),
            helpful_count=int(data.get("helpful_count", 0)),
            metadata=dict(metadata) if metadata is not None else None,
        )


def format_pence(pence: int, currency: str = "GBP") -> str:
    """Format minor units as a display price: ``1299`` -> ``£12.99``."""
    pounds, rem = divmod(abs(pence), 100)
    sign = "-" if pence < 0 else ""
    symbol = CURRENCY_SYMBOLS.get(currency.upper())
    if symbol:
        return f"{sign}{symbol}{pounds:,}.{rem:02d}"
    return f"{sign}{pounds:,}.{rem:02d} {currency.upper()}"
