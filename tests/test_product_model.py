# tests/test_product_model.py

"""Tests for the product DTOs and their dict round trips."""

import unittest
from datetime import datetime

from retail_crawler.inference.attributes import parse_price_to_pence
from retail_crawler.models.product import (
    ListingUrl,
    PaginatedListingUrl,
    ProductDetail,
    ProductImage,
    ProductPrice,
    ProductReview,
    format_pence,
)

PENCE_VALUES = (
    1, 5, 9, 10, 99, 100, 101, 999, 1000, 1299,
    10000, 99999, 100000, 123456, 1000000, 123456789,
)


class TestProductPrice(unittest.TestCase):
    """Discount maths on integer pence."""

    def test_discount_percentage(self) -> None:
        """£12.99 down from £15.00 is a 13.4% discount."""
        price = ProductPrice(1299, 1500)
        self.assertTrue(price.has_discount)
        self.assertAlmostEqual(price.discount_percentage or 0, 13.4, places=2)

    def test_no_original_price(self) -> None:
        """Without an original price there is no discount."""
        price = ProductPrice(1299)
        self.assertFalse(price.has_discount)
        self.assertIsNone(price.discount_percentage)

    def test_original_not_higher(self) -> None:
        """An original price at or below the current one is no discount."""
        self.assertIsNone(ProductPrice(1299, 1299).discount_percentage)
        self.assertIsNone(ProductPrice(1299, 999).discount_percentage)

    def test_formatted(self) -> None:
        """Current price renders with the currency symbol."""
        self.assertEqual(ProductPrice(1299).formatted(), "£12.99")

    def test_discount_over_price_pairs(self) -> None:
        """has_discount and discount_percentage agree for every pair."""
        for current in PENCE_VALUES:
            originals = (
                None, current - 1, current, current + 1, current * 2, current * 10,
            )
            for original in originals:
                price = ProductPrice(current, original)
                with self.subTest(current=current, original=original):
                    if original is None or original <= current:
                        self.assertFalse(price.has_discount)
                        self.assertIsNone(price.discount_percentage)
                        continue
                    self.assertTrue(price.has_discount)
                    pct = price.discount_percentage
                    assert pct is not None
                    self.assertGreaterEqual(pct, 0)
                    self.assertLess(pct, 100)
                    expected = (original - current) / original * 100
                    self.assertAlmostEqual(pct, expected, delta=0.006)

    def test_whole_fraction_discounts(self) -> None:
        """Half and ninety-percent reductions come out exact."""
        for current in PENCE_VALUES:
            with self.subTest(current=current):
                self.assertEqual(
                    ProductPrice(current, current * 2).discount_percentage, 50.0
                )
                self.assertEqual(
                    ProductPrice(current, current * 10).discount_percentage, 90.0
                )


class TestFormatPence(unittest.TestCase):
    def test_known_currency(self) -> None:
        self.assertEqual(format_pence(5, "GBP"), "£0.05")
        self.assertEqual(format_pence(123456, "EUR"), "€1,234.56")

    def test_unknown_currency(self) -> None:
        """Unknown codes are appended instead of a symbol."""
        self.assertEqual(format_pence(1000, "sek"), "10.00 SEK")

    def test_formatted_text_parses_back(self) -> None:
        """Every rendering of a positive amount reads back as the same pence."""
        for pence in PENCE_VALUES:
            for currency in ("GBP", "EUR", "USD", "SEK"):
                text = format_pence(pence, currency)
                with self.subTest(text=text):
                    self.assertEqual(parse_price_to_pence(text), pence)

    def test_zero_is_not_a_price(self) -> None:
        """£0.00 renders, but the parser never reports a zero price."""
        self.assertEqual(format_pence(0), "£0.00")
        self.assertIsNone(parse_price_to_pence(format_pence(0)))


class TestProductDetail(unittest.TestCase):
    """ProductDetail behaviour and serialisation."""

    def _detail(self) -> ProductDetail:
        return ProductDetail(
            title="Pedigree Adult Complete 12kg",
            price_pence=1299,
            original_price_pence=1500,
            brand="Pedigree",
            weight_grams=12000,
            images=(
                ProductImage("https://example.com/a.jpg", is_primary=True),
                ProductImage("https://example.com/b.jpg", alt_text="Back"),
            ),
            nutritional_info={"Protein": "21%"},
            external_id="301234567",
            category="Dog",
            metadata={"clubcard_price_pence": 1000},
            barcode="5010394001908",
        )

    def test_discount_delegates_to_price(self) -> None:
        detail = self._detail()
        self.assertTrue(detail.has_discount)
        self.assertEqual(detail.discount_percentage, 13.4)
        self.assertEqual(detail.price, ProductPrice(1299, 1500, "GBP"))

    def test_round_trip(self) -> None:
        """from_dict(to_dict(d)) reproduces the DTO exactly."""
        detail = self._detail()
        self.assertEqual(ProductDetail.from_dict(detail.to_dict()), detail)

    def test_to_dict_is_plain_data(self) -> None:
        """Images serialise as dicts so the payload is JSON-ready."""
        data = self._detail().to_dict()
        self.assertIsInstance(data["images"], list)
        self.assertEqual(data["images"][0]["url"], "https://example.com/a.jpg")
        self.assertTrue(data["images"][0]["is_primary"])

    def test_defaults(self) -> None:
        """A minimal detail is in stock and priced in GBP."""
        detail = ProductDetail(title="Bakers 5kg", price_pence=899)
        self.assertTrue(detail.in_stock)
        self.assertEqual(detail.currency, "GBP")
        self.assertEqual(detail.images, ())
        self.assertEqual(ProductDetail.from_dict(detail.to_dict()), detail)


class TestListingDtos(unittest.TestCase):
    def test_listing_url_round_trip(self) -> None:
        item = ListingUrl(
            url="https://www.tesco.com/groceries/en-GB/products/1",
            retailer_slug="tesco",
            category="dog food",
            metadata={"discovered_from": "https://www.tesco.com/x"},
        )
        self.assertEqual(ListingUrl.from_dict(item.to_dict()), item)

    def test_paginated_round_trip(self) -> None:
        item = PaginatedListingUrl(
            url="https://www.tesco.com/shop?page=2",
            retailer_slug="tesco",
            page_number=2,
            discovered_from="https://www.tesco.com/shop?page=1",
        )
        self.assertEqual(PaginatedListingUrl.from_dict(item.to_dict()), item)


class TestHashing(unittest.TestCase):
    """Frozen DTOs work as set members and dict keys."""

    URL = "https://www.tesco.com/groceries/en-GB/products/1"

    def test_dtos_with_dict_fields_hash(self) -> None:
        """Dict-valued fields do not make hash() fail."""
        items = (
            ListingUrl(self.URL, "tesco", metadata={"page": 1}),
            ProductDetail(
                title="Bakers 5kg",
                price_pence=899,
                nutritional_info={"Protein": "21%"},
                metadata={"source": "json-ld"},
            ),
            ProductReview(
                external_id="r1", rating=4.0, body="Good", metadata={"source": "dom"}
            ),
        )
        for item in items:
            with self.subTest(dto=type(item).__name__):
                self.assertIsInstance(hash(item), int)

    def test_equal_listings_collapse_in_a_set(self) -> None:
        """Equal objects hash alike, so a set keeps one of them."""
        first = ListingUrl(self.URL, "tesco", metadata={"page": 1})
        second = ListingUrl(self.URL, "tesco", metadata={"page": 1})
        self.assertEqual(first, second)
        self.assertEqual(hash(first), hash(second))
        self.assertEqual(len({first, second}), 1)

    def test_metadata_still_part_of_equality(self) -> None:
        """Differing metadata keeps two listings distinct."""
        first = ListingUrl(self.URL, "tesco", metadata={"page": 1})
        second = ListingUrl(self.URL, "tesco", metadata={"page": 2})
        self.assertNotEqual(first, second)
        self.assertEqual(len({first, second}), 2)


class TestProductReview(unittest.TestCase):
    """Rating bounds and serialisation of reviews."""

    def test_rating_out_of_range(self) -> None:
        """Ratings outside 0-5 are rejected at construction."""
        with self.assertRaises(ValueError):
            ProductReview(external_id="r1", rating=5.5, body="Great")
        with self.assertRaises(ValueError):
            ProductReview(external_id="r1", rating=-1, body="Bad")

    def test_round_trip_with_date(self) -> None:
        """review_date survives the ISO string conversion."""
        review = ProductReview(
            external_id="R1",
            rating=4.5,
            body="My dog loves it.",
            author="Jane",
            verified_purchase=True,
            review_date=datetime(2024, 3, 3),
            helpful_count=12,
            metadata={"source": "dom"},
        )
        data = review.to_dict()
        self.assertEqual(data["review_date"], "2024-03-03T00:00:00")
        self.assertEqual(ProductReview.from_dict(data), review)


if __name__ == "__main__":
    unittest.main()
