# tests/test_review_extractor.py

"""Tests for the review extractor (JSON-LD and DOM paths)."""

import unittest
from datetime import datetime, timezone
from pathlib import Path

from bs4 import BeautifulSoup

from retail_crawler.config.retailers import load_profiles, load_taxonomy
from retail_crawler.extractors.review_extractor import (
    ReviewExtractor,
    parse_review_date,
)
from retail_crawler.inference.category_inferer import CategoryInferer

FIXTURES_DIR = Path(__file__).parent / "fixtures"

PROFILES = load_profiles()
INFERER = CategoryInferer.from_taxonomy(load_taxonomy())

AMAZON_REVIEWS = "https://www.amazon.co.uk/product-reviews/B07ABCDEF1"
ZOOPLUS_PRODUCT = "https://www.zooplus.co.uk/shop/dogs/dry_dog_food/royal_canin/123456"
BM_PRODUCT = "https://www.bmstores.co.uk/product/pedigree-dry-dog-food-123456"

ZOOPLUS_HTML = """
<html><head>
<script type="application/ld+json">
{"@context": "https://schema.org", "@type": "Product",
 "name": "Royal Canin Maxi Adult 15kg",
 "review": [
   {"@type": "Review", "@id": "zr-1001",
    "author": {"@type": "Person", "name": "Sam"},
    "name": "Brilliant", "reviewBody": "Our lab loves it.",
    "datePublished": "2024-05-01", "verifiedPurchase": true,
    "reviewRating": {"ratingValue": "8", "bestRating": "10"},
    "upvoteCount": 3},
   {"@type": "Review", "author": "Alex", "reviewBody": "No stars given",
    "reviewRating": {"ratingValue": 0}},
   {"@type": "Review", "author": "Kim", "reviewRating": {"ratingValue": 5}},
   {"@type": "Review", "author": "Lee", "reviewBody": "Decent value.",
    "reviewRating": {"ratingValue": "4"}}
 ]}
</script>
</head><body>
<div class="review" data-rating="1"><p>Rendered review</p></div>
</body></html>
"""


TWO_PRODUCT_HTML = """
<html><head>
<script type="application/ld+json">
{"@context": "https://schema.org", "@graph": [
  {"@type": "Product", "name": "Royal Canin Maxi Adult 4kg",
   "review": {"@type": "Review", "author": "Ana", "reviewBody": "Small bag, same food.",
              "verifiedPurchase": "false", "reviewRating": {"ratingValue": 4}}},
  {"@type": "Product", "name": "Royal Canin Maxi Adult 15kg",
   "review": [{"@type": "Review", "author": "Ben", "reviewBody": "Great value.",
               "verifiedPurchase": "True", "reviewRating": {"ratingValue": 5}}]}
]}
</script>
<script type="application/ld+json">
{"@type": "Product", "name": "Royal Canin Maxi Puppy",
 "review": {"@type": "Review", "author": "Cat", "reviewBody": "Pup loves it.",
            "verifiedPurchase": 0, "reviewRating": {"ratingValue": "3"}}}
</script>
</head><body></body></html>
"""

def _node(html: str):
    return BeautifulSoup(html, "lxml").div


class TestAmazonDomReviews(unittest.TestCase):
    """Review containers on an Amazon review page."""

    @classmethod
    def setUpClass(cls) -> None:
        html = (FIXTURES_DIR / "amazon_reviews.html").read_text("utf-8")
        extractor = ReviewExtractor(PROFILES["amazon"], INFERER)
        cls.reviews = list(extractor.extract(html, AMAZON_REVIEWS))

    def test_review_without_body_skipped(self) -> None:
        self.assertEqual(
            [r.external_id for r in self.reviews], ["R1ABCDEFGH", "R2IJKLMNOP"]
        )

    def test_first_review_fields(self) -> None:
        review = self.reviews[0]
        self.assertEqual(review.rating, 5.0)
        self.assertEqual(review.author, "Jane D.")
        self.assertEqual(review.title, "Great food")
        self.assertEqual(review.body, "My dog loves it and it arrived quickly.")
        self.assertEqual(review.review_date, datetime(2024, 3, 3))
        self.assertTrue(review.verified_purchase)
        self.assertEqual(review.helpful_count, 12)
        self.assertEqual(review.metadata["source"], "dom")
        self.assertEqual(review.metadata["retailer"], "amazon")

    def test_second_review_fields(self) -> None:
        """Word-number helpful counts and unverified reviews."""
        review = self.reviews[1]
        self.assertEqual(review.rating, 2.0)
        self.assertEqual(review.author, "Tom")
        self.assertEqual(review.title, "Too pricey")
        self.assertEqual(review.review_date, datetime(2024, 2, 14))
        self.assertFalse(review.verified_purchase)
        self.assertEqual(review.helpful_count, 1)

    def test_can_handle(self) -> None:
        extractor = ReviewExtractor(PROFILES["amazon"], INFERER)
        self.assertTrue(extractor.can_handle(AMAZON_REVIEWS))
        self.assertTrue(
            extractor.can_handle("https://www.amazon.co.uk/dp/B07ABCDEF1")
        )
        self.assertFalse(
            extractor.can_handle("https://www.amazon.co.uk/s?k=dog+food")
        )


class TestJsonLdReviews(unittest.TestCase):
    """Embedded JSON-LD reviews take precedence over markup."""

    @classmethod
    def setUpClass(cls) -> None:
        extractor = ReviewExtractor(PROFILES["zooplus"], INFERER)
        cls.reviews = list(extractor.extract(ZOOPLUS_HTML, ZOOPLUS_PRODUCT))

    def test_unusable_reviews_skipped(self) -> None:
        """Zero ratings and missing bodies are dropped; DOM is ignored."""
        self.assertEqual(
            [r.body for r in self.reviews], ["Our lab loves it.", "Decent value."]
        )
        self.assertTrue(all(r.metadata["source"] == "json-ld" for r in self.reviews))

    def test_rating_scaled_by_best_rating(self) -> None:
        self.assertEqual(self.reviews[0].rating, 4.0)
        self.assertEqual(self.reviews[1].rating, 4.0)

    def test_identified_review(self) -> None:
        review = self.reviews[0]
        self.assertEqual(review.external_id, "zr-1001")
        self.assertEqual(review.author, "Sam")
        self.assertEqual(review.title, "Brilliant")
        self.assertTrue(review.verified_purchase)
        self.assertEqual(review.helpful_count, 3)
        self.assertEqual(review.review_date, datetime(2024, 5, 1))

    def test_generated_id(self) -> None:
        review = self.reviews[1]
        self.assertRegex(review.external_id, r"^zooplus-review-[0-9a-f]{32}-3$")
        self.assertFalse(review.verified_purchase)
        self.assertEqual(review.helpful_count, 0)


class TestJsonLdAcrossProducts(unittest.TestCase):
    """Reviews attached to several Product nodes are all kept."""

    @classmethod
    def setUpClass(cls) -> None:
        extractor = ReviewExtractor(PROFILES["zooplus"], INFERER)
        cls.reviews = list(extractor.extract(TWO_PRODUCT_HTML, ZOOPLUS_PRODUCT))

    def test_reviews_from_every_product_node(self) -> None:
        """Later Product nodes do not replace earlier ones."""
        self.assertEqual([r.author for r in self.reviews], ["Ana", "Ben", "Cat"])

    def test_generated_ids_stay_unique(self) -> None:
        """Positions run across products, so generated ids never collide."""
        ids = [r.external_id for r in self.reviews]
        self.assertEqual(len(set(ids)), 3)

    def test_string_verified_flags(self) -> None:
        """String and numeric verifiedPurchase values are read as flags."""
        self.assertEqual(
            [r.verified_purchase for r in self.reviews], [False, True, False]
        )

class TestDomFallback(unittest.TestCase):
    def test_generic_review_markup(self) -> None:
        html = """
        <div class="review">
          <span class="rating">5</span>
          <p>Great kibble.</p>
          <span>Verified Buyer</span>
          <span class="helpful-count" data-helpful-count="7">Helpful</span>
        </div>
        """
        extractor = ReviewExtractor(PROFILES["bm"], INFERER)
        reviews = list(extractor.extract(html, BM_PRODUCT))
        self.assertEqual(len(reviews), 1)
        review = reviews[0]
        self.assertEqual(review.rating, 5.0)
        self.assertEqual(review.body, "Great kibble.")
        self.assertIsNone(review.author)
        self.assertTrue(review.verified_purchase)
        self.assertEqual(review.helpful_count, 7)
        self.assertTrue(review.external_id.startswith("bm-review-"))
        self.assertTrue(review.external_id.endswith("-0"))

    def test_review_id_is_stable(self) -> None:
        extractor = ReviewExtractor(PROFILES["bm"], INFERER)
        first = extractor.review_id(BM_PRODUCT, "Ann", "Lovely", 0)
        self.assertEqual(first, extractor.review_id(BM_PRODUCT, "Ann", "Lovely", 0))
        self.assertNotEqual(first, extractor.review_id(BM_PRODUCT, "Bob", "Lovely", 0))

    def test_blocked_page(self) -> None:
        html = (FIXTURES_DIR / "captcha_page.html").read_text("utf-8")
        extractor = ReviewExtractor(PROFILES["amazon"], INFERER)
        with self.assertLogs("retail_crawler.amazon", level="WARNING"):
            self.assertEqual(list(extractor.extract(html, AMAZON_REVIEWS)), [])


class TestRatingFromDom(unittest.TestCase):
    """Each rating encoding understood on review markup."""

    def setUp(self) -> None:
        self.extractor = ReviewExtractor(PROFILES["bm"], INFERER)

    def test_rating_sources(self) -> None:
        cases = [
            ('<div data-rating="4"></div>', 4.0),
            ('<div><span aria-label="Rated 3 out of 5"></span></div>', 3.0),
            (
                '<div><span itemprop="ratingValue" content="8"></span>'
                '<span itemprop="bestRating" content="10"></span></div>',
                4.0,
            ),
            (
                '<div><i class="star filled"></i><i class="star filled"></i>'
                '<i class="star filled"></i><i class="star"></i></div>',
                3.0,
            ),
            ('<div><div class="star-rating" style="width: 80%"></div></div>', 4.0),
            ('<div><span class="rating">4.5</span></div>', 4.5),
            ("<div><p>Nice</p></div>", None),
        ]
        for html, expected in cases:
            with self.subTest(html=html):
                self.assertEqual(self.extractor.rating_from_dom(_node(html)), expected)


class TestParseReviewDate(unittest.TestCase):
    def test_formats(self) -> None:
        cases = {
            "2024-03-03": datetime(2024, 3, 3),
            "2024-03-03T10:00:00Z": datetime(2024, 3, 3, 10, tzinfo=timezone.utc),
            "Reviewed in the United Kingdom on 3 March 2024": datetime(2024, 3, 3),
            "Posted 7 Sep 2023": datetime(2023, 9, 7),
            "Reviewed on March 3, 2024": datetime(2024, 3, 3),
            "12/02/2024": datetime(2024, 2, 12),
        }
        for text, expected in cases.items():
            with self.subTest(text=text):
                self.assertEqual(parse_review_date(text), expected)

    def test_unparseable(self) -> None:
        self.assertIsNone(parse_review_date(None))
        self.assertIsNone(parse_review_date(""))
        self.assertIsNone(parse_review_date("yesterday"))


if __name__ == "__main__":
    unittest.main()
