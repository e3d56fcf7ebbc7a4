# tests/test_registry.py

"""Tests for the extractor registry."""

import unittest

from retail_crawler.config.retailers import build_profile, load_profiles, load_taxonomy
from retail_crawler.extractors.detail_extractor import DetailExtractor
from retail_crawler.extractors.listing_extractor import ListingExtractor
from retail_crawler.extractors.registry import ExtractorRegistry
from retail_crawler.extractors.review_extractor import ReviewExtractor
from retail_crawler.inference.brand_detector import BrandDetector
from retail_crawler.inference.category_inferer import CategoryInferer

TAXONOMY = load_taxonomy()
INFERER = CategoryInferer.from_taxonomy(TAXONOMY)
BRANDS = BrandDetector.from_taxonomy(TAXONOMY)

# Product, listing, search and review URL shapes for every shipped retailer.
URL_CORPUS: dict[str, tuple[str, ...]] = {
    "tesco": (
        "https://www.tesco.com/groceries/en-GB/products/301234567",
        "https://www.tesco.com/groceries/en-GB/shop/pets/dog-food/all?page=2",
        "https://www.tesco.com/groceries/en-GB/search?query=dog%20food",
    ),
    "sainsburys": (
        "https://www.sainsburys.co.uk/gol-ui/product/pedigree-adult-dry-dog-food-12kg",
        "https://www.sainsburys.co.uk/shop/gb/groceries/product/details/pedigree-12kg-7654321",
        "https://www.sainsburys.co.uk/gol-ui/groceries/pets/dog/c:1019",
    ),
    "asda": (
        "https://groceries.asda.com/product/dry-dog-food/pedigree-adult-12kg/1000123456",
        "https://groceries.asda.com/product/1000123456",
        "https://groceries.asda.com/aisle/pets/dog/dry-dog-food/1215",
        "https://groceries.asda.com/search/dog%20food",
    ),
    "morrisons": (
        "https://groceries.morrisons.com/products/pedigree-adult-complete-12kg/123456011",
        "https://groceries.morrisons.com/browse/pet/dog",
    ),
    "ocado": (
        "https://www.ocado.com/products/pedigree-adult-dry-dog-food-12kg-12345011",
        "https://www.ocado.com/browse/pets-20974/dog-21014",
    ),
    "waitrose": (
        "https://www.waitrose.com/ecom/products/pedigree-adult-complete/123456-12345-67890",
        "https://www.waitrose.com/ecom/shop/browse/groceries/pet",
    ),
    "amazon": (
        "https://www.amazon.co.uk/dp/B07ABCDEF1",
        "https://www.amazon.co.uk/Pedigree-Adult-Food/dp/B07ABCDEF1?th=1",
        "https://www.amazon.co.uk/gp/product/B07ABCDEF1",
        "https://www.amazon.co.uk/product-reviews/B07ABCDEF1?pageNumber=2",
        "https://www.amazon.co.uk/s?k=dog+food",
        "https://www.amazon.co.uk/b?node=471382031",
        "https://www.amazon.co.uk/gp/bestsellers/pet-supplies",
    ),
    "pets-at-home": (
        "https://www.petsathome.com/product/royal-canin-maxi-adult-dry-dog-food/P12345",
        "https://www.petsathome.com/shop/en/pets/dog/dog-food",
    ),
    "zooplus": (
        "https://www.zooplus.co.uk/shop/dogs/dry_dog_food/royal_canin/123456",
        "https://www.zooplus.co.uk/shop/dogs/dry_dog_food/royal_canin/maxi_adult_12345",
        "https://www.zooplus.co.uk/shop/dogs/dry_dog_food",
    ),
    "bm": (
        "https://www.bmstores.co.uk/product/pedigree-dry-dog-food-123456",
        "https://www.bmstores.co.uk/p/123456",
        "https://www.bmstores.co.uk/products/pets/dog-food",
        "https://www.bmstores.co.uk/search?q=dog",
    ),
    "just-for-pets": (
        "https://www.justforpetsonline.co.uk/products/royal-canin-mini-adult",
        "https://www.justforpetsonline.co.uk/p/12345",
        "https://www.justforpetsonline.co.uk/dog/dog-food",
    ),
}

LOOKALIKE_URLS: tuple[str, ...] = (
    "https://www.nottesco.com/groceries/en-GB/products/301234567",
    "https://tesco.com.example.net/groceries/en-GB/products/301234567",
    "https://example.com/dp/B07ABCDEF1",
    "https://example.com/product/pedigree-dry-dog-food-123456",
)


class TestExtractorRegistry(unittest.TestCase):
    """URL routing across the shipped retailer profiles."""

    @classmethod
    def setUpClass(cls) -> None:
        cls.registry = ExtractorRegistry(load_profiles(), INFERER, BRANDS)

    def test_one_extractor_per_profile_and_kind(self) -> None:
        count = len(self.registry.profiles)
        for kind, cls_ in (
            ("listing", ListingExtractor),
            ("detail", DetailExtractor),
            ("review", ReviewExtractor),
        ):
            with self.subTest(kind=kind):
                extractors = self.registry.extractors(kind)
                self.assertEqual(len(extractors), count)
                self.assertTrue(all(isinstance(e, cls_) for e in extractors))

    def test_find_by_kind(self) -> None:
        cases = [
            ("https://www.tesco.com/groceries/en-GB/products/301234567", "detail", "tesco"),
            ("https://www.tesco.com/groceries/en-GB/shop/pets/dog-food/all", "listing", "tesco"),
            ("https://www.amazon.co.uk/product-reviews/B07ABCDEF1", "review", "amazon"),
            ("https://www.amazon.co.uk/dp/B07ABCDEF1", "detail", "amazon"),
            (
                "https://www.zooplus.co.uk/shop/dogs/dry_dog_food/royal_canin/123456",
                "detail",
                "zooplus",
            ),
        ]
        for url, kind, slug in cases:
            with self.subTest(url=url, kind=kind):
                extractor = self.registry.find(url, kind)
                self.assertIsNotNone(extractor)
                assert extractor is not None
                self.assertEqual(extractor.retailer_slug, slug)
                self.assertEqual(extractor.kind, kind)

    def test_kinds_are_exclusive(self) -> None:
        """A product page is never also a listing page."""
        url = "https://www.tesco.com/groceries/en-GB/products/301234567"
        self.assertIsNone(self.registry.find(url, "listing"))
        reviews = "https://www.amazon.co.uk/product-reviews/B07ABCDEF1"
        self.assertIsNone(self.registry.find(reviews, "listing"))
        self.assertIsNone(self.registry.find(reviews, "detail"))

    def test_corpus_covers_every_retailer(self) -> None:
        """Each shipped profile has URLs in the routing corpus."""
        self.assertEqual(set(URL_CORPUS), set(self.registry.profiles))

    def test_at_most_one_extractor_claims_a_url(self) -> None:
        """For every kind, no URL is claimed by two extractors."""
        urls = [u for group in URL_CORPUS.values() for u in group]
        for kind in ("listing", "detail", "review"):
            extractors = self.registry.extractors(kind)
            for url in (*urls, *LOOKALIKE_URLS):
                with self.subTest(kind=kind, url=url):
                    claims = sum(e.can_handle(url) for e in extractors)
                    self.assertLessEqual(claims, 1)

    def test_claims_stay_with_the_owning_retailer(self) -> None:
        """Whatever kind claims a URL, it is the URL's own retailer."""
        for slug, urls in URL_CORPUS.items():
            for url in urls:
                results = [
                    self.registry.find(url, kind)
                    for kind in ("listing", "detail", "review")
                ]
                claimed = {e.retailer_slug for e in results if e is not None}
                with self.subTest(url=url):
                    self.assertEqual(claimed, {slug})

    def test_lookalike_hosts_unclaimed(self) -> None:
        """Hosts that only contain a retailer domain are not routed."""
        for url in LOOKALIKE_URLS:
            for kind in ("listing", "detail", "review"):
                with self.subTest(url=url, kind=kind):
                    self.assertIsNone(self.registry.find(url, kind))

    def test_unknown_host(self) -> None:
        for kind in ("listing", "detail", "review"):
            self.assertIsNone(self.registry.find("https://example.com/p/1", kind))
        self.assertIsNone(self.registry.retailer_for("https://example.com/"))

    def test_unknown_kind(self) -> None:
        with self.assertRaises(ValueError):
            self.registry.extractors("basket")
        with self.assertRaises(ValueError):
            self.registry.find("https://www.tesco.com/", "basket")

    def test_retailer_for(self) -> None:
        profile = self.registry.retailer_for("https://groceries.asda.com/aisle/pets")
        assert profile is not None
        self.assertEqual(profile.slug, "asda")

    def test_extractors_returns_copy(self) -> None:
        self.registry.extractors("detail").clear()
        self.assertTrue(self.registry.extractors("detail"))


class TestAmbiguousMatch(unittest.TestCase):
    def test_first_match_wins_with_warning(self) -> None:
        raw = {"domains": ["demo.test"], "product_url_patterns": ["/p/\\d+"]}
        registry = ExtractorRegistry(
            {"first": build_profile("first", raw), "second": build_profile("second", raw)},
            INFERER,
            BRANDS,
        )
        with self.assertLogs("retail_crawler.registry", level="WARNING") as logs:
            extractor = registry.find("https://demo.test/p/1", "detail")
        assert extractor is not None
        self.assertEqual(extractor.retailer_slug, "first")
        self.assertIn("2 extractors", logs.output[0])


if __name__ == "__main__":
    unittest.main()
