# tests/test_settings.py

"""Tests for the central Settings class."""

import unittest

from retail_crawler.config.settings import Settings


class TestSettings(unittest.TestCase):
    """Sanity checks on the configuration defaults."""

    def test_timeouts_are_positive(self) -> None:
        """Connect timeout is shorter than the whole-request timeout."""
        self.assertGreater(Settings.CONNECT_TIMEOUT, 0)
        self.assertGreater(Settings.REQUEST_TIMEOUT, Settings.CONNECT_TIMEOUT)

    def test_max_redirects_is_bounded(self) -> None:
        """Redirect chains are capped at a small number."""
        self.assertEqual(Settings.MAX_REDIRECTS, 5)

    def test_default_headers_look_like_a_browser(self) -> None:
        """Navigation headers include Accept and a UK Accept-Language."""
        self.assertIn("Accept", Settings.DEFAULT_HEADERS)
        self.assertIn("en-GB", Settings.DEFAULT_HEADERS["Accept-Language"])
        self.assertNotIn("User-Agent", Settings.DEFAULT_HEADERS)

    def test_health_thresholds_are_ordered(self) -> None:
        """A retailer degrades before it is marked failed."""
        self.assertLess(
            Settings.DEGRADED_AFTER_FAILURES, Settings.FAILED_AFTER_FAILURES
        )

    def test_config_files_exist(self) -> None:
        """The selector and taxonomy files ship with the package."""
        self.assertTrue(Settings.SELECTORS_PATH.exists())
        self.assertTrue(Settings.TAXONOMY_PATH.exists())

    def test_db_path_under_data_dir(self) -> None:
        """The default database lives in data/ under the project root."""
        self.assertEqual(Settings.DB_PATH.parent.name, "data")
        self.assertEqual(Settings.DB_PATH.parent.parent, Settings.BASE_DIR)

    def test_captcha_keywords_are_lowercase(self) -> None:
        """Keywords are matched against lowercased HTML."""
        for keyword in Settings.CAPTCHA_KEYWORDS:
            self.assertEqual(keyword, keyword.lower())


if __name__ == "__main__":
    unittest.main()
