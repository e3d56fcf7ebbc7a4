# retail_crawler/inference/brand_detector.py

"""Brand detection from scraped brand text and product titles."""

import re
from collections.abc import Iterable, Mapping

from retail_crawler.config.retailers import Taxonomy

MIN_BRAND_LENGTH = 2
MAX_BRAND_LENGTH = 60


def _fold(text: str) -> str:
    """Lowercase and drop apostrophes so "Lilys" matches "Lily's"."""
    return re.sub(r"['’`]", "", text.lower()).strip()


class BrandDetector:
    """Recognise brands using a known-brand list plus retailer own-brands."""

    def __init__(
        self,
        known_brands: Iterable[str],
        retailer_brands: Mapping[str, Iterable[str]] | None = None,
        aliases: Mapping[str, str] | None = None,
        skip_words: Iterable[str] = (),
        noise_patterns: Iterable[str] = (),
    ) -> None:
        self.known_brands = tuple(dict.fromkeys(known_brands))
        self.retailer_brands = {
            slug: tuple(brands)
            for slug, brands in (retailer_brands or {}).items()
        }
        self.aliases = {
            _fold(k): v for k, v in (aliases or {}).items()
        }
        self.skip_words = frozenset(w.lower() for w in skip_words)
        self._noise = [re.compile(p, re.IGNORECASE) for p in noise_patterns]

    @classmethod
    def from_taxonomy(cls, taxonomy: Taxonomy) -> "BrandDetector":
        return cls(
            known_brands=taxonomy.known_brands,
            retailer_brands=taxonomy.retailer_brands,
            aliases=taxonomy.brand_aliases,
            skip_words=taxonomy.brand_skip_words,
            noise_patterns=taxonomy.brand_noise_patterns,
        )

    def _candidates(self, retailer: str | None) -> list[str]:
        brands = list(self.known_brands)
        if retailer:
            brands.extend(self.retailer_brands.get(retailer, ()))
        # Longest first so "Purina Pro Plan" beats "Purina"
        return sorted(set(brands), key=len, reverse=True)

    def clean(self, text: str | None) -> str | None:
        """Strip byline noise ("Visit the X Store", "Brand: X")."""
        if not text:
            return None
        cleaned = " ".join(text.split())
        for pattern in self._noise:
            cleaned = pattern.sub("", cleaned).strip()
        return cleaned or None

    def canonical(self, brand: str) -> str:
        """Map spelling variants onto the canonical brand name."""
        folded = _fold(brand)
        if folded in self.aliases:
            return self.aliases[folded]
        for known in self.known_brands:
            if _fold(known) == folded:
                return known
        return brand

    def is_plausible(
        self, text: str | None, extra_skip_words: Iterable[str] = (),
    ) -> bool:
        """Brand text must be short, non-numeric and not a filler word."""
        if not text:
            return False
        stripped = text.strip()
        if not MIN_BRAND_LENGTH <= len(stripped) <= MAX_BRAND_LENGTH:
            return False
        if not re.search(r"[A-Za-z]", stripped):
            return False
        skip = self.skip_words | {w.lower() for w in extra_skip_words}
        return stripped.lower() not in skip

    def from_text(self, text: str | None, retailer: str | None = None) -> str | None:
        """Find a known or own-brand name inside free text (e.g. a title)."""
        if not text:
            return None
        folded = _fold(text)
        for brand in self._candidates(retailer):
            pattern = r"(?<![a-z0-9])" + re.escape(_fold(brand)) + r"(?![a-z0-9])"
            if re.search(pattern, folded):
                return self.canonical(brand)
        for alias, canonical in self.aliases.items():
            pattern = r"(?<![a-z0-9])" + re.escape(alias) + r"(?![a-z0-9])"
            if re.search(pattern, folded):
                return canonical
        return None

    def first_word(
        self, title: str | None, extra_skip_words: Iterable[str] = (),
    ) -> str | None:
        """Last-resort guess: the title's leading word, if it looks like a name."""
        if not title:
            return None
        words = title.split()
        if not words:
            return None
        token = words[0].strip(",.:;-()[]")
        skip = self.skip_words | {w.lower() for w in extra_skip_words}
        if token.lower() in skip:
            return None
        if len(token) >= 3 and token.isalpha() and token[0].isupper():
            return token
        return None

    def detect(
        self,
        title: str | None,
        scraped: str | None = None,
        retailer: str | None = None,
        extra_skip_words: Iterable[str] = (),
    ) -> str | None:
        """Scraped brand text, then known brands in the title, then first word."""
        cleaned = self.clean(scraped)
        if cleaned and self.is_plausible(cleaned, extra_skip_words):
            return self.canonical(cleaned)
        found = self.from_text(title, retailer)
        if found:
            return found
        return self.first_word(title, extra_skip_words)
