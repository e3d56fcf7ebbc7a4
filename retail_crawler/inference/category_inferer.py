# retail_crawler/inference/category_inferer.py

"""Category inference from URL shape and breadcrumb trails."""

import logging
import re
from collections.abc import Iterable, Mapping

from bs4 import BeautifulSoup
from soupsieve import SelectorSyntaxError

from retail_crawler.config.retailers import Taxonomy

logger = logging.getLogger("retail_crawler.category")

_ANIMAL_MAP = {"puppy": "dog", "kitten": "cat"}

# Ordered, most specific first
_AISLE_RE = re.compile(
    r"/aisle/((?:[^/]+/)*[^/\d]+)(?:/\d+)?(?:/|$|\?)", re.IGNORECASE
)
_SHELF_RE = re.compile(r"/shelf/([^/?]+)", re.IGNORECASE)
_SUPER_DEPARTMENT_RE = re.compile(r"/super-department/([^/?]+)", re.IGNORECASE)
_SEARCH_RE = re.compile(r"/search/([^/?]+)", re.IGNORECASE)
_GOL_UI_RE = re.compile(r"/gol-ui/[^/]+/([\w-]+)", re.IGNORECASE)
_BROWSE_RE = re.compile(
    r"/browse/.*?/(dog-food|dog-treats|puppy-food|puppy-treats|cat-food|cat-treats)"
    r"(?:-\d+)?(?:/|$)",
    re.IGNORECASE,
)
_ANIMAL_TYPE_RE = re.compile(
    r"/(dog|puppy|cat|kitten)/(food|treats)(?:/|$)", re.IGNORECASE
)
_PETS_ANIMAL_TYPE_RE = re.compile(
    r"/pets?/(?:[^/]+/)*?(dog|puppy|cat|kitten)[-/](food|treats)(?:/|$|\?)",
    re.IGNORECASE,
)
_PETS_SEGMENT_RE = re.compile(r"/pets?/([\w-]+)", re.IGNORECASE)


class CategoryInferer:
    """Infer a product category from URLs and breadcrumbs.

    All lookup tables are injected so different deployments (or tests) can
    use their own keyword table and generic-term filter.
    """

    def __init__(
        self,
        category_patterns: Mapping[str, Iterable[str]],
        generic_terms: Iterable[str] = ("home", "groceries", "shop", "all", "pets", ""),
        animal_synonyms: Mapping[str, str] | None = None,
        food_types: Iterable[str] = (),
    ) -> None:
        self._patterns: list[tuple[str, list[str]]] = [
            (category, list(regexes))
            for category, regexes in category_patterns.items()
        ]
        self._compiled: list[tuple[str, list[re.Pattern[str]]]] = [
            (category, [re.compile(r, re.IGNORECASE) for r in regexes])
            for category, regexes in self._patterns
        ]
        self.generic_terms = frozenset(t.lower() for t in generic_terms)
        self.animal_synonyms = {
            k.lower(): v for k, v in (animal_synonyms or {}).items()
        }
        self.food_types = frozenset(t.lower() for t in food_types)

    @classmethod
    def from_taxonomy(cls, taxonomy: Taxonomy) -> "CategoryInferer":
        return cls(
            category_patterns=taxonomy.category_patterns,
            generic_terms=taxonomy.generic_terms,
            animal_synonyms=taxonomy.animal_synonyms,
            food_types=taxonomy.food_types,
        )

    # ── Helpers ──────────────────────────────────────────

    def is_generic(self, term: str) -> bool:
        return term.strip().lower() in self.generic_terms

    @staticmethod
    def normalize(category: str) -> str:
        return category.replace("-", " ")

    @staticmethod
    def _animal_type(animal: str, kind: str) -> str:
        animal = animal.lower()
        return f"{_ANIMAL_MAP.get(animal, animal)}-{kind.lower()}"

    def _from_path(self, path: str) -> str | None:
        parts = [
            p for p in path.split("/")
            if p and not self.is_generic(p)
        ]
        return self.normalize(parts[-1]) if parts else None

    def _match_keyword_table(self, segment: str) -> str | None:
        """Whole-segment match against the keyword table."""
        for category, regexes in self._patterns:
            for regex in regexes:
                if re.fullmatch(regex, segment, re.IGNORECASE):
                    return category
        return None

    # ── Public API ───────────────────────────────────────

    def extract_from_url(self, url: str) -> str | None:
        """Apply the URL rules, most specific first."""
        match = _AISLE_RE.search(url)
        if match:
            return self._from_path(match.group(1))

        for pattern in (_SHELF_RE, _SUPER_DEPARTMENT_RE):
            match = pattern.search(url)
            if match:
                return self.normalize(match.group(1))

        match = _SEARCH_RE.search(url)
        if match:
            return match.group(1)

        match = _GOL_UI_RE.search(url)
        if match:
            return self.normalize(match.group(1))

        match = _BROWSE_RE.search(url)
        if match:
            return match.group(1).lower()

        for pattern in (_ANIMAL_TYPE_RE, _PETS_ANIMAL_TYPE_RE):
            match = pattern.search(url)
            if match:
                return self._animal_type(match.group(1), match.group(2))

        match = _PETS_SEGMENT_RE.search(url)
        if match:
            segment = match.group(1)
            return self._match_keyword_table(segment) or self.normalize(
                segment
            )

        for category, regexes in self._compiled:
            if any(regex.search(url) for regex in regexes):
                return category
        return None

    def pick_breadcrumb(
        self, crumbs: list[str], depth_from_end: int = 1,
    ) -> str | None:
        """Choose the category crumb from an ordered breadcrumb trail."""
        trail = [c.strip() for c in crumbs if c and c.strip()]
        if len(trail) < 2:
            return None
        index = max(0, len(trail) - 1 - depth_from_end)
        category = trail[index]
        if self.is_generic(category) and index < len(trail) - 1:
            category = trail[-1]
        if self.is_generic(category):
            return None
        return category

    def extract_from_breadcrumbs(
        self,
        soup: BeautifulSoup,
        selectors: Iterable[str],
        depth_from_end: int = 1,
    ) -> str | None:
        """Try each breadcrumb selector until one yields a usable crumb."""
        for selector in selectors:
            try:
                elements = soup.select(selector)
            except SelectorSyntaxError:
                logger.debug("Bad breadcrumb selector '%s'", selector)
                continue
            if len(elements) < 2:
                continue
            crumbs = [el.get_text(" ", strip=True) for el in elements]
            category = self.pick_breadcrumb(crumbs, depth_from_end)
            if category:
                return category
        return None

    def map_segment(self, segment: str) -> str | None:
        """Map a retailer URL segment through the animal/food vocabulary.

        ``dry_dog_food`` -> ``dry dog food``, ``puppy-food`` -> ``dog food``.
        Returns None when the segment names neither an animal nor a food
        type.
        """
        words = [w for w in re.split(r"[\s_\-/]+", segment.lower()) if w]
        if not words:
            return None
        mapped = [self.animal_synonyms.get(w, w) for w in words]
        known_animals = set(self.animal_synonyms.values())
        if not any(w in known_animals or w in self.food_types for w in mapped):
            return None
        return " ".join(mapped)
