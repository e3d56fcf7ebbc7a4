# retail_crawler/extractors/selector_cascade.py

"""Ordered-selector field lookup.

Markup drifts silently, so every field is described by several CSS
selectors tried in order. The first element whose value passes the
field's validity check wins. A selector that soupsieve cannot parse is
skipped rather than aborting the field.
"""

import logging
from collections.abc import Callable, Iterable
from typing import TypeVar

from bs4 import BeautifulSoup, Tag
from soupsieve import SelectorSyntaxError

from retail_crawler.inference.attributes import clean_text

logger = logging.getLogger("retail_crawler.cascade")

T = TypeVar("T")

Root = BeautifulSoup | Tag


def select_all(root: Root, selector: str) -> list[Tag]:
    """``root.select`` that logs and swallows only selector syntax errors."""
    try:
        return list(root.select(selector))
    except SelectorSyntaxError as exc:
        logger.debug("Invalid selector '%s': %s", selector, exc)
        return []


def element_text(element: Tag) -> str | None:
    return clean_text(element.get_text(" ", strip=True))


def cascade(
    root: Root,
    selectors: Iterable[str],
    extract: Callable[[Tag], T | None],
) -> T | None:
    """Return the first non-None ``extract(element)`` over all selectors."""
    for selector in selectors:
        for element in select_all(root, selector):
            value = extract(element)
            if value is not None:
                return value
    return None


def first_text(
    root: Root,
    selectors: Iterable[str],
    accept: Callable[[str], bool] | None = None,
) -> str | None:
    """First non-empty element text that also passes *accept*."""
    def _extract(element: Tag) -> str | None:
        text = element_text(element)
        if text is None or (accept is not None and not accept(text)):
            return None
        return text

    return cascade(root, selectors, _extract)


def all_texts(root: Root, selectors: Iterable[str]) -> list[str]:
    """Texts of every element matched by the first selector that matches."""
    for selector in selectors:
        texts = [
            t for t in (element_text(el) for el in select_all(root, selector)) if t
        ]
        if texts:
            return texts
    return []


def any_match(root: Root, selectors: Iterable[str]) -> bool:
    return any(select_all(root, selector) for selector in selectors)


def first_attribute(root: Root, attributes: Iterable[str]) -> str | None:
    """Value of the first element carrying any of *attributes*, in order."""
    for attribute in attributes:
        element = root.find(attrs={attribute: True})
        if isinstance(element, Tag):
            value = clean_text(str(element.get(attribute) or ""))
            if value:
                return value
    return None


def attribute_text(element: Tag, *attributes: str) -> str | None:
    """First non-empty attribute among *attributes*, falling back to text."""
    for attribute in attributes:
        raw = element.get(attribute)
        if isinstance(raw, list):
            raw = " ".join(raw)
        value = clean_text(raw) if raw else None
        if value:
            return value
    return element_text(element)
