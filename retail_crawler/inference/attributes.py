# retail_crawler/inference/attributes.py

"""Free-text parsers for prices, pack sizes, ratings and barcodes.

All parsers are total: text they cannot make sense of yields ``None``,
never an exception.
"""

import re
from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

# ── Price ────────────────────────────────────────────────

_NUMBER_TOKEN_RE = re.compile(r"\d+(?:[.,]\d+)*")
_PENCE_RE = re.compile(r"^\D*?(\d+)\s*p\b", re.IGNORECASE)
_THOUSANDS_RE = re.compile(r"^\d{1,3}(?:,\d{3})+$")
_CURRENCY_MARKS = ("£", "$", "€", "gbp", "eur", "usd")


def _to_decimal(token: str) -> Decimal | None:
    """Interpret one numeric token, handling ``1,299.00`` and ``12,99``."""
    if "," in token and "." in token:
        if token.rfind(",") > token.rfind("."):
            token = token.replace(".", "").replace(",", ".")
        else:
            token = token.replace(",", "")
    elif "," in token:
        if _THOUSANDS_RE.match(token):
            token = token.replace(",", "")
        else:
            head, _, tail = token.rpartition(",")
            token = head.replace(",", "") + "." + tail
    elif token.count(".") > 1:
        head, _, tail = token.rpartition(".")
        token = head.replace(".", "") + "." + tail
    try:
        return Decimal(token)
    except InvalidOperation:
        return None


def to_pence(value: Decimal | float | int | str) -> int | None:
    """Convert a major-unit amount to integer pence, rounding half up."""
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_price_to_pence(text: str | float | int | None) -> int | None:
    """Parse display text like ``"£12.99"`` or ``"was £15.00"`` to pence.

    The first number in the text is taken, so labels such as "was" or
    "now" around it are ignored. A bare ``"99p"`` is read as pence.
    """
    if text is None or isinstance(text, bool):
        return None
    if isinstance(text, (int, float)):
        return to_pence(text)

    cleaned = " ".join(str(text).split())
    if not cleaned:
        return None
    lower = cleaned.lower()
    has_currency = any(mark in lower for mark in _CURRENCY_MARKS)
    if not has_currency and "." not in cleaned:
        pence = _PENCE_RE.match(cleaned)
        if pence:
            value = int(pence.group(1))
            return value if value > 0 else None

    token = _NUMBER_TOKEN_RE.search(cleaned)
    if not token:
        return None
    amount = _to_decimal(token.group(0))
    if amount is None:
        return None
    return to_pence(amount)


# ── Weight ───────────────────────────────────────────────

_UNIT = (
    r"kg|kgs|kilos?|kilograms?|g|gr|grams?|ml|millilitres?|milliliters?"
    r"|cl|l|ltr|litres?|liters?|lbs?|oz"
)
# "5 L-Carnitine" and "1 g-Force" are words, not a unit
_UNIT_END = r"(?!\w|-[A-Za-z])"
_WEIGHT_RE = re.compile(
    rf"(\d+(?:[.,]\d+)?)\s*({_UNIT}){_UNIT_END}", re.IGNORECASE
)
_RANGE_RE = re.compile(
    rf"\d+(?:[.,]\d+)?\s*(?:{_UNIT})?\s*(?:-|–|to)\s*\d+(?:[.,]\d+)?\s*(?:{_UNIT}){_UNIT_END}",
    re.IGNORECASE,
)
_ALTERNATIVE_GAP_RE = re.compile(r"^\s*(?:or|/|\||,)\s*$", re.IGNORECASE)

_GRAMS_PER_UNIT: dict[str, float] = {
    "kg": 1000.0, "kgs": 1000.0, "kilo": 1000.0, "kilos": 1000.0,
    "kilogram": 1000.0, "kilograms": 1000.0,
    "g": 1.0, "gr": 1.0, "gram": 1.0, "grams": 1.0,
    "ml": 1.0, "millilitre": 1.0, "millilitres": 1.0,
    "milliliter": 1.0, "milliliters": 1.0,
    "cl": 10.0,
    "l": 1000.0, "ltr": 1000.0, "litre": 1000.0, "litres": 1000.0,
    "liter": 1000.0, "liters": 1000.0,
    "lb": 453.592, "lbs": 453.592,
    "oz": 28.3495,
}

MAX_PLAUSIBLE_GRAMS = 100_000


def _weight_number(raw: str) -> float:
    if _THOUSANDS_RE.match(raw):
        return float(raw.replace(",", ""))
    return float(raw.replace(",", "."))


def parse_weight_grams(text: str | None) -> int | None:
    """Return the pack weight in grams (ml counted as grams).

    The first plausible match wins. Text offering alternatives
    ("400g or 800g", "1-2kg", "400g/800g") is ambiguous and yields None.
    """
    if not text:
        return None
    if _RANGE_RE.search(text):
        return None
    matches = list(_WEIGHT_RE.finditer(text))
    for first, second in zip(matches, matches[1:]):
        gap = text[first.end():second.start()]
        if _ALTERNATIVE_GAP_RE.match(gap):
            return None

    for match in matches:
        unit = match.group(2).lower()
        grams = _weight_number(match.group(1)) * _GRAMS_PER_UNIT[unit]
        if 0 < grams <= MAX_PLAUSIBLE_GRAMS:
            return int(round(grams))
    return None


# ── Quantity ─────────────────────────────────────────────

_MULTIPACK_RE = re.compile(r"(\d+)\s*[x×]\s*\d", re.IGNORECASE)
_PACK_RES: tuple[re.Pattern[str], ...] = (
    re.compile(
        r"(\d+)\s*-?\s*(?:pack|pk|pcs|pieces|count|ct|tins|cans|pouches"
        r"|sachets|trays|sticks)\b",
        re.IGNORECASE,
    ),
    re.compile(r"pack\s+of\s+(\d+)", re.IGNORECASE),
)

MAX_PLAUSIBLE_QUANTITY = 1000


def parse_quantity(
    text: str | None,
    extra_patterns: Iterable[re.Pattern[str]] = (),
) -> int | None:
    """Return the number of units in a multipack, e.g. ``"12 x 400g"`` -> 12."""
    if not text:
        return None
    for pattern in (_MULTIPACK_RE, *extra_patterns, *_PACK_RES):
        match = pattern.search(text)
        if not match:
            continue
        quantity = int(match.group(1))
        if 0 < quantity <= MAX_PLAUSIBLE_QUANTITY:
            return quantity
    return None


# ── Rating ───────────────────────────────────────────────

_FRACTION_RE = re.compile(
    r"(\d+(?:[.,]\d+)?)\s*(?:out\s+of|/|of)\s*(\d+(?:[.,]\d+)?)",
    re.IGNORECASE,
)
_PERCENT_RE = re.compile(r"(\d+(?:[.,]\d+)?)\s*%")
_PLAIN_NUMBER_RE = re.compile(r"\d+(?:[.,]\d+)?")


def normalize_rating(
    value: str | float | int | None,
    best: float | str | None = None,
) -> float | None:
    """Map a rating in any encoding onto the 0-5 scale.

    Understands fractions ("4 out of 5", "9/10"), percentages ("80%"),
    plain numbers, and an explicit ``best`` (e.g. JSON-LD ``bestRating``).
    Bare numbers above 5 are read as percentages.
    """
    if value is None or isinstance(value, bool):
        return None

    number: float
    scale: float | None = None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        fraction = _FRACTION_RE.search(text)
        percent = _PERCENT_RE.search(text)
        if fraction:
            number = float(fraction.group(1).replace(",", "."))
            scale = float(fraction.group(2).replace(",", "."))
        elif percent:
            number = float(percent.group(1).replace(",", "."))
            scale = 100.0
        else:
            plain = _PLAIN_NUMBER_RE.search(text)
            if not plain:
                return None
            number = float(plain.group(0).replace(",", "."))

    if best is not None:
        try:
            best_value = float(best)
        except (TypeError, ValueError):
            best_value = 0.0
        if best_value > 0:
            scale = best_value

    if scale is not None:
        if scale <= 0:
            return None
        number = number / scale * 5
    elif 5 < number <= 100:
        number = number / 20
    elif number > 100:
        return None

    return round(min(max(number, 0.0), 5.0), 2)


# ── Identifiers & misc ───────────────────────────────────

VALID_BARCODE_LENGTHS = frozenset({8, 12, 13, 14})


def normalize_barcode(value: str | int | None) -> str | None:
    """Digits-only GTIN/EAN/UPC, or None if the length is not a GTIN length."""
    if value is None:
        return None
    digits = re.sub(r"\D", "", str(value))
    if len(digits) in VALID_BARCODE_LENGTHS:
        return digits
    return None


_WORD_NUMBERS = {"one": 1, "two": 2, "three": 3, "four": 4, "five": 5}


def parse_first_int(text: str | None) -> int | None:
    """First integer in *text*; understands "One person found this helpful"."""
    if not text:
        return None
    match = re.search(r"\d[\d,]*", text)
    if match:
        return int(match.group(0).replace(",", ""))
    first_word = text.strip().split(" ", 1)[0].lower()
    return _WORD_NUMBERS.get(first_word)


def clean_text(text: str | None) -> str | None:
    """Collapse whitespace; empty strings become None."""
    if text is None:
        return None
    collapsed = " ".join(text.split())
    return collapsed or None
