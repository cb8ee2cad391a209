"""Small string helpers shared by the parsers, the normalizer and the API."""
import math
import re
from typing import Optional

_WHITESPACE_RE = re.compile(r"\s+")

ELLIPSIS = "…"
MONEY_PLACEHOLDER = "—"
_TRAILING_PUNCTUATION = ".,;:!?-–—"


def normalize_spaces(value: Optional[str]) -> str:
    """Collapse whitespace runs (newlines, tabs, NBSP) to one space and trim."""
    if not value:
        return ""
    return _WHITESPACE_RE.sub(" ", value).strip()


def truncate_words(value: Optional[str], max_words: int) -> str:
    """
    Keep the first ``max_words`` words of ``value``.

    Text that already fits is returned unchanged (after whitespace
    normalization).  Truncated text loses any trailing punctuation and gets a
    single ellipsis character.
    """
    text = normalize_spaces(value)
    if not text or max_words <= 0:
        return ""

    words = text.split(" ")
    if len(words) <= max_words:
        return text

    head = " ".join(words[:max_words]).rstrip(_TRAILING_PUNCTUATION).rstrip()
    return f"{head}{ELLIPSIS}"


def to_money(value: Optional[float]) -> str:
    """Format ``value`` as Italian euro currency, e.g. ``1.250,00 €``."""
    if value is None or isinstance(value, bool):
        return MONEY_PLACEHOLDER
    try:
        number = float(value)
    except (TypeError, ValueError):
        return MONEY_PLACEHOLDER
    if not math.isfinite(number):
        return MONEY_PLACEHOLDER

    # 1,234.56 -> 1.234,56
    formatted = f"{abs(number):,.2f}".translate(str.maketrans({",": ".", ".": ","}))
    sign = "-" if number < 0 and formatted.strip("0,.") else ""
    return f"{sign}{formatted} €"
