"""
Money Token Parser Module.

Converts printed amounts such as "$1,234.50", "(12.00)", "-5" or "45.00CR"
to numbers. A token that is not an amount yields None, never zero.
"""

import math
import re
from dataclasses import dataclass
from typing import Optional

_STRIP_CHARS = re.compile(r'[\s$,]')
_AMOUNT = re.compile(r'^\d+(\.\d{1,4})?$')
_CREDIT_SUFFIX = re.compile(r'cr$', re.IGNORECASE)

# Decimal amounts as printed on invoice lines, e.g. "$1,234.56"
PRICE_PATTERN = re.compile(r'-?\$?\d{1,3}(?:,\d{3})*\.\d{2}\b|-?\$?\d+\.\d{2}\b')


@dataclass(frozen=True)
class LineEndMoney:
    """Rightmost parseable amount on a line."""
    value: float
    token: str
    idx_from_end: int


def parse_money_token(token: Optional[str]) -> Optional[float]:
    """
    Parse one money token.

    Currency symbols, thousands separators and inner whitespace are
    removed. A trailing "CR" marks a credit and negates the value, as do
    parentheses and a leading minus.

    Args:
        token: Raw token text.

    Returns:
        Parsed value, or None when the token is not an amount.

    Example:
        >>> parse_money_token("$1,234.50")
        1234.5
        >>> parse_money_token("(12.00)")
        -12.0
        >>> parse_money_token("12.345.67") is None
        True
    """
    if token is None:
        return None

    cleaned = _STRIP_CHARS.sub('', str(token).strip())
    if not cleaned:
        return None

    negative = False

    if _CREDIT_SUFFIX.search(cleaned):
        negative = True
        cleaned = cleaned[:-2]

    if cleaned.startswith('(') and cleaned.endswith(')') and len(cleaned) > 2:
        negative = True
        cleaned = cleaned[1:-1]

    if cleaned.startswith('-'):
        negative = True
        cleaned = cleaned[1:]

    if not _AMOUNT.match(cleaned):
        return None

    value = float(cleaned)
    if not math.isfinite(value):
        return None

    return -value if negative else value


def find_line_end_money(line: Optional[str]) -> Optional[LineEndMoney]:
    """
    Find the rightmost whitespace-separated token on a line that parses
    as money.

    Args:
        line: One text line.

    Returns:
        LineEndMoney, or None if no token parses.

    Example:
        >>> find_line_end_money("Widget 2 5.00 10.00")
        LineEndMoney(value=10.0, token='10.00', idx_from_end=0)
    """
    if not line:
        return None

    tokens = line.split()
    for idx_from_end, token in enumerate(reversed(tokens)):
        value = parse_money_token(token)
        if value is not None:
            return LineEndMoney(value=value, token=token, idx_from_end=idx_from_end)
    return None


def find_prices(line: str) -> list:
    """Return every decimal price on a line as floats, left to right."""
    values = []
    for match in PRICE_PATTERN.finditer(line or ""):
        value = parse_money_token(match.group(0))
        if value is not None:
            values.append(value)
    return values


def is_numeric_token(token: str) -> bool:
    """True if `token` parses as a plain amount or quantity."""
    return parse_money_token(token) is not None
