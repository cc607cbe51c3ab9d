"""
Shared helpers for parser plugins.
"""

import re
from typing import List, Optional, Sequence, Tuple

from ..text.anchors import find_invoice_date, find_invoice_number, find_po_number, find_totals
from ..text.money import parse_money_token
from .base import InvoiceDraft, LineItem

STOP_WORDS = re.compile(r'\b(?:sub\s*total|tax|total|amount\s+due|balance\s+due)\b', re.IGNORECASE)
QTY_TOKEN = re.compile(r'^\d+(?:\.\d+)?$')
NUMERIC_TOKEN = QTY_TOKEN

# Larger leading numbers are item codes or years, not quantities
MAX_LEADING_QTY = 1000


def is_stop_line(line: str) -> bool:
    """True for totals-block lines that must never become items."""
    return bool(STOP_WORDS.search(line or ""))


def extract_draft(
    lines: Sequence[str],
    invoice_window: int = 80,
    date_window: int = 80,
    po_window: int = 120
) -> InvoiceDraft:
    """Build an InvoiceDraft from header anchors and the totals block."""
    totals = find_totals(lines)
    return InvoiceDraft(
        invoice_number=find_invoice_number(lines, invoice_window),
        invoice_date=find_invoice_date(lines, date_window),
        po_number=find_po_number(lines, po_window),
        subtotal=totals.subtotal,
        tax=totals.tax,
        total=totals.total,
    )


def count_numeric_tokens(line: str) -> int:
    return sum(1 for tok in line.split() if NUMERIC_TOKEN.match(tok.replace(',', '')))


def split_trailing_amounts(tokens: List[str], limit: int = 3) -> Tuple[List[str], List[float], List[str]]:
    """
    Split a token list into leading text and up to `limit` trailing numbers.

    Returns:
        (leading tokens, trailing values, trailing raw tokens), values in
        left-to-right order.
    """
    values: List[float] = []
    raw: List[str] = []
    index = len(tokens)
    while index > 0 and len(values) < limit:
        value = parse_money_token(tokens[index - 1])
        if value is None:
            break
        values.insert(0, value)
        raw.insert(0, tokens[index - 1])
        index -= 1
    return tokens[:index], values, raw


def _infer_quantity(unit: float, total: float) -> Optional[float]:
    if unit <= 0:
        return None
    ratio = total / unit
    rounded = round(ratio)
    if rounded >= 1 and abs(ratio - rounded) < 0.01:
        return float(rounded)
    return None


def item_from_tokens(
    tokens: List[str],
    line_index: int,
    qty_search: int = 4
) -> Optional[LineItem]:
    """
    Interpret one whitespace-tokenized line as an item.

    The trailing numeric run supplies (qty, unit, total), (unit, total) or
    (total). A missing quantity is taken from a bare number among the
    first `qty_search` text tokens, then from total / unit, then 1.
    """
    leading, values, raw = split_trailing_amounts(tokens)
    if not values:
        return None

    quantity: Optional[float] = None
    unit: Optional[float] = None
    total = values[-1]

    if len(values) == 3 and QTY_TOKEN.match(raw[0].replace(',', '')):
        quantity, unit = values[0], values[1]
    elif len(values) >= 2:
        if len(values) == 3:
            leading = leading + raw[:1]
        unit = values[-2]

    if quantity is None:
        for k, tok in enumerate(leading[:qty_search]):
            if QTY_TOKEN.match(tok) and 0 < float(tok) < MAX_LEADING_QTY:
                quantity = float(tok)
                leading = leading[:k] + leading[k + 1:]
                break

    if quantity is None and unit is not None:
        quantity = _infer_quantity(unit, total)

    if quantity is None:
        quantity = 1.0

    if unit is None:
        unit = round(total / quantity, 4) if quantity else total

    description = " ".join(leading).strip()
    if not description:
        return None

    return LineItem(
        description=description,
        quantity=quantity,
        unit_price=unit,
        line_total=total,
        line_index=line_index,
    )


def signal_confidence(draft: InvoiceDraft, item_count: int, items_threshold: int) -> float:
    """Additive 0-100 confidence from total, item count and invoice number."""
    confidence = 0.0
    if draft.total is not None:
        confidence += 40
    if item_count >= items_threshold:
        confidence += 40
    if draft.invoice_number:
        confidence += 20
    return min(100.0, confidence)
