"""
Anchor Extractors Module.

Bounded regex scans for header fields (invoice number, PO number, date)
and the subtotal / tax / total block at the bottom of a document.

Author: ML Engineering Team
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Pattern, Sequence

from .money import find_line_end_money

# =============================================================================
# PATTERNS
# =============================================================================

INVOICE_NO_PATTERNS = [
    re.compile(r'invoice\s*(?:no\b\.?|number\b|#)\s*[:#]?\s*([A-Z0-9][A-Z0-9\-]*)', re.IGNORECASE),
    re.compile(r'\binv\s*#\s*[:#]?\s*([A-Z0-9][A-Z0-9\-]*)', re.IGNORECASE),
    re.compile(r'\binvoice\s*:\s*([A-Z0-9\-]*\d[A-Z0-9\-]*)', re.IGNORECASE),
]

PO_NO_PATTERNS = [
    re.compile(
        r'\bP\.?O\.?\b\s*(?:no\.?|number|#)?\s*[:#]?\s*((?=[A-Z\-]*\d)[A-Z0-9][A-Z0-9\-]*)',
        re.IGNORECASE
    ),
]

DATE_PATTERNS = [
    re.compile(
        r'\b(?:invoice\s+date|date)\b\s*[:#]?\s*([0-9]{1,2}[/\-][0-9]{1,2}[/\-][0-9]{2,4})',
        re.IGNORECASE
    ),
    re.compile(
        r'\b(?:invoice\s+date|date)\b\s*[:#]?\s*'
        r'((?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\.?\s+\d{1,2},?\s+\d{4})',
        re.IGNORECASE
    ),
]

SUBTOTAL_PATTERN = re.compile(r'\bsub\s*-?\s*total\b', re.IGNORECASE)
TAX_PATTERN = re.compile(r'\btax\b', re.IGNORECASE)
TOTAL_PATTERN = re.compile(r'\btotal\b', re.IGNORECASE)

TOTALS_WINDOW = 80


@dataclass
class TotalsBlock:
    """
    Amounts found in the trailing totals block.

    Line indices refer to the full line list, not the window.
    """
    subtotal: Optional[float] = None
    tax: Optional[float] = None
    total: Optional[float] = None
    subtotal_line: Optional[int] = None
    tax_line: Optional[int] = None
    total_line: Optional[int] = None

    @property
    def has_total(self) -> bool:
        return self.total is not None


@dataclass
class LabelLines:
    """Indices of every subtotal and total label line in a document."""
    subtotals: List[int] = field(default_factory=list)
    totals: List[int] = field(default_factory=list)


def first_match(
    lines: Sequence[str],
    patterns: Sequence[Pattern],
    max_lines: int = 80
) -> Optional[str]:
    """
    Return the first capture found by any pattern within the first
    `max_lines` lines.

    Lines are scanned top to bottom; for each line the patterns are tried
    in order.
    """
    for line in list(lines)[:max_lines]:
        for pattern in patterns:
            match = pattern.search(line)
            if match:
                return match.group(match.lastindex or 0).strip()
    return None


def find_invoice_number(lines: Sequence[str], max_lines: int = 80) -> Optional[str]:
    return first_match(lines, INVOICE_NO_PATTERNS, max_lines)


def find_po_number(lines: Sequence[str], max_lines: int = 120) -> Optional[str]:
    return first_match(lines, PO_NO_PATTERNS, max_lines)


def find_invoice_date(lines: Sequence[str], max_lines: int = 80) -> Optional[str]:
    return first_match(lines, DATE_PATTERNS, max_lines)


def is_subtotal_line(line: str) -> bool:
    return bool(SUBTOTAL_PATTERN.search(line or ""))


def is_total_line(line: str) -> bool:
    """True for total labels that are not subtotals."""
    return bool(TOTAL_PATTERN.search(line or "")) and not is_subtotal_line(line)


def find_totals(lines: Sequence[str], window: int = TOTALS_WINDOW) -> TotalsBlock:
    """
    Scan the last `window` lines for subtotal, tax and total amounts.

    Only lines that end in a money token count. For each label the first
    qualifying line in the window wins.

    Args:
        lines: Normalized document lines.
        window: Number of trailing lines to inspect.

    Returns:
        TotalsBlock with whatever was found.
    """
    block = TotalsBlock()
    start = max(0, len(lines) - window)

    for index in range(start, len(lines)):
        line = lines[index]
        money = find_line_end_money(line)
        if money is None:
            continue

        if is_subtotal_line(line):
            if block.subtotal is None:
                block.subtotal, block.subtotal_line = money.value, index
            continue

        if TAX_PATTERN.search(line) and not TOTAL_PATTERN.search(line):
            if block.tax is None:
                block.tax, block.tax_line = money.value, index
            continue

        if TOTAL_PATTERN.search(line) and block.total is None:
            block.total, block.total_line = money.value, index

    return block


def find_label_lines(lines: Sequence[str], start: int = 0) -> LabelLines:
    """Collect subtotal and total label lines from `start` to the end."""
    labels = LabelLines()
    for index in range(max(0, start), len(lines)):
        line = lines[index]
        if is_subtotal_line(line):
            labels.subtotals.append(index)
        elif is_total_line(line):
            labels.totals.append(index)
    return labels
