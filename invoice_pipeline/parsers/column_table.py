"""
Column Table Parser.

Handles invoices laid out as a table with a header row
(Qty / Description / Unit Price / Amount) and one item per line.

Author: ML Engineering Team
"""

import re
from typing import List

from ..text.anchors import find_label_lines, find_totals
from ..text.money import find_line_end_money, parse_money_token
from ..text.normalizer import NormalizedInput
from ..utils.logger import get_logger
from .base import LineItem, MatchResult, ParseAttemptResult, ParserPlugin, ScanInfo
from .common import count_numeric_tokens, extract_draft, is_stop_line, item_from_tokens, signal_confidence

logger = get_logger(__name__)

HEADER_WORDS = ["qty", "quantity", "item", "description", "unit", "price", "amount", "ext", "extended"]

# "DESC QTY UNIT TOTAL", optionally prefixed by a SKU containing a digit
SKU_ROW = re.compile(
    r'^((?=[A-Z\-]*\d)[A-Z0-9\-]{3,})\s+(.+?)\s+(\d+(?:\.\d+)?)\s+\$?([0-9,]+\.[0-9]{2})\s+\$?([0-9,]+\.[0-9]{2})\s*$'
)
PLAIN_ROW = re.compile(
    r'^(.+?)\s+(\d+(?:\.\d+)?)\s+\$?([0-9,]+\.[0-9]{2})\s+\$?([0-9,]+\.[0-9]{2})\s*$'
)


class ColumnTableParser(ParserPlugin):
    """
    Parser for column-structured invoices.

    Match signals:
        - at least two table header words in the first 80 lines
        - at least six numerically dense lines (4+ numeric tokens)
        - a total in the trailing block
        - the word "invoice" near the top

    Example:
        >>> parser = ColumnTableParser()
        >>> doc = NormalizedInput.from_raw("Widget A 2 $5.00 $10.00")
        >>> [i.quantity for i in parser.parse(doc).line_items]
        [2.0]
    """

    plugin_id = "column-table-v1"
    version = "1.1.0"

    def __init__(self, max_items: int = 400, items_threshold: int = 5) -> None:
        self.max_items = max_items
        self.items_threshold = items_threshold

    def match(self, document: NormalizedInput) -> MatchResult:
        lines = document.lines
        top = " ".join(lines[:80]).lower()
        header_hits = sum(1 for word in HEADER_WORDS if word in top)
        numeric_dense = sum(1 for line in lines[:220] if count_numeric_tokens(line) >= 4)

        score = 0
        reasons: List[str] = []
        if header_hits >= 2:
            score += 35
            reasons.append(f"headerHits:{header_hits}")
        if numeric_dense >= 6:
            score += 35
            reasons.append(f"numericDense:{numeric_dense}")
        if find_totals(lines).has_total:
            score += 20
            reasons.append("hasTotal")
        if "invoice" in " ".join(lines[:40]).lower():
            score += 10
            reasons.append("invoiceKeyword")

        return MatchResult(score=min(100, score), reasons=reasons)

    def parse(self, document: NormalizedInput) -> ParseAttemptResult:
        lines = document.lines
        draft = extract_draft(lines, invoice_window=80, date_window=80, po_window=120)
        items = self._find_line_items(lines)
        labels = find_label_lines(lines)

        logger.debug(f"{self.plugin_id}: {len(items)} candidate items")

        return ParseAttemptResult(
            draft=draft,
            line_items=items,
            confidence=signal_confidence(draft, len(items), self.items_threshold),
            evidence={'rows': len(items)},
            scan=ScanInfo(
                last_parsed_line=len(lines),
                found_subtotals=labels.subtotals,
                found_totals=labels.totals,
            ),
        )

    def _find_line_items(self, lines) -> List[LineItem]:
        items: List[LineItem] = []

        for index, line in enumerate(lines):
            if len(items) >= self.max_items:
                break
            if not line or is_stop_line(line):
                continue
            if find_line_end_money(line) is None:
                continue

            tokens = line.split()
            if len(tokens) <= 2:
                continue

            item = self._match_row(line, index) or item_from_tokens(tokens, index)
            if item is not None:
                items.append(item)

        return items

    @staticmethod
    def _match_row(line: str, index: int):
        sku = None
        match = SKU_ROW.match(line)
        if match:
            sku = match.group(1)
            description, qty, unit, total = match.group(2, 3, 4, 5)
        else:
            match = PLAIN_ROW.match(line)
            if not match:
                return None
            description, qty, unit, total = match.group(1, 2, 3, 4)

        return LineItem(
            description=description.strip(),
            quantity=float(qty),
            unit_price=parse_money_token(unit),
            line_total=parse_money_token(total),
            sku=sku,
            line_index=index,
        )
