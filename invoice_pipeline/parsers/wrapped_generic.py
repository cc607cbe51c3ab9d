"""
Wrapped Generic Parser.

Fallback strategy for loosely formatted invoices where an item's
description wraps over several lines and only the last line carries the
amount.

Author: ML Engineering Team
"""

from typing import List, Tuple

from ..text.anchors import find_label_lines, find_totals
from ..text.money import find_line_end_money
from ..text.normalizer import NormalizedInput
from .base import LineItem, MatchResult, ParseAttemptResult, ParserPlugin, ScanInfo
from .common import extract_draft, is_stop_line, item_from_tokens, signal_confidence

MAX_PENDING_LINES = 3
MIN_PENDING_LENGTH = 4


class WrappedGenericParser(ParserPlugin):
    """
    Parser that treats every money-terminated line as an item and
    prepends up to three preceding text lines to its description.
    """

    plugin_id = "wrapped-generic-v1"
    version = "1.0.0"

    def __init__(self, max_items: int = 400, items_threshold: int = 6) -> None:
        self.max_items = max_items
        self.items_threshold = items_threshold

    def match(self, document: NormalizedInput) -> MatchResult:
        lines = document.lines
        score = 0
        reasons: List[str] = []

        money_end_count = sum(1 for line in lines[:260] if find_line_end_money(line))
        if money_end_count >= 10:
            score += 55
            reasons.append(f"moneyEndCount:{money_end_count}")
        elif money_end_count >= 5:
            score += 35
            reasons.append(f"moneyEndCount:{money_end_count}")

        if find_totals(lines).has_total:
            score += 25
            reasons.append("hasTotal")
        if "invoice" in " ".join(lines[:60]).lower():
            score += 10
            reasons.append("invoiceKeyword")

        return MatchResult(score=min(100, score), reasons=reasons)

    def parse(self, document: NormalizedInput) -> ParseAttemptResult:
        lines = document.lines
        draft = extract_draft(lines, invoice_window=120, date_window=120, po_window=160)
        items, wrapped = self._find_wrapped_items(lines)
        labels = find_label_lines(lines)

        return ParseAttemptResult(
            draft=draft,
            line_items=items,
            confidence=signal_confidence(draft, len(items), self.items_threshold),
            evidence={'wrapped_items': wrapped},
            scan=ScanInfo(
                last_parsed_line=len(lines),
                found_subtotals=labels.subtotals,
                found_totals=labels.totals,
            ),
        )

    def _find_wrapped_items(self, lines) -> Tuple[List[LineItem], int]:
        items: List[LineItem] = []
        pending: List[str] = []
        wrapped = 0

        for index, line in enumerate(lines):
            if len(items) >= self.max_items:
                break
            if not line:
                pending = []
                continue
            if is_stop_line(line):
                pending = []
                continue

            if find_line_end_money(line) is None:
                if len(line) >= MIN_PENDING_LENGTH and len(pending) < MAX_PENDING_LINES:
                    pending.append(line)
                continue

            item = item_from_tokens(line.split(), index, qty_search=6)
            if item is None:
                # Amount-only line closes a wrapped description
                if pending:
                    amount = find_line_end_money(line).value
                    item = LineItem(
                        description=" ".join(pending),
                        quantity=1.0,
                        unit_price=amount,
                        line_total=amount,
                        line_index=index,
                    )
            elif pending:
                item.description = " ".join(pending + [item.description])
                wrapped += 1

            pending = []
            if item is not None:
                items.append(item)

        return items, wrapped
