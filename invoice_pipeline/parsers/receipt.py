"""
Receipt Parser.

Handles point-of-sale receipts printed as
"DESCRIPTION $UNIT QTY $LINE_TOTAL" rows under an
"Item Price Qty Line Total" header. Parsing stops at the first
payment / subtotal / tax / tip / total line; everything after it is left
to the scan guardrail.

Author: ML Engineering Team
"""

import re
from typing import List

from ..text.anchors import find_label_lines, find_totals
from ..text.normalizer import NormalizedInput
from ..utils.logger import get_logger
from .base import LineItem, MatchResult, ParseAttemptResult, ParserPlugin, ScanInfo
from .common import extract_draft

logger = get_logger(__name__)

HEADER_ROW = re.compile(r'Item\s*Price\s*Qty\s*(?:Line\s*)?Total', re.IGNORECASE)
END_OF_ITEMS = re.compile(r'^(?:Payment|Sub\s*total|Tax|Tip|Total)\b', re.IGNORECASE)
FULL_ROW = re.compile(r'^(.+?)\s*\$([0-9]+\.[0-9]{2})\s*([0-9]+)?\s*\$([0-9]+\.[0-9]{2})\s*$')
TOTAL_ONLY_ROW = re.compile(r'^(.+?)\s*\$([0-9]+\.[0-9]{2})\s*$')
# Modifier rows ("+ Extra cheese", "* no onions") belong to the previous item
MODIFIER_ROW = re.compile(r'^[+*\-]')

RECEIPT_WORD = re.compile(r'\b(?:your\s+)?receipt\b', re.IGNORECASE)
SERVICE_WORDS = re.compile(r'\b(?:server|table|guests?|thank\s+you)\b', re.IGNORECASE)
TENDER_WORDS = re.compile(r'\b(?:visa|mastercard|amex|cash|change\s+due|tip)\b', re.IGNORECASE)


class ReceiptParser(ParserPlugin):
    """Parser for itemized point-of-sale receipts. Scores on a 0-1 scale."""

    plugin_id = "receipt-v1"
    version = "1.0.0"
    score_scale = 1.0

    def match(self, document: NormalizedInput) -> MatchResult:
        text = document.text
        score = 0.0
        reasons: List[str] = []

        if RECEIPT_WORD.search(text):
            score += 0.35
            reasons.append("receipt_word")
        if HEADER_ROW.search(text):
            score += 0.45
            reasons.append("item_price_qty_total_header")
        if SERVICE_WORDS.search(text):
            score += 0.15
            reasons.append("service_words")
        if TENDER_WORDS.search(text):
            score += 0.05
            reasons.append("tender_words")

        return MatchResult(score=min(1.0, score), reasons=reasons)

    def parse(self, document: NormalizedInput) -> ParseAttemptResult:
        lines = document.lines
        items: List[LineItem] = []

        start = 0
        for index, line in enumerate(lines):
            if HEADER_ROW.search(line):
                start = index + 1
                break

        last_parsed = len(lines)
        for index in range(start, len(lines)):
            line = lines[index]
            if not line:
                continue
            if END_OF_ITEMS.match(line):
                last_parsed = index
                break
            if MODIFIER_ROW.match(line):
                continue

            item = self._parse_row(line, index)
            if item is not None:
                items.append(item)

        draft = extract_draft(lines)
        labels = find_label_lines(lines)
        confidence = 0.0
        if items:
            confidence += 50
        if find_totals(lines).has_total:
            confidence += 30
        if start > 0:
            confidence += 20

        logger.debug(f"{self.plugin_id}: {len(items)} items, stopped at line {last_parsed}/{len(lines)}")

        return ParseAttemptResult(
            draft=draft,
            line_items=items,
            confidence=confidence,
            evidence={'header_line': start - 1 if start else None},
            scan=ScanInfo(
                last_parsed_line=last_parsed,
                found_subtotals=labels.subtotals,
                found_totals=labels.totals,
            ),
        )

    @staticmethod
    def _parse_row(line: str, index: int):
        match = FULL_ROW.match(line)
        if match:
            description = match.group(1).strip()
            unit = float(match.group(2))
            qty = float(match.group(3)) if match.group(3) else 1.0
            if not description or qty <= 0:
                return None
            return LineItem(
                description=description,
                quantity=qty,
                unit_price=unit,
                line_total=float(match.group(4)),
                line_index=index,
            )

        match = TOTAL_ONLY_ROW.match(line)
        if match and match.group(1).strip():
            total = float(match.group(2))
            return LineItem(
                description=match.group(1).strip(),
                quantity=1.0,
                unit_price=total,
                line_total=total,
                line_index=index,
            )
        return None
