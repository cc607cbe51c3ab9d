"""
Statement Line Parser.

Account statements list one charge per line with a single amount at the
end. Every such line becomes a quantity-one item.
"""

import re
from typing import List

from ..text.normalizer import NormalizedInput
from ..text.money import parse_money_token
from .base import LineItem, MatchResult, ParseAttemptResult, ParserPlugin
from .common import extract_draft

STATEMENT_WORDS = re.compile(r'\b(?:Statement|Account\s+Summary)\b', re.IGNORECASE)
BALANCE_WORD = re.compile(r'\bBalance\b', re.IGNORECASE)
PAYMENT_WORD = re.compile(r'\bPayment\b', re.IGNORECASE)
CHARGE_WORDS = re.compile(r'\b(?:Charges?|Service)\b', re.IGNORECASE)

SKIP_ROW = re.compile(r'^(?:Total|Sub\s*total|Balance|Amount\s+Due|Payments?)\b', re.IGNORECASE)
AMOUNT_ROW = re.compile(r'^(.+?)\s+\$?([0-9,]+\.[0-9]{2})\s*$')

# Many short descriptions means we matched a column of numbers, not charges
GATE_MIN_ITEMS = 20
GATE_MIN_DESCRIPTIVE = 5
GATE_DESCRIPTION_LENGTH = 8


class StatementLineParser(ParserPlugin):
    """Parser for account statements. Scores on a 0-1 scale."""

    plugin_id = "statement-line-v1"
    version = "1.0.0"
    score_scale = 1.0

    def match(self, document: NormalizedInput) -> MatchResult:
        text = document.text
        score = 0.0
        reasons: List[str] = []

        if STATEMENT_WORDS.search(text):
            score += 0.30
            reasons.append("statement_words")
        if BALANCE_WORD.search(text) and PAYMENT_WORD.search(text):
            score += 0.20
            reasons.append("balance_payment")
        if CHARGE_WORDS.search(text):
            score += 0.10
            reasons.append("charges_service")

        return MatchResult(score=score, reasons=reasons)

    def parse(self, document: NormalizedInput) -> ParseAttemptResult:
        items: List[LineItem] = []

        for index, line in enumerate(document.lines):
            if not line or SKIP_ROW.match(line):
                continue
            match = AMOUNT_ROW.match(line)
            if not match:
                continue

            description = match.group(1).strip()
            amount = parse_money_token(match.group(2))
            if not description or amount is None:
                continue

            items.append(LineItem(
                description=description,
                quantity=1.0,
                unit_price=amount,
                line_total=amount,
                line_index=index,
            ))

        evidence = {'rows': len(items)}
        descriptive = sum(1 for item in items if len(item.description) >= GATE_DESCRIPTION_LENGTH)
        if len(items) >= GATE_MIN_ITEMS and descriptive < GATE_MIN_DESCRIPTIVE:
            evidence['rejected'] = 'low_description_quality'
            items = []

        return ParseAttemptResult(
            draft=extract_draft(document.lines),
            line_items=items,
            confidence=60.0 if items else 0.0,
            evidence=evidence,
        )
