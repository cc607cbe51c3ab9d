"""
Document Scan Guardrail Module.

Heuristic parsers may stop reading at the first subtotal and silently
drop a second section of items:

    Items section 1
    SUBTOTAL $30
    Items section 2      <- missed
    INVOICE TOTAL $50

The guardrail measures how much of the document the chosen parser
consumed, re-scans the remainder when coverage is low, cross-checks the
invoice total and decides whether a human should review the result.

Classes:
    ScanCompleteness: Coverage measurement
    ExtendedScan: Items and totals recovered from the remainder
    TotalValidation: Best invoice total found by label priority
    ReviewDecision: Human review flag with reasons
    GuardrailReport: Everything above for one run
    DocumentScanGuardrail: Runs the checks; never raises

Author: ML Engineering Team
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..parsers.base import LineItem, ParseAttemptResult
from ..text.anchors import find_label_lines, is_subtotal_line
from ..text.money import PRICE_PATTERN, find_line_end_money, find_prices
from ..utils.exceptions import GuardrailError
from ..utils.logger import get_logger
from .validators import LineItemValidator

logger = get_logger(__name__)

WARNING_PREFIX = "[GUARDRAIL]"

TOTAL_LINE = re.compile(r'^(?:INVOICE\s+)?TOTAL\b', re.IGNORECASE)
TAX_LINE = re.compile(r'^(?:SALES\s+)?TAX\b', re.IGNORECASE)
DUE_LINE = re.compile(r'\b(?:AMOUNT|BALANCE)\s+DUE\b', re.IGNORECASE)

INVOICE_TOTAL_LABEL = re.compile(r'INVOICE\s+TOTAL', re.IGNORECASE)
TOTAL_USD_LABEL = re.compile(r'TOTAL\s+USD|AMOUNT\s+DUE|BALANCE\s+DUE', re.IGNORECASE)
GENERIC_TOTAL_LABEL = re.compile(r'^TOTAL\s', re.IGNORECASE)
SECTION_TOTAL = re.compile(r'GROUP|DEPT|DEPARTMENT|CATEGORY|SECTION|EMPLOYEE', re.IGNORECASE)

TOTAL_STRATEGIES = [
    ('INVOICE_TOTAL_LABEL', 95),
    ('TOTAL_USD_LABEL', 90),
    ('TOTAL_GENERIC', 70),
]

QTY_TOKEN = re.compile(r'^\d{1,3}$')


@dataclass
class ScanCompleteness:
    """Coverage of the parser's scan."""
    scan_completeness: int
    fully_scanned: bool
    last_parsed_line: int
    total_lines: int
    found_subtotals: List[int] = field(default_factory=list)
    found_totals: List[int] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class ExtendedScan:
    """Items and totals found after the last parsed line."""
    items: List[LineItem] = field(default_factory=list)
    totals: List[Dict[str, Any]] = field(default_factory=list)
    subtotals: List[int] = field(default_factory=list)
    scanned_from: int = 0
    scanned_to: int = 0


@dataclass
class TotalValidation:
    """Outcome of the independent total search."""
    total: Optional[float]
    source: Optional[str] = None
    line: Optional[int] = None
    candidates_found: int = 0
    adopted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total': self.total,
            'source': self.source,
            'line': self.line,
            'candidates_found': self.candidates_found,
            'adopted': self.adopted,
        }


@dataclass
class ReviewDecision:
    """Whether a person should look at the result, and why."""
    needs_review: bool
    reasons: List[str] = field(default_factory=list)
    severity: str = "low"

    def to_dict(self) -> Dict[str, Any]:
        return {'needs_review': self.needs_review, 'reasons': list(self.reasons), 'severity': self.severity}


@dataclass
class GuardrailReport:
    """
    Result of DocumentScanGuardrail.apply().

    Attributes:
        scan_completeness: Percentage of lines consumed by the parser (0-100)
        last_parsed_line: Lines consumed
        total_lines: Lines in the document
        found_subtotals: Subtotal line indices
        found_totals: Total line indices
        warnings: Human-readable warnings
        applied: True when an extended scan was performed
        items: Original items followed by extended items
        extended_items: Items recovered by the extended scan
        total: Invoice total after validation
        original_total: Total reported by the parser
        total_validation: Details of the total search
        review: Human review decision
        message: One-line summary
    """
    scan_completeness: int = 100
    last_parsed_line: int = 0
    total_lines: int = 0
    found_subtotals: List[int] = field(default_factory=list)
    found_totals: List[int] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    applied: bool = False
    items: List[LineItem] = field(default_factory=list)
    extended_items: List[LineItem] = field(default_factory=list)
    total: Optional[float] = None
    original_total: Optional[float] = None
    total_validation: Optional[TotalValidation] = None
    review: Optional[ReviewDecision] = None
    message: str = "Full document scanned"

    @property
    def changed(self) -> bool:
        """True when items or the total differ from the parser's output."""
        return bool(self.extended_items) or self.total != self.original_total

    def to_dict(self) -> Dict[str, Any]:
        return {
            'applied': self.applied,
            'scan_completeness': self.scan_completeness,
            'last_parsed_line': self.last_parsed_line,
            'total_lines': self.total_lines,
            'found_subtotals': list(self.found_subtotals),
            'found_totals': list(self.found_totals),
            'additional_items_found': len(self.extended_items),
            'warnings': list(self.warnings),
            'message': self.message,
            'total_validation': self.total_validation.to_dict() if self.total_validation else None,
            'review': self.review.to_dict() if self.review else None,
        }


class DocumentScanGuardrail:
    """
    Scan coverage guardrail.

    Args:
        completeness_threshold: Coverage (percent) at or above which the
            scan counts as complete.
        min_description_length: Shortest description accepted for an
            extended-scan item.
        review_min_confidence: Parser confidence below this needs review.
        review_min_math_ratio: Share of arithmetic-valid items below this
            needs review.
        review_max_subtotals: More subtotal sections than this needs review.

    Example:
        >>> guardrail = DocumentScanGuardrail()
        >>> report = guardrail.apply(attempt, document.lines)
        >>> report.applied, len(report.items)
        (True, 4)
    """

    def __init__(
        self,
        completeness_threshold: int = 70,
        min_description_length: int = 3,
        review_min_confidence: float = 70,
        review_min_math_ratio: float = 0.5,
        review_max_subtotals: int = 2
    ) -> None:
        self.completeness_threshold = completeness_threshold
        self.min_description_length = min_description_length
        self.review_min_confidence = review_min_confidence
        self.review_min_math_ratio = review_min_math_ratio
        self.review_max_subtotals = review_max_subtotals
        self.item_validator = LineItemValidator()

    # =========================================================================
    # COVERAGE
    # =========================================================================

    def check_scan_completeness(
        self,
        attempt: ParseAttemptResult,
        lines: Sequence[str]
    ) -> ScanCompleteness:
        """
        Estimate how much of the document the parser consumed.

        Without scan tracking from the parser, or for an empty document,
        coverage is 100%.
        """
        total_lines = len(lines)
        scan = attempt.scan

        if scan is None or scan.last_parsed_line is None:
            last_parsed = total_lines
        else:
            last_parsed = max(0, min(int(scan.last_parsed_line), total_lines))

        completeness = 100 if total_lines == 0 else round(last_parsed / total_lines * 100)

        labels = find_label_lines(lines)
        found_subtotals = sorted(set(labels.subtotals) | set(scan.found_subtotals if scan else []))
        found_totals = sorted(set(labels.totals) | set(scan.found_totals if scan else []))

        fully_scanned = completeness >= self.completeness_threshold
        warnings: List[str] = []
        if not fully_scanned:
            warnings.append(
                f"{WARNING_PREFIX} Only scanned {completeness}% of document "
                f"({last_parsed}/{total_lines} lines)"
            )
            warnings.append(f"{WARNING_PREFIX} May have missed items after line {last_parsed}")
        if len(found_subtotals) > 1:
            warnings.append(
                f"{WARNING_PREFIX} Found {len(found_subtotals)} subtotals - multi-section invoice detected"
            )

        return ScanCompleteness(
            scan_completeness=completeness,
            fully_scanned=fully_scanned,
            last_parsed_line=last_parsed,
            total_lines=total_lines,
            found_subtotals=found_subtotals,
            found_totals=found_totals,
            warnings=warnings,
        )

    # =========================================================================
    # EXTENSION
    # =========================================================================

    def extend_scan(self, lines: Sequence[str], start_line: int) -> ExtendedScan:
        """
        Re-walk the document from `start_line` looking for missed items.

        Total, subtotal and tax lines are recorded, never itemized. Any
        other line with a decimal price becomes an item: the last price is
        the line total, the one before it the unit price.
        """
        extended = ExtendedScan(scanned_from=start_line, scanned_to=len(lines))

        for index in range(max(0, start_line), len(lines)):
            line = (lines[index] or "").strip()
            if not line:
                continue

            if is_subtotal_line(line):
                extended.subtotals.append(index)
                continue

            if TOTAL_LINE.match(line) or DUE_LINE.search(line):
                money = find_line_end_money(line)
                if money is not None and money.value > 0:
                    extended.totals.append({
                        'line': index,
                        'label': line.split()[0],
                        'value': money.value,
                        'raw': line,
                    })
                continue

            if TAX_LINE.match(line):
                continue

            item = self._item_from_line(line, index)
            if item is not None:
                extended.items.append(item)

        logger.info(
            f"Extended scan from line {start_line}: "
            f"{len(extended.items)} additional items, {len(extended.totals)} totals"
        )
        return extended

    def _item_from_line(self, line: str, index: int) -> Optional[LineItem]:
        prices = find_prices(line)
        if not prices:
            return None

        residual = PRICE_PATTERN.sub(' ', line).split()
        line_total = prices[-1]
        unit_price = prices[-2] if len(prices) > 1 else line_total
        quantity = 1.0

        # "Widget 3 2.00 6.00": bare count right before the prices
        if residual and QTY_TOKEN.match(residual[-1]) and len(prices) > 1:
            candidate = float(residual[-1])
            if candidate > 0 and abs(candidate * unit_price - line_total) <= 0.02:
                quantity = candidate
                residual = residual[:-1]

        description = " ".join(residual).strip()
        if len(description) < self.min_description_length:
            return None

        return LineItem(
            description=description,
            quantity=quantity,
            unit_price=unit_price,
            line_total=line_total,
            source="extended_scan",
            line_index=index,
        )

    # =========================================================================
    # TOTALS
    # =========================================================================

    def validate_invoice_total(
        self,
        current_total: Optional[float],
        lines: Sequence[str]
    ) -> TotalValidation:
        """
        Search for the invoice total by label priority.

        The best candidate (highest label confidence, then largest value)
        replaces `current_total` only when it is larger.
        """
        candidates = []
        for index, raw in enumerate(lines):
            line = (raw or "").strip()
            if not line:
                continue

            money = find_line_end_money(line)
            if money is None or money.value <= 0:
                continue

            if INVOICE_TOTAL_LABEL.search(line):
                source = 'INVOICE_TOTAL_LABEL'
            elif TOTAL_USD_LABEL.search(line):
                source = 'TOTAL_USD_LABEL'
            elif GENERIC_TOTAL_LABEL.match(line) and not SECTION_TOTAL.search(line):
                source = 'TOTAL_GENERIC'
            else:
                continue

            confidence = dict(TOTAL_STRATEGIES)[source]
            candidates.append((confidence, money.value, index, source))

        candidates.sort(key=lambda c: (-c[0], -c[1]))
        current = current_total or 0.0

        if candidates and candidates[0][1] > current:
            _, value, index, source = candidates[0]
            logger.info(f"Found better invoice total: {value:.2f} (was {current:.2f})")
            return TotalValidation(
                total=value,
                source=source,
                line=index,
                candidates_found=len(candidates),
                adopted=True,
            )

        return TotalValidation(total=current_total, candidates_found=len(candidates))

    # =========================================================================
    # REVIEW
    # =========================================================================

    def check_needs_review(
        self,
        applied: bool,
        scan_completeness: int,
        confidence: float,
        items: Sequence[LineItem],
        subtotal_count: int
    ) -> ReviewDecision:
        reasons: List[str] = []

        if applied:
            reasons.append(
                f"Extended scan was needed (only {scan_completeness}% initially scanned)"
            )
        if confidence < self.review_min_confidence:
            reasons.append(f"Low confidence score: {confidence:.0f}%")

        ratio = self.item_validator.math_ratio(items)
        if ratio is not None and ratio < self.review_min_math_ratio:
            validated = sum(1 for item in items if item.math_validated)
            reasons.append(f"Low math validation rate: {validated}/{len(items)} items")

        if subtotal_count > self.review_max_subtotals:
            reasons.append(f"Multiple subtotals found ({subtotal_count}) - complex invoice")

        if len(reasons) >= 3:
            severity = "high"
        elif reasons:
            severity = "medium"
        else:
            severity = "low"

        return ReviewDecision(needs_review=bool(reasons), reasons=reasons, severity=severity)

    # =========================================================================
    # ENTRY POINT
    # =========================================================================

    def apply(self, attempt: ParseAttemptResult, lines: Sequence[str]) -> GuardrailReport:
        """
        Run every check against the accepted parse.

        Never raises; an internal failure yields an unapplied report that
        keeps the parser's items and total, plus a warning.

        Args:
            attempt: Accepted (or fallback) parse attempt.
            lines: Normalized document lines.

        Returns:
            GuardrailReport.
        """
        original_items = list(attempt.valid_items)
        try:
            return self._apply(attempt, original_items, lines)
        except Exception as e:
            error = GuardrailError("apply", str(e))
            logger.warning(f"{error}; continuing without extension")
            return GuardrailReport(
                total_lines=len(lines),
                last_parsed_line=len(lines),
                items=original_items,
                total=attempt.draft.total,
                original_total=attempt.draft.total,
                warnings=[f"{WARNING_PREFIX} {error.message}: {e}"],
                message="Guardrail failed; no extension applied",
            )

    def _apply(
        self,
        attempt: ParseAttemptResult,
        original_items: List[LineItem],
        lines: Sequence[str]
    ) -> GuardrailReport:
        coverage = self.check_scan_completeness(attempt, lines)
        for warning in coverage.warnings:
            logger.warning(warning)

        report = GuardrailReport(
            scan_completeness=coverage.scan_completeness,
            last_parsed_line=coverage.last_parsed_line,
            total_lines=coverage.total_lines,
            found_subtotals=list(coverage.found_subtotals),
            found_totals=list(coverage.found_totals),
            warnings=list(coverage.warnings),
            items=list(original_items),
            total=attempt.draft.total,
            original_total=attempt.draft.total,
        )

        if not coverage.fully_scanned:
            extended = self.extend_scan(lines, coverage.last_parsed_line)
            report.applied = True
            report.extended_items = list(extended.items)
            report.items = original_items + extended.items
            report.found_subtotals = sorted(set(report.found_subtotals) | set(extended.subtotals))

            for found in extended.totals:
                if report.total is None or found['value'] > report.total:
                    report.total = found['value']

            report.message = (
                f"Extended scan: added {len(extended.items)} items from remaining "
                f"{coverage.total_lines - coverage.last_parsed_line} lines"
            )

        validation = self.validate_invoice_total(report.total, lines)
        if validation.adopted:
            report.total = validation.total
        report.total_validation = validation

        report.review = self.check_needs_review(
            applied=report.applied,
            scan_completeness=report.scan_completeness,
            confidence=attempt.confidence,
            items=report.items,
            subtotal_count=len(report.found_subtotals),
        )
        return report
