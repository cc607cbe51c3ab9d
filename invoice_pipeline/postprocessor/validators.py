"""
Data Validators Module.

This module provides arithmetic checks for extracted invoices:
    - Line item arithmetic (quantity x unit price = line total)
    - Reconciliation of item sums with the printed subtotal / total

These checks never reject a result; they feed the review decision and
the warnings attached to the unified result.

Author: ML Engineering Team
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..parsers.base import InvoiceDraft, LineItem
from ..utils.logger import get_logger

logger = get_logger(__name__)


class ValidationResult:
    """
    Contains the result of validation checks.

    Attributes:
        is_valid: Overall validation result
        errors: List of error messages
        warnings: List of warning messages
        metrics: Numbers computed along the way
    """

    def __init__(self):
        self.is_valid = True
        self.errors: List[str] = []
        self.warnings: List[str] = []
        self.metrics: Dict[str, Any] = {}

    def add_error(self, message: str) -> None:
        """Add an error and mark as invalid."""
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str) -> None:
        """Add a warning (doesn't affect validity)."""
        self.warnings.append(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_valid': self.is_valid,
            'errors': self.errors,
            'warnings': self.warnings,
            'metrics': self.metrics,
        }


class LineItemValidator:
    """
    Checks line item arithmetic.

    Example:
        >>> validator = LineItemValidator()
        >>> validator.validate_item(LineItem("Widget", 2, 5.0, 10.0))
        (True, "Arithmetic matches")
    """

    def validate_item(self, item: LineItem) -> Tuple[bool, str]:
        if not item.is_valid:
            return False, "Invalid quantity or unit price"
        if item.line_total is None:
            return False, "No line total to check against"
        if not item.math_validated:
            expected = item.quantity * item.unit_price
            return False, f"Expected {expected:.2f}, found {item.line_total:.2f}"
        return True, "Arithmetic matches"

    def math_ratio(self, items: Sequence[LineItem]) -> Optional[float]:
        """
        Fraction of items whose arithmetic checks out.

        Returns:
            Ratio in [0, 1], or None when there are no items.
        """
        if not items:
            return None
        validated = sum(1 for item in items if item.math_validated)
        return validated / len(items)


class TotalsValidator:
    """
    Compares the sum of line totals with the printed subtotal and total.
    """

    def __init__(self, tolerance: float = 0.02) -> None:
        self.tolerance = tolerance

    def validate(self, items: Sequence[LineItem], draft: InvoiceDraft) -> ValidationResult:
        result = ValidationResult()

        amounts = [
            item.line_total if item.line_total is not None else item.quantity * item.unit_price
            for item in items
            if item.is_valid
        ]
        items_sum = round(sum(amounts), 2)
        result.metrics['items_sum'] = items_sum

        if draft.subtotal is not None:
            if abs(items_sum - draft.subtotal) > self._allowed(draft.subtotal):
                result.add_warning(
                    f"Item sum {items_sum:.2f} does not match subtotal {draft.subtotal:.2f}"
                )
        elif draft.total is not None:
            expected = draft.total - (draft.tax or 0.0)
            if abs(items_sum - expected) > self._allowed(expected):
                result.add_warning(
                    f"Item sum {items_sum:.2f} does not match total {draft.total:.2f}"
                )

        if draft.total is not None and draft.subtotal is not None and draft.total < draft.subtotal:
            result.add_warning("Total is smaller than subtotal")

        if result.warnings:
            logger.debug(f"Totals reconciliation: {result.warnings}")
        return result

    def _allowed(self, reference: float) -> float:
        return max(self.tolerance, abs(reference) * 0.01)
