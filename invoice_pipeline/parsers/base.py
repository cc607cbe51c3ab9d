"""
Parser Plugin Contract.

This module defines the interface every document-layout strategy
implements, together with the data structures plugins exchange with the
selector and the guardrail.

Classes:
    LineItem: One extracted invoice line
    InvoiceDraft: Header fields found by a plugin
    ScanInfo: How far a plugin read into the document
    MatchResult: A plugin's compatibility opinion
    ParseAttemptResult: Output of one parse call
    ParserPlugin: Abstract base class for plugins

Author: ML Engineering Team
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..text.normalizer import NormalizedInput


def _is_finite(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


@dataclass
class LineItem:
    """
    One invoice line.

    Attributes:
        description: Item text
        quantity: Units, must be > 0
        unit_price: Price per unit, must be >= 0
        line_total: Extended amount as printed, if any
        sku: Product code, if any
        uom: Unit of measure, if any
        source: Which stage produced the item ("parser" or "extended_scan")
        line_index: Index of the source line in NormalizedInput.lines
    """
    description: str
    quantity: Optional[float] = None
    unit_price: Optional[float] = None
    line_total: Optional[float] = None
    sku: Optional[str] = None
    uom: Optional[str] = None
    source: str = "parser"
    line_index: Optional[int] = None

    @property
    def is_valid(self) -> bool:
        """True if the item may be counted toward acceptance thresholds."""
        if not (self.description or "").strip():
            return False
        if not _is_finite(self.quantity) or self.quantity <= 0:
            return False
        if not _is_finite(self.unit_price) or self.unit_price < 0:
            return False
        return True

    @property
    def math_validated(self) -> bool:
        """True when quantity x unit price matches the printed line total."""
        if not self.is_valid or not _is_finite(self.line_total):
            return False
        expected = self.quantity * self.unit_price
        tolerance = max(0.02, abs(self.line_total) * 0.01)
        return abs(expected - self.line_total) <= tolerance

    def to_payload(self) -> Dict[str, Any]:
        """Caller-facing shape of the item."""
        return {
            'sku': self.sku or "",
            'description': self.description.strip(),
            'quantity': self.quantity,
            'unit_price': self.unit_price,
            'line_total': self.line_total,
            'uom': self.uom,
            'source': self.source,
        }


@dataclass
class InvoiceDraft:
    """
    Header fields a plugin found, before canonicalization.

    Money values are floats; the date is kept as printed.
    """
    invoice_number: Optional[str] = None
    invoice_date: Optional[str] = None
    po_number: Optional[str] = None
    subtotal: Optional[float] = None
    tax: Optional[float] = None
    total: Optional[float] = None
    vendor: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'invoice_number': self.invoice_number,
            'invoice_date': self.invoice_date,
            'po_number': self.po_number,
            'subtotal': self.subtotal,
            'tax': self.tax,
            'total': self.total,
            'vendor': self.vendor,
        }


@dataclass
class ScanInfo:
    """
    Scan tracking reported by plugins that stop early.

    `last_parsed_line` is a line count: the number of lines the plugin
    consumed from the top of the document.
    """
    last_parsed_line: Optional[int] = None
    found_subtotals: List[int] = field(default_factory=list)
    found_totals: List[int] = field(default_factory=list)


@dataclass
class MatchResult:
    """Score (on the plugin's own scale) and human-readable reasons."""
    score: float = 0.0
    reasons: List[str] = field(default_factory=list)


@dataclass
class ParseAttemptResult:
    """
    Output of ParserPlugin.parse().

    Attributes:
        draft: Header fields
        line_items: Items in document order
        confidence: Plugin's confidence, 0-100
        evidence: Free-form diagnostics
        scan: Scan tracking, when the plugin records it
    """
    draft: InvoiceDraft = field(default_factory=InvoiceDraft)
    line_items: List[LineItem] = field(default_factory=list)
    confidence: float = 0.0
    evidence: Dict[str, Any] = field(default_factory=dict)
    scan: Optional[ScanInfo] = None

    @property
    def valid_items(self) -> List[LineItem]:
        return [item for item in self.line_items if item.is_valid]


class ParserPlugin(ABC):
    """
    Abstract base class for document-layout strategies.

    Subclasses set `plugin_id` and `version` and implement match() and
    parse(). Both must be pure functions of the NormalizedInput. Plugins
    scoring on a 0-1 scale set `score_scale = 1.0`; the registry rescales
    every score to 0-100.

    Example:
        >>> class MyPlugin(ParserPlugin):
        ...     plugin_id = "my-layout-v1"
        ...     def match(self, document): return MatchResult(50, ["keyword"])
        ...     def parse(self, document): return ParseAttemptResult()
    """

    plugin_id: str = "abstract"
    version: str = "1.0.0"
    score_scale: float = 100.0

    @abstractmethod
    def match(self, document: NormalizedInput) -> MatchResult:
        """Cheap compatibility score for `document`."""

    @abstractmethod
    def parse(self, document: NormalizedInput) -> ParseAttemptResult:
        """Extract header fields and line items from `document`."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.plugin_id!r}, version={self.version!r})"
