"""
Vendor Adapter.

Wraps a caller-supplied, vendor-specific parse function in the plugin
contract. The adapter only knows how to recognise the vendor (name
keywords plus a product lexicon) and how to map the function's output
onto ParseAttemptResult; the layout knowledge stays with the caller.

Author: ML Engineering Team
"""

from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from ..text.normalizer import NormalizedInput
from .base import InvoiceDraft, LineItem, MatchResult, ParseAttemptResult, ParserPlugin

VendorParseFn = Callable[[NormalizedInput], Union[ParseAttemptResult, Dict[str, Any]]]

DRAFT_FIELDS = ('invoice_number', 'invoice_date', 'po_number', 'subtotal', 'tax', 'total', 'vendor')
ITEM_FIELDS = ('description', 'quantity', 'unit_price', 'line_total', 'sku', 'uom')


class VendorAdapter(ParserPlugin):
    """
    Keyword-matched wrapper around a vendor parse function.

    Args:
        vendor_id: Short vendor name, used to build the plugin id.
        keywords: Any of these in the first 80 lines scores 80.
        lexicon: Any of these product words in the first 80 lines adds 15.
        parse_fn: Callable taking a NormalizedInput and returning either a
            ParseAttemptResult or a dict with draft fields and a
            `line_items` list of dicts.
        confidence: Confidence reported for the vendor's output, 0-100.

    Example:
        >>> adapter = VendorAdapter(
        ...     "acme", keywords=["acme supply"], lexicon=["gasket"],
        ...     parse_fn=my_acme_parser,
        ... )
        >>> registry.register(adapter)
    """

    version = "1.0.0"

    def __init__(
        self,
        vendor_id: str,
        keywords: Sequence[str],
        parse_fn: VendorParseFn,
        lexicon: Optional[Sequence[str]] = None,
        confidence: float = 90.0,
        version: Optional[str] = None
    ) -> None:
        self.vendor_id = vendor_id
        self.plugin_id = f"{vendor_id}-adapter"
        self.keywords = [k.lower() for k in keywords]
        self.lexicon = [w.lower() for w in (lexicon or [])]
        self.parse_fn = parse_fn
        self.confidence = confidence
        if version:
            self.version = version

    def match(self, document: NormalizedInput) -> MatchResult:
        top = " ".join(document.lines[:80]).lower()
        score = 0
        reasons: List[str] = []

        if any(keyword in top for keyword in self.keywords):
            score += 80
            reasons.append(f"{self.vendor_id}Keyword")
        if any(word in top for word in self.lexicon):
            score += 15
            reasons.append(f"{self.vendor_id}ProductLexicon")

        return MatchResult(score=min(100, score), reasons=reasons)

    def parse(self, document: NormalizedInput) -> ParseAttemptResult:
        output = self.parse_fn(document)
        if isinstance(output, ParseAttemptResult):
            return output
        return self._from_mapping(output or {})

    def _from_mapping(self, output: Dict[str, Any]) -> ParseAttemptResult:
        draft = InvoiceDraft(**{name: output.get(name) for name in DRAFT_FIELDS})
        if draft.vendor is None:
            draft.vendor = self.vendor_id

        items = [
            LineItem(**{name: raw.get(name) for name in ITEM_FIELDS if name in raw})
            for raw in output.get('line_items') or []
            if raw.get('description') is not None
        ]

        return ParseAttemptResult(
            draft=draft,
            line_items=items,
            confidence=self.confidence,
            evidence=dict(output.get('evidence') or {}),
        )
