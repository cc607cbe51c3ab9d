"""
Parsers Module for the Invoice Extraction Pipeline.

This module handles:
    - The parser plugin contract
    - The ordered plugin registry
    - Candidate selection with fallback
    - The general-purpose layout plugins
"""

from .base import (
    InvoiceDraft,
    LineItem,
    MatchResult,
    ParseAttemptResult,
    ParserPlugin,
    ScanInfo,
)
from .registry import ParseCandidate, ParserRegistry, default_plugins, normalize_score
from .selector import ParseOutcome, ParserSelector, SelectionResult, ValidationOutcome
from .column_table import ColumnTableParser
from .wrapped_generic import WrappedGenericParser
from .receipt import ReceiptParser
from .statement_line import StatementLineParser
from .vendor_adapter import VendorAdapter

__all__ = [
    'InvoiceDraft',
    'LineItem',
    'MatchResult',
    'ParseAttemptResult',
    'ParserPlugin',
    'ScanInfo',
    'ParseCandidate',
    'ParserRegistry',
    'default_plugins',
    'normalize_score',
    'ParseOutcome',
    'ParserSelector',
    'SelectionResult',
    'ValidationOutcome',
    'ColumnTableParser',
    'WrappedGenericParser',
    'ReceiptParser',
    'StatementLineParser',
    'VendorAdapter',
]
