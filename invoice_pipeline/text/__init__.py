"""
Text Module for the Invoice Extraction Pipeline.

This module handles:
    - Text normalization
    - Money token parsing
    - Header and totals anchors
    - Date normalization
"""

from .normalizer import NormalizedInput, normalize_text
from .money import LineEndMoney, parse_money_token, find_line_end_money, find_prices
from .anchors import (
    TotalsBlock,
    find_invoice_number,
    find_po_number,
    find_invoice_date,
    find_totals,
    find_label_lines,
)
from .dates import DateNormalizer

__all__ = [
    'NormalizedInput',
    'normalize_text',
    'LineEndMoney',
    'parse_money_token',
    'find_line_end_money',
    'find_prices',
    'TotalsBlock',
    'find_invoice_number',
    'find_po_number',
    'find_invoice_date',
    'find_totals',
    'find_label_lines',
    'DateNormalizer',
]
