"""
Post-processing Module for the Invoice Extraction Pipeline.

This module handles:
    - Scan coverage guardrail and extended scanning
    - Invoice total cross-validation
    - Line item arithmetic and totals reconciliation
"""

from .guardrail import (
    DocumentScanGuardrail,
    ExtendedScan,
    GuardrailReport,
    ReviewDecision,
    ScanCompleteness,
    TotalValidation,
)
from .validators import LineItemValidator, TotalsValidator, ValidationResult

__all__ = [
    'DocumentScanGuardrail',
    'ExtendedScan',
    'GuardrailReport',
    'ReviewDecision',
    'ScanCompleteness',
    'TotalValidation',
    'LineItemValidator',
    'TotalsValidator',
    'ValidationResult',
]
