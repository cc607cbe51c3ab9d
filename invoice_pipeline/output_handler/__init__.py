"""
Output Handler Module for the Invoice Extraction Pipeline.

This module provides:
    - The unified result contract and its status classification
    - JSON export of results

Author: ML Engineering Team
"""

from .handler import OutputHandler
from .unified_result import (
    STATUSES,
    STATUS_CANONICAL_VALID,
    STATUS_EXTRACTED_ONLY,
    STATUS_NO_ITEMS,
    STATUS_PARSE_ERROR,
    UnifiedResult,
    build_unified_result,
    derive_status,
    error_payload,
)

__all__ = [
    'OutputHandler',
    'STATUSES',
    'STATUS_CANONICAL_VALID',
    'STATUS_EXTRACTED_ONLY',
    'STATUS_NO_ITEMS',
    'STATUS_PARSE_ERROR',
    'UnifiedResult',
    'build_unified_result',
    'derive_status',
    'error_payload',
]
