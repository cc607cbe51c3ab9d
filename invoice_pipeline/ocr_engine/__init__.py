"""
OCR Engine Module for the Invoice Extraction Pipeline.

This module provides:
    - Resolution of the external OCR toolchain (tesseract, Poppler)
    - PDF page rendering and parallel page OCR
    - Multi-variant image OCR with text scoring

Author: ML Engineering Team
"""

from .binaries import ResolvedBinaries, find_binary, resolve_binaries
from .engine import OCREngine, score_ocr_text
from .ocr_result import OCRRunResult, PageResult, VariantResult, VariantRunResult
from .tesseract_backend import TesseractBackend

__all__ = [
    'ResolvedBinaries',
    'find_binary',
    'resolve_binaries',
    'OCREngine',
    'score_ocr_text',
    'OCRRunResult',
    'PageResult',
    'VariantResult',
    'VariantRunResult',
    'TesseractBackend',
]
