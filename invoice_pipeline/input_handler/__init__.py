"""
Input Handler Module for the Invoice Extraction Pipeline.

This module provides functionality for:
    - Detecting source types from magic bytes and extensions
    - Loading and validating input files
    - Reading the text layer of digital PDFs
    - Image quality assessment and OCR variant generation

Supported formats:
    - PDF (digital and scanned)
    - Images: JPG, JPEG, PNG, TIFF, BMP, GIF, WEBP, HEIC, HEIF
    - Plain text

Author: ML Engineering Team
"""

from .handler import InputHandler, PipelineOptions, RawDocument
from .image_processor import ImageProcessor, ImageVariant, QualityAssessment, overall_quality
from .pdf_processor import OCRDecision, PDFProcessor, TextLayer, assess_text_quality

__all__ = [
    'InputHandler',
    'PipelineOptions',
    'RawDocument',
    'ImageProcessor',
    'ImageVariant',
    'QualityAssessment',
    'overall_quality',
    'OCRDecision',
    'PDFProcessor',
    'TextLayer',
    'assess_text_quality',
]
