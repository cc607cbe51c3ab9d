"""
Invoice Extraction Pipeline - Source Package.

This package turns raw invoice artifacts (scanned images, photographed
receipts, digital or scanned PDFs, plain text) into header fields and
line items with a confidence signal and a deterministic status.

Modules:
    - text: Normalization, money tokens, anchors, dates
    - input_handler: Source detection, PDF text layer, image quality and variants
    - ocr_engine: Poppler rendering and Tesseract recognition
    - parsers: Layout plugins, registry and selection
    - postprocessor: Scan guardrail and arithmetic checks
    - output_handler: Unified result and JSON export

Architecture:
    Input → OCR → Normalize → Parser Selection → Guardrail → Unified Result
"""

__version__ = "1.0.0"
__author__ = "ML Engineering Team"

from .input_handler import PipelineOptions, RawDocument
from .output_handler import UnifiedResult
from .pipeline import InvoicePipeline

__all__ = [
    'InvoicePipeline',
    'PipelineOptions',
    'RawDocument',
    'UnifiedResult',
    'input_handler',
    'ocr_engine',
    'parsers',
    'postprocessor',
    'output_handler',
    'text',
    'utils',
]
