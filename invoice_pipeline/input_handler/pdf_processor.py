"""
PDF Processor Module.

This module reads the embedded text layer of digital PDFs with pdfplumber
and decides whether that text is good enough to skip OCR. Rendering of
scanned PDFs lives in the OCR engine.

Author: ML Engineering Team
"""

import io
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List

import pdfplumber

from ..utils.helpers import clamp
from ..utils.logger import get_logger

logger = get_logger(__name__)

INVOICE_KEYWORDS = re.compile(
    r'\b(invoice|total|subtotal|amount|qty|quantity|price|due|bill|tax|date)\b',
    re.IGNORECASE,
)
MONEY_TOKEN = re.compile(r'\$?\d[\d,]*\.\d{2}\b')


@dataclass
class TextLayer:
    """
    Text extracted from a PDF's embedded text layer.

    Attributes:
        text: Page texts joined with newlines
        page_count: Pages in the document
        pages_read: Pages actually read
        errors: Non-fatal extraction problems
    """
    text: str = ""
    page_count: int = 0
    pages_read: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'text_length': len(self.text),
            'page_count': self.page_count,
            'pages_read': self.pages_read,
            'errors': self.errors,
        }


@dataclass
class OCRDecision:
    """Whether a PDF needs OCR, and why."""
    use_ocr: bool
    reason: str
    text_chars: int = 0
    text_quality: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'use_ocr': self.use_ocr,
            'reason': self.reason,
            'text_chars': self.text_chars,
            'text_quality': round(self.text_quality, 4),
        }


def assess_text_quality(text: str) -> float:
    """
    Score extracted text in [0, 1].

    Rewards printable alphanumeric content, invoice vocabulary and money
    tokens; text made mostly of symbols or replacement characters scores low.

    Example:
        >>> assess_text_quality("")
        0.0
    """
    if not text or not text.strip():
        return 0.0

    stripped = re.sub(r'\s', '', text)
    if not stripped:
        return 0.0

    alnum_ratio = sum(1 for c in stripped if c.isalnum()) / len(stripped)
    garbage_ratio = sum(1 for c in stripped if c == '�' or not c.isprintable()) / len(stripped)

    keyword_hits = len(INVOICE_KEYWORDS.findall(text))
    money_hits = len(MONEY_TOKEN.findall(text))

    score = 0.5 * alnum_ratio
    score += min(keyword_hits / 5.0, 1.0) * 0.3
    score += min(money_hits / 3.0, 1.0) * 0.2
    score -= garbage_ratio
    return clamp(score)


class PDFProcessor:
    """
    Reader for the text layer of digital PDFs.

    Attributes:
        min_text_chars: Below this length the text layer is ignored
        min_text_quality: Below this quality the text layer is ignored

    Example:
        >>> processor = PDFProcessor()
        >>> layer = processor.extract_text_layer(pdf_bytes, max_pages=3)
        >>> processor.decide_ocr(layer.text).use_ocr
        False
    """

    def __init__(self, min_text_chars: int = 200, min_text_quality: float = 0.5) -> None:
        self.min_text_chars = min_text_chars
        self.min_text_quality = min_text_quality

        logger.debug(
            f"PDFProcessor initialized (min_text_chars={min_text_chars}, "
            f"min_text_quality={min_text_quality})"
        )

    def extract_text_layer(self, data: bytes, max_pages: int = 3) -> TextLayer:
        """
        Read the embedded text of the first `max_pages` pages.

        Never raises: an unreadable PDF yields an empty layer with an
        error note, which then routes the document to OCR.
        """
        layer = TextLayer()

        try:
            with pdfplumber.open(io.BytesIO(data)) as pdf:
                layer.page_count = len(pdf.pages)
                texts = []
                for page in pdf.pages[:max_pages]:
                    try:
                        texts.append(page.extract_text() or "")
                    except Exception as e:
                        logger.debug(f"Text extraction failed on page {page.page_number}: {e}")
                        layer.errors.append(f"page {page.page_number}: {e}")
                        texts.append("")
                    layer.pages_read += 1
                layer.text = "\n".join(texts).strip()
        except Exception as e:
            logger.debug(f"Could not read PDF text layer: {e}")
            layer.errors.append(str(e))

        logger.debug(
            f"Text layer: {len(layer.text)} chars from {layer.pages_read}/{layer.page_count} page(s)"
        )
        return layer

    def decide_ocr(self, text: str) -> OCRDecision:
        """
        Decide whether the text layer is usable or pages must be OCR'd.
        """
        chars = len((text or "").strip())
        quality = assess_text_quality(text)

        if chars < self.min_text_chars:
            decision = OCRDecision(True, "text_layer_too_short", chars, quality)
        elif quality < self.min_text_quality:
            decision = OCRDecision(True, "text_layer_low_quality", chars, quality)
        else:
            decision = OCRDecision(False, "text_layer_ok", chars, quality)

        logger.info(
            f"OCR decision: use_ocr={decision.use_ocr} ({decision.reason}, "
            f"{chars} chars, quality {quality:.2f})"
        )
        return decision
