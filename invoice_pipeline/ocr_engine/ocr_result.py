"""
OCR Result Data Classes.

This module defines data structures for OCR output.

Classes:
    PageResult: Text of one rendered PDF page
    OCRRunResult: Reassembled output of one PDF OCR run
    VariantResult: Text and score of one image variant
    VariantRunResult: Best variant of one image OCR run

Author: ML Engineering Team
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class PageResult:
    """
    OCR output for a single page.

    Attributes:
        page: 1-based page number
        text: Recognized text, empty when the page failed
        error: Failure note, None on success
        elapsed: Seconds spent on the page
    """
    page: int
    text: str = ""
    error: Optional[str] = None
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'page': self.page,
            'chars': len(self.text),
            'error': self.error,
            'elapsed': round(self.elapsed, 3),
        }


@dataclass
class OCRRunResult:
    """
    Complete OCR output for one PDF.

    Attributes:
        text: Page texts joined in page order and trimmed
        pages: PageResult per rendered page, in page order
        temp_dir: Working directory of the run
        kept_temp: Whether temp_dir was left on disk
        elapsed: Seconds for render and OCR together

    Example:
        >>> result = engine.ocr_pdf(pdf_bytes, options)
        >>> print(f"{result.page_count} pages, {len(result.errors)} failed")
    """
    text: str = ""
    pages: List[PageResult] = field(default_factory=list)
    temp_dir: Optional[str] = None
    kept_temp: bool = False
    elapsed: float = 0.0

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def errors(self) -> List[str]:
        return [f"page {p.page}: {p.error}" for p in self.pages if p.error]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'page_count': self.page_count,
            'text_length': len(self.text),
            'pages': [p.to_dict() for p in self.pages],
            'errors': self.errors,
            'temp_dir': self.temp_dir if self.kept_temp else None,
            'elapsed': round(self.elapsed, 3),
        }

    def __repr__(self) -> str:
        return (
            f"OCRRunResult(pages={self.page_count}, "
            f"chars={len(self.text)}, "
            f"errors={len(self.errors)})"
        )


@dataclass
class VariantResult:
    """OCR output for one preprocessed image variant."""
    name: str
    text: str = ""
    confidence: float = 0.0
    score: float = 0.0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'chars': len(self.text),
            'confidence': round(self.confidence, 2),
            'score': round(self.score, 4),
            'error': self.error,
        }


@dataclass
class VariantRunResult:
    """
    Outcome of OCR over the variants of one image.

    Attributes:
        text: Text of the best variant
        best_variant: Name of the best variant, None if all failed
        score: Score of the best variant
        attempts: Every variant tried, in order
        early_exit: Whether the loop stopped on a good enough score
    """
    text: str = ""
    best_variant: Optional[str] = None
    score: float = 0.0
    attempts: List[VariantResult] = field(default_factory=list)
    early_exit: bool = False

    @property
    def confidence(self) -> float:
        for attempt in self.attempts:
            if attempt.name == self.best_variant:
                return attempt.confidence
        return 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'best_variant': self.best_variant,
            'score': round(self.score, 4),
            'early_exit': self.early_exit,
            'attempts': [a.to_dict() for a in self.attempts],
        }
