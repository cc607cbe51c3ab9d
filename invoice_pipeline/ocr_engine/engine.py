"""
Main OCR Engine Module.

This module provides the OCREngine class, the single entry point for
turning rendered pages and image variants into text.

    - PDFs are rendered page by page with Poppler (pdf2image) into a
      private temp directory, then OCR'd by a bounded thread pool.
    - Images arrive as preprocessed variants; each is OCR'd in order and
      the best scoring text wins.

Usage:
    from invoice_pipeline.ocr_engine import OCREngine

    engine = OCREngine.from_config(config)
    result = engine.ocr_pdf(pdf_bytes, options)
    print(result.text)

Author: ML Engineering Team
"""

import os
import re
import tempfile
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, List, Optional, Sequence

from pdf2image import convert_from_path
from pdf2image.exceptions import (
    PDFInfoNotInstalledError,
    PDFPageCountError,
    PDFPopplerTimeoutError,
    PDFSyntaxError,
)
from PIL import Image

from ..input_handler.handler import PipelineOptions
from ..input_handler.image_processor import ImageVariant
from ..utils.exceptions import PageOCRError, RenderFailureError
from ..utils.helpers import clamp, ensure_directory, remove_directory
from ..utils.logger import get_logger
from .binaries import DEFAULT_FALLBACK_DIRS, ResolvedBinaries, resolve_binaries
from .ocr_result import OCRRunResult, PageResult, VariantResult, VariantRunResult
from .tesseract_backend import TesseractBackend

logger = get_logger(__name__)


# =============================================================================
# TEXT SCORING
# =============================================================================

INVOICE_KEYWORDS = (
    'invoice', 'total', 'subtotal', 'tax', 'amount', 'due', 'qty', 'quantity',
    'price', 'unit', 'description', 'item', 'date', 'bill', 'payment',
    'ship', 'address', 'po', 'order', 'receipt', 'balance', 'net', 'gross',
)

OCR_PRICE_PATTERN = re.compile(r'\$?\d{1,3}(?:,\d{3})*(?:\.\d{2})?')
OCR_DATE_PATTERN = re.compile(r'\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4}')
REPEATED_CHAR_PATTERN = re.compile(r'(.)\1{4,}')


def score_ocr_text(text: str, confidence: float = 0.0) -> float:
    """
    Score OCR output by how much it looks like an invoice.

    Args:
        text: Recognized text.
        confidence: Engine confidence in [0, 1].

    Returns:
        Score in [0, 1]. Text shorter than 10 characters scores 0.

    Example:
        >>> score_ocr_text("")
        0.0
    """
    if not text or len(text) < 10:
        return 0.0

    score = clamp(confidence) * 0.3

    lower_text = text.lower()
    keyword_count = sum(1 for keyword in INVOICE_KEYWORDS if keyword in lower_text)
    score += min(keyword_count / 8, 0.25)

    prices = OCR_PRICE_PATTERN.findall(text)
    score += min(len(prices) / 10, 0.2)

    dates = OCR_DATE_PATTERN.findall(text)
    score += min(len(dates) / 3, 0.1)

    alphanumeric = sum(1 for c in text if c.isascii() and c.isalnum())
    if alphanumeric / len(text) < 0.4:
        score -= 0.2

    if len(text) < 100:
        score -= 0.1
    elif len(text) > 500:
        score += 0.05

    # Runs of 5+ identical characters are scanner or OCR artifacts
    score -= len(REPEATED_CHAR_PATTERN.findall(text)) * 0.05

    return clamp(score)


# =============================================================================
# ENGINE
# =============================================================================

class OCREngine:
    """
    Render-and-recognize engine over Poppler and Tesseract.

    Binaries are resolved at construction, so building an engine is the
    point where a missing toolchain is reported.

    Attributes:
        binaries: Resolved tesseract / pdftoppm / pdfinfo paths
        backend: TesseractBackend bound to the resolved tesseract
        render_timeout: Seconds allowed for rendering all pages
        page_timeout: Seconds allowed per page OCR call
        variant_timeout: Seconds allowed per image variant OCR call
        early_exit_score: Variant score that stops further attempts

    Example:
        >>> engine = OCREngine()
        >>> run = engine.ocr_pdf(pdf_bytes, PipelineOptions(max_pages=2))
        >>> run.page_count
        2
    """

    def __init__(
        self,
        binaries: Optional[ResolvedBinaries] = None,
        psm: int = 6,
        render_timeout: float = 120,
        page_timeout: float = 60,
        variant_timeout: float = 30,
        early_exit_score: float = 0.85,
        tesseract_name: str = 'tesseract',
        pdftoppm_name: str = 'pdftoppm',
        fallback_dirs: Sequence[str] = DEFAULT_FALLBACK_DIRS
    ) -> None:
        self.binaries = binaries or resolve_binaries(tesseract_name, pdftoppm_name, fallback_dirs)
        self.backend = TesseractBackend(self.binaries.tesseract, psm=psm)
        self.render_timeout = render_timeout
        self.page_timeout = page_timeout
        self.variant_timeout = variant_timeout
        self.early_exit_score = early_exit_score

        logger.info(
            f"OCR Engine initialized (psm={psm}, render_timeout={render_timeout}s, "
            f"page_timeout={page_timeout}s)"
        )

    @classmethod
    def from_config(cls, config: Any, binaries: Optional[ResolvedBinaries] = None) -> 'OCREngine':
        """
        Build an engine from the `ocr.*` section of a ConfigurationManager.
        """
        return cls(
            binaries=binaries,
            psm=config.get("ocr.psm", 6),
            render_timeout=config.get("ocr.render_timeout", 120),
            page_timeout=config.get("ocr.page_timeout", 60),
            variant_timeout=config.get("ocr.variant_timeout", 30),
            early_exit_score=config.get("ocr.early_exit_score", 0.85),
            tesseract_name=config.get("ocr.binaries.tesseract", "tesseract"),
            pdftoppm_name=config.get("ocr.binaries.pdftoppm", "pdftoppm"),
            fallback_dirs=config.get("ocr.fallback_dirs", DEFAULT_FALLBACK_DIRS),
        )

    # =========================================================================
    # PDF PATH
    # =========================================================================

    def ocr_pdf(self, pdf_bytes: bytes, options: Optional[PipelineOptions] = None) -> OCRRunResult:
        """
        Render the first pages of a PDF and OCR them in parallel.

        The run's temp directory is removed on every exit path unless
        `options.keep_temp` is set.

        Args:
            pdf_bytes: The PDF payload.
            options: Per-run options.

        Returns:
            OCRRunResult with page texts in page order.

        Raises:
            RenderFailureError: If Poppler fails or times out.
        """
        options = options or PipelineOptions()
        start_time = time.time()

        if options.tmp_dir:
            ensure_directory(options.tmp_dir)
        work_dir = tempfile.mkdtemp(prefix="ocr-", dir=options.tmp_dir)
        logger.debug(f"OCR run directory: {work_dir}")

        try:
            pdf_path = os.path.join(work_dir, "input.pdf")
            with open(pdf_path, 'wb') as f:
                f.write(pdf_bytes)

            page_paths = self._render_pages(pdf_path, work_dir, options)
            pages = self._ocr_pages(page_paths, options)
        finally:
            if options.keep_temp:
                logger.info(f"Keeping OCR temp directory: {work_dir}")
            else:
                remove_directory(work_dir)

        result = OCRRunResult(
            text="\n".join(page.text for page in pages).strip(),
            pages=pages,
            temp_dir=work_dir,
            kept_temp=options.keep_temp,
            elapsed=time.time() - start_time,
        )

        logger.info(
            f"PDF OCR completed: {result.page_count} page(s), {len(result.text)} chars, "
            f"{len(result.errors)} page error(s) ({result.elapsed:.2f}s)"
        )
        return result

    def _render_pages(self, pdf_path: str, work_dir: str, options: PipelineOptions) -> List[str]:
        grayscale = options.render_mode == 'gray'
        try:
            paths = convert_from_path(
                pdf_path,
                dpi=options.dpi,
                first_page=1,
                last_page=options.max_pages,
                fmt='ppm' if grayscale else 'png',
                grayscale=grayscale,
                output_folder=work_dir,
                paths_only=True,
                poppler_path=self.binaries.poppler_path,
                timeout=self.render_timeout,
            )
        except PDFPopplerTimeoutError as e:
            logger.error(f"PDF render timed out after {self.render_timeout}s")
            raise RenderFailureError(str(e) or "render timed out", timed_out=True)
        except (PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError, OSError, ValueError) as e:
            logger.error(f"PDF render failed: {e}")
            raise RenderFailureError(str(e))

        if not paths:
            raise RenderFailureError("renderer produced no pages")

        logger.debug(f"Rendered {len(paths)} page(s) at {options.dpi} dpi ({options.render_mode})")
        return list(paths)

    def _ocr_page(self, page: int, path: str, lang: str) -> PageResult:
        start_time = time.time()
        with Image.open(path) as image:
            text = self.backend.get_raw_text(
                image,
                lang=lang,
                timeout=self.page_timeout,
                label=f"page {page}"
            )
        return PageResult(page=page, text=text, elapsed=time.time() - start_time)

    def _ocr_pages(self, page_paths: List[str], options: PipelineOptions) -> List[PageResult]:
        results: Dict[int, PageResult] = {}

        with ThreadPoolExecutor(max_workers=options.concurrency) as executor:
            future_to_page = {
                executor.submit(self._ocr_page, page, path, options.lang): page
                for page, path in enumerate(page_paths, start=1)
            }

            for future in as_completed(future_to_page):
                page = future_to_page[future]
                try:
                    results[page] = future.result()
                except PageOCRError as e:
                    results[page] = PageResult(page=page, error=e.details.get('reason') or str(e))
                except Exception as e:
                    # Any single page failure is recorded; the run continues.
                    logger.warning(f"Could not OCR rendered page {page}: {e}")
                    results[page] = PageResult(page=page, error=str(e))

        return [results[page] for page in sorted(results)]

    # =========================================================================
    # IMAGE PATH
    # =========================================================================

    def ocr_variants(
        self,
        variants: Sequence[ImageVariant],
        options: Optional[PipelineOptions] = None
    ) -> VariantRunResult:
        """
        OCR image variants in order and keep the best scoring text.

        Stops as soon as a variant scores at least `early_exit_score`.
        A failed variant is recorded and skipped.
        """
        options = options or PipelineOptions()
        run = VariantRunResult()

        for variant in variants:
            try:
                text, confidence = self.backend.extract_with_confidence(
                    variant.image,
                    lang=options.lang,
                    timeout=self.variant_timeout,
                    label=f"variant {variant.name}"
                )
            except PageOCRError as e:
                run.attempts.append(VariantResult(variant.name, error=e.details.get('reason') or str(e)))
                continue

            score = score_ocr_text(text, confidence / 100.0)
            run.attempts.append(VariantResult(variant.name, text, confidence, score))
            logger.debug(f"Variant {variant.name}: score={score:.2f} confidence={confidence:.1f}")

            if run.best_variant is None or score > run.score:
                run.text, run.best_variant, run.score = text, variant.name, score

            if score >= self.early_exit_score:
                run.early_exit = True
                logger.debug(f"Early exit on variant {variant.name} (score {score:.2f})")
                break

        logger.info(
            f"Image OCR completed: best={run.best_variant} score={run.score:.2f} "
            f"after {len(run.attempts)} variant(s)"
        )
        return run
