"""
Invoice Pipeline Module.

This module provides the InvoicePipeline class that runs one invoice
artifact through every stage and always returns a UnifiedResult:

    Input → (text layer | image variants | page OCR) → Normalize
          → Parser selection → Scan guardrail → Unified result

Usage:
    from invoice_pipeline import InvoicePipeline

    with InvoicePipeline() as pipeline:
        result = pipeline.process_file("invoice.pdf")
        print(result.status)

Author: ML Engineering Team
"""

import time
import traceback
import uuid
from dataclasses import fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from config import ConfigurationManager

from . import __version__
from .input_handler import ImageProcessor, InputHandler, PDFProcessor, PipelineOptions, RawDocument
from .ocr_engine import OCREngine
from .output_handler import UnifiedResult, build_unified_result, error_payload
from .parsers import ParseAttemptResult, ParserRegistry, ParserSelector, SelectionResult, default_plugins
from .parsers.selector import CanonicalBuilder, CanonicalValidator, build_and_validate
from .postprocessor import DocumentScanGuardrail, GuardrailReport, TotalsValidator
from .text import DateNormalizer, NormalizedInput
from .utils.exceptions import InvoicePipelineError
from .utils.logger import get_logger, run_logger

logger = get_logger(__name__)

OptionsLike = Union[PipelineOptions, Dict[str, Any], None]
DocumentLike = Union[RawDocument, str, bytes]


class InvoicePipeline:
    """
    End-to-end extraction for one invoice at a time.

    Each instance owns its configuration, plugin registry and OCR engine;
    nothing is shared between instances. The OCR engine is built by
    start(), which is where a missing tesseract or Poppler is reported.
    Plain text documents can be processed without starting.

    Args:
        config: ConfigurationManager; the packaged defaults when omitted.
        registry: Parser plugins; the general-purpose set when omitted.
        build_canonical: Optional collaborator building a canonical invoice
            from a draft dict.
        validate: Optional collaborator returning {ok, errors}.
        ocr_engine: Prebuilt OCR engine, mainly for tests.

    Example:
        >>> pipeline = InvoicePipeline()
        >>> result = pipeline.process(RawDocument.from_text(text))
        >>> result.to_dict()['status']
        'extracted_only'
    """

    def __init__(
        self,
        config: Optional[ConfigurationManager] = None,
        registry: Optional[ParserRegistry] = None,
        build_canonical: Optional[CanonicalBuilder] = None,
        validate: Optional[CanonicalValidator] = None,
        ocr_engine: Optional[OCREngine] = None
    ) -> None:
        self.config = config or ConfigurationManager()
        self.version = str(self.config.get("project.version", __version__))

        self.registry = registry or ParserRegistry(
            default_plugins(self.config.get("parsing.max_items", 400)),
            max_workers=self.config.get("parsing.match_workers", 4),
        )
        self.build_canonical = build_canonical
        self.validate = validate

        self.selector = ParserSelector(
            self.registry,
            top_n=self.config.get("parsing.top_n", 3),
            min_items=self.config.get("parsing.min_items", 1),
            build_canonical=build_canonical,
            validate=validate,
        )

        self.input_handler = InputHandler(self.config.get("input.max_file_size_mb", 25))
        self.image_processor = ImageProcessor(
            target_long_edge=self.config.get("input.image.target_long_edge", 2800),
            min_long_edge=self.config.get("input.image.min_long_edge", 800),
            max_long_edge=self.config.get("input.image.max_long_edge", 4000),
            receipt_threshold=self.config.get("input.image.receipt_threshold", 140),
            sharpen_blur_threshold=self.config.get("input.image.sharpen_blur_threshold", 0.3),
        )
        self.pdf_processor = PDFProcessor(
            min_text_chars=self.config.get("pdf.min_text_chars", 200),
            min_text_quality=self.config.get("pdf.min_text_quality", 0.5),
        )

        self.guardrail: Optional[DocumentScanGuardrail] = None
        if self.config.get("guardrail.enabled", True):
            self.guardrail = DocumentScanGuardrail(
                completeness_threshold=self.config.get("guardrail.completeness_threshold", 70),
                min_description_length=self.config.get("guardrail.min_description_length", 3),
                review_min_confidence=self.config.get("guardrail.review.min_confidence", 70),
                review_min_math_ratio=self.config.get("guardrail.review.min_math_ratio", 0.5),
                review_max_subtotals=self.config.get("guardrail.review.max_subtotals", 2),
            )
        self.totals_validator = TotalsValidator()
        self.date_normalizer = DateNormalizer()
        self.preview_chars = self.config.get("output.preview_chars", 2000)

        self._ocr_engine = ocr_engine
        self._owns_engine = ocr_engine is None

        logger.info(
            f"InvoicePipeline initialized with {len(self.registry)} parser(s) "
            f"(validation={'on' if self.selector.validates else 'off'})"
        )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def started(self) -> bool:
        return self._ocr_engine is not None

    def start(self) -> 'InvoicePipeline':
        """
        Build the OCR engine.

        Raises:
            BinaryMissingError: If tesseract, pdftoppm or pdfinfo is missing.
        """
        if self._ocr_engine is None:
            self._ocr_engine = OCREngine.from_config(self.config)
            self._owns_engine = True
        logger.info("InvoicePipeline started")
        return self

    def stop(self) -> None:
        if self._owns_engine:
            self._ocr_engine = None
        logger.info("InvoicePipeline stopped")

    def __enter__(self) -> 'InvoicePipeline':
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def _require_engine(self) -> OCREngine:
        if self._ocr_engine is None:
            raise InvoicePipelineError("Pipeline not started; call start() before OCR")
        return self._ocr_engine

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    def option_defaults(self) -> Dict[str, Any]:
        """Per-run option defaults from the `ocr` config section."""
        defaults = {}
        for option in fields(PipelineOptions):
            value = self.config.get(f"ocr.{option.name}")
            if value is not None:
                defaults[option.name] = value
        return defaults

    def process_file(self, filepath: Union[str, Path], options: OptionsLike = None,
                     source_type: Optional[str] = None) -> UnifiedResult:
        """
        Load a file and process it. Never raises.
        """
        run_id = str(uuid.uuid4())
        try:
            document = self.input_handler.load(filepath, source_type=source_type)
        except Exception as e:
            logger.error(f"Could not load {filepath}: {e}")
            return build_unified_result(
                source_type=source_type or 'unknown',
                version=self.version,
                meta={'filename': Path(filepath).name},
                error=error_payload(e, traceback.format_exc()),
                run_id=run_id,
                preview_chars=self.preview_chars,
            )
        return self.process(document, options, run_id=run_id)

    def process(self, document: DocumentLike, options: OptionsLike = None,
                run_id: Optional[str] = None) -> UnifiedResult:
        """
        Run one document through the pipeline.

        Never raises: any failure becomes a parse_error result carrying the
        message and traceback. Temp directories are cleaned up before the
        result is built.

        Args:
            document: RawDocument, plain text, or raw bytes.
            options: PipelineOptions or a dict (snake_case or camelCase).
            run_id: Optional id for the run; generated when omitted.

        Returns:
            UnifiedResult.
        """
        run_id = run_id or str(uuid.uuid4())
        log = run_logger(logger, run_id)
        start_time = time.time()
        state: Dict[str, Any] = {
            'source_type': getattr(document, 'source_type', None) or 'unknown',
            'raw_text': "",
            'meta': {},
            'artifacts': {},
            'debug': {
                'parserUsed': 'none',
                'parsedItemsCount': 0,
                'usedOcr': False,
                'textLength': 0,
                'parserCandidates': [],
                'ocrDecision': None,
                'guardrail': None,
            },
        }

        try:
            result = self._run(document, options, run_id, state)
        except Exception as e:
            log.error(f"Failed: {e}")
            log.debug(traceback.format_exc())
            result = build_unified_result(
                source_type=state['source_type'],
                version=self.version,
                raw_text=state['raw_text'],
                meta=state['meta'],
                debug=state['debug'],
                artifacts=state['artifacts'],
                error=error_payload(e, traceback.format_exc()),
                run_id=run_id,
                preview_chars=self.preview_chars,
            )

        log.info(
            f"Finished: status={result.status}, items={len(result.items)} "
            f"({time.time() - start_time:.2f}s)"
        )
        return result

    # =========================================================================
    # STAGES
    # =========================================================================

    def _coerce(self, document: DocumentLike) -> RawDocument:
        if isinstance(document, RawDocument):
            return document
        if isinstance(document, str):
            return RawDocument.from_text(document)
        if isinstance(document, (bytes, bytearray)):
            return self.input_handler.from_bytes(bytes(document))
        raise TypeError(f"Unsupported document type: {type(document).__name__}")

    def _run(
        self,
        document: DocumentLike,
        options: OptionsLike,
        run_id: str,
        state: Dict[str, Any]
    ) -> UnifiedResult:
        opts = PipelineOptions.from_dict(options, self.option_defaults())
        raw = self._coerce(document)
        state['source_type'] = raw.source_type
        state['meta'].update(raw.metadata)
        if raw.filename:
            state['meta']['filename'] = raw.filename

        run_logger(logger, run_id).info(f"Processing {raw!r}")

        text = self._acquire_text(raw, opts, state)
        normalized = NormalizedInput.from_raw(text, raw.source_type, state['meta'])
        state['raw_text'] = normalized.text
        state['debug']['textLength'] = len(normalized.text)

        selection = self.selector.select(normalized)
        debug = state['debug']
        debug['parserUsed'] = selection.parser_used
        debug['parserCandidates'] = selection.candidates
        debug['selection'] = selection.summary

        items = list(selection.items)
        validation = selection.validation
        canonical = validation.canonical if validation is not None and validation.valid else None

        attempt = selection.attempt
        if attempt is not None:
            state['meta']['draft'] = self._draft_meta(attempt)
            final_items, final_draft = attempt.valid_items, attempt.draft

            if self.guardrail is not None:
                report = self.guardrail.apply(attempt, normalized.lines)
                debug['guardrail'] = report.to_dict()
                items, validation, canonical = self._apply_guardrail(
                    selection, report, items, validation, canonical
                )
                final_items = report.items
                final_draft = replace(attempt.draft, total=report.total)
                state['meta']['draft']['total'] = report.total

            reconciliation = self.totals_validator.validate(final_items, final_draft)
            state['meta']['totals_check'] = reconciliation.to_dict()

        debug['parsedItemsCount'] = len(items)

        return build_unified_result(
            source_type=raw.source_type,
            version=self.version,
            items=items,
            raw_text=normalized.text,
            canonical=canonical,
            validation=validation.to_dict(attempted=True) if validation is not None else None,
            meta=state['meta'],
            debug=debug,
            artifacts=state['artifacts'],
            run_id=run_id,
            preview_chars=self.preview_chars,
        )

    def _acquire_text(self, raw: RawDocument, opts: PipelineOptions, state: Dict[str, Any]) -> str:
        debug = state['debug']
        meta = state['meta']

        if raw.source_type == 'text':
            debug['ocrDecision'] = {'use_ocr': False, 'reason': 'text_input'}
            return raw.text or ""

        if raw.source_type == 'pdf':
            layer = self.pdf_processor.extract_text_layer(raw.data, max_pages=opts.max_pages)
            meta['text_layer'] = layer.to_dict()
            decision = self.pdf_processor.decide_ocr(layer.text)
            debug['ocrDecision'] = decision.to_dict()
            if not decision.use_ocr:
                return layer.text

            run = self._require_engine().ocr_pdf(raw.data, opts)
            debug['usedOcr'] = True
            meta['ocr'] = run.to_dict()
            if run.kept_temp:
                state['artifacts']['temp_dir'] = run.temp_dir
            return run.text

        image = self.image_processor.load_image(raw.data, raw.filename or "<bytes>")
        quality = self.image_processor.assess_quality(image)
        issues = self.image_processor.quality_failure_reasons(quality)
        meta['image_quality'] = quality.to_dict()
        meta['quality_issues'] = issues
        if issues:
            logger.warning(f"Image quality issues: {', '.join(issues)}")

        variants = self.image_processor.generate_variants(image, quality)
        debug['ocrDecision'] = {
            'use_ocr': True,
            'reason': 'image_input',
            'variants': [v.name for v in variants],
        }
        run = self._require_engine().ocr_variants(variants, opts)
        debug['usedOcr'] = True
        meta['ocr'] = run.to_dict()
        return run.text

    def _draft_meta(self, attempt: ParseAttemptResult) -> Dict[str, Any]:
        draft = attempt.draft.to_dict()
        draft['invoice_date_iso'] = self.date_normalizer.normalize(attempt.draft.invoice_date)
        draft['confidence'] = attempt.confidence
        return draft

    def _apply_guardrail(
        self,
        selection: SelectionResult,
        report: GuardrailReport,
        items: list,
        validation: Any,
        canonical: Any
    ) -> Tuple[list, Any, Any]:
        """
        Append extended items and, when items or total changed on an
        accepted parse, rebuild and revalidate the canonical invoice.
        """
        if report.extended_items:
            items = items + [item.to_payload() for item in report.extended_items]

        if report.changed and selection.ok and self.selector.validates:
            attempt = selection.attempt
            revised = replace(
                attempt,
                draft=replace(attempt.draft, total=report.total),
                line_items=list(report.items),
            )
            validation = build_and_validate(revised, self.build_canonical, self.validate)
            canonical = validation.canonical if validation.valid else None
            logger.info(f"Revalidated canonical invoice after guardrail: valid={validation.valid}")

        return items, validation, canonical
