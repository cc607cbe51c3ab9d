#!/usr/bin/env python3
"""
Invoice Extraction Pipeline - Main Entry Point.

Runs one invoice document through the pipeline and prints a summary.

Usage:
    Command Line:
        python main.py --input invoice.pdf --output results/invoice.json
        python main.py --input receipt.heic --max-pages 1 --debug
        python main.py --input statement.txt --min-items 3

    Python:
        from main import run_extraction
        result = run_extraction("invoice.pdf")

Exit codes:
    0  canonical_valid or extracted_only
    2  no_items
    1  parse_error or startup failure

Author: ML Engineering Team
Version: 1.0.0
"""

import argparse
import logging
import sys
from typing import Any, Dict, List, Optional

from config import ConfigurationManager
from invoice_pipeline import InvoicePipeline, UnifiedResult
from invoice_pipeline.output_handler import (
    OutputHandler,
    STATUS_CANONICAL_VALID,
    STATUS_EXTRACTED_ONLY,
    STATUS_NO_ITEMS,
)
from invoice_pipeline.utils.exceptions import InvoicePipelineError
from invoice_pipeline.utils.logger import ROOT_LOGGER_NAME, get_logger, setup_logger_from_config

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NO_ITEMS = 2


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        description="Invoice Extraction Pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    Process a scanned PDF:
        python main.py --input invoice.pdf --output results/invoice.json

    Render more pages at higher resolution:
        python main.py --input invoice.pdf --max-pages 5 --dpi 300
        """
    )

    parser.add_argument("--input", "-i", type=str, required=True,
                        help="Invoice file (PDF, image or text)")
    parser.add_argument("--source-type", choices=["pdf", "image", "text"], default=None,
                        help="Skip source type detection")
    parser.add_argument("--output", "-o", type=str, default=None,
                        help="Write the unified result as JSON to this file")
    parser.add_argument("--config", "-c", type=str, default=None,
                        help="Path to custom configuration file")

    # OCR options
    parser.add_argument("--max-pages", type=int, default=None, help="Pages to render from a PDF")
    parser.add_argument("--dpi", type=int, default=None, help="Render resolution")
    parser.add_argument("--lang", type=str, default=None, help="Tesseract language code")
    parser.add_argument("--concurrency", type=int, default=None, help="Parallel page OCR calls")
    parser.add_argument("--render-mode", choices=["png", "gray"], default=None,
                        help="Page render format")
    parser.add_argument("--keep-temp", action="store_true", help="Keep the OCR temp directory")
    parser.add_argument("--tmp-dir", type=str, default=None, help="Parent for the OCR temp directory")

    # Parsing options
    parser.add_argument("--min-items", type=int, default=None,
                        help="Valid line items needed to accept a parser")

    # Logging options
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    return parser.parse_args(argv)


def build_options(args: argparse.Namespace) -> Dict[str, Any]:
    """Collect per-run options that were given on the command line."""
    options: Dict[str, Any] = {
        'max_pages': args.max_pages,
        'dpi': args.dpi,
        'lang': args.lang,
        'concurrency': args.concurrency,
        'render_mode': args.render_mode,
        'tmp_dir': args.tmp_dir,
    }
    if args.keep_temp:
        options['keep_temp'] = True
    return {k: v for k, v in options.items() if v is not None}


def initialize_system(args: argparse.Namespace) -> ConfigurationManager:
    """
    Load configuration and set up logging.
    """
    overrides: Dict[str, Any] = {}
    if args.min_items is not None:
        overrides['parsing'] = {'min_items': args.min_items}

    config = ConfigurationManager(args.config, overrides=overrides)
    logger = setup_logger_from_config(config)

    if args.debug:
        logging.getLogger(ROOT_LOGGER_NAME).setLevel(logging.DEBUG)

    logger.info("=" * 60)
    logger.info("INVOICE EXTRACTION PIPELINE")
    logger.info("=" * 60)
    logger.info(f"Version: {config.get('project.version', '1.0.0')}")
    logger.info(f"Input: {args.input}")

    return config


def exit_code_for(result: UnifiedResult) -> int:
    status = result.status
    if status in (STATUS_CANONICAL_VALID, STATUS_EXTRACTED_ONLY):
        return EXIT_OK
    if status == STATUS_NO_ITEMS:
        return EXIT_NO_ITEMS
    return EXIT_ERROR


def print_summary(result: UnifiedResult) -> None:
    payload = result.to_dict()
    debug = payload['debug']

    print(f"Run:      {payload['run_id']}")
    print(f"Source:   {payload['source_type']}")
    print(f"Status:   {payload['status']}")
    print(f"Parser:   {debug.get('parserUsed')}")
    print(f"Items:    {len(payload['extracted']['items'])}")
    print(f"Used OCR: {debug.get('usedOcr')}")

    draft = payload['extracted']['meta'].get('draft') or {}
    if draft:
        print(f"Invoice:  {draft.get('invoice_number') or 'N/A'}  "
              f"Date: {draft.get('invoice_date_iso') or draft.get('invoice_date') or 'N/A'}  "
              f"Total: {draft.get('total') if draft.get('total') is not None else 'N/A'}")

    guardrail = debug.get('guardrail') or {}
    review = guardrail.get('review') or {}
    if review.get('needs_review'):
        print(f"Review:   {review.get('severity')} ({', '.join(review.get('reasons', []))})")

    if payload['error']:
        print(f"Error:    {payload['error']['message']}", file=sys.stderr)


def run_extraction(
    input_path: str,
    config: Optional[ConfigurationManager] = None,
    options: Optional[Dict[str, Any]] = None,
    source_type: Optional[str] = None
) -> UnifiedResult:
    """
    Run the extraction pipeline on one file.

    Args:
        input_path: Path to the invoice.
        config: Configuration; packaged defaults when omitted.
        options: Per-run OCR options.
        source_type: Skip detection when given.

    Returns:
        UnifiedResult for the document.

    Raises:
        BinaryMissingError: If the OCR toolchain is not installed.
    """
    with InvoicePipeline(config=config) as pipeline:
        return pipeline.process_file(input_path, options, source_type=source_type)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main function - entry point for command-line execution.

    Returns:
        Exit code.
    """
    try:
        args = parse_arguments(argv)
        config = initialize_system(args)
        logger = get_logger(__name__)

        result = run_extraction(
            args.input,
            config=config,
            options=build_options(args),
            source_type=args.source_type,
        )

        if args.output:
            path = OutputHandler(json_indent=config.get("output.json_indent", 2)).save_json(
                result, args.output
            )
            logger.info(f"Result written to {path}")

        print_summary(result)
        return exit_code_for(result)

    except InvoicePipelineError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
