"""
Custom Exceptions Module.

This module defines the exceptions raised inside the invoice pipeline.
Only a few of them ever reach a caller: InvoicePipeline.process() turns
anything that escapes a stage into a `parse_error` result, and
BinaryMissingError is raised from InvoicePipeline.start().

Exception Hierarchy:
    InvoicePipelineError (base)
    ├── InputError
    │   ├── UnsupportedSourceTypeError
    │   └── CorruptedInputError
    ├── OCRError
    │   ├── BinaryMissingError
    │   ├── RenderFailureError
    │   └── PageOCRError
    ├── ParserError
    │   ├── PluginMatchError
    │   └── PluginParseError
    ├── PostProcessingError
    │   ├── GuardrailError
    │   └── CanonicalValidationError
    └── OutputError
"""

from typing import List, Optional


class InvoicePipelineError(Exception):
    """
    Base exception for all invoice pipeline errors.

    Attributes:
        message: Human-readable error message.
        details: Optional dictionary with additional error details.
    """

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# INPUT ERRORS
# =============================================================================

class InputError(InvoicePipelineError):
    """Base exception for input handling errors."""
    pass


class UnsupportedSourceTypeError(InputError):
    """
    Raised when a document's source type cannot be handled.

    Example:
        >>> raise UnsupportedSourceTypeError("docx", ["pdf", "image", "text"])
    """

    def __init__(self, source_type: str, supported_types: List[str]):
        message = f"Unsupported source type: '{source_type}'"
        details = {"source_type": source_type, "supported_types": supported_types}
        super().__init__(message, details)


class CorruptedInputError(InputError):
    """Raised when document bytes cannot be decoded."""

    def __init__(self, source: str, reason: Optional[str] = None):
        message = f"Corrupted or unreadable input: {source}"
        details = {"source": source, "reason": reason}
        super().__init__(message, details)


# =============================================================================
# OCR ERRORS
# =============================================================================

class OCRError(InvoicePipelineError):
    """Base exception for OCR-related errors."""
    pass


class BinaryMissingError(OCRError):
    """Raised when a required external executable cannot be located."""

    def __init__(self, binary: str, searched: Optional[List[str]] = None):
        message = f"Required executable not found: {binary}"
        details = {"binary": binary, "searched": searched or []}
        super().__init__(message, details)


class RenderFailureError(OCRError):
    """Raised when PDF pages cannot be rendered to images. Fatal for a run."""

    def __init__(self, reason: Optional[str] = None, timed_out: bool = False):
        message = "PDF page rendering timed out" if timed_out else "PDF page rendering failed"
        details = {"reason": reason, "timed_out": timed_out}
        super().__init__(message, details)


class PageOCRError(OCRError):
    """Raised when OCR of a single page or image variant fails."""

    def __init__(self, page: str, reason: Optional[str] = None):
        message = f"OCR failed for page: {page}"
        details = {"page": page, "reason": reason}
        super().__init__(message, details)


# =============================================================================
# PARSER ERRORS
# =============================================================================

class ParserError(InvoicePipelineError):
    """Base exception for parser plugin errors."""
    pass


class PluginMatchError(ParserError):
    """Raised when a plugin's match step fails."""

    def __init__(self, plugin_id: str, reason: Optional[str] = None):
        message = f"Parser match failed: {plugin_id}"
        details = {"plugin_id": plugin_id, "reason": reason}
        super().__init__(message, details)


class PluginParseError(ParserError):
    """Raised when a plugin's parse step fails."""

    def __init__(self, plugin_id: str, reason: Optional[str] = None):
        message = f"Parser failed: {plugin_id}"
        details = {"plugin_id": plugin_id, "reason": reason}
        super().__init__(message, details)


# =============================================================================
# POST-PROCESSING ERRORS
# =============================================================================

class PostProcessingError(InvoicePipelineError):
    """Base exception for post-processing errors."""
    pass


class GuardrailError(PostProcessingError):
    """Raised inside the scan guardrail. Never escapes DocumentScanGuardrail.apply()."""

    def __init__(self, stage: str, reason: Optional[str] = None):
        message = f"Guardrail stage failed: {stage}"
        details = {"stage": stage, "reason": reason}
        super().__init__(message, details)


class CanonicalValidationError(PostProcessingError):
    """Raised when a canonical invoice fails validation."""

    def __init__(self, errors: List[str]):
        message = "Canonical invoice failed validation"
        details = {"errors": errors}
        super().__init__(message, details)


# =============================================================================
# OUTPUT ERRORS
# =============================================================================

class OutputError(InvoicePipelineError):
    """Raised when a result cannot be written."""

    def __init__(self, filepath: str, reason: Optional[str] = None):
        message = f"Failed to write result: {filepath}"
        details = {"filepath": filepath, "reason": reason}
        super().__init__(message, details)


__all__ = [
    'InvoicePipelineError',
    'InputError',
    'UnsupportedSourceTypeError',
    'CorruptedInputError',
    'OCRError',
    'BinaryMissingError',
    'RenderFailureError',
    'PageOCRError',
    'ParserError',
    'PluginMatchError',
    'PluginParseError',
    'PostProcessingError',
    'GuardrailError',
    'CanonicalValidationError',
    'OutputError',
]
