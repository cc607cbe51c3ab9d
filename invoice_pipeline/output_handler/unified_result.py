"""
Unified Result Module.

Every pipeline run, successful or not, ends in exactly one UnifiedResult.
Its status is derived from the other fields and never stored.

Status priority:
    parse_error      an error escaped the run
    canonical_valid  a canonical invoice was built and validated
    extracted_only   line items were found but not validated
    no_items         nothing usable was extracted

Author: ML Engineering Team
"""

import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..utils.helpers import truncate_text

STATUS_PARSE_ERROR = 'parse_error'
STATUS_CANONICAL_VALID = 'canonical_valid'
STATUS_EXTRACTED_ONLY = 'extracted_only'
STATUS_NO_ITEMS = 'no_items'

STATUSES = (STATUS_PARSE_ERROR, STATUS_CANONICAL_VALID, STATUS_EXTRACTED_ONLY, STATUS_NO_ITEMS)


def derive_status(
    error: Optional[Any],
    canonical: Optional[Any],
    validation_valid: bool,
    item_count: int
) -> str:
    """
    Classify a run. Pure: same inputs, same status.

    Example:
        >>> derive_status(None, None, False, 3)
        'extracted_only'
    """
    if error:
        return STATUS_PARSE_ERROR
    if validation_valid and canonical is not None:
        return STATUS_CANONICAL_VALID
    if item_count > 0:
        return STATUS_EXTRACTED_ONLY
    return STATUS_NO_ITEMS


@dataclass
class UnifiedResult:
    """
    Outcome of one pipeline run.

    Attributes:
        source_type: 'pdf', 'image' or 'text'
        version: Pipeline version that produced the result
        canonical: Canonical invoice, kept only when validated
        items: Extracted line items in payload shape
        raw_text: Normalized text the parsers saw
        meta: Extraction metadata (draft fields, quality, OCR info)
        validation_attempted: Whether canonical validation ran
        validation_valid: Whether it passed
        validation_errors: Validator messages
        debug: Selector, OCR and guardrail diagnostics
        artifacts: Paths of files left behind (kept temp dirs)
        error: {'message', 'stack'} when the run failed
        run_id: Unique id of the run
        preview_chars: Length of raw_text_preview
    """
    source_type: str
    version: str = ""
    canonical: Optional[Any] = None
    items: List[Dict[str, Any]] = field(default_factory=list)
    raw_text: str = ""
    meta: Dict[str, Any] = field(default_factory=dict)
    validation_attempted: bool = False
    validation_valid: bool = False
    validation_errors: List[str] = field(default_factory=list)
    debug: Dict[str, Any] = field(default_factory=dict)
    artifacts: Dict[str, Any] = field(default_factory=dict)
    error: Optional[Dict[str, str]] = None
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    preview_chars: int = 2000

    @property
    def status(self) -> str:
        return derive_status(self.error, self.canonical, self.validation_valid, len(self.items))

    @property
    def ok(self) -> bool:
        return self.status in (STATUS_CANONICAL_VALID, STATUS_EXTRACTED_ONLY)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to the output contract.

        The canonical invoice is only exposed for canonical_valid runs.
        """
        status = self.status
        return {
            'run_id': self.run_id,
            'source_type': self.source_type,
            'version': self.version,
            'status': status,
            'canonical': self.canonical if status == STATUS_CANONICAL_VALID else None,
            'extracted': {
                'items': self.items,
                'raw_text_length': len(self.raw_text),
                'raw_text_preview': truncate_text(self.raw_text, self.preview_chars),
                'meta': self.meta,
            },
            'validation': {
                'attempted': self.validation_attempted,
                'valid': self.validation_valid,
                'errors': self.validation_errors,
            },
            'debug': self.debug,
            'artifacts': self.artifacts,
            'error': self.error,
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)

    def __repr__(self) -> str:
        return (
            f"UnifiedResult(run_id='{self.run_id}', "
            f"source='{self.source_type}', "
            f"status='{self.status}', "
            f"items={len(self.items)})"
        )


def build_unified_result(
    source_type: str,
    version: str = "",
    items: Optional[List[Dict[str, Any]]] = None,
    raw_text: str = "",
    canonical: Optional[Any] = None,
    validation: Optional[Dict[str, Any]] = None,
    meta: Optional[Dict[str, Any]] = None,
    debug: Optional[Dict[str, Any]] = None,
    artifacts: Optional[Dict[str, Any]] = None,
    error: Optional[Dict[str, str]] = None,
    run_id: Optional[str] = None,
    preview_chars: int = 2000
) -> UnifiedResult:
    """
    Assemble a UnifiedResult from the pieces of a run.

    Args:
        validation: {'attempted', 'valid', 'errors'} as produced by the
            parser selector.
        error: {'message', 'stack'} for failed runs.
    """
    validation = validation or {}
    result = UnifiedResult(
        source_type=source_type,
        version=version,
        canonical=canonical if validation.get('valid') else None,
        items=list(items or []),
        raw_text=raw_text or "",
        meta=dict(meta or {}),
        validation_attempted=bool(validation.get('attempted', False)),
        validation_valid=bool(validation.get('valid', False)),
        validation_errors=list(validation.get('errors') or []),
        debug=dict(debug or {}),
        artifacts=dict(artifacts or {}),
        error=error,
        preview_chars=preview_chars,
    )
    if run_id:
        result.run_id = run_id
    return result


def error_payload(exc: BaseException, stack: str = "") -> Dict[str, str]:
    """Shape an exception as the result's `error` field."""
    return {'message': str(exc) or exc.__class__.__name__, 'stack': stack}
