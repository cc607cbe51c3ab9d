"""
Parser Selector Module.

Ranks the registered plugins, then tries the best few in order until one
produces enough valid items (and, when canonical collaborators are
supplied, a canonical invoice that validates).

Every attempt is recorded. When nothing is accepted the attempt trail is
returned to the caller as part of the result.

Author: ML Engineering Team
"""

import traceback
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..text.dates import DateNormalizer
from ..text.normalizer import NormalizedInput
from ..utils.exceptions import CanonicalValidationError, PluginParseError
from ..utils.logger import get_logger
from .base import ParseAttemptResult
from .registry import ParseCandidate, ParserRegistry

logger = get_logger(__name__)

CanonicalBuilder = Callable[[Dict[str, Any]], Any]
CanonicalValidator = Callable[[Any], Any]

NOTE_ACCEPTED = "accepted"
NOTE_VALIDATED_OK = "validated_ok"
NOTE_VALIDATE_FAILED = "validate_failed"
NOTE_TOO_FEW_ITEMS = "too_few_items"
NOTE_PARSE_ERROR = "parse_error"

LINES_PREVIEW = 60


@dataclass
class ParseOutcome:
    """
    Tagged result of one parse call: exactly one of `value` / `error` is set.
    """
    value: Optional[ParseAttemptResult] = None
    error: Optional[PluginParseError] = None
    stack: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: ParseAttemptResult) -> 'ParseOutcome':
        return cls(value=value)

    @classmethod
    def failure(cls, error: PluginParseError, stack: Optional[str] = None) -> 'ParseOutcome':
        return cls(error=error, stack=stack)


@dataclass
class ValidationOutcome:
    """Result of building and validating one canonical invoice."""
    canonical: Any = None
    valid: bool = False
    errors: List[str] = field(default_factory=list)

    def to_dict(self, attempted: bool = True) -> Dict[str, Any]:
        return {'attempted': attempted, 'valid': self.valid, 'errors': list(self.errors)}


@dataclass
class SelectionResult:
    """
    Outcome of ParserSelector.select().

    Attributes:
        ok: True when a candidate was accepted
        items: Payload-shaped items of the accepted (or fallback) candidate
        parser_used: Plugin id, or "none"
        attempt: The accepted (or fallback) ParseAttemptResult
        selected: Candidate summary of the accepted (or top-ranked) plugin
        attempts: One record per attempted candidate, in order
        candidates: Full ranking
        validation: Canonical validation outcome, if collaborators ran
        lines_preview: First lines of the document, only on failure
    """
    ok: bool
    items: List[Dict[str, Any]] = field(default_factory=list)
    parser_used: str = "none"
    attempt: Optional[ParseAttemptResult] = None
    selected: Optional[Dict[str, Any]] = None
    attempts: List[Dict[str, Any]] = field(default_factory=list)
    candidates: List[Dict[str, Any]] = field(default_factory=list)
    validation: Optional[ValidationOutcome] = None
    lines_preview: Optional[List[str]] = None

    @property
    def summary(self) -> Dict[str, Any]:
        summary: Dict[str, Any] = {
            'ok': self.ok,
            'selected': self.selected,
            'attempts': self.attempts,
        }
        if self.lines_preview is not None:
            summary['lines_preview'] = self.lines_preview
        return summary


def _read_validation(report: Any) -> ValidationOutcome:
    """Accept {ok, errors} dicts or objects with .ok / .errors attributes."""
    if isinstance(report, dict):
        ok, errors = report.get('ok', False), report.get('errors') or []
    else:
        ok, errors = getattr(report, 'ok', False), getattr(report, 'errors', None) or []
    return ValidationOutcome(valid=bool(ok), errors=[str(e) for e in errors])


class ParserSelector:
    """
    Chooses a parser for a normalized document.

    Args:
        registry: Plugins to rank.
        top_n: How many of the best-ranked plugins to attempt.
        min_items: Valid items needed to accept a candidate.
        build_canonical: Optional collaborator turning a draft dict into a
            canonical invoice.
        validate: Optional collaborator returning {ok, errors} for a
            canonical invoice.

    Example:
        >>> selector = ParserSelector(ParserRegistry(default_plugins()))
        >>> result = selector.select(NormalizedInput.from_raw(text))
        >>> result.parser_used
        'column-table-v1'
    """

    def __init__(
        self,
        registry: ParserRegistry,
        top_n: int = 3,
        min_items: int = 1,
        build_canonical: Optional[CanonicalBuilder] = None,
        validate: Optional[CanonicalValidator] = None
    ) -> None:
        self.registry = registry
        self.top_n = max(1, top_n)
        self.min_items = max(0, min_items)
        self.build_canonical = build_canonical
        self.validate = validate

    @property
    def validates(self) -> bool:
        return self.build_canonical is not None and self.validate is not None

    def select(self, document: NormalizedInput) -> SelectionResult:
        """
        Rank, attempt and accept.

        Args:
            document: Normalized document.

        Returns:
            SelectionResult; never raises for plugin failures.
        """
        ranked = self.registry.rank(document)
        candidates = [c.to_dict() for c in ranked]
        attempts: List[Dict[str, Any]] = []
        fallback: Optional[SelectionResult] = None

        for candidate in ranked[:self.top_n]:
            record: Dict[str, Any] = {
                'plugin_id': candidate.plugin_id,
                'version': candidate.version,
                'score': candidate.match_score,
                'reasons': list(candidate.reasons),
            }
            attempts.append(record)

            outcome = self._attempt(candidate, document)
            if not outcome.ok:
                record['note'] = NOTE_PARSE_ERROR
                record['error'] = outcome.error.details.get('reason')
                record['stack'] = outcome.stack
                continue

            attempt = outcome.value
            valid_items = attempt.valid_items
            record['confidence'] = attempt.confidence
            record['count'] = len(valid_items)

            if len(valid_items) < self.min_items:
                record['note'] = NOTE_TOO_FEW_ITEMS
                continue

            items = [item.to_payload() for item in valid_items]

            if not self.validates:
                record['note'] = NOTE_ACCEPTED
                return self._accepted(candidate, attempt, items, attempts, candidates, None)

            validation = self._build_and_validate(attempt)
            if validation.valid:
                record['note'] = NOTE_VALIDATED_OK
                return self._accepted(candidate, attempt, items, attempts, candidates, validation)

            record['note'] = NOTE_VALIDATE_FAILED
            record['errors'] = list(validation.errors)
            if fallback is None:
                fallback = SelectionResult(
                    ok=False,
                    items=items,
                    parser_used=candidate.plugin_id,
                    attempt=attempt,
                    selected=self._summary(candidate),
                    validation=validation,
                )

        logger.info(f"No parser accepted after {len(attempts)} attempt(s)")

        if fallback is not None:
            fallback.attempts = attempts
            fallback.candidates = candidates
            fallback.lines_preview = list(document.lines[:LINES_PREVIEW])
            return fallback

        return SelectionResult(
            ok=False,
            selected=self._summary(ranked[0]) if ranked else None,
            attempts=attempts,
            candidates=candidates,
            lines_preview=list(document.lines[:LINES_PREVIEW]),
        )

    @staticmethod
    def _summary(candidate: ParseCandidate) -> Dict[str, Any]:
        return {
            'id': candidate.plugin_id,
            'score': candidate.match_score,
            'reasons': list(candidate.reasons),
        }

    def _accepted(
        self,
        candidate: ParseCandidate,
        attempt: ParseAttemptResult,
        items: List[Dict[str, Any]],
        attempts: List[Dict[str, Any]],
        candidates: List[Dict[str, Any]],
        validation: Optional[ValidationOutcome]
    ) -> SelectionResult:
        logger.info(
            f"Selected parser {candidate.plugin_id} "
            f"(score={candidate.match_score:.0f}, items={len(items)})"
        )
        return SelectionResult(
            ok=True,
            items=items,
            parser_used=candidate.plugin_id,
            attempt=attempt,
            selected=self._summary(candidate),
            attempts=attempts,
            candidates=candidates,
            validation=validation,
        )

    @staticmethod
    def _attempt(candidate: ParseCandidate, document: NormalizedInput) -> ParseOutcome:
        try:
            result = candidate.plugin.parse(document)
            if not isinstance(result, ParseAttemptResult):
                raise TypeError(f"parse returned {type(result).__name__}")
        except Exception as e:
            logger.warning(f"Parser {candidate.plugin_id} raised: {e}")
            return ParseOutcome.failure(
                PluginParseError(candidate.plugin_id, str(e)),
                stack=traceback.format_exc(),
            )
        return ParseOutcome.success(result)

    def _build_and_validate(self, attempt: ParseAttemptResult) -> ValidationOutcome:
        """Run both collaborators; their exceptions count as validation failures."""
        return build_and_validate(attempt, self.build_canonical, self.validate)


def draft_payload(attempt: ParseAttemptResult) -> Dict[str, Any]:
    """Draft dict handed to the canonical builder."""
    payload = attempt.draft.to_dict()
    payload['invoice_date_iso'] = DateNormalizer().normalize(attempt.draft.invoice_date)
    payload['line_items'] = [item.to_payload() for item in attempt.valid_items]
    return payload


def build_and_validate(
    attempt: ParseAttemptResult,
    build_canonical: CanonicalBuilder,
    validate: CanonicalValidator
) -> ValidationOutcome:
    """
    Build a canonical invoice from `attempt` and validate it.

    Collaborator exceptions become an invalid outcome carrying the error
    message.
    """
    try:
        canonical = build_canonical(draft_payload(attempt))
        outcome = _read_validation(validate(canonical))
    except Exception as e:
        error = CanonicalValidationError([str(e)])
        logger.debug(f"{error}: {e}")
        return ValidationOutcome(valid=False, errors=error.details['errors'])

    outcome.canonical = canonical
    return outcome
