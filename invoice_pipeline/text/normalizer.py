"""
Text Normalizer Module.

Brings OCR output, PDF text layers and plain text onto one canonical form
before any parser sees it.

Author: ML Engineering Team
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

_TRAILING_BLANKS = re.compile(r'[ \t]+\n')
_EXCESS_NEWLINES = re.compile(r'\n{3,}')
_INNER_BLANKS = re.compile(r'[ \t]+')


@dataclass(frozen=True)
class NormalizedInput:
    """
    Canonical text of one document.

    Built once per pipeline run and shared read-only by every parser
    plugin and the guardrail.

    Attributes:
        text: Normalized full text.
        lines: Normalized lines, blank lines kept as "".
        source_type: "pdf", "image" or "text".
        meta: Free-form metadata (OCR flags, filename, ...).
    """
    text: str
    lines: Tuple[str, ...]
    source_type: str = "text"
    meta: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_raw(
        cls,
        raw: Optional[str],
        source_type: str = "text",
        meta: Optional[Dict[str, Any]] = None
    ) -> 'NormalizedInput':
        text, lines = normalize_text(raw)
        return cls(text=text, lines=tuple(lines), source_type=source_type, meta=dict(meta or {}))

    @property
    def line_count(self) -> int:
        return len(self.lines)


def normalize_text(raw: Optional[str]) -> Tuple[str, List[str]]:
    """
    Normalize raw text into (text, lines).

    Line endings become "\\n", trailing blanks are dropped, runs of three or
    more newlines shrink to a single blank line and the result is trimmed.
    Within each line, runs of spaces/tabs collapse to one space.

    Args:
        raw: Raw text, may be None.

    Returns:
        Tuple of normalized text and its lines. Empty input gives ("", []).

    Example:
        >>> normalize_text("A\\r\\n\\r\\n\\r\\nB   1.00  ")
        ("A\\n\\nB   1.00", ["A", "", "B 1.00"])
    """
    if not raw:
        return "", []

    text = str(raw).replace('\r\n', '\n').replace('\r', '\n')
    text = _TRAILING_BLANKS.sub('\n', text)
    text = _EXCESS_NEWLINES.sub('\n\n', text)
    text = text.strip()

    if not text:
        return "", []

    lines = [_INNER_BLANKS.sub(' ', line).strip() for line in text.split('\n')]
    return text, lines
