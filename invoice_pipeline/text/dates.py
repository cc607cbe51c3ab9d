"""
Date Normalizer Module.

Converts invoice dates as printed ("01/15/2026", "Jan 5, 2026") to ISO
format using python-dateutil.

Author: ML Engineering Team
"""

import re
from datetime import datetime
from typing import List, Optional

from dateutil import parser as date_parser

from ..utils.logger import get_logger

logger = get_logger(__name__)


class DateNormalizer:
    """
    Normalizes date strings to a standard format.

    Explicit formats are tried first (US month-first ordering), then the
    dateutil parser.

    Example:
        >>> normalizer = DateNormalizer()
        >>> normalizer.normalize("01/15/2026")
        "2026-01-15"
        >>> normalizer.normalize("January 15, 2026")
        "2026-01-15"
    """

    DEFAULT_INPUT_FORMATS = [
        "%m/%d/%Y",
        "%m/%d/%y",
        "%m-%d-%Y",
        "%m-%d-%y",
        "%Y-%m-%d",
        "%B %d, %Y",
        "%b %d, %Y",
        "%b. %d, %Y",
        "%d %B %Y",
    ]

    def __init__(
        self,
        output_format: str = "%Y-%m-%d",
        input_formats: Optional[List[str]] = None
    ) -> None:
        self.output_format = output_format
        self.input_formats = input_formats or list(self.DEFAULT_INPUT_FORMATS)

    def normalize(self, date_str: Optional[str]) -> Optional[str]:
        """
        Normalize a date string to the configured output format.

        Args:
            date_str: Input date string.

        Returns:
            Normalized date string, or None if parsing fails.
        """
        if not date_str:
            return None

        cleaned = self._clean_date_string(date_str)
        parsed = self._try_explicit_formats(cleaned) or self._try_dateutil_parser(cleaned)

        if parsed is None:
            logger.debug(f"Could not parse date: {date_str}")
            return None
        return parsed.strftime(self.output_format)

    @staticmethod
    def _clean_date_string(date_str: str) -> str:
        date_str = ' '.join(date_str.split())
        # Ordinal suffixes (1st, 2nd, ...)
        date_str = re.sub(r'(\d+)(st|nd|rd|th)\b', r'\1', date_str, flags=re.IGNORECASE)
        return date_str.strip()

    def _try_explicit_formats(self, date_str: str) -> Optional[datetime]:
        for fmt in self.input_formats:
            try:
                return datetime.strptime(date_str, fmt)
            except ValueError:
                continue
        return None

    @staticmethod
    def _try_dateutil_parser(date_str: str) -> Optional[datetime]:
        try:
            return date_parser.parse(date_str, dayfirst=False, fuzzy=True)
        except (ValueError, OverflowError):
            return None
