"""
Helper Utilities Module.

Small domain-free functions shared by the input, OCR and output stages:
directory lifecycle for OCR temp folders and result files, numeric
clamping for quality and OCR scores, and the text shaping used for
previews and option names.

Author: ML Engineering Team
"""

import re
import shutil
from pathlib import Path
from typing import Optional, Union

PathLike = Union[str, Path]

_CAMEL_BOUNDARY = re.compile(r'(?<!^)(?=[A-Z])')
_SIZE_UNITS = ('B', 'KB', 'MB', 'GB', 'TB')


# =============================================================================
# FILESYSTEM
# =============================================================================

def ensure_directory(path: PathLike) -> Path:
    """
    Create `path` (and parents) when missing and return it as a Path.

    Raises:
        OSError: If the directory cannot be created, e.g. a regular file
            already occupies the path.
    """
    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def remove_directory(path: Optional[PathLike]) -> None:
    """Delete a directory tree if present; errors are ignored."""
    if path:
        shutil.rmtree(path, ignore_errors=True)


def get_file_extension(filepath: PathLike) -> str:
    """Lowercased suffix with the dot (".pdf"), or "" when there is none."""
    return Path(filepath).suffix.lower()


def format_file_size(size_bytes: float) -> str:
    """
    Render a byte count for log and error messages.

    Example:
        >>> format_file_size(1536)
        '1.5 KB'
    """
    size = float(size_bytes)
    for unit in _SIZE_UNITS:
        if size < 1024 or unit == _SIZE_UNITS[-1]:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"


# =============================================================================
# NUMBERS AND TEXT
# =============================================================================

def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def truncate_text(text: Optional[str], max_chars: int, suffix: str = "…") -> str:
    """
    Cut `text` to `max_chars` characters, marking the cut with `suffix`.

    None is treated as empty text.
    """
    if not text:
        return ""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + suffix


def camel_to_snake(name: str) -> str:
    """maxPages -> max_pages; already snake_case names pass through."""
    return _CAMEL_BOUNDARY.sub('_', name).lower()
