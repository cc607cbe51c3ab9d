"""
External binary resolution.

The OCR stages shell out to Poppler (`pdftoppm`, `pdfinfo`) through
pdf2image and to `tesseract` through pytesseract. Both are resolved once
when the engine is built; a missing binary fails the pipeline start.
"""

import os
import shutil
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from ..utils.exceptions import BinaryMissingError
from ..utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_FALLBACK_DIRS = ('/opt/homebrew/bin', '/usr/local/bin', '/usr/bin')


@dataclass(frozen=True)
class ResolvedBinaries:
    """Absolute paths of the OCR toolchain."""
    tesseract: str
    pdftoppm: str
    pdfinfo: str

    @property
    def poppler_path(self) -> str:
        """Directory handed to pdf2image as `poppler_path`."""
        return os.path.dirname(self.pdftoppm)

    def to_dict(self) -> Dict[str, str]:
        return {'tesseract': self.tesseract, 'pdftoppm': self.pdftoppm, 'pdfinfo': self.pdfinfo}


def find_binary(name: str, fallback_dirs: Sequence[str] = DEFAULT_FALLBACK_DIRS) -> Optional[str]:
    """
    Locate an executable on PATH, then in the fallback directories.

    An absolute `name` is accepted as is when it is executable.

    Returns:
        Absolute path, or None when not found.
    """
    if os.path.isabs(name):
        return name if os.access(name, os.X_OK) else None

    found = shutil.which(name)
    if found:
        return found

    for directory in fallback_dirs:
        candidate = os.path.join(directory, name)
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return candidate
    return None


def _searched(name: str, fallback_dirs: Sequence[str]) -> List[str]:
    return ['PATH'] + [os.path.join(d, name) for d in fallback_dirs]


def resolve_binaries(
    tesseract: str = 'tesseract',
    pdftoppm: str = 'pdftoppm',
    fallback_dirs: Sequence[str] = DEFAULT_FALLBACK_DIRS
) -> ResolvedBinaries:
    """
    Resolve tesseract, pdftoppm and the pdfinfo next to pdftoppm.

    Raises:
        BinaryMissingError: If any of them cannot be found.
    """
    tesseract_path = find_binary(tesseract, fallback_dirs)
    if tesseract_path is None:
        raise BinaryMissingError(tesseract, _searched(tesseract, fallback_dirs))

    pdftoppm_path = find_binary(pdftoppm, fallback_dirs)
    if pdftoppm_path is None:
        raise BinaryMissingError(pdftoppm, _searched(pdftoppm, fallback_dirs))

    # pdf2image calls pdfinfo from the same poppler_path
    pdfinfo_path = os.path.join(os.path.dirname(pdftoppm_path), 'pdfinfo')
    if not (os.path.isfile(pdfinfo_path) and os.access(pdfinfo_path, os.X_OK)):
        raise BinaryMissingError('pdfinfo', [pdfinfo_path])

    binaries = ResolvedBinaries(tesseract=tesseract_path, pdftoppm=pdftoppm_path, pdfinfo=pdfinfo_path)
    logger.info(f"Resolved OCR binaries: {binaries.to_dict()}")
    return binaries
