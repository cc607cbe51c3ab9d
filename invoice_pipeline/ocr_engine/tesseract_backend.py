"""
Tesseract OCR Backend.

This module provides OCR functionality using Tesseract (pytesseract).

Features:
    - Plain text extraction for rendered PDF pages
    - Text plus mean word confidence for image variants
    - Per-call timeouts

Requirements:
    - Tesseract OCR installed on the system
    - pytesseract Python package

Author: ML Engineering Team
"""

from typing import Dict, List, Optional, Tuple

import pytesseract
from PIL import Image

from ..utils.exceptions import PageOCRError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class TesseractBackend:
    """
    Tesseract OCR backend implementation.

    pytesseract reads the executable path from a module attribute, so one
    process runs a single tesseract binary. Building a backend with a
    different path than the one already set replaces it for every backend
    and logs a warning.

    Attributes:
        tesseract_cmd: Absolute path of the tesseract executable
        psm: Page Segmentation Mode (1-13)
        oem: OCR Engine Mode (0-3), None for Tesseract's default

    Example:
        >>> backend = TesseractBackend("/usr/bin/tesseract")
        >>> text = backend.get_raw_text(image, lang="eng", timeout=60)
    """

    def __init__(
        self,
        tesseract_cmd: Optional[str] = None,
        psm: int = 6,
        oem: Optional[int] = None
    ) -> None:
        self.tesseract_cmd = tesseract_cmd
        self.psm = psm
        self.oem = oem

        if tesseract_cmd:
            current = pytesseract.pytesseract.tesseract_cmd
            if current not in ('tesseract', tesseract_cmd):
                logger.warning(f"Replacing tesseract binary {current} with {tesseract_cmd} process-wide")
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

        logger.debug(f"TesseractBackend initialized (cmd={tesseract_cmd}, psm={psm}, oem={oem})")

    def _build_config(self) -> str:
        config_parts = [f"--psm {self.psm}"]
        if self.oem is not None:
            config_parts.append(f"--oem {self.oem}")
        return ' '.join(config_parts)

    def get_raw_text(
        self,
        image: Image.Image,
        lang: str = "eng",
        timeout: float = 0,
        label: str = "image"
    ) -> str:
        """
        Extract only the text content.

        Args:
            image: PIL Image to process.
            lang: Tesseract language code.
            timeout: Seconds before the tesseract process is killed; 0 disables.
            label: Name used in errors and logs.

        Raises:
            PageOCRError: If tesseract fails or times out.
        """
        try:
            text = pytesseract.image_to_string(
                image,
                lang=lang,
                config=self._build_config(),
                timeout=timeout
            )
        except (pytesseract.TesseractError, RuntimeError, OSError) as e:
            logger.warning(f"Tesseract failed on {label}: {e}")
            raise PageOCRError(label, str(e))
        return text.strip()

    def extract_with_confidence(
        self,
        image: Image.Image,
        lang: str = "eng",
        timeout: float = 0,
        label: str = "image"
    ) -> Tuple[str, float]:
        """
        Extract text and the mean word confidence.

        Returns:
            (text, confidence) with confidence in 0-100.

        Raises:
            PageOCRError: If tesseract fails or times out.
        """
        try:
            data = pytesseract.image_to_data(
                image,
                lang=lang,
                config=self._build_config(),
                timeout=timeout,
                output_type=pytesseract.Output.DICT
            )
        except (pytesseract.TesseractError, RuntimeError, OSError) as e:
            logger.warning(f"Tesseract failed on {label}: {e}")
            raise PageOCRError(label, str(e))

        text, confidences = self._parse_tesseract_output(data)
        confidence = sum(confidences) / len(confidences) if confidences else 0.0
        return text, confidence

    @staticmethod
    def _parse_tesseract_output(data: Dict[str, List]) -> Tuple[str, List[float]]:
        """
        Rebuild text lines from image_to_data output.

        Words are grouped by Tesseract's (block, paragraph, line) numbers
        in the order they were reported.
        """
        lines: Dict[Tuple[int, int, int], List[str]] = {}
        confidences: List[float] = []

        for i, word in enumerate(data.get('text', [])):
            if not word or not word.strip():
                continue

            key = (data['block_num'][i], data['par_num'][i], data['line_num'][i])
            lines.setdefault(key, []).append(word.strip())

            try:
                conf = float(data['conf'][i])
            except (TypeError, ValueError):
                continue
            # Tesseract reports -1 for non-word boxes
            if conf >= 0:
                confidences.append(conf)

        text = '\n'.join(' '.join(words) for words in lines.values())
        return text.strip(), confidences

