"""
Main Input Handler Module.

This module provides the InputHandler class, the intake point for invoice
artifacts. It turns files, raw bytes or plain text into a RawDocument,
detecting the source type from magic bytes when the caller doesn't say.

Usage:
    from invoice_pipeline.input_handler import InputHandler

    handler = InputHandler()
    document = handler.load("invoice.pdf")

Classes:
    RawDocument: One unprocessed invoice artifact
    PipelineOptions: Per-run OCR options
    InputHandler: File and byte intake
"""

import struct
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..utils.exceptions import CorruptedInputError, InputError, UnsupportedSourceTypeError
from ..utils.helpers import camel_to_snake, format_file_size, get_file_extension
from ..utils.logger import get_logger

logger = get_logger(__name__)

SOURCE_TYPES = ('pdf', 'image', 'text')
RENDER_MODES = ('png', 'gray')


@dataclass
class RawDocument:
    """
    One invoice artifact as handed to the pipeline. Never persisted.

    Attributes:
        data: Binary payload for pdf and image sources
        text: Decoded text for text sources
        source_type: 'pdf', 'image' or 'text'
        filename: Original filename, if any
        metadata: Caller-supplied metadata carried into the result
    """
    data: Optional[bytes] = None
    text: Optional[str] = None
    source_type: str = 'text'
    filename: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.source_type not in SOURCE_TYPES:
            raise UnsupportedSourceTypeError(self.source_type, list(SOURCE_TYPES))

    @classmethod
    def from_text(cls, text: str, filename: Optional[str] = None, **metadata: Any) -> 'RawDocument':
        return cls(text=text, source_type='text', filename=filename, metadata=metadata)

    @property
    def size(self) -> int:
        if self.data is not None:
            return len(self.data)
        return len(self.text or "")

    def __repr__(self) -> str:
        return (
            f"RawDocument(filename='{self.filename}', "
            f"type='{self.source_type}', "
            f"size={self.size})"
        )


@dataclass
class PipelineOptions:
    """
    Per-run options for the OCR stages.

    Attributes:
        max_pages: Pages rendered from a PDF, starting at page 1
        lang: Tesseract language code
        dpi: Render resolution
        concurrency: Parallel page OCR calls
        keep_temp: Leave the run's temp directory on disk
        render_mode: 'png' or 'gray'
        tmp_dir: Parent directory for the run's temp directory
    """
    max_pages: int = 3
    lang: str = 'eng'
    dpi: int = 200
    concurrency: int = 2
    keep_temp: bool = False
    render_mode: str = 'png'
    tmp_dir: Optional[str] = None

    def __post_init__(self) -> None:
        if int(self.max_pages) < 1:
            raise ValueError(f"max_pages must be at least 1, got {self.max_pages}")
        if int(self.concurrency) < 1:
            raise ValueError(f"concurrency must be at least 1, got {self.concurrency}")
        if int(self.dpi) < 1:
            raise ValueError(f"dpi must be positive, got {self.dpi}")
        if self.render_mode not in RENDER_MODES:
            raise ValueError(f"render_mode must be one of {RENDER_MODES}, got {self.render_mode!r}")
        self.max_pages = int(self.max_pages)
        self.concurrency = int(self.concurrency)
        self.dpi = int(self.dpi)
        self.keep_temp = bool(self.keep_temp)

    @classmethod
    def from_dict(
        cls,
        options: Optional[Union['PipelineOptions', Dict[str, Any]]] = None,
        defaults: Optional[Dict[str, Any]] = None
    ) -> 'PipelineOptions':
        """
        Build options from a dict with snake_case or camelCase keys.

        Args:
            options: Caller options; a PipelineOptions is returned as is.
            defaults: Fallback values (usually the `ocr` config section).

        Example:
            >>> PipelineOptions.from_dict({"maxPages": 5, "keepTemp": True}).max_pages
            5
        """
        if isinstance(options, PipelineOptions):
            return options

        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}

        for key, value in (defaults or {}).items():
            if key in known:
                values[key] = value

        for key, value in (options or {}).items():
            name = camel_to_snake(key)
            if name not in known:
                logger.warning(f"Ignoring unknown pipeline option: {key}")
                continue
            if value is not None or name == 'tmp_dir':
                values[name] = value

        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class InputHandler:
    """
    Intake for invoice files and bytes.

    Attributes:
        max_file_size: Largest accepted payload in bytes

    Example:
        >>> handler = InputHandler()
        >>> handler.detect_source_type(b"%PDF-1.7 ...")
        'pdf'
        >>> document = handler.load("receipt.heic")
        >>> document.source_type
        'image'
    """

    PDF_EXTENSIONS = {'.pdf'}
    IMAGE_EXTENSIONS = {
        '.jpg', '.jpeg', '.png', '.tiff', '.tif', '.bmp', '.gif', '.webp', '.heic', '.heif'
    }
    TEXT_EXTENSIONS = {'.txt', '.text', '.csv', '.tsv'}

    HEIF_BRANDS = (b'heic', b'heix', b'hevc', b'hevx', b'heif', b'mif1', b'msf1')
    # BITMAPCOREHEADER through BITMAPV5HEADER
    BMP_DIB_HEADER_SIZES = (12, 40, 52, 56, 64, 108, 124)

    def __init__(self, max_file_size_mb: float = 25) -> None:
        self.max_file_size = int(max_file_size_mb * 1024 * 1024)
        self.supported_extensions = self.PDF_EXTENSIONS | self.IMAGE_EXTENSIONS | self.TEXT_EXTENSIONS

        logger.debug(f"InputHandler initialized (max size {format_file_size(self.max_file_size)})")

    def detect_source_type(self, data: bytes, filename: Optional[str] = None) -> str:
        """
        Detect the source type from magic bytes, then from the extension.

        Args:
            data: Raw payload.
            filename: Optional name used when the bytes are not recognized.

        Returns:
            'pdf', 'image' or 'text'.

        Raises:
            UnsupportedSourceTypeError: If neither bytes nor name identify it.
        """
        head = data[:18] if data else b''

        if head.startswith(b'%PDF'):
            return 'pdf'
        if (
            head.startswith(b'\xff\xd8\xff')
            or head.startswith(b'\x89PNG\r\n\x1a\n')
            or head.startswith(b'GIF8')
            or (head.startswith(b'RIFF') and head[8:12] == b'WEBP')
            or head.startswith(b'II*\x00')
            or head.startswith(b'MM\x00*')
            or self._is_bmp(head)
        ):
            return 'image'
        if head[4:8] == b'ftyp' and head[8:12] in self.HEIF_BRANDS:
            return 'image'

        if filename:
            extension = get_file_extension(filename)
            if extension in self.PDF_EXTENSIONS:
                return 'pdf'
            if extension in self.IMAGE_EXTENSIONS:
                return 'image'
            if extension in self.TEXT_EXTENSIONS:
                return 'text'
            raise UnsupportedSourceTypeError(extension or filename, sorted(self.supported_extensions))

        raise UnsupportedSourceTypeError('unknown', list(SOURCE_TYPES))

    def _is_bmp(self, head: bytes) -> bool:
        """Check the BM signature together with a known DIB header size."""
        if len(head) < 18 or not head.startswith(b'BM'):
            return False
        dib_size = struct.unpack_from('<I', head, 14)[0]
        return dib_size in self.BMP_DIB_HEADER_SIZES

    def from_bytes(
        self,
        data: bytes,
        filename: Optional[str] = None,
        source_type: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> RawDocument:
        """
        Wrap a payload in a RawDocument.

        Raises:
            CorruptedInputError: If the payload is empty or too large.
            UnsupportedSourceTypeError: If the type can't be determined.
        """
        name = filename or "<bytes>"
        if not data:
            raise CorruptedInputError(name, "File is empty")
        if len(data) > self.max_file_size:
            raise CorruptedInputError(
                name,
                f"File is {format_file_size(len(data))}, limit is {format_file_size(self.max_file_size)}"
            )

        source_type = source_type or self.detect_source_type(data, filename)

        if source_type == 'text':
            return RawDocument(
                text=data.decode('utf-8', errors='replace'),
                source_type='text',
                filename=filename,
                metadata=dict(metadata or {}),
            )

        return RawDocument(
            data=data,
            source_type=source_type,
            filename=filename,
            metadata=dict(metadata or {}),
        )

    def load(self, filepath: Union[str, Path], source_type: Optional[str] = None) -> RawDocument:
        """
        Read a file from disk into a RawDocument.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            InputError: If the path is not a regular file.
        """
        path = Path(filepath)

        if not path.exists():
            raise FileNotFoundError(str(filepath))
        if not path.is_file():
            raise InputError(f"Path is not a file: {filepath}")

        document = self.from_bytes(path.read_bytes(), filename=path.name, source_type=source_type)
        logger.info(f"Loaded {path.name} as {document.source_type} ({format_file_size(document.size)})")
        return document

    def load_batch(self, directory: Union[str, Path], recursive: bool = False) -> List[RawDocument]:
        """
        Load every supported file in a directory, skipping unreadable ones.
        """
        directory = Path(directory)

        if not directory.is_dir():
            raise InputError(f"Path is not a directory: {directory}")

        pattern = "**/*" if recursive else "*"
        files = sorted(
            p for p in directory.glob(pattern)
            if p.is_file() and get_file_extension(p) in self.supported_extensions
        )
        logger.info(f"Found {len(files)} files to load in {directory}")

        documents = []
        for filepath in files:
            try:
                documents.append(self.load(filepath))
            except InputError as e:
                logger.error(f"Skipping {filepath.name}: {e}")

        return documents
