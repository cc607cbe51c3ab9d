"""
Image Processor Module.

This module handles photographed and scanned invoice images:
    - Decoding (including HEIC/HEIF phone photos)
    - Quality assessment (blur, glare, skew, brightness, contrast)
    - Generation of OCR-oriented variants

Supports: JPG, JPEG, PNG, TIFF, BMP, GIF, WEBP, HEIC, HEIF

Author: ML Engineering Team
"""

import io
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np
from PIL import Image, ImageFilter, ImageOps
from pillow_heif import register_heif_opener

from ..utils.exceptions import CorruptedInputError
from ..utils.helpers import clamp
from ..utils.logger import get_logger

register_heif_opener()

logger = get_logger(__name__)

HEIF_FORMATS = {'HEIF', 'HEIC', 'AVIF'}


@dataclass
class QualityAssessment:
    """
    Quality measurements of one source image. All scores are in [0, 1].

    Attributes:
        blur_score: 1 means no edges at all
        glare_score: Share of near-white pixels, scaled
        skew_score: Coarse proxy from row luminance variance
        brightness: Mean intensity
        contrast: Normalized intensity spread
        resolution: {'width': ..., 'height': ...}
        doc_detected: Whether the image looks like a document
        overall_quality: Weighted combination of the above
    """
    blur_score: float = 0.0
    glare_score: float = 0.0
    skew_score: float = 0.0
    brightness: float = 0.5
    contrast: float = 0.0
    resolution: Dict[str, int] = field(default_factory=lambda: {'width': 0, 'height': 0})
    doc_detected: bool = False
    overall_quality: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'blur_score': round(self.blur_score, 4),
            'glare_score': round(self.glare_score, 4),
            'skew_score': round(self.skew_score, 4),
            'brightness': round(self.brightness, 4),
            'contrast': round(self.contrast, 4),
            'resolution': dict(self.resolution),
            'doc_detected': self.doc_detected,
            'overall_quality': round(self.overall_quality, 4),
        }


@dataclass
class ImageVariant:
    """One preprocessed raster handed to OCR."""
    name: str
    image: Image.Image
    description: str = ""


def overall_quality(
    blur: float,
    glare: float,
    skew: float,
    brightness: float,
    contrast: float
) -> float:
    """
    Combine individual scores into one quality value.

    Blur and glare only count above 0.5 / 0.4, brightness only when it is
    more than 0.3 away from mid-grey, skew above 0.4 at half weight, and
    contrast above 0.3 earns a bonus.
    """
    blur_penalty = blur if blur > 0.5 else 0.0
    glare_penalty = glare if glare > 0.4 else 0.0
    brightness_delta = abs(brightness - 0.5)
    brightness_penalty = brightness_delta if brightness_delta > 0.3 else 0.0
    contrast_bonus = 0.2 if contrast > 0.3 else 0.0
    skew_penalty = skew * 0.5 if skew > 0.4 else 0.0

    score = (
        1.0
        - blur_penalty * 0.3
        - glare_penalty * 0.2
        - brightness_penalty * 0.2
        + contrast_bonus * 0.2
        - skew_penalty * 0.1
    )
    return clamp(score)


class ImageProcessor:
    """
    Quality assessment and variant generation for invoice images.

    Args:
        target_long_edge: Long edge for oversized images after resize.
        min_long_edge: Images with a shorter long edge are upscaled to it.
        max_long_edge: Images with a longer long edge are downscaled.
        receipt_threshold: Binarization threshold for receipt_mode.
        sharpen_blur_threshold: Blur score above which the sharpened
            variant is added.

    Example:
        >>> processor = ImageProcessor()
        >>> image = processor.load_image(data)
        >>> quality = processor.assess_quality(image)
        >>> [v.name for v in processor.generate_variants(image, quality)]
        ['standard', 'high_contrast', 'receipt_mode']
    """

    def __init__(
        self,
        target_long_edge: int = 2800,
        min_long_edge: int = 800,
        max_long_edge: int = 4000,
        receipt_threshold: int = 140,
        sharpen_blur_threshold: float = 0.3
    ) -> None:
        self.target_long_edge = target_long_edge
        self.min_long_edge = min_long_edge
        self.max_long_edge = max_long_edge
        self.receipt_threshold = receipt_threshold
        self.sharpen_blur_threshold = sharpen_blur_threshold

    # =========================================================================
    # LOADING
    # =========================================================================

    def load_image(self, data: bytes, source: str = "<bytes>") -> Image.Image:
        """
        Decode image bytes.

        HEIC/HEIF photos are transcoded to JPEG first so every later step
        sees an ordinary raster.

        Raises:
            CorruptedInputError: If the bytes cannot be decoded.
        """
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except Exception as e:
            logger.error(f"Failed to decode image {source}: {e}")
            raise CorruptedInputError(source, str(e))

        if (image.format or "").upper() in HEIF_FORMATS:
            image = self._transcode_to_jpeg(image)
            logger.debug(f"Transcoded HEIF image {source} to JPEG")

        return image

    @staticmethod
    def _transcode_to_jpeg(image: Image.Image) -> Image.Image:
        buffer = io.BytesIO()
        ImageOps.exif_transpose(image).convert('RGB').save(buffer, format='JPEG', quality=95)
        buffer.seek(0)
        converted = Image.open(buffer)
        converted.load()
        return converted

    # =========================================================================
    # QUALITY
    # =========================================================================

    def assess_quality(self, image: Image.Image) -> QualityAssessment:
        """
        Measure blur, glare, skew, brightness and contrast.

        Edge variance is sampled on every second pixel, which is plenty
        for a blur estimate on photos of paper.
        """
        rgb = np.asarray(image.convert('RGB'), dtype=np.float64)
        gray = np.asarray(image.convert('L'), dtype=np.float64)
        height, width = gray.shape

        brightness = float(rgb.mean(axis=(0, 1)).mean() / 255.0)
        contrast = clamp(float(rgb.std(axis=(0, 1)).mean() / 80.0))

        blur = self._blur_score(gray)

        total_pixels = gray.size or 1
        near_white = float(np.count_nonzero(gray >= 245))
        glare = clamp(near_white / total_pixels * 10.0)

        skew = self._skew_score(gray)

        quality = QualityAssessment(
            blur_score=blur,
            glare_score=glare,
            skew_score=skew,
            brightness=brightness,
            contrast=contrast,
            resolution={'width': int(width), 'height': int(height)},
            doc_detected=contrast > 0.3 and blur < 0.6,
            overall_quality=overall_quality(blur, glare, skew, brightness, contrast),
        )

        logger.debug(
            f"Image quality: overall={quality.overall_quality:.2f} blur={blur:.2f} "
            f"glare={glare:.2f} skew={skew:.2f} brightness={brightness:.2f} contrast={contrast:.2f}"
        )
        return quality

    @staticmethod
    def _blur_score(gray: np.ndarray) -> float:
        if gray.shape[0] < 3 or gray.shape[1] < 3:
            return 1.0

        center = gray[1:-1:2, 1:-1:2]
        left = gray[1:-1:2, 0:-2:2]
        right = gray[1:-1:2, 2::2]
        up = gray[0:-2:2, 1:-1:2]
        down = gray[2::2, 1:-1:2]

        laplacian = np.abs(4 * center - left - right - up - down)
        edge_variance = float(laplacian.var())
        return clamp(1.0 - edge_variance / 2000.0)

    @staticmethod
    def _skew_score(gray: np.ndarray, samples: int = 10) -> float:
        height = gray.shape[0]
        if height == 0:
            return 0.0
        rows = np.linspace(0, height - 1, num=min(samples, height)).astype(int)
        row_variance = float(np.mean([gray[row].var() for row in rows]))
        return clamp(1.0 - row_variance / 3000.0)

    @staticmethod
    def quality_failure_reasons(quality: QualityAssessment) -> List[str]:
        """
        Problems worth reporting to the user. None of them stop the run.
        """
        reasons = []
        if quality.blur_score > 0.7:
            reasons.append("too_blurry")
        if quality.glare_score > 0.6:
            reasons.append("glare_detected")
        if quality.brightness < 0.15:
            reasons.append("image_too_dark")
        if quality.brightness > 0.85:
            reasons.append("image_too_bright")
        if not quality.doc_detected and quality.skew_score > 0.5:
            reasons.append("document_not_detected")
        if quality.resolution.get('width', 0) < 400 or quality.resolution.get('height', 0) < 400:
            reasons.append("low_resolution")
        return reasons

    # =========================================================================
    # VARIANTS
    # =========================================================================

    def generate_variants(
        self,
        image: Image.Image,
        quality: Optional[QualityAssessment] = None
    ) -> List[ImageVariant]:
        """
        Produce the OCR variants of one image, in the order they should be
        tried.

        Always: standard, high_contrast, receipt_mode. The sharpened
        variant is added only for blurry images.

        Args:
            image: Source image.
            quality: Assessment of `image`; computed when omitted.

        Returns:
            Ordered list of ImageVariant.
        """
        if quality is None:
            quality = self.assess_quality(image)

        base = self._resize(ImageOps.exif_transpose(image).convert('L'))
        normalized = ImageOps.autocontrast(base)

        variants = [
            ImageVariant(
                name="standard",
                image=normalized
                .filter(ImageFilter.UnsharpMask(radius=1.2, percent=100, threshold=2))
                .filter(ImageFilter.MedianFilter(size=3)),
                description="grayscale, normalized, mild sharpen, light denoise",
            ),
            ImageVariant(
                name="high_contrast",
                image=self._linear(normalized, 1.4, -30)
                .filter(ImageFilter.UnsharpMask(radius=1.5, percent=150, threshold=2))
                .filter(ImageFilter.MedianFilter(size=3)),
                description="contrast stretch x1.4 -30, stronger sharpen",
            ),
            ImageVariant(
                name="receipt_mode",
                image=self._threshold(self._linear(normalized, 1.3, -20), self.receipt_threshold)
                .filter(ImageFilter.UnsharpMask(radius=0.8, percent=80, threshold=2)),
                description=f"binarized at {self.receipt_threshold} for thermal receipts",
            ),
        ]

        if quality.blur_score > self.sharpen_blur_threshold:
            variants.append(ImageVariant(
                name="sharpened",
                image=normalized
                .filter(ImageFilter.UnsharpMask(radius=2.5, percent=200, threshold=1))
                .filter(ImageFilter.MedianFilter(size=3)),
                description="aggressive unsharp mask for blurry photos",
            ))

        logger.debug(f"Generated {len(variants)} variants: {[v.name for v in variants]}")
        return variants

    def _resize(self, image: Image.Image) -> Image.Image:
        width, height = image.size
        long_edge = max(width, height)
        if long_edge == 0:
            return image

        if long_edge > self.max_long_edge:
            ratio = self.target_long_edge / long_edge
        elif long_edge < self.min_long_edge:
            ratio = self.min_long_edge / long_edge
        else:
            return image

        new_size = (max(1, int(width * ratio)), max(1, int(height * ratio)))
        logger.debug(f"Resized image from {width}x{height} to {new_size[0]}x{new_size[1]}")
        return image.resize(new_size, Image.LANCZOS)

    @staticmethod
    def _linear(image: Image.Image, gain: float, offset: float) -> Image.Image:
        return image.point(lambda x: max(0, min(255, int(gain * x + offset))))

    @staticmethod
    def _threshold(image: Image.Image, level: int) -> Image.Image:
        return image.point(lambda x: 255 if x > level else 0)
