"""Compression engine for images and PDFs."""

import io
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

import fitz  # PyMuPDF
from PIL import Image

from .imaging import (
    COMPRESSIBLE_EXTENSIONS,
    OutputFormat,
    UnsupportedFormatError,
    default_output_format,
    flatten_to_rgb,
    load_image,
    resolve_output_format,
)
from .search import TargetSizeSearch, encode_at_quality
from .utils import (
    calculate_compression_ratio,
    file_extension,
    format_size,
    get_output_path,
    parse_target_size,
)

logger = logging.getLogger(__name__)

DEFAULT_QUALITY = 0.8


@dataclass
class CompressionResult:
    """Result of compressing one file."""
    success: bool
    input_path: str
    output_path: str
    original_size: int
    compressed_size: int
    compression_ratio: float
    target_size: int
    target_achieved: bool
    iterations: int = 1
    quality: Optional[float] = None
    scale: Optional[float] = None
    output_format: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "input_path": self.input_path,
            "output_path": self.output_path,
            "original_size": self.original_size,
            "original_size_formatted": format_size(self.original_size),
            "compressed_size": self.compressed_size,
            "compressed_size_formatted": format_size(self.compressed_size),
            "compression_ratio": round(self.compression_ratio * 100, 1),
            "target_size": self.target_size,
            "target_size_formatted": format_size(self.target_size) if self.target_size else None,
            "target_achieved": self.target_achieved,
            "iterations": self.iterations,
            "quality": round(self.quality, 3) if self.quality is not None else None,
            "scale": round(self.scale, 3) if self.scale is not None else None,
            "output_format": self.output_format,
            "error": self.error,
        }


class CompressionStage:
    """Enumeration of compression stages for progress reporting."""
    LOADING = "Loading file"
    ENCODING = "Encoding image"
    OPTIMIZING_OBJECTS = "Optimizing objects"
    PROCESSING_IMAGES = "Processing images"
    FINALIZING = "Finalizing"


def classify_file(path: Union[str, Path]) -> str:
    """
    Decide whether a file is compressed as an image or a PDF.

    Raises:
        UnsupportedFormatError: For any other file type
    """
    ext = file_extension(path)
    if ext == "pdf":
        return "pdf"
    if ext in COMPRESSIBLE_EXTENSIONS:
        return "image"
    raise UnsupportedFormatError(
        "Unsupported file format. Please select an image "
        "(JPG, PNG, GIF, BMP, WEBP) or PDF file."
    )


def resolve_target(target_text: Optional[str], original_size: int) -> int:
    """
    Turn the user's target size text into bytes and check it is usable.

    Args:
        target_text: Text such as "500KB", or empty for no target
        original_size: Size of the file being compressed

    Returns:
        Target size in bytes, 0 when no target was given

    Raises:
        ValueError: If the text is not a size or is not below the original size
    """
    if not target_text or not target_text.strip():
        return 0

    target_bytes = parse_target_size(target_text)
    if target_bytes == 0:
        raise ValueError(
            "Invalid target size format. Please use formats like "
            "'500KB', '2MB', '1.5GB', or leave empty."
        )

    if target_bytes >= original_size:
        raise ValueError(
            f"Target size ({format_size(target_bytes)}) should be smaller than "
            f"the original file size ({format_size(original_size)}). "
            "Please enter a smaller target size."
        )

    return target_bytes


class ImageCompressor:
    """
    Image compressor with optional target size.

    Without a target, the image is encoded once at a fixed quality. With a
    target, TargetSizeSearch chooses quality and scale.
    """

    def __init__(
        self,
        image_path: Union[str, Path],
        target_size: int = 0,
        quality: float = DEFAULT_QUALITY,
        output_format: Optional[str] = None,
        progress_callback: Optional[Callable[[str, int], None]] = None,
    ):
        """
        Initialize compressor.

        Args:
            image_path: Path to input image
            target_size: Target size in bytes, 0 for quality-only compression
            quality: Quality in [0.1, 1.0] used when there is no target
            output_format: Output format name, defaults to the source format
            progress_callback: Optional callback for progress updates (stage, percentage)
        """
        self.image_path = Path(image_path)
        self.target_size = target_size
        self.quality = quality
        self.progress_callback = progress_callback

        if not self.image_path.exists():
            raise FileNotFoundError(f"Image file not found: {image_path}")

        if output_format:
            self.output_format = resolve_output_format(output_format)
        else:
            self.output_format = default_output_format(self.image_path)

    def _report_progress(self, stage: str, percentage: int):
        """Report progress if callback is set."""
        if self.progress_callback:
            self.progress_callback(stage, percentage)

    def default_output_path(self) -> Path:
        return get_output_path(
            self.image_path, None, extension=OutputFormat.EXTENSIONS[self.output_format]
        )

    def compress(self, output_path: Union[str, Path, None] = None) -> CompressionResult:
        """
        Compress the image and write it to ``output_path``.

        Args:
            output_path: Path for the output image, defaults to <stem>_compressed.<ext>

        Returns:
            CompressionResult with compression details
        """
        output_path = Path(output_path) if output_path else self.default_output_path()
        original_size = self.image_path.stat().st_size

        self._report_progress(CompressionStage.LOADING, 10)
        image = load_image(self.image_path)

        if self.target_size > 0:
            logger.info(
                "Searching for %s output of %s from %s",
                self.output_format, format_size(self.target_size), self.image_path.name,
            )
            searcher = TargetSizeSearch(progress_callback=self.progress_callback)
            attempt = searcher.search(image, self.target_size, self.output_format)
            target_achieved = searcher.within_tolerance(attempt.result_bytes, self.target_size)
            iterations = searcher.iterations
        else:
            self._report_progress(CompressionStage.ENCODING, 25)
            attempt = encode_at_quality(image, self.quality, self.output_format)
            target_achieved = True
            iterations = 1

        self._report_progress(CompressionStage.FINALIZING, 90)
        output_path.write_bytes(attempt.artifact)
        self._report_progress(CompressionStage.FINALIZING, 100)

        logger.info(
            "Compressed %s: %s -> %s",
            self.image_path.name, format_size(original_size), format_size(attempt.result_bytes),
        )

        return CompressionResult(
            success=True,
            input_path=str(self.image_path),
            output_path=str(output_path),
            original_size=original_size,
            compressed_size=attempt.result_bytes,
            compression_ratio=calculate_compression_ratio(original_size, attempt.result_bytes),
            target_size=self.target_size,
            target_achieved=target_achieved,
            iterations=iterations,
            quality=attempt.settings.quality,
            scale=attempt.settings.scale,
            output_format=self.output_format,
        )


class PDFCompressor:
    """
    PDF compressor.

    Re-saves the document with garbage collection and stream deflation. When a
    target size is set and that is not enough, embedded images are re-encoded
    as JPEG at decreasing quality until the file fits.
    """

    # JPEG quality ladder for embedded images
    QUALITY_LEVELS = [95, 85, 75, 65, 55, 45, 35, 25]

    SAVE_OPTIONS = {
        "garbage": 4,
        "deflate": True,
        "clean": True,
        "deflate_images": True,
        "deflate_fonts": True,
    }

    def __init__(
        self,
        pdf_path: Union[str, Path],
        target_size: int = 0,
        progress_callback: Optional[Callable[[str, int], None]] = None,
    ):
        """
        Initialize compressor.

        Args:
            pdf_path: Path to input PDF
            target_size: Target size in bytes, 0 to only re-save
            progress_callback: Optional callback for progress updates (stage, percentage)
        """
        self.pdf_path = Path(pdf_path)
        self.target_size = target_size
        self.progress_callback = progress_callback

        if not self.pdf_path.exists():
            raise FileNotFoundError(f"PDF file not found: {pdf_path}")

    def _report_progress(self, stage: str, percentage: int):
        """Report progress if callback is set."""
        if self.progress_callback:
            self.progress_callback(stage, percentage)

    def compress(self, output_path: Union[str, Path, None] = None) -> CompressionResult:
        """
        Compress the PDF and write it to ``output_path``.

        Args:
            output_path: Path for output PDF, defaults to <stem>_compressed.pdf

        Returns:
            CompressionResult with compression details
        """
        output_path = Path(output_path) if output_path else get_output_path(self.pdf_path, None)
        original_size = self.pdf_path.stat().st_size

        self._report_progress(CompressionStage.OPTIMIZING_OBJECTS, 25)
        best_bytes = self._resave()
        best_quality = None
        iterations = 1

        if self.target_size > 0 and len(best_bytes) > self.target_size:
            for index, quality in enumerate(self.QUALITY_LEVELS):
                iterations += 1
                progress = 25 + int(((index + 1) / len(self.QUALITY_LEVELS)) * 65)
                self._report_progress(CompressionStage.PROCESSING_IMAGES, progress)

                candidate = self._recompress_images(quality)
                logger.debug("Embedded images at quality %d: %d bytes", quality, len(candidate))

                if len(candidate) < len(best_bytes):
                    best_bytes = candidate
                    best_quality = quality
                if len(candidate) <= self.target_size:
                    break

        self._report_progress(CompressionStage.FINALIZING, 90)

        # Never hand back something bigger than the input
        if len(best_bytes) >= original_size:
            shutil.copy2(self.pdf_path, output_path)
            compressed_size = original_size
            best_quality = None
        else:
            output_path.write_bytes(best_bytes)
            compressed_size = len(best_bytes)

        self._report_progress(CompressionStage.FINALIZING, 100)

        logger.info(
            "Compressed %s: %s -> %s",
            self.pdf_path.name, format_size(original_size), format_size(compressed_size),
        )

        return CompressionResult(
            success=True,
            input_path=str(self.pdf_path),
            output_path=str(output_path),
            original_size=original_size,
            compressed_size=compressed_size,
            compression_ratio=calculate_compression_ratio(original_size, compressed_size),
            target_size=self.target_size,
            target_achieved=self.target_size == 0 or compressed_size <= self.target_size,
            iterations=iterations,
            quality=best_quality / 100 if best_quality else None,
            output_format="pdf",
        )

    def _resave(self) -> bytes:
        with fitz.open(self.pdf_path) as doc:
            return doc.tobytes(**self.SAVE_OPTIONS)

    def _recompress_images(self, quality: int) -> bytes:
        """Re-encode every embedded image as JPEG at ``quality`` and return the saved PDF."""
        with fitz.open(self.pdf_path) as doc:
            images_processed = 0
            seen = set()

            for page in doc:
                for img in page.get_images(full=True):
                    xref = img[0]
                    if xref in seen:
                        continue
                    seen.add(xref)

                    base_image = doc.extract_image(xref)
                    if not base_image:
                        continue

                    image_bytes = base_image["image"]
                    try:
                        pil_image = Image.open(io.BytesIO(image_bytes))
                        pil_image.load()
                    except (OSError, ValueError) as e:
                        logger.warning("Skipping embedded image xref %d: %s", xref, e)
                        continue

                    buffer = io.BytesIO()
                    flatten_to_rgb(pil_image).save(
                        buffer, format="JPEG", quality=quality, optimize=True
                    )
                    new_image_bytes = buffer.getvalue()

                    # Only replace if smaller
                    if len(new_image_bytes) < len(image_bytes):
                        page.replace_image(xref, stream=new_image_bytes)
                        images_processed += 1

            logger.debug("Re-encoded %d images at quality %d", images_processed, quality)
            return doc.tobytes(**self.SAVE_OPTIONS)


def compress_file(
    input_path: Union[str, Path],
    output_path: Union[str, Path, None] = None,
    target_size: int = 0,
    quality: float = DEFAULT_QUALITY,
    output_format: Optional[str] = None,
    progress_callback: Optional[Callable[[str, int], None]] = None,
) -> CompressionResult:
    """
    Convenience function to compress an image or PDF.

    Args:
        input_path: Path to input file
        output_path: Path for output file, or None for the default name
        target_size: Target size in bytes, 0 for no target
        quality: Quality used when there is no target (images only)
        output_format: Output format for images
        progress_callback: Optional progress callback

    Returns:
        CompressionResult
    """
    if classify_file(input_path) == "pdf":
        compressor = PDFCompressor(input_path, target_size, progress_callback)
    else:
        compressor = ImageCompressor(
            input_path, target_size, quality, output_format, progress_callback
        )
    return compressor.compress(output_path)
