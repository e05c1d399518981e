"""Convert a batch of images into a single PDF."""

import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

import fitz  # PyMuPDF

from .imaging import flatten_to_rgb, is_image_file, load_image
from .utils import format_size

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_NAME = "converted-images.pdf"

# Images fill at most this share of the page in either direction
PAGE_FILL = 0.9
EMBED_QUALITY = 92


@dataclass
class ConversionResult:
    """Result of an images-to-PDF conversion."""
    output_path: str
    pages_written: int
    output_size: int
    skipped: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "output_path": self.output_path,
            "pages_written": self.pages_written,
            "output_size": self.output_size,
            "output_size_formatted": format_size(self.output_size),
            "skipped": self.skipped,
        }


def page_size_for(width: int, height: int):
    """A4 page in points, landscape for images wider than they are tall."""
    page_width, page_height = fitz.paper_size("a4")
    if width > height:
        return page_height, page_width
    return page_width, page_height


def fit_rect(img_width: int, img_height: int, page_width: float, page_height: float) -> fitz.Rect:
    """Scale the image to fit the page with a margin and centre it."""
    ratio = min(page_width / img_width, page_height / img_height) * PAGE_FILL
    width = img_width * ratio
    height = img_height * ratio
    x = (page_width - width) / 2
    y = (page_height - height) / 2
    return fitz.Rect(x, y, x + width, y + height)


def images_to_pdf(
    image_paths: Sequence[Union[str, Path]],
    output_path: Union[str, Path] = DEFAULT_OUTPUT_NAME,
    progress_callback: Optional[Callable[[str, int], None]] = None,
) -> ConversionResult:
    """
    Put each image on its own page of a new PDF.

    Args:
        image_paths: Images in page order; non-image files are skipped
        output_path: Where to write the PDF
        progress_callback: Optional callback for progress updates (stage, percentage)

    Returns:
        ConversionResult

    Raises:
        ValueError: If none of the inputs is an image
    """
    output_path = Path(output_path)
    images = [Path(p) for p in image_paths if is_image_file(p)]
    skipped = [str(p) for p in image_paths if not is_image_file(p)]

    for name in skipped:
        logger.warning("Skipping non-image file: %s", name)

    if not images:
        raise ValueError("No images to convert. Please add JPG, PNG, GIF, BMP or WEBP files.")

    with fitz.open() as doc:
        for index, image_path in enumerate(images):
            image = flatten_to_rgb(load_image(image_path))

            page_width, page_height = page_size_for(image.width, image.height)
            page = doc.new_page(width=page_width, height=page_height)

            buffer = io.BytesIO()
            image.save(buffer, format="JPEG", quality=EMBED_QUALITY)
            page.insert_image(
                fit_rect(image.width, image.height, page_width, page_height),
                stream=buffer.getvalue(),
            )

            if progress_callback:
                progress_callback("Converting images", int((index + 1) / len(images) * 100))

        doc.save(output_path, garbage=3, deflate=True)

    output_size = output_path.stat().st_size
    logger.info("Wrote %d page(s) to %s (%s)", len(images), output_path, format_size(output_size))

    return ConversionResult(
        output_path=str(output_path),
        pages_written=len(images),
        output_size=output_size,
        skipped=skipped,
    )
