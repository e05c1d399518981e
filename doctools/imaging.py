"""Image encoding helpers: output formats and the size estimator."""

import io
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from PIL import Image, ImageOps

from .utils import file_extension

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "bmp", "webp", "tif", "tiff"}


class UnsupportedFormatError(ValueError):
    """Raised when a file or output format cannot be handled."""


class OutputFormat:
    """Output formats the compressor can encode to."""
    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"

    ALL = (JPEG, PNG, WEBP)

    PIL_NAMES = {JPEG: "JPEG", PNG: "PNG", WEBP: "WEBP"}
    MIME_TYPES = {JPEG: "image/jpeg", PNG: "image/png", WEBP: "image/webp"}
    EXTENSIONS = {JPEG: "jpg", PNG: "png", WEBP: "webp"}


_FORMAT_ALIASES = {
    "jpg": OutputFormat.JPEG,
    "jpeg": OutputFormat.JPEG,
    "png": OutputFormat.PNG,
    "webp": OutputFormat.WEBP,
}

# Browsers cannot encode GIF or BMP from a canvas and fall back to PNG.
_DEFAULT_FOR_SOURCE = dict(_FORMAT_ALIASES, gif=OutputFormat.PNG, bmp=OutputFormat.PNG)

COMPRESSIBLE_EXTENSIONS = frozenset(_DEFAULT_FOR_SOURCE)


def resolve_output_format(name: str) -> str:
    """
    Map a format name or extension to an OutputFormat value.

    Raises:
        UnsupportedFormatError: If the name is not a supported output format
    """
    key = (name or "").strip().lower().lstrip(".")
    if key not in _FORMAT_ALIASES:
        raise UnsupportedFormatError(
            f"Unsupported output format: {name}. "
            f"Choose one of: {', '.join(OutputFormat.ALL)}"
        )
    return _FORMAT_ALIASES[key]


def default_output_format(path: Union[str, Path]) -> str:
    """Pick the output format for a source image based on its extension."""
    ext = file_extension(path)
    if ext not in _DEFAULT_FOR_SOURCE:
        raise UnsupportedFormatError(
            f"Unsupported image format: .{ext}. "
            "Please select a JPG, PNG, GIF, BMP or WEBP image."
        )
    return _DEFAULT_FOR_SOURCE[ext]


def is_image_file(path: Union[str, Path]) -> bool:
    return file_extension(path) in IMAGE_EXTENSIONS


@dataclass(frozen=True)
class EncodeSettings:
    """Quality and downscale factor for one encode attempt."""
    quality: float
    scale: float


@dataclass
class EncodeAttempt:
    """Outcome of encoding an image with one set of settings."""
    settings: EncodeSettings
    result_bytes: int
    artifact: bytes
    iteration: int = 0


def load_image(path: Union[str, Path]) -> Image.Image:
    """Open an image, apply its EXIF orientation and load the pixels."""
    with Image.open(path) as img:
        img.load()
        return ImageOps.exif_transpose(img)


def flatten_to_rgb(image: Image.Image) -> Image.Image:
    """Convert an image to RGB, compositing any transparency onto white."""
    if image.mode in ("RGBA", "P", "LA"):
        background = Image.new("RGB", image.size, (255, 255, 255))
        if image.mode == "P":
            image = image.convert("RGBA")
        if image.mode in ("RGBA", "LA"):
            background.paste(image, mask=image.split()[-1])
            return background
        return image.convert("RGB")
    if image.mode != "RGB":
        return image.convert("RGB")
    return image


def scaled_dimensions(width: int, height: int, scale: float):
    """Pixel dimensions after scaling, floored and never below one pixel."""
    return (
        max(1, math.floor(width * scale)),
        max(1, math.floor(height * scale)),
    )


def _prepare_for_format(image: Image.Image, fmt: str) -> Image.Image:
    if fmt == OutputFormat.JPEG:
        return flatten_to_rgb(image)
    if image.mode not in ("RGB", "RGBA", "L", "LA", "P"):
        return image.convert("RGBA" if "A" in image.getbands() else "RGB")
    if fmt == OutputFormat.WEBP and image.mode in ("P", "LA"):
        return image.convert("RGBA")
    return image


def encode_at(image: Image.Image, settings: EncodeSettings, fmt: str) -> EncodeAttempt:
    """
    Encode an image at the given quality and scale.

    The image is resampled to floor(width * scale) x floor(height * scale)
    and encoded in memory. PNG output ignores quality since the format is
    lossless; only the scale changes its size.

    Args:
        image: Decoded source image
        settings: Quality in [0.1, 1.0] and scale in (0, 1.0]
        fmt: One of OutputFormat.ALL

    Returns:
        EncodeAttempt holding the encoded bytes and their length
    """
    new_size = scaled_dimensions(image.width, image.height, settings.scale)
    working = image
    if new_size != image.size:
        working = image.resize(new_size, Image.Resampling.LANCZOS)

    working = _prepare_for_format(working, fmt)

    buffer = io.BytesIO()
    if fmt == OutputFormat.PNG:
        working.save(buffer, format="PNG", optimize=True)
    else:
        working.save(
            buffer,
            format=OutputFormat.PIL_NAMES[fmt],
            quality=int(round(settings.quality * 100)),
        )

    data = buffer.getvalue()
    logger.debug(
        "Encoded %s at quality=%.3f scale=%.3f (%dx%d): %d bytes",
        fmt, settings.quality, settings.scale, new_size[0], new_size[1], len(data),
    )
    return EncodeAttempt(settings=settings, result_bytes=len(data), artifact=data)
