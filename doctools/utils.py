"""Utility functions shared by the document tools."""

import math
import re
from pathlib import Path
from typing import Optional, Union

KB = 1024
MB = 1024 * 1024
GB = 1024 * 1024 * 1024

_LEADING_NUMBER = re.compile(r'^(\d+(?:\.\d+)?)')


def parse_target_size(size_str: str) -> int:
    """
    Parse a free-form target size string to bytes.

    Accepts inputs like "500KB", "2MB", "1.5GB", "2048b" or a bare number.
    A bare number below 1000 is read as kilobytes and anything from 1000 up
    as bytes. That rule is a convenience kept for compatibility with the
    original form field, not a general size format.

    Args:
        size_str: Size string typed by the user

    Returns:
        Size in bytes, or 0 when the string is empty or cannot be parsed
    """
    if not size_str:
        return 0

    clean = size_str.strip().lower()
    if not clean:
        return 0

    match = _LEADING_NUMBER.match(clean)
    if not match:
        return 0

    value = float(match.group(1))
    if value <= 0:
        return 0

    if "gb" in clean:
        multiplier = GB
    elif "mb" in clean:
        multiplier = MB
    elif "kb" in clean:
        multiplier = KB
    elif "b" in clean:
        multiplier = 1
    elif value < 1000:
        multiplier = KB
    else:
        multiplier = 1

    size = value * multiplier
    if not math.isfinite(size):
        return 0

    return int(round(size))


def format_size(size_bytes: int) -> str:
    """
    Format bytes to human-readable string.

    Args:
        size_bytes: Size in bytes

    Returns:
        Human-readable size string
    """
    if size_bytes < KB:
        return f"{size_bytes} B"
    elif size_bytes < MB:
        return f"{size_bytes / KB:.1f} KB"
    elif size_bytes < GB:
        return f"{size_bytes / MB:.2f} MB"
    else:
        return f"{size_bytes / GB:.2f} GB"


def calculate_compression_ratio(original_size: int, compressed_size: int) -> float:
    """
    Calculate compression ratio.

    Args:
        original_size: Original file size in bytes
        compressed_size: Compressed file size in bytes

    Returns:
        Compression ratio (e.g., 0.65 means 65% reduction)
    """
    if original_size == 0:
        return 0.0
    return 1 - (compressed_size / original_size)


def get_output_path(
    input_path: Union[str, Path],
    output_path: Union[str, Path, None],
    suffix: str = "_compressed",
    extension: Optional[str] = None,
) -> Path:
    """
    Determine output file path.

    Args:
        input_path: Input file path
        output_path: Explicit output path or None
        suffix: Suffix to add if no output path specified
        extension: Extension for the generated name, without the dot.
            Defaults to the input's own extension.

    Returns:
        Output file path
    """
    input_path = Path(input_path)

    if output_path:
        return Path(output_path)

    ext = f".{extension}" if extension else input_path.suffix
    return input_path.parent / f"{input_path.stem}{suffix}{ext}"


def file_extension(path: Union[str, Path]) -> str:
    """Lowercased extension of ``path`` without the leading dot."""
    return Path(path).suffix.lower().lstrip(".")
