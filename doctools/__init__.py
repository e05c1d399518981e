"""
Smart Doc Tools

Local tools for everyday document chores: combine images into a PDF,
extract page ranges from a PDF, and compress images or PDFs toward a
target size.
"""

__version__ = "1.0.0"
__author__ = "Smart Doc Tools Team"

from .compressor import CompressionResult, ImageCompressor, PDFCompressor, compress_file
from .converter import ConversionResult, images_to_pdf
from .imaging import EncodeAttempt, EncodeSettings, OutputFormat, UnsupportedFormatError, encode_at
from .search import SearchState, TargetSizeSearch, encode_at_quality, search_for_target
from .splitter import PageRange, PDFSplitter, RangeValidationError, validate_ranges
from .utils import parse_target_size

__all__ = [
    "CompressionResult",
    "ImageCompressor",
    "PDFCompressor",
    "compress_file",
    "ConversionResult",
    "images_to_pdf",
    "EncodeAttempt",
    "EncodeSettings",
    "OutputFormat",
    "UnsupportedFormatError",
    "encode_at",
    "SearchState",
    "TargetSizeSearch",
    "encode_at_quality",
    "search_for_target",
    "PageRange",
    "PDFSplitter",
    "RangeValidationError",
    "validate_ranges",
    "parse_target_size",
]
