"""Page range extraction for PDFs."""

import logging
import re
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

import fitz  # PyMuPDF

logger = logging.getLogger(__name__)

_RANGE_PATTERN = re.compile(r'^\s*(\d+)\s*(?:-\s*(\d+)\s*)?(?::(.*))?$')


class RangeValidationError(ValueError):
    """Raised when requested page ranges cannot be extracted."""


@dataclass
class PageRange:
    """A page range as requested by the user (1-based, inclusive)."""
    start: int
    end: int
    name: str = ""


@dataclass
class ValidatedRange:
    """A checked page range with its final output name."""
    start: int
    end: int
    name: str


@dataclass
class ExtractedFile:
    """A PDF produced from one page range."""
    name: str
    data: bytes
    start: int
    end: int

    @property
    def range_label(self) -> str:
        return f"{self.start}-{self.end}"

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "range": self.range_label,
            "size": len(self.data),
        }


def default_range_name(start: int, end: int) -> str:
    return f"pages_{start}_to_{end}"


def parse_page_range(text: str) -> PageRange:
    """
    Parse ``START[-END][:NAME]`` into a PageRange.

    "3" is page 3 only, "3-7" pages 3 to 7, "3-7:intro" the same range
    written to intro.pdf.

    Raises:
        RangeValidationError: If the bounds are not whole numbers
    """
    match = _RANGE_PATTERN.match(text or "")
    if not match:
        raise RangeValidationError(
            f"Invalid page range: {text!r}. Use START-END or START-END:NAME, e.g. 1-5:intro"
        )
    start = int(match.group(1))
    end = int(match.group(2)) if match.group(2) else start
    name = (match.group(3) or "").strip()
    return PageRange(start=start, end=end, name=name)


def find_duplicate_names(ranges: Sequence[PageRange]) -> List[str]:
    """Non-empty names used more than once, in first-seen order."""
    seen = set()
    duplicates = []
    for page_range in ranges:
        name = page_range.name.strip()
        if not name:
            continue
        if name in seen and name not in duplicates:
            duplicates.append(name)
        seen.add(name)
    return duplicates


def validate_ranges(total_pages: int, ranges: Sequence[PageRange]) -> List[ValidatedRange]:
    """
    Check every requested range before any page is copied.

    Names are compared as trimmed, case-sensitive strings; empty names are
    allowed any number of times and default to ``pages_{start}_to_{end}``.

    Args:
        total_pages: Page count of the source PDF
        ranges: Requested ranges

    Returns:
        Validated ranges in request order

    Raises:
        RangeValidationError: On duplicate names or any out-of-bounds range
    """
    if not ranges:
        raise RangeValidationError("Please add at least one page range.")

    duplicates = find_duplicate_names(ranges)
    if duplicates:
        raise RangeValidationError(
            f"Duplicate file names found: {', '.join(duplicates)}. Please use unique names."
        )

    validated = []
    for number, page_range in enumerate(ranges, start=1):
        start, end = page_range.start, page_range.end
        if not (1 <= start <= end <= total_pages):
            raise RangeValidationError(
                f"Please enter valid page numbers for range {number}."
            )
        name = page_range.name.strip() or default_range_name(start, end)
        validated.append(ValidatedRange(start=start, end=end, name=name))

    return validated


class PDFSplitter:
    """Copies page ranges of a PDF into new documents."""

    def __init__(
        self,
        pdf_path: Union[str, Path],
        progress_callback: Optional[Callable[[str, int], None]] = None,
    ):
        """
        Initialize splitter with PDF path.

        Args:
            pdf_path: Path to the PDF file
            progress_callback: Optional callback for progress updates (stage, percentage)
        """
        self.pdf_path = Path(pdf_path)
        self.progress_callback = progress_callback

        if not self.pdf_path.exists():
            raise FileNotFoundError(f"PDF file not found: {pdf_path}")

        try:
            with fitz.open(self.pdf_path) as doc:
                self.page_count = len(doc)
        except (fitz.FileDataError, RuntimeError) as e:
            raise ValueError(f"Failed to open PDF: {e}") from e

    def _report_progress(self, stage: str, percentage: int):
        """Report progress if callback is set."""
        if self.progress_callback:
            self.progress_callback(stage, percentage)

    def extract(self, ranges: Sequence[PageRange]) -> List[ExtractedFile]:
        """
        Extract each range into its own PDF.

        Args:
            ranges: Requested ranges; all are validated before any work starts

        Returns:
            One ExtractedFile per range, in request order
        """
        validated = validate_ranges(self.page_count, ranges)
        files = []

        with fitz.open(self.pdf_path) as source:
            for index, page_range in enumerate(validated):
                with fitz.open() as output:
                    output.insert_pdf(
                        source,
                        from_page=page_range.start - 1,
                        to_page=page_range.end - 1,
                    )
                    data = output.tobytes(garbage=3, deflate=True)

                files.append(ExtractedFile(
                    name=f"{page_range.name}.pdf",
                    data=data,
                    start=page_range.start,
                    end=page_range.end,
                ))
                logger.debug(
                    "Extracted pages %d-%d into %s", page_range.start, page_range.end,
                    page_range.name,
                )
                self._report_progress(
                    "Extracting pages", int((index + 1) / len(validated) * 100)
                )

        return files

    def save(
        self,
        files: Sequence[ExtractedFile],
        output_dir: Union[str, Path, None] = None,
        archive_stem: Optional[str] = None,
    ) -> Path:
        """
        Write extracted files to disk.

        A single file is written as-is; several are packaged into
        ``<archive_stem>_extracted_pages.zip``.

        Args:
            files: Output of extract()
            output_dir: Directory to write into, defaults to the source's directory
            archive_stem: Name prefix for the ZIP, defaults to the source's stem

        Returns:
            Path of the written PDF or ZIP
        """
        output_dir = Path(output_dir) if output_dir else self.pdf_path.parent
        output_dir.mkdir(parents=True, exist_ok=True)

        if len(files) == 1:
            output_path = output_dir / Path(files[0].name).name
            output_path.write_bytes(files[0].data)
        else:
            stem = archive_stem or self.pdf_path.stem
            output_path = output_dir / f"{stem}_extracted_pages.zip"
            write_archive(files, output_path)

        logger.info("Saved %d extracted file(s) to %s", len(files), output_path)
        return output_path

    def split(
        self,
        ranges: Sequence[PageRange],
        output_dir: Union[str, Path, None] = None,
    ) -> Path:
        """Extract ``ranges`` and save the result."""
        return self.save(self.extract(ranges), output_dir)


def _unique_member_name(name: str, used: set) -> str:
    if name not in used:
        return name
    stem, dot, ext = name.rpartition(".")
    counter = 2
    while f"{stem}_{counter}{dot}{ext}" in used:
        counter += 1
    return f"{stem}_{counter}{dot}{ext}"


def write_archive(files: Sequence[ExtractedFile], output_path: Union[str, Path]) -> Path:
    """Package extracted files into a ZIP archive."""
    output_path = Path(output_path)
    used = set()
    with zipfile.ZipFile(output_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for extracted in files:
            member = _unique_member_name(extracted.name, used)
            used.add(member)
            archive.writestr(member, extracted.data)
    return output_path
