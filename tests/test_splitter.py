import zipfile

import fitz  # PyMuPDF
import pytest

from doctools.splitter import (
    ExtractedFile,
    PageRange,
    PDFSplitter,
    RangeValidationError,
    parse_page_range,
    validate_ranges,
    write_archive,
)


def page_texts(data: bytes):
    with fitz.open(stream=data, filetype="pdf") as doc:
        return [page.get_text().strip() for page in doc]


def test_duplicate_names_reject_batch():
    with pytest.raises(RangeValidationError, match="Duplicate file names found: a"):
        validate_ranges(10, [PageRange(1, 5, "a"), PageRange(3, 10, "a")])


def test_start_below_one_rejects_batch():
    with pytest.raises(RangeValidationError, match="range 1"):
        validate_ranges(10, [PageRange(0, 5, "")])


def test_unnamed_ranges_get_default_names():
    validated = validate_ranges(10, [PageRange(1, 5, ""), PageRange(6, 10, "")])
    assert [r.name for r in validated] == ["pages_1_to_5", "pages_6_to_10"]


@pytest.mark.parametrize("page_range", [
    PageRange(5, 4),
    PageRange(1, 11),
    PageRange(-1, 3),
])
def test_out_of_bounds_ranges(page_range):
    with pytest.raises(RangeValidationError):
        validate_ranges(10, [PageRange(1, 2), page_range])


def test_names_compare_trimmed_and_case_sensitive():
    validated = validate_ranges(10, [PageRange(1, 2, " Intro "), PageRange(3, 4, "intro")])
    assert [r.name for r in validated] == ["Intro", "intro"]

    with pytest.raises(RangeValidationError):
        validate_ranges(10, [PageRange(1, 2, "intro "), PageRange(3, 4, " intro")])


def test_empty_names_may_repeat():
    validated = validate_ranges(10, [PageRange(1, 2), PageRange(1, 2)])
    assert len(validated) == 2


def test_empty_request_is_rejected():
    with pytest.raises(RangeValidationError):
        validate_ranges(10, [])


def test_duplicate_check_runs_before_bounds_check():
    with pytest.raises(RangeValidationError, match="Duplicate"):
        validate_ranges(3, [PageRange(1, 9, "x"), PageRange(1, 2, "x")])


@pytest.mark.parametrize("text, expected", [
    ("3", PageRange(3, 3, "")),
    ("1-5", PageRange(1, 5, "")),
    (" 2 - 7 :intro ", PageRange(2, 7, "intro")),
    ("4-4:", PageRange(4, 4, "")),
])
def test_parse_page_range(text, expected):
    assert parse_page_range(text) == expected


@pytest.mark.parametrize("text", ["", "a-b", "1-", "-3", "1.5-2"])
def test_parse_page_range_rejects_garbage(text):
    with pytest.raises(RangeValidationError):
        parse_page_range(text)


def test_extract_copies_requested_pages(make_pdf):
    splitter = PDFSplitter(make_pdf(pages=10))
    assert splitter.page_count == 10

    files = splitter.extract([PageRange(2, 4, "middle"), PageRange(10, 10)])

    assert [f.name for f in files] == ["middle.pdf", "pages_10_to_10.pdf"]
    assert page_texts(files[0].data) == ["Page 2", "Page 3", "Page 4"]
    assert page_texts(files[1].data) == ["Page 10"]
    assert files[0].range_label == "2-4"


def test_extract_reports_progress(make_pdf):
    updates = []
    splitter = PDFSplitter(make_pdf(pages=4), progress_callback=lambda s, p: updates.append(p))

    splitter.extract([PageRange(1, 1), PageRange(2, 2), PageRange(3, 4)])

    assert updates == [33, 66, 100]


def test_single_range_saved_as_pdf(make_pdf, tmp_path):
    splitter = PDFSplitter(make_pdf(pages=3))

    output = splitter.split([PageRange(1, 2, "first")], tmp_path / "out")

    assert output == tmp_path / "out" / "first.pdf"
    assert page_texts(output.read_bytes()) == ["Page 1", "Page 2"]


def test_multiple_ranges_saved_as_zip(make_pdf, tmp_path):
    splitter = PDFSplitter(make_pdf("report.pdf", pages=6))

    output = splitter.split([PageRange(1, 3), PageRange(4, 6, "rest")], tmp_path)

    assert output.name == "report_extracted_pages.zip"
    with zipfile.ZipFile(output) as archive:
        assert archive.namelist() == ["pages_1_to_3.pdf", "rest.pdf"]
        assert page_texts(archive.read("rest.pdf")) == ["Page 4", "Page 5", "Page 6"]


def test_archive_renames_colliding_members(tmp_path):
    files = [
        ExtractedFile("pages_1_to_2.pdf", b"a", 1, 2),
        ExtractedFile("pages_1_to_2.pdf", b"b", 1, 2),
    ]

    output = write_archive(files, tmp_path / "x.zip")

    with zipfile.ZipFile(output) as archive:
        assert archive.namelist() == ["pages_1_to_2.pdf", "pages_1_to_2_2.pdf"]


def test_invalid_range_writes_nothing(make_pdf, tmp_path):
    splitter = PDFSplitter(make_pdf(pages=3))
    out_dir = tmp_path / "out"

    with pytest.raises(RangeValidationError):
        splitter.split([PageRange(1, 2), PageRange(2, 5)], out_dir)

    assert not out_dir.exists()


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        PDFSplitter(tmp_path / "nope.pdf")


def test_not_a_pdf(tmp_path):
    bogus = tmp_path / "bogus.pdf"
    bogus.write_bytes(b"this is not a pdf")
    with pytest.raises(ValueError):
        PDFSplitter(bogus)
