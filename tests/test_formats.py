# tests/test_formats.py
"""Tests for the conversion-type table and pipeline builder."""

import pytest

from convert_service.conversion import formats


@pytest.mark.parametrize(
    "tag,ext",
    [
        ("pdf-to-word", "docx"),
        ("pdf-to-excel", "xlsx"),
        ("pdf-to-powerpoint", "pptx"),
        ("pdf-to-jpg", "jpg"),
        ("word-to-pdf", "pdf"),
        ("compress-pdf", "pdf"),
        ("merge-pdf", "pdf"),
        ("split-pdf", "pdf"),
    ],
)
def test_conversion_types(tag, ext):
    assert formats.resolve(tag).output_format == ext


def test_per_type_options():
    assert formats.resolve("pdf-to-jpg").options == {"quality": 90}
    assert formats.resolve("compress-pdf").options == {"pdf_a": False, "optimize_print": True}
    assert formats.resolve("merge-pdf").options == {}


def test_bare_formats_resolve_to_themselves():
    assert formats.resolve("DOCX").output_format == "docx"
    assert formats.resolve("pdf").output_format == "pdf"


def test_unmapped_tags_default_to_pdf():
    op = formats.resolve("something-to-nothing")
    assert op.output_format == "pdf"
    assert op.options == {}


def test_ocr_operation():
    op = formats.resolve("image-to-text")
    assert op.ocr is True
    assert op.output_format == "txt"
    assert op.options["ocr_engine"] == "tesseract"


def test_caller_options_merge_over_table():
    op = formats.resolve("pdf-to-jpg", {"quality": 70, "width": 800})
    assert op.options == {"quality": 70, "width": 800}
    assert formats.resolve("pdf-to-jpg").options == {"quality": 90}


@pytest.mark.parametrize(
    "name,expected",
    [
        ("original-basename.txt", "original-basename.pdf"),
        ("report.final.docx", "report.final.pdf"),
        ("README", "README.pdf"),
        ("", "upload.pdf"),
    ],
)
def test_derive_filename(name, expected):
    assert formats.derive_filename(name, "pdf") == expected


def test_pipeline_chains_import_convert_export():
    tasks = formats.build_pipeline("scan.PDF", formats.resolve("pdf-to-jpg"))
    assert tasks["import-file"] == {"operation": "import/upload", "filename": "scan.PDF"}
    convert = tasks["convert-file"]
    assert convert["operation"] == "convert"
    assert convert["input"] == "import-file"
    assert convert["input_format"] == "pdf"
    assert convert["output_format"] == "jpg"
    assert convert["filename"] == "scan.jpg"
    assert convert["quality"] == 90
    assert tasks["export-file"] == {"operation": "export/url", "input": "convert-file"}


def test_options_cannot_rewire_pipeline():
    tasks = formats.build_pipeline("a.txt", formats.resolve("pdf", {"input": "elsewhere", "output_format": "exe"}))
    assert tasks["convert-file"]["input"] == "import-file"
    assert tasks["convert-file"]["output_format"] == "pdf"


def test_pipeline_imports_from_url_when_given():
    tasks = formats.build_pipeline("scan.png", formats.resolve("image-to-text"), "https://files.example/scan.png")
    assert tasks["import-file"] == {
        "operation": "import/url",
        "url": "https://files.example/scan.png",
        "filename": "scan.png",
    }
    assert tasks["convert-file"]["input"] == "import-file"
