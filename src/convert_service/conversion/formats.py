"""
Conversion-type table and remote pipeline descriptions.

A conversion request names either a conversion type (``pdf-to-word``), a bare
output format (``docx``), or ``image-to-text`` for the OCR path.
"""

from dataclasses import dataclass, field
from typing import Any

OCR_CONVERSION = "image-to-text"
DEFAULT_OUTPUT = "pdf"

IMPORT_TASK = "import-file"
CONVERT_TASK = "convert-file"
EXPORT_TASK = "export-file"

_RESERVED = frozenset({"operation", "input", "output_format"})


@dataclass(frozen=True)
class Operation:
    output_format: str
    options: dict[str, Any] = field(default_factory=dict)
    ocr: bool = False


CONVERSION_TYPES: dict[str, Operation] = {
    "pdf-to-word": Operation("docx"),
    "pdf-to-excel": Operation("xlsx"),
    "pdf-to-powerpoint": Operation("pptx"),
    "pdf-to-jpg": Operation("jpg", {"quality": 90}),
    "word-to-pdf": Operation("pdf"),
    "excel-to-pdf": Operation("pdf"),
    "powerpoint-to-pdf": Operation("pdf"),
    "jpg-to-pdf": Operation("pdf"),
    "png-to-pdf": Operation("pdf"),
    # No multi-input semantics: merge/split run as single-file pdf conversions.
    "merge-pdf": Operation("pdf"),
    "split-pdf": Operation("pdf"),
    "compress-pdf": Operation("pdf", {"pdf_a": False, "optimize_print": True}),
    OCR_CONVERSION: Operation("txt", {"ocr_engine": "tesseract", "ocr_language": "eng"}, ocr=True),
}

OUTPUT_FORMATS = frozenset({
    "pdf", "docx", "doc", "odt", "rtf", "txt", "html", "md",
    "xlsx", "xls", "ods", "csv",
    "pptx", "ppt", "odp",
    "jpg", "jpeg", "png", "gif", "webp", "tiff",
})


def resolve(target: str, options: dict[str, Any] | None = None) -> Operation:
    """Resolve a requested target into an Operation; unknown tags fall back to pdf."""
    tag = (target or "").strip().lower()
    if tag in CONVERSION_TYPES:
        op = CONVERSION_TYPES[tag]
    elif tag in OUTPUT_FORMATS:
        op = Operation(tag)
    else:
        op = Operation(DEFAULT_OUTPUT)
    if options:
        return Operation(op.output_format, {**op.options, **options}, op.ocr)
    return op


def split_name(name: str) -> tuple[str, str]:
    """Split a filename into (basename, extension without dot)."""
    if "." in name.strip(".") and not name.startswith("."):
        base, ext = name.rsplit(".", 1)
        return base, ext.lower()
    return name, ""


def derive_filename(name: str, output_format: str) -> str:
    base, _ = split_name(name or "upload")
    return f"{base or 'upload'}.{output_format}"


def build_pipeline(filename: str, op: Operation, source_url: str | None = None) -> dict[str, dict[str, Any]]:
    """Describe the import -> convert -> export/url chain as one remote job.

    With ``source_url`` the provider fetches the file itself (``import/url``);
    otherwise the job waits for an upload (``import/upload``).
    """
    _, input_format = split_name(filename)
    convert: dict[str, Any] = {
        "operation": "convert",
        "input": IMPORT_TASK,
        "output_format": op.output_format,
        "filename": derive_filename(filename, op.output_format),
    }
    if input_format:
        convert["input_format"] = input_format
    # Engine options sit alongside the task fields; they never replace the chain wiring.
    for key, value in op.options.items():
        if key not in _RESERVED:
            convert[key] = value
    if source_url:
        source = {"operation": "import/url", "url": source_url, "filename": filename}
    else:
        source = {"operation": "import/upload", "filename": filename}
    return {
        IMPORT_TASK: source,
        CONVERT_TASK: convert,
        EXPORT_TASK: {"operation": "export/url", "input": CONVERT_TASK},
    }
