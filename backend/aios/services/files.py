"""Turning uploaded files into model input or plain text.

Images and PDFs go to Gemini untouched. Office documents are converted to
text with python-docx and openpyxl; text formats are decoded as UTF-8.
"""

import csv
import io
import json
import logging

import docx
import openpyxl

from aios.core.errors import FileParseError, UnsupportedFileTypeError
from aios.services.llm.base import BaseLLMProvider, InlineData, Part

logger = logging.getLogger(__name__)

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
PDF_MIME = "application/pdf"

TEXT_MIMES = {"application/xml", "application/json", "text/xml", "text/markdown"}
TEXT_EXTENSIONS = {"txt", "md", "xml", "json", "csv"}

PDF_EXTRACT_INSTRUCTION = (
    "Extrais tout le texte de ce PDF. Donne uniquement le texte brut, sans commentaire."
)


def parse_docx(data: bytes) -> str:
    try:
        document = docx.Document(io.BytesIO(data))
    except Exception as e:
        raise FileParseError("Unable to read the DOCX file") from e
    return "\n".join(p.text for p in document.paragraphs)


def parse_xlsx(data: bytes) -> str:
    try:
        workbook = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except Exception as e:
        raise FileParseError("Unable to read the Excel file") from e

    sections = []
    for sheet in workbook.worksheets:
        buf = io.StringIO()
        writer = csv.writer(buf, lineterminator="\n")
        for row in sheet.iter_rows(values_only=True):
            writer.writerow(["" if v is None else v for v in row])
        sections.append(f"=== {sheet.title} ===\n{buf.getvalue()}")
    workbook.close()
    return "\n".join(sections).strip()


def _decode(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise FileParseError("File is not valid UTF-8 text") from e


def prepare_file_part(filename: str, mime_type: str, data: bytes) -> Part:
    """Convert an uploaded file into a single message part for the model."""
    logger.info(f"Preparing file: {filename} ({mime_type})")

    if mime_type.startswith("image/") or mime_type == PDF_MIME:
        return InlineData(mime_type=mime_type, data=data)

    if mime_type == DOCX_MIME:
        return parse_docx(data)

    if mime_type == XLSX_MIME:
        return parse_xlsx(data)

    if mime_type == "application/json":
        text = _decode(data)
        try:
            return json.dumps(json.loads(text), indent=2, ensure_ascii=False)
        except json.JSONDecodeError:
            return text

    if mime_type.startswith("text/") or mime_type in TEXT_MIMES:
        return _decode(data)

    raise UnsupportedFileTypeError(f"Unsupported file type: {mime_type}")


async def extract_text(filename: str, data: bytes, llm: BaseLLMProvider) -> str:
    """Extract plain text from an uploaded document, dispatching on extension."""
    ext = filename.lower().rsplit(".", 1)[-1] if "." in filename else ""

    if ext == "pdf":
        return await llm.chat((), [InlineData(mime_type=PDF_MIME, data=data), PDF_EXTRACT_INSTRUCTION])
    if ext == "docx":
        return parse_docx(data)
    if ext == "xlsx":
        return parse_xlsx(data)
    if ext in TEXT_EXTENSIONS:
        return _decode(data)

    raise UnsupportedFileTypeError(f"Unsupported format: .{ext}")
