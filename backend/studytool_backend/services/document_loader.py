from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path

from ..errors import InvalidInputError, UnsupportedTypeError

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

SUPPORTED_MIME_TYPES = {
    PDF_MIME,
    DOCX_MIME,
    "text/plain",
    "text/markdown",
    "image/jpeg",
    "image/png",
    "image/webp",
}

EXTENSION_MIME_TYPES = {
    ".pdf": PDF_MIME,
    ".docx": DOCX_MIME,
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
}


class DocumentLoaderError(InvalidInputError):
    """Raised when a local document cannot be read."""


@dataclass
class LoadedDocument:
    filename: str
    file_type: str
    text: str


def sniff_mime_type(mime_type: str | None, filename: str) -> str:
    """
    Resolve the effective MIME type of an upload.

    A supported declared type wins. Otherwise the file extension decides, and an
    unknown extension keeps the declared type.
    """
    declared = (mime_type or "").lower().strip()
    if declared in SUPPORTED_MIME_TYPES:
        return declared
    return EXTENSION_MIME_TYPES.get(Path(filename).suffix.lower(), declared)


def is_valid_file_type(mime_type: str | None, filename: str) -> bool:
    has_valid_mime = (mime_type or "").lower() in SUPPORTED_MIME_TYPES
    has_valid_ext = Path(filename).suffix.lower() in EXTENSION_MIME_TYPES
    return has_valid_mime or has_valid_ext


def is_valid_file_size(size: int, max_size_mb: int = 10) -> bool:
    return size <= max_size_mb * 1024 * 1024


def is_remote_kind(mime_type: str) -> bool:
    """PDFs and images are consumed by the model directly rather than extracted locally."""
    return mime_type == PDF_MIME or mime_type.startswith("image/")


def load_local_document(data: bytes, filename: str, mime_type: str) -> LoadedDocument:
    """Extract text from the locally handled formats (DOCX, TXT, MD)."""
    lowered = filename.lower()
    if mime_type == DOCX_MIME or lowered.endswith(".docx"):
        return LoadedDocument(filename=filename, file_type="docx", text=extract_docx_text(data))
    if mime_type in {"text/plain", "text/markdown"} or lowered.endswith((".txt", ".md")):
        file_type = "markdown" if lowered.endswith(".md") or mime_type == "text/markdown" else "text"
        return LoadedDocument(filename=filename, file_type=file_type, text=decode_plain_text(data))
    raise UnsupportedTypeError(f"Unsupported file type: {mime_type or Path(filename).suffix or 'unknown'}")


def decode_plain_text(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DocumentLoaderError(f"Failed to read text file: {e}")


def extract_docx_text(data: bytes) -> str:
    """Load DOCX paragraphs using python-docx."""
    try:
        from docx import Document

        doc = Document(io.BytesIO(data))
        text_parts = [paragraph.text for paragraph in doc.paragraphs if paragraph.text.strip()]
        return "\n\n".join(text_parts)
    except ImportError:
        raise DocumentLoaderError("python-docx is required for DOCX support")
    except Exception as e:
        raise DocumentLoaderError(f"Failed to extract DOCX: {e}")


def count_pdf_pages(data: bytes) -> int | None:
    """Physical page count of a PDF, or None when the buffer cannot be parsed."""
    try:
        from pypdf import PdfReader

        return len(PdfReader(io.BytesIO(data)).pages) or None
    except Exception as e:
        logger.debug("Could not count PDF pages: %s", e)
        return None
