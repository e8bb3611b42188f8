"""Document ingestion: uploads to test configurations, documents to text."""
import base64
import binascii
import io
import logging
import zipfile
from pathlib import Path

from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from fastapi import HTTPException, UploadFile, status
from PIL import Image, UnidentifiedImageError

from quizforge.config import (
    DOCX_MIME_TYPE,
    IMAGE_MAX_DIMENSION,
    MAX_UPLOAD_BYTES,
    SUPPORTED_PDF_MIME_TYPE,
)
from quizforge.engine.models import TestConfig, TestInputMethod
from quizforge.services.generation_service import GenerationError, GeminiGenerator

logger = logging.getLogger(__name__)

IMAGE_MIME_PREFIX = "image/"
TEXT_MIME_PREFIX = "text/"
UNREADABLE_FILE_MESSAGE = (
    "The uploaded file could not be processed. It might be corrupted or an "
    "unsupported format."
)


def is_text_mime(mime_type: str | None) -> bool:
    return not mime_type or mime_type.startswith(TEXT_MIME_PREFIX)


def is_supported_mime(mime_type: str) -> bool:
    return (
        mime_type.startswith(TEXT_MIME_PREFIX)
        or mime_type.startswith(IMAGE_MIME_PREFIX)
        or mime_type in (SUPPORTED_PDF_MIME_TYPE, DOCX_MIME_TYPE)
    )


async def read_upload(file: UploadFile) -> tuple[str, str, str]:
    """
    Read an uploaded document.

    Returns:
        Tuple of (content, mime_type, file_name). Text files are decoded,
        everything else is base64-encoded for later extraction.

    Raises:
        HTTPException: If the file is missing, too large or unsupported
    """
    if not file.filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No filename provided",
        )
    mime_type = file.content_type or "text/plain"
    if not is_supported_mime(mime_type):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported file type: {mime_type}",
        )

    data = await file.read()
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File too large. Maximum size: {MAX_UPLOAD_BYTES // (1024 * 1024)}MB",
        )
    if not data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Uploaded file is empty",
        )

    file_name = Path(file.filename).name
    if is_text_mime(mime_type):
        try:
            return data.decode("utf-8"), mime_type, file_name
        except UnicodeDecodeError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Text files must be UTF-8 encoded",
            )
    return base64.b64encode(data).decode("ascii"), mime_type, file_name


def extract_docx_text(data: bytes) -> str:
    """Paragraph and table cell text of a .docx document."""
    document = Document(io.BytesIO(data))
    lines = [p.text.strip() for p in document.paragraphs if p.text.strip()]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                lines.append(" | ".join(cells))
    return "\n".join(lines)


def normalize_image(data: bytes) -> bytes:
    """Convert an image to RGB JPEG that fits within IMAGE_MAX_DIMENSION."""
    with Image.open(io.BytesIO(data)) as img:
        if img.mode != "RGB":
            img = img.convert("RGB")
        width, height = img.size
        if width > IMAGE_MAX_DIMENSION or height > IMAGE_MAX_DIMENSION:
            img.thumbnail((IMAGE_MAX_DIMENSION, IMAGE_MAX_DIMENSION), Image.Resampling.LANCZOS)
            logger.info(f"Resized image from {width}x{height} to {img.size}")
        buffer = io.BytesIO()
        img.save(buffer, format="JPEG", quality=90)
    return buffer.getvalue()


async def _document_text(config: TestConfig, generator: GeminiGenerator) -> str:
    if is_text_mime(config.mime_type):
        return config.content

    try:
        data = base64.b64decode(config.content, validate=True)
    except (binascii.Error, ValueError) as e:
        raise GenerationError(UNREADABLE_FILE_MESSAGE) from e

    mime_type = config.mime_type
    if mime_type == DOCX_MIME_TYPE:
        try:
            return extract_docx_text(data)
        except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
            logger.error(f"Failed to read Word document: {e}")
            raise GenerationError(UNREADABLE_FILE_MESSAGE) from e
    if mime_type.startswith(IMAGE_MIME_PREFIX):
        try:
            data = normalize_image(data)
        except (UnidentifiedImageError, OSError) as e:
            logger.error(f"Failed to read image: {e}")
            raise GenerationError(UNREADABLE_FILE_MESSAGE) from e
        return await generator.extract_text(data, "image/jpeg")
    if mime_type == SUPPORTED_PDF_MIME_TYPE:
        return await generator.extract_text(data, mime_type)
    raise GenerationError(f"Unsupported file type: {mime_type}")


async def resolve_source_text(config: TestConfig, generator: GeminiGenerator) -> str:
    """
    Text to generate questions from.

    Syllabus and topic content is used as-is. Documents are decoded: text
    files directly, Word documents locally, images and PDFs through the
    generator.

    Raises:
        GenerationError: If the document cannot be read or yields no text
    """
    if config.input_method != TestInputMethod.DOCUMENT:
        return config.content

    text = await _document_text(config, generator)
    if not text.strip():
        raise GenerationError(
            "Could not extract any text from the document. Please try another file."
        )
    logger.info(f"Extracted {len(text)} characters from {config.original_file_name or config.mime_type}")
    return text
