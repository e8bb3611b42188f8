import asyncio
import base64
import io

import pytest
from docx import Document
from fastapi import HTTPException, UploadFile
from PIL import Image
from starlette.datastructures import Headers

from quizforge.config import DOCX_MIME_TYPE, IMAGE_MAX_DIMENSION
from quizforge.engine.models import TestInputMethod
from quizforge.services import document_service
from quizforge.services.generation_service import GenerationError

from conftest import FakeGenerator, make_config


def _docx_bytes() -> bytes:
    doc = Document()
    doc.add_paragraph("Chapter 1: Cells")
    doc.add_paragraph("   ")
    table = doc.add_table(rows=1, cols=2)
    table.cell(0, 0).text = "Organelle"
    table.cell(0, 1).text = "Mitochondria"
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


def _png_bytes(size: tuple[int, int], mode: str = "RGBA") -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, size, color=(10, 20, 30, 255) if mode == "RGBA" else 0).save(buffer, format="PNG")
    return buffer.getvalue()


def _upload(name: str | None, data: bytes, content_type: str) -> UploadFile:
    return UploadFile(
        file=io.BytesIO(data),
        filename=name,
        headers=Headers({"content-type": content_type}),
    )


def _document(content: str, mime_type: str):
    return make_config(
        method=TestInputMethod.DOCUMENT,
        content=content,
        num_questions=0,
        mime_type=mime_type,
        original_file_name="upload",
    )


def test_extract_docx_text_reads_paragraphs_and_tables() -> None:
    text = document_service.extract_docx_text(_docx_bytes())
    assert text.splitlines() == ["Chapter 1: Cells", "Organelle | Mitochondria"]


def test_normalize_image_converts_and_shrinks() -> None:
    data = document_service.normalize_image(_png_bytes((IMAGE_MAX_DIMENSION + 500, 100)))
    with Image.open(io.BytesIO(data)) as img:
        assert img.format == "JPEG"
        assert img.mode == "RGB"
        assert img.size[0] == IMAGE_MAX_DIMENSION


def test_read_upload_decodes_text() -> None:
    content, mime_type, name = asyncio.run(
        document_service.read_upload(_upload("dir/notes.txt", "Photosynthesis".encode(), "text/plain"))
    )
    assert (content, mime_type, name) == ("Photosynthesis", "text/plain", "notes.txt")


def test_read_upload_encodes_binary() -> None:
    data = b"%PDF-1.4 fake"
    content, mime_type, _ = asyncio.run(
        document_service.read_upload(_upload("paper.pdf", data, "application/pdf"))
    )
    assert mime_type == "application/pdf"
    assert base64.b64decode(content) == data


@pytest.mark.parametrize(
    "name, data, content_type",
    [
        (None, b"x", "text/plain"),
        ("movie.mp4", b"x", "video/mp4"),
        ("empty.txt", b"", "text/plain"),
        ("latin.txt", "café".encode("latin-1"), "text/plain"),
    ],
)
def test_read_upload_rejects_bad_files(name, data, content_type) -> None:
    with pytest.raises(HTTPException) as exc_info:
        asyncio.run(document_service.read_upload(_upload(name, data, content_type)))
    assert exc_info.value.status_code == 400


def test_topic_content_is_used_as_is() -> None:
    generator = FakeGenerator()
    text = asyncio.run(document_service.resolve_source_text(make_config(content="Cells"), generator))
    assert text == "Cells"
    assert generator.extracted == []


def test_text_document_is_not_extracted() -> None:
    generator = FakeGenerator()
    text = asyncio.run(
        document_service.resolve_source_text(_document("Plain notes", "text/plain"), generator)
    )
    assert text == "Plain notes"


def test_word_document_is_read_locally() -> None:
    generator = FakeGenerator()
    encoded = base64.b64encode(_docx_bytes()).decode()
    text = asyncio.run(
        document_service.resolve_source_text(_document(encoded, DOCX_MIME_TYPE), generator)
    )
    assert "Mitochondria" in text
    assert generator.extracted == []


def test_image_is_normalised_before_extraction() -> None:
    generator = FakeGenerator()
    encoded = base64.b64encode(_png_bytes((40, 40))).decode()
    text = asyncio.run(
        document_service.resolve_source_text(_document(encoded, "image/png"), generator)
    )
    assert text == "Extracted text"
    data, mime_type = generator.extracted[0]
    assert mime_type == "image/jpeg"
    assert data.startswith(b"\xff\xd8")


def test_pdf_goes_to_the_generator() -> None:
    generator = FakeGenerator()
    encoded = base64.b64encode(b"%PDF-1.4").decode()
    asyncio.run(
        document_service.resolve_source_text(_document(encoded, "application/pdf"), generator)
    )
    assert generator.extracted == [(b"%PDF-1.4", "application/pdf")]


@pytest.mark.parametrize(
    "content, mime_type",
    [
        ("not base64!", "application/pdf"),
        (base64.b64encode(b"not a zip").decode(), DOCX_MIME_TYPE),
        (base64.b64encode(b"not an image").decode(), "image/png"),
        ("   ", "text/plain"),
    ],
)
def test_unreadable_documents_fail_generation(content, mime_type) -> None:
    with pytest.raises(GenerationError):
        asyncio.run(
            document_service.resolve_source_text(_document(content, mime_type), FakeGenerator())
        )
