"""
Unit Tests for Payload Normalization

Every fixture is generated in memory: images with Pillow, Word documents
with python-docx. No service calls are made.
"""

import asyncio
import base64
import io
import struct
import zlib

import pytest
from docx import Document as DocxDocument
from PIL import Image

from medichronicle.core.errors import NormalizationError
from medichronicle.core.models import SourceFile
from medichronicle.core.protocols import InlinePayload, TextPayload
from medichronicle.ingestion.normalizer import (
    DOCX_MIME,
    PDF_MIME,
    downscale_image,
    filter_supported,
    normalize_batch,
    normalize_file,
)


# ---------------------------------------------------------------------------
# FIXTURES
# ---------------------------------------------------------------------------


def _image_bytes(size=(200, 100), mode="RGB", fmt="PNG") -> bytes:
    buf = io.BytesIO()
    Image.new(mode, size, "white").save(buf, format=fmt)
    return buf.getvalue()


def _png_header(width: int, height: int) -> bytes:
    """A PNG that declares its size but carries no pixel data."""
    def chunk(kind: bytes, data: bytes) -> bytes:
        return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", zlib.crc32(kind + data))

    ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", ihdr) + chunk(b"IDAT", b"") + chunk(b"IEND", b"")


def _docx_bytes(*paragraphs: str) -> bytes:
    document = DocxDocument()
    for text in paragraphs:
        document.add_paragraph(text)
    buf = io.BytesIO()
    document.save(buf)
    return buf.getvalue()


@pytest.fixture
def large_scan():
    return SourceFile("scan.png", "image/png", _image_bytes((2000, 2800)))


@pytest.fixture
def pdf_file():
    return SourceFile("labs.pdf", PDF_MIME, b"%PDF-1.4\n% fake pdf body\n")


@pytest.fixture
def docx_file():
    return SourceFile("note.docx", DOCX_MIME, _docx_bytes("Hemoglobin 13.5 g/dL", "Follow up in 6 weeks"))


def _decode(payload: InlinePayload) -> Image.Image:
    return Image.open(io.BytesIO(base64.b64decode(payload.data)))


# ---------------------------------------------------------------------------
# FILTERING
# ---------------------------------------------------------------------------


class TestFilterSupported:
    """Test the MIME allow-list."""

    def test_keeps_supported_in_order(self, large_scan, pdf_file, docx_file):
        text = SourceFile("notes.txt", "text/plain", b"hello")
        result = filter_supported([pdf_file, text, large_scan, docx_file])
        assert result == [pdf_file, large_scan, docx_file]

    def test_all_unsupported_yields_empty(self):
        files = [SourceFile("a.zip", "application/zip", b"PK")]
        assert filter_supported(files) == []


# ---------------------------------------------------------------------------
# IMAGES
# ---------------------------------------------------------------------------


class TestImageNormalization:
    """Images are downscaled into the bounding box and re-encoded as JPEG."""

    def test_large_image_fits_bounding_box(self, large_scan):
        payload = normalize_file(large_scan)

        assert isinstance(payload, InlinePayload)
        assert payload.mime_type == "image/jpeg"
        assert payload.file_name == "scan.png"
        img = _decode(payload)
        assert img.format == "JPEG"
        assert img.size == (1000, 1400)

    def test_small_image_is_not_enlarged(self):
        source = SourceFile("small.png", "image/png", _image_bytes((200, 100)))
        img = _decode(normalize_file(source))
        assert img.size == (200, 100)

    def test_aspect_ratio_preserved(self):
        source = SourceFile("wide.png", "image/png", _image_bytes((4000, 1000)))
        width, height = _decode(normalize_file(source)).size
        assert width == 1000
        assert height == 250

    def test_transparent_png_is_flattened(self):
        source = SourceFile("alpha.png", "image/png", _image_bytes((50, 50), mode="RGBA"))
        assert _decode(normalize_file(source)).mode == "RGB"

    def test_custom_box_and_quality(self):
        jpeg = downscale_image(_image_bytes((800, 800)), max_width=100, max_height=100, quality=30)
        assert Image.open(io.BytesIO(jpeg)).size == (100, 100)

    def test_undecodable_image_raises(self):
        source = SourceFile("broken.png", "image/png", b"definitely not an image")
        with pytest.raises(NormalizationError, match="broken.png"):
            normalize_file(source)

    def test_oversized_image_raises(self):
        source = SourceFile("scan.png", "image/png", _png_header(20000, 20000))
        with pytest.raises(NormalizationError, match="scan.png"):
            normalize_file(source)

    def test_legacy_word_document_takes_image_path_and_fails(self):
        source = SourceFile("old.doc", "application/msword", b"\xd0\xcf\x11\xe0 binary")
        with pytest.raises(NormalizationError) as exc_info:
            normalize_file(source)
        assert exc_info.value.file_name == "old.doc"


# ---------------------------------------------------------------------------
# PDF AND WORD
# ---------------------------------------------------------------------------


class TestDocumentNormalization:
    """PDFs pass through; Word documents become text."""

    def test_pdf_passthrough(self, pdf_file):
        payload = normalize_file(pdf_file)

        assert isinstance(payload, InlinePayload)
        assert payload.mime_type == PDF_MIME
        assert base64.b64decode(payload.data) == pdf_file.content
        assert payload.file_name == "labs.pdf"

    def test_docx_becomes_text_with_header(self, docx_file):
        payload = normalize_file(docx_file)

        assert isinstance(payload, TextPayload)
        assert payload.text.startswith("Word Content (note.docx):\n")
        assert "Hemoglobin 13.5 g/dL" in payload.text
        assert "Follow up in 6 weeks" in payload.text

    def test_corrupt_docx_raises(self):
        source = SourceFile("bad.docx", DOCX_MIME, b"not a zip archive")
        with pytest.raises(NormalizationError, match="bad.docx"):
            normalize_file(source)


# ---------------------------------------------------------------------------
# BATCH
# ---------------------------------------------------------------------------


class TestNormalizeBatch:
    """Concurrent normalization of one batch."""

    def test_order_matches_input(self, large_scan, pdf_file, docx_file):
        payloads = asyncio.run(normalize_batch([docx_file, pdf_file, large_scan]))

        assert isinstance(payloads[0], TextPayload)
        assert payloads[1].mime_type == PDF_MIME
        assert payloads[2].mime_type == "image/jpeg"

    def test_one_failure_fails_the_batch(self, pdf_file):
        broken = SourceFile("broken.jpg", "image/jpeg", b"\x00\x01")
        with pytest.raises(NormalizationError):
            asyncio.run(normalize_batch([pdf_file, broken]))
