"""
Payload Normalizer - convert one input file into a service payload.

Single responsibility: bytes in, exactly one of InlinePayload / TextPayload
out. No service calls, no persistence.

POLICY:
-------
- Images are downscaled into a 1000x1400 box and re-encoded as JPEG so a
  batch of phone photos stays within request size limits.
- PDFs go through untouched; the service reads them natively.
- Word documents are reduced to their raw text with a filename header.
- Anything else on the allow-list takes the image path and fails loudly
  if Pillow cannot decode it.
"""

from __future__ import annotations

import asyncio
import base64
import io
import logging

from docx import Document as DocxDocument
from PIL import Image, UnidentifiedImageError

from medichronicle.core.errors import NormalizationError
from medichronicle.core.models import SourceFile
from medichronicle.core.protocols import InlinePayload, Payload, TextPayload

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

SUPPORTED_MIME_TYPES = frozenset({
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/heic",
    "image/heif",
    PDF_MIME,
    "application/msword",
    DOCX_MIME,
})

MAX_IMAGE_WIDTH = 1000
MAX_IMAGE_HEIGHT = 1400
JPEG_QUALITY = 75


def filter_supported(files: list[SourceFile]) -> list[SourceFile]:
    """Drop files whose MIME type is not on the allow-list, keeping order."""
    accepted = [f for f in files if f.mime_type in SUPPORTED_MIME_TYPES]
    skipped = len(files) - len(accepted)
    if skipped:
        logger.info(f"Skipped {skipped} unsupported file(s)")
    return accepted


def downscale_image(
    content: bytes,
    max_width: int = MAX_IMAGE_WIDTH,
    max_height: int = MAX_IMAGE_HEIGHT,
    quality: int = JPEG_QUALITY,
) -> bytes:
    """
    Fit an image inside the bounding box and re-encode it as JPEG.

    Aspect ratio is preserved and images already inside the box are not
    enlarged.
    """
    with Image.open(io.BytesIO(content)) as img:
        img = img.convert("RGB")
        img.thumbnail((max_width, max_height))
        out = io.BytesIO()
        img.save(out, format="JPEG", quality=quality)
    return out.getvalue()


def extract_docx_text(content: bytes) -> str:
    """Raw paragraph text of a .docx file."""
    document = DocxDocument(io.BytesIO(content))
    return "\n".join(paragraph.text for paragraph in document.paragraphs)


def _b64(content: bytes) -> str:
    return base64.b64encode(content).decode("ascii")


def normalize_file(
    source: SourceFile,
    max_width: int = MAX_IMAGE_WIDTH,
    max_height: int = MAX_IMAGE_HEIGHT,
    quality: int = JPEG_QUALITY,
) -> Payload:
    """
    Convert one file into a payload for the classification service.

    Raises:
        NormalizationError: the file could not be decoded
    """
    if source.mime_type == PDF_MIME:
        return InlinePayload(data=_b64(source.content), mime_type=PDF_MIME, file_name=source.name)

    if source.mime_type == DOCX_MIME:
        try:
            text = extract_docx_text(source.content)
        except Exception as e:
            raise NormalizationError(source.name, f"unreadable Word document ({e})") from e
        return TextPayload(text=f"Word Content ({source.name}):\n{text}")

    try:
        jpeg = downscale_image(source.content, max_width, max_height, quality)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise NormalizationError(source.name, f"not a decodable image ({e})") from e
    return InlinePayload(data=_b64(jpeg), mime_type="image/jpeg", file_name=source.name)


async def normalize_batch(
    files: list[SourceFile],
    max_width: int = MAX_IMAGE_WIDTH,
    max_height: int = MAX_IMAGE_HEIGHT,
    quality: int = JPEG_QUALITY,
) -> list[Payload]:
    """
    Normalize every member of a batch concurrently.

    Members share no state, so each runs in a worker thread. Order of the
    result matches `files`. The first NormalizationError propagates and the
    batch's classification call is never made.
    """
    return list(await asyncio.gather(*(
        asyncio.to_thread(normalize_file, f, max_width, max_height, quality)
        for f in files
    )))
