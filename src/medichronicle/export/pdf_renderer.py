"""
Fixed-page export: an A4 PDF drawn with a reportlab Canvas.

PAGINATION:
-----------
A vertical cursor (measured from the top edge) tracks the next free line.
Before any block is drawn, `ensure_space(height)` starts a new page if
the block would cross the bottom margin. The decision is local and
greedy: there is no lookahead, so a section heading can end up alone at
the bottom of a page. Every appendix record starts on its own page
regardless of remaining space.

IMAGES:
-------
Appendix images are scaled uniformly into the drawable area between a
35mm top band and a 15mm bottom margin, then centred horizontally. Large
exports (above the compression threshold) re-encode images with a coarser
setting to keep the file size and render time bounded.
"""

from __future__ import annotations

import io
import logging
import time
from dataclasses import dataclass

from PIL import Image
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen.canvas import Canvas

from medichronicle.core.errors import ExportError
from medichronicle.core.models import Document
from medichronicle.export.layout import (
    INDEX_TITLE,
    PDF_MEDIA_TYPE,
    TITLE,
    ExportArtifact,
    ExportContext,
    display_date,
    export_filename,
)
from medichronicle.observability import export_attributes, get_tracer
from medichronicle.observability.attributes import CHRONICLE_EXPORT_BYTES, CHRONICLE_EXPORT_PAGES

logger = logging.getLogger(__name__)

PAGE_WIDTH, PAGE_HEIGHT = A4
MARGIN = 15 * mm
CONTENT_WIDTH = PAGE_WIDTH - 2 * MARGIN
PAGE_TOP = 20 * mm

IMAGE_TOP = 35 * mm
IMAGE_BOTTOM = 15 * mm
MIN_IMAGE_HEIGHT = 80 * mm
SUMMARY_LEADING = 3.5 * mm

DEFAULT_COMPRESSION_THRESHOLD = 50

NON_IMAGE_LABEL = "NON-IMAGE CONTENT - PROCESSED DIGITALLY"
IMAGE_FAILED_LABEL = "[Image processing failed for this record]"

# RGB colours, 0-255
INK = (15, 23, 42)
BODY = (51, 65, 85)
MUTED = (100, 100, 100)
ACCENT = (2, 132, 199)
RULE = (226, 232, 240)
BAND = (248, 250, 252)
PLACEHOLDER = (148, 163, 184)

# Index column offsets from the left margin
COL_DATE = 12 * mm
COL_TYPE = 35 * mm
COL_SUMMARY = 65 * mm


@dataclass(frozen=True)
class ImageCompression:
    """How appendix images are re-encoded before embedding."""
    name: str
    max_edge: int
    jpeg_quality: int


MEDIUM = ImageCompression("MEDIUM", max_edge=2000, jpeg_quality=85)
FAST = ImageCompression("FAST", max_edge=1200, jpeg_quality=60)


def select_compression(document_count: int, threshold: int = DEFAULT_COMPRESSION_THRESHOLD) -> ImageCompression:
    """Coarser compression once the export holds more than `threshold` documents."""
    return FAST if document_count > threshold else MEDIUM


def fit_image(
    width: float,
    height: float,
    avail_width: float = CONTENT_WIDTH,
    avail_height: float = PAGE_HEIGHT - IMAGE_TOP - IMAGE_BOTTOM,
) -> tuple[float, float, float]:
    """
    Uniformly scale (width, height) into the available box.

    Returns:
        (x, scaled_width, scaled_height) with x centring the image on the page
    """
    ratio = min(avail_width / width, avail_height / height)
    w = width * ratio
    h = height * ratio
    return (PAGE_WIDTH - w) / 2, w, h


class PageCursor:
    """Canvas plus a top-down vertical cursor with greedy page breaks."""

    def __init__(self, canvas: Canvas):
        self.canvas = canvas
        self.y = PAGE_TOP
        self.pages = 1

    def new_page(self) -> None:
        self.canvas.showPage()
        self.pages += 1
        self.y = PAGE_TOP

    def ensure_space(self, needed: float) -> bool:
        """Start a new page if `needed` would cross the bottom margin."""
        if self.y + needed > PAGE_HEIGHT - MARGIN:
            self.new_page()
            return True
        return False

    def text(
        self,
        x: float,
        top: float,
        value: str,
        size: float = 10,
        bold: bool = False,
        color: tuple[int, int, int] = BODY,
    ) -> None:
        # showPage resets the graphics state, so font and colour are set per call
        self.canvas.setFont("Helvetica-Bold" if bold else "Helvetica", size)
        self.canvas.setFillColorRGB(*(c / 255 for c in color))
        self.canvas.drawString(x, PAGE_HEIGHT - top, value)

    def centred_text(self, top: float, value: str, size: float, color: tuple[int, int, int]) -> None:
        self.canvas.setFont("Helvetica", size)
        self.canvas.setFillColorRGB(*(c / 255 for c in color))
        self.canvas.drawCentredString(PAGE_WIDTH / 2, PAGE_HEIGHT - top, value)

    def band(self, height: float) -> None:
        """Filled strip across the top of the current page."""
        self.canvas.setFillColorRGB(*(c / 255 for c in BAND))
        self.canvas.rect(0, PAGE_HEIGHT - height, PAGE_WIDTH, height, stroke=0, fill=1)

    def rule(self, top: float) -> None:
        self.canvas.setStrokeColorRGB(*(c / 255 for c in RULE))
        self.canvas.line(MARGIN, PAGE_HEIGHT - top, PAGE_WIDTH - MARGIN, PAGE_HEIGHT - top)


def _wrap(text: str, size: float, width: float, bold: bool = False) -> list[str]:
    return simpleSplit(text, "Helvetica-Bold" if bold else "Helvetica", size, width)


def prepare_image(content: bytes, compression: ImageCompression) -> tuple[ImageReader, int, int]:
    """Decode, shrink and re-encode one appendix image for embedding."""
    with Image.open(io.BytesIO(content)) as img:
        img = img.convert("RGB")
        img.thumbnail((compression.max_edge, compression.max_edge))
        out = io.BytesIO()
        img.save(out, format="JPEG", quality=compression.jpeg_quality)
        width, height = img.size
    out.seek(0)
    return ImageReader(out), width, height


class FixedPageRenderer:
    """Renders an ExportContext to a paginated PDF."""

    def __init__(self, compression_threshold: int = DEFAULT_COMPRESSION_THRESHOLD):
        self.compression_threshold = compression_threshold

    def render(self, context: ExportContext) -> ExportArtifact:
        """
        Render the whole document in one pass.

        Raises:
            ExportError: anything fails; no partial artifact is returned
        """
        tracer = get_tracer()
        documents = list(context.documents)
        start_time = time.time()

        with tracer.start_span("render_export", attributes=export_attributes("pdf", len(documents))) as span:
            try:
                buf = io.BytesIO()
                canvas = Canvas(buf, pagesize=A4, pageCompression=1)
                canvas.setTitle(f"{TITLE} - {context.display_name}")
                cursor = PageCursor(canvas)

                self._draw_header(cursor, context)
                for title, body in context.sections:
                    self._draw_section(cursor, title, body)
                index_ids = self._draw_index(cursor, documents)

                compression = select_compression(len(documents), self.compression_threshold)
                appendix_ids = []
                for number, doc in enumerate(documents, start=1):
                    cursor.new_page()
                    self._draw_appendix(cursor, number, doc, compression)
                    appendix_ids.append(doc.id)

                canvas.save()
            except ExportError:
                raise
            except Exception as e:
                logger.error(f"PDF export failed: {e}")
                raise ExportError(f"PDF export failed: {e}") from e

            content = buf.getvalue()
            span.set_attribute(CHRONICLE_EXPORT_BYTES, len(content))
            span.set_attribute(CHRONICLE_EXPORT_PAGES, cursor.pages)

        logger.info(
            f"Rendered PDF: {cursor.pages} page(s), {len(content)} bytes "
            f"in {(time.time() - start_time) * 1000:.0f}ms"
        )
        return ExportArtifact(
            filename=export_filename("pdf", context.patient_name),
            media_type=PDF_MEDIA_TYPE,
            content=content,
            index_ids=index_ids,
            appendix_ids=appendix_ids,
            page_count=cursor.pages,
        )

    # -------------------------------------------------------------------------
    # BLOCKS
    # -------------------------------------------------------------------------

    def _draw_header(self, cursor: PageCursor, context: ExportContext) -> None:
        cursor.band(40 * mm)
        cursor.text(MARGIN, 18 * mm, TITLE, size=22, bold=True, color=INK)
        cursor.text(MARGIN, 26 * mm, f"Patient: {context.display_name}", size=10, color=MUTED)
        cursor.text(MARGIN, 31 * mm, f"Date Generated: {context.generated_on.isoformat()}", size=10, color=MUTED)
        cursor.y = 50 * mm

    def _draw_section(self, cursor: PageCursor, title: str, body: str) -> None:
        cursor.ensure_space(20 * mm)
        cursor.text(MARGIN, cursor.y, title, size=13, bold=True, color=ACCENT)
        cursor.y += 8 * mm

        for line in _wrap(body, 10, CONTENT_WIDTH):
            cursor.ensure_space(7 * mm)
            cursor.text(MARGIN, cursor.y, line, size=10, color=BODY)
            cursor.y += 6 * mm
        cursor.y += 10 * mm

    def _draw_index(self, cursor: PageCursor, documents: list[Document]) -> list[str]:
        cursor.ensure_space(40 * mm)
        cursor.text(MARGIN, cursor.y, INDEX_TITLE, size=13, bold=True, color=ACCENT)
        cursor.y += 10 * mm

        for offset, label in ((0, "REF"), (COL_DATE, "DATE"), (COL_TYPE, "TYPE"), (COL_SUMMARY, "KEY FINDING SUMMARY")):
            cursor.text(MARGIN + offset, cursor.y, label, size=8, bold=True, color=MUTED)
        cursor.y += 3 * mm
        cursor.rule(cursor.y)
        cursor.y += 8 * mm

        index_ids = []
        for number, doc in enumerate(documents, start=1):
            summary_lines = _wrap(doc.summary, 8, CONTENT_WIDTH - COL_SUMMARY)
            row_height = max(8 * mm, len(summary_lines) * 4 * mm + 4 * mm)
            cursor.ensure_space(row_height)

            cursor.text(MARGIN, cursor.y, str(number), size=8, bold=True, color=BODY)
            cursor.text(MARGIN + COL_DATE, cursor.y, display_date(doc), size=8, color=BODY)
            cursor.text(MARGIN + COL_TYPE, cursor.y, doc.category.value, size=8, color=ACCENT)
            for i, line in enumerate(summary_lines):
                cursor.text(MARGIN + COL_SUMMARY, cursor.y + i * 4 * mm, line, size=8, color=BODY)

            cursor.y += row_height
            index_ids.append(doc.id)
        return index_ids

    def _draw_appendix(
        self,
        cursor: PageCursor,
        number: int,
        doc: Document,
        compression: ImageCompression,
    ) -> None:
        cursor.band(30 * mm)
        cursor.text(MARGIN, 12 * mm, f"APPENDIX RECORD #{number}: {doc.category.value}", size=12, bold=True, color=INK)
        cursor.text(
            MARGIN, 18 * mm,
            f"Date: {doc.date or 'Unknown'} | File: {doc.file_name}",
            size=8, color=MUTED,
        )
        cursor.y = 24 * mm
        for line in _wrap(f"Summary: {doc.summary}", 8, CONTENT_WIDTH):
            cursor.ensure_space(SUMMARY_LEADING)
            cursor.text(MARGIN, cursor.y, line, size=8, color=ACCENT)
            cursor.y += SUMMARY_LEADING

        # The image starts below the summary, on a fresh page if too little room is left
        image_top = max(IMAGE_TOP, cursor.y + 5 * mm)
        if PAGE_HEIGHT - image_top - IMAGE_BOTTOM < MIN_IMAGE_HEIGHT:
            cursor.new_page()
            image_top = PAGE_TOP
        avail_height = PAGE_HEIGHT - image_top - IMAGE_BOTTOM

        if not doc.file.is_image:
            cursor.centred_text(max(PAGE_HEIGHT / 2, image_top + 10 * mm), NON_IMAGE_LABEL, size=10, color=PLACEHOLDER)
            return

        try:
            reader, width, height = prepare_image(doc.file.content, compression)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to include image in PDF: {doc.file_name} ({e})")
            cursor.text(MARGIN, image_top + 10 * mm, IMAGE_FAILED_LABEL, size=10, color=MUTED)
            return

        x, w, h = fit_image(width, height, avail_height=avail_height)
        cursor.canvas.drawImage(reader, x, PAGE_HEIGHT - image_top - h, width=w, height=h)
