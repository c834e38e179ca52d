"""
Flow-document export: a Word-compatible HTML document.

No pagination happens here. The consuming word processor paginates; we
only mark forced breaks with `page-break-before: always`, once before the
appendix section and once before every appendix record. Images are
embedded inline as data URIs at their natural size.
"""

from __future__ import annotations

import base64
import logging

from jinja2 import Environment, PackageLoader, TemplateError
from markupsafe import Markup, escape

from medichronicle.core.errors import ExportError
from medichronicle.core.models import Document
from medichronicle.export.layout import (
    APPENDIX_TITLE,
    DOC_MEDIA_TYPE,
    INDEX_TITLE,
    TITLE,
    ExportArtifact,
    ExportContext,
    display_date,
    export_filename,
)
from medichronicle.observability import export_attributes, get_tracer
from medichronicle.observability.attributes import CHRONICLE_EXPORT_BYTES

logger = logging.getLogger(__name__)

TEMPLATE_NAME = "portfolio.html.j2"
BYTE_ORDER_MARK = "\ufeff"


def nl2br(text: str) -> Markup:
    """Escape text and turn newlines into <br> tags."""
    return Markup("<br>\n").join(escape(text).split("\n"))


def _create_environment() -> Environment:
    env = Environment(
        loader=PackageLoader("medichronicle", "export/templates"),
        autoescape=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["nl2br"] = nl2br
    return env


def _image_src(doc: Document) -> str | None:
    if not doc.file.is_image:
        return None
    encoded = base64.b64encode(doc.file.content).decode("ascii")
    return f"data:{doc.file.mime_type};base64,{encoded}"


class FlowDocumentRenderer:
    """Renders an ExportContext to a single HTML document for word processors."""

    def __init__(self, environment: Environment | None = None):
        self._env = environment or _create_environment()

    def render(self, context: ExportContext) -> ExportArtifact:
        """
        Render the whole document in one pass.

        Raises:
            ExportError: template or encoding failure; nothing is returned
        """
        tracer = get_tracer()
        documents = list(context.documents)
        entries = [
            {
                "id": doc.id,
                "number": number,
                "date": display_date(doc),
                "category": doc.category.value,
                "summary": doc.summary,
                "file_name": doc.file_name,
                "image_src": _image_src(doc),
            }
            for number, doc in enumerate(documents, start=1)
        ]

        with tracer.start_span("render_export", attributes=export_attributes("doc", len(documents))) as span:
            try:
                html = self._env.get_template(TEMPLATE_NAME).render(
                    title=TITLE,
                    patient=context.display_name,
                    generated_on=context.generated_on.isoformat(),
                    sections=context.sections,
                    index_title=INDEX_TITLE,
                    appendix_title=APPENDIX_TITLE,
                    entries=entries,
                )
                content = (BYTE_ORDER_MARK + html).encode("utf-8")
            except (TemplateError, UnicodeError) as e:
                logger.error(f"Word export failed: {e}")
                raise ExportError(f"Word export failed: {e}") from e
            span.set_attribute(CHRONICLE_EXPORT_BYTES, len(content))

        logger.info(f"Rendered flow document: {len(content)} bytes")
        ids = [entry["id"] for entry in entries]
        return ExportArtifact(
            filename=export_filename("doc", context.patient_name),
            media_type=DOC_MEDIA_TYPE,
            content=content,
            index_ids=ids,
            appendix_ids=list(ids),
        )
