"""
Export module - the two paginated output encodings.

- layout: shared structure, ordering, filenames, atomic writes
- pdf_renderer: fixed-page format (reportlab)
- flow_renderer: flow-document format (Jinja2 HTML for word processors)
"""

from medichronicle.export.layout import (
    ExportArtifact,
    ExportContext,
    export_filename,
    write_artifact,
)
from medichronicle.export.pdf_renderer import (
    FixedPageRenderer,
    fit_image,
    select_compression,
)
from medichronicle.export.flow_renderer import FlowDocumentRenderer

__all__ = [
    "ExportArtifact",
    "ExportContext",
    "export_filename",
    "write_artifact",
    "FixedPageRenderer",
    "fit_image",
    "select_compression",
    "FlowDocumentRenderer",
]
