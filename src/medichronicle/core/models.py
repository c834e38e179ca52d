"""
Domain models shared by every stage of the pipeline.

Single responsibility: define the shape of documents, source files and
reports. No I/O, no service calls.
"""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path


class DocumentCategory(str, Enum):
    """Closed set of categories the classification service may assign."""

    LAB = "LAB"
    IMAGING = "IMAGING"
    PRESCRIPTION = "PRESCRIPTION"
    NOTE = "NOTE"
    OTHER = "OTHER"


# mimetypes has no entries for these on many platforms
_EXTRA_MIME_TYPES = {
    ".heic": "image/heic",
    ".heif": "image/heif",
    ".webp": "image/webp",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".doc": "application/msword",
}


@dataclass
class SourceFile:
    """A raw input file: the binary payload the repository owns."""

    name: str
    mime_type: str
    content: bytes = field(repr=False)

    @classmethod
    def from_path(cls, path: Path | str) -> "SourceFile":
        path = Path(path)
        mime_type = _EXTRA_MIME_TYPES.get(path.suffix.lower())
        if mime_type is None:
            mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return cls(name=path.name, mime_type=mime_type, content=path.read_bytes())

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class Document:
    """
    A classified document.

    `preview_handle` is a display handle valid only for the current process;
    it is regenerated on every repository load and never persisted.
    """

    id: str
    file: SourceFile
    date: str | None  # ISO YYYY-MM-DD
    category: DocumentCategory
    summary: str
    is_duplicate: bool = False
    original_index: int | None = None
    preview_handle: str | None = None

    def without_handle(self) -> "Document":
        """The persisted projection of this document."""
        return replace(self, preview_handle=None)

    @property
    def file_name(self) -> str:
        return self.file.name


@dataclass(frozen=True)
class Report:
    """The three-part narrative produced by one synthesis invocation."""

    history: str
    synthesis: str
    observations: str
