"""
Core module - shared protocols, models and errors for the entire system.

USAGE:
------
from medichronicle.core import Document, DocumentRepository

class MyRepository:
    '''Implements DocumentRepository protocol.'''
    ...
"""

from medichronicle.core.errors import (
    ChronicleError,
    NormalizationError,
    ClassificationError,
    SynthesisError,
    RepositoryError,
    ExportError,
    PermissionDeniedError,
)
from medichronicle.core.models import (
    DocumentCategory,
    SourceFile,
    Document,
    Report,
)
from medichronicle.core.protocols import (
    # Protocols
    ClassificationService,
    SynthesisService,
    DocumentRepository,
    # Payloads
    InlinePayload,
    TextPayload,
    Payload,
    ProgressCallback,
)

__all__ = [
    # Errors
    "ChronicleError",
    "NormalizationError",
    "ClassificationError",
    "SynthesisError",
    "RepositoryError",
    "ExportError",
    "PermissionDeniedError",
    # Models
    "DocumentCategory",
    "SourceFile",
    "Document",
    "Report",
    # Protocols
    "ClassificationService",
    "SynthesisService",
    "DocumentRepository",
    # Payloads
    "InlinePayload",
    "TextPayload",
    "Payload",
    "ProgressCallback",
]
