"""
Storage module - the only durable state in the system.

This module provides:
- SQLiteDocumentRepository / InMemoryDocumentRepository + factory
- FileProfileStore / InMemoryProfileStore + factory
- PreviewRegistry: process-scoped display handles
"""

from medichronicle.storage.previews import PreviewRegistry
from medichronicle.storage.repository import (
    SQLiteDocumentRepository,
    InMemoryDocumentRepository,
    get_document_repository,
)
from medichronicle.storage.profile_store import (
    ProfileStore,
    FileProfileStore,
    InMemoryProfileStore,
    get_profile_store,
)

__all__ = [
    "PreviewRegistry",
    "SQLiteDocumentRepository",
    "InMemoryDocumentRepository",
    "get_document_repository",
    "ProfileStore",
    "FileProfileStore",
    "InMemoryProfileStore",
    "get_profile_store",
]
