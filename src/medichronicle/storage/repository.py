"""
Document repository implementations following the gold standard pattern.

Pattern: Protocol → Production impl → Test double → Factory

This module contains:
1. SQLiteDocumentRepository - durable store on the local filesystem
2. InMemoryDocumentRepository - same contract, no I/O (testing)
3. get_document_repository() - Factory function

CONTRACT:
---------
- put_all replaces the persisted set inside ONE transaction. On failure the
  caller must reload; it must not assume partial application.
- load_all returns documents in the order of the last put_all, each with a
  display handle freshly issued from the injected PreviewRegistry.
- remove of an unknown id is a no-op.
- The repository does no locking. Callers serialize access.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import closing, contextmanager
from pathlib import Path
from typing import Iterator

from medichronicle.core.errors import RepositoryError
from medichronicle.core.models import Document, DocumentCategory, SourceFile
from medichronicle.core.protocols import DocumentRepository
from medichronicle.storage.previews import PreviewRegistry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# SQLITE REPOSITORY (Production)
# ---------------------------------------------------------------------------


class SQLiteDocumentRepository:
    """
    SQLite-backed document store.

    Payload bytes live in the same row as the metadata, so a document and
    its file can never be persisted separately. The display handle is
    deliberately not a column.
    """

    TABLE = "documents"

    def __init__(self, db_path: Path | str, previews: PreviewRegistry):
        self._path = Path(db_path)
        self._previews = previews
        self._schema_ready = False

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection inside one transaction; sqlite errors become RepositoryError."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with closing(sqlite3.connect(self._path)) as conn:
                with conn:
                    if not self._schema_ready:
                        self._create_schema(conn)
                    yield conn
            self._schema_ready = True
        except (sqlite3.Error, OSError) as e:
            raise RepositoryError(f"Document store failure: {e}") from e

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self.TABLE} (
                id TEXT PRIMARY KEY,
                position INTEGER NOT NULL,
                file_name TEXT NOT NULL,
                mime_type TEXT NOT NULL,
                content BLOB NOT NULL,
                date TEXT,
                category TEXT NOT NULL,
                summary TEXT NOT NULL,
                is_duplicate INTEGER NOT NULL,
                original_index INTEGER
            )
            """
        )

    def put_all(self, documents: list[Document]) -> None:
        """Clear then insert, atomically."""
        rows = [
            (
                doc.id,
                position,
                doc.file.name,
                doc.file.mime_type,
                doc.file.content,
                doc.date,
                doc.category.value,
                doc.summary,
                int(doc.is_duplicate),
                doc.original_index,
            )
            for position, doc in enumerate(documents)
        ]
        with self._transaction() as conn:
            conn.execute(f"DELETE FROM {self.TABLE}")
            conn.executemany(
                f"""
                INSERT INTO {self.TABLE}
                    (id, position, file_name, mime_type, content, date,
                     category, summary, is_duplicate, original_index)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
        logger.info(f"Persisted {len(rows)} document(s)")

    def load_all(self) -> list[Document]:
        with self._transaction() as conn:
            rows = conn.execute(
                f"""
                SELECT id, file_name, mime_type, content, date, category,
                       summary, is_duplicate, original_index
                FROM {self.TABLE}
                ORDER BY position
                """
            ).fetchall()

        documents = []
        for row in rows:
            content = bytes(row[3])
            documents.append(Document(
                id=row[0],
                file=SourceFile(name=row[1], mime_type=row[2], content=content),
                date=row[4],
                category=DocumentCategory(row[5]),
                summary=row[6],
                is_duplicate=bool(row[7]),
                original_index=row[8],
                preview_handle=self._previews.create(content),
            ))
        return documents

    def remove(self, document_id: str) -> None:
        with self._transaction() as conn:
            deleted = conn.execute(
                f"DELETE FROM {self.TABLE} WHERE id = ?", (document_id,)
            ).rowcount
        if deleted:
            logger.info(f"Removed document {document_id}")

    def clear(self) -> None:
        with self._transaction() as conn:
            conn.execute(f"DELETE FROM {self.TABLE}")
        logger.info("Cleared document store")


# ---------------------------------------------------------------------------
# IN-MEMORY REPOSITORY (Testing/Development)
# ---------------------------------------------------------------------------


class InMemoryDocumentRepository:
    """
    In-memory document store for development/testing.

    Implements the same interface as SQLiteDocumentRepository but keeps
    the persisted projection (no display handles) in a dict.
    """

    def __init__(self, previews: PreviewRegistry):
        self._previews = previews
        self._documents: dict[str, Document] = {}
        self.fail_next_write: Exception | None = None

    def _maybe_fail(self) -> None:
        if self.fail_next_write is not None:
            error, self.fail_next_write = self.fail_next_write, None
            raise RepositoryError(str(error)) from error

    def put_all(self, documents: list[Document]) -> None:
        self._maybe_fail()
        self._documents = {doc.id: doc.without_handle() for doc in documents}

    def load_all(self) -> list[Document]:
        loaded = []
        for doc in self._documents.values():
            loaded.append(Document(
                id=doc.id,
                file=doc.file,
                date=doc.date,
                category=doc.category,
                summary=doc.summary,
                is_duplicate=doc.is_duplicate,
                original_index=doc.original_index,
                preview_handle=self._previews.create(doc.file.content),
            ))
        return loaded

    def remove(self, document_id: str) -> None:
        self._maybe_fail()
        self._documents.pop(document_id, None)

    def clear(self) -> None:
        self._maybe_fail()
        self._documents.clear()


# ---------------------------------------------------------------------------
# FACTORY FUNCTION
# ---------------------------------------------------------------------------


def get_document_repository(
    previews: PreviewRegistry,
    use_sqlite: bool = True,
    db_path: Path | str | None = None,
) -> DocumentRepository:
    """
    Factory function for document repositories.

    Args:
        previews: Registry that issues display handles on load
        use_sqlite: If True, use SQLiteDocumentRepository
        db_path: Database path (defaults to the configured data dir)
    """
    if not use_sqlite:
        return InMemoryDocumentRepository(previews)

    if db_path is None:
        from medichronicle.config import get_config

        db_path = get_config().database_path
    return SQLiteDocumentRepository(db_path, previews)
