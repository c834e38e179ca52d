"""
Timeline Assembler - ordering and duplicate filtering.

All functions here are pure: same documents in, same answer out.

ORDERING:
---------
Documents sort by their ISO date string, with an absent date treated as
the empty string. ISO dates compare correctly as strings, undated
documents land first, and Python's sort is stable so equal or absent
dates keep their input order.

ACTIVE SUBSET:
--------------
A document feeds synthesis unless it is flagged duplicate. Imaging is the
exception: separate frames of one study are often flagged as near-copies
but each still carries its own findings.
"""

from __future__ import annotations

from dataclasses import dataclass

from medichronicle.core.models import Document, DocumentCategory


def _date_key(doc: Document) -> str:
    return doc.date or ""


def chronological(documents: list[Document]) -> list[Document]:
    """Documents in ascending date order, undated first, ties stable."""
    return sorted(documents, key=_date_key)


def is_active(doc: Document) -> bool:
    return not doc.is_duplicate or doc.category is DocumentCategory.IMAGING


def is_flagged_duplicate(doc: Document) -> bool:
    """Whether a document should be shown as an excluded duplicate."""
    return not is_active(doc)


def active_subset(documents: list[Document]) -> list[Document]:
    """Chronologically ordered documents that feed synthesis."""
    return [doc for doc in chronological(documents) if is_active(doc)]


@dataclass(frozen=True)
class Timeline:
    """An assembled view over one document set."""

    ordered: list[Document]
    active: list[Document]
    flagged_ids: frozenset[str]

    @property
    def has_duplicates(self) -> bool:
        return bool(self.flagged_ids)

    @property
    def undated_count(self) -> int:
        return sum(1 for doc in self.ordered if doc.date is None)

    @property
    def excluded_count(self) -> int:
        return len(self.ordered) - len(self.active)


def assemble_timeline(documents: list[Document]) -> Timeline:
    """Compute ordering, active subset and duplicate flags in one pass."""
    ordered = chronological(documents)
    return Timeline(
        ordered=ordered,
        active=[doc for doc in ordered if is_active(doc)],
        flagged_ids=frozenset(doc.id for doc in ordered if is_flagged_duplicate(doc)),
    )
