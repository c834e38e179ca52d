"""
Unit Tests for Timeline Assembly

All functions under test are pure, so documents are built inline.
"""

import pytest

from medichronicle.core.models import Document, DocumentCategory, SourceFile
from medichronicle.timeline import (
    active_subset,
    assemble_timeline,
    chronological,
    is_active,
)


# ---------------------------------------------------------------------------
# FIXTURES
# ---------------------------------------------------------------------------


def _doc(doc_id, date=None, category=DocumentCategory.LAB, duplicate=False) -> Document:
    return Document(
        id=doc_id,
        file=SourceFile(f"{doc_id}.pdf", "application/pdf", b"%PDF"),
        date=date,
        category=category,
        summary=f"summary {doc_id}",
        is_duplicate=duplicate,
    )


@pytest.fixture
def mixed_documents():
    return [
        _doc("late", "2024-06-01"),
        _doc("undated-1"),
        _doc("early", "2019-02-10"),
        _doc("dup-lab", "2021-01-01", duplicate=True),
        _doc("undated-2"),
        _doc("dup-scan", "2021-01-01", DocumentCategory.IMAGING, duplicate=True),
    ]


# ---------------------------------------------------------------------------
# ORDERING
# ---------------------------------------------------------------------------


class TestChronological:
    """Ascending by date, undated first, ties stable."""

    def test_undated_first_then_ascending(self, mixed_documents):
        ids = [d.id for d in chronological(mixed_documents)]
        assert ids == ["undated-1", "undated-2", "early", "dup-lab", "dup-scan", "late"]

    def test_equal_dates_keep_input_order(self):
        docs = [_doc("b", "2020-01-01"), _doc("a", "2020-01-01"), _doc("c", "2020-01-01")]
        assert [d.id for d in chronological(docs)] == ["b", "a", "c"]

    def test_does_not_mutate_input(self, mixed_documents):
        before = list(mixed_documents)
        chronological(mixed_documents)
        assert mixed_documents == before

    def test_order_is_deterministic(self, mixed_documents):
        assert chronological(mixed_documents) == chronological(list(mixed_documents))


# ---------------------------------------------------------------------------
# ACTIVE SUBSET
# ---------------------------------------------------------------------------


class TestActiveSubset:
    """Duplicates are excluded unless they are imaging."""

    def test_flagged_lab_is_excluded(self):
        assert not is_active(_doc("x", duplicate=True))

    def test_flagged_imaging_is_kept(self):
        assert is_active(_doc("x", category=DocumentCategory.IMAGING, duplicate=True))

    def test_unflagged_is_kept(self):
        for category in DocumentCategory:
            assert is_active(_doc("x", category=category))

    def test_subset_is_ordered_and_filtered(self, mixed_documents):
        ids = [d.id for d in active_subset(mixed_documents)]
        assert ids == ["undated-1", "undated-2", "early", "dup-scan", "late"]

    def test_subset_is_ordered_subsequence_of_timeline(self, mixed_documents):
        ordered = chronological(mixed_documents)
        active = active_subset(mixed_documents)
        positions = [ordered.index(d) for d in active]
        assert positions == sorted(positions)


# ---------------------------------------------------------------------------
# ASSEMBLED VIEW
# ---------------------------------------------------------------------------


class TestAssembleTimeline:
    """The combined view used by display and synthesis."""

    def test_flags_and_counts(self, mixed_documents):
        timeline = assemble_timeline(mixed_documents)

        assert timeline.flagged_ids == frozenset({"dup-lab"})
        assert timeline.has_duplicates
        assert timeline.excluded_count == 1
        assert timeline.undated_count == 2
        assert len(timeline.ordered) == 6

    def test_empty(self):
        timeline = assemble_timeline([])
        assert timeline.ordered == []
        assert timeline.active == []
        assert not timeline.has_duplicates
