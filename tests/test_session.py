"""
Unit Tests for the Session State Machine

Every collaborator is a test double (in-memory stores, static services)
except the renderers, which run for real against fake PDFs.

TESTING STRATEGY:
-----------------
1. Step transitions for the happy path
2. Failures leave the document set untouched and revert the step
3. Store mutations happen before the in-memory cache changes
4. Display handles are revoked when documents go away
"""

import asyncio
import struct
import zlib
from unittest.mock import MagicMock

import pytest

from medichronicle.config import ChronicleConfig
from medichronicle.core.errors import (
    ClassificationError,
    ExportError,
    PermissionDeniedError,
    RepositoryError,
    SynthesisError,
)
from medichronicle.core.models import SourceFile
from medichronicle.ingestion import DocumentClassifier
from medichronicle.llm import StaticClassificationService, StaticSynthesisService
from medichronicle.schemas.records import PatientProfile
from medichronicle.session import (
    AppStep,
    ChronicleSession,
    OperationState,
    OperationTracker,
    create_session,
)
from medichronicle.storage import (
    InMemoryDocumentRepository,
    InMemoryProfileStore,
    PreviewRegistry,
)
from medichronicle.synthesis import ReportSynthesizer


# ---------------------------------------------------------------------------
# FIXTURES
# ---------------------------------------------------------------------------


PROFILE = PatientProfile(name="Jane Doe", dob="1970-01-01", gender="Female")


def _pdf(name: str) -> SourceFile:
    return SourceFile(name, "application/pdf", f"%PDF-1.4 {name}".encode())


def _png_header(width: int, height: int) -> bytes:
    """A PNG that declares its size but carries no pixel data."""
    def chunk(kind: bytes, data: bytes) -> bytes:
        return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", zlib.crc32(kind + data))

    ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", ihdr) + chunk(b"IDAT", b"") + chunk(b"IEND", b"")


def _record(date="2023-01-15", kind="LAB", summary="Normal CBC", duplicate=False) -> dict:
    return {"date": date, "type": kind, "summary": summary, "isDuplicate": duplicate}


class Harness:
    """A session plus direct access to its doubles."""

    def __init__(self, profile=PROFILE, synthesis_response=None):
        self.previews = PreviewRegistry()
        self.repository = InMemoryDocumentRepository(self.previews)
        self.profiles = InMemoryProfileStore(profile)
        self.classification = StaticClassificationService()
        self.synthesis = StaticSynthesisService(synthesis_response)
        self.session = ChronicleSession(
            repository=self.repository,
            profile_store=self.profiles,
            classifier=DocumentClassifier(self.classification, batch_size=10),
            synthesizer=ReportSynthesizer(self.synthesis),
            previews=self.previews,
        )

    def ingest(self, *names, records=None):
        self.classification.queue(records or [_record(summary=n) for n in names])
        return asyncio.run(self.session.ingest([_pdf(n) for n in names]))


@pytest.fixture
def harness():
    h = Harness()
    h.session.initialize()
    return h


@pytest.fixture
def populated(harness):
    harness.ingest("a.pdf", "b.pdf")
    return harness


# ---------------------------------------------------------------------------
# OPERATION TRACKER
# ---------------------------------------------------------------------------


class TestOperationTracker:
    """Per-operation state machine."""

    def test_happy_path(self):
        tracker = OperationTracker("ingestion")
        tracker.begin()
        assert tracker.state is OperationState.IN_PROGRESS
        tracker.succeed()
        assert tracker.state is OperationState.SUCCEEDED

    def test_failure_is_sticky_until_acknowledged(self):
        tracker = OperationTracker("synthesis")
        tracker.begin()
        error = tracker.fail(PermissionDeniedError("bad key"))

        assert tracker.state is OperationState.FAILED
        assert error.operation == "synthesis"
        assert error.error_type == "PermissionDeniedError"
        assert error.requires_credentials is True

        tracker.acknowledge()
        assert tracker.state is OperationState.IDLE
        assert tracker.error is None

    def test_retry_from_failed(self):
        tracker = OperationTracker("export")
        tracker.begin()
        tracker.fail(ExportError("disk"))
        tracker.begin()
        assert tracker.state is OperationState.IN_PROGRESS
        assert tracker.error is None

    def test_no_concurrent_begin(self):
        tracker = OperationTracker("ingestion")
        tracker.begin()
        with pytest.raises(RuntimeError):
            tracker.begin()


# ---------------------------------------------------------------------------
# LIFECYCLE
# ---------------------------------------------------------------------------


class TestInitialize:
    """Starting step depends on what the stores hold."""

    def test_no_profile_starts_at_registration(self):
        h = Harness(profile=None)
        assert h.session.initialize() is AppStep.REGISTRATION

    def test_profile_without_documents_starts_at_upload(self):
        h = Harness()
        assert h.session.initialize() is AppStep.UPLOAD
        assert h.session.profile == PROFILE

    def test_profile_with_documents_starts_at_review(self, populated):
        fresh = Harness()
        fresh.repository.put_all(list(populated.session.documents))

        assert fresh.session.initialize() is AppStep.REVIEW
        assert len(fresh.session.documents) == 2
        assert all(d.preview_handle in fresh.previews for d in fresh.session.documents)

    def test_register_profile(self):
        h = Harness(profile=None)
        h.session.initialize()
        h.session.register_profile(PROFILE)

        assert h.profiles.load() == PROFILE
        assert h.session.step is AppStep.UPLOAD


# ---------------------------------------------------------------------------
# INGESTION
# ---------------------------------------------------------------------------


class TestIngest:
    """Classification plus persistence."""

    def test_success(self, harness):
        added = harness.ingest("a.pdf", "b.pdf")

        assert [d.summary for d in added] == ["a.pdf", "b.pdf"]
        assert harness.session.step is AppStep.REVIEW
        assert harness.session.ingestion.state is OperationState.SUCCEEDED
        assert [d.id for d in harness.repository.load_all()] == [d.id for d in added]

    def test_new_documents_get_live_handles(self, harness):
        added = harness.ingest("a.pdf")
        assert harness.previews.resolve(added[0].preview_handle) == added[0].file.content

    def test_second_ingest_appends(self, populated):
        populated.ingest("c.pdf")

        assert [d.summary for d in populated.session.documents] == ["a.pdf", "b.pdf", "c.pdf"]
        assert len(populated.repository.load_all()) == 3

    def test_progress_forwarded(self, harness):
        harness.classification.queue([_record() for _ in range(10)])
        harness.classification.queue([_record(), _record()])
        progress = []

        asyncio.run(harness.session.ingest(
            [_pdf(f"{i}.pdf") for i in range(12)],
            lambda processed, total: progress.append((processed, total)),
        ))

        assert progress == [(10, 12), (12, 12)]

    def test_unsupported_files_are_dropped(self, harness):
        added = asyncio.run(harness.session.ingest([SourceFile("notes.txt", "text/plain", b"x")]))

        assert added == []
        assert harness.classification.calls == []
        assert harness.session.step is AppStep.UPLOAD

    def test_new_ingest_invalidates_report(self, populated):
        asyncio.run(populated.session.generate_report())
        populated.ingest("c.pdf")
        assert populated.session.report is None


class TestIngestFailure:
    """A failed ingestion changes nothing and records the error."""

    def test_classification_failure(self, populated):
        before = populated.session.documents
        populated.classification.queue([_record()])  # one record for two files

        result = asyncio.run(populated.session.ingest([_pdf("c.pdf"), _pdf("d.pdf")]))

        assert result is None
        assert populated.session.documents == before
        assert len(populated.repository.load_all()) == 2
        assert populated.session.step is AppStep.UPLOAD
        assert populated.session.ingestion.state is OperationState.FAILED
        assert populated.session.last_error.error_type == "ClassificationError"
        assert populated.session.last_error.requires_credentials is False

    def test_permission_failure_flags_credentials(self, harness):
        harness.classification.queue(PermissionDeniedError("key rejected"))

        assert asyncio.run(harness.session.ingest([_pdf("a.pdf")])) is None
        assert harness.session.last_error.requires_credentials is True

    def test_store_failure_reloads_known_state(self, populated):
        populated.repository.fail_next_write = OSError("disk full")
        populated.classification.queue([_record()])

        result = asyncio.run(populated.session.ingest([_pdf("c.pdf")]))

        assert result is None
        assert [d.summary for d in populated.session.documents] == ["a.pdf", "b.pdf"]
        assert populated.session.last_error.error_type == "RepositoryError"

    def test_acknowledge_clears_error(self, harness):
        harness.classification.queue(ClassificationError("bad"))
        asyncio.run(harness.session.ingest([_pdf("a.pdf")]))

        harness.session.acknowledge_error()

        assert harness.session.last_error is None
        assert harness.session.ingestion.state is OperationState.IDLE

    def test_retry_after_failure(self, harness):
        harness.classification.queue(ClassificationError("bad"))
        asyncio.run(harness.session.ingest([_pdf("a.pdf")]))

        assert harness.ingest("a.pdf") is not None
        assert harness.session.ingestion.state is OperationState.SUCCEEDED

    def test_oversized_image_fails_cleanly(self, harness):
        bomb = SourceFile("scan.png", "image/png", _png_header(20000, 20000))

        assert asyncio.run(harness.session.ingest([bomb])) is None
        assert harness.session.ingestion.state is OperationState.FAILED
        assert harness.session.step is AppStep.UPLOAD
        assert harness.session.last_error.error_type == "NormalizationError"
        assert harness.classification.calls == []

        assert harness.ingest("a.pdf") is not None
        assert harness.session.ingestion.state is OperationState.SUCCEEDED

    def test_unexpected_error_marks_failure_and_propagates(self, harness):
        harness.classification.queue(RuntimeError("boom"))

        with pytest.raises(RuntimeError, match="boom"):
            asyncio.run(harness.session.ingest([_pdf("a.pdf")]))

        assert harness.session.ingestion.state is OperationState.FAILED
        assert harness.session.step is AppStep.UPLOAD
        assert harness.session.last_error.error_type == "RuntimeError"
        assert harness.ingest("a.pdf") is not None


# ---------------------------------------------------------------------------
# REMOVAL AND RESET
# ---------------------------------------------------------------------------


class TestRemoveDocument:
    """Store first, then cache, then handle."""

    def test_remove(self, populated):
        target = populated.session.documents[0]

        assert populated.session.remove_document(target.id) is True
        assert target.id not in {d.id for d in populated.session.documents}
        assert target.id not in {d.id for d in populated.repository.load_all()}
        assert target.preview_handle not in populated.previews

    def test_remove_unknown(self, populated):
        assert populated.session.remove_document("missing") is False
        assert len(populated.session.documents) == 2

    def test_store_failure_leaves_cache(self, populated):
        target = populated.session.documents[0]
        populated.repository.fail_next_write = OSError("locked")

        with pytest.raises(RepositoryError):
            populated.session.remove_document(target.id)

        assert target.id in {d.id for d in populated.session.documents}
        assert populated.session.last_error.operation == "remove"


class TestReset:
    """Clear every document, keep the profile."""

    def test_reset(self, populated):
        populated.session.reset()

        assert populated.session.documents == ()
        assert populated.repository.load_all() == []
        assert len(populated.previews) == 0
        assert populated.session.step is AppStep.UPLOAD
        assert populated.session.profile == PROFILE
        assert populated.profiles.load() == PROFILE

    def test_store_failure_reloads_known_state(self, populated):
        stale = [d.preview_handle for d in populated.session.documents]
        populated.repository.fail_next_write = OSError("locked")

        with pytest.raises(RepositoryError):
            populated.session.reset()

        assert [d.summary for d in populated.session.documents] == ["a.pdf", "b.pdf"]
        assert populated.session.last_error.operation == "reset"
        assert all(handle not in populated.previews for handle in stale)
        assert all(d.preview_handle in populated.previews for d in populated.session.documents)


class TestReload:
    """A reload supersedes every handle from the previous load."""

    def test_old_handles_revoked_new_ones_live(self):
        h = Harness()
        h.session.initialize()
        h.ingest("a.pdf", "b.pdf")
        h.session.initialize()
        old = [d.preview_handle for d in h.session.documents]

        h.session.reload()
        new = [d.preview_handle for d in h.session.documents]

        assert all(handle not in h.previews for handle in old)
        assert all(handle in h.previews for handle in new)
        assert set(old).isdisjoint(new)
        assert len(h.previews) == 2
        assert [h.previews.resolve(handle) for handle in new] == [d.file.content for d in h.session.documents]


# ---------------------------------------------------------------------------
# REPORT AND EXPORT
# ---------------------------------------------------------------------------


class TestGenerateReport:
    """Synthesis transitions."""

    def test_success(self, populated):
        report = asyncio.run(populated.session.generate_report())

        assert report is populated.session.report
        assert report.history == "No history."
        assert populated.session.step is AppStep.RESULT
        assert populated.session.synthesis.state is OperationState.SUCCEEDED

    def test_failure_returns_to_review(self):
        h = Harness(synthesis_response=SynthesisError("timeout"))
        h.session.initialize()
        h.ingest("a.pdf")

        assert asyncio.run(h.session.generate_report()) is None
        assert h.session.step is AppStep.REVIEW
        assert h.session.report is None
        assert h.session.last_error.operation == "synthesis"


class TestExport:
    """Both formats land in the output directory."""

    def test_writes_both_formats(self, populated, tmp_path):
        asyncio.run(populated.session.generate_report())

        paths = populated.session.export(tmp_path)

        assert sorted(p.name for p in paths) == [
            "MediChronicle_Organized_Jane_Doe.pdf",
            "MediChronicle_Portfolio_Jane_Doe.doc",
        ]
        assert all(p.stat().st_size > 0 for p in paths)
        assert populated.session.export_state.state is OperationState.SUCCEEDED

    def test_requires_report(self, populated, tmp_path):
        with pytest.raises(RuntimeError):
            populated.session.export(tmp_path)

    def test_render_failure_writes_nothing(self, populated, tmp_path):
        asyncio.run(populated.session.generate_report())
        populated.session._flow_renderer = MagicMock()
        populated.session._flow_renderer.render.side_effect = ExportError("template broke")

        assert populated.session.export(tmp_path / "out") is None
        assert not (tmp_path / "out").exists()
        assert populated.session.export_state.state is OperationState.FAILED


# ---------------------------------------------------------------------------
# FACTORY
# ---------------------------------------------------------------------------


class TestCreateSession:
    """Production wiring from configuration."""

    def test_wires_durable_stores(self, tmp_path):
        config = ChronicleConfig(api_key="sk-test", data_dir=tmp_path)
        session = create_session(config)

        assert session.initialize() is AppStep.REGISTRATION
        session.register_profile(PROFILE)
        assert config.profile_path.exists()

        reopened = create_session(config)
        assert reopened.initialize() is AppStep.UPLOAD
