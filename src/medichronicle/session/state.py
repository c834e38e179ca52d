"""
Session state - the process-scoped owner of profile, documents and report.

There are no ambient globals: one ChronicleSession holds the in-memory
view and drives every transition. The in-memory document list is a cache
of the repository and is only updated AFTER the corresponding repository
mutation succeeds.

STATE MACHINES:
---------------
AppStep tracks where the operator is in the workflow. Each long-running
operation (ingestion, synthesis, export) additionally has an
OperationTracker:

    IDLE ──begin──▶ IN_PROGRESS ──succeed──▶ SUCCEEDED
                         │
                         └──fail──▶ FAILED ──acknowledge / begin──▶ ...

Nothing leaves FAILED on its own. The operator either acknowledges the
error or starts the operation again; there are no automatic retries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from medichronicle.core.errors import ChronicleError, RepositoryError
from medichronicle.core.models import Document, Report, SourceFile
from medichronicle.core.protocols import DocumentRepository, ProgressCallback
from medichronicle.export.flow_renderer import FlowDocumentRenderer
from medichronicle.export.layout import ExportContext, write_artifact
from medichronicle.export.pdf_renderer import FixedPageRenderer
from medichronicle.ingestion.classifier import DocumentClassifier
from medichronicle.ingestion.normalizer import filter_supported
from medichronicle.schemas.records import PatientProfile
from medichronicle.storage.previews import PreviewRegistry
from medichronicle.storage.profile_store import ProfileStore
from medichronicle.synthesis.synthesizer import ReportSynthesizer
from medichronicle.timeline.assembler import Timeline, assemble_timeline

logger = logging.getLogger(__name__)


class AppStep(Enum):
    """Where the operator is in the workflow."""
    REGISTRATION = "REGISTRATION"
    UPLOAD = "UPLOAD"
    ANALYZING_METADATA = "ANALYZING_METADATA"
    REVIEW = "REVIEW"
    GENERATING_REPORT = "GENERATING_REPORT"
    RESULT = "RESULT"


class OperationState(Enum):
    """Lifecycle of one long-running operation."""
    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    FAILED = "failed"
    SUCCEEDED = "succeeded"


@dataclass
class SessionError:
    """A failure surfaced to the operator."""
    operation: str
    error_type: str
    message: str
    requires_credentials: bool = False

    @classmethod
    def from_exception(cls, operation: str, exc: Exception) -> "SessionError":
        return cls(
            operation=operation,
            error_type=type(exc).__name__,
            message=str(exc),
            requires_credentials=getattr(exc, "requires_credentials", False),
        )


class OperationTracker:
    """Resettable state machine for one operation."""

    def __init__(self, name: str):
        self.name = name
        self.state = OperationState.IDLE
        self.error: SessionError | None = None

    def begin(self) -> None:
        if self.state is OperationState.IN_PROGRESS:
            raise RuntimeError(f"{self.name} is already in progress")
        self.state = OperationState.IN_PROGRESS
        self.error = None

    def succeed(self) -> None:
        self.state = OperationState.SUCCEEDED

    def fail(self, exc: Exception) -> SessionError:
        self.state = OperationState.FAILED
        self.error = SessionError.from_exception(self.name, exc)
        return self.error

    def acknowledge(self) -> None:
        """Operator dismissed the failure."""
        if self.state is OperationState.FAILED:
            self.state = OperationState.IDLE
            self.error = None


class ChronicleSession:
    """
    One patient's dossier for the lifetime of the process.

    All collaborators are injected; see `create_session()` in
    medichronicle.session for the production wiring.
    """

    def __init__(
        self,
        repository: DocumentRepository,
        profile_store: ProfileStore,
        classifier: DocumentClassifier,
        synthesizer: ReportSynthesizer,
        previews: PreviewRegistry,
        pdf_renderer: FixedPageRenderer | None = None,
        flow_renderer: FlowDocumentRenderer | None = None,
    ):
        self._repository = repository
        self._profile_store = profile_store
        self._classifier = classifier
        self._synthesizer = synthesizer
        self._previews = previews
        self._pdf_renderer = pdf_renderer or FixedPageRenderer()
        self._flow_renderer = flow_renderer or FlowDocumentRenderer()

        self.step = AppStep.REGISTRATION
        self.profile: PatientProfile | None = None
        self.report: Report | None = None
        self._documents: list[Document] = []

        self.ingestion = OperationTracker("ingestion")
        self.synthesis = OperationTracker("synthesis")
        self.export_state = OperationTracker("export")
        self.last_error: SessionError | None = None

    # -------------------------------------------------------------------------
    # VIEWS
    # -------------------------------------------------------------------------

    @property
    def documents(self) -> tuple[Document, ...]:
        """Read-only view of the cached document list."""
        return tuple(self._documents)

    @property
    def timeline(self) -> Timeline:
        return assemble_timeline(self._documents)

    # -------------------------------------------------------------------------
    # LIFECYCLE
    # -------------------------------------------------------------------------

    def initialize(self) -> AppStep:
        """Hydrate from the stores and pick the starting step."""
        self.profile = self._profile_store.load()
        if self.profile is None:
            self.step = AppStep.REGISTRATION
            return self.step

        self.reload()
        self.step = AppStep.REVIEW if self._documents else AppStep.UPLOAD
        return self.step

    def reload(self) -> None:
        """Replace the cache with the repository contents; old handles are revoked."""
        self._previews.revoke_all()
        self._documents = self._repository.load_all()

    def register_profile(self, profile: PatientProfile) -> None:
        self._profile_store.save(profile)
        self.profile = profile
        self.step = AppStep.REVIEW if self._documents else AppStep.UPLOAD

    def reset(self) -> None:
        """Clear every document. The profile is kept."""
        try:
            self._repository.clear()
        except RepositoryError as e:
            self.last_error = SessionError.from_exception("reset", e)
            self._reload_after_failure()
            raise
        self._previews.revoke_all()
        self._documents = []
        self.report = None
        self.last_error = None
        self.step = AppStep.UPLOAD if self.profile else AppStep.REGISTRATION

    def acknowledge_error(self) -> None:
        for tracker in (self.ingestion, self.synthesis, self.export_state):
            tracker.acknowledge()
        self.last_error = None

    # -------------------------------------------------------------------------
    # OPERATIONS
    # -------------------------------------------------------------------------

    async def ingest(
        self,
        files: list[SourceFile],
        on_progress: ProgressCallback | None = None,
    ) -> list[Document] | None:
        """
        Classify and persist new files, appending them to the dossier.

        Returns:
            The new documents, or None if ingestion failed (see last_error).
            Unsupported files are dropped before anything else happens.

        Raises:
            Exception: anything outside the ChronicleError taxonomy, after
                the ingestion tracker has been marked failed
        """
        accepted = filter_supported(files)
        if not accepted:
            return []

        self.ingestion.begin()
        self.last_error = None
        self.step = AppStep.ANALYZING_METADATA
        try:
            new_documents = await self._classifier.classify_files(accepted, on_progress)
            combined = self._documents + new_documents
            self._repository.put_all(combined)
        except ChronicleError as e:
            self.last_error = self.ingestion.fail(e)
            logger.error(f"Ingestion failed: {e}")
            if isinstance(e, RepositoryError):
                self._reload_after_failure()
            self.step = AppStep.UPLOAD
            return None
        except Exception as e:
            self.last_error = self.ingestion.fail(e)
            self.step = AppStep.UPLOAD
            raise

        for doc in new_documents:
            doc.preview_handle = self._previews.create(doc.file.content)
        self._documents = combined
        self.report = None
        self.ingestion.succeed()
        self.step = AppStep.REVIEW
        return new_documents

    def remove_document(self, document_id: str) -> bool:
        """
        Remove one document from the store, then from the cache.

        Returns:
            True if the document was in the cache
        """
        try:
            self._repository.remove(document_id)
        except RepositoryError as e:
            self.last_error = SessionError.from_exception("remove", e)
            self._reload_after_failure()
            raise

        remaining = []
        removed = False
        for doc in self._documents:
            if doc.id == document_id:
                self._previews.revoke(doc.preview_handle)
                removed = True
            else:
                remaining.append(doc)
        self._documents = remaining
        return removed

    async def generate_report(self) -> Report | None:
        """Synthesize a fresh report from the current documents."""
        self.synthesis.begin()
        self.last_error = None
        self.step = AppStep.GENERATING_REPORT

        try:
            report = await self._synthesizer.generate(self._documents)
        except ChronicleError as e:
            self.last_error = self.synthesis.fail(e)
            logger.error(f"Report generation failed: {e}")
            self.step = AppStep.REVIEW
            return None

        self.report = report
        self.synthesis.succeed()
        self.step = AppStep.RESULT
        return report

    def export(self, out_dir: Path | str) -> list[Path] | None:
        """
        Render both formats and write them to `out_dir`.

        Both artifacts are rendered in memory first; nothing is written
        unless both renders succeed.
        """
        if self.report is None:
            raise RuntimeError("No report to export; generate one first")

        self.export_state.begin()
        self.last_error = None
        context = ExportContext.build(
            self.report,
            self._documents,
            patient_name=self.profile.name if self.profile else None,
        )

        try:
            artifacts = [
                self._pdf_renderer.render(context),
                self._flow_renderer.render(context),
            ]
            paths = [write_artifact(artifact, out_dir) for artifact in artifacts]
        except ChronicleError as e:
            self.last_error = self.export_state.fail(e)
            logger.error(f"Export failed: {e}")
            return None

        self.export_state.succeed()
        return paths

    def _reload_after_failure(self) -> None:
        try:
            self.reload()
        except RepositoryError as e:
            logger.error(f"Could not reload documents after a store failure: {e}")
