"""
Session module - process-scoped workflow state.

This module provides:
- ChronicleSession: owns the profile, document cache and report
- OperationTracker / OperationState: per-operation failure tracking
- create_session(): production wiring from ChronicleConfig
"""

from medichronicle.config import ChronicleConfig, get_config
from medichronicle.export.flow_renderer import FlowDocumentRenderer
from medichronicle.export.pdf_renderer import FixedPageRenderer
from medichronicle.ingestion.classifier import DocumentClassifier
from medichronicle.llm.openai_services import (
    get_classification_service,
    get_synthesis_service,
)
from medichronicle.session.state import (
    AppStep,
    ChronicleSession,
    OperationState,
    OperationTracker,
    SessionError,
)
from medichronicle.storage.previews import PreviewRegistry
from medichronicle.storage.profile_store import get_profile_store
from medichronicle.storage.repository import get_document_repository
from medichronicle.synthesis.synthesizer import ReportSynthesizer


def create_session(config: ChronicleConfig | None = None) -> ChronicleSession:
    """
    Wire a session against the durable stores and the OpenAI services.

    Example:
        session = create_session()
        session.initialize()
    """
    config = config or get_config()
    previews = PreviewRegistry()

    classifier = DocumentClassifier(
        get_classification_service(model=config.classification_model, api_key=config.api_key),
        batch_size=config.batch_size,
        max_image_width=config.max_image_width,
        max_image_height=config.max_image_height,
        jpeg_quality=config.jpeg_quality,
    )
    synthesizer = ReportSynthesizer(
        get_synthesis_service(model=config.synthesis_model, api_key=config.api_key)
    )

    return ChronicleSession(
        repository=get_document_repository(previews, db_path=config.database_path),
        profile_store=get_profile_store(file_path=config.profile_path),
        classifier=classifier,
        synthesizer=synthesizer,
        previews=previews,
        pdf_renderer=FixedPageRenderer(config.compression_threshold),
        flow_renderer=FlowDocumentRenderer(),
    )


__all__ = [
    "AppStep",
    "ChronicleSession",
    "OperationState",
    "OperationTracker",
    "SessionError",
    "create_session",
]
