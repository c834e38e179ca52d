"""
Synthesis Orchestrator

Serializes the active timeline into one request and turns the service's
three narrative fields into a Report.

The prompt builder and serializer are PURE FUNCTIONS, testable without a
service. The service itself is injected.
"""

from __future__ import annotations

import logging
import time

from pydantic import ValidationError

from medichronicle.core.errors import ChronicleError, SynthesisError
from medichronicle.core.models import Document, Report
from medichronicle.core.protocols import SynthesisService
from medichronicle.observability import (
    CHRONICLE_ACTIVE_DOC_COUNT,
    CHRONICLE_EXCLUDED_DOC_COUNT,
    get_tracer,
)
from medichronicle.schemas.records import ReportNarrative
from medichronicle.timeline.assembler import assemble_timeline

logger = logging.getLogger(__name__)

UNKNOWN_DATE = "Unknown"


def serialize_document(doc: Document) -> str:
    return f"{doc.date or UNKNOWN_DATE}|{doc.category.value}|{doc.summary}"


def serialize_timeline(documents: list[Document]) -> str:
    """One `date|category|summary` line per document, in the given order."""
    return "\n".join(serialize_document(doc) for doc in documents)


def build_synthesis_prompt(timeline_text: str) -> str:
    return f"""Synthesize this medical timeline.
Each line is date|type|finding, oldest first.

{timeline_text}

Return JSON with exactly three fields:
- history: narrative history of the patient's care
- summary: integrated clinical synthesis
- prognosis: clinical observations"""


class ReportSynthesizer:
    """Produces one immutable Report per invocation."""

    def __init__(self, service: SynthesisService):
        self._service = service

    async def generate(self, documents: list[Document]) -> Report:
        """
        Synthesize a report from the current document set.

        Duplicates are filtered and the rest ordered before serialization.

        Raises:
            SynthesisError: service failure or an invalid response
        """
        tracer = get_tracer()
        timeline = assemble_timeline(documents)
        prompt = build_synthesis_prompt(serialize_timeline(timeline.active))

        attrs = {
            CHRONICLE_ACTIVE_DOC_COUNT: len(timeline.active),
            CHRONICLE_EXCLUDED_DOC_COUNT: timeline.excluded_count,
        }
        with tracer.start_span("synthesize_report", attributes=attrs):
            start_time = time.time()
            try:
                raw = await self._service.synthesize(prompt)
            except ChronicleError:
                raise
            except Exception as e:
                raise SynthesisError(f"{type(e).__name__}: {e}") from e

            try:
                narrative = ReportNarrative.model_validate(raw)
            except ValidationError as e:
                raise SynthesisError(
                    f"Synthesis response is missing or has invalid fields: {e.error_count()} error(s)"
                ) from e

        latency_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Synthesized report from {len(timeline.active)} active document(s) "
            f"in {latency_ms:.0f}ms"
        )
        return Report(
            history=narrative.history,
            synthesis=narrative.summary,
            observations=narrative.prognosis,
        )
