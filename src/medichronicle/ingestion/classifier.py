"""
Classification Orchestrator

Turns an ordered list of input files into an ordered list of Documents by
calling the external classification service in fixed-size batches.

ORCHESTRATION:
--------------
1. Partition files into batches of `batch_size`
2. For each batch, strictly one at a time:
   a. normalize every member concurrently
   b. send ONE request carrying the instruction plus all payloads
   c. validate: record count must equal batch size, every record must
      match the schema
   d. give each record a fresh id and merge it with its source file
   e. report cumulative progress
3. Return Documents in input order

Batches never overlap, so progress is monotonic and a failed batch can
never race with the next one. The first failure aborts the whole run;
nothing is retried here.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date

from pydantic import ValidationError

from medichronicle.core.errors import ClassificationError
from medichronicle.core.models import Document, DocumentCategory, SourceFile
from medichronicle.core.protocols import ClassificationService, ProgressCallback
from medichronicle.ingestion.normalizer import (
    JPEG_QUALITY,
    MAX_IMAGE_HEIGHT,
    MAX_IMAGE_WIDTH,
    normalize_batch,
)
from medichronicle.observability import batch_attributes, get_tracer
from medichronicle.observability.attributes import CHRONICLE_FILES_PROCESSED
from medichronicle.schemas.records import ClassificationRecord

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10


def build_instruction(record_count: int) -> str:
    """
    Instruction sent with every batch.

    This is a PURE FUNCTION so the prompt can be tested without a service.
    """
    return f"""You are a Medical Registrar. Analyze these {record_count} records.
Return exactly {record_count} entries in the order the records were given.
1. DATE: Extract exactly as YYYY-MM-DD, or null if no date is present.
2. TYPE: LAB, IMAGING, PRESCRIPTION, NOTE, or OTHER.
3. SUMMARY: 1-sentence clinical finding.
4. DUPLICATE: Mark true if identical content to another record."""


def partition(files: list[SourceFile], batch_size: int) -> list[list[SourceFile]]:
    """Split files into consecutive batches; the last one may be short."""
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    return [files[i:i + batch_size] for i in range(0, len(files), batch_size)]


def _normalize_date(raw: str | None) -> str | None:
    if not raw:
        return None
    try:
        return date.fromisoformat(raw.strip()).isoformat()
    except ValueError:
        logger.warning(f"Discarding unparsable document date: {raw!r}")
        return None


def parse_batch_response(
    raw_records: object,
    batch: list[SourceFile],
) -> list[ClassificationRecord]:
    """
    Validate a raw batch response against the batch it answers.

    Raises:
        ClassificationError: wrong shape, wrong cardinality, or a malformed record
    """
    if not isinstance(raw_records, list):
        raise ClassificationError(
            f"Classification response must be a list, got {type(raw_records).__name__}"
        )
    if len(raw_records) != len(batch):
        raise ClassificationError(
            f"Classification returned {len(raw_records)} records for a batch of {len(batch)}"
        )

    records = []
    for source, raw in zip(batch, raw_records):
        try:
            records.append(ClassificationRecord.model_validate(raw))
        except ValidationError as e:
            raise ClassificationError(
                f"Malformed classification record for {source.name}: {e.error_count()} error(s)"
            ) from e
    return records


class DocumentClassifier:
    """
    Batch classification orchestrator.

    The service is INJECTED, not created internally, so tests run against
    StaticClassificationService.
    """

    def __init__(
        self,
        service: ClassificationService,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_image_width: int = MAX_IMAGE_WIDTH,
        max_image_height: int = MAX_IMAGE_HEIGHT,
        jpeg_quality: int = JPEG_QUALITY,
    ):
        self._service = service
        self.batch_size = batch_size
        self._image_box = (max_image_width, max_image_height)
        self._jpeg_quality = jpeg_quality

    async def classify_files(
        self,
        files: list[SourceFile],
        on_progress: ProgressCallback | None = None,
    ) -> list[Document]:
        """
        Classify every file and merge each result with its source.

        Args:
            files: Accepted input files, in display order
            on_progress: Called as (processed, total) after each batch

        Returns:
            One Document per file, in input order

        Raises:
            NormalizationError: a member of some batch could not be normalized
            ClassificationError: the service failed or answered badly
        """
        tracer = get_tracer()
        total = len(files)
        documents: list[Document] = []
        processed = 0

        for index, batch in enumerate(partition(files, self.batch_size)):
            attrs = batch_attributes(index, len(batch), processed, total)
            with tracer.start_span("classify_batch", attributes=attrs) as span:
                payloads = await normalize_batch(
                    batch, self._image_box[0], self._image_box[1], self._jpeg_quality
                )
                raw = await self._service.classify(build_instruction(len(batch)), payloads)
                records = parse_batch_response(raw, batch)

                for source, record in zip(batch, records):
                    documents.append(Document(
                        id=uuid.uuid4().hex,
                        file=source,
                        date=_normalize_date(record.date),
                        category=DocumentCategory(record.type),
                        summary=record.summary,
                        is_duplicate=record.is_duplicate,
                    ))

                processed += len(batch)
                span.set_attribute(CHRONICLE_FILES_PROCESSED, processed)

            logger.info(f"Classified batch {index + 1}: {processed}/{total} files")
            if on_progress:
                on_progress(processed, total)

        return documents
