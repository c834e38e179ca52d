"""
Shared export structure.

Both encodings render the same logical document:

    title block
    I.   NARRATIVE HISTORY
    II.  INTEGRATED SYNTHESIS
    III. CLINICAL OBSERVATIONS
    IV.  MASTER DOCUMENT INDEX   (one row per document)
    V.   appendix                (one unit per document)

The document order is computed ONCE here, in ExportContext, and both the
index and the appendix iterate the same list.
"""

from __future__ import annotations

import os
import re
import tempfile
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

from medichronicle.core.errors import ExportError
from medichronicle.core.models import Document, Report
from medichronicle.timeline.assembler import chronological

TITLE = "Clinical Case Portfolio"
ANONYMOUS = "Anonymous"
NOT_AVAILABLE = "N/A"

SECTION_TITLES = (
    "I. NARRATIVE HISTORY",
    "II. INTEGRATED SYNTHESIS",
    "III. CLINICAL OBSERVATIONS",
)
INDEX_TITLE = "IV. MASTER DOCUMENT INDEX"
APPENDIX_TITLE = "V. VISUAL APPENDIX"

PDF_MEDIA_TYPE = "application/pdf"
DOC_MEDIA_TYPE = "application/msword"


@dataclass(frozen=True)
class ExportContext:
    """Everything a renderer needs, with the document order fixed."""

    patient_name: str | None
    report: Report
    documents: tuple[Document, ...]
    generated_on: date = field(default_factory=date.today)

    @classmethod
    def build(
        cls,
        report: Report,
        documents: list[Document],
        patient_name: str | None = None,
        generated_on: date | None = None,
    ) -> "ExportContext":
        return cls(
            patient_name=patient_name,
            report=report,
            documents=tuple(chronological(documents)),
            generated_on=generated_on or date.today(),
        )

    @property
    def display_name(self) -> str:
        return self.patient_name or ANONYMOUS

    @property
    def sections(self) -> list[tuple[str, str]]:
        return list(zip(
            SECTION_TITLES,
            (self.report.history, self.report.synthesis, self.report.observations),
        ))


@dataclass
class ExportArtifact:
    """A fully rendered export, held in memory until written."""

    filename: str
    media_type: str
    content: bytes
    index_ids: list[str]
    appendix_ids: list[str]
    page_count: int | None = None

    @property
    def size(self) -> int:
        return len(self.content)


def _filename_stem(patient_name: str | None) -> str:
    name = (patient_name or "").strip()
    return re.sub(r"\s+", "_", name) if name else "Report"


def export_filename(kind: str, patient_name: str | None) -> str:
    """
    Deterministic download name.

    >>> export_filename("pdf", "Jane  Doe")
    'MediChronicle_Organized_Jane_Doe.pdf'
    """
    stem = _filename_stem(patient_name)
    if kind == "pdf":
        return f"MediChronicle_Organized_{stem}.pdf"
    if kind == "doc":
        return f"MediChronicle_Portfolio_{stem}.doc"
    raise ValueError(f"Unknown export kind: {kind}")


def display_date(doc: Document) -> str:
    return doc.date or NOT_AVAILABLE


def write_artifact(artifact: ExportArtifact, out_dir: Path | str) -> Path:
    """
    Write an artifact atomically: a temp file in the target directory is
    renamed into place, so a failed write never leaves a partial export.
    """
    out_dir = Path(out_dir)
    target = out_dir / artifact.filename
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=out_dir, prefix=".export-", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(artifact.content)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as e:
        raise ExportError(f"Could not write {artifact.filename}: {e}") from e
    return target
