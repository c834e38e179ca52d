"""
Structured Output Schemas

These Pydantic models define the contract between the pipeline and the two
external language-model services. Every response is validated against them
before it is allowed to become a Document or a Report.

WHY THIS MATTERS:
-----------------
1. CARDINALITY: The classification batch schema is what lets us detect a
   response with the wrong number of records instead of silently zipping a
   short list against the input files.

2. CLOSED CATEGORIES: `type` is a Literal, so a hallucinated category such
   as "BLOODWORK" fails validation rather than leaking into the timeline.

3. ONE PLACE FOR FIELD NAMES: the wire names (`isDuplicate`, `prognosis`)
   live here and nowhere else.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


CategoryLiteral = Literal["LAB", "IMAGING", "PRESCRIPTION", "NOTE", "OTHER"]


class ClassificationRecord(BaseModel):
    """Metadata for one input file, as returned by the classification service."""

    model_config = ConfigDict(populate_by_name=True)

    date: str | None = Field(
        default=None,
        description="Document date exactly as YYYY-MM-DD, or null if unknown",
    )
    type: CategoryLiteral = Field(
        description="One of LAB, IMAGING, PRESCRIPTION, NOTE, OTHER"
    )
    summary: str = Field(
        description="One-sentence clinical finding"
    )
    is_duplicate: bool = Field(
        alias="isDuplicate",
        description="True if this record has identical content to another record",
    )
    # The service is the only judge of duplication. We never hash bytes.


class ClassificationBatch(BaseModel):
    """Envelope for a batch response. Structured outputs require an object root."""

    records: list[ClassificationRecord] = Field(
        description="Exactly one entry per input record, in input order"
    )


class ReportNarrative(BaseModel):
    """The three narrative fields returned by the synthesis service."""

    history: str = Field(description="Narrative medical history")
    summary: str = Field(description="Integrated clinical synthesis")
    prognosis: str = Field(description="Clinical observations and outlook")


class PatientProfile(BaseModel):
    """Patient details captured once per session. Replaced wholesale, never edited."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    dob: str = Field(min_length=1, description="Date of birth, YYYY-MM-DD")
    gender: Literal["Male", "Female", "Other"]
