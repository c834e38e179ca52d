"""Synthesis module - active timeline in, three-part Report out."""

from medichronicle.synthesis.synthesizer import (
    UNKNOWN_DATE,
    ReportSynthesizer,
    build_synthesis_prompt,
    serialize_document,
    serialize_timeline,
)

__all__ = [
    "UNKNOWN_DATE",
    "ReportSynthesizer",
    "build_synthesis_prompt",
    "serialize_document",
    "serialize_timeline",
]
