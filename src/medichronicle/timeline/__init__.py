"""Timeline module - chronological ordering and the active subset."""

from medichronicle.timeline.assembler import (
    Timeline,
    assemble_timeline,
    chronological,
    active_subset,
    is_active,
    is_flagged_duplicate,
)

__all__ = [
    "Timeline",
    "assemble_timeline",
    "chronological",
    "active_subset",
    "is_active",
    "is_flagged_duplicate",
]
