"""
Semantic Conventions for Span Attributes

Attribute keys following OpenTelemetry GenAI conventions plus a custom
`chronicle.*` namespace for pipeline stages.

Reference: https://opentelemetry.io/docs/specs/semconv/gen-ai/

Prompt and response content is never recorded: both carry patient data.
"""

# ---------------------------------------------------------------------------
# GENAI NAMESPACE (OTel standard)
# ---------------------------------------------------------------------------

GEN_AI_SYSTEM = "gen_ai.system"  # "openai"
GEN_AI_REQUEST_MODEL = "gen_ai.request.model"

GEN_AI_USAGE_INPUT_TOKENS = "gen_ai.usage.input_tokens"
GEN_AI_USAGE_OUTPUT_TOKENS = "gen_ai.usage.output_tokens"


# ---------------------------------------------------------------------------
# CHRONICLE NAMESPACE (custom)
# ---------------------------------------------------------------------------

# Classification
CHRONICLE_BATCH_INDEX = "chronicle.batch.index"
CHRONICLE_BATCH_SIZE = "chronicle.batch.size"
CHRONICLE_FILES_PROCESSED = "chronicle.files.processed"
CHRONICLE_FILES_TOTAL = "chronicle.files.total"

# Synthesis
CHRONICLE_ACTIVE_DOC_COUNT = "chronicle.synthesis.active_doc_count"
CHRONICLE_EXCLUDED_DOC_COUNT = "chronicle.synthesis.excluded_doc_count"

# Export
CHRONICLE_EXPORT_FORMAT = "chronicle.export.format"  # "pdf", "doc"
CHRONICLE_EXPORT_DOC_COUNT = "chronicle.export.doc_count"
CHRONICLE_EXPORT_BYTES = "chronicle.export.bytes"
CHRONICLE_EXPORT_PAGES = "chronicle.export.pages"


# ---------------------------------------------------------------------------
# HELPER FUNCTIONS
# ---------------------------------------------------------------------------


def batch_attributes(
    batch_index: int,
    batch_size: int,
    processed: int,
    total: int,
) -> dict:
    """Create attributes dict for a classification batch span."""
    return {
        CHRONICLE_BATCH_INDEX: batch_index,
        CHRONICLE_BATCH_SIZE: batch_size,
        CHRONICLE_FILES_PROCESSED: processed,
        CHRONICLE_FILES_TOTAL: total,
    }


def export_attributes(export_format: str, doc_count: int) -> dict:
    """Create attributes dict for an export render span."""
    return {
        CHRONICLE_EXPORT_FORMAT: export_format,
        CHRONICLE_EXPORT_DOC_COUNT: doc_count,
    }
