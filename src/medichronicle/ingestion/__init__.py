"""
Ingestion module - from raw files to classified Documents.

- normalizer: one file -> one service payload
- classifier: batched classification orchestration
"""

from medichronicle.ingestion.normalizer import (
    SUPPORTED_MIME_TYPES,
    filter_supported,
    normalize_file,
    normalize_batch,
)
from medichronicle.ingestion.classifier import (
    DEFAULT_BATCH_SIZE,
    DocumentClassifier,
    build_instruction,
    parse_batch_response,
    partition,
)

__all__ = [
    "SUPPORTED_MIME_TYPES",
    "filter_supported",
    "normalize_file",
    "normalize_batch",
    "DEFAULT_BATCH_SIZE",
    "DocumentClassifier",
    "build_instruction",
    "parse_batch_response",
    "partition",
]
