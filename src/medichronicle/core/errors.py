"""
Error taxonomy for the document lifecycle.

Every failure the pipeline can surface to an operator maps to exactly one
of these classes. Nothing here is retried automatically; the session layer
records the failure and waits for the operator to try again.

HIERARCHY:
----------
ChronicleError
├── NormalizationError     one input file could not be prepared for the service
├── ClassificationError    batch failed: transport, malformed or mis-sized response
├── SynthesisError         narrative request failed or returned an invalid shape
├── RepositoryError        durable store failed; caller must reload
├── ExportError            rendering aborted; no artifact was produced
└── PermissionDeniedError  credential problem on either external service
"""

from __future__ import annotations


class ChronicleError(Exception):
    """Base class for all pipeline failures."""

    requires_credentials: bool = False


class NormalizationError(ChronicleError):
    """A single input file could not be converted into a service payload."""

    def __init__(self, file_name: str, reason: str):
        self.file_name = file_name
        self.reason = reason
        super().__init__(f"Could not process {file_name}: {reason}")


class ClassificationError(ChronicleError):
    """A classification batch failed and the whole ingestion is aborted."""


class SynthesisError(ChronicleError):
    """Report synthesis failed; no partial report is returned."""


class RepositoryError(ChronicleError):
    """The durable document store failed. In-memory state must be reloaded."""


class ExportError(ChronicleError):
    """An export render failed partway; nothing was delivered."""


class PermissionDeniedError(ClassificationError, SynthesisError):
    """
    The external service rejected our credentials.

    Subclasses both service errors so callers catching either one still see
    it, while `requires_credentials` lets them prompt for a new key instead
    of offering a plain retry.
    """

    requires_credentials = True


_PERMISSION_MARKERS = ("401", "403", "permission", "unauthorized", "api key", "api_key")


def looks_like_permission_failure(exc: BaseException) -> bool:
    """Heuristic used when a client library does not raise a typed auth error."""
    status = getattr(exc, "status_code", None)
    if status in (401, 403):
        return True
    text = str(exc).lower()
    return any(marker in text for marker in _PERMISSION_MARKERS)
