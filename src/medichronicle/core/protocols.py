"""
Core protocols defining contracts for the entire system.

All infrastructure components implement these protocols,
enabling dependency injection and easy testing.

PATTERN:
- Protocol defines the contract
- Multiple implementations possible
- Factory functions for instantiation
- Test doubles for fast unit tests
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Protocol, Union, runtime_checkable

if TYPE_CHECKING:
    from medichronicle.core.models import Document


# ---------------------------------------------------------------------------
# SERVICE PAYLOADS
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InlinePayload:
    """Binary content sent inline, base64 encoded."""
    data: str
    mime_type: str
    file_name: str = ""


@dataclass(frozen=True)
class TextPayload:
    """Plain text extracted locally from the input file."""
    text: str


Payload = Union[InlinePayload, TextPayload]

ProgressCallback = Callable[[int, int], None]


# ---------------------------------------------------------------------------
# CLASSIFICATION SERVICE PROTOCOL
# ---------------------------------------------------------------------------


@runtime_checkable
class ClassificationService(Protocol):
    """
    Contract for the external document classifier.

    Implementations:
    - OpenAIClassificationService (production)
    - StaticClassificationService (testing)
    """

    async def classify(
        self,
        instruction: str,
        payloads: list[Payload],
    ) -> list[dict[str, Any]]:
        """Return one raw metadata record per payload, in payload order."""
        ...


# ---------------------------------------------------------------------------
# SYNTHESIS SERVICE PROTOCOL
# ---------------------------------------------------------------------------


@runtime_checkable
class SynthesisService(Protocol):
    """
    Contract for the external narrative synthesizer.

    Implementations:
    - OpenAISynthesisService (production)
    - StaticSynthesisService (testing)
    """

    async def synthesize(self, prompt: str) -> dict[str, Any]:
        """Return the raw {history, summary, prognosis} object."""
        ...


# ---------------------------------------------------------------------------
# DOCUMENT REPOSITORY PROTOCOL
# ---------------------------------------------------------------------------


@runtime_checkable
class DocumentRepository(Protocol):
    """
    Contract for durable document storage.

    The repository is the only durable state. Callers serialize access;
    implementations do no internal locking.

    Implementations:
    - SQLiteDocumentRepository (production)
    - InMemoryDocumentRepository (testing)
    """

    def put_all(self, documents: list[Document]) -> None:
        """Replace the whole persisted set in one transaction."""
        ...

    def load_all(self) -> list[Document]:
        """Return every document with a freshly issued display handle."""
        ...

    def remove(self, document_id: str) -> None:
        """Delete one document. Unknown ids are a no-op."""
        ...

    def clear(self) -> None:
        """Delete every document."""
        ...
