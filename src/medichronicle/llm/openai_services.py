"""
External Services - Single Responsibility: talk to the language model.

This module has ONE job: turn an instruction plus payloads into raw
structured records. Validation of what comes back belongs to the
orchestrators that call it.

It follows the same shape as every other infrastructure seam:
1. Protocol (in core.protocols)
2. Production implementation (OpenAI*Service)
3. Test double (Static*Service)
4. Factory function (get_*_service)
"""

from __future__ import annotations

import logging
from typing import Any

import openai
from openai import AsyncOpenAI
from pydantic import ValidationError

from medichronicle.core.errors import (
    ClassificationError,
    PermissionDeniedError,
    SynthesisError,
    looks_like_permission_failure,
)
from medichronicle.core.protocols import (
    ClassificationService,
    InlinePayload,
    Payload,
    SynthesisService,
    TextPayload,
)
from medichronicle.observability import (
    GEN_AI_REQUEST_MODEL,
    GEN_AI_SYSTEM,
    GEN_AI_USAGE_INPUT_TOKENS,
    GEN_AI_USAGE_OUTPUT_TOKENS,
    SpanProtocol,
    get_tracer,
)
from medichronicle.schemas.records import ClassificationBatch, ReportNarrative

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"


def payload_to_content_part(payload: Payload) -> dict[str, Any]:
    """Map one payload onto an OpenAI chat content part."""
    if isinstance(payload, TextPayload):
        return {"type": "text", "text": payload.text}

    data_url = f"data:{payload.mime_type};base64,{payload.data}"
    if payload.mime_type == PDF_MIME:
        return {
            "type": "file",
            "file": {"filename": payload.file_name or "document.pdf", "file_data": data_url},
        }
    return {"type": "image_url", "image_url": {"url": data_url}}


def _translate_failure(exc: Exception, error_cls: type[Exception]) -> Exception:
    """Map a client exception onto the pipeline taxonomy."""
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return PermissionDeniedError(
            "API permission error: the API key may be invalid or expired. Reconnect your key."
        )
    if looks_like_permission_failure(exc):
        return PermissionDeniedError(str(exc))
    return error_cls(f"{type(exc).__name__}: {exc}")


def _request_attributes(model: str) -> dict[str, Any]:
    return {GEN_AI_SYSTEM: "openai", GEN_AI_REQUEST_MODEL: model}


def _record_usage(span: SpanProtocol, completion: Any) -> None:
    # Token counts only; prompt and response content are never recorded
    usage = getattr(completion, "usage", None)
    if usage is None:
        return
    span.set_attribute(GEN_AI_USAGE_INPUT_TOKENS, usage.prompt_tokens)
    span.set_attribute(GEN_AI_USAGE_OUTPUT_TOKENS, usage.completion_tokens)


# ---------------------------------------------------------------------------
# CLASSIFICATION
# ---------------------------------------------------------------------------


class OpenAIClassificationService:
    """
    Classification over OpenAI structured outputs.

    One request carries the instruction and every payload of the batch;
    the response is parsed into ClassificationBatch.
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: str | None = None,
        client: AsyncOpenAI | None = None,
    ):
        self.model = model
        self._api_key = api_key
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        # Created on first use so offline commands never need credentials
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def classify(
        self,
        instruction: str,
        payloads: list[Payload],
    ) -> list[dict[str, Any]]:
        content = [{"type": "text", "text": instruction}]
        content.extend(payload_to_content_part(p) for p in payloads)

        with get_tracer().start_span("classification_request", attributes=_request_attributes(self.model)) as span:
            try:
                completion = await self.client.chat.completions.parse(
                    model=self.model,
                    messages=[{"role": "user", "content": content}],
                    response_format=ClassificationBatch,
                )
            except (openai.OpenAIError, ValidationError) as e:
                raise _translate_failure(e, ClassificationError) from e
            _record_usage(span, completion)

        parsed = completion.choices[0].message.parsed
        if parsed is None:
            raise ClassificationError("Classification service returned no parsable records")

        return [record.model_dump(by_alias=True) for record in parsed.records]


class StaticClassificationService:
    """
    Test double that replays queued responses.

    Each call pops the next entry; an entry that is an Exception is raised.
    Calls are recorded for assertions.
    """

    def __init__(self, responses: list[list[dict[str, Any]] | Exception] | None = None):
        self._responses = list(responses or [])
        self.calls: list[tuple[str, list[Payload]]] = []

    def queue(self, response: list[dict[str, Any]] | Exception) -> None:
        self._responses.append(response)

    async def classify(
        self,
        instruction: str,
        payloads: list[Payload],
    ) -> list[dict[str, Any]]:
        self.calls.append((instruction, list(payloads)))
        if not self._responses:
            raise ClassificationError("No queued classification response")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def get_classification_service(
    use_static: bool = False,
    model: str | None = None,
    api_key: str | None = None,
) -> ClassificationService:
    """Factory for the classification service."""
    if use_static:
        return StaticClassificationService()

    from medichronicle.config import get_config

    config = get_config()
    return OpenAIClassificationService(
        model=model or config.classification_model,
        api_key=api_key or config.api_key,
    )


# ---------------------------------------------------------------------------
# SYNTHESIS
# ---------------------------------------------------------------------------


class OpenAISynthesisService:
    """Narrative synthesis over OpenAI structured outputs."""

    def __init__(
        self,
        model: str = "gpt-4o",
        api_key: str | None = None,
        client: AsyncOpenAI | None = None,
    ):
        self.model = model
        self._api_key = api_key
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        # Created on first use so offline commands never need credentials
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def synthesize(self, prompt: str) -> dict[str, Any]:
        with get_tracer().start_span("synthesis_request", attributes=_request_attributes(self.model)) as span:
            try:
                completion = await self.client.chat.completions.parse(
                    model=self.model,
                    messages=[{"role": "user", "content": prompt}],
                    response_format=ReportNarrative,
                )
            except (openai.OpenAIError, ValidationError) as e:
                raise _translate_failure(e, SynthesisError) from e
            _record_usage(span, completion)

        parsed = completion.choices[0].message.parsed
        if parsed is None:
            raise SynthesisError("Synthesis service returned no parsable report")
        return parsed.model_dump()


class StaticSynthesisService:
    """Test double returning a fixed narrative (or raising a fixed error)."""

    def __init__(self, response: dict[str, Any] | Exception | None = None):
        self._response = response if response is not None else {
            "history": "No history.",
            "summary": "No synthesis.",
            "prognosis": "No observations.",
        }
        self.prompts: list[str] = []

    async def synthesize(self, prompt: str) -> dict[str, Any]:
        self.prompts.append(prompt)
        if isinstance(self._response, Exception):
            raise self._response
        return self._response


def get_synthesis_service(
    use_static: bool = False,
    model: str | None = None,
    api_key: str | None = None,
) -> SynthesisService:
    """Factory for the synthesis service."""
    if use_static:
        return StaticSynthesisService()

    from medichronicle.config import get_config

    config = get_config()
    return OpenAISynthesisService(
        model=model or config.synthesis_model,
        api_key=api_key or config.api_key,
    )
