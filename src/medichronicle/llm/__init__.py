"""
LLM module - the two external services the pipeline depends on.

1. Protocols (ClassificationService, SynthesisService) live in core.protocols
2. Production implementations (OpenAIClassificationService, OpenAISynthesisService)
3. Test doubles (StaticClassificationService, StaticSynthesisService)
4. Factory functions
"""

from medichronicle.llm.openai_services import (
    OpenAIClassificationService,
    StaticClassificationService,
    get_classification_service,
    OpenAISynthesisService,
    StaticSynthesisService,
    get_synthesis_service,
    payload_to_content_part,
)

__all__ = [
    "OpenAIClassificationService",
    "StaticClassificationService",
    "get_classification_service",
    "OpenAISynthesisService",
    "StaticSynthesisService",
    "get_synthesis_service",
    "payload_to_content_part",
]
