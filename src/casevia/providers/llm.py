"""Language-model client used by the analysis step."""
from __future__ import annotations

import logging
from typing import Any, Protocol

from casevia.core.errors import MalformedOutputError
from casevia.core.settings import Settings, get_settings
from casevia.pipelines.case_study import build_messages
from casevia.services.circuit_breaker import CircuitBreakerProtectedLM

logger = logging.getLogger(__name__)


class ChatModel(Protocol):
    async def __call__(
        self,
        prompt: str | None = None,
        messages: list[dict[str, str]] | None = None,
        **kwargs: Any,
    ) -> Any: ...


def build_lm(settings: Settings | None = None) -> CircuitBreakerProtectedLM:
    settings = settings or get_settings()
    return CircuitBreakerProtectedLM(
        settings.llm_model,
        api_base=settings.llm_base_url,
        api_key=settings.llm_api_key or None,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        cache=False,
    )


def _first_output(outputs: Any) -> str:
    # dspy.LM returns a list of completions; entries are str or {"text": ...}.
    if isinstance(outputs, str):
        return outputs
    if not outputs:
        raise MalformedOutputError("Model returned no completion", provider="llm")
    first = outputs[0]
    if isinstance(first, dict):
        first = first.get("text")
    if not isinstance(first, str):
        raise MalformedOutputError("Model returned an empty completion", provider="llm")
    return first


class CaseStudyGenerator:
    """Sends a formatted transcript to the model and returns its raw JSON text."""

    def __init__(self, lm: ChatModel | None = None, settings: Settings | None = None):
        self._settings = settings
        self._lm = lm

    @property
    def lm(self) -> ChatModel:
        if self._lm is None:
            self._lm = build_lm(self._settings)
        return self._lm

    async def generate(self, formatted_transcript: str) -> str:
        outputs = await self.lm(
            messages=build_messages(formatted_transcript),
            response_format={"type": "json_object"},
        )
        raw = _first_output(outputs)
        logger.info(f"Model returned {len(raw)} characters")
        return raw
