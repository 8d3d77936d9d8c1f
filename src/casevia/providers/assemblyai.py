"""AssemblyAI transcription client.

Provider payloads are parsed into a closed set of outcomes at the boundary
(:data:`TranscriptOutcome`); nothing downstream inspects raw ``status`` strings.
"""
from __future__ import annotations

import logging
from typing import Annotated, Any, Literal

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from casevia.core.errors import MalformedOutputError, UpstreamError
from casevia.core.settings import Settings, get_settings
from casevia.services.circuit_breaker import (
    ProviderCircuitBreaker,
    get_assemblyai_circuit_breaker,
)

logger = logging.getLogger(__name__)

PROVIDER = "assemblyai"


class Utterance(BaseModel):
    model_config = ConfigDict(extra="allow")

    speaker: str | None = None
    text: str = ""
    start: int | None = None
    end: int | None = None
    confidence: float | None = None


class _Outcome(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    transcript_id: str | None = Field(
        default=None, validation_alias=AliasChoices("id", "transcript_id")
    )


class TranscriptCompleted(_Outcome):
    status: Literal["completed"]
    # Webhook notifications may omit the body; the receiver fetches it then.
    text: str | None = None
    utterances: list[Utterance] | None = None

    @property
    def speaker_labels(self) -> list[dict[str, Any]]:
        return [u.model_dump(exclude_none=True) for u in self.utterances or []]


class TranscriptErrored(_Outcome):
    status: Literal["error"]
    error: str | None = None


class TranscriptPending(_Outcome):
    status: Literal["queued", "processing"]


TranscriptOutcome = Annotated[
    TranscriptCompleted | TranscriptErrored | TranscriptPending,
    Field(discriminator="status"),
]

_outcome_adapter: TypeAdapter[TranscriptOutcome] = TypeAdapter(TranscriptOutcome)


def parse_outcome(payload: Any) -> TranscriptCompleted | TranscriptErrored | TranscriptPending:
    """Validate a provider payload; raises ``pydantic.ValidationError`` for unknown shapes."""
    return _outcome_adapter.validate_python(payload)


class AssemblyAIClient:
    """Thin async client for the AssemblyAI v2 REST API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.assemblyai.com/v2",
        *,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
        circuit_breaker: ProviderCircuitBreaker | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self.circuit_breaker = circuit_breaker or get_assemblyai_circuit_breaker()

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> AssemblyAIClient:
        settings = settings or get_settings()
        return cls(
            settings.assemblyai_api_key,
            settings.assemblyai_base_url,
            timeout=settings.assemblyai_timeout,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"authorization": self.api_key},
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        async def _send() -> dict[str, Any]:
            try:
                async with self._client() as client:
                    response = await client.request(method, path, **kwargs)
            except httpx.HTTPError as e:
                raise UpstreamError(
                    f"AssemblyAI {method} {path} failed: {e}", provider=PROVIDER
                ) from e

            if response.is_error:
                logger.error(
                    f"AssemblyAI {method} {path} returned {response.status_code}: {response.text[:500]}"
                )
                raise UpstreamError(
                    f"AssemblyAI {method} {path} returned {response.status_code}",
                    provider=PROVIDER,
                    status_code=response.status_code,
                )
            try:
                body = response.json()
            except ValueError as e:
                raise MalformedOutputError(
                    f"AssemblyAI {method} {path} returned non-JSON body", provider=PROVIDER
                ) from e
            if not isinstance(body, dict):
                raise MalformedOutputError(
                    f"AssemblyAI {method} {path} returned {type(body).__name__}, expected object",
                    provider=PROVIDER,
                )
            return body

        return await self.circuit_breaker.call(_send)

    async def upload(self, data: bytes) -> str:
        """Upload raw media bytes; returns the provider-hosted ``upload_url``."""
        body = await self._request(
            "POST",
            "/upload",
            content=data,
            headers={"content-type": "application/octet-stream"},
        )
        upload_url = body.get("upload_url")
        if not isinstance(upload_url, str) or not upload_url:
            raise MalformedOutputError("AssemblyAI upload response has no upload_url", provider=PROVIDER)
        return upload_url

    async def submit_transcript(
        self,
        audio_url: str,
        *,
        webhook_url: str | None = None,
        webhook_secret: str | None = None,
    ) -> str:
        """Start a diarized transcription job; returns the provider job id."""
        payload: dict[str, Any] = {
            "audio_url": audio_url,
            "speaker_labels": True,
            "auto_highlights": True,
            "sentiment_analysis": True,
            "entity_detection": True,
        }
        if webhook_url:
            payload["webhook_url"] = webhook_url
            if webhook_secret:
                payload["webhook_auth_header_name"] = "X-Webhook-Secret"
                payload["webhook_auth_header_value"] = webhook_secret

        body = await self._request("POST", "/transcript", json=payload)
        job_id = body.get("id")
        if not isinstance(job_id, str) or not job_id:
            raise MalformedOutputError("AssemblyAI transcript response has no id", provider=PROVIDER)
        return job_id

    async def get_transcript(
        self, transcript_id: str
    ) -> TranscriptCompleted | TranscriptErrored | TranscriptPending:
        body = await self._request("GET", f"/transcript/{transcript_id}")
        try:
            return parse_outcome(body)
        except ValidationError as e:
            raise MalformedOutputError(
                f"Unexpected transcript status payload: {body.get('status')!r}", provider=PROVIDER
            ) from e
