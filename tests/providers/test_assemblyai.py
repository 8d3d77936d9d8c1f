from __future__ import annotations

import json

import httpx
import pytest
from helpers import assemblyai_client
from pydantic import ValidationError

from casevia.core.errors import MalformedOutputError, UpstreamError
from casevia.providers.assemblyai import (
    TranscriptCompleted,
    TranscriptErrored,
    TranscriptPending,
    parse_outcome,
)


def test_parse_outcome_variants():
    completed = parse_outcome(
        {
            "id": "tr_1",
            "status": "completed",
            "text": "Hello there.",
            "utterances": [{"speaker": "A", "text": "Hello there.", "start": 0, "end": 900}],
        }
    )
    assert isinstance(completed, TranscriptCompleted)
    assert completed.transcript_id == "tr_1"
    assert completed.speaker_labels == [{"speaker": "A", "text": "Hello there.", "start": 0, "end": 900}]

    errored = parse_outcome({"transcript_id": "tr_1", "status": "error", "error": "Bad audio"})
    assert isinstance(errored, TranscriptErrored)
    assert errored.error == "Bad audio"

    for status in ("queued", "processing"):
        assert isinstance(parse_outcome({"status": status}), TranscriptPending)


def test_completed_notification_may_omit_text():
    outcome = parse_outcome({"transcript_id": "tr_1", "status": "completed"})
    assert outcome.text is None
    assert outcome.speaker_labels == []


@pytest.mark.parametrize("payload", [{"status": "exploded"}, {"text": "no status"}, {}])
def test_parse_outcome_rejects_unknown_shapes(payload):
    with pytest.raises(ValidationError):
        parse_outcome(payload)


@pytest.mark.asyncio
async def test_upload_returns_upload_url():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers["authorization"]
        seen["body"] = request.content
        return httpx.Response(200, json={"upload_url": "https://cdn.assembly.test/u/1"})

    client = assemblyai_client(handler)
    assert await client.upload(b"media-bytes") == "https://cdn.assembly.test/u/1"
    assert seen == {"path": "/v2/upload", "auth": "test-key", "body": b"media-bytes"}


@pytest.mark.asyncio
async def test_submit_requests_diarization_and_webhook_auth():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured.update(json.loads(request.content))
        return httpx.Response(200, json={"id": "tr_42", "status": "queued"})

    client = assemblyai_client(handler)
    job_id = await client.submit_transcript(
        "https://cdn.test/a.mp4",
        webhook_url="https://api.test/api/webhooks/assemblyai/p1",
        webhook_secret="s3cret",
    )

    assert job_id == "tr_42"
    assert captured["audio_url"] == "https://cdn.test/a.mp4"
    assert captured["speaker_labels"] is True
    assert captured["auto_highlights"] is True
    assert captured["sentiment_analysis"] is True
    assert captured["entity_detection"] is True
    assert captured["webhook_url"] == "https://api.test/api/webhooks/assemblyai/p1"
    assert captured["webhook_auth_header_name"] == "X-Webhook-Secret"
    assert captured["webhook_auth_header_value"] == "s3cret"


@pytest.mark.asyncio
async def test_submit_without_webhook_omits_webhook_fields():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured.update(json.loads(request.content))
        return httpx.Response(200, json={"id": "tr_1"})

    await assemblyai_client(handler).submit_transcript("https://cdn.test/a.mp4")
    assert "webhook_url" not in captured
    assert "webhook_auth_header_name" not in captured


@pytest.mark.asyncio
async def test_get_transcript_parses_status():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v2/transcript/tr_1"
        return httpx.Response(200, json={"id": "tr_1", "status": "processing"})

    outcome = await assemblyai_client(handler).get_transcript("tr_1")
    assert isinstance(outcome, TranscriptPending)


@pytest.mark.asyncio
async def test_non_2xx_raises_upstream_error_with_status():
    client = assemblyai_client(lambda request: httpx.Response(401, json={"error": "bad key"}))
    with pytest.raises(UpstreamError) as exc_info:
        await client.submit_transcript("https://cdn.test/a.mp4")
    assert exc_info.value.status_code == 401
    assert exc_info.value.provider == "assemblyai"


@pytest.mark.asyncio
async def test_network_error_raises_upstream_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UpstreamError):
        await assemblyai_client(handler).get_transcript("tr_1")


@pytest.mark.asyncio
async def test_non_json_body_is_malformed():
    client = assemblyai_client(lambda request: httpx.Response(200, text="<html>oops</html>"))
    with pytest.raises(MalformedOutputError):
        await client.get_transcript("tr_1")


@pytest.mark.asyncio
async def test_unknown_status_is_malformed():
    client = assemblyai_client(lambda request: httpx.Response(200, json={"status": "weird"}))
    with pytest.raises(MalformedOutputError):
        await client.get_transcript("tr_1")
