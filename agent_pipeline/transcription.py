"""Speech-to-text collaborators used by ``/voice/transcribe``."""

from __future__ import annotations

import logging
from typing import Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from .config import TranscriptionSettings, get_transcription_settings
from .errors import TranscriptionError
from .models import TranscriptionOut

logger = logging.getLogger(__name__)

DEMO_TRANSCRIPT = "Deploy a yield farming agent with $100 to USDC-USDT pools"


class StaticTranscriptionService:
    """Returns a fixed transcript; used for demos and local development."""

    def __init__(self, transcript: str = DEMO_TRANSCRIPT, *, confidence: float = 0.95, duration: float = 3.5) -> None:
        self._result = TranscriptionOut(transcript=transcript, confidence=confidence, duration=duration)

    async def transcribe(self, audio: bytes, *, filename: str, content_type: Optional[str]) -> TranscriptionOut:
        return self._result


class HttpTranscriptionService:
    """Forwards audio as multipart ``audio`` to an external HTTP service.

    The service must answer with ``{"transcript", "confidence", "duration"}``;
    ``text`` is accepted in place of ``transcript``.
    """

    def __init__(
        self,
        url: str,
        *,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._url = url
        self._headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._timeout = timeout
        self._transport = transport

    async def transcribe(self, audio: bytes, *, filename: str, content_type: Optional[str]) -> TranscriptionOut:
        files = {"audio": (filename, audio, content_type or "application/octet-stream")}
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, headers=self._headers, transport=self._transport
            ) as client:
                response = await client.post(self._url, files=files)
        except httpx.HTTPError as exc:
            logger.warning("transcription.transport_failed", extra={"error": str(exc)})
            raise TranscriptionError(f"Transcription service unreachable: {exc}") from exc
        if response.status_code >= 400:
            raise TranscriptionError(f"Transcription service responded with HTTP {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise TranscriptionError("Transcription service returned invalid JSON") from exc
        if isinstance(payload, dict) and "transcript" not in payload and "text" in payload:
            payload = {**payload, "transcript": payload["text"]}
        try:
            return TranscriptionOut.model_validate(payload)
        except PydanticValidationError as exc:
            raise TranscriptionError("Transcription service returned an unexpected payload") from exc


def build_transcription_service(settings: Optional[TranscriptionSettings] = None):
    """Return the configured collaborator, or ``None`` when none is configured."""

    settings = settings or get_transcription_settings()
    if settings.url:
        return HttpTranscriptionService(settings.url, api_key=settings.api_key, timeout=settings.timeout)
    if settings.demo_mode:
        return StaticTranscriptionService()
    return None


__all__ = [
    "DEMO_TRANSCRIPT",
    "HttpTranscriptionService",
    "StaticTranscriptionService",
    "build_transcription_service",
]
