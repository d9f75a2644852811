"""Voice command transcription endpoint."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Request, UploadFile

from agent_pipeline.config import get_transcription_settings
from agent_pipeline.errors import TranscriptionUnavailable, ValidationError
from agent_pipeline.transcription import build_transcription_service

from .metrics import REQUESTS_TOTAL
from .security import SecurityContext, audit_event, enforce_rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/voice", tags=["voice"])


def get_transcription_service():
    return build_transcription_service()


def _admit_transcribe(request: Request) -> SecurityContext:
    return enforce_rate_limit(request, "transcribe")


@router.post("/transcribe")
async def transcribe(
    audio: Optional[UploadFile] = File(None),
    context: SecurityContext = Depends(_admit_transcribe),
) -> Dict[str, Any]:
    if audio is None:
        raise ValidationError("Audio file is required")
    service = get_transcription_service()
    if service is None:
        raise TranscriptionUnavailable("No transcription service is configured")

    limit = get_transcription_settings().max_audio_bytes
    payload = await audio.read(limit + 1)
    if not payload:
        raise ValidationError("Audio file is empty")
    if len(payload) > limit:
        raise ValidationError(f"Audio file exceeds {limit} bytes")

    result = await service.transcribe(payload, filename=audio.filename or "audio", content_type=audio.content_type)
    logger.info("voice.transcribed", extra={"bytes": len(payload), "confidence": result.confidence})
    audit_event(context, "voice.transcribe", bytes=len(payload))
    REQUESTS_TOTAL.labels(endpoint="/voice/transcribe", http_status="200").inc()
    return result.model_dump()
