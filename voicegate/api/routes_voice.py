from __future__ import annotations

from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, StrictBool

from voicegate.api.deps import get_service
from voicegate.core import errors
from voicegate.core.hub import HEARTBEAT_FRAME, format_sse
from voicegate.core.logger import get_logger
from voicegate.core.service import VoiceService
from voicegate.core.trace import get_trace_id

router = APIRouter(prefix="/api", tags=["voice"])
logger = get_logger("sse")


class VoiceInputIn(BaseModel):
    active: StrictBool


class VoiceResponsesIn(BaseModel):
    enabled: StrictBool


class PreferencesIn(BaseModel):
    voice_input_active: Optional[StrictBool] = None
    voice_responses_enabled: Optional[StrictBool] = None


class SpeakIn(BaseModel):
    text: Optional[str] = None


class SpeakSystemIn(BaseModel):
    text: Optional[str] = None
    rate: Optional[int] = None


@router.post("/voice-input")
async def set_voice_input(body: VoiceInputIn, service: VoiceService = Depends(get_service)) -> dict[str, Any]:
    prefs = service.set_preferences(voice_input_active=body.active)
    return {"success": True, "voice_input_active": prefs.voice_input_active}


@router.post("/voice-responses")
async def set_voice_responses(body: VoiceResponsesIn, service: VoiceService = Depends(get_service)) -> dict[str, Any]:
    prefs = service.set_preferences(voice_responses_enabled=body.enabled)
    return {"success": True, "voice_responses_enabled": prefs.voice_responses_enabled}


@router.get("/voice-preferences")
async def get_preferences(service: VoiceService = Depends(get_service)) -> dict[str, Any]:
    return {"preferences": service.context.preferences().to_dict()}


@router.post("/voice-preferences")
async def update_preferences(body: PreferencesIn, service: VoiceService = Depends(get_service)) -> dict[str, Any]:
    prefs = service.set_preferences(body.voice_input_active, body.voice_responses_enabled)
    return {"success": True, "preferences": prefs.to_dict()}


@router.post("/speak")
async def speak(body: SpeakIn, service: VoiceService = Depends(get_service)) -> dict[str, Any]:
    try:
        responded = service.speak(body.text)
    except errors.VoiceGateError as exc:
        raise errors.http_error(exc, trace_id=get_trace_id()) from exc
    return {"success": True, "message": "Text spoken successfully", "responded_count": responded}


@router.post("/speak-system")
async def speak_system(body: SpeakSystemIn, service: VoiceService = Depends(get_service)) -> dict[str, Any]:
    """Synthese via la commande systeme, independante de la preference voice responses."""
    try:
        await service.speak_system(body.text, body.rate)
    except errors.VoiceGateError as exc:
        raise errors.http_error(exc, trace_id=get_trace_id()) from exc
    return {"success": True, "message": "Text spoken successfully via system voice"}


async def event_source(
    service: VoiceService,
    is_disconnected: Callable[[], Awaitable[bool]],
    heartbeat: float,
) -> AsyncIterator[str]:
    """Trames SSE d'un observateur.

    L'abonnement est pris au premier tour du generateur : sans iteration, pas
    d'observateur enregistre, et le desabonnement a lieu quoi qu'il arrive.
    """
    handle = service.connect_observer()
    try:
        while not handle.closed:
            if await is_disconnected():
                break
            event = await handle.next_event(heartbeat)
            if event is None:
                yield HEARTBEAT_FRAME
                continue
            yield format_sse(event)
    finally:
        service.disconnect_observer(handle)


@router.get("/tts-events")
async def tts_events(request: Request, service: VoiceService = Depends(get_service)) -> StreamingResponse:
    stream = event_source(service, request.is_disconnected, service.settings.sse_heartbeat_sec)
    return StreamingResponse(
        stream,
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
