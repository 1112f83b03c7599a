from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from voicegate.api.deps import get_service
from voicegate.core import errors
from voicegate.core.service import VoiceService
from voicegate.core.trace import get_trace_id

router = APIRouter(prefix="/api", tags=["utterances"])


class UtteranceIn(BaseModel):
    text: Optional[str] = None
    timestamp: Optional[datetime] = Field(default=None)


@router.post("/potential-utterances")
async def submit_utterance(body: UtteranceIn, service: VoiceService = Depends(get_service)) -> dict[str, Any]:
    try:
        utterance = service.submit_utterance(body.text, body.timestamp)
    except errors.ValidationError as exc:
        raise errors.http_error(exc, trace_id=get_trace_id()) from exc
    return {"success": True, "utterance": utterance.to_dict()}


@router.get("/utterances")
async def list_utterances(
    limit: int = Query(10, ge=1, le=1000),
    service: VoiceService = Depends(get_service),
) -> dict[str, Any]:
    return {"utterances": [u.to_dict() for u in service.list_utterances(limit)]}


@router.get("/utterances/status")
async def utterance_status(service: VoiceService = Depends(get_service)) -> dict[str, int]:
    return service.utterance_counts()


@router.delete("/utterances")
async def clear_utterances(service: VoiceService = Depends(get_service)) -> dict[str, Any]:
    cleared = service.clear_all()
    return {"success": True, "message": f"Cleared {cleared} utterances", "cleared_count": cleared}


@router.get("/has-pending-utterances")
async def has_pending(service: VoiceService = Depends(get_service)) -> dict[str, Any]:
    return service.has_pending()


@router.get("/conversation")
async def conversation(
    limit: int = Query(50, ge=1, le=1000),
    service: VoiceService = Depends(get_service),
) -> dict[str, Any]:
    return {"messages": [m.to_dict() for m in service.list_conversation(limit)]}


@router.post("/dequeue-utterances")
async def dequeue_utterances(service: VoiceService = Depends(get_service)) -> dict[str, Any]:
    try:
        delivered = service.dequeue()
    except errors.PreconditionError as exc:
        raise errors.http_error(exc, trace_id=get_trace_id()) from exc
    return {"success": True, "utterances": [u.to_dict() for u in delivered]}


@router.post("/wait-for-utterances")
async def wait_for_utterances(service: VoiceService = Depends(get_service)) -> dict[str, Any]:
    try:
        result = await service.wait()
    except errors.PreconditionError as exc:
        raise errors.http_error(exc, trace_id=get_trace_id()) from exc
    return result.to_dict()
