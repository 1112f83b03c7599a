from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from voicegate.api.deps import get_service
from voicegate.core.gate import Action
from voicegate.core.service import VoiceService

router = APIRouter(prefix="/api", tags=["hooks"])


class ValidateIn(BaseModel):
    action: Literal["tool-use", "post-tool", "speak", "wait", "stop"]


@router.post("/validate-action")
async def validate_action(body: ValidateIn, service: VoiceService = Depends(get_service)) -> dict[str, Any]:
    decision = await service.validate(body.action)
    return decision.to_dict()


# Points d'appel des hooks de l'hote : la reponse suit le format {decision, reason}.
@router.post("/hooks/pre-tool")
async def hook_pre_tool(service: VoiceService = Depends(get_service)) -> dict[str, Any]:
    return (await service.validate(Action.TOOL_USE)).to_hook_payload()


@router.post("/hooks/post-tool")
async def hook_post_tool(service: VoiceService = Depends(get_service)) -> dict[str, Any]:
    return (await service.validate(Action.POST_TOOL)).to_hook_payload()


@router.post("/hooks/pre-speak")
async def hook_pre_speak(service: VoiceService = Depends(get_service)) -> dict[str, Any]:
    return (await service.validate(Action.SPEAK)).to_hook_payload()


@router.post("/hooks/pre-wait")
async def hook_pre_wait(service: VoiceService = Depends(get_service)) -> dict[str, Any]:
    return (await service.validate(Action.WAIT)).to_hook_payload()


@router.post("/hooks/stop")
async def hook_stop(service: VoiceService = Depends(get_service)) -> dict[str, Any]:
    return (await service.validate(Action.STOP)).to_hook_payload()
