from __future__ import annotations

from fastapi import Request

from voicegate.core.service import VoiceService


def get_service(request: Request) -> VoiceService:
    """Service partage, attache a l'application par ``create_app``."""
    return request.app.state.voice
