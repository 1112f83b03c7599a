from __future__ import annotations

from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError, version

from fastapi import APIRouter, Depends

from voicegate.api.deps import get_service
from voicegate.core.service import VoiceService

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def get_health(service: VoiceService = Depends(get_service)) -> dict[str, object]:
    """Retourne l'etat de sante du serveur."""
    try:
        pkg_version = version("voicegate")
    except PackageNotFoundError:  # pragma: no cover - depend de l'installation
        pkg_version = "unknown"

    return {
        "status": "ok",
        "version": pkg_version,
        "time": datetime.now(timezone.utc).isoformat(),
        "observers": service.hub.observer_count,
        "auto_deliver": service.settings.auto_deliver_voice_input,
        "preferences": service.context.preferences().to_dict(),
        "utterances": service.utterance_counts(),
    }
