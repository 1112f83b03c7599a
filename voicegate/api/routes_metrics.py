from __future__ import annotations

from fastapi import APIRouter, Depends, Response

try:
    from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
except Exception:  # pragma: no cover
    generate_latest = None  # type: ignore
    CONTENT_TYPE_LATEST = "text/plain"  # type: ignore

from voicegate.api.deps import get_service
from voicegate.core.service import VoiceService

router = APIRouter()


@router.get("/metrics")
def metrics(service: VoiceService = Depends(get_service)) -> Response:
    if not service.settings.enable_metrics or generate_latest is None:
        return Response(status_code=404)
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
