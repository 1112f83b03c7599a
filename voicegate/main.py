from __future__ import annotations

import asyncio
import contextlib
import webbrowser
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from voicegate.api import (
    health_router,
    hooks_router,
    metrics_router,
    utterances_router,
    voice_router,
)
from voicegate.core.config import Settings, get_settings
from voicegate.core.logger import get_logger
from voicegate.core.metrics import metrics_middleware
from voicegate.core.service import VoiceService
from voicegate.core.trace import TRACE_HEADER, adopt_trace_id

logger = get_logger("server")


async def _open_browser_when_idle(service: VoiceService) -> None:
    """Ouvre l'UI si aucun navigateur ne s'est connecte apres le delai configure."""
    settings = service.settings
    await asyncio.sleep(settings.auto_open_browser_delay_sec)
    if service.hub.observer_count:
        logger.debug("[Browser] Frontend already connected (%d client(s))", service.hub.observer_count)
        return
    url = f"http://localhost:{settings.port}"
    logger.debug("[Browser] No frontend connected, opening %s", url)
    try:
        webbrowser.open(url)
    except Exception:
        logger.warning("[Browser] Failed to open browser", exc_info=True)


@asynccontextmanager
async def _lifespan(app: FastAPI):
    service: VoiceService = app.state.voice
    settings = service.settings
    logger.info("[HTTP] Server listening on http://%s:%s", settings.host, settings.port)
    logger.info(
        "[Auto-deliver] Voice input auto-delivery is %s",
        "enabled" if settings.auto_deliver_voice_input else "disabled",
    )
    opener: Optional[asyncio.Task] = None
    if settings.auto_open_browser:
        opener = asyncio.create_task(_open_browser_when_idle(service))
    yield
    if opener is not None:
        opener.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await opener


def _mount_ui(app: FastAPI, ui_dir: Path) -> None:
    index = ui_dir / "index.html"

    @app.get("/", include_in_schema=False)
    async def _index():  # type: ignore[func-returns-value]
        return FileResponse(str(index))

    @app.get("/messenger", include_in_schema=False)
    async def _messenger():  # type: ignore[func-returns-value]
        return FileResponse(str(index))

    app.mount("/", StaticFiles(directory=str(ui_dir), html=True), name="ui")


def create_app(settings: Optional[Settings] = None, *, service: Optional[VoiceService] = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="voicegate", lifespan=_lifespan)
    app.state.voice = service or VoiceService(settings)

    if settings.enable_metrics:
        app.middleware("http")(metrics_middleware)

    @app.middleware("http")
    async def _trace_middleware(request, call_next):
        tid = adopt_trace_id(request.headers.get(TRACE_HEADER))
        response = await call_next(request)
        response.headers[TRACE_HEADER] = tid
        return response

    # Ajuster credentials si origines wildcard
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(utterances_router)
    app.include_router(voice_router)
    app.include_router(hooks_router)
    app.include_router(metrics_router)

    if settings.ui_dir:
        ui_dir = Path(settings.ui_dir)
        if (ui_dir / "index.html").is_file():
            _mount_ui(app, ui_dir)
        else:
            logger.warning("UI directory %s has no index.html, skipping", ui_dir)

    return app


app = create_app()
