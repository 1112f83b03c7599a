from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from uuid import uuid4

from voicegate.core.context import VoiceContext
from voicegate.core.logger import get_logger

logger = get_logger("sse")

HEARTBEAT_FRAME = ": ping\n\n"


def speak_event(text: str) -> Dict[str, Any]:
    """Evenement de synthese vocale destine au navigateur."""
    return {"type": "speak", "text": text}


def wait_status_event(is_waiting: bool) -> Dict[str, Any]:
    return {"type": "waitStatus", "isWaiting": bool(is_waiting)}


def connected_event() -> Dict[str, Any]:
    return {"type": "connected"}


def format_sse(event: Dict[str, Any]) -> str:
    """Formate un evenement en trame Server-Sent Events."""
    return f"data: {json.dumps(event, ensure_ascii=False)}\n\n"


@dataclass(eq=False)
class ChannelHandle:
    id: str
    queue: "asyncio.Queue[Dict[str, Any]]"
    closed: bool = field(default=False)

    def send(self, event: Dict[str, Any]) -> None:
        self.queue.put_nowait(event)

    async def next_event(self, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """Attend le prochain evenement ; None si ``timeout`` expire."""
        try:
            return await asyncio.wait_for(self.queue.get(), timeout)
        except asyncio.TimeoutError:
            return None


class NotificationHub:
    """Diffusion vers les observateurs connectes (sessions navigateur)."""

    def __init__(self, context: VoiceContext, queue_size: int = 100) -> None:
        self.context = context
        self.queue_size = queue_size
        self._observers: Dict[str, ChannelHandle] = {}

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def subscribe(self) -> ChannelHandle:
        handle = ChannelHandle(id=uuid4().hex[:12], queue=asyncio.Queue(maxsize=self.queue_size))
        handle.send(connected_event())
        self._observers[handle.id] = handle
        logger.info("[SSE] Browser connected, %d client(s)", len(self._observers))
        return handle

    def unsubscribe(self, handle: ChannelHandle) -> None:
        handle.closed = True
        if self._observers.pop(handle.id, None) is None:
            return
        if not self._observers:
            logger.info("[SSE] Last browser disconnected, disabling voice features")
            self.context.reset_preferences()
        else:
            logger.info("[SSE] Browser disconnected, %d client(s) remaining", len(self._observers))

    def broadcast(self, event: Dict[str, Any]) -> int:
        """Envoie ``event`` a chaque observateur ; les observateurs satures sont abandonnes."""
        reached = 0
        for handle in list(self._observers.values()):
            try:
                handle.send(event)
                reached += 1
            except asyncio.QueueFull:
                logger.warning("[SSE] Dropping slow observer %s", handle.id)
                self.unsubscribe(handle)
        return reached

    def notify_speak(self, text: str) -> int:
        return self.broadcast(speak_event(text))

    def notify_wait_status(self, is_waiting: bool) -> int:
        return self.broadcast(wait_status_event(is_waiting))
