from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from voicegate.core import errors
from voicegate.core.config import Settings
from voicegate.core.context import VoiceContext
from voicegate.core.hub import NotificationHub
from voicegate.core.logger import get_logger
from voicegate.core.metrics import record_wait
from voicegate.core.speech import play_notification_sound
from voicegate.core.store import MessageStore, Utterance

logger = get_logger("wait")

OUTCOME_FOUND = "found"
OUTCOME_TIMEOUT = "timeout"
OUTCOME_DEACTIVATED = "deactivated"

DEACTIVATED_MESSAGE = "Voice input was deactivated"


@dataclass
class WaitResult:
    outcome: str
    wait_time_ms: int
    utterances: List[Utterance] = field(default_factory=list)
    message: Optional[str] = None

    @property
    def found(self) -> bool:
        return bool(self.utterances)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": True,
            "utterances": [u.to_dict() for u in self.utterances],
            "count": len(self.utterances),
            "wait_time_ms": self.wait_time_ms,
            "outcome": self.outcome,
        }
        if self.message:
            data["message"] = self.message
        return data


class WaitCoordinator:
    """Boucle de scrutation bornee qui attend de nouvelles utterances.

    L'annulation est cooperative : ``voice_input_active`` est relu a chaque
    tour, la latence d'annulation est donc bornee par l'intervalle de scrutation.
    """

    def __init__(
        self,
        store: MessageStore,
        context: VoiceContext,
        hub: NotificationHub,
        settings: Settings,
        *,
        cue: Optional[Callable[[], Awaitable[Any]]] = None,
    ) -> None:
        self.store = store
        self.context = context
        self.hub = hub
        self.timeout = settings.wait_timeout_seconds
        self.interval = settings.wait_poll_interval
        self._cue = cue or (lambda: play_notification_sound(settings))

    async def _play_cue(self) -> None:
        try:
            await self._cue()
        except Exception:
            logger.debug("[WaitCore] audible cue failed", exc_info=True)

    async def wait(self) -> WaitResult:
        if not self.context.voice_input_active:
            raise errors.PreconditionError(errors.VOICE_INPUT_INACTIVE_WAIT)

        start = time.monotonic()
        logger.debug("[WaitCore] Starting wait_for_utterance (%ss)", self.timeout)
        self.hub.notify_wait_status(True)
        try:
            result = await self._poll(start)
        finally:
            self.hub.notify_wait_status(False)
        record_wait(result.outcome, result.wait_time_ms / 1000.0)
        return result

    async def _poll(self, start: float) -> WaitResult:
        cue_task: Optional[asyncio.Task] = None
        try:
            while True:
                elapsed = time.monotonic() - start
                if elapsed >= self.timeout:
                    break
                if not self.context.voice_input_active:
                    logger.debug("[WaitCore] Voice input deactivated during wait_for_utterance")
                    return WaitResult(OUTCOME_DEACTIVATED, _ms(elapsed), message=DEACTIVATED_MESSAGE)

                if self.store.pending():
                    # un autre waiter peut avoir livre les memes utterances
                    delivered = self.store.deliver_pending()
                    if delivered:
                        return WaitResult(OUTCOME_FOUND, _ms(time.monotonic() - start), delivered)

                # le signal sonore tourne a cote de la boucle, jamais devant
                if cue_task is None:
                    cue_task = asyncio.create_task(self._play_cue())

                await asyncio.sleep(min(self.interval, self.timeout - elapsed))
        finally:
            if cue_task is not None and not cue_task.done():
                cue_task.cancel()
                await asyncio.gather(cue_task, return_exceptions=True)

        return WaitResult(
            OUTCOME_TIMEOUT,
            _ms(self.timeout),
            message=f"No utterances found after waiting {_fmt_seconds(self.timeout)} seconds.",
        )


def _ms(seconds: float) -> int:
    return int(round(seconds * 1000))


def _fmt_seconds(seconds: float) -> str:
    return str(int(seconds)) if float(seconds).is_integer() else str(seconds)
