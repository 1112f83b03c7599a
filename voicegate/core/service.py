from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from voicegate.core import errors, speech
from voicegate.core.config import Settings, get_settings
from voicegate.core.context import Preferences, VoiceContext
from voicegate.core.gate import Action, ActionGate, Decision
from voicegate.core.hub import ChannelHandle, NotificationHub
from voicegate.core.logger import get_logger
from voicegate.core.store import ConversationMessage, MessageStore, Utterance
from voicegate.core.waiter import WaitCoordinator, WaitResult

logger = get_logger("server")


class VoiceService:
    """Point d'entree unique des operations exposees par le serveur."""

    def __init__(self, settings: Optional[Settings] = None, *, waiter: Optional[WaitCoordinator] = None) -> None:
        self.settings = settings or get_settings()
        self.context = VoiceContext()
        self.store = MessageStore()
        self.hub = NotificationHub(self.context, queue_size=self.settings.observer_queue_size)
        self.waiter = waiter or WaitCoordinator(self.store, self.context, self.hub, self.settings)
        self.gate = ActionGate(self.store, self.context, self.waiter, self.settings)

    # ----- entrees -----
    def submit_utterance(self, text: Optional[str], created_at: Optional[datetime] = None) -> Utterance:
        return self.store.append(text, created_at)

    def set_preferences(
        self,
        voice_input_active: Optional[bool] = None,
        voice_responses_enabled: Optional[bool] = None,
    ) -> Preferences:
        return self.context.update(
            voice_input_active=voice_input_active,
            voice_responses_enabled=voice_responses_enabled,
        )

    def clear_all(self) -> int:
        return self.store.clear()

    def connect_observer(self) -> ChannelHandle:
        return self.hub.subscribe()

    def disconnect_observer(self, handle: ChannelHandle) -> None:
        self.hub.unsubscribe(handle)

    # ----- outils de l'assistant -----
    def dequeue(self) -> List[Utterance]:
        if not self.context.voice_input_active:
            raise errors.PreconditionError(errors.VOICE_INPUT_INACTIVE_DEQUEUE)
        return self.store.deliver_pending()

    async def wait(self) -> WaitResult:
        return await self.waiter.wait()

    def speak(self, text: Optional[str]) -> int:
        """Diffuse ``text`` aux navigateurs et marque les utterances livrees comme repondues.

        Retourne le nombre d'utterances passees a ``responded``.
        """
        cleaned = (text or "").strip()
        if not cleaned:
            raise errors.ValidationError(errors.TEXT_REQUIRED)
        if not self.context.voice_responses_enabled:
            logger.debug("[Speak] Voice responses disabled, returning error")
            raise errors.PreconditionError(
                errors.VOICE_RESPONSES_DISABLED,
                details="Cannot speak when voice responses are disabled",
            )
        self.hub.notify_speak(cleaned)
        self.store.append_assistant_message(cleaned)
        responded = self.store.respond_delivered()
        self.context.mark_speak()
        logger.debug('[Speak] Sent text to browser for TTS: "%s"', cleaned)
        return len(responded)

    async def speak_system(self, text: Optional[str], rate: Optional[int] = None) -> None:
        cleaned = (text or "").strip()
        if not cleaned:
            raise errors.ValidationError(errors.TEXT_REQUIRED)
        await speech.speak_system(self.settings, cleaned, rate)

    # ----- points de controle -----
    async def validate(self, action: Action | str) -> Decision:
        return await self.gate.validate(action)

    # ----- requetes -----
    def list_utterances(self, limit: int = 10) -> List[Utterance]:
        return self.store.recent_utterances(limit)

    def list_conversation(self, limit: int = 50) -> List[ConversationMessage]:
        return self.store.recent_conversation(limit)

    def utterance_counts(self) -> Dict[str, int]:
        return self.store.counts()

    def has_pending(self) -> Dict[str, Any]:
        count = len(self.store.pending())
        return {"has_pending": count > 0, "pending_count": count}
