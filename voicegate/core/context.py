"""Etat partage du processus : preferences vocales et horodatages du protocole."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from threading import RLock
from typing import Optional

from voicegate.core.logger import get_logger

logger = get_logger("server")


@dataclass
class Preferences:
    voice_input_active: bool = False
    voice_responses_enabled: bool = False

    def to_dict(self) -> dict[str, bool]:
        return asdict(self)


class VoiceContext:
    """Possede les preferences et les horodatages tool-use / speak.

    Toute mutation passe par les setters ci-dessous, ce qui garde la remise
    a zero "plus aucun observateur" au meme endroit.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._prefs = Preferences()
        self.last_tool_use_at: Optional[datetime] = None
        self.last_speak_at: Optional[datetime] = None

    @property
    def voice_input_active(self) -> bool:
        return self._prefs.voice_input_active

    @property
    def voice_responses_enabled(self) -> bool:
        return self._prefs.voice_responses_enabled

    def preferences(self) -> Preferences:
        with self._lock:
            return Preferences(**self._prefs.to_dict())

    def set_voice_input(self, active: bool) -> None:
        with self._lock:
            self._prefs.voice_input_active = bool(active)
        logger.info("[Voice Input] %s listening", "Started" if active else "Stopped")

    def set_voice_responses(self, enabled: bool) -> None:
        with self._lock:
            self._prefs.voice_responses_enabled = bool(enabled)
        logger.info("[Preferences] voiceResponses=%s", bool(enabled))

    def update(self, *, voice_input_active: Optional[bool] = None, voice_responses_enabled: Optional[bool] = None) -> Preferences:
        with self._lock:
            if voice_input_active is not None:
                self.set_voice_input(voice_input_active)
            if voice_responses_enabled is not None:
                self.set_voice_responses(voice_responses_enabled)
            return self.preferences()

    def reset_preferences(self) -> bool:
        """Remet les deux preferences a False ; retourne True si quelque chose a change."""
        with self._lock:
            before = self._prefs
            changed = before.voice_input_active or before.voice_responses_enabled
            if changed:
                logger.info(
                    "[SSE] Voice features disabled - Input: %s -> False, Responses: %s -> False",
                    before.voice_input_active,
                    before.voice_responses_enabled,
                )
            self._prefs = Preferences()
        return changed

    # ----- horodatages -----
    def mark_tool_use(self) -> datetime:
        with self._lock:
            self.last_tool_use_at = datetime.now(timezone.utc)
            return self.last_tool_use_at

    def mark_speak(self) -> datetime:
        with self._lock:
            self.last_speak_at = datetime.now(timezone.utc)
            return self.last_speak_at

    def must_speak_after_tools(self) -> bool:
        """Vrai si un outil a ete utilise depuis la derniere reponse vocale."""
        with self._lock:
            if not self._prefs.voice_responses_enabled or self.last_tool_use_at is None:
                return False
            return self.last_speak_at is None or self.last_speak_at < self.last_tool_use_at
