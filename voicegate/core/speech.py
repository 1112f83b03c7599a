"""Commandes audio locales : signal sonore d'attente et synthese vocale systeme."""

from __future__ import annotations

import asyncio
from typing import Sequence

from voicegate.core import errors
from voicegate.core.config import Settings
from voicegate.core.logger import get_logger

logger = get_logger("speech")


async def _run(command: Sequence[str]) -> None:
    proc = await asyncio.create_subprocess_exec(
        *command,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        _, stderr = await proc.communicate()
    except asyncio.CancelledError:
        # annule (delai depasse ou attente terminee) : ne pas laisser le processus orphelin
        if proc.returncode is None:
            proc.kill()
        raise
    if proc.returncode != 0:
        detail = (stderr or b"").decode("utf-8", errors="replace").strip()
        raise RuntimeError(f"{command[0]} exited with {proc.returncode}: {detail}")


async def _run_bounded(settings: Settings, command: Sequence[str]) -> None:
    try:
        await asyncio.wait_for(_run(command), settings.speech_command_timeout_sec)
    except asyncio.TimeoutError:
        raise RuntimeError(f"{command[0]} timed out after {settings.speech_command_timeout_sec}s") from None


async def play_notification_sound(settings: Settings) -> bool:
    """Joue le son d'attente. Jamais bloquant pour l'appelant : les echecs sont journalises."""
    if not settings.notification_sound_enabled or not settings.notification_sound_command:
        return False
    try:
        await _run_bounded(settings, settings.notification_sound_command)
    except Exception as exc:
        logger.debug("[Sound] Failed to play sound: %s", exc)
        return False
    logger.debug("[Sound] Played notification sound")
    return True


def build_tts_command(settings: Settings, text: str, rate: int | None = None) -> list[str]:
    command = list(settings.system_tts_command)
    if not command:
        raise errors.InternalError("No system speech command configured")
    return [*command, "-r", str(rate or settings.system_tts_default_rate), text]


async def speak_system(settings: Settings, text: str, rate: int | None = None) -> None:
    """Prononce ``text`` via la commande systeme (``say`` sur macOS)."""
    command = build_tts_command(settings, text, rate)
    try:
        await _run_bounded(settings, command)
    except Exception as exc:
        logger.warning("[Speak System] Failed to speak text: %s", exc)
        raise errors.InternalError("Failed to speak text via system voice", details=str(exc)) from exc
    logger.debug('[Speak System] Spoke text using system voice: "%s" (rate: %s)', text, rate)
