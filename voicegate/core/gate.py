"""Porte d'action consultee par l'hote avant chaque action de l'assistant.

Les regles sont evaluees dans un ordre strict, la premiere qui s'applique
l'emporte :

1. utterances en attente (voice input actif) ;
2. utterances livrees sans reponse (voice responses actif), sauf pour ``speak`` ;
3. ``tool-use`` / ``post-tool`` : approuve et horodate ;
4. ``wait`` : il faut parler apres un outil ;
5. ``speak`` : approuve ;
6. ``stop`` : parler apres un outil, puis derniere chance de recevoir une entree.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from voicegate.core import errors
from voicegate.core.config import Settings
from voicegate.core.context import VoiceContext
from voicegate.core.logger import get_logger
from voicegate.core.metrics import inc_gate_decision
from voicegate.core.store import MessageStore, Utterance
from voicegate.core.waiter import WaitCoordinator

logger = get_logger("gate")


class Action(str, Enum):
    TOOL_USE = "tool-use"
    POST_TOOL = "post-tool"
    SPEAK = "speak"
    WAIT = "wait"
    STOP = "stop"


class Followup(str, Enum):
    DEQUEUE = "dequeue"
    SPEAK = "speak"
    WAIT = "wait"


APPROVE = "approve"
BLOCK = "block"

SPEAK_REMINDER = (
    "\n\nThe user has enabled voice responses, so use the 'speak' tool to respond "
    "to the user's voice input before proceeding."
)
MUST_SPEAK_BEFORE_WAIT = (
    "Assistant must speak after using tools. Please use the speak tool to respond "
    "before waiting for utterances."
)
MUST_SPEAK_BEFORE_STOP = (
    "Assistant must speak after using tools. Please use the speak tool to respond "
    "before proceeding."
)
STOP_MUST_WAIT = (
    "Assistant tried to end its response, but voice input is active. Stopping is not "
    "allowed without first checking for voice input. Assistant should now use "
    "wait_for_utterance to check for voice input"
)
STOP_NOTHING_NEW = "No utterances since last timeout"
STOP_WAIT_EMPTY = "No utterances found during wait"
STOP_WAIT_FAILED = "Auto-wait encountered an error, proceeding"


@dataclass(frozen=True)
class Decision:
    decision: str
    reason: Optional[str] = None
    required_followup: Optional[Followup] = None

    @property
    def approved(self) -> bool:
        return self.decision == APPROVE

    @classmethod
    def approve(cls, reason: Optional[str] = None) -> "Decision":
        return cls(APPROVE, reason)

    @classmethod
    def block(cls, reason: str, followup: Optional[Followup] = None) -> "Decision":
        return cls(BLOCK, reason, followup)

    def to_hook_payload(self) -> Dict[str, Any]:
        """Format attendu par les hooks de l'hote : ``decision`` + ``reason`` optionnel."""
        payload: Dict[str, Any] = {"decision": self.decision}
        if self.reason:
            payload["reason"] = self.reason
        return payload

    def to_dict(self) -> Dict[str, Any]:
        data = self.to_hook_payload()
        data["required_followup"] = self.required_followup.value if self.required_followup else None
        return data


def speak_reminder(context: VoiceContext) -> str:
    return SPEAK_REMINDER if context.voice_responses_enabled else ""


def format_voice_utterances(utterances: List[Utterance], context: VoiceContext) -> str:
    """Texte relaye a l'assistant quand des utterances lui sont livrees d'office."""
    count = len(utterances)
    texts = "\n".join(f'"{u.text}"' for u in utterances)
    plural = "" if count == 1 else "s"
    return (
        f"Assistant received voice input from the user ({count} utterance{plural}):"
        f"\n\n{texts}{speak_reminder(context)}"
    )


class ActionGate:
    def __init__(
        self,
        store: MessageStore,
        context: VoiceContext,
        waiter: WaitCoordinator,
        settings: Settings,
    ) -> None:
        self.store = store
        self.context = context
        self.waiter = waiter
        self.auto_deliver = settings.auto_deliver_voice_input
        self.auto_wait_retries = max(settings.auto_wait_retries, 0)

    async def validate(self, action: Action | str) -> Decision:
        action = Action(action)
        decision = await self._evaluate(action)
        inc_gate_decision(action.value, decision.decision)
        logger.info(
            "[Gate] %s -> %s%s",
            action.value,
            decision.decision,
            f" ({decision.required_followup.value})" if decision.required_followup else "",
        )
        return decision

    async def _evaluate(self, action: Action) -> Decision:
        ctx = self.context

        pending = self._check_pending()
        if pending is not None:
            return pending

        if ctx.voice_responses_enabled and action is not Action.SPEAK:
            delivered = self.store.delivered()
            if delivered:
                return Decision.block(
                    f"{len(delivered)} delivered utterance(s) require voice response. "
                    "Please use the speak tool to respond before proceeding.",
                    Followup.SPEAK,
                )

        if action in (Action.TOOL_USE, Action.POST_TOOL):
            ctx.mark_tool_use()
            return Decision.approve()

        if action is Action.WAIT:
            if ctx.must_speak_after_tools():
                return Decision.block(MUST_SPEAK_BEFORE_WAIT, Followup.SPEAK)
            return Decision.approve()

        if action is Action.SPEAK:
            return Decision.approve()

        return await self._evaluate_stop()

    def _check_pending(self) -> Optional[Decision]:
        if not self.context.voice_input_active:
            return None
        pending = self.store.pending()
        if not pending:
            return None
        if not self.auto_deliver:
            return Decision.block(
                f"{len(pending)} pending utterance(s) available. "
                "Use the dequeue_utterances tool to retrieve them.",
                Followup.DEQUEUE,
            )
        delivered = self.store.deliver_pending()
        if not delivered:
            return None
        return Decision.block(
            format_voice_utterances(delivered, self.context),
            Followup.SPEAK if self.context.voice_responses_enabled else None,
        )

    async def _evaluate_stop(self) -> Decision:
        ctx = self.context
        if ctx.must_speak_after_tools():
            return Decision.block(MUST_SPEAK_BEFORE_STOP, Followup.SPEAK)

        if not ctx.voice_input_active:
            return Decision.approve(STOP_NOTHING_NEW)

        if not self.auto_deliver:
            return Decision.block(STOP_MUST_WAIT, Followup.WAIT)

        return await self._auto_wait()

    async def _auto_wait(self) -> Decision:
        """Attente integree au stop ; toute erreur interne se traduit par un approve."""
        attempts = 1 + self.auto_wait_retries
        for attempt in range(1, attempts + 1):
            logger.debug("[Stop Hook] Auto-calling wait_for_utterance (attempt %d)", attempt)
            try:
                result = await self.waiter.wait()
            except errors.PreconditionError as exc:
                return Decision.approve(exc.message)
            except Exception:
                logger.exception("[Stop Hook] Error calling wait_for_utterance")
                continue
            if result.utterances:
                return Decision.block(
                    format_voice_utterances(result.utterances, self.context),
                    Followup.SPEAK if self.context.voice_responses_enabled else None,
                )
            return Decision.approve(result.message or STOP_WAIT_EMPTY)
        return Decision.approve(STOP_WAIT_FAILED)
