"""Store en memoire des utterances et projection conversationnelle.

L'utterance est l'unique source de verite : les messages ``role=user`` de la
conversation sont derives a la lecture, leur statut ne peut donc jamais
diverger de celui de l'utterance correspondante.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from threading import RLock
from typing import Any, Dict, List, Optional
from uuid import uuid4

from voicegate.core import errors
from voicegate.core.logger import get_logger
from voicegate.core.metrics import inc_transition

logger = get_logger("queue")


class UtteranceStatus(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    RESPONDED = "responded"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)


_STATUS_ORDER = [UtteranceStatus.PENDING, UtteranceStatus.DELIVERED, UtteranceStatus.RESPONDED]


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Utterance:
    id: str
    text: str
    created_at: datetime
    status: UtteranceStatus = UtteranceStatus.PENDING
    seq: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "timestamp": self.created_at.isoformat(),
            "status": self.status.value,
        }


@dataclass
class AssistantMessage:
    id: str
    text: str
    created_at: datetime
    seq: int = 0


@dataclass(frozen=True)
class ConversationMessage:
    """Vue en lecture seule d'un message de la conversation."""

    id: str
    role: str
    text: str
    created_at: datetime
    status: Optional[UtteranceStatus] = None
    seq: int = field(default=0, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "role": self.role,
            "text": self.text,
            "timestamp": self.created_at.isoformat(),
        }
        if self.status is not None:
            data["status"] = self.status.value
        return data


def _clean(text: Optional[str]) -> str:
    cleaned = (text or "").strip()
    if not cleaned:
        raise errors.ValidationError(errors.TEXT_REQUIRED)
    return cleaned


class MessageStore:
    def __init__(self) -> None:
        self._lock = RLock()
        self._seq = itertools.count(1)
        self._utterances: Dict[str, Utterance] = {}
        self._assistant: List[AssistantMessage] = []

    # ----- ecriture -----
    def append(self, text: Optional[str], created_at: Optional[datetime] = None) -> Utterance:
        cleaned = _clean(text)
        if created_at is not None and created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        with self._lock:
            utterance = Utterance(
                id=uuid4().hex,
                text=cleaned,
                created_at=created_at or _now(),
                seq=next(self._seq),
            )
            self._utterances[utterance.id] = utterance
        logger.debug('[Queue] queued: "%s" [id: %s]', utterance.text, utterance.id)
        return utterance

    def append_assistant_message(self, text: Optional[str]) -> ConversationMessage:
        cleaned = _clean(text)
        with self._lock:
            message = AssistantMessage(id=uuid4().hex, text=cleaned, created_at=_now(), seq=next(self._seq))
            self._assistant.append(message)
        return _assistant_view(message)

    def transition(self, utterance_id: str, new_status: UtteranceStatus) -> bool:
        """Avance une utterance d'un cran.

        Retourne False (sans effet) si l'utterance est inconnue ou deja a ce
        statut ou au-dela ; une transition qui saute un statut est refusee.
        """
        new_status = UtteranceStatus(new_status)
        with self._lock:
            utterance = self._utterances.get(utterance_id)
            if utterance is None:
                return False
            current = utterance.status
            if new_status.rank <= current.rank:
                return False
            if new_status.rank != current.rank + 1:
                raise errors.InvalidTransitionError(
                    f"Cannot move utterance {utterance_id} from {current.value} to {new_status.value}"
                )
            utterance.status = new_status
        logger.debug('[Queue] %s: "%s" [id: %s]', new_status.value, utterance.text, utterance_id)
        return True

    def deliver_pending(self) -> List[Utterance]:
        """Passe toutes les utterances en attente a ``delivered`` (plus anciennes d'abord)."""
        return self._advance_all(UtteranceStatus.PENDING, UtteranceStatus.DELIVERED)

    def respond_delivered(self) -> List[Utterance]:
        return self._advance_all(UtteranceStatus.DELIVERED, UtteranceStatus.RESPONDED)

    def _advance_all(self, current: UtteranceStatus, target: UtteranceStatus) -> List[Utterance]:
        with self._lock:
            moved = [u for u in self._by_status(current) if self.transition(u.id, target)]
        inc_transition(target.value, len(moved))
        return moved

    def clear(self) -> int:
        with self._lock:
            count = len(self._utterances)
            self._utterances = {}
            self._assistant = []
        logger.info("[Queue] Cleared %d utterances", count)
        return count

    # ----- lecture -----
    def get(self, utterance_id: str) -> Optional[Utterance]:
        return self._utterances.get(utterance_id)

    def _by_status(self, status: UtteranceStatus) -> List[Utterance]:
        items = [u for u in self._utterances.values() if u.status == status]
        return sorted(items, key=_chrono_key)

    def pending(self) -> List[Utterance]:
        with self._lock:
            return self._by_status(UtteranceStatus.PENDING)

    def delivered(self) -> List[Utterance]:
        with self._lock:
            return self._by_status(UtteranceStatus.DELIVERED)

    def recent_utterances(self, limit: int = 10) -> List[Utterance]:
        with self._lock:
            items = sorted(self._utterances.values(), key=_chrono_key, reverse=True)
        return items[: max(limit, 0)]

    def recent_conversation(self, limit: int = 50) -> List[ConversationMessage]:
        with self._lock:
            messages = [_user_view(u) for u in self._utterances.values()]
            messages.extend(_assistant_view(m) for m in self._assistant)
        messages.sort(key=_chrono_key)
        if limit <= 0:
            return []
        return messages[-limit:]

    def counts(self) -> Dict[str, int]:
        with self._lock:
            statuses = [u.status for u in self._utterances.values()]
        return {
            "total": len(statuses),
            "pending": statuses.count(UtteranceStatus.PENDING),
            "delivered": statuses.count(UtteranceStatus.DELIVERED),
            "responded": statuses.count(UtteranceStatus.RESPONDED),
        }

    def __len__(self) -> int:
        return len(self._utterances)


def _chrono_key(item: Any) -> tuple:
    return (item.created_at, item.seq)


def _user_view(utterance: Utterance) -> ConversationMessage:
    return ConversationMessage(
        id=utterance.id,
        role="user",
        text=utterance.text,
        created_at=utterance.created_at,
        status=utterance.status,
        seq=utterance.seq,
    )


def _assistant_view(message: AssistantMessage) -> ConversationMessage:
    return ConversationMessage(
        id=message.id,
        role="assistant",
        text=message.text,
        created_at=message.created_at,
        seq=message.seq,
    )
