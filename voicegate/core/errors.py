from __future__ import annotations

from typing import Any, Dict

from fastapi import HTTPException


class VoiceGateError(Exception):
    """Erreur metier avec un code stable expose tel quel aux clients."""

    code = "VG_5000"
    status_code = 500

    def __init__(self, message: str, *, details: Any | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(VoiceGateError):
    """Entree rejetee a la frontiere du store (texte vide...)."""

    code = "VG_4000"
    status_code = 400


class PreconditionError(VoiceGateError):
    """Operation refusee car les preferences vocales ne l'autorisent pas."""

    code = "VG_4001"
    status_code = 400


class InvalidTransitionError(VoiceGateError):
    code = "VG_4090"
    status_code = 409


class InternalError(VoiceGateError):
    """Echec d'un collaborateur local (commande de synthese vocale...)."""

    code = "VG_5000"
    status_code = 500


TEXT_REQUIRED = "Text is required"
VOICE_INPUT_INACTIVE_DEQUEUE = (
    "Voice input is not active. Cannot dequeue utterances when voice input is disabled."
)
VOICE_INPUT_INACTIVE_WAIT = (
    "Voice input is not active. Cannot wait for utterances when voice input is disabled."
)
VOICE_RESPONSES_DISABLED = "Voice responses are disabled"


def error_response(code: str, message: str, *, details: Any | None = None, trace_id: str | None = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "error": {
            "code": code,
            "message": message,
        }
    }
    if details is not None:
        payload["error"]["details"] = details
    if trace_id is not None:
        payload["error"]["trace_id"] = trace_id
    return payload


def http_error(exc: VoiceGateError, *, trace_id: str | None = None) -> HTTPException:
    """Convertit une erreur metier en HTTPException FastAPI."""
    return HTTPException(
        status_code=exc.status_code,
        detail=error_response(exc.code, exc.message, details=exc.details, trace_id=trace_id),
    )
