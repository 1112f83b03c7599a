import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Final

from voicegate.core.config import get_settings
from voicegate.core.trace import get_trace_id

settings = get_settings()
LOG_DIR: Final[Path] = Path(settings.log_dir)
LOG_ROTATE_MB: Final[int] = settings.log_rotate_mb
LOG_BACKUP_COUNT: Final[int] = settings.log_retention_days

CONSOLE_FORMAT: Final[str] = "[%(name)s] %(message)s"


class JsonFormatter(logging.Formatter):
    """Formateur qui serialise les entrees en JSON (une ligne par entree)."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        log_record = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "category": record.name,
            "message": record.getMessage(),
            "trace_id": get_trace_id() or None,
        }
        if record.exc_info:
            log_record["exc"] = self.formatException(record.exc_info)
        return json.dumps(log_record, ensure_ascii=False)


_CONSOLE = logging.StreamHandler(sys.stderr)
_CONSOLE.setFormatter(logging.Formatter(CONSOLE_FORMAT))
_LOGGERS: dict[str, logging.Logger] = {}
_debug_enabled = settings.debug


def _build_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(f"voicegate.{name}")
    if logger.handlers:  # eviter doublons
        return logger

    LOG_DIR.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        LOG_DIR / f"{name}.jsonl",
        maxBytes=LOG_ROTATE_MB * 1024 * 1024,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
        delay=True,
    )
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    _apply_debug(logger)
    return logger


def _apply_debug(logger: logging.Logger) -> None:
    if _debug_enabled:
        logger.setLevel(logging.DEBUG)
        if _CONSOLE not in logger.handlers:
            logger.addHandler(_CONSOLE)
    else:
        logger.setLevel(logging.INFO)
        if _CONSOLE in logger.handlers:
            logger.removeHandler(_CONSOLE)


def set_debug(enabled: bool) -> None:
    """Active la trace detaillee sur stderr (option --debug de la CLI)."""
    global _debug_enabled
    _debug_enabled = enabled
    for logger in _LOGGERS.values():
        _apply_debug(logger)


def get_logger(name: str) -> logging.Logger:
    """Retourne un logger existant ou le cree si necessaire."""
    if name not in _LOGGERS:
        _LOGGERS[name] = _build_logger(name)
    return _LOGGERS[name]
