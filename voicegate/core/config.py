"""Configuration unifiee du serveur voicegate."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Parametres globaux du serveur."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow",
    )

    # Serveur HTTP
    host: str = "127.0.0.1"
    port: int = 5111
    cors_origins: list[str] = ["*"]

    # Livraison des utterances
    auto_deliver_voice_input: bool = True
    wait_timeout_seconds: float = 60.0
    wait_poll_interval_ms: int = 100
    auto_wait_retries: int = 0

    # Sons et synthese systeme
    notification_sound_enabled: bool = True
    notification_sound_command: list[str] = ["afplay", "/System/Library/Sounds/Funk.aiff"]
    system_tts_command: list[str] = ["say"]
    system_tts_default_rate: int = 150
    speech_command_timeout_sec: float = 30.0

    # Flux SSE
    sse_heartbeat_sec: float = 15.0
    observer_queue_size: int = 100

    # UI navigateur
    ui_dir: str | None = None
    auto_open_browser: bool = False
    auto_open_browser_delay_sec: float = 3.0

    # Logs
    debug: bool = False
    log_dir: str = "logs"
    log_rotate_mb: int = 5
    log_retention_days: int = 7

    # Observabilite
    enable_metrics: bool = False

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls.json_config_settings_source,
            file_secret_settings,
        )

    @staticmethod
    def json_config_settings_source() -> dict[str, object]:
        """Charge config.json a la racine si present."""
        config_path = Path(__file__).resolve().parents[2] / "config.json"
        if config_path.is_file():
            try:
                return json.loads(config_path.read_text())
            except ValueError:
                return {}
        return {}

    @property
    def wait_poll_interval(self) -> float:
        return self.wait_poll_interval_ms / 1000.0


@lru_cache()
def get_settings() -> Settings:
    """Retourne une instance de Settings mise en cache."""
    return Settings()
