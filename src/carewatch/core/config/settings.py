"""Application settings loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """CareWatch server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Loopback by default: caregiver identity is passed in by the caller and
    # there is no authentication layer in front of the tools.
    carewatch_host: str = "127.0.0.1"
    carewatch_port: int = 8001
    carewatch_log_level: str = "info"
    carewatch_allow_insecure_bind: bool = False

    # Storage
    db_path: str = "~/.carewatch/care.db"

    # Encryption (Fernet key for transcripts and clinical profiles)
    encryption_key: str = ""

    # Interaction ledger
    default_interaction_limit: int = 50
    max_interaction_limit: int = 500
    interaction_page_size: int = 100

    # Aggregation
    default_series_days: int = 30
    max_series_days: int = 3650

    # Concern monitor (mood alert thresholds)
    concern_window: int = 5
    concern_mood_threshold: float = 4.0
    concern_sentiment_threshold: float = -0.3


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
