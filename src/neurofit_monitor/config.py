"""Centralised application settings loaded from environment / .env file."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


def _resolve_data_dir() -> Path:
    """Return (and create) the directory that holds the SQLite file and models."""
    override = os.getenv("NEUROFIT_DATA_DIR")
    d = Path(override) if override else _PROJECT_ROOT / "data"
    d.mkdir(parents=True, exist_ok=True)
    return d


_DATA_DIR = _resolve_data_dir()
_DEFAULT_DB_URL = f"sqlite+aiosqlite:///{_DATA_DIR / 'neurofit.db'}"


class Settings(BaseSettings):
    """All runtime configuration for the NeuroFit monitoring core.

    Values are read from environment variables first, then from a *.env* file
    located at the project root.  Every variable lives in the flat
    ``NEUROFIT_`` namespace (stripped automatically by *pydantic-settings*).
    """

    model_config = SettingsConfigDict(
        env_prefix="NEUROFIT_",
        env_file=str(_PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        protected_namespaces=(),
    )

    # ── Database ──────────────────────────────────────────────
    database_url: str = _DEFAULT_DB_URL

    # ── API server ────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # ── Mood classifier ───────────────────────────────────────
    model_id: str = "mood-classifier"
    model_dir: str = str(_DATA_DIR / "models")
    model_bootstrap_on_start: bool = True
    model_synthetic_samples: int = 1000
    model_epochs: int = 50
    model_batch_size: int = 32
    model_learning_rate: float = 0.001
    model_retrain_every: int = 50  # accepted corrections between retrains
    model_min_training_samples: int = 100
    model_random_seed: int | None = None
    history_size: int = 100  # most-recent classifications kept in memory

    # ── Emergency escalation ──────────────────────────────────
    threshold_profile: Literal["high", "critical", "extreme"] = "high"
    alert_cooldown_seconds: float = 300.0  # 5 min between dispatched alerts
    dispatch_timeout_seconds: float = 10.0
    monitoring_enabled: bool = True

    # ── Emergency contact ─────────────────────────────────────
    emergency_contact_name: str = ""
    emergency_contact_phone: str = ""
    emergency_contact_endpoint: str = ""
    user_display_name: str = "Unknown"

    # ── Notifications ─────────────────────────────────────────
    webhook_url: str = ""


@lru_cache
def get_settings() -> Settings:
    """Return a cached :class:`Settings` singleton."""
    return Settings()
