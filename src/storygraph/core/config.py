"""Configuration via environment variables, config.json, and .env files."""

from __future__ import annotations

import json
import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from storygraph.core.constants import (
    CONFIG_FILE_PATH,
    DEFAULT_BUCKET,
    DEFAULT_CORRELATION_STRIDE,
    DEFAULT_CORRELATION_WINDOW,
    DEFAULT_DB_PATH,
    DEFAULT_GCP_LOCATION,
    DEFAULT_GCP_PROJECT,
    DEFAULT_INFERENCE_MODEL,
    DEFAULT_LANGUAGE_CODE,
    DEFAULT_POLL_INTERVAL_SEC,
    DEFAULT_SCAN_SECONDS,
    DEFAULT_SEQUENCE_NAME,
    DEFAULT_TIMEBASE,
)

# Keys that may be persisted in config.json
FILE_KEYS = (
    "access_token",
    "gcp_project",
    "gcp_location",
    "bucket",
    "inference_model",
    "language_code",
    "media_root",
    "sequence_name",
)


def _load_config_file() -> dict:
    """Read ~/.config/storygraph/config.json if it exists, return as dict."""
    if not CONFIG_FILE_PATH.exists():
        return {}
    try:
        return json.loads(CONFIG_FILE_PATH.read_text())
    except Exception:
        return {}


def save_config(data: dict) -> Path:
    """Write config dict to ~/.config/storygraph/config.json. Returns the path."""
    CONFIG_FILE_PATH.parent.mkdir(parents=True, exist_ok=True)
    CONFIG_FILE_PATH.write_text(json.dumps(data, indent=2) + "\n")
    return CONFIG_FILE_PATH


class StoryGraphConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Google Cloud
    access_token: str = Field(default="")
    gcp_project: str = Field(default=DEFAULT_GCP_PROJECT)
    gcp_location: str = Field(default=DEFAULT_GCP_LOCATION)
    bucket: str = Field(default=DEFAULT_BUCKET)
    inference_model: str = Field(default=DEFAULT_INFERENCE_MODEL)
    language_code: str = Field(default=DEFAULT_LANGUAGE_CODE)

    # Local media mirror (e.g. a Google Drive desktop mount)
    media_root: str = Field(default="")

    # Database
    db_path: Path = Field(default=DEFAULT_DB_PATH)

    # Polling
    poll_interval_sec: float = Field(default=DEFAULT_POLL_INTERVAL_SEC)

    # Waveform sync
    correlation_window: int = Field(default=DEFAULT_CORRELATION_WINDOW)
    correlation_stride: int = Field(default=DEFAULT_CORRELATION_STRIDE)
    scan_seconds: int = Field(default=DEFAULT_SCAN_SECONDS)

    # Timeline
    fallback_timebase: int = Field(default=DEFAULT_TIMEBASE)
    sequence_name: str = Field(default=DEFAULT_SEQUENCE_NAME)


def get_config(db_path: Path | None = None) -> StoryGraphConfig:
    """Create config with priority: env vars > config.json > defaults."""
    file_data = _load_config_file()

    # pydantic treats __init__ kwargs as highest priority, so skip keys
    # that have an env var set
    init_kwargs: dict = {}
    for key in FILE_KEYS:
        env_name = f"SG_{key.upper()}"
        if key in file_data and env_name not in os.environ:
            init_kwargs[key] = file_data[key]

    config = StoryGraphConfig(**init_kwargs)

    if db_path is not None:
        config.db_path = db_path
    return config
