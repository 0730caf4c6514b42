"""Centralized application configuration.

Values are loaded from environment variables (and a local ``.env`` file)
with sensible defaults.

Usage:
    from dataops.config import get_settings
    print(get_settings().engine.max_history_length)
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _get_env(key: str, default: str = "") -> str:
    """Get environment variable with default."""
    return os.getenv(key, default)


def _get_env_int(key: str, default: int) -> int:
    """Get integer environment variable with default."""
    return int(os.getenv(key, str(default)))


def _get_env_bool(key: str, default: bool) -> bool:
    """Get boolean environment variable with default."""
    return os.getenv(key, str(default)).lower() in ("true", "1", "yes")


def _get_env_list(key: str, default: str, separator: str = ",") -> List[str]:
    """Get list environment variable with default."""
    value = os.getenv(key, default)
    return [item.strip() for item in value.split(separator) if item.strip()]


@dataclass(frozen=True)
class EngineSettings:
    """Data operations engine configuration."""
    max_history_length: int = field(default_factory=lambda: _get_env_int("DATAOPS_MAX_HISTORY", 50))
    type_sample_size: int = field(default_factory=lambda: _get_env_int("DATAOPS_TYPE_SAMPLE_SIZE", 100))


@dataclass(frozen=True)
class ApiSettings:
    """HTTP layer configuration."""
    allowed_origins: List[str] = field(default_factory=lambda: _get_env_list(
        "ALLOWED_ORIGINS",
        "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000",
    ))
    max_upload_mb: int = field(default_factory=lambda: _get_env_int("MAX_UPLOAD_MB", 25))
    preview_rows: int = field(default_factory=lambda: _get_env_int("DATAOPS_PREVIEW_ROWS", 100))
    debug: bool = field(default_factory=lambda: _get_env_bool("DEBUG", False))

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024


@dataclass(frozen=True)
class LoggingSettings:
    level: str = field(default_factory=lambda: _get_env("LOG_LEVEL", "INFO"))


@dataclass(frozen=True)
class Settings:
    """Main settings container."""
    engine: EngineSettings = field(default_factory=EngineSettings)
    api: ApiSettings = field(default_factory=ApiSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
