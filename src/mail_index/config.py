"""Centralized configuration for mail-index using Pydantic Settings."""

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_INDEX_DIR = Path.home() / ".nmail" / "searchindex"


class Settings(BaseSettings):
    """Strictly typed configuration loaded from ``MAIL_INDEX_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="MAIL_INDEX_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Storage
    index_dir: Path = Field(default=DEFAULT_INDEX_DIR, description="Directory holding the persisted index")
    storage_backend: Literal["sqlite", "json"] = Field(
        default="sqlite", description="Document store backend: sqlite (incremental) or json (whole-file)"
    )

    # Ranking
    bm25_k1: float = Field(default=1.2, gt=0.0, description="BM25 term frequency saturation")
    bm25_b: float = Field(default=0.75, ge=0.0, le=1.0, description="BM25 length normalization")

    # Logging / tracing
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=False, description="Emit structured JSON logs")
    tracing_enabled: bool = Field(default=True, description="Wrap commit and search in OpenTelemetry spans")

    @field_validator("index_dir", mode="after")
    @classmethod
    def _expand_index_dir(cls, value: Path) -> Path:
        return value.expanduser()

    @field_validator("log_level", mode="after")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return normalized

    @property
    def index_name(self) -> str:
        """Short label for metrics and logs."""
        return self.index_dir.name or "index"


def get_settings(**overrides) -> Settings:
    """Return settings from the environment with explicit overrides applied."""
    return Settings(**overrides)
