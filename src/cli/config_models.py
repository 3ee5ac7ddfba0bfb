"""Pydantic configuration models for moodsync."""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from shared_types import ResolutionPolicy


class PathsConfig(BaseModel):
    """File paths configuration."""

    data_db: Path = Path("~/moodsync/moodsync.db")
    remote_db: Path = Path("~/moodsync/remote.db")

    @model_validator(mode="after")
    def expand_paths(self):
        """Expand ~ in all paths."""
        self.data_db = self.data_db.expanduser()
        self.remote_db = self.remote_db.expanduser()
        return self


class RemoteConfig(BaseModel):
    """History API endpoint."""

    base_url: str = "http://localhost:8000"
    timeout_seconds: float = 10.0
    pull_limit: int = 500
    api_token: Optional[str] = None

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be an http(s) URL, got {v}")
        return v.rstrip("/")

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {v}")
        return v


class SyncConfig(BaseModel):
    """Sync scheduling. interval_seconds <= 0 disables the periodic timer."""

    interval_seconds: float = 60
    visibility_delay_seconds: float = 3.0
    push_on_step: bool = True
    run_on_start: bool = True
    default_policy: ResolutionPolicy = ResolutionPolicy.PREFER_REMOTE


VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    json_mode: bool = Field(default=False, alias="json")

    model_config = {"populate_by_name": True}

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v_upper = v.upper()
        if v_upper not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Must be one of {VALID_LOG_LEVELS}")
        return v_upper


class AppConfig(BaseModel):
    """Main configuration model."""

    paths: PathsConfig = Field(default_factory=PathsConfig)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def expand_env_vars(self):
        """Expand ${VAR} patterns in the API token."""
        token = self.remote.api_token
        if token and token.startswith("${") and token.endswith("}"):
            self.remote.api_token = os.getenv(token[2:-1], "")
        return self

    @classmethod
    def from_dict(cls, data: dict) -> "AppConfig":
        return cls.model_validate(data)

    def to_dict(self) -> dict:
        return self.model_dump(mode="python")
