"""Environment settings and logging setup for repository tools."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .sandbox import RepoSandboxConfig

LogLevelName = Literal["trace", "debug", "info", "warn", "error"]

_LOGGING_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class RepoToolsSettings(BaseSettings):
    """Settings read from ``REPO_TOOLS_*`` environment variables or ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="REPO_TOOLS_", env_file=".env", extra="ignore"
    )

    target_dir: Path = Field(default=Path("."), description="Root the tools are confined to")
    log_level: LogLevelName = "info"
    silent_events: bool = Field(
        default=False, description="Drop tool events instead of logging them"
    )

    @field_validator("target_dir", mode="before")
    @classmethod
    def _blank_target_dir(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return Path(".")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def _parse_log_level(cls, v: Any) -> str:
        # Unknown levels fall back to info instead of failing startup.
        lower = str(v or "").strip().lower()
        return lower if lower in _LOGGING_LEVELS else "info"

    def to_sandbox_config(self) -> RepoSandboxConfig:
        return RepoSandboxConfig(root=self.target_dir)


def configure_logging(level: LogLevelName = "info") -> None:
    logging.basicConfig(
        level=_LOGGING_LEVELS.get(level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
