"""Configuration management for Tasktrail MCP."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated
import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_WATCH_EXTENSIONS = (
    ".js",
    ".ts",
    ".jsx",
    ".tsx",
    ".py",
    ".java",
    ".cpp",
    ".cs",
    ".md",
    ".json",
    ".yml",
    ".yaml",
)


class TasktrailSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    project_root: Path = Field(default=Path("."), validation_alias="TASKTRAIL_PROJECT_ROOT")
    tasks_path: Path | None = Field(default=None, validation_alias="TASKTRAIL_TASKS_PATH")
    progress_path: Path | None = Field(default=None, validation_alias="TASKTRAIL_PROGRESS_PATH")
    project_config_path: Path | None = Field(
        default=None, validation_alias="TASKTRAIL_PROJECT_CONFIG_PATH"
    )
    project_id: str | None = Field(default=None, validation_alias="TASKTRAIL_PROJECT_ID")
    dashboard_url: str = Field(
        default="http://localhost:3000", validation_alias="TASKTRAIL_DASHBOARD_URL"
    )
    sync_timeout: float = Field(default=10.0, validation_alias="TASKTRAIL_SYNC_TIMEOUT")
    sync_interval: float = Field(default=300.0, validation_alias="TASKTRAIL_SYNC_INTERVAL")
    commit_poll_interval: float = Field(
        default=300.0, validation_alias="TASKTRAIL_COMMIT_POLL_INTERVAL"
    )
    workspace_poll_interval: float = Field(
        default=600.0, validation_alias="TASKTRAIL_WORKSPACE_POLL_INTERVAL"
    )
    file_throttle_seconds: float = Field(
        default=30.0, validation_alias="TASKTRAIL_FILE_THROTTLE_SECONDS"
    )
    watch_extensions: Annotated[tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_WATCH_EXTENSIONS, validation_alias="TASKTRAIL_WATCH_EXTENSIONS"
    )
    pattern_paths: Annotated[tuple[Path, ...], NoDecode] = Field(
        default=(), validation_alias="TASKTRAIL_PATTERN_PATHS"
    )
    git_path: str | None = Field(default=None, validation_alias="TASKTRAIL_GIT_PATH")
    git_timeout: float = Field(default=15.0, validation_alias="TASKTRAIL_GIT_TIMEOUT")
    log_level: str = Field(default="INFO", validation_alias="TASKTRAIL_LOG_LEVEL")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "TASKTRAIL_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("dashboard_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.strip().rstrip("/")

    @field_validator("pattern_paths", mode="before")
    @classmethod
    def _parse_pattern_paths(cls, value):
        if value is None or value == "":
            return ()
        if isinstance(value, (list, tuple)):
            return tuple(Path(str(item)) for item in value)
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(os.pathsep) if part.strip()]
            return tuple(Path(part) for part in parts)
        raise TypeError("TASKTRAIL_PATTERN_PATHS must be a list of paths or a path-separated string")

    @field_validator("watch_extensions", mode="before")
    @classmethod
    def _parse_watch_extensions(cls, value):
        if value is None or value == "":
            return DEFAULT_WATCH_EXTENSIONS
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, (list, tuple)):
            normalized = []
            for item in value:
                item = str(item).strip().lower()
                if not item:
                    continue
                normalized.append(item if item.startswith(".") else f".{item}")
            return tuple(normalized) or DEFAULT_WATCH_EXTENSIONS
        raise TypeError("TASKTRAIL_WATCH_EXTENSIONS must be a list or a comma-separated string")

    @field_validator(
        "sync_timeout",
        "sync_interval",
        "commit_poll_interval",
        "workspace_poll_interval",
        "git_timeout",
    )
    @classmethod
    def _validate_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Intervals and timeouts must be > 0")
        return value

    @field_validator("file_throttle_seconds")
    @classmethod
    def _validate_throttle(cls, value: float) -> float:
        if value < 0:
            raise ValueError("TASKTRAIL_FILE_THROTTLE_SECONDS must be >= 0")
        return value


@lru_cache(maxsize=1)
def get_settings() -> TasktrailSettings:
    """Return cached settings instance."""

    settings = TasktrailSettings()
    settings.project_root = settings.project_root.expanduser().resolve()
    settings.pattern_paths = tuple(path.expanduser().resolve() for path in settings.pattern_paths)
    return settings


__all__ = ["DEFAULT_WATCH_EXTENSIONS", "TasktrailSettings", "get_settings"]
