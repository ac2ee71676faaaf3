from __future__ import annotations

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from tasktrail_mcp.config import DEFAULT_WATCH_EXTENSIONS, TasktrailSettings, get_settings


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    settings = TasktrailSettings()

    assert settings.dashboard_url == "http://localhost:3000"
    assert settings.watch_extensions == DEFAULT_WATCH_EXTENSIONS
    assert settings.commit_poll_interval == 300.0
    assert settings.workspace_poll_interval == 600.0
    assert settings.sync_interval == 300.0
    assert settings.file_throttle_seconds == 30.0
    assert settings.pattern_paths == ()


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("TASKTRAIL_PROJECT_ROOT", str(tmp_path))
    monkeypatch.setenv("TASKTRAIL_DASHBOARD_URL", "https://dash.example.com/ ")
    monkeypatch.setenv("TASKTRAIL_WATCH_EXTENSIONS", "ts, .PY,,md")
    monkeypatch.setenv("TASKTRAIL_PATTERN_PATHS", os.pathsep.join(["patterns", "more"]))
    monkeypatch.setenv("TASKTRAIL_LOG_LEVEL", "debug")

    settings = get_settings()

    assert settings.project_root == tmp_path.resolve()
    assert settings.dashboard_url == "https://dash.example.com"
    assert settings.watch_extensions == (".ts", ".py", ".md")
    assert settings.pattern_paths == ((tmp_path / "patterns").resolve(), (tmp_path / "more").resolve())
    assert settings.log_level == "DEBUG"


def test_rejects_unknown_log_level(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TASKTRAIL_LOG_LEVEL", "chatty")

    with pytest.raises(ValidationError):
        TasktrailSettings()


@pytest.mark.parametrize(
    "variable",
    ["TASKTRAIL_SYNC_INTERVAL", "TASKTRAIL_COMMIT_POLL_INTERVAL", "TASKTRAIL_GIT_TIMEOUT"],
)
def test_rejects_non_positive_intervals(monkeypatch: pytest.MonkeyPatch, variable: str) -> None:
    monkeypatch.setenv(variable, "0")

    with pytest.raises(ValidationError):
        TasktrailSettings()


def test_zero_throttle_is_allowed(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TASKTRAIL_FILE_THROTTLE_SECONDS", "0")

    assert TasktrailSettings().file_throttle_seconds == 0
