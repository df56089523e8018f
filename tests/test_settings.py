"""Tests for environment settings and event logging."""
from __future__ import annotations

import json
import logging

import pytest

from pydantic_ai_repo_tools import (
    LoggingEventLog,
    RepoToolset,
    RepoToolsSettings,
    SilentEventLog,
    ToolDeniedError,
    configure_logging,
)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    for key in ("REPO_TOOLS_TARGET_DIR", "REPO_TOOLS_LOG_LEVEL", "REPO_TOOLS_SILENT_EVENTS"):
        monkeypatch.delenv(key, raising=False)
    # Keep a developer's .env out of the way.
    monkeypatch.chdir(tmp_path)


class TestRepoToolsSettings:
    def test_defaults(self):
        settings = RepoToolsSettings()
        assert str(settings.target_dir) == "."
        assert settings.log_level == "info"
        assert settings.silent_events is False

    def test_reads_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("REPO_TOOLS_TARGET_DIR", str(tmp_path))
        monkeypatch.setenv("REPO_TOOLS_LOG_LEVEL", "WARN")
        monkeypatch.setenv("REPO_TOOLS_SILENT_EVENTS", "true")

        settings = RepoToolsSettings()

        assert settings.target_dir == tmp_path
        assert settings.log_level == "warn"
        assert settings.silent_events is True

    @pytest.mark.parametrize("value", ["verbose", "", "  "])
    def test_unknown_log_level_falls_back_to_info(self, monkeypatch, value):
        monkeypatch.setenv("REPO_TOOLS_LOG_LEVEL", value)
        assert RepoToolsSettings().log_level == "info"

    def test_blank_target_dir_means_current_directory(self, monkeypatch):
        monkeypatch.setenv("REPO_TOOLS_TARGET_DIR", "   ")
        assert str(RepoToolsSettings().target_dir) == "."

    def test_toolset_from_settings(self, tmp_path):
        (tmp_path / "a.txt").write_text("a", encoding="utf-8")
        settings = RepoToolsSettings(target_dir=tmp_path, silent_events=True)

        toolset = RepoToolset.from_settings(settings)

        assert toolset.root == str(tmp_path)
        assert isinstance(toolset.event_log, SilentEventLog)
        assert toolset.list_files({}).files == ["a.txt"]

    def test_configure_logging_accepts_every_level(self):
        for level in ("trace", "debug", "info", "warn", "error"):
            configure_logging(level)


class TestLoggingEventLog:
    def test_events_are_json_lines(self, tmp_path, caplog):
        (tmp_path / "a.txt").write_text("a", encoding="utf-8")
        toolset = RepoToolset.create_default(tmp_path, event_log=LoggingEventLog())
        caplog.set_level(logging.INFO, logger="pydantic_ai_repo_tools.events")

        toolset.list_files({"max": 5})

        records = [
            json.loads(r.getMessage())
            for r in caplog.records
            if r.name == "pydantic_ai_repo_tools.events"
        ]
        assert [r["type"] for r in records] == ["tool:start", "tool:success"]
        assert records[0]["input"] == {"max": 5}
        assert "ts" in records[0]
        assert records[1]["durationMs"] >= 0
        assert records[1]["outputSummary"] == {"fileCount": 1, "sample": ["a.txt"]}

    def test_errors_are_logged_as_warnings(self, tmp_path, caplog):
        (tmp_path / ".env").write_text("SECRET=1", encoding="utf-8")
        toolset = RepoToolset.create_default(tmp_path, event_log=LoggingEventLog())
        caplog.set_level(logging.INFO, logger="pydantic_ai_repo_tools.events")

        with pytest.raises(ToolDeniedError):
            toolset.read_file({"path": ".env"})

        error_record = caplog.records[-1]
        assert error_record.levelno == logging.WARNING
        payload = json.loads(error_record.getMessage())
        assert payload["type"] == "tool:error"
        assert payload["error"]["_tag"] == "ToolDeniedError"
        assert payload["error"]["path"] == ".env"
