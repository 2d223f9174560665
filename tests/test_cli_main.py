"""Tests for the ``devtracker`` command-line interface.

Covers: stats JSON output, summary line, export formats and failures,
sync without a token or data, clear confirmation, tracking toggle,
config show/set validation.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from conftest import make_event
from devtracker.cli.main import app
from devtracker.core.config import TrackerConfig
from devtracker.core.time import now_ms
from devtracker.core.types import ActivityType
from devtracker.service import open_store

runner = CliRunner()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for name in ("DEVTRACKER_API_URL", "DEVTRACKER_ENABLE_SYNC", "DEVTRACKER_API_TOKEN"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture()
def seeded(data_dir: Path) -> Path:
    store = open_store(data_dir)
    now = now_ms()
    store.append(make_event(ActivityType.FILE_EDIT, now - 60_000, {"fileName": "a.py", "charactersAdded": 3}))
    store.append(make_event(ActivityType.FILE_EDIT, now - 30_000, {"fileName": "a.py", "charactersAdded": 1}))
    return data_dir


def _invoke(*args: str):
    return runner.invoke(app, list(args))


class TestStats:
    def test_prints_camel_case_json(self, seeded: Path) -> None:
        result = _invoke("stats", "--days", "7", "--data-dir", str(seeded))
        assert result.exit_code == 0, result.output
        doc = json.loads(result.output)
        assert doc["totalEvents"] == 2
        assert doc["filesEdited"] == 2
        assert doc["mostEditedFiles"][0]["file"] == "a.py"
        assert len(doc["dailyActivity"]) == 7

    def test_empty_data_dir(self, data_dir: Path) -> None:
        result = _invoke("stats", "--data-dir", str(data_dir))
        assert result.exit_code == 0
        assert json.loads(result.output)["totalEvents"] == 0

    def test_rejects_zero_days(self, data_dir: Path) -> None:
        result = _invoke("stats", "--days", "0", "--data-dir", str(data_dir))
        assert result.exit_code != 0


class TestSummary:
    def test_summary_line(self, seeded: Path) -> None:
        result = _invoke("summary", "--data-dir", str(seeded))
        assert result.exit_code == 0
        assert result.output.startswith("Today's Summary:")
        assert "2 files edited" in result.output

    def test_no_activity(self, data_dir: Path) -> None:
        result = _invoke("summary", "--data-dir", str(data_dir))
        assert "No activity recorded today." in result.output

    def test_notifications_disabled(self, seeded: Path) -> None:
        TrackerConfig(seeded).update({"enableNotifications": False})
        result = _invoke("summary", "--data-dir", str(seeded))
        assert "Notifications are disabled." in result.output


class TestExport:
    @pytest.mark.parametrize("fmt", ["json", "csv", "parquet"])
    def test_formats(self, seeded: Path, tmp_path: Path, fmt: str) -> None:
        out = tmp_path / f"export.{fmt}"
        result = _invoke("export", "--out", str(out), "--format", fmt, "--data-dir", str(seeded))
        assert result.exit_code == 0, result.output
        assert out.exists()
        assert f"Exported 2 events to {out}" in result.output

    def test_default_format_from_config(self, seeded: Path, tmp_path: Path) -> None:
        TrackerConfig(seeded).update({"exportFormat": "csv"})
        out = tmp_path / "export.out"
        _invoke("export", "--out", str(out), "--data-dir", str(seeded))
        assert out.read_text().startswith("timestamp,type,fileName")

    def test_unsupported_format(self, seeded: Path, tmp_path: Path) -> None:
        result = _invoke("export", "--out", str(tmp_path / "x"), "--format", "xml", "--data-dir", str(seeded))
        assert result.exit_code == 1
        assert "Failed to export data" in result.output


class TestSync:
    def test_without_token_fails_and_enables_sync(self, data_dir: Path) -> None:
        result = _invoke("sync", "--data-dir", str(data_dir))
        assert result.exit_code == 1
        assert "Sync failed: Not authenticated" in result.output
        assert TrackerConfig(data_dir).enable_sync is True

    def test_nothing_to_send(self, data_dir: Path) -> None:
        result = _invoke("sync", "--token", "secret", "--data-dir", str(data_dir))
        assert result.exit_code == 0, result.output
        assert "No new data to sync" in result.output


class TestClearAndToggle:
    def test_clear_requires_confirmation(self, seeded: Path) -> None:
        result = _invoke("clear", "--data-dir", str(seeded))
        assert result.exit_code == 1
        assert len(open_store(seeded)) == 2

    def test_clear(self, seeded: Path) -> None:
        result = _invoke("clear", "--yes", "--data-dir", str(seeded))
        assert result.exit_code == 0
        assert "Activity data cleared" in result.output
        assert len(open_store(seeded)) == 0

    def test_toggle(self, data_dir: Path) -> None:
        assert "Activity tracking disabled" in _invoke("toggle", "--data-dir", str(data_dir)).output
        assert TrackerConfig(data_dir).enable_tracking is False
        assert "Activity tracking enabled" in _invoke("toggle", "--data-dir", str(data_dir)).output


class TestConfig:
    def test_show_defaults(self, data_dir: Path) -> None:
        result = _invoke("config", "show", "--data-dir", str(data_dir))
        doc = json.loads(result.output)
        assert doc["enableTracking"] is True
        assert doc["dataRetentionDays"] == 30
        assert doc["apiUrl"] == "http://localhost:3000/api"

    def test_set_decodes_json_literals(self, data_dir: Path) -> None:
        result = _invoke("config", "set", "dataRetentionDays", "14", "--data-dir", str(data_dir))
        assert result.exit_code == 0, result.output
        assert "Set dataRetentionDays = 14" in result.output
        assert TrackerConfig(data_dir).data_retention_days == 14

    def test_set_plain_string(self, data_dir: Path) -> None:
        result = _invoke("config", "set", "apiUrl", "https://example.test/api", "--data-dir", str(data_dir))
        assert result.exit_code == 0
        assert TrackerConfig(data_dir).api_url == "https://example.test/api"

    @pytest.mark.parametrize(
        ("key", "value"),
        [("dataRetentionDays", "0"), ("noSuchKey", "1"), ("exportFormat", "xml")],
    )
    def test_set_rejects_invalid(self, data_dir: Path, key: str, value: str) -> None:
        result = _invoke("config", "set", key, value, "--data-dir", str(data_dir))
        assert result.exit_code == 1
        assert "Invalid setting" in result.output
