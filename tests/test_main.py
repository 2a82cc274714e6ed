"""Tests for the process entry point."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from imap_attachments.__main__ import main


@pytest.fixture
def env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    output = tmp_path / "downloads"
    monkeypatch.setenv("IMAP_SERVER", "imap.test.com")
    monkeypatch.setenv("EMAIL_USERNAME", "testuser")
    monkeypatch.setenv("EMAIL_PASSWORD", "testpass")
    monkeypatch.setenv("OUTPUT_DIR", str(output))
    monkeypatch.setenv("LOG_JSON", "true")
    return output


@pytest.fixture(autouse=True)
def _no_logging_setup():
    with patch("imap_attachments.__main__.setup_logging") as mock_setup:
        yield mock_setup


class TestMain:
    def test_missing_server_fails(self, env: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("IMAP_SERVER")
        with patch("imap_attachments.__main__.PipelineDriver") as MockDriver:
            assert main() == 1
            MockDriver.assert_not_called()

    def test_bad_command_template_fails(self, env: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("COMMAND", "echo no placeholder")
        assert main() == 1

    def test_output_dir_not_creatable(self, env: Path, monkeypatch: pytest.MonkeyPatch):
        blocker = env.parent / "file"
        blocker.write_text("not a directory")
        monkeypatch.setenv("OUTPUT_DIR", str(blocker / "sub"))
        assert main() == 1

    def test_runs_driver_and_returns_its_status(self, env: Path):
        driver = MagicMock()
        driver.run = AsyncMock(return_value=0)
        with patch("imap_attachments.__main__.PipelineDriver", return_value=driver) as MockDriver:
            assert main() == 0

        settings = MockDriver.call_args.args[0]
        assert settings.imap.server == "imap.test.com"
        assert settings.output_dir == env
        assert env.is_dir()
        assert (env.stat().st_mode & 0o777) == 0o700
        driver.run.assert_awaited_once()

    def test_driver_failure_propagates(self, env: Path):
        driver = MagicMock()
        driver.run = AsyncMock(return_value=1)
        with patch("imap_attachments.__main__.PipelineDriver", return_value=driver):
            assert main() == 1
