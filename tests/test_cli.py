"""Tests for the calsched CLI."""

from __future__ import annotations

from unittest.mock import patch

from typer.testing import CliRunner

from calsched.cli.commands import app
from calsched.config import Settings

runner = CliRunner()


def _settings(**kwargs) -> Settings:
    params = {"calsched_log_level": "WARNING", "provider_access_token": "t", "_env_file": None}
    params.update(kwargs)
    return Settings(**params)


class TestPreview:
    """Tests for the preview command."""

    def test_lists_occurrences(self) -> None:
        with patch("calsched.bootstrap.get_settings", return_value=_settings()), \
                patch("calsched.cli.commands.setup_logging"):
            result = runner.invoke(app, [
                "preview",
                "--title", "Standup",
                "--start", "2024-03-09T09:00:00-08:00",
                "--end", "2024-03-09T09:15:00-08:00",
                "--timezone", "America/Los_Angeles",
                "--frequency", "daily",
                "--until", "2024-03-12T09:00:00-07:00",
            ])
        assert result.exit_code == 0, result.output
        assert "FREQ=DAILY;INTERVAL=1;UNTIL=20240312T160000Z" in result.output
        assert "2024-03-10T09:00:00-07:00" in result.output

    def test_invalid_frequency_exits_2(self) -> None:
        with patch("calsched.bootstrap.get_settings", return_value=_settings()), \
                patch("calsched.cli.commands.setup_logging"):
            result = runner.invoke(app, [
                "preview",
                "--title", "Standup",
                "--start", "2024-03-09T09:00:00-08:00",
                "--end", "2024-03-09T09:15:00-08:00",
                "--frequency", "hourly",
                "--count", "3",
            ])
        assert result.exit_code == 2
        assert "invalid_frequency" in result.output


class TestDoctor:
    """Tests for the doctor command."""

    def test_missing_token(self) -> None:
        with patch("calsched.cli.commands.get_settings", return_value=_settings(provider_access_token="")):
            result = runner.invoke(app, ["doctor"])
        assert result.exit_code == 1
        assert "PROVIDER_ACCESS_TOKEN" in result.output

    def test_configured(self) -> None:
        with patch("calsched.cli.commands.get_settings", return_value=_settings()):
            result = runner.invoke(app, ["doctor"])
        assert result.exit_code == 0
        assert "Access token configured" in result.output
