"""Tests for the `simulive` CLI commands."""

from __future__ import annotations

from click.testing import CliRunner

import simulive
from simulive.cli.main import cli
from simulive.logging import configure_logging

START = "2025-03-14T18:00:00Z"


class TestPhaseCommand:
    def test_scheduled_before_start(self) -> None:
        result = CliRunner().invoke(
            cli, ["phase", "--start", START, "--now", "2025-03-14T17:00:00Z"]
        )
        assert result.exit_code == 0
        assert result.output.strip() == "scheduled"

    def test_live_flag_wins(self) -> None:
        result = CliRunner().invoke(
            cli, ["phase", "--start", START, "--now", "2025-03-14T17:00:00Z", "--live"]
        )
        assert result.exit_code == 0
        assert result.output.strip() == "live"

    def test_unflagged_past_start_is_ended(self) -> None:
        result = CliRunner().invoke(
            cli, ["phase", "--start", START, "--now", "2025-03-14T18:30:00Z"]
        )
        assert result.exit_code == 0
        assert result.output.strip() == "ended"

    def test_schedule_policy_inside_window_is_live(self) -> None:
        result = CliRunner().invoke(
            cli,
            [
                "phase",
                "--start",
                START,
                "--end",
                "2025-03-14T19:00:00Z",
                "--now",
                "2025-03-14T18:30:00Z",
                "--policy",
                "schedule",
            ],
        )
        assert result.exit_code == 0
        assert result.output.strip() == "live"

    def test_invalid_instant_is_rejected(self) -> None:
        result = CliRunner().invoke(cli, ["phase", "--start", "tomorrow-ish"])
        assert result.exit_code != 0
        assert "not an ISO-8601 instant" in result.output


class TestCountdownCommand:
    def test_hours_minutes_seconds(self) -> None:
        result = CliRunner().invoke(
            cli, ["countdown", "--start", START, "--now", "2025-03-14T16:44:55Z"]
        )
        assert result.exit_code == 0
        assert result.output.strip() == "1h 15m 5s"

    def test_days_prefix(self) -> None:
        result = CliRunner().invoke(
            cli, ["countdown", "--start", START, "--now", "2025-03-12T17:00:00Z"]
        )
        assert result.exit_code == 0
        assert result.output.strip() == "2d 1h 0s"

    def test_started(self) -> None:
        result = CliRunner().invoke(cli, ["countdown", "--start", START, "--now", START])
        assert result.exit_code == 0
        assert result.output.strip() == "Starting now"


class TestMainGroup:
    def test_version(self) -> None:
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert simulive.__version__ in result.output

    def test_commands_registered(self) -> None:
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("phase", "countdown", "simulate"):
            assert command in result.output


class TestSimulateCommand:
    def test_short_run_reports_live_session(self) -> None:
        result = CliRunner().invoke(
            cli,
            [
                "simulate",
                "--duration",
                "0.4",
                "--latency-ms",
                "0",
                "--correction-interval",
                "0.05",
                "--log-level",
                "ERROR",
            ],
        )
        # The run reconfigured logging onto the runner's captured stream.
        configure_logging(force=True)
        assert result.exit_code == 0, result.output
        assert "phase:            live" in result.output
        assert "feed records:     2" in result.output
