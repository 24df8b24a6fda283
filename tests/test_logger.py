"""
Tests for BootstrapLogger - structured bootstrap event logging.
"""

import json
import logging
from io import StringIO

import pytest

from snesdev.logger import EVENTS_LOGGER_NAME, BootstrapLogger, configure_logging


@pytest.fixture
def captured_logs():
    """Capture event log output for testing."""
    output = StringIO()
    events_logger = logging.getLogger(EVENTS_LOGGER_NAME)
    handler = logging.StreamHandler(output)
    handler.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
    events_logger.addHandler(handler)
    events_logger.setLevel(logging.INFO)

    yield output

    events_logger.removeHandler(handler)
    events_logger.setLevel(logging.NOTSET)


@pytest.fixture
def events():
    return BootstrapLogger(
        project="test-game",
        install_prefix="/opt/pvsneslib",
        service_name="test-service",
        json_output=True,
    )


def parse_log_line(captured_logs) -> dict:
    """Parse the last JSON log line (after the level prefix)."""
    lines = captured_logs.getvalue().strip().split("\n")
    _, _, payload = lines[-1].partition(" ")
    return json.loads(payload)


class TestJsonEvents:
    def test_run_started(self, events, captured_logs):
        events.run_started(total_steps=6, force_reinstall=False)

        log = parse_log_line(captured_logs)
        assert log["event"] == "run.started"
        assert log["service"] == "test-service"
        assert log["project"] == "test-game"
        assert log["install_prefix"] == "/opt/pvsneslib"
        assert log["total_steps"] == 6
        assert log["force_reinstall"] is False
        assert log["level"] == "info"
        assert "timestamp" in log

    def test_run_resumed_omits_missing_timestamp(self, events, captured_logs):
        events.run_resumed(completed_steps=2, last_updated=None)

        log = parse_log_line(captured_logs)
        assert log["event"] == "run.resumed"
        assert log["completed_steps"] == 2
        assert "last_updated" not in log

    def test_step_completed_rounds_duration(self, events, captured_logs):
        events.step_completed("install_sdk", "Download and install PVSnesLib SDK", 1.23456)

        log = parse_log_line(captured_logs)
        assert log["step"] == "install_sdk"
        assert log["duration_seconds"] == 1.235

    def test_required_failure_is_error(self, events, captured_logs):
        events.step_failed("install_sdk", "Install SDK", "checksum mismatch", required=True)

        assert captured_logs.getvalue().startswith("ERROR")
        log = parse_log_line(captured_logs)
        assert log["event"] == "step.failed"
        assert log["error"] == "checksum mismatch"
        assert log["required"] is True

    def test_optional_failure_is_warning(self, events, captured_logs):
        events.step_failed("build_config", "Setup build", "no vscode", required=False)

        assert captured_logs.getvalue().startswith("WARNING")
        log = parse_log_line(captured_logs)
        assert "continuing despite optional step failure" in log["message"]

    def test_step_stale_is_warning(self, events, captured_logs):
        events.step_stale("install_sdk", "Install SDK")

        assert captured_logs.getvalue().startswith("WARNING")
        assert parse_log_line(captured_logs)["event"] == "step.stale"

    def test_run_finished_aborted_is_error(self, events, captured_logs):
        events.run_finished("aborted", 2, 6, 3.0)

        assert captured_logs.getvalue().startswith("ERROR")
        log = parse_log_line(captured_logs)
        assert log["status"] == "aborted"
        assert log["completed_steps"] == 2
        assert log["total_steps"] == 6


class TestTextEvents:
    def test_text_message(self, captured_logs):
        events = BootstrapLogger("test-game", "/opt/pvsneslib", json_output=False)

        events.step_skipped("validate_host", "Validate system prerequisites", "already completed")

        assert captured_logs.getvalue().strip() == (
            "INFO Skipping Validate system prerequisites (already completed)"
        )

    def test_disabled_level_emits_nothing(self, events, captured_logs):
        logging.getLogger(EVENTS_LOGGER_NAME).setLevel(logging.ERROR)

        events.step_started("validate_host", "Validate system prerequisites")

        assert captured_logs.getvalue() == ""


class TestConfigureLogging:
    def test_sets_level_and_format(self):
        configure_logging("debug", "json")

        root = logging.getLogger("snesdev")
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert BootstrapLogger.json_output is True
        assert BootstrapLogger("p", "/x").json_output is True

    def test_reconfigure_replaces_handler(self):
        configure_logging("info", "text")
        configure_logging("warning", "text")

        root = logging.getLogger("snesdev")
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert BootstrapLogger.json_output is False
