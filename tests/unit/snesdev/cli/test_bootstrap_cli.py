"""Tests for ``snesdev bootstrap``."""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from snesdev.catalog import STEP_CATALOG
from snesdev.cli import main
from snesdev.state import RunKey, StateRepository


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def prefix(tmp_path):
    return tmp_path / "sdk"


@pytest.fixture
def ops(collaborators):
    """Every catalog operation registered and succeeding."""
    for step in STEP_CATALOG:
        collaborators.add(step.operation_ref)
    with patch("snesdev.cli.bootstrap.build_registry", return_value=collaborators.registry):
        yield collaborators


def _bootstrap(runner, prefix, *args):
    return runner.invoke(
        main,
        ["--log-level", "error", "bootstrap", "--install-prefix", str(prefix), *args],
    )


def _params_for(ops, ref):
    return [params for called, params in ops.calls if called == ref][-1]


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

class TestBootstrapRun:
    def test_success_json_report(self, runner, prefix, ops):
        result = _bootstrap(runner, prefix, "-p", "demo", "--format", "json")

        assert result.exit_code == 0, result.output
        report = json.loads(result.output)
        assert report["success"] is True
        assert report["status"] == "succeeded"
        assert report["project_name"] == "demo"
        assert report["completed_count"] == report["total_count"] == len(STEP_CATALOG)
        assert ops.invoked == [step.operation_ref for step in STEP_CATALOG]

    def test_success_text_report(self, runner, prefix, ops):
        result = _bootstrap(runner, prefix)

        assert result.exit_code == 0
        assert "PVSnesLib Bootstrap Report" in result.output
        assert "Bootstrap Complete!" in result.output

    def test_required_failure_exit_code(self, runner, prefix, ops):
        ops.fail("pvsneslib_install_sdk", "HTTP 404")

        result = _bootstrap(runner, prefix)

        assert result.exit_code == 1
        assert "Bootstrap Failed - Troubleshooting Guide" in result.output
        assert "HTTP 404" in result.output
        assert "pvsneslib_validate_install" not in ops.invoked

    def test_resume_after_failure(self, runner, prefix, ops):
        ops.fail("pvsneslib_validate_install", "missing tools")
        assert _bootstrap(runner, prefix).exit_code == 1

        ops.reset_calls()
        ops.succeed("pvsneslib_validate_install")
        result = _bootstrap(runner, prefix, "--resume")

        assert result.exit_code == 0
        assert ops.invoked == [
            "pvsneslib_validate_install",
            "pvsneslib_configure_tools",
            "pvsneslib_build_config",
            "pvsneslib_init",
        ]

    def test_no_starter_project(self, runner, prefix, ops):
        result = _bootstrap(runner, prefix, "--no-starter-project", "--format", "json")

        assert result.exit_code == 0
        assert "pvsneslib_init" not in ops.invoked
        assert json.loads(result.output)["total_count"] == len(STEP_CATALOG) - 1

    def test_options_reach_steps(self, runner, prefix, ops, tmp_path):
        archive = tmp_path / "pvsneslib.tar.gz"

        result = _bootstrap(
            runner, prefix,
            "--sdk-version", "4.2.0",
            "--offline", "--sdk-path", str(archive),
            "--skip-vscode",
            "--set", "configure_tools.debug_mode=true",
            "--set", "install_sdk.mirror=https://mirror.example/pvsneslib",
        )

        assert result.exit_code == 0, result.output
        install = _params_for(ops, "pvsneslib_install_sdk")
        assert install["version"] == "4.2.0"
        assert install["offline"] is True
        assert install["archive_path"] == str(archive)
        assert install["mirror"] == "https://mirror.example/pvsneslib"
        assert _params_for(ops, "pvsneslib_configure_tools")["debug_mode"] is True
        assert _params_for(ops, "pvsneslib_build_config")["setup_vscode"] is False


class TestRequestValidation:
    def test_offline_without_archive(self, runner, prefix, ops):
        result = _bootstrap(runner, prefix, "--offline")

        assert result.exit_code == 2
        assert "offline_sdk_path is required" in result.output
        assert ops.invoked == []

    def test_malformed_set_option(self, runner, prefix, ops):
        result = _bootstrap(runner, prefix, "--set", "debug_mode=true")

        assert result.exit_code == 2
        assert "STEP.KEY=VALUE" in result.output

    def test_request_file_with_option_precedence(self, runner, prefix, ops, tmp_path):
        request_file = tmp_path / "request.yaml"
        request_file.write_text(
            "project_name: from-file\n"
            "sdk_version: 4.0.0\n"
            "step_overrides:\n"
            "  configure_tools:\n"
            "    debug_mode: true\n"
        )

        result = _bootstrap(
            runner, prefix,
            "-f", str(request_file),
            "-p", "from-cli",
            "--set", "build_config.setup_ci=true",
            "--format", "json",
        )

        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["project_name"] == "from-cli"
        assert _params_for(ops, "pvsneslib_install_sdk")["version"] == "4.0.0"
        assert _params_for(ops, "pvsneslib_configure_tools")["debug_mode"] is True
        assert _params_for(ops, "pvsneslib_build_config")["setup_ci"] is True

    def test_invalid_request_file(self, runner, prefix, ops, tmp_path):
        request_file = tmp_path / "request.yaml"
        request_file.write_text("- not\n- a mapping\n")

        result = _bootstrap(runner, prefix, "-f", str(request_file))

        assert result.exit_code == 2
        assert "object/dict" in result.output


class TestConcurrency:
    def test_lock_held_exits_with_usage_code(self, runner, prefix, ops):
        key = RunKey(prefix.resolve(), "my-snes-game")

        with StateRepository().lock(key):
            result = _bootstrap(runner, prefix)

        assert result.exit_code == 2
        assert "already in progress" in result.output
        assert ops.invoked == []


class TestTelemetry:
    def test_otlp_endpoint_configures_and_flushes(self, runner, prefix, ops):
        with patch(
            "snesdev.cli.bootstrap.configure_otel_providers", return_value=True
        ) as configure, patch("snesdev.cli.bootstrap.flush_otel_providers") as flush:
            result = _bootstrap(runner, prefix, "--otlp-endpoint", "localhost:4317")

        assert result.exit_code == 0
        configure.assert_called_once_with("localhost:4317", "snesdev")
        flush.assert_called_once()

    def test_no_endpoint_no_export(self, runner, prefix, ops):
        with patch("snesdev.cli.bootstrap.configure_otel_providers") as configure:
            result = _bootstrap(runner, prefix)

        assert result.exit_code == 0
        configure.assert_not_called()


def test_empty_registry_warns(caplog):
    from snesdev.cli.bootstrap import build_registry

    with patch("snesdev.operations.entry_points", return_value=[]):
        registry = build_registry()

    assert len(registry) == 0
    assert "No provisioning operations are installed" in caplog.text
