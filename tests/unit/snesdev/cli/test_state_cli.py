"""Tests for ``snesdev status``, ``snesdev reset`` and ``snesdev steps``."""

import json

import pytest
from click.testing import CliRunner

from snesdev.catalog import STEP_CATALOG
from snesdev.cli import main
from snesdev.models import RunState
from snesdev.state import RunKey, StateRepository


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def prefix(tmp_path):
    return (tmp_path / "sdk").resolve()


@pytest.fixture
def recorded(prefix):
    """A saved record with the first two steps done."""
    key = RunKey(prefix, "demo")
    repository = StateRepository()
    repository.save(
        key,
        RunState(
            install_prefix=str(prefix),
            project_name="demo",
            completed_step_names=["validate_host", "install_sdk"],
            environment_file_path="/home/dev/.pvsneslib.env",
        ),
    )
    return repository.path_for(key)


def _target(prefix, project="demo"):
    return ["--install-prefix", str(prefix), "-p", project]


class TestStatus:
    def test_nothing_recorded(self, runner, prefix):
        result = runner.invoke(main, ["status", *_target(prefix)])

        assert result.exit_code == 0
        assert "No bootstrap in progress for this target." in result.output

    def test_progress(self, runner, prefix, recorded):
        result = runner.invoke(main, ["status", *_target(prefix)])

        assert result.exit_code == 0
        assert "Project: demo" in result.output
        assert "Environment File: /home/dev/.pvsneslib.env" in result.output
        assert f"State File: {recorded}" in result.output
        assert "[DONE] Validate system prerequisites" in result.output
        assert "[TODO] Verify installation integrity" in result.output
        assert f"Progress: 2/{len(STEP_CATALOG)} steps completed" in result.output

    def test_json(self, runner, prefix, recorded):
        result = runner.invoke(main, ["status", *_target(prefix), "--format", "json"])

        assert result.exit_code == 0
        record = json.loads(result.output)
        assert record["completedStepNames"] == ["validate_host", "install_sdk"]

    def test_json_nothing_recorded(self, runner, prefix):
        result = runner.invoke(main, ["status", *_target(prefix), "--format", "json"])

        assert json.loads(result.output) is None

    def test_other_project_is_separate(self, runner, prefix, recorded):
        result = runner.invoke(main, ["status", *_target(prefix, project="other")])

        assert "No bootstrap in progress" in result.output


class TestReset:
    def test_reset_with_yes(self, runner, prefix, recorded):
        result = runner.invoke(main, ["reset", *_target(prefix), "--yes"])

        assert result.exit_code == 0
        assert "Bootstrap state cleared." in result.output
        assert not recorded.exists()

    def test_reset_confirm_declined(self, runner, prefix, recorded):
        result = runner.invoke(main, ["reset", *_target(prefix)], input="n\n")

        assert result.exit_code == 1
        assert recorded.exists()

    def test_reset_confirm_accepted(self, runner, prefix, recorded):
        result = runner.invoke(main, ["reset", *_target(prefix)], input="y\n")

        assert result.exit_code == 0
        assert not recorded.exists()

    def test_reset_nothing_recorded(self, runner, prefix):
        result = runner.invoke(main, ["reset", *_target(prefix), "--yes"])

        assert result.exit_code == 0
        assert "No bootstrap state recorded for this target." in result.output

    def test_reset_while_running(self, runner, prefix, recorded):
        with StateRepository().lock(RunKey(prefix, "demo")):
            result = runner.invoke(main, ["reset", *_target(prefix), "--yes"])

        assert result.exit_code == 2
        assert "already in progress" in result.output
        assert recorded.exists()


def test_steps_lists_catalog(runner):
    result = runner.invoke(main, ["steps"])

    assert result.exit_code == 0
    lines = result.output.strip().splitlines()
    assert len(lines) == len(STEP_CATALOG)
    assert lines[0].startswith("1. validate_host")
    assert "[required]" in lines[0]
    assert lines[0].endswith("(pvsneslib_validate_host)")
    assert "[optional]" in lines[-1]
    assert lines[-1].endswith("(pvsneslib_init)")
