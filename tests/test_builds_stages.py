"""Tests for builds/stages.py module.

Tests stage composition and execution with a mocked subprocess runner.
"""

import subprocess
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from kmod_builder.builds.stages import (
    Stage,
    StageError,
    compose_make_command,
    configure_stages,
    enable_module_stage,
    modules_stage,
    run_stage,
    run_stages,
)


@pytest.fixture
def headers_dir(tmp_path: Path) -> Path:
    """Create a minimal extracted headers tree."""
    tree = tmp_path / "tree"
    (tree / "scripts").mkdir(parents=True)
    (tree / "Makefile").write_text("all:\n")
    (tree / ".config").write_text("# Linux/arm 5.10.83 Kernel Configuration\n")
    (tree / "scripts" / "config").write_text("#!/bin/sh\n")
    return tree


def ok_runner() -> MagicMock:
    return MagicMock(return_value=subprocess.CompletedProcess([], 0))


class TestComposeMakeCommand:
    """Tests for compose_make_command function."""

    def test_minimal(self, tmp_path):
        """Should run make -C <tree> <target>."""
        cmd = compose_make_command(tmp_path, "prepare")
        assert cmd == ["make", "-C", str(tmp_path), "prepare"]

    def test_with_options(self, tmp_path):
        """Should add jobs, variables and M= before the targets."""
        cmd = compose_make_command(
            tmp_path,
            "modules",
            jobs=4,
            make_vars={"ARCH": "arm64", "CROSS_COMPILE": "aarch64-linux-gnu-"},
            module_dir=Path("/out/mod"),
        )

        assert cmd[:3] == ["make", "-C", str(tmp_path)]
        assert "-j4" in cmd
        assert "ARCH=arm64" in cmd
        assert "CROSS_COMPILE=aarch64-linux-gnu-" in cmd
        assert "M=/out/mod" in cmd
        assert cmd[-1] == "modules"


class TestConfigureStages:
    """Tests for configure_stages function."""

    def test_stage_order(self, headers_dir):
        """Should order oldconfig, module enables, prepare, modules_prepare."""
        stages = configure_stages(headers_dir, ["FOO", "BAR"])

        assert [s.name for s in stages] == [
            "oldconfig",
            "enable:FOO",
            "enable:BAR",
            "prepare",
            "modules_prepare",
        ]
        assert all(s.cwd == headers_dir for s in stages)

    def test_enable_command(self, headers_dir):
        """Should set CONFIG_<MOD>=m with scripts/config."""
        stage = enable_module_stage(headers_dir, "RTL8192CU")

        assert stage.command == ["./scripts/config", "--set-val", "CONFIG_RTL8192CU", "m"]

    def test_enable_keeps_prefix(self, headers_dir):
        """Should not double the CONFIG_ prefix."""
        stage = enable_module_stage(headers_dir, "CONFIG_FOO")

        assert stage.command[2] == "CONFIG_FOO"

    def test_jobs_not_used_for_oldconfig(self, headers_dir):
        """Should only pass -j to prepare targets."""
        stages = configure_stages(headers_dir, ["FOO"], jobs=8)

        assert "-j8" not in stages[0].command
        assert "-j8" in stages[-1].command


class TestModulesStage:
    """Tests for modules_stage function."""

    def test_module_dir_absolute(self, headers_dir, tmp_path):
        """Should pass an absolute M= path."""
        module_dir = tmp_path / "out" / "drivers" / "foo"
        module_dir.mkdir(parents=True)

        stage = modules_stage(headers_dir, module_dir)

        assert f"M={module_dir.resolve()}" in stage.command
        assert stage.command[-1] == "modules"


class TestRunStage:
    """Tests for run_stage function."""

    def test_runs_in_cwd(self, headers_dir):
        """Should run the command in the stage directory."""
        runner = ok_runner()
        stage = configure_stages(headers_dir, [])[0]

        run_stage(stage, runner=runner)

        args, kwargs = runner.call_args
        assert args[0] == stage.command
        assert kwargs["cwd"] == headers_dir
        assert kwargs["stdin"] == subprocess.DEVNULL

    def test_precondition_failure(self, tmp_path):
        """Should refuse to run when a required file is missing."""
        runner = ok_runner()
        stage = Stage("oldconfig", ["make"], tmp_path, requires=(".config",))

        with pytest.raises(StageError) as exc_info:
            run_stage(stage, runner=runner)

        assert exc_info.value.code == "precondition_failed"
        assert exc_info.value.stage == "oldconfig"
        runner.assert_not_called()

    def test_nonzero_exit(self, headers_dir):
        """Should raise StageError with the exit code."""
        runner = MagicMock(return_value=subprocess.CompletedProcess([], 2))
        stage = configure_stages(headers_dir, [])[1]

        with pytest.raises(StageError) as exc_info:
            run_stage(stage, runner=runner)

        assert exc_info.value.code == "stage_failed"
        assert exc_info.value.exit_code == 2
        assert "prepare" in str(exc_info.value)

    def test_execution_error(self, headers_dir):
        """Should wrap OSError from the runner."""
        runner = MagicMock(side_effect=FileNotFoundError("make"))
        stage = configure_stages(headers_dir, [])[0]

        with pytest.raises(StageError) as exc_info:
            run_stage(stage, runner=runner)

        assert exc_info.value.code == "execution_error"


class TestRunStages:
    """Tests for run_stages function."""

    def test_stops_at_first_failure(self, headers_dir):
        """Should not run stages after a failing one."""
        results = [
            subprocess.CompletedProcess([], 0),
            subprocess.CompletedProcess([], 1),
        ]
        runner = MagicMock(side_effect=results)
        stages = configure_stages(headers_dir, ["FOO"])

        with pytest.raises(StageError) as exc_info:
            run_stages(stages, runner=runner)

        assert exc_info.value.stage == "enable:FOO"
        assert runner.call_count == 2
