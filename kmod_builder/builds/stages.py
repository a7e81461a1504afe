"""Kernel build system stages.

This module handles:
- Composing `make` invocations against an extracted headers tree
- Enabling module config symbols with the kernel's scripts/config helper
- Running each step as a named stage with precondition checks

The stage order for one build is::

    oldconfig -> enable:<MOD>... -> prepare -> modules_prepare -> modules
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class StageError(Exception):
    """Raised when a build stage cannot run or fails."""

    def __init__(
        self,
        stage: str,
        message: str,
        exit_code: int | None = None,
        code: str = "stage_failed",
    ) -> None:
        super().__init__(f"{stage}: {message}")
        self.stage = stage
        self.exit_code = exit_code
        self.code = code


@dataclass(frozen=True)
class Stage:
    """A single kernel build system step.

    Attributes:
        name: Stage name used in logs and errors.
        command: Command as list of strings suitable for subprocess.
        cwd: Working directory.
        requires: Paths (relative to cwd, or absolute) that must exist
            before the stage runs.
    """

    name: str
    command: list[str]
    cwd: Path
    requires: tuple[str, ...] = ()

    def missing(self) -> list[str]:
        """Return the required paths that do not exist."""
        return [r for r in self.requires if not (self.cwd / r).exists()]


def compose_make_command(
    headers_dir: Path,
    *targets: str,
    jobs: int | None = None,
    make_vars: dict[str, str] | None = None,
    module_dir: Path | None = None,
) -> list[str]:
    """Compose a `make` command against a headers tree.

    Args:
        headers_dir: Extracted headers tree (make -C).
        *targets: Make targets.
        jobs: Parallel jobs (-jN).
        make_vars: Extra make variables such as ARCH or CROSS_COMPILE.
        module_dir: External module directory (M=).

    Returns:
        Command as list of strings.
    """
    cmd = ["make", "-C", str(headers_dir)]
    if jobs:
        cmd.append(f"-j{jobs}")
    for name, value in (make_vars or {}).items():
        cmd.append(f"{name}={value}")
    if module_dir is not None:
        cmd.append(f"M={module_dir}")
    cmd.extend(targets)
    return cmd


def enable_module_stage(headers_dir: Path, module: str) -> Stage:
    """Build the stage that sets CONFIG_<module>=m."""
    symbol = module if module.startswith("CONFIG_") else f"CONFIG_{module}"
    return Stage(
        name=f"enable:{module}",
        command=["./scripts/config", "--set-val", symbol, "m"],
        cwd=headers_dir,
        requires=("scripts/config", ".config"),
    )


def configure_stages(
    headers_dir: Path,
    modules: Iterable[str],
    jobs: int | None = None,
    make_vars: dict[str, str] | None = None,
) -> list[Stage]:
    """Build the stages that configure and prepare a headers tree.

    Args:
        headers_dir: Extracted headers tree.
        modules: Module config symbols to enable.
        jobs: Parallel jobs for make.
        make_vars: Extra make variables.

    Returns:
        Stages in execution order.
    """
    stages = [
        Stage(
            name="oldconfig",
            command=compose_make_command(
                headers_dir, "oldconfig", make_vars=make_vars
            ),
            cwd=headers_dir,
            requires=("Makefile", ".config"),
        )
    ]
    stages.extend(enable_module_stage(headers_dir, m) for m in modules)
    for target in ("prepare", "modules_prepare"):
        stages.append(
            Stage(
                name=target,
                command=compose_make_command(
                    headers_dir, target, jobs=jobs, make_vars=make_vars
                ),
                cwd=headers_dir,
                requires=("Makefile", ".config"),
            )
        )
    return stages


def modules_stage(
    headers_dir: Path,
    module_dir: Path,
    jobs: int | None = None,
    make_vars: dict[str, str] | None = None,
) -> Stage:
    """Build the stage that compiles an external module directory."""
    module_dir = module_dir.resolve()
    return Stage(
        name="modules",
        command=compose_make_command(
            headers_dir,
            "modules",
            jobs=jobs,
            make_vars=make_vars,
            module_dir=module_dir,
        ),
        cwd=headers_dir,
        requires=("Makefile", str(module_dir)),
    )


def run_stage(stage: Stage, runner: Callable[..., Any] = subprocess.run) -> None:
    """Run a stage.

    Args:
        stage: Stage to run.
        runner: subprocess.run compatible callable.

    Raises:
        StageError: If preconditions are not met or the command fails.
    """
    missing = stage.missing()
    if missing:
        raise StageError(
            stage.name,
            f"missing {', '.join(missing)} in {stage.cwd}",
            code="precondition_failed",
        )

    logger.info("[%s] %s", stage.name, shlex.join(stage.command))

    try:
        result = runner(
            stage.command,
            cwd=stage.cwd,
            stdin=subprocess.DEVNULL,
            check=False,
        )
    except OSError as e:
        raise StageError(
            stage.name,
            f"failed to execute: {e}",
            code="execution_error",
        ) from e

    if result.returncode != 0:
        raise StageError(
            stage.name,
            f"exited with code {result.returncode}",
            exit_code=result.returncode,
        )


def run_stages(stages: Iterable[Stage], runner: Callable[..., Any] = subprocess.run) -> None:
    """Run stages in order, stopping at the first failure."""
    for stage in stages:
        run_stage(stage, runner=runner)


__all__ = [
    "Stage",
    "StageError",
    "compose_make_command",
    "configure_stages",
    "enable_module_stage",
    "modules_stage",
    "run_stage",
    "run_stages",
]
