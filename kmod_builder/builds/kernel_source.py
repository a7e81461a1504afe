"""Kernel source provisioning.

Extracted headers carry a .config whose banner names the kernel version
they were generated from. A matching tagged checkout of the upstream kernel
is cloned once per version and reused by later builds.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from collections.abc import Callable
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Marker on the .config banner line, e.g. "# Linux/arm64 5.10.83 Kernel Configuration"
CONFIG_BANNER_MARKER = "Kernel Configuration"


class KernelSourceError(Exception):
    """Raised when kernel sources cannot be located or provisioned."""

    def __init__(self, message: str, code: str = "kernel_source_error") -> None:
        super().__init__(message)
        self.code = code


def read_kernel_version(config_path: Path) -> str:
    """Read the kernel version from a kernel .config file.

    Args:
        config_path: Path to the .config file.

    Returns:
        Kernel version string (third token of the banner line).

    Raises:
        KernelSourceError: If the file or the banner line is missing.
    """
    try:
        lines = config_path.read_text(errors="replace").splitlines()
    except OSError as e:
        raise KernelSourceError(
            f"Cannot read kernel config {config_path}: {e}",
            code="config_unreadable",
        ) from e

    for line in lines:
        if CONFIG_BANNER_MARKER in line:
            tokens = line.split()
            if len(tokens) >= 3:
                return tokens[2]
            break

    raise KernelSourceError(
        f"No kernel version found in {config_path}",
        code="kernel_version_not_found",
    )


def kernel_source_path(root: Path, kernel_version: str) -> Path:
    """Return the local checkout path for a kernel version."""
    return root / f"linux_{kernel_version}"


def compose_clone_command(git_url: str, kernel_version: str, path: Path) -> list[str]:
    """Compose a shallow clone of the v<kernel_version> tag."""
    return [
        "git",
        "clone",
        "--depth",
        "1",
        "--branch",
        f"v{kernel_version}",
        git_url,
        str(path),
    ]


def ensure_kernel_source(
    kernel_version: str,
    root: Path,
    git_url: str,
    runner: Callable[..., Any] = subprocess.run,
) -> Path:
    """Ensure a kernel source tree for a version exists locally.

    An existing directory is trusted as is.

    Args:
        kernel_version: Kernel version, e.g. '5.10.83'.
        root: Directory holding kernel source trees.
        git_url: Upstream kernel git remote.
        runner: subprocess.run compatible callable.

    Returns:
        Path to the kernel source tree.

    Raises:
        KernelSourceError: If the clone fails.
    """
    path = kernel_source_path(root, kernel_version)
    if path.is_dir():
        logger.info("Kernel source exists for v%s at %s", kernel_version, path)
        return path

    cmd = compose_clone_command(git_url, kernel_version, path)
    logger.info("Cloning kernel source: %s", shlex.join(cmd))

    try:
        root.mkdir(parents=True, exist_ok=True)
        runner(cmd, check=True)
    except subprocess.CalledProcessError as e:
        raise KernelSourceError(
            f"git clone of v{kernel_version} from {git_url} failed "
            f"with exit code {e.returncode}",
            code="clone_failed",
        ) from e
    except OSError as e:
        raise KernelSourceError(
            f"Failed to run git: {e}",
            code="execution_error",
        ) from e

    return path


__all__ = [
    "CONFIG_BANNER_MARKER",
    "KernelSourceError",
    "compose_clone_command",
    "ensure_kernel_source",
    "kernel_source_path",
    "read_kernel_version",
]
