"""Device workaround hook.

Kernel headers for some devices need adjustments before they build, either
to the build environment or to headers generated incorrectly at OS build
time. The hook is an external executable called as::

    <hook> <device> <version> <output_dir>

from inside the extracted tree. It is best effort: failures are logged and
the build carries on.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def run_workarounds(
    script: Path,
    device: str,
    version: str,
    output_dir: Path,
    cwd: Path,
    runner: Callable[..., Any] = subprocess.run,
) -> bool:
    """Run the workaround hook for a device and version.

    Args:
        script: Hook executable.
        device: Device name.
        version: OS version.
        output_dir: Output directory of this build.
        cwd: Extracted headers tree.
        runner: subprocess.run compatible callable.

    Returns:
        True if the hook ran and exited with status 0.
    """
    if not script.exists():
        logger.debug("No workaround hook at %s, skipping", script)
        return False

    logger.info("Applying workarounds for %s %s", device, version)
    try:
        result = runner(
            [str(script), device, version, str(output_dir)],
            cwd=cwd,
            check=False,
        )
    except OSError as e:
        logger.warning("Workaround hook %s could not run: %s", script, e)
        return False

    if result.returncode != 0:
        logger.warning(
            "Workaround hook %s exited with code %d, continuing",
            script,
            result.returncode,
        )
        return False
    return True


__all__ = ["run_workarounds"]
