"""Build service module.

This module provides the high-level build API:
- build_modules(): Main entry point - build every requested version
- fetch_and_extract(): download and unpack one archive into scratch space
- stage_module_source(): copy module sources into the output tree

Archive download and extraction failures are recorded per version and the
run continues. Kernel source, stage, and copy failures abort the run.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from kmod_builder.builds.fetch import (
    DownloadError,
    ExtractionError,
    detect_strip_depth,
    download_file,
    extract_archive,
    output_dir_for,
)
from kmod_builder.builds.kernel_source import ensure_kernel_source, read_kernel_version
from kmod_builder.builds.stages import (
    StageError,
    configure_stages,
    modules_stage,
    run_stage,
    run_stages,
)
from kmod_builder.builds.workarounds import run_workarounds
from kmod_builder.catalog.service import build_download_url, resolve_archives
from kmod_builder.types import BuildSummary

if TYPE_CHECKING:
    import httpx

    from kmod_builder.config import Settings
    from kmod_builder.types import BuildRequest, CatalogEntry

logger = logging.getLogger(__name__)


def fetch_and_extract(
    client: httpx.Client,
    settings: Settings,
    entry: CatalogEntry,
    scratch_dir: Path,
) -> Path:
    """Download an archive and extract it inside a scratch directory.

    Args:
        client: HTTPX client instance.
        settings: Application settings.
        entry: Archive to fetch.
        scratch_dir: Per-archive scratch directory.

    Returns:
        Path to the extracted tree.

    Raises:
        DownloadError: If the download fails.
        ExtractionError: If the archive cannot be read or extracted.
    """
    url = build_download_url(settings.files_url, entry.key)
    result = download_file(
        client,
        url,
        scratch_dir / "archive" / entry.filename,
        timeout=settings.download_timeout,
    )
    strip_depth = detect_strip_depth(result.archive_path, entry.filename)
    return extract_archive(result.archive_path, scratch_dir / "tree", strip_depth)


def stage_module_source(linux_src: Path, module_src: Path, output_dir: Path) -> Path:
    """Recreate the module directory in the output tree from kernel sources.

    Relative module paths are taken from the kernel source tree and keep
    their relative layout under output_dir. Absolute paths are copied as is
    and placed under their basename.

    Args:
        linux_src: Kernel source tree.
        module_src: Module source directory.
        output_dir: Build output directory.

    Returns:
        The module directory inside output_dir.

    Raises:
        StageError: If the module source directory does not exist.
    """
    if module_src.is_absolute():
        source = module_src
        target = output_dir / module_src.name
    else:
        source = linux_src / module_src
        target = output_dir / module_src

    if not source.is_dir():
        raise StageError(
            "copy-source",
            f"module source {source} is not a directory",
            code="precondition_failed",
        )

    if target.exists():
        shutil.rmtree(target)
    target.parent.mkdir(parents=True, exist_ok=True)
    logger.info("Copying module source %s to %s", source, target)
    shutil.copytree(source, target, symlinks=True)
    return target


def _new_scratch_dir(settings: Settings) -> Path:
    if settings.tmp_dir is not None:
        settings.tmp_dir.mkdir(parents=True, exist_ok=True)
    return Path(tempfile.mkdtemp(prefix="kmod-build-", dir=settings.tmp_dir))


def build_archive(
    client: httpx.Client,
    settings: Settings,
    request: BuildRequest,
    entry: CatalogEntry,
    summary: BuildSummary,
    runner: Callable[..., Any] = subprocess.run,
) -> Path | None:
    """Build the requested modules against one archive.

    Args:
        client: HTTPX client instance.
        settings: Application settings.
        request: The build request.
        entry: Archive to build against.
        summary: Run accumulator; failures and successes are recorded here.
        runner: subprocess.run compatible callable.

    Returns:
        Output directory, or None if the archive could not be fetched.

    Raises:
        KernelSourceError: If kernel sources cannot be provisioned.
        StageError: If a kernel build stage fails.
    """
    version = entry.version
    output_dir = output_dir_for(request.dest_dir, entry.device, version, entry.kind)
    scratch_dir = _new_scratch_dir(settings)
    logger.info("Building %s", entry.key)

    try:
        try:
            tree = fetch_and_extract(client, settings, entry, scratch_dir)
        except DownloadError as e:
            logger.error("%s: could not retrieve archive, skipping: %s", entry.key, e)
            summary.record_failure(version, f"fetch failed: {e}")
            return None
        except ExtractionError as e:
            logger.error("%s: unable to extract archive, skipping: %s", entry.key, e)
            summary.record_failure(version, f"extract failed: {e}")
            return None

        run_workarounds(
            settings.workarounds_script,
            entry.device,
            version,
            output_dir,
            cwd=tree,
            runner=runner,
        )

        kernel_version = read_kernel_version(tree / ".config")
        linux_src = ensure_kernel_source(
            kernel_version,
            settings.kernel_src_root,
            settings.kernel_git_source,
            runner=runner,
        )

        run_stages(
            configure_stages(
                tree,
                request.modules,
                jobs=settings.make_jobs,
                make_vars=settings.make_vars,
            ),
            runner=runner,
        )

        module_dir = stage_module_source(linux_src, request.module_src, output_dir)
        run_stage(
            modules_stage(
                tree,
                module_dir,
                jobs=settings.make_jobs,
                make_vars=settings.make_vars,
            ),
            runner=runner,
        )
    finally:
        shutil.rmtree(scratch_dir, ignore_errors=True)

    logger.info("Built modules for %s %s in %s", entry.device, version, output_dir)
    summary.record_success(version, output_dir)
    return output_dir


def build_modules(
    request: BuildRequest,
    settings: Settings,
    client: httpx.Client,
    runner: Callable[..., Any] = subprocess.run,
) -> BuildSummary:
    """Build kernel modules for every requested version.

    Args:
        request: The build request.
        settings: Application settings.
        client: HTTPX client instance.
        runner: subprocess.run compatible callable.

    Returns:
        BuildSummary with succeeded and failed versions.

    Raises:
        CatalogError: If the object store cannot be listed.
        KernelSourceError: If kernel sources cannot be provisioned.
        StageError: If a kernel build stage fails.
    """
    summary = BuildSummary()

    for version in request.versions:
        archives = resolve_archives(client, settings, request.device, version)
        if not archives:
            logger.warning(
                "No kernel source archive found for %s at version %s",
                request.device,
                version,
            )
            continue

        for entry in archives:
            build_archive(client, settings, request, entry, summary, runner=runner)

    return summary


__all__ = [
    "build_archive",
    "build_modules",
    "fetch_and_extract",
    "stage_module_source",
]
