"""Archive fetch module.

This module handles:
- Downloading kernel archives from the file-serving endpoint
- Detecting the strip depth of an archive layout
- Extraction with leading path components removed
- Computing the output directory for an archive
"""

from __future__ import annotations

import hashlib
import logging
import re
import tarfile
import zlib
from dataclasses import dataclass
from pathlib import Path

import httpx

from kmod_builder.types import SOURCE_MARKER, ArchiveKind

logger = logging.getLogger(__name__)

# Chunk size for downloads (bytes)
DOWNLOAD_CHUNK_SIZE = 64 * 1024  # 64 KB

# Strip depths for the known archive layouts
HEADERS_STRIP_DEPTH = 1
SOURCE_STRIP_DEPTH = 2
SOURCE_VERSIONED_STRIP_DEPTH = 3

# Suffix keeping source builds apart from headers-only builds
FROM_SOURCE_SUFFIX = "_from_src"


class DownloadError(Exception):
    """Raised when an archive download fails."""

    def __init__(self, message: str, code: str = "download_error") -> None:
        """Initialize DownloadError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


class ExtractionError(Exception):
    """Raised when archive inspection or extraction fails."""

    def __init__(self, message: str, code: str = "extraction_error") -> None:
        """Initialize ExtractionError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


@dataclass
class DownloadResult:
    """Result of an archive download."""

    archive_path: Path
    checksum: str
    size_bytes: int


def download_file(
    client: httpx.Client,
    url: str,
    dest_path: Path,
    timeout: float | None = None,
    chunk_size: int = DOWNLOAD_CHUNK_SIZE,
) -> DownloadResult:
    """Download a file.

    Args:
        client: HTTPX client instance.
        url: URL to download from.
        dest_path: Destination path for the downloaded file.
        timeout: Download timeout in seconds (None = no timeout).
        chunk_size: Size of chunks to download.

    Returns:
        DownloadResult with path, checksum, and size.

    Raises:
        DownloadError: If download fails.
    """
    logger.info("Downloading %s to %s", url, dest_path)

    try:
        with client.stream("GET", url, timeout=timeout) as response:
            response.raise_for_status()

            total_bytes = 0
            sha256 = hashlib.sha256()

            dest_path.parent.mkdir(parents=True, exist_ok=True)

            with dest_path.open("wb") as f:
                for chunk in response.iter_bytes(chunk_size):
                    f.write(chunk)
                    sha256.update(chunk)
                    total_bytes += len(chunk)

    except httpx.HTTPStatusError as e:
        raise DownloadError(
            f"HTTP error downloading {url}: {e.response.status_code} {e.response.reason_phrase}",
            code="http_error",
        ) from e
    except httpx.TimeoutException as e:
        raise DownloadError(
            f"Timeout downloading {url}",
            code="timeout",
        ) from e
    except httpx.RequestError as e:
        raise DownloadError(
            f"Network error downloading {url}: {e}",
            code="network_error",
        ) from e
    except OSError as e:
        raise DownloadError(
            f"OS error writing {dest_path}: {e}",
            code="os_error",
        ) from e

    checksum = sha256.hexdigest()
    logger.info(
        "Downloaded %s (%d bytes, checksum: %s)",
        dest_path.name,
        total_bytes,
        checksum[:16] + "...",
    )
    return DownloadResult(archive_path=dest_path, checksum=checksum, size_bytes=total_bytes)


def detect_strip_depth(archive_path: Path, filename: str | None = None) -> int:
    """Pick the number of leading path components to strip on extraction.

    Headers-only archives always strip one component. Kernel source
    archives come in two layouts; the second listed member tells them apart:
    a path without digits means the older layout (strip 2), any digit means
    the newer versioned layout (strip 3).

    Args:
        archive_path: Path to the archive file.
        filename: Archive filename (defaults to the name of archive_path).

    Returns:
        Strip depth.

    Raises:
        ExtractionError: If a source archive cannot be read.
    """
    name = filename if filename is not None else archive_path.name
    if SOURCE_MARKER not in name:
        return HEADERS_STRIP_DEPTH

    try:
        with tarfile.open(archive_path, "r:*") as tar:
            probe: tarfile.TarInfo | None = None
            for _ in range(2):
                member = tar.next()
                if member is None:
                    break
                probe = member
    except (tarfile.TarError, EOFError, zlib.error, OSError) as e:
        raise ExtractionError(
            f"Failed to read {archive_path}: {e}",
            code="tar_error",
        ) from e

    if probe is None:
        raise ExtractionError(f"Archive {archive_path} is empty", code="empty_archive")

    if re.search(r"[0-9]", probe.name):
        depth = SOURCE_VERSIONED_STRIP_DEPTH
    else:
        depth = SOURCE_STRIP_DEPTH
    logger.debug("Strip depth %d for %s (probe: %s)", depth, name, probe.name)
    return depth


def _strip(path: str, depth: int) -> str | None:
    parts = path.split("/", depth)
    if len(parts) <= depth or not parts[-1]:
        return None
    return parts[-1]


def extract_archive(archive_path: Path, dest_dir: Path, strip_depth: int = 0) -> Path:
    """Extract an archive, dropping leading path components.

    Args:
        archive_path: Path to the archive file.
        dest_dir: Destination directory for extraction.
        strip_depth: Number of leading path components to remove.

    Returns:
        The destination directory.

    Raises:
        ExtractionError: If extraction fails.
    """
    logger.info(
        "Extracting %s to %s (strip %d)", archive_path.name, dest_dir, strip_depth
    )
    dest_dir.mkdir(parents=True, exist_ok=True)

    try:
        with tarfile.open(archive_path, "r:*") as tar:
            extracted = 0
            for member in tar:
                if strip_depth > 0:
                    stripped = _strip(member.name, strip_depth)
                    if stripped is None:
                        continue
                    member.name = stripped
                    if member.islnk():
                        linkname = _strip(member.linkname, strip_depth)
                        if linkname is None:
                            logger.warning(
                                "Skipping hardlink %s: target %s is above strip depth %d",
                                stripped,
                                member.linkname,
                                strip_depth,
                            )
                            continue
                        member.linkname = linkname

                # Security: prevent path traversal
                member_path = Path(member.name)
                if member_path.is_absolute() or ".." in member_path.parts:
                    raise ExtractionError(
                        f"Refusing to extract {member.name}: path traversal detected",
                        code="path_traversal",
                    )

                tar.extract(member, dest_dir, filter="tar")
                extracted += 1

    except (tarfile.TarError, EOFError, zlib.error) as e:
        raise ExtractionError(
            f"Failed to extract {archive_path}: {e}",
            code="tar_error",
        ) from e
    except OSError as e:
        raise ExtractionError(
            f"OS error extracting {archive_path}: {e}",
            code="os_error",
        ) from e

    if not extracted:
        raise ExtractionError(
            f"Nothing extracted from {archive_path} at strip depth {strip_depth}",
            code="empty_archive",
        )

    logger.debug("Extracted %d member(s) to %s", extracted, dest_dir)
    return dest_dir


def output_dir_for(dest_dir: Path, device: str, version: str, kind: ArchiveKind) -> Path:
    """Compute the build output directory for an archive.

    Args:
        dest_dir: Root directory for build outputs.
        device: Device name.
        version: OS version.
        kind: Archive kind; source builds get a separate directory.

    Returns:
        Output directory path.
    """
    name = f"modules_{device}_{version}"
    if kind is ArchiveKind.SOURCE:
        name += FROM_SOURCE_SUFFIX
    return dest_dir / name


__all__ = [
    "DOWNLOAD_CHUNK_SIZE",
    "FROM_SOURCE_SUFFIX",
    "HEADERS_STRIP_DEPTH",
    "SOURCE_STRIP_DEPTH",
    "SOURCE_VERSIONED_STRIP_DEPTH",
    "DownloadError",
    "DownloadResult",
    "ExtractionError",
    "detect_strip_depth",
    "download_file",
    "extract_archive",
    "output_dir_for",
]
