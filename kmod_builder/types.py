"""Shared type definitions for kmod_builder.

This module contains dataclasses and enums shared across subpackages to
avoid circular imports.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

# Marker in archive filenames that identifies a full kernel source tarball
SOURCE_MARKER = "source"


class ArchiveKind(str, Enum):
    """Kind of a published kernel archive."""

    HEADERS = "headers"
    SOURCE = "source"


@dataclass(frozen=True)
class CatalogEntry:
    """A kernel archive found in the object store.

    Attributes:
        key: Full object key.
        device: Device (machine) name.
        version: OS version string.
        filename: Last path segment of the key.
        esr: Whether the key lives under the ``esr-images/`` prefix.
    """

    key: str
    device: str
    version: str
    filename: str
    esr: bool = False

    @property
    def is_source_archive(self) -> bool:
        """Whether this entry is a full kernel source archive."""
        return SOURCE_MARKER in self.filename

    @property
    def kind(self) -> ArchiveKind:
        return ArchiveKind.SOURCE if self.is_source_archive else ArchiveKind.HEADERS


def _unique(items: list[str] | tuple[str, ...]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(item for item in items if item))


@dataclass(frozen=True)
class BuildRequest:
    """A request to build kernel modules for one device.

    Attributes:
        device: Device (machine) name.
        versions: OS versions to build for, in request order.
        module_src: Module source directory, relative to the kernel source
            tree (or absolute for out-of-tree sources).
        modules: Kernel config symbols to enable as modules, without the
            ``CONFIG_`` prefix.
        dest_dir: Root directory for build outputs.
    """

    device: str
    versions: tuple[str, ...]
    module_src: Path
    modules: tuple[str, ...]
    dest_dir: Path

    def __post_init__(self) -> None:
        """Normalize and validate fields after initialization."""
        if not self.device:
            raise ValueError("device must be provided")
        object.__setattr__(self, "versions", _unique(self.versions))
        object.__setattr__(
            self,
            "modules",
            _unique([m.removeprefix("CONFIG_") for m in self.modules]),
        )
        if not self.versions:
            raise ValueError("at least one version must be provided")
        if not self.modules:
            raise ValueError("at least one module must be provided")


@dataclass
class BuildSummary:
    """Outcome of a build run, accumulated version by version."""

    succeeded: set[str] = field(default_factory=set)
    failed: set[str] = field(default_factory=set)
    failures: list[tuple[str, str]] = field(default_factory=list)
    outputs: list[Path] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """True when no version failed."""
        return not self.failed

    def record_failure(self, version: str, reason: str) -> None:
        self.failed.add(version)
        self.failures.append((version, reason))

    def record_success(self, version: str, output_dir: Path) -> None:
        self.succeeded.add(version)
        self.outputs.append(output_dir)

    def failed_versions(self, order: tuple[str, ...] | None = None) -> list[str]:
        """Return failed versions, in request order when given."""
        if order is None:
            return sorted(self.failed)
        return [v for v in order if v in self.failed]


__all__ = [
    "SOURCE_MARKER",
    "ArchiveKind",
    "BuildRequest",
    "BuildSummary",
    "CatalogEntry",
]
