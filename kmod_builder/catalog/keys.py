"""Object key parsing.

Published kernel archives are stored under keys of the form::

    [esr-]images/<device>/<version>/<filename>

where the key contains the substring ``kernel`` somewhere (typically in the
filename, e.g. ``kernel_modules_headers.tar.gz`` or
``kernel_source.tar.gz``). Anything else is rejected with InvalidKeyError.
"""

from __future__ import annotations

from kmod_builder.types import CatalogEntry

ESR_PREFIX = "esr-"
IMAGES_PREFIX = "images/"
KERNEL_MARKER = "kernel"


class InvalidKeyError(Exception):
    """Raised when an object key is not a kernel archive key."""

    def __init__(self, key: str, reason: str, code: str = "invalid_key") -> None:
        """Initialize InvalidKeyError.

        Args:
            key: The rejected object key.
            reason: Why the key was rejected.
            code: Error code for structured error handling.
        """
        super().__init__(f"Invalid catalog key {key!r}: {reason}")
        self.key = key
        self.reason = reason
        self.code = code


def parse_key(key: str) -> CatalogEntry:
    """Parse an object key into a catalog entry.

    Args:
        key: Object key from the store listing.

    Returns:
        CatalogEntry for the key.

    Raises:
        InvalidKeyError: If the key does not describe a kernel archive.
    """
    esr = key.startswith(ESR_PREFIX)
    rest = key[len(ESR_PREFIX) :] if esr else key

    if not rest.startswith(IMAGES_PREFIX):
        raise InvalidKeyError(key, "missing images/ prefix", code="missing_images")
    if KERNEL_MARKER not in key:
        raise InvalidKeyError(key, "not a kernel archive", code="not_kernel")

    parts = rest[len(IMAGES_PREFIX) :].split("/")
    if len(parts) < 3:
        raise InvalidKeyError(key, "expected <device>/<version>/<file>", code="short_key")

    device, version, filename = parts[0], parts[1], parts[-1]
    if not device or not version or not filename:
        raise InvalidKeyError(key, "empty path segment", code="empty_segment")

    return CatalogEntry(
        key=key,
        device=device,
        version=version,
        filename=filename,
        esr=esr,
    )


__all__ = [
    "ESR_PREFIX",
    "IMAGES_PREFIX",
    "KERNEL_MARKER",
    "InvalidKeyError",
    "parse_key",
]
