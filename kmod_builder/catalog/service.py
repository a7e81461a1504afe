"""Catalog service.

This module provides the read side of the archive catalog:
- list_entries(): kernel archives found in the object store
- list_versions(): fixed-width (device, version) rows for the list command
- resolve_archives(): source archives to build for a device and version
- build_download_url(): fetch URL for an object key
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING

from kmod_builder.catalog.keys import ESR_PREFIX, IMAGES_PREFIX, InvalidKeyError, parse_key
from kmod_builder.catalog.store import discover_bucket, list_object_keys

if TYPE_CHECKING:
    import httpx

    from kmod_builder.config import Settings
    from kmod_builder.types import CatalogEntry

logger = logging.getLogger(__name__)

# Key prefixes holding published images
LISTING_PREFIXES = (IMAGES_PREFIX, ESR_PREFIX + IMAGES_PREFIX)

# Column width of the list output
COLUMN_WIDTH = 30


def _matches(pattern: str | None, value: str) -> bool:
    return pattern is None or re.fullmatch(pattern, value) is not None


def list_entries(
    client: httpx.Client,
    settings: Settings,
    device_pattern: str | None = None,
    version_pattern: str | None = None,
    prefixes: Iterable[str] = LISTING_PREFIXES,
) -> Iterator[CatalogEntry]:
    """Yield kernel archives published in the object store.

    The store is queried again on every call.

    Args:
        client: HTTPX client instance.
        settings: Application settings.
        device_pattern: Regular expression the whole device name must match.
        version_pattern: Regular expression the whole version must match.
        prefixes: Key prefixes to list.

    Yields:
        CatalogEntry for every matching kernel archive key.

    Raises:
        CatalogError: If the store cannot be queried.
    """
    bucket = settings.bucket or discover_bucket(
        client, settings.files_url, timeout=settings.listing_timeout
    )

    for prefix in prefixes:
        for key in list_object_keys(
            client,
            bucket,
            prefix=prefix,
            endpoint=settings.object_store_url,
            timeout=settings.listing_timeout,
        ):
            try:
                entry = parse_key(key)
            except InvalidKeyError as e:
                logger.debug("Skipping %s (%s)", key, e.code)
                continue

            if _matches(device_pattern, entry.device) and _matches(
                version_pattern, entry.version
            ):
                yield entry


def format_entry(entry: CatalogEntry) -> str:
    """Format an entry as a fixed-width (device, version) row."""
    return f"{entry.device:<{COLUMN_WIDTH}} {entry.version:<{COLUMN_WIDTH}}"


def list_versions(
    client: httpx.Client,
    settings: Settings,
    device_pattern: str | None = None,
    version_pattern: str | None = None,
) -> Iterator[str]:
    """Yield one row per catalog entry, duplicates included."""
    for entry in list_entries(client, settings, device_pattern, version_pattern):
        yield format_entry(entry)


def resolve_archives(
    client: httpx.Client,
    settings: Settings,
    device: str,
    version: str,
) -> list[CatalogEntry]:
    """Select the archives to build for a device and OS version.

    Only full source archives are returned; headers-only archives for the
    same device and version are left out.

    Args:
        client: HTTPX client instance.
        settings: Application settings.
        device: Device name, matched literally.
        version: OS version, matched literally.

    Returns:
        Source archive entries in store order.
    """
    prefixes = [f"{prefix}{device}/{version}/" for prefix in LISTING_PREFIXES]
    entries = [
        entry
        for entry in list_entries(
            client, settings, re.escape(device), re.escape(version), prefixes=prefixes
        )
        if entry.is_source_archive
    ]
    logger.debug(
        "Resolved %d source archive(s) for %s %s", len(entries), device, version
    )
    return entries


def build_download_url(files_url: str, key: str) -> str:
    """Build the fetch URL for an object key.

    '+' is common in OS version strings and is escaped as %2B.

    Args:
        files_url: File-serving endpoint.
        key: Object key.

    Returns:
        Download URL.
    """
    return f"{files_url.rstrip('/')}/{key.lstrip('/')}".replace("+", "%2B")


__all__ = [
    "COLUMN_WIDTH",
    "LISTING_PREFIXES",
    "build_download_url",
    "format_entry",
    "list_entries",
    "list_versions",
    "resolve_archives",
]
