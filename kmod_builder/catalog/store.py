"""Object store access.

This module handles:
- Bucket discovery from the file-serving endpoint's XML listing
- Paging through the S3 ListObjectsV2 API without credentials
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from collections.abc import Iterator

import httpx

logger = logging.getLogger(__name__)

# Default listing endpoint, virtual-hosted style
DEFAULT_OBJECT_STORE_URL = "https://{bucket}.s3.amazonaws.com"


class CatalogError(Exception):
    """Raised when the object store cannot be queried."""

    def __init__(self, message: str, code: str = "catalog_error") -> None:
        """Initialize CatalogError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


def _local_name(tag: str) -> str:
    """Strip an XML namespace from a tag name."""
    return tag.rsplit("}", 1)[-1]


def _parse_xml(content: bytes | str, source: str) -> ET.Element:
    try:
        return ET.fromstring(content)
    except ET.ParseError as e:
        raise CatalogError(
            f"Malformed XML listing from {source}: {e}",
            code="parse_error",
        ) from e


def _get(
    client: httpx.Client,
    url: str,
    params: dict[str, str] | None = None,
    timeout: float | None = None,
) -> httpx.Response:
    try:
        response = client.get(url, params=params, timeout=timeout)
        response.raise_for_status()
        return response

    except httpx.HTTPStatusError as e:
        raise CatalogError(
            f"HTTP error listing {url}: {e.response.status_code} {e.response.reason_phrase}",
            code="http_error",
        ) from e
    except httpx.TimeoutException as e:
        raise CatalogError(
            f"Timeout listing {url}",
            code="timeout",
        ) from e
    except httpx.RequestError as e:
        raise CatalogError(
            f"Network error listing {url}: {e}",
            code="network_error",
        ) from e


def parse_bucket_name(content: bytes | str) -> str | None:
    """Find the bucket name in an S3 XML listing.

    Args:
        content: XML document body.

    Returns:
        Text of the first Name element, or None if not present.
    """
    root = _parse_xml(content, "bucket listing")
    for element in root.iter():
        if _local_name(element.tag) == "Name" and element.text:
            return element.text.strip()
    return None


def discover_bucket(
    client: httpx.Client,
    files_url: str,
    timeout: float | None = None,
) -> str:
    """Discover the bucket behind the file-serving endpoint.

    Args:
        client: HTTPX client instance.
        files_url: File-serving endpoint exporting an S3 XML listing.
        timeout: Request timeout in seconds.

    Returns:
        Bucket name.

    Raises:
        CatalogError: If the endpoint cannot be read or names no bucket.
    """
    logger.debug("Discovering bucket from %s", files_url)
    response = _get(client, files_url, timeout=timeout)
    bucket = parse_bucket_name(response.content)
    if not bucket:
        raise CatalogError(
            f"No bucket name found in listing from {files_url}",
            code="bucket_not_found",
        )
    logger.debug("Using bucket %s", bucket)
    return bucket


def parse_list_page(content: bytes | str) -> tuple[list[str], str | None]:
    """Parse one ListObjectsV2 result page.

    Args:
        content: XML document body.

    Returns:
        Tuple of (keys on this page, continuation token or None).
    """
    root = _parse_xml(content, "object listing")
    keys: list[str] = []
    truncated = False
    token: str | None = None

    for child in root:
        name = _local_name(child.tag)
        if name == "Contents":
            for sub in child:
                if _local_name(sub.tag) == "Key" and sub.text:
                    keys.append(sub.text)
        elif name == "IsTruncated":
            truncated = (child.text or "").strip().lower() == "true"
        elif name == "NextContinuationToken":
            token = child.text

    return keys, token if truncated else None


def list_object_keys(
    client: httpx.Client,
    bucket: str,
    prefix: str = "",
    endpoint: str | None = None,
    timeout: float | None = None,
) -> Iterator[str]:
    """Yield all object keys under a prefix.

    Args:
        client: HTTPX client instance.
        bucket: Bucket name.
        prefix: Key prefix to list.
        endpoint: Listing endpoint template with a {bucket} placeholder.
        timeout: Request timeout in seconds.

    Yields:
        Object keys, in store order.

    Raises:
        CatalogError: If a listing request fails.
    """
    url = (endpoint or DEFAULT_OBJECT_STORE_URL).format(bucket=bucket).rstrip("/") + "/"
    params = {"list-type": "2"}
    if prefix:
        params["prefix"] = prefix

    while True:
        response = _get(client, url, params=params, timeout=timeout)
        keys, token = parse_list_page(response.content)
        yield from keys
        if not token:
            return
        params = {**params, "continuation-token": token}


__all__ = [
    "DEFAULT_OBJECT_STORE_URL",
    "CatalogError",
    "discover_bucket",
    "list_object_keys",
    "parse_bucket_name",
    "parse_list_page",
]
