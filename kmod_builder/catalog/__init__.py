"""Archive catalog module.

This module handles:
- Parsing object keys into catalog entries
- Listing the object store
- Resolving the archives to build for a device and version
"""

from kmod_builder.catalog.keys import InvalidKeyError, parse_key
from kmod_builder.catalog.store import CatalogError

__all__ = ["CatalogError", "InvalidKeyError", "parse_key"]
