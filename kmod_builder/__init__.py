"""Kernel module builder - build out-of-tree kernel modules for device OS releases.

This package discovers published kernel header/source archives per device and
OS version, prepares a matching kernel tree, and compiles kernel modules
against it.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
