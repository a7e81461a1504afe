"""Build orchestration module.

This module handles:
- Archive download and extraction
- Kernel source provisioning
- Kernel build system stages
- Device workaround hooks
- The per-version build loop
"""

from kmod_builder.builds.fetch import DownloadError, ExtractionError
from kmod_builder.builds.kernel_source import KernelSourceError
from kmod_builder.builds.stages import StageError

__all__ = ["DownloadError", "ExtractionError", "KernelSourceError", "StageError"]

# Lazy imports for submodules to avoid circular imports
# Access via kmod_builder.builds.service, etc.
