"""Configuration settings for kmod_builder.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_FILES_URL = "https://files.balena-cloud.com"
DEFAULT_KERNEL_GIT_SOURCE = (
    "https://git.kernel.org/pub/scm/linux/kernel/git/stable/linux.git/"
)


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the KMOD_ prefix.
    The kernel git source and the default device also honour the
    KERNEL_GIT_SOURCE and BALENA_MACHINE_NAME variables.
    """

    model_config = SettingsConfigDict(
        env_prefix="KMOD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Remote endpoints
    files_url: str = Field(
        default=DEFAULT_FILES_URL,
        description="File-serving endpoint for published archives",
    )
    bucket: str | None = Field(
        default=None,
        description="Object store bucket (discovered from files_url if not set)",
    )
    object_store_url: str | None = Field(
        default=None,
        description="Listing endpoint template with a {bucket} placeholder",
    )
    kernel_git_source: str = Field(
        default=DEFAULT_KERNEL_GIT_SOURCE,
        validation_alias=AliasChoices(
            "KMOD_KERNEL_GIT_SOURCE", "KERNEL_GIT_SOURCE", "kernel_git_source"
        ),
        description="Git remote for upstream kernel sources",
    )
    machine_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "KMOD_MACHINE_NAME", "BALENA_MACHINE_NAME", "machine_name"
        ),
        description="Default device when --device is not given",
    )

    # Paths
    kernel_src_root: Path = Field(
        default=Path("/usr/src"),
        description="Directory holding linux_<version> kernel source trees",
    )
    workarounds_script: Path = Field(
        default=Path("/usr/local/bin/workarounds.sh"),
        description="Device workaround hook run on extracted headers",
    )
    tmp_dir: Path | None = Field(
        default=None,
        description="Scratch directory for downloads (uses system default if not set)",
    )

    # Kernel build
    make_jobs: int | None = Field(
        default=None,
        ge=1,
        description="Parallel jobs passed to make as -jN",
    )
    make_vars: dict[str, str] = Field(
        default_factory=dict,
        description="Extra make variables, e.g. ARCH or CROSS_COMPILE",
    )

    # Operational
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Timeouts (in seconds, None disables)
    listing_timeout: float | None = Field(
        default=None,
        gt=0,
        description="Timeout for object store listing requests",
    )
    download_timeout: float | None = Field(
        default=None,
        gt=0,
        description="Timeout for archive downloads",
    )


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = [
    "DEFAULT_FILES_URL",
    "DEFAULT_KERNEL_GIT_SOURCE",
    "Settings",
    "get_settings",
    "print_settings_json",
]
