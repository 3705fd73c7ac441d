"""Updater configuration loaded from environment variables."""

from __future__ import annotations

import logging
import sys
from datetime import timedelta
from pathlib import Path
from urllib.parse import urlparse

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOCALHOST_HOSTS = {"localhost", "127.0.0.1", "::1"}


class Settings(BaseSettings):
    """Updater settings."""

    model_config = SettingsConfigDict(
        env_prefix="UPDATER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    debug: bool = False

    # Persisted state layout
    data_dir: Path = Path("./data")
    releases_dirname: str = "releases"
    staging_dirname: str = "staging"
    pointer_filename: str = "version.json"
    manifest_filename: str = "checksum.json"

    # Update checks
    min_check_interval_minutes: float = Field(default=60, ge=0)
    allow_insecure_http: bool = False

    # Transfers
    connect_timeout_seconds: float = Field(default=10.0, gt=0)
    read_timeout_seconds: float = Field(default=10.0, gt=0)
    max_concurrent_transfers: int = Field(default=8, ge=1)

    @property
    def min_check_interval(self) -> timedelta:
        return timedelta(minutes=self.min_check_interval_minutes)


def validate_remote_base(remote_base: str, allow_insecure_http: bool = False) -> str:
    """Validate the content server URL and enforce HTTPS for non-localhost hosts."""
    normalized = remote_base.strip().rstrip("/")
    parsed = urlparse(normalized)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError("Remote base URL must include scheme and host (e.g. https://example.com)")

    hostname = parsed.hostname
    if parsed.scheme == "http" and not allow_insecure_http and hostname not in _LOCALHOST_HOSTS:
        raise ValueError(
            "HTTPS is required for non-localhost content servers. "
            "Set UPDATER_ALLOW_INSECURE_HTTP only on trusted networks."
        )

    return normalized


def configure_logging(debug: bool) -> None:
    """Configure updater logging."""
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stdout,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.INFO if debug else logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
