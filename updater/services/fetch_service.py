"""HTTP fetcher for remote manifests and release files."""

from __future__ import annotations

import asyncio
import logging
import shutil
from typing import TYPE_CHECKING

import httpx

from updater.exceptions import TransientNetworkError
from updater.schemas.manifest import load_manifest

if TYPE_CHECKING:
    from pathlib import Path
    from types import TracebackType

    from updater.config import Settings
    from updater.schemas.manifest import ChecksumManifest

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


def build_timeout(settings: Settings) -> httpx.Timeout:
    """Bounded connect/read timeouts for every request."""
    return httpx.Timeout(
        connect=settings.connect_timeout_seconds,
        read=settings.read_timeout_seconds,
        write=settings.read_timeout_seconds,
        pool=settings.connect_timeout_seconds,
    )


class HttpFetcher:
    """Fetches manifests and streams files from the content server.

    An injected ``client`` is owned by the caller and not closed here.
    """

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=build_timeout(settings),
            follow_redirects=True,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> HttpFetcher:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def fetch(self, url: str) -> ChecksumManifest:
        """GET and strictly parse a manifest."""
        logger.debug("Fetching manifest from %s", url)
        try:
            resp = await self.client.get(url, headers={"Accept": "application/json"})
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise TransientNetworkError(f"Could not fetch manifest from {url}: {exc}") from exc
        return load_manifest(resp.content)

    async def download(self, url: str, dest: Path) -> None:
        """Stream url into dest; a partially written file is removed on failure."""
        logger.debug("Downloading %s", url)
        dest.parent.mkdir(parents=True, exist_ok=True)
        try:
            async with self.client.stream("GET", url) as resp:
                resp.raise_for_status()
                with open(dest, "wb") as f:
                    async for chunk in resp.aiter_bytes(_CHUNK_SIZE):
                        f.write(chunk)
        except httpx.HTTPError as exc:
            dest.unlink(missing_ok=True)
            raise TransientNetworkError(f"Could not download {url}: {exc}") from exc
        except BaseException:
            dest.unlink(missing_ok=True)
            raise

    async def copy(self, src: Path, dest: Path) -> None:
        """Copy a file from a previous release byte for byte."""
        logger.debug("Copying %s", src)
        dest.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(shutil.copyfile, src, dest)
