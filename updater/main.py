"""Updater wiring: build an orchestrator from settings and run a sync."""

from __future__ import annotations

from typing import TYPE_CHECKING

from updater.collaborators import ContentRootActivator, NativeRuntimeGate
from updater.config import Settings
from updater.filesystem.file_store import FileStore
from updater.services.fetch_service import HttpFetcher
from updater.services.install_service import Installer
from updater.services.release_store import ReleaseStore
from updater.services.sync_service import SyncOrchestrator

if TYPE_CHECKING:
    from datetime import timedelta

    from updater.collaborators import Activator, EmbeddedBaseline, PlatformGate


def create_orchestrator(
    settings: Settings,
    baseline: EmbeddedBaseline,
    fetcher: HttpFetcher,
    activator: Activator | None = None,
    gate: PlatformGate | None = None,
) -> SyncOrchestrator:
    """Create a SyncOrchestrator wired to the local data directory."""
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    file_store = FileStore(settings.data_dir)
    store = ReleaseStore(file_store, settings)
    installer = Installer(
        store,
        file_store,
        fetcher,
        max_concurrent_transfers=settings.max_concurrent_transfers,
    )
    return SyncOrchestrator(
        settings=settings,
        file_store=file_store,
        store=store,
        installer=installer,
        manifest_fetcher=fetcher,
        activator=activator or ContentRootActivator(file_store),
        baseline=baseline,
        gate=gate or NativeRuntimeGate(),
    )


async def sync(
    remote_base: str,
    min_check_interval: timedelta | None = None,
    *,
    baseline: EmbeddedBaseline,
    settings: Settings | None = None,
    activator: Activator | None = None,
    gate: PlatformGate | None = None,
) -> bool:
    """Sync the local release with the content server at remote_base.

    Returns True if a new release was installed and activated.
    """
    settings = settings or Settings()
    async with HttpFetcher(settings) as fetcher:
        orchestrator = create_orchestrator(settings, baseline, fetcher, activator, gate)
        return await orchestrator.sync(remote_base, min_check_interval)
