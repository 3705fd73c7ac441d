"""Shared test fixtures for the updater."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from tests._helpers import FakeContentServer, MutableClock, make_manifest
from updater.collaborators import ContentRootActivator, DirectoryBaseline, NativeRuntimeGate
from updater.config import Settings
from updater.filesystem.file_store import FileStore
from updater.services.install_service import Installer
from updater.services.release_store import ReleaseStore
from updater.services.sync_service import SyncOrchestrator

if TYPE_CHECKING:
    from pathlib import Path

@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(_env_file=None, data_dir=tmp_path / "data")  # type: ignore[call-arg]


@pytest.fixture
def file_store(settings: Settings) -> FileStore:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    return FileStore(settings.data_dir)


@pytest.fixture
def release_store(file_store: FileStore, settings: Settings) -> ReleaseStore:
    return ReleaseStore(file_store, settings)


@pytest.fixture
def content_server() -> FakeContentServer:
    return FakeContentServer()


@pytest.fixture
def installer(
    release_store: ReleaseStore,
    file_store: FileStore,
    content_server: FakeContentServer,
) -> Installer:
    return Installer(release_store, file_store, content_server, max_concurrent_transfers=4)


@pytest.fixture
def bundle_dir(tmp_path: Path) -> Path:
    """Embedded baseline ``v0`` with a single ``a.js``."""
    bundle = tmp_path / "bundle"
    bundle.mkdir()
    (bundle / "a.js").write_bytes(b"console.log('v0');\n")
    manifest = make_manifest("v0", {"a.js": "h1"})
    (bundle / "checksum.json").write_text(manifest.to_json())
    return bundle


@pytest.fixture
def baseline(bundle_dir: Path) -> DirectoryBaseline:
    return DirectoryBaseline(bundle_dir)


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def reloads() -> list[str]:
    return []


@pytest.fixture
def activator(file_store: FileStore, reloads: list[str]) -> ContentRootActivator:
    return ContentRootActivator(file_store, on_reload=reloads.append)


@pytest.fixture
def orchestrator(
    settings: Settings,
    file_store: FileStore,
    release_store: ReleaseStore,
    installer: Installer,
    content_server: FakeContentServer,
    activator: ContentRootActivator,
    baseline: DirectoryBaseline,
    clock: MutableClock,
) -> SyncOrchestrator:
    return SyncOrchestrator(
        settings=settings,
        file_store=file_store,
        store=release_store,
        installer=installer,
        manifest_fetcher=content_server,
        activator=activator,
        baseline=baseline,
        gate=NativeRuntimeGate(),
        clock=clock,
    )
