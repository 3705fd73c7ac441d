"""Tests for staging, batch execution and atomic commit."""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING

import pytest

from tests._helpers import REMOTE_BASE, FakeContentServer, make_manifest
from updater.collaborators import DirectoryBaseline
from updater.exceptions import BaselineError, BatchError, CommitError, UpdaterError
from updater.filesystem.file_store import FileStore
from updater.services.install_service import Installer
from updater.services.reconcile_service import compute_plan
from updater.services.release_store import ReleaseStore

if TYPE_CHECKING:
    from pathlib import Path


def _seed_active_release(file_store: FileStore, release_store: ReleaseStore) -> None:
    file_store.write_bytes("releases/v1/a.js", b"a-v1")
    file_store.write_bytes("releases/v1/lib/b.js", b"b-v1")
    manifest = make_manifest("v1", {"a.js": "h1", "lib/b.js": "h2"})
    release_store.write_manifest("releases/v1", manifest)


class TestPrepareStaging:
    def test_creates_scaffolding(self, installer: Installer, file_store: FileStore) -> None:
        installer.prepare_staging(["js", "js/vendor"])
        assert file_store.is_dir("staging/js/vendor")

    def test_removes_leftover_staging(self, installer: Installer, file_store: FileStore) -> None:
        file_store.write_text("staging/stale.txt", "crashed attempt")
        installer.prepare_staging([])
        assert file_store.read_dir("staging") == []


class TestInstall:
    @pytest.mark.asyncio
    async def test_reuses_unchanged_files_and_downloads_changed(
        self,
        installer: Installer,
        file_store: FileStore,
        release_store: ReleaseStore,
        content_server: FakeContentServer,
    ) -> None:
        _seed_active_release(file_store, release_store)
        new = make_manifest("v2", {"a.js": "h1", "lib/b.js": "h2-new", "lib/c.js": "h3"})
        content_server.publish(new, {"lib/b.js": b"b-v2", "lib/c.js": b"c-v2"})

        plan = compute_plan(new, release_store.read_manifest("v1"))
        report = await installer.install(new, plan, REMOTE_BASE, "v1")

        assert report.reused == ["a.js"]
        assert sorted(report.downloaded) == ["lib/b.js", "lib/c.js"]
        assert [src.name for src in content_server.copies] == ["a.js"]
        assert sorted(content_server.downloads) == ["lib/b.js", "lib/c.js"]
        assert file_store.read_bytes("staging/a.js") == b"a-v1"
        assert file_store.read_bytes("staging/lib/b.js") == b"b-v2"
        assert json.loads(file_store.read_text("staging/checksum.json"))["id"] == "v2"
        # Active release untouched until commit.
        assert file_store.read_bytes("releases/v1/lib/b.js") == b"b-v1"

    @pytest.mark.asyncio
    async def test_any_failure_discards_the_whole_batch(
        self,
        installer: Installer,
        file_store: FileStore,
        release_store: ReleaseStore,
        content_server: FakeContentServer,
    ) -> None:
        _seed_active_release(file_store, release_store)
        new = make_manifest("v2", {"a.js": "h1", "x.js": "hx", "y.js": "hy", "z.js": "hz"})
        content_server.publish(new, {"x.js": b"x", "y.js": b"y", "z.js": b"z"})
        content_server.fail_paths = {"y.js"}

        plan = compute_plan(new, release_store.read_manifest("v1"))
        with pytest.raises(BatchError) as exc_info:
            await installer.install(new, plan, REMOTE_BASE, "v1")

        assert exc_info.value.failed_paths == ["y.js"]
        # Siblings were still dispatched and joined before failing.
        assert sorted(content_server.downloads) == ["x.js", "y.js", "z.js"]
        assert not file_store.exists("staging")
        assert release_store.list_releases() == ["v1"]

    @pytest.mark.asyncio
    async def test_bounds_concurrent_transfers(
        self,
        release_store: ReleaseStore,
        file_store: FileStore,
    ) -> None:
        class SlowFetcher:
            def __init__(self) -> None:
                self.in_flight = 0
                self.peak = 0

            async def download(self, url: str, dest: Path) -> None:
                self.in_flight += 1
                self.peak = max(self.peak, self.in_flight)
                await asyncio.sleep(0.01)
                dest.write_bytes(url.encode())
                self.in_flight -= 1

            async def copy(self, src: Path, dest: Path) -> None:
                raise AssertionError("nothing to copy")

        fetcher = SlowFetcher()
        installer = Installer(release_store, file_store, fetcher, max_concurrent_transfers=2)
        new = make_manifest("v1", {f"f{i}.js": f"h{i}" for i in range(6)})

        await installer.install(new, compute_plan(new, None), REMOTE_BASE, None)

        assert fetcher.peak == 2
        assert len(file_store.read_dir("staging")) == 7

    @pytest.mark.asyncio
    async def test_taken_release_name_fails_before_any_transfer(
        self,
        installer: Installer,
        file_store: FileStore,
        release_store: ReleaseStore,
        content_server: FakeContentServer,
    ) -> None:
        _seed_active_release(file_store, release_store)
        file_store.write_text("releases/v2/half-promoted.js", "leftover")
        new = make_manifest("v2", {"a.js": "h1", "c.js": "h3"})
        content_server.publish(new, {"c.js": b"c-v2"})

        plan = compute_plan(new, release_store.read_manifest("v1"))
        with pytest.raises(CommitError, match="already exists"):
            await installer.install(new, plan, REMOTE_BASE, "v1")

        assert content_server.downloads == []
        assert content_server.copies == []
        assert not file_store.exists("staging")
        assert release_store.list_releases() == ["v1"]

    @pytest.mark.asyncio
    async def test_refuses_to_reinstall_active_release(
        self,
        installer: Installer,
        file_store: FileStore,
        release_store: ReleaseStore,
    ) -> None:
        _seed_active_release(file_store, release_store)
        manifest = release_store.read_manifest("v1")

        with pytest.raises(UpdaterError, match="already active"):
            await installer.install(manifest, compute_plan(manifest, manifest), REMOTE_BASE, "v1")

        assert file_store.read_bytes("releases/v1/a.js") == b"a-v1"

    @pytest.mark.asyncio
    async def test_download_urls_are_quoted(
        self,
        installer: Installer,
        content_server: FakeContentServer,
    ) -> None:
        new = make_manifest("v1", {"img/my logo.png": "h"})
        content_server.publish(new, {"img/my%20logo.png": b"png"})

        await installer.install(new, compute_plan(new, None), REMOTE_BASE, None)

        assert content_server.downloads == ["img/my%20logo.png"]


class TestCommit:
    def test_promotes_staging(
        self, installer: Installer, file_store: FileStore, release_store: ReleaseStore
    ) -> None:
        file_store.write_text("staging/index.html", "v2")

        path = installer.commit("v2")

        assert path == file_store.resolve_absolute_path("releases/v2")
        assert file_store.read_text("releases/v2/index.html") == "v2"
        assert not file_store.exists("staging")
        assert release_store.list_releases() == ["v2"]

    def test_refuses_to_merge_into_existing_release(
        self, installer: Installer, file_store: FileStore
    ) -> None:
        file_store.write_text("releases/v2/old.html", "stale")
        file_store.write_text("staging/index.html", "v2")

        with pytest.raises(CommitError, match="already exists"):
            installer.commit("v2")

        assert file_store.read_dir("releases/v2") == ["old.html"]
        assert not file_store.exists("staging")


class TestInstallBaseline:
    @pytest.mark.asyncio
    async def test_installs_baseline_as_release(
        self,
        installer: Installer,
        baseline: DirectoryBaseline,
        file_store: FileStore,
        release_store: ReleaseStore,
    ) -> None:
        manifest = await installer.install_baseline(baseline)

        assert manifest.id == "v0"
        assert release_store.list_releases() == ["v0"]
        assert file_store.read_bytes("releases/v0/a.js") == b"console.log('v0');\n"
        assert release_store.read_manifest("v0") == manifest
        assert not file_store.exists("staging")

    @pytest.mark.asyncio
    async def test_missing_baseline_file_fails_without_release(
        self,
        installer: Installer,
        bundle_dir: Path,
        file_store: FileStore,
        release_store: ReleaseStore,
    ) -> None:
        (bundle_dir / "a.js").unlink()

        with pytest.raises(BatchError) as exc_info:
            await installer.install_baseline(DirectoryBaseline(bundle_dir))

        assert isinstance(exc_info.value.first_error, BaselineError)
        assert release_store.list_releases() == []
        assert not file_store.exists("staging")

    @pytest.mark.asyncio
    async def test_unreadable_baseline_manifest(self, installer: Installer, tmp_path: Path) -> None:
        with pytest.raises(BaselineError):
            await installer.install_baseline(DirectoryBaseline(tmp_path / "nowhere"))

    @pytest.mark.asyncio
    async def test_replaces_incomplete_baseline_directory(
        self,
        installer: Installer,
        baseline: DirectoryBaseline,
        file_store: FileStore,
        release_store: ReleaseStore,
    ) -> None:
        file_store.write_text("releases/v0/partial.js", "interrupted")
        file_store.write_text("releases/v3/index.html", "v3")

        await installer.install_baseline(baseline)

        assert sorted(file_store.read_dir("releases/v0")) == ["a.js", "checksum.json"]
        assert file_store.read_text("releases/v3/index.html") == "v3"
        assert release_store.list_releases() == ["v0", "v3"]
