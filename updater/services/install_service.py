"""Installer: assemble a release in staging, then promote it atomically."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from urllib.parse import quote

from updater.exceptions import BaselineError, BatchError, CommitError, UpdaterError
from updater.services.reconcile_service import FileAction, FileOperation, compute_plan

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from updater.collaborators import EmbeddedBaseline, FileFetcher
    from updater.filesystem.file_store import FileStore
    from updater.schemas.manifest import ChecksumManifest
    from updater.services.reconcile_service import ReconcilePlan
    from updater.services.release_store import ReleaseStore

logger = logging.getLogger(__name__)


@dataclass
class InstallReport:
    """What an install batch did."""

    release_id: str
    reused: list[str] = field(default_factory=list)
    downloaded: list[str] = field(default_factory=list)


class Installer:
    """Executes reconciliation plans into the staging area and commits them."""

    def __init__(
        self,
        store: ReleaseStore,
        file_store: FileStore,
        fetcher: FileFetcher,
        max_concurrent_transfers: int = 8,
    ) -> None:
        self.store = store
        self.file_store = file_store
        self.fetcher = fetcher
        self.max_concurrent_transfers = max_concurrent_transfers

    def prepare_staging(self, directories: list[str]) -> None:
        """Create a fresh staging area with the directory scaffolding for a release."""
        staging = self.store.staging_dir
        if self.file_store.exists(staging):
            logger.info("Removing leftover staging area")
            self.file_store.rmdir(staging, recursive=True)
        self.file_store.mkdir(staging, recursive=True)
        for directory in directories:
            self.file_store.mkdir(f"{staging}/{directory}", recursive=True)

    def discard_staging(self) -> None:
        try:
            self.file_store.rmdir(self.store.staging_dir, recursive=True)
        except OSError as exc:
            logger.warning("Could not remove staging area: %s", exc)

    async def install(
        self,
        manifest: ChecksumManifest,
        plan: ReconcilePlan,
        remote_base: str,
        active_release_id: str | None,
    ) -> InstallReport:
        """Run every copy and download of the plan concurrently, then stage the manifest."""
        if plan.to_reuse and active_release_id is None:
            raise UpdaterError("Plan reuses files but no release is active")
        if manifest.id == active_release_id:
            raise UpdaterError(f"Release {manifest.id} is already active")
        self.reject_stale_target(manifest.id)
        active_dir = self.store.release_dir(active_release_id) if active_release_id else None

        self.prepare_staging(plan.directories)
        staging = self.store.staging_dir

        def transfer(op: FileOperation) -> Awaitable[None]:
            dest = self.file_store.path(f"{staging}/{op.path}")
            if op.action is FileAction.REUSE:
                src = self.file_store.path(f"{active_dir}/{op.path}")
                return self.fetcher.copy(src, dest)
            return self.fetcher.download(f"{remote_base}/{quote(op.path, safe='/')}", dest)

        await self._run_batch(plan.operations, transfer)
        self.store.write_manifest(staging, manifest)
        return InstallReport(
            release_id=manifest.id,
            reused=plan.to_reuse,
            downloaded=plan.to_download,
        )

    async def install_baseline(self, baseline: EmbeddedBaseline) -> ChecksumManifest:
        """Install the embedded baseline as the first release and return its manifest."""
        try:
            manifest = baseline.manifest()
        except UpdaterError:
            raise
        except Exception as exc:
            raise BaselineError(f"Embedded baseline manifest unavailable: {exc}") from exc

        plan = compute_plan(manifest, None)
        self.prepare_staging(plan.directories)
        staging = self.store.staging_dir

        async def write_from_baseline(op: FileOperation) -> None:
            data = await asyncio.to_thread(baseline.read_file, op.path)
            await asyncio.to_thread(self.file_store.write_bytes, f"{staging}/{op.path}", data)

        await self._run_batch(plan.operations, write_from_baseline)
        self.store.write_manifest(staging, manifest)
        target = self.store.release_dir(manifest.id)
        if self.file_store.exists(target):
            # Only reached when no release is active.
            logger.info("Replacing stale baseline directory %s", target)
            self.file_store.rmdir(target, recursive=True)
        self.commit(manifest.id)
        return manifest

    def reject_stale_target(self, release_id: str) -> None:
        """Abort before any transfer if the release directory is already taken.

        The leftover is removed so the next attempt can promote into a free name.
        """
        target = self.store.release_dir(release_id)
        if not self.file_store.exists(target):
            return
        logger.warning("Removing stale release directory %s", target)
        try:
            self.file_store.rmdir(target, recursive=True)
        except OSError as exc:
            logger.warning("Could not remove stale release directory %s: %s", target, exc)
        raise CommitError(f"Release directory {target} already exists")

    def commit(self, release_id: str) -> str:
        """Atomically rename staging to the release directory and return its absolute path."""
        target = self.store.release_dir(release_id)
        if self.file_store.exists(target):
            self.discard_staging()
            raise CommitError(f"Release directory {target} already exists")
        try:
            self.file_store.mkdir(self.store.releases_dirname, recursive=True)
            self.file_store.rename(self.store.staging_dir, target)
        except OSError as exc:
            self.discard_staging()
            raise CommitError(f"Could not promote staging to {target}: {exc}") from exc
        logger.info("Committed release %s", release_id)
        return self.file_store.resolve_absolute_path(target)

    async def _run_batch(
        self,
        operations: list[FileOperation],
        transfer: Callable[[FileOperation], Awaitable[None]],
    ) -> None:
        semaphore = asyncio.Semaphore(self.max_concurrent_transfers)

        async def guarded(op: FileOperation) -> None:
            async with semaphore:
                await transfer(op)

        results = await asyncio.gather(
            *(guarded(op) for op in operations),
            return_exceptions=True,
        )
        failures = [
            (op.path, result)
            for op, result in zip(operations, results, strict=True)
            if isinstance(result, BaseException)
        ]
        if failures:
            for path, error in failures:
                logger.warning("File operation failed for %s: %s", path, error)
            self.discard_staging()
            raise BatchError([path for path, _ in failures], failures[0][1])
