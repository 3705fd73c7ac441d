"""Sync orchestration: one end-to-end update attempt against the content server."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from updater.config import validate_remote_base
from updater.exceptions import UpdaterError
from updater.services.datetime_service import now_utc
from updater.services.gc_service import prune_releases
from updater.services.reconcile_service import compute_plan

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime, timedelta

    from updater.collaborators import Activator, EmbeddedBaseline, ManifestFetcher, PlatformGate
    from updater.config import Settings
    from updater.filesystem.file_store import FileStore
    from updater.schemas.manifest import ChecksumManifest
    from updater.services.gc_service import GcReport
    from updater.services.install_service import InstallReport, Installer
    from updater.services.release_store import ActiveRelease, ReleaseStore

logger = logging.getLogger(__name__)


class SyncOutcome(StrEnum):
    """Result of one sync attempt. Only ``UPDATED`` means new content is live."""

    SKIPPED = "skipped"
    BOOTSTRAPPED = "bootstrapped"
    TOO_SOON = "too_soon"
    UP_TO_DATE = "up_to_date"
    FAILED = "failed"
    UPDATED = "updated"


@dataclass(frozen=True)
class SyncResult:
    outcome: SyncOutcome
    release_id: str | None = None
    reason: str = ""
    install: InstallReport | None = None
    gc: GcReport | None = None

    @property
    def updated(self) -> bool:
        return self.outcome is SyncOutcome.UPDATED


class SyncOrchestrator:
    """Drives bootstrap, gating, fetch, reconcile, commit, GC and activation.

    Callers must serialize ``sync`` calls: concurrent attempts share the
    staging area.
    """

    def __init__(
        self,
        settings: Settings,
        file_store: FileStore,
        store: ReleaseStore,
        installer: Installer,
        manifest_fetcher: ManifestFetcher,
        activator: Activator,
        baseline: EmbeddedBaseline,
        gate: PlatformGate,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.settings = settings
        self.file_store = file_store
        self.store = store
        self.installer = installer
        self.manifest_fetcher = manifest_fetcher
        self.activator = activator
        self.baseline = baseline
        self.gate = gate
        self.clock = clock

    async def sync(self, remote_base: str, min_check_interval: timedelta | None = None) -> bool:
        """Check the content server and install a new release if one is available.

        Returns True only if a new release was installed and activated. Never raises.
        """
        result = await self.run(remote_base, min_check_interval)
        return result.updated

    async def run(
        self,
        remote_base: str,
        min_check_interval: timedelta | None = None,
    ) -> SyncResult:
        """Run one sync attempt and report its outcome."""
        if not self.gate.is_native_runtime():
            logger.debug("Not a native runtime, skipping sync")
            return SyncResult(SyncOutcome.SKIPPED, reason="not a native runtime")

        interval = (
            min_check_interval
            if min_check_interval is not None
            else self.settings.min_check_interval
        )
        started = time.monotonic()
        logger.info("Starting update check")
        try:
            result = await self._run(remote_base, interval)
        except UpdaterError as exc:
            result = SyncResult(SyncOutcome.FAILED, reason=str(exc))
        except Exception as exc:
            logger.exception("Unexpected error during sync")
            result = SyncResult(SyncOutcome.FAILED, reason=f"unexpected error: {exc}")

        elapsed_ms = (time.monotonic() - started) * 1000
        if result.outcome is SyncOutcome.FAILED:
            logger.warning("Staying on current release: %s", result.reason)
        logger.info("Update check finished (%s) in %.0f ms", result.outcome, elapsed_ms)
        return result

    async def _run(self, remote_base: str, interval: timedelta) -> SyncResult:
        active = self.store.load_active()
        if active is None:
            return await self._bootstrap()

        now = self.clock()
        next_check_due = active.pointer.updated + interval
        if now < next_check_due:
            reason = (
                f"last check at {active.pointer.updated.isoformat()}, "
                f"next due at {next_check_due.isoformat()}"
            )
            logger.info("Skipping update check: %s", reason)
            return SyncResult(SyncOutcome.TOO_SOON, release_id=active.id, reason=reason)

        try:
            base = validate_remote_base(remote_base, self.settings.allow_insecure_http)
        except ValueError as exc:
            raise UpdaterError(str(exc)) from exc
        remote = await self.manifest_fetcher.fetch(f"{base}/{self.settings.manifest_filename}")

        if remote.id == active.id:
            self.store.save(active.id, now)
            logger.info("Latest release already installed (%s)", active.id)
            return SyncResult(SyncOutcome.UP_TO_DATE, release_id=active.id)

        return await self._update(active, remote, base, now)

    async def _update(
        self,
        active: ActiveRelease,
        remote: ChecksumManifest,
        base: str,
        now: datetime,
    ) -> SyncResult:
        plan = compute_plan(remote, active.manifest)
        logger.info(
            "Installing release %s over %s: %d reused, %d to download",
            remote.id,
            active.id,
            len(plan.to_reuse),
            len(plan.to_download),
        )
        report = await self.installer.install(remote, plan, base, active.id)
        release_path = self.installer.commit(remote.id)
        gc_report = prune_releases(self.store, self.file_store, keep_id=remote.id)

        self.activator.set_content_root(release_path)
        self.activator.persist_content_root()
        self.store.save(remote.id, now)
        self.activator.reload()
        logger.info("Activated release %s", remote.id)
        return SyncResult(SyncOutcome.UPDATED, release_id=remote.id, install=report, gc=gc_report)

    async def _bootstrap(self) -> SyncResult:
        logger.info("No active release, building initial release from embedded baseline")
        # Releases left from before the state was lost may still be served by the host.
        leftovers = self.store.list_releases()
        try:
            manifest = await self.installer.install_baseline(self.baseline)
        except Exception:
            self.installer.discard_staging()
            raise

        stale = [release_id for release_id in leftovers if release_id != manifest.id]
        if stale:
            logger.info(
                "Re-pointing host at baseline release %s, leaving %s for the next cleanup",
                manifest.id,
                ", ".join(stale),
            )
            release_path = self.file_store.resolve_absolute_path(
                self.store.release_dir(manifest.id)
            )
            self.activator.set_content_root(release_path)
            self.activator.persist_content_root()
        self.store.save(manifest.id, manifest.timestamp)
        if stale:
            self.activator.reload()
        logger.info("Installed baseline release %s", manifest.id)
        return SyncResult(SyncOutcome.BOOTSTRAPPED, release_id=manifest.id)
