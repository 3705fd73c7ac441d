"""Garbage collection of superseded releases."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from updater.filesystem.file_store import FileStore
    from updater.services.release_store import ReleaseStore

logger = logging.getLogger(__name__)


@dataclass
class GcReport:
    removed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def prune_releases(store: ReleaseStore, file_store: FileStore, keep_id: str) -> GcReport:
    """Delete every release directory except ``keep_id``.

    Deletion failures are logged and skipped; the kept release is never touched.
    """
    report = GcReport()
    for name in store.list_releases():
        if name == keep_id:
            continue
        try:
            file_store.rmdir(store.release_dir(name), recursive=True)
        except OSError as exc:
            logger.warning("Could not delete old release %s: %s", name, exc)
            report.failed.append(name)
            continue
        logger.info("Deleted old release %s", name)
        report.removed.append(name)
    return report
