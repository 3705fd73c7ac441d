"""Reconciliation: decide per file whether to reuse the active copy or download it."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from updater.schemas.manifest import ChecksumManifest


class FileAction(StrEnum):
    """How a file of the new release is obtained."""

    REUSE = "reuse"
    DOWNLOAD = "download"


@dataclass(frozen=True)
class FileOperation:
    """A single step of the reconciliation plan."""

    path: str
    action: FileAction


@dataclass
class ReconcilePlan:
    """The computed install plan for one manifest."""

    release_id: str
    directories: list[str] = field(default_factory=list)
    operations: list[FileOperation] = field(default_factory=list)

    @property
    def to_reuse(self) -> list[str]:
        return [op.path for op in self.operations if op.action is FileAction.REUSE]

    @property
    def to_download(self) -> list[str]:
        return [op.path for op in self.operations if op.action is FileAction.DOWNLOAD]


def compute_plan(new: ChecksumManifest, active: ChecksumManifest | None) -> ReconcilePlan:
    """Compute the install plan for ``new`` given the active release's manifest.

    A file is reused only when the active manifest lists the same path with the
    same hash. Files missing from ``new`` are not carried over. With no active
    manifest every file is downloaded.
    """
    active_files = active.files_by_path if active is not None else {}
    plan = ReconcilePlan(release_id=new.id, directories=new.directories)

    for entry in new.files:
        previous = active_files.get(entry.path)
        if previous is not None and previous.hash == entry.hash:
            plan.operations.append(FileOperation(entry.path, FileAction.REUSE))
        else:
            plan.operations.append(FileOperation(entry.path, FileAction.DOWNLOAD))

    return plan
