"""Release store: the active pointer and the manifests stored inside each release."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pydantic import ValidationError

from updater.exceptions import CorruptStateError, ManifestError
from updater.schemas.manifest import load_manifest
from updater.schemas.pointer import ActivePointer

if TYPE_CHECKING:
    from datetime import datetime

    from updater.config import Settings
    from updater.filesystem.file_store import FileStore
    from updater.schemas.manifest import ChecksumManifest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActiveRelease:
    """The pointer together with the manifest of the release it names."""

    pointer: ActivePointer
    manifest: ChecksumManifest

    @property
    def id(self) -> str:
        return self.pointer.id


class ReleaseStore:
    """Persisted release state under the data directory.

    Layout::

        <data_dir>/version.json            active pointer
        <data_dir>/releases/<id>/...       release content
        <data_dir>/releases/<id>/checksum.json
        <data_dir>/staging/                release being assembled
    """

    def __init__(self, file_store: FileStore, settings: Settings) -> None:
        self.file_store = file_store
        self.releases_dirname = settings.releases_dirname
        self.staging_dirname = settings.staging_dirname
        self.pointer_filename = settings.pointer_filename
        self.manifest_filename = settings.manifest_filename

    def release_dir(self, release_id: str) -> str:
        return f"{self.releases_dirname}/{release_id}"

    @property
    def staging_dir(self) -> str:
        return self.staging_dirname

    def load(self) -> ActivePointer | None:
        """Load the active pointer; missing or corrupt state means no active release."""
        try:
            return self._read_pointer()
        except CorruptStateError as exc:
            logger.warning("Ignoring corrupt release pointer: %s", exc)
            return None

    def load_active(self) -> ActiveRelease | None:
        """Load the pointer and its release manifest, or None to trigger a bootstrap."""
        pointer = self.load()
        if pointer is None:
            return None
        try:
            manifest = self.read_manifest(pointer.id)
        except CorruptStateError as exc:
            logger.warning("Active release %s is unusable: %s", pointer.id, exc)
            return None
        if manifest.id != pointer.id:
            logger.warning(
                "Release directory %s holds manifest %s; treating state as corrupt",
                pointer.id,
                manifest.id,
            )
            return None
        return ActiveRelease(pointer=pointer, manifest=manifest)

    def save(self, release_id: str, timestamp: datetime) -> ActivePointer:
        """Persist the active pointer."""
        pointer = ActivePointer(id=release_id, updated=timestamp)
        self.file_store.write_text(self.pointer_filename, pointer.model_dump_json())
        logger.debug("Pointer saved: %s (%s)", pointer.id, pointer.updated.isoformat())
        return pointer

    def read_manifest(self, release_id: str) -> ChecksumManifest:
        rel_path = f"{self.release_dir(release_id)}/{self.manifest_filename}"
        try:
            raw = self.file_store.read_bytes(rel_path)
            return load_manifest(raw)
        except (OSError, ManifestError) as exc:
            raise CorruptStateError(f"Cannot read manifest {rel_path}: {exc}") from exc

    def write_manifest(self, directory: str, manifest: ChecksumManifest) -> None:
        self.file_store.write_text(f"{directory}/{self.manifest_filename}", manifest.to_json())

    def list_releases(self) -> list[str]:
        return [
            name
            for name in self.file_store.read_dir(self.releases_dirname)
            if self.file_store.is_dir(f"{self.releases_dirname}/{name}")
        ]

    def _read_pointer(self) -> ActivePointer | None:
        if not self.file_store.exists(self.pointer_filename):
            logger.debug("No release pointer found, must be a new install")
            return None
        try:
            data = json.loads(self.file_store.read_text(self.pointer_filename))
            return ActivePointer.model_validate(data)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError) as exc:
            raise CorruptStateError(str(exc)) from exc
