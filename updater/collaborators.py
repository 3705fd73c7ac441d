"""Host collaborator interfaces and their default implementations.

The sync engine only talks to the host through these protocols: platform
detection, network fetches, and activation of a new content root. Defaults
cover the common case of a local data directory served by a host process.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Protocol

from updater.exceptions import BaselineError
from updater.schemas.manifest import ChecksumManifest, load_manifest, validate_relative_path

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from updater.filesystem.file_store import FileStore

logger = logging.getLogger(__name__)


class PlatformGate(Protocol):
    def is_native_runtime(self) -> bool: ...


class ManifestFetcher(Protocol):
    async def fetch(self, url: str) -> ChecksumManifest: ...


class FileFetcher(Protocol):
    async def download(self, url: str, dest: Path) -> None: ...

    async def copy(self, src: Path, dest: Path) -> None: ...


class Activator(Protocol):
    def set_content_root(self, absolute_path: str) -> None: ...

    def persist_content_root(self) -> None: ...

    def reload(self) -> None: ...


class EmbeddedBaseline(Protocol):
    def manifest(self) -> ChecksumManifest: ...

    def read_file(self, path: str) -> bytes: ...


class NativeRuntimeGate:
    """Platform gate with a fixed answer, set by the host at startup."""

    def __init__(self, native: bool = True) -> None:
        self.native = native

    def is_native_runtime(self) -> bool:
        return self.native


class DirectoryBaseline:
    """Embedded baseline read from a bundled content directory.

    The directory holds the release files plus its own ``checksum.json``.
    ``content_filter`` receives ``(path, data)`` and returns the bytes to
    install; hosts that inject markup into served files strip it there.
    """

    def __init__(
        self,
        bundle_dir: Path,
        manifest_filename: str = "checksum.json",
        content_filter: Callable[[str, bytes], bytes] | None = None,
    ) -> None:
        self.bundle_dir = bundle_dir
        self.manifest_filename = manifest_filename
        self.content_filter = content_filter

    def manifest(self) -> ChecksumManifest:
        manifest_path = self.bundle_dir / self.manifest_filename
        try:
            raw = manifest_path.read_bytes()
        except OSError as exc:
            raise BaselineError(f"Cannot read baseline manifest {manifest_path}: {exc}") from exc
        return load_manifest(raw)

    def read_file(self, path: str) -> bytes:
        validate_relative_path(path)
        try:
            data = (self.bundle_dir / path).read_bytes()
        except OSError as exc:
            raise BaselineError(f"Cannot read baseline file {path}: {exc}") from exc
        if self.content_filter is not None:
            data = self.content_filter(path, data)
        return data


class ContentRootActivator:
    """Points the host at a release directory and remembers it across restarts."""

    def __init__(
        self,
        store: FileStore,
        state_filename: str = "content_root.json",
        on_reload: Callable[[str], None] | None = None,
    ) -> None:
        self.store = store
        self.state_filename = state_filename
        self.on_reload = on_reload
        self.content_root: str | None = None

    def set_content_root(self, absolute_path: str) -> None:
        logger.debug("Content root set to %s", absolute_path)
        self.content_root = absolute_path

    def persist_content_root(self) -> None:
        if self.content_root is None:
            return
        self.store.write_text(self.state_filename, json.dumps({"path": self.content_root}))

    def persisted_content_root(self) -> str | None:
        if not self.store.exists(self.state_filename):
            return None
        try:
            data = json.loads(self.store.read_text(self.state_filename))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring corrupt content root state: %s", exc)
            return None
        path = data.get("path") if isinstance(data, dict) else None
        if not isinstance(path, str):
            logger.warning("Ignoring content root state without a path")
            return None
        return path

    def reload(self) -> None:
        if self.content_root is not None and self.on_reload is not None:
            self.on_reload(self.content_root)
