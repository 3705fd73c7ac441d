"""Checksum manifest schema: the description of a release's file set."""

from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    StrictStr,
    ValidationError,
    field_serializer,
    field_validator,
    model_validator,
)

from updater.exceptions import ManifestError
from updater.services.datetime_service import format_iso, now_utc, parse_datetime

_FORBIDDEN_ID_CHARS = frozenset({"/", "\\", "\x00", ":"})


def validate_release_id(value: str) -> str:
    """Validate a release id that will be used directly as a directory name."""
    if not value or value.strip() != value:
        raise ValueError(f"Release id must be a non-empty token: {value!r}")
    if value in {".", ".."} or value.startswith("."):
        raise ValueError(f"Release id must not be a dot name: {value!r}")
    if any(char in _FORBIDDEN_ID_CHARS for char in value):
        raise ValueError(f"Release id must not contain path separators: {value!r}")
    return value


def validate_relative_path(value: str) -> str:
    """Validate a normalized, relative, forward-slash file path."""
    if not value:
        raise ValueError("File path must not be empty")
    if "\\" in value or "\x00" in value:
        raise ValueError(f"File path contains forbidden characters: {value!r}")
    if value.startswith("/"):
        raise ValueError(f"File path must be relative: {value!r}")
    parts = value.split("/")
    if any(part in {"", ".", ".."} for part in parts):
        raise ValueError(f"File path must be normalized: {value!r}")
    return value


class FileEntry(BaseModel):
    """A single file of a release and the fingerprint of its content."""

    model_config = ConfigDict(frozen=True)

    path: StrictStr
    hash: StrictStr

    @field_validator("path")
    @classmethod
    def _check_path(cls, value: str) -> str:
        return validate_relative_path(value)

    @field_validator("hash")
    @classmethod
    def _check_hash(cls, value: str) -> str:
        if not value:
            raise ValueError("File hash must not be empty")
        return value


class ChecksumManifest(BaseModel):
    """Release manifest as served in ``checksum.json``.

    Wire format::

        {"id": "v1", "timestamp": "2024-05-01T10:00:00Z",
         "files": [{"path": "index.html", "hash": "..."}]}
    """

    model_config = ConfigDict(frozen=True)

    id: StrictStr
    timestamp: datetime
    files: list[FileEntry]

    @field_validator("id")
    @classmethod
    def _check_id(cls, value: str) -> str:
        return validate_release_id(value)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> datetime:
        if not isinstance(value, str | datetime):
            raise ValueError("timestamp must be an ISO-8601 string")
        return parse_datetime(value)

    @model_validator(mode="after")
    def _check_unique_paths(self) -> ChecksumManifest:
        seen: set[str] = set()
        duplicates: list[str] = []
        for entry in self.files:
            if entry.path in seen:
                duplicates.append(entry.path)
            seen.add(entry.path)
        if duplicates:
            joined = ", ".join(sorted(set(duplicates)))
            raise ValueError(f"Duplicate file paths in manifest: {joined}")
        return self

    @field_serializer("timestamp")
    def _serialize_timestamp(self, value: datetime) -> str:
        return format_iso(value)

    @property
    def files_by_path(self) -> dict[str, FileEntry]:
        return {entry.path: entry for entry in self.files}

    @property
    def directories(self) -> list[str]:
        """Distinct parent directories of all files, ancestors first."""
        dirs: set[str] = set()
        for entry in self.files:
            parent = PurePosixPath(entry.path).parent
            while parent != PurePosixPath("."):
                dirs.add(parent.as_posix())
                parent = parent.parent
        return sorted(dirs, key=lambda d: (d.count("/"), d))

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)


@dataclass(frozen=True)
class ManifestParseFailure:
    """Typed result for a manifest that could not be parsed."""

    reason: str


def parse_manifest(raw: str | bytes | dict[str, Any]) -> ChecksumManifest | ManifestParseFailure:
    """Parse and strictly validate a manifest payload."""
    if isinstance(raw, str | bytes):
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            return ManifestParseFailure(f"Manifest is not valid JSON: {exc}")
    else:
        data = raw

    if not isinstance(data, dict):
        return ManifestParseFailure("Manifest must be a JSON object")
    try:
        return ChecksumManifest.model_validate(data)
    except ValidationError as exc:
        errors = "; ".join(
            f"{'.'.join(str(loc) for loc in err['loc']) or 'manifest'}: {err['msg']}"
            for err in exc.errors()
        )
        return ManifestParseFailure(f"Invalid manifest: {errors}")


def load_manifest(raw: str | bytes | dict[str, Any]) -> ChecksumManifest:
    """Parse a manifest, raising ``ManifestError`` on failure."""
    result = parse_manifest(raw)
    if isinstance(result, ManifestParseFailure):
        raise ManifestError(result.reason)
    return result


def hash_file(path: Path) -> str:
    """Compute SHA-256 hash of a file."""
    sha = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            sha.update(chunk)
    return sha.hexdigest()


def build_manifest(
    content_dir: Path,
    manifest_id: str,
    timestamp: datetime | None = None,
    exclude: frozenset[str] = frozenset({"checksum.json"}),
) -> ChecksumManifest:
    """Build a manifest describing every non-hidden file under content_dir."""
    files: list[FileEntry] = []
    for root, dirs, filenames in os.walk(content_dir):
        dirs[:] = sorted(d for d in dirs if not d.startswith("."))
        for filename in sorted(filenames):
            if filename.startswith("."):
                continue
            full = Path(root) / filename
            rel = full.relative_to(content_dir).as_posix()
            if rel in exclude:
                continue
            files.append(FileEntry(path=rel, hash=hash_file(full)))
    return ChecksumManifest(id=manifest_id, timestamp=timestamp or now_utc(), files=files)
