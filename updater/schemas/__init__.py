"""Pydantic schemas for manifests and the active release pointer."""

from updater.schemas.manifest import (
    ChecksumManifest,
    FileEntry,
    ManifestParseFailure,
    build_manifest,
    hash_file,
    load_manifest,
    parse_manifest,
)
from updater.schemas.pointer import ActivePointer

__all__ = [
    "ActivePointer",
    "ChecksumManifest",
    "FileEntry",
    "ManifestParseFailure",
    "build_manifest",
    "hash_file",
    "load_manifest",
    "parse_manifest",
]
