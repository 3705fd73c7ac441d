"""Updater exception types.

Convention:
- Every failure inside one sync attempt is raised as an ``UpdaterError``
  subclass and caught at the orchestrator boundary, where it collapses into a
  ``failed`` outcome. Nothing escapes ``SyncOrchestrator.sync``.
- ``UnsafePathError`` is also a ``ValueError`` so path validation can be used
  from schema validators, which convert ``ValueError`` into validation errors.
"""

from __future__ import annotations


class UpdaterError(Exception):
    """Base class for errors raised while updating the local release."""


class ManifestError(UpdaterError):
    """Raised when a checksum manifest cannot be parsed or fails validation."""


class TransientNetworkError(UpdaterError):
    """Raised when a manifest or file fetch fails (unreachable, HTTP error, timeout).

    The next scheduled sync retries naturally; there is no retry within a call.
    """


class CorruptStateError(UpdaterError):
    """Raised when the persisted pointer or a release manifest is unreadable."""


class CommitError(UpdaterError):
    """Raised when the staging area cannot be promoted to a release directory."""


class BaselineError(UpdaterError):
    """Raised when the embedded baseline cannot supply its manifest or files."""


class BatchError(UpdaterError):
    """Raised when one or more file operations of an install batch fail.

    The staging area is discarded; ``failed_paths`` lists every path whose copy
    or download did not complete.
    """

    def __init__(self, failed_paths: list[str], first_error: BaseException | None = None) -> None:
        self.failed_paths = failed_paths
        self.first_error = first_error
        detail = f": {first_error}" if first_error is not None else ""
        super().__init__(f"{len(failed_paths)} file operation(s) failed{detail}")


class UnsafePathError(UpdaterError, ValueError):
    """Raised when a path would resolve outside the directory it must stay in."""
