"""Release-based content updater: keeps a local, atomically swapped copy of a remote bundle."""

from updater.main import create_orchestrator, sync
from updater.services.sync_service import SyncOrchestrator, SyncOutcome, SyncResult

__all__ = [
    "SyncOrchestrator",
    "SyncOutcome",
    "SyncResult",
    "create_orchestrator",
    "sync",
]
