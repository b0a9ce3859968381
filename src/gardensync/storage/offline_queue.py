"""
Offline operation queue.

Mutations that cannot reach the remote store are appended to a persisted
queue in the local store and replayed in order once a session is available.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List

from ..core.exceptions import GardenSyncError, NotAuthenticatedError
from ..core.models import OfflineOperation, StorageKeys, utc_now_iso
from .local_store import SerializedLocalStore


logger = logging.getLogger(__name__)


@dataclass
class ReplayResult:
    """Outcome of replaying the offline queue."""
    replayed: int = 0
    remaining: int = 0
    dropped: int = 0
    error: str = ""

    @property
    def success(self) -> bool:
        return not self.error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "replayed": self.replayed,
            "remaining": self.remaining,
            "dropped": self.dropped,
            "error": self.error,
        }


class OfflineQueue:
    """Persisted FIFO of pending remote mutations."""

    def __init__(self, store: SerializedLocalStore):
        self.store = store

    def enqueue(self, operation: OfflineOperation) -> bool:
        """Append an operation; returns False if it could not be persisted."""
        entries = self.store.read(StorageKeys.OFFLINE_QUEUE)
        entries.append(operation.to_dict())
        saved = self.store.write(StorageKeys.OFFLINE_QUEUE, entries)
        if saved:
            logger.info(
                f"Queued offline {operation.type.value} on {operation.kind.collection} "
                f"({len(entries)} pending)"
            )
        return saved

    def pending(self) -> List[OfflineOperation]:
        """Decode the queued operations, skipping entries that no longer parse."""
        operations = []
        for entry in self.store.read(StorageKeys.OFFLINE_QUEUE):
            try:
                operations.append(OfflineOperation.from_dict(entry))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Skipping unreadable offline queue entry: {e}")
        return operations

    def __len__(self) -> int:
        return len(self.store.read(StorageKeys.OFFLINE_QUEUE))

    def clear(self) -> bool:
        return self.store.write(StorageKeys.OFFLINE_QUEUE, [])

    def replay(self, mirror) -> ReplayResult:
        """
        Push queued operations to the remote store in order.

        Each operation is removed from the queue once it succeeds. Replay stops
        at the first failure, leaving it and everything after it queued.
        Entries that cannot be decoded are dropped.

        Args:
            mirror: RemoteMirrorClient to push through

        Returns:
            ReplayResult with counts
        """
        user_id = mirror.session.require_user()
        raw_entries = self.store.read(StorageKeys.OFFLINE_QUEUE)
        result = ReplayResult()

        remaining = list(raw_entries)
        while remaining:
            entry = remaining[0]
            try:
                operation = OfflineOperation.from_dict(entry)
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Dropping unreadable offline queue entry: {e}")
                result.dropped += 1
                remaining.pop(0)
                self.store.write(StorageKeys.OFFLINE_QUEUE, remaining)
                continue

            try:
                mirror.apply_operation(operation, user_id)
            except NotAuthenticatedError:
                raise
            except (GardenSyncError, ValueError) as e:
                logger.error(f"Offline replay stopped at {operation.operation_id}: {e}")
                result.error = str(e)
                break

            remaining.pop(0)
            self.store.write(StorageKeys.OFFLINE_QUEUE, remaining)
            result.replayed += 1

        result.remaining = len(remaining)
        if result.replayed:
            self.store.set_item(StorageKeys.LAST_SYNC, utc_now_iso())
        logger.info(
            f"Offline replay: {result.replayed} replayed, {result.remaining} remaining, "
            f"{result.dropped} dropped"
        )
        return result
