"""
Core types, exceptions, retry and logging utilities for gardensync.
"""

from .exceptions import (
    GardenSyncError,
    QueueOverflowError,
    StorageError,
    CorruptionError,
    ConfigError,
    ArchiveError,
    MalformedArchiveError,
    InvalidArchiveError,
    ArchiveDecryptionError,
    NotAuthenticatedError,
    RemoteError,
    RemoteTimeoutError,
    RemoteUnavailableError,
    PermissionDeniedError,
    PartialCommitError,
    PhotoNotFoundError,
    BackupError,
)
from .models import (
    StorageKeys, RecordKind, OperationType, OfflineOperation, SavedPhoto, utc_now_iso
)
from .retry import RetryConfig, RetryResult, calculate_delay, retry_with_backoff

__all__ = [
    "GardenSyncError",
    "QueueOverflowError",
    "StorageError",
    "CorruptionError",
    "ConfigError",
    "ArchiveError",
    "MalformedArchiveError",
    "InvalidArchiveError",
    "ArchiveDecryptionError",
    "NotAuthenticatedError",
    "RemoteError",
    "RemoteTimeoutError",
    "RemoteUnavailableError",
    "PermissionDeniedError",
    "PartialCommitError",
    "PhotoNotFoundError",
    "BackupError",
    "StorageKeys",
    "RecordKind",
    "OperationType",
    "OfflineOperation",
    "SavedPhoto",
    "utc_now_iso",
    "RetryConfig",
    "RetryResult",
    "calculate_delay",
    "retry_with_backoff",
]
