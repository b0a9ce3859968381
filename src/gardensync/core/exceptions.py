"""
Custom exceptions for the gardensync package.
"""

from typing import Optional


class GardenSyncError(Exception):
    """Base exception for all gardensync errors."""
    pass


class QueueOverflowError(GardenSyncError):
    """
    The serialized local store has too many pending operations.

    Raised immediately instead of queueing without bound. Callers should back
    off and retry later.
    """

    def __init__(self, message: str, capacity: Optional[int] = None):
        super().__init__(message)
        self.capacity = capacity


class StorageError(GardenSyncError):
    """
    Error reading or writing the on-device key/value persistence layer.

    Raised when:
    - The database file cannot be opened
    - A read or write fails at the I/O level
    """
    pass


class CorruptionError(StorageError):
    """
    Cached bytes under a key could not be decoded.

    The local store heals this by resetting the key; it is never fatal.
    """

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class ConfigError(GardenSyncError):
    """Configuration file is missing or invalid."""
    pass


class ArchiveError(GardenSyncError):
    """Base class for backup archive errors."""
    pass


class MalformedArchiveError(ArchiveError):
    """
    Archive bytes are not a readable backup.

    Raised when:
    - The ZIP container is corrupt
    - backup.json is missing from the archive
    - backup.json is not valid JSON
    """
    pass


class InvalidArchiveError(ArchiveError):
    """
    Archive manifest failed structural validation.

    Fatal to an import: nothing is written when this is raised.
    """

    def __init__(self, message: str, validation_errors: list = None):
        super().__init__(message)
        self.validation_errors = validation_errors or []


class ArchiveDecryptionError(ArchiveError):
    """Encrypted archive could not be decrypted (missing or wrong key)."""
    pass


class NotAuthenticatedError(GardenSyncError):
    """Remote sync was requested without a signed-in user or fresh credential."""
    pass


class RemoteError(GardenSyncError):
    """
    Error communicating with the remote document store.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteTimeoutError(RemoteError):
    """A remote call did not complete within its timeout."""
    pass


class RemoteUnavailableError(RemoteError):
    """The remote store is unreachable or returned a server error."""
    pass


class PermissionDeniedError(RemoteError):
    """The remote store rejected the credential for this operation."""
    pass


class PartialCommitError(RemoteUnavailableError):
    """
    A chunked batch write failed part way through.

    Chunks committed before the failure stay applied; ``committed`` records how
    many write operations reached the remote store.
    """

    def __init__(self, message: str, committed: int = 0, total: int = 0):
        super().__init__(message)
        self.committed = committed
        self.total = total


class PhotoNotFoundError(GardenSyncError):
    """A photo reference does not resolve to any stored file."""

    def __init__(self, message: str, reference: Optional[str] = None):
        super().__init__(message)
        self.reference = reference


class BackupError(GardenSyncError):
    """
    Human-readable failure of an export or import.

    Raised at the orchestrator boundary; ``phase`` names the state the
    operation was in and ``cause`` holds the underlying error.
    """

    def __init__(self, message: str, phase: str = "", cause: Optional[BaseException] = None):
        super().__init__(message)
        self.phase = phase
        self.cause = cause
