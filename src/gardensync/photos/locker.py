"""
Photo locker.

Saves, deletes and resolves photos across storage backends. Records keep
only a photo's filename; ``resolve`` turns whatever reference a record or
an archive carries into a handle that is valid on this device right now.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from ..core.exceptions import PhotoNotFoundError, StorageError
from ..core.models import SavedPhoto
from .backends import BlobBackend, MediaLibraryBackend, PhotoBackend, PrivateDirectoryBackend
from .filenames import (
    PhotoSource,
    filename_from_uri,
    is_bare_filename,
    is_local_handle,
    is_remote_uri,
)
from .media_library import DirectoryMediaLibrary, MediaLibrary


logger = logging.getLogger(__name__)

_EMPTY_REFS = ("", "null", "undefined")


@dataclass
class MigrationResult:
    """Outcome of moving private-directory photos into the media library."""
    completed: bool
    success: bool
    migrated_count: int = 0
    error_count: int = 0
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "completed": self.completed,
            "success": self.success,
            "migrated_count": self.migrated_count,
            "error_count": self.error_count,
            "message": self.message,
        }


class PhotoLocker:
    """
    Filename-addressed photo storage.

    Example:
        >>> locker = PhotoLocker(PrivateDirectoryBackend(Path("photos")))
        >>> saved = locker.save("/tmp/picked.jpg", prefix="plant")
        >>> locker.resolve(saved.filename) == saved.uri
        True
    """

    def __init__(self, backend: PhotoBackend):
        self.backend = backend
        logger.debug(f"Photo locker using {backend.name} backend")

    @classmethod
    def from_config(cls, config, media_library: Optional[MediaLibrary] = None) -> "PhotoLocker":
        """
        Pick a backend by probing what this environment can do.

        No writable filesystem -> in-memory blobs. A media library with
        permission granted -> media library (private directory as fallback).
        Otherwise -> private directory.
        """
        storage = config.get_storage_config()
        if not storage.get("writable_filesystem", True):
            logger.info("No writable filesystem, photos are kept in memory")
            return cls(BlobBackend())

        private = PrivateDirectoryBackend(Path(storage["photos_dir"]))
        if media_library is None and storage.get("media_library_dir"):
            media_library = DirectoryMediaLibrary(
                Path(storage["media_library_dir"]),
                permission_granted=storage.get("media_permission", True),
            )
        if media_library is not None and media_library.request_permission():
            return cls(MediaLibraryBackend(
                media_library,
                private,
                album_name=storage.get("album_name", "GardenPlanner"),
            ))
        if media_library is not None:
            logger.info("Media library permission not granted, using private directory")
        return cls(private)

    @property
    def private_directory(self) -> Optional[PrivateDirectoryBackend]:
        """The app-private directory in use, if any."""
        if isinstance(self.backend, PrivateDirectoryBackend):
            return self.backend
        if isinstance(self.backend, MediaLibraryBackend):
            return self.backend.fallback
        return None

    # ------------------------------------------------------------------
    # Save / delete / exists
    # ------------------------------------------------------------------

    def save(self, source: PhotoSource, prefix: str = "img") -> SavedPhoto:
        """
        Store a photo under a new unique filename.

        If the media library rejects the write, the photo goes to the private
        directory instead.
        """
        try:
            return self.backend.save(source, prefix)
        except StorageError as e:
            fallback = self.private_directory
            if fallback is None or fallback is self.backend:
                raise
            logger.warning(f"Media library save failed, using private directory: {e}")
            return fallback.save(source, prefix)

    def adopt(self, path: Path) -> str:
        """
        Store an existing file under its own filename (e.g. extracted from a backup).

        Returns:
            The handle the photo now lives at
        """
        backend = self.backend
        if isinstance(backend, BlobBackend):
            return backend.put(path.name, path.read_bytes())
        if isinstance(backend, MediaLibraryBackend):
            if backend.library.request_permission():
                try:
                    asset = backend.import_file(path)
                    backend.clear_lookup_cache()
                    return asset.uri
                except (OSError, StorageError) as e:
                    logger.warning(f"Media library import of {path.name} failed, using private directory: {e}")
            backend = backend.fallback
        return backend.store_file(path.name, path.read_bytes())

    def delete(self, ref: Optional[str]) -> bool:
        """Delete a photo by any reference. Missing photos are not an error."""
        if not ref or is_remote_uri(ref):
            return False
        uri = self.resolve(ref)
        if uri is None:
            logger.debug(f"Nothing to delete for {ref}")
            return False
        return self.backend.delete(uri)

    def exists(self, ref: Optional[str]) -> bool:
        if not ref or ref.strip() in _EMPTY_REFS:
            return False
        ref = ref.strip()
        if is_local_handle(ref) or ref.startswith("blob:"):
            return self.backend.exists(ref)
        return self.resolve(ref) is not None

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, ref: Optional[str]) -> Optional[str]:
        """
        Resolve any photo reference to a currently valid handle.

        1. Remote references (http, https, data, blob) are returned unchanged.
        2. Bare filenames are looked up in the backend.
        3. Local handles that still exist are returned as-is.
        4. Anything else is reduced to its filename and looked up.

        Returns:
            A handle, or None when the photo is not stored on this device
        """
        if not ref or ref.strip() in _EMPTY_REFS:
            return None
        ref = ref.strip()

        if is_remote_uri(ref):
            return ref

        if is_bare_filename(ref):
            return self._lookup(ref)

        if is_local_handle(ref) and self.backend.exists(ref):
            return ref

        filename = filename_from_uri(ref)
        if not filename:
            return None
        return self._lookup(filename)

    def _lookup(self, filename: str) -> Optional[str]:
        uri = self.backend.resolve_filename(filename)
        if uri is None:
            logger.debug(f"Photo not found on this device: {filename}")
        return uri

    def resolve_many(self, refs: Optional[Iterable[Optional[str]]]) -> List[str]:
        """Resolve a list of references, dropping those that do not resolve."""
        if not refs:
            return []
        return [uri for uri in (self.resolve(ref) for ref in refs) if uri]

    def read_bytes(self, ref: str) -> bytes:
        """
        Read a stored photo by any local reference.

        Raises:
            PhotoNotFoundError: If the reference does not resolve to a stored photo
        """
        uri = self.resolve(ref)
        if uri is None or (is_remote_uri(uri) and not uri.startswith("blob:")):
            raise PhotoNotFoundError(f"Photo not stored on this device: {ref}", reference=ref)
        return self.backend.read_bytes(uri)

    def storage_size(self) -> int:
        """Total bytes of stored photos."""
        return self.backend.storage_size()

    # ------------------------------------------------------------------
    # Migration
    # ------------------------------------------------------------------

    def migrate_to_media_library(self) -> MigrationResult:
        """
        Move private-directory photos into the media library.

        Each source file is deleted only after its asset has been created.
        Filenames are kept, so records need no rewrite.
        """
        backend = self.backend
        if not isinstance(backend, MediaLibraryBackend):
            return MigrationResult(
                completed=True, success=True, message="Migration not needed for this storage backend"
            )

        if not backend.library.request_permission():
            return MigrationResult(
                completed=False,
                success=True,
                message="Media library permission not granted. Images will use local storage.",
            )

        files = backend.fallback.list_files()
        if not files:
            return MigrationResult(completed=True, success=True, message="No images found to migrate")

        logger.info(f"Found {len(files)} images to migrate to the media library")
        migrated = 0
        errors = 0
        for path in files:
            try:
                asset = backend.import_file(path)
            except (OSError, StorageError) as e:
                logger.error(f"Error migrating {path.name}: {e}")
                errors += 1
                continue
            try:
                path.unlink()
            except OSError as e:
                logger.warning(f"Migrated {path.name} but could not remove the original: {e}")
            migrated += 1
            logger.debug(f"Migrated: {path.name} -> {asset.uri}")

        if migrated:
            backend.clear_lookup_cache()

        return MigrationResult(
            completed=errors == 0,
            success=errors == 0,
            migrated_count=migrated,
            error_count=errors,
            message=f"Migrated {migrated} images to persistent storage. {errors} errors.",
        )
