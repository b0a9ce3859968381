"""
Photo storage backends.

One implementation per physical storage: the app-private photo directory,
the persistent media library, and in-memory blobs for environments without
a writable filesystem. The photo locker picks one at startup.
"""

import logging
import shutil
import tempfile
import threading
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..core.exceptions import PhotoNotFoundError, StorageError
from ..core.models import SavedPhoto
from .filenames import (
    PhotoSource,
    filename_from_uri,
    generate_photo_filename,
    path_to_uri,
    uri_to_path,
)
from .media_library import Asset, MediaLibrary


logger = logging.getLogger(__name__)

MEDIA_LOOKUP_PAGE_SIZE = 200
MEDIA_LOOKUP_MAX_PAGES = 20


class PhotoBackend(ABC):
    """Storage capability used by the photo locker."""

    name = "abstract"

    @abstractmethod
    def save(self, source: PhotoSource, prefix: str = "img") -> SavedPhoto:
        """
        Store a copy of ``source`` under a newly generated filename.

        Args:
            source: File path, file:// or content:// URI, or raw bytes
            prefix: Filename prefix (e.g. "plant", "journal")
        """
        pass

    @abstractmethod
    def delete(self, uri: str) -> bool:
        """Delete the photo at a local handle; False if nothing was deleted."""
        pass

    @abstractmethod
    def exists(self, uri: str) -> bool:
        """Whether a local handle currently points at a stored photo."""
        pass

    @abstractmethod
    def resolve_filename(self, filename: str) -> Optional[str]:
        """Current local handle for a portable filename, or None."""
        pass

    @abstractmethod
    def read_bytes(self, uri: str) -> bytes:
        """
        Read a stored photo.

        Raises:
            PhotoNotFoundError: If nothing is stored at ``uri``
        """
        pass

    @abstractmethod
    def storage_size(self) -> int:
        """Total bytes stored by this backend."""
        pass


def read_source(source: PhotoSource, library: Optional[MediaLibrary] = None) -> bytes:
    """Load bytes from any supported photo source."""
    if isinstance(source, bytes):
        return source
    ref = str(source)
    if ref.startswith("content://") and library is not None:
        asset = library.get_asset_info(ref)
        if asset is None:
            raise PhotoNotFoundError(f"Source asset not found: {ref}", reference=ref)
        return library.asset_path(asset).read_bytes()
    path = uri_to_path(ref) if "://" in ref or ref.startswith("/") else Path(ref)
    if path is None or not path.is_file():
        raise PhotoNotFoundError(f"Source image not found: {ref}", reference=ref)
    return path.read_bytes()


class PrivateDirectoryBackend(PhotoBackend):
    """Photos stored as files in an app-private directory, addressed by file:// URIs."""

    name = "private_directory"

    def __init__(self, photos_dir: Path):
        self.photos_dir = Path(photos_dir)

    def _ensure_dir(self) -> None:
        if not self.photos_dir.exists():
            self.photos_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created images directory: {self.photos_dir}")

    def path_for(self, filename: str) -> Path:
        return self.photos_dir / filename

    def save(self, source: PhotoSource, prefix: str = "img") -> SavedPhoto:
        self._ensure_dir()
        filename = generate_photo_filename(source, prefix)
        destination = self.path_for(filename)
        try:
            destination.write_bytes(read_source(source))
        except OSError as e:
            raise StorageError(f"Error saving image locally: {e}") from e
        logger.debug(f"Image saved locally: {destination}")
        return SavedPhoto(uri=path_to_uri(destination), filename=filename, backend=self.name)

    def store_file(self, filename: str, data: bytes) -> str:
        """Write bytes under an exact filename; returns the file URI."""
        self._ensure_dir()
        destination = self.path_for(filename)
        destination.write_bytes(data)
        return path_to_uri(destination)

    def delete(self, uri: str) -> bool:
        path = uri_to_path(uri)
        if path is None or not path.is_file():
            return False
        try:
            path.unlink()
        except OSError as e:
            logger.error(f"Error deleting image {uri}: {e}")
            return False
        logger.debug(f"Image deleted: {uri}")
        return True

    def exists(self, uri: str) -> bool:
        path = uri_to_path(uri)
        return bool(path and path.is_file())

    def resolve_filename(self, filename: str) -> Optional[str]:
        clean = filename_from_uri(filename)
        if not clean:
            return None
        path = self.path_for(clean)
        return path_to_uri(path) if path.is_file() else None

    def read_bytes(self, uri: str) -> bytes:
        path = uri_to_path(uri)
        if path is None or not path.is_file():
            raise PhotoNotFoundError(f"Image not found: {uri}", reference=uri)
        return path.read_bytes()

    def list_files(self) -> List[Path]:
        if not self.photos_dir.exists():
            return []
        return sorted(p for p in self.photos_dir.iterdir() if p.is_file())

    def storage_size(self) -> int:
        try:
            return sum(p.stat().st_size for p in self.list_files())
        except OSError as e:
            logger.error(f"Error calculating storage size: {e}")
            return 0


class MediaLibraryBackend(PhotoBackend):
    """
    Photos stored as media library assets, tagged into a named album.

    Falls back to the private directory when the library denies permission.
    Filename lookups go through a lazily built cache of the library (the
    album first, then everything) that is dropped whenever assets change.
    """

    name = "media_library"

    def __init__(
        self,
        library: MediaLibrary,
        fallback: PrivateDirectoryBackend,
        album_name: str = "GardenPlanner",
        staging_dir: Optional[Path] = None,
    ):
        self.library = library
        self.fallback = fallback
        self.album_name = album_name
        self.staging_dir = Path(staging_dir) if staging_dir else None
        self._lookup: Optional[Dict[str, str]] = None
        self._lookup_lock = threading.Lock()

    # -- lookup cache ---------------------------------------------------

    def clear_lookup_cache(self) -> None:
        with self._lookup_lock:
            self._lookup = None

    def _scan(self, lookup: Dict[str, str], album=None) -> None:
        after = None
        for _ in range(MEDIA_LOOKUP_MAX_PAGES):
            page = self.library.get_assets(MEDIA_LOOKUP_PAGE_SIZE, after=after, album=album)
            for asset in page.assets:
                lookup[str(asset.id)] = asset.uri
                # First hit wins, so album assets shadow same-named strays
                lookup.setdefault(asset.filename.lower(), asset.uri)
            if not page.has_next_page or not page.end_cursor:
                break
            after = page.end_cursor

    def _get_lookup(self) -> Dict[str, str]:
        with self._lookup_lock:
            if self._lookup is not None:
                return self._lookup
            lookup: Dict[str, str] = {}
            if not self.library.request_permission():
                return lookup
            try:
                album = self.library.get_album(self.album_name)
                if album:
                    self._scan(lookup, album)
                self._scan(lookup)
            except (OSError, StorageError) as e:
                # Not cached, so the next lookup scans again
                logger.warning(f"Failed to build media library lookup cache: {e}")
                return lookup
            self._lookup = lookup
            return lookup

    # -- capability -----------------------------------------------------

    def _tag_album(self, asset: Asset) -> None:
        try:
            album = self.library.get_album(self.album_name)
            if album is None:
                self.library.create_album(self.album_name, asset)
            else:
                self.library.add_assets_to_album([asset], album)
        except (OSError, StorageError) as e:
            logger.warning(f"Could not create/add to album, but image is saved: {e}")

    def save(self, source: PhotoSource, prefix: str = "img") -> SavedPhoto:
        if not self.library.request_permission():
            logger.info("Media library unavailable, using private directory for image storage")
            return self.fallback.save(source, prefix)

        filename = generate_photo_filename(source, prefix)
        # Stage a copy under the generated name; the asset keeps that filename
        # and picked library items are never modified in place.
        staging_root = Path(tempfile.mkdtemp(dir=self.staging_dir))
        staged = staging_root / filename
        try:
            staged.write_bytes(read_source(source, self.library))
            asset = self.library.create_asset(staged)
        finally:
            shutil.rmtree(staging_root, ignore_errors=True)
        self.clear_lookup_cache()
        self._tag_album(asset)
        logger.debug(f"Image saved to media library: {asset.uri}")
        return SavedPhoto(uri=asset.uri, filename=asset.filename, backend=self.name)

    def import_file(self, path: Path) -> Asset:
        """Create an asset from an existing file (keeping its name) and tag it."""
        asset = self.library.create_asset(path)
        self._tag_album(asset)
        return asset

    def delete(self, uri: str) -> bool:
        if uri.startswith("content://"):
            asset = self.library.get_asset_info(uri)
            if asset is not None:
                self.library.delete_assets([asset.id])
                self.clear_lookup_cache()
                logger.debug(f"Image deleted from media library: {uri}")
                return True
            return False
        return self.fallback.delete(uri)

    def exists(self, uri: str) -> bool:
        if uri.startswith("content://"):
            return self.library.get_asset_info(uri) is not None
        return self.fallback.exists(uri)

    def resolve_filename(self, filename: str) -> Optional[str]:
        asset = self.library.get_asset_info(filename)
        if asset is not None:
            return asset.uri
        clean = filename_from_uri(filename)
        if clean:
            uri = self._get_lookup().get(clean.lower())
            if uri:
                return uri
        return self.fallback.resolve_filename(filename)

    def read_bytes(self, uri: str) -> bytes:
        if uri.startswith("content://"):
            asset = self.library.get_asset_info(uri)
            if asset is None:
                raise PhotoNotFoundError(f"Media asset not found: {uri}", reference=uri)
            return self.library.asset_path(asset).read_bytes()
        return self.fallback.read_bytes(uri)

    def storage_size(self) -> int:
        total = self.fallback.storage_size()
        album = self.library.get_album(self.album_name)
        if album is None:
            return total
        after = None
        for _ in range(MEDIA_LOOKUP_MAX_PAGES):
            page = self.library.get_assets(MEDIA_LOOKUP_PAGE_SIZE, after=after, album=album)
            total += sum(asset.size for asset in page.assets)
            if not page.has_next_page or not page.end_cursor:
                break
            after = page.end_cursor
        return total


class BlobBackend(PhotoBackend):
    """
    Photos held in memory under ``blob:`` handles.

    Used where there is no writable filesystem. Handles only live as long as
    the process.
    """

    name = "blob"

    def __init__(self):
        self._blobs: Dict[str, Tuple[str, bytes]] = {}
        self._by_filename: Dict[str, str] = {}
        self._lock = threading.Lock()

    def put(self, filename: str, data: bytes) -> str:
        """Store bytes under an exact filename; returns the blob handle."""
        uri = f"blob:gardensync/{uuid.uuid4()}"
        with self._lock:
            self._blobs[uri] = (filename, data)
            self._by_filename[filename.lower()] = uri
        return uri

    def save(self, source: PhotoSource, prefix: str = "img") -> SavedPhoto:
        filename = generate_photo_filename(source, prefix)
        uri = self.put(filename, read_source(source))
        return SavedPhoto(uri=uri, filename=filename, backend=self.name)

    def delete(self, uri: str) -> bool:
        with self._lock:
            entry = self._blobs.pop(uri, None)
            if entry is None:
                return False
            if self._by_filename.get(entry[0].lower()) == uri:
                del self._by_filename[entry[0].lower()]
        return True

    def exists(self, uri: str) -> bool:
        with self._lock:
            return uri in self._blobs

    def resolve_filename(self, filename: str) -> Optional[str]:
        clean = filename_from_uri(filename)
        if not clean:
            return None
        with self._lock:
            return self._by_filename.get(clean.lower())

    def read_bytes(self, uri: str) -> bytes:
        with self._lock:
            entry = self._blobs.get(uri)
        if entry is None:
            raise PhotoNotFoundError(f"Blob not found: {uri}", reference=uri)
        return entry[1]

    def storage_size(self) -> int:
        with self._lock:
            return sum(len(data) for _, data in self._blobs.values())
