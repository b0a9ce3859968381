"""
Photo storage addressed by portable filenames.
"""

from .backends import PhotoBackend, PrivateDirectoryBackend, MediaLibraryBackend, BlobBackend
from .filenames import (
    filename_from_uri,
    generate_photo_filename,
    is_remote_uri,
    sanitize_archive_filename,
)
from .locker import PhotoLocker, MigrationResult
from .media_library import MediaLibrary, DirectoryMediaLibrary, Asset, Album, AssetPage

__all__ = [
    "PhotoBackend",
    "PrivateDirectoryBackend",
    "MediaLibraryBackend",
    "BlobBackend",
    "filename_from_uri",
    "generate_photo_filename",
    "is_remote_uri",
    "sanitize_archive_filename",
    "PhotoLocker",
    "MigrationResult",
    "MediaLibrary",
    "DirectoryMediaLibrary",
    "Asset",
    "Album",
    "AssetPage",
]
