"""
Unit tests for photo storage: filenames, backends and the locker.
"""

import random
import re
from pathlib import Path
from types import SimpleNamespace

import pytest

from gardensync.core.exceptions import PhotoNotFoundError, StorageError
from gardensync.photos import (
    BlobBackend,
    DirectoryMediaLibrary,
    MediaLibraryBackend,
    PhotoLocker,
    PrivateDirectoryBackend,
    filename_from_uri,
    generate_photo_filename,
    sanitize_archive_filename,
)
from gardensync.photos.filenames import path_to_uri


class TestFilenames:
    """Tests for photo filename helpers."""

    def test_generated_filename_format(self):
        """Test the {prefix}_{timestamp}_{suffix}.{ext} layout."""
        name = generate_photo_filename("/tmp/photo.PNG", prefix="plant", now_ms=1700000000000,
                                       rng=random.Random(1))

        assert re.match(r"^plant_1700000000000_[0-9a-z]{6}\.PNG$", name)

    def test_generated_filename_defaults_to_jpg(self):
        assert generate_photo_filename(b"raw-bytes").endswith(".jpg")
        assert generate_photo_filename("content://media/12").endswith(".jpg")

    def test_filename_from_uri_strips_query_and_decodes(self):
        assert filename_from_uri("file:///data/img%20one.jpg?v=2#frag") == "img one.jpg"
        assert filename_from_uri("") is None

    @pytest.mark.parametrize("raw,expected", [
        ("images/../../etc/passwd", "passwd"),
        ("..\\..\\evil.jpg", "evil.jpg"),
        ("nul\x00byte.jpg", "nulbyte.jpg"),
        ("a%2F..%2Fb.jpg", "b.jpg"),
        ("..", None),
    ])
    def test_sanitize_archive_filename(self, raw, expected):
        assert sanitize_archive_filename(raw) == expected


class TestResolve:
    """Tests for PhotoLocker.resolve across reference shapes."""

    def test_remote_references_unchanged(self, locker):
        for ref in ("https://example.com/a.jpg", "data:image/png;base64,AAA", "blob:xyz"):
            assert locker.resolve(ref) == ref

    def test_missing_bare_filename_resolves_to_none(self, locker):
        """Test that an unknown filename is an absent reference, not an error."""
        assert locker.resolve("img_123.jpg") is None

    def test_bare_filename_found_in_private_directory(self, locker, sample_image):
        saved = locker.save(sample_image, prefix="plant")

        assert locker.resolve(saved.filename) == saved.uri

    def test_resolve_is_idempotent(self, locker, sample_image):
        saved = locker.save(sample_image)

        assert locker.resolve(saved.filename) == locker.resolve(saved.filename)
        assert locker.resolve("nope.jpg") == locker.resolve("nope.jpg")

    def test_existing_local_handle_returned_as_is(self, locker, sample_image):
        saved = locker.save(sample_image)

        assert locker.resolve(saved.uri) == saved.uri

    def test_stale_handle_resolved_by_filename(self, locker, sample_image):
        """Test that a path from another device resolves through its filename."""
        saved = locker.save(sample_image)
        stale = f"file:///other-device/garden_images/{saved.filename}"

        assert locker.resolve(stale) == saved.uri

    def test_empty_references(self, locker):
        for ref in (None, "", "  ", "null", "undefined"):
            assert locker.resolve(ref) is None

    def test_resolve_many_drops_missing(self, locker, sample_image):
        saved = locker.save(sample_image)

        assert locker.resolve_many([saved.filename, "missing.jpg", None]) == [saved.uri]
        assert locker.resolve_many(None) == []


class TestPrivateDirectory:
    """Tests for save/delete/exists/size on the private directory backend."""

    def test_save_delete_exists(self, locker, sample_image):
        saved = locker.save(sample_image)

        assert saved.backend == "private_directory"
        assert locker.exists(saved.filename)
        assert locker.storage_size() == sample_image.stat().st_size
        assert locker.delete(saved.filename) is True
        assert not locker.exists(saved.filename)
        assert locker.delete(saved.filename) is False

    def test_delete_ignores_remote_refs(self, locker):
        assert locker.delete("https://example.com/a.jpg") is False

    def test_read_bytes(self, locker, sample_image):
        saved = locker.save(sample_image)

        assert locker.read_bytes(saved.filename) == sample_image.read_bytes()
        with pytest.raises(PhotoNotFoundError):
            locker.read_bytes("missing.jpg")

    def test_adopt_keeps_filename(self, locker, tmp_path):
        extracted = tmp_path / "plant_1_abcdef.jpg"
        extracted.write_bytes(b"jpeg")

        uri = locker.adopt(extracted)

        assert locker.resolve("plant_1_abcdef.jpg") == uri


class TestMediaLibrary:
    """Tests for the media library backend and migration."""

    @pytest.fixture
    def library(self, tmp_path):
        return DirectoryMediaLibrary(tmp_path / "library")

    @pytest.fixture
    def media_locker(self, library, photos_dir):
        return PhotoLocker(MediaLibraryBackend(library, PrivateDirectoryBackend(photos_dir)))

    def test_save_creates_tagged_asset(self, media_locker, library, sample_image):
        saved = media_locker.save(sample_image, prefix="journal")

        assert saved.uri.startswith("content://media/")
        assert saved.filename.startswith("journal_")
        album = library.get_album("GardenPlanner")
        assert album is not None
        assert [a.uri for a in library.get_assets(10, album=album).assets] == [saved.uri]

    def test_resolve_filename_case_insensitive(self, media_locker, sample_image):
        saved = media_locker.save(sample_image)

        assert media_locker.resolve(saved.filename.upper()) == saved.uri

    def test_lookup_cache_cleared_after_delete(self, media_locker, sample_image):
        saved = media_locker.save(sample_image)
        assert media_locker.resolve(saved.filename) == saved.uri

        media_locker.delete(saved.uri)

        assert media_locker.resolve(saved.filename) is None

    def test_lookup_not_cached_while_permission_denied(self, tmp_path, photos_dir, sample_image):
        library = DirectoryMediaLibrary(tmp_path / "library", permission_granted=False)
        locker = PhotoLocker(MediaLibraryBackend(library, PrivateDirectoryBackend(photos_dir)))
        assert locker.resolve("picked.jpg") is None

        library.permission_granted = True
        asset = library.create_asset(sample_image)

        assert locker.resolve("picked.jpg") == asset.uri

    def test_failed_scan_not_cached(self, library, media_locker, sample_image, monkeypatch):
        """Test that a lookup scan error is retried on the next resolve."""
        asset = library.create_asset(sample_image)
        real_get_assets = library.get_assets
        calls = []

        def flaky_get_assets(*args, **kwargs):
            calls.append(1)
            if len(calls) == 1:
                raise StorageError("library busy")
            return real_get_assets(*args, **kwargs)

        monkeypatch.setattr(library, "get_assets", flaky_get_assets)

        assert media_locker.resolve("PICKED.JPG") is None
        assert media_locker.resolve("PICKED.JPG") == asset.uri

    def test_permission_denied_falls_back_to_private(self, tmp_path, photos_dir, sample_image):
        library = DirectoryMediaLibrary(tmp_path / "library", permission_granted=False)
        locker = PhotoLocker(MediaLibraryBackend(library, PrivateDirectoryBackend(photos_dir)))

        saved = locker.save(sample_image)

        assert saved.backend == "private_directory"
        assert locker.resolve(saved.filename) == saved.uri

    def test_album_failure_is_not_fatal(self, library, photos_dir, sample_image, monkeypatch):
        def broken(*args, **kwargs):
            raise StorageError("album index locked")

        monkeypatch.setattr(library, "create_album", broken)
        locker = PhotoLocker(MediaLibraryBackend(library, PrivateDirectoryBackend(photos_dir)))

        saved = locker.save(sample_image)

        assert saved.uri.startswith("content://media/")

    def test_migration_moves_files_then_deletes_source(self, library, photos_dir, sample_image):
        """Test that each private file becomes an asset before its source is removed."""
        private = PrivateDirectoryBackend(photos_dir)
        first = private.save(sample_image, prefix="plant")
        second = private.save(sample_image, prefix="journal")
        locker = PhotoLocker(MediaLibraryBackend(library, private))

        result = locker.migrate_to_media_library()

        assert result.success and result.completed
        assert result.migrated_count == 2
        assert private.list_files() == []
        assert locker.resolve(first.filename).startswith("content://media/")
        assert locker.resolve(second.filename).startswith("content://media/")

    def test_migration_keeps_source_when_asset_creation_fails(self, library, photos_dir,
                                                              sample_image, monkeypatch):
        private = PrivateDirectoryBackend(photos_dir)
        saved = private.save(sample_image)

        def failing(source):
            raise StorageError("library full")

        monkeypatch.setattr(library, "create_asset", failing)
        result = PhotoLocker(MediaLibraryBackend(library, private)).migrate_to_media_library()

        assert result.error_count == 1
        assert not result.success
        assert private.resolve_filename(saved.filename) is not None

    def test_migration_not_needed_for_private_backend(self, locker):
        result = locker.migrate_to_media_library()

        assert result.completed and result.migrated_count == 0


class TestBlobBackend:
    """Tests for in-memory photo storage."""

    def test_save_and_resolve(self):
        locker = PhotoLocker(BlobBackend())

        saved = locker.save(b"bytes", prefix="img")

        assert saved.uri.startswith("blob:")
        assert locker.resolve(saved.filename) == saved.uri
        assert locker.read_bytes(saved.uri) == b"bytes"
        assert locker.storage_size() == 5


class TestCapabilityProbe:
    """Tests for PhotoLocker.from_config backend selection."""

    def _config(self, **storage):
        return SimpleNamespace(get_storage_config=lambda: storage)

    def test_no_writable_filesystem_uses_blobs(self, tmp_path):
        locker = PhotoLocker.from_config(self._config(writable_filesystem=False))

        assert isinstance(locker.backend, BlobBackend)

    def test_media_library_dir_selects_library(self, tmp_path):
        locker = PhotoLocker.from_config(self._config(
            photos_dir=str(tmp_path / "photos"),
            media_library_dir=str(tmp_path / "library"),
        ))

        assert isinstance(locker.backend, MediaLibraryBackend)

    def test_defaults_to_private_directory(self, tmp_path):
        locker = PhotoLocker.from_config(self._config(photos_dir=str(tmp_path / "photos")))

        assert isinstance(locker.backend, PrivateDirectoryBackend)
        assert locker.private_directory is locker.backend


def test_path_to_uri_round_trip(tmp_path):
    path = tmp_path / "a b.jpg"
    path.write_bytes(b"x")

    from gardensync.photos.filenames import uri_to_path
    assert uri_to_path(path_to_uri(path)) == Path(path).resolve()
