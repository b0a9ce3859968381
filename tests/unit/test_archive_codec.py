"""
Unit tests for the backup archive codec.
"""

import io
import json
import zipfile
from datetime import datetime, timezone

import pytest

from gardensync.archive import ArchiveCodec, NamedBlob, archive_filename, is_encrypted
from gardensync.core.exceptions import ArchiveDecryptionError, MalformedArchiveError
from gardensync.photos.filenames import uri_to_path


MANIFEST = {
    "version": "2.0.0",
    "exportDate": "2024-05-01T10:00:00.000Z",
    "plants": [{"id": "p1", "name": "Tomato", "photo_filename": "plant_1.jpg"}],
    "tasks": [],
    "taskLogs": [],
    "journal": [],
}


def reader_for(contents):
    def read(uri):
        if uri not in contents:
            raise FileNotFoundError(uri)
        return contents[uri]
    return read


class TestPack:
    """Tests for packing archives."""

    def test_zip_layout(self):
        codec = ArchiveCodec(reader=reader_for({"mem://a": b"AAA"}))

        packed = codec.pack(MANIFEST, [NamedBlob("plant_1.jpg", "mem://a")])

        with zipfile.ZipFile(io.BytesIO(packed.data)) as zf:
            assert sorted(zf.namelist()) == ["backup.json", "images/plant_1.jpg"]
            assert json.loads(zf.read("backup.json")) == MANIFEST
            assert zf.read("images/plant_1.jpg") == b"AAA"
        assert packed.images == ["plant_1.jpg"]

    def test_unreadable_blob_skipped(self):
        """Test that an unreadable photo is skipped rather than failing the pack."""
        codec = ArchiveCodec(reader=reader_for({"mem://a": b"AAA"}))

        packed = codec.pack(MANIFEST, [NamedBlob("a.jpg", "mem://a"), NamedBlob("gone.jpg", "mem://gone")])

        assert packed.images == ["a.jpg"]
        assert packed.skipped == ["gone.jpg"]

    def test_duplicate_filenames_keep_first(self):
        codec = ArchiveCodec(reader=reader_for({"mem://a": b"first", "mem://b": b"second"}))

        packed = codec.pack(MANIFEST, [NamedBlob("x.jpg", "mem://a"), NamedBlob("x.jpg", "mem://b")])

        with zipfile.ZipFile(io.BytesIO(packed.data)) as zf:
            assert zf.read("images/x.jpg") == b"first"

    def test_filenames_sanitized(self):
        codec = ArchiveCodec(reader=reader_for({"mem://a": b"A"}))

        packed = codec.pack(MANIFEST, [NamedBlob("../../escape%20me.jpg", "mem://a")])

        assert packed.images == ["escape me.jpg"]

    def test_archive_filename(self):
        when = datetime(2024, 5, 1, tzinfo=timezone.utc)

        assert archive_filename("zip", when) == "garden-backup-2024-05-01.zip"
        assert archive_filename("json", when) == "garden-backup-2024-05-01.json"


class TestUnpack:
    """Tests for unpacking archives."""

    def test_round_trip_to_directory(self, tmp_path):
        """Test that the manifest survives and every packed filename is mapped."""
        codec = ArchiveCodec(reader=reader_for({"mem://a": b"AAA", "mem://b": b"BBB"}))
        packed = codec.pack(MANIFEST, [NamedBlob("a.jpg", "mem://a"), NamedBlob("b.jpg", "mem://b")])

        result = codec.unpack(packed.data, target_dir=tmp_path / "out")

        assert result.manifest == MANIFEST
        assert result.format == "zip"
        assert set(result.photo_uris) == {"a.jpg", "b.jpg"}
        assert uri_to_path(result.photo_uris["b.jpg"]).read_bytes() == b"BBB"

    def test_unpack_to_blob_sink(self):
        codec = ArchiveCodec(reader=reader_for({"mem://a": b"AAA"}))
        packed = codec.pack(MANIFEST, [NamedBlob("a.jpg", "mem://a")])
        sunk = {}

        def sink(filename, data):
            sunk[filename] = data
            return f"blob:test/{filename}"

        result = codec.unpack(packed.data, blob_sink=sink)

        assert result.photo_uris == {"a.jpg": "blob:test/a.jpg"}
        assert sunk == {"a.jpg": b"AAA"}

    def test_json_only_archive(self):
        codec = ArchiveCodec()

        result = codec.unpack(codec.pack_json(MANIFEST).data)

        assert result.format == "json"
        assert result.manifest == MANIFEST
        assert result.photo_uris == {}

    def test_missing_backup_json(self, tmp_path):
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zf:
            zf.writestr("images/a.jpg", b"A")

        with pytest.raises(MalformedArchiveError):
            ArchiveCodec().unpack(buffer.getvalue(), target_dir=tmp_path)

    def test_not_an_archive(self):
        with pytest.raises(MalformedArchiveError):
            ArchiveCodec().unpack(b"\x00\x01garbage")

    def test_invalid_json(self):
        with pytest.raises(MalformedArchiveError):
            ArchiveCodec().unpack(b"{not json")

    def test_hostile_entry_names_stay_inside_target(self, tmp_path):
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zf:
            zf.writestr("backup.json", json.dumps(MANIFEST))
            zf.writestr("images/../../evil.jpg", b"E")
        target = tmp_path / "out"

        result = ArchiveCodec().unpack(buffer.getvalue(), target_dir=target)

        assert set(result.photo_uris) == {"evil.jpg"}
        assert uri_to_path(result.photo_uris["evil.jpg"]).parent == target.resolve()


class TestEncryption:
    """Tests for AES-GCM archive encryption."""

    def test_encrypted_round_trip(self, tmp_path):
        codec = ArchiveCodec(reader=reader_for({"mem://a": b"AAA"}), encryption_key=b"passphrase")
        packed = codec.pack(MANIFEST, [NamedBlob("a.jpg", "mem://a")], encrypt=True)

        assert packed.encrypted and is_encrypted(packed.data)
        result = codec.unpack(packed.data, target_dir=tmp_path)
        assert result.encrypted
        assert result.manifest == MANIFEST

    def test_missing_key(self):
        packed = ArchiveCodec(encryption_key=b"k" * 32).pack_json(MANIFEST, encrypt=True)

        with pytest.raises(ArchiveDecryptionError):
            ArchiveCodec().unpack(packed.data)

    def test_wrong_key(self):
        packed = ArchiveCodec(encryption_key=b"right").pack_json(MANIFEST, encrypt=True)

        with pytest.raises(ArchiveDecryptionError):
            ArchiveCodec(encryption_key=b"wrong").unpack(packed.data)

    def test_encrypt_without_key_rejected(self):
        with pytest.raises(ValueError):
            ArchiveCodec().pack_json(MANIFEST, encrypt=True)
