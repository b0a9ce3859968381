"""
Backup archive codec.

A backup is either a ZIP holding ``backup.json`` plus ``images/<filename>``
entries, or a bare JSON manifest. Either form can be wrapped in AES-256-GCM
encryption (magic header + 12-byte nonce + ciphertext).
"""

import hashlib
import io
import json
import logging
import os
import zipfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..core.exceptions import ArchiveDecryptionError, MalformedArchiveError
from ..photos.filenames import path_to_uri, sanitize_archive_filename


logger = logging.getLogger(__name__)

BACKUP_ENTRY = "backup.json"
IMAGES_PREFIX = "images/"
ENCRYPTION_MAGIC = b"GSENC1\n"
NONCE_SIZE = 12

BlobReader = Callable[[str], bytes]
BlobSink = Callable[[str, bytes], str]


@dataclass
class NamedBlob:
    """A photo to include in an archive: its portable filename and current location."""
    filename: str
    uri: str


@dataclass
class PackedArchive:
    """
    Result of packing.

    Attributes:
        data: Archive bytes
        images: Filenames written under images/
        skipped: Filenames (or URIs) that could not be read
        encrypted: Whether ``data`` is encrypted
    """
    data: bytes
    images: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    encrypted: bool = False


@dataclass
class UnpackResult:
    """
    Result of unpacking.

    ``photo_uris`` maps each extracted filename to the handle it now lives
    at; the importer uses it to rewrite photo references.
    """
    manifest: Dict[str, Any]
    photo_uris: Dict[str, str] = field(default_factory=dict)
    format: str = "zip"
    encrypted: bool = False


def archive_filename(fmt: str = "zip", when: Optional[datetime] = None) -> str:
    """Default export file name, e.g. ``garden-backup-2024-05-01.zip``."""
    when = when or datetime.now(timezone.utc)
    return f"garden-backup-{when.strftime('%Y-%m-%d')}.{fmt}"


def _derive_key(key: bytes) -> bytes:
    # AES-256 needs exactly 32 bytes; hash anything else to a consistent key
    if len(key) != 32:
        return hashlib.sha256(key).digest()
    return key


def encrypt_bytes(data: bytes, key: bytes) -> bytes:
    """Encrypt with AES-256-GCM: magic + nonce + ciphertext."""
    nonce = os.urandom(NONCE_SIZE)
    return ENCRYPTION_MAGIC + nonce + AESGCM(_derive_key(key)).encrypt(nonce, data, None)


def decrypt_bytes(data: bytes, key: Optional[bytes]) -> bytes:
    """Decrypt bytes produced by encrypt_bytes."""
    if not key:
        raise ArchiveDecryptionError("Archive is encrypted and no decryption key was provided")
    body = data[len(ENCRYPTION_MAGIC):]
    if len(body) <= NONCE_SIZE:
        raise MalformedArchiveError("Encrypted archive is truncated")
    nonce, ciphertext = body[:NONCE_SIZE], body[NONCE_SIZE:]
    try:
        return AESGCM(_derive_key(key)).decrypt(nonce, ciphertext, None)
    except InvalidTag as e:
        raise ArchiveDecryptionError("Archive decryption failed (wrong key or corrupted file)") from e


def is_encrypted(data: bytes) -> bool:
    return data.startswith(ENCRYPTION_MAGIC)


class ArchiveCodec:
    """
    Packs and unpacks backup archives.

    Photo bytes are pulled through ``reader`` so the codec does not need to
    know which storage backend a photo lives in.
    """

    def __init__(
        self,
        reader: Optional[BlobReader] = None,
        compression_level: int = 6,
        encryption_key: Optional[bytes] = None,
    ):
        """
        Initialize the codec.

        Args:
            reader: Returns the bytes stored at a photo URI (raises if unreadable)
            compression_level: Deflate level 0-9
            encryption_key: Key for encrypting on pack and decrypting on unpack
        """
        self.reader = reader
        self.compression_level = compression_level
        self.encryption_key = encryption_key

    # ------------------------------------------------------------------
    # Pack
    # ------------------------------------------------------------------

    def pack(self, manifest: Dict[str, Any], blobs: Iterable[NamedBlob], encrypt: bool = False) -> PackedArchive:
        """
        Pack a manifest and photos into a ZIP archive.

        Photos that cannot be read are skipped and logged. When two blobs
        share a filename only the first is written.

        Args:
            manifest: Backup manifest (JSON-serializable)
            blobs: Photos to include
            encrypt: Encrypt the archive with the codec's key
        """
        images: List[str] = []
        skipped: List[str] = []
        seen = set()

        buffer = io.BytesIO()
        with zipfile.ZipFile(
            buffer, "w", zipfile.ZIP_DEFLATED, compresslevel=self.compression_level
        ) as zf:
            zf.writestr(BACKUP_ENTRY, json.dumps(manifest, indent=2, ensure_ascii=False))

            for blob in blobs:
                if not blob.uri or not blob.uri.strip():
                    continue
                filename = sanitize_archive_filename(blob.filename)
                if not filename:
                    logger.warning(f"Skipping image with unusable filename: {blob.filename!r}")
                    skipped.append(blob.filename)
                    continue
                if filename in seen:
                    logger.debug(f"Duplicate image filename, keeping first: {filename}")
                    continue
                try:
                    data = self._read(blob.uri)
                except Exception as e:
                    logger.warning(f"Image not readable, skipping {blob.uri}: {e}")
                    skipped.append(filename)
                    continue
                zf.writestr(f"{IMAGES_PREFIX}{filename}", data)
                seen.add(filename)
                images.append(filename)
                logger.debug(f"Added image to archive: {filename}")

        data = buffer.getvalue()
        logger.info(f"Packed archive with {len(images)} images ({len(data)} bytes, {len(skipped)} skipped)")
        return self._finish(PackedArchive(data=data, images=images, skipped=skipped), encrypt)

    def pack_json(self, manifest: Dict[str, Any], encrypt: bool = False) -> PackedArchive:
        """Serialize a manifest as a JSON-only archive (no photos)."""
        data = json.dumps(manifest, indent=2, ensure_ascii=False).encode("utf-8")
        return self._finish(PackedArchive(data=data), encrypt)

    def _read(self, uri: str) -> bytes:
        if self.reader is None:
            raise ValueError("No photo reader configured")
        return self.reader(uri)

    def _finish(self, packed: PackedArchive, encrypt: bool) -> PackedArchive:
        if not encrypt:
            return packed
        if not self.encryption_key:
            raise ValueError("Encryption key is required for encryption")
        packed.data = encrypt_bytes(packed.data, self.encryption_key)
        packed.encrypted = True
        return packed

    # ------------------------------------------------------------------
    # Unpack
    # ------------------------------------------------------------------

    def unpack(
        self,
        data: bytes,
        target_dir: Optional[Path] = None,
        blob_sink: Optional[BlobSink] = None,
    ) -> UnpackResult:
        """
        Unpack archive bytes.

        Images are written into ``target_dir``; without one they are handed
        to ``blob_sink`` (e.g. an in-memory blob store) which returns the
        handle to use.

        Raises:
            MalformedArchiveError: Not a ZIP/JSON backup, or backup.json missing/invalid
            ArchiveDecryptionError: Encrypted and the key is missing or wrong
        """
        encrypted = is_encrypted(data)
        if encrypted:
            data = decrypt_bytes(data, self.encryption_key)

        if data[:2] == b"PK":
            result = self._unpack_zip(data, target_dir, blob_sink)
        elif data.lstrip(b"\xef\xbb\xbf \t\r\n")[:1] == b"{":
            result = UnpackResult(manifest=self._parse_manifest(data), format="json")
        else:
            raise MalformedArchiveError("Not a backup archive (expected ZIP or JSON)")

        result.encrypted = encrypted
        return result

    def _parse_manifest(self, raw: bytes) -> Dict[str, Any]:
        try:
            manifest = json.loads(raw.decode("utf-8-sig"))
        except (UnicodeDecodeError, ValueError) as e:
            raise MalformedArchiveError(f"Invalid backup JSON: {e}") from e
        if not isinstance(manifest, dict):
            raise MalformedArchiveError("Invalid backup JSON: top level must be an object")
        return manifest

    def _unpack_zip(
        self,
        data: bytes,
        target_dir: Optional[Path],
        blob_sink: Optional[BlobSink],
    ) -> UnpackResult:
        try:
            zf = zipfile.ZipFile(io.BytesIO(data))
        except zipfile.BadZipFile as e:
            raise MalformedArchiveError(f"Corrupt backup ZIP: {e}") from e

        with zf:
            names = zf.namelist()
            if BACKUP_ENTRY not in names:
                raise MalformedArchiveError(f"Invalid backup ZIP: missing {BACKUP_ENTRY}")
            try:
                manifest = self._parse_manifest(zf.read(BACKUP_ENTRY))
            except (zipfile.BadZipFile, OSError) as e:
                raise MalformedArchiveError(f"Cannot read {BACKUP_ENTRY}: {e}") from e

            image_entries = [
                n for n in names
                if n.startswith(IMAGES_PREFIX) and n != IMAGES_PREFIX and not n.endswith("/")
            ]
            if image_entries and target_dir is None and blob_sink is None:
                raise ValueError("unpack needs a target_dir or a blob_sink for archive images")
            if target_dir is not None:
                target_dir = Path(target_dir)
                target_dir.mkdir(parents=True, exist_ok=True)

            photo_uris: Dict[str, str] = {}
            for entry in image_entries:
                filename = sanitize_archive_filename(entry[len(IMAGES_PREFIX):])
                if not filename:
                    continue
                if filename in photo_uris:
                    logger.debug(f"Duplicate image entry, keeping first: {filename}")
                    continue
                try:
                    content = zf.read(entry)
                    if target_dir is not None:
                        destination = target_dir / filename
                        destination.write_bytes(content)
                        photo_uris[filename] = path_to_uri(destination)
                    else:
                        photo_uris[filename] = blob_sink(filename, content)
                except (OSError, zipfile.BadZipFile) as e:
                    logger.error(f"Error extracting image {entry}: {e}")
                    continue

        logger.info(f"Extracted {len(photo_uris)} images from backup")
        return UnpackResult(manifest=manifest, photo_uris=photo_uris, format="zip")
