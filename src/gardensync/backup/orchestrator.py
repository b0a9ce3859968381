"""
Backup/restore orchestrator.

Drives export (gather -> normalize -> pack -> share) and import
(unpack -> validate -> rewrite photo references -> remote -> local).
Remote writes always happen before the local cache is touched, so an import
interrupted part way leaves the local cache stale, never ahead of the remote
store.
"""

import logging
import shutil
import tempfile
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from ..archive.codec import ArchiveCodec, NamedBlob, archive_filename
from ..core.exceptions import BackupError, GardenSyncError, StorageError
from ..core.logging import OperationContext
from ..core.models import RecordKind, StorageKeys, utc_now_iso
from ..photos.filenames import uri_to_path
from ..photos.locker import PhotoLocker
from ..storage.local_store import SerializedLocalStore
from .manifest import BackupManifest
from .merge import ConflictPolicy, combine_blob, merge_by_id
from .normalize import normalize_care_profiles, normalize_catalog, normalize_locations
from .photo_refs import photo_refs, rewrite_for_import, strip_for_export
from .sources import CONFIG_BLOB_KEYS, RecordSource


logger = logging.getLogger(__name__)

MIME_TYPES = {
    "zip": "application/zip",
    "json": "application/json",
}

_BLOB_NORMALIZERS = {
    "locations": normalize_locations,
    "plantCatalog": normalize_catalog,
    "plantCareProfiles": normalize_care_profiles,
}


class BackupState(str, Enum):
    """Where an export or import currently is."""
    IDLE = "idle"
    GATHERING = "gathering"
    NORMALIZING = "normalizing"
    PACKING = "packing"
    SYNCING_REMOTE = "syncing_remote"
    PERSISTING_LOCAL = "persisting_local"
    DONE = "done"
    FAILED = "failed"


class ShareTarget(ABC):
    """Hands a finished archive to the user (share sheet, synced folder, ...)."""

    @abstractmethod
    def share(self, path: Path, mime_type: str, title: str = "Save Garden Backup") -> None:
        pass


class DirectoryShareTarget(ShareTarget):
    """Copies archives into a directory, e.g. one synced by a cloud drive client."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def share(self, path: Path, mime_type: str, title: str = "Save Garden Backup") -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        destination = self.directory / path.name
        shutil.copy2(path, destination)
        logger.info(f"Shared {path.name} ({mime_type}) to {destination}")


@dataclass
class ExportResult:
    """Outcome of an export."""
    path: Path
    format: str
    encrypted: bool
    counts: Dict[str, int] = field(default_factory=dict)
    images: List[str] = field(default_factory=list)
    skipped_images: List[str] = field(default_factory=list)
    shared: bool = False
    size_bytes: int = 0
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "path": str(self.path),
            "format": self.format,
            "encrypted": self.encrypted,
            "counts": self.counts,
            "images": self.images,
            "skipped_images": self.skipped_images,
            "shared": self.shared,
            "size_bytes": self.size_bytes,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    def summary(self) -> str:
        """Get a human-readable summary."""
        lines = [
            f"Export ({self.format}{', encrypted' if self.encrypted else ''})",
            f"  File: {self.path}",
            f"  Size: {self.size_bytes} bytes",
            "",
        ]
        lines.extend(f"  {name}: {count}" for name, count in self.counts.items())
        lines.extend([
            "",
            f"  Images: {len(self.images)}",
            f"  Images skipped: {len(self.skipped_images)}",
            f"  Shared: {self.shared}",
        ])
        return "\n".join(lines)


@dataclass
class ImportReport:
    """Outcome of an import."""
    policy: str
    format: str = ""
    encrypted: bool = False
    backup_version: str = ""
    export_date: str = ""
    imported: Dict[str, int] = field(default_factory=dict)
    local_totals: Dict[str, int] = field(default_factory=dict)
    remote_synced: bool = False
    remote_written: int = 0
    remote_deleted: Dict[str, List[str]] = field(default_factory=dict)
    config_blobs: List[str] = field(default_factory=list)
    photos_restored: int = 0
    photos_missing: List[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "policy": self.policy,
            "format": self.format,
            "encrypted": self.encrypted,
            "backup_version": self.backup_version,
            "export_date": self.export_date,
            "imported": self.imported,
            "local_totals": self.local_totals,
            "remote": {
                "synced": self.remote_synced,
                "written": self.remote_written,
                "deleted": self.remote_deleted,
            },
            "config_blobs": self.config_blobs,
            "photos": {
                "restored": self.photos_restored,
                "missing": self.photos_missing,
            },
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    def summary(self) -> str:
        """Get a human-readable summary."""
        deleted = sum(len(ids) for ids in self.remote_deleted.values())
        lines = [
            f"Import Report ({self.policy})",
            f"  Backup version: {self.backup_version}",
            f"  Exported: {self.export_date or 'unknown'}",
            f"  Format: {self.format}{' (encrypted)' if self.encrypted else ''}",
            "",
            "  Imported:",
        ]
        lines.extend(f"    {name}: {count}" for name, count in self.imported.items())
        lines.extend([
            "",
            f"  Remote synced: {self.remote_synced}",
            f"    Written: {self.remote_written}",
            f"    Deleted: {deleted}",
            "",
            f"  Config blobs: {', '.join(self.config_blobs) or 'none'}",
            f"  Photos restored: {self.photos_restored}",
            f"  Photos missing: {len(self.photos_missing)}",
        ])
        return "\n".join(lines)


class BackupOrchestrator:
    """
    Top-level export/import driver.

    The orchestrator runs one operation at a time and exposes the current
    ``state``. Every failure is re-raised as a BackupError naming the phase.
    Without a mirror client the orchestrator works against the local cache
    only; with one, imports require a signed-in user.
    """

    def __init__(
        self,
        local_store: SerializedLocalStore,
        locker: PhotoLocker,
        mirror=None,
        codec: Optional[ArchiveCodec] = None,
        export_dir: Optional[Path] = None,
        archive_format: str = "zip",
        encrypt: bool = False,
        share_target: Optional[ShareTarget] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            local_store: Serialized local store (the on-device cache)
            locker: Photo locker for reading and restoring photos
            mirror: RemoteMirrorClient, or None for local-only operation
            codec: Archive codec (defaults to one reading photos through the locker)
            export_dir: Directory export archives are written to
            archive_format: "zip" (with photos) or "json" (records only)
            encrypt: Encrypt exported archives with the codec's key
            share_target: Where finished exports are handed off, if anywhere
        """
        if archive_format not in MIME_TYPES:
            raise ValueError(f"Unsupported archive format: {archive_format}")
        self.local_store = local_store
        self.locker = locker
        self.mirror = mirror
        self.codec = codec or ArchiveCodec(reader=locker.read_bytes)
        self.export_dir = Path(export_dir) if export_dir else Path.cwd()
        self.archive_format = archive_format
        self.encrypt = encrypt
        self.share_target = share_target
        self.source = RecordSource(local_store, mirror)
        self.state = BackupState.IDLE

    @classmethod
    def from_config(
        cls,
        config,
        local_store: SerializedLocalStore,
        locker: PhotoLocker,
        mirror=None,
        share_target: Optional[ShareTarget] = None,
    ) -> "BackupOrchestrator":
        """Create an orchestrator using the ``backup`` section of a SyncConfig."""
        section = config.get_backup_config()
        codec = ArchiveCodec(
            reader=locker.read_bytes,
            compression_level=int(section.get("compression_level", 6)),
            encryption_key=config.get_backup_key(),
        )
        return cls(
            local_store,
            locker,
            mirror=mirror,
            codec=codec,
            export_dir=Path(section["export_dir"]),
            archive_format=section.get("format", "zip"),
            encrypt=bool(section.get("encrypt", False)),
            share_target=share_target,
        )

    # ------------------------------------------------------------------
    # State handling
    # ------------------------------------------------------------------

    def _transition(self, state: BackupState) -> None:
        logger.debug(f"Backup state: {self.state.value} -> {state.value}")
        self.state = state

    @contextmanager
    def _phase(self, state: BackupState, operation: str) -> Iterator[None]:
        self._transition(state)
        with OperationContext(phase=state.value):
            try:
                yield
            except BackupError:
                self._transition(BackupState.FAILED)
                raise
            except (GardenSyncError, OSError, ValueError) as e:
                self._transition(BackupState.FAILED)
                logger.error(f"{operation.capitalize()} failed during {state.value}: {e}")
                raise BackupError(
                    f"Failed to {operation} backup during {state.value.replace('_', ' ')}: {e}",
                    phase=state.value,
                    cause=e,
                ) from e
            except Exception as e:
                self._transition(BackupState.FAILED)
                logger.exception(f"Unexpected error during {operation} ({state.value})")
                raise BackupError(
                    f"Failed to {operation} backup during {state.value.replace('_', ' ')}: "
                    f"unexpected {type(e).__name__}: {e}",
                    phase=state.value,
                    cause=e,
                ) from e

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_backup(
        self,
        archive_format: Optional[str] = None,
        encrypt: Optional[bool] = None,
        share: bool = True,
    ) -> ExportResult:
        """
        Write a complete backup archive of the user's data.

        Records are read from the remote store when signed in (the local cache
        otherwise). Local photo URIs are stripped from records and the photo
        files themselves are packed alongside, keyed by filename.

        Args:
            archive_format: Override the configured format ("zip" or "json")
            encrypt: Override the configured encryption flag
            share: Hand the archive to the share target when one is configured

        Returns:
            ExportResult describing the written archive
        """
        fmt = archive_format or self.archive_format
        if fmt not in MIME_TYPES:
            raise ValueError(f"Unsupported archive format: {fmt}")
        encrypt = self.encrypt if encrypt is None else encrypt

        with OperationContext(operation="export", operation_id=uuid.uuid4().hex[:12]):
            logger.info(f"Starting backup export ({fmt})")

            with self._phase(BackupState.GATHERING, "export"):
                records = {kind: self.source.records(kind) for kind in RecordKind}
                blobs = self.source.config_blobs()

            with self._phase(BackupState.NORMALIZING, "export"):
                manifest = BackupManifest(
                    locations=_normalize_blob("locations", blobs.get("locations")),
                    plant_catalog=_normalize_blob("plantCatalog", blobs.get("plantCatalog")),
                    plant_care_profiles=_normalize_blob("plantCareProfiles", blobs.get("plantCareProfiles")),
                )
                for kind, items in records.items():
                    manifest.set_records(kind, [strip_for_export(r, kind) for r in items])
                named_blobs = self._collect_photos(records) if fmt == "zip" else []

            with self._phase(BackupState.PACKING, "export"):
                if fmt == "zip":
                    packed = self.codec.pack(manifest.to_dict(), named_blobs, encrypt=encrypt)
                else:
                    packed = self.codec.pack_json(manifest.to_dict(), encrypt=encrypt)
                self.export_dir.mkdir(parents=True, exist_ok=True)
                path = self.export_dir / archive_filename(fmt)
                path.write_bytes(packed.data)
                self.local_store.set_item(StorageKeys.LAST_EXPORT, manifest.export_date)

                result = ExportResult(
                    path=path,
                    format=fmt,
                    encrypted=packed.encrypted,
                    counts=manifest.counts(),
                    images=packed.images,
                    skipped_images=packed.skipped,
                    size_bytes=len(packed.data),
                )

                if share and self.share_target is not None:
                    self.share_target.share(path, MIME_TYPES[fmt])
                    result.shared = True

            result.completed_at = datetime.now(timezone.utc)
            self._transition(BackupState.DONE)
            logger.info(f"Backup created: {path} ({result.size_bytes} bytes, {len(result.images)} images)")
            return result

    def _collect_photos(self, records: Dict[RecordKind, List[Dict[str, Any]]]) -> List[NamedBlob]:
        blobs: List[NamedBlob] = []
        seen = set()
        for kind, items in records.items():
            for record in items:
                for filename, uri in photo_refs(record, kind):
                    if filename in seen:
                        continue
                    resolved = self.locker.resolve(filename) or (self.locker.resolve(uri) if uri else None)
                    if resolved is None:
                        logger.debug(f"Photo {filename} not on this device, not archived")
                        continue
                    seen.add(filename)
                    blobs.append(NamedBlob(filename=filename, uri=resolved))
        logger.info(f"Collected {len(blobs)} photos for archive")
        return blobs

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def import_backup(
        self,
        archive: Union[Path, str, bytes],
        policy: ConflictPolicy = ConflictPolicy.MERGE,
    ) -> ImportReport:
        """
        Restore a backup archive.

        Nothing is written when the archive is malformed, fails validation, or
        (with a mirror configured) nobody is signed in. Remote data is written
        before the local cache.

        Args:
            archive: Path to a .zip/.json archive, or its bytes
            policy: OVERWRITE replaces the user's data with the archive's;
                MERGE layers the archive's records over existing ones by id

        Returns:
            ImportReport with counts per phase

        Raises:
            BackupError: On any failure; ``phase`` and ``cause`` say where and why
        """
        policy = ConflictPolicy(policy)
        report = ImportReport(policy=policy.value)

        with OperationContext(operation="import", operation_id=uuid.uuid4().hex[:12]):
            logger.info(f"Starting backup import ({policy.value})")

            with self._phase(BackupState.GATHERING, "import"):
                user_id = self.mirror.session.require_user() if self.mirror is not None else None
                data = archive if isinstance(archive, bytes) else Path(archive).read_bytes()

            staging = Path(tempfile.mkdtemp(prefix="gardensync-import-"))
            try:
                with self._phase(BackupState.NORMALIZING, "import"):
                    unpacked = self.codec.unpack(data, target_dir=staging)
                    manifest = BackupManifest.from_dict(unpacked.manifest)
                    report.format = unpacked.format
                    report.encrypted = unpacked.encrypted
                    report.backup_version = manifest.version
                    report.export_date = manifest.export_date
                    report.imported = manifest.counts()
                    logger.info(
                        f"Importing backup from {manifest.export_date or 'unknown date'}: "
                        + ", ".join(f"{name}={count}" for name, count in report.imported.items())
                    )
                    photo_uris = self._restore_photos(unpacked.photo_uris)
                    report.photos_restored = len(photo_uris)
                    self._rewrite_records(manifest, photo_uris, user_id, report)
            finally:
                shutil.rmtree(staging, ignore_errors=True)

            incoming_blobs = {
                "locations": manifest.locations,
                "plantCatalog": manifest.plant_catalog,
                "plantCareProfiles": manifest.plant_care_profiles,
            }

            if self.mirror is not None:
                with self._phase(BackupState.SYNCING_REMOTE, "import"):
                    self._sync_remote(manifest, incoming_blobs, user_id, policy, report)
            else:
                logger.info("No remote store configured, importing into the local cache only")

            with self._phase(BackupState.PERSISTING_LOCAL, "import"):
                self._persist_local(manifest, incoming_blobs, policy, report)
                if report.remote_synced:
                    self.local_store.set_item(StorageKeys.LAST_SYNC, utc_now_iso())

            report.completed_at = datetime.now(timezone.utc)
            self._transition(BackupState.DONE)
            logger.info("Import completed successfully")
            return report

    def _restore_photos(self, extracted: Dict[str, str]) -> Dict[str, str]:
        """Move staged archive images into photo storage, keeping their filenames."""
        restored = {}
        for filename, uri in extracted.items():
            path = uri_to_path(uri)
            if path is None or not path.is_file():
                continue
            try:
                restored[filename] = self.locker.adopt(path)
            except (OSError, StorageError) as e:
                logger.warning(f"Could not restore photo {filename}: {e}")
        if restored:
            logger.info(f"Restored {len(restored)} photos from archive")
        return restored

    def _rewrite_records(
        self,
        manifest: BackupManifest,
        photo_uris: Dict[str, str],
        user_id: Optional[str],
        report: ImportReport,
    ) -> None:
        missing = set()
        for kind in RecordKind:
            rewritten = []
            for record in manifest.records(kind):
                record = rewrite_for_import(record, kind, photo_uris, self.locker.resolve)
                for filename, _ in photo_refs(record, kind):
                    if filename not in photo_uris and self.locker.resolve(filename) is None:
                        missing.add(filename)
                if user_id:
                    record["user_id"] = user_id
                rewritten.append(record)
            manifest.set_records(kind, rewritten)
        report.photos_missing = sorted(missing)
        if missing:
            logger.warning(f"{len(missing)} referenced photo(s) are not on this device")

    def _sync_remote(
        self,
        manifest: BackupManifest,
        incoming_blobs: Dict[str, Optional[Dict[str, Any]]],
        user_id: str,
        policy: ConflictPolicy,
        report: ImportReport,
    ) -> None:
        for kind in RecordKind:
            records = manifest.records(kind)
            report.remote_written += self.mirror.upsert_records(kind, records, user_id)
            if policy == ConflictPolicy.OVERWRITE:
                keep = {record["id"] for record in records}
                deleted = self.mirror.delete_absent(kind, user_id, keep)
                if deleted:
                    report.remote_deleted[kind.collection] = deleted

        if any(blob is not None for blob in incoming_blobs.values()):
            existing = {}
            if policy == ConflictPolicy.MERGE:
                existing = self.mirror.get_user_settings(user_id, throw_on_timeout=True)
            settings = {}
            for name, blob in incoming_blobs.items():
                combined = combine_blob(name, existing.get(name), blob, policy)
                if combined is not None:
                    settings[name] = combined
            self.mirror.set_user_settings(user_id, settings)

        report.remote_synced = True
        logger.info(
            f"Remote sync complete: {report.remote_written} written, "
            f"{sum(len(ids) for ids in report.remote_deleted.values())} deleted"
        )

    def _persist_local(
        self,
        manifest: BackupManifest,
        incoming_blobs: Dict[str, Optional[Dict[str, Any]]],
        policy: ConflictPolicy,
        report: ImportReport,
    ) -> None:
        for kind in RecordKind:
            incoming = manifest.records(kind)
            if policy == ConflictPolicy.MERGE:
                records = merge_by_id(self.local_store.read(kind.storage_key), incoming)
            else:
                records = incoming
            if not self.local_store.write(kind.storage_key, records):
                raise StorageError(f"Could not write {kind.collection} to the local cache")
            report.local_totals[kind.manifest_field] = len(records)

        for name, key in CONFIG_BLOB_KEYS.items():
            existing = self.source.local_blob(name) if policy == ConflictPolicy.MERGE else None
            combined = combine_blob(name, existing, incoming_blobs[name], policy)
            if combined is None:
                continue
            if not self.local_store.write(key, [combined]):
                raise StorageError(f"Could not write {name} to the local cache")
            report.config_blobs.append(name)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def stats(self) -> Dict[str, Any]:
        """Record counts in the local cache plus the last export and sync times."""
        counts = {
            kind.manifest_field: len(self.local_store.read(kind.storage_key))
            for kind in RecordKind
        }
        return {
            **counts,
            "lastExport": self.local_store.get_item(StorageKeys.LAST_EXPORT),
            "lastSync": self.local_store.get_item(StorageKeys.LAST_SYNC),
        }


def _normalize_blob(name: str, blob: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if blob is None:
        return None
    return _BLOB_NORMALIZERS[name](blob)
