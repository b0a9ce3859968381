"""
Command-line interface for gardensync.

Usage:
    gardensync export [--format zip|json] [--encrypt] [--share-dir DIR]
    gardensync import ARCHIVE [--policy merge|overwrite]
    gardensync stats
    gardensync photos resolve REF [REF ...]
    gardensync photos migrate
    gardensync photos size
    gardensync queue replay

Global options: -v/--verbose, --config PATH, --json
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from .backup import BackupOrchestrator, ConflictPolicy, DirectoryShareTarget
from .config import SyncConfig
from .core.exceptions import BackupError, ConfigError, GardenSyncError, NotAuthenticatedError
from .core.logging import configure_logging
from .photos import PhotoLocker
from .remote import FirestoreRestStore, RemoteMirrorClient, StaticSession
from .storage import OfflineQueue, SerializedLocalStore, SqliteKeyValueStore


logger = logging.getLogger(__name__)


def setup_logging(config: Optional[SyncConfig], verbose: bool = False) -> None:
    """Configure logging from the config's logging section."""
    section = config.get_logging_config() if config else {}
    if verbose:
        level = logging.DEBUG
    else:
        level = getattr(logging, str(section.get("level", "INFO")).upper(), logging.INFO)
    configure_logging(level=level, structured=bool(section.get("structured", False)))


class Context:
    """The components a command works with, built from configuration."""

    def __init__(self, config: SyncConfig):
        self.config = config
        storage = config.get_storage_config()
        self.local_store = SerializedLocalStore.from_config(
            SqliteKeyValueStore(Path(storage["db_path"])), config
        )
        self.locker = PhotoLocker.from_config(config)
        self.mirror = build_mirror(config)

    def orchestrator(self, share_dir: Optional[str] = None) -> BackupOrchestrator:
        share_target = DirectoryShareTarget(Path(share_dir)) if share_dir else None
        return BackupOrchestrator.from_config(
            self.config, self.local_store, self.locker, mirror=self.mirror, share_target=share_target
        )

    def close(self) -> None:
        if self.mirror is not None:
            self.mirror.close()
        self.local_store.close()


def build_mirror(config: SyncConfig) -> Optional[RemoteMirrorClient]:
    """Build a remote mirror client when a project and a signed-in user are configured."""
    remote = config.get_remote_config()
    if not remote.get("project_id"):
        logger.debug("No remote project configured, running local-only")
        return None
    session = StaticSession(remote.get("user_id") or None, config.get_remote_token() or "")
    store = FirestoreRestStore(
        remote["project_id"],
        session,
        api_base=remote.get("api_base", "https://firestore.googleapis.com/v1"),
        timeout=int(remote.get("timeout_ms", 15000)) / 1000.0,
    )
    return RemoteMirrorClient.from_config(store, session, config)


def emit(result: Dict[str, Any], summary: str, as_json: bool) -> None:
    if as_json:
        print(json.dumps(result, indent=2, default=str))
    else:
        print(summary)


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------

def cmd_export(ctx: Context, args) -> int:
    """Export all data to a backup archive."""
    orchestrator = ctx.orchestrator(args.share_dir)
    try:
        result = orchestrator.export_backup(
            archive_format=args.format,
            encrypt=True if args.encrypt else None,
        )
    except BackupError as e:
        logger.error(str(e))
        return 1
    emit(result.to_dict(), result.summary(), args.json)
    return 0


def cmd_import(ctx: Context, args) -> int:
    """Import a backup archive."""
    archive_path = Path(args.archive)
    if not archive_path.exists():
        logger.error(f"Archive not found: {archive_path}")
        return 1
    try:
        report = ctx.orchestrator().import_backup(archive_path, policy=ConflictPolicy(args.policy))
    except BackupError as e:
        logger.error(str(e))
        for problem in getattr(e.cause, "validation_errors", []):
            logger.error(f"  {problem}")
        return 1
    emit(report.to_dict(), report.summary(), args.json)
    return 0


def cmd_stats(ctx: Context, args) -> int:
    """Show local cache statistics."""
    stats = ctx.orchestrator().stats()
    lines = ["Backup statistics"]
    lines.extend(f"  {name}: {value}" for name, value in stats.items())
    emit(stats, "\n".join(lines), args.json)
    return 0


def cmd_photos(ctx: Context, args) -> int:
    """Photo storage maintenance."""
    if args.photos_command == "resolve":
        resolved = {ref: ctx.locker.resolve(ref) for ref in args.refs}
        lines = [f"{ref} -> {uri or 'not found'}" for ref, uri in resolved.items()]
        emit(resolved, "\n".join(lines), args.json)
        return 0 if all(resolved.values()) else 1

    if args.photos_command == "migrate":
        result = ctx.locker.migrate_to_media_library()
        emit(result.to_dict(), result.message, args.json)
        return 0 if result.success else 1

    if args.photos_command == "size":
        size = ctx.locker.storage_size()
        emit(
            {"bytes": size, "backend": ctx.locker.backend.name},
            f"{size} bytes ({ctx.locker.backend.name})",
            args.json,
        )
        return 0

    logger.error("No photos command given")
    return 2


def cmd_queue(ctx: Context, args) -> int:
    """Offline queue maintenance."""
    queue = OfflineQueue(ctx.local_store)
    if args.queue_command != "replay":
        logger.error("No queue command given")
        return 2
    if ctx.mirror is None:
        logger.error("No remote store configured; nothing to replay against")
        return 1
    try:
        result = queue.replay(ctx.mirror)
    except NotAuthenticatedError as e:
        logger.error(str(e))
        return 1
    emit(
        result.to_dict(),
        f"Replayed {result.replayed}, {result.remaining} remaining, {result.dropped} dropped",
        args.json,
    )
    return 0 if result.success else 1


# ----------------------------------------------------------------------
# Entry point
# ----------------------------------------------------------------------

def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Garden data backup, restore and sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose/debug logging")
    parser.add_argument("--config", help="Path to YAML config file")
    parser.add_argument("--json", action="store_true", help="Output results as JSON")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    export_parser = subparsers.add_parser("export", help="Export all data to a backup archive")
    export_parser.add_argument("--format", choices=["zip", "json"], help="Archive format (default from config)")
    export_parser.add_argument("--encrypt", action="store_true", help="Encrypt the archive")
    export_parser.add_argument("--share-dir", help="Also copy the archive into this directory")

    import_parser = subparsers.add_parser("import", help="Import a backup archive")
    import_parser.add_argument("archive", help="Path to a .zip or .json backup")
    import_parser.add_argument(
        "--policy",
        choices=[p.value for p in ConflictPolicy],
        default=ConflictPolicy.MERGE.value,
        help="overwrite replaces existing data; merge layers the backup over it (default)",
    )

    subparsers.add_parser("stats", help="Show record counts and last export time")

    photos_parser = subparsers.add_parser("photos", help="Photo storage maintenance")
    photos_sub = photos_parser.add_subparsers(dest="photos_command")
    resolve_parser = photos_sub.add_parser("resolve", help="Resolve photo references on this device")
    resolve_parser.add_argument("refs", nargs="+", help="Filenames or URIs")
    photos_sub.add_parser("migrate", help="Move private photos into the media library")
    photos_sub.add_parser("size", help="Show total photo storage size")

    queue_parser = subparsers.add_parser("queue", help="Offline operation queue")
    queue_sub = queue_parser.add_subparsers(dest="queue_command")
    queue_sub.add_parser("replay", help="Push queued offline changes to the remote store")

    return parser.parse_args(argv)


COMMANDS = {
    "export": cmd_export,
    "import": cmd_import,
    "stats": cmd_stats,
    "photos": cmd_photos,
    "queue": cmd_queue,
}


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = SyncConfig(Path(args.config) if args.config else None)
    except ConfigError as e:
        setup_logging(None, args.verbose)
        logger.error(f"Configuration error: {e}")
        return 2
    setup_logging(config, args.verbose)

    handler = COMMANDS.get(args.command)
    if handler is None:
        logger.error("No command given (try --help)")
        return 2

    ctx = Context(config)
    try:
        return handler(ctx, args)
    except GardenSyncError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    finally:
        ctx.close()


if __name__ == "__main__":
    sys.exit(main())
