"""
Backup and restore.

Export gathers every record and config blob, strips device-local photo URIs
and packs the result (with photos) into a portable archive. Import validates
an archive, rewrites photo references for this device and applies it under
an overwrite or merge policy, remote store first.
"""

from .manifest import BackupManifest, EXPORT_VERSION
from .merge import ConflictPolicy, merge_by_id, merge_catalogs, merge_care_profiles, merge_locations
from .orchestrator import (
    BackupOrchestrator,
    BackupState,
    DirectoryShareTarget,
    ExportResult,
    ImportReport,
    ShareTarget,
)
from .sources import RecordSource

__all__ = [
    "BackupManifest",
    "EXPORT_VERSION",
    "ConflictPolicy",
    "merge_by_id",
    "merge_catalogs",
    "merge_care_profiles",
    "merge_locations",
    "BackupOrchestrator",
    "BackupState",
    "DirectoryShareTarget",
    "ExportResult",
    "ImportReport",
    "ShareTarget",
    "RecordSource",
]
