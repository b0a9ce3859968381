"""
Backup manifest.

The JSON document at the heart of every archive: format version, export
time, the four record collections and the optional config blobs.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..core.exceptions import InvalidArchiveError
from ..core.models import RecordKind, utc_now_iso


logger = logging.getLogger(__name__)

EXPORT_VERSION = "2.0.0"

_LABELS = {
    RecordKind.PLANT: "plant(s) missing ID or name",
    RecordKind.TASK: "task(s) missing ID or type",
    RecordKind.TASK_LOG: "task log(s) missing ID",
    RecordKind.JOURNAL: "journal entry(ies) missing ID or type",
}


def _has_required_fields(record: Any, kind: RecordKind) -> bool:
    # Ids are opaque non-empty strings; they are the only join key
    if not isinstance(record, dict):
        return False
    record_id = record.get("id")
    if not isinstance(record_id, str) or not record_id.strip():
        return False
    return all(record.get(f) for f in kind.required_fields)


@dataclass
class BackupManifest:
    """
    Parsed and validated backup manifest.

    Attributes:
        version: Format version string of the exporting app
        export_date: ISO-8601 export time
        plants: Plant records
        tasks: Task template records
        task_logs: Task log records
        journal: Journal entry records
        locations: Location config blob (optional)
        plant_catalog: Plant catalog blob (optional)
        plant_care_profiles: Plant care profiles blob (optional)
    """
    version: str = EXPORT_VERSION
    export_date: str = field(default_factory=utc_now_iso)
    plants: List[Dict[str, Any]] = field(default_factory=list)
    tasks: List[Dict[str, Any]] = field(default_factory=list)
    task_logs: List[Dict[str, Any]] = field(default_factory=list)
    journal: List[Dict[str, Any]] = field(default_factory=list)
    locations: Optional[Dict[str, Any]] = None
    plant_catalog: Optional[Dict[str, Any]] = None
    plant_care_profiles: Optional[Dict[str, Any]] = None

    def records(self, kind: RecordKind) -> List[Dict[str, Any]]:
        return {
            RecordKind.PLANT: self.plants,
            RecordKind.TASK: self.tasks,
            RecordKind.TASK_LOG: self.task_logs,
            RecordKind.JOURNAL: self.journal,
        }[kind]

    def set_records(self, kind: RecordKind, records: List[Dict[str, Any]]) -> None:
        attr = {
            RecordKind.PLANT: "plants",
            RecordKind.TASK: "tasks",
            RecordKind.TASK_LOG: "task_logs",
            RecordKind.JOURNAL: "journal",
        }[kind]
        setattr(self, attr, records)

    def counts(self) -> Dict[str, int]:
        return {kind.manifest_field: len(self.records(kind)) for kind in RecordKind}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the archive's JSON shape."""
        data: Dict[str, Any] = {
            "version": self.version,
            "exportDate": self.export_date,
            "plants": self.plants,
            "tasks": self.tasks,
            "taskLogs": self.task_logs,
            "journal": self.journal,
        }
        if self.locations is not None:
            data["locations"] = self.locations
        if self.plant_catalog is not None:
            data["plantCatalog"] = self.plant_catalog
        if self.plant_care_profiles is not None:
            data["plantCareProfiles"] = self.plant_care_profiles
        return data

    @staticmethod
    def validate(data: Any) -> List[str]:
        """
        Check a raw manifest's structure.

        Returns:
            Human-readable problems; empty when the manifest is valid
        """
        if not isinstance(data, dict):
            return ["Backup must be a JSON object"]

        errors = []
        version = data.get("version")
        if not version or not isinstance(version, str):
            errors.append("Invalid or missing backup version")

        for name in ("plants", "tasks", "journal"):
            if not isinstance(data.get(name), list):
                errors.append(f"Invalid backup: {name} data is missing or corrupted")

        if errors:
            return errors

        for kind in RecordKind:
            records = data.get(kind.manifest_field)
            if not isinstance(records, list):
                # taskLogs is optional
                continue
            invalid = [r for r in records if not _has_required_fields(r, kind)]
            if invalid:
                errors.append(f"Backup contains {len(invalid)} invalid {_LABELS[kind]}")

            ids = [r["id"] for r in records if _has_required_fields(r, kind)]
            duplicates = len(ids) - len(set(ids))
            if duplicates:
                errors.append(f"Backup contains {duplicates} duplicate {kind.manifest_field} id(s)")
        return errors

    @classmethod
    def from_dict(cls, data: Any) -> "BackupManifest":
        """
        Validate and parse a raw manifest.

        Raises:
            InvalidArchiveError: If the structure is invalid
        """
        errors = cls.validate(data)
        if errors:
            logger.error(f"Backup validation failed: {'; '.join(errors)}")
            raise InvalidArchiveError(errors[0], validation_errors=errors)

        task_logs = data.get("taskLogs")
        export_date = data.get("exportDate")
        return cls(
            version=data["version"],
            export_date=export_date if isinstance(export_date, str) else "",
            plants=list(data["plants"]),
            tasks=list(data["tasks"]),
            task_logs=list(task_logs) if isinstance(task_logs, list) else [],
            journal=list(data["journal"]),
            locations=data.get("locations"),
            plant_catalog=data.get("plantCatalog"),
            plant_care_profiles=data.get("plantCareProfiles"),
        )
