"""
Core data models for gardensync.

Records themselves stay plain dictionaries (whatever shape the app stores);
these models describe the record kinds, the fixed local storage keys, and the
small value types passed between components.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class StorageKeys:
    """Fixed keys of the on-device key/value persistence layer."""

    PLANTS = "@garden_plants"
    TASKS = "@garden_tasks"
    TASK_LOGS = "@garden_task_logs"
    JOURNAL = "@garden_journal"
    LAST_SYNC = "@garden_last_sync"
    OFFLINE_QUEUE = "@garden_offline_queue"
    LOCATIONS = "@garden_locations"
    PLANT_CATALOG = "@garden_plant_catalog"
    PLANT_CARE_PROFILES = "@garden_plant_care_profiles"
    USER_PREFERENCES = "@garden_user_preferences"
    LAST_EXPORT = "@garden_last_export"

    ALL = (
        PLANTS, TASKS, TASK_LOGS, JOURNAL, LAST_SYNC, OFFLINE_QUEUE, LOCATIONS,
        PLANT_CATALOG, PLANT_CARE_PROFILES, USER_PREFERENCES, LAST_EXPORT,
    )


class RecordKind(str, Enum):
    """The four synchronized record kinds."""
    PLANT = "plant"
    TASK = "task"
    TASK_LOG = "task_log"
    JOURNAL = "journal"

    @property
    def collection(self) -> str:
        """Remote collection name."""
        return _KIND_META[self][0]

    @property
    def storage_key(self) -> str:
        """Local key/value store key."""
        return _KIND_META[self][1]

    @property
    def manifest_field(self) -> str:
        """Field name in the backup manifest."""
        return _KIND_META[self][2]

    @property
    def required_fields(self) -> Tuple[str, ...]:
        """Fields every record of this kind must carry in a backup."""
        return _KIND_META[self][3]

    @classmethod
    def from_value(cls, value: str) -> "RecordKind":
        """Look a kind up by value, collection name or manifest field."""
        for kind in cls:
            if value in (kind.value, kind.collection, kind.manifest_field):
                return kind
        raise ValueError(f"Unknown record kind: {value}")


_KIND_META = {
    RecordKind.PLANT: ("plants", StorageKeys.PLANTS, "plants", ("id", "name")),
    RecordKind.TASK: ("task_templates", StorageKeys.TASKS, "tasks", ("id", "task_type")),
    RecordKind.TASK_LOG: ("task_logs", StorageKeys.TASK_LOGS, "taskLogs", ("id",)),
    RecordKind.JOURNAL: ("journal_entries", StorageKeys.JOURNAL, "journal", ("id", "entry_type")),
}


class OperationType(str, Enum):
    """Kind of mutation waiting in the offline queue."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class OfflineOperation:
    """
    A remote mutation recorded while the remote store was unreachable.

    Attributes:
        type: create, update or delete
        kind: Record kind the mutation targets
        record_id: Target record id (required for update/delete)
        data: Record payload (create/update)
        timestamp: When the mutation happened locally
        operation_id: Unique id of the queue entry
    """
    type: OperationType
    kind: RecordKind
    record_id: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    timestamp: str = field(default_factory=utc_now_iso)
    operation_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "operation_id": self.operation_id,
            "type": self.type.value,
            "table": self.kind.collection,
            "id": self.record_id,
            "data": self.data,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OfflineOperation":
        """Create from dictionary."""
        return cls(
            type=OperationType(data["type"]),
            kind=RecordKind.from_value(data["table"]),
            record_id=data.get("id"),
            data=data.get("data"),
            timestamp=data.get("timestamp") or utc_now_iso(),
            operation_id=data.get("operation_id") or uuid.uuid4().hex,
        )


@dataclass
class SavedPhoto:
    """
    Result of saving a photo.

    ``filename`` is the portable reference to persist on records; ``uri`` is
    where the file lives right now on this device.
    """
    uri: str
    filename: str
    backend: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"uri": self.uri, "filename": self.filename, "backend": self.backend}
