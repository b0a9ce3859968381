"""
Record sources for backup.

Reads records and config blobs from the remote store when a user is signed
in, falling back to the local cache when the remote store cannot be reached.
"""

import logging
from typing import Any, Dict, List, Optional

from ..core.exceptions import NotAuthenticatedError, RemoteError
from ..core.models import RecordKind, StorageKeys
from ..storage.local_store import SerializedLocalStore
from .normalize import first_blob


logger = logging.getLogger(__name__)

# Manifest / user settings field -> local storage key
CONFIG_BLOB_KEYS = {
    "locations": StorageKeys.LOCATIONS,
    "plantCatalog": StorageKeys.PLANT_CATALOG,
    "plantCareProfiles": StorageKeys.PLANT_CARE_PROFILES,
}


def dedupe_by_id(records: List[Any]) -> List[Dict[str, Any]]:
    """Keep the first record for each id, dropping records without one."""
    seen = set()
    result = []
    for record in records:
        if not isinstance(record, dict) or not record.get("id"):
            continue
        if record["id"] in seen:
            continue
        seen.add(record["id"])
        result.append(record)
    return result


class RecordSource:
    """
    Where export reads its data from.

    Args:
        local_store: Serialized local store holding the cache
        mirror: Remote mirror client, or None for local-only operation
    """

    def __init__(self, local_store: SerializedLocalStore, mirror=None):
        self.local_store = local_store
        self.mirror = mirror

    def _remote_user(self) -> Optional[str]:
        if self.mirror is None:
            return None
        return self.mirror.session.current_user_id()

    def local_records(self, kind: RecordKind) -> List[Dict[str, Any]]:
        return dedupe_by_id(self.local_store.read(kind.storage_key))

    def records(self, kind: RecordKind) -> List[Dict[str, Any]]:
        """
        All records of a kind.

        Signed in: the user's remote documents, read page by page. The local
        cache is used when signed out or when the remote read fails.
        """
        user_id = self._remote_user()
        if user_id:
            try:
                records = self.mirror.fetch_user_records(kind, user_id)
                logger.debug(f"Read {len(records)} {kind.collection} from remote")
                return dedupe_by_id(records)
            except (RemoteError, NotAuthenticatedError) as e:
                logger.warning(f"Remote read of {kind.collection} failed, using local cache: {e}")
        return self.local_records(kind)

    def local_blob(self, name: str) -> Optional[Dict[str, Any]]:
        return first_blob(self.local_store.read(CONFIG_BLOB_KEYS[name]))

    def config_blobs(self) -> Dict[str, Optional[Dict[str, Any]]]:
        """
        The user's config blobs, remote first, local cache as fallback.

        Returns:
            Mapping of blob name to blob (None when the user never saved one)
        """
        remote: Dict[str, Any] = {}
        user_id = self._remote_user()
        if user_id:
            try:
                remote = self.mirror.get_user_settings(user_id, throw_on_timeout=False)
            except (RemoteError, NotAuthenticatedError) as e:
                logger.warning(f"Remote read of user settings failed, using local cache: {e}")
        blobs = {}
        for name in CONFIG_BLOB_KEYS:
            value = remote.get(name)
            blobs[name] = value if isinstance(value, dict) else self.local_blob(name)
        return blobs
