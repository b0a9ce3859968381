"""
Remote document store interface.

The remote store is consumed through four calls only: get a document, set a
document (optionally merging fields), commit a batch of writes atomically, and
query a collection by field equality with id-cursor pagination.
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..core.exceptions import RemoteError


logger = logging.getLogger(__name__)


@dataclass
class Document:
    """A remote document: its id within the collection plus its fields."""
    id: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_record(self) -> Dict[str, Any]:
        """Flatten into a record dict with the id as a field."""
        record = dict(self.data)
        record["id"] = self.id
        return record


@dataclass
class WriteOp:
    """
    One write inside a batch commit.

    Attributes:
        action: "set" or "delete"
        collection: Target collection
        doc_id: Target document id
        data: Fields to write (set only)
        merge: Merge into existing fields instead of replacing the document
    """
    action: str
    collection: str
    doc_id: str
    data: Optional[Dict[str, Any]] = None
    merge: bool = False

    @classmethod
    def set(cls, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> "WriteOp":
        return cls("set", collection, doc_id, data, merge)

    @classmethod
    def delete(cls, collection: str, doc_id: str) -> "WriteOp":
        return cls("delete", collection, doc_id)


class RemoteDocumentStore(ABC):
    """
    Abstract remote document store.

    Implementations raise RemoteError subclasses (or NotAuthenticatedError)
    on failure.
    """

    # Hard ceiling on writes per commit imposed by the store itself
    MAX_BATCH_OPERATIONS = 500

    @abstractmethod
    def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """
        Fetch one document.

        Returns:
            The document fields, or None if it does not exist
        """
        pass

    @abstractmethod
    def set_document(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        merge: bool = False,
    ) -> None:
        """
        Write one document.

        Args:
            collection: Collection name
            doc_id: Document id
            data: Fields to write
            merge: Only replace the given top-level fields, keep the others
        """
        pass

    @abstractmethod
    def commit(self, writes: List[WriteOp]) -> None:
        """
        Apply a batch of writes atomically.

        Raises:
            RemoteError: If the batch exceeds MAX_BATCH_OPERATIONS or fails
        """
        pass

    @abstractmethod
    def query_equal(
        self,
        collection: str,
        field_path: str,
        value: Any,
        limit: Optional[int] = None,
        start_after: Optional[str] = None,
    ) -> List[Document]:
        """
        Query a collection for documents whose field equals a value.

        Results are ordered by document id; ``start_after`` is the id of the
        last document of the previous page.
        """
        pass

    def close(self) -> None:
        pass


class InMemoryDocumentStore(RemoteDocumentStore):
    """
    In-memory remote store.

    Used by tests and for running the tools without a network. Counts
    commits so callers can assert on batching.
    """

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.Lock()
        self.commit_sizes: List[int] = []

    def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            doc = self._collections.get(collection, {}).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def set_document(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        with self._lock:
            self._apply(WriteOp.set(collection, doc_id, data, merge))

    def commit(self, writes: List[WriteOp]) -> None:
        if len(writes) > self.MAX_BATCH_OPERATIONS:
            raise RemoteError(
                f"Batch of {len(writes)} writes exceeds limit of {self.MAX_BATCH_OPERATIONS}"
            )
        with self._lock:
            for write in writes:
                self._apply(write)
            self.commit_sizes.append(len(writes))

    def query_equal(
        self,
        collection: str,
        field_path: str,
        value: Any,
        limit: Optional[int] = None,
        start_after: Optional[str] = None,
    ) -> List[Document]:
        with self._lock:
            docs = self._collections.get(collection, {})
            matches = [
                Document(doc_id, copy.deepcopy(data))
                for doc_id, data in sorted(docs.items())
                if data.get(field_path) == value
                and (start_after is None or doc_id > start_after)
            ]
        return matches[:limit] if limit else matches

    def _apply(self, write: WriteOp) -> None:
        docs = self._collections.setdefault(write.collection, {})
        if write.action == "delete":
            docs.pop(write.doc_id, None)
        elif write.action == "set":
            data = copy.deepcopy(write.data or {})
            if write.merge and write.doc_id in docs:
                docs[write.doc_id].update(data)
            else:
                docs[write.doc_id] = data
        else:
            raise RemoteError(f"Unknown write action: {write.action}")

    def documents(self, collection: str) -> Dict[str, Dict[str, Any]]:
        """Snapshot of a whole collection keyed by id."""
        with self._lock:
            return copy.deepcopy(self._collections.get(collection, {}))
