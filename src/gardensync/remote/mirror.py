"""
Remote mirror client.

Wraps every remote document store call in a timeout plus retry with
exponential backoff, chunks bulk writes below the per-commit ceiling, and
pages through user-scoped collections.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, TypeVar

from ..core.exceptions import (
    NotAuthenticatedError,
    PartialCommitError,
    PermissionDeniedError,
    RemoteError,
    RemoteTimeoutError,
    RemoteUnavailableError,
)
from ..core.models import OfflineOperation, OperationType, RecordKind
from ..core.retry import RetryConfig, retry_with_backoff
from .auth import AuthSession
from .document_store import Document, RemoteDocumentStore, WriteOp


logger = logging.getLogger(__name__)

T = TypeVar("T")

OWNER_FIELD = "user_id"
USER_SETTINGS_COLLECTION = "user_settings"


class RemoteMirrorClient:
    """
    Timeout-and-retry front for a RemoteDocumentStore.

    Each remote call runs on an owned thread pool and is abandoned after
    ``timeout_ms``; the underlying request cannot be cancelled and finishes in
    the background. Batched writes are split into chunks of ``batch_limit``
    and committed one after another; a failure part way leaves earlier chunks
    applied and is reported as PartialCommitError.
    """

    def __init__(
        self,
        store: RemoteDocumentStore,
        session: AuthSession,
        timeout_ms: int = 15000,
        max_retries: int = 2,
        base_delay_ms: float = 1000.0,
        batch_limit: int = 450,
        page_size: int = 50,
        network_available: Callable[[], bool] = lambda: True,
        sleep: Callable[[float], None] = time.sleep,
        max_workers: int = 4,
    ):
        """
        Initialize the client.

        Args:
            store: Remote document store to wrap
            session: Auth session (who is signed in)
            timeout_ms: Per-attempt timeout
            max_retries: Retries after the first attempt
            base_delay_ms: First backoff delay; doubles on each retry
            batch_limit: Maximum writes per commit
            page_size: Documents per query page
            network_available: Connectivity probe
            sleep: Sleep function (injectable for tests)
            max_workers: Threads available for in-flight remote calls
        """
        if batch_limit > store.MAX_BATCH_OPERATIONS:
            raise ValueError(
                f"batch_limit {batch_limit} exceeds store ceiling {store.MAX_BATCH_OPERATIONS}"
            )
        self.store = store
        self.session = session
        self.timeout_ms = timeout_ms
        self.batch_limit = batch_limit
        self.page_size = page_size
        self.network_available = network_available
        self._sleep = sleep
        self.retry_config = RetryConfig(
            max_attempts=max_retries + 1,
            initial_delay_ms=base_delay_ms,
            max_delay_ms=base_delay_ms * (2 ** max(max_retries, 0)),
            backoff_multiplier=2.0,
            jitter=False,
        )
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="gardensync-remote")

    @classmethod
    def from_config(cls, store: RemoteDocumentStore, session: AuthSession, config, **kwargs) -> "RemoteMirrorClient":
        """Create a client using the ``remote`` section of a SyncConfig."""
        section = config.get_remote_config()
        return cls(
            store,
            session,
            timeout_ms=int(section.get("timeout_ms", 15000)),
            max_retries=int(section.get("max_retries", 2)),
            base_delay_ms=float(section.get("base_delay_ms", 1000)),
            batch_limit=int(section.get("batch_limit", 450)),
            page_size=int(section.get("page_size", 50)),
            **kwargs,
        )

    def close(self) -> None:
        self._executor.shutdown(wait=False)
        self.store.close()

    # ------------------------------------------------------------------
    # Timeout and retry
    # ------------------------------------------------------------------

    def _with_timeout(self, operation: Callable[[], T], timeout_ms: int, name: str) -> T:
        future = self._executor.submit(operation)
        try:
            return future.result(timeout=timeout_ms / 1000.0)
        except FutureTimeoutError:
            raise RemoteTimeoutError(f"{name} timed out after {timeout_ms}ms")

    def with_timeout_and_retry(
        self,
        operation: Callable[[], T],
        operation_name: str = "remote call",
        timeout_ms: Optional[int] = None,
        throw_on_timeout: bool = True,
        fallback: Any = None,
    ) -> T:
        """
        Run a remote call with a timeout, retrying with exponential backoff.

        Authentication and permission errors are never retried. When the
        network is down, or every attempt times out or finds the store
        unavailable, the error is raised if ``throw_on_timeout`` is set;
        otherwise ``fallback`` is returned.

        Args:
            operation: Zero-argument callable performing the remote call
            operation_name: Name for logging
            timeout_ms: Per-attempt timeout (defaults to the client's)
            throw_on_timeout: Raise instead of degrading to ``fallback``
            fallback: Value returned when degrading

        Returns:
            The operation's result, or ``fallback``
        """
        timeout_ms = timeout_ms or self.timeout_ms

        if not self.network_available():
            if throw_on_timeout:
                raise RemoteUnavailableError("No network connection available")
            logger.warning(f"{operation_name}: offline, using fallback")
            return fallback

        result = retry_with_backoff(
            lambda: self._with_timeout(operation, timeout_ms, operation_name),
            self.retry_config,
            retry_on=(RemoteError,),
            give_up_on=(PermissionDeniedError,),
            operation_name=operation_name,
            sleep=self._sleep,
        )
        if result.success:
            return result.result

        error = result.error
        if not throw_on_timeout and isinstance(error, (RemoteTimeoutError, RemoteUnavailableError)):
            logger.warning(f"{operation_name} failed after {result.attempts} attempts, using fallback: {error}")
            return fallback
        raise error

    # ------------------------------------------------------------------
    # Single documents
    # ------------------------------------------------------------------

    def get_document(self, collection: str, doc_id: str, throw_on_timeout: bool = True) -> Optional[Dict[str, Any]]:
        return self.with_timeout_and_retry(
            lambda: self.store.get_document(collection, doc_id),
            operation_name=f"get {collection}/{doc_id}",
            throw_on_timeout=throw_on_timeout,
        )

    def set_document(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        self.with_timeout_and_retry(
            lambda: self.store.set_document(collection, doc_id, data, merge=merge),
            operation_name=f"set {collection}/{doc_id}",
        )

    def get_user_settings(self, user_id: str, throw_on_timeout: bool = False) -> Dict[str, Any]:
        """Fetch the per-user settings document holding the config blobs."""
        doc = self.get_document(USER_SETTINGS_COLLECTION, user_id, throw_on_timeout=throw_on_timeout)
        return doc or {}

    def set_user_settings(self, user_id: str, settings: Dict[str, Any]) -> None:
        self.set_document(USER_SETTINGS_COLLECTION, user_id, settings, merge=True)

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def commit_writes(self, writes: List[WriteOp]) -> int:
        """
        Commit writes in sequential chunks of at most ``batch_limit``.

        Returns:
            Number of writes committed

        Raises:
            PartialCommitError: A chunk failed after earlier chunks committed
        """
        total = len(writes)
        committed = 0
        for start in range(0, total, self.batch_limit):
            chunk = writes[start:start + self.batch_limit]
            try:
                self.with_timeout_and_retry(
                    lambda chunk=chunk: self.store.commit(chunk),
                    operation_name=f"commit chunk {start // self.batch_limit + 1} ({len(chunk)} writes)",
                )
            except (RemoteError, NotAuthenticatedError) as e:
                if committed == 0:
                    raise
                logger.error(f"Batch commit stopped after {committed}/{total} writes: {e}")
                raise PartialCommitError(
                    f"Committed {committed} of {total} writes before failure: {e}",
                    committed=committed,
                    total=total,
                ) from e
            committed += len(chunk)
            logger.debug(f"Committed {committed}/{total} writes")
        if total:
            logger.info(f"Committed {total} writes in {-(-total // self.batch_limit)} chunk(s)")
        return committed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def query_all(self, collection: str, field_path: str, value: Any) -> List[Document]:
        """
        Read every matching document, page by page.

        Documents are de-duplicated by id across pages.
        """
        seen: Set[str] = set()
        documents: List[Document] = []
        cursor: Optional[str] = None
        while True:
            page = self.with_timeout_and_retry(
                lambda cursor=cursor: self.store.query_equal(
                    collection, field_path, value, limit=self.page_size, start_after=cursor
                ),
                operation_name=f"query {collection} page after {cursor or 'start'}",
            )
            for doc in page:
                if doc.id not in seen:
                    seen.add(doc.id)
                    documents.append(doc)
            if len(page) < self.page_size:
                break
            cursor = page[-1].id
        logger.debug(f"Fetched {len(documents)} documents from {collection}")
        return documents

    def fetch_user_records(self, kind: RecordKind, user_id: str) -> List[Dict[str, Any]]:
        """All records of a kind owned by a user, as flat record dicts."""
        return [doc.to_record() for doc in self.query_all(kind.collection, OWNER_FIELD, user_id)]

    # ------------------------------------------------------------------
    # Record-level helpers used by import and offline replay
    # ------------------------------------------------------------------

    def upsert_records(self, kind: RecordKind, records: Iterable[Dict[str, Any]], user_id: str) -> int:
        """Write records under their ids, replacing whole documents, owned by ``user_id``."""
        writes = [
            WriteOp.set(kind.collection, record["id"], _document_fields(record, user_id))
            for record in records
        ]
        return self.commit_writes(writes)

    def delete_absent(self, kind: RecordKind, user_id: str, keep_ids: Set[str]) -> List[str]:
        """
        Delete the user's documents whose id is not in ``keep_ids``.

        Scoped by an equality query on the owner field; not transactional, so a
        concurrent writer can race it.

        Returns:
            Ids of deleted documents
        """
        owned = self.query_all(kind.collection, OWNER_FIELD, user_id)
        doomed = [doc.id for doc in owned if doc.id not in keep_ids]
        if doomed:
            self.commit_writes([WriteOp.delete(kind.collection, doc_id) for doc_id in doomed])
            logger.info(f"Deleted {len(doomed)} {kind.collection} documents absent from import")
        return doomed

    def apply_operation(self, operation: OfflineOperation, user_id: str) -> None:
        """Push one queued offline mutation to the remote store."""
        collection = operation.kind.collection
        if operation.type == OperationType.DELETE:
            if not operation.record_id:
                raise ValueError("delete operation requires a record id")
            self.commit_writes([WriteOp.delete(collection, operation.record_id)])
            return

        data = dict(operation.data or {})
        record_id = operation.record_id or data.get("id")
        if not record_id:
            raise ValueError(f"{operation.type.value} operation requires a record id")
        data["id"] = record_id
        merge = operation.type == OperationType.UPDATE
        self.set_document(collection, record_id, _document_fields(data, user_id), merge=merge)


def _document_fields(record: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    fields = {k: v for k, v in record.items() if k != "id"}
    fields[OWNER_FIELD] = user_id
    return fields
