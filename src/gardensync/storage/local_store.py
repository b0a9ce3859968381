"""
Serialized local store.

Every read and write of the on-device key/value persistence goes through a
single FIFO queue drained by one worker thread, so two operations never
interleave their underlying I/O and they complete in submission order.

Pending work (queued plus the one in flight) is bounded; submitting beyond the
capacity fails immediately with QueueOverflowError instead of blocking.
"""

import json
import logging
import threading
import time
from concurrent.futures import Future
from queue import Queue
from typing import Any, Callable, List, Optional

from ..core.exceptions import CorruptionError, QueueOverflowError, StorageError
from ..core.models import StorageKeys
from ..core.retry import RetryConfig, retry_with_backoff
from .kv_store import KeyValueStore


logger = logging.getLogger(__name__)

_STOP = object()


class SerializedLocalStore:
    """
    FIFO-serialized front for a KeyValueStore.

    Reads never raise for I/O or decoding problems: failures are logged and
    degrade to an empty list (or None for single values). Undecodable JSON is
    treated as corruption and the key is reset. Writes return False on failure.
    The only error callers see is QueueOverflowError when the queue is full.

    Example:
        >>> store = SerializedLocalStore(MemoryKeyValueStore())
        >>> store.write("@garden_plants", [{"id": "p1"}])
        True
        >>> store.read("@garden_plants")
        [{'id': 'p1'}]
    """

    def __init__(
        self,
        backend: KeyValueStore,
        capacity: int = 100,
        max_retries: int = 2,
        retry_delay_ms: float = 100.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the store.

        Args:
            backend: Key/value persistence to serialize access to
            capacity: Maximum pending operations (queued + running)
            max_retries: Retries of a failing persistence call after the first try
            retry_delay_ms: Delay step between retries (100ms, 200ms, ...)
            sleep: Sleep function (injectable for tests)
        """
        self.backend = backend
        self.capacity = capacity
        self.retry_config = RetryConfig.linear(max_retries + 1, retry_delay_ms)
        self._sleep = sleep

        self._queue: Queue = Queue()
        self._lock = threading.Lock()
        self._pending = 0
        self._closed = False
        self._worker: Optional[threading.Thread] = None

    @classmethod
    def from_config(cls, backend: KeyValueStore, config) -> "SerializedLocalStore":
        """Create a store using the ``local_store`` section of a SyncConfig."""
        section = config.get_local_store_config()
        return cls(
            backend,
            capacity=int(section.get("capacity", 100)),
            max_retries=int(section.get("max_retries", 2)),
            retry_delay_ms=float(section.get("retry_delay_ms", 100)),
        )

    # ------------------------------------------------------------------
    # Queue machinery
    # ------------------------------------------------------------------

    @property
    def pending(self) -> int:
        """Number of operations queued or running."""
        with self._lock:
            return self._pending

    def _ensure_worker(self) -> None:
        if self._worker is None or not self._worker.is_alive():
            self._worker = threading.Thread(
                target=self._run, name="gardensync-local-store", daemon=True
            )
            self._worker.start()

    def _submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        with self._lock:
            if self._closed:
                raise StorageError("Local store is closed")
            if self._pending >= self.capacity:
                logger.warning(
                    f"Local store queue full ({self._pending}/{self.capacity}), rejecting {fn.__name__}"
                )
                raise QueueOverflowError(
                    f"Local store queue is full ({self.capacity} pending operations)",
                    capacity=self.capacity,
                )
            self._pending += 1
            future: Future = Future()
            self._queue.put((future, fn, args))
            self._ensure_worker()
        return future

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            future, fn, args = item
            try:
                if future.set_running_or_notify_cancel():
                    try:
                        future.set_result(fn(*args))
                    except BaseException as e:
                        logger.exception(f"Local store operation {fn.__name__} crashed")
                        future.set_exception(e)
            finally:
                with self._lock:
                    self._pending -= 1

    def close(self, timeout: Optional[float] = None) -> None:
        """Stop accepting work, drain the queue and stop the worker."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put(_STOP)
            worker = self._worker
        if worker is not None:
            worker.join(timeout)
        self.backend.close()

    def __enter__(self) -> "SerializedLocalStore":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Asynchronous API
    # ------------------------------------------------------------------

    def submit_read(self, key: str) -> "Future[List[Any]]":
        """Queue a sequence read; the future resolves to a list."""
        return self._submit(self._read, key)

    def submit_write(self, key: str, value: List[Any]) -> "Future[bool]":
        """Queue a sequence write; the future resolves to True on success."""
        return self._submit(self._write, key, value)

    # ------------------------------------------------------------------
    # Blocking API
    # ------------------------------------------------------------------

    def read(self, key: str) -> List[Any]:
        """Read the sequence stored under ``key`` ([] when absent or unreadable)."""
        return self.submit_read(key).result()

    def write(self, key: str, value: List[Any]) -> bool:
        """Replace the sequence stored under ``key``."""
        return self.submit_write(key, value).result()

    def get_item(self, key: str) -> Optional[str]:
        """Read a single string value."""
        return self._submit(self._get_item, key).result()

    def set_item(self, key: str, value: str) -> bool:
        """Store a single string value."""
        return self._submit(self._set_item, key, value).result()

    def remove(self, key: str) -> bool:
        """Delete a key."""
        return self._submit(self._remove, key).result()

    def clear_all(self) -> bool:
        """Reset every known key to an empty list. Remote data is untouched."""
        return self._submit(self._clear_all).result()

    # ------------------------------------------------------------------
    # Operations (run on the worker thread)
    # ------------------------------------------------------------------

    def _with_retry(self, operation: Callable[[], Any], name: str):
        return retry_with_backoff(
            operation,
            self.retry_config,
            retry_on=(Exception,),
            give_up_on=(CorruptionError,),
            operation_name=name,
            sleep=self._sleep,
        )

    def _heal(self, key: str) -> None:
        logger.warning(f"Corrupted data at {key}, clearing")
        try:
            self.backend.remove(key)
        except Exception as e:
            logger.error(f"Failed to clear corrupted key {key}: {e}")

    def _decode(self, key: str) -> Optional[Any]:
        raw = self.backend.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise CorruptionError(f"Undecodable JSON at {key}: {e}", key=key) from e

    def _read(self, key: str) -> List[Any]:
        def attempt() -> List[Any]:
            parsed = self._decode(key)
            if parsed is None:
                return []
            if not isinstance(parsed, list):
                logger.warning(f"Data at key {key} is not a list, returning empty list")
                return []
            return parsed

        result = self._with_retry(attempt, f"read {key}")
        if result.success:
            return result.result
        if isinstance(result.error, CorruptionError):
            self._heal(key)
        else:
            logger.error(f"Failed to read {key} after {result.attempts} attempts")
        return []

    def _write(self, key: str, value: List[Any]) -> bool:
        if not isinstance(value, list):
            logger.error(f"Attempted to save non-list data to {key}")
            return False
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.error(f"Cannot serialize data for {key}: {e}")
            return False

        result = self._with_retry(lambda: self.backend.set(key, payload), f"write {key}")
        if not result.success:
            logger.error(f"Failed to save {key} after {result.attempts} attempts: {result.error}")
        return result.success

    def _get_item(self, key: str) -> Optional[str]:
        result = self._with_retry(lambda: self.backend.get(key), f"get item {key}")
        if not result.success:
            logger.error(f"Failed to read item {key} after {result.attempts} attempts")
            return None
        return result.result

    def _set_item(self, key: str, value: str) -> bool:
        result = self._with_retry(lambda: self.backend.set(key, str(value)), f"set item {key}")
        if not result.success:
            logger.error(f"Failed to save item {key} after {result.attempts} attempts")
        return result.success

    def _remove(self, key: str) -> bool:
        try:
            self.backend.remove(key)
            return True
        except Exception as e:
            logger.error(f"Error removing {key}: {e}")
            return False

    def _clear_all(self) -> bool:
        try:
            for key in StorageKeys.ALL:
                self.backend.set(key, "[]")
            return True
        except Exception as e:
            logger.error(f"Error clearing storage: {e}")
            return False
