"""
Firestore REST adapter for the remote document store interface.

Talks to the Firestore v1 REST API with ``requests``: typed value encoding,
merge writes via update masks, ``:commit`` batches and ``:runQuery``
equality queries paginated on ``__name__``.
"""

import logging
import re
from typing import Any, Dict, List, Optional

import requests

from ..core.exceptions import (
    NotAuthenticatedError,
    PermissionDeniedError,
    RemoteError,
    RemoteTimeoutError,
    RemoteUnavailableError,
)
from .auth import AuthSession
from .document_store import Document, RemoteDocumentStore, WriteOp


logger = logging.getLogger(__name__)

_SIMPLE_FIELD = re.compile(r"^[A-Za-z_][A-Za-z_0-9]*$")


def encode_value(value: Any) -> Dict[str, Any]:
    """Encode a Python value as a Firestore typed value."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    raise TypeError(f"Cannot encode {type(value).__name__} as a Firestore value")


def decode_value(value: Dict[str, Any]) -> Any:
    """Decode a Firestore typed value into a Python value."""
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "stringValue" in value:
        return value["stringValue"]
    # Timestamps are stored as ISO strings in the local cache
    if "timestampValue" in value:
        return value["timestampValue"]
    if "referenceValue" in value:
        return value["referenceValue"]
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    logger.warning(f"Unsupported Firestore value type: {list(value.keys())}")
    return None


def encode_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: encode_value(val) for key, val in data.items()}


def decode_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {key: decode_value(val) for key, val in fields.items()}


def quote_field_path(name: str) -> str:
    """Quote a top-level field name for use in an update mask."""
    if _SIMPLE_FIELD.match(name):
        return name
    escaped = name.replace("\\", "\\\\").replace("`", "\\`")
    return f"`{escaped}`"


class FirestoreRestStore(RemoteDocumentStore):
    """
    RemoteDocumentStore backed by the Firestore REST API.

    Every request carries a bearer token obtained from the auth session.
    HTTP failures map onto the package's remote error hierarchy:
    401 -> NotAuthenticatedError, 403 -> PermissionDeniedError,
    429/5xx/connection errors -> RemoteUnavailableError,
    request timeouts -> RemoteTimeoutError.
    """

    def __init__(
        self,
        project_id: str,
        session: AuthSession,
        api_base: str = "https://firestore.googleapis.com/v1",
        database: str = "(default)",
        timeout: float = 15.0,
        http: Optional[requests.Session] = None,
    ):
        """
        Initialize the adapter.

        Args:
            project_id: Firebase/GCP project id
            session: Auth session supplying bearer tokens
            api_base: REST API root
            database: Database id
            timeout: Per-request HTTP timeout in seconds
            http: Optional requests session to reuse
        """
        if not project_id:
            raise ValueError("project_id is required for the Firestore REST store")
        self.project_id = project_id
        self.auth = session
        self.api_base = api_base.rstrip("/")
        self.database = database
        self.timeout = timeout
        self.http = http or requests.Session()

    @property
    def database_path(self) -> str:
        return f"projects/{self.project_id}/databases/{self.database}"

    @property
    def documents_path(self) -> str:
        return f"{self.database_path}/documents"

    def document_name(self, collection: str, doc_id: str) -> str:
        return f"{self.documents_path}/{collection}/{doc_id}"

    def _url(self, path: str) -> str:
        return f"{self.api_base}/{path}"

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        headers = {"Authorization": f"Bearer {self.auth.refresh_token()}"}
        url = self._url(path)
        try:
            response = self.http.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout as e:
            raise RemoteTimeoutError(f"{method} {path} timed out: {e}") from e
        except requests.exceptions.RequestException as e:
            raise RemoteUnavailableError(f"{method} {path} failed: {e}") from e

        if response.status_code < 400:
            return response
        self._raise_for_status(method, path, response)
        return response

    def _raise_for_status(self, method: str, path: str, response: requests.Response) -> None:
        status = response.status_code
        try:
            detail = response.json().get("error", {}).get("message", response.text)
        except ValueError:
            detail = response.text
        message = f"{method} {path} returned {status}: {detail}"

        if status == 401:
            raise NotAuthenticatedError(message)
        if status == 403:
            raise PermissionDeniedError(message, status_code=status)
        if status == 429 or status >= 500:
            raise RemoteUnavailableError(message, status_code=status)
        raise RemoteError(message, status_code=status)

    def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        path = self.document_name(collection, doc_id)
        try:
            response = self._request("GET", path)
        except RemoteError as e:
            if e.status_code == 404:
                return None
            raise
        return decode_fields(response.json().get("fields", {}))

    def set_document(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        params = None
        if merge:
            params = [("updateMask.fieldPaths", quote_field_path(k)) for k in data]
        self._request(
            "PATCH",
            self.document_name(collection, doc_id),
            params=params,
            json={"fields": encode_fields(data)},
        )

    def commit(self, writes: List[WriteOp]) -> None:
        if len(writes) > self.MAX_BATCH_OPERATIONS:
            raise RemoteError(
                f"Batch of {len(writes)} writes exceeds limit of {self.MAX_BATCH_OPERATIONS}"
            )
        body = {"writes": [self._encode_write(w) for w in writes]}
        self._request("POST", f"{self.documents_path}:commit", json=body)
        logger.debug(f"Committed batch of {len(writes)} writes")

    def _encode_write(self, write: WriteOp) -> Dict[str, Any]:
        name = self.document_name(write.collection, write.doc_id)
        if write.action == "delete":
            return {"delete": name}
        encoded: Dict[str, Any] = {
            "update": {"name": name, "fields": encode_fields(write.data or {})}
        }
        if write.merge:
            encoded["updateMask"] = {
                "fieldPaths": [quote_field_path(k) for k in (write.data or {})]
            }
        return encoded

    def query_equal(
        self,
        collection: str,
        field_path: str,
        value: Any,
        limit: Optional[int] = None,
        start_after: Optional[str] = None,
    ) -> List[Document]:
        query: Dict[str, Any] = {
            "from": [{"collectionId": collection}],
            "where": {
                "fieldFilter": {
                    "field": {"fieldPath": field_path},
                    "op": "EQUAL",
                    "value": encode_value(value),
                }
            },
            "orderBy": [{"field": {"fieldPath": "__name__"}, "direction": "ASCENDING"}],
        }
        if limit:
            query["limit"] = limit
        if start_after:
            query["startAt"] = {
                "values": [{"referenceValue": self.document_name(collection, start_after)}],
                "before": False,
            }

        response = self._request(
            "POST", f"{self.documents_path}:runQuery", json={"structuredQuery": query}
        )
        documents = []
        for item in response.json():
            doc = item.get("document")
            if not doc:
                continue
            doc_id = doc["name"].rsplit("/", 1)[-1]
            documents.append(Document(doc_id, decode_fields(doc.get("fields", {}))))
        return documents

    def close(self) -> None:
        """Close the HTTP session."""
        if self.http:
            self.http.close()
