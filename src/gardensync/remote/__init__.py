"""
Remote document store access: interface, adapters and the mirror client.
"""

from .auth import AuthSession, StaticSession
from .document_store import Document, WriteOp, RemoteDocumentStore, InMemoryDocumentStore
from .firestore_rest import FirestoreRestStore
from .mirror import RemoteMirrorClient, OWNER_FIELD, USER_SETTINGS_COLLECTION

__all__ = [
    "AuthSession",
    "StaticSession",
    "Document",
    "WriteOp",
    "RemoteDocumentStore",
    "InMemoryDocumentStore",
    "FirestoreRestStore",
    "RemoteMirrorClient",
    "OWNER_FIELD",
    "USER_SETTINGS_COLLECTION",
]
