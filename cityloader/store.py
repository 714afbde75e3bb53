"""
Firestore connection handle.

The handle is built explicitly and handed to the loader. `initialize()` may
be called repeatedly with the same credentials (no-op) but refuses to switch
to a different service account. The same holds across handles sharing a
Firebase app name, since they share the underlying app.
"""
from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import firebase_admin
from firebase_admin import credentials, firestore_async

from .config import resolve_credentials_path

APP_NAME = "geonames-firestore"

# app name -> credentials file it was initialized with, shared by every handle
_APP_CREDENTIALS: Dict[str, Path] = {}


class StoreError(RuntimeError):
    pass


class WriteBatch(Protocol):
    def set(self, doc_id: str, data: Dict[str, Any]) -> None: ...
    async def commit(self) -> None: ...


class BatchStore(Protocol):
    def batch(self, collection: str) -> WriteBatch: ...


class FirestoreBatch:
    """One atomic Firestore write batch; every write is a merge-upsert"""

    def __init__(self, client, collection: str):
        self._batch = client.batch()
        self._collection = client.collection(collection)
        self.size = 0

    def set(self, doc_id: str, data: Dict[str, Any]) -> None:
        self._batch.set(self._collection.document(str(doc_id)), data, merge=True)
        self.size += 1

    async def commit(self) -> None:
        await self._batch.commit()


class FirestoreStore:
    def __init__(self, app_name: str = APP_NAME):
        self.app_name = app_name
        self.credentials_path: Optional[Path] = None
        self._client = None

    @property
    def initialized(self) -> bool:
        return self._client is not None

    def initialize(self, credentials_path: Optional[str] = None) -> "FirestoreStore":
        if self._client is not None:
            if credentials_path:
                resolved = resolve_credentials_path(credentials_path)
                if resolved != self.credentials_path:
                    raise StoreError(
                        "Firestore was already initialized with a different credentials "
                        f"file in this session ({self.credentials_path})."
                    )
            return self

        known = _APP_CREDENTIALS.get(self.app_name)
        if credentials_path is None and known is not None:
            resolved = known
        else:
            resolved = resolve_credentials_path(credentials_path)
        if known is not None and known != resolved:
            raise StoreError(
                f"Firebase app '{self.app_name}' is already initialized with {known}; "
                f"refusing to reuse it for {resolved}."
            )

        try:
            app = firebase_admin.get_app(self.app_name)
        except ValueError:
            app = firebase_admin.initialize_app(
                credentials.Certificate(str(resolved)), name=self.app_name
            )
        _APP_CREDENTIALS.setdefault(self.app_name, resolved)

        self.credentials_path = resolved
        self._client = firestore_async.client(app)
        return self

    @property
    def client(self):
        if self._client is None:
            raise StoreError("FirestoreStore.initialize() has not been called")
        return self._client

    def batch(self, collection: str) -> FirestoreBatch:
        return FirestoreBatch(self.client, collection)

    def __repr__(self):
        state = self.credentials_path or "not initialized"
        return f"FirestoreStore({self.app_name}: {state})"
