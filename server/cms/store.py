"""
Document store abstraction for Firestore, SQL and an in-memory test implementation.

Documents are addressed by slash-separated paths the way Firestore addresses
them: `pages/home`, `events/<id>`, `galleryGroups/<gid>/photos/<pid>`.
"""

from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from firebase_admin import firestore
from google.api_core import exceptions as google_exceptions
from sqlalchemy import JSON, Column, Float, String, create_engine, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from cms.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

# Firestore rejects batches with more writes than this.
MAX_BATCH_WRITES = 500


@dataclass
class DocumentRecord:
    id: str
    data: dict = field(default_factory=dict)


class WriteBatch(Protocol):
    """Atomic group of writes; nothing is applied until commit()."""

    def set(self, path: str, data: dict, merge: bool = False) -> None:
        ...

    def delete(self, path: str) -> None:
        ...

    def commit(self) -> None:
        ...


class ContentStore(Protocol):
    """Interface for the remote document store."""

    def get(self, path: str) -> Optional[dict]:
        ...

    def list(
        self,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[DocumentRecord]:
        ...

    def count(self, collection: str) -> int:
        ...

    def set(self, path: str, data: dict, merge: bool = False) -> None:
        ...

    def delete(self, path: str) -> None:
        ...

    def batch(self) -> WriteBatch:
        ...


def split_path(path: str) -> tuple[str, str]:
    """Splits `collection/.../doc_id` into (collection path, doc id)."""
    collection, _, doc_id = path.strip("/").rpartition("/")
    if not collection or not doc_id:
        raise ValueError(f"Not a document path: {path!r}")
    return collection, doc_id


def sort_records(
    records: List[DocumentRecord], order_by: Optional[str], descending: bool
) -> List[DocumentRecord]:
    """
    Orders records by a top-level field. Records missing the field keep their
    relative order and go last in either direction.
    """
    if not order_by:
        return records
    present = [r for r in records if r.data.get(order_by) is not None]
    missing = [r for r in records if r.data.get(order_by) is None]
    present.sort(key=lambda r: r.data[order_by], reverse=descending)
    return present + missing


@dataclass
class _PendingWrite:
    op: str
    path: str
    data: Optional[dict] = None
    merge: bool = False


class InMemoryWriteBatch:
    def __init__(self, store: "InMemoryContentStore"):
        self._store = store
        self.writes: List[_PendingWrite] = []

    def set(self, path: str, data: dict, merge: bool = False) -> None:
        split_path(path)
        self.writes.append(_PendingWrite("set", path, copy.deepcopy(data), merge))

    def delete(self, path: str) -> None:
        split_path(path)
        self.writes.append(_PendingWrite("delete", path))

    def commit(self) -> None:
        self._store.apply(self.writes)
        self.writes = []


class InMemoryContentStore:
    """Simple in-memory document store for development and tests."""

    def __init__(self):
        self.collections: Dict[str, Dict[str, dict]] = {}
        self.committed_batches: List[List[_PendingWrite]] = []

    def get(self, path: str) -> Optional[dict]:
        collection, doc_id = split_path(path)
        data = self.collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    def list(
        self,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[DocumentRecord]:
        docs = self.collections.get(collection.strip("/"), {})
        records = [
            DocumentRecord(id=doc_id, data=copy.deepcopy(data))
            for doc_id, data in docs.items()
        ]
        return sort_records(records, order_by, descending)

    def count(self, collection: str) -> int:
        return len(self.collections.get(collection.strip("/"), {}))

    def set(self, path: str, data: dict, merge: bool = False) -> None:
        self._write(path, copy.deepcopy(data), merge)

    def delete(self, path: str) -> None:
        collection, doc_id = split_path(path)
        self.collections.get(collection, {}).pop(doc_id, None)

    def batch(self) -> InMemoryWriteBatch:
        return InMemoryWriteBatch(self)

    def apply(self, writes: List[_PendingWrite]) -> None:
        for write in writes:
            if write.op == "set":
                self._write(write.path, write.data, write.merge)
            else:
                self.delete(write.path)
        self.committed_batches.append(list(writes))

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.collections.clear()
        self.committed_batches.clear()

    def _write(self, path: str, data: dict, merge: bool) -> None:
        collection, doc_id = split_path(path)
        docs = self.collections.setdefault(collection, {})
        if merge and doc_id in docs:
            docs[doc_id].update(data)
        else:
            docs[doc_id] = data


class FirestoreContentStore:
    """
    Firestore-backed implementation using the firebase_admin SDK.

    Vendor errors are wrapped in StoreUnavailableError so callers only deal
    with one transport failure type.
    """

    def __init__(self, client: Any = None):
        if client is None:
            client = firestore.client()
        self.client = client

    def get(self, path: str) -> Optional[dict]:
        try:
            snapshot = self.client.document(path).get()
        except google_exceptions.GoogleAPIError as e:
            raise StoreUnavailableError(f"Reading {path}", e) from e
        if not snapshot.exists:
            return None
        return snapshot.to_dict() or {}

    def list(
        self,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[DocumentRecord]:
        # Firestore's order_by drops documents lacking the field, so sort locally.
        try:
            records = [
                DocumentRecord(id=doc.id, data=doc.to_dict() or {})
                for doc in self.client.collection(collection).stream()
            ]
        except google_exceptions.GoogleAPIError as e:
            raise StoreUnavailableError(f"Listing {collection}", e) from e
        return sort_records(records, order_by, descending)

    def count(self, collection: str) -> int:
        try:
            results = self.client.collection(collection).count().get()
        except google_exceptions.GoogleAPIError as e:
            raise StoreUnavailableError(f"Counting {collection}", e) from e
        return int(results[0][0].value)

    def set(self, path: str, data: dict, merge: bool = False) -> None:
        try:
            self.client.document(path).set(data, merge=merge)
        except google_exceptions.GoogleAPIError as e:
            raise StoreUnavailableError(f"Writing {path}", e) from e

    def delete(self, path: str) -> None:
        try:
            self.client.document(path).delete()
        except google_exceptions.GoogleAPIError as e:
            raise StoreUnavailableError(f"Deleting {path}", e) from e

    def batch(self) -> "FirestoreWriteBatch":
        return FirestoreWriteBatch(self.client)


class FirestoreWriteBatch:
    def __init__(self, client: Any):
        self._client = client
        self._batch = client.batch()
        self.size = 0

    def set(self, path: str, data: dict, merge: bool = False) -> None:
        self._batch.set(self._client.document(path), data, merge=merge)
        self.size += 1

    def delete(self, path: str) -> None:
        self._batch.delete(self._client.document(path))
        self.size += 1

    def commit(self) -> None:
        try:
            self._batch.commit()
        except google_exceptions.GoogleAPIError as e:
            raise StoreUnavailableError(f"Batch write of {self.size} operations", e) from e


class SqlContentStore:
    """
    SQLAlchemy-backed document store for self-hosting. Accepts any SQLAlchemy
    URL (e.g., Postgres, or SQLite for tests). Each document is one JSON row
    keyed by (collection path, document id).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlContentStore")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def get(self, path: str) -> Optional[dict]:
        collection, doc_id = split_path(path)
        try:
            with self.Session() as session:
                row = session.get(DocumentRow, (collection, doc_id))
                return dict(row.data) if row else None
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Reading {path}", e) from e

    def list(
        self,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[DocumentRecord]:
        stmt = (
            select(DocumentRow)
            .where(DocumentRow.collection == collection.strip("/"))
            .order_by(DocumentRow.created_at.asc())
        )
        try:
            with self.Session() as session:
                rows = session.execute(stmt).scalars().all()
                records = [DocumentRecord(id=row.doc_id, data=dict(row.data)) for row in rows]
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Listing {collection}", e) from e
        return sort_records(records, order_by, descending)

    def count(self, collection: str) -> int:
        return len(self.list(collection))

    def set(self, path: str, data: dict, merge: bool = False) -> None:
        batch = self.batch()
        batch.set(path, data, merge=merge)
        batch.commit()

    def delete(self, path: str) -> None:
        batch = self.batch()
        batch.delete(path)
        batch.commit()

    def batch(self) -> "SqlWriteBatch":
        return SqlWriteBatch(self)


class SqlWriteBatch:
    """Applies all writes inside one transaction."""

    def __init__(self, store: SqlContentStore):
        self._store = store
        self.writes: List[_PendingWrite] = []

    def set(self, path: str, data: dict, merge: bool = False) -> None:
        split_path(path)
        self.writes.append(_PendingWrite("set", path, copy.deepcopy(data), merge))

    def delete(self, path: str) -> None:
        split_path(path)
        self.writes.append(_PendingWrite("delete", path))

    def commit(self) -> None:
        now = time.time()
        try:
            with self._store.Session() as session, session.begin():
                for write in self.writes:
                    collection, doc_id = split_path(write.path)
                    if write.op == "delete":
                        session.execute(
                            delete(DocumentRow).where(
                                DocumentRow.collection == collection,
                                DocumentRow.doc_id == doc_id,
                            )
                        )
                        continue
                    row = session.get(DocumentRow, (collection, doc_id))
                    if row is None:
                        session.add(
                            DocumentRow(
                                collection=collection,
                                doc_id=doc_id,
                                data=write.data,
                                created_at=now,
                                updated_at=now,
                            )
                        )
                        # Later writes in the same batch must see this row.
                        session.flush()
                    else:
                        merged = dict(row.data) if write.merge else {}
                        merged.update(write.data)
                        row.data = merged
                        row.updated_at = now
        except SQLAlchemyError as e:
            raise StoreUnavailableError(
                f"Batch write of {len(self.writes)} operations", e
            ) from e
        self.writes = []


Base = declarative_base()


class DocumentRow(Base):
    __tablename__ = "documents"

    collection = Column(String, primary_key=True)
    doc_id = Column(String, primary_key=True)
    data = Column(JSON, nullable=False)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)
