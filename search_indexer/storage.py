from __future__ import annotations

import datetime as _dt
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from pymongo import ASCENDING, DESCENDING, TEXT, MongoClient, UpdateOne
from pymongo.errors import BulkWriteError, PyMongoError

from .models import NATURAL_KEYS, Collection, UpsertOperation

logger = logging.getLogger(__name__)

DUPLICATE_KEY = 11000

_TEXT_INDEXES: Dict[Collection, Sequence[str]] = {
    Collection.WEBSITE: ("url", "title", "description", "keywords"),
    Collection.NEWS: ("url", "title", "description", "keywords"),
    Collection.SHOPPING: ("url", "title", "description", "keywords"),
    Collection.SUGGEST: ("suggest",),
    Collection.IMAGE: ("alt",),
    Collection.ASSET: ("url", "parentUrl", "type"),
}


class DataStoreError(RuntimeError):
    """The document store could not be reached or rejected an operation."""


class DataStore(ABC):
    """Narrow document-store surface the improvement engine depends on.

    Every collection is sorted by ``createdAt`` for paging and enforces
    uniqueness on its natural key (see ``NATURAL_KEYS``)."""

    @abstractmethod
    def count(self, collection: Collection) -> int:
        """Return the (estimated) number of documents in ``collection``."""

    @abstractmethod
    def page(
        self,
        collection: Collection,
        skip: int,
        limit: int,
        sort_direction: int = -1,
        projection: Optional[Mapping[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Return one page of documents ordered by creation time."""

    @abstractmethod
    def bulk_write(self, collection: Collection, operations: Sequence[UpsertOperation]) -> int:
        """Apply insert-if-absent upserts unordered; return how many documents were created."""

    @abstractmethod
    def insert_many(self, collection: Collection, documents: Sequence[Mapping[str, Any]]) -> int:
        """Insert raw documents unordered, skipping natural-key duplicates."""

    def ensure_indexes(self) -> None:
        """Create natural-key and paging indexes where the backend needs them."""

    def close(self) -> None:
        """Release connections."""


class MongoStore(DataStore):
    """MongoDB backend using pymongo unordered bulk writes."""

    def __init__(
        self,
        uri: str,
        database: str,
        client: Optional[MongoClient] = None,
        server_selection_timeout_ms: int = 5000,
    ) -> None:
        self._client = client or MongoClient(
            uri,
            authSource="admin",
            serverSelectionTimeoutMS=server_selection_timeout_ms,
        )
        self._db = self._client[database]

    def count(self, collection: Collection) -> int:
        try:
            return int(self._db[collection.value].estimated_document_count())
        except PyMongoError as exc:
            raise DataStoreError(f"count failed on {collection.value}: {exc}") from exc

    def page(
        self,
        collection: Collection,
        skip: int,
        limit: int,
        sort_direction: int = -1,
        projection: Optional[Mapping[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        direction = ASCENDING if sort_direction >= 0 else DESCENDING
        try:
            cursor = (
                self._db[collection.value]
                .find({}, dict(projection) if projection else {"_id": 0})
                .sort("createdAt", direction)
                .skip(skip)
                .limit(limit)
            )
            return list(cursor)
        except PyMongoError as exc:
            raise DataStoreError(f"page failed on {collection.value}: {exc}") from exc

    def bulk_write(self, collection: Collection, operations: Sequence[UpsertOperation]) -> int:
        if not operations:
            return 0
        now = _now()
        requests = [
            UpdateOne(
                op.filter,
                {"$setOnInsert": {**op.set_on_insert, "createdAt": now, "updatedAt": now}},
                upsert=op.upsert,
            )
            for op in operations
        ]
        try:
            result = self._db[collection.value].bulk_write(requests, ordered=False)
            return int(result.upserted_count)
        except BulkWriteError as exc:
            # Concurrent upserts racing on one natural key surface as E11000; the
            # document already exists, which is the outcome we wanted.
            return _upserted_despite_duplicates(collection, exc)
        except PyMongoError as exc:
            raise DataStoreError(f"bulk write failed on {collection.value}: {exc}") from exc

    def insert_many(self, collection: Collection, documents: Sequence[Mapping[str, Any]]) -> int:
        if not documents:
            return 0
        try:
            result = self._db[collection.value].insert_many([dict(d) for d in documents], ordered=False)
            return len(result.inserted_ids)
        except BulkWriteError as exc:
            details = exc.details or {}
            _raise_unless_duplicates(collection, exc)
            return int(details.get("nInserted", 0))
        except PyMongoError as exc:
            raise DataStoreError(f"insert failed on {collection.value}: {exc}") from exc

    def ensure_indexes(self) -> None:
        try:
            for collection, key in NATURAL_KEYS.items():
                coll = self._db[collection.value]
                coll.create_index([(key, ASCENDING)], unique=True)
                coll.create_index([("createdAt", ASCENDING), ("updatedAt", ASCENDING)])
                coll.create_index([(field, TEXT) for field in _TEXT_INDEXES[collection]])
        except PyMongoError as exc:
            raise DataStoreError(f"index creation failed: {exc}") from exc

    def close(self) -> None:
        self._client.close()


class MemoryStore(DataStore):
    """Thread-safe in-process store with the same upsert semantics as MongoStore.

    Used for dry runs and tests. Documents keep insertion order, which is also
    their creation order."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._collections: Dict[Collection, List[Dict[str, Any]]] = {c: [] for c in Collection}
        self._keys: Dict[Collection, Dict[Any, Dict[str, Any]]] = {c: {} for c in Collection}

    def count(self, collection: Collection) -> int:
        with self._lock:
            return len(self._collections[collection])

    def page(
        self,
        collection: Collection,
        skip: int,
        limit: int,
        sort_direction: int = -1,
        projection: Optional[Mapping[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        with self._lock:
            docs = list(self._collections[collection])
        if sort_direction < 0:
            docs.reverse()
        return [_project(doc, projection) for doc in docs[skip : skip + limit]]

    def bulk_write(self, collection: Collection, operations: Sequence[UpsertOperation]) -> int:
        created = 0
        with self._lock:
            for op in operations:
                if self._find(collection, op.filter) is not None or not op.upsert:
                    continue
                now = _now()
                self._add(collection, {**op.filter, **op.set_on_insert, "createdAt": now, "updatedAt": now})
                created += 1
        return created

    def insert_many(self, collection: Collection, documents: Sequence[Mapping[str, Any]]) -> int:
        inserted = 0
        key = NATURAL_KEYS[collection]
        with self._lock:
            for document in documents:
                if document.get(key) in self._keys[collection]:
                    continue
                self._add(collection, dict(document))
                inserted += 1
        return inserted

    def documents(self, collection: Collection) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(doc) for doc in self._collections[collection]]

    def _find(self, collection: Collection, filter_: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        key = NATURAL_KEYS[collection]
        if set(filter_) == {key}:
            return self._keys[collection].get(filter_[key])
        for doc in self._collections[collection]:
            if all(doc.get(k) == v for k, v in filter_.items()):
                return doc
        return None

    def _add(self, collection: Collection, document: Dict[str, Any]) -> None:
        self._collections[collection].append(document)
        self._keys[collection][document.get(NATURAL_KEYS[collection])] = document


def _now() -> _dt.datetime:
    return _dt.datetime.now(tz=_dt.timezone.utc)


def _project(doc: Mapping[str, Any], projection: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    included = [k for k, v in (projection or {}).items() if v and k != "_id"]
    if not included:
        return {k: v for k, v in doc.items() if k != "_id"}
    return {k: doc[k] for k in included if k in doc}


def _raise_unless_duplicates(collection: Collection, exc: BulkWriteError) -> None:
    errors = (exc.details or {}).get("writeErrors", [])
    others = [e for e in errors if e.get("code") != DUPLICATE_KEY]
    if others:
        raise DataStoreError(f"bulk write failed on {collection.value}: {others[0].get('errmsg')}") from exc
    if errors:
        logger.debug("ignored %d duplicate-key errors on %s", len(errors), collection.value)


def _upserted_despite_duplicates(collection: Collection, exc: BulkWriteError) -> int:
    _raise_unless_duplicates(collection, exc)
    return int((exc.details or {}).get("nUpserted", 0))


def iter_batches(items: Sequence[Any], batch_size: int) -> Iterable[Sequence[Any]]:
    for start in range(0, len(items), batch_size):
        yield items[start : start + batch_size]
