"""Document storage for shopfront.

Two backends share one small interface: a JSON-file store for local
development and tests, and a MongoDB store for deployments. Documents are
plain dicts with camelCase keys and an opaque string ``id``. Queries are
top-level equality matches.

Only single-document writes are atomic. Nothing here spans two documents
in one transaction, so callers that touch several documents (order
placement followed by a cart clear) must sequence their writes.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import re
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterator, Protocol

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from .errors import StorageError
from .models import _generate_id

if TYPE_CHECKING:
    from pymongo.database import Database

    from .settings import Settings

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
COLLECTIONS_DIR = "collections"
_COLLECTION_NAME = re.compile(r"^[a-z][a-z0-9_]*$")


class DocumentStore(Protocol):
    """Protocol for document store backends."""

    def insert(self, collection: str, doc: dict[str, Any]) -> dict[str, Any]:
        """Insert a document and return it with its assigned ``id``."""
        ...

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        ...

    def find_one(self, collection: str, query: dict[str, Any]) -> dict[str, Any] | None:
        ...

    def find(
        self,
        collection: str,
        query: dict[str, Any] | None = None,
        sort_by: str | None = None,
        descending: bool = False,
        skip: int = 0,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        ...

    def count(self, collection: str, query: dict[str, Any] | None = None) -> int:
        ...

    def replace(self, collection: str, doc_id: str, doc: dict[str, Any]) -> bool:
        """Overwrite a whole document. Returns False if it doesn't exist."""
        ...

    def update(
        self, collection: str, query: dict[str, Any], fields: dict[str, Any]
    ) -> dict[str, Any] | None:
        """Set fields on the first match and return the updated document, or None."""
        ...

    def find_or_insert(
        self, collection: str, query: dict[str, Any], doc: dict[str, Any]
    ) -> dict[str, Any]:
        """Return the first match, atomically inserting doc if there is none."""
        ...

    def delete(self, collection: str, query: dict[str, Any]) -> int:
        ...


def _matches(doc: dict[str, Any], query: dict[str, Any] | None) -> bool:
    if not query:
        return True
    return all(doc.get(key) == value for key, value in query.items())


class JsonDocumentStore:
    """Stores each collection as one JSON file under ``<data_dir>/collections``."""

    def __init__(self, data_dir: Path):
        """
        Initialize JsonDocumentStore.

        Args:
            data_dir: Base data directory (override for testing).
        """
        self.data_dir = Path(data_dir)
        self.collections_dir = self.data_dir / COLLECTIONS_DIR

    def _path(self, collection: str) -> Path:
        if not _COLLECTION_NAME.match(collection):
            raise StorageError("open", f"invalid collection name: {collection!r}")
        return self.collections_dir / f"{collection}.json"

    def _ensure_dir(self) -> None:
        self.collections_dir.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _lock(self, collection: str) -> Iterator[None]:
        """Acquire exclusive lock on a collection file for read-modify-write operations."""
        self._ensure_dir()
        lock_path = self.collections_dir / f".{collection}.lock"
        with open(lock_path, "w") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _load(self, collection: str) -> list[dict[str, Any]]:
        path = self._path(collection)
        if not path.exists():
            return []
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageError(f"load {collection}", str(e)) from e

        version = data.get("schema_version", 0)
        if version != SCHEMA_VERSION:
            raise StorageError(
                f"load {collection}",
                f"unsupported schema version {version}, expected {SCHEMA_VERSION}",
            )
        return data.get("documents", [])

    def _save(self, collection: str, docs: list[dict[str, Any]]) -> None:
        """Save a collection to disk atomically."""
        path = self._path(collection)
        self._ensure_dir()

        fd, temp_path = tempfile.mkstemp(
            dir=self.collections_dir, prefix=f".{collection}_", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({"schema_version": SCHEMA_VERSION, "documents": docs}, f, indent=2)
                f.write("\n")
            os.replace(temp_path, path)
        except Exception as e:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            if isinstance(e, OSError):
                raise StorageError(f"save {collection}", str(e)) from e
            raise

    def insert(self, collection: str, doc: dict[str, Any]) -> dict[str, Any]:
        stored = dict(doc)
        stored["id"] = _generate_id()
        with self._lock(collection):
            docs = self._load(collection)
            docs.append(stored)
            self._save(collection, docs)
        return dict(stored)

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        return self.find_one(collection, {"id": doc_id})

    def find_one(self, collection: str, query: dict[str, Any]) -> dict[str, Any] | None:
        for doc in self._load(collection):
            if _matches(doc, query):
                return dict(doc)
        return None

    def find(
        self,
        collection: str,
        query: dict[str, Any] | None = None,
        sort_by: str | None = None,
        descending: bool = False,
        skip: int = 0,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        docs = [dict(d) for d in self._load(collection) if _matches(d, query)]
        if sort_by:
            docs.sort(key=lambda d: (d.get(sort_by) is not None, d.get(sort_by)), reverse=descending)
        docs = docs[skip:]
        if limit:
            docs = docs[:limit]
        return docs

    def count(self, collection: str, query: dict[str, Any] | None = None) -> int:
        return sum(1 for d in self._load(collection) if _matches(d, query))

    def replace(self, collection: str, doc_id: str, doc: dict[str, Any]) -> bool:
        stored = dict(doc)
        stored["id"] = doc_id
        with self._lock(collection):
            docs = self._load(collection)
            for i, existing in enumerate(docs):
                if existing.get("id") == doc_id:
                    docs[i] = stored
                    self._save(collection, docs)
                    return True
        return False

    def update(
        self, collection: str, query: dict[str, Any], fields: dict[str, Any]
    ) -> dict[str, Any] | None:
        with self._lock(collection):
            docs = self._load(collection)
            for existing in docs:
                if _matches(existing, query):
                    existing.update(fields)
                    self._save(collection, docs)
                    return dict(existing)
        return None

    def find_or_insert(
        self, collection: str, query: dict[str, Any], doc: dict[str, Any]
    ) -> dict[str, Any]:
        with self._lock(collection):
            docs = self._load(collection)
            for existing in docs:
                if _matches(existing, query):
                    return dict(existing)
            stored = {**doc, **query, "id": _generate_id()}
            docs.append(stored)
            self._save(collection, docs)
            return dict(stored)

    def delete(self, collection: str, query: dict[str, Any]) -> int:
        with self._lock(collection):
            docs = self._load(collection)
            kept = [d for d in docs if not _matches(d, query)]
            removed = len(docs) - len(kept)
            if removed:
                self._save(collection, kept)
        return removed


# --- MongoDB ---


def _object_id(value: Any) -> ObjectId | None:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def _to_mongo_query(query: dict[str, Any] | None) -> dict[str, Any] | None:
    """Translate ``id`` to ``_id``. None means the query can't match anything."""
    translated = dict(query or {})
    if "id" in translated:
        oid = _object_id(translated.pop("id"))
        if oid is None:
            return None
        translated["_id"] = oid
    return translated


def _from_mongo(doc: dict[str, Any] | None) -> dict[str, Any] | None:
    if not doc:
        return None
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


def _without_id(doc: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in doc.items() if k not in ("id", "_id")}


@contextmanager
def _guard(operation: str) -> Iterator[None]:
    try:
        yield
    except PyMongoError as e:
        raise StorageError(operation, str(e)) from e


# Unique keys the domain relies on
MONGO_UNIQUE_INDEXES = {
    "cart": "userId",
    "order": "orderNumber",
    "user": "email",
    "session": "token",
}


class MongoDocumentStore:
    """Stores documents in MongoDB collections; ``_id`` is an ObjectId exposed as ``id``."""

    def __init__(self, database: Database):
        self.db = database

    @classmethod
    def from_url(cls, url: str, name: str) -> "MongoDocumentStore":
        client: MongoClient = MongoClient(url)
        return cls(client[name])

    def ensure_indexes(self) -> None:
        with _guard("create indexes"):
            for collection, key in MONGO_UNIQUE_INDEXES.items():
                self.db[collection].create_index(key, unique=True)
            self.db["order"].create_index([("userId", ASCENDING), ("createdAt", DESCENDING)])

    def insert(self, collection: str, doc: dict[str, Any]) -> dict[str, Any]:
        body = _without_id(doc)
        body["_id"] = ObjectId()
        with _guard(f"insert {collection}"):
            self.db[collection].insert_one(body)
        return _from_mongo(body)

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        return self.find_one(collection, {"id": doc_id})

    def find_one(self, collection: str, query: dict[str, Any]) -> dict[str, Any] | None:
        q = _to_mongo_query(query)
        if q is None:
            return None
        with _guard(f"find {collection}"):
            return _from_mongo(self.db[collection].find_one(q))

    def find(
        self,
        collection: str,
        query: dict[str, Any] | None = None,
        sort_by: str | None = None,
        descending: bool = False,
        skip: int = 0,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        q = _to_mongo_query(query)
        if q is None:
            return []
        with _guard(f"find {collection}"):
            cursor = self.db[collection].find(q)
            if sort_by:
                cursor = cursor.sort(sort_by, DESCENDING if descending else ASCENDING)
            if skip:
                cursor = cursor.skip(skip)
            if limit:
                cursor = cursor.limit(limit)
            return [_from_mongo(d) for d in cursor]

    def count(self, collection: str, query: dict[str, Any] | None = None) -> int:
        q = _to_mongo_query(query)
        if q is None:
            return 0
        with _guard(f"count {collection}"):
            return self.db[collection].count_documents(q)

    def replace(self, collection: str, doc_id: str, doc: dict[str, Any]) -> bool:
        oid = _object_id(doc_id)
        if oid is None:
            return False
        with _guard(f"replace {collection}"):
            result = self.db[collection].replace_one({"_id": oid}, _without_id(doc))
        return result.matched_count > 0

    def update(
        self, collection: str, query: dict[str, Any], fields: dict[str, Any]
    ) -> dict[str, Any] | None:
        q = _to_mongo_query(query)
        if q is None:
            return None
        with _guard(f"update {collection}"):
            doc = self.db[collection].find_one_and_update(
                q, {"$set": _without_id(fields)}, return_document=ReturnDocument.AFTER
            )
        return _from_mongo(doc)

    def find_or_insert(
        self, collection: str, query: dict[str, Any], doc: dict[str, Any]
    ) -> dict[str, Any]:
        q = _to_mongo_query(query)
        if q is None:
            raise StorageError(f"upsert {collection}", "query cannot match a document")
        on_insert = {k: v for k, v in _without_id(doc).items() if k not in q}
        with _guard(f"upsert {collection}"):
            try:
                found = self.db[collection].find_one_and_update(
                    q,
                    {"$setOnInsert": on_insert},
                    upsert=True,
                    return_document=ReturnDocument.AFTER,
                )
            except DuplicateKeyError:
                # Lost the race against a concurrent upsert of the same key
                found = self.db[collection].find_one(q)
        return _from_mongo(found)

    def delete(self, collection: str, query: dict[str, Any]) -> int:
        q = _to_mongo_query(query)
        if q is None:
            return 0
        with _guard(f"delete {collection}"):
            return self.db[collection].delete_many(q).deleted_count


# Mongo clients are pooled; keep one store per (url, database)
_mongo_stores: dict[tuple[str, str], MongoDocumentStore] = {}


def open_document_store(settings: Settings) -> DocumentStore:
    """Open the backend selected by settings."""
    if settings.database_url:
        key = (settings.database_url, settings.database_name)
        store = _mongo_stores.get(key)
        if store is None:
            logger.info("Connecting to MongoDB database %s", settings.database_name)
            store = MongoDocumentStore.from_url(*key)
            store.ensure_indexes()
            _mongo_stores[key] = store
        return store
    return JsonDocumentStore(settings.data_dir)
