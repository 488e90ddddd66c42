"""Tests for the document stores."""

import json

import mongomock
import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from shopfront.documents import (
    JsonDocumentStore,
    MongoDocumentStore,
    _from_mongo,
    _to_mongo_query,
    _without_id,
    open_document_store,
)
from shopfront.errors import StorageError
from shopfront.settings import Settings


def _mongo_store():
    return MongoDocumentStore(mongomock.MongoClient()["shopfront_test"])


@pytest.fixture(params=["json", "mongo"])
def backend(request, temp_dir):
    """Each document store implementation, behind the same interface."""
    if request.param == "json":
        return JsonDocumentStore(temp_dir)
    return _mongo_store()


class TestDocumentStore:
    def test_insert_assigns_id(self, backend):
        doc = backend.insert("item", {"title": "Lamp"})

        assert doc["id"]
        assert backend.get("item", doc["id"])["title"] == "Lamp"

    def test_insert_ignores_caller_id(self, backend):
        doc = backend.insert("item", {"id": "chosen", "title": "Lamp"})

        assert doc["id"] != "chosen"
        assert backend.get("item", doc["id"])["title"] == "Lamp"

    def test_missing_collection_is_empty(self, backend):
        assert backend.find("order") == []
        assert backend.count("order") == 0
        assert backend.get("order", "nope") is None

    def test_find_filters_sorts_and_pages(self, backend):
        for n in range(5):
            backend.insert("order", {"userId": "u1" if n % 2 == 0 else "u2", "n": n})

        docs = backend.find("order", {"userId": "u1"}, sort_by="n", descending=True)
        assert [d["n"] for d in docs] == [4, 2, 0]

        page = backend.find("order", {"userId": "u1"}, sort_by="n", skip=1, limit=1)
        assert [d["n"] for d in page] == [2]
        assert backend.count("order", {"userId": "u2"}) == 2

    def test_replace(self, backend):
        doc = backend.insert("cart", {"userId": "u1", "items": []})

        assert backend.replace("cart", doc["id"], {"userId": "u1", "items": [1]}) is True
        assert backend.get("cart", doc["id"])["items"] == [1]
        assert backend.replace("cart", "missing", {"userId": "x"}) is False

    def test_update_matches_whole_query(self, backend):
        doc = backend.insert("order", {"status": "confirmed"})

        assert backend.update("order", {"id": doc["id"], "status": "shipped"}, {"status": "x"}) is None
        assert backend.get("order", doc["id"])["status"] == "confirmed"
        updated = backend.update("order", {"id": doc["id"], "status": "confirmed"}, {"status": "cancelled"})
        assert updated["status"] == "cancelled"
        assert updated["id"] == doc["id"]
        assert backend.update("order", {"id": "missing"}, {"status": "x"}) is None

    def test_find_or_insert_is_idempotent(self, backend):
        first = backend.find_or_insert("cart", {"userId": "u1"}, {"userId": "u1", "items": []})
        second = backend.find_or_insert("cart", {"userId": "u1"}, {"userId": "u1", "items": ["ignored"]})

        assert first["id"] == second["id"]
        assert first["userId"] == "u1"
        assert second["items"] == []
        assert backend.count("cart") == 1

    def test_delete(self, backend):
        backend.insert("session", {"token": "a"})
        backend.insert("session", {"token": "b"})

        assert backend.delete("session", {"token": "a"}) == 1
        assert backend.delete("session", {"token": "a"}) == 0
        assert backend.count("session") == 1


class TestJsonDocumentStore:
    def test_file_layout(self, store, temp_dir):
        store.insert("item", {"title": "Lamp"})

        data = json.loads((temp_dir / "collections" / "item.json").read_text())
        assert data["schema_version"] == 1
        assert data["documents"][0]["title"] == "Lamp"

    def test_rejects_bad_collection_name(self, store):
        with pytest.raises(StorageError):
            store.insert("../escape", {})

    def test_corrupt_file_raises_storage_error(self, store, temp_dir):
        (temp_dir / "collections").mkdir(parents=True)
        (temp_dir / "collections" / "item.json").write_text("{not json")

        with pytest.raises(StorageError):
            store.find("item")

    def test_unsupported_schema_version(self, store, temp_dir):
        (temp_dir / "collections").mkdir(parents=True)
        (temp_dir / "collections" / "item.json").write_text(
            json.dumps({"schema_version": 99, "documents": []})
        )

        with pytest.raises(StorageError, match="schema version"):
            store.find("item")


class TestMongoTranslation:
    def test_id_becomes_object_id(self):
        oid = ObjectId()
        assert _to_mongo_query({"id": str(oid), "status": "x"}) == {"_id": oid, "status": "x"}

    def test_malformed_id_matches_nothing(self):
        assert _to_mongo_query({"id": "not-an-object-id"}) is None

    def test_from_mongo_exposes_string_id(self):
        oid = ObjectId()
        assert _from_mongo({"_id": oid, "a": 1}) == {"id": str(oid), "a": 1}
        assert _from_mongo(None) is None

    def test_without_id(self):
        assert _without_id({"id": "x", "_id": "y", "a": 1}) == {"a": 1}


class TestOpenDocumentStore:
    def test_json_backend_without_database_url(self, temp_dir):
        store = open_document_store(Settings(data_dir=temp_dir, database_url=None))
        assert isinstance(store, JsonDocumentStore)
        assert store.data_dir == temp_dir


class TestMongoDocumentStore:
    @pytest.fixture
    def mongo(self):
        store = _mongo_store()
        store.ensure_indexes()
        return store

    def test_insert_stores_object_id(self, mongo):
        doc = mongo.insert("item", {"id": "chosen", "_id": "also-chosen", "title": "Lamp"})

        raw = mongo.db["item"].find_one({"title": "Lamp"})
        assert isinstance(raw["_id"], ObjectId)
        assert str(raw["_id"]) == doc["id"]
        assert "id" not in raw

    def test_unique_index_violation_raises_storage_error(self, mongo):
        mongo.insert("user", {"email": "ada@shopfront.io"})

        with pytest.raises(StorageError):
            mongo.insert("user", {"email": "ada@shopfront.io"})

    def test_find_or_insert_after_lost_race(self, mongo, monkeypatch):
        existing = mongo.insert("cart", {"userId": "u1", "items": []})

        def raced(self, *args, **kwargs):
            raise DuplicateKeyError("E11000 duplicate key error")

        monkeypatch.setattr(mongomock.Collection, "find_one_and_update", raced)
        found = mongo.find_or_insert("cart", {"userId": "u1"}, {"userId": "u1", "items": ["new"]})

        assert found["id"] == existing["id"]
        assert found["items"] == []
        assert mongo.count("cart") == 1

    def test_malformed_id_matches_nothing(self, mongo):
        mongo.insert("order", {"status": "confirmed"})

        assert mongo.get("order", "not-an-object-id") is None
        assert mongo.delete("order", {"id": "not-an-object-id"}) == 0
        assert mongo.count("order") == 1
