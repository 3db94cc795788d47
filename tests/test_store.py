"""
Tests for atlascie.store -- in-memory document store and tenant paths.

Covers: tenant-scoped paths, create/get/list, merge vs overwrite on set,
update of a missing document, server timestamps, live subscriptions with
equality filters, and unsubscribe.
"""

from datetime import datetime, timezone

import pytest

from atlascie.store import (
    SERVER_TIMESTAMP,
    DocumentNotFoundError,
    InMemoryDocumentStore,
    TenantPaths,
    split_path,
)

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _make_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore(clock=lambda: FIXED_NOW)


class TestTenantPaths:
    def test_profile_path(self):
        assert TenantPaths("demo-app").profile("u1") == "artifacts/demo-app/users/u1/profile/main"

    def test_shared_collections(self):
        paths = TenantPaths("demo-app")
        assert paths.enrollees() == "artifacts/demo-app/public/data/enrollees"
        assert paths.care_plan("e1") == "artifacts/demo-app/public/data/enrollees/e1/carePlan"
        assert paths.messages("r1") == "artifacts/demo-app/public/data/referrals/r1/messages"
        assert paths.message("r1", "m1").endswith("/referrals/r1/messages/m1")

    def test_empty_app_id_rejected(self):
        with pytest.raises(ValueError):
            TenantPaths("")

    def test_split_path_rejects_collection_paths(self):
        assert split_path("a/b/c/d") == ("a/b/c", "d")
        with pytest.raises(ValueError):
            split_path("a/b/c")


class TestReadsAndWrites:
    def test_create_then_get_includes_id(self):
        store = _make_store()
        doc_id = store.create("things", {"name": "x"})
        assert store.get(f"things/{doc_id}") == {"name": "x", "id": doc_id}

    def test_get_missing_returns_none(self):
        assert _make_store().get("things/nope") is None

    def test_returned_documents_are_copies(self):
        store = _make_store()
        store.create("things", {"tags": ["a"]}, doc_id="t1")
        doc = store.get("things/t1")
        doc["tags"].append("b")
        assert store.get("things/t1")["tags"] == ["a"]

    def test_list_with_equality_filter(self):
        store = _make_store()
        store.create("things", {"owner": "u1"}, doc_id="a")
        store.create("things", {"owner": "u2"}, doc_id="b")
        assert [d["id"] for d in store.list("things", where={"owner": "u2"})] == ["b"]

    def test_set_merge_keeps_other_fields(self):
        store = _make_store()
        store.set("things/t1", {"a": 1, "b": 2})
        store.set("things/t1", {"b": 3}, merge=True)
        assert store.get("things/t1") == {"a": 1, "b": 3, "id": "t1"}

    def test_set_without_merge_overwrites(self):
        store = _make_store()
        store.set("things/t1", {"a": 1, "b": 2})
        store.set("things/t1", {"b": 3})
        assert store.get("things/t1") == {"b": 3, "id": "t1"}

    def test_update_missing_document_raises(self):
        with pytest.raises(DocumentNotFoundError):
            _make_store().update("things/missing", {"a": 1})

    def test_delete_missing_document_is_noop(self):
        _make_store().delete("things/missing")  # should not raise

    def test_server_timestamp_resolved_on_write(self):
        store = _make_store()
        store.create("things", {"created_at": SERVER_TIMESTAMP}, doc_id="t1")
        assert store.get("things/t1")["created_at"] == FIXED_NOW


class TestSubscriptions:
    def test_listener_receives_initial_and_subsequent_snapshots(self):
        store = _make_store()
        snapshots = []
        store.subscribe("things", snapshots.append)
        store.create("things", {"n": 1}, doc_id="a")
        assert len(snapshots) == 2
        assert snapshots[0] == []
        assert snapshots[1] == [{"n": 1, "id": "a"}]

    def test_filtered_subscription_only_sees_matches(self):
        store = _make_store()
        snapshots = []
        store.subscribe("things", snapshots.append, where={"owner": "u1"})
        store.create("things", {"owner": "u2"}, doc_id="b")
        store.create("things", {"owner": "u1"}, doc_id="a")
        assert [d["id"] for d in snapshots[-1]] == ["a"]

    def test_other_collections_do_not_notify(self):
        store = _make_store()
        snapshots = []
        store.subscribe("things", snapshots.append)
        store.create("others", {"n": 1})
        assert len(snapshots) == 1

    def test_unsubscribe_stops_delivery(self):
        store = _make_store()
        snapshots = []
        subscription = store.subscribe("things", snapshots.append)
        subscription.unsubscribe()
        store.create("things", {"n": 1})
        assert len(snapshots) == 1
        subscription.unsubscribe()  # idempotent
