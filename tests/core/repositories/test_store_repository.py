"""Tests for StoreRepository — the tenant records themselves."""

from __future__ import annotations

import uuid


class TestStores:
    def test_create_assigns_uuid(self, stores):
        store = stores.create("Corner Shop")
        assert str(uuid.UUID(store.id)) == store.id
        assert stores.get(store.id).name == "Corner Shop"

    def test_explicit_id(self, stores):
        store_id = str(uuid.uuid4())
        assert stores.create("Fixed", store_id=store_id).id == store_id

    def test_list_sorted_by_name(self, stores):
        stores.create("Zeta")
        stores.create("Alpha")
        assert [s.name for s in stores.list_all()] == ["Alpha", "Zeta"]

    def test_missing(self, stores):
        assert stores.get("nope") is None
