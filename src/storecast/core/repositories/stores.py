"""Store (tenant record) repository. Tenant-agnostic by design."""

from __future__ import annotations

from uuid import uuid4

from storecast.core.models import Store
from storecast.core.repositories._base import Repository
from storecast.core.timestamps import to_iso8601, utc_now


class StoreRepository(Repository):
    """CRUD over ``stores``; no tenant scope applies to the tenant itself."""

    def create(self, name: str, store_id: str | None = None) -> Store:
        """Create a store record."""
        store_id = store_id or str(uuid4())
        self.conn.execute(
            f"INSERT INTO stores (id, name, created_at) VALUES ({self._ph(3)})",
            (store_id, name, to_iso8601(utc_now())),
        )
        self.conn.commit()
        return self.get(store_id)  # type: ignore[return-value]

    def get(self, store_id: str) -> Store | None:
        return self._fetch_one(
            Store,
            f"SELECT id, name, created_at FROM stores WHERE id = {self._ph()}",
            (store_id,),
        )

    def list_all(self) -> list[Store]:
        return self._fetch_all(
            Store, "SELECT id, name, created_at FROM stores ORDER BY name, id", ()
        )
