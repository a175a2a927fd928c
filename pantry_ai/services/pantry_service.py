"""Pantry inventory service backed by Supabase.

All queries go to the ``pantry_items`` table through an async supabase-py
client and are scoped to the current user. Remote errors (postgrest
APIError and transport failures) propagate to the caller unchanged.

Rows use the remote snake_case shape (``expiry_date``, ``cost_kes``);
to_local_format() / to_remote_format() convert to and from PantryItem.
"""

from collections import Counter
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Optional

from supabase import AsyncClient

from pantry_ai.models.models import PantryItem, PantryStats
from pantry_ai.utils.errors import NotAuthenticatedError
from pantry_ai.utils.logger import logger


PANTRY_TABLE = "pantry_items"
PANTRY_CHANNEL = "pantry_changes"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class PantryService:
    """CRUD, search and statistics over the current user's pantry items.

    Args:
        client: Async Supabase client.
        user_id: Authenticated user; every operation requires one.
        today: Callable returning the current date (injectable for tests).
    """

    def __init__(
        self,
        client: AsyncClient,
        user_id: Optional[str] = None,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self.client = client
        self.user_id = user_id
        self.today = today or date.today

    def set_user_id(self, user_id: Optional[str]) -> None:
        self.user_id = user_id

    def _require_user(self) -> str:
        if not self.user_id:
            raise NotAuthenticatedError("User not authenticated")
        return self.user_id

    def _table(self):
        return self.client.table(PANTRY_TABLE)

    # ------------------------------------------------------------------
    # Format conversion
    # ------------------------------------------------------------------

    @staticmethod
    def to_remote_format(item: PantryItem) -> dict[str, Any]:
        """PantryItem -> ``pantry_items`` row (without user_id), with the table's defaults."""
        row = {
            "name": item.name,
            "category": item.category or "other",
            "quantity": item.quantity or 1,
            "unit": item.unit or "pieces",
            "expiry_date": item.expires_on.isoformat() if item.expires_on else None,
            "location": item.location or "pantry",
            "brand": item.brand,
            "notes": item.notes,
            "cost_kes": item.cost_kes,
            "is_pinned": item.is_pinned,
            "is_low_stock": item.is_low_stock,
        }
        return {k: v for k, v in row.items() if v is not None}

    @staticmethod
    def to_local_format(row: dict[str, Any]) -> PantryItem:
        return PantryItem(
            id=row.get("id"),
            name=row.get("name") or "",
            category=row.get("category"),
            quantity=row.get("quantity"),
            unit=row.get("unit"),
            expires_on=row.get("expiry_date"),
            location=row.get("location"),
            brand=row.get("brand"),
            notes=row.get("notes"),
            cost_kes=row.get("cost_kes"),
            is_pinned=row.get("is_pinned"),
            is_low_stock=row.get("is_low_stock"),
            stored_days_until_expiry=row.get("days_until_expiry"),
        )

    def _to_row(self, item: PantryItem | dict[str, Any]) -> dict[str, Any]:
        row = self.to_remote_format(item) if isinstance(item, PantryItem) else dict(item)
        row["user_id"] = self.user_id
        row["created_at"] = _now_iso()
        return row

    def _items(self, response: Any) -> list[PantryItem]:
        return [self.to_local_format(row) for row in (response.data or [])]

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def get_pantry_items(self) -> list[PantryItem]:
        """All items, pinned first, then soonest expiry."""
        user_id = self._require_user()
        response = await (
            self._table()
            .select("*")
            .eq("user_id", user_id)
            .order("is_pinned", desc=True)
            .order("expiry_date")
            .execute()
        )
        return self._items(response)

    async def get_pantry_item(self, item_id: str) -> PantryItem:
        user_id = self._require_user()
        response = await self._table().select("*").eq("id", item_id).eq("user_id", user_id).single().execute()
        return self.to_local_format(response.data)

    async def add_pantry_item(self, item: PantryItem | dict[str, Any]) -> PantryItem:
        self._require_user()
        response = await self._table().insert(self._to_row(item)).execute()
        logger.info(f"Added pantry item {response.data[0].get('name')}")
        return self.to_local_format(response.data[0])

    async def add_multiple_pantry_items(self, items: list[PantryItem | dict[str, Any]]) -> list[PantryItem]:
        """Insert several items in one request, e.g. the output of ingredient detection."""
        self._require_user()
        if not items:
            return []
        response = await self._table().insert([self._to_row(item) for item in items]).execute()
        logger.info(f"Added {len(response.data or [])} pantry items")
        return self._items(response)

    async def update_pantry_item(self, item_id: str, updates: dict[str, Any]) -> PantryItem:
        """Apply remote-format ``updates`` and stamp ``updated_at``."""
        user_id = self._require_user()
        response = await (
            self._table()
            .update({**updates, "updated_at": _now_iso()})
            .eq("id", item_id)
            .eq("user_id", user_id)
            .execute()
        )
        return self.to_local_format(response.data[0])

    async def delete_pantry_item(self, item_id: str) -> None:
        user_id = self._require_user()
        await self._table().delete().eq("id", item_id).eq("user_id", user_id).execute()
        logger.info(f"Deleted pantry item {item_id}")

    async def toggle_pin_status(self, item_id: str) -> PantryItem:
        item = await self.get_pantry_item(item_id)
        return await self.update_pantry_item(item_id, {"is_pinned": not item.is_pinned})

    async def toggle_low_stock_status(self, item_id: str) -> PantryItem:
        item = await self.get_pantry_item(item_id)
        return await self.update_pantry_item(item_id, {"is_low_stock": not item.is_low_stock})

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def search_pantry_items(self, query: str) -> list[PantryItem]:
        """Case-insensitive substring match on the item name."""
        user_id = self._require_user()
        response = await (
            self._table()
            .select("*")
            .eq("user_id", user_id)
            .ilike("name", f"%{query}%")
            .order("is_pinned", desc=True)
            .order("name")
            .execute()
        )
        return self._items(response)

    async def get_expiring_items(self, days_ahead: int = 3) -> list[PantryItem]:
        """Items expiring between today and ``days_ahead`` days from now, inclusive."""
        user_id = self._require_user()
        today = self.today()
        response = await (
            self._table()
            .select("*")
            .eq("user_id", user_id)
            .lte("expiry_date", (today + timedelta(days=days_ahead)).isoformat())
            .gte("expiry_date", today.isoformat())
            .order("expiry_date")
            .execute()
        )
        return self._items(response)

    async def get_low_stock_items(self) -> list[PantryItem]:
        user_id = self._require_user()
        response = await (
            self._table().select("*").eq("user_id", user_id).eq("is_low_stock", True).order("name").execute()
        )
        return self._items(response)

    async def get_expired_items(self) -> list[PantryItem]:
        user_id = self._require_user()
        response = await (
            self._table()
            .select("*")
            .eq("user_id", user_id)
            .lt("expiry_date", self.today().isoformat())
            .order("expiry_date", desc=True)
            .execute()
        )
        return self._items(response)

    async def get_pantry_stats(self) -> PantryStats:
        """Counts, total value (KES) and per-category breakdown of the pantry."""
        items = await self.get_pantry_items()
        expiring = await self.get_expiring_items(3)
        low_stock = await self.get_low_stock_items()
        expired = await self.get_expired_items()

        by_category = Counter(item.category or "other" for item in items)
        most_common = by_category.most_common(1)
        return PantryStats(
            total_items=len(items),
            expiring_soon=len(expiring),
            low_stock=len(low_stock),
            expired=len(expired),
            total_value=sum(item.cost_kes or 0 for item in items),
            by_category=dict(by_category),
            most_common_category=most_common[0][0] if most_common else "other",
        )

    # ------------------------------------------------------------------
    # Realtime
    # ------------------------------------------------------------------

    async def subscribe_to_changes(self, callback: Callable[[dict[str, Any]], None]):
        """Subscribe ``callback`` to inserts, updates and deletes of this user's items.

        Returns:
            The subscribed realtime channel; call ``unsubscribe()`` on it to stop.
        """
        user_id = self._require_user()
        channel = self.client.channel(PANTRY_CHANNEL)
        channel.on_postgres_changes(
            "*",
            callback,
            table=PANTRY_TABLE,
            schema="public",
            filter=f"user_id=eq.{user_id}",
        )
        await channel.subscribe()
        return channel
