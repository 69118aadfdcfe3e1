"""
Conversation memory storage: repository contract plus in-memory and Supabase
implementations.

Rows are flat dicts. Nested values (messages, context, preference arrays) are
stored as pre-serialized JSON text so any table store can hold them; readers
also accept already-decoded values (Supabase jsonb columns).
"""

import copy
import json
from typing import Any, Protocol

import structlog

from app.models.memory import ConversationSession, PriceRange, UserPreferences

logger = structlog.get_logger(__name__)


class RecordNotFoundError(LookupError):
    """An update targeted a row that does not exist."""


class MemoryRepository(Protocol):
    """Storage contract for sessions and preferences."""

    async def list_sessions(
        self, where: dict[str, Any], order_by: str | None = None, limit: int | None = None
    ) -> list[dict]:
        """Rows matching every key in `where`, newest `order_by` first."""

    async def create_session(self, row: dict) -> dict:
        """Insert a session row."""

    async def update_session(self, session_id: str, updates: dict) -> dict:
        """Patch a session row. Raises RecordNotFoundError if missing."""

    async def list_preferences(self, where: dict[str, Any], limit: int | None = None) -> list[dict]:
        """Preference rows matching every key in `where`."""

    async def create_preferences(self, row: dict) -> dict:
        """Insert a preferences row."""

    async def update_preferences(self, preferences_id: str, updates: dict) -> dict:
        """Patch a preferences row. Raises RecordNotFoundError if missing."""


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------


def _dump_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def _load_json(value: Any, default: Any) -> Any:
    if value is None or value == "":
        return default
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            logger.warning("memory_row_invalid_json", preview=value[:80])
            return default
    return value


def session_to_row(session: ConversationSession) -> dict:
    return {
        "id": session.id,
        "user_id": session.user_id,
        "title": session.title,
        "messages": _dump_json([m.model_dump(mode="json") for m in session.messages]),
        "context": _dump_json(session.context.model_dump(mode="json")),
        "created_at": session.created_at_ms,
        "updated_at": session.updated_at_ms,
    }


def session_from_row(row: dict) -> ConversationSession:
    updated_at = row.get("updated_at") or row.get("created_at") or 0
    context = _load_json(row.get("context"), None) or {"last_activity_ms": updated_at}
    context.setdefault("last_activity_ms", updated_at)
    return ConversationSession(
        id=row["id"],
        user_id=row["user_id"],
        title=row.get("title") or "New Property Search",
        messages=_load_json(row.get("messages"), []),
        context=context,
        created_at_ms=row.get("created_at") or updated_at,
        updated_at_ms=updated_at,
    )


# Preference fields that are stored as JSON text
_PREFERENCE_JSON_FIELDS = (
    "property_type",
    "locations",
    "amenities",
    "search_history",
    "viewed_properties",
    "favorite_properties",
)


def preferences_to_row(preferences: UserPreferences, fields: set[str] | None = None) -> dict:
    """
    Full row, or only the columns backing `fields` (always with updated_at).
    """
    row: dict[str, Any] = {"updated_at": preferences.updated_at_ms}
    wanted = fields if fields is not None else set(UserPreferences.model_fields)

    if fields is None:
        row["id"] = preferences.id
        row["user_id"] = preferences.user_id
    for name in _PREFERENCE_JSON_FIELDS:
        if name in wanted:
            row[name] = _dump_json(getattr(preferences, name))
    if "price_range" in wanted:
        price_range = preferences.price_range
        row["price_range_min"] = price_range.min if price_range else None
        row["price_range_max"] = price_range.max if price_range else None
    if "bedrooms" in wanted:
        row["bedrooms"] = preferences.bedrooms
    if "communication_style" in wanted:
        row["communication_style"] = preferences.communication_style.value
    if "language" in wanted:
        row["language"] = preferences.language.value
    return row


def preferences_from_row(row: dict) -> UserPreferences:
    price_min = row.get("price_range_min")
    price_max = row.get("price_range_max")
    price_range = None
    if price_min or price_max:
        price_range = PriceRange(min=price_min or 0, max=price_max or 0)

    return UserPreferences(
        id=row["id"],
        user_id=row["user_id"],
        price_range=price_range,
        bedrooms=row.get("bedrooms"),
        communication_style=row.get("communication_style") or "detailed",
        language=row.get("language") or "en",
        updated_at_ms=row.get("updated_at") or 0,
        **{name: _load_json(row.get(name), []) for name in _PREFERENCE_JSON_FIELDS},
    )


# ---------------------------------------------------------------------------
# Implementations
# ---------------------------------------------------------------------------


def _matches(row: dict, where: dict[str, Any]) -> bool:
    return all(row.get(key) == value for key, value in where.items())


class InMemoryMemoryRepository:
    """In-memory repository used for tests and local fallback."""

    def __init__(self) -> None:
        self.sessions: dict[str, dict] = {}
        self.preferences: dict[str, dict] = {}

    async def list_sessions(
        self, where: dict[str, Any], order_by: str | None = None, limit: int | None = None
    ) -> list[dict]:
        rows = [copy.deepcopy(r) for r in self.sessions.values() if _matches(r, where)]
        if order_by:
            rows.sort(key=lambda r: r.get(order_by) or 0, reverse=True)
        return rows[:limit] if limit is not None else rows

    async def create_session(self, row: dict) -> dict:
        self.sessions[row["id"]] = copy.deepcopy(row)
        return copy.deepcopy(row)

    async def update_session(self, session_id: str, updates: dict) -> dict:
        if session_id not in self.sessions:
            raise RecordNotFoundError(f"Session not found: {session_id}")
        self.sessions[session_id].update(copy.deepcopy(updates))
        return copy.deepcopy(self.sessions[session_id])

    async def list_preferences(self, where: dict[str, Any], limit: int | None = None) -> list[dict]:
        rows = [copy.deepcopy(r) for r in self.preferences.values() if _matches(r, where)]
        return rows[:limit] if limit is not None else rows

    async def create_preferences(self, row: dict) -> dict:
        self.preferences[row["id"]] = copy.deepcopy(row)
        return copy.deepcopy(row)

    async def update_preferences(self, preferences_id: str, updates: dict) -> dict:
        if preferences_id not in self.preferences:
            raise RecordNotFoundError(f"Preferences not found: {preferences_id}")
        self.preferences[preferences_id].update(copy.deepcopy(updates))
        return copy.deepcopy(self.preferences[preferences_id])


class SupabaseMemoryRepository:
    """Supabase-backed repository for sessions and preferences."""

    def __init__(self, client, sessions_table: str, preferences_table: str):
        self.client = client
        self.sessions_table = sessions_table
        self.preferences_table = preferences_table

    async def _select(
        self, table: str, where: dict[str, Any], order_by: str | None, limit: int | None
    ) -> list[dict]:
        query = self.client.table(table).select("*")
        for key, value in where.items():
            query = query.eq(key, value)
        if order_by:
            query = query.order(order_by, desc=True)
        if limit is not None:
            query = query.limit(limit)
        response = await query.execute()
        return response.data or []

    async def _update(self, table: str, row_id: str, updates: dict) -> dict:
        response = await self.client.table(table).update(updates).eq("id", row_id).execute()
        rows = response.data or []
        if not rows:
            # PostgREST returns an empty representation when no row matched.
            raise RecordNotFoundError(f"PGRST116: {table} row not found: {row_id}")
        return rows[0]

    async def _insert(self, table: str, row: dict) -> dict:
        response = await self.client.table(table).insert(row).execute()
        rows = response.data or []
        return rows[0] if rows else row

    async def list_sessions(
        self, where: dict[str, Any], order_by: str | None = None, limit: int | None = None
    ) -> list[dict]:
        return await self._select(self.sessions_table, where, order_by, limit)

    async def create_session(self, row: dict) -> dict:
        return await self._insert(self.sessions_table, row)

    async def update_session(self, session_id: str, updates: dict) -> dict:
        return await self._update(self.sessions_table, session_id, updates)

    async def list_preferences(self, where: dict[str, Any], limit: int | None = None) -> list[dict]:
        return await self._select(self.preferences_table, where, None, limit)

    async def create_preferences(self, row: dict) -> dict:
        return await self._insert(self.preferences_table, row)

    async def update_preferences(self, preferences_id: str, updates: dict) -> dict:
        return await self._update(self.preferences_table, preferences_id, updates)
