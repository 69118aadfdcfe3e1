"""
Conversation memory manager.

One instance per process; all state is keyed by user_id. Sessions and
preferences are cached in memory and written through to a MemoryRepository.
Concurrent requests for the same user are not serialized: the last write wins.

Storage failures never reach the caller except where noted. Reads degrade to
in-memory fallbacks, writes are logged, and a preferences update whose row has
gone missing is retried as a full recreate.
"""

import uuid
from datetime import UTC, datetime
from typing import Any

import structlog

from app.agents.heuristics import extract_preferences, merge_preferences
from app.agents.session import SessionDecision, choose_session
from app.config import MemoryConfig
from app.models.memory import (
    ConversationMessage,
    ConversationSession,
    Language,
    MessageMetadata,
    MessageRole,
    PreferenceSummary,
    SessionContext,
    UserPreferences,
)
from app.services.memory_store import (
    MemoryRepository,
    RecordNotFoundError,
    preferences_from_row,
    preferences_to_row,
    session_from_row,
    session_to_row,
)

logger = structlog.get_logger(__name__)

# Error text that identifies "the row we tried to update is gone"
MISSING_RECORD_MARKERS: tuple[str, ...] = (
    "NOT NULL constraint",
    "no such rowid",
    "not found",
    "PGRST116",
)

FALLBACK_SESSION_TITLE = "Property Search Session"


class NoActiveSessionError(RuntimeError):
    """add_message was called before initialize_session for this user."""


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _short_id() -> str:
    return uuid.uuid4().hex[:9]


def is_missing_record_error(error: Exception) -> bool:
    if isinstance(error, RecordNotFoundError):
        return True
    message = str(error)
    return any(marker.lower() in message.lower() for marker in MISSING_RECORD_MARKERS)


class MemoryManager:
    """Session, context-window and preference memory for every user of this process."""

    def __init__(
        self,
        repository: MemoryRepository,
        config: MemoryConfig | None = None,
        now_provider=_utcnow,
    ) -> None:
        self.repository = repository
        self.config = config or MemoryConfig()
        self.now_provider = now_provider
        self._sessions: dict[str, ConversationSession] = {}
        self._preferences: dict[str, UserPreferences] = {}

    def _now_ms(self) -> int:
        return int(self.now_provider().timestamp() * 1000)

    @property
    def session_timeout_ms(self) -> int:
        return self.config.session_timeout_minutes * 60 * 1000

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def initialize_session(self, user_id: str) -> ConversationSession:
        """
        Load preferences, then resume the user's latest session if it was
        active within the timeout window, otherwise start a new one. Stale
        sessions stay in the store untouched.
        """
        await self._load_preferences(user_id)

        try:
            rows = await self.repository.list_sessions({"user_id": user_id}, order_by="updated_at", limit=1)
            latest = session_from_row(rows[0]) if rows else None
        except Exception:
            logger.exception("memory_session_load_failed", user_id=user_id)
            cached = self._sessions.get(user_id)
            if choose_session(cached, self._now_ms(), self.session_timeout_ms) == SessionDecision.RESUME:
                session = cached
            else:
                session = self._fallback_session(user_id)
            self._sessions[user_id] = session
            return session

        cached = self._sessions.get(user_id)
        if cached is not None and (latest is None or cached.updated_at_ms >= latest.updated_at_ms):
            latest = cached

        decision = choose_session(latest, self._now_ms(), self.session_timeout_ms)
        if decision == SessionDecision.RESUME:
            session = latest
            logger.info("memory_session_resumed", user_id=user_id, session_id=session.id)
        else:
            session = await self._create_session(user_id)

        self._sessions[user_id] = session
        return session

    async def _create_session(self, user_id: str) -> ConversationSession:
        now = self._now_ms()
        session = ConversationSession(
            id=f"session_{now}_{_short_id()}",
            user_id=user_id,
            context=SessionContext(last_activity_ms=now),
            created_at_ms=now,
            updated_at_ms=now,
        )
        try:
            await self.repository.create_session(session_to_row(session))
        except Exception:
            logger.exception("memory_session_create_failed", user_id=user_id, session_id=session.id)
        logger.info("memory_session_created", user_id=user_id, session_id=session.id)
        return session

    def _fallback_session(self, user_id: str) -> ConversationSession:
        now = self._now_ms()
        logger.warning("memory_fallback_session_used", user_id=user_id)
        return ConversationSession(
            id=f"fallback_{now}",
            user_id=user_id,
            title=FALLBACK_SESSION_TITLE,
            context=SessionContext(last_activity_ms=now),
            created_at_ms=now,
            updated_at_ms=now,
            is_fallback=True,
        )

    def get_session(self, user_id: str) -> ConversationSession | None:
        return self._sessions.get(user_id)

    async def load_session(self, user_id: str, session_id: str) -> ConversationSession | None:
        """Make a stored session the user's active session. None if not found or not theirs."""
        try:
            rows = await self.repository.list_sessions({"id": session_id}, limit=1)
        except Exception:
            logger.exception("memory_session_load_failed", user_id=user_id, session_id=session_id)
            return None
        if not rows:
            return None

        session = session_from_row(rows[0])
        if session.user_id != user_id:
            logger.warning("memory_session_owner_mismatch", user_id=user_id, session_id=session_id)
            return None
        self._sessions[user_id] = session
        return session

    async def get_conversation_history(self, user_id: str, limit: int = 5) -> list[ConversationSession]:
        """The user's most recently updated sessions, newest first."""
        try:
            rows = await self.repository.list_sessions({"user_id": user_id}, order_by="updated_at", limit=limit)
        except Exception:
            logger.exception("memory_history_load_failed", user_id=user_id)
            return []
        return [session_from_row(row) for row in rows]

    async def _persist_session(self, session: ConversationSession) -> None:
        if session.is_fallback:
            return
        row = session_to_row(session)
        try:
            await self.repository.update_session(session.id, row)
        except Exception as e:
            logger.exception("memory_session_persist_failed", session_id=session.id)
            if is_missing_record_error(e):
                try:
                    await self.repository.create_session(row)
                    logger.info("memory_session_recreated", session_id=session.id)
                except Exception:
                    logger.exception("memory_session_recreate_failed", session_id=session.id)

    # ------------------------------------------------------------------
    # Messages and context window
    # ------------------------------------------------------------------

    async def add_message(
        self,
        user_id: str,
        role: MessageRole,
        content: str,
        metadata: MessageMetadata | None = None,
    ) -> ConversationMessage:
        """
        Append a message to the user's active session and persist it.

        User messages also feed preference extraction. Timestamps never go
        backwards within a session.

        Raises:
            NoActiveSessionError: initialize_session was not called for this user.
        """
        session = self._sessions.get(user_id)
        if session is None:
            raise NoActiveSessionError(f"No active session for user {user_id}")

        now = self._now_ms()
        if session.messages:
            now = max(now, session.messages[-1].created_at_ms)

        message = ConversationMessage(
            id=f"msg_{now}_{_short_id()}",
            role=role,
            content=content,
            created_at_ms=now,
            metadata=metadata,
        )
        session.messages.append(message)
        session.updated_at_ms = max(session.updated_at_ms, now)
        session.context.last_activity_ms = max(session.context.last_activity_ms, now)

        if role == MessageRole.USER:
            await self._extract_and_update_preferences(user_id, content)

        self._trim(session)
        await self._persist_session(session)
        return message

    def _trim(self, session: ConversationSession) -> None:
        limit = self.config.max_messages_in_memory
        if len(session.messages) <= limit:
            return
        system = [m for m in session.messages if m.role == MessageRole.SYSTEM]
        others = [m for m in session.messages if m.role != MessageRole.SYSTEM]
        keep = max(0, limit - len(system))
        kept_others = others[-keep:] if keep else []
        kept_ids = {m.id for m in system} | {m.id for m in kept_others}
        session.messages = [m for m in session.messages if m.id in kept_ids]

    def _estimate_tokens(self, content: str) -> float:
        return len(content) / self.config.chars_per_token

    def get_conversation_context(self, user_id: str) -> list[ConversationMessage]:
        """
        Messages that fit the context budget, in chronological order.

        System messages are always included. Other messages are added newest
        first until the next one would push the estimate over the budget.
        """
        session = self._sessions.get(user_id)
        if session is None:
            return []

        budget = self.config.max_context_tokens
        system = [m for m in session.messages if m.role == MessageRole.SYSTEM]
        total = sum(self._estimate_tokens(m.content) for m in system)

        included_ids = {m.id for m in system}
        for message in reversed(session.messages):
            if message.role == MessageRole.SYSTEM:
                continue
            tokens = self._estimate_tokens(message.content)
            if total + tokens > budget:
                break
            included_ids.add(message.id)
            total += tokens

        return [m for m in session.messages if m.id in included_ids]

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    def _default_preferences(self, user_id: str, preferences_id: str) -> UserPreferences:
        return UserPreferences(id=preferences_id, user_id=user_id, updated_at_ms=self._now_ms())

    async def _load_preferences(self, user_id: str) -> UserPreferences:
        cached = self._preferences.get(user_id)
        try:
            rows = await self.repository.list_preferences({"user_id": user_id}, limit=1)
            if rows:
                preferences = preferences_from_row(rows[0])
                # A cached record at least as recent may hold writes the store never received.
                if cached is not None and cached.updated_at_ms >= preferences.updated_at_ms:
                    preferences = cached
            else:
                preferences = self._default_preferences(user_id, str(uuid.uuid4()))
                await self.repository.create_preferences(preferences_to_row(preferences))
                logger.info("memory_preferences_created", user_id=user_id)
        except Exception:
            logger.exception("memory_preferences_load_failed", user_id=user_id)
            preferences = self._preferences.get(user_id) or self._default_preferences(user_id, f"pref_{user_id}")

        self._preferences[user_id] = preferences
        return preferences

    def get_user_preferences(self, user_id: str) -> UserPreferences | None:
        return self._preferences.get(user_id)

    async def update_user_preferences(self, user_id: str, updates: dict[str, Any]) -> None:
        """
        Apply field updates and write them through. Never raises: a failed
        write is logged, and a missing row is recreated from memory.
        """
        current = self._preferences.get(user_id)
        if current is None or not updates:
            return

        preferences = current.model_copy(update={**updates, "updated_at_ms": self._now_ms()})
        # model_copy(update=) skips validation; round-trip to coerce nested values.
        preferences = UserPreferences.model_validate(preferences.model_dump())
        self._preferences[user_id] = preferences

        try:
            await self.repository.update_preferences(
                preferences.id, preferences_to_row(preferences, fields=set(updates))
            )
        except Exception as e:
            logger.exception("memory_preferences_update_failed", user_id=user_id, fields=sorted(updates))
            if is_missing_record_error(e):
                try:
                    await self.repository.create_preferences(preferences_to_row(preferences))
                    logger.info("memory_preferences_recreated", user_id=user_id)
                except Exception:
                    logger.exception("memory_preferences_recreate_failed", user_id=user_id)

    async def _extract_and_update_preferences(self, user_id: str, message: str) -> None:
        current = self._preferences.get(user_id)
        if current is None:
            return
        extracted = extract_preferences(message)
        if extracted.is_empty():
            return
        updates = merge_preferences(current, extracted)
        if updates:
            logger.info("memory_preferences_extracted", user_id=user_id, fields=sorted(updates))
            await self.update_user_preferences(user_id, updates)

    def get_search_history(self, user_id: str, limit: int = 10) -> list[str]:
        preferences = self._preferences.get(user_id)
        if preferences is None or limit <= 0:
            return []
        return preferences.search_history[-limit:]

    async def add_to_search_history(self, user_id: str, query: str) -> None:
        """Append a query (duplicates allowed), keeping only the newest entries."""
        preferences = self._preferences.get(user_id)
        if preferences is None:
            return
        history = [*preferences.search_history, query][-self.config.search_history_limit :]
        await self.update_user_preferences(user_id, {"search_history": history})

    async def record_viewed_property(self, user_id: str, property_id: str) -> None:
        preferences = self._preferences.get(user_id)
        if preferences is None:
            return
        viewed = [p for p in preferences.viewed_properties if p != property_id]
        viewed.append(property_id)
        await self.update_user_preferences(
            user_id, {"viewed_properties": viewed[-self.config.search_history_limit :]}
        )

    async def toggle_favorite_property(self, user_id: str, property_id: str) -> bool:
        """Add or remove a favorite. Returns True if the property is now a favorite."""
        preferences = self._preferences.get(user_id)
        if preferences is None:
            return False
        favorites = list(preferences.favorite_properties)
        if property_id in favorites:
            favorites.remove(property_id)
            is_favorite = False
        else:
            favorites.append(property_id)
            is_favorite = True
        await self.update_user_preferences(user_id, {"favorite_properties": favorites})
        return is_favorite

    # ------------------------------------------------------------------
    # Prompt and UI projections
    # ------------------------------------------------------------------

    def get_personalized_system_prompt(self, user_id: str) -> str:
        preferences = self._preferences.get(user_id)
        prompt = "You are an AI real estate assistant for Nepal. "

        if preferences is not None:
            if preferences.price_range:
                budget = f"NPR {preferences.price_range.min:,} - {preferences.price_range.max:,}"
            else:
                budget = "Not specified"
            language = "Nepali" if preferences.language == Language.NEPALI else "English"
            lines = [
                "",
                "",
                "User Profile:",
                f"- Preferred property types: {', '.join(preferences.property_type) or 'Not specified'}",
                f"- Budget range: {budget}",
                f"- Preferred locations: {', '.join(preferences.locations) or 'Not specified'}",
                f"- Bedrooms: {preferences.bedrooms or 'Not specified'}",
                f"- Communication style: {preferences.communication_style.value}",
                f"- Language: {language}",
            ]
            if preferences.amenities:
                lines.append(f"- Looking for: {', '.join(preferences.amenities)}")
            recent = self.get_search_history(user_id, 5)
            if recent:
                lines.append(f"- Recent searches: {', '.join(recent)}")
            if preferences.viewed_properties:
                lines.append(f"- Has viewed {len(preferences.viewed_properties)} properties recently")
            prompt += "\n".join(lines)

        prompt += (
            "\n\nUse this context to provide more relevant and personalized responses. "
            "Reference their preferences when appropriate and avoid asking for information you already know."
        )
        return prompt

    def get_preference_summary(self, user_id: str) -> PreferenceSummary | None:
        """What the assistant has understood about the user so far."""
        preferences = self._preferences.get(user_id)
        if preferences is None:
            return None

        parts: list[str] = []
        if preferences.bedrooms:
            parts.append(f"{preferences.bedrooms} bedroom")
        if preferences.property_type:
            parts.append(" or ".join(preferences.property_type))
        if preferences.locations:
            parts.append(f"in {', '.join(preferences.locations)}")
        if preferences.price_range and preferences.price_range.max:
            parts.append(f"up to NPR {preferences.price_range.max:,}")
        if preferences.amenities:
            parts.append(f"({', '.join(preferences.amenities)})")

        summary = f"Looking for {' '.join(parts)}" if parts else "No preferences captured yet"
        return PreferenceSummary(
            user_id=user_id,
            property_type=preferences.property_type,
            price_range=preferences.price_range,
            locations=preferences.locations,
            bedrooms=preferences.bedrooms,
            amenities=preferences.amenities,
            recent_searches=self.get_search_history(user_id, 5),
            summary=summary,
        )
