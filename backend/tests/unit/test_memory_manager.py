"""Tests for MemoryManager: sessions, context window, preferences and history."""

from unittest.mock import AsyncMock

import pytest

from app.config import MemoryConfig
from app.models.memory import MessageRole, PriceRange
from app.services.memory_manager import MemoryManager, NoActiveSessionError, is_missing_record_error
from app.services.memory_store import InMemoryMemoryRepository, RecordNotFoundError


class TestInitializeSession:
    async def test_creates_session_and_preferences_for_new_user(self, memory_manager, memory_repository):
        session = await memory_manager.initialize_session("u1")

        assert session.id.startswith("session_")
        assert session.title == "New Property Search"
        assert list(memory_repository.sessions) == [session.id]
        assert len(memory_repository.preferences) == 1
        assert memory_manager.get_user_preferences("u1").user_id == "u1"

    async def test_resumes_within_window(self, memory_manager, clock):
        first = await memory_manager.initialize_session("u1")
        await memory_manager.add_message("u1", MessageRole.USER, "hello")

        clock.advance(minutes=30)
        fresh = MemoryManager(memory_manager.repository, now_provider=clock)
        resumed = await fresh.initialize_session("u1")

        assert resumed.id == first.id
        assert [m.content for m in resumed.messages] == ["hello"]

    async def test_new_session_after_window_keeps_old_one(self, memory_manager, memory_repository, clock):
        first = await memory_manager.initialize_session("u1")
        await memory_manager.add_message("u1", MessageRole.USER, "hello")

        clock.advance(minutes=61)
        second = await memory_manager.initialize_session("u1")

        assert second.id != first.id
        assert second.messages == []
        assert first.id in memory_repository.sessions
        history = await memory_manager.get_conversation_history("u1")
        assert {s.id for s in history} == {first.id, second.id}

    async def test_store_failure_uses_fallback_session(self, clock):
        repository = AsyncMock(spec=InMemoryMemoryRepository)
        repository.list_preferences.side_effect = ConnectionError("db down")
        repository.list_sessions.side_effect = ConnectionError("db down")
        manager = MemoryManager(repository, now_provider=clock)

        session = await manager.initialize_session("u1")

        assert session.is_fallback
        assert session.id == f"fallback_{clock.ms}"
        assert session.title == "Property Search Session"
        assert manager.get_user_preferences("u1").id == "pref_u1"

        await manager.add_message("u1", MessageRole.USER, "hi")
        repository.update_session.assert_not_called()

    async def test_store_failure_does_not_resume_stale_cached_session(self, memory_manager, clock):
        first = await memory_manager.initialize_session("u1")
        clock.advance(hours=3)
        memory_manager.repository.list_sessions = AsyncMock(side_effect=ConnectionError("db down"))

        second = await memory_manager.initialize_session("u1")

        assert second.id != first.id
        assert second.is_fallback

    async def test_store_failure_resumes_recent_cached_session(self, memory_manager, clock):
        first = await memory_manager.initialize_session("u1")
        clock.advance(minutes=10)
        memory_manager.repository.list_sessions = AsyncMock(side_effect=ConnectionError("db down"))

        assert (await memory_manager.initialize_session("u1")).id == first.id


class TestAddMessage:
    async def test_requires_active_session(self, memory_manager):
        with pytest.raises(NoActiveSessionError):
            await memory_manager.add_message("nobody", MessageRole.USER, "hi")

    async def test_persists_and_round_trips(self, memory_manager, clock):
        session = await memory_manager.initialize_session("u1")
        clock.advance(seconds=5)
        message = await memory_manager.add_message("u1", MessageRole.USER, "Looking in Pokhara")

        loaded = await MemoryManager(memory_manager.repository, now_provider=clock).load_session("u1", session.id)

        assert loaded is not None
        assert loaded.messages[-1].id == message.id
        assert loaded.messages[-1].content == "Looking in Pokhara"
        assert loaded.context.last_activity_ms == clock.ms

    async def test_timestamps_never_go_backwards(self, memory_manager, clock):
        await memory_manager.initialize_session("u1")
        first = await memory_manager.add_message("u1", MessageRole.USER, "one")
        clock.advance(seconds=-30)
        second = await memory_manager.add_message("u1", MessageRole.ASSISTANT, "two")
        assert second.created_at_ms >= first.created_at_ms

    async def test_trims_to_limit_keeping_system_messages(self, memory_repository, clock):
        manager = MemoryManager(memory_repository, MemoryConfig(max_messages_in_memory=3), now_provider=clock)
        await manager.initialize_session("u1")
        await manager.add_message("u1", MessageRole.SYSTEM, "profile")
        for i in range(5):
            await manager.add_message("u1", MessageRole.ASSISTANT, f"reply {i}")

        contents = [m.content for m in manager.get_session("u1").messages]
        assert contents == ["profile", "reply 3", "reply 4"]

    async def test_user_messages_update_preferences(self, memory_manager, memory_repository):
        await memory_manager.initialize_session("u1")
        await memory_manager.add_message(
            "u1", MessageRole.USER, "2BHK apartment in Kathmandu under NPR 30,000 for my family"
        )

        preferences = memory_manager.get_user_preferences("u1")
        assert preferences.bedrooms == 2
        assert preferences.locations == ["Kathmandu"]
        assert preferences.property_type == ["apartment"]
        assert preferences.price_range == PriceRange(min=0, max=30000)
        assert preferences.amenities == ["family-friendly"]

        stored = next(iter(memory_repository.preferences.values()))
        assert stored["bedrooms"] == 2
        assert stored["price_range_max"] == 30000

    async def test_assistant_messages_do_not_update_preferences(self, memory_manager):
        await memory_manager.initialize_session("u1")
        await memory_manager.add_message("u1", MessageRole.ASSISTANT, "A 3BHK in Pokhara could work.")
        assert memory_manager.get_user_preferences("u1").bedrooms is None

    async def test_missing_session_row_is_recreated(self, memory_manager, memory_repository):
        session = await memory_manager.initialize_session("u1")
        memory_repository.sessions.clear()

        await memory_manager.add_message("u1", MessageRole.USER, "hello")

        assert session.id in memory_repository.sessions


class TestConversationContext:
    async def test_respects_token_budget_newest_first(self, memory_repository, clock):
        config = MemoryConfig(max_context_tokens=10, chars_per_token=4)
        manager = MemoryManager(memory_repository, config, now_provider=clock)
        await manager.initialize_session("u1")
        await manager.add_message("u1", MessageRole.USER, "a" * 20)
        await manager.add_message("u1", MessageRole.ASSISTANT, "b" * 16)
        await manager.add_message("u1", MessageRole.USER, "c" * 16)

        context = manager.get_conversation_context("u1")

        assert [m.content[0] for m in context] == ["b", "c"]
        assert sum(len(m.content) for m in context) / 4 <= 10

    async def test_system_messages_always_included(self, memory_repository, clock):
        config = MemoryConfig(max_context_tokens=5, chars_per_token=4)
        manager = MemoryManager(memory_repository, config, now_provider=clock)
        await manager.initialize_session("u1")
        await manager.add_message("u1", MessageRole.SYSTEM, "s" * 40)
        await manager.add_message("u1", MessageRole.USER, "u" * 4)

        context = manager.get_conversation_context("u1")

        assert [m.role for m in context] == [MessageRole.SYSTEM]

    def test_unknown_user(self, memory_manager):
        assert memory_manager.get_conversation_context("nobody") == []


class TestPreferences:
    async def test_update_writes_through(self, memory_manager, memory_repository):
        await memory_manager.initialize_session("u1")
        await memory_manager.update_user_preferences("u1", {"bedrooms": 3})

        assert memory_manager.get_user_preferences("u1").bedrooms == 3
        assert next(iter(memory_repository.preferences.values()))["bedrooms"] == 3

    async def test_missing_row_is_recreated(self, memory_manager, memory_repository):
        await memory_manager.initialize_session("u1")
        memory_repository.preferences.clear()

        await memory_manager.update_user_preferences("u1", {"locations": ["Pokhara"]})

        stored = next(iter(memory_repository.preferences.values()))
        assert stored["user_id"] == "u1"
        assert stored["locations"] == '["Pokhara"]'

    async def test_preferences_are_reloaded_from_store(self, memory_manager, clock):
        await memory_manager.initialize_session("u1")
        await memory_manager.update_user_preferences("u1", {"locations": ["Bhaktapur"]})

        fresh = MemoryManager(memory_manager.repository, now_provider=clock)
        await fresh.initialize_session("u1")

        assert fresh.get_user_preferences("u1").locations == ["Bhaktapur"]

    async def test_unsaved_preferences_survive_next_session_load(self, memory_manager, clock):
        await memory_manager.initialize_session("u1")
        memory_manager.repository.update_preferences = AsyncMock(side_effect=TimeoutError("write timed out"))
        clock.advance(seconds=5)

        await memory_manager.add_message("u1", MessageRole.USER, "flat in Thamel")
        assert memory_manager.get_user_preferences("u1").locations == ["Thamel"]

        await memory_manager.initialize_session("u1")

        assert memory_manager.get_user_preferences("u1").locations == ["Thamel"]

    async def test_newer_stored_preferences_replace_cached_ones(self, memory_manager, memory_repository, clock):
        await memory_manager.initialize_session("u1")
        row = next(iter(memory_repository.preferences.values()))
        row["bedrooms"] = 4
        row["updated_at"] = clock.ms + 1000

        await memory_manager.initialize_session("u1")

        assert memory_manager.get_user_preferences("u1").bedrooms == 4


class TestSearchHistory:
    async def test_keeps_newest_fifty(self, memory_manager):
        await memory_manager.initialize_session("u1")
        for i in range(55):
            await memory_manager.add_to_search_history("u1", f"query {i}")

        preferences = memory_manager.get_user_preferences("u1")
        assert len(preferences.search_history) == 50
        assert preferences.search_history[0] == "query 5"
        assert memory_manager.get_search_history("u1", 2) == ["query 53", "query 54"]

    async def test_duplicates_allowed(self, memory_manager):
        await memory_manager.initialize_session("u1")
        await memory_manager.add_to_search_history("u1", "thamel")
        await memory_manager.add_to_search_history("u1", "thamel")
        assert memory_manager.get_search_history("u1") == ["thamel", "thamel"]


class TestPropertyTracking:
    async def test_viewed_properties_move_to_end(self, memory_manager):
        await memory_manager.initialize_session("u1")
        for property_id in ("1", "2", "1"):
            await memory_manager.record_viewed_property("u1", property_id)
        assert memory_manager.get_user_preferences("u1").viewed_properties == ["2", "1"]

    async def test_toggle_favorite(self, memory_manager):
        await memory_manager.initialize_session("u1")
        assert await memory_manager.toggle_favorite_property("u1", "6") is True
        assert memory_manager.get_user_preferences("u1").favorite_properties == ["6"]
        assert await memory_manager.toggle_favorite_property("u1", "6") is False
        assert memory_manager.get_user_preferences("u1").favorite_properties == []


class TestProjections:
    async def test_personalized_prompt_mentions_profile(self, memory_manager):
        await memory_manager.initialize_session("u1")
        await memory_manager.update_user_preferences(
            "u1", {"locations": ["Lalitpur"], "price_range": PriceRange(min=20000, max=40000)}
        )
        await memory_manager.add_to_search_history("u1", "flats in patan")

        prompt = memory_manager.get_personalized_system_prompt("u1")

        assert prompt.startswith("You are an AI real estate assistant for Nepal. ")
        assert "- Preferred locations: Lalitpur" in prompt
        assert "- Budget range: NPR 20,000 - 40,000" in prompt
        assert "- Recent searches: flats in patan" in prompt

    def test_prompt_without_preferences(self, memory_manager):
        prompt = memory_manager.get_personalized_system_prompt("nobody")
        assert "User Profile" not in prompt
        assert "avoid asking for information you already know" in prompt

    async def test_preference_summary(self, memory_manager):
        await memory_manager.initialize_session("u1")
        await memory_manager.add_message("u1", MessageRole.USER, "2 bedroom flat in Thamel under 30000")

        summary = memory_manager.get_preference_summary("u1")

        assert summary.summary == "Looking for 2 bedroom apartment in Thamel up to NPR 30,000"
        assert summary.recent_searches == []

    def test_summary_for_unknown_user(self, memory_manager):
        assert memory_manager.get_preference_summary("nobody") is None


class TestIsMissingRecordError:
    def test_typed_error(self):
        assert is_missing_record_error(RecordNotFoundError("gone"))

    def test_marker_in_message(self):
        assert is_missing_record_error(RuntimeError("PGRST116: The result contains 0 rows"))

    def test_other_error(self):
        assert not is_missing_record_error(TimeoutError("slow"))
