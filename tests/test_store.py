"""
Tests for the MoodStore implementation.

These tests verify the core functionality of the mood history store,
including recording, range queries, sessions, crisis events and streaming.
"""

import asyncio
from datetime import datetime, timedelta

import pytest

from mood_insight.models import ChatTurn, CrisisEvent
from mood_insight.store import MoodStore, UnknownSessionError

NOW = datetime(2026, 5, 15, 12, 0)


class TestMoodStore:
    """Test suite for MoodStore functionality."""

    def setup_method(self):
        """Set up a fresh MoodStore for each test."""
        self.store = MoodStore()

    async def test_initial_state(self):
        """Test that a new store has no history for any user."""
        assert await self.store.mood_entries("alice") == []
        assert await self.store.sessions("alice") == []
        assert await self.store.crisis_events("alice") == []
        assert await self.store.average_mood("alice") == 5

    async def test_record_and_read(self):
        """Test mood recording and retrieval in recording order."""
        first = await self.store.record_mood("alice", 6, NOW - timedelta(hours=2))
        second = await self.store.record_mood("alice", 8, NOW - timedelta(hours=1))
        await self.store.record_mood("bob", 2, NOW)

        assert first.score == 6
        assert first.timestamp.tzinfo is not None
        assert await self.store.mood_entries("alice") == [first, second]
        assert len(await self.store.mood_entries("bob")) == 1

    async def test_record_defaults_to_now(self):
        sample = await self.store.record_mood("alice", 7)
        assert abs(sample.timestamp - datetime.now().astimezone()) < timedelta(
            minutes=1
        )

    async def test_range_query(self):
        for days_ago, score in ((10, 3), (5, 5), (1, 7)):
            await self.store.record_mood("alice", score, NOW - timedelta(days=days_ago))

        entries = await self.store.mood_entries(
            "alice", start=NOW - timedelta(days=6), end=NOW - timedelta(days=2)
        )
        assert [e.score for e in entries] == [5]

        recent = await self.store.mood_entries("alice", start=NOW - timedelta(days=6))
        assert [e.score for e in recent] == [5, 7]

    async def test_average_mood(self):
        await self.store.record_mood("alice", 2, NOW - timedelta(days=10))
        await self.store.record_mood("alice", 6, NOW - timedelta(days=3))
        await self.store.record_mood("alice", 8, NOW - timedelta(hours=2))

        assert await self.store.average_mood("alice", days=7, now=NOW) == 7
        assert await self.store.average_mood("alice", days=1, now=NOW) == 8
        month = await self.store.average_mood("alice", days=30, now=NOW)
        assert month == pytest.approx(16 / 3)

    async def test_sessions(self):
        """Test session creation, updates and ownership."""
        session = await self.store.start_session("alice", NOW)
        assert session.message_count == 0
        assert session.average_mood is None

        updated = await self.store.update_session(
            "alice", session.id, message_count=2, average_mood=7
        )
        assert updated.message_count == 2
        assert updated.average_mood == 7
        assert updated.start_time == session.start_time

        ended = await self.store.update_session(
            "alice", session.id, end_time=NOW + timedelta(minutes=20)
        )
        assert ended.message_count == 2
        assert ended.end_time is not None
        assert await self.store.get_session("alice", session.id) == ended

        with pytest.raises(UnknownSessionError):
            await self.store.update_session("bob", session.id, message_count=4)
        with pytest.raises(UnknownSessionError):
            await self.store.get_session("alice", "missing")

    async def test_record_exchange(self):
        session = await self.store.start_session("alice", NOW)

        updated = await self.store.record_exchange("alice", session.id, 2, 7)
        assert updated.message_count == 2
        assert updated.average_mood == 7

        unscored = await self.store.record_exchange("alice", session.id, 2)
        assert unscored.message_count == 4
        assert unscored.average_mood == 7

        with pytest.raises(UnknownSessionError):
            await self.store.record_exchange("bob", session.id, 2)
        with pytest.raises(UnknownSessionError):
            await self.store.record_exchange("alice", "missing", 2)

    async def test_concurrent_exchanges_are_all_counted(self):
        session = await self.store.start_session("alice", NOW)

        await asyncio.gather(
            *(self.store.record_exchange("alice", session.id, 2) for _ in range(20))
        )

        final = await self.store.get_session("alice", session.id)
        assert final.message_count == 40

    async def test_sessions_are_sorted_by_start(self):
        late = await self.store.start_session("alice", NOW)
        early = await self.store.start_session("alice", NOW - timedelta(days=1))
        await self.store.start_session("bob", NOW)

        assert await self.store.sessions("alice") == [early, late]

    async def test_recent_turns(self):
        turns = [
            ChatTurn(role="user", content=f"message {i}", timestamp=NOW)
            for i in range(5)
        ]
        await self.store.append_turns("alice", *turns)

        assert await self.store.recent_turns("alice", limit=2) == turns[-2:]
        assert await self.store.recent_turns("alice") == turns
        assert await self.store.recent_turns("bob") == []

    async def test_crisis_events_newest_first(self):
        older = CrisisEvent(
            user_id="alice", severity="low", timestamp=NOW - timedelta(days=1)
        )
        newer = CrisisEvent(user_id="alice", severity="high", timestamp=NOW)
        await self.store.record_crisis_event(older)
        await self.store.record_crisis_event(newer)

        assert await self.store.crisis_events("alice") == [newer, older]
        assert await self.store.crisis_events("bob") == []

    async def test_streaming(self):
        """Test that two consumers receive streaming mood samples."""
        await self.store.record_mood("alice", 5)
        consumer1_scores = []
        consumer2_scores = []

        # Setup async consumer 1
        async def consumer1():
            async with self.store.stream("alice") as mood_stream:
                async for sample in mood_stream:
                    consumer1_scores.append(sample.score)
                    if len(consumer1_scores) >= 3:  # latest + 2 updates
                        break

        # Setup async consumer 2
        async def consumer2():
            async with self.store.stream("alice") as mood_stream:
                async for sample in mood_stream:
                    consumer2_scores.append(sample.score)
                    if len(consumer2_scores) >= 3:  # latest + 2 updates
                        break

        # Start both consumers
        task1 = asyncio.create_task(consumer1())
        task2 = asyncio.create_task(consumer2())

        # Let them set up
        await asyncio.sleep(0.01)

        # Samples for another user must not reach them
        await self.store.record_mood("bob", 1)
        await self.store.record_mood("alice", 6)
        await asyncio.sleep(0.01)  # Small delay between updates
        await self.store.record_mood("alice", 7)

        # Wait with timeout
        try:
            await asyncio.wait_for(asyncio.gather(task1, task2), timeout=2.0)
        except TimeoutError:
            task1.cancel()
            task2.cancel()
            await asyncio.gather(task1, task2, return_exceptions=True)
            assert False, (
                f"Test timed out. Consumer1 got: {consumer1_scores}, "
                f"Consumer2 got: {consumer2_scores}"
            )

        # Confirm both consumers receive the updates
        assert consumer1_scores == [5, 6, 7]
        assert consumer2_scores == [5, 6, 7]

    async def test_streaming_unknown_user_leaves_no_history(self):
        """Test that subscribing to a user without samples records nothing."""

        async def consume():
            async with self.store.stream("ghost") as mood_stream:
                async for _ in mood_stream:
                    pass

        task = asyncio.create_task(consume())
        await asyncio.sleep(0.01)
        await self.store.record_mood("alice", 5)
        await asyncio.sleep(0.01)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert "ghost" not in self.store._samples
        assert await self.store.mood_entries("ghost") == []
