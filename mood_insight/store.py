"""
Mood history storage for the Mood Insight service.

This module provides an in-memory store for mood samples, chat sessions,
conversation turns and crisis events, keyed by user, with real-time streaming
of newly recorded mood samples to multiple subscribers. The interface is async
so it can be swapped for a database-backed implementation without touching its
callers.
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta

from .analysis import average_score, resolve_now
from .models import (
    ChatTurn,
    CrisisEvent,
    MoodSample,
    SessionSummary,
    as_local_time,
)

logger = logging.getLogger(__name__)


class UnknownSessionError(KeyError):
    """Raised when a session id does not belong to the given user."""


class MoodStore:
    """
    In-memory mood history with real-time streaming capabilities.

    Records are immutable models; updates replace them. Streaming uses a
    condition variable shared by all users, and each subscriber only wakes up
    for its own user's samples.
    """

    def __init__(self) -> None:
        self._samples: defaultdict[str, list[MoodSample]] = defaultdict(list)
        self._sessions: dict[str, SessionSummary] = {}
        self._session_owner: dict[str, str] = {}
        self._crisis_events: defaultdict[str, list[CrisisEvent]] = defaultdict(list)
        self._turns: defaultdict[str, list[ChatTurn]] = defaultdict(list)
        self._condition = asyncio.Condition()

    # MARK: - Mood samples

    async def record_mood(
        self, user_id: str, score: float, timestamp: datetime | None = None
    ) -> MoodSample:
        """
        Append a mood sample to a user's history and notify subscribers.

        Args:
            user_id: Owner of the sample
            score: Mood score from 1 to 10
            timestamp: When the score was taken, defaults to now

        Returns:
            The stored sample
        """
        async with self._condition:
            sample = MoodSample(score=score, timestamp=resolve_now(timestamp))
            self._samples[user_id].append(sample)

            # Notify all waiting subscribers
            self._condition.notify_all()

            return sample

    async def mood_entries(
        self,
        user_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[MoodSample]:
        """
        Get a user's mood samples in recording order.

        Args:
            user_id: Owner of the samples
            start: Inclusive lower bound on the timestamp
            end: Inclusive upper bound on the timestamp

        Returns:
            The matching samples
        """
        async with self._condition:
            samples = list(self._samples.get(user_id, ()))

        if start is not None:
            start = as_local_time(start)
            samples = [s for s in samples if s.timestamp >= start]
        if end is not None:
            end = as_local_time(end)
            samples = [s for s in samples if s.timestamp <= end]
        return samples

    async def average_mood(
        self, user_id: str, days: int = 7, now: datetime | None = None
    ) -> float:
        """Mean score over the trailing ``days`` days, 5 when there is none."""
        since = resolve_now(now) - timedelta(days=days)
        return average_score(await self.mood_entries(user_id), since=since)

    @asynccontextmanager
    async def stream(
        self, user_id: str
    ) -> AsyncGenerator[AsyncGenerator[MoodSample, None], None]:
        """
        Stream a user's mood samples as they are recorded.

        The most recent existing sample, if any, is produced first.

        Yields:
            An async generator of MoodSample objects
        """

        async def sample_generator() -> AsyncGenerator[MoodSample, None]:
            async with self._condition:
                history = self._samples.get(user_id, ())
                last_seen = len(history)
                latest = history[-1] if history else None

            if latest is not None:
                yield latest

            try:
                while True:
                    async with self._condition:
                        await self._condition.wait_for(
                            lambda: len(self._samples.get(user_id, ())) > last_seen
                        )
                        fresh = self._samples.get(user_id, [])[last_seen:]
                        last_seen += len(fresh)

                    for sample in fresh:
                        yield sample

            except (asyncio.CancelledError, GeneratorExit):
                # Subscriber went away
                return

        yield sample_generator()

    # MARK: - Sessions

    async def start_session(
        self, user_id: str, start_time: datetime | None = None
    ) -> SessionSummary:
        """Open a new chat session with no messages."""
        async with self._condition:
            session = SessionSummary(start_time=resolve_now(start_time))
            self._sessions[session.id] = session
            self._session_owner[session.id] = user_id

        logger.info("Started session %s for user %s", session.id, user_id)
        return session

    async def get_session(self, user_id: str, session_id: str) -> SessionSummary:
        async with self._condition:
            if self._session_owner.get(session_id) != user_id:
                raise UnknownSessionError(session_id)
            return self._sessions[session_id]

    def _replace_session(
        self, user_id: str, session_id: str, changes: dict[str, object]
    ) -> SessionSummary:
        # Caller holds the condition's lock
        if self._session_owner.get(session_id) != user_id:
            raise UnknownSessionError(session_id)

        current = self._sessions[session_id]
        updated = SessionSummary.model_validate(
            current.model_dump() | {k: v for k, v in changes.items() if v is not None}
        )
        self._sessions[session_id] = updated
        return updated

    async def update_session(
        self,
        user_id: str,
        session_id: str,
        *,
        message_count: int | None = None,
        average_mood: float | None = None,
        end_time: datetime | None = None,
    ) -> SessionSummary:
        """
        Replace fields of an existing session.

        Raises:
            UnknownSessionError: The session does not exist for this user
        """
        async with self._condition:
            return self._replace_session(
                user_id,
                session_id,
                {
                    "message_count": message_count,
                    "average_mood": average_mood,
                    "end_time": end_time,
                },
            )

    async def record_exchange(
        self,
        user_id: str,
        session_id: str,
        messages: int,
        average_mood: float | None = None,
    ) -> SessionSummary:
        """
        Add ``messages`` to a session's message count in a single update.

        Args:
            user_id: Owner of the session
            session_id: Session to credit
            messages: Number of messages exchanged
            average_mood: Latest mood of the session, left unchanged if None

        Raises:
            UnknownSessionError: The session does not exist for this user
        """
        async with self._condition:
            current = self._sessions.get(session_id)
            count = (current.message_count if current else 0) + messages
            return self._replace_session(
                user_id,
                session_id,
                {"message_count": count, "average_mood": average_mood},
            )

    async def sessions(self, user_id: str) -> list[SessionSummary]:
        """A user's sessions, oldest first."""
        async with self._condition:
            owned = [
                self._sessions[sid]
                for sid, owner in self._session_owner.items()
                if owner == user_id
            ]
        return sorted(owned, key=lambda s: s.start_time)

    # MARK: - Conversation

    async def append_turns(self, user_id: str, *turns: ChatTurn) -> None:
        async with self._condition:
            self._turns[user_id].extend(turns)

    async def recent_turns(self, user_id: str, limit: int = 10) -> list[ChatTurn]:
        """The last ``limit`` conversation turns of a user, oldest first."""
        async with self._condition:
            return list(self._turns.get(user_id, ())[-limit:])

    # MARK: - Crisis events

    async def record_crisis_event(self, event: CrisisEvent) -> CrisisEvent:
        async with self._condition:
            self._crisis_events[event.user_id].append(event)
            return event

    async def crisis_events(self, user_id: str) -> list[CrisisEvent]:
        """A user's crisis events, newest first."""
        async with self._condition:
            events = list(self._crisis_events.get(user_id, ()))
        return sorted(events, key=lambda e: e.timestamp, reverse=True)
