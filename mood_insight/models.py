"""
Shared data models for the Mood Insight service.

This module defines the value types passed between the crisis classifier, the
mood analysis functions, the store and the API. All of them are immutable
snapshots; updated records are produced with ``model_copy``.
"""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Severity = Literal["none", "low", "medium", "high"]
CrisisLevel = Literal["low", "medium", "high"]
TrendDirection = Literal["improving", "declining", "stable"]
InsightType = Literal["pattern", "improvement", "concern", "milestone"]


def _new_id() -> str:
    return uuid.uuid4().hex


def as_local_time(value: datetime) -> datetime:
    """Return ``value`` as an aware datetime in the local timezone.

    Naive datetimes are taken to already be local time.
    """
    return value.astimezone()


class _Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True)


class MoodSample(_Snapshot):
    """One sentiment measurement, recorded once per user message."""

    score: float = Field(..., ge=1, le=10, description="Mood score from 1 to 10")
    timestamp: datetime = Field(..., description="When the message was scored")

    @field_validator("timestamp")
    @classmethod
    def _localize(cls, value: datetime) -> datetime:
        return as_local_time(value)


class SessionSummary(_Snapshot):
    """Aggregate stats for one chat session."""

    id: str = Field(default_factory=_new_id)
    start_time: datetime = Field(..., description="When the session started")
    end_time: datetime | None = Field(None, description="When the session ended")
    message_count: int = Field(0, ge=0)
    average_mood: float | None = Field(
        None, ge=1, le=10, description="Mood of the session, unset until scored"
    )

    @field_validator("start_time", "end_time")
    @classmethod
    def _localize(cls, value: datetime | None) -> datetime | None:
        return None if value is None else as_local_time(value)


class CrisisVerdict(_Snapshot):
    """Result of scanning one message for crisis language."""

    severity: Severity = "none"
    trigger_words: list[str] = Field(default_factory=list)
    confidence: float = Field(0.0, ge=0, le=1)
    requires_intervention: bool = False


class ChatTurn(_Snapshot):
    """One message of a conversation, from the user or the assistant."""

    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _localize(cls, value: datetime) -> datetime:
        return as_local_time(value)


class CrisisEvent(_Snapshot):
    """A logged crisis intervention."""

    id: str = Field(default_factory=_new_id)
    user_id: str
    severity: CrisisLevel
    trigger_words: list[str] = Field(default_factory=list)
    action_taken: str = "crisis_modal_triggered"
    message_id: str | None = None
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _localize(cls, value: datetime) -> datetime:
        return as_local_time(value)


class MoodTrend(_Snapshot):
    """Week-over-week direction of a user's mood."""

    direction: TrendDirection
    change: float = Field(..., ge=0, description="Absolute percentage change")
    period: str


class MoodInsight(_Snapshot):
    """A qualitative observation derived from mood history."""

    type: InsightType
    title: str
    description: str
    confidence: float = Field(..., ge=0, le=1)


class DailyMoodSummary(_Snapshot):
    """Statistics for a single calendar day."""

    date: str = Field(..., description="ISO calendar day, e.g. 2024-05-01")
    average_score: float
    session_count: int = Field(..., ge=0)
    message_count: int = Field(..., ge=0)
    highest_mood: float
    lowest_mood: float


class TodayStats(_Snapshot):
    sessions: int = 0
    total_minutes: float = 0.0
    message_count: int = 0


class MoodDashboard(_Snapshot):
    """Everything the mood dashboard renders for one user."""

    trend: MoodTrend
    insights: list[MoodInsight]
    daily_summaries: list[DailyMoodSummary]
    average_mood: float
    today_stats: TodayStats
