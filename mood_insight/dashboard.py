"""
Assembly of the mood dashboard payload.
"""

from collections.abc import Sequence
from datetime import datetime, timedelta

from .analysis import (
    average_score,
    calculate_trend,
    daily_summary,
    generate_insights,
    resolve_now,
)
from .models import MoodDashboard, MoodSample, SessionSummary, TodayStats

SUMMARY_DAYS = 7


def _session_minutes(session: SessionSummary) -> float:
    if session.end_time is None:
        return 0.0
    return max((session.end_time - session.start_time).total_seconds() / 60, 0.0)


def build_dashboard(
    entries: Sequence[MoodSample],
    sessions: Sequence[SessionSummary],
    now: datetime | None = None,
) -> MoodDashboard:
    """
    Build the dashboard view for one user.

    Args:
        entries: The user's recent mood samples, oldest first
        sessions: The user's chat sessions
        now: Reference time; defaults to the current local time

    Returns:
        Trend, insights, one summary per day for the last week (oldest
        first), the trailing 24 hour average and today's session stats
    """
    now = resolve_now(now)
    today = now.date()

    summaries = [
        daily_summary(today - timedelta(days=offset), entries, sessions)
        for offset in range(SUMMARY_DAYS - 1, -1, -1)
    ]

    today_sessions = [s for s in sessions if s.start_time.astimezone().date() == today]

    return MoodDashboard(
        trend=calculate_trend(entries, now),
        insights=generate_insights(entries, sessions, now),
        daily_summaries=summaries,
        average_mood=average_score(entries, since=now - timedelta(days=1)),
        today_stats=TodayStats(
            sessions=len(today_sessions),
            total_minutes=sum(_session_minutes(s) for s in today_sessions),
            message_count=sum(s.message_count for s in today_sessions),
        ),
    )
