"""
Mood trend and insight calculations.

Every function here is pure: it reads the sequences it is given, never
mutates them, and depends on the clock only through the optional ``now``
argument (the current local time when omitted).
"""

from collections.abc import Sequence
from datetime import date, datetime, timedelta
from operator import attrgetter

from .models import (
    DailyMoodSummary,
    MoodInsight,
    MoodSample,
    MoodTrend,
    SessionSummary,
    as_local_time,
)

NEUTRAL_SCORE = 5.0
HIGH_MOOD_SCORE = 7
LOW_MOOD_SCORE = 3
TREND_THRESHOLD = 5.0
STREAK_WINDOW = 14

MORNING_HOURS = range(6, 13)
EVENING_HOURS = range(18, 24)


def resolve_now(now: datetime | None) -> datetime:
    return as_local_time(now) if now is not None else datetime.now().astimezone()


def _mean(values: Sequence[float], default: float = NEUTRAL_SCORE) -> float:
    return sum(values) / len(values) if values else default


def average_score(
    history: Sequence[MoodSample],
    since: datetime | None = None,
    default: float = NEUTRAL_SCORE,
) -> float:
    """Mean score of the samples taken at or after ``since``."""
    if since is not None:
        since = as_local_time(since)
        history = [s for s in history if s.timestamp >= since]
    return _mean([s.score for s in history], default)


def calculate_trend(
    history: Sequence[MoodSample], now: datetime | None = None
) -> MoodTrend:
    """
    Compare the last seven days of mood against the seven days before them.

    Args:
        history: Mood samples in any order
        now: Reference time for the two windows

    Returns:
        The trend; "stable" with zero change when either window is empty
    """
    if len(history) < 2:
        return MoodTrend(direction="stable", change=0, period="insufficient data")

    now = resolve_now(now)
    week_ago = now - timedelta(days=7)
    two_weeks_ago = now - timedelta(days=14)

    last_week = [s.score for s in history if s.timestamp >= week_ago]
    previous_week = [
        s.score for s in history if two_weeks_ago <= s.timestamp < week_ago
    ]

    if not last_week or not previous_week:
        return MoodTrend(direction="stable", change=0, period="this week")

    last_week_avg = _mean(last_week)
    previous_week_avg = _mean(previous_week)
    change = (last_week_avg - previous_week_avg) / previous_week_avg * 100

    if change > TREND_THRESHOLD:
        direction = "improving"
    elif change < -TREND_THRESHOLD:
        direction = "declining"
    else:
        direction = "stable"

    return MoodTrend(
        direction=direction, change=abs(change), period="this week vs last week"
    )


def consecutive_high_mood_count(history: Sequence[MoodSample]) -> int:
    """
    Count the most recent run of samples scoring 7 or more.

    Only the newest 14 samples are considered, so the result counts samples,
    not calendar days.
    """
    newest_first = sorted(history, key=attrgetter("timestamp"), reverse=True)
    streak = 0
    for sample in newest_first[:STREAK_WINDOW]:
        if sample.score < HIGH_MOOD_SCORE:
            break
        streak += 1
    return streak


def _session_mood(session: SessionSummary) -> float:
    if session.average_mood is None:
        return NEUTRAL_SCORE
    return session.average_mood


def _time_of_day_insight(
    history: Sequence[MoodSample], sessions: Sequence[SessionSummary]
) -> MoodInsight | None:
    if len(history[-7:]) < 3:
        return None

    morning = [s for s in sessions if s.start_time.hour in MORNING_HOURS]
    evening = [s for s in sessions if s.start_time.hour in EVENING_HOURS]
    if len(morning) < 2 or len(evening) < 2:
        return None

    morning_avg = _mean([_session_mood(s) for s in morning])
    evening_avg = _mean([_session_mood(s) for s in evening])
    if morning_avg <= evening_avg + 1:
        return None

    return MoodInsight(
        type="pattern",
        title="Morning conversations help your mood",
        description=(
            "You tend to feel better when you chat with me in the morning "
            "versus evening sessions."
        ),
        confidence=0.7,
    )


def generate_insights(
    history: Sequence[MoodSample],
    sessions: Sequence[SessionSummary],
    now: datetime | None = None,
) -> list[MoodInsight]:
    """
    Derive qualitative insights from a user's mood history.

    The pattern, improvement, concern and milestone checks run independently,
    so any subset of them may be reported.

    Args:
        history: Mood samples in the order they were recorded
        sessions: The user's chat sessions
        now: Reference time for the weekly trend

    Returns:
        The insights found, possibly none
    """
    if not history:
        return []

    insights: list[MoodInsight] = []

    pattern = _time_of_day_insight(history, sessions)
    if pattern is not None:
        insights.append(pattern)

    trend = calculate_trend(history, now)
    if trend.direction == "improving" and trend.change > 10:
        insights.append(
            MoodInsight(
                type="improvement",
                title="Consistent progress this week",
                description=(
                    f"Your overall mood has improved by {trend.change:.1f}% "
                    "with regular check-ins."
                ),
                confidence=0.8,
            )
        )

    low_moods = [s for s in history[-5:] if s.score <= LOW_MOOD_SCORE]
    if len(low_moods) >= 3:
        insights.append(
            MoodInsight(
                type="concern",
                title="Consider additional support",
                description=(
                    "Your mood has been consistently low recently. It might help "
                    "to talk to a professional counselor."
                ),
                confidence=0.6,
            )
        )

    streak = consecutive_high_mood_count(history)
    if streak >= 3:
        insights.append(
            MoodInsight(
                type="milestone",
                title=f"{streak} days of positive mood!",
                description=(
                    "You've maintained a positive mood for several days. "
                    "That's wonderful progress!"
                ),
                confidence=0.9,
            )
        )

    return insights


def _local_day(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return as_local_time(value).date()
    return value


def daily_summary(
    day: date | datetime,
    entries: Sequence[MoodSample],
    sessions: Sequence[SessionSummary],
) -> DailyMoodSummary:
    """
    Summarize one local calendar day of mood samples and sessions.

    Scores default to a neutral 5 when nothing was recorded that day.
    """
    day = _local_day(day)
    scores = [s.score for s in entries if _local_day(s.timestamp) == day]
    day_sessions = [s for s in sessions if _local_day(s.start_time) == day]

    return DailyMoodSummary(
        date=day.isoformat(),
        average_score=_mean(scores),
        session_count=len(day_sessions),
        message_count=sum(s.message_count for s in day_sessions),
        highest_mood=max(scores, default=NEUTRAL_SCORE),
        lowest_mood=min(scores, default=NEUTRAL_SCORE),
    )
