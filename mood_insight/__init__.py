"""
Mood Insight - crisis screening and mood analytics for wellness chat.

This package scores chat messages against a fixed crisis vocabulary and turns a
user's mood history into trends, insights and daily summaries for a dashboard.
"""

from .analysis import calculate_trend, daily_summary, generate_insights
from .crisis import classify, response_for

__version__ = "0.1.0"

__all__ = [
    "calculate_trend",
    "classify",
    "daily_summary",
    "generate_insights",
    "response_for",
]
