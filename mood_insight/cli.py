"""
Command-line interface tools for the Mood Insight service.
"""

import asyncio
import json
from collections.abc import Coroutine
from pathlib import Path
from typing import Any

import httpx
import typer
from httpx_sse import ServerSentEvent, aconnect_sse

from .config import Settings
from .crisis import CrisisClassifier, load_keywords, response_for
from .models import MoodDashboard, MoodSample

DEFAULT_BASE_URL = Settings().base_url

app = typer.Typer(help="Mood Insight CLI tools")


# MARK: - CLI Entry Points


def main() -> None:
    """Entry point for the mood-insight CLI command."""
    app()


# MARK: - Commands


@app.command()
def classify(
    text: str = typer.Argument(..., help="Message text to screen"),
    keywords: Path | None = typer.Option(
        None, "--keywords", "-k", help="Alternative crisis phrase table (JSON)"
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output raw JSON"),
) -> None:
    """Screen text for crisis language without contacting the service."""
    verdict = CrisisClassifier(load_keywords(keywords)).classify(text)

    if json_output:
        print(verdict.model_dump_json(indent=2))
        return

    print(f"Severity: {verdict.severity}")
    print(f"Confidence: {verdict.confidence:.2f}")
    if verdict.trigger_words:
        print(f"Triggers: {', '.join(verdict.trigger_words)}")
    if verdict.requires_intervention:
        print(f"Intervention: {response_for(verdict.severity)}")


@app.command()
def send(
    user_id: str = typer.Argument(..., help="User sending the message"),
    text: str = typer.Argument(..., help="Message text"),
    score: float | None = typer.Option(
        None, "--score", "-s", min=1, max=10, help="Mood score for the message"
    ),
    session_id: str | None = typer.Option(None, "--session", help="Session id"),
    base_url: str = typer.Option(
        DEFAULT_BASE_URL, "--url", "-u", help="Base URL of the Mood Insight service"
    ),
) -> None:
    """Send a chat message to the service."""

    async def _send() -> None:
        payload = {"text": text, "score": score, "session_id": session_id}
        async with httpx.AsyncClient() as client:
            response = await client.post(
                f"{base_url}/users/{user_id}/messages", json=payload
            )
            response.raise_for_status()
            result = response.json()

            if result["type"] == "crisis_detected":
                print(f"[{result['severity']}] {result['message']}")
            elif result["mood"] is not None:
                print(f"Mood recorded: {result['mood']['score']}")
            else:
                print("Message accepted")

    _run_with_error_handling(_send(), base_url)


@app.command()
def dashboard(
    user_id: str = typer.Argument(..., help="User to report on"),
    base_url: str = typer.Option(
        DEFAULT_BASE_URL, "--url", "-u", help="Base URL of the Mood Insight service"
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output raw JSON"),
) -> None:
    """Show a user's mood dashboard."""

    async def _dashboard() -> None:
        async with httpx.AsyncClient() as client:
            response = await client.get(f"{base_url}/users/{user_id}/mood/dashboard")
            response.raise_for_status()
            result = response.json()

            if json_output:
                print(json.dumps(result, indent=2))
                return

            print(format_dashboard(MoodDashboard.model_validate(result)))

    _run_with_error_handling(_dashboard(), base_url)


@app.command()
def stream(
    user_id: str = typer.Argument(..., help="User to follow"),
    base_url: str = typer.Option(
        DEFAULT_BASE_URL, "--url", "-u", help="Base URL of the Mood Insight service"
    ),
) -> None:
    """Stream a user's mood samples in real-time."""

    async def _stream() -> None:
        url = f"{base_url}/users/{user_id}/mood/stream"
        print(f"Streaming from {url}... (Ctrl+C to stop)")

        async with httpx.AsyncClient(timeout=None) as client:
            async with aconnect_sse(client, "GET", url) as event_source:
                async for sse in event_source.aiter_sse():
                    _handle_sse_event(sse)

    _run_with_error_handling(_stream(), base_url)


# MARK: - Formatting


def format_dashboard(view: MoodDashboard) -> str:
    """Render a dashboard as plain text."""
    trend = view.trend
    lines = [
        f"Trend: {trend.direction} ({trend.change:.1f}%, {trend.period})",
        f"Today's average mood: {view.average_mood:.1f}",
        f"Today: {view.today_stats.sessions} sessions, "
        f"{view.today_stats.message_count} messages",
        "",
        "Day         avg   low  high  sessions",
    ]
    for day in view.daily_summaries:
        lines.append(
            f"{day.date}  {day.average_score:4.1f}  {day.lowest_mood:4.1f}  "
            f"{day.highest_mood:4.1f}  {day.session_count:8d}"
        )
    if view.insights:
        lines.append("")
        lines.extend(f"* {i.title}: {i.description}" for i in view.insights)
    return "\n".join(lines)


# MARK: - Private Helpers


def _format_sample(sample: MoodSample) -> str:
    timestamp = sample.timestamp.strftime("%H:%M:%S")
    return f"{timestamp} > {sample.score:g}"


def _handle_sse_event(sse: ServerSentEvent) -> None:
    """Handle a single SSE event."""
    try:
        if sse.event == "error":
            error_data = json.loads(sse.data)
            print(f"Server error: {error_data.get('error', 'Unknown error')}")
            return

        sample = MoodSample.model_validate_json(sse.data)
        print(_format_sample(sample))

    except ValueError as e:
        print(f"Warning: Could not parse SSE data: {sse.data} - {e}")


def _run_with_error_handling(coro: Coroutine[Any, Any, Any], base_url: str) -> None:
    """Run an async coroutine with standardized error handling."""
    try:
        asyncio.run(coro)
    except KeyboardInterrupt:
        print("\nStopped")
        raise typer.Exit(0)
    except httpx.ConnectError:
        print(f"Error: Could not connect to {base_url}")
        raise typer.Exit(1)
    except httpx.HTTPStatusError as e:
        print(f"Error: HTTP {e.response.status_code}")
        raise typer.Exit(1)
    except Exception as e:
        error_msg = str(e) if str(e) else f"Unknown error of type {type(e).__name__}"
        print(f"Error: {error_msg}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
