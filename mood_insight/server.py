"""
FastAPI server for the Mood Insight service.

This module implements the HTTP API for crisis screening, chat message
intake, mood history and the mood dashboard, plus a Server-Sent Events stream
of newly recorded mood samples.
"""

import asyncio
import json
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from . import __version__
from .analysis import resolve_now
from .config import Settings
from .crisis import CrisisClassifier, load_keywords, response_for
from .dashboard import build_dashboard
from .models import (
    CrisisEvent,
    CrisisVerdict,
    MoodDashboard,
    MoodSample,
    SessionSummary,
)
from .pipeline import MessageOutcome, MessagePipeline
from .store import MoodStore, UnknownSessionError

logger = logging.getLogger(__name__)


# API Request/Response Schemas
class TextPayload(BaseModel):
    """Payload for crisis classification requests."""

    text: str = Field(..., description="Message text to screen")


class ChatMessage(BaseModel):
    """Payload for an inbound chat message."""

    text: str = Field(..., description="Raw message text")
    score: float | None = Field(
        None, ge=1, le=10, description="Mood score from the sentiment service"
    )
    session_id: str | None = Field(None, description="Session to credit")
    message_id: str | None = Field(None, description="Id of the stored message")


class SessionUpdate(BaseModel):
    """Payload for session updates."""

    message_count: int | None = Field(None, ge=0)
    average_mood: float | None = Field(None, ge=1, le=10)
    end_time: datetime | None = None


class CrisisResponse(BaseModel):
    severity: str
    message: str


class AverageResponse(BaseModel):
    average: float
    days: int


def create_app(
    mood_store: MoodStore,
    pipeline: MessagePipeline | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """
    Create a FastAPI application around the given collaborators.

    Args:
        mood_store: The MoodStore instance holding users' history
        pipeline: Message pipeline; one over ``mood_store`` is built if omitted
        settings: Runtime settings; read from the environment if omitted

    Returns:
        Configured FastAPI application
    """
    settings = settings if settings is not None else Settings()
    if pipeline is None:
        classifier = CrisisClassifier(load_keywords(settings.keywords_path))
        pipeline = MessagePipeline(mood_store, classifier=classifier)
    classifier = pipeline.classifier

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Lifespan context manager for FastAPI application."""
        logger.info(
            "Mood Insight started with crisis table version %s",
            classifier.keywords.version,
        )
        yield

    app = FastAPI(
        title="Mood Insight",
        description="Crisis screening and mood analytics for wellness chat",
        version=__version__,
        lifespan=lifespan,
    )

    @app.get("/")
    async def root() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "mood-insight"}

    # MARK: - Crisis screening

    @app.post("/crisis/classify")
    async def classify_text(payload: TextPayload) -> CrisisVerdict:
        """Screen a piece of text for crisis language."""
        return classifier.classify(payload.text)

    @app.get("/crisis/response/{severity}")
    async def crisis_response(severity: str) -> CrisisResponse:
        """Canned supportive reply for a severity level."""
        return CrisisResponse(severity=severity, message=response_for(severity))

    # MARK: - Sessions and messages

    @app.post("/users/{user_id}/sessions")
    async def start_session(user_id: str) -> SessionSummary:
        return await mood_store.start_session(user_id)

    @app.get("/users/{user_id}/sessions")
    async def list_sessions(user_id: str) -> list[SessionSummary]:
        return await mood_store.sessions(user_id)

    @app.patch("/users/{user_id}/sessions/{session_id}")
    async def update_session(
        user_id: str, session_id: str, update: SessionUpdate
    ) -> SessionSummary:
        try:
            return await mood_store.update_session(
                user_id,
                session_id,
                message_count=update.message_count,
                average_mood=update.average_mood,
                end_time=update.end_time,
            )
        except UnknownSessionError:
            raise HTTPException(status_code=404, detail="Session not found")

    @app.post("/users/{user_id}/messages")
    async def post_message(user_id: str, message: ChatMessage) -> MessageOutcome:
        """
        Screen an inbound chat message and record its mood.

        Returns:
            A crisis reply when intervention is needed, otherwise the recorded
            mood sample
        """
        try:
            return await pipeline.handle(
                user_id,
                message.text,
                score=message.score,
                session_id=message.session_id,
                message_id=message.message_id,
            )
        except UnknownSessionError:
            raise HTTPException(status_code=404, detail="Session not found")

    # MARK: - Mood history

    @app.get("/users/{user_id}/mood/entries")
    async def mood_entries(
        user_id: str,
        start: datetime | None = Query(None, description="Inclusive lower bound"),
        end: datetime | None = Query(None, description="Inclusive upper bound"),
    ) -> list[MoodSample]:
        return await mood_store.mood_entries(user_id, start, end)

    @app.get("/users/{user_id}/mood/average")
    async def mood_average(
        user_id: str, days: int = Query(7, ge=1, description="Trailing window")
    ) -> AverageResponse:
        average = await mood_store.average_mood(user_id, days)
        return AverageResponse(average=average, days=days)

    @app.get("/users/{user_id}/mood/dashboard")
    async def mood_dashboard(user_id: str) -> MoodDashboard:
        """Trend, insights and daily summaries over the recent window."""
        now = resolve_now(None)
        since = now - timedelta(days=settings.dashboard_window_days)
        entries = await mood_store.mood_entries(user_id, start=since)
        sessions = await mood_store.sessions(user_id)
        return build_dashboard(entries, sessions, now)

    @app.get("/users/{user_id}/mood/stream")
    async def stream_mood(user_id: str) -> StreamingResponse:
        """
        Stream a user's mood samples via Server-Sent Events.

        The latest recorded sample, if any, is sent immediately upon
        connection, followed by every new sample.

        Returns:
            StreamingResponse with text/event-stream content type
        """

        async def event_generator() -> AsyncGenerator[str, None]:
            """Generate SSE events for mood samples."""
            try:
                async with mood_store.stream(user_id) as mood_stream:
                    async for sample in mood_stream:
                        yield f"data: {sample.model_dump_json()}\n\n"
            except asyncio.CancelledError:
                # Client disconnected
                pass
            except Exception as e:
                logger.exception("Mood stream for user %s failed", user_id)
                error_data = json.dumps({"error": str(e)})
                yield f"event: error\ndata: {error_data}\n\n"

        return StreamingResponse(
            event_generator(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "Access-Control-Allow-Origin": "*",
                "Access-Control-Allow-Headers": "*",
            },
        )

    # MARK: - Crisis events

    @app.get("/users/{user_id}/crisis-events")
    async def crisis_events(user_id: str) -> list[CrisisEvent]:
        return await mood_store.crisis_events(user_id)

    return app


# Default app instance for `uvicorn mood_insight.server:app`
app = create_app(MoodStore())


def main() -> None:
    """Main entry point for the server."""
    import uvicorn

    settings = Settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "mood_insight.server:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
