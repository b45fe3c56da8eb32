"""
Inbound chat message handling.

Each message is screened for crisis language first. When the keyword
classifier or the optional AI detector asks for intervention, a canned crisis
reply is returned and the event is logged; otherwise the message's mood score
is added to the user's history, the injected responder (if any) writes the
reply, and the chat session is updated.
"""

import logging
from datetime import datetime
from typing import Literal, Protocol

from pydantic import BaseModel, Field

from .analysis import resolve_now
from .crisis import CrisisClassifier, default_classifier, response_for
from .models import ChatTurn, CrisisEvent, CrisisLevel, CrisisVerdict, MoodSample
from .store import MoodStore

logger = logging.getLogger(__name__)

# User message plus the assistant's reply
MESSAGES_PER_EXCHANGE = 2

# Conversation turns handed to the responder
CONTEXT_TURNS = 10


class AICrisisAssessment(BaseModel):
    """Verdict of an external AI crisis detector."""

    is_crisis: bool = False
    severity: CrisisLevel = "low"
    trigger_words: list[str] = Field(default_factory=list)
    confidence: float = Field(0.0, ge=0, le=1)


class SentimentScorer(Protocol):
    async def score(self, text: str) -> float: ...


class CrisisDetector(Protocol):
    async def detect(self, text: str) -> AICrisisAssessment: ...


class Responder(Protocol):
    async def respond(self, text: str, history: list[ChatTurn]) -> str: ...


class MessageOutcome(BaseModel):
    """What the transport should send back for one inbound message."""

    type: Literal["crisis_detected", "chat_response"]
    verdict: CrisisVerdict
    severity: CrisisLevel | None = None
    message: str | None = None
    mood: MoodSample | None = None
    crisis_event: CrisisEvent | None = None


def merge_severity(
    verdict: CrisisVerdict, assessment: AICrisisAssessment | None
) -> CrisisLevel:
    """
    Pick the severity to act on when intervention was requested.

    A high or medium AI verdict wins; otherwise the keyword severity is used,
    falling back to the AI's own level when no phrase matched.
    """
    if assessment is not None and assessment.is_crisis:
        if assessment.severity in ("high", "medium"):
            return assessment.severity
    if verdict.severity != "none":
        return verdict.severity
    return assessment.severity if assessment is not None else "low"


def _clamp_score(score: float) -> float:
    return min(max(score, 1.0), 10.0)


class MessagePipeline:
    """Runs crisis screening and mood bookkeeping for chat messages."""

    def __init__(
        self,
        store: MoodStore,
        *,
        classifier: CrisisClassifier | None = None,
        scorer: SentimentScorer | None = None,
        detector: CrisisDetector | None = None,
        responder: Responder | None = None,
    ) -> None:
        self.store = store
        self.classifier = classifier if classifier is not None else default_classifier()
        self.scorer = scorer
        self.detector = detector
        self.responder = responder

    async def handle(
        self,
        user_id: str,
        text: str,
        *,
        score: float | None = None,
        session_id: str | None = None,
        message_id: str | None = None,
        now: datetime | None = None,
    ) -> MessageOutcome:
        """
        Process one message from a user.

        Args:
            user_id: Author of the message
            text: Raw message text
            score: Mood score already computed by the caller; the injected
                scorer is asked when omitted
            session_id: Session to credit the exchange to
            message_id: Identifier of the stored message, kept on crisis events
            now: Time the message was received

        Returns:
            The crisis reply, or the responder's reply and the recorded mood
            sample for normal messages

        Raises:
            UnknownSessionError: ``session_id`` does not belong to the user
        """
        verdict = self.classifier.classify(text)
        assessment = await self.detector.detect(text) if self.detector else None

        if verdict.requires_intervention or (assessment and assessment.is_crisis):
            severity = merge_severity(verdict, assessment)
            trigger_words = verdict.trigger_words + (
                assessment.trigger_words if assessment else []
            )
            event = await self.store.record_crisis_event(
                CrisisEvent(
                    user_id=user_id,
                    severity=severity,
                    trigger_words=trigger_words,
                    message_id=message_id,
                    timestamp=now or datetime.now(),
                )
            )
            logger.warning(
                "Crisis intervention for user %s (severity=%s, triggers=%s)",
                user_id,
                severity,
                ", ".join(trigger_words),
            )
            return MessageOutcome(
                type="crisis_detected",
                verdict=verdict,
                severity=severity,
                message=response_for(severity),
                crisis_event=event,
            )

        if session_id is not None:
            # Reject foreign or unknown sessions before anything is recorded
            await self.store.get_session(user_id, session_id)

        if score is None and self.scorer is not None:
            score = _clamp_score(await self.scorer.score(text))

        mood = None
        if score is not None:
            mood = await self.store.record_mood(user_id, score, now)
            logger.debug("Recorded mood %.1f for user %s", mood.score, user_id)

        received = resolve_now(now)
        reply = None
        if self.responder is not None:
            history = await self.store.recent_turns(user_id, CONTEXT_TURNS)
            reply = await self.responder.respond(text, history)

        turns = [ChatTurn(role="user", content=text, timestamp=received)]
        if reply is not None:
            turns.append(ChatTurn(role="assistant", content=reply, timestamp=received))
        await self.store.append_turns(user_id, *turns)

        if session_id is not None:
            await self.store.record_exchange(
                user_id,
                session_id,
                MESSAGES_PER_EXCHANGE,
                average_mood=mood.score if mood else None,
            )

        return MessageOutcome(
            type="chat_response", verdict=verdict, message=reply, mood=mood
        )
