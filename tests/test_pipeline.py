"""
Tests for inbound message handling.
"""

from datetime import datetime

import pytest

from mood_insight.crisis import response_for
from mood_insight.models import ChatTurn, CrisisVerdict
from mood_insight.pipeline import AICrisisAssessment, MessagePipeline, merge_severity
from mood_insight.store import MoodStore, UnknownSessionError

NOW = datetime(2026, 5, 15, 12, 0)


class FixedScorer:
    def __init__(self, score: float) -> None:
        self.value = score
        self.calls: list[str] = []

    async def score(self, text: str) -> float:
        self.calls.append(text)
        return self.value


class FixedDetector:
    def __init__(self, assessment: AICrisisAssessment) -> None:
        self.assessment = assessment

    async def detect(self, text: str) -> AICrisisAssessment:
        return self.assessment


class EchoResponder:
    def __init__(self) -> None:
        self.histories: list[list[ChatTurn]] = []

    async def respond(self, text: str, history: list[ChatTurn]) -> str:
        self.histories.append(history)
        return f"You said: {text}"


class TestMessagePipeline:
    def setup_method(self):
        self.store = MoodStore()
        self.pipeline = MessagePipeline(self.store)

    async def test_ordinary_message_records_mood(self):
        outcome = await self.pipeline.handle(
            "alice", "Pretty good day overall", score=7, now=NOW
        )

        assert outcome.type == "chat_response"
        assert outcome.verdict.severity == "none"
        assert outcome.mood is not None
        assert outcome.mood.score == 7
        assert outcome.message is None
        assert [e.score for e in await self.store.mood_entries("alice")] == [7]
        assert await self.store.crisis_events("alice") == []

    async def test_high_severity_short_circuits(self):
        outcome = await self.pipeline.handle(
            "alice", "I want to die", score=2, message_id="m1", now=NOW
        )

        assert outcome.type == "crisis_detected"
        assert outcome.severity == "high"
        assert outcome.message == response_for("high")
        assert outcome.mood is None
        assert await self.store.mood_entries("alice") == []

        events = await self.store.crisis_events("alice")
        assert len(events) == 1
        assert events[0].severity == "high"
        assert events[0].trigger_words == ["want to die"]
        assert events[0].message_id == "m1"
        assert events[0].action_taken == "crisis_modal_triggered"
        assert outcome.crisis_event == events[0]

    async def test_medium_keywords_alone_do_not_intervene(self):
        outcome = await self.pipeline.handle("alice", "I want to give up", score=3)

        assert outcome.type == "chat_response"
        assert outcome.verdict.severity == "medium"
        assert outcome.verdict.requires_intervention is False
        assert await self.store.crisis_events("alice") == []

    async def test_ai_detector_can_trigger_intervention(self):
        detector = FixedDetector(
            AICrisisAssessment(
                is_crisis=True, severity="medium", trigger_words=["no way out"]
            )
        )
        pipeline = MessagePipeline(self.store, detector=detector)

        outcome = await pipeline.handle("alice", "There's no way out for me")

        assert outcome.type == "crisis_detected"
        assert outcome.severity == "medium"
        assert outcome.message == response_for("medium")
        events = await self.store.crisis_events("alice")
        assert events[0].trigger_words == ["no way out"]

    async def test_trigger_words_are_combined(self):
        detector = FixedDetector(
            AICrisisAssessment(is_crisis=True, severity="low", trigger_words=["sad"])
        )
        pipeline = MessagePipeline(self.store, detector=detector)

        outcome = await pipeline.handle("alice", "I'm so sad, I want to die")

        assert outcome.severity == "high"
        assert outcome.crisis_event.trigger_words == ["want to die", "sad"]

    async def test_scorer_is_used_when_no_score_given(self):
        scorer = FixedScorer(12)
        pipeline = MessagePipeline(self.store, scorer=scorer)

        outcome = await pipeline.handle("alice", "Best day ever!")

        assert scorer.calls == ["Best day ever!"]
        assert outcome.mood.score == 10

    async def test_given_score_wins_over_scorer(self):
        scorer = FixedScorer(2)
        pipeline = MessagePipeline(self.store, scorer=scorer)

        outcome = await pipeline.handle("alice", "Fine", score=6)

        assert scorer.calls == []
        assert outcome.mood.score == 6

    async def test_no_score_records_nothing(self):
        outcome = await self.pipeline.handle("alice", "Hello")
        assert outcome.mood is None
        assert await self.store.mood_entries("alice") == []

    async def test_session_is_updated(self):
        session = await self.store.start_session("alice", NOW)

        await self.pipeline.handle("alice", "Okay", score=6, session_id=session.id)
        await self.pipeline.handle("alice", "Better", score=8, session_id=session.id)

        updated = await self.store.get_session("alice", session.id)
        assert updated.message_count == 4
        assert updated.average_mood == 8

    async def test_unknown_session(self):
        bob_session = await self.store.start_session("bob", NOW)

        with pytest.raises(UnknownSessionError):
            await self.pipeline.handle("alice", "Hi", score=5, session_id="nope")
        with pytest.raises(UnknownSessionError):
            await self.pipeline.handle(
                "alice", "Hi", score=5, session_id=bob_session.id
            )

        assert await self.store.mood_entries("alice") == []
        assert await self.store.recent_turns("alice") == []
        untouched = await self.store.get_session("bob", bob_session.id)
        assert untouched.message_count == 0

    async def test_responder_writes_the_reply(self):
        responder = EchoResponder()
        pipeline = MessagePipeline(self.store, responder=responder)

        first = await pipeline.handle("alice", "Hello", score=6, now=NOW)
        second = await pipeline.handle("alice", "Still here", now=NOW)

        assert first.type == "chat_response"
        assert first.message == "You said: Hello"
        assert second.message == "You said: Still here"
        assert responder.histories[0] == []
        assert [(t.role, t.content) for t in responder.histories[1]] == [
            ("user", "Hello"),
            ("assistant", "You said: Hello"),
        ]
        assert len(await self.store.recent_turns("alice")) == 4

    async def test_crisis_reply_skips_the_responder(self):
        responder = EchoResponder()
        pipeline = MessagePipeline(self.store, responder=responder)

        outcome = await pipeline.handle("alice", "I want to die")

        assert outcome.message == response_for("high")
        assert responder.histories == []


class TestMergeSeverity:
    def test_keyword_only(self):
        verdict = CrisisVerdict(severity="high", requires_intervention=True)
        assert merge_severity(verdict, None) == "high"

    def test_ai_high_or_medium_wins(self):
        verdict = CrisisVerdict(severity="low")
        high = AICrisisAssessment(is_crisis=True, severity="high")
        medium = AICrisisAssessment(is_crisis=True, severity="medium")
        assert merge_severity(verdict, high) == "high"
        assert merge_severity(verdict, medium) == "medium"

    def test_ai_low_falls_back_to_keywords(self):
        verdict = CrisisVerdict(severity="high")
        assert merge_severity(verdict, AICrisisAssessment(is_crisis=True)) == "high"

    def test_no_keyword_match_uses_ai_level(self):
        verdict = CrisisVerdict()
        assert merge_severity(verdict, AICrisisAssessment(is_crisis=True)) == "low"
