"""
Intent resolution: classification fallback and the session-feedback
downgrade when nothing was logged today.
"""
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from services.coach_modules import (
    NO_SESSION_TODAY_NOTE,
    ChatHistoryMessage,
    CoachIntent,
    IntentResolver,
)
from services.workout_log_service import has_logs_today


class StubClassifier:
    def __init__(self, intent=CoachIntent.GENERAL_COACHING, error=None):
        self.intent = intent
        self.error = error
        self.calls = 0

    async def classify_intent(self, message):
        self.calls += 1
        if self.error:
            raise self.error
        return self.intent


def _resolver(classifier, logged_today):
    return IntentResolver(classifier, lambda user_id, now: logged_today)


class TestClassification:
    @pytest.mark.asyncio
    async def test_classified_intent_is_used(self):
        resolver = _resolver(StubClassifier(CoachIntent.TIPS), logged_today=False)
        result = await resolver.resolve(user_id=uuid4(), message="Any recovery tips?")
        assert result.intent == CoachIntent.TIPS
        assert result.downgraded is False

    @pytest.mark.asyncio
    async def test_supplied_intent_skips_classification(self):
        classifier = StubClassifier(CoachIntent.TIPS)
        resolver = _resolver(classifier, logged_today=True)
        result = await resolver.resolve(
            user_id=uuid4(), message="What next?", supplied_intent=CoachIntent.NEXT_WORKOUT
        )
        assert result.intent == CoachIntent.NEXT_WORKOUT
        assert classifier.calls == 0

    @pytest.mark.asyncio
    async def test_classifier_failure_falls_back_to_general(self):
        resolver = _resolver(StubClassifier(error=RuntimeError("rate limited")), logged_today=True)
        result = await resolver.resolve(user_id=uuid4(), message="hello coach")
        assert result.intent == CoachIntent.GENERAL_COACHING

    @pytest.mark.asyncio
    async def test_without_classifier(self):
        resolver = _resolver(None, logged_today=True)
        assert await resolver.classify("hello") == CoachIntent.GENERAL_COACHING

    @pytest.mark.asyncio
    async def test_string_reply_is_parsed(self):
        resolver = _resolver(StubClassifier("PROGRESS_CHECK"), logged_today=True)
        assert await resolver.classify("am I getting stronger?") == CoachIntent.PROGRESS_CHECK


class TestSessionFeedbackDowngrade:
    @pytest.mark.asyncio
    async def test_downgraded_without_logs_today(self):
        history = [ChatHistoryMessage(role="user", content="hi"), ChatHistoryMessage(role="coach", content="hello")]
        resolver = _resolver(StubClassifier(CoachIntent.SESSION_FEEDBACK), logged_today=False)

        result = await resolver.resolve(user_id=uuid4(), message="How did I do today?", chat_history=history)

        assert result.intent == CoachIntent.PAST_SESSION_FEEDBACK
        assert result.downgraded is True
        assert len(result.chat_history) == 3
        assert result.chat_history[-1].role == "system"
        assert result.chat_history[-1].content == NO_SESSION_TODAY_NOTE
        # Caller's list is not mutated
        assert len(history) == 2

    @pytest.mark.asyncio
    async def test_supplied_session_feedback_is_downgraded_too(self):
        resolver = _resolver(StubClassifier(), logged_today=False)
        result = await resolver.resolve(
            user_id=uuid4(), message="Feedback please", supplied_intent=CoachIntent.SESSION_FEEDBACK
        )
        assert result.intent == CoachIntent.PAST_SESSION_FEEDBACK
        assert result.chat_history[-1].content == NO_SESSION_TODAY_NOTE

    @pytest.mark.asyncio
    async def test_kept_when_logged_today(self):
        resolver = _resolver(StubClassifier(CoachIntent.SESSION_FEEDBACK), logged_today=True)
        result = await resolver.resolve(user_id=uuid4(), message="How did I do today?")
        assert result.intent == CoachIntent.SESSION_FEEDBACK
        assert result.downgraded is False
        assert result.chat_history == []


class TestHasLogsToday:
    def test_uses_the_utc_day(self, db_session, test_user, make_exercise, make_log):
        now = datetime(2026, 3, 11, 9, 0, tzinfo=timezone.utc)
        squat = make_exercise(test_user, "Squat")
        make_log(test_user, squat, [{"reps": 5, "weight": 100}], created_at=now - timedelta(hours=10))

        assert has_logs_today(db_session, test_user.id, now) is False
        assert has_logs_today(db_session, test_user.id, now - timedelta(days=1)) is True

        make_log(test_user, squat, [{"reps": 5, "weight": 100}], created_at=now - timedelta(hours=1))
        assert has_logs_today(db_session, test_user.id, now) is True


def test_intent_parse_is_exact():
    assert CoachIntent.parse(" TIPS ") == CoachIntent.TIPS
    assert CoachIntent.parse("tips") is None
    assert CoachIntent.parse("") is None
