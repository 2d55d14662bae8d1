"""
Pytest configuration and fixtures

Tests run against an in-memory SQLite database. The schema is created
before and dropped after every test, so nothing leaks between tests.
The LLM is replaced by FakeLLMClient through a dependency override.
"""
import os
import sys

# Must be set before core.config is imported anywhere
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-that-is-at-least-32-characters-long"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_FORMAT"] = "text"
os.environ["ENVIRONMENT"] = "test"
os.environ["FRONTEND_URL"] = ""
os.environ.pop("OPENAI_API_KEY", None)

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from datetime import datetime, timezone
from typing import List, Optional
from uuid import uuid4

from core.database import Base, SessionLocal, engine
from core.security import create_access_token
from models import Exercise, User, WorkoutLog
from services.coach_modules.intents import CoachIntent


class FakeLLMClient:
    """Stands in for CoachLLMClient; records what the coach asked for."""

    def __init__(
        self,
        intent: CoachIntent = CoachIntent.GENERAL_COACHING,
        chunks: Optional[List[str]] = None,
        extracted_exercise: Optional[str] = None,
        fail_after: Optional[int] = None,
    ):
        self.intent = intent
        self.chunks = chunks if chunks is not None else ["Keep ", "pushing."]
        self.extracted_exercise = extracted_exercise
        self.fail_after = fail_after
        self.classify_calls: List[str] = []
        self.extract_calls: List[tuple] = []
        self.stream_calls: List[list] = []

    async def classify_intent(self, message: str) -> CoachIntent:
        self.classify_calls.append(message)
        return self.intent

    async def extract_exercise(self, message, known_exercises):
        self.extract_calls.append((message, list(known_exercises)))
        return self.extracted_exercise

    async def stream_chat(self, messages):
        self.stream_calls.append(messages)
        for i, chunk in enumerate(self.chunks):
            if self.fail_after is not None and i >= self.fail_after:
                raise RuntimeError("upstream stream dropped")
            yield chunk

    async def close(self) -> None:
        return None


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def make_user(db_session):
    def _make(**kwargs) -> User:
        user = User(
            email=kwargs.pop("email", f"test_{uuid4()}@example.com"),
            display_name=kwargs.pop("display_name", "Test Lifter"),
            **kwargs,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def test_user(make_user):
    return make_user(fitness_goal="gain_muscle", activity_level="moderately_active")


@pytest.fixture
def auth_headers(test_user):
    token = create_access_token({"sub": str(test_user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_exercise(db_session):
    def _make(user: User, name: str) -> Exercise:
        exercise = Exercise(user_id=user.id, name=name)
        db_session.add(exercise)
        db_session.commit()
        db_session.refresh(exercise)
        return exercise

    return _make


@pytest.fixture
def make_log(db_session):
    def _make(
        user: User,
        exercise: Exercise,
        sets: List[dict],
        created_at: Optional[datetime] = None,
        rpe: Optional[float] = None,
        notes: Optional[str] = None,
    ) -> WorkoutLog:
        log = WorkoutLog(
            user_id=user.id,
            exercise_id=exercise.id,
            sets=sets,
            rpe=rpe,
            notes=notes,
            created_at=created_at or datetime.now(timezone.utc),
        )
        db_session.add(log)
        db_session.commit()
        db_session.refresh(log)
        return log

    return _make


@pytest.fixture
def fake_llm():
    """Install a FakeLLMClient for the API under test."""
    from main import app
    from services.llm_client import get_llm_client

    fake = FakeLLMClient()
    app.dependency_overrides[get_llm_client] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_llm_client, None)
