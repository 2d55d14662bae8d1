"""
Per-exercise advice the coach has given before.

Read on every chat that needs a workout summary so the coach can stay
consistent with itself; written only when COACH_ADVICE_PERSISTENCE_ENABLED.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.config import settings
from models import CoachAdvice

logger = logging.getLogger(__name__)

ADVICE_LOOKBACK_DAYS = 30
MAX_RECENT_ADVICE = 10


def find_recent_advice(
    db: Session,
    user_id: UUID,
    exercise_name: Optional[str] = None,
    days: int = ADVICE_LOOKBACK_DAYS,
    limit: int = MAX_RECENT_ADVICE,
) -> List[CoachAdvice]:
    since = datetime.now(timezone.utc) - timedelta(days=days)
    q = db.query(CoachAdvice).filter(CoachAdvice.user_id == user_id, CoachAdvice.created_at >= since)
    if exercise_name:
        q = q.filter(func.lower(CoachAdvice.exercise_name) == exercise_name.lower())
    return q.order_by(CoachAdvice.created_at.desc()).limit(min(limit, MAX_RECENT_ADVICE)).all()


def save_advice(
    db: Session,
    *,
    user_id: UUID,
    exercise_name: str,
    advice: str,
    intent: str,
    context: Optional[str] = None,
) -> CoachAdvice:
    row = CoachAdvice(
        user_id=user_id,
        exercise_name=exercise_name,
        advice=advice,
        intent=intent,
        context=context,
    )
    db.add(row)
    db.flush()
    return row


def maybe_save_response_as_advice(
    db: Session,
    *,
    user_id: UUID,
    focused_exercise: Optional[str],
    response: str,
    intent: str,
    user_message: str,
) -> Optional[CoachAdvice]:
    """Store a finished coach reply as advice for the focused exercise, when enabled."""
    if not settings.COACH_ADVICE_PERSISTENCE_ENABLED:
        return None
    if not focused_exercise or not (response or "").strip():
        return None
    return save_advice(
        db,
        user_id=user_id,
        exercise_name=focused_exercise,
        advice=response.strip(),
        intent=intent,
        context=user_message,
    )
