"""
Workout log reads and writes used by the coach.

Logging a workout is also the trigger for the referral reward, so the
write path lives here rather than in a generic CRUD layer.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from core.exceptions import NotFoundError
from models import Exercise, WorkoutLog
from services import coach_access

logger = logging.getLogger(__name__)


def utc_day_range(now: Optional[datetime] = None):
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1) - timedelta(microseconds=1)


def find_by_date_range(db: Session, user_id: UUID, start: datetime, end: datetime) -> List[WorkoutLog]:
    return (
        db.query(WorkoutLog)
        .filter(
            WorkoutLog.user_id == user_id,
            WorkoutLog.created_at >= start,
            WorkoutLog.created_at <= end,
        )
        .order_by(WorkoutLog.created_at.desc())
        .all()
    )


def find_recent(db: Session, user_id: UUID, days: int, now: Optional[datetime] = None) -> List[WorkoutLog]:
    """Logs from the last `days` days, newest first."""
    end = now or datetime.now(timezone.utc)
    return find_by_date_range(db, user_id, end - timedelta(days=days), end)


def find_today(db: Session, user_id: UUID, now: Optional[datetime] = None) -> List[WorkoutLog]:
    start, end = utc_day_range(now)
    return find_by_date_range(db, user_id, start, end)


def has_logs_today(db: Session, user_id: UUID, now: Optional[datetime] = None) -> bool:
    start, end = utc_day_range(now)
    return (
        db.query(WorkoutLog.id)
        .filter(
            WorkoutLog.user_id == user_id,
            WorkoutLog.created_at >= start,
            WorkoutLog.created_at <= end,
        )
        .first()
        is not None
    )


def create_log(
    db: Session,
    *,
    user_id: UUID,
    exercise_id: UUID,
    sets: Sequence[dict],
    rpe: Optional[float] = None,
    notes: Optional[str] = None,
) -> WorkoutLog:
    """
    Record a workout for one of the user's exercises, then credit the
    user's referrer if this is their first workout.
    """
    exercise = (
        db.query(Exercise)
        .filter(Exercise.id == exercise_id, Exercise.user_id == user_id)
        .first()
    )
    if not exercise:
        raise NotFoundError("Exercise", str(exercise_id))

    log = WorkoutLog(
        user_id=user_id,
        exercise_id=exercise.id,
        sets=[dict(s) for s in sets],
        rpe=rpe,
        notes=notes,
    )
    db.add(log)
    db.flush()

    coach_access.apply_referral_reward_on_first_workout(db, user_id)

    db.refresh(log)
    return log
