"""
Workout log aggregation for the coach.

Turns raw WorkoutLog rows into per-exercise summaries (volume, trend,
average RPE, recent sessions) and derives the profile signals the coach
cares about (preferred intensity, plateaus).
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence

UNKNOWN_EXERCISE = "unknown"
TREND_SESSIONS_COUNT = 3
TREND_THRESHOLD_PERCENT = 5
DEFAULT_PREFERRED_RPE = 7.0

GOAL_MAP = {
    "gain_muscle": "hypertrophy",
    "lose_weight": "fat_loss",
    "maintain": "maintenance",
    "improve_endurance": "endurance",
    "general_fitness": "general_fitness",
}

EXPERIENCE_MAP = {
    "sedentary": "beginner",
    "lightly_active": "beginner",
    "moderately_active": "intermediate",
    "very_active": "advanced",
    "extremely_active": "advanced",
}


@dataclass
class SessionData:
    date: datetime
    sets: str
    volume: float
    notes: Optional[str] = None


@dataclass
class ExerciseSummary:
    average_rpe: Optional[float]
    trend: Optional[str]  # 'up' | 'down' | 'flat' | None
    volume_change_percent: Optional[float]
    sessions: List[SessionData] = field(default_factory=list)


def as_utc(value: Optional[datetime]) -> datetime:
    """SQLite hands back naive datetimes; every stored timestamp is UTC."""
    if value is None:
        return datetime.min.replace(tzinfo=timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def exercise_name(log) -> str:
    exercise = getattr(log, "exercise", None)
    name = getattr(exercise, "name", None) if exercise is not None else None
    return name or UNKNOWN_EXERCISE


def map_goal(fitness_goal: Optional[str]) -> str:
    return GOAL_MAP.get(fitness_goal or "", "general_fitness")


def map_experience_level(activity_level: Optional[str]) -> str:
    return EXPERIENCE_MAP.get(activity_level or "", "beginner")


def session_volume(log) -> float:
    """Total volume of a session: sum of reps x weight over every set."""
    total = 0.0
    for s in log.sets or []:
        total += (s.get("reps") or 0) * (s.get("weight") or 0)
    return total


def _format_number(value) -> str:
    return f"{float(value):g}"


def format_sets(log) -> str:
    """'5x100kg, 5x100kg' for the session's sets in logged order."""
    sets = log.sets or []
    if not sets:
        return "N/A"
    return ", ".join(
        f"{_format_number(s.get('reps') or 0)}x{_format_number(s.get('weight') or 0)}kg" for s in sets
    )


def group_logs_by_exercise(logs: Iterable) -> Dict[str, list]:
    groups: Dict[str, list] = OrderedDict()
    for log in logs:
        groups.setdefault(exercise_name(log), []).append(log)
    return groups


def filter_logs_by_exercise(logs: Iterable, name: str) -> list:
    wanted = (name or "").lower()
    return [log for log in logs if exercise_name(log).lower() == wanted]


def filter_logs_to_today_exercises(window_logs: Iterable, today_logs: Iterable) -> list:
    """
    Keep window logs for exercises that were also trained today.

    Session feedback compares today's work against earlier sessions of the
    same exercises, so the whole window is kept for those exercises.
    """
    trained_today = {exercise_name(log).lower() for log in today_logs}
    return [log for log in window_logs if exercise_name(log).lower() in trained_today]


def volume_change_percent(exercise_logs: Sequence) -> Optional[float]:
    """
    Percentage change in session volume from the oldest to the newest of
    the three most recent sessions. None with fewer than three sessions or
    when the oldest volume is zero.
    """
    if len(exercise_logs) < TREND_SESSIONS_COUNT:
        return None
    chronological = sorted(exercise_logs, key=lambda log: as_utc(log.created_at))
    recent = chronological[-TREND_SESSIONS_COUNT:]
    first = session_volume(recent[0])
    last = session_volume(recent[-1])
    if first == 0:
        return None
    return round((last - first) / first * 100, 1)


def trend_from_change(change: Optional[float]) -> Optional[str]:
    if change is None:
        return None
    if change > TREND_THRESHOLD_PERCENT:
        return "up"
    if change < -TREND_THRESHOLD_PERCENT:
        return "down"
    return "flat"


def calculate_trend(exercise_logs: Sequence) -> Optional[str]:
    return trend_from_change(volume_change_percent(exercise_logs))


def _mean_rpe(logs: Iterable) -> Optional[float]:
    values = [log.rpe for log in logs if log.rpe]
    if not values:
        return None
    return round(sum(values) / len(values), 1)


def summarize_exercise(exercise_logs: Sequence) -> ExerciseSummary:
    newest_first = sorted(exercise_logs, key=lambda log: as_utc(log.created_at), reverse=True)
    change = volume_change_percent(exercise_logs)
    return ExerciseSummary(
        average_rpe=_mean_rpe(newest_first),
        trend=trend_from_change(change),
        volume_change_percent=change,
        sessions=[
            SessionData(
                date=as_utc(log.created_at),
                sets=format_sets(log),
                volume=session_volume(log),
                notes=log.notes,
            )
            for log in newest_first
        ],
    )


def aggregate_exercise_summaries(logs: Iterable, exercise_filter: Optional[str] = None) -> Dict[str, ExerciseSummary]:
    """Per-exercise summaries, optionally restricted to a single exercise (case-insensitive)."""
    if exercise_filter:
        logs = filter_logs_by_exercise(logs, exercise_filter)
    return {name: summarize_exercise(group) for name, group in group_logs_by_exercise(logs).items()}


def average_rpe(logs: Iterable) -> float:
    """Mean RPE of the logs, 7 when none recorded one."""
    mean = _mean_rpe(logs)
    return DEFAULT_PREFERRED_RPE if mean is None else mean


def identify_plateaus(logs: Iterable) -> List[str]:
    """Exercises whose volume trend is flat. Exercises without a trend are not plateaus."""
    return [
        name
        for name, group in group_logs_by_exercise(logs).items()
        if calculate_trend(group) == "flat"
    ]
