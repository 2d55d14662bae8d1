"""
Coach access: weekly quota and the referral program.

Every user gets a base number of coach requests per UTC week (Monday to
Sunday). Each successful referral (a referred user logging their first
workout) adds a bonus, up to a cap. Pioneers are unlimited.

Referral lifecycle for a referred user:
    pending  -> code exists, nobody has used it for this user yet
    linked   -> user registered with the code (referred_by_user_id set)
    rewarded -> first workout logged and the referrer credited (terminal)
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
from urllib.parse import quote
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import BadRequestError, ConflictError, NotFoundError
from models import CoachMessage, User

logger = logging.getLogger(__name__)

# Largest integer a JSON number survives a JavaScript client with
UNLIMITED_REMAINING = 2 ** 53 - 1
REFERRAL_CODE_ATTEMPTS = 10


@dataclass
class CoachQuota:
    used_this_week: int
    allowed_this_week: int
    remaining_this_week: int
    is_unlimited: bool
    weekly_base_requests: int
    bonus_per_successful_referral: int
    successful_referrals: int
    max_referrals: int
    referral_code: Optional[str] = None


def utc_week_range(now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Monday 00:00:00.000 through Sunday 23:59:59.999 (UTC) of the week containing `now`."""
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    start = (now - timedelta(days=now.weekday())).replace(hour=0, minute=0, second=0, microsecond=0)
    end = start + timedelta(days=6, hours=23, minutes=59, seconds=59, milliseconds=999)
    return start, end


def compute_allowed_requests(successful_referrals: int) -> int:
    clamped = max(0, min(successful_referrals, settings.COACH_MAX_REFERRALS))
    return settings.COACH_BASE_WEEKLY_REQUESTS + clamped * settings.COACH_REFERRAL_BONUS_REQUESTS


def build_quota(
    *,
    used_this_week: int,
    successful_referrals: int,
    is_unlimited: bool,
    referral_code: Optional[str] = None,
) -> CoachQuota:
    allowed = compute_allowed_requests(successful_referrals)
    remaining = max(0, allowed - used_this_week)
    return CoachQuota(
        used_this_week=used_this_week,
        allowed_this_week=allowed,
        remaining_this_week=UNLIMITED_REMAINING if is_unlimited else remaining,
        is_unlimited=is_unlimited,
        weekly_base_requests=settings.COACH_BASE_WEEKLY_REQUESTS,
        bonus_per_successful_referral=settings.COACH_REFERRAL_BONUS_REQUESTS,
        successful_referrals=successful_referrals,
        max_referrals=settings.COACH_MAX_REFERRALS,
        referral_code=referral_code,
    )


def count_user_messages(db: Session, user_id: UUID, start: datetime, end: datetime) -> int:
    return (
        db.query(func.count(CoachMessage.id))
        .filter(
            CoachMessage.user_id == user_id,
            CoachMessage.role == "user",
            CoachMessage.created_at >= start,
            CoachMessage.created_at <= end,
        )
        .scalar()
        or 0
    )


def get_coach_quota(db: Session, user_id: UUID, now: Optional[datetime] = None) -> CoachQuota:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User", str(user_id))

    start, end = utc_week_range(now)
    return build_quota(
        used_this_week=count_user_messages(db, user.id, start, end),
        successful_referrals=user.successful_referral_count or 0,
        is_unlimited=bool(user.is_pioneer),
        referral_code=user.referral_code,
    )


def can_use_coach(quota: CoachQuota) -> bool:
    return quota.is_unlimited or quota.remaining_this_week > 0


def generate_referral_code(length: Optional[int] = None) -> str:
    length = length or settings.REFERRAL_CODE_LENGTH
    return secrets.token_hex((length + 1) // 2)[:length].upper()


def create_unique_referral_code(db: Session, length: Optional[int] = None) -> str:
    for _ in range(REFERRAL_CODE_ATTEMPTS):
        candidate = generate_referral_code(length)
        taken = db.query(User.id).filter(User.referral_code == candidate).first()
        if not taken:
            return candidate
    logger.error(f"Referral code generation exhausted {REFERRAL_CODE_ATTEMPTS} attempts")
    raise BadRequestError("Failed to generate unique referral code")


def ensure_user_referral_code(db: Session, user_id: UUID) -> str:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User", str(user_id))
    if user.referral_code:
        return user.referral_code

    user.referral_code = create_unique_referral_code(db)
    db.add(user)
    db.flush()
    return user.referral_code


def resolve_referrer_user_id_by_code(db: Session, referral_code: Optional[str]) -> Optional[UUID]:
    """Owner of a referral code. Blank input is None; an unknown code is a 400."""
    normalized = (referral_code or "").strip().upper()
    if not normalized:
        return None
    referrer = db.query(User).filter(User.referral_code == normalized).first()
    if not referrer:
        raise BadRequestError("Invalid referral code")
    return referrer.id


def link_referrer(db: Session, user: User, referral_code: str) -> str:
    """Attach the owner of `referral_code` as the user's referrer. Returns the new referral state."""
    referrer_id = resolve_referrer_user_id_by_code(db, referral_code)
    if referrer_id is None:
        raise BadRequestError("Invalid referral code")
    if referrer_id == user.id:
        raise BadRequestError("You cannot use your own referral code")
    if user.referred_by_user_id is not None:
        raise ConflictError("Referrer already set")

    user.referred_by_user_id = referrer_id
    db.add(user)
    db.flush()
    return referral_state(user)


def referral_state(user: User) -> str:
    if user.referral_reward_granted_at is not None:
        return "rewarded"
    if user.referred_by_user_id is not None:
        return "linked"
    return "pending"


def mark_first_workout_logged_if_unset(db: Session, user_id: UUID, at: datetime) -> bool:
    updated = (
        db.query(User)
        .filter(User.id == user_id, User.first_workout_logged_at.is_(None))
        .update({User.first_workout_logged_at: at}, synchronize_session=False)
    )
    return updated == 1


def increment_referral_count_if_below(db: Session, user_id: UUID, cap: int) -> bool:
    updated = (
        db.query(User)
        .filter(User.id == user_id, User.successful_referral_count < cap)
        .update(
            {User.successful_referral_count: User.successful_referral_count + 1},
            synchronize_session=False,
        )
    )
    return updated == 1


def mark_referral_reward_granted_if_unset(db: Session, user_id: UUID, at: datetime) -> bool:
    updated = (
        db.query(User)
        .filter(User.id == user_id, User.referral_reward_granted_at.is_(None))
        .update({User.referral_reward_granted_at: at}, synchronize_session=False)
    )
    return updated == 1


def apply_referral_reward_on_first_workout(db: Session, referred_user_id: UUID) -> bool:
    """
    Credit the referrer the first time a referred user logs a workout.

    Each step is a single-row conditional UPDATE, so a repeat call (or a
    concurrent duplicate) finds the flag already set and stops.
    Returns True when the referrer was credited by this call.
    """
    referred = db.query(User).filter(User.id == referred_user_id).first()
    if not referred or not referred.referred_by_user_id:
        return False

    now = datetime.now(timezone.utc)
    if not mark_first_workout_logged_if_unset(db, referred.id, now):
        return False
    # Conditional updates bypass the identity map
    db.expire_all()

    referrer_id = referred.referred_by_user_id
    referrer_exists = db.query(User.id).filter(User.id == referrer_id).first()
    if not referrer_exists:
        return False

    if not increment_referral_count_if_below(db, referrer_id, settings.COACH_MAX_REFERRALS):
        logger.info(
            "Referral cap reached; no bonus granted",
            extra={"extra_fields": {"referrer_id": str(referrer_id), "referred_user_id": str(referred.id)}},
        )
        return False

    mark_referral_reward_granted_if_unset(db, referred.id, now)
    db.expire_all()
    logger.info(
        "Referral reward granted",
        extra={"extra_fields": {"referrer_id": str(referrer_id), "referred_user_id": str(referred.id)}},
    )
    return True


def build_invitation_link(referral_code: str) -> str:
    path = f"/register?ref={quote(referral_code, safe='')}"
    base = (settings.FRONTEND_URL or "").rstrip("/")
    return f"{base}{path}" if base else path
