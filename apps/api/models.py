from sqlalchemy import Column, Integer, Boolean, CheckConstraint, Float, DateTime, ForeignKey, Text, Index, JSON, Uuid
from sqlalchemy.orm import relationship
from core.database import Base
import uuid
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "app_user"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    email = Column(Text, unique=True, nullable=True)
    display_name = Column(Text, nullable=True)
    role = Column(Text, default="user", nullable=False)

    # Profile answers used by the coach
    # 'lose_weight' | 'gain_muscle' | 'maintain' | 'improve_endurance' | 'general_fitness'
    fitness_goal = Column(Text, nullable=True)
    # 'sedentary' | 'lightly_active' | 'moderately_active' | 'very_active' | 'extremely_active'
    activity_level = Column(Text, nullable=True)

    # --- REFERRALS / COACH QUOTA ---
    # Pioneers (early adopters) have unlimited coach chat.
    is_pioneer = Column(Boolean, default=False, nullable=False)
    referral_code = Column(Text, unique=True, nullable=True)
    referred_by_user_id = Column(Uuid(as_uuid=True), ForeignKey("app_user.id"), nullable=True)
    successful_referral_count = Column(Integer, default=0, nullable=False)
    # Both flags are write-once; see services.coach_access
    first_workout_logged_at = Column(DateTime(timezone=True), nullable=True)
    referral_reward_granted_at = Column(DateTime(timezone=True), nullable=True)


class Exercise(Base):
    """A user's exercise definition (e.g. Bench Press, Squat)."""
    __tablename__ = "exercise"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("app_user.id"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class WorkoutLog(Base):
    """
    One logged exercise session.

    `sets` is an ordered JSON list: [{"reps": 5, "weight": 100.0, "notes": "..."}].
    Weight is in kg.
    """
    __tablename__ = "workout_log"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("app_user.id"), nullable=False)
    exercise_id = Column(Uuid(as_uuid=True), ForeignKey("exercise.id"), nullable=False)
    sets = Column(JSON, nullable=False, default=list)
    rpe = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    exercise = relationship("Exercise", lazy="joined")

    __table_args__ = (
        CheckConstraint("rpe IS NULL OR (rpe >= 1 AND rpe <= 10)", name="ck_workout_log_rpe_range"),
        Index("ix_workout_log_user_created", "user_id", "created_at"),
        Index("ix_workout_log_user_exercise_created", "user_id", "exercise_id", "created_at"),
    )


class Conversation(Base):
    """Coach conversation thread; messages are stored as ordered rows."""
    __tablename__ = "coach_conversation"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("app_user.id"), nullable=False)
    title = Column(Text, nullable=False)
    summary = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    messages = relationship(
        "CoachMessage",
        order_by="CoachMessage.position",
        cascade="all, delete-orphan",
        back_populates="conversation",
    )

    __table_args__ = (
        Index("ix_coach_conversation_user_updated", "user_id", "updated_at"),
    )


class CoachMessage(Base):
    __tablename__ = "coach_message"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    conversation_id = Column(Uuid(as_uuid=True), ForeignKey("coach_conversation.id", ondelete="CASCADE"), nullable=False)
    # Denormalized owner so weekly usage is a single indexed count
    user_id = Column(Uuid(as_uuid=True), ForeignKey("app_user.id"), nullable=False)
    position = Column(Integer, nullable=False)
    role = Column(Text, nullable=False)  # 'user' | 'coach'
    content = Column(Text, nullable=False)
    intent = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    conversation = relationship("Conversation", back_populates="messages")

    __table_args__ = (
        CheckConstraint("role IN ('user', 'coach')", name="ck_coach_message_role"),
        Index("ix_coach_message_user_role_created", "user_id", "role", "created_at"),
    )


class CoachAdvice(Base):
    """Advice the coach gave about a specific exercise."""
    __tablename__ = "coach_advice"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("app_user.id"), nullable=False)
    exercise_name = Column(Text, nullable=False)
    advice = Column(Text, nullable=False)
    context = Column(Text, nullable=True)
    intent = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_coach_advice_user_created", "user_id", "created_at"),
        Index("ix_coach_advice_user_exercise_created", "user_id", "exercise_name", "created_at"),
    )
