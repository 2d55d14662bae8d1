"""
Workout Log API Endpoints

Recording a workout. A user's first logged workout completes their
referral, crediting whoever invited them with extra coach requests.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from core.database import get_db
from core.auth import get_current_user
from models import User
from schemas import WorkoutLogCreate, WorkoutLogResponse
from services import workout_log_service

router = APIRouter(prefix="/api", tags=["logs"])


@router.post("/logs", response_model=WorkoutLogResponse, status_code=status.HTTP_201_CREATED)
def create_workout_log(
    payload: WorkoutLogCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    log = workout_log_service.create_log(
        db,
        user_id=user.id,
        exercise_id=payload.exercise_id,
        sets=[s.model_dump() for s in payload.sets],
        rpe=payload.rpe,
        notes=payload.notes,
    )
    return WorkoutLogResponse.model_validate(log)
