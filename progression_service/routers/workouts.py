from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas.workout import SetLogRequest, WorkoutResponse, WorkoutSetResponse
from ..services.workout_set_service import WorkoutSetService

router = APIRouter()


@router.get("/workouts/{workout_id}", response_model=WorkoutResponse)
async def get_workout(workout_id: int, db: AsyncSession = Depends(get_db)):
    return await WorkoutSetService(db).get_workout(workout_id)


@router.put("/workouts/{workout_id}/complete", response_model=WorkoutResponse)
async def complete_workout(workout_id: int, db: AsyncSession = Depends(get_db)):
    return await WorkoutSetService(db).complete_workout(workout_id)


@router.put("/workouts/{workout_id}/skip", response_model=WorkoutResponse)
async def skip_workout(workout_id: int, db: AsyncSession = Depends(get_db)):
    return await WorkoutSetService(db).skip_workout(workout_id)


@router.put("/workout-sets/{set_id}/log", response_model=WorkoutSetResponse)
async def log_set(set_id: int, body: SetLogRequest, db: AsyncSession = Depends(get_db)):
    return await WorkoutSetService(db).log_set(set_id, body.actual_weight, body.actual_reps)


@router.put("/workout-sets/{set_id}/skip", response_model=WorkoutSetResponse)
async def skip_set(set_id: int, db: AsyncSession = Depends(get_db)):
    return await WorkoutSetService(db).skip_set(set_id)


@router.put("/workout-sets/{set_id}/unlog", response_model=WorkoutSetResponse)
async def unlog_set(set_id: int, db: AsyncSession = Depends(get_db)):
    return await WorkoutSetService(db).unlog_set(set_id)
