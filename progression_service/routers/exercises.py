from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas.exercise import ExerciseCreate, ExerciseResponse
from ..services.exercise_service import ExerciseService

router = APIRouter(prefix="/exercises")


@router.post("", response_model=ExerciseResponse, status_code=status.HTTP_201_CREATED)
async def create_exercise(body: ExerciseCreate, db: AsyncSession = Depends(get_db)):
    return await ExerciseService(db).create_exercise(body)


@router.get("", response_model=list[ExerciseResponse])
async def list_exercises(db: AsyncSession = Depends(get_db)):
    return await ExerciseService(db).list_exercises()
