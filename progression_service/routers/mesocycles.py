from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas.mesocycle import (
    MesocycleCreate,
    MesocycleDetailResponse,
    MesocycleResponse,
    NextWeekResponse,
    RegenerationResponse,
)
from ..schemas.workout import WorkoutResponse
from ..services.mesocycle_service import MesocycleService
from ..services.next_week_preview import NextWeekPreviewService
from ..services.workout_set_service import WorkoutSetService

router = APIRouter(prefix="/mesocycles")


@router.post("", response_model=MesocycleResponse, status_code=status.HTTP_201_CREATED)
async def create_mesocycle(body: MesocycleCreate, db: AsyncSession = Depends(get_db)):
    return await MesocycleService(db).create(body.plan_id, body.start_date)


@router.get("", response_model=list[MesocycleResponse])
async def list_mesocycles(db: AsyncSession = Depends(get_db)):
    return await MesocycleService(db).list_mesocycles()


@router.get("/active", response_model=MesocycleResponse)
async def get_active_mesocycle(db: AsyncSession = Depends(get_db)):
    return await MesocycleService(db).get_active()


@router.get("/{mesocycle_id}", response_model=MesocycleDetailResponse)
async def get_mesocycle(mesocycle_id: int, db: AsyncSession = Depends(get_db)):
    return await MesocycleService(db).get(mesocycle_id)


@router.put("/{mesocycle_id}/start", response_model=MesocycleResponse)
async def start_mesocycle(mesocycle_id: int, db: AsyncSession = Depends(get_db)):
    return await MesocycleService(db).start(mesocycle_id)


@router.put("/{mesocycle_id}/complete", response_model=MesocycleResponse)
async def complete_mesocycle(mesocycle_id: int, db: AsyncSession = Depends(get_db)):
    return await MesocycleService(db).complete(mesocycle_id)


@router.put("/{mesocycle_id}/cancel", response_model=MesocycleResponse)
async def cancel_mesocycle(mesocycle_id: int, db: AsyncSession = Depends(get_db)):
    return await MesocycleService(db).cancel(mesocycle_id)


@router.put("/{mesocycle_id}/regenerate", response_model=RegenerationResponse)
async def regenerate_mesocycle(mesocycle_id: int, db: AsyncSession = Depends(get_db)):
    return await MesocycleService(db).regenerate(mesocycle_id)


@router.get("/{mesocycle_id}/workouts", response_model=list[WorkoutResponse])
async def list_mesocycle_workouts(
    mesocycle_id: int,
    week: int | None = Query(default=None, ge=1),
    db: AsyncSession = Depends(get_db),
):
    return await WorkoutSetService(db).list_workouts(mesocycle_id, week)


@router.get("/{mesocycle_id}/next-week", response_model=NextWeekResponse)
async def get_next_week_preview(mesocycle_id: int, db: AsyncSession = Depends(get_db)):
    return await NextWeekPreviewService(db).get_preview(mesocycle_id)
