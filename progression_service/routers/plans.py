from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas.plan import PlanCreate, PlanLayout, PlanResponse
from ..schemas.plan_diff import ModificationResult
from ..services.plan_service import PlanService

router = APIRouter(prefix="/plans")


@router.post("", response_model=PlanResponse, status_code=status.HTTP_201_CREATED)
async def create_plan(body: PlanCreate, db: AsyncSession = Depends(get_db)):
    return await PlanService(db).create_plan(body)


@router.get("", response_model=list[PlanResponse])
async def list_plans(db: AsyncSession = Depends(get_db)):
    return await PlanService(db).list_plans()


@router.get("/{plan_id}", response_model=PlanResponse)
async def get_plan(plan_id: int, db: AsyncSession = Depends(get_db)):
    return await PlanService(db).get_plan(plan_id)


@router.put("/{plan_id}/layout", response_model=ModificationResult)
async def update_plan_layout(plan_id: int, body: PlanLayout, db: AsyncSession = Depends(get_db)):
    """Save a new layout and push it into the future pending workouts of the active mesocycle."""
    return await PlanService(db).update_layout(plan_id, body)
