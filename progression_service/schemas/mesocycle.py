from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field


class MesocycleStatus(str, Enum):
    pending = "pending"
    active = "active"
    completed = "completed"
    cancelled = "cancelled"


class MesocycleCreate(BaseModel):
    plan_id: int
    start_date: date


class MesocycleResponse(BaseModel):
    id: int
    plan_id: int
    start_date: date
    total_weeks: int
    deload_weeks: list[int] = Field(default_factory=list)
    current_week: int
    status: MesocycleStatus
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class WeekSummary(BaseModel):
    week_number: int
    is_deload: bool
    workout_count: int = 0
    pending_count: int = 0
    in_progress_count: int = 0
    completed_count: int = 0
    skipped_count: int = 0


class MesocycleDetailResponse(MesocycleResponse):
    weeks: list[WeekSummary] = Field(default_factory=list)


class RegenerationResponse(BaseModel):
    mesocycle_id: int
    workouts_deleted: int
    workouts_created: int
    sets_created: int


class NextWeekExercise(BaseModel):
    exercise_id: int
    exercise_name: str
    plan_day_id: int
    target_weight: float
    target_reps: int
    target_sets: int
    will_progress: bool
    previous_week_completed: bool


class NextWeekResponse(BaseModel):
    mesocycle_id: int
    week_number: int
    is_deload: bool
    exercises: list[NextWeekExercise] = Field(default_factory=list)
