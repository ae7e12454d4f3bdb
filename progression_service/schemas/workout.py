from datetime import date, datetime

from pydantic import BaseModel, Field


class WorkoutSetResponse(BaseModel):
    id: int
    workout_id: int
    exercise_id: int
    set_number: int
    target_reps: int
    target_weight: float
    target_rest_seconds: int | None = None
    actual_reps: int | None = None
    actual_weight: float | None = None
    status: str

    class Config:
        from_attributes = True


class WorkoutResponse(BaseModel):
    id: int
    mesocycle_id: int
    plan_day_id: int
    week_number: int
    scheduled_date: date
    status: str
    started_at: datetime | None = None
    completed_at: datetime | None = None
    sets: list[WorkoutSetResponse] = Field(default_factory=list)

    class Config:
        from_attributes = True


class SetLogRequest(BaseModel):
    actual_weight: float
    actual_reps: int
