from datetime import datetime

from pydantic import BaseModel, Field, model_validator


class PlanDayExerciseLayout(BaseModel):
    exercise_id: int
    sets: int = Field(default=3, ge=1)
    reps: int = Field(default=8, ge=1)
    weight: float = Field(default=0.0, ge=0)
    rest_seconds: int = Field(default=90, ge=0)
    weight_increment: float | None = Field(
        default=None,
        description="Per-plan override; falls back to the exercise's own increment",
    )


class PlanDayLayout(BaseModel):
    id: int | None = Field(default=None, description="Existing plan day id; omit to add a new day")
    name: str = Field(..., max_length=255)
    day_of_week: int = Field(..., ge=0, le=6, description="0 = Monday ... 6 = Sunday")
    exercises: list[PlanDayExerciseLayout] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_exercises(self):
        seen: set[int] = set()
        for entry in self.exercises:
            if entry.exercise_id in seen:
                raise ValueError(f"Exercise {entry.exercise_id} appears more than once in day '{self.name}'")
            seen.add(entry.exercise_id)
        return self


class PlanLayout(BaseModel):
    days: list[PlanDayLayout] = Field(default_factory=list)

    @property
    def exercise_count(self) -> int:
        return sum(len(day.exercises) for day in self.days)

    def day(self, day_id: int) -> PlanDayLayout | None:
        for day in self.days:
            if day.id == day_id:
                return day
        return None


class PlanCreate(PlanLayout):
    name: str = Field(..., max_length=255)
    duration_weeks: int | None = Field(default=None, ge=1, le=52)
    deload_weeks: list[int] = Field(
        default_factory=list,
        description="Extra 1-based weeks run as deload; the final week always is",
    )

    @model_validator(mode="after")
    def _check_deload_weeks(self):
        self.deload_weeks = sorted(set(self.deload_weeks))
        if any(week < 1 for week in self.deload_weeks):
            raise ValueError("deload_weeks must contain 1-based week numbers")
        if self.duration_weeks is not None and any(week > self.duration_weeks for week in self.deload_weeks):
            raise ValueError("deload_weeks must fall within duration_weeks")
        return self


class PlanDayExerciseResponse(BaseModel):
    id: int
    exercise_id: int
    sets: int
    reps: int
    weight: float
    rest_seconds: int
    weight_increment: float | None = None
    sort_order: int

    class Config:
        from_attributes = True


class PlanDayResponse(BaseModel):
    id: int
    name: str
    day_of_week: int
    sort_order: int
    exercises: list[PlanDayExerciseResponse] = Field(default_factory=list)

    class Config:
        from_attributes = True


class PlanResponse(BaseModel):
    id: int
    name: str
    duration_weeks: int
    deload_weeks: list[int] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    days: list[PlanDayResponse] = Field(default_factory=list)

    class Config:
        from_attributes = True
