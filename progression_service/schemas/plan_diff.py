from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from .plan import PlanDayExerciseLayout


class FieldChange(BaseModel):
    old: float | int | None = None
    new: float | int | None = None


class ExerciseAdded(BaseModel):
    kind: Literal["added"] = "added"
    plan_day_id: int
    exercise: PlanDayExerciseLayout


class ExerciseRemoved(BaseModel):
    kind: Literal["removed"] = "removed"
    plan_day_id: int
    exercise_id: int
    sets: int


class ExerciseModified(BaseModel):
    kind: Literal["modified"] = "modified"
    plan_day_id: int
    exercise_id: int
    # Only the fields that differ between the two layouts
    changes: dict[str, FieldChange]


class DayRescheduled(BaseModel):
    plan_day_id: int
    old_day_of_week: int
    new_day_of_week: int


PlanChange = Annotated[Union[ExerciseAdded, ExerciseRemoved, ExerciseModified], Field(discriminator="kind")]


class PlanDiff(BaseModel):
    changes: list[PlanChange] = Field(default_factory=list)
    added_days: list[int] = Field(default_factory=list)
    removed_days: list[int] = Field(default_factory=list)
    rescheduled_days: list[DayRescheduled] = Field(default_factory=list)

    @property
    def added_exercises(self) -> list[ExerciseAdded]:
        return [c for c in self.changes if c.kind == "added"]

    @property
    def removed_exercises(self) -> list[ExerciseRemoved]:
        return [c for c in self.changes if c.kind == "removed"]

    @property
    def modified_exercises(self) -> list[ExerciseModified]:
        return [c for c in self.changes if c.kind == "modified"]

    @property
    def is_empty(self) -> bool:
        return not (self.changes or self.added_days or self.removed_days or self.rescheduled_days)


class ModificationResult(BaseModel):
    affected_workout_count: int = 0
    added_sets_count: int = 0
    removed_sets_count: int = 0
    modified_sets_count: int = 0
    warnings: list[str] = Field(default_factory=list)
