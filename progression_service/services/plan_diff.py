from collections.abc import Callable
from datetime import date

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import ValidationError
from ..metrics import PLAN_MODIFICATIONS_APPLIED_TOTAL
from ..models import PROTECTED_WORKOUT_STATUSES, Mesocycle
from ..schemas.plan import PlanLayout
from ..schemas.plan_diff import (
    DayRescheduled,
    ExerciseAdded,
    ExerciseModified,
    ExerciseRemoved,
    FieldChange,
    ModificationResult,
    PlanDiff,
)
from .workout_generator import (
    WorkoutGenerator,
    build_sets,
    is_editable,
    scheduled_date_for,
    sync_exercise_sets,
)

logger = structlog.get_logger(__name__)

DIFF_FIELDS = ("sets", "reps", "weight", "rest_seconds", "weight_increment")


class PlanDiffEngine:
    def __init__(
        self,
        db: AsyncSession,
        generator: WorkoutGenerator | None = None,
        today_provider: Callable[[], date] | None = None,
    ):
        self.db = db
        self.generator = generator or WorkoutGenerator(db, today_provider=today_provider or date.today)
        self.today_provider = today_provider or self.generator.today_provider

    @staticmethod
    def diff(old_layout: PlanLayout, new_layout: PlanLayout) -> PlanDiff:
        """Structural comparison of two layouts.

        Days are matched by id and exercises by exercise id within a day.
        """
        old_days = {day.id: day for day in old_layout.days}
        new_days = {day.id: day for day in new_layout.days}
        result = PlanDiff(
            added_days=[day_id for day_id in new_days if day_id not in old_days],
            removed_days=[day_id for day_id in old_days if day_id not in new_days],
        )

        for day_id, new_day in new_days.items():
            old_day = old_days.get(day_id)
            if old_day is None:
                continue
            if old_day.day_of_week != new_day.day_of_week:
                result.rescheduled_days.append(
                    DayRescheduled(
                        plan_day_id=day_id,
                        old_day_of_week=old_day.day_of_week,
                        new_day_of_week=new_day.day_of_week,
                    )
                )
            old_entries = {e.exercise_id: e for e in old_day.exercises}
            new_entries = {e.exercise_id: e for e in new_day.exercises}

            for exercise_id, entry in new_entries.items():
                previous = old_entries.get(exercise_id)
                if previous is None:
                    result.changes.append(ExerciseAdded(plan_day_id=day_id, exercise=entry))
                    continue
                changes = {
                    field: FieldChange(old=getattr(previous, field), new=getattr(entry, field))
                    for field in DIFF_FIELDS
                    if getattr(previous, field) != getattr(entry, field)
                }
                if changes:
                    result.changes.append(
                        ExerciseModified(plan_day_id=day_id, exercise_id=exercise_id, changes=changes)
                    )

            for exercise_id, entry in old_entries.items():
                if exercise_id not in new_entries:
                    result.changes.append(
                        ExerciseRemoved(plan_day_id=day_id, exercise_id=exercise_id, sets=entry.sets)
                    )
        return result

    @staticmethod
    def validate_layout(layout: PlanLayout) -> None:
        if not layout.days:
            raise ValidationError("A plan with an active mesocycle must keep at least one day")
        if layout.exercise_count == 0:
            raise ValidationError("A plan with an active mesocycle must keep at least one exercise")

    async def apply(self, mesocycle: Mesocycle, diff: PlanDiff, new_layout: PlanLayout) -> ModificationResult:
        """Applies ``diff`` to the mesocycle's future pending workouts.

        Workouts that are in progress, completed, skipped or already in the past
        are never modified. Only flushes; the caller commits.
        """
        self.validate_layout(new_layout)
        today = self.today_provider()
        result = ModificationResult()
        affected: set[int] = set()

        for day in new_layout.days:
            if not day.exercises:
                result.warnings.append(f"Day '{day.name}' has no exercises; no workouts will be generated for it")

        workouts = await self.generator.load_workouts(mesocycle.id)
        touched_days = (
            {c.plan_day_id for c in diff.changes}
            | set(diff.removed_days)
            | {moved.plan_day_id for moved in diff.rescheduled_days}
        )
        protected = [w for w in workouts if w.plan_day_id in touched_days and w.status in PROTECTED_WORKOUT_STATUSES]
        if protected:
            result.warnings.append(f"{len(protected)} started or finished workout(s) were left unchanged")

        removed_days = set(diff.removed_days)
        for workout in workouts:
            if workout.plan_day_id in removed_days and is_editable(workout, today):
                result.removed_sets_count += len(workout.sets)
                affected.add(workout.id)
                await self.db.delete(workout)
        remaining = [w for w in workouts if w.plan_day_id not in removed_days]
        # Editability is fixed before any dates move
        editable_ids = {w.id for w in remaining if is_editable(w, today)}

        for moved in diff.rescheduled_days:
            for workout in remaining:
                if workout.plan_day_id == moved.plan_day_id and workout.id in editable_ids:
                    workout.scheduled_date = scheduled_date_for(
                        mesocycle.start_date, moved.new_day_of_week, workout.week_number
                    )
                    affected.add(workout.id)

        if diff.changes:
            history = self.generator.completion_history(remaining, new_layout)
            for change in diff.changes:
                editable = [w for w in remaining if w.plan_day_id == change.plan_day_id and w.id in editable_ids]
                if not editable:
                    continue
                if isinstance(change, ExerciseRemoved):
                    for workout in editable:
                        doomed = [s for s in workout.sets if s.exercise_id == change.exercise_id]
                        for workout_set in doomed:
                            workout.sets.remove(workout_set)
                        if doomed:
                            result.removed_sets_count += len(doomed)
                            affected.add(workout.id)
                    continue

                day = new_layout.day(change.plan_day_id)
                exercise_id = change.exercise.exercise_id if isinstance(change, ExerciseAdded) else change.exercise_id
                entry = next(e for e in day.exercises if e.exercise_id == exercise_id)
                projection = self.generator.project_exercise(
                    mesocycle, day.id, entry, history.get((day.id, exercise_id))
                )
                for workout in editable:
                    targets = projection[workout.week_number - 1]
                    if isinstance(change, ExerciseAdded):
                        added = build_sets(exercise_id, targets, entry.rest_seconds)
                        workout.sets.extend(added)
                        result.added_sets_count += len(added)
                        affected.add(workout.id)
                    elif isinstance(change, ExerciseModified):
                        synced = sync_exercise_sets(workout, entry, targets)
                        result.added_sets_count += synced.added
                        result.removed_sets_count += synced.removed
                        result.modified_sets_count += synced.modified
                        if synced.changed:
                            affected.add(workout.id)

        # Pending workouts left without sets are dropped
        for workout in remaining:
            if workout.id in affected and not workout.sets:
                await self.db.delete(workout)

        await self.db.flush()

        # New days, and days gaining exercises, get workouts for every week not yet reached.
        # Weeks that already have a workout are kept by the generator.
        fill_days = set(diff.added_days) | {c.plan_day_id for c in diff.added_exercises}
        for day in new_layout.days:
            if day.id not in fill_days or not day.exercises:
                continue
            weeks = [
                week
                for week in range(1, mesocycle.total_weeks + 1)
                if scheduled_date_for(mesocycle.start_date, day.day_of_week, week) >= today
            ]
            if not weeks:
                continue
            generated = await self.generator.generate(mesocycle, new_layout, weeks=weeks, day_ids=[day.id])
            result.affected_workout_count += generated.workouts_created
            result.added_sets_count += generated.sets_created

        mesocycle.plan_snapshot = new_layout.model_dump(mode="json")
        await self.db.flush()

        result.affected_workout_count += len(affected)
        PLAN_MODIFICATIONS_APPLIED_TOTAL.inc()
        logger.info(
            "plan_modification_applied",
            mesocycle_id=mesocycle.id,
            added_exercises=len(diff.added_exercises),
            removed_exercises=len(diff.removed_exercises),
            modified_exercises=len(diff.modified_exercises),
            added_days=len(diff.added_days),
            removed_days=len(diff.removed_days),
            rescheduled_days=len(diff.rescheduled_days),
            affected_workouts=result.affected_workout_count,
        )
        return result
