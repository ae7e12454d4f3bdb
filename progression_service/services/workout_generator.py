from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import date, timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import ValidationError
from ..metrics import GENERATED_SETS_CREATED_TOTAL, GENERATED_WORKOUTS_CREATED_TOTAL
from ..models import SET_PENDING, WORKOUT_PENDING, Mesocycle, Workout, WorkoutSet
from ..schemas.plan import PlanDayExerciseLayout, PlanLayout
from .completion import CompletionEvaluator, CompletionStatus
from .progression import DeloadPolicy, ExerciseConfig, ProgressionCalculator, WeekTargets

logger = structlog.get_logger(__name__)

# (plan_day_id, exercise_id) -> {week_number: CompletionStatus}
CompletionHistory = Mapping[tuple[int, int], Mapping[int, CompletionStatus]]


@dataclass
class GenerationResult:
    workouts_created: int = 0
    sets_created: int = 0
    workouts_deleted: int = 0
    workouts_kept: int = 0


@dataclass
class SetSyncResult:
    added: int = 0
    removed: int = 0
    modified: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed or self.modified)


def scheduled_date_for(start_date: date, day_of_week: int, week_number: int) -> date:
    """First occurrence of ``day_of_week`` on or after the start date, shifted by whole weeks."""
    offset = (day_of_week - start_date.weekday()) % 7
    return start_date + timedelta(days=(week_number - 1) * 7 + offset)


def is_editable(workout: Workout, today: date) -> bool:
    return workout.status == WORKOUT_PENDING and workout.scheduled_date >= today


def build_sets(exercise_id: int, targets: WeekTargets, rest_seconds: int | None, first_set: int = 1) -> list[WorkoutSet]:
    return [
        WorkoutSet(
            exercise_id=exercise_id,
            set_number=number,
            target_reps=targets.target_reps,
            target_weight=targets.target_weight,
            target_rest_seconds=rest_seconds,
            status=SET_PENDING,
        )
        for number in range(first_set, first_set + targets.target_sets)
    ]


def sync_exercise_sets(workout: Workout, entry: PlanDayExerciseLayout, targets: WeekTargets) -> SetSyncResult:
    """Brings one exercise's sets in a pending workout in line with ``targets``."""
    result = SetSyncResult()
    existing = sorted((s for s in workout.sets if s.exercise_id == entry.exercise_id), key=lambda s: s.set_number)
    for workout_set in existing[: targets.target_sets]:
        if (
            workout_set.target_weight != targets.target_weight
            or workout_set.target_reps != targets.target_reps
            or workout_set.target_rest_seconds != entry.rest_seconds
        ):
            workout_set.target_weight = targets.target_weight
            workout_set.target_reps = targets.target_reps
            workout_set.target_rest_seconds = entry.rest_seconds
            result.modified += 1
    for workout_set in existing[targets.target_sets :]:
        workout.sets.remove(workout_set)
        result.removed += 1
    if len(existing) < targets.target_sets:
        first_set = existing[-1].set_number + 1 if existing else 1
        missing = replace(targets, target_sets=targets.target_sets - len(existing))
        added = build_sets(entry.exercise_id, missing, entry.rest_seconds, first_set=first_set)
        workout.sets.extend(added)
        result.added += len(added)
    return result


class WorkoutGenerator:
    """Materializes week targets into workouts and sets for a mesocycle.

    The generator only flushes. The calling operation owns the transaction and
    commits or rolls back the whole call as one unit.
    """

    def __init__(
        self,
        db: AsyncSession,
        calculator: ProgressionCalculator | None = None,
        evaluator: CompletionEvaluator | None = None,
        today_provider: Callable[[], date] = date.today,
    ):
        self.db = db
        self.calculator = calculator or ProgressionCalculator(DeloadPolicy.from_settings())
        self.evaluator = evaluator or CompletionEvaluator()
        self.today_provider = today_provider

    async def load_workouts(self, mesocycle_id: int) -> list[Workout]:
        stmt = (
            select(Workout)
            .where(Workout.mesocycle_id == mesocycle_id)
            .order_by(Workout.week_number.asc(), Workout.scheduled_date.asc(), Workout.id.asc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    def completion_history(self, workouts: Iterable[Workout], layout: PlanLayout) -> dict[tuple[int, int], dict]:
        workouts = list(workouts)
        history: dict[tuple[int, int], dict] = {}
        for day in layout.days:
            for entry in day.exercises:
                history[(day.id, entry.exercise_id)] = self.evaluator.history_for(workouts, day.id, entry.exercise_id)
        return history

    def project_exercise(
        self,
        mesocycle: Mesocycle,
        plan_day_id: int,
        entry: PlanDayExerciseLayout,
        completions: Mapping[int, CompletionStatus] | None = None,
    ) -> list[WeekTargets]:
        config = ExerciseConfig.from_layout(plan_day_id, entry)
        return self.calculator.project(
            config,
            mesocycle.total_weeks,
            deload_weeks=mesocycle.deload_weeks,
            completions=completions,
            assume_completed=True,
        )

    def _projections(self, mesocycle: Mesocycle, layout: PlanLayout, history: CompletionHistory, day_ids=None):
        projections: dict[tuple[int, int], list[WeekTargets]] = {}
        for day in layout.days:
            if day_ids is not None and day.id not in day_ids:
                continue
            for entry in day.exercises:
                key = (day.id, entry.exercise_id)
                projections[key] = self.project_exercise(mesocycle, day.id, entry, history.get(key))
        return projections

    async def generate(
        self,
        mesocycle: Mesocycle,
        layout: PlanLayout,
        weeks: Iterable[int] | None = None,
        day_ids: Iterable[int] | None = None,
        regenerate: bool = False,
        completions: CompletionHistory | None = None,
    ) -> GenerationResult:
        total_weeks = mesocycle.total_weeks
        week_numbers = sorted(set(weeks)) if weeks is not None else list(range(1, total_weeks + 1))
        if any(week < 1 or week > total_weeks for week in week_numbers):
            raise ValidationError(f"Weeks must be between 1 and {total_weeks}")
        selected_days = set(day_ids) if day_ids is not None else None
        if any(day.id is None for day in layout.days):
            raise ValidationError("Plan days must be saved before generating workouts")

        result = GenerationResult()
        today = self.today_provider()
        workouts = await self.load_workouts(mesocycle.id)
        existing = {(w.plan_day_id, w.week_number): w for w in workouts}

        if regenerate:
            for key, workout in list(existing.items()):
                plan_day_id, week = key
                if selected_days is not None and plan_day_id not in selected_days:
                    continue
                if week in week_numbers and is_editable(workout, today):
                    await self.db.delete(workout)
                    del existing[key]
                    result.workouts_deleted += 1
            # Deletes must reach the database before re-inserting the same (day, week) keys
            await self.db.flush()
            workouts = list(existing.values())

        history = completions if completions is not None else self.completion_history(workouts, layout)
        projections = self._projections(mesocycle, layout, history, selected_days)

        for week in week_numbers:
            for day in layout.days:
                if selected_days is not None and day.id not in selected_days:
                    continue
                if (day.id, week) in existing:
                    result.workouts_kept += 1
                    continue
                if not day.exercises:
                    continue
                workout = Workout(
                    mesocycle_id=mesocycle.id,
                    plan_day_id=day.id,
                    week_number=week,
                    scheduled_date=scheduled_date_for(mesocycle.start_date, day.day_of_week, week),
                    status=WORKOUT_PENDING,
                )
                for entry in day.exercises:
                    targets = projections[(day.id, entry.exercise_id)][week - 1]
                    workout.sets.extend(build_sets(entry.exercise_id, targets, entry.rest_seconds))
                self.db.add(workout)
                existing[(day.id, week)] = workout
                result.workouts_created += 1
                result.sets_created += len(workout.sets)

        await self.db.flush()
        GENERATED_WORKOUTS_CREATED_TOTAL.inc(result.workouts_created)
        GENERATED_SETS_CREATED_TOTAL.inc(result.sets_created)
        logger.info(
            "workouts_generated",
            mesocycle_id=mesocycle.id,
            weeks=len(week_numbers),
            workouts_created=result.workouts_created,
            sets_created=result.sets_created,
            workouts_deleted=result.workouts_deleted,
        )
        return result

    async def refresh_targets(self, mesocycle: Mesocycle, layout: PlanLayout) -> SetSyncResult:
        """Re-syncs future pending workouts against the real completion history."""
        today = self.today_provider()
        workouts = await self.load_workouts(mesocycle.id)
        history = self.completion_history(workouts, layout)
        projections = self._projections(mesocycle, layout, history)
        total = SetSyncResult()
        for workout in workouts:
            if not is_editable(workout, today):
                continue
            day = layout.day(workout.plan_day_id)
            if day is None:
                continue
            for entry in day.exercises:
                targets = projections[(day.id, entry.exercise_id)][workout.week_number - 1]
                synced = sync_exercise_sets(workout, entry, targets)
                total.added += synced.added
                total.removed += synced.removed
                total.modified += synced.modified
        await self.db.flush()
        logger.info(
            "workout_targets_refreshed",
            mesocycle_id=mesocycle.id,
            sets_added=total.added,
            sets_removed=total.removed,
            sets_modified=total.modified,
        )
        return total
