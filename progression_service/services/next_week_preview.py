import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import NotFoundError
from ..models import MESOCYCLE_ACTIVE, Exercise, Mesocycle, Workout
from ..schemas.mesocycle import NextWeekExercise, NextWeekResponse
from ..schemas.plan import PlanLayout
from .completion import CompletionEvaluator
from .progression import DeloadPolicy, ExerciseConfig, ProgressionCalculator, is_deload_week

logger = structlog.get_logger(__name__)


class NextWeekPreviewService:
    """Read-only forecast of next week's targets for the active mesocycle.

    Completion of the current week is taken from the logged sets as they are
    now, so the forecast changes as the lifter logs. Nothing is written.
    """

    def __init__(
        self,
        db: AsyncSession,
        calculator: ProgressionCalculator | None = None,
        evaluator: CompletionEvaluator | None = None,
    ):
        self.db = db
        self.calculator = calculator or ProgressionCalculator(DeloadPolicy.from_settings())
        self.evaluator = evaluator or CompletionEvaluator()

    async def get_preview(self, mesocycle_id: int) -> NextWeekResponse:
        mesocycle = await self.db.get(Mesocycle, mesocycle_id)
        if mesocycle is None or mesocycle.status != MESOCYCLE_ACTIVE:
            raise NotFoundError("Active mesocycle", mesocycle_id)
        current_week = mesocycle.current_week or 0
        if current_week < 1:
            raise NotFoundError("Current week of mesocycle", mesocycle_id)
        if current_week >= mesocycle.total_weeks:
            raise NotFoundError("Next week of mesocycle", mesocycle_id)

        layout = PlanLayout.model_validate(mesocycle.plan_snapshot or {"days": []})
        next_week = current_week + 1
        next_is_deload = is_deload_week(next_week, mesocycle.total_weeks, mesocycle.deload_weeks)

        workouts = list(
            (await self.db.execute(select(Workout).where(Workout.mesocycle_id == mesocycle_id))).scalars().all()
        )
        exercise_ids = {e.exercise_id for day in layout.days for e in day.exercises}
        names: dict[int, str] = {}
        if exercise_ids:
            rows = await self.db.execute(select(Exercise.id, Exercise.name).where(Exercise.id.in_(exercise_ids)))
            names = {row.id: row.name for row in rows}

        exercises: list[NextWeekExercise] = []
        for day in layout.days:
            current_workout = next(
                (w for w in workouts if w.plan_day_id == day.id and w.week_number == current_week),
                None,
            )
            for entry in day.exercises:
                config = ExerciseConfig.from_layout(day.id, entry)
                history = {
                    week: status
                    for week, status in self.evaluator.history_for(workouts, day.id, entry.exercise_id).items()
                    if week < current_week
                }
                projected = self.calculator.project(
                    config,
                    mesocycle.total_weeks,
                    deload_weeks=mesocycle.deload_weeks,
                    completions=history,
                    assume_completed=False,
                )
                current_targets = projected[current_week - 1]
                if current_workout is not None:
                    logged = [s for s in current_workout.sets if s.exercise_id == entry.exercise_id]
                    prescribed = len(logged) or current_targets.target_sets
                else:
                    logged, prescribed = [], current_targets.target_sets
                status = self.evaluator.evaluate(entry.exercise_id, current_week, prescribed, logged)
                targets = self.calculator.calculate(
                    config,
                    next_week,
                    previous=current_targets,
                    previous_completion=status,
                    is_deload=next_is_deload,
                )
                exercises.append(
                    NextWeekExercise(
                        exercise_id=entry.exercise_id,
                        exercise_name=names.get(entry.exercise_id, f"Exercise {entry.exercise_id}"),
                        plan_day_id=day.id,
                        target_weight=targets.target_weight,
                        target_reps=targets.target_reps,
                        target_sets=targets.target_sets,
                        will_progress=status.all_sets_completed,
                        previous_week_completed=status.all_sets_completed,
                    )
                )

        logger.debug("next_week_preview_built", mesocycle_id=mesocycle_id, week_number=next_week)
        return NextWeekResponse(
            mesocycle_id=mesocycle_id,
            week_number=next_week,
            is_deload=next_is_deload,
            exercises=exercises,
        )
