from collections.abc import Callable
from datetime import date, datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings, get_settings
from ..exceptions import ConflictError, NotFoundError, ValidationError
from ..locks import mesocycle_lock
from ..metrics import WORKOUT_SETS_LOGGED_TOTAL
from ..models import (
    MESOCYCLE_ACTIVE,
    SET_COMPLETED,
    SET_PENDING,
    SET_SKIPPED,
    WORKOUT_COMPLETED,
    WORKOUT_IN_PROGRESS,
    WORKOUT_PENDING,
    WORKOUT_SKIPPED,
    Mesocycle,
    Workout,
    WorkoutSet,
)
from ..schemas.plan import PlanLayout
from ..schemas.workout import WorkoutResponse, WorkoutSetResponse
from .progression import DeloadPolicy, ProgressionCalculator
from .workout_generator import WorkoutGenerator

logger = structlog.get_logger(__name__)


class WorkoutSetService:
    """Logging of actual performance against generated workouts.

    Every write holds the mesocycle's writer lock so that logging cannot
    interleave with a regeneration or plan edit touching the same workout.
    """

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings | None = None,
        today_provider: Callable[[], date] = date.today,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.today_provider = today_provider

    async def get_workout(self, workout_id: int) -> WorkoutResponse:
        stmt = select(Workout).where(Workout.id == workout_id)
        workout = (await self.db.execute(stmt)).scalars().first()
        if workout is None:
            raise NotFoundError("Workout", workout_id)
        return WorkoutResponse.model_validate(workout)

    async def list_workouts(self, mesocycle_id: int, week_number: int | None = None) -> list[WorkoutResponse]:
        if await self.db.get(Mesocycle, mesocycle_id) is None:
            raise NotFoundError("Mesocycle", mesocycle_id)
        stmt = select(Workout).where(Workout.mesocycle_id == mesocycle_id)
        if week_number is not None:
            stmt = stmt.where(Workout.week_number == week_number)
        stmt = stmt.order_by(Workout.week_number.asc(), Workout.scheduled_date.asc(), Workout.id.asc())
        result = await self.db.execute(stmt)
        return [WorkoutResponse.model_validate(w) for w in result.scalars().all()]

    async def _mesocycle_id_for_set(self, set_id: int) -> int:
        stmt = (
            select(Workout.mesocycle_id)
            .join(WorkoutSet, WorkoutSet.workout_id == Workout.id)
            .where(WorkoutSet.id == set_id)
        )
        mesocycle_id = (await self.db.execute(stmt)).scalars().first()
        if mesocycle_id is None:
            raise NotFoundError("Workout set", set_id)
        return mesocycle_id

    async def _mesocycle_id_for_workout(self, workout_id: int) -> int:
        stmt = select(Workout.mesocycle_id).where(Workout.id == workout_id)
        mesocycle_id = (await self.db.execute(stmt)).scalars().first()
        if mesocycle_id is None:
            raise NotFoundError("Workout", workout_id)
        return mesocycle_id

    async def _active_mesocycle(self, mesocycle_id: int) -> Mesocycle:
        stmt = select(Mesocycle).where(Mesocycle.id == mesocycle_id).with_for_update()
        mesocycle = (await self.db.execute(stmt)).scalars().first()
        if mesocycle is None:
            raise NotFoundError("Mesocycle", mesocycle_id)
        if mesocycle.status != MESOCYCLE_ACTIVE:
            raise ConflictError("Mesocycle is not active")
        return mesocycle

    @staticmethod
    def _ensure_open(workout: Workout) -> None:
        if workout.status in (WORKOUT_COMPLETED, WORKOUT_SKIPPED):
            raise ConflictError(f"Workout {workout.id} is already {workout.status}")

    @staticmethod
    def _touch(mesocycle: Mesocycle, workout: Workout) -> None:
        if workout.status == WORKOUT_PENDING:
            workout.status = WORKOUT_IN_PROGRESS
            workout.started_at = datetime.utcnow()
        if workout.week_number > (mesocycle.current_week or 0):
            mesocycle.current_week = workout.week_number

    async def _update_set(self, set_id: int, action: str, apply) -> WorkoutSetResponse:
        mesocycle_id = await self._mesocycle_id_for_set(set_id)
        async with mesocycle_lock(mesocycle_id):
            try:
                mesocycle = await self._active_mesocycle(mesocycle_id)
                workout_set = await self.db.get(WorkoutSet, set_id)
                if workout_set is None:
                    raise NotFoundError("Workout set", set_id)
                workout = await self.db.get(Workout, workout_set.workout_id)
                self._ensure_open(workout)
                apply(workout_set)
                if action != "unlog":
                    self._touch(mesocycle, workout)
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise
        WORKOUT_SETS_LOGGED_TOTAL.labels(action=action).inc()
        logger.info(
            "workout_set_updated",
            action=action,
            set_id=set_id,
            workout_id=workout_set.workout_id,
            mesocycle_id=mesocycle_id,
        )
        return WorkoutSetResponse.model_validate(workout_set)

    async def log_set(self, set_id: int, actual_weight: float, actual_reps: int) -> WorkoutSetResponse:
        if actual_weight is None or actual_reps is None:
            raise ValidationError("Both actual weight and actual reps are required")
        if actual_weight < 0 or actual_reps < 0:
            raise ValidationError("Actual weight and reps cannot be negative")

        def apply(workout_set: WorkoutSet) -> None:
            workout_set.actual_weight = actual_weight
            workout_set.actual_reps = actual_reps
            workout_set.status = SET_COMPLETED

        return await self._update_set(set_id, "log", apply)

    async def skip_set(self, set_id: int) -> WorkoutSetResponse:
        def apply(workout_set: WorkoutSet) -> None:
            workout_set.actual_weight = None
            workout_set.actual_reps = None
            workout_set.status = SET_SKIPPED

        return await self._update_set(set_id, "skip", apply)

    async def unlog_set(self, set_id: int) -> WorkoutSetResponse:
        def apply(workout_set: WorkoutSet) -> None:
            workout_set.actual_weight = None
            workout_set.actual_reps = None
            workout_set.status = SET_PENDING

        return await self._update_set(set_id, "unlog", apply)

    async def _finish_workout(self, workout_id: int, status: str) -> WorkoutResponse:
        mesocycle_id = await self._mesocycle_id_for_workout(workout_id)
        async with mesocycle_lock(mesocycle_id):
            try:
                mesocycle = await self._active_mesocycle(mesocycle_id)
                workout = await self.db.get(Workout, workout_id)
                if workout is None:
                    raise NotFoundError("Workout", workout_id)
                self._ensure_open(workout)
                self._touch(mesocycle, workout)
                workout.status = status
                workout.completed_at = datetime.utcnow()
                await self.db.flush()

                layout = PlanLayout.model_validate(mesocycle.plan_snapshot or {"days": []})
                generator = WorkoutGenerator(
                    self.db,
                    calculator=ProgressionCalculator(DeloadPolicy.from_settings(self.settings)),
                    today_provider=self.today_provider,
                )
                await generator.refresh_targets(mesocycle, layout)
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise
        logger.info(f"workout_{status}", workout_id=workout_id, mesocycle_id=mesocycle_id)
        return await self.get_workout(workout_id)

    async def complete_workout(self, workout_id: int) -> WorkoutResponse:
        return await self._finish_workout(workout_id, WORKOUT_COMPLETED)

    async def skip_workout(self, workout_id: int) -> WorkoutResponse:
        return await self._finish_workout(workout_id, WORKOUT_SKIPPED)
