from collections.abc import Callable
from datetime import date

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings, get_settings
from ..exceptions import ConflictError, NotFoundError, ValidationError
from ..locks import mesocycle_lock
from ..metrics import MESOCYCLE_TRANSITIONS_TOTAL
from ..models import (
    MESOCYCLE_ACTIVE,
    MESOCYCLE_CANCELLED,
    MESOCYCLE_COMPLETED,
    MESOCYCLE_PENDING,
    WORKOUT_COMPLETED,
    WORKOUT_IN_PROGRESS,
    WORKOUT_PENDING,
    WORKOUT_SKIPPED,
    Mesocycle,
    Plan,
    Workout,
)
from ..schemas.mesocycle import (
    MesocycleDetailResponse,
    MesocycleResponse,
    RegenerationResponse,
    WeekSummary,
)
from ..schemas.plan import PlanLayout
from .plan_service import PlanService
from .progression import DeloadPolicy, ProgressionCalculator, is_deload_week
from .workout_generator import WorkoutGenerator

logger = structlog.get_logger(__name__)

ACTIVE_EXISTS_MESSAGE = "An active mesocycle already exists"

_SUMMARY_FIELDS = {
    WORKOUT_PENDING: "pending_count",
    WORKOUT_IN_PROGRESS: "in_progress_count",
    WORKOUT_COMPLETED: "completed_count",
    WORKOUT_SKIPPED: "skipped_count",
}


class MesocycleService:
    """Lifecycle of a mesocycle: pending -> active -> completed | cancelled.

    At most one mesocycle is active at a time. The check runs inside the
    transaction that performs the transition and is backed by a partial unique
    index on the active status.
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

    def _generator(self) -> WorkoutGenerator:
        calculator = ProgressionCalculator(DeloadPolicy.from_settings(self.settings))
        return WorkoutGenerator(self.db, calculator=calculator, today_provider=self.today_provider)

    async def _get(self, mesocycle_id: int, for_update: bool = False) -> Mesocycle:
        stmt = select(Mesocycle).where(Mesocycle.id == mesocycle_id)
        if for_update:
            stmt = stmt.with_for_update()
        mesocycle = (await self.db.execute(stmt)).scalars().first()
        if mesocycle is None:
            raise NotFoundError("Mesocycle", mesocycle_id)
        return mesocycle

    async def _ensure_no_active(self, exclude_id: int | None = None) -> None:
        stmt = select(Mesocycle.id).where(Mesocycle.status == MESOCYCLE_ACTIVE)
        if exclude_id is not None:
            stmt = stmt.where(Mesocycle.id != exclude_id)
        if (await self.db.execute(stmt)).scalars().first() is not None:
            raise ConflictError(ACTIVE_EXISTS_MESSAGE)

    async def _plan_layout(self, plan_id: int) -> tuple[Plan, PlanLayout]:
        plan = await self.db.get(Plan, plan_id)
        if plan is None:
            raise NotFoundError("Plan", plan_id)
        layout = await PlanService(self.db, self.settings).get_layout(plan)
        if not layout.days:
            raise ValidationError(f"Plan {plan_id} has no days")
        for day in layout.days:
            if not day.exercises:
                raise ValidationError(f"Plan day '{day.name}' has no exercises")
        return plan, layout

    async def create(self, plan_id: int, start_date: date) -> MesocycleResponse:
        plan, _ = await self._plan_layout(plan_id)
        await self._ensure_no_active()
        mesocycle = Mesocycle(
            plan_id=plan.id,
            start_date=start_date,
            total_weeks=plan.duration_weeks,
            deload_weeks=list(plan.deload_weeks or []),
            current_week=0,
            status=MESOCYCLE_PENDING,
        )
        self.db.add(mesocycle)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        MESOCYCLE_TRANSITIONS_TOTAL.labels(transition="create").inc()
        logger.info("mesocycle_created", mesocycle_id=mesocycle.id, plan_id=plan_id, start_date=str(start_date))
        return MesocycleResponse.model_validate(mesocycle)

    async def start(self, mesocycle_id: int) -> MesocycleResponse:
        async with mesocycle_lock(mesocycle_id):
            try:
                mesocycle = await self._get(mesocycle_id, for_update=True)
                if mesocycle.status != MESOCYCLE_PENDING:
                    raise ConflictError(f"Mesocycle is {mesocycle.status}; only a pending mesocycle can be started")
                await self._ensure_no_active(exclude_id=mesocycle_id)
                _, layout = await self._plan_layout(mesocycle.plan_id)

                generated = await self._generator().generate(mesocycle, layout)
                mesocycle.plan_snapshot = layout.model_dump(mode="json")
                mesocycle.current_week = 1
                mesocycle.status = MESOCYCLE_ACTIVE
                await self.db.flush()
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                raise ConflictError(ACTIVE_EXISTS_MESSAGE)
            except Exception:
                await self.db.rollback()
                raise

        MESOCYCLE_TRANSITIONS_TOTAL.labels(transition="start").inc()
        logger.info(
            "mesocycle_started",
            mesocycle_id=mesocycle_id,
            workouts_created=generated.workouts_created,
            sets_created=generated.sets_created,
        )
        return MesocycleResponse.model_validate(mesocycle)

    async def _finish(self, mesocycle_id: int, status: str, transition: str) -> MesocycleResponse:
        async with mesocycle_lock(mesocycle_id):
            try:
                mesocycle = await self._get(mesocycle_id, for_update=True)
                if mesocycle.status != MESOCYCLE_ACTIVE:
                    raise ValidationError("Mesocycle is not active")
                mesocycle.status = status
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise
        MESOCYCLE_TRANSITIONS_TOTAL.labels(transition=transition).inc()
        logger.info(f"mesocycle_{status}", mesocycle_id=mesocycle_id)
        return MesocycleResponse.model_validate(mesocycle)

    async def complete(self, mesocycle_id: int) -> MesocycleResponse:
        return await self._finish(mesocycle_id, MESOCYCLE_COMPLETED, "complete")

    async def cancel(self, mesocycle_id: int) -> MesocycleResponse:
        return await self._finish(mesocycle_id, MESOCYCLE_CANCELLED, "cancel")

    async def regenerate(self, mesocycle_id: int) -> RegenerationResponse:
        """Rebuilds future pending workouts from the snapshot and real completion history."""
        async with mesocycle_lock(mesocycle_id):
            try:
                mesocycle = await self._get(mesocycle_id, for_update=True)
                if mesocycle.status != MESOCYCLE_ACTIVE:
                    raise ValidationError("Mesocycle is not active")
                layout = PlanLayout.model_validate(mesocycle.plan_snapshot or {"days": []})
                generated = await self._generator().generate(mesocycle, layout, regenerate=True)
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise
        logger.info(
            "mesocycle_regenerated",
            mesocycle_id=mesocycle_id,
            workouts_deleted=generated.workouts_deleted,
            workouts_created=generated.workouts_created,
        )
        return RegenerationResponse(
            mesocycle_id=mesocycle_id,
            workouts_deleted=generated.workouts_deleted,
            workouts_created=generated.workouts_created,
            sets_created=generated.sets_created,
        )

    async def get(self, mesocycle_id: int) -> MesocycleDetailResponse:
        mesocycle = await self._get(mesocycle_id)
        stmt = (
            select(Workout.week_number, Workout.status, func.count(Workout.id))
            .where(Workout.mesocycle_id == mesocycle_id)
            .group_by(Workout.week_number, Workout.status)
        )
        weeks = {
            week: WeekSummary(week_number=week, is_deload=is_deload_week(week, mesocycle.total_weeks, mesocycle.deload_weeks))
            for week in range(1, mesocycle.total_weeks + 1)
        }
        for week, status, count in (await self.db.execute(stmt)).all():
            summary = weeks.get(week)
            if summary is None:
                continue
            summary.workout_count += count
            field = _SUMMARY_FIELDS.get(status)
            if field:
                setattr(summary, field, getattr(summary, field) + count)
        detail = MesocycleDetailResponse.model_validate(mesocycle)
        detail.weeks = list(weeks.values())
        return detail

    async def list_mesocycles(self) -> list[MesocycleResponse]:
        result = await self.db.execute(select(Mesocycle).order_by(Mesocycle.id.desc()))
        return [MesocycleResponse.model_validate(m) for m in result.scalars().all()]

    async def get_active(self) -> MesocycleResponse:
        stmt = select(Mesocycle).where(Mesocycle.status == MESOCYCLE_ACTIVE)
        mesocycle = (await self.db.execute(stmt)).scalars().first()
        if mesocycle is None:
            raise NotFoundError("Active mesocycle")
        return MesocycleResponse.model_validate(mesocycle)
