from collections.abc import Callable, Iterable
from contextlib import nullcontext
from datetime import date

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings, get_settings
from ..exceptions import NotFoundError, ValidationError
from ..locks import mesocycle_lock
from ..models import MESOCYCLE_ACTIVE, Exercise, Mesocycle, Plan, PlanDay, PlanDayExercise
from ..schemas.plan import (
    PlanCreate,
    PlanDayExerciseLayout,
    PlanDayLayout,
    PlanLayout,
    PlanResponse,
)
from ..schemas.plan_diff import ModificationResult
from .plan_diff import PlanDiffEngine

logger = structlog.get_logger(__name__)


def layout_from_plan(plan: Plan, increments: dict[int, float]) -> PlanLayout:
    """Snapshot of a plan's days and exercises with weight increments resolved.

    ``increments`` maps exercise id to the exercise's own increment and is used
    when a plan entry carries no override.
    """
    days = []
    for day in sorted(plan.days, key=lambda d: (d.sort_order, d.id)):
        entries = []
        for pde in sorted(day.exercises, key=lambda e: (e.sort_order, e.id or 0)):
            increment = pde.weight_increment
            if increment is None:
                increment = increments.get(pde.exercise_id)
            entries.append(
                PlanDayExerciseLayout(
                    exercise_id=pde.exercise_id,
                    sets=pde.sets,
                    reps=pde.reps,
                    weight=pde.weight,
                    rest_seconds=pde.rest_seconds,
                    weight_increment=increment,
                )
            )
        days.append(PlanDayLayout(id=day.id, name=day.name, day_of_week=day.day_of_week, exercises=entries))
    return PlanLayout(days=days)


def _exercise_row(entry: PlanDayExerciseLayout, sort_order: int) -> PlanDayExercise:
    return PlanDayExercise(
        exercise_id=entry.exercise_id,
        sets=entry.sets,
        reps=entry.reps,
        weight=entry.weight,
        rest_seconds=entry.rest_seconds,
        weight_increment=entry.weight_increment,
        sort_order=sort_order,
    )


class PlanService:
    def __init__(
        self,
        db: AsyncSession,
        settings: Settings | None = None,
        today_provider: Callable[[], date] = date.today,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.today_provider = today_provider

    async def _get_plan(self, plan_id: int) -> Plan:
        plan = await self.db.get(Plan, plan_id)
        if plan is None:
            raise NotFoundError("Plan", plan_id)
        return plan

    async def exercise_increments(self, exercise_ids: Iterable[int]) -> dict[int, float]:
        ids = set(exercise_ids)
        if not ids:
            return {}
        result = await self.db.execute(select(Exercise.id, Exercise.weight_increment).where(Exercise.id.in_(ids)))
        increments = {row.id: row.weight_increment for row in result}
        missing = sorted(ids - increments.keys())
        if missing:
            raise NotFoundError("Exercise", missing[0])
        return increments

    async def get_layout(self, plan: Plan) -> PlanLayout:
        ids = {pde.exercise_id for day in plan.days for pde in day.exercises}
        return layout_from_plan(plan, await self.exercise_increments(ids))

    async def create_plan(self, data: PlanCreate) -> PlanResponse:
        await self.exercise_increments(e.exercise_id for d in data.days for e in d.exercises)
        plan = Plan(
            name=data.name,
            duration_weeks=data.duration_weeks or self.settings.DEFAULT_DURATION_WEEKS,
            deload_weeks=list(data.deload_weeks),
        )
        if any(week > plan.duration_weeks for week in plan.deload_weeks):
            raise ValidationError("deload_weeks must fall within duration_weeks")
        for day_order, day in enumerate(data.days):
            plan.days.append(
                PlanDay(
                    name=day.name,
                    day_of_week=day.day_of_week,
                    sort_order=day_order,
                    exercises=[_exercise_row(e, order) for order, e in enumerate(day.exercises)],
                )
            )
        self.db.add(plan)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        logger.info("plan_created", plan_id=plan.id, days=len(data.days))
        return await self.get_plan(plan.id)

    async def list_plans(self) -> list[PlanResponse]:
        result = await self.db.execute(select(Plan).order_by(Plan.id.asc()))
        return [PlanResponse.model_validate(p) for p in result.scalars().all()]

    async def get_plan(self, plan_id: int) -> PlanResponse:
        stmt = select(Plan).where(Plan.id == plan_id).execution_options(populate_existing=True)
        plan = (await self.db.execute(stmt)).scalars().first()
        if plan is None:
            raise NotFoundError("Plan", plan_id)
        return PlanResponse.model_validate(plan)

    async def _active_mesocycle_for(self, plan_id: int) -> Mesocycle | None:
        stmt = (
            select(Mesocycle)
            .where(Mesocycle.plan_id == plan_id, Mesocycle.status == MESOCYCLE_ACTIVE)
            .with_for_update()
        )
        return (await self.db.execute(stmt)).scalars().first()

    def _write_layout(self, plan: Plan, layout: PlanLayout) -> None:
        current = {day.id: day for day in plan.days}
        unknown = [d.id for d in layout.days if d.id is not None and d.id not in current]
        if unknown:
            raise ValidationError(f"Plan day {unknown[0]} does not belong to plan {plan.id}")

        kept = {d.id for d in layout.days if d.id is not None}
        for day in list(plan.days):
            if day.id not in kept:
                plan.days.remove(day)

        for day_order, day_layout in enumerate(layout.days):
            if day_layout.id is None:
                plan.days.append(
                    PlanDay(
                        name=day_layout.name,
                        day_of_week=day_layout.day_of_week,
                        sort_order=day_order,
                        exercises=[_exercise_row(e, order) for order, e in enumerate(day_layout.exercises)],
                    )
                )
                continue
            day = current[day_layout.id]
            day.name = day_layout.name
            day.day_of_week = day_layout.day_of_week
            day.sort_order = day_order
            rows = {pde.exercise_id: pde for pde in day.exercises}
            wanted = {e.exercise_id for e in day_layout.exercises}
            for pde in list(day.exercises):
                if pde.exercise_id not in wanted:
                    day.exercises.remove(pde)
            for order, entry in enumerate(day_layout.exercises):
                pde = rows.get(entry.exercise_id)
                if pde is None:
                    day.exercises.append(_exercise_row(entry, order))
                    continue
                pde.sets = entry.sets
                pde.reps = entry.reps
                pde.weight = entry.weight
                pde.rest_seconds = entry.rest_seconds
                pde.weight_increment = entry.weight_increment
                pde.sort_order = order

    async def update_layout(self, plan_id: int, layout: PlanLayout) -> ModificationResult:
        """Saves a new day/exercise layout and reconciles it with the active mesocycle.

        Only future pending workouts of the active mesocycle change. Without an
        active mesocycle the plan is simply saved.
        """
        plan = await self._get_plan(plan_id)
        increments = await self.exercise_increments(e.exercise_id for d in layout.days for e in d.exercises)
        probe = await self.db.execute(
            select(Mesocycle.id).where(Mesocycle.plan_id == plan_id, Mesocycle.status == MESOCYCLE_ACTIVE)
        )
        active_id = probe.scalars().first()
        if active_id is not None:
            PlanDiffEngine.validate_layout(layout)

        async with mesocycle_lock(active_id) if active_id is not None else nullcontext():
            try:
                mesocycle = await self._active_mesocycle_for(plan_id)
                self._write_layout(plan, layout)
                await self.db.flush()
                new_layout = layout_from_plan(plan, increments)

                if mesocycle is None:
                    result = ModificationResult()
                else:
                    engine = PlanDiffEngine(self.db, today_provider=self.today_provider)
                    old_layout = PlanLayout.model_validate(mesocycle.plan_snapshot or {"days": []})
                    diff = engine.diff(old_layout, new_layout)
                    result = await engine.apply(mesocycle, diff, new_layout)
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        logger.info(
            "plan_layout_updated",
            plan_id=plan_id,
            mesocycle_id=mesocycle.id if mesocycle else None,
            affected_workouts=result.affected_workout_count,
        )
        return result
