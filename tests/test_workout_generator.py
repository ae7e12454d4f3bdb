from datetime import date, timedelta

import pytest

from progression_service.exceptions import ValidationError
from progression_service.models import Mesocycle
from progression_service.schemas.plan import PlanLayout
from progression_service.services.mesocycle_service import MesocycleService
from progression_service.services.workout_generator import WorkoutGenerator, scheduled_date_for


def test_scheduled_date_uses_first_matching_weekday():
    monday = date(2030, 1, 7)
    wednesday = monday + timedelta(days=2)
    assert scheduled_date_for(monday, 0, 1) == monday
    assert scheduled_date_for(monday, 2, 1) == wednesday
    assert scheduled_date_for(monday, 2, 3) == wednesday + timedelta(days=14)
    # Starting midweek pushes earlier weekdays to the following week
    assert scheduled_date_for(wednesday, 0, 1) == monday + timedelta(days=7)


@pytest.mark.asyncio
async def test_start_generates_every_week(make_plan, start_mesocycle, load_workouts, today):
    plan = await make_plan()
    mesocycle = await start_mesocycle(plan)

    workouts = await load_workouts(mesocycle.id)
    assert len(workouts) == 12
    assert all(w.status == "pending" for w in workouts)
    assert {(w.plan_day_id, w.week_number) for w in workouts} == {
        (day.id, week) for day in plan.days for week in range(1, 7)
    }

    upper = [w for w in workouts if w.plan_day_id == plan.days[0].id]
    assert [w.scheduled_date for w in upper] == [today() + timedelta(days=7 * i) for i in range(6)]
    assert [w.sets[0].target_weight for w in upper] == [100.0, 105.0, 110.0, 115.0, 120.0, 100.0]
    assert [len(w.sets) for w in upper] == [3, 3, 3, 3, 3, 2]

    week1 = upper[0]
    assert [s.set_number for s in week1.sets] == [1, 2, 3]
    assert all(s.target_reps == 8 and s.target_rest_seconds == 120 for s in week1.sets)
    assert all(s.actual_weight is None and s.actual_reps is None for s in week1.sets)
    assert all(s.status == "pending" for s in week1.sets)


@pytest.mark.asyncio
async def test_generation_never_duplicates_existing_workouts(db, make_plan, start_mesocycle, load_workouts, today):
    plan = await make_plan(duration_weeks=3)
    started = await start_mesocycle(plan)
    mesocycle = await db.get(Mesocycle, started.id)
    layout = PlanLayout.model_validate(mesocycle.plan_snapshot)

    result = await WorkoutGenerator(db, today_provider=today).generate(mesocycle, layout)
    await db.commit()

    assert result.workouts_created == 0
    assert result.workouts_kept == 6
    assert len(await load_workouts(mesocycle.id)) == 6


@pytest.mark.asyncio
async def test_regeneration_replaces_only_future_pending_workouts(db, make_plan, start_mesocycle, load_workouts, today):
    plan = await make_plan(duration_weeks=3)
    started = await start_mesocycle(plan)
    workouts = await load_workouts(started.id)
    finished, in_progress = workouts[0], workouts[1]
    finished.status = "completed"
    in_progress.status = "in_progress"
    await db.commit()
    kept_ids = {finished.id, in_progress.id}

    result = await MesocycleService(db, today_provider=today).regenerate(started.id)

    assert result.workouts_deleted == 4
    assert result.workouts_created == 4
    after = await load_workouts(started.id)
    assert len(after) == 6
    assert kept_ids <= {w.id for w in after}
    statuses = {w.id: w.status for w in after}
    assert statuses[finished.id] == "completed"
    assert statuses[in_progress.id] == "in_progress"


@pytest.mark.asyncio
async def test_regeneration_keeps_past_pending_workouts(db, make_plan, start_mesocycle, load_workouts, today):
    plan = await make_plan(duration_weeks=3)
    started = await start_mesocycle(plan)
    week1_ids = {w.id for w in await load_workouts(started.id) if w.week_number == 1}

    next_week = lambda: today() + timedelta(days=7)  # noqa: E731
    result = await MesocycleService(db, today_provider=next_week).regenerate(started.id)

    # Week 1 lies in the past; weeks 2 and 3 of both days are rebuilt
    assert result.workouts_deleted == 4
    assert result.workouts_created == 4
    after = await load_workouts(started.id)
    assert len(after) == 6
    assert {w.id for w in after if w.week_number == 1} == week1_ids


@pytest.mark.asyncio
async def test_failed_start_leaves_nothing_behind(db, make_plan, load_workouts, today):
    plan = await make_plan(days=[("Upper", 0, [("bench", {}), ("row", {"weight_increment": 0.0})])])
    svc = MesocycleService(db, today_provider=today)
    mesocycle = await svc.create(plan.id, today())

    with pytest.raises(ValidationError):
        await svc.start(mesocycle.id)

    assert await load_workouts(mesocycle.id) == []
    assert (await svc.get(mesocycle.id)).status == "pending"


@pytest.mark.asyncio
async def test_generate_rejects_weeks_outside_the_cycle(db, make_plan, start_mesocycle, today):
    plan = await make_plan(duration_weeks=3)
    started = await start_mesocycle(plan)
    mesocycle = await db.get(Mesocycle, started.id)
    layout = PlanLayout.model_validate(mesocycle.plan_snapshot)

    with pytest.raises(ValidationError):
        await WorkoutGenerator(db, today_provider=today).generate(mesocycle, layout, weeks=[4])
