import pytest

from progression_service.exceptions import NotFoundError
from progression_service.models import Mesocycle
from progression_service.services.mesocycle_service import MesocycleService
from progression_service.services.next_week_preview import NextWeekPreviewService
from progression_service.services.workout_set_service import WorkoutSetService


async def log_week_one(db, load_workouts, mesocycle_id, today, count):
    workout = (await load_workouts(mesocycle_id))[0]
    sets = WorkoutSetService(db, today_provider=today)
    for workout_set in workout.sets[:count]:
        await sets.log_set(workout_set.id, workout_set.target_weight, workout_set.target_reps)
    return workout


@pytest.mark.asyncio
async def test_fully_logged_week_progresses(db, make_plan, start_mesocycle, load_workouts, exercises, today):
    plan = await make_plan(days=[("Upper", 0, [("bench", {})])])
    mesocycle = await start_mesocycle(plan)
    await log_week_one(db, load_workouts, mesocycle.id, today, count=3)

    preview = await NextWeekPreviewService(db).get_preview(mesocycle.id)

    assert preview.mesocycle_id == mesocycle.id
    assert preview.week_number == 2
    assert preview.is_deload is False
    [bench] = preview.exercises
    assert bench.exercise_id == exercises["bench"]
    assert bench.exercise_name == "Bench Press"
    assert bench.target_weight == 105.0
    assert (bench.target_reps, bench.target_sets) == (8, 3)
    assert bench.will_progress is True
    assert bench.previous_week_completed is True


@pytest.mark.asyncio
async def test_partially_logged_week_repeats(db, make_plan, start_mesocycle, load_workouts, today):
    plan = await make_plan(days=[("Upper", 0, [("bench", {})])])
    mesocycle = await start_mesocycle(plan)
    await log_week_one(db, load_workouts, mesocycle.id, today, count=2)

    [bench] = (await NextWeekPreviewService(db).get_preview(mesocycle.id)).exercises

    assert bench.target_weight == 100.0
    assert bench.will_progress is False
    assert bench.previous_week_completed is False


@pytest.mark.asyncio
async def test_preview_does_not_write(db, make_plan, start_mesocycle, load_workouts, today):
    plan = await make_plan()
    mesocycle = await start_mesocycle(plan)
    before = [(w.id, w.status, [(s.id, s.target_weight) for s in w.sets]) for w in await load_workouts(mesocycle.id)]

    preview = await NextWeekPreviewService(db).get_preview(mesocycle.id)

    assert len(preview.exercises) == 2
    assert not db.new and not db.dirty and not db.deleted
    after = [(w.id, w.status, [(s.id, s.target_weight) for s in w.sets]) for w in await load_workouts(mesocycle.id)]
    assert after == before


@pytest.mark.asyncio
async def test_preview_flags_upcoming_deload(db, make_plan, start_mesocycle, load_workouts, today):
    plan = await make_plan(days=[("Upper", 0, [("bench", {})])], duration_weeks=2)
    mesocycle = await start_mesocycle(plan)
    await log_week_one(db, load_workouts, mesocycle.id, today, count=3)

    preview = await NextWeekPreviewService(db).get_preview(mesocycle.id)

    assert preview.is_deload is True
    [bench] = preview.exercises
    assert bench.target_sets == 2
    assert bench.target_weight == 85.0
    assert bench.will_progress == bench.previous_week_completed is True


@pytest.mark.asyncio
async def test_preview_requires_active_mesocycle(db, make_plan, today):
    plan = await make_plan()
    pending = await MesocycleService(db, today_provider=today).create(plan.id, today())

    with pytest.raises(NotFoundError):
        await NextWeekPreviewService(db).get_preview(pending.id)
    with pytest.raises(NotFoundError):
        await NextWeekPreviewService(db).get_preview(999)


@pytest.mark.asyncio
async def test_preview_after_last_week(db, make_plan, start_mesocycle):
    plan = await make_plan(duration_weeks=3)
    started = await start_mesocycle(plan)
    mesocycle = await db.get(Mesocycle, started.id)
    mesocycle.current_week = 3
    await db.commit()

    with pytest.raises(NotFoundError):
        await NextWeekPreviewService(db).get_preview(started.id)


async def log_week(db, load_workouts, mesocycle_id, today, week_number, count=None):
    workout = next(w for w in await load_workouts(mesocycle_id) if w.week_number == week_number)
    sets = WorkoutSetService(db, today_provider=today)
    for workout_set in workout.sets[:count]:
        await sets.log_set(workout_set.id, workout_set.target_weight, workout_set.target_reps)


@pytest.mark.asyncio
async def test_preview_from_a_later_week_builds_on_history(db, make_plan, start_mesocycle, load_workouts, today):
    plan = await make_plan(days=[("Upper", 0, [("bench", {})])])
    mesocycle = await start_mesocycle(plan)
    await log_week(db, load_workouts, mesocycle.id, today, week_number=1)
    await log_week(db, load_workouts, mesocycle.id, today, week_number=2)

    preview = await NextWeekPreviewService(db).get_preview(mesocycle.id)

    assert preview.week_number == 3
    [bench] = preview.exercises
    assert bench.target_weight == 110.0
    assert bench.will_progress is True


@pytest.mark.asyncio
async def test_preview_holds_weight_after_a_missed_earlier_week(db, make_plan, start_mesocycle, load_workouts, today):
    plan = await make_plan(days=[("Upper", 0, [("bench", {})])])
    mesocycle = await start_mesocycle(plan)
    await log_week(db, load_workouts, mesocycle.id, today, week_number=1, count=1)
    await log_week(db, load_workouts, mesocycle.id, today, week_number=2)

    [bench] = (await NextWeekPreviewService(db).get_preview(mesocycle.id)).exercises

    # Week 1 fell short so week 2 stayed at 100; the full week 2 earns the increment
    assert bench.target_weight == 105.0
    assert bench.will_progress is True


@pytest.mark.asyncio
async def test_preview_of_final_deload_from_a_later_week(db, make_plan, start_mesocycle, load_workouts, today):
    plan = await make_plan(days=[("Upper", 0, [("bench", {})])], duration_weeks=3)
    mesocycle = await start_mesocycle(plan)
    await log_week(db, load_workouts, mesocycle.id, today, week_number=1)
    await log_week(db, load_workouts, mesocycle.id, today, week_number=2)

    preview = await NextWeekPreviewService(db).get_preview(mesocycle.id)

    assert (preview.week_number, preview.is_deload) == (3, True)
    [bench] = preview.exercises
    # 85% of the 105 working weight, rounded to the 5 increment
    assert bench.target_weight == 90.0
    assert bench.target_sets == 2
