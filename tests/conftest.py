import os
from datetime import date

os.environ.setdefault("APP_ENV", "test")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from progression_service import locks
from progression_service.database import Base, create_async_engine_and_session, get_db
from progression_service.models import Workout
from progression_service.schemas.exercise import ExerciseCreate
from progression_service.schemas.plan import PlanCreate
from progression_service.services.exercise_service import ExerciseService
from progression_service.services.mesocycle_service import MesocycleService
from progression_service.services.plan_service import PlanService

# 2030-01-07 is a Monday
MONDAY = date(2030, 1, 7)


@pytest.fixture(autouse=True)
def reset_mesocycle_locks():
    # Locks bind to the running loop once contended; every test gets its own loop
    locks._locks.clear()
    locks._users.clear()
    yield
    locks._locks.clear()
    locks._users.clear()


@pytest.fixture()
def today():
    return lambda: MONDAY


@pytest_asyncio.fixture()
async def session_factory(tmp_path):
    engine, factory = create_async_engine_and_session(f"sqlite+aiosqlite:///{tmp_path / 'test_progression.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield factory
    await engine.dispose()


@pytest_asyncio.fixture()
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture()
async def exercises(db):
    svc = ExerciseService(db)
    bench = await svc.create_exercise(ExerciseCreate(name="Bench Press", weight_increment=5.0))
    squat = await svc.create_exercise(ExerciseCreate(name="Back Squat", weight_increment=5.0))
    row = await svc.create_exercise(ExerciseCreate(name="Barbell Row", weight_increment=2.5))
    return {"bench": bench.id, "squat": squat.id, "row": row.id}


@pytest.fixture()
def make_plan(db, exercises):
    """Creates a plan; days are (name, day_of_week, [(exercise key, overrides), ...])."""

    async def _make(days=None, duration_weeks=6, deload_weeks=()):
        if days is None:
            days = [("Upper", 0, [("bench", {})]), ("Lower", 3, [("squat", {})])]
        payload = {
            "name": "Strength Block",
            "duration_weeks": duration_weeks,
            "deload_weeks": list(deload_weeks),
            "days": [
                {
                    "name": name,
                    "day_of_week": day_of_week,
                    "exercises": [
                        {
                            "exercise_id": exercises[key],
                            "sets": 3,
                            "reps": 8,
                            "weight": 100.0,
                            "rest_seconds": 120,
                            **overrides,
                        }
                        for key, overrides in entries
                    ],
                }
                for name, day_of_week, entries in days
            ],
        }
        return await PlanService(db).create_plan(PlanCreate.model_validate(payload))

    return _make


@pytest_asyncio.fixture()
async def client(session_factory):
    from progression_service.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture()
def start_mesocycle(db, today):
    async def _start(plan):
        svc = MesocycleService(db, today_provider=today)
        mesocycle = await svc.create(plan.id, today())
        return await svc.start(mesocycle.id)

    return _start


@pytest.fixture()
def load_workouts(db):
    async def _load(mesocycle_id):
        stmt = (
            select(Workout)
            .where(Workout.mesocycle_id == mesocycle_id)
            .order_by(Workout.week_number.asc(), Workout.scheduled_date.asc())
            .execution_options(populate_existing=True)
        )
        return list((await db.execute(stmt)).scalars().all())

    return _load
