from datetime import date

import pytest


async def create_plan(client, duration_weeks=3):
    bench = (await client.post("/exercises", json={"name": "Bench Press", "weight_increment": 5})).json()
    row = (await client.post("/exercises", json={"name": "Barbell Row", "weight_increment": 2.5})).json()
    payload = {
        "name": "Upper Split",
        "duration_weeks": duration_weeks,
        "days": [
            {
                "name": "Upper",
                "day_of_week": date.today().weekday(),
                "exercises": [
                    {"exercise_id": bench["id"], "sets": 3, "reps": 8, "weight": 100},
                    {"exercise_id": row["id"], "sets": 3, "reps": 10, "weight": 60},
                ],
            }
        ],
    }
    r = await client.post("/plans", json=payload)
    assert r.status_code == 201, r.text
    return r.json(), bench, row


@pytest.mark.asyncio
async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_exercise_catalogue(client):
    r = await client.post("/exercises", json={"name": "Deadlift", "weight_increment": 10})
    assert r.status_code == 201
    r = await client.post("/exercises", json={"name": "Deadlift"})
    assert r.status_code == 409
    assert r.json()["code"] == "CONFLICT"
    r = await client.get("/exercises")
    assert [e["name"] for e in r.json()] == ["Deadlift"]


@pytest.mark.asyncio
async def test_mesocycle_flow(client):
    plan, bench, row = await create_plan(client)

    r = await client.post("/mesocycles", json={"plan_id": plan["id"], "start_date": date.today().isoformat()})
    assert r.status_code == 201, r.text
    mesocycle = r.json()
    assert mesocycle["status"] == "pending"

    r = await client.put(f"/mesocycles/{mesocycle['id']}/start")
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "active"
    assert r.json()["current_week"] == 1

    r = await client.get(f"/mesocycles/{mesocycle['id']}/workouts")
    assert r.status_code == 200
    workouts = r.json()
    assert [w["week_number"] for w in workouts] == [1, 2, 3]
    week1 = workouts[0]
    for workout_set in week1["sets"]:
        r = await client.put(
            f"/workout-sets/{workout_set['id']}/log",
            json={"actual_weight": workout_set["target_weight"], "actual_reps": workout_set["target_reps"]},
        )
        assert r.status_code == 200, r.text

    r = await client.get(f"/mesocycles/{mesocycle['id']}/next-week")
    assert r.status_code == 200, r.text
    preview = r.json()
    assert preview["week_number"] == 2
    by_name = {e["exercise_name"]: e for e in preview["exercises"]}
    assert by_name["Bench Press"]["target_weight"] == 105.0
    assert by_name["Barbell Row"]["target_weight"] == 62.5
    assert all(e["will_progress"] for e in preview["exercises"])

    r = await client.put(f"/workouts/{week1['id']}/complete")
    assert r.status_code == 200
    assert r.json()["status"] == "completed"

    layout = {
        "days": [
            {
                "id": plan["days"][0]["id"],
                "name": "Upper",
                "day_of_week": plan["days"][0]["day_of_week"],
                "exercises": [{"exercise_id": bench["id"], "sets": 3, "reps": 8, "weight": 100}],
            }
        ]
    }
    r = await client.put(f"/plans/{plan['id']}/layout", json=layout)
    assert r.status_code == 200, r.text
    result = r.json()
    assert result["affected_workout_count"] == 2
    assert result["removed_sets_count"] == 3 + 2

    r = await client.get(f"/mesocycles/{mesocycle['id']}")
    assert r.status_code == 200
    weeks = r.json()["weeks"]
    assert weeks[0]["completed_count"] == 1
    assert weeks[2]["is_deload"] is True

    r = await client.put(f"/mesocycles/{mesocycle['id']}/complete")
    assert r.status_code == 200
    assert r.json()["status"] == "completed"


@pytest.mark.asyncio
async def test_error_envelopes(client):
    plan, _, _ = await create_plan(client)
    start = date.today().isoformat()

    r = await client.get("/mesocycles/999")
    assert r.status_code == 404
    assert r.json() == {"detail": "Mesocycle with id 999 not found", "code": "NOT_FOUND"}

    first = (await client.post("/mesocycles", json={"plan_id": plan["id"], "start_date": start})).json()
    second = (await client.post("/mesocycles", json={"plan_id": plan["id"], "start_date": start})).json()

    r = await client.put(f"/mesocycles/{first['id']}/complete")
    assert r.status_code == 400
    assert r.json() == {"detail": "Mesocycle is not active", "code": "VALIDATION_ERROR"}

    assert (await client.put(f"/mesocycles/{first['id']}/start")).status_code == 200
    r = await client.put(f"/mesocycles/{second['id']}/start")
    assert r.status_code == 409
    assert r.json() == {"detail": "An active mesocycle already exists", "code": "CONFLICT"}

    r = await client.put(f"/plans/{plan['id']}/layout", json={"days": []})
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"

    r = await client.get("/mesocycles/active")
    assert r.json()["id"] == first["id"]

    r = await client.put(f"/mesocycles/{first['id']}/regenerate")
    assert r.status_code == 200
    assert r.json()["mesocycle_id"] == first["id"]

    r = await client.post("/mesocycles", json={"plan_id": plan["id"]})
    assert r.status_code == 422
