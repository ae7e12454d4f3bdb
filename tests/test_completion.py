from types import SimpleNamespace

from progression_service.services.completion import CompletionEvaluator


def logged(exercise_id=1, weight=100.0, reps=8):
    return SimpleNamespace(exercise_id=exercise_id, actual_weight=weight, actual_reps=reps)


def test_all_prescribed_sets_logged():
    status = CompletionEvaluator().evaluate(1, 1, 3, [logged(), logged(), logged()])
    assert status.completed_sets == 3
    assert status.all_sets_completed is True


def test_partially_logged_is_not_complete():
    status = CompletionEvaluator().evaluate(1, 1, 3, [logged(), logged(), logged(weight=None, reps=None)])
    assert status.completed_sets == 2
    assert status.all_sets_completed is False


def test_actuals_below_target_still_count():
    status = CompletionEvaluator().evaluate(1, 2, 2, [logged(weight=40.0, reps=1), logged(weight=0.0, reps=0)])
    assert status.all_sets_completed is True


def test_set_needs_both_weight_and_reps():
    status = CompletionEvaluator().evaluate(1, 1, 2, [logged(weight=None), logged(reps=None)])
    assert status.completed_sets == 0


def test_missing_data_yields_zero_completed():
    status = CompletionEvaluator().evaluate(1, 1, 3, None)
    assert status.completed_sets == 0
    assert status.all_sets_completed is False


def test_zero_prescribed_sets_is_never_complete():
    status = CompletionEvaluator().evaluate(1, 1, 0, [])
    assert status.all_sets_completed is False


def test_sets_of_other_exercises_are_ignored():
    status = CompletionEvaluator().evaluate(1, 1, 1, [logged(exercise_id=2)])
    assert status.completed_sets == 0


def test_history_only_covers_reached_weeks():
    def workout(week, status, sets):
        return SimpleNamespace(plan_day_id=10, week_number=week, status=status, sets=sets)

    workouts = [
        workout(1, "completed", [logged(), logged()]),
        workout(2, "in_progress", [logged(), logged(weight=None, reps=None)]),
        workout(3, "pending", [logged(weight=None, reps=None)] * 2),
        workout(4, "skipped", [logged(weight=None, reps=None)] * 2),
        SimpleNamespace(plan_day_id=11, week_number=1, status="completed", sets=[logged()]),
    ]
    history = CompletionEvaluator().history_for(workouts, plan_day_id=10, exercise_id=1)
    assert sorted(history) == [1, 2, 4]
    assert history[1].all_sets_completed is True
    assert history[2].all_sets_completed is False
    assert history[4].completed_sets == 0
