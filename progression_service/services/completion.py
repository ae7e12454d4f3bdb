from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from ..models import WORKOUT_COMPLETED, WORKOUT_IN_PROGRESS, WORKOUT_SKIPPED

# Only weeks the lifter actually reached contribute completion history
EVALUATED_WORKOUT_STATUSES = frozenset({WORKOUT_IN_PROGRESS, WORKOUT_COMPLETED, WORKOUT_SKIPPED})


@dataclass(frozen=True)
class CompletionStatus:
    exercise_id: int
    week_number: int
    completed_sets: int
    prescribed_sets: int
    all_sets_completed: bool


class CompletionEvaluator:
    """Decides whether every prescribed set of an exercise was logged in a week.

    A set counts once it carries both an actual weight and actual reps, whether or
    not those actuals met the target.
    """

    @staticmethod
    def is_set_completed(workout_set: Any) -> bool:
        return (
            getattr(workout_set, "actual_weight", None) is not None
            and getattr(workout_set, "actual_reps", None) is not None
        )

    def evaluate(
        self,
        exercise_id: int,
        week_number: int,
        prescribed_sets: int,
        logged_sets: Iterable[Any] | None,
    ) -> CompletionStatus:
        completed = 0
        for workout_set in logged_sets or ():
            set_exercise = getattr(workout_set, "exercise_id", exercise_id)
            if set_exercise == exercise_id and self.is_set_completed(workout_set):
                completed += 1
        prescribed = max(prescribed_sets or 0, 0)
        return CompletionStatus(
            exercise_id=exercise_id,
            week_number=week_number,
            completed_sets=completed,
            prescribed_sets=prescribed,
            all_sets_completed=prescribed > 0 and completed == prescribed,
        )

    def evaluate_workout(self, workout: Any, exercise_id: int) -> CompletionStatus:
        sets = [s for s in workout.sets if s.exercise_id == exercise_id]
        return self.evaluate(exercise_id, workout.week_number, len(sets), sets)

    def history_for(self, workouts: Iterable[Any], plan_day_id: int, exercise_id: int) -> dict[int, CompletionStatus]:
        """Completion per week for one plan-day exercise, keyed by week number.

        Pending workouts are left out so that projections treat those weeks as
        not yet evaluated.
        """
        history: dict[int, CompletionStatus] = {}
        for workout in workouts:
            if workout.plan_day_id != plan_day_id or workout.status not in EVALUATED_WORKOUT_STATUSES:
                continue
            if not any(s.exercise_id == exercise_id for s in workout.sets):
                continue
            history[workout.week_number] = self.evaluate_workout(workout, exercise_id)
        return history
