from prometheus_client import Counter

MESOCYCLE_TRANSITIONS_TOTAL = Counter(
    "mesocycle_transitions_total",
    "Number of mesocycle lifecycle transitions",
    ["transition"],  # create | start | complete | cancel
)

GENERATED_WORKOUTS_CREATED_TOTAL = Counter(
    "generated_workouts_created_total",
    "Number of workouts materialized from plan targets",
)

GENERATED_SETS_CREATED_TOTAL = Counter(
    "generated_sets_created_total",
    "Number of workout sets materialized from plan targets",
)

PLAN_MODIFICATIONS_APPLIED_TOTAL = Counter(
    "plan_modifications_applied_total",
    "Number of plan layout edits reconciled against a mesocycle",
)

WORKOUT_SETS_LOGGED_TOTAL = Counter(
    "workout_sets_logged_total",
    "Number of workout set log operations",
    ["action"],  # log | skip | unlog
)
