import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from ..config import CarryForward, RoundingMode, Settings, get_settings
from ..exceptions import ValidationError
from .completion import CompletionStatus


@dataclass(frozen=True)
class ExerciseConfig:
    exercise_id: int
    sets: int
    reps: int
    weight: float
    weight_increment: float
    rest_seconds: int | None = None
    plan_day_id: int | None = None

    @classmethod
    def from_layout(cls, plan_day_id: int | None, entry) -> "ExerciseConfig":
        if entry.weight_increment is None:
            raise ValidationError(f"Exercise {entry.exercise_id} has no weight increment")
        return cls(
            exercise_id=entry.exercise_id,
            sets=entry.sets,
            reps=entry.reps,
            weight=float(entry.weight),
            weight_increment=float(entry.weight_increment),
            rest_seconds=entry.rest_seconds,
            plan_day_id=plan_day_id,
        )


@dataclass(frozen=True)
class WeekTargets:
    exercise_id: int
    week_number: int
    target_weight: float
    target_reps: int
    target_sets: int
    is_deload: bool
    # Load and volume the week after a deload resumes from
    lineage_weight: float
    lineage_sets: int


@dataclass(frozen=True)
class DeloadPolicy:
    weight_factor: float = 0.85
    volume_factor: float = 0.5
    rounding_step: float | None = None
    rounding_mode: RoundingMode = RoundingMode.nearest
    carry_forward: CarryForward = CarryForward.pre_deload

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "DeloadPolicy":
        settings = settings or get_settings()
        return cls(
            weight_factor=settings.DELOAD_WEIGHT_FACTOR,
            volume_factor=settings.DELOAD_VOLUME_FACTOR,
            rounding_step=settings.DELOAD_ROUNDING_STEP,
            rounding_mode=settings.DELOAD_ROUNDING_MODE,
            carry_forward=settings.DELOAD_CARRY_FORWARD,
        )


def round_to_step(value: float, step: float | None, mode: RoundingMode = RoundingMode.nearest) -> float:
    if not step or step <= 0:
        return round(value, 4)
    # Trim float noise so that 120 * 0.85 lands on 102 rather than 101.999...
    ratio = round(value / step, 9)
    if mode == RoundingMode.floor:
        units = math.floor(ratio)
    elif mode == RoundingMode.ceil:
        units = math.ceil(ratio)
    else:
        units = math.floor(ratio + 0.5)
    return round(units * step, 4)


def is_deload_week(week_number: int, total_weeks: int, deload_weeks: Iterable[int] | None = None) -> bool:
    if week_number == total_weeks:
        return True
    return week_number in set(deload_weeks or ())


class ProgressionCalculator:
    """Computes one week's targets for one exercise.

    Targets for week n depend only on the targets for week n-1 and on whether
    every set of week n-1 was logged.
    """

    def __init__(self, policy: DeloadPolicy | None = None):
        self.policy = policy or DeloadPolicy()

    def _validate(self, config: ExerciseConfig | None, week_number: int) -> ExerciseConfig:
        if config is None:
            raise ValidationError("Exercise configuration is required")
        if config.weight_increment is None or config.weight_increment <= 0:
            raise ValidationError(f"Exercise {config.exercise_id} must have a positive weight increment")
        if week_number < 1:
            raise ValidationError("Week numbers start at 1")
        return config

    def _deload(self, config: ExerciseConfig, weight: float, sets: int) -> tuple[float, int]:
        step = self.policy.rounding_step or config.weight_increment
        deload_weight = round_to_step(weight * self.policy.weight_factor, step, self.policy.rounding_mode)
        deload_sets = max(1, math.ceil(round(sets * self.policy.volume_factor, 9)))
        return deload_weight, deload_sets

    def calculate(
        self,
        config: ExerciseConfig | None,
        week_number: int,
        previous: WeekTargets | None = None,
        previous_completion: CompletionStatus | None = None,
        is_deload: bool = False,
    ) -> WeekTargets:
        config = self._validate(config, week_number)

        if previous is None:
            weight, reps, sets = float(config.weight), config.reps, config.sets
            lineage_weight, lineage_sets = weight, sets
            if is_deload:
                weight, sets = self._deload(config, weight, sets)
        else:
            reps = previous.target_reps
            lineage_weight, lineage_sets = previous.lineage_weight, previous.lineage_sets
            if is_deload:
                weight, sets = self._deload(config, lineage_weight, lineage_sets)
            elif previous.is_deload:
                # Recovery week is never a basis for progression
                if self.policy.carry_forward == CarryForward.deload:
                    weight = previous.target_weight
                else:
                    weight = lineage_weight
                sets = lineage_sets
                lineage_weight = weight
            else:
                completed = previous_completion is not None and previous_completion.all_sets_completed
                weight = previous.target_weight
                if completed:
                    weight = round(weight + config.weight_increment, 4)
                sets = previous.target_sets
                lineage_weight, lineage_sets = weight, sets

        return WeekTargets(
            exercise_id=config.exercise_id,
            week_number=week_number,
            target_weight=weight,
            target_reps=reps,
            target_sets=sets,
            is_deload=is_deload,
            lineage_weight=lineage_weight,
            lineage_sets=lineage_sets,
        )

    def project(
        self,
        config: ExerciseConfig,
        total_weeks: int,
        deload_weeks: Iterable[int] | None = None,
        completions: Mapping[int, CompletionStatus] | None = None,
        assume_completed: bool = True,
    ) -> list[WeekTargets]:
        """Chains ``calculate`` over weeks 1..total_weeks.

        ``completions`` holds evaluated weeks. Any other week counts as fully
        completed when ``assume_completed`` is set, and as not completed otherwise.
        """
        if total_weeks < 1:
            raise ValidationError("A mesocycle needs at least one week")
        completions = completions or {}
        deload_weeks = set(deload_weeks or ())
        targets: list[WeekTargets] = []
        previous: WeekTargets | None = None
        for week in range(1, total_weeks + 1):
            previous_completion = None
            if previous is not None:
                previous_completion = completions.get(previous.week_number)
                if previous_completion is None and assume_completed:
                    previous_completion = CompletionStatus(
                        exercise_id=config.exercise_id,
                        week_number=previous.week_number,
                        completed_sets=previous.target_sets,
                        prescribed_sets=previous.target_sets,
                        all_sets_completed=True,
                    )
            current = self.calculate(
                config,
                week,
                previous=previous,
                previous_completion=previous_completion,
                is_deload=is_deload_week(week, total_weeks, deload_weeks),
            )
            targets.append(current)
            previous = current
        return targets
