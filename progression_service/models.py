from datetime import datetime

from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship

from .database import Base

MESOCYCLE_PENDING = "pending"
MESOCYCLE_ACTIVE = "active"
MESOCYCLE_COMPLETED = "completed"
MESOCYCLE_CANCELLED = "cancelled"

WORKOUT_PENDING = "pending"
WORKOUT_IN_PROGRESS = "in_progress"
WORKOUT_COMPLETED = "completed"
WORKOUT_SKIPPED = "skipped"

# Workouts in these states carry history and are never regenerated or edited by plan changes.
PROTECTED_WORKOUT_STATUSES = frozenset({WORKOUT_IN_PROGRESS, WORKOUT_COMPLETED, WORKOUT_SKIPPED})

SET_PENDING = "pending"
SET_COMPLETED = "completed"
SET_SKIPPED = "skipped"


class Exercise(Base):
    __tablename__ = "exercises"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, unique=True)
    weight_increment = Column(Float, nullable=False, default=5.0)

    def __repr__(self):
        return f"<Exercise(id={self.id}, name='{self.name}')>"


class Plan(Base):
    __tablename__ = "plans"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    duration_weeks = Column(Integer, nullable=False, default=6)
    # Extra 1-based weeks flagged as deload; the final week is always a deload
    deload_weeks = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    days = relationship(
        "PlanDay",
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="PlanDay.sort_order",
        lazy="selectin",
    )
    mesocycles = relationship("Mesocycle", back_populates="plan")

    def __repr__(self):
        return f"<Plan(id={self.id}, name='{self.name}')>"


class PlanDay(Base):
    __tablename__ = "plan_days"
    # Day ids identify days across layout edits and must never be reused
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True)
    plan_id = Column(Integer, ForeignKey("plans.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    # 0 = Monday ... 6 = Sunday
    day_of_week = Column(Integer, nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)

    plan = relationship("Plan", back_populates="days")
    exercises = relationship(
        "PlanDayExercise",
        back_populates="plan_day",
        cascade="all, delete-orphan",
        order_by="PlanDayExercise.sort_order",
        lazy="selectin",
    )


class PlanDayExercise(Base):
    __tablename__ = "plan_day_exercises"

    id = Column(Integer, primary_key=True, index=True)
    plan_day_id = Column(Integer, ForeignKey("plan_days.id", ondelete="CASCADE"), nullable=False, index=True)
    exercise_id = Column(Integer, ForeignKey("exercises.id"), nullable=False)
    sets = Column(Integer, nullable=False, default=3)
    reps = Column(Integer, nullable=False, default=8)
    weight = Column(Float, nullable=False, default=0.0)
    rest_seconds = Column(Integer, nullable=False, default=90)
    # Null falls back to Exercise.weight_increment
    weight_increment = Column(Float, nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)

    plan_day = relationship("PlanDay", back_populates="exercises")
    exercise = relationship("Exercise", lazy="joined")


class Mesocycle(Base):
    __tablename__ = "mesocycles"
    __table_args__ = (
        Index(
            "uq_mesocycles_single_active",
            "status",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    plan_id = Column(Integer, ForeignKey("plans.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    total_weeks = Column(Integer, nullable=False)
    deload_weeks = Column(JSON, nullable=False, default=list)
    current_week = Column(Integer, nullable=False, default=0)
    status = Column(String(32), nullable=False, default=MESOCYCLE_PENDING)
    # Plan layout as of start or the last applied modification
    plan_snapshot = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    plan = relationship("Plan", back_populates="mesocycles")
    workouts = relationship(
        "Workout",
        back_populates="mesocycle",
        cascade="all, delete-orphan",
        order_by="[Workout.week_number, Workout.scheduled_date]",
    )

    def __repr__(self):
        return f"<Mesocycle(id={self.id}, plan_id={self.plan_id}, status='{self.status}')>"


class Workout(Base):
    __tablename__ = "workouts"
    __table_args__ = (
        UniqueConstraint("mesocycle_id", "plan_day_id", "week_number", name="uq_workouts_meso_day_week"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, index=True)
    mesocycle_id = Column(Integer, ForeignKey("mesocycles.id", ondelete="CASCADE"), nullable=False, index=True)
    plan_day_id = Column(Integer, nullable=False)
    week_number = Column(Integer, nullable=False)
    scheduled_date = Column(Date, nullable=False)
    status = Column(String(32), nullable=False, default=WORKOUT_PENDING)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    mesocycle = relationship("Mesocycle", back_populates="workouts")
    sets = relationship(
        "WorkoutSet",
        back_populates="workout",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="[WorkoutSet.exercise_id, WorkoutSet.set_number]",
        lazy="selectin",
    )

    def __repr__(self):
        return "<Workout(id=%s, mesocycle_id=%s, week=%s, status=%s)>" % (
            self.id,
            self.mesocycle_id,
            self.week_number,
            self.status,
        )


class WorkoutSet(Base):
    __tablename__ = "workout_sets"

    id = Column(Integer, primary_key=True, index=True)
    workout_id = Column(Integer, ForeignKey("workouts.id", ondelete="CASCADE"), nullable=False, index=True)
    exercise_id = Column(Integer, nullable=False, index=True)
    set_number = Column(Integer, nullable=False)
    target_reps = Column(Integer, nullable=False)
    target_weight = Column(Float, nullable=False)
    target_rest_seconds = Column(Integer, nullable=True)
    actual_reps = Column(Integer, nullable=True)
    actual_weight = Column(Float, nullable=True)
    status = Column(String(32), nullable=False, default=SET_PENDING)

    workout = relationship("Workout", back_populates="sets")
