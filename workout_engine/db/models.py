from __future__ import annotations

import uuid
from datetime import date as date_type
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Date, DateTime, Float, Index, Integer, String, Text, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models."""


class WorkoutPlan(Base):
    """User-authored workout plan with its weekly template.

    The weekly template is stored as one JSON document and rewritten as a
    whole. Every template write bumps ``version``; writers compare-and-swap on
    it so concurrent reschedules cannot silently overwrite each other.

    Schema:
    - weekly_template: list of day templates (day_of_week, name, exercise_templates)
    - generation_policy: advance_days, batch_size, auto_generation_enabled,
      last_generation_time, furthest_generated_date
    - mode: "ongoing" (unbounded) or "dated" (start_date..end_date)
    - week_starts_on: first day of the calendar week, NULL = engine default
    """

    __tablename__ = "workout_plans"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    level: Mapped[str] = mapped_column(String, nullable=False, default="beginner")

    mode: Mapped[str] = mapped_column(String, nullable=False, default="ongoing")
    start_date: Mapped[date_type | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date_type | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    week_starts_on: Mapped[int | None] = mapped_column(Integer, nullable=True)

    weekly_template: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    generation_policy: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    # Optimistic concurrency token for weekly_template
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("idx_workout_plans_user_active", "user_id", "is_active"),
    )


class ScheduledExercise(Base):
    """Dated, trackable exercise occurrence.

    Created by template generation (workout_plan_id set, is_manual False) or
    directly by the user (ad hoc, is_manual True). Hidden rows are override
    tombstones: the template would have produced an occurrence on that date
    but it was moved elsewhere. The suppressed_* columns name the slot it
    stands in for.

    Constraints:
    - At most one non-hidden row per (workout_plan_id, exercise_id, sets,
      reps, weight, date). Concurrent generation relies on this, not on the
      check-then-create in the generator.
    - Ad hoc rows have NULL workout_plan_id and are not constrained.
    """

    __tablename__ = "scheduled_exercises"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    exercise_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    category_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    workout_plan_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)

    date: Mapped[date_type] = mapped_column(Date, nullable=False, index=True)
    sets: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    reps: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    weight: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    weight_plates: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Completion tracking
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    is_hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    # Slot a hidden row suppresses; the row itself is zero-valued
    suppressed_sets: Mapped[int | None] = mapped_column(Integer, nullable=True)
    suppressed_reps: Mapped[int | None] = mapped_column(Integer, nullable=True)
    suppressed_weight: Mapped[float | None] = mapped_column(Float, nullable=True)
    is_manual: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Generation tracking
    generated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    generation_batch_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index(
            "uq_scheduled_exercises_plan_signature_date",
            "workout_plan_id",
            "exercise_id",
            "sets",
            "reps",
            "weight",
            "date",
            unique=True,
            sqlite_where=text("is_hidden = 0"),
            postgresql_where=text("is_hidden = false"),
        ),
        Index("idx_scheduled_exercises_user_date", "user_id", "date"),  # Common query: user instances by date range
        Index("idx_scheduled_exercises_plan_date", "workout_plan_id", "date"),
    )
