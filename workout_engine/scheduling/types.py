"""Domain types for weekly templates and scheduled exercise instances.

The weekly template is the source of truth for a plan's recurring pattern.
Instances are its dated, trackable materialization plus ad hoc additions.
Everything here is a detached value object: repositories hand these out
instead of live ORM rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from datetime import date as date_type
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from workout_engine.config.settings import settings
from workout_engine.scheduling.dates import DAY_NAMES
from workout_engine.scheduling.errors import PartialCascadeFailure

PlanMode = Literal["ongoing", "dated"]
PlanLevel = Literal["beginner", "intermediate", "advanced"]

HIDDEN_NOTE = "Hidden (moved to another date)"


class RescheduleScope(str, Enum):
    """How far a move reaches.

    THIS_WEEK detaches one occurrence and leaves the pattern alone.
    WHOLE_PLAN moves the recurring slot and carries future occurrences along.
    """

    THIS_WEEK = "this-week"
    WHOLE_PLAN = "whole-plan"


@dataclass(frozen=True)
class ExerciseSignature:
    """Identifies one recurring slot across dates.

    Two instances with the same signature on different dates are occurrences
    of the same template entry.
    """

    workout_plan_id: str | None
    exercise_id: str
    sets: int
    reps: int
    weight: float

    def slot_key(self, day: date) -> tuple[str | None, str, int, int, float, date]:
        return (self.workout_plan_id, self.exercise_id, self.sets, self.reps, self.weight, day)


class ExerciseTemplate(BaseModel):
    """One exercise inside a day of the weekly template."""

    exercise_id: str
    category_id: str | None = None
    sets: int = Field(ge=1, le=20)
    reps: int = Field(ge=1, le=100)
    weight: float = Field(ge=0)
    duration_seconds: int | None = Field(default=None, ge=0)
    weight_plates: dict[str, int] | None = None
    notes: str | None = Field(default=None, max_length=500)
    order_index: int = Field(ge=0)

    def matches(self, exercise_id: str, sets: int, reps: int, weight: float) -> bool:
        return (
            self.exercise_id == exercise_id
            and self.sets == sets
            and self.reps == reps
            and self.weight == weight
        )

    def signature(self, workout_plan_id: str) -> ExerciseSignature:
        return ExerciseSignature(workout_plan_id, self.exercise_id, self.sets, self.reps, self.weight)


class DayTemplate(BaseModel):
    """Exercises scheduled on one day of the week. Sunday=0 ... Saturday=6."""

    day_of_week: int = Field(ge=0, le=6)
    name: str | None = Field(default=None, max_length=50)
    exercise_templates: list[ExerciseTemplate] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_order_index(self) -> DayTemplate:
        indexes = [t.order_index for t in self.exercise_templates]
        if len(indexes) != len(set(indexes)):
            raise ValueError(f"order_index values must be unique within day {self.day_of_week}: {indexes}")
        return self

    def ordered(self) -> list[ExerciseTemplate]:
        return sorted(self.exercise_templates, key=lambda t: t.order_index)

    def next_order_index(self) -> int:
        """Order index for an appended entry: one past the highest, starting at 1."""
        return max([0, *(t.order_index for t in self.exercise_templates)]) + 1

    def find(self, exercise_id: str, sets: int, reps: int, weight: float) -> int | None:
        """Return the list position of the first matching entry, or None."""
        for position, template in enumerate(self.exercise_templates):
            if template.matches(exercise_id, sets, reps, weight):
                return position
        return None


class WeeklyTemplate(BaseModel):
    """Ordered collection of day templates, at most one per day of week."""

    days: list[DayTemplate] = Field(default_factory=list)

    @model_validator(mode="after")
    def _one_day_template_per_weekday(self) -> WeeklyTemplate:
        seen = [d.day_of_week for d in self.days]
        if len(seen) != len(set(seen)):
            raise ValueError(f"At most one DayTemplate per day_of_week allowed, got {seen}")
        return self

    @classmethod
    def from_json(cls, raw: list[dict] | None) -> WeeklyTemplate:
        return cls(days=[DayTemplate.model_validate(day) for day in raw or []])

    def to_json(self) -> list[dict]:
        return [day.model_dump(mode="json") for day in self.days]

    def day(self, day_of_week: int) -> DayTemplate | None:
        for day in self.days:
            if day.day_of_week == day_of_week:
                return day
        return None

    def find_or_create_day(self, day_of_week: int) -> DayTemplate:
        existing = self.day(day_of_week)
        if existing is not None:
            return existing
        created = DayTemplate(day_of_week=day_of_week, name=DAY_NAMES[day_of_week])
        self.days.append(created)
        return created

    def count_matching(self, exercise_id: str, sets: int, reps: int, weight: float) -> int:
        return sum(
            1
            for day in self.days
            for template in day.exercise_templates
            if template.matches(exercise_id, sets, reps, weight)
        )

    def is_empty(self) -> bool:
        return not any(day.exercise_templates for day in self.days)


class GenerationPolicy(BaseModel):
    """Per-plan settings and bookkeeping for automatic materialization."""

    advance_days: int = Field(default_factory=lambda: settings.generation_advance_days, ge=1, le=90)
    batch_size: int = Field(default_factory=lambda: settings.generation_batch_size, ge=1, le=14)
    auto_generation_enabled: bool = True
    last_generation_time: datetime | None = None
    furthest_generated_date: date | None = None


class PlanCreate(BaseModel):
    """Input for creating a workout plan."""

    user_id: str
    name: str = Field(max_length=100)
    description: str | None = Field(default=None, max_length=500)
    level: PlanLevel = "beginner"
    mode: PlanMode = "ongoing"
    start_date: date | None = None
    end_date: date | None = None
    is_active: bool = True
    week_starts_on: int | None = Field(default=None, ge=0, le=6)
    weekly_template: WeeklyTemplate = Field(default_factory=WeeklyTemplate)
    generation_policy: GenerationPolicy = Field(default_factory=GenerationPolicy)

    @model_validator(mode="after")
    def _dated_plan_needs_range(self) -> PlanCreate:
        if self.mode == "dated":
            if self.start_date is None or self.end_date is None:
                raise ValueError("Start date and end date are required for dated workout plans")
            if self.end_date <= self.start_date:
                raise ValueError("End date must be after start date")
        return self


class PlanSnapshot(BaseModel):
    """A workout plan as read at one template version."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    name: str
    description: str | None = None
    level: str = "beginner"
    mode: PlanMode = "ongoing"
    start_date: date | None = None
    end_date: date | None = None
    is_active: bool = True
    week_starts_on: int | None = None
    weekly_template: WeeklyTemplate
    generation_policy: GenerationPolicy
    version: int

    def effective_week_start(self, default: int) -> int:
        return default if self.week_starts_on is None else self.week_starts_on

    def clamp_range(self, start: date, end: date) -> tuple[date, date]:
        """Intersect a requested range with the plan's active window.

        Ongoing plans have no window. The result may be empty (start > end).
        """
        if self.mode != "dated":
            return start, end
        if self.start_date is not None:
            start = max(start, self.start_date)
        if self.end_date is not None:
            end = min(end, self.end_date)
        return start, end


class ScheduledInstance(BaseModel):
    """One dated occurrence of an exercise."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    exercise_id: str
    category_id: str | None = None
    workout_plan_id: str | None = None
    date: date_type
    sets: int
    reps: int
    weight: float
    weight_plates: dict[str, int] | None = None
    duration_seconds: int | None = None
    notes: str = ""
    order_index: int = 0
    completed: bool = False
    completed_at: datetime | None = None
    is_hidden: bool = False
    is_manual: bool = True
    suppressed_sets: int | None = None
    suppressed_reps: int | None = None
    suppressed_weight: float | None = None
    generated_at: datetime | None = None
    generation_batch_id: str | None = None

    @property
    def signature(self) -> ExerciseSignature:
        return ExerciseSignature(self.workout_plan_id, self.exercise_id, self.sets, self.reps, self.weight)

    @property
    def suppressed_signature(self) -> ExerciseSignature | None:
        """Slot a hidden override stands in for, None for rows that suppress nothing."""
        if not self.is_hidden or self.suppressed_sets is None:
            return None
        return ExerciseSignature(
            self.workout_plan_id,
            self.exercise_id,
            self.suppressed_sets,
            self.suppressed_reps,
            self.suppressed_weight,
        )

    @property
    def is_plan_occurrence(self) -> bool:
        return self.workout_plan_id is not None


class InstanceCreate(BaseModel):
    """Input for creating an instance, generated or ad hoc."""

    user_id: str
    exercise_id: str
    category_id: str | None = None
    workout_plan_id: str | None = None
    date: date_type
    sets: int = Field(default=3, ge=0)
    reps: int = Field(default=10, ge=0)
    weight: float = Field(default=0.0, ge=0)
    weight_plates: dict[str, int] | None = None
    duration_seconds: int | None = Field(default=None, ge=0)
    notes: str = ""
    order_index: int = Field(default=0, ge=0)
    completed: bool = False
    is_hidden: bool = False
    is_manual: bool = True
    suppressed_sets: int | None = Field(default=None, ge=0)
    suppressed_reps: int | None = Field(default=None, ge=0)
    suppressed_weight: float | None = Field(default=None, ge=0)
    generated_at: datetime | None = None
    generation_batch_id: str | None = None


class InstanceUpdate(BaseModel):
    """Partial update. Only fields explicitly set are written."""

    date: date_type | None = None
    sets: int | None = Field(default=None, ge=0)
    reps: int | None = Field(default=None, ge=0)
    weight: float | None = Field(default=None, ge=0)
    weight_plates: dict[str, int] | None = None
    duration_seconds: int | None = Field(default=None, ge=0)
    notes: str | None = None
    order_index: int | None = Field(default=None, ge=0)
    completed: bool | None = None
    completed_at: datetime | None = None
    is_hidden: bool | None = None

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


@dataclass(frozen=True)
class GenerationResult:
    """Outcome of materializing a plan over a date range.

    Attributes:
        created_count: Instances created by this call
        skipped_count: Template occurrences already materialized or suppressed
        batch_id: Tag stored on every instance this call created
        start_date: First date actually considered (after clamping)
        end_date: Last date actually considered (after clamping)
    """

    created_count: int
    skipped_count: int
    batch_id: str | None = None
    start_date: date | None = None
    end_date: date | None = None


@dataclass(frozen=True)
class GenerationStatus:
    needs_generation: bool
    next_target_date: date
    days_to_generate: int
    latest_generated_date: date | None = None


@dataclass(frozen=True)
class PlanGenerationOutcome:
    """Per-plan entry of a bulk generation run."""

    plan_id: str
    user_id: str
    success: bool
    created_count: int = 0
    message: str | None = None


@dataclass
class RescheduleResult:
    """Outcome of a reschedule call.

    Attributes:
        scope: Scope that was applied
        instance: The instance now representing the moved occurrence
        original_date: Date the occurrence was on before the move
        replaced_instance_id: Id of the row removed by a this-week detach, if any
        tombstone_id: Hidden override created at the original date, if any
        template_version: Plan template version after a whole-plan move
        cascaded_instance_ids: Future instances shifted by the cascade
        failed_instance_ids: Future instances the cascade could not shift
    """

    scope: RescheduleScope
    instance: ScheduledInstance
    original_date: date
    replaced_instance_id: str | None = None
    tombstone_id: str | None = None
    template_version: int | None = None
    cascaded_instance_ids: list[str] = field(default_factory=list)
    failed_instance_ids: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.instance.date != self.original_date

    @property
    def partial(self) -> bool:
        return bool(self.failed_instance_ids)

    def raise_for_partial_failure(self) -> None:
        """Raise PartialCascadeFailure if any cascaded instance failed to move."""
        if self.partial:
            raise PartialCascadeFailure(self)
