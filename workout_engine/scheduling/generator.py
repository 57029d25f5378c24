"""Instance generation from weekly templates.

Expands a plan's weekly template across a date range into dated instances.
Generation is idempotent: a template occurrence that is already
materialized, or suppressed by a hidden override, is skipped. The
check-then-create here only avoids needless writes; the unique index on the
instance signature is what actually prevents duplicates when two calls race.
"""

import uuid
from datetime import date, datetime, timedelta, timezone

from loguru import logger

from workout_engine.scheduling.catalog import ExerciseCatalog
from workout_engine.scheduling.clock import Clock, SystemClock
from workout_engine.scheduling.dates import day_of_week, enumerate_dates, iter_batches, to_calendar_date
from workout_engine.scheduling.errors import DuplicateInstanceError, NotFoundError, SchedulingError, ValidationError
from workout_engine.scheduling.repository import ScheduleStore
from workout_engine.scheduling.types import (
    ExerciseTemplate,
    GenerationResult,
    GenerationStatus,
    InstanceCreate,
    PlanGenerationOutcome,
    PlanSnapshot,
    ScheduledInstance,
)


def _slot_sets(existing: list[ScheduledInstance]) -> tuple[set[tuple], set[tuple]]:
    """Split existing rows into materialized and suppressed slot keys."""
    active: set[tuple] = set()
    suppressed: set[tuple] = set()
    for instance in existing:
        if not instance.is_hidden:
            active.add(instance.signature.slot_key(instance.date))
            continue
        signature = instance.suppressed_signature
        if signature is not None:
            suppressed.add(signature.slot_key(instance.date))
    return active, suppressed


class InstanceGenerator:
    """Materializes template occurrences for a plan."""

    def __init__(
        self,
        store: ScheduleStore,
        catalog: ExerciseCatalog | None = None,
        clock: Clock | None = None,
    ):
        self._store = store
        self._catalog = catalog
        self._clock = clock or SystemClock()

    def ensure_generated(self, plan: PlanSnapshot, from_date: date, to_date: date) -> GenerationResult:
        """Make sure every template occurrence in [from_date, to_date] exists.

        Safe to call repeatedly and concurrently for overlapping ranges.
        Dated plans are clamped to their start/end window. A plan without any
        template entries succeeds with zero creations.

        Args:
            plan: Plan snapshot whose template is expanded
            from_date: First date to materialize (inclusive)
            to_date: Last date to materialize (inclusive)

        Returns:
            GenerationResult with created and skipped counts

        Raises:
            ValidationError: If from_date is after to_date
            RepositoryError: If the repository is unreachable (nothing is retried)
        """
        from_date = to_calendar_date(from_date)
        to_date = to_calendar_date(to_date)
        if from_date > to_date:
            raise ValidationError(f"from_date ({from_date}) must be <= to_date ({to_date})", code="INVALID_RANGE")

        start, end = plan.clamp_range(from_date, to_date)
        if start > end:
            logger.info("Requested range outside dated plan window, nothing to generate", plan_id=plan.id)
            return GenerationResult(created_count=0, skipped_count=0)

        if plan.weekly_template.is_empty():
            logger.info("Plan has no template entries, nothing to generate", plan_id=plan.id)
            return GenerationResult(created_count=0, skipped_count=0, start_date=start, end_date=end)

        batch_id = str(uuid.uuid4())
        generated_at = datetime.now(timezone.utc)
        batch_size = plan.generation_policy.batch_size

        logger.info(
            "Instance generation started",
            plan_id=plan.id,
            start_date=start.isoformat(),
            end_date=end.isoformat(),
            batch_id=batch_id,
        )

        created = 0
        skipped = 0
        for batch_start, batch_end in iter_batches(start, end, batch_size):
            batch_created, batch_skipped = self._generate_batch(plan, batch_start, batch_end, batch_id, generated_at)
            created += batch_created
            skipped += batch_skipped

        self._record_generation(plan, end, generated_at)

        logger.info(
            "Instance generation complete",
            plan_id=plan.id,
            created=created,
            skipped=skipped,
            batch_id=batch_id,
        )
        return GenerationResult(
            created_count=created,
            skipped_count=skipped,
            batch_id=batch_id,
            start_date=start,
            end_date=end,
        )

    def _generate_batch(
        self,
        plan: PlanSnapshot,
        batch_start: date,
        batch_end: date,
        batch_id: str,
        generated_at: datetime,
    ) -> tuple[int, int]:
        existing = self._store.instances.find_by_date_range(
            batch_start,
            batch_end,
            workout_plan_id=plan.id,
            include_hidden=True,
        )
        active, suppressed = _slot_sets(existing)

        created = 0
        skipped = 0
        for day in enumerate_dates(batch_start, batch_end):
            day_template = plan.weekly_template.day(day_of_week(day))
            if day_template is None:
                continue
            for template in day_template.ordered():
                key = template.signature(plan.id).slot_key(day)
                if key in active or key in suppressed:
                    skipped += 1
                    continue
                try:
                    self._store.instances.create(self._occurrence(plan, template, day, batch_id, generated_at))
                except DuplicateInstanceError:
                    # Another generation call created it first
                    logger.debug("Occurrence created concurrently, skipping", plan_id=plan.id, date=day.isoformat())
                    skipped += 1
                else:
                    created += 1
                active.add(key)
        return created, skipped

    def _occurrence(
        self,
        plan: PlanSnapshot,
        template: ExerciseTemplate,
        day: date,
        batch_id: str,
        generated_at: datetime,
    ) -> InstanceCreate:
        return InstanceCreate(
            user_id=plan.user_id,
            exercise_id=template.exercise_id,
            category_id=self._category_for(template),
            workout_plan_id=plan.id,
            date=day,
            sets=template.sets,
            reps=template.reps,
            weight=template.weight,
            weight_plates=template.weight_plates,
            duration_seconds=template.duration_seconds,
            notes=template.notes or "",
            order_index=template.order_index,
            completed=False,
            is_hidden=False,
            is_manual=False,
            generated_at=generated_at,
            generation_batch_id=batch_id,
        )

    def _category_for(self, template: ExerciseTemplate) -> str | None:
        if template.category_id is not None or self._catalog is None:
            return template.category_id
        exercise = self._catalog.get_exercise(template.exercise_id)
        return exercise.category_id if exercise is not None else None

    def _record_generation(self, plan: PlanSnapshot, end: date, generated_at: datetime) -> None:
        policy = plan.generation_policy.model_copy()
        if policy.furthest_generated_date is None or policy.furthest_generated_date < end:
            policy.furthest_generated_date = end
        policy.last_generation_time = generated_at
        self._store.plans.update_generation_policy(plan.id, policy)

    def check_generation_status(self, plan: PlanSnapshot, min_days_in_advance: int | None = None) -> GenerationStatus:
        """Report whether the plan is materialized far enough ahead of today."""
        today = self._clock.today()
        days_ahead = min_days_in_advance or plan.generation_policy.advance_days
        target = today + timedelta(days=days_ahead)
        furthest = plan.generation_policy.furthest_generated_date

        needs_generation = furthest is None or furthest < target
        start = self._next_start(furthest, today)
        days_to_generate = (target - start).days + 1 if needs_generation else 0

        return GenerationStatus(
            needs_generation=needs_generation,
            next_target_date=target,
            days_to_generate=max(days_to_generate, 0),
            latest_generated_date=furthest,
        )

    def ensure_generated_ahead(self, plan: PlanSnapshot, min_days_in_advance: int | None = None) -> GenerationResult:
        """Extend the materialized window so it reaches today + advance days."""
        status = self.check_generation_status(plan, min_days_in_advance)
        if not status.needs_generation:
            logger.debug("Plan already generated beyond target date", plan_id=plan.id)
            return GenerationResult(created_count=0, skipped_count=0)

        start = self._next_start(status.latest_generated_date, self._clock.today())
        return self.ensure_generated(plan, start, status.next_target_date)

    def regenerate_horizon(self, plan_id: str) -> GenerationResult:
        """Re-expand the current template from today to the advance horizon.

        Used after the template changes: the already-materialized window is
        covered again so the new pattern appears wherever it is missing.
        """
        plan = self._store.plans.get_by_id(plan_id)
        if plan is None:
            raise NotFoundError(f"Workout plan {plan_id} not found", code="PLAN_NOT_FOUND")
        today = self._clock.today()
        return self.ensure_generated(plan, today, today + timedelta(days=plan.generation_policy.advance_days))

    def generate_for_active_plans(self) -> list[PlanGenerationOutcome]:
        """Run ensure-ahead for every active plan with auto generation enabled.

        One plan's failure is recorded and does not stop the others.
        """
        plans = self._store.plans.list_active()
        outcomes: list[PlanGenerationOutcome] = []
        for plan in plans:
            if not plan.generation_policy.auto_generation_enabled:
                continue
            try:
                result = self.ensure_generated_ahead(plan)
            except SchedulingError as e:
                logger.bind(plan_id=plan.id, error=str(e)).error("Generation failed for plan")
                outcomes.append(
                    PlanGenerationOutcome(plan_id=plan.id, user_id=plan.user_id, success=False, message=str(e))
                )
                continue
            outcomes.append(
                PlanGenerationOutcome(
                    plan_id=plan.id,
                    user_id=plan.user_id,
                    success=True,
                    created_count=result.created_count,
                )
            )

        logger.info(
            "Bulk generation finished",
            plans_processed=len(outcomes),
            instances_created=sum(o.created_count for o in outcomes),
        )
        return outcomes

    @staticmethod
    def _next_start(furthest: date | None, today: date) -> date:
        if furthest is None:
            return today
        return max(furthest + timedelta(days=1), today)
