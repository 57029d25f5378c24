"""Reschedule coordinator.

Moves an instance to a new date under one of two scopes:

THIS_WEEK: detach one occurrence. The weekly template is untouched. For a
template occurrence the original row is replaced by a copy at the new date
plus a hidden tombstone at the old date, so regeneration does not bring the
occurrence back. Ad hoc instances just get a new date.

WHOLE_PLAN: move the recurring slot. The matching exercise template moves to
the target weekday (one version-checked template write, committed together
with the primary instance's new date), then every future uncompleted
occurrence of the same signature shifts by the same number of days.

Hard-stop vs. soft failure:
- Anything before and including the template + primary instance write
  raises and leaves storage unchanged.
- The cascade is best effort per instance. Failures are collected in the
  result; instances already moved are not rolled back.
- The follow-up regeneration is fire-and-forget; its failure is only logged.
"""

from collections.abc import Callable

from datetime import date

from loguru import logger

from workout_engine.config.settings import settings
from workout_engine.scheduling.clock import Clock, SystemClock
from workout_engine.scheduling.dates import day_of_week, day_shift, same_week, shift_by_days, to_calendar_date
from workout_engine.scheduling.errors import (
    ConflictError,
    NotFoundError,
    SchedulingError,
    StaleTemplateError,
    ValidationError,
)
from workout_engine.scheduling.repository import ScheduleStore
from workout_engine.scheduling.types import (
    HIDDEN_NOTE,
    InstanceCreate,
    InstanceUpdate,
    PlanSnapshot,
    RescheduleResult,
    RescheduleScope,
    ScheduledInstance,
)

RegenerationTrigger = Callable[[str], None]


class RescheduleCoordinator:
    """Reconciles template, instances and one-off moves for a reschedule."""

    def __init__(
        self,
        store: ScheduleStore,
        clock: Clock | None = None,
        regeneration_trigger: RegenerationTrigger | None = None,
        default_week_starts_on: int | None = None,
        max_template_attempts: int | None = None,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._regeneration_trigger = regeneration_trigger
        self._default_week_starts_on = (
            settings.week_starts_on if default_week_starts_on is None else default_week_starts_on
        )
        self._max_template_attempts = max_template_attempts or settings.template_update_max_attempts

    def reschedule(self, instance_id: str, new_date: date, scope: RescheduleScope) -> RescheduleResult:
        """Move an instance to new_date.

        Args:
            instance_id: Instance to move
            new_date: Target calendar date
            scope: THIS_WEEK or WHOLE_PLAN

        Returns:
            RescheduleResult. For WHOLE_PLAN, failed_instance_ids lists future
            instances the cascade could not move.

        Raises:
            ValidationError: Target outside the current week (THIS_WEEK), ad hoc
                instance (WHOLE_PLAN), completed or hidden instance, or the
                target date or weekday already holds the same slot
            NotFoundError: Instance, plan, day template or exercise template missing
            ConflictError: Template kept changing underneath after all retries,
                or a concurrent writer took the target slot
            RepositoryError: Storage failure
        """
        scope = RescheduleScope(scope)
        new_date = to_calendar_date(new_date)
        instance = self._load_instance(instance_id)
        self._check_movable(instance)

        logger.info(
            "Reschedule started",
            instance_id=instance.id,
            plan_id=instance.workout_plan_id,
            from_date=instance.date.isoformat(),
            to_date=new_date.isoformat(),
            scope=scope.value,
        )

        if new_date == instance.date:
            logger.info("Reschedule target equals current date, nothing to do", instance_id=instance.id)
            return RescheduleResult(scope=scope, instance=instance, original_date=instance.date)

        if scope is RescheduleScope.THIS_WEEK:
            return self._reschedule_this_week(instance, new_date)
        return self._reschedule_whole_plan(instance, new_date)

    def _load_instance(self, instance_id: str) -> ScheduledInstance:
        instance = self._store.instances.get(instance_id)
        if instance is None:
            raise NotFoundError(f"Scheduled instance {instance_id} not found", code="INSTANCE_NOT_FOUND")
        return instance

    def _load_plan(self, plan_id: str) -> PlanSnapshot:
        plan = self._store.plans.get_by_id(plan_id)
        if plan is None:
            raise NotFoundError(f"Workout plan {plan_id} not found", code="PLAN_NOT_FOUND")
        return plan

    @staticmethod
    def _check_movable(instance: ScheduledInstance) -> None:
        if instance.is_hidden:
            raise ValidationError(f"Instance {instance.id} is a hidden override entry", code="HIDDEN_INSTANCE")
        if instance.completed:
            raise ValidationError(f"Instance {instance.id} is completed and cannot be moved", code="INSTANCE_COMPLETED")

    # ------------------------------------------------------------------
    # This week
    # ------------------------------------------------------------------

    def _reschedule_this_week(self, instance: ScheduledInstance, new_date: date) -> RescheduleResult:
        week_starts_on = self._default_week_starts_on
        if instance.is_plan_occurrence:
            week_starts_on = self._load_plan(instance.workout_plan_id).effective_week_start(week_starts_on)

        if not same_week(instance.date, new_date, week_starts_on):
            raise ValidationError(
                f"{new_date.isoformat()} is not in the same week as {instance.date.isoformat()}",
                code="TARGET_OUTSIDE_WEEK",
            )

        if not instance.is_plan_occurrence:
            moved = self._store.instances.update(instance.id, InstanceUpdate(date=new_date))
            logger.info("Ad hoc instance moved", instance_id=moved.id, to_date=new_date.isoformat())
            return RescheduleResult(scope=RescheduleScope.THIS_WEEK, instance=moved, original_date=instance.date)

        self._check_target_free(instance, new_date)
        with self._store.atomic() as tx:
            tx.instances.delete(instance.id)
            tombstone = tx.instances.create(self._tombstone(instance))
            moved = tx.instances.create(self._detached_copy(instance, new_date))

        logger.info(
            "Template occurrence detached for this week",
            replaced_instance_id=instance.id,
            instance_id=moved.id,
            tombstone_id=tombstone.id,
        )
        return RescheduleResult(
            scope=RescheduleScope.THIS_WEEK,
            instance=moved,
            original_date=instance.date,
            replaced_instance_id=instance.id,
            tombstone_id=tombstone.id,
        )

    def _check_target_free(self, instance: ScheduledInstance, new_date: date) -> None:
        """Reject a move onto a date that already holds the same slot."""
        occupied = self._store.instances.find_by_signature(instance.signature, new_date, new_date)
        if occupied:
            raise ValidationError(
                f"{new_date.isoformat()} already has {instance.exercise_id} "
                f"({instance.sets}x{instance.reps} @ {instance.weight}) from this plan as instance {occupied[0].id}",
                code="TARGET_SLOT_OCCUPIED",
            )

    @staticmethod
    def _tombstone(instance: ScheduledInstance) -> InstanceCreate:
        return InstanceCreate(
            user_id=instance.user_id,
            exercise_id=instance.exercise_id,
            category_id=instance.category_id,
            workout_plan_id=instance.workout_plan_id,
            date=instance.date,
            sets=0,
            reps=0,
            weight=0.0,
            notes=HIDDEN_NOTE,
            order_index=instance.order_index,
            completed=False,
            is_hidden=True,
            is_manual=False,
            suppressed_sets=instance.sets,
            suppressed_reps=instance.reps,
            suppressed_weight=instance.weight,
        )

    @staticmethod
    def _detached_copy(instance: ScheduledInstance, new_date: date) -> InstanceCreate:
        return InstanceCreate(
            user_id=instance.user_id,
            exercise_id=instance.exercise_id,
            category_id=instance.category_id,
            workout_plan_id=instance.workout_plan_id,
            date=new_date,
            sets=instance.sets,
            reps=instance.reps,
            weight=instance.weight,
            weight_plates=instance.weight_plates,
            duration_seconds=instance.duration_seconds,
            notes=instance.notes,
            order_index=instance.order_index,
            completed=False,
            is_hidden=False,
            is_manual=False,
        )

    # ------------------------------------------------------------------
    # Whole plan
    # ------------------------------------------------------------------

    def _reschedule_whole_plan(self, instance: ScheduledInstance, new_date: date) -> RescheduleResult:
        if not instance.is_plan_occurrence:
            raise ValidationError(
                f"Instance {instance.id} is not part of a workout plan",
                code="NOT_A_PLAN_OCCURRENCE",
            )

        for attempt in range(1, self._max_template_attempts + 1):
            try:
                plan, moved = self._move_template_slot(instance, new_date)
                break
            except StaleTemplateError as e:
                logger.warning(
                    "Template changed concurrently, retrying",
                    plan_id=instance.workout_plan_id,
                    attempt=attempt,
                    max_attempts=self._max_template_attempts,
                )
                if attempt == self._max_template_attempts:
                    raise ConflictError(
                        f"Template of plan {instance.workout_plan_id} kept changing; re-fetch and retry",
                        code="STALE_TEMPLATE",
                    ) from e
                instance = self._load_instance(instance.id)
                self._check_movable(instance)

        source_dow = day_of_week(instance.date)
        target_dow = day_of_week(new_date)
        result = RescheduleResult(
            scope=RescheduleScope.WHOLE_PLAN,
            instance=moved,
            original_date=instance.date,
            template_version=plan.version,
        )

        shift = day_shift(source_dow, target_dow)
        if shift:
            self._cascade(instance, shift, result)

        if result.partial:
            logger.warning(
                "Whole-plan reschedule finished with cascade failures",
                plan_id=plan.id,
                failed=len(result.failed_instance_ids),
                moved=len(result.cascaded_instance_ids),
            )
        else:
            logger.info(
                "Whole-plan reschedule complete",
                plan_id=plan.id,
                cascaded=len(result.cascaded_instance_ids),
                template_version=plan.version,
            )

        self._trigger_regeneration(plan.id)
        return result

    def _move_template_slot(self, instance: ScheduledInstance, new_date: date) -> tuple[PlanSnapshot, ScheduledInstance]:
        """Move the exercise template and the primary instance in one transaction.

        Raises:
            ValidationError: Target date or target weekday already holds the same slot
            NotFoundError: No day template for the source weekday, or no matching entry in it
            StaleTemplateError: Plan version changed since it was read
        """
        self._check_target_free(instance, new_date)
        plan = self._load_plan(instance.workout_plan_id)
        template = plan.weekly_template.model_copy(deep=True)

        source_dow = day_of_week(instance.date)
        source_day = template.day(source_dow)
        if source_day is None:
            raise NotFoundError(
                f"Plan {plan.id} has no day template for day {source_dow}",
                code="TEMPLATE_NOT_FOUND",
            )

        position = source_day.find(instance.exercise_id, instance.sets, instance.reps, instance.weight)
        if position is None:
            raise NotFoundError(
                f"Exercise template {instance.exercise_id} "
                f"({instance.sets}x{instance.reps} @ {instance.weight}) not found on day {source_dow}",
                code="EXERCISE_TEMPLATE_NOT_FOUND",
            )

        exercise_template = source_day.exercise_templates.pop(position)
        target_day = template.find_or_create_day(day_of_week(new_date))
        if target_day.find(instance.exercise_id, instance.sets, instance.reps, instance.weight) is not None:
            raise ValidationError(
                f"Day {target_day.day_of_week} of plan {plan.id} already has {instance.exercise_id} "
                f"({instance.sets}x{instance.reps} @ {instance.weight})",
                code="TARGET_SLOT_OCCUPIED",
            )
        exercise_template.order_index = target_day.next_order_index()
        target_day.exercise_templates.append(exercise_template)

        with self._store.atomic() as tx:
            updated_plan = tx.plans.update_template(plan.id, template, plan.version)
            moved = tx.instances.update(instance.id, InstanceUpdate(date=new_date))

        logger.info(
            "Exercise template moved",
            plan_id=plan.id,
            exercise_id=instance.exercise_id,
            source_day=source_dow,
            target_day=target_day.day_of_week,
            template_version=updated_plan.version,
        )
        return updated_plan, moved

    def _cascade(self, instance: ScheduledInstance, shift: int, result: RescheduleResult) -> None:
        """Shift future uncompleted occurrences of the moved slot by ``shift`` days."""
        lower_bound = max(instance.date, self._clock.today())
        candidates = self._store.instances.find_by_signature(instance.signature, lower_bound, completed=False)

        for candidate in candidates:
            if candidate.id == instance.id:
                continue
            target = shift_by_days(candidate.date, shift)
            try:
                self._store.instances.update(candidate.id, InstanceUpdate(date=target))
            except SchedulingError as e:
                logger.bind(instance_id=candidate.id, error=str(e)).warning("Failed to shift future instance")
                result.failed_instance_ids.append(candidate.id)
                continue
            result.cascaded_instance_ids.append(candidate.id)

    def _trigger_regeneration(self, plan_id: str) -> None:
        if self._regeneration_trigger is None:
            return
        try:
            self._regeneration_trigger(plan_id)
        except Exception as e:
            logger.bind(plan_id=plan_id, error=str(e)).warning("Failed to trigger background regeneration")
