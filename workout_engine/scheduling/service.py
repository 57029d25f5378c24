"""Scheduling engine facade.

Wires the store, catalog, clock, generator, reschedule coordinator and
completion tracker together and exposes id-keyed operations for the request
layer.
"""

from datetime import date

from loguru import logger

from workout_engine.config.settings import settings
from workout_engine.scheduling.catalog import ExerciseCatalog
from workout_engine.scheduling.clock import Clock, SystemClock
from workout_engine.scheduling.completion import CompletionTracker
from workout_engine.scheduling.errors import NotFoundError, ValidationError
from workout_engine.scheduling.generator import InstanceGenerator
from workout_engine.scheduling.regeneration import BackgroundRegenerator
from workout_engine.scheduling.repository import ScheduleStore
from workout_engine.scheduling.reschedule import RegenerationTrigger, RescheduleCoordinator
from workout_engine.scheduling.types import (
    GenerationResult,
    GenerationStatus,
    InstanceCreate,
    InstanceUpdate,
    PlanCreate,
    PlanGenerationOutcome,
    PlanSnapshot,
    RescheduleResult,
    RescheduleScope,
    ScheduledInstance,
)


class ScheduleEngine:
    """Entry point for plan materialization, rescheduling and completion."""

    def __init__(
        self,
        store: ScheduleStore | None = None,
        catalog: ExerciseCatalog | None = None,
        clock: Clock | None = None,
        regeneration_trigger: RegenerationTrigger | None = None,
    ):
        self.store = store or ScheduleStore()
        self.clock = clock or SystemClock()
        self.generator = InstanceGenerator(self.store, catalog=catalog, clock=self.clock)
        if regeneration_trigger is None and settings.regeneration_enabled:
            regeneration_trigger = BackgroundRegenerator(self.generator)
        self.coordinator = RescheduleCoordinator(
            self.store,
            clock=self.clock,
            regeneration_trigger=regeneration_trigger,
        )
        self.completion = CompletionTracker(self.store)

    # Plans

    def create_plan(self, data: PlanCreate) -> PlanSnapshot:
        plan = self.store.plans.create(data)
        logger.info("Workout plan created", plan_id=plan.id, user_id=plan.user_id, mode=plan.mode)
        return plan

    def get_plan(self, plan_id: str) -> PlanSnapshot:
        plan = self.store.plans.get_by_id(plan_id)
        if plan is None:
            raise NotFoundError(f"Workout plan {plan_id} not found", code="PLAN_NOT_FOUND")
        return plan

    # Generation

    def ensure_generated(self, plan_id: str, from_date: date, to_date: date) -> GenerationResult:
        return self.generator.ensure_generated(self.get_plan(plan_id), from_date, to_date)

    def check_generation_status(self, plan_id: str, min_days_in_advance: int | None = None) -> GenerationStatus:
        return self.generator.check_generation_status(self.get_plan(plan_id), min_days_in_advance)

    def ensure_generated_ahead(self, plan_id: str, min_days_in_advance: int | None = None) -> GenerationResult:
        return self.generator.ensure_generated_ahead(self.get_plan(plan_id), min_days_in_advance)

    def generate_for_active_plans(self) -> list[PlanGenerationOutcome]:
        return self.generator.generate_for_active_plans()

    # Rescheduling and completion

    def reschedule(self, instance_id: str, new_date: date, scope: RescheduleScope) -> RescheduleResult:
        return self.coordinator.reschedule(instance_id, new_date, scope)

    def mark_completed(self, instance_id: str) -> ScheduledInstance:
        return self.completion.mark_completed(instance_id)

    def mark_incomplete(self, instance_id: str) -> ScheduledInstance:
        return self.completion.mark_incomplete(instance_id)

    def set_completed_many(self, instance_ids: list[str], completed: bool) -> list[ScheduledInstance]:
        return self.completion.set_completed_many(instance_ids, completed)

    # Instance CRUD

    def create_instance(self, data: InstanceCreate) -> ScheduledInstance:
        """Create an ad hoc instance entered by the user."""
        if data.is_hidden:
            raise ValidationError("Hidden override entries are managed by rescheduling", code="HIDDEN_INSTANCE")
        if data.workout_plan_id is not None:
            self.get_plan(data.workout_plan_id)
        instance = self.store.instances.create(data.model_copy(update={"is_manual": True}))
        logger.info("Instance created", instance_id=instance.id, date=instance.date.isoformat())
        return instance

    def get_instance(self, instance_id: str) -> ScheduledInstance:
        instance = self.store.instances.get(instance_id)
        if instance is None:
            raise NotFoundError(f"Scheduled instance {instance_id} not found", code="INSTANCE_NOT_FOUND")
        return instance

    def list_instances(
        self,
        user_id: str,
        start: date,
        end: date,
        *,
        workout_plan_id: str | None = None,
        include_hidden: bool = False,
    ) -> list[ScheduledInstance]:
        if start > end:
            raise ValidationError(f"start ({start}) must be <= end ({end})", code="INVALID_RANGE")
        return self.store.instances.find_by_date_range(
            start,
            end,
            user_id=user_id,
            workout_plan_id=workout_plan_id,
            include_hidden=include_hidden,
        )

    def update_instance(self, instance_id: str, patch: InstanceUpdate) -> ScheduledInstance:
        """Patch instance fields. Moving dates goes through reschedule instead."""
        changes = patch.changes()
        if "date" in changes:
            raise ValidationError("Use reschedule to change an instance's date", code="USE_RESCHEDULE")
        if "is_hidden" in changes:
            raise ValidationError("Hidden override entries are managed by rescheduling", code="HIDDEN_INSTANCE")
        if "completed" in changes or "completed_at" in changes:
            raise ValidationError("Use mark_completed / mark_incomplete to change completion", code="USE_COMPLETION")
        self.get_instance(instance_id)
        return self.store.instances.update(instance_id, patch)

    def delete_instance(self, instance_id: str) -> None:
        if not self.store.instances.delete(instance_id):
            raise NotFoundError(f"Scheduled instance {instance_id} not found", code="INSTANCE_NOT_FOUND")
        logger.info("Instance deleted", instance_id=instance_id)
