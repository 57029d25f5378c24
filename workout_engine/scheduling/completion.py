"""Completion tracking for scheduled instances.

Completed instances are frozen for the generator and the reschedule
coordinator; this is the only place that flips the flag.
"""

from collections.abc import Iterable
from datetime import datetime, timezone

from loguru import logger

from workout_engine.scheduling.errors import NotFoundError, ValidationError
from workout_engine.scheduling.repository import InstanceRepository, ScheduleStore
from workout_engine.scheduling.types import InstanceUpdate, ScheduledInstance


class CompletionTracker:
    def __init__(self, store: ScheduleStore):
        self._store = store

    def mark_completed(self, instance_id: str) -> ScheduledInstance:
        return self._set_completed(self._store.instances, instance_id, completed=True)

    def mark_incomplete(self, instance_id: str) -> ScheduledInstance:
        return self._set_completed(self._store.instances, instance_id, completed=False)

    def set_completed_many(self, instance_ids: Iterable[str], completed: bool) -> list[ScheduledInstance]:
        """Flip the completed flag on several instances in one transaction.

        Either every instance is updated or none is.

        Raises:
            NotFoundError: One of the ids does not exist
            ValidationError: One of the ids is a hidden override entry
        """
        ids = list(dict.fromkeys(instance_ids))
        with self._store.atomic() as tx:
            updated = [self._set_completed(tx.instances, instance_id, completed=completed) for instance_id in ids]
        logger.info("Batch completion update", count=len(updated), completed=completed)
        return updated

    @staticmethod
    def _set_completed(instances: InstanceRepository, instance_id: str, completed: bool) -> ScheduledInstance:
        instance = instances.get(instance_id)
        if instance is None:
            raise NotFoundError(f"Scheduled instance {instance_id} not found", code="INSTANCE_NOT_FOUND")
        if instance.is_hidden:
            raise ValidationError(f"Instance {instance_id} is a hidden override entry", code="HIDDEN_INSTANCE")

        completed_at = datetime.now(timezone.utc) if completed else None
        updated = instances.update(instance_id, InstanceUpdate(completed=completed, completed_at=completed_at))
        logger.info("Instance completion updated", instance_id=instance_id, completed=completed)
        return updated
