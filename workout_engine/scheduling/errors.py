"""Canonical scheduling error types.

Every failure the engine surfaces is a SchedulingError subclass with a stable
code, so the request layer can map it without string matching.

Standard error codes:
- TARGET_OUTSIDE_WEEK: this-week move to a date outside the instance's week
- TARGET_SLOT_OCCUPIED: move onto a date or weekday that already holds the same slot
- INSTANCE_COMPLETED: attempt to move a completed instance
- NOT_A_PLAN_OCCURRENCE: whole-plan move of an ad hoc instance
- HIDDEN_INSTANCE: attempt to act on a hidden override entry
- INVALID_RANGE: start date after end date
- USE_RESCHEDULE / USE_COMPLETION: field patch that must go through reschedule or completion
- INSTANCE_NOT_FOUND / PLAN_NOT_FOUND: missing rows
- TEMPLATE_NOT_FOUND / EXERCISE_TEMPLATE_NOT_FOUND: template out of sync with instances
- STALE_TEMPLATE: concurrent template modification
- DUPLICATE_INSTANCE: uniqueness constraint rejected a write
- REPOSITORY_FAILURE: storage or transport failure
- PARTIAL_CASCADE: some future instances failed to move
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from workout_engine.scheduling.types import RescheduleResult


class SchedulingError(RuntimeError):
    """Base class for all engine errors.

    Attributes:
        code: Machine-readable error code
        details: Human-readable explanation
    """

    code = "SCHEDULING_ERROR"

    def __init__(self, details: str, *, code: str | None = None):
        if code is not None:
            self.code = code
        self.details = details
        super().__init__(f"{self.code}: {details}")


class ValidationError(SchedulingError):
    """Request rejected before any mutation. Fully caller-recoverable."""

    code = "VALIDATION_FAILED"


class NotFoundError(SchedulingError):
    """Expected instance, plan or template entry is missing."""

    code = "NOT_FOUND"


class ConflictError(SchedulingError):
    """Concurrent modification detected. Re-fetch and retry the whole operation."""

    code = "CONFLICT"


class StaleTemplateError(ConflictError):
    """Template version no longer matches the version that was read."""

    code = "STALE_TEMPLATE"


class DuplicateInstanceError(ConflictError):
    """A non-hidden instance with the same signature already exists on that date."""

    code = "DUPLICATE_INSTANCE"


class RepositoryError(SchedulingError):
    """Storage failure, propagated as-is."""

    code = "REPOSITORY_FAILURE"


class PartialCascadeFailure(SchedulingError):
    """Whole-plan reschedule succeeded but some future instances did not move.

    The template and the primary instance are already updated; moved
    instances are not rolled back.

    Attributes:
        result: The reschedule result, including the instances that did move
        failed_instance_ids: Ids of instances left on their old date
    """

    code = "PARTIAL_CASCADE"

    def __init__(self, result: RescheduleResult):
        self.result = result
        self.failed_instance_ids = list(result.failed_instance_ids)
        super().__init__(f"{len(self.failed_instance_ids)} future instance(s) failed to move")
