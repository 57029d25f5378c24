"""Schedule API endpoints.

Thin request layer over ScheduleEngine. Engine errors map to HTTP status
codes here and nowhere else: validation 400, not found 404, conflict 409,
storage failure 500. A whole-plan reschedule whose cascade partly failed is
still a 200, with a ``warning`` object naming the instances left behind.
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import date
from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from loguru import logger
from pydantic import BaseModel, Field

from workout_engine.scheduling.errors import (
    ConflictError,
    NotFoundError,
    RepositoryError,
    SchedulingError,
    ValidationError,
)
from workout_engine.scheduling.service import ScheduleEngine
from workout_engine.scheduling.types import (
    InstanceCreate,
    InstanceUpdate,
    PlanCreate,
    PlanSnapshot,
    RescheduleResult,
    RescheduleScope,
    ScheduledInstance,
)

router = APIRouter(prefix="/schedule", tags=["schedule"])

_engine: ScheduleEngine | None = None


def get_schedule_engine() -> ScheduleEngine:
    """Engine dependency, created on first use."""
    global _engine
    if _engine is None:
        _engine = ScheduleEngine()
    return _engine


class GenerateRequest(BaseModel):
    from_date: date
    to_date: date


class RescheduleRequest(BaseModel):
    new_date: date
    scope: RescheduleScope


class CompletionBatchRequest(BaseModel):
    instance_ids: list[str] = Field(min_length=1)
    completed: bool


class CascadeWarning(BaseModel):
    code: str = "PARTIAL_CASCADE"
    message: str
    failed_instance_ids: list[str]


class RescheduleResponse(BaseModel):
    scope: RescheduleScope
    instance: ScheduledInstance
    original_date: date
    replaced_instance_id: str | None = None
    tombstone_id: str | None = None
    template_version: int | None = None
    cascaded_instance_ids: list[str] = Field(default_factory=list)
    warning: CascadeWarning | None = None

    @classmethod
    def from_result(cls, result: RescheduleResult) -> RescheduleResponse:
        warning = None
        if result.partial:
            warning = CascadeWarning(
                message=f"{len(result.failed_instance_ids)} future instance(s) could not be moved",
                failed_instance_ids=list(result.failed_instance_ids),
            )
        return cls(
            scope=result.scope,
            instance=result.instance,
            original_date=result.original_date,
            replaced_instance_id=result.replaced_instance_id,
            tombstone_id=result.tombstone_id,
            template_version=result.template_version,
            cascaded_instance_ids=list(result.cascaded_instance_ids),
            warning=warning,
        )


def _raise_http(error: SchedulingError) -> NoReturn:
    if isinstance(error, ValidationError):
        status_code = status.HTTP_400_BAD_REQUEST
    elif isinstance(error, NotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, ConflictError):
        status_code = status.HTTP_409_CONFLICT
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    if isinstance(error, RepositoryError) or status_code >= 500:
        logger.bind(code=error.code).error(f"Schedule request failed: {error.details}")
    else:
        logger.bind(code=error.code).info(f"Schedule request rejected: {error.details}")

    raise HTTPException(status_code=status_code, detail={"code": error.code, "message": error.details}) from error


@router.post("/plans", response_model=PlanSnapshot, status_code=status.HTTP_201_CREATED)
def create_plan(request: PlanCreate, engine: ScheduleEngine = Depends(get_schedule_engine)):
    try:
        return engine.create_plan(request)
    except SchedulingError as e:
        _raise_http(e)


@router.get("/plans/{plan_id}", response_model=PlanSnapshot)
def get_plan(plan_id: str, engine: ScheduleEngine = Depends(get_schedule_engine)):
    try:
        return engine.get_plan(plan_id)
    except SchedulingError as e:
        _raise_http(e)


@router.post("/plans/{plan_id}/generate")
def generate_plan_instances(
    plan_id: str,
    request: GenerateRequest,
    engine: ScheduleEngine = Depends(get_schedule_engine),
):
    """Materialize the plan's template occurrences over a date range.

    Safe to repeat: occurrences that already exist are skipped.
    """
    try:
        result = engine.ensure_generated(plan_id, request.from_date, request.to_date)
    except SchedulingError as e:
        _raise_http(e)
    return asdict(result)


@router.get("/plans/{plan_id}/generation-status")
def get_generation_status(
    plan_id: str,
    min_days: int | None = Query(default=None, ge=1, le=90),
    engine: ScheduleEngine = Depends(get_schedule_engine),
):
    try:
        return asdict(engine.check_generation_status(plan_id, min_days))
    except SchedulingError as e:
        _raise_http(e)


@router.post("/instances", response_model=ScheduledInstance, status_code=status.HTTP_201_CREATED)
def create_instance(request: InstanceCreate, engine: ScheduleEngine = Depends(get_schedule_engine)):
    try:
        return engine.create_instance(request)
    except SchedulingError as e:
        _raise_http(e)


@router.get("/instances", response_model=list[ScheduledInstance])
def list_instances(
    user_id: str,
    start: date,
    end: date,
    workout_plan_id: str | None = None,
    include_hidden: bool = False,
    engine: ScheduleEngine = Depends(get_schedule_engine),
):
    try:
        return engine.list_instances(
            user_id,
            start,
            end,
            workout_plan_id=workout_plan_id,
            include_hidden=include_hidden,
        )
    except SchedulingError as e:
        _raise_http(e)


@router.post("/instances/complete-batch", response_model=list[ScheduledInstance])
def set_completed_many(request: CompletionBatchRequest, engine: ScheduleEngine = Depends(get_schedule_engine)):
    try:
        return engine.set_completed_many(request.instance_ids, request.completed)
    except SchedulingError as e:
        _raise_http(e)


@router.get("/instances/{instance_id}", response_model=ScheduledInstance)
def get_instance(instance_id: str, engine: ScheduleEngine = Depends(get_schedule_engine)):
    try:
        return engine.get_instance(instance_id)
    except SchedulingError as e:
        _raise_http(e)


@router.patch("/instances/{instance_id}", response_model=ScheduledInstance)
def update_instance(
    instance_id: str,
    request: InstanceUpdate,
    engine: ScheduleEngine = Depends(get_schedule_engine),
):
    try:
        return engine.update_instance(instance_id, request)
    except SchedulingError as e:
        _raise_http(e)


@router.delete("/instances/{instance_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_instance(instance_id: str, engine: ScheduleEngine = Depends(get_schedule_engine)):
    try:
        engine.delete_instance(instance_id)
    except SchedulingError as e:
        _raise_http(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/instances/{instance_id}/reschedule", response_model=RescheduleResponse)
def reschedule_instance(
    instance_id: str,
    request: RescheduleRequest,
    engine: ScheduleEngine = Depends(get_schedule_engine),
):
    """Move an instance for this week only, or move its recurring slot.

    ``this-week`` must stay within the instance's current week.
    ``whole-plan`` moves the template entry and shifts future uncompleted
    occurrences; if some of them could not be moved the response carries a
    ``warning`` listing them.
    """
    try:
        result = engine.reschedule(instance_id, request.new_date, request.scope)
    except SchedulingError as e:
        _raise_http(e)
    return RescheduleResponse.from_result(result)


@router.post("/instances/{instance_id}/complete", response_model=ScheduledInstance)
def mark_completed(instance_id: str, engine: ScheduleEngine = Depends(get_schedule_engine)):
    try:
        return engine.mark_completed(instance_id)
    except SchedulingError as e:
        _raise_http(e)


@router.post("/instances/{instance_id}/incomplete", response_model=ScheduledInstance)
def mark_incomplete(instance_id: str, engine: ScheduleEngine = Depends(get_schedule_engine)):
    try:
        return engine.mark_incomplete(instance_id)
    except SchedulingError as e:
        _raise_http(e)
