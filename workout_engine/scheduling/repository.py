"""Repositories for plans and scheduled instances.

The engine only talks to the protocols below. The SQLAlchemy
implementations return detached pydantic snapshots so no ORM state leaks
past a repository call.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from contextlib import AbstractContextManager, contextmanager
from datetime import date, datetime, timezone
from typing import Protocol

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from workout_engine.db.models import ScheduledExercise, WorkoutPlan
from workout_engine.db.session import get_session
from workout_engine.scheduling.errors import (
    ConflictError,
    DuplicateInstanceError,
    NotFoundError,
    RepositoryError,
    StaleTemplateError,
)
from workout_engine.scheduling.types import (
    ExerciseSignature,
    GenerationPolicy,
    InstanceCreate,
    InstanceUpdate,
    PlanCreate,
    PlanSnapshot,
    ScheduledInstance,
    WeeklyTemplate,
)

SessionFactory = Callable[[], AbstractContextManager[Session]]


class InstanceRepository(Protocol):
    def create(self, data: InstanceCreate) -> ScheduledInstance: ...

    def get(self, instance_id: str) -> ScheduledInstance | None: ...

    def update(self, instance_id: str, patch: InstanceUpdate) -> ScheduledInstance: ...

    def delete(self, instance_id: str) -> bool: ...

    def find_by_date_range(
        self,
        start: date,
        end: date,
        *,
        user_id: str | None = None,
        workout_plan_id: str | None = None,
        include_hidden: bool = False,
        completed: bool | None = None,
    ) -> list[ScheduledInstance]: ...

    def find_by_signature(
        self,
        signature: ExerciseSignature,
        start: date,
        end: date | None = None,
        *,
        include_hidden: bool = False,
        completed: bool | None = None,
    ) -> list[ScheduledInstance]: ...


class PlanRepository(Protocol):
    def create(self, data: PlanCreate) -> PlanSnapshot: ...

    def get_by_id(self, plan_id: str) -> PlanSnapshot | None: ...

    def list_active(self) -> list[PlanSnapshot]: ...

    def update_template(self, plan_id: str, template: WeeklyTemplate, expected_version: int) -> PlanSnapshot: ...

    def update_generation_policy(self, plan_id: str, policy: GenerationPolicy) -> None: ...


@contextmanager
def _storage_errors(operation: str, conflict: type[ConflictError] = ConflictError) -> Generator[None, None, None]:
    """Translate SQLAlchemy failures into the engine's error taxonomy."""
    try:
        yield
    except IntegrityError as e:
        raise conflict(f"{operation} rejected by constraint: {e.orig}") from e
    except SQLAlchemyError as e:
        logger.bind(operation=operation, error=str(e)).error("Repository operation failed")
        raise RepositoryError(f"{operation} failed: {e}") from e


def _instance_snapshot(row: ScheduledExercise) -> ScheduledInstance:
    return ScheduledInstance.model_validate(row)


def _plan_snapshot(row: WorkoutPlan) -> PlanSnapshot:
    return PlanSnapshot(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        description=row.description,
        level=row.level,
        mode=row.mode,
        start_date=row.start_date,
        end_date=row.end_date,
        is_active=row.is_active,
        week_starts_on=row.week_starts_on,
        weekly_template=WeeklyTemplate.from_json(row.weekly_template),
        generation_policy=GenerationPolicy.model_validate(row.generation_policy or {}),
        version=row.version,
    )


class SqlInstanceRepository:
    """Scheduled instance storage backed by the scheduled_exercises table."""

    def __init__(self, session_factory: SessionFactory = get_session):
        self._session_factory = session_factory

    def create(self, data: InstanceCreate) -> ScheduledInstance:
        with _storage_errors("create instance", DuplicateInstanceError), self._session_factory() as db:
            row = ScheduledExercise(**data.model_dump())
            db.add(row)
            db.flush()
            return _instance_snapshot(row)

    def get(self, instance_id: str) -> ScheduledInstance | None:
        with _storage_errors("get instance"), self._session_factory() as db:
            row = db.get(ScheduledExercise, instance_id)
            return _instance_snapshot(row) if row is not None else None

    def update(self, instance_id: str, patch: InstanceUpdate) -> ScheduledInstance:
        with _storage_errors("update instance", DuplicateInstanceError), self._session_factory() as db:
            row = db.get(ScheduledExercise, instance_id)
            if row is None:
                raise NotFoundError(f"Scheduled instance {instance_id} not found", code="INSTANCE_NOT_FOUND")
            for field_name, value in patch.changes().items():
                setattr(row, field_name, value)
            row.updated_at = datetime.now(timezone.utc)
            db.flush()
            return _instance_snapshot(row)

    def delete(self, instance_id: str) -> bool:
        with _storage_errors("delete instance"), self._session_factory() as db:
            row = db.get(ScheduledExercise, instance_id)
            if row is None:
                return False
            db.delete(row)
            db.flush()
            return True

    def find_by_date_range(
        self,
        start: date,
        end: date,
        *,
        user_id: str | None = None,
        workout_plan_id: str | None = None,
        include_hidden: bool = False,
        completed: bool | None = None,
    ) -> list[ScheduledInstance]:
        query = select(ScheduledExercise).where(
            ScheduledExercise.date >= start,
            ScheduledExercise.date <= end,
        )
        if user_id is not None:
            query = query.where(ScheduledExercise.user_id == user_id)
        if workout_plan_id is not None:
            query = query.where(ScheduledExercise.workout_plan_id == workout_plan_id)
        return self._fetch(query, "find instances by date range", include_hidden, completed)

    def find_by_signature(
        self,
        signature: ExerciseSignature,
        start: date,
        end: date | None = None,
        *,
        include_hidden: bool = False,
        completed: bool | None = None,
    ) -> list[ScheduledInstance]:
        query = select(ScheduledExercise).where(
            ScheduledExercise.workout_plan_id == signature.workout_plan_id,
            ScheduledExercise.exercise_id == signature.exercise_id,
            ScheduledExercise.sets == signature.sets,
            ScheduledExercise.reps == signature.reps,
            ScheduledExercise.weight == signature.weight,
            ScheduledExercise.date >= start,
        )
        if end is not None:
            query = query.where(ScheduledExercise.date <= end)
        return self._fetch(query, "find instances by signature", include_hidden, completed)

    def _fetch(self, query, operation: str, include_hidden: bool, completed: bool | None) -> list[ScheduledInstance]:
        if not include_hidden:
            query = query.where(ScheduledExercise.is_hidden.is_(False))
        if completed is not None:
            query = query.where(ScheduledExercise.completed.is_(completed))
        query = query.order_by(ScheduledExercise.date, ScheduledExercise.order_index, ScheduledExercise.created_at)
        with _storage_errors(operation), self._session_factory() as db:
            return [_instance_snapshot(row) for row in db.execute(query).scalars().all()]


class SqlPlanRepository:
    """Workout plan storage with a version-checked template write."""

    def __init__(self, session_factory: SessionFactory = get_session):
        self._session_factory = session_factory

    def create(self, data: PlanCreate) -> PlanSnapshot:
        with _storage_errors("create plan"), self._session_factory() as db:
            row = WorkoutPlan(
                user_id=data.user_id,
                name=data.name,
                description=data.description,
                level=data.level,
                mode=data.mode,
                start_date=data.start_date,
                end_date=data.end_date,
                is_active=data.is_active,
                week_starts_on=data.week_starts_on,
                weekly_template=data.weekly_template.to_json(),
                generation_policy=data.generation_policy.model_dump(mode="json"),
                version=1,
            )
            db.add(row)
            db.flush()
            return _plan_snapshot(row)

    def get_by_id(self, plan_id: str) -> PlanSnapshot | None:
        with _storage_errors("get plan"), self._session_factory() as db:
            row = db.get(WorkoutPlan, plan_id, populate_existing=True)
            return _plan_snapshot(row) if row is not None else None

    def list_active(self) -> list[PlanSnapshot]:
        query = select(WorkoutPlan).where(WorkoutPlan.is_active.is_(True)).order_by(WorkoutPlan.created_at)
        with _storage_errors("list active plans"), self._session_factory() as db:
            return [_plan_snapshot(row) for row in db.execute(query).scalars().all()]

    def update_template(self, plan_id: str, template: WeeklyTemplate, expected_version: int) -> PlanSnapshot:
        """Replace the weekly template if the stored version still matches.

        Raises:
            StaleTemplateError: Another writer bumped the version first
            NotFoundError: Plan does not exist
        """
        with _storage_errors("update plan template"), self._session_factory() as db:
            result = db.execute(
                update(WorkoutPlan)
                .where(WorkoutPlan.id == plan_id, WorkoutPlan.version == expected_version)
                .values(
                    weekly_template=template.to_json(),
                    version=WorkoutPlan.version + 1,
                    updated_at=datetime.now(timezone.utc),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                if db.get(WorkoutPlan, plan_id) is None:
                    raise NotFoundError(f"Workout plan {plan_id} not found", code="PLAN_NOT_FOUND")
                raise StaleTemplateError(f"Template of plan {plan_id} changed since version {expected_version}")
            row = db.get(WorkoutPlan, plan_id, populate_existing=True)
            return _plan_snapshot(row)

    def update_generation_policy(self, plan_id: str, policy: GenerationPolicy) -> None:
        with _storage_errors("update generation policy"), self._session_factory() as db:
            row = db.get(WorkoutPlan, plan_id)
            if row is None:
                raise NotFoundError(f"Workout plan {plan_id} not found", code="PLAN_NOT_FOUND")
            row.generation_policy = policy.model_dump(mode="json")
            db.flush()


class ScheduleStore:
    """Plan and instance repositories sharing one session factory.

    ``atomic()`` yields a store whose repositories all run inside a single
    database transaction, committed when the block exits cleanly.
    """

    def __init__(self, session_factory: SessionFactory = get_session):
        self._session_factory = session_factory
        self.plans: PlanRepository = SqlPlanRepository(session_factory)
        self.instances: InstanceRepository = SqlInstanceRepository(session_factory)

    @contextmanager
    def atomic(self) -> Generator[ScheduleStore, None, None]:
        with _storage_errors("transaction"), self._session_factory() as db:

            @contextmanager
            def _bound() -> Generator[Session, None, None]:
                yield db

            yield ScheduleStore(_bound)
