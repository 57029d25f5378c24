"""Root conftest for all tests.

Every test runs against its own in-memory SQLite database, patched into
workout_engine.db.session so the production get_session() path (commit on
success, rollback on error) is what the code under test actually uses.
"""

from datetime import date

import pytest
from loguru import logger
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from workout_engine.db import session as session_module
from workout_engine.db.models import Base
from workout_engine.scheduling.clock import FixedClock
from workout_engine.scheduling.repository import ScheduleStore
from workout_engine.scheduling.service import ScheduleEngine
from workout_engine.scheduling.types import (
    DayTemplate,
    ExerciseTemplate,
    PlanCreate,
    WeeklyTemplate,
)

# Monday
TODAY = date(2025, 1, 6)


@pytest.fixture(autouse=True)
def db_engine(monkeypatch):
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    monkeypatch.setattr(session_module, "_engine", engine)
    monkeypatch.setattr(session_module, "_SessionLocal", None)
    yield engine
    engine.dispose()


@pytest.fixture
def clock():
    return FixedClock(TODAY)


@pytest.fixture
def store():
    return ScheduleStore()


@pytest.fixture
def regeneration_calls():
    """Plan ids passed to the regeneration trigger."""
    return []


@pytest.fixture
def engine(store, clock, regeneration_calls):
    return ScheduleEngine(store, clock=clock, regeneration_trigger=regeneration_calls.append)


@pytest.fixture
def log_messages():
    """Capture loguru output at WARNING and above."""
    messages: list[str] = []
    handler_id = logger.add(messages.append, level="WARNING", format="{message}")
    yield messages
    logger.remove(handler_id)


def exercise(exercise_id: str = "squat", sets: int = 3, reps: int = 10, weight: float = 50.0, order_index: int = 1, **kwargs):
    return ExerciseTemplate(
        exercise_id=exercise_id,
        sets=sets,
        reps=reps,
        weight=weight,
        order_index=order_index,
        **kwargs,
    )


def weekly(days: dict[int, list[ExerciseTemplate]]) -> WeeklyTemplate:
    return WeeklyTemplate(
        days=[DayTemplate(day_of_week=dow, exercise_templates=templates) for dow, templates in days.items()]
    )


@pytest.fixture
def make_plan(store):
    """Create a plan from a {day_of_week: [ExerciseTemplate, ...]} mapping."""

    def _make_plan(days: dict[int, list[ExerciseTemplate]] | None = None, user_id: str = "user-1", **kwargs):
        data = PlanCreate(
            user_id=user_id,
            name=kwargs.pop("name", "Strength"),
            weekly_template=weekly(days or {}),
            **kwargs,
        )
        return store.plans.create(data)

    return _make_plan
