"""Tests for completion tracking."""

from datetime import date

import pytest

from conftest import exercise
from workout_engine.scheduling.completion import CompletionTracker
from workout_engine.scheduling.errors import NotFoundError, ValidationError
from workout_engine.scheduling.generator import InstanceGenerator
from workout_engine.scheduling.types import RescheduleScope


@pytest.fixture
def tracker(store):
    return CompletionTracker(store)


@pytest.fixture
def mondays(store, clock, make_plan):
    plan = make_plan({1: [exercise("squat")]})
    InstanceGenerator(store, clock=clock).ensure_generated(plan, date(2025, 1, 6), date(2025, 1, 20))
    return store.instances.find_by_date_range(date(2025, 1, 6), date(2025, 1, 20), workout_plan_id=plan.id)


class TestCompletionTracker:
    def test_mark_completed_sets_timestamp(self, tracker, mondays):
        """Test marking completed sets the flag and completed_at."""
        updated = tracker.mark_completed(mondays[0].id)

        assert updated.completed is True
        assert updated.completed_at is not None
        assert updated.date == mondays[0].date

    def test_mark_incomplete_clears_timestamp(self, tracker, mondays):
        """Test marking incomplete clears completed_at."""
        tracker.mark_completed(mondays[0].id)

        updated = tracker.mark_incomplete(mondays[0].id)

        assert updated.completed is False
        assert updated.completed_at is None

    def test_missing_instance(self, tracker):
        """Test an unknown id raises NotFoundError."""
        with pytest.raises(NotFoundError):
            tracker.mark_completed("missing")

    def test_hidden_override_rejected(self, engine, make_plan):
        """Test tombstones cannot be completed."""
        plan = make_plan({3: [exercise("squat")]})
        engine.ensure_generated(plan.id, date(2025, 1, 6), date(2025, 1, 12))
        [wednesday] = engine.list_instances(plan.user_id, date(2025, 1, 8), date(2025, 1, 8))
        result = engine.reschedule(wednesday.id, date(2025, 1, 10), RescheduleScope.THIS_WEEK)

        with pytest.raises(ValidationError) as exc_info:
            engine.mark_completed(result.tombstone_id)
        assert exc_info.value.code == "HIDDEN_INSTANCE"

    def test_set_completed_many(self, tracker, store, mondays):
        """Test batch completion updates every instance."""
        ids = [instance.id for instance in mondays]

        updated = tracker.set_completed_many(ids, completed=True)

        assert len(updated) == 3
        assert all(store.instances.get(instance_id).completed for instance_id in ids)

    def test_set_completed_many_is_all_or_nothing(self, tracker, store, mondays):
        """Test one unknown id leaves every instance untouched."""
        ids = [mondays[0].id, "missing", mondays[1].id]

        with pytest.raises(NotFoundError):
            tracker.set_completed_many(ids, completed=True)

        assert not any(store.instances.get(instance.id).completed for instance in mondays)
