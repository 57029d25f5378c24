"""Tests for the schedule HTTP endpoints."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from conftest import exercise
from workout_engine.scheduling.api import get_schedule_engine, router
from workout_engine.scheduling.errors import RepositoryError
from workout_engine.scheduling.repository import SqlInstanceRepository


@pytest.fixture
def client(engine):
    app = FastAPI()
    app.include_router(router)
    app.dependency_overrides[get_schedule_engine] = lambda: engine
    with TestClient(app) as test_client:
        yield test_client


def _generate(client, plan_id, from_date, to_date):
    response = client.post(
        f"/schedule/plans/{plan_id}/generate",
        json={"from_date": from_date, "to_date": to_date},
    )
    assert response.status_code == 200, response.text
    return response.json()


def _list(client, plan, start="2025-01-01", end="2025-02-28"):
    response = client.get(
        "/schedule/instances",
        params={"user_id": plan.user_id, "start": start, "end": end, "workout_plan_id": plan.id},
    )
    assert response.status_code == 200, response.text
    return response.json()


class TestPlanEndpoints:
    def test_create_plan(self, client):
        """Test POST /schedule/plans returns the stored plan."""
        response = client.post(
            "/schedule/plans",
            json={
                "user_id": "user-1",
                "name": "Legs",
                "weekly_template": {
                    "days": [
                        {
                            "day_of_week": 1,
                            "exercise_templates": [
                                {"exercise_id": "squat", "sets": 3, "reps": 10, "weight": 50, "order_index": 1}
                            ],
                        }
                    ]
                },
            },
        )

        assert response.status_code == 201
        body = response.json()
        assert body["version"] == 1
        assert client.get(f"/schedule/plans/{body['id']}").json()["name"] == "Legs"

    def test_invalid_plan_payload(self, client):
        """Test a dated plan without dates is rejected by request validation."""
        response = client.post("/schedule/plans", json={"user_id": "user-1", "name": "Block", "mode": "dated"})
        assert response.status_code == 422

    def test_generate(self, client, make_plan):
        """Test generation over two weeks creates the two Mondays."""
        plan = make_plan({1: [exercise("squat")]})

        body = _generate(client, plan.id, "2025-01-06", "2025-01-19")

        assert body["created_count"] == 2
        assert [i["date"] for i in _list(client, plan)] == ["2025-01-06", "2025-01-13"]

    def test_generate_reversed_range(self, client, make_plan):
        """Test a reversed range maps to 400 with the error code."""
        plan = make_plan({1: [exercise("squat")]})

        response = client.post(
            f"/schedule/plans/{plan.id}/generate",
            json={"from_date": "2025-01-19", "to_date": "2025-01-06"},
        )

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_RANGE"

    def test_unknown_plan(self, client):
        """Test an unknown plan maps to 404."""
        assert client.get("/schedule/plans/missing").status_code == 404

    def test_generation_status(self, client, make_plan):
        """Test the generation status endpoint."""
        plan = make_plan({1: [exercise("squat")]})

        body = client.get(f"/schedule/plans/{plan.id}/generation-status").json()

        assert body["needs_generation"] is True
        assert body["next_target_date"] == "2025-01-20"


class TestRescheduleEndpoint:
    def test_this_week(self, client, make_plan):
        """Test a this-week move returns the new instance and the tombstone id."""
        plan = make_plan({3: [exercise("squat")]})
        _generate(client, plan.id, "2025-01-06", "2025-01-12")
        [wednesday] = _list(client, plan)

        response = client.post(
            f"/schedule/instances/{wednesday['id']}/reschedule",
            json={"new_date": "2025-01-10", "scope": "this-week"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["instance"]["date"] == "2025-01-10"
        assert body["tombstone_id"] is not None
        assert body["warning"] is None

    def test_outside_week_is_400(self, client, make_plan):
        """Test a this-week target in another week maps to 400."""
        plan = make_plan({3: [exercise("squat")]})
        _generate(client, plan.id, "2025-01-06", "2025-01-12")
        [wednesday] = _list(client, plan)

        response = client.post(
            f"/schedule/instances/{wednesday['id']}/reschedule",
            json={"new_date": "2025-01-15", "scope": "this-week"},
        )

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "TARGET_OUTSIDE_WEEK"

    def test_occupied_target_is_400(self, client, make_plan):
        """Test a move onto a date that already has the same slot maps to 400, not 409."""
        plan = make_plan({3: [exercise("squat")], 5: [exercise("squat")]})
        _generate(client, plan.id, "2025-01-06", "2025-01-12")
        wednesday, _friday = _list(client, plan)

        response = client.post(
            f"/schedule/instances/{wednesday['id']}/reschedule",
            json={"new_date": "2025-01-10", "scope": "this-week"},
        )

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "TARGET_SLOT_OCCUPIED"

    def test_unknown_scope_is_422(self, client):
        """Test scope must be this-week or whole-plan."""
        response = client.post(
            "/schedule/instances/any/reschedule",
            json={"new_date": "2025-01-15", "scope": "forever"},
        )
        assert response.status_code == 422

    def test_unknown_instance_is_404(self, client):
        """Test rescheduling an unknown instance maps to 404."""
        response = client.post(
            "/schedule/instances/missing/reschedule",
            json={"new_date": "2025-01-15", "scope": "whole-plan"},
        )
        assert response.status_code == 404

    def test_partial_cascade_is_200_with_warning(self, client, make_plan, monkeypatch):
        """Test a partly failed cascade still succeeds and lists the instances left behind."""
        plan = make_plan({1: [exercise("squat")]})
        _generate(client, plan.id, "2025-01-06", "2025-01-20")
        first, second, third = _list(client, plan)
        original = SqlInstanceRepository.update

        def _update(self, instance_id, patch):
            if instance_id == second["id"]:
                raise RepositoryError("connection reset")
            return original(self, instance_id, patch)

        monkeypatch.setattr(SqlInstanceRepository, "update", _update)

        response = client.post(
            f"/schedule/instances/{first['id']}/reschedule",
            json={"new_date": "2025-01-08", "scope": "whole-plan"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["instance"]["date"] == "2025-01-08"
        assert body["cascaded_instance_ids"] == [third["id"]]
        assert body["warning"]["code"] == "PARTIAL_CASCADE"
        assert body["warning"]["failed_instance_ids"] == [second["id"]]

    def test_storage_failure_is_500(self, client, make_plan, monkeypatch):
        """Test a repository failure on the primary write maps to 500."""
        plan = make_plan({1: [exercise("squat")]})
        _generate(client, plan.id, "2025-01-06", "2025-01-06")
        [monday] = _list(client, plan)

        def _update(self, instance_id, patch):
            raise RepositoryError("disk full")

        monkeypatch.setattr(SqlInstanceRepository, "update", _update)

        response = client.post(
            f"/schedule/instances/{monday['id']}/reschedule",
            json={"new_date": "2025-01-08", "scope": "whole-plan"},
        )

        assert response.status_code == 500
        assert response.json()["detail"]["code"] == "REPOSITORY_FAILURE"


class TestInstanceEndpoints:
    def test_crud(self, client):
        """Test create, read, patch and delete of an ad hoc instance."""
        created = client.post(
            "/schedule/instances",
            json={"user_id": "user-1", "exercise_id": "pushup", "date": "2025-01-08", "sets": 3, "reps": 15},
        )
        assert created.status_code == 201
        instance_id = created.json()["id"]

        patched = client.patch(f"/schedule/instances/{instance_id}", json={"reps": 20})
        assert patched.status_code == 200
        assert patched.json()["reps"] == 20

        assert client.get(f"/schedule/instances/{instance_id}").json()["is_manual"] is True
        assert client.delete(f"/schedule/instances/{instance_id}").status_code == 204
        assert client.get(f"/schedule/instances/{instance_id}").status_code == 404

    def test_patch_date_rejected(self, client):
        """Test changing the date through PATCH is refused."""
        instance_id = client.post(
            "/schedule/instances",
            json={"user_id": "user-1", "exercise_id": "pushup", "date": "2025-01-08"},
        ).json()["id"]

        response = client.patch(f"/schedule/instances/{instance_id}", json={"date": "2025-01-09"})

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "USE_RESCHEDULE"

    def test_complete_and_incomplete(self, client):
        """Test the completion endpoints flip the flag."""
        instance_id = client.post(
            "/schedule/instances",
            json={"user_id": "user-1", "exercise_id": "pushup", "date": "2025-01-08"},
        ).json()["id"]

        completed = client.post(f"/schedule/instances/{instance_id}/complete").json()
        assert completed["completed"] is True
        assert completed["completed_at"] is not None

        reopened = client.post(f"/schedule/instances/{instance_id}/incomplete").json()
        assert reopened["completed"] is False
        assert reopened["completed_at"] is None

    def test_complete_batch(self, client, make_plan):
        """Test batch completion across several instances."""
        plan = make_plan({1: [exercise("squat")]})
        _generate(client, plan.id, "2025-01-06", "2025-01-19")
        ids = [i["id"] for i in _list(client, plan)]

        response = client.post("/schedule/instances/complete-batch", json={"instance_ids": ids, "completed": True})

        assert response.status_code == 200
        assert all(i["completed"] for i in response.json())

    def test_hidden_listing_is_opt_in(self, client, make_plan):
        """Test tombstones only appear when include_hidden is set."""
        plan = make_plan({3: [exercise("squat")]})
        _generate(client, plan.id, "2025-01-06", "2025-01-12")
        [wednesday] = _list(client, plan)
        client.post(
            f"/schedule/instances/{wednesday['id']}/reschedule",
            json={"new_date": "2025-01-10", "scope": "this-week"},
        )

        hidden = client.get(
            "/schedule/instances",
            params={"user_id": plan.user_id, "start": "2025-01-06", "end": "2025-01-12", "include_hidden": True},
        ).json()

        assert len(_list(client, plan)) == 1
        assert sorted((i["date"], i["is_hidden"]) for i in hidden) == [("2025-01-08", True), ("2025-01-10", False)]
