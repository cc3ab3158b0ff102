"""
Integration tests for the REST API.

The learning engine dependency is overridden with one bound to an in-memory
database; the lifespan (and so the configured database) is never started.
"""
import pytest
from fastapi.testclient import TestClient

from learnpath.api.dependencies import get_learning_engine
from learnpath.api.main import app

pytestmark = pytest.mark.integration


@pytest.fixture
def client(engine):
    app.dependency_overrides[get_learning_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def created(client):
    response = client.post(
        "/api/paths",
        json={"owner_id": "learner-1", "topic": "Calculus", "level": "beginner"},
    )
    assert response.status_code == 201
    return response.json()


def complete(client, path, count):
    for step in path["steps"][:count]:
        response = client.post(
            f"/api/paths/{path['id']}/steps/{step['id']}/complete",
            json={"expected_version": path["version"]},
        )
        assert response.status_code == 200
        path = response.json()
    return path


class TestPathEndpoints:
    def test_create_returns_prerequisites_first(self, created):
        assert created["version"] == 0
        assert created["steps"][0]["topic"] == "Arithmetic"
        assert [p["topic_id"] for p in created["prerequisites"]] == ["Arithmetic", "Algebra"]

    def test_answer_keys_are_hidden(self, created):
        question = created["checkpoints"][0]["questions"][0]
        assert "correct_answers" not in question
        assert {"id", "prompt", "kind", "options"} <= set(question)

    def test_create_is_idempotent(self, client, created):
        again = client.post(
            "/api/paths",
            json={"owner_id": "learner-1", "topic": "Calculus", "level": "beginner"},
        )
        assert again.json()["id"] == created["id"]

    def test_get_list_and_delete(self, client, created):
        assert client.get(f"/api/paths/{created['id']}").json()["id"] == created["id"]

        listed = client.get("/api/paths", params={"owner_id": "learner-1"})
        assert [p["id"] for p in listed.json()] == [created["id"]]

        assert client.delete(f"/api/paths/{created['id']}").status_code == 204
        missing = client.get(f"/api/paths/{created['id']}")
        assert missing.status_code == 404
        assert missing.json()["error"] == "PathNotFoundError"

    def test_invalid_level_rejected(self, client):
        response = client.post(
            "/api/paths",
            json={"owner_id": "learner-1", "topic": "Calculus", "level": "expert"},
        )
        assert response.status_code == 422


class TestProgressionEndpoints:
    def test_locked_step_returns_422_with_path(self, client, created):
        step = created["steps"][1]
        response = client.post(
            f"/api/paths/{created['id']}/steps/{step['id']}/complete",
            json={"expected_version": 0},
        )
        assert response.status_code == 422
        assert response.json()["error"] == "StepLockedError"
        assert response.json()["path"]["version"] == 0

    def test_stale_version_returns_409_with_current_path(self, client, created):
        complete(client, created, 1)
        step = created["steps"][1]

        response = client.post(
            f"/api/paths/{created['id']}/steps/{step['id']}/complete",
            json={"expected_version": 0},
        )
        assert response.status_code == 409
        assert response.json()["path"]["version"] == 1

    def test_checkpoint_flow(self, client, created):
        path = complete(client, created, 3)

        ready = client.get(f"/api/paths/{path['id']}/next-checkpoint").json()
        assert ready["should_take_checkpoint"] is True
        checkpoint = ready["checkpoint"]
        answers = {q["id"]: "0" for q in checkpoint["questions"]}

        response = client.post(
            f"/api/paths/{path['id']}/checkpoints/{checkpoint['id']}/attempts",
            json={"expected_version": path["version"], "answers": answers},
        )
        body = response.json()
        assert response.status_code == 200
        assert body["attempt"]["score"] == 100
        assert body["attempt"]["passed"] is True
        assert body["path"]["checkpoints"][0]["is_passed"] is True

    def test_unknown_option_rejected(self, client, created):
        path = complete(client, created, 3)
        checkpoint = path["checkpoints"][0]
        question = checkpoint["questions"][0]

        response = client.post(
            f"/api/paths/{path['id']}/checkpoints/{checkpoint['id']}/attempts",
            json={"expected_version": path["version"], "answers": {question["id"]: "99"}},
        )
        assert response.status_code == 422
        assert response.json()["error"] == "InvalidAnswerError"


class TestBranchAndAdaptEndpoints:
    def test_branch_and_switch(self, client, created):
        path = complete(client, created, 2)

        response = client.post(
            f"/api/paths/{path['id']}/branches",
            json={
                "expected_version": path["version"],
                "fork_at_step_order": 1,
                "branch_name": "hands-on",
                "initial_steps": [{"label": "Build it"}, {"label": "Test it"}],
            },
        )
        assert response.status_code == 201
        branched = response.json()
        branch = branched["branches"][0]
        assert [s["label"] for s in branch["steps"]] == ["Build it", "Test it"]

        switched = client.put(
            f"/api/paths/{path['id']}/active-branch",
            json={"expected_version": branched["version"], "branch_id": branch["id"]},
        ).json()
        assert switched["active_branch_id"] == branch["id"]
        assert switched["progress"] == 0

    def test_fork_at_incomplete_step(self, client, created):
        response = client.post(
            f"/api/paths/{created['id']}/branches",
            json={
                "expected_version": 0,
                "fork_at_step_order": 0,
                "branch_name": "early",
                "initial_steps": [{"label": "X"}],
            },
        )
        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "InvalidForkPointError"
        assert body["path"]["id"] == created["id"]
        assert body["path"]["version"] == 0
        assert body["path"]["branches"] == []

    def test_adapt_with_low_scores(self, client, created):
        path = complete(client, created, 3)

        response = client.post(
            f"/api/paths/{path['id']}/adapt",
            json={"expected_version": path["version"], "checkpoint_scores": [45, 55]},
        )
        body = response.json()
        assert response.status_code == 200
        assert body["applied"] is True
        assert body["action"] == "remediate"
        assert body["path"]["version"] == path["version"] + 1
        assert body["path"]["steps"][3]["kind"] == "remediation"

    def test_adapt_with_weak_areas(self, client, created):
        path = complete(client, created, 3)

        response = client.post(
            f"/api/paths/{path['id']}/adapt",
            json={
                "expected_version": path["version"],
                "checkpoint_scores": [45],
                "areas": ["Limits", "Derivatives"],
            },
        )
        steps = response.json()["path"]["steps"]
        assert [s["label"] for s in steps[3:5]] == ["Review: Limits", "Review: Derivatives"]
        assert len(steps) == len(path["steps"]) + 2


class TestPrerequisiteEndpoints:
    def test_resolve(self, client):
        response = client.get("/api/prerequisites/resolve", params={"topic": "Calculus"})
        assert [p["topic_id"] for p in response.json()["prerequisites"]] == ["Arithmetic", "Algebra"]

    def test_validate_reports_cycle(self, client):
        response = client.get(
            "/api/prerequisites/validate",
            params={"topic": "Arithmetic", "depends_on": "Calculus"},
        )
        body = response.json()
        assert body["is_valid"] is False
        assert body["cycle"][0] == body["cycle"][-1] == "Arithmetic"

        ok = client.get(
            "/api/prerequisites/validate",
            params={"topic": "Calculus", "depends_on": "Logic"},
        )
        assert ok.json() == {"is_valid": True, "cycle": None}


class TestServiceEndpoints:
    def test_root(self, client):
        body = client.get("/").json()
        assert body["service"] == "learnpath"
        assert body["status"] == "ok"
