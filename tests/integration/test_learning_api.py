"""
Integration tests for coach/api routes.

Walks the learning flow over HTTP against SQLite stores:
- Consent grant and withdrawal
- Feedback recording gated by consent
- Delayed processing and stats
- Nightly batch
"""

import pytest


# Skip all tests in this module if FastAPI is not installed
try:
    from fastapi.testclient import TestClient  # noqa: F401

    HAS_FASTAPI = True
except ImportError:
    HAS_FASTAPI = False

pytestmark = pytest.mark.skipif(not HAS_FASTAPI, reason="FastAPI not installed")


def _grant_learning(client, user_id):
    for purpose in ("ai_profiling", "policy_learning"):
        response = client.put(f"/consent/{user_id}/{purpose}", json={"granted": True})
        assert response.status_code == 200


# ─────────────────────────────────────────────────────────────────────────────
# Consent Endpoints
# ─────────────────────────────────────────────────────────────────────────────


class TestConsentEndpoints:
    def test_new_user_has_no_consent(self, test_client, mock_user_id):
        response = test_client.get(f"/consent/{mock_user_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["learning_enabled"] is False
        assert not any(data["consents"].values())

    def test_grant_enables_learning(self, test_client, mock_user_id):
        _grant_learning(test_client, mock_user_id)

        data = test_client.get(f"/consent/{mock_user_id}").json()

        assert data["consents"]["ai_profiling"] is True
        assert data["consents"]["policy_learning"] is True
        assert data["learning_enabled"] is True

    def test_unknown_purpose_is_400(self, test_client, mock_user_id):
        response = test_client.put(f"/consent/{mock_user_id}/marketing", json={"granted": True})

        assert response.status_code == 400
        assert "Invalid purpose" in response.json()["error"]

    def test_export(self, test_client, mock_user_id):
        _grant_learning(test_client, mock_user_id)

        data = test_client.get(f"/consent/{mock_user_id}/export").json()

        assert len(data["consents"]) == 4


# ─────────────────────────────────────────────────────────────────────────────
# Learning Flow
# ─────────────────────────────────────────────────────────────────────────────


class TestLearningFlow:
    def test_feedback_without_consent_is_not_recorded(self, test_client, seed_run, mock_user_id):
        seed_run(mock_user_id, "run-1")

        response = test_client.post(
            f"/learning/{mock_user_id}/feedback", json={"run_id": "run-1", "feedback_type": "accepted"}
        )

        assert response.status_code == 200
        assert response.json()["success"] is False
        stats = test_client.get(f"/learning/{mock_user_id}/stats").json()
        assert stats["total_experiences"] == 0

    def test_invalid_feedback_type_is_422(self, test_client, mock_user_id):
        response = test_client.post(
            f"/learning/{mock_user_id}/feedback", json={"run_id": "run-1", "feedback_type": "meh"}
        )

        assert response.status_code == 422

    def test_record_process_and_stats(self, test_client, seed_run, mock_user_id):
        _grant_learning(test_client, mock_user_id)
        seed_run(mock_user_id, "run-1", action_type="celebrate")

        response = test_client.post(
            f"/learning/{mock_user_id}/feedback",
            json={"run_id": "run-1", "feedback_type": "accepted", "completed": True},
        )
        assert response.json()["success"] is True

        experiences = test_client.get(f"/learning/{mock_user_id}/experiences").json()["experiences"]
        assert len(experiences) == 1
        experience_id = experiences[0]["id"]

        response = test_client.post(f"/learning/{mock_user_id}/experiences/{experience_id}/process")
        assert response.status_code == 200
        assert response.json()["success"] is True

        stats = test_client.get(f"/learning/{mock_user_id}/stats").json()
        assert stats == {
            "user_id": mock_user_id,
            "total_experiences": 1,
            "processed_experiences": 1,
            "average_reward": pytest.approx(3.0),
            "learning_enabled": True,
        }

        weights = test_client.get(f"/learning/{mock_user_id}/weights").json()
        assert weights[0]["action_type"] == "celebrate"
        assert weights[0]["weight"] == pytest.approx(0.15)

    def test_withdrawal_erases_and_blocks(self, test_client, seed_run, mock_user_id):
        _grant_learning(test_client, mock_user_id)
        seed_run(mock_user_id, "run-1")
        test_client.post(
            f"/learning/{mock_user_id}/feedback", json={"run_id": "run-1", "feedback_type": "ignored"}
        )

        response = test_client.put(f"/consent/{mock_user_id}/policy_learning", json={"granted": False})

        assert response.json()["erased"]["experiences"] == 1
        stats = test_client.get(f"/learning/{mock_user_id}/stats").json()
        assert stats["total_experiences"] == 0
        assert stats["learning_enabled"] is False

    def test_process_missing_experience(self, test_client, mock_user_id):
        _grant_learning(test_client, mock_user_id)

        response = test_client.post(f"/learning/{mock_user_id}/experiences/nope/process")

        assert response.json()["success"] is False

    def test_summary(self, test_client, seed_run, mock_user_id):
        _grant_learning(test_client, mock_user_id)
        seed_run(mock_user_id, "run-1", action_type="protect")
        test_client.post(
            f"/learning/{mock_user_id}/feedback", json={"run_id": "run-1", "feedback_type": "rejected"}
        )

        summary = test_client.get(f"/learning/{mock_user_id}/summary").json()

        assert summary["action_distribution"] == {"protect": 1}
        assert summary["processed_experiences"] == 0


class TestNightly:
    def test_nightly_processes_aged_experiences(
        self, test_client, seed_run, age_experiences, mock_user_id
    ):
        _grant_learning(test_client, mock_user_id)
        seed_run(mock_user_id, "run-1")
        test_client.post(
            f"/learning/{mock_user_id}/feedback", json={"run_id": "run-1", "feedback_type": "accepted"}
        )
        age_experiences(mock_user_id, 30)

        response = test_client.post("/learning/nightly")

        assert response.status_code == 200
        data = response.json()
        assert data["processed"] == 1
        assert data["total_reward"] == pytest.approx(1.0)

    def test_nightly_leaves_fresh_experiences(self, test_client, seed_run, mock_user_id):
        _grant_learning(test_client, mock_user_id)
        seed_run(mock_user_id, "run-1")
        test_client.post(
            f"/learning/{mock_user_id}/feedback", json={"run_id": "run-1", "feedback_type": "accepted"}
        )

        data = test_client.post("/learning/nightly", json={}).json()

        assert data["processed"] == 0


def test_health(test_client):
    assert test_client.get("/health").json() == {"status": "ok"}
