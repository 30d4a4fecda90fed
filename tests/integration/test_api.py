"""Integration tests for API endpoints"""

import time
import pytest
from fastapi.testclient import TestClient

from broker_gateway.api.main import create_app
from broker_gateway.config import settings
from broker_gateway.domain.models import CreditCheckFlags, CreditCheckStatus, ProviderOutcome

pytestmark = pytest.mark.integration

BROKER = {"X-User-Id": "broker-1", "X-User-Role": "broker"}
OTHER_BROKER = {"X-User-Id": "broker-2", "X-User-Role": "broker"}
CLIENT = {"X-User-Id": "client-1", "X-User-Role": "client"}


def submit(client: TestClient, client_id="client-1", headers=BROKER) -> dict:
    response = client.post("/v1/credit-checks", json={"client_id": client_id, "profile_id": "profile-1"}, headers=headers)
    assert response.status_code == 202
    return response.json()


def resolve(client: TestClient, credit_check_id: int, score=780, **flags):
    """Deliver a provider result the way the resolution task would"""
    outcome = ProviderOutcome(
        status=CreditCheckStatus.COMPLETED,
        provider="Scripted Provider",
        score=score,
        flags=CreditCheckFlags(**flags),
    )
    return client.app.state.lifecycle_manager.on_provider_result(credit_check_id, outcome)


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    submit(client)
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "broker_credit_check_submitted_total" in response.text


def test_request_id_is_echoed(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_submit_returns_pending(client: TestClient):
    body = submit(client)

    assert body["status"] == "pending"
    assert body["broker_id"] == "broker-1"
    assert body["score"] is None
    assert body["flags"] == {"protests": False, "adverse_filings": False, "insolvency_proceeding": False}


def test_submit_requires_identity(client: TestClient):
    response = client.post("/v1/credit-checks", json={"client_id": "client-1", "profile_id": "profile-1"})
    assert response.status_code == 401


def test_submit_validates_body(client: TestClient):
    response = client.post("/v1/credit-checks", json={"client_id": "", "profile_id": "profile-1"}, headers=BROKER)
    assert response.status_code == 422


def test_pending_check_has_no_analysis(client: TestClient):
    credit_check_id = submit(client)["id"]

    response = client.get(f"/v1/credit-checks/{credit_check_id}", headers=BROKER)

    assert response.status_code == 200
    body = response.json()
    assert body["credit_check"]["status"] == "pending"
    assert body["analysis"] is None
    assert body["summary"].endswith("status pending")


def test_completed_check_includes_analysis(client: TestClient):
    credit_check_id = submit(client)["id"]
    resolve(client, credit_check_id, score=700, protests=True)

    response = client.get(f"/v1/credit-checks/{credit_check_id}?nominal_limit=10000", headers=BROKER)

    assert response.status_code == 200
    analysis = response.json()["analysis"]
    assert analysis["tier"] == "good"
    assert analysis["risk_level"] == "medium"
    assert analysis["approval_recommendation"] == "approve_with_conditions"
    assert analysis["max_recommended_limit"] == 7000
    assert analysis["conditions"] == ["Detailed analysis of protests"]


def test_other_broker_cannot_see_check(client: TestClient):
    credit_check_id = submit(client)["id"]

    assert client.get(f"/v1/credit-checks/{credit_check_id}", headers=OTHER_BROKER).status_code == 404
    assert client.get("/v1/credit-checks/999", headers=BROKER).status_code == 404


def test_list_and_filter(client: TestClient):
    first = submit(client, client_id="client-1")["id"]
    second = submit(client, client_id="client-2")["id"]
    resolve(client, first)

    response = client.get("/v1/credit-checks", headers=BROKER)
    assert [c["id"] for c in response.json()["credit_checks"]] == [second, first]

    response = client.get("/v1/credit-checks?status=completed", headers=BROKER)
    assert [c["id"] for c in response.json()["credit_checks"]] == [first]

    response = client.get("/v1/credit-checks", headers=OTHER_BROKER)
    assert response.json()["credit_checks"] == []


def test_stats(client: TestClient):
    first = submit(client)["id"]
    submit(client)
    resolve(client, first, score=500, insolvency_proceeding=True)

    body = client.get("/v1/credit-checks/stats", headers=BROKER).json()

    assert body["total"] == 2
    assert body["completed"] == 1
    assert body["pending"] == 1
    assert body["with_insolvency_proceedings"] == 1
    assert body["risk_levels"] == {"critical": 1}


def test_delete_credit_check(client: TestClient):
    credit_check_id = submit(client)["id"]

    assert client.delete(f"/v1/credit-checks/{credit_check_id}", headers=OTHER_BROKER).status_code == 404
    assert client.delete(f"/v1/credit-checks/{credit_check_id}", headers=BROKER).status_code == 204
    assert client.delete(f"/v1/credit-checks/{credit_check_id}", headers=BROKER).status_code == 404


def test_notification_flow(client: TestClient):
    credit_check_id = submit(client)["id"]

    # The client hears about the request, the broker about the result
    client_notifications = client.get("/v1/notifications", headers=CLIENT).json()["notifications"]
    assert [n["type"] for n in client_notifications] == ["credit_check_requested"]

    resolve(client, credit_check_id)
    broker_notifications = client.get("/v1/notifications", headers=BROKER).json()["notifications"]
    assert [n["type"] for n in broker_notifications] == ["credit_check_completed"]
    notification_id = broker_notifications[0]["id"]

    assert client.get("/v1/notifications/unread-count", headers=BROKER).json()["unread_count"] == 1

    # Another user cannot touch it
    assert client.post(f"/v1/notifications/{notification_id}/read", headers=CLIENT).status_code == 404

    response = client.post(f"/v1/notifications/{notification_id}/read", headers=BROKER)
    assert response.status_code == 200
    assert response.json()["read"] is True
    assert client.get("/v1/notifications/unread-count", headers=BROKER).json()["unread_count"] == 0

    response = client.delete("/v1/notifications/read", headers=BROKER)
    assert response.json()["affected"] == 1
    assert client.get("/v1/notifications", headers=BROKER).json()["notifications"] == []


def test_mark_all_read_and_delete(client: TestClient):
    submit(client)
    submit(client)

    response = client.post("/v1/notifications/read-all", headers=CLIENT)
    assert response.json()["affected"] == 2
    assert client.get("/v1/notifications/unread-count", headers=CLIENT).json()["unread_count"] == 0

    notification_id = client.get("/v1/notifications", headers=CLIENT).json()["notifications"][0]["id"]
    assert client.delete(f"/v1/notifications/{notification_id}", headers=CLIENT).status_code == 204
    assert client.delete(f"/v1/notifications/{notification_id}", headers=CLIENT).status_code == 404


def test_notifications_require_identity(client: TestClient):
    assert client.get("/v1/notifications").status_code == 401


def test_stale_pending_checks_expire_when_timeout_configured(session_factory, provider, monkeypatch):
    monkeypatch.setattr(settings, "pending_timeout_seconds", 0.0)
    monkeypatch.setattr(settings, "pending_sweep_interval_seconds", 0.05)

    with TestClient(create_app(session_factory=session_factory, provider=provider)) as client:
        credit_check_id = submit(client)["id"]

        deadline = time.monotonic() + 5
        credit_check = {"status": "pending"}
        while credit_check["status"] == "pending" and time.monotonic() < deadline:
            time.sleep(0.05)
            credit_check = client.get(f"/v1/credit-checks/{credit_check_id}", headers=BROKER).json()["credit_check"]

        notifications = client.get("/v1/notifications", headers=BROKER).json()["notifications"]

    assert credit_check["status"] == "failed"
    assert credit_check["error_message"] == "Provider timeout"
    assert [n["type"] for n in notifications] == ["credit_check_failed"]


def test_pending_checks_stay_pending_without_timeout(client: TestClient):
    credit_check_id = submit(client)["id"]
    time.sleep(0.1)

    body = client.get(f"/v1/credit-checks/{credit_check_id}", headers=BROKER).json()
    assert body["credit_check"]["status"] == "pending"


def test_list_unread_only(client: TestClient):
    submit(client)
    submit(client)
    first_id = client.get("/v1/notifications", headers=CLIENT).json()["notifications"][-1]["id"]
    client.post(f"/v1/notifications/{first_id}/read", headers=CLIENT)

    unread = client.get("/v1/notifications?unread_only=true", headers=CLIENT).json()["notifications"]

    assert len(unread) == 1
    assert unread[0]["id"] != first_id
    assert unread[0]["read"] is False
