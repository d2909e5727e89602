from datetime import time

import pytest
from fastapi.testclient import TestClient

from medreminder import MedReminderFlow
from services.chat_gateway.outbound import LineMessagingClient, NotificationDispatcher
from services.scheduler.main import app, get_flow
from shared.contracts.errors import StoreUnavailable


@pytest.fixture
def client(store):
    flow = MedReminderFlow(store=store, dispatcher=NotificationDispatcher(LineMessagingClient(None)))
    app.dependency_overrides[get_flow] = lambda: flow
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "ok"
    assert body["service"] == "scheduler"


def test_tick_runs_both_passes(client, seeder):
    medicine = seeder.medicine(seeder.user())
    seeder.schedule(medicine, at=time(8, 0))

    response = client.post("/jobs/tick", json={"now": "2026-01-05T08:00:00+09:00"})

    assert response.status_code == 200
    body = response.json()
    assert body["reminders"]["logs_created"] == 1
    assert body["reminders"]["notifications_emitted"] == 1
    assert body["missed"]["matched"] == 0
    assert body["dry_run"] == 1


def test_report_endpoint_rejects_unknown_type(client, seeder):
    user = seeder.user()
    response = client.post("/jobs/reports", json={"user_id": user.id, "report_type": "yearly"})
    assert response.status_code == 400


def test_report_endpoint_returns_report(client, seeder):
    user = seeder.user()
    response = client.post(
        "/jobs/reports",
        json={"user_id": user.id, "report_type": "custom", "start_date": "2026-01-01", "end_date": "2026-01-07"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["period"] == "2026/01/01 - 2026/01/07"
    assert body["recommendations"]


def test_store_outage_is_service_unavailable():
    class DownStore:
        def list_due_schedules(self, time_of_day, weekday):
            raise StoreUnavailable("connection refused")

    flow = MedReminderFlow(store=DownStore(), dispatcher=NotificationDispatcher(LineMessagingClient(None)))
    app.dependency_overrides[get_flow] = lambda: flow
    try:
        response = TestClient(app).post("/jobs/tick")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 503


def test_report_endpoint_unknown_user_is_not_found(client):
    response = client.post("/jobs/reports", json={"user_id": 9999, "report_type": "daily"})
    assert response.status_code == 404
    assert "9999" in response.json()["detail"]
