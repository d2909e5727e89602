import httpx
from fastapi.testclient import TestClient

from services.chat_gateway.main import app, get_dispatcher
from services.chat_gateway.outbound import LineMessagingClient, NotificationDispatcher


def test_send_records_delivery_log():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={}))
    dispatcher = NotificationDispatcher(LineMessagingClient("live-token", transport=transport))
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    try:
        client = TestClient(app)
        response = client.post(
            "/send",
            json={"recipient_id": "U-1", "message": "hello", "notification_type": "general"},
        )
        logs = client.get("/logs").json()
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert response.json()["status"] == "delivered"
    assert logs[0]["recipient_id"] == "U-1"
    assert logs[0]["notification_type"] == "general"


def test_send_rejects_unknown_notification_type():
    response = TestClient(app).post(
        "/send",
        json={"recipient_id": "U-1", "message": "hello", "notification_type": "fax"},
    )
    assert response.status_code == 422
