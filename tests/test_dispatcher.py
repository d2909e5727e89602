import json
import unittest

import httpx

from services.chat_gateway.outbound import (
    MAX_LOG_ENTRIES,
    DeliveryLog,
    LineMessagingClient,
    NotificationDispatcher,
    render_payload,
)
from shared.contracts.enums import DispatchStatus, NotificationType
from shared.contracts.models import NotificationRequest


PUSH_URL = "https://gateway.test/v2/bot/message/push"


def _request(notification_type=NotificationType.MEDICATION_REMINDER, message="💊 Aspirin") -> NotificationRequest:
    return NotificationRequest(
        recipient_id="U-line-1",
        message=message,
        notification_type=notification_type,
        medicine_id=7,
        log_id=11,
    )


class RecordingHandler:
    def __init__(self, status_code: int = 200, body: str = "{}") -> None:
        self.status_code = status_code
        self.body = body
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, text=self.body)


def _dispatcher(handler, token="live-token", delivery_log=None) -> NotificationDispatcher:
    client = LineMessagingClient(token, push_url=PUSH_URL, transport=httpx.MockTransport(handler))
    return NotificationDispatcher(client, delivery_log=delivery_log)


class RenderPayloadTests(unittest.TestCase):
    def test_reminder_renders_card_with_action_buttons(self) -> None:
        payload = render_payload(_request())

        self.assertEqual("flex", payload["type"])
        header = payload["contents"]["header"]["contents"][0]
        self.assertEqual("#2E86AB", header["color"])
        self.assertEqual("💊 Aspirin", payload["contents"]["body"]["contents"][0]["text"])
        labels = [b["action"]["label"] for b in payload["contents"]["footer"]["contents"]]
        self.assertEqual(["Taken", "Remind me later"], labels)

    def test_missed_dose_card_uses_warning_colors(self) -> None:
        payload = render_payload(_request(NotificationType.MISSED_MEDICATION))

        self.assertEqual("#DC3545", payload["contents"]["header"]["contents"][0]["color"])
        self.assertEqual("#FDF2F2", payload["contents"]["header"]["backgroundColor"])
        actions = [b["action"]["text"] for b in payload["contents"]["footer"]["contents"]]
        self.assertEqual(["Taken", "Missed"], actions)

    def test_report_and_general_render_as_plain_text(self) -> None:
        for kind in (NotificationType.MEDICATION_REPORT, NotificationType.GENERAL):
            self.assertEqual({"type": "text", "text": "hello"}, render_payload(_request(kind, "hello")))


class DispatcherTests(unittest.TestCase):
    def test_delivers_with_bearer_token_and_records_entry(self) -> None:
        handler = RecordingHandler()
        dispatcher = _dispatcher(handler)

        result = dispatcher.dispatch(_request())

        self.assertEqual(DispatchStatus.DELIVERED, result.status)
        self.assertTrue(result.ok)
        sent = handler.requests[0]
        self.assertEqual("Bearer live-token", sent.headers["Authorization"])
        body = json.loads(sent.content)
        self.assertEqual("U-line-1", body["to"])
        self.assertEqual("flex", body["messages"][0]["type"])

        entry = dispatcher.delivery_log.records[-1]
        self.assertEqual("U-line-1", entry["recipient_id"])
        self.assertEqual("medication_reminder", entry["notification_type"])
        self.assertEqual(7, entry["medicine_id"])

    def test_gateway_rejection_is_reported_not_retried(self) -> None:
        handler = RecordingHandler(status_code=400, body='{"message":"Invalid reply token"}')
        dispatcher = _dispatcher(handler)

        result = dispatcher.dispatch(_request())

        self.assertEqual(DispatchStatus.FAILED, result.status)
        self.assertEqual(400, result.http_status)
        self.assertIn("Invalid reply token", result.body)
        self.assertEqual(1, len(handler.requests))
        self.assertEqual([], dispatcher.delivery_log.records)

    def test_transport_error_is_a_failed_delivery(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        result = _dispatcher(handler).dispatch(_request())

        self.assertEqual(DispatchStatus.FAILED, result.status)
        self.assertIsNone(result.http_status)
        self.assertIn("connection refused", result.body)

    def test_missing_or_placeholder_token_is_a_dry_run(self) -> None:
        for token in (None, "", "YOUR_LINE_CHANNEL_ACCESS_TOKEN"):
            handler = RecordingHandler()
            result = _dispatcher(handler, token=token).dispatch(_request())

            self.assertEqual(DispatchStatus.DRY_RUN, result.status)
            self.assertTrue(result.ok)
            self.assertEqual([], handler.requests)

    def test_audit_failure_does_not_fail_delivery(self) -> None:
        class BrokenLog(DeliveryLog):
            def append(self, entry):
                raise RuntimeError("disk full")

        result = _dispatcher(RecordingHandler(), delivery_log=BrokenLog()).dispatch(_request())

        self.assertEqual(DispatchStatus.DELIVERED, result.status)


class DeliveryLogTests(unittest.TestCase):
    def test_log_is_bounded(self) -> None:
        log = DeliveryLog()
        for i in range(MAX_LOG_ENTRIES + 25):
            log.append({"i": i})

        self.assertEqual(MAX_LOG_ENTRIES, len(log.records))
        self.assertEqual(25, log.records[0]["i"])


if __name__ == "__main__":
    unittest.main()
