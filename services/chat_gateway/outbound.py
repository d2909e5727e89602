from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from app.config import Settings, is_dry_run_token
from shared.contracts.enums import DispatchStatus, NotificationType
from shared.contracts.models import DispatchResult, NotificationRequest

logger = logging.getLogger(__name__)

MAX_LOG_ENTRIES = 1000
DEFAULT_PUSH_URL = "https://api.line.me/v2/bot/message/push"


@dataclass(frozen=True)
class CardButton:
    label: str
    text: str
    style: str = "secondary"
    color: Optional[str] = None


@dataclass(frozen=True)
class CardStyle:
    alt_text: str
    header: str
    header_color: str
    background_color: str
    buttons: List[CardButton] = field(default_factory=list)


REMINDER_CARD = CardStyle(
    alt_text="Medication reminder",
    header="🔔 Medication time",
    header_color="#2E86AB",
    background_color="#F3F7FA",
    buttons=[
        CardButton(label="Taken", text="Taken", style="primary", color="#28a745"),
        CardButton(label="Remind me later", text="Remind me later"),
    ],
)

MISSED_CARD = CardStyle(
    alt_text="Missed dose",
    header="⚠️ Missed dose",
    header_color="#DC3545",
    background_color="#FDF2F2",
    buttons=[
        CardButton(label="Take it now", text="Taken", style="primary", color="#28a745"),
        CardButton(label="Record as missed", text="Missed", color="#6c757d"),
    ],
)


def _button(button: CardButton) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "type": "button",
        "action": {"type": "message", "label": button.label, "text": button.text},
        "style": button.style,
    }
    if button.color:
        payload["color"] = button.color
    return payload


def render_card(style: CardStyle, message: str) -> Dict[str, Any]:
    return {
        "type": "flex",
        "altText": style.alt_text,
        "contents": {
            "type": "bubble",
            "header": {
                "type": "box",
                "layout": "vertical",
                "contents": [
                    {
                        "type": "text",
                        "text": style.header,
                        "weight": "bold",
                        "size": "lg",
                        "color": style.header_color,
                    }
                ],
                "backgroundColor": style.background_color,
            },
            "body": {
                "type": "box",
                "layout": "vertical",
                "contents": [{"type": "text", "text": message, "wrap": True, "size": "md"}],
            },
            "footer": {
                "type": "box",
                "layout": "vertical",
                "contents": [_button(b) for b in style.buttons],
                "spacing": "sm",
            },
        },
    }


def render_payload(request: NotificationRequest) -> Dict[str, Any]:
    match request.notification_type:
        case NotificationType.MEDICATION_REMINDER:
            return render_card(REMINDER_CARD, request.message)
        case NotificationType.MISSED_MEDICATION:
            return render_card(MISSED_CARD, request.message)
        case NotificationType.MEDICATION_REPORT | NotificationType.GENERAL:
            return {"type": "text", "text": request.message}
    raise ValueError(f"Unhandled notification type: {request.notification_type}")


@dataclass
class PushOutcome:
    accepted: bool
    status_code: Optional[int] = None
    body: Optional[str] = None


class LineMessagingClient:
    """Push API client; a missing or placeholder token turns every push into a no-op."""

    def __init__(
        self,
        access_token: Optional[str],
        push_url: str = DEFAULT_PUSH_URL,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.access_token = access_token
        self.push_url = push_url
        self.timeout = timeout
        self.transport = transport

    @property
    def dry_run(self) -> bool:
        return is_dry_run_token(self.access_token)

    def push(self, recipient_id: str, payload: Dict[str, Any]) -> PushOutcome:
        body = {"to": recipient_id, "messages": [payload]}
        headers = {"Authorization": f"Bearer {self.access_token}"}

        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = client.post(self.push_url, json=body, headers=headers)
            except httpx.HTTPError as exc:
                return PushOutcome(accepted=False, body=f"Gateway unreachable: {exc}")

        if response.is_success:
            logger.debug("Messaging API response: %s", response.status_code)
            return PushOutcome(accepted=True, status_code=response.status_code)
        return PushOutcome(accepted=False, status_code=response.status_code, body=response.text)


class DeliveryLog:
    """Bounded in-memory audit trail of delivered notifications."""

    def __init__(self, max_entries: int = MAX_LOG_ENTRIES) -> None:
        self.max_entries = max_entries
        self.records: List[Dict[str, Any]] = []

    def append(self, entry: Dict[str, Any]) -> None:
        self.records.append(entry)
        if len(self.records) > self.max_entries:
            del self.records[0 : len(self.records) - self.max_entries]


class NotificationDispatcher:
    def __init__(self, client: LineMessagingClient, delivery_log: Optional[DeliveryLog] = None) -> None:
        self.client = client
        self.delivery_log = delivery_log if delivery_log is not None else DeliveryLog()

    @classmethod
    def from_settings(cls, settings: Settings, transport: Optional[httpx.BaseTransport] = None) -> "NotificationDispatcher":
        client = LineMessagingClient(
            access_token=settings.LINE_CHANNEL_ACCESS_TOKEN,
            push_url=settings.LINE_PUSH_URL,
            timeout=settings.GATEWAY_TIMEOUT_SECONDS,
            transport=transport,
        )
        return cls(client)

    def dispatch(self, request: NotificationRequest) -> DispatchResult:
        logger.info(
            "Sending %s notification to user: %s",
            request.notification_type.value,
            request.recipient_id,
        )

        if self.client.dry_run:
            logger.warning("Messaging access token is not configured. Skipping notification.")
            return DispatchResult(status=DispatchStatus.DRY_RUN)

        outcome = self.client.push(request.recipient_id, render_payload(request))
        if not outcome.accepted:
            logger.error(
                "Failed to send notification to %s: %s - %s",
                request.recipient_id,
                outcome.status_code,
                outcome.body,
            )
            return DispatchResult(status=DispatchStatus.FAILED, http_status=outcome.status_code, body=outcome.body)

        logger.info("Notification sent successfully to %s", request.recipient_id)
        self._record_delivery(request)
        return DispatchResult(status=DispatchStatus.DELIVERED, http_status=outcome.status_code)

    def _record_delivery(self, request: NotificationRequest) -> None:
        try:
            self.delivery_log.append(
                {
                    "recipient_id": request.recipient_id,
                    "notification_type": request.notification_type.value,
                    "medicine_id": request.medicine_id,
                    "log_id": request.log_id,
                    "delivered_at": datetime.now(timezone.utc).isoformat(),
                }
            )
            logger.info(
                "Notification logged: user=%s, type=%s, medicine_id=%s",
                request.recipient_id,
                request.notification_type.value,
                request.medicine_id,
            )
        except Exception:
            logger.exception("Failed to log notification for %s", request.recipient_id)
