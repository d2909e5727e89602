import json
from datetime import time

import httpx
import pytest

from medreminder import MedReminderFlow
from services.chat_gateway.outbound import LineMessagingClient, NotificationDispatcher
from shared.contracts.enums import DoseStatus, ErrorKind
from shared.contracts.errors import StoreUnavailable

from conftest import tick_at


def _flow(store, handler=None, token="live-token") -> MedReminderFlow:
    transport = httpx.MockTransport(handler or (lambda request: httpx.Response(200, json={})))
    dispatcher = NotificationDispatcher(LineMessagingClient(token, transport=transport))
    return MedReminderFlow(store=store, dispatcher=dispatcher)


def test_tick_sends_reminder_then_escalates_missed_dose(store, seeder):
    pushed = []

    def handler(request: httpx.Request) -> httpx.Response:
        pushed.append(json.loads(request.content))
        return httpx.Response(200, json={})

    medicine = seeder.medicine(seeder.user(line_user_id="U-flow"), name="Aspirin")
    seeder.schedule(medicine, at=time(8, 0))
    flow = _flow(store, handler)

    first = flow.run_tick(tick_at(2026, 1, 5, 8, 0))
    assert first.reminders.logs_created == 1
    assert first.delivered == 1

    retried = flow.run_tick(tick_at(2026, 1, 5, 8, 0))
    assert retried.reminders.logs_created == 0
    assert retried.delivered == 0

    later = flow.run_tick(tick_at(2026, 1, 5, 8, 30))
    assert later.reminders.matched == 0
    assert later.missed.logs_missed == 1
    assert later.delivered == 1
    assert seeder.logs()[0].status == DoseStatus.MISSED

    headers = [p["messages"][0]["altText"] for p in pushed]
    assert headers == ["Medication reminder", "Missed dose"]
    assert len(flow.dispatcher.delivery_log.records) == 2


def test_tick_without_token_is_dry_run(store, seeder):
    medicine = seeder.medicine(seeder.user())
    seeder.schedule(medicine, at=time(8, 0))

    result = _flow(store, token=None).run_tick(tick_at(2026, 1, 5, 8, 0))

    assert result.dry_run == 1
    assert result.delivered == 0
    assert result.failed == 0


def test_failed_delivery_is_recorded_but_log_stays(store, seeder):
    medicine = seeder.medicine(seeder.user())
    seeder.schedule(medicine, at=time(8, 0))
    flow = _flow(store, lambda request: httpx.Response(500, text="upstream down"))

    result = flow.run_tick(tick_at(2026, 1, 5, 8, 0))

    assert result.failed == 1
    assert result.delivery_errors[0].kind == ErrorKind.DELIVERY_FAILED
    assert "upstream down" in result.delivery_errors[0].detail
    assert len(seeder.logs()) == 1


def test_reminders_are_sent_even_when_missed_dose_pass_hits_outage(store, seeder):
    pushed = []

    def handler(request: httpx.Request) -> httpx.Response:
        pushed.append(json.loads(request.content))
        return httpx.Response(200, json={})

    medicine = seeder.medicine(seeder.user(line_user_id="U-outage"), name="Aspirin")
    seeder.schedule(medicine, at=time(8, 0))
    healthy_list_pending_logs = store.list_pending_logs

    def unavailable(start, end):
        raise StoreUnavailable("connection reset")

    store.list_pending_logs = unavailable
    flow = _flow(store, handler)

    with pytest.raises(StoreUnavailable):
        flow.run_tick(tick_at(2026, 1, 5, 8, 0))

    assert len(seeder.logs()) == 1
    assert [p["to"] for p in pushed] == ["U-outage"]

    store.list_pending_logs = healthy_list_pending_logs
    retried = flow.run_tick(tick_at(2026, 1, 5, 8, 0))

    assert retried.reminders.logs_created == 0
    assert len(pushed) == 1
