from functools import lru_cache
from typing import Any

from fastapi import Depends, FastAPI

from app.config import get_settings
from app.logging_config import configure_logging
from services.chat_gateway.outbound import NotificationDispatcher
from shared.contracts.models import DispatchResult, NotificationRequest

configure_logging(get_settings())

app = FastAPI(title="chat_gateway")


@lru_cache()
def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher.from_settings(get_settings())


@app.get("/health")
def health() -> dict[str, str | bool]:
    return {
        "status": "ok",
        "service": "chat_gateway",
        "dry_run": get_settings().gateway_dry_run,
    }


@app.post("/send")
def send_message(
    message: NotificationRequest, dispatcher: NotificationDispatcher = Depends(get_dispatcher)
) -> DispatchResult:
    return dispatcher.dispatch(message)


@app.get("/logs")
def logs(dispatcher: NotificationDispatcher = Depends(get_dispatcher)) -> list[dict[str, Any]]:
    return dispatcher.delivery_log.records
