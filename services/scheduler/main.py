from datetime import datetime, timezone
from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel

from app.config import get_settings
from app.logging_config import configure_logging
from medreminder import MedReminderFlow
from services.scheduler.context import TickContext
from shared.contracts.errors import InvalidReportType, StoreUnavailable, UserNotFound
from shared.contracts.models import MedicationReport, ReportRequest, TickResult

configure_logging(get_settings())

app = FastAPI(title="scheduler")


class TickRequest(BaseModel):
    now: datetime | None = None


@lru_cache()
def get_flow() -> MedReminderFlow:
    return MedReminderFlow.from_settings(get_settings())


def _tick_context(now: datetime | None = None) -> TickContext:
    return TickContext(now=now or datetime.now(timezone.utc), tz=get_settings().reminder_tz)


@app.get("/health")
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": "scheduler",
        "reminder_timezone": settings.REMINDER_TIMEZONE,
    }


@app.post("/jobs/tick")
def tick(payload: TickRequest | None = None, flow: MedReminderFlow = Depends(get_flow)) -> TickResult:
    ctx = _tick_context(payload.now if payload else None)
    try:
        return flow.run_tick(ctx)
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=f"Schedule store unavailable: {exc}")


@app.post("/jobs/reports")
def generate_report(payload: ReportRequest, flow: MedReminderFlow = Depends(get_flow)) -> MedicationReport:
    try:
        return flow.generate_report(payload, _tick_context())
    except InvalidReportType as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except UserNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=f"Schedule store unavailable: {exc}")
