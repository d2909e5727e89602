from __future__ import annotations

import logging
import secrets
from pathlib import Path

from shared.contracts.models import MedicationReport

logger = logging.getLogger(__name__)


def report_filename(report: MedicationReport, disambiguator: int | None = None) -> str:
    if disambiguator is None:
        disambiguator = secrets.randbits(32)
    return (
        f"medication_report_user{report.user_id}_{report.report_type}_"
        f"{report.generated_at.strftime('%Y%m%d_%H%M%S')}_{disambiguator}.json"
    )


class ReportArtifactWriter:
    """Writes each generated report as a uniquely named JSON document."""

    def __init__(self, reports_dir: str | Path = "reports") -> None:
        self.reports_dir = Path(reports_dir)

    def write(self, report: MedicationReport) -> Path:
        self.reports_dir.mkdir(parents=True, exist_ok=True)
        path = self.reports_dir / report_filename(report)
        path.write_text(report.model_dump_json(indent=2), encoding="utf-8")
        logger.info("Report saved to %s", path)
        return path
