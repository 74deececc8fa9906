"""
Report Builder: produces the artifact for one report definition.

The dispatcher only depends on the ``ReportBuilder`` interface. The default
``MetricsReportBuilder`` renders the trend of every metric named by the
report into a JSON document under the configured output directory; PDF and
spreadsheet rendering are handled by downstream exporters.
"""

import json
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import structlog

from feedback_analytics.errors import ReportNotFoundError
from feedback_analytics.models.enums import PeriodType
from feedback_analytics.storage.base import StorageBackend

from .trend_builder import build_trend

logger = structlog.get_logger()


class ReportBuilder(ABC):
    """Builds one report artifact. Implementations may raise on failure."""

    @abstractmethod
    def build(self, report_id: str) -> Any:
        """
        Produce the artifact for a report.

        Args:
            report_id: ID of the report definition to build

        Returns:
            Opaque artifact (path, bytes, URL ...)
        """
        pass


class MetricsReportBuilder(ReportBuilder):
    """
    Renders metric trends for a report into a JSON file.

    The period granularity comes from the report's ``filters["periodType"]``
    (default monthly) and the number of periods from ``filters["periods"]``.

    Attributes:
        storage: Storage backend for report definitions and snapshots
        output_dir: Directory receiving generated artifacts
        default_periods: Trend length when the report does not specify one
    """

    def __init__(
        self,
        storage: StorageBackend,
        output_dir: str | Path = "./reports",
        default_periods: int = 12,
    ):
        self.storage = storage
        self.output_dir = Path(output_dir)
        self.default_periods = default_periods
        self.logger = structlog.get_logger()

    def build(self, report_id: str) -> Path:
        report = self.storage.read_report(report_id)
        if report is None:
            raise ReportNotFoundError(report_id)

        period_type = PeriodType(report.filters.get("periodType", PeriodType.MONTHLY.value))
        periods = int(report.filters.get("periods", self.default_periods))

        sections = []
        for metric_name in report.metrics:
            snapshots = self.storage.find_snapshots(
                organization_id=report.organization_id,
                metric_name=metric_name,
                period_type=period_type,
                limit=periods,
            )
            trend = build_trend(snapshots, sort=True)
            sections.append(
                {
                    "metric": metric_name,
                    "trend": [point.model_dump(mode="json") for point in trend],
                }
            )

        document = {
            "report_id": report.id,
            "name": report.name,
            "type": report.type.value,
            "format": report.format.value,
            "period_type": period_type.value,
            "built_at": datetime.utcnow().isoformat(),
            "metrics": sections,
        }

        path = self._artifact_path(report.organization_id, report.id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(document, indent=2), encoding="utf-8")

        self.logger.info(
            "report_artifact_written",
            report_id=report.id,
            path=str(path),
            metric_count=len(sections),
        )
        return path

    def _artifact_path(self, organization_id: Optional[str], report_id: str) -> Path:
        stamp = datetime.utcnow().strftime("%Y%m%dT%H%M%S%f")
        return self.output_dir / (organization_id or "shared") / f"{report_id}_{stamp}.json"
