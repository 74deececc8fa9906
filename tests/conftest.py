"""
Pytest configuration and shared fixtures for the feedback analytics test suite.

Provides model factories, an in-memory storage backend, recording report
builders and a fixed clock, reused across unit, property-based and
integration tests.
"""

import os
import tempfile
import threading
import uuid as _uuid
from datetime import datetime, timedelta
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from jose import jwt

# Set testing environment BEFORE importing the app. The DuckDB file must not
# exist yet; DuckDB creates it. A file (not :memory:) is shared by the
# per-thread connections.
_test_db_path = os.path.join(
    tempfile.gettempdir(), f"feedback_analytics_test_{_uuid.uuid4().hex[:8]}.duckdb"
)
_test_report_dir = tempfile.mkdtemp(prefix="feedback_analytics_reports_")
os.environ["TESTING"] = "true"
os.environ["DB_PATH"] = _test_db_path
os.environ["REPORT_OUTPUT_DIR"] = _test_report_dir


# ---------------------------------------------------------------------------
# Pydantic model factories: reusable across all test suites
# ---------------------------------------------------------------------------

from feedback_analytics.config import get_settings
from feedback_analytics.engine.clock import FixedClock
from feedback_analytics.engine.report_builder import ReportBuilder
from feedback_analytics.models.enums import (
    MetricCategory,
    PeriodType,
    ReportType,
    ScheduleUpdateOutcome,
)
from feedback_analytics.models.metrics import MetricSnapshot
from feedback_analytics.models.reports import ReportDefinition
from feedback_analytics.models.schedules import validate_schedule
from feedback_analytics.services.analytics_service import AnalyticsService
from feedback_analytics.services.report_service import ReportService
from feedback_analytics.storage.base import StorageBackend

TEST_ORG_ID = "org_test"
TEST_USER_ID = "user_test"

# Friday 2024-03-15 10:00
REFERENCE_NOW = datetime(2024, 3, 15, 10, 0)


def mint_token(
    organization_id: str = TEST_ORG_ID,
    user_id: Optional[str] = TEST_USER_ID,
    token_type: str = "access",
    expires_in: timedelta = timedelta(minutes=30),
) -> str:
    """Sign a token the way the identity service issues them."""
    settings = get_settings()
    now = datetime.utcnow()
    claims = {"sub": organization_id, "type": token_type, "iat": now, "exp": now + expires_in}
    if user_id is not None:
        claims["uid"] = user_id
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def make_schedule(frequency: str = "daily", time: Optional[str] = "09:00", **fields):
    """Factory function for creating validated schedule descriptors."""
    payload = {"frequency": frequency, **fields}
    if time is not None:
        payload["time"] = time
    return validate_schedule(payload)


def make_report(
    organization_id: str = TEST_ORG_ID,
    name: str = "Weekly engagement",
    schedule=None,
    next_generation_at: Optional[datetime] = None,
    is_active: bool = True,
    **overrides,
) -> ReportDefinition:
    """Factory function for creating test ReportDefinition objects."""
    defaults = dict(
        organization_id=organization_id,
        name=name,
        type=ReportType.USER_ENGAGEMENT,
        schedule=schedule if schedule is not None else make_schedule(),
        metrics=["feedback_completion_rate"],
        recipients=["lead@example.com"],
        is_active=is_active,
        next_generation_at=next_generation_at,
        created_by=TEST_USER_ID,
    )
    defaults.update(overrides)
    return ReportDefinition(**defaults)


def make_snapshot(
    value: float = 10.0,
    period_start: datetime = datetime(2024, 1, 1),
    period_type: PeriodType = PeriodType.MONTHLY,
    name: str = "feedback_completion_rate",
    organization_id: str = TEST_ORG_ID,
    **overrides,
) -> MetricSnapshot:
    """Factory function for creating test MetricSnapshot objects."""
    defaults = dict(
        organization_id=organization_id,
        name=name,
        value=value,
        period_type=period_type,
        period_start=period_start,
        period_end=period_start + timedelta(days=1),
    )
    defaults.update(overrides)
    return MetricSnapshot(**defaults)


def monthly_series(values: list[float], year: int = 2024, **overrides) -> list[MetricSnapshot]:
    """Consecutive monthly snapshots starting in January."""
    return [
        make_snapshot(value=v, period_start=datetime(year, i + 1, 1), **overrides)
        for i, v in enumerate(values)
    ]


# ---------------------------------------------------------------------------
# Mock storage: in-memory backend for pure unit tests
# ---------------------------------------------------------------------------

class MockStorage(StorageBackend):
    """
    In-memory StorageBackend for unit tests.

    Records every mark_generated call so tests can assert exactly-once
    schedule updates.
    """

    def __init__(self):
        self._reports: dict[str, ReportDefinition] = {}
        self._snapshots: list[MetricSnapshot] = []
        self._lock = threading.Lock()
        self.mark_generated_calls: list[str] = []

    # --- Report definitions ---
    def write_report(self, report):
        self._reports[report.id] = report
        return report.id

    def read_report(self, report_id):
        return self._reports.get(report_id)

    def read_reports(self, organization_id, report_type=None):
        results = [r for r in self._reports.values() if r.organization_id == organization_id]
        if report_type is not None:
            results = [r for r in results if r.type == ReportType(report_type)]
        return sorted(results, key=lambda r: r.created_at, reverse=True)

    def update_report(self, report_id, **fields):
        with self._lock:
            report = self._reports.get(report_id)
            if report is None:
                return False
            self._reports[report_id] = report.model_copy(update=fields)
            return True

    def delete_report(self, report_id):
        return self._reports.pop(report_id, None) is not None

    def find_due_reports(self, now, organization_id=None):
        due = [
            r
            for r in self._reports.values()
            if r.is_active
            and r.next_generation_at is not None
            and r.next_generation_at <= now
            and (organization_id is None or r.organization_id == organization_id)
        ]
        return sorted(due, key=lambda r: r.next_generation_at)

    def mark_generated(
        self,
        report_id,
        last_generated_at,
        next_generation_at,
        expected_next_generation_at,
        expected_schedule,
    ):
        with self._lock:
            self.mark_generated_calls.append(report_id)
            report = self._reports.get(report_id)
            if report is None:
                return ScheduleUpdateOutcome.NOT_FOUND
            if (
                report.schedule != expected_schedule
                or report.next_generation_at != expected_next_generation_at
            ):
                return ScheduleUpdateOutcome.SUPERSEDED
            self._reports[report_id] = report.model_copy(
                update={
                    "last_generated_at": last_generated_at,
                    "next_generation_at": next_generation_at,
                    "updated_at": last_generated_at,
                }
            )
            return ScheduleUpdateOutcome.UPDATED

    # --- Metric snapshots ---
    def write_metric_snapshots(self, snapshots):
        self._snapshots.extend(snapshots)
        return len(snapshots)

    def read_metric(self, metric_id):
        return next((s for s in self._snapshots if s.id == metric_id), None)

    def list_metrics(
        self, organization_id, name=None, category=None, period_type=None, start=None, end=None
    ):
        matching = [
            s
            for s in self._snapshots
            if s.organization_id == organization_id
            and (name is None or s.name == name)
            and (category is None or s.category == MetricCategory(category))
            and (period_type is None or s.period_type == PeriodType(period_type))
            and (start is None or s.period_start >= start)
            and (end is None or s.period_start <= end)
        ]
        return sorted(matching, key=lambda s: (s.period_start, s.calculated_at), reverse=True)

    def delete_metric(self, metric_id):
        before = len(self._snapshots)
        self._snapshots = [s for s in self._snapshots if s.id != metric_id]
        return len(self._snapshots) < before

    def find_snapshots(self, organization_id, metric_name, period_type, limit=None):
        matching = sorted(
            (
                s
                for s in self._snapshots
                if s.organization_id == organization_id
                and s.name == metric_name
                and s.period_type == PeriodType(period_type)
            ),
            key=lambda s: s.period_start,
        )
        if limit is not None:
            matching = matching[-limit:] if limit > 0 else []
        return matching

    def find_snapshot_in_period(self, organization_id, metric_name, start, end):
        candidates = [
            s
            for s in self._snapshots
            if s.organization_id == organization_id
            and s.name == metric_name
            and start <= s.period_start <= end
        ]
        return max(candidates, key=lambda s: s.calculated_at, default=None)


class RecordingBuilder(ReportBuilder):
    """Report builder that records calls and fails for selected report ids."""

    def __init__(self, failing: Optional[set[str]] = None):
        self.failing = set(failing or ())
        self.built: list[str] = []
        self._lock = threading.Lock()

    def build(self, report_id):
        with self._lock:
            self.built.append(report_id)
        if report_id in self.failing:
            raise RuntimeError(f"template rendering failed for {report_id}")
        return f"artifact://{report_id}"


# ---------------------------------------------------------------------------
# Pytest fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_storage():
    """Fresh MockStorage instance for each test."""
    return MockStorage()


@pytest.fixture
def recording_builder():
    """Builder that succeeds for every report."""
    return RecordingBuilder()


@pytest.fixture
def fixed_clock():
    """Clock pinned to Friday 2024-03-15 10:00."""
    return FixedClock(REFERENCE_NOW)


@pytest.fixture
def report_service(mock_storage, recording_builder, fixed_clock):
    """ReportService over in-memory storage with a fixed clock."""
    return ReportService(storage=mock_storage, builder=recording_builder, clock=fixed_clock)


@pytest.fixture
def analytics_service(mock_storage):
    """AnalyticsService over in-memory storage."""
    return AnalyticsService(storage=mock_storage, default_periods=12)


@pytest.fixture
def client():
    """FastAPI test client for integration tests."""
    from feedback_analytics.main import app
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_headers():
    """Bearer token headers for the test organization."""
    token = mint_token(TEST_ORG_ID, TEST_USER_ID)
    return {
        "Authorization": f"Bearer {token}",
        "X-Request-ID": str(_uuid.uuid4()),
    }


@pytest.fixture
def other_org_headers():
    """Bearer token headers for an unrelated organization."""
    token = mint_token("org_other", "user_other")
    return {"Authorization": f"Bearer {token}"}
