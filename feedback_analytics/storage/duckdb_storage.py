"""
DuckDB storage implementation for the analytics and report services.

Key features:
- Thread-safe access with per-thread connections
- Automatic, idempotent schema creation
- JSON columns for schedules, filters and list fields
- Compare-and-set schedule updates for the report dispatcher
"""

import json
import os
import threading
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import duckdb
import structlog

from feedback_analytics.models.enums import (
    MetricCategory,
    PeriodType,
    ReportType,
    ScheduleUpdateOutcome,
)
from feedback_analytics.models.metrics import MetricSnapshot
from feedback_analytics.models.reports import ReportDefinition
from feedback_analytics.models.schedules import (
    ScheduleDescriptor,
    schedule_to_dict,
    validate_schedule,
)

from .base import StorageBackend

logger = structlog.get_logger(__name__)


class StorageError(Exception):
    """Base exception for all storage operation failures."""

    pass


_REPORT_COLUMNS = """
    id, organization_id, name, description, type, format, schedule, filters,
    metrics, recipients, is_active, last_generated_at, next_generation_at,
    created_by, created_at, updated_at
"""

_SNAPSHOT_COLUMNS = """
    id, organization_id, name, value, period_type, period_start, period_end,
    calculated_at, category, metric_type, unit, description, metadata
"""

# Whitelist of updatable report columns to prevent SQL injection
_UPDATABLE_REPORT_COLUMNS = {
    "name", "description", "type", "format", "schedule", "filters", "metrics",
    "recipients", "is_active", "last_generated_at", "next_generation_at",
    "updated_at",
}
_JSON_REPORT_COLUMNS = {"schedule", "filters", "metrics", "recipients"}


def _to_db_value(key: str, value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if key == "schedule" and value is not None and not isinstance(value, dict):
        return json.dumps(schedule_to_dict(value))
    if key in _JSON_REPORT_COLUMNS and value is not None:
        return json.dumps(value)
    return value


class DuckDBStorage(StorageBackend):
    """
    DuckDB implementation of the storage backend.

    Attributes:
        db_path: Path to the DuckDB database file
        _local: Thread-local storage for per-thread connections
        _lock: Thread lock for schema operations
        _initialized: Flag tracking whether schema is initialized
    """

    def __init__(self, db_path: str = "./data/feedback_analytics.duckdb"):
        """
        Initialize DuckDB storage backend.

        Args:
            db_path: Path to DuckDB database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._local = threading.local()
        self._lock = threading.Lock()
        self._initialized = False

        logger.info("duckdb_storage_initialized", db_path=str(self.db_path))

        self._initialize_schema()

    @contextmanager
    def _get_connection(self):
        """
        Get a thread-local DuckDB connection.

        Yields:
            DuckDB connection instance

        Raises:
            StorageError: If connection cannot be established
        """
        if not hasattr(self._local, "connection"):
            try:
                self._local.connection = duckdb.connect(str(self.db_path))
                logger.debug("duckdb_connection_created", thread_id=threading.get_ident())
            except Exception as e:
                logger.error("duckdb_connection_failed", error=str(e))
                raise StorageError(f"Failed to connect to DuckDB: {e}") from e

        try:
            yield self._local.connection
        except Exception:
            try:
                self._local.connection.rollback()
            except Exception:
                pass
            raise

    def _initialize_schema(self):
        """
        Create tables and indexes. Idempotent.

        Raises:
            StorageError: If schema creation fails
        """
        if self._initialized:
            return

        with self._lock:
            if self._initialized:
                return

            try:
                with self._get_connection() as conn:
                    conn.execute("""
                        CREATE TABLE IF NOT EXISTS report_definitions (
                            id VARCHAR PRIMARY KEY,
                            organization_id VARCHAR NOT NULL,
                            name VARCHAR NOT NULL,
                            description VARCHAR,
                            type VARCHAR NOT NULL,
                            format VARCHAR NOT NULL,
                            schedule JSON,
                            filters JSON NOT NULL,
                            metrics JSON NOT NULL,
                            recipients JSON NOT NULL,
                            is_active BOOLEAN NOT NULL DEFAULT TRUE,
                            last_generated_at TIMESTAMP,
                            next_generation_at TIMESTAMP,
                            created_by VARCHAR NOT NULL,
                            created_at TIMESTAMP NOT NULL,
                            updated_at TIMESTAMP NOT NULL
                        )
                    """)

                    conn.execute("""
                        CREATE INDEX IF NOT EXISTS idx_reports_organization
                        ON report_definitions(organization_id)
                    """)

                    conn.execute("""
                        CREATE TABLE IF NOT EXISTS metric_snapshots (
                            id VARCHAR PRIMARY KEY,
                            organization_id VARCHAR,
                            name VARCHAR NOT NULL,
                            value DOUBLE NOT NULL,
                            period_type VARCHAR NOT NULL,
                            period_start TIMESTAMP NOT NULL,
                            period_end TIMESTAMP NOT NULL,
                            calculated_at TIMESTAMP NOT NULL,
                            category VARCHAR NOT NULL,
                            metric_type VARCHAR NOT NULL,
                            unit VARCHAR,
                            description VARCHAR,
                            metadata JSON
                        )
                    """)

                    conn.execute("""
                        CREATE INDEX IF NOT EXISTS idx_snapshots_lookup
                        ON metric_snapshots(organization_id, name, period_type)
                    """)

                    self._initialized = True
                    logger.info("duckdb_schema_initialized")

            except Exception as e:
                logger.error("duckdb_schema_initialization_failed", error=str(e))
                raise StorageError(f"Failed to initialize schema: {e}") from e

    def clear_for_testing(self) -> None:
        """
        Truncate all tables. For testing only, active when TESTING is set.
        """
        if not os.environ.get("TESTING"):
            return
        with self._get_connection() as conn:
            for table in ("report_definitions", "metric_snapshots"):
                conn.execute(f"DELETE FROM {table}")

    # =========================================================================
    # Report Definitions
    # =========================================================================

    def write_report(self, report: ReportDefinition) -> str:
        """Insert a report definition."""
        try:
            with self._get_connection() as conn:
                conn.execute(
                    f"""
                    INSERT INTO report_definitions ({_REPORT_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        report.id,
                        report.organization_id,
                        report.name,
                        report.description,
                        report.type.value,
                        report.format.value,
                        _to_db_value("schedule", report.schedule),
                        json.dumps(report.filters),
                        json.dumps(report.metrics),
                        json.dumps(report.recipients),
                        report.is_active,
                        report.last_generated_at,
                        report.next_generation_at,
                        report.created_by,
                        report.created_at,
                        report.updated_at,
                    ],
                )
                logger.info("report_written", report_id=report.id)
                return report.id

        except Exception as e:
            logger.error("write_report_failed", error=str(e))
            raise StorageError(f"Failed to write report: {e}") from e

    def read_report(self, report_id: str) -> Optional[ReportDefinition]:
        """Read a single report definition."""
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    f"SELECT {_REPORT_COLUMNS} FROM report_definitions WHERE id = ?",
                    [report_id],
                ).fetchone()
                return self._row_to_report(row) if row else None

        except Exception as e:
            logger.error("read_report_failed", report_id=report_id, error=str(e))
            raise StorageError(f"Failed to read report: {e}") from e

    def read_reports(
        self,
        organization_id: str,
        report_type: Optional[ReportType] = None,
    ) -> list[ReportDefinition]:
        """Read report definitions of an organization, newest first."""
        try:
            with self._get_connection() as conn:
                query = f"""
                    SELECT {_REPORT_COLUMNS}
                    FROM report_definitions
                    WHERE organization_id = ?
                """
                params: list[Any] = [organization_id]

                if report_type is not None:
                    query += " AND type = ?"
                    params.append(ReportType(report_type).value)

                query += " ORDER BY created_at DESC"

                rows = conn.execute(query, params).fetchall()
                reports = [self._row_to_report(row) for row in rows]
                logger.debug("reports_read", count=len(reports))
                return reports

        except Exception as e:
            logger.error("read_reports_failed", error=str(e))
            raise StorageError(f"Failed to read reports: {e}") from e

    def update_report(self, report_id: str, **fields: Any) -> bool:
        """Update whitelisted fields of a report definition."""
        if not fields:
            return False

        set_clauses = []
        params: list[Any] = []
        for key, value in fields.items():
            if key not in _UPDATABLE_REPORT_COLUMNS:
                raise ValueError(f"Invalid column: {key}")
            set_clauses.append(f"{key} = ?")
            params.append(_to_db_value(key, value))

        params.append(report_id)

        try:
            with self._get_connection() as conn:
                exists = conn.execute(
                    "SELECT 1 FROM report_definitions WHERE id = ?", [report_id]
                ).fetchone()
                if exists is None:
                    return False

                conn.execute(
                    f"""
                    UPDATE report_definitions
                    SET {', '.join(set_clauses)}
                    WHERE id = ?
                    """,
                    params,
                )
                return True

        except Exception as e:
            logger.error("update_report_failed", report_id=report_id, error=str(e))
            raise StorageError(f"Failed to update report: {e}") from e

    def delete_report(self, report_id: str) -> bool:
        """Delete a report definition."""
        try:
            with self._get_connection() as conn:
                exists = conn.execute(
                    "SELECT 1 FROM report_definitions WHERE id = ?", [report_id]
                ).fetchone()
                if exists is None:
                    return False
                conn.execute("DELETE FROM report_definitions WHERE id = ?", [report_id])
                return True

        except Exception as e:
            logger.error("delete_report_failed", report_id=report_id, error=str(e))
            raise StorageError(f"Failed to delete report: {e}") from e

    def find_due_reports(
        self,
        now: datetime,
        organization_id: Optional[str] = None,
    ) -> list[ReportDefinition]:
        """Active reports whose next_generation_at is at or before now."""
        try:
            with self._get_connection() as conn:
                query = f"""
                    SELECT {_REPORT_COLUMNS}
                    FROM report_definitions
                    WHERE is_active = TRUE
                      AND next_generation_at IS NOT NULL
                      AND next_generation_at <= ?
                """
                params: list[Any] = [now]

                if organization_id is not None:
                    query += " AND organization_id = ?"
                    params.append(organization_id)

                query += " ORDER BY next_generation_at"

                rows = conn.execute(query, params).fetchall()
                return [self._row_to_report(row) for row in rows]

        except Exception as e:
            logger.error("find_due_reports_failed", error=str(e))
            raise StorageError(f"Failed to find due reports: {e}") from e

    def mark_generated(
        self,
        report_id: str,
        last_generated_at: datetime,
        next_generation_at: Optional[datetime],
        expected_next_generation_at: Optional[datetime],
        expected_schedule: Optional[ScheduleDescriptor],
    ) -> ScheduleUpdateOutcome:
        """Compare-and-set the schedule columns in one transaction."""
        try:
            with self._get_connection() as conn:
                conn.begin()
                row = conn.execute(
                    "SELECT schedule, next_generation_at FROM report_definitions WHERE id = ?",
                    [report_id],
                ).fetchone()
                if row is None:
                    conn.rollback()
                    return ScheduleUpdateOutcome.NOT_FOUND

                stored_schedule = validate_schedule(json.loads(row[0])) if row[0] else None
                if stored_schedule != expected_schedule or row[1] != expected_next_generation_at:
                    conn.rollback()
                    logger.info("mark_generated_superseded", report_id=report_id)
                    return ScheduleUpdateOutcome.SUPERSEDED

                conn.execute(
                    """
                    UPDATE report_definitions
                    SET last_generated_at = ?, next_generation_at = ?, updated_at = ?
                    WHERE id = ? AND next_generation_at IS NOT DISTINCT FROM ?
                    """,
                    [
                        last_generated_at,
                        next_generation_at,
                        last_generated_at,
                        report_id,
                        expected_next_generation_at,
                    ],
                )
                conn.commit()
                return ScheduleUpdateOutcome.UPDATED

        except Exception as e:
            logger.error("mark_generated_failed", report_id=report_id, error=str(e))
            raise StorageError(f"Failed to record generation: {e}") from e

    def _row_to_report(self, row: tuple) -> ReportDefinition:
        return ReportDefinition(
            id=row[0],
            organization_id=row[1],
            name=row[2],
            description=row[3],
            type=row[4],
            format=row[5],
            schedule=json.loads(row[6]) if row[6] else None,
            filters=json.loads(row[7]) if row[7] else {},
            metrics=json.loads(row[8]) if row[8] else [],
            recipients=json.loads(row[9]) if row[9] else [],
            is_active=row[10],
            last_generated_at=row[11],
            next_generation_at=row[12],
            created_by=row[13],
            created_at=row[14],
            updated_at=row[15],
        )

    # =========================================================================
    # Metric Snapshots
    # =========================================================================

    def write_metric_snapshots(self, snapshots: list[MetricSnapshot]) -> int:
        """Append metric snapshots in one batch."""
        if not snapshots:
            return 0

        try:
            with self._get_connection() as conn:
                conn.executemany(
                    f"""
                    INSERT INTO metric_snapshots ({_SNAPSHOT_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        [
                            s.id,
                            s.organization_id,
                            s.name,
                            s.value,
                            s.period_type.value,
                            s.period_start,
                            s.period_end,
                            s.calculated_at,
                            s.category.value,
                            s.metric_type.value,
                            s.unit,
                            s.description,
                            json.dumps(s.metadata),
                        ]
                        for s in snapshots
                    ],
                )
                logger.info("metric_snapshots_written", count=len(snapshots))
                return len(snapshots)

        except Exception as e:
            logger.error("write_metric_snapshots_failed", error=str(e))
            raise StorageError(f"Failed to write metric snapshots: {e}") from e

    def read_metric(self, metric_id: str) -> Optional[MetricSnapshot]:
        """Read a single metric snapshot."""
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    f"SELECT {_SNAPSHOT_COLUMNS} FROM metric_snapshots WHERE id = ?",
                    [metric_id],
                ).fetchone()
                return self._row_to_snapshot(row) if row else None

        except Exception as e:
            logger.error("read_metric_failed", metric_id=metric_id, error=str(e))
            raise StorageError(f"Failed to read metric: {e}") from e

    def list_metrics(
        self,
        organization_id: str,
        name: Optional[str] = None,
        category: Optional[MetricCategory] = None,
        period_type: Optional[PeriodType] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[MetricSnapshot]:
        """Snapshots of an organization, most recent period first."""
        try:
            with self._get_connection() as conn:
                query = f"""
                    SELECT {_SNAPSHOT_COLUMNS}
                    FROM metric_snapshots
                    WHERE organization_id = ?
                """
                params: list[Any] = [organization_id]

                if name is not None:
                    query += " AND name = ?"
                    params.append(name)
                if category is not None:
                    query += " AND category = ?"
                    params.append(MetricCategory(category).value)
                if period_type is not None:
                    query += " AND period_type = ?"
                    params.append(PeriodType(period_type).value)
                if start is not None:
                    query += " AND period_start >= ?"
                    params.append(start)
                if end is not None:
                    query += " AND period_start <= ?"
                    params.append(end)

                query += " ORDER BY period_start DESC, calculated_at DESC"

                rows = conn.execute(query, params).fetchall()
                metrics = [self._row_to_snapshot(row) for row in rows]
                logger.debug("metrics_listed", count=len(metrics))
                return metrics

        except Exception as e:
            logger.error("list_metrics_failed", error=str(e))
            raise StorageError(f"Failed to list metrics: {e}") from e

    def delete_metric(self, metric_id: str) -> bool:
        """Delete a metric snapshot."""
        try:
            with self._get_connection() as conn:
                exists = conn.execute(
                    "SELECT 1 FROM metric_snapshots WHERE id = ?", [metric_id]
                ).fetchone()
                if exists is None:
                    return False
                conn.execute("DELETE FROM metric_snapshots WHERE id = ?", [metric_id])
                return True

        except Exception as e:
            logger.error("delete_metric_failed", metric_id=metric_id, error=str(e))
            raise StorageError(f"Failed to delete metric: {e}") from e

    def find_snapshots(
        self,
        organization_id: str,
        metric_name: str,
        period_type: PeriodType,
        limit: Optional[int] = None,
    ) -> list[MetricSnapshot]:
        """Snapshots of one metric ascending by period_start."""
        try:
            with self._get_connection() as conn:
                query = f"""
                    SELECT {_SNAPSHOT_COLUMNS}
                    FROM metric_snapshots
                    WHERE organization_id = ? AND name = ? AND period_type = ?
                    ORDER BY period_start DESC
                """
                params: list[Any] = [organization_id, metric_name, PeriodType(period_type).value]

                if limit is not None:
                    query += " LIMIT ?"
                    params.append(limit)

                rows = conn.execute(query, params).fetchall()
                snapshots = [self._row_to_snapshot(row) for row in reversed(rows)]
                logger.debug("metric_snapshots_read", metric_name=metric_name, count=len(snapshots))
                return snapshots

        except Exception as e:
            logger.error("find_snapshots_failed", metric_name=metric_name, error=str(e))
            raise StorageError(f"Failed to read metric snapshots: {e}") from e

    def find_snapshot_in_period(
        self,
        organization_id: str,
        metric_name: str,
        start: datetime,
        end: datetime,
    ) -> Optional[MetricSnapshot]:
        """Latest snapshot of a metric whose period starts within [start, end]."""
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    f"""
                    SELECT {_SNAPSHOT_COLUMNS}
                    FROM metric_snapshots
                    WHERE organization_id = ? AND name = ?
                      AND period_start >= ? AND period_start <= ?
                    ORDER BY calculated_at DESC
                    LIMIT 1
                    """,
                    [organization_id, metric_name, start, end],
                ).fetchone()
                return self._row_to_snapshot(row) if row else None

        except Exception as e:
            logger.error("find_snapshot_in_period_failed", metric_name=metric_name, error=str(e))
            raise StorageError(f"Failed to read metric snapshot: {e}") from e

    def _row_to_snapshot(self, row: tuple) -> MetricSnapshot:
        return MetricSnapshot(
            id=row[0],
            organization_id=row[1],
            name=row[2],
            value=row[3],
            period_type=row[4],
            period_start=row[5],
            period_end=row[6],
            calculated_at=row[7],
            category=row[8],
            metric_type=row[9],
            unit=row[10],
            description=row[11],
            metadata=json.loads(row[12]) if row[12] else {},
        )
