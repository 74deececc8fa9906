"""
Exception types for the report scheduler and analytics services.

Validation failures are raised before anything reaches the schedule
calculator; generation failures are contained per report by the dispatcher.
"""


class ReportValidationError(ValueError):
    """A report request or schedule descriptor is malformed."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field


class ReportNotFoundError(LookupError):
    """No report definition exists for the given id."""

    def __init__(self, report_id: str):
        super().__init__(f"Report {report_id} not found")
        self.report_id = report_id


class MetricNotFoundError(LookupError):
    """No metric snapshot exists for the given id."""

    def __init__(self, metric_id: str):
        super().__init__(f"Metric {metric_id} not found")
        self.metric_id = metric_id


class GenerationError(Exception):
    """The report builder failed to produce an artifact for one report."""

    def __init__(self, report_id: str, cause: Exception):
        super().__init__(f"Generation failed for report {report_id}: {cause}")
        self.report_id = report_id
        self.cause = cause
