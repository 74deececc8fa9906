"""Scheduled report generation and metric analytics for the feedback platform."""

__version__ = "0.1.0"
