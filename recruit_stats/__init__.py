"""Recruitment funnel statistics: event log, dirty tracking and daily aggregation."""

__version__ = "1.0.0"
