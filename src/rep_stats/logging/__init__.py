"""Structured logging utilities."""

from .audit import JsonlRunLogger, RunEvent, new_run_id, run_metadata, utc_timestamp

__all__ = ["JsonlRunLogger", "RunEvent", "new_run_id", "run_metadata", "utc_timestamp"]
