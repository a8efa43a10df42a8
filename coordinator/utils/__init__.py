"""Shared utilities."""

from coordinator.utils.logging import get_logger
from coordinator.utils.time import Clock, as_utc, deadline_after, utc_now

__all__ = ["get_logger", "Clock", "as_utc", "deadline_after", "utc_now"]
