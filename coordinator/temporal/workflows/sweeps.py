"""Long-running workflow that drives the periodic coordination sweeps."""

from datetime import timedelta
from typing import Optional

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from coordinator.temporal.activities.sweeps import (
        sweep_approval_timeouts,
        sweep_overdue_red_flags,
    )

SWEEP_TIMEOUT = timedelta(minutes=5)
SWEEP_RETRY = RetryPolicy(
    initial_interval=timedelta(seconds=5),
    maximum_interval=timedelta(minutes=1),
    maximum_attempts=3,
)


@workflow.defn
class CoordinationSweepWorkflow:
    """Runs the approval-timeout and overdue red-flag sweeps on a fixed interval.

    Continues as new after ``iterations_before_reset`` rounds so the event
    history stays bounded.
    """

    def __init__(self):
        self._iterations = 0
        self._last_timeouts: Optional[int] = None
        self._last_red_flags: Optional[dict] = None

    @workflow.query
    def get_status(self) -> dict:
        """Query handler for the most recent sweep results."""
        return {
            "iterations": self._iterations,
            "last_approval_timeouts": self._last_timeouts,
            "last_red_flag_sweep": self._last_red_flags,
        }

    @workflow.run
    async def run(self, interval_seconds: int, iterations_before_reset: int = 100) -> None:
        while True:
            self._last_timeouts = await workflow.execute_activity(
                sweep_approval_timeouts,
                start_to_close_timeout=SWEEP_TIMEOUT,
                retry_policy=SWEEP_RETRY,
            )
            self._last_red_flags = await workflow.execute_activity(
                sweep_overdue_red_flags,
                start_to_close_timeout=SWEEP_TIMEOUT,
                retry_policy=SWEEP_RETRY,
            )
            self._iterations += 1

            if self._iterations >= iterations_before_reset:
                workflow.logger.info(f"Sweep history reset after {self._iterations} rounds")
                workflow.continue_as_new(args=[interval_seconds, iterations_before_reset])

            await workflow.sleep(timedelta(seconds=interval_seconds))
