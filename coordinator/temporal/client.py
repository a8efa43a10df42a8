"""Temporal client connection management and sweep scheduling."""

from typing import Optional

from temporalio.client import Client as TemporalClient
from temporalio.common import WorkflowIDReusePolicy
from temporalio.exceptions import WorkflowAlreadyStartedError

from coordinator.core.config import settings
from coordinator.temporal.workflows.sweeps import CoordinationSweepWorkflow
from coordinator.utils.logging import get_logger

LOGGER = get_logger(__name__)


class TemporalClientManager:
    """Manages Temporal client connection.

    Lazily creates a Temporal client and keeps it around for reuse.
    """

    _client: Optional[TemporalClient] = None

    async def get_client(self) -> TemporalClient:
        if self._client is None:
            self._client = await TemporalClient.connect(
                settings.temporal_target,
                namespace=settings.temporal.namespace,
            )
        return self._client


# Global Temporal client manager instance
_temporal_manager = TemporalClientManager()


async def get_temporal_client() -> TemporalClient:
    return await _temporal_manager.get_client()


async def start_sweeps(client: Optional[TemporalClient] = None) -> Optional[str]:
    """Launch the sweep workflow under its fixed id.

    Returns:
        The run id, or None when a sweep workflow is already running
    """
    client = client or await get_temporal_client()
    interval = min(
        settings.sweeps.approval_timeout_interval_seconds,
        settings.sweeps.red_flag_interval_seconds,
    )
    try:
        handle = await client.start_workflow(
            CoordinationSweepWorkflow.run,
            args=[interval, settings.sweeps.iterations_before_reset],
            id=settings.sweeps.workflow_id,
            task_queue=settings.temporal.task_queue,
            id_reuse_policy=WorkflowIDReusePolicy.ALLOW_DUPLICATE,
        )
    except WorkflowAlreadyStartedError:
        LOGGER.info(f"Sweep workflow {settings.sweeps.workflow_id} is already running")
        return None

    LOGGER.info(f"Started sweep workflow {handle.id} every {interval}s")
    return handle.result_run_id
