"""Temporal worker for the coordination sweeps.

Connects to the configured Temporal server with retries, registers the sweep
workflow and its activities on the coordination task queue, and makes sure
the sweep workflow is running.
"""

import asyncio

from temporalio.client import Client
from temporalio.worker import Worker

from coordinator.core.config import settings
from coordinator.core.database import close_database, init_database
from coordinator.temporal.activities.sweeps import (
    sweep_approval_timeouts,
    sweep_overdue_red_flags,
)
from coordinator.temporal.client import start_sweeps
from coordinator.temporal.workflows.sweeps import CoordinationSweepWorkflow
from coordinator.utils.logging import get_logger

logger = get_logger(__name__)

MAX_CONNECT_ATTEMPTS = 5
CONNECT_RETRY_DELAY_SECONDS = 5


async def connect() -> Client:
    """Connect to Temporal, retrying while the server comes up."""
    for attempt in range(MAX_CONNECT_ATTEMPTS):
        try:
            logger.info(
                f"Connecting to Temporal server at {settings.temporal_target} "
                f"(Attempt {attempt + 1}/{MAX_CONNECT_ATTEMPTS})"
            )
            return await Client.connect(
                settings.temporal_target,
                namespace=settings.temporal.namespace,
            )
        except Exception as e:
            if attempt < MAX_CONNECT_ATTEMPTS - 1:
                logger.warning(
                    f"Connection attempt {attempt + 1} failed: {e}. "
                    f"Retrying in {CONNECT_RETRY_DELAY_SECONDS}s..."
                )
                await asyncio.sleep(CONNECT_RETRY_DELAY_SECONDS)
            else:
                logger.error(f"Failed to connect to Temporal server after {MAX_CONNECT_ATTEMPTS} attempts: {e}")
                raise


def build_worker(client: Client) -> Worker:
    return Worker(
        client,
        task_queue=settings.temporal.task_queue,
        workflows=[CoordinationSweepWorkflow],
        activities=[sweep_approval_timeouts, sweep_overdue_red_flags],
        max_concurrent_activities=4,
    )


async def main():
    """Start the sweep worker."""
    await init_database(auto_migrate=False)
    client = await connect()
    worker = build_worker(client)
    await start_sweeps(client)

    logger.info(f"Worker polling task queue '{settings.temporal.task_queue}'")
    try:
        await worker.run()
    finally:
        await close_database()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Worker stopped by user")
    except Exception as e:
        logger.error(f"Worker failed: {e}", exc_info=True)
        raise
