"""Queue lifecycle listeners."""

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from browser_bot.jobs.job import Job


logger = logging.getLogger(__name__)


class QueueListener:
    """
    Observer for job lifecycle events. Override only what you need.

    Callbacks are synchronous and must not block; an exception raised by a
    listener is logged by the queue and never affects job state.
    """

    def on_waiting(self, job: "Job") -> None:
        pass

    def on_active(self, job: "Job") -> None:
        pass

    def on_progress(self, job: "Job", progress: int) -> None:
        pass

    def on_completed(self, job: "Job", result: Any) -> None:
        pass

    def on_failed(self, job: "Job", error: BaseException) -> None:
        pass

    def on_stalled(self, job: "Job") -> None:
        pass

    def on_error(self, error: BaseException) -> None:
        pass


class LoggingQueueListener(QueueListener):
    """Writes every lifecycle event to the log."""

    def on_waiting(self, job):
        logger.debug(f"Job waiting: {job.id}")

    def on_active(self, job):
        logger.info(
            f"Job started: {job.id} (execution {job.execution_id}, attempt {job.attempts_made + 1})"
        )

    def on_progress(self, job, progress):
        logger.debug(f"Job {job.id} progress: {progress}%")

    def on_completed(self, job, result):
        duration = (job.finished_on or 0) - job.timestamp
        logger.info(f"Job completed: {job.id} (execution {job.execution_id}, {duration}ms)")

    def on_failed(self, job, error):
        logger.error(
            f"Job failed: {job.id} (execution {job.execution_id}): {error} "
            f"[attempts made: {job.attempts_made}, left: {job.attempts_left}]"
        )

    def on_stalled(self, job):
        logger.warning(f"Job stalled: {job.id} (execution {job.execution_id})")

    def on_error(self, error):
        logger.error(f"Queue error: {error}")
