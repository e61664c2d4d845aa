"""Queue worker - runs one automation job per browser session."""

import asyncio
import contextlib
import logging
import time
import uuid
from datetime import datetime, timezone
from enum import IntEnum
from typing import Iterable, Optional

import redis

from browser_bot.ai.script import resolve_steps
from browser_bot.browser.artifacts import ArtifactStore
from browser_bot.browser.controller import BrowserController
from browser_bot.browser.pool import BrowserPool
from browser_bot.config import (
    DEFAULT_TIMEOUT_MS,
    POST_RUN_SETTLE_MS,
    STALLED_INTERVAL_SECONDS,
    WORKER_CONCURRENCY,
    WORKER_POLL_INTERVAL_SECONDS,
)
from browser_bot.exceptions import QueueError
from browser_bot.jobs.events import LoggingQueueListener, QueueListener
from browser_bot.jobs.job import Job
from browser_bot.jobs.queue import AutomationQueue
from browser_bot.orchestrator.executor import StepExecutor, count_failures
from browser_bot.store.execution_store import ExecutionStatus, ExecutionStore

logger = logging.getLogger(__name__)

# Wait after a broker error before polling again
ERROR_BACKOFF_SECONDS = 5.0


class JobProgress(IntEnum):
    STARTED = 10
    SESSION_ACQUIRED = 20
    CONTEXT_CREATED = 30
    STEPS_COMPLETED = 70
    SCREENSHOT_SAVED = 85
    CONTEXT_CLOSED = 90
    SESSION_RELEASED = 95
    PERSISTED = 100


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class AutomationWorker:
    """
    Consumes automation jobs from the queue.

    Architecture: one job per slot
    - Up to ``concurrency`` jobs run at once, each in its own browsing
      context on a pooled browser session
    - Each active job's lock is renewed by a heartbeat task; a periodic
      stalled check requeues jobs whose worker died
    - A failed job is marked failed in the store and re-raised to the queue,
      which retries it with exponential backoff until attempts run out
    """

    def __init__(
        self,
        queue: Optional[AutomationQueue],
        pool: BrowserPool,
        store: ExecutionStore,
        executor: Optional[StepExecutor] = None,
        artifacts: Optional[ArtifactStore] = None,
        concurrency: int = WORKER_CONCURRENCY,
        poll_interval: float = WORKER_POLL_INTERVAL_SECONDS,
        stalled_interval: float = STALLED_INTERVAL_SECONDS,
        settle_ms: float = POST_RUN_SETTLE_MS,
        listeners: Optional[Iterable[QueueListener]] = None,
    ):
        self.queue = queue
        self.pool = pool
        self.store = store
        self.executor = executor or StepExecutor()
        self.artifacts = artifacts or ArtifactStore()
        if concurrency > pool.max_browsers:
            logger.warning(
                f"Worker concurrency {concurrency} exceeds the browser pool bound {pool.max_browsers}; "
                f"running {pool.max_browsers} jobs at a time"
            )
        # Every job slot holds one session, so slots bound the pool size
        self.concurrency = max(1, min(concurrency, pool.max_browsers))
        self.poll_interval = poll_interval
        self.stalled_interval = stalled_interval
        self.settle_ms = settle_ms
        self.listeners = list(listeners) if listeners is not None else [LoggingQueueListener()]

        self._running = False
        self._stop_event = asyncio.Event()
        self._tasks: set[asyncio.Task] = set()

    @property
    def active_jobs(self) -> int:
        return len(self._tasks)

    # ===== One job =====

    async def _progress(self, job: Job, progress: JobProgress) -> None:
        if self.queue is None:
            job.progress = int(progress)
            return
        await self.queue.update_progress(job, int(progress))

    async def process_job(self, job: Job) -> dict:
        """
        Run one job end to end and persist the outcome.

        Raises:
            Any error that made the attempt fail, after the execution has been
            marked failed and the browser resources released.
        """
        execution_id = job.execution_id
        prompt = job.data.get("prompt")
        steps = resolve_steps(job.data.get("steps"), prompt)
        started = time.monotonic()

        logger.info(
            f"Processing job {job.id} (execution {execution_id}, {len(steps)} steps, "
            f"attempt {job.attempts_made + 1}/{job.max_attempts})"
        )

        session = None
        context = None
        try:
            await self._progress(job, JobProgress.STARTED)

            session = await self.pool.acquire()
            await self._progress(job, JobProgress.SESSION_ACQUIRED)

            context = await self.pool.new_context(session)
            page = await context.new_page()
            page.set_default_timeout(DEFAULT_TIMEOUT_MS)
            page.set_default_navigation_timeout(DEFAULT_TIMEOUT_MS)
            controller = BrowserController(page, context)
            await self._progress(job, JobProgress.CONTEXT_CREATED)

            results = await self.executor.run(controller, steps)
            await self._progress(job, JobProgress.STEPS_COMPLETED)

            # Let late network activity finish before the final capture
            await asyncio.sleep(self.settle_ms / 1000)
            screenshot_url = self.artifacts.save_screenshot(await controller.screenshot(full_page=True))
            await self._progress(job, JobProgress.SCREENSHOT_SAVED)

            # The video file is only complete once its context is closed
            video = page.video
            await controller.close_context()
            context = None
            video_url = self.artifacts.video_url(await video.path()) if video else None
            await self._progress(job, JobProgress.CONTEXT_CLOSED)

            await self.pool.release(session)
            session = None
            await self._progress(job, JobProgress.SESSION_RELEASED)

            await self.store.update_execution(
                execution_id,
                status=ExecutionStatus.SUCCESS,
                end_time=_now_iso(),
                steps=steps,
                results=results,
                screenshot=screenshot_url,
                video_url=video_url,
            )
            await self._progress(job, JobProgress.PERSISTED)

            execution_time_ms = int((time.monotonic() - started) * 1000)
            failed_steps = count_failures(results)
            logger.info(
                f"Job {job.id} completed in {execution_time_ms}ms "
                f"({len(steps)} steps, {failed_steps} failed)"
            )
            return {
                "success": True,
                "executionId": execution_id,
                "screenshot": screenshot_url,
                "videoUrl": video_url,
                "stepsExecuted": len(steps),
                "failedSteps": failed_steps,
                "executionTime": execution_time_ms,
            }

        except Exception as e:
            execution_time_ms = int((time.monotonic() - started) * 1000)
            logger.error(f"Job {job.id} failed after {execution_time_ms}ms (execution {execution_id}): {e}")

            try:
                await self.store.update_execution(
                    execution_id,
                    status=ExecutionStatus.FAILED,
                    end_time=_now_iso(),
                    error_log=str(e),
                )
            except Exception as db_error:
                logger.error(f"Failed to update execution {execution_id} status: {db_error}")

            await self._cleanup(context, session)
            raise

    async def _cleanup(self, context, session) -> None:
        if context is not None:
            try:
                await context.close()
            except Exception as e:
                logger.error(f"Cleanup failed closing context: {e}")
        if session is not None:
            try:
                await self.pool.release(session)
            except Exception as e:
                logger.error(f"Cleanup failed releasing browser session {session.id}: {e}")

    # ===== Queue plumbing =====

    async def _heartbeat(self, job_id: str, token: str) -> None:
        interval = self.queue.lock_duration_ms / 2000
        while True:
            await asyncio.sleep(interval)
            try:
                if not await self.queue.extend_lock(job_id, token):
                    logger.warning(f"Lost lock on job {job_id}; it may be re-run elsewhere")
                    return
            except redis.RedisError as e:
                self.queue.emit("error", e)

    async def _handle(self, job: Job, token: str) -> None:
        heartbeat = asyncio.create_task(self._heartbeat(job.id, token))
        try:
            try:
                result = await self.process_job(job)
            except Exception as e:
                await self.queue.fail(job, e)
            else:
                await self.queue.complete(job, result)
        except QueueError as e:
            logger.warning(f"Could not finish job {job.id}: {e}")
        except redis.RedisError as e:
            self.queue.emit("error", e)
        finally:
            heartbeat.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await heartbeat

    async def run_once(self) -> bool:
        """Fetch and fully process one job. Returns False if none was waiting."""
        token = uuid.uuid4().hex
        job = await self.queue.fetch_next(token)
        if job is None:
            return False
        await self._handle(job, token)
        return True

    async def _wait(self, seconds: float) -> None:
        """Sleep that ends early when the worker is stopped."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _stalled_loop(self) -> None:
        while self._running:
            await self._wait(self.stalled_interval)
            if not self._running:
                break
            try:
                stalled = await self.queue.check_stalled()
                if stalled:
                    logger.warning(f"Requeued {len(stalled)} stalled jobs: {stalled}")
            except redis.RedisError as e:
                self.queue.emit("error", e)

    def _on_task_done(self, task: asyncio.Task, slots: asyncio.Semaphore) -> None:
        self._tasks.discard(task)
        slots.release()
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Job task crashed: {task.exception()}")

    async def run(self) -> None:
        """Poll the queue until stop() is called, then wait for in-flight jobs."""
        for listener in self.listeners:
            self.queue.add_listener(listener)

        self._running = True
        self._stop_event.clear()
        stalled_task = asyncio.create_task(self._stalled_loop())
        slots = asyncio.Semaphore(self.concurrency)
        logger.info(f"Worker started (queue '{self.queue.name}', concurrency {self.concurrency})")

        try:
            while self._running:
                await slots.acquire()
                if not self._running:
                    slots.release()
                    break

                token = uuid.uuid4().hex
                try:
                    job = await self.queue.fetch_next(token)
                except redis.RedisError as e:
                    slots.release()
                    self.queue.emit("error", e)
                    await self._wait(ERROR_BACKOFF_SECONDS)
                    continue

                if job is None:
                    slots.release()
                    await self._wait(self.poll_interval)
                    continue

                task = asyncio.create_task(self._handle(job, token))
                self._tasks.add(task)
                task.add_done_callback(lambda t: self._on_task_done(t, slots))
        finally:
            self._running = False
            stalled_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await stalled_task
            if self._tasks:
                logger.info(f"Waiting for {len(self._tasks)} in-flight jobs")
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            for listener in self.listeners:
                self.queue.remove_listener(listener)
            logger.info("Worker stopped")

    def stop(self) -> None:
        """Ask the run loop to exit after in-flight jobs finish."""
        self._running = False
        self._stop_event.set()
