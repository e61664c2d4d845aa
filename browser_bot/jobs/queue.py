"""Durable Redis-backed automation job queue.

Key layout under ``bb:<queue name>:``

- ``id``                counter for generated job ids
- ``wait``              list; producers LPUSH, consumers take from the right (FIFO)
- ``active``            list of job ids currently held by a worker
- ``delayed``           sorted set, score = time the retry becomes due (ms)
- ``completed``/``failed`` sorted sets, score = finish time (ms)
- ``job:<id>``          hash holding the Job fields
- ``lock:<id>``         worker lock token, expires unless renewed by heartbeat
- ``paused``            present while the queue is paused
"""

import logging
from typing import Any, Iterable, Optional

import redis
import redis.asyncio as aioredis

from browser_bot.config import (
    JOB_ATTEMPTS,
    JOB_BACKOFF_DELAY_MS,
    LOCK_DURATION_MS,
    QUEUE_NAME,
    REDIS_URL,
    REMOVE_ON_COMPLETE,
    REMOVE_ON_FAIL,
)
from browser_bot.exceptions import QueueError
from browser_bot.jobs.events import QueueListener
from browser_bot.jobs.job import Job, JobState, compute_backoff, now_ms


logger = logging.getLogger(__name__)

# Failed jobs are kept this many times longer than completed ones by clean_old_jobs()
FAILED_GRACE_MULTIPLIER = 7
DEFAULT_CLEAN_GRACE_MS = 24 * 60 * 60 * 1000
STATS_SAMPLE_SIZE = 100
TIMING_SAMPLE_SIZE = 50


class AutomationQueue:
    """
    Job queue with retries, exponential backoff, locks and stalled-job recovery.

    State machine::

        waiting -> active -> completed
                          -> delayed -> waiting      (attempts left)
                          -> failed                  (attempts exhausted)
        active (lock expired) -> waiting             (stalled)

    Delivery is at-least-once: a job whose worker dies is re-run by another.
    """

    KEY_PREFIX = "bb:"

    def __init__(
        self,
        name: str = QUEUE_NAME,
        redis_url: str = REDIS_URL,
        client: Optional[aioredis.Redis] = None,
        attempts: int = JOB_ATTEMPTS,
        backoff_delay_ms: int = JOB_BACKOFF_DELAY_MS,
        remove_on_complete: int = REMOVE_ON_COMPLETE,
        remove_on_fail: int = REMOVE_ON_FAIL,
        lock_duration_ms: int = LOCK_DURATION_MS,
    ):
        self.name = name
        self.redis_url = redis_url
        self.attempts = attempts
        self.backoff_delay_ms = backoff_delay_ms
        self.remove_on_complete = remove_on_complete
        self.remove_on_fail = remove_on_fail
        self.lock_duration_ms = lock_duration_ms

        self._client = client
        self._owns_client = client is None
        self._listeners: list[QueueListener] = []

    @property
    def client(self) -> aioredis.Redis:
        """Get or create the Redis client (lazy initialization)."""
        if self._client is None:
            self._client = aioredis.from_url(self.redis_url, decode_responses=True)
        return self._client

    def _key(self, suffix: str) -> str:
        return f"{self.KEY_PREFIX}{self.name}:{suffix}"

    def _job_key(self, job_id: str) -> str:
        return self._key(f"job:{job_id}")

    def _lock_key(self, job_id: str) -> str:
        return self._key(f"lock:{job_id}")

    # ===== Listeners =====

    def add_listener(self, listener: QueueListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: QueueListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def emit(self, event: str, *args: Any) -> None:
        """Call ``on_<event>`` on every listener; listener errors are logged and dropped."""
        for listener in list(self._listeners):
            try:
                getattr(listener, f"on_{event}")(*args)
            except Exception as e:
                logger.error(f"Queue listener {type(listener).__name__}.on_{event} failed: {e}")

    # ===== Producer side =====

    async def add(
        self,
        data: dict,
        job_id: Optional[str] = None,
        attempts: Optional[int] = None,
        backoff_delay_ms: Optional[int] = None,
    ) -> Job:
        """Enqueue a job in ``waiting``."""
        if job_id is None:
            job_id = str(await self.client.incr(self._key("id")))
        job = Job(
            id=str(job_id),
            data=data,
            max_attempts=attempts or self.attempts,
            backoff_delay_ms=backoff_delay_ms or self.backoff_delay_ms,
        )
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.hset(self._job_key(job.id), mapping=job.to_hash())
            pipe.lpush(self._key("wait"), job.id)
            await pipe.execute()
        logger.info(f"Job {job.id} queued (execution {job.execution_id})")
        self.emit("waiting", job)
        return job

    # ===== Consumer side =====

    async def fetch_next(self, token: str, lock_duration_ms: Optional[int] = None) -> Optional[Job]:
        """
        Move the oldest waiting job to ``active`` and lock it with ``token``.

        Due delayed jobs are promoted first. The move, the lock and the
        ``processed_on`` stamp are one transaction, so ``check_stalled`` never
        sees an active job without its lock. Returns None when the queue is
        paused or empty.
        """
        if await self.is_paused():
            return None
        await self.promote_delayed()

        wait_key = self._key("wait")
        async with self.client.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(wait_key)
                    job_id = await pipe.lindex(wait_key, -1)
                    if job_id is None:
                        return None
                    processed_on = now_ms()
                    pipe.multi()
                    pipe.lmove(wait_key, self._key("active"), "RIGHT", "LEFT")
                    pipe.set(self._lock_key(job_id), token, px=lock_duration_ms or self.lock_duration_ms)
                    pipe.hset(
                        self._job_key(job_id),
                        mapping={"processed_on": str(processed_on), "state": JobState.ACTIVE.value},
                    )
                    await pipe.execute()
                    break
                except redis.WatchError:
                    # Another consumer took from the wait list first; retry
                    continue

        job = await self.get_job(job_id)
        if job is None:
            # Hash removed underneath us (cleaned); drop the dangling id
            await self.client.lrem(self._key("active"), 0, job_id)
            logger.warning(f"Dropped job {job_id}: no job data found")
            return None
        self.emit("active", job)
        return job

    async def extend_lock(self, job_id: str, token: str, lock_duration_ms: Optional[int] = None) -> bool:
        """Heartbeat. Returns False if the lock is no longer held by ``token``."""
        key = self._lock_key(job_id)
        if await self.client.get(key) != token:
            return False
        return bool(await self.client.pexpire(key, lock_duration_ms or self.lock_duration_ms))

    async def update_progress(self, job: Job, progress: int) -> None:
        job.progress = int(progress)
        await self.client.hset(self._job_key(job.id), "progress", str(job.progress))
        self.emit("progress", job, job.progress)

    async def _release_active(self, job: Job) -> None:
        removed = await self.client.lrem(self._key("active"), 0, job.id)
        if not removed:
            raise QueueError(f"Job {job.id} is no longer active (lock lost)")

    async def complete(self, job: Job, return_value: Any = None) -> None:
        await self._release_active(job)
        # attempts_made counts finished attempts, successful ones included
        job.attempts_made += 1
        job.finished_on = now_ms()
        job.return_value = return_value
        job.state = JobState.COMPLETED

        async with self.client.pipeline(transaction=True) as pipe:
            pipe.hset(self._job_key(job.id), mapping=job.to_hash())
            pipe.zadd(self._key("completed"), {job.id: job.finished_on})
            pipe.delete(self._lock_key(job.id))
            await pipe.execute()

        await self._trim(self._key("completed"), self.remove_on_complete)
        self.emit("completed", job, return_value)

    async def fail(self, job: Job, error: BaseException) -> JobState:
        """
        Record a failed attempt.

        Returns:
            DELAYED if the job will be retried after backoff, FAILED if its
            attempts are exhausted.
        """
        await self._release_active(job)
        job.attempts_made += 1
        job.failed_reason = str(error)
        now = now_ms()

        async with self.client.pipeline(transaction=True) as pipe:
            if job.attempts_made < job.max_attempts:
                delay = compute_backoff(job.attempts_made, job.backoff_delay_ms)
                job.state = JobState.DELAYED
                pipe.zadd(self._key("delayed"), {job.id: now + delay})
                logger.info(f"Job {job.id} will retry in {delay}ms (attempt {job.attempts_made}/{job.max_attempts})")
            else:
                job.state = JobState.FAILED
                job.finished_on = now
                pipe.zadd(self._key("failed"), {job.id: now})
            pipe.hset(self._job_key(job.id), mapping=job.to_hash())
            pipe.delete(self._lock_key(job.id))
            await pipe.execute()

        if job.state == JobState.FAILED:
            await self._trim(self._key("failed"), self.remove_on_fail)
        self.emit("failed", job, error)
        return job.state

    # ===== Maintenance =====

    async def promote_delayed(self, now: Optional[int] = None) -> list[str]:
        """Move retries whose backoff has elapsed back to ``waiting``."""
        now = now_ms() if now is None else now
        due = await self.client.zrangebyscore(self._key("delayed"), "-inf", now)
        promoted = []
        for job_id in due:
            # zrem is the claim; concurrent promoters cannot both win
            if not await self.client.zrem(self._key("delayed"), job_id):
                continue
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.hset(self._job_key(job_id), "state", JobState.WAITING.value)
                pipe.lpush(self._key("wait"), job_id)
                await pipe.execute()
            promoted.append(job_id)
            job = await self.get_job(job_id)
            if job is not None:
                self.emit("waiting", job)
        return promoted

    async def check_stalled(self, now: Optional[int] = None) -> list[str]:
        """
        Requeue active jobs whose lock expired (their worker stopped heartbeating).

        A job only counts as stalled once it has been active for longer than
        the lock duration, so a job that was just fetched is never requeued.
        """
        now = now_ms() if now is None else now
        stalled = []
        for job_id in await self.client.lrange(self._key("active"), 0, -1):
            if await self.client.exists(self._lock_key(job_id)):
                continue
            job = await self.get_job(job_id)
            if job is not None and job.processed_on and now - job.processed_on < self.lock_duration_ms:
                continue
            if not await self.client.lrem(self._key("active"), 0, job_id):
                continue
            if job is None:
                continue
            job.stalled_count += 1
            job.state = JobState.WAITING
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.hset(
                    self._job_key(job_id),
                    mapping={"stalled_count": str(job.stalled_count), "state": job.state.value},
                )
                # Right end is the consumer end: a stalled job is picked up next
                pipe.rpush(self._key("wait"), job_id)
                await pipe.execute()
            stalled.append(job_id)
            self.emit("stalled", job)
        return stalled

    async def _trim(self, key: str, keep: int) -> None:
        """Keep only the ``keep`` most recently finished jobs in ``key``."""
        excess = await self.client.zcard(key) - keep
        if excess <= 0:
            return
        oldest = await self.client.zrange(key, 0, excess - 1)
        await self._remove_jobs(key, oldest)

    async def _remove_jobs(self, key: str, job_ids: Iterable[str]) -> None:
        job_ids = list(job_ids)
        if not job_ids:
            return
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.zrem(key, *job_ids)
            pipe.delete(*[self._job_key(j) for j in job_ids])
            await pipe.execute()

    async def clean(self, grace_ms: int, state: str = "completed", now: Optional[int] = None) -> list[str]:
        """Remove finished jobs in ``state`` that finished more than ``grace_ms`` ago."""
        if state not in (JobState.COMPLETED.value, JobState.FAILED.value):
            raise ValueError(f"Can only clean completed or failed jobs, not {state!r}")
        now = now_ms() if now is None else now
        key = self._key(state)
        old = await self.client.zrangebyscore(key, "-inf", now - grace_ms)
        await self._remove_jobs(key, old)
        return old

    async def clean_old_jobs(self, grace_ms: int = DEFAULT_CLEAN_GRACE_MS) -> dict:
        completed = await self.clean(grace_ms, "completed")
        failed = await self.clean(grace_ms * FAILED_GRACE_MULTIPLIER, "failed")
        logger.info(f"Cleaned old jobs: {len(completed)} completed, {len(failed)} failed")
        return {"completed": len(completed), "failed": len(failed)}

    async def pause(self) -> None:
        await self.client.set(self._key("paused"), "1")
        logger.warning(f"Queue '{self.name}' paused")

    async def resume(self) -> None:
        await self.client.delete(self._key("paused"))
        logger.info(f"Queue '{self.name}' resumed")

    async def is_paused(self) -> bool:
        return bool(await self.client.exists(self._key("paused")))

    # ===== Monitoring =====

    async def get_job(self, job_id: str) -> Optional[Job]:
        mapping = await self.client.hgetall(self._job_key(job_id))
        if not mapping:
            return None
        return Job.from_hash(job_id, mapping)

    async def _get_jobs(self, job_ids: Iterable[str]) -> list[Job]:
        jobs = []
        for job_id in job_ids:
            job = await self.get_job(job_id)
            if job is not None:
                jobs.append(job)
        return jobs

    async def get_counts(self) -> dict:
        async with self.client.pipeline(transaction=False) as pipe:
            pipe.llen(self._key("wait"))
            pipe.llen(self._key("active"))
            pipe.zcard(self._key("completed"))
            pipe.zcard(self._key("failed"))
            pipe.zcard(self._key("delayed"))
            waiting, active, completed, failed, delayed = await pipe.execute()
        return {
            "waiting": waiting,
            "active": active,
            "completed": completed,
            "failed": failed,
            "delayed": delayed,
            "total": waiting + active + completed + failed + delayed,
        }

    async def get_health(self) -> dict:
        try:
            counts = await self.get_counts()
            paused = await self.is_paused()
        except redis.RedisError as e:
            logger.error(f"Queue health check failed: {e}")
            return {"healthy": False, "error": str(e)}
        return {"healthy": True, "paused": paused, "counts": counts}

    async def get_stats(self) -> dict:
        """Health plus success rate and average wait/process time of recent jobs."""
        health = await self.get_health()
        if not health["healthy"]:
            return health

        completed = await self._get_jobs(
            await self.client.zrevrange(self._key("completed"), 0, STATS_SAMPLE_SIZE - 1)
        )
        failed = await self._get_jobs(
            await self.client.zrevrange(self._key("failed"), 0, STATS_SAMPLE_SIZE - 1)
        )
        recent = sorted(completed + failed, key=lambda j: j.finished_on or 0)[-STATS_SAMPLE_SIZE:]
        succeeded = sum(1 for j in recent if j.state == JobState.COMPLETED)
        success_rate = round(succeeded / len(recent) * 100, 2) if recent else 0.0

        timed = completed[:TIMING_SAMPLE_SIZE]
        return {
            **health,
            "stats": {
                "success_rate": success_rate,
                "average_wait_time_ms": _average(j.wait_time_ms for j in timed),
                "average_process_time_ms": _average(j.process_time_ms for j in timed),
            },
        }

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
        logger.info("Queue connection closed")


def _average(values: Iterable[Optional[int]]) -> int:
    present = [v for v in values if v is not None]
    if not present:
        return 0
    return round(sum(present) / len(present))
