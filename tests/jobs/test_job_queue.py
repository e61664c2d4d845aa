"""Tests for the Redis job queue (fakeredis)."""

import asyncio

import pytest
import redis

from browser_bot.exceptions import QueueError
from browser_bot.jobs.events import QueueListener
from browser_bot.jobs.job import Job, JobState, compute_backoff
from browser_bot.jobs.queue import AutomationQueue

NOW = 1_000_000


class RecordingListener(QueueListener):
    def __init__(self):
        self.events = []

    def on_waiting(self, job):
        self.events.append(("waiting", job.id))

    def on_active(self, job):
        self.events.append(("active", job.id))

    def on_completed(self, job, result):
        self.events.append(("completed", job.id))

    def on_failed(self, job, error):
        self.events.append(("failed", job.id))

    def on_stalled(self, job):
        self.events.append(("stalled", job.id))


class ExplodingListener(QueueListener):
    def on_waiting(self, job):
        raise RuntimeError("listener bug")


@pytest.fixture
def clock(monkeypatch):
    state = {"now": NOW}
    monkeypatch.setattr("browser_bot.jobs.queue.now_ms", lambda: state["now"])
    return state


class TestBackoff:
    """Tests for compute_backoff."""

    def test_exponential_sequence(self):
        assert [compute_backoff(n, 2000) for n in (1, 2, 3, 4)] == [2000, 4000, 8000, 16000]

    def test_no_delay_before_first_failure(self):
        assert compute_backoff(0, 2000) == 0


class TestJobRecord:
    """Tests for the Job hash mapping."""

    def test_hash_round_trip_keeps_optional_fields(self):
        job = Job(id="7", data={"executionId": "e7"}, processed_on=5, failed_reason="boom", return_value={"a": 1})

        restored = Job.from_hash("7", job.to_hash())

        assert restored.execution_id == "e7"
        assert restored.processed_on == 5
        assert restored.finished_on is None
        assert restored.failed_reason == "boom"
        assert restored.return_value == {"a": 1}

    def test_timings(self):
        job = Job(id="1", data={}, timestamp=100, processed_on=150, finished_on=400)

        assert job.wait_time_ms == 50
        assert job.process_time_ms == 250
        assert Job(id="2", data={}).wait_time_ms is None


class TestQueueLifecycle:
    """Tests for add/fetch/complete/fail."""

    @pytest.mark.asyncio
    async def test_jobs_are_fetched_fifo(self, queue, clock):
        first = await queue.add({"executionId": "e1"})
        second = await queue.add({"executionId": "e2"})

        fetched = await queue.fetch_next("token-a")

        assert fetched.id == first.id
        assert fetched.state == JobState.ACTIVE
        assert fetched.processed_on == NOW
        assert (await queue.fetch_next("token-b")).id == second.id
        assert await queue.fetch_next("token-c") is None

    @pytest.mark.asyncio
    async def test_defaults_come_from_queue(self, queue):
        job = await queue.add({"executionId": "e1"})

        assert job.max_attempts == 3
        assert job.backoff_delay_ms == 2000

    @pytest.mark.asyncio
    async def test_complete(self, queue, clock):
        job = await queue.add({"executionId": "e1"})
        active = await queue.fetch_next("t")

        await queue.complete(active, {"success": True})

        stored = await queue.get_job(job.id)
        assert stored.state == JobState.COMPLETED
        assert stored.finished_on == NOW
        assert stored.return_value == {"success": True}
        assert stored.attempts_made == 1
        counts = await queue.get_counts()
        assert counts["active"] == 0
        assert counts["completed"] == 1

    @pytest.mark.asyncio
    async def test_failures_back_off_then_exhaust(self, queue, redis_client, clock):
        job = await queue.add({"executionId": "e1"})
        delayed_key = queue._key("delayed")

        state = await queue.fail(await queue.fetch_next("t1"), RuntimeError("first"))
        assert state == JobState.DELAYED
        assert await redis_client.zscore(delayed_key, job.id) == NOW + 2000

        clock["now"] += 2000
        state = await queue.fail(await queue.fetch_next("t2"), RuntimeError("second"))
        assert state == JobState.DELAYED
        assert await redis_client.zscore(delayed_key, job.id) == clock["now"] + 4000

        clock["now"] += 4000
        state = await queue.fail(await queue.fetch_next("t3"), RuntimeError("third"))
        assert state == JobState.FAILED

        stored = await queue.get_job(job.id)
        assert stored.attempts_made == 3
        assert stored.failed_reason == "third"
        counts = await queue.get_counts()
        assert counts["failed"] == 1
        assert counts["delayed"] == 0
        assert counts["waiting"] == 0

    @pytest.mark.asyncio
    async def test_delayed_job_not_promoted_early(self, queue, clock):
        await queue.add({"executionId": "e1"})
        await queue.fail(await queue.fetch_next("t"), RuntimeError("boom"))

        clock["now"] += 1999
        assert await queue.fetch_next("t") is None
        assert await queue.promote_delayed(now=NOW + 2000) == ["1"]

    @pytest.mark.asyncio
    async def test_finishing_a_job_that_lost_its_slot(self, queue, clock):
        job = await queue.add({"executionId": "e1"})

        with pytest.raises(QueueError):
            await queue.complete(job)

    @pytest.mark.asyncio
    async def test_lock_extension_requires_token(self, queue):
        job = await queue.add({"executionId": "e1"})
        await queue.fetch_next("mine")

        assert await queue.extend_lock(job.id, "mine") is True
        assert await queue.extend_lock(job.id, "someone-else") is False

    @pytest.mark.asyncio
    async def test_progress_is_persisted(self, queue):
        await queue.add({"executionId": "e1"})
        job = await queue.fetch_next("t")

        await queue.update_progress(job, 70)

        assert (await queue.get_job(job.id)).progress == 70


class TestStalledJobs:
    """Tests for stalled-job recovery."""

    @pytest.mark.asyncio
    async def test_expired_lock_requeues_job_first(self, queue, redis_client, clock):
        stalled = await queue.add({"executionId": "e1"})
        other = await queue.add({"executionId": "e2"})
        await queue.fetch_next("t")
        await redis_client.delete(queue._lock_key(stalled.id))

        requeued = await queue.check_stalled(now=NOW + queue.lock_duration_ms)

        assert requeued == [stalled.id]
        job = await queue.get_job(stalled.id)
        assert job.stalled_count == 1
        assert job.state == JobState.WAITING
        # Picked up again before jobs that were already waiting
        assert (await queue.fetch_next("t2")).id == stalled.id
        assert (await queue.fetch_next("t3")).id == other.id

    @pytest.mark.asyncio
    async def test_locked_job_is_not_stalled(self, queue, clock):
        await queue.add({"executionId": "e1"})
        await queue.fetch_next("t")

        assert await queue.check_stalled(now=NOW + 10 * queue.lock_duration_ms) == []

    @pytest.mark.asyncio
    async def test_freshly_fetched_job_is_not_stalled(self, queue, redis_client, clock):
        job = await queue.add({"executionId": "e1"})
        await queue.fetch_next("t")
        await redis_client.delete(queue._lock_key(job.id))

        assert await queue.check_stalled(now=NOW + 10) == []

    @pytest.mark.asyncio
    async def test_retried_job_is_not_stalled_while_being_fetched(self, queue, clock):
        job = await queue.add({"executionId": "e1"})
        fetched = await queue.fetch_next("t")
        await queue.fail(fetched, RuntimeError("launch failed"))
        # Backoff elapsed, and the old processed_on is older than a lock duration
        clock["now"] += 10 * queue.lock_duration_ms

        refetched, requeued = await asyncio.gather(queue.fetch_next("t2"), queue.check_stalled())

        assert refetched.id == job.id
        assert requeued == []
        assert await queue.extend_lock(job.id, "t2")
        assert (await queue.get_counts())["active"] == 1

    @pytest.mark.asyncio
    async def test_concurrent_consumers_get_distinct_jobs(self, queue, clock):
        first = await queue.add({"executionId": "e1"})
        second = await queue.add({"executionId": "e2"})

        a, b = await asyncio.gather(queue.fetch_next("a"), queue.fetch_next("b"))

        assert {a.id, b.id} == {first.id, second.id}
        assert await queue.fetch_next("c") is None


class TestMaintenance:
    """Tests for retention, cleaning and pausing."""

    @pytest.mark.asyncio
    async def test_completed_retention_keeps_most_recent(self, redis_client, clock):
        queue = AutomationQueue(name="retention", client=redis_client, remove_on_complete=2)
        ids = []
        for i in range(3):
            ids.append((await queue.add({"executionId": f"e{i}"})).id)
            clock["now"] += 1
            await queue.complete(await queue.fetch_next("t"))

        assert (await queue.get_counts())["completed"] == 2
        assert await queue.get_job(ids[0]) is None
        assert await queue.get_job(ids[2]) is not None

    @pytest.mark.asyncio
    async def test_clean_old_jobs_keeps_failed_longer(self, redis_client, clock):
        queue = AutomationQueue(name="clean", client=redis_client, attempts=1)
        await queue.add({"executionId": "done"})
        await queue.complete(await queue.fetch_next("t"))
        await queue.add({"executionId": "broken"})
        await queue.fail(await queue.fetch_next("t"), RuntimeError("boom"))

        clock["now"] += 2 * 60 * 60 * 1000
        assert await queue.clean_old_jobs(grace_ms=60 * 60 * 1000) == {"completed": 1, "failed": 0}

        clock["now"] += 7 * 60 * 60 * 1000
        assert await queue.clean_old_jobs(grace_ms=60 * 60 * 1000) == {"completed": 0, "failed": 1}

    @pytest.mark.asyncio
    async def test_clean_rejects_unfinished_states(self, queue):
        with pytest.raises(ValueError):
            await queue.clean(1000, state="waiting")

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, queue):
        await queue.add({"executionId": "e1"})

        await queue.pause()
        assert await queue.is_paused() is True
        assert await queue.fetch_next("t") is None

        await queue.resume()
        assert (await queue.fetch_next("t")) is not None


class TestMonitoring:
    """Tests for listeners, health and stats."""

    @pytest.mark.asyncio
    async def test_listener_sees_lifecycle(self, queue, clock):
        listener = RecordingListener()
        queue.add_listener(listener)

        job = await queue.add({"executionId": "e1"})
        await queue.complete(await queue.fetch_next("t"))

        assert listener.events == [("waiting", job.id), ("active", job.id), ("completed", job.id)]

    @pytest.mark.asyncio
    async def test_listener_errors_do_not_break_the_queue(self, queue):
        queue.add_listener(ExplodingListener())

        job = await queue.add({"executionId": "e1"})

        assert (await queue.get_counts())["waiting"] == 1
        assert job.id == "1"

    @pytest.mark.asyncio
    async def test_removed_listener_is_silent(self, queue):
        listener = RecordingListener()
        queue.add_listener(listener)
        queue.remove_listener(listener)

        await queue.add({"executionId": "e1"})

        assert listener.events == []

    @pytest.mark.asyncio
    async def test_stats(self, queue, clock):
        await queue.add({"executionId": "e1"})
        clock["now"] += 100
        job = await queue.fetch_next("t")
        clock["now"] += 400
        await queue.complete(job)

        stats = await queue.get_stats()

        assert stats["healthy"] is True
        assert stats["paused"] is False
        assert stats["counts"]["completed"] == 1
        assert stats["stats"]["success_rate"] == 100.0
        assert stats["stats"]["average_process_time_ms"] == 400

    @pytest.mark.asyncio
    async def test_health_reports_broker_errors(self, queue, monkeypatch):
        async def broken():
            raise redis.ConnectionError("Connection refused")

        monkeypatch.setattr(queue, "get_counts", broken)

        health = await queue.get_health()

        assert health == {"healthy": False, "error": "Connection refused"}
