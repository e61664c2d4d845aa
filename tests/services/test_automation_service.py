"""Tests for automation submission."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from browser_bot.actions.models import Action
from browser_bot.exceptions import ScriptError
from browser_bot.services.automation_service import prepare_script, run_automation, submit_automation
from browser_bot.store.execution_store import ExecutionStatus


class TestPrepareScript:
    """Tests for script resolution order."""

    @pytest.mark.asyncio
    async def test_explicit_steps_win(self):
        provider = MagicMock()
        provider.plan = AsyncMock()

        actions = await prepare_script("ignored", steps='[{"action": "reload"}]', provider=provider)

        assert [a.kind for a in actions] == ["reload", "screenshot"]
        provider.plan.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_explicit_steps_are_rejected(self):
        with pytest.raises(ScriptError):
            await prepare_script("p", steps="[not json")

    @pytest.mark.asyncio
    async def test_planner_used_without_steps(self):
        provider = MagicMock()
        provider.plan = AsyncMock(return_value=[Action(kind="go_back"), Action(kind="screenshot")])

        actions = await prepare_script("go back", provider=provider)

        provider.plan.assert_awaited_once_with("go back")
        assert actions[0].kind == "go_back"

    @pytest.mark.asyncio
    async def test_default_script_without_planner(self):
        actions = await prepare_script("search for cats in google")
        assert actions[1].value == "cats"


class TestSubmitAutomation:
    """Tests for enqueueing and in-process runs."""

    @pytest.mark.asyncio
    async def test_submit_records_execution_and_enqueues(self, queue, store):
        execution, job = await submit_automation(
            queue, store, "open example", steps=[{"action": "navigate", "value": "https://example.com"}],
            workflow_id="wf-9",
        )

        stored = await store.get_execution(execution.id)
        assert stored.status == ExecutionStatus.RUNNING
        assert stored.workflow_id == "wf-9"
        assert [s["action"] for s in stored.steps] == ["navigate", "screenshot"]

        queued = await queue.get_job(job.id)
        assert queued.execution_id == execution.id
        assert queued.data["prompt"] == "open example"
        assert queued.data["steps"] == stored.steps
        assert (await queue.get_counts())["waiting"] == 1

    @pytest.mark.asyncio
    async def test_run_automation_is_a_single_attempt(self, store):
        worker = MagicMock()
        worker.process_job = AsyncMock(return_value={"success": True})

        result = await run_automation(worker, store, "open example", steps='[{"action": "reload"}]')

        assert result == {"success": True}
        job = worker.process_job.await_args.args[0]
        assert job.max_attempts == 1
        assert job.id.startswith("local-")
        assert await store.get_execution(job.execution_id) is not None
