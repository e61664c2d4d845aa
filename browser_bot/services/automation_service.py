"""Submission entry points: plan a script, record the execution, run or enqueue it."""

import logging
import uuid
from typing import Optional, Union

from browser_bot.actions.models import Action
from browser_bot.ai.base import ScriptProvider
from browser_bot.ai.script import default_script, normalize_script, parse_script
from browser_bot.jobs.job import Job
from browser_bot.jobs.queue import AutomationQueue
from browser_bot.orchestrator.worker import AutomationWorker
from browser_bot.store.execution_store import Execution, ExecutionStore

logger = logging.getLogger(__name__)


async def prepare_script(
    prompt: str,
    steps: Optional[Union[str, list]] = None,
    provider: Optional[ScriptProvider] = None,
) -> list[Action]:
    """
    Resolve the script to run.

    Explicit ``steps`` win and must be valid (ScriptError otherwise); without
    them the planner is asked, and without a planner the fallback script is used.
    """
    if steps is not None:
        return normalize_script(parse_script(steps))
    if provider is not None:
        return await provider.plan(prompt)
    return default_script(prompt)


async def submit_automation(
    queue: AutomationQueue,
    store: ExecutionStore,
    prompt: str,
    steps: Optional[Union[str, list]] = None,
    workflow_id: Optional[str] = None,
    provider: Optional[ScriptProvider] = None,
) -> tuple[Execution, Job]:
    """Create the execution in ``running`` and enqueue its job."""
    actions = await prepare_script(prompt, steps, provider)
    execution = await store.create_execution(prompt=prompt, steps=actions, workflow_id=workflow_id)
    job = await queue.add(
        {
            "executionId": execution.id,
            "steps": [a.to_dict() for a in actions],
            "prompt": prompt,
        }
    )
    logger.info(f"Submitted execution {execution.id} as job {job.id} ({len(actions)} steps)")
    return execution, job


async def run_automation(
    worker: AutomationWorker,
    store: ExecutionStore,
    prompt: str,
    steps: Optional[Union[str, list]] = None,
    workflow_id: Optional[str] = None,
    provider: Optional[ScriptProvider] = None,
) -> dict:
    """
    Run one automation in-process, without the queue (single attempt, no retry).

    Raises:
        Whatever made the attempt fail; the execution is already marked failed.
    """
    actions = await prepare_script(prompt, steps, provider)
    execution = await store.create_execution(prompt=prompt, steps=actions, workflow_id=workflow_id)
    job = Job(
        id=f"local-{uuid.uuid4().hex[:8]}",
        data={
            "executionId": execution.id,
            "steps": [a.to_dict() for a in actions],
            "prompt": prompt,
        },
        max_attempts=1,
    )
    return await worker.process_job(job)
