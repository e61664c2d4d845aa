#!/usr/bin/env python3
"""CLI entry point for browser_bot - worker process and queue administration.

Usage:
    python -m browser_bot.cli worker
    python -m browser_bot.cli worker --concurrency 2 --headed
    python -m browser_bot.cli submit "search for playwright on google"
    python -m browser_bot.cli submit "log in" --steps steps.json
    python -m browser_bot.cli run "search for cats on google" --provider none
    python -m browser_bot.cli status
    python -m browser_bot.cli status --job 42
    python -m browser_bot.cli clean --grace-hours 24
    python -m browser_bot.cli pause | resume
    python -m browser_bot.cli execution <id>
    python -m browser_bot.cli execution --list --status failed
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from browser_bot.ai import get_script_provider
from browser_bot.browser.pool import BrowserPool
from browser_bot.config import BROWSER_HEADLESS, MAX_CONCURRENT_BROWSERS, SCRIPT_PROVIDER, WORKER_CONCURRENCY
from browser_bot.exceptions import BrowserBotError
from browser_bot.jobs.queue import AutomationQueue
from browser_bot.orchestrator.worker import AutomationWorker
from browser_bot.services.automation_service import run_automation, submit_automation
from browser_bot.store.execution_store import FileExecutionStore
from browser_bot.utils.logging_setup import setup_logging

logger = logging.getLogger(__name__)


def load_steps(value: Optional[str]):
    """``--steps`` accepts a path to a JSON file or an inline JSON array."""
    if value is None:
        return None
    path = Path(value)
    if path.exists():
        return path.read_text(encoding="utf-8")
    return value


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


async def run_worker(concurrency: int, headless: bool) -> None:
    queue = AutomationQueue()
    pool = BrowserPool(headless=headless)
    worker = AutomationWorker(queue, pool, FileExecutionStore(), concurrency=concurrency)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, worker.stop)
        except NotImplementedError:
            # Windows: fall back to KeyboardInterrupt
            pass

    await pool.start()
    try:
        await worker.run()
    finally:
        await pool.close()
        await queue.close()


async def run_submit(prompt: str, steps, workflow_id: Optional[str], provider_name: str) -> dict:
    queue = AutomationQueue()
    try:
        provider = get_script_provider(provider_name) if steps is None else None
        execution, job = await submit_automation(
            queue, FileExecutionStore(), prompt, steps=steps, workflow_id=workflow_id, provider=provider
        )
    finally:
        await queue.close()
    return {"executionId": execution.id, "jobId": job.id, "status": execution.status.value}


async def run_inline(prompt: str, steps, provider_name: str, headless: bool) -> dict:
    store = FileExecutionStore()
    pool = BrowserPool(headless=headless)
    worker = AutomationWorker(None, pool, store, listeners=[])
    await pool.start()
    try:
        provider = get_script_provider(provider_name) if steps is None else None
        return await run_automation(worker, store, prompt, steps=steps, provider=provider)
    finally:
        await pool.close()


async def run_status(job_id: Optional[str]) -> dict:
    queue = AutomationQueue()
    try:
        if job_id:
            job = await queue.get_job(job_id)
            if job is None:
                raise BrowserBotError(f"Job not found: {job_id}")
            return job.to_dict()
        return await queue.get_stats()
    finally:
        await queue.close()


async def run_clean(grace_hours: float) -> dict:
    queue = AutomationQueue()
    try:
        return await queue.clean_old_jobs(int(grace_hours * 60 * 60 * 1000))
    finally:
        await queue.close()


async def run_pause(paused: bool) -> dict:
    queue = AutomationQueue()
    try:
        if paused:
            await queue.pause()
        else:
            await queue.resume()
        return {"paused": await queue.is_paused()}
    finally:
        await queue.close()


async def run_execution(execution_id: Optional[str], list_all: bool, stats: bool, status: Optional[str], limit: int):
    store = FileExecutionStore()
    if stats:
        return await store.get_execution_stats()
    if list_all or not execution_id:
        executions = await store.list_executions(status=status, limit=limit)
        # Screenshots inside results are large; list only the summary fields
        return [
            {k: v for k, v in e.to_dict().items() if k not in ("results", "steps")}
            for e in executions
        ]
    execution = await store.get_execution(execution_id)
    if execution is None:
        raise BrowserBotError(f"Execution not found: {execution_id}")
    return execution.to_dict()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="browser_bot - queued browser automation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override LOG_LEVEL"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    worker = sub.add_parser("worker", help="Run a queue worker until SIGINT/SIGTERM")
    worker.add_argument(
        "--concurrency", "-c",
        type=int,
        default=WORKER_CONCURRENCY,
        help=f"Concurrent jobs (default: {WORKER_CONCURRENCY}, browser pool size {MAX_CONCURRENT_BROWSERS})"
    )
    worker.add_argument("--headed", action="store_true", help="Run browsers in headed mode (visible)")

    for name, help_text in (
        ("submit", "Create an execution and enqueue it"),
        ("run", "Run one automation in-process, without the queue"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("prompt", help="What the automation should do")
        cmd.add_argument("--steps", "-s", help="Action script: JSON file path or inline JSON array")
        cmd.add_argument(
            "--provider", "-p",
            default=SCRIPT_PROVIDER,
            choices=["ollama", "claude", "none"],
            help=f"Script planner when --steps is not given (default: {SCRIPT_PROVIDER})"
        )
        if name == "submit":
            cmd.add_argument("--workflow-id", help="Workflow this execution belongs to")
        else:
            cmd.add_argument("--headed", action="store_true", help="Run the browser in headed mode")

    status = sub.add_parser("status", help="Queue health and statistics, or one job")
    status.add_argument("--job", "-j", help="Show this job instead of queue statistics")

    clean = sub.add_parser("clean", help="Remove old finished jobs (failed jobs are kept 7x longer)")
    clean.add_argument("--grace-hours", type=float, default=24.0, help="Age threshold (default: 24)")

    sub.add_parser("pause", help="Stop workers from taking new jobs")
    sub.add_parser("resume", help="Let workers take jobs again")

    execution = sub.add_parser("execution", help="Show stored executions")
    execution.add_argument("execution_id", nargs="?", help="Execution id")
    execution.add_argument("--list", action="store_true", dest="list_all", help="List recent executions")
    execution.add_argument("--stats", action="store_true", help="Show execution statistics")
    execution.add_argument("--status", choices=["running", "success", "failed"], help="Filter the list by status")
    execution.add_argument("--limit", type=int, default=50, help="Maximum executions to list (default: 50)")

    return parser


def main(argv: Optional[list[str]] = None):
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level)

    try:
        if args.command == "worker":
            asyncio.run(run_worker(args.concurrency, headless=BROWSER_HEADLESS and not args.headed))
            return
        if args.command == "submit":
            result = asyncio.run(run_submit(args.prompt, load_steps(args.steps), args.workflow_id, args.provider))
        elif args.command == "run":
            result = asyncio.run(
                run_inline(args.prompt, load_steps(args.steps), args.provider, BROWSER_HEADLESS and not args.headed)
            )
        elif args.command == "status":
            result = asyncio.run(run_status(args.job))
        elif args.command == "clean":
            result = asyncio.run(run_clean(args.grace_hours))
        elif args.command in ("pause", "resume"):
            result = asyncio.run(run_pause(args.command == "pause"))
        else:
            result = asyncio.run(
                run_execution(args.execution_id, args.list_all, args.stats, args.status, args.limit)
            )
    except KeyboardInterrupt:
        print("\nCancelled", file=sys.stderr)
        sys.exit(130)
    except (BrowserBotError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error during {args.command}: {e}", file=sys.stderr)
        sys.exit(1)

    _print_json(result)


if __name__ == "__main__":
    main()
