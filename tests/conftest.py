"""Pytest configuration and fixtures for browser_bot tests"""

import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Ensure the project root is in Python path before any imports
project_root = Path(__file__).resolve().parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import fakeredis

from browser_bot.actions.interpreter import ActionInterpreter
from browser_bot.actions.pacing import instant_pacing
from browser_bot.browser.controller import BrowserController
from browser_bot.jobs.queue import AutomationQueue
from browser_bot.orchestrator.executor import StepExecutor
from browser_bot.store.execution_store import FileExecutionStore

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image"

# Page methods awaited by the handlers
PAGE_COROUTINES = (
    "goto", "click", "dblclick", "hover", "type", "fill", "focus", "press",
    "check", "uncheck", "select_option", "set_input_files", "go_back",
    "go_forward", "reload", "close", "title", "text_content", "get_attribute",
    "query_selector", "query_selector_all", "is_visible", "wait_for_selector",
    "wait_for_load_state", "wait_for_timeout", "wait_for_url", "evaluate",
    "eval_on_selector", "drag_and_drop", "bring_to_front",
)


def make_page(url: str = "https://example.com/") -> MagicMock:
    """A Playwright page double whose awaited methods are AsyncMocks."""
    page = MagicMock(name="page")
    page.url = url
    page.video = None
    page.is_closed.return_value = False
    for name in PAGE_COROUTINES:
        setattr(page, name, AsyncMock())
    page.screenshot = AsyncMock(return_value=PNG_BYTES)
    page.keyboard = MagicMock()
    page.keyboard.press = AsyncMock()
    page.keyboard.type = AsyncMock()
    return page


def make_context(pages: list) -> MagicMock:
    context = MagicMock(name="context")
    context.pages = pages
    context.cookies = AsyncMock(return_value=[])
    context.add_cookies = AsyncMock()
    context.clear_cookies = AsyncMock()
    context.close = AsyncMock()
    return context


@pytest.fixture
def page():
    return make_page()


@pytest.fixture
def browser_context(page):
    context = make_context([page])
    page.context = context
    context.new_page = AsyncMock(return_value=page)
    return context


@pytest.fixture
def controller(page, browser_context):
    return BrowserController(page, browser_context)


@pytest.fixture
def interpreter(tmp_path):
    """Interpreter that never sleeps and saves downloads under tmp_path."""
    return ActionInterpreter(pacing=instant_pacing(), artifact_dir=tmp_path / "artifacts", timeout_ms=1000)


@pytest.fixture
def executor(interpreter):
    return StepExecutor(interpreter)


@pytest.fixture
def redis_client():
    """Isolated in-memory Redis per test."""
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def queue(redis_client):
    return AutomationQueue(name="test", client=redis_client, lock_duration_ms=1000)


@pytest.fixture
def store(tmp_path):
    return FileExecutionStore(data_dir=tmp_path / "data")
