from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

from playwright.async_api import BrowserContext, Frame, Page

from browser_bot.actions.models import Action, ExtractedValue, ScreenshotResult, StepResult
from browser_bot.actions.pacing import HumanPacing
from browser_bot.browser.controller import BrowserController
from browser_bot.config import DEFAULT_TIMEOUT_MS


@dataclass
class ActionContext:
    """Everything a handler needs to execute one action."""

    controller: BrowserController
    results: list[StepResult]
    pacing: HumanPacing
    artifact_dir: Path
    timeout_ms: float = DEFAULT_TIMEOUT_MS

    @property
    def page(self) -> Page:
        return self.controller.page

    @property
    def scope(self) -> Union[Page, Frame]:
        return self.controller.scope

    @property
    def context(self) -> BrowserContext:
        return self.controller.context

    def record_value(self, kind: str, data: Any) -> None:
        self.results.append(ExtractedValue(kind=kind, data=data))

    async def record_screenshot(self) -> None:
        data = await self.controller.screenshot_base64(full_page=True)
        self.results.append(ScreenshotResult(data=data))

    async def settle(self, timeout_ms: Optional[float] = None) -> None:
        await self.controller.wait_for_network_idle(timeout_ms or self.timeout_ms)

    async def human_type(self, selector: str, text: str) -> None:
        """Type into ``selector`` one character at a time with jittered delays."""
        await self.scope.wait_for_selector(selector)
        await self.scope.focus(selector)
        for char in text:
            await self.scope.type(selector, char, delay=self.pacing.keystroke_delay_ms())
            await self.pacing.pause_between_keys()


def require_selector(action: Action) -> str:
    if not action.selector:
        raise ValueError(f"{action.kind} requires a selector")
    return action.selector


def require_value(action: Action, what: str = "value") -> str:
    if action.value is None or action.value == "":
        raise ValueError(f"{action.kind} requires a {what}")
    return action.value
