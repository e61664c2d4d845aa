"""Sequential step executor with per-action failure isolation."""

import logging
from typing import Iterable, Optional

from browser_bot.actions.interpreter import ActionInterpreter
from browser_bot.actions.models import Action, ActionOutcome, ScreenshotResult, StepResult
from browser_bot.browser.controller import BrowserController

logger = logging.getLogger(__name__)


class StepExecutor:
    """
    Runs an action script strictly in order against one controller.

    A failing action never aborts the run: its outcome is recorded with the
    error text, a best-effort screenshot is attempted, and execution moves on.
    Exactly one ActionOutcome is appended per input action, so the caller can
    tell how far a script got and which steps failed.
    """

    def __init__(self, interpreter: Optional[ActionInterpreter] = None):
        self.interpreter = interpreter or ActionInterpreter()

    async def run(self, controller: BrowserController, steps: Iterable[Action]) -> list[StepResult]:
        results: list[StepResult] = []
        for index, action in enumerate(steps):
            try:
                await self.interpreter.execute(action, controller, results)
                results.append(ActionOutcome(action=action.kind, reasoning=action.reasoning, success=True))
            except Exception as e:
                logger.error(f"Step {index + 1} ({action.kind}) failed: {e}")
                results.append(
                    ActionOutcome(
                        action=action.kind,
                        reasoning=action.reasoning,
                        success=False,
                        error=str(e),
                    )
                )
                await self._error_screenshot(controller, results)
        return results

    async def _error_screenshot(self, controller: BrowserController, results: list[StepResult]) -> None:
        try:
            results.append(ScreenshotResult(data=await controller.screenshot_base64()))
        except Exception as e:
            logger.warning(f"Could not capture error screenshot: {e}")


def count_failures(results: Iterable[StepResult]) -> int:
    return sum(1 for r in results if isinstance(r, ActionOutcome) and not r.success)
