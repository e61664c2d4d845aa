"""Action interpreter - maps one Action to Playwright calls."""

import logging
from pathlib import Path
from typing import Optional, Union

from browser_bot.actions.context import ActionContext
from browser_bot.actions.models import Action, StepResult
from browser_bot.actions.pacing import HumanPacing
from browser_bot.actions.registry import ActionRegistry, registry as default_registry
from browser_bot.browser.controller import BrowserController
from browser_bot.config import DEFAULT_TIMEOUT_MS, UPLOAD_DIR
from browser_bot.utils.redaction import describe_action

# Registers the built-in handlers on the default registry
from browser_bot.actions import handlers as _handlers  # noqa: F401

logger = logging.getLogger(__name__)


class ActionInterpreter:
    """
    Executes single actions against the controller's current target.

    Carries no retry logic: any driver error propagates to the caller, which
    owns failure isolation. Unknown kinds are logged and skipped.
    """

    def __init__(
        self,
        pacing: Optional[HumanPacing] = None,
        artifact_dir: Optional[Union[str, Path]] = None,
        timeout_ms: float = DEFAULT_TIMEOUT_MS,
        action_registry: Optional[ActionRegistry] = None,
    ):
        self.pacing = pacing or HumanPacing()
        self.artifact_dir = Path(artifact_dir or UPLOAD_DIR)
        self.timeout_ms = timeout_ms
        self.registry = action_registry or default_registry

    async def execute(
        self,
        action: Action,
        controller: BrowserController,
        results: list[StepResult],
    ) -> bool:
        """
        Execute one action, appending any screenshot/extracted value to ``results``.

        Returns:
            False if the kind is unsupported and the action was skipped.
        """
        spec = self.registry.get(action.kind)
        if spec is None:
            logger.warning(f"Unknown action type: {action.kind}")
            return False

        logger.debug(f"Executing step: {describe_action(action)}")
        if spec.paced:
            await self.pacing.pause_before_action()

        ctx = ActionContext(
            controller=controller,
            results=results,
            pacing=self.pacing,
            artifact_dir=self.artifact_dir,
            timeout_ms=self.timeout_ms,
        )
        await spec.handler(ctx, action)
        return True
