import logging
from abc import ABC, abstractmethod
from typing import Union

from browser_bot.actions.models import Action
from browser_bot.ai.script import default_script, normalize_script, parse_script
from browser_bot.exceptions import ScriptError

logger = logging.getLogger(__name__)


class ScriptProvider(ABC):
    """Abstract interface for prompt -> action script planners."""

    name = "base"

    @abstractmethod
    async def generate_steps(self, prompt: str) -> Union[str, list]:
        """
        Ask the model for a script.

        Returns:
            Raw model output (JSON text or decoded list)

        Raises:
            ScriptError: if the model could not be reached or returned nothing
        """

    async def plan(self, prompt: str) -> list[Action]:
        """Plan a script for ``prompt``; any planner failure yields the fallback script."""
        try:
            actions = parse_script(await self.generate_steps(prompt))
        except ScriptError as e:
            logger.warning(f"{self.name} planner failed: {e}")
            return default_script(prompt)
        logger.info(f"{self.name} planned {len(actions)} steps")
        return normalize_script(actions)


class FallbackScriptProvider(ScriptProvider):
    """Planner that never calls a model (SCRIPT_PROVIDER=none)."""

    name = "fallback"

    async def generate_steps(self, prompt: str) -> list:
        raise ScriptError("No script planner configured")
