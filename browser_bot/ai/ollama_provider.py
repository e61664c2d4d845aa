import logging
from typing import Optional

import httpx

from browser_bot.actions import registry
from browser_bot.ai.base import ScriptProvider
from browser_bot.ai.prompts import get_script_system_prompt, get_script_user_prompt, script_json_schema
from browser_bot.config import OLLAMA_MODEL, OLLAMA_URL, PLANNER_TIMEOUT_SECONDS
from browser_bot.exceptions import ScriptError

logger = logging.getLogger(__name__)


class OllamaScriptProvider(ScriptProvider):
    """Local Ollama planner using the chat endpoint with a JSON-schema response format."""

    name = "ollama"

    def __init__(
        self,
        base_url: str = OLLAMA_URL,
        model: str = OLLAMA_MODEL,
        timeout: float = PLANNER_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self._transport = transport

    def _build_request(self, prompt: str) -> dict:
        kinds = registry.kinds()
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": get_script_system_prompt(kinds)},
                {"role": "user", "content": get_script_user_prompt(prompt)},
            ],
            "stream": False,
            "format": script_json_schema(kinds),
            "options": {"temperature": 0},
        }

    async def generate_steps(self, prompt: str) -> str:
        logger.info(f"Sending prompt to Ollama ({self.model})")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(f"{self.base_url}/api/chat", json=self._build_request(prompt))
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as e:
            raise ScriptError(f"Ollama request failed: {e}") from e
        except ValueError as e:
            raise ScriptError(f"Ollama returned invalid JSON: {e}") from e

        content = (payload.get("message") or {}).get("content")
        if not content:
            raise ScriptError("Ollama returned an empty response")
        logger.debug(f"Ollama response: {content[:500]}")
        return content
