import asyncio
import logging
import random

from anthropic import APIConnectionError, APIError, APITimeoutError, AsyncAnthropic, RateLimitError

from browser_bot.actions import registry
from browser_bot.ai.base import ScriptProvider
from browser_bot.ai.prompts import get_script_system_prompt, get_script_user_prompt
from browser_bot.config import DEFAULT_MODEL
from browser_bot.exceptions import ScriptError

logger = logging.getLogger(__name__)

# Retry configuration
MAX_RETRIES = 5
INITIAL_BACKOFF = 2.0  # seconds
MAX_BACKOFF = 60.0  # seconds
BACKOFF_MULTIPLIER = 5.0
JITTER_FACTOR = 0.5  # Add up to 50% randomness to backoff

MAX_TOKENS = 4096


def _calculate_wait_time(backoff: float) -> float:
    """Calculate wait time with jitter to prevent thundering herd."""
    jitter = random.random() * JITTER_FACTOR
    return min(backoff * (1 + jitter), MAX_BACKOFF)


class ClaudeScriptProvider(ScriptProvider):
    """Anthropic Claude planner."""

    name = "claude"

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        max_concurrent_calls: int = 2,
        client: AsyncAnthropic = None,
        sleep=asyncio.sleep,
    ):
        self.client = client or AsyncAnthropic(api_key=api_key)
        self.model = model
        # Limits concurrent API calls to avoid rate limiting
        self._api_semaphore = asyncio.Semaphore(max_concurrent_calls)
        self._sleep = sleep

    async def _retry_with_backoff(self, operation_name: str, operation):
        """
        Execute an async operation with exponential backoff retry for transient errors.

        The semaphore is held only for the API call, never during the retry sleep.

        Retries on:
        - RateLimitError (429)
        - APIConnectionError (network issues)
        - APITimeoutError
        - Overloaded (529) and 5xx server errors
        """
        last_exception = None
        backoff = INITIAL_BACKOFF

        for attempt in range(MAX_RETRIES):
            async with self._api_semaphore:
                try:
                    return await operation()
                except RateLimitError as e:
                    last_exception = e
                    wait_time = _calculate_wait_time(backoff)
                    # Honour retry-after exactly when the server sends it
                    if getattr(e, "response", None) is not None:
                        retry_after = e.response.headers.get("retry-after")
                        if retry_after:
                            try:
                                wait_time = min(float(retry_after), MAX_BACKOFF)
                            except ValueError:
                                pass
                    logger.warning(
                        f"{operation_name}: Rate limited (attempt {attempt + 1}/{MAX_RETRIES}), "
                        f"retrying in {wait_time:.1f}s..."
                    )
                except (APIConnectionError, APITimeoutError) as e:
                    last_exception = e
                    wait_time = _calculate_wait_time(backoff)
                    logger.warning(
                        f"{operation_name}: Connection/timeout error (attempt {attempt + 1}/{MAX_RETRIES}), "
                        f"retrying in {wait_time:.1f}s: {e}"
                    )
                except APIError as e:
                    if getattr(e, "status_code", None) in (529, 500, 502, 503, 504):
                        last_exception = e
                        wait_time = _calculate_wait_time(backoff)
                        logger.warning(
                            f"{operation_name}: Server error {e.status_code} (attempt {attempt + 1}/{MAX_RETRIES}), "
                            f"retrying in {wait_time:.1f}s..."
                        )
                    else:
                        # Non-retryable API error
                        raise

            await self._sleep(wait_time)
            backoff *= BACKOFF_MULTIPLIER

        logger.error(f"{operation_name}: All {MAX_RETRIES} retries exhausted")
        raise last_exception

    async def generate_steps(self, prompt: str) -> str:
        async def _make_script_request():
            return await self.client.messages.create(
                model=self.model,
                max_tokens=MAX_TOKENS,
                system=get_script_system_prompt(registry.kinds()),
                messages=[{"role": "user", "content": get_script_user_prompt(prompt)}],
            )

        try:
            response = await self._retry_with_backoff("Script planner", _make_script_request)
        except APIError as e:
            raise ScriptError(f"Claude request failed: {e}") from e

        text = "".join(block.text for block in response.content if block.type == "text")
        if not text.strip():
            raise ScriptError("Claude returned an empty response")
        return text
