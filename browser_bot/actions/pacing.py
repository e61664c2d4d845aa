"""Human-like timing jitter applied around browser actions."""

import asyncio
import random
from typing import Awaitable, Callable, Optional

# All ranges are half-open [low, high) in milliseconds
PRE_ACTION_DELAY_MS = (500, 2000)
KEYSTROKE_DELAY_MS = (50, 200)
INTER_KEY_PAUSE_MS = (0, 100)


class HumanPacing:
    """
    Source of randomized delays modelling human pacing.

    The random generator and the sleep coroutine are injectable so callers can
    seed the jitter or skip the waiting entirely.
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        enabled: bool = True,
    ):
        self._rng = rng or random.Random()
        self._sleep = sleep
        self.enabled = enabled

    def _uniform_ms(self, bounds: tuple[int, int]) -> float:
        low, high = bounds
        # random() is in [0, 1), so the result never reaches `high`
        return low + (high - low) * self._rng.random()

    def pre_action_delay_ms(self) -> int:
        return int(self._uniform_ms(PRE_ACTION_DELAY_MS))

    def keystroke_delay_ms(self) -> int:
        """Per-character delay handed to the driver (0 when pacing is disabled)."""
        if not self.enabled:
            return 0
        return int(self._uniform_ms(KEYSTROKE_DELAY_MS))

    def inter_key_pause_ms(self) -> float:
        return self._uniform_ms(INTER_KEY_PAUSE_MS)

    async def pause_before_action(self) -> None:
        if self.enabled:
            await self._sleep(self.pre_action_delay_ms() / 1000)

    async def pause_between_keys(self) -> None:
        if self.enabled:
            await self._sleep(self.inter_key_pause_ms() / 1000)


def instant_pacing() -> HumanPacing:
    """Pacing that computes delays but never sleeps (for dry runs and tests)."""
    return HumanPacing(enabled=False)
