"""Dispatch table mapping action kinds to handlers."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from browser_bot.actions.context import ActionContext
    from browser_bot.actions.models import Action


class ActionCategory(str, Enum):
    BASIC = "basic"
    FORM_INPUT = "form_input"
    FILE = "file"
    NAVIGATION = "navigation"
    FRAME_WINDOW = "frame_window"
    EXTRACTION = "extraction"
    WAITING = "waiting"
    SCROLLING = "scrolling"
    SCREENSHOT = "screenshot"
    COOKIE_STORAGE = "cookie_storage"
    DIALOG = "dialog"
    ADVANCED = "advanced"


Handler = Callable[["ActionContext", "Action"], Awaitable[None]]


@dataclass(frozen=True)
class ActionSpec:
    kind: str
    category: ActionCategory
    handler: Handler
    # Preceded by the human pre-action delay (state-changing kinds only)
    paced: bool = True


class ActionRegistry:
    """Registry of action handlers, keyed by action kind."""

    def __init__(self) -> None:
        self._specs: dict[str, ActionSpec] = {}

    def register(
        self,
        kind: str,
        category: ActionCategory,
        paced: bool = True,
    ) -> Callable[[Handler], Handler]:
        """Decorator registering a handler for ``kind``."""

        def decorator(handler: Handler) -> Handler:
            if kind in self._specs:
                raise ValueError(f"Action kind already registered: {kind}")
            self._specs[kind] = ActionSpec(kind, category, handler, paced)
            return handler

        return decorator

    def get(self, kind: str) -> Optional[ActionSpec]:
        return self._specs.get(kind)

    def kinds(self) -> list[str]:
        return sorted(self._specs)

    def __len__(self) -> int:
        return len(self._specs)


registry = ActionRegistry()
