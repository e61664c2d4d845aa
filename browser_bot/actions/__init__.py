from browser_bot.actions.interpreter import ActionInterpreter
from browser_bot.actions.models import (
    Action,
    ActionOutcome,
    ExtractedValue,
    ScreenshotResult,
    StepResult,
    StepResultType,
    results_to_dicts,
)
from browser_bot.actions.pacing import HumanPacing, instant_pacing
from browser_bot.actions.registry import ActionCategory, ActionRegistry, ActionSpec, registry

__all__ = [
    "Action",
    "ActionCategory",
    "ActionInterpreter",
    "ActionOutcome",
    "ActionRegistry",
    "ActionSpec",
    "ExtractedValue",
    "HumanPacing",
    "ScreenshotResult",
    "StepResult",
    "StepResultType",
    "instant_pacing",
    "registry",
    "results_to_dicts",
]
