"""Action and step-result data structures.

An Action is one declarative unit of browser instruction as produced by a
script planner or a caller. A StepResult is one append-only record of what
happened while executing it.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# Value of a `type` action that means "press Enter and wait for navigation"
NEWLINE_SENTINEL = "\n"

# Older planners emitted `goto` instead of `navigate`
KIND_ALIASES = {"goto": "navigate"}


class Action(BaseModel):
    """One step of an action script.

    JSON shape: ``{"action": str, "selector"?: str, "value"?: str, "reasoning"?: str}``.
    The legacy shape ``{"action": "goto", "params": {"url": ..., "selector": ..., "text": ...}}``
    is accepted and folded into ``selector``/``value``.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    kind: str = Field(alias="action")
    selector: Optional[str] = None
    # Kind-specific payload: text, URL, pixel delta, key name, serialized cookie
    value: Optional[str] = None
    reasoning: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _fold_legacy_params(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "params" not in data:
            return data
        data = dict(data)
        params = data.pop("params") or {}
        if isinstance(params, dict):
            data.setdefault("selector", params.get("selector"))
            for key in ("url", "text", "value"):
                if params.get(key) is not None:
                    data.setdefault("value", params[key])
                    break
        return data

    @field_validator("kind", mode="before")
    @classmethod
    def _normalize_kind(cls, v: Any) -> str:
        kind = str(v).strip().lower()
        return KIND_ALIASES.get(kind, kind)

    @field_validator("value", mode="before")
    @classmethod
    def _coerce_value(cls, v: Any) -> Optional[str]:
        if v is None or isinstance(v, str):
            return v
        if isinstance(v, bool):
            return "true" if v else "false"
        if isinstance(v, (int, float)):
            return str(v)
        return json.dumps(v)

    @property
    def is_enter_key(self) -> bool:
        """True for a `type` action that submits with Enter instead of typing."""
        return self.kind == "type" and self.value == NEWLINE_SENTINEL

    def to_dict(self) -> dict:
        """Serialize to the external JSON shape."""
        return self.model_dump(by_alias=True, exclude_none=True)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class StepResultType(str, Enum):
    SCREENSHOT = "screenshot"
    EXTRACTED_VALUE = "extracted_value"
    ACTION = "action"


@dataclass
class ScreenshotResult:
    """A screenshot captured after a state-changing action (base64 PNG)."""
    data: str
    timestamp: str = field(default_factory=_now_iso)

    type = StepResultType.SCREENSHOT

    def to_dict(self) -> dict:
        return {"type": self.type.value, "data": self.data, "timestamp": self.timestamp}


@dataclass
class ExtractedValue:
    """A value read from the page by a query action."""
    kind: str  # e.g. "title", "url", "text", "count", "cookies", "alert_text"
    data: Any
    timestamp: str = field(default_factory=_now_iso)

    type = StepResultType.EXTRACTED_VALUE

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "kind": self.kind,
            "data": self.data,
            "timestamp": self.timestamp,
        }


@dataclass
class ActionOutcome:
    """Whether one action succeeded, recorded once per input action."""
    action: str
    reasoning: Optional[str]
    success: bool
    error: Optional[str] = None
    timestamp: str = field(default_factory=_now_iso)

    type = StepResultType.ACTION

    def to_dict(self) -> dict:
        result = {
            "type": self.type.value,
            "action": self.action,
            "reasoning": self.reasoning,
            "success": self.success,
            "timestamp": self.timestamp,
        }
        if self.error is not None:
            result["error"] = self.error
        return result


StepResult = Union[ScreenshotResult, ExtractedValue, ActionOutcome]


def results_to_dicts(results: list[StepResult]) -> list[dict]:
    """Serialize a result sequence for persistence."""
    return [r.to_dict() for r in results]
