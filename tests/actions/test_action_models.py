"""Tests for Action parsing and step result serialization."""

import pytest
from pydantic import ValidationError

from browser_bot.actions.models import (
    NEWLINE_SENTINEL,
    Action,
    ActionOutcome,
    ExtractedValue,
    ScreenshotResult,
    results_to_dicts,
)


class TestAction:
    """Tests for the Action model."""

    def test_parses_external_shape(self):
        action = Action.model_validate(
            {"action": "type", "selector": "#q", "value": "hello", "reasoning": "search"}
        )

        assert action.kind == "type"
        assert action.selector == "#q"
        assert action.value == "hello"
        assert action.reasoning == "search"

    def test_kind_is_normalized(self):
        assert Action.model_validate({"action": "  CLICK "}).kind == "click"

    def test_legacy_goto_params_fold_into_navigate(self):
        action = Action.model_validate({"action": "goto", "params": {"url": "https://example.com"}})

        assert action.kind == "navigate"
        assert action.value == "https://example.com"

    def test_legacy_params_selector_and_text(self):
        action = Action.model_validate({"action": "type", "params": {"selector": "#q", "text": "cats"}})

        assert action.selector == "#q"
        assert action.value == "cats"

    def test_non_string_values_are_coerced(self):
        assert Action.model_validate({"action": "scroll_by", "value": 500}).value == "500"
        assert Action.model_validate({"action": "x", "value": True}).value == "true"
        cookie = Action.model_validate({"action": "set_cookie", "value": {"name": "a", "value": "b"}})
        assert cookie.value == '{"name": "a", "value": "b"}'

    def test_missing_kind_is_invalid(self):
        with pytest.raises(ValidationError):
            Action.model_validate({"selector": "#q"})

    def test_unknown_fields_are_ignored(self):
        action = Action.model_validate({"action": "click", "selector": "a", "extra": 1})
        assert action.to_dict() == {"action": "click", "selector": "a"}

    def test_enter_key_sentinel(self):
        assert Action(kind="type", selector="#q", value=NEWLINE_SENTINEL).is_enter_key
        assert not Action(kind="type", selector="#q", value="hello").is_enter_key
        assert not Action(kind="press_key", value=NEWLINE_SENTINEL).is_enter_key

    def test_to_dict_uses_external_key(self):
        action = Action(kind="navigate", value="https://example.com")
        assert action.to_dict() == {"action": "navigate", "value": "https://example.com"}


class TestStepResults:
    """Tests for step result records."""

    def test_screenshot_result(self):
        result = ScreenshotResult(data="aGVsbG8=").to_dict()

        assert result["type"] == "screenshot"
        assert result["data"] == "aGVsbG8="
        assert result["timestamp"]

    def test_extracted_value(self):
        result = ExtractedValue(kind="title", data="Example Domain").to_dict()

        assert result["type"] == "extracted_value"
        assert result["kind"] == "title"
        assert result["data"] == "Example Domain"

    def test_action_outcome_omits_error_on_success(self):
        result = ActionOutcome(action="click", reasoning=None, success=True).to_dict()

        assert result["type"] == "action"
        assert result["success"] is True
        assert "error" not in result

    def test_action_outcome_carries_error(self):
        result = ActionOutcome(action="click", reasoning="why", success=False, error="Timeout").to_dict()

        assert result["success"] is False
        assert result["error"] == "Timeout"
        assert result["reasoning"] == "why"

    def test_results_to_dicts_preserves_order(self):
        results = [
            ScreenshotResult(data="a"),
            ActionOutcome(action="navigate", reasoning=None, success=True),
        ]

        assert [r["type"] for r in results_to_dicts(results)] == ["screenshot", "action"]
