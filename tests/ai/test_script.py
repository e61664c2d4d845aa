"""Tests for script parsing, fallback scripts and planner prompts."""

import pytest

from browser_bot.actions import registry
from browser_bot.actions.models import NEWLINE_SENTINEL, Action
from browser_bot.ai import FallbackScriptProvider, get_script_provider
from browser_bot.ai.ollama_provider import OllamaScriptProvider
from browser_bot.ai.prompts import get_script_system_prompt, get_script_user_prompt, script_json_schema
from browser_bot.ai.script import (
    GOOGLE_SEARCH_BOX,
    GOOGLE_URL,
    default_script,
    extract_json_array,
    normalize_script,
    parse_script,
    resolve_steps,
)
from browser_bot.exceptions import ScriptError


class TestExtractJsonArray:
    """Tests for pulling JSON arrays out of model output."""

    def test_bare_array(self):
        assert extract_json_array('[{"action": "screenshot"}]') == [{"action": "screenshot"}]

    def test_fenced_block(self):
        text = 'Here you go:\n```json\n[{"action": "reload"}]\n```\nDone.'
        assert extract_json_array(text) == [{"action": "reload"}]

    def test_embedded_in_prose(self):
        text = 'Sure [not json] then [{"action": "go_back"}] as requested'
        assert extract_json_array(text) == [{"action": "go_back"}]

    def test_nothing_usable(self):
        assert extract_json_array("") is None
        assert extract_json_array('{"action": "reload"}') is None
        assert extract_json_array("no brackets at all") is None


class TestParseScript:
    """Tests for strict script parsing."""

    def test_parses_text_and_lists(self):
        actions = parse_script('[{"action": "navigate", "value": "https://example.com"}]')
        assert actions == [Action(kind="navigate", value="https://example.com")]

        assert parse_script([Action(kind="reload"), {"action": "screenshot"}])[1].kind == "screenshot"

    @pytest.mark.parametrize("raw", [None, [], "[]", "{}", "garbage", ["click"], [{"selector": "#x"}]])
    def test_rejects_malformed_scripts(self, raw):
        with pytest.raises(ScriptError):
            parse_script(raw)

    def test_normalize_appends_screenshot_once(self):
        actions = normalize_script([Action(kind="reload")])
        assert [a.kind for a in actions] == ["reload", "screenshot"]
        assert normalize_script(actions) == actions


class TestDefaultScript:
    """Tests for the fallback script."""

    def test_google_search_prompt(self):
        actions = default_script("search for cats in google")

        assert actions == [
            Action(kind="navigate", value=GOOGLE_URL),
            Action(kind="type", selector=GOOGLE_SEARCH_BOX, value="cats"),
            Action(kind="type", selector=GOOGLE_SEARCH_BOX, value=NEWLINE_SENTINEL),
            Action(kind="screenshot"),
        ]

    def test_google_prefix_prompt(self):
        assert default_script("Google pizza near me")[1].value == "pizza near me"

    def test_other_prompt(self):
        assert [a.kind for a in default_script("book a flight")] == ["navigate", "screenshot"]
        assert [a.kind for a in default_script(None)] == ["navigate", "screenshot"]

    def test_resolve_steps_falls_back(self):
        assert resolve_steps("not json", "book a flight") == default_script("book a flight")
        assert resolve_steps([{"action": "reload"}]) == [Action(kind="reload")]


class TestPrompts:
    """Tests for planner prompt construction."""

    def test_system_prompt_lists_kinds(self):
        prompt = get_script_system_prompt(registry.kinds())

        assert "switch_to_iframe" in prompt
        assert '{"action": "<kind>"' in prompt

    def test_user_prompt_quotes_are_neutralized(self):
        prompt = get_script_user_prompt('search "cats"')
        assert "\"search 'cats'\"" in prompt

    def test_schema_enumerates_kinds(self):
        schema = script_json_schema(["click", "reload"])

        assert schema["type"] == "array"
        assert schema["items"]["properties"]["action"]["enum"] == ["click", "reload"]
        assert schema["items"]["required"] == ["action"]


class TestProviderFactory:
    """Tests for get_script_provider and the no-model planner."""

    def test_known_providers(self):
        assert isinstance(get_script_provider("none"), FallbackScriptProvider)
        assert isinstance(get_script_provider("OLLAMA"), OllamaScriptProvider)

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            get_script_provider("gpt")

    def test_claude_requires_key(self, monkeypatch):
        monkeypatch.setattr("browser_bot.ai.ANTHROPIC_API_KEY", None)
        with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
            get_script_provider("claude")

    @pytest.mark.asyncio
    async def test_fallback_provider_plans_default_script(self):
        actions = await FallbackScriptProvider().plan("search for dogs in google")

        assert actions[1].value == "dogs"
        assert actions[-1].kind == "screenshot"
