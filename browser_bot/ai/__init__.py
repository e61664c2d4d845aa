from typing import Optional

from browser_bot.ai.base import FallbackScriptProvider, ScriptProvider
from browser_bot.ai.claude_provider import ClaudeScriptProvider
from browser_bot.ai.ollama_provider import OllamaScriptProvider
from browser_bot.ai.script import default_script, normalize_script, parse_script, resolve_steps
from browser_bot.config import AI_MODEL, ANTHROPIC_API_KEY, SCRIPT_PROVIDER


def get_script_provider(name: Optional[str] = None) -> ScriptProvider:
    """Build the planner selected by SCRIPT_PROVIDER (or ``name``)."""
    name = (name or SCRIPT_PROVIDER).lower()
    if name == "claude":
        if not ANTHROPIC_API_KEY:
            raise ValueError("ANTHROPIC_API_KEY is required for SCRIPT_PROVIDER=claude")
        return ClaudeScriptProvider(api_key=ANTHROPIC_API_KEY, model=AI_MODEL)
    if name == "ollama":
        return OllamaScriptProvider()
    if name == "none":
        return FallbackScriptProvider()
    raise ValueError(f"Unknown script provider: {name}")


__all__ = [
    "ClaudeScriptProvider",
    "FallbackScriptProvider",
    "OllamaScriptProvider",
    "ScriptProvider",
    "default_script",
    "get_script_provider",
    "normalize_script",
    "parse_script",
    "resolve_steps",
]
