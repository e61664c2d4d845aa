"""Parsing, normalization and fallback for action scripts."""

import json
import logging
import re
from typing import Any, Optional, Union

from pydantic import ValidationError

from browser_bot.actions.models import NEWLINE_SENTINEL, Action
from browser_bot.exceptions import ScriptError

logger = logging.getLogger(__name__)

GOOGLE_URL = "https://www.google.com"
GOOGLE_SEARCH_BOX = 'textarea[name="q"]'


def extract_json_array(text: str) -> Optional[list]:
    """Pull the first JSON array out of model output (bare, fenced, or embedded in prose)."""
    if not text:
        return None

    try:
        data = json.loads(text)
        if isinstance(data, list):
            return data
    except json.JSONDecodeError:
        pass

    # Try to extract JSON from markdown code block
    match = re.search(r"```(?:json)?\s*(.*?)\s*```", text, re.DOTALL)
    if match:
        try:
            data = json.loads(match.group(1).strip())
            if isinstance(data, list):
                return data
        except json.JSONDecodeError:
            pass

    # Bracket matching, trying each [ position
    search_start = 0
    while search_start < len(text):
        start = text.find("[", search_start)
        if start < 0:
            break
        depth = 0
        for i in range(start, len(text)):
            if text[i] == "[":
                depth += 1
            elif text[i] == "]":
                depth -= 1
                if depth == 0:
                    try:
                        data = json.loads(text[start:i + 1])
                        if isinstance(data, list):
                            return data
                    except json.JSONDecodeError:
                        pass
                    break
        search_start = start + 1

    return None


def parse_script(raw: Union[str, list, None]) -> list[Action]:
    """
    Parse a script (JSON text or already-decoded list) into Actions.

    Raises:
        ScriptError: if it is not a non-empty array of action objects
    """
    if isinstance(raw, str):
        decoded = extract_json_array(raw)
        if decoded is None:
            raise ScriptError(f"No JSON array found in script: {raw[:200]}")
        raw = decoded
    if not isinstance(raw, list) or not raw:
        raise ScriptError("Script must be a non-empty array of actions")

    actions = []
    for index, item in enumerate(raw):
        if isinstance(item, Action):
            actions.append(item)
            continue
        if not isinstance(item, dict):
            raise ScriptError(f"Step {index + 1} is not an object: {item!r}")
        try:
            actions.append(Action.model_validate(item))
        except ValidationError as e:
            raise ScriptError(f"Step {index + 1} is invalid: {e}") from e
    return actions


def normalize_script(actions: list[Action]) -> list[Action]:
    """Ensure the script ends with a screenshot."""
    if not actions or actions[-1].kind != "screenshot":
        return [*actions, Action(kind="screenshot")]
    return list(actions)


def _google_search_term(prompt: str) -> str:
    lowered = prompt.lower()
    if "search for" in lowered:
        term = lowered.split("search for", 1)[1]
    elif "type in" in lowered:
        term = lowered.split("type in", 1)[1]
    else:
        term = lowered.split("google", 1)[1]
    # "search for cats in google" -> "cats"
    return re.sub(r"\s+in\s+.*$", "", term.strip()).strip()


def default_script(prompt: Optional[str] = None) -> list[Action]:
    """
    Script used when no usable plan exists.

    A prompt mentioning Google becomes a Google search submitted with Enter;
    anything else opens Google and takes a screenshot.
    """
    if prompt and "google" in prompt.lower():
        term = _google_search_term(prompt)
        if term:
            logger.info(f"Using default Google search script for: {term}")
            return [
                Action(kind="navigate", value=GOOGLE_URL),
                Action(kind="type", selector=GOOGLE_SEARCH_BOX, value=term),
                Action(kind="type", selector=GOOGLE_SEARCH_BOX, value=NEWLINE_SENTINEL),
                Action(kind="screenshot"),
            ]

    logger.info("Using default fallback script")
    return [Action(kind="navigate", value=GOOGLE_URL), Action(kind="screenshot")]


def resolve_steps(raw: Any, prompt: Optional[str] = None) -> list[Action]:
    """Parse job steps, falling back to the default script when they are malformed or empty."""
    try:
        return parse_script(raw)
    except ScriptError as e:
        logger.warning(f"Unusable steps ({e}); using fallback script")
        return default_script(prompt)
