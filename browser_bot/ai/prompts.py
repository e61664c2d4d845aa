# =============================================================================
# Script Planner Prompts
# =============================================================================

SCRIPT_SYSTEM_PROMPT = """You are a browser automation expert. Convert user requests into a series of browser automation steps.

Each step is a JSON object:
{{"action": "<kind>", "selector": "<css selector, when the kind targets an element>", "value": "<text, URL, key, pixels or milliseconds>", "reasoning": "<why>"}}

Supported kinds:
{kinds}

Common selectors and patterns:
- Google search box: textarea[name="q"]
- YouTube search box: input#search
- Wikipedia search: input#searchInput
- Common form inputs: input[name="email"], input[name="password"]
- Links: a[href*="keyword"]

To submit a form with the Enter key, use a "type" step whose value is a single newline ("\\n").
"""

SCRIPT_USER_PROMPT = """Convert this request into browser automation steps: "{prompt}"

Here are example patterns:

1. Google Search (use Enter key, no click needed):
[
  {{"action": "navigate", "value": "https://www.google.com"}},
  {{"action": "type", "selector": "textarea[name='q']", "value": "search term"}},
  {{"action": "type", "selector": "textarea[name='q']", "value": "\\n"}}
]

2. YouTube Search (requires click on search button):
[
  {{"action": "navigate", "value": "https://www.youtube.com"}},
  {{"action": "type", "selector": "input#search", "value": "video search"}},
  {{"action": "click", "selector": "button#search-icon-legacy"}}
]

3. Login Flow (requires click on submit):
[
  {{"action": "navigate", "value": "https://example.com/login"}},
  {{"action": "type", "selector": "input[name='email']", "value": "user@example.com"}},
  {{"action": "type", "selector": "input[name='password']", "value": "password123"}},
  {{"action": "click", "selector": "button[type='submit']"}}
]

Return ONLY the JSON array. For Google searches, always use the Enter key ("\\n") to submit, never a click."""


def get_script_system_prompt(kinds: list[str]) -> str:
    return SCRIPT_SYSTEM_PROMPT.format(kinds=", ".join(kinds))


def get_script_user_prompt(prompt: str) -> str:
    return SCRIPT_USER_PROMPT.format(prompt=prompt.replace('"', "'"))


def script_json_schema(kinds: list[str]) -> dict:
    """JSON schema constraining planner output to an action array."""
    return {
        "type": "array",
        "items": {
            "type": "object",
            "properties": {
                "action": {"type": "string", "enum": kinds},
                "selector": {"type": "string"},
                "value": {"type": "string"},
                "reasoning": {"type": "string"},
            },
            "required": ["action"],
        },
    }
