"""Masking of secrets before they reach the logs."""

import re
from typing import TYPE_CHECKING
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

if TYPE_CHECKING:
    from browser_bot.actions.models import Action


# Query parameters that may contain sensitive data and should be masked
SENSITIVE_PARAMS = {
    'token', 'access_token', 'refresh_token', 'api_key', 'apikey', 'key',
    'secret', 'password', 'pwd', 'auth', 'authorization', 'bearer',
    'session', 'sessionid', 'sid', 'credential', 'credentials'
}

# Key names (or selector fragments) whose values must never be logged
CREDENTIAL_KEYS = {
    'password', 'pwd', 'passwd', 'secret', 'token', 'api_key', 'apikey',
    'card_number', 'cardnumber', 'cc-number', 'cvv', 'cvc', 'card_cvv',
    'expiry', 'card_expiry', 'expiration', 'pin', 'otp',
    'ssn', 'social_security', 'account_number'
}

# Names this short are matched as whole tokens only
SHORT_KEY_LENGTH = 3
SHORT_CREDENTIAL_KEYS = {k for k in CREDENTIAL_KEYS if len(k) <= SHORT_KEY_LENGTH}

MASK = '***MASKED***'
MAX_LOGGED_VALUE = 80


def sanitize_url(url: str) -> str:
    """Mask sensitive query parameters in URLs to prevent logging secrets."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return url
    if not parsed.query:
        return url

    params = parse_qs(parsed.query, keep_blank_values=True)
    sanitized = {}
    for key, values in params.items():
        if key.lower() in SENSITIVE_PARAMS:
            sanitized[key] = ['***REDACTED***'] * len(values)
        else:
            sanitized[key] = values

    return urlunparse(parsed._replace(query=urlencode(sanitized, doseq=True)))


def _key_tokens(key: str) -> set:
    """Lowercase tokens of a key or selector, splitting camelCase and punctuation."""
    spaced = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", key).lower()
    return set(re.split(r"[^a-z0-9]+", spaced))


def is_sensitive_key(key: str) -> bool:
    """
    Check if a key name or selector suggests sensitive credential data.

    Long names match anywhere ("#newpassword"); short ones such as "pin" or
    "otp" only as a whole token, so "#card-pin" is sensitive but "#shipping"
    is not.
    """
    key_lower = key.lower()
    if any(sensitive in key_lower for sensitive in CREDENTIAL_KEYS if len(sensitive) > SHORT_KEY_LENGTH):
        return True
    return bool(_key_tokens(key) & SHORT_CREDENTIAL_KEYS)


def describe_action(action: "Action") -> str:
    """One-line, log-safe description of an action."""
    parts = [action.kind]
    if action.selector:
        parts.append(f"selector={action.selector!r}")
    if action.value is not None:
        if action.selector and is_sensitive_key(action.selector):
            value = MASK
        elif action.kind == "set_cookie":
            value = MASK
        elif action.kind in ("navigate", "wait_for_url"):
            value = sanitize_url(action.value)
        else:
            value = action.value
        if len(value) > MAX_LOGGED_VALUE:
            value = value[:MAX_LOGGED_VALUE] + "..."
        parts.append(f"value={value!r}")
    return " ".join(parts)
