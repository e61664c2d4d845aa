"""Fixed desktop fingerprint applied to every browsing context."""

from browser_bot.config import VIEWPORT_HEIGHT, VIEWPORT_WIDTH

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

LOCALE = "en-US"
TIMEZONE_ID = "America/New_York"

# New York City
GEOLOCATION = {"longitude": -73.935242, "latitude": 40.730610}

# Permissions granted up front so prompts never block automation
GRANTED_PERMISSIONS = ["geolocation"]

EXTRA_HTTP_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Sec-Ch-Ua": '"Not_A Brand";v="8", "Chromium";v="120"',
    "Sec-Ch-Ua-Mobile": "?0",
    "Sec-Ch-Ua-Platform": '"Windows"',
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
    "Upgrade-Insecure-Requests": "1",
}


def viewport(width: int = VIEWPORT_WIDTH, height: int = VIEWPORT_HEIGHT) -> dict:
    return {"width": width, "height": height}


def launch_args(width: int = VIEWPORT_WIDTH, height: int = VIEWPORT_HEIGHT) -> list[str]:
    """Chromium flags that hide the most obvious automation markers."""
    return [
        "--disable-blink-features=AutomationControlled",
        "--disable-features=IsolateOrigins,site-per-process",
        f"--window-size={width},{height}",
    ]


def context_options(width: int = VIEWPORT_WIDTH, height: int = VIEWPORT_HEIGHT) -> dict:
    """Keyword arguments for ``Browser.new_context`` (without video settings)."""
    return {
        "user_agent": USER_AGENT,
        "viewport": viewport(width, height),
        "device_scale_factor": 1,
        "locale": LOCALE,
        "timezone_id": TIMEZONE_ID,
        "geolocation": dict(GEOLOCATION),
        "permissions": list(GRANTED_PERMISSIONS),
        "color_scheme": "light",
        "accept_downloads": True,
        "extra_http_headers": dict(EXTRA_HTTP_HEADERS),
    }
