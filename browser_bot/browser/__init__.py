from browser_bot.browser.artifacts import ArtifactStore
from browser_bot.browser.controller import BrowserController
from browser_bot.browser.pool import BrowserPool, BrowserSession

__all__ = [
    "ArtifactStore",
    "BrowserController",
    "BrowserPool",
    "BrowserSession",
]
