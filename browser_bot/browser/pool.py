"""Bounded pool of reusable browser processes."""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Union

from playwright.async_api import Browser, BrowserContext, Error as PlaywrightError, Playwright, async_playwright

from browser_bot.browser import profile
from browser_bot.config import (
    BROWSER_HEADLESS,
    DEFAULT_TIMEOUT_MS,
    MAX_CONCURRENT_BROWSERS,
    UPLOAD_DIR,
    VIEWPORT_HEIGHT,
    VIEWPORT_WIDTH,
)
from browser_bot.exceptions import BrowserLaunchError, SessionDisconnectedError


logger = logging.getLogger(__name__)

_session_ids = 0


def _next_session_id() -> int:
    global _session_ids
    _session_ids += 1
    return _session_ids


class BrowserSession:
    """One launched browser process, owned by at most one job at a time."""

    def __init__(self, browser: Browser):
        self.id = _next_session_id()
        self.browser = browser

    @property
    def is_connected(self) -> bool:
        return self.browser.is_connected()

    async def close(self) -> None:
        try:
            await self.browser.close()
        except PlaywrightError as e:
            logger.debug(f"Browser session {self.id} already gone: {e}")

    def __repr__(self) -> str:
        return f"BrowserSession(id={self.id}, connected={self.is_connected})"


class BrowserPool:
    """
    Reuses idle browser processes across jobs.

    - ``acquire`` pops the most recently released live session (LIFO) or
      launches a new one; it never waits.
    - ``release`` returns a live session while fewer than ``max_browsers`` are
      idle, otherwise closes it.
    - Disconnected sessions are dropped wherever they are found.

    Concurrency is bounded by the number of worker slots, not by the pool.
    """

    def __init__(
        self,
        max_browsers: int = MAX_CONCURRENT_BROWSERS,
        headless: bool = BROWSER_HEADLESS,
        viewport_width: int = VIEWPORT_WIDTH,
        viewport_height: int = VIEWPORT_HEIGHT,
        video_dir: Union[str, Path] = UPLOAD_DIR,
        record_video: bool = True,
        playwright: Optional[Playwright] = None,
    ):
        self.max_browsers = max_browsers
        self.headless = headless
        self.viewport_width = viewport_width
        self.viewport_height = viewport_height
        self.video_dir = Path(video_dir)
        self.record_video = record_video

        self._playwright = playwright
        self._owns_playwright = playwright is None
        self._idle: list[BrowserSession] = []
        self._in_use: set[int] = set()
        self._lock = asyncio.Lock()
        self._started = playwright is not None

    @property
    def idle_count(self) -> int:
        return len(self._idle)

    @property
    def in_use_count(self) -> int:
        return len(self._in_use)

    async def start(self):
        """Start Playwright (browsers are launched lazily on acquire)."""
        if self._started:
            return
        self._playwright = await async_playwright().start()
        self._started = True
        logger.info(f"Browser pool started (max idle browsers: {self.max_browsers})")

    async def _launch(self) -> BrowserSession:
        if not self._started:
            await self.start()
        try:
            browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=profile.launch_args(self.viewport_width, self.viewport_height),
            )
        except PlaywrightError as e:
            raise BrowserLaunchError(f"Failed to launch browser: {e}") from e
        session = BrowserSession(browser)
        logger.info(f"Launched browser session {session.id}")
        return session

    async def acquire(self) -> BrowserSession:
        async with self._lock:
            while self._idle:
                session = self._idle.pop()
                if session.is_connected:
                    self._in_use.add(session.id)
                    logger.debug(f"Reusing browser session {session.id}")
                    return session
                logger.warning(f"Discarding disconnected browser session {session.id}")

        session = await self._launch()
        self._in_use.add(session.id)
        return session

    async def release(self, session: BrowserSession) -> None:
        if session.id not in self._in_use:
            logger.warning(f"Ignoring release of browser session {session.id}: not in use")
            return
        self._in_use.discard(session.id)
        if not session.is_connected:
            logger.warning(f"Released browser session {session.id} is disconnected; dropping it")
            return

        async with self._lock:
            if len(self._idle) < self.max_browsers:
                self._idle.append(session)
                return

        logger.debug(f"Pool full; closing browser session {session.id}")
        await session.close()

    async def new_context(self, session: BrowserSession) -> BrowserContext:
        """
        Open an isolated browsing context on ``session`` with the fixed fingerprint.

        Video is recorded into the artifact directory when enabled; the file is
        only complete once the context has been closed.
        """
        if not session.is_connected:
            raise SessionDisconnectedError(f"Browser session {session.id} is disconnected")

        options = profile.context_options(self.viewport_width, self.viewport_height)
        if self.record_video:
            self.video_dir.mkdir(parents=True, exist_ok=True)
            options["record_video_dir"] = str(self.video_dir)
            options["record_video_size"] = profile.viewport(self.viewport_width, self.viewport_height)

        context = await session.browser.new_context(**options)
        context.set_default_timeout(DEFAULT_TIMEOUT_MS)
        context.set_default_navigation_timeout(DEFAULT_TIMEOUT_MS)
        return context

    async def close(self):
        """Close every idle browser and stop Playwright."""
        async with self._lock:
            idle, self._idle = self._idle, []
        for session in idle:
            await session.close()

        if self._playwright and self._owns_playwright:
            await self._playwright.stop()
            self._playwright = None
            self._started = False
        logger.info(f"Browser pool closed ({len(idle)} idle browsers shut down)")
