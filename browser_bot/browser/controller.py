import asyncio
import base64
import logging
from typing import Callable, Literal, Optional, Union

from playwright.async_api import BrowserContext, Dialog, Frame, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError


logger = logging.getLogger(__name__)

DialogMode = Literal["accept", "dismiss"]


class BrowserController:
    """
    Explicit "current target" for one execution.

    Wraps the Playwright page a job is driving and tracks which tab and which
    frame subsequent actions address. Frame and tab switches mutate this
    object, never hidden state on the page itself; the step executor threads
    the same controller through every action of a script.

    Element queries go through ``scope`` (the current frame, or the current
    page when no frame is selected). Keyboard, mouse, history and screenshots
    always go through ``page``.
    """

    def __init__(self, page: Page, context: Optional[BrowserContext] = None):
        self._page = page
        self._context = context if context is not None else page.context
        self._frame: Optional[Frame] = None

    # ===== Current target =====

    @property
    def page(self) -> Page:
        """The current tab."""
        return self._page

    @property
    def context(self) -> BrowserContext:
        return self._context

    @property
    def frame(self) -> Optional[Frame]:
        """The selected iframe, or None when addressing the top-level document."""
        return self._frame

    @property
    def scope(self) -> Union[Page, Frame]:
        """Where element queries are resolved."""
        return self._frame if self._frame is not None else self._page

    @property
    def current_url(self) -> str:
        return self._page.url if self._page else ""

    def switch_to_frame(self, frame: Frame) -> None:
        self._frame = frame

    def switch_to_main_frame(self) -> None:
        self._frame = None

    def switch_to_page(self, page: Page) -> None:
        """Make another tab of the same context current (top-level frame)."""
        self._page = page
        self._frame = None

    def open_pages(self) -> list[Page]:
        return [p for p in self._context.pages if not p.is_closed()]

    async def close_current_page(self) -> bool:
        """
        Close the current tab and fall back to the most recently opened tab.

        Returns:
            True if another tab became current, False if none is left open.
        """
        closing = self._page
        await closing.close()
        remaining = [p for p in self.open_pages() if p is not closing]
        if remaining:
            self.switch_to_page(remaining[-1])
            return True
        self._frame = None
        return False

    # ===== Dialog Handling =====

    def arm_dialog_handler(
        self,
        mode: DialogMode,
        prompt_text: Optional[str] = None,
        on_message: Optional[Callable[[str], None]] = None,
    ) -> None:
        """
        Handle the *next* dialog raised by the current tab, once.

        Must be armed before the action that triggers the dialog; a dialog
        raised before arming is auto-dismissed by Playwright and missed.

        Args:
            mode: "accept" or "dismiss"
            prompt_text: Text to enter when accepting a prompt() dialog
            on_message: Called with the dialog message when it fires
        """
        if mode not in ("accept", "dismiss"):
            raise ValueError(f"Invalid dialog handler mode: {mode}")

        page = self._page

        async def on_dialog(dialog: Dialog):
            if on_message is not None:
                on_message(dialog.message)

            if mode == "accept":
                if dialog.type == "prompt" and prompt_text is not None:
                    await dialog.accept(prompt_text)
                else:
                    await dialog.accept()
            else:
                await dialog.dismiss()

            logger.debug(f"Handled {dialog.type} dialog ({mode}): {dialog.message[:80]}")

        page.once("dialog", on_dialog)

    # ===== Page state =====

    async def wait_for_network_idle(self, timeout_ms: float) -> None:
        """Best-effort wait for the network to settle; a timeout is not an error."""
        try:
            await self._page.wait_for_load_state("networkidle", timeout=timeout_ms)
        except PlaywrightTimeoutError:
            logger.debug(f"Network did not go idle within {timeout_ms}ms on {self.current_url}")

    async def screenshot(self, full_page: bool = True) -> bytes:
        """
        Take a PNG screenshot of the current tab.

        Args:
            full_page: If True, capture the entire scrollable page

        Returns:
            PNG image bytes
        """
        page = self._page
        if not page:
            raise RuntimeError("No page available")
        return await page.screenshot(type="png", full_page=full_page)

    async def screenshot_base64(self, full_page: bool = True) -> str:
        """Screenshot after a short settle, encoded for storage in step results."""
        await self.wait_for_network_idle(timeout_ms=5000)
        return base64.b64encode(await self.screenshot(full_page=full_page)).decode("utf-8")

    async def close_context(self, timeout: float = 10000) -> None:
        """Close the browsing context, which finalizes the video recording."""
        try:
            await asyncio.wait_for(self._context.close(), timeout=timeout / 1000)
        except asyncio.TimeoutError:
            logger.warning(f"Timeout closing browser context after {timeout}ms")
