"""Built-in action handlers.

Each handler receives the per-action context and the parsed Action. Element
queries resolve against ``ctx.scope`` (current frame or tab); keyboard,
history and screenshots go through ``ctx.page``. Handlers raise on driver
errors; failure isolation belongs to the step executor.
"""

import base64
import json
import logging
from urllib.parse import urlparse

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from browser_bot.actions.context import ActionContext, require_selector, require_value
from browser_bot.actions.models import Action, ScreenshotResult
from browser_bot.actions.registry import ActionCategory, registry
from browser_bot.browser.artifacts import unique_name

logger = logging.getLogger(__name__)

ALLOWED_URL_SCHEMES = ("http", "https", "about", "")
LOAD_STATES = ("load", "domcontentloaded", "networkidle")
MAX_FIXED_WAIT_MS = 30000

# Post-click settle is shorter than a full navigation wait
CLICK_SETTLE_MS = 10000

# Category shorthands
BASIC = ActionCategory.BASIC
FORM = ActionCategory.FORM_INPUT
FILE = ActionCategory.FILE
NAV = ActionCategory.NAVIGATION
FRAME = ActionCategory.FRAME_WINDOW
EXTRACT = ActionCategory.EXTRACTION
WAIT = ActionCategory.WAITING
SCROLL = ActionCategory.SCROLLING
SHOT = ActionCategory.SCREENSHOT
COOKIE = ActionCategory.COOKIE_STORAGE
DIALOG = ActionCategory.DIALOG
ADVANCED = ActionCategory.ADVANCED


def _parse_ms(value, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return max(0.0, float(value))
    except ValueError:
        raise ValueError(f"Expected a duration in milliseconds, got: {value!r}")


async def _press_enter_and_wait(ctx: ActionContext) -> None:
    """Press Enter and wait for the resulting navigation, if there is one."""
    try:
        async with ctx.page.expect_navigation(wait_until="networkidle", timeout=ctx.timeout_ms):
            await ctx.page.keyboard.press("Enter")
    except PlaywrightTimeoutError:
        logger.debug("No navigation followed Enter; continuing")


async def _click_like(ctx: ActionContext, action: Action, **click_kwargs) -> None:
    selector = require_selector(action)
    await ctx.scope.wait_for_selector(selector)
    await ctx.scope.hover(selector)
    await ctx.scope.click(selector, **click_kwargs)
    await ctx.settle(CLICK_SETTLE_MS)
    await ctx.record_screenshot()


# ===== Basic interaction =====

@registry.register("navigate", BASIC)
async def navigate(ctx: ActionContext, action: Action) -> None:
    url = require_value(action, "URL").strip()
    parsed = urlparse(url)
    # Block dangerous schemes (javascript:, file:, data:, ...)
    if parsed.scheme.lower() not in ALLOWED_URL_SCHEMES:
        raise ValueError(f"Navigation blocked: unsafe URL scheme '{parsed.scheme}'")
    if not parsed.scheme:
        url = f"https://{url}"
    await ctx.page.goto(url, wait_until="domcontentloaded", timeout=ctx.timeout_ms)
    await ctx.settle()
    await ctx.record_screenshot()


@registry.register("click", BASIC)
async def click(ctx: ActionContext, action: Action) -> None:
    await _click_like(ctx, action)


@registry.register("double_click", BASIC)
async def double_click(ctx: ActionContext, action: Action) -> None:
    selector = require_selector(action)
    await ctx.scope.wait_for_selector(selector)
    await ctx.scope.dblclick(selector)
    await ctx.settle(CLICK_SETTLE_MS)
    await ctx.record_screenshot()


@registry.register("right_click", BASIC)
async def right_click(ctx: ActionContext, action: Action) -> None:
    await _click_like(ctx, action, button="right")


@registry.register("hover", BASIC)
async def hover(ctx: ActionContext, action: Action) -> None:
    selector = require_selector(action)
    await ctx.scope.wait_for_selector(selector)
    await ctx.scope.hover(selector)
    await ctx.record_screenshot()


@registry.register("drag_and_drop", BASIC)
async def drag_and_drop(ctx: ActionContext, action: Action) -> None:
    source = require_selector(action)
    target = require_value(action, "target selector")
    await ctx.scope.wait_for_selector(source)
    await ctx.scope.drag_and_drop(source, target)
    await ctx.record_screenshot()


# ===== Form input =====

@registry.register("type", FORM)
async def type_(ctx: ActionContext, action: Action) -> None:
    if action.is_enter_key:
        await _press_enter_and_wait(ctx)
        await ctx.record_screenshot()
        return
    selector = require_selector(action)
    await ctx.human_type(selector, action.value or "")
    await ctx.record_screenshot()


@registry.register("type_text", FORM)
async def type_text(ctx: ActionContext, action: Action) -> None:
    """Type into whatever element currently has focus."""
    for char in action.value or "":
        await ctx.page.keyboard.type(char, delay=ctx.pacing.keystroke_delay_ms())
        await ctx.pacing.pause_between_keys()
    await ctx.record_screenshot()


@registry.register("clear_input", FORM)
async def clear_input(ctx: ActionContext, action: Action) -> None:
    selector = require_selector(action)
    await ctx.scope.wait_for_selector(selector)
    await ctx.scope.click(selector, click_count=3)
    await ctx.page.keyboard.press("Backspace")
    await ctx.record_screenshot()


@registry.register("focus", FORM)
async def focus(ctx: ActionContext, action: Action) -> None:
    selector = require_selector(action)
    await ctx.scope.focus(selector)
    await ctx.record_screenshot()


@registry.register("press_key", FORM)
async def press_key(ctx: ActionContext, action: Action) -> None:
    key = action.value or "Enter"
    if action.selector:
        await ctx.scope.press(action.selector, key)
    else:
        await ctx.page.keyboard.press(key)
    await ctx.settle(CLICK_SETTLE_MS)
    await ctx.record_screenshot()


@registry.register("check_checkbox", FORM)
async def check_checkbox(ctx: ActionContext, action: Action) -> None:
    await ctx.scope.check(require_selector(action))
    await ctx.record_screenshot()


@registry.register("uncheck_checkbox", FORM)
async def uncheck_checkbox(ctx: ActionContext, action: Action) -> None:
    await ctx.scope.uncheck(require_selector(action))
    await ctx.record_screenshot()


@registry.register("select_dropdown", FORM)
async def select_dropdown(ctx: ActionContext, action: Action) -> None:
    selector = require_selector(action)
    await ctx.scope.select_option(selector, require_value(action, "option value"))
    await ctx.record_screenshot()


@registry.register("select_text", FORM)
async def select_text(ctx: ActionContext, action: Action) -> None:
    selector = require_selector(action)
    await ctx.scope.wait_for_selector(selector)
    await ctx.scope.click(selector, click_count=3)
    await ctx.record_screenshot()


# ===== File operations =====

@registry.register("upload_file", FILE)
async def upload_file(ctx: ActionContext, action: Action) -> None:
    selector = require_selector(action)
    paths = [p.strip() for p in require_value(action, "file path").split(",") if p.strip()]
    await ctx.scope.set_input_files(selector, paths if len(paths) > 1 else paths[0])
    await ctx.record_screenshot()


@registry.register("download_file", FILE)
async def download_file(ctx: ActionContext, action: Action) -> None:
    selector = require_selector(action)
    async with ctx.page.expect_download(timeout=ctx.timeout_ms) as download_info:
        await ctx.scope.click(selector)
    download = await download_info.value
    name = unique_name("download", original=download.suggested_filename)
    ctx.artifact_dir.mkdir(parents=True, exist_ok=True)
    await download.save_as(ctx.artifact_dir / name)
    logger.info(f"Saved download {name}")
    ctx.record_value("download", name)


# ===== Navigation =====

@registry.register("go_back", NAV)
async def go_back(ctx: ActionContext, action: Action) -> None:
    await ctx.page.go_back(timeout=ctx.timeout_ms)
    await ctx.settle()
    await ctx.record_screenshot()


@registry.register("go_forward", NAV)
async def go_forward(ctx: ActionContext, action: Action) -> None:
    await ctx.page.go_forward(timeout=ctx.timeout_ms)
    await ctx.settle()
    await ctx.record_screenshot()


@registry.register("reload", NAV)
async def reload(ctx: ActionContext, action: Action) -> None:
    await ctx.page.reload(timeout=ctx.timeout_ms)
    await ctx.settle()
    await ctx.record_screenshot()


@registry.register("close_tab", NAV)
async def close_tab(ctx: ActionContext, action: Action) -> None:
    if await ctx.controller.close_current_page():
        await ctx.record_screenshot()
    else:
        logger.warning("Closed the last open tab; later page actions will fail")


# ===== Frames and windows =====

@registry.register("switch_to_iframe", FRAME)
async def switch_to_iframe(ctx: ActionContext, action: Action) -> None:
    selector = require_selector(action)
    handle = await ctx.scope.wait_for_selector(selector)
    frame = await handle.content_frame() if handle else None
    if frame is None:
        raise ValueError(f"Element is not an iframe: {selector}")
    ctx.controller.switch_to_frame(frame)


@registry.register("switch_to_main_frame", FRAME)
async def switch_to_main_frame(ctx: ActionContext, action: Action) -> None:
    ctx.controller.switch_to_main_frame()


@registry.register("switch_to_new_tab", FRAME)
async def switch_to_new_tab(ctx: ActionContext, action: Action) -> None:
    """Click ``selector`` to open a tab and follow it, or follow the newest open tab."""
    if action.selector:
        async with ctx.context.expect_page(timeout=ctx.timeout_ms) as page_info:
            await ctx.scope.click(action.selector)
        new_page = await page_info.value
    else:
        others = [p for p in ctx.controller.open_pages() if p is not ctx.page]
        if not others:
            raise ValueError("No other tab is open")
        new_page = others[-1]
    await new_page.wait_for_load_state()
    ctx.controller.switch_to_page(new_page)
    await new_page.bring_to_front()
    await ctx.record_screenshot()


# ===== Data extraction =====

@registry.register("extract_text", EXTRACT, paced=False)
async def extract_text(ctx: ActionContext, action: Action) -> None:
    ctx.record_value("text", await ctx.scope.text_content(require_selector(action)))


@registry.register("get_attribute", EXTRACT, paced=False)
async def get_attribute(ctx: ActionContext, action: Action) -> None:
    selector = require_selector(action)
    name = require_value(action, "attribute name")
    ctx.record_value("attribute", await ctx.scope.get_attribute(selector, name))


@registry.register("get_title", EXTRACT, paced=False)
async def get_title(ctx: ActionContext, action: Action) -> None:
    ctx.record_value("title", await ctx.scope.title())


@registry.register("get_url", EXTRACT, paced=False)
async def get_url(ctx: ActionContext, action: Action) -> None:
    ctx.record_value("url", ctx.scope.url)


@registry.register("element_exists", EXTRACT, paced=False)
async def element_exists(ctx: ActionContext, action: Action) -> None:
    handle = await ctx.scope.query_selector(require_selector(action))
    ctx.record_value("exists", handle is not None)


@registry.register("is_visible", EXTRACT, paced=False)
async def is_visible(ctx: ActionContext, action: Action) -> None:
    ctx.record_value("visible", await ctx.scope.is_visible(require_selector(action)))


@registry.register("get_element_count", EXTRACT, paced=False)
async def get_element_count(ctx: ActionContext, action: Action) -> None:
    handles = await ctx.scope.query_selector_all(require_selector(action))
    ctx.record_value("count", len(handles))


@registry.register("get_cookies", EXTRACT, paced=False)
async def get_cookies(ctx: ActionContext, action: Action) -> None:
    ctx.record_value("cookies", await ctx.context.cookies())


@registry.register("get_alert_text", EXTRACT, paced=False)
async def get_alert_text(ctx: ActionContext, action: Action) -> None:
    ctx.controller.arm_dialog_handler(
        "dismiss",
        on_message=lambda message: ctx.record_value("alert_text", message),
    )


# ===== Waiting =====

@registry.register("wait_for_element", WAIT, paced=False)
async def wait_for_element(ctx: ActionContext, action: Action) -> None:
    timeout = _parse_ms(action.value, ctx.timeout_ms)
    await ctx.scope.wait_for_selector(require_selector(action), timeout=timeout)


@registry.register("wait_for_navigation", WAIT, paced=False)
async def wait_for_navigation(ctx: ActionContext, action: Action) -> None:
    state = action.value if action.value in LOAD_STATES else "networkidle"
    await ctx.page.wait_for_load_state(state, timeout=ctx.timeout_ms)


@registry.register("wait_for_timeout", WAIT, paced=False)
async def wait_for_timeout(ctx: ActionContext, action: Action) -> None:
    duration = min(_parse_ms(action.value, 1000), MAX_FIXED_WAIT_MS)
    await ctx.page.wait_for_timeout(duration)


@registry.register("wait_for_url", WAIT, paced=False)
async def wait_for_url(ctx: ActionContext, action: Action) -> None:
    await ctx.page.wait_for_url(require_value(action, "URL pattern"), timeout=ctx.timeout_ms)


# ===== Scrolling =====

@registry.register("scroll_to", SCROLL)
async def scroll_to(ctx: ActionContext, action: Action) -> None:
    selector = require_selector(action)
    await ctx.scope.wait_for_selector(selector)
    await ctx.scope.eval_on_selector(
        selector, "el => el.scrollIntoView({behavior: 'smooth', block: 'center'})"
    )
    await ctx.record_screenshot()


@registry.register("scroll_to_top", SCROLL)
async def scroll_to_top(ctx: ActionContext, action: Action) -> None:
    await ctx.scope.evaluate("() => window.scrollTo({top: 0, behavior: 'smooth'})")
    await ctx.record_screenshot()


@registry.register("scroll_to_bottom", SCROLL)
async def scroll_to_bottom(ctx: ActionContext, action: Action) -> None:
    await ctx.scope.evaluate(
        "() => window.scrollTo({top: document.body.scrollHeight, behavior: 'smooth'})"
    )
    await ctx.record_screenshot()


@registry.register("scroll_by", SCROLL)
async def scroll_by(ctx: ActionContext, action: Action) -> None:
    """Scroll by ``value`` pixels: ``"dy"`` or ``"dx,dy"``."""
    parts = [p.strip() for p in (action.value or "0").split(",")]
    try:
        deltas = [int(float(p or 0)) for p in parts]
    except ValueError:
        raise ValueError(f"Invalid scroll delta: {action.value!r}")
    dx, dy = (deltas[0], deltas[1]) if len(deltas) > 1 else (0, deltas[0])
    await ctx.scope.evaluate(
        "([dx, dy]) => window.scrollBy({left: dx, top: dy, behavior: 'smooth'})",
        [dx, dy],
    )
    await ctx.record_screenshot()


# ===== Screenshots =====

@registry.register("screenshot", SHOT, paced=False)
async def screenshot(ctx: ActionContext, action: Action) -> None:
    await ctx.record_screenshot()


@registry.register("screenshot_element", SHOT, paced=False)
async def screenshot_element(ctx: ActionContext, action: Action) -> None:
    selector = require_selector(action)
    handle = await ctx.scope.wait_for_selector(selector)
    if handle is None:
        raise ValueError(f"Element not found: {selector}")
    png = await handle.screenshot(type="png")
    ctx.results.append(ScreenshotResult(data=base64.b64encode(png).decode("utf-8")))


# ===== Cookies and storage =====

@registry.register("set_cookie", COOKIE)
async def set_cookie(ctx: ActionContext, action: Action) -> None:
    """``value`` is a JSON cookie object or list; cookies without a domain bind to the current URL."""
    try:
        parsed = json.loads(require_value(action, "cookie"))
    except json.JSONDecodeError as e:
        raise ValueError(f"Cookie value is not valid JSON: {e}")
    cookies = parsed if isinstance(parsed, list) else [parsed]
    for cookie in cookies:
        if "domain" not in cookie and "url" not in cookie:
            cookie["url"] = ctx.page.url
    await ctx.context.add_cookies(cookies)


@registry.register("clear_cookies", COOKIE)
async def clear_cookies(ctx: ActionContext, action: Action) -> None:
    await ctx.context.clear_cookies()


# ===== Dialogs =====

@registry.register("accept_alert", DIALOG, paced=False)
async def accept_alert(ctx: ActionContext, action: Action) -> None:
    # value doubles as the text entered into a prompt() dialog
    ctx.controller.arm_dialog_handler("accept", prompt_text=action.value)


@registry.register("dismiss_alert", DIALOG, paced=False)
async def dismiss_alert(ctx: ActionContext, action: Action) -> None:
    ctx.controller.arm_dialog_handler("dismiss")


# ===== Advanced =====

@registry.register("execute_javascript", ADVANCED)
async def execute_javascript(ctx: ActionContext, action: Action) -> None:
    result = await ctx.scope.evaluate(require_value(action, "script"))
    logger.debug(f"Script returned: {str(result)[:200]}")
    await ctx.settle(CLICK_SETTLE_MS)
    await ctx.record_screenshot()
