from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Literal, Optional

from playwright.async_api import ElementHandle, Page, Route, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..config import BrowserConfig, LoginTimeouts
from ..errors import SessionClosedError, TransitionTimeoutError


logger = logging.getLogger(__name__)

# source: https://docs.microsoft.com/en-us/azure/active-directory/hybrid/how-to-connect-sso-quick-start#google-chrome-all-platforms
AZURE_AD_SSO = "autologon.microsoftazuread-sso.com"

RequestHandler = Callable[[Route], Awaitable[None]]
WaitState = Literal["attached", "detached", "visible", "hidden"]


class BrowserSession:
    """
    The one Playwright page a login attempt drives.

    Once `release()` has been called (the SAML request was intercepted) every operation raises
    `SessionClosedError`, so a handler that lost the race cannot touch a browser that is going away.
    """

    def __init__(self, page: Page, *, close_callback: Optional[Callable[[], Awaitable[None]]] = None) -> None:
        self._page = page
        self._close_callback = close_callback
        self._request_handler: Optional[RequestHandler] = None
        self._routing = False
        self._released = False
        self._shut_down = False

    @property
    def closed(self) -> bool:
        return self._released or self._shut_down

    def release(self) -> None:
        self._released = True

    def _ensure_open(self, op: str) -> None:
        if self.closed:
            raise SessionClosedError(f"Browser session already released (operation: {op})")

    async def navigate(self, url: str) -> None:
        self._ensure_open("navigate")
        await self._page.goto(url, wait_until="domcontentloaded")

    async def query(self, selector: str) -> Optional[ElementHandle]:
        self._ensure_open("query")
        return await self._page.query_selector(selector)

    async def evaluate(self, element: ElementHandle, expression: str) -> Any:
        self._ensure_open("evaluate")
        return await element.evaluate(expression)

    async def text_content(self, element: ElementHandle) -> str:
        value = await self.evaluate(element, "(el) => el.textContent")
        return value or ""

    async def text_of(self, selector: str) -> Optional[str]:
        element = await self.query(selector)
        if element is None:
            return None
        return await self.text_content(element)

    async def click(self, selector: str) -> None:
        self._ensure_open("click")
        await self._page.click(selector)

    async def focus(self, selector: str) -> None:
        self._ensure_open("focus")
        await self._page.focus(selector)

    async def press(self, key: str, *, times: int = 1) -> None:
        for _ in range(times):
            self._ensure_open("press")
            await self._page.keyboard.press(key)

    async def type(self, text: str) -> None:
        self._ensure_open("type")
        await self._page.keyboard.type(text)

    async def wait_for(self, selector: str, *, state: WaitState = "visible", timeout_ms: float) -> None:
        self._ensure_open("wait_for")
        try:
            await self._page.wait_for_selector(selector, state=state, timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            raise TransitionTimeoutError(
                f"Timed out after {timeout_ms / 1000:.0f}s waiting for {selector!r} to be {state}."
            ) from e

    async def sleep(self, seconds: float) -> None:
        self._ensure_open("sleep")
        await asyncio.sleep(seconds)

    def on_request(self, callback: RequestHandler) -> None:
        self._request_handler = callback

    async def set_request_interception(self, enabled: bool) -> None:
        self._ensure_open("set_request_interception")
        if enabled and not self._routing:
            await self._page.route("**/*", self._dispatch_route)
            self._routing = True
        elif not enabled and self._routing:
            await self._page.unroute("**/*", self._dispatch_route)
            self._routing = False

    async def _dispatch_route(self, route: Route) -> None:
        # Routed requests keep flowing after release(); the handler decides what to do with them.
        if self._request_handler is None:
            await route.continue_()
            return
        await self._request_handler(route)

    async def screenshot(self, path: str) -> None:
        self._ensure_open("screenshot")
        await self._page.screenshot(path=path)

    async def close(self) -> None:
        if self._shut_down:
            return
        self._shut_down = True
        if self._close_callback is None:
            return
        try:
            await self._close_callback()
        except PlaywrightError:
            # A browser torn down mid-navigation can complain about targets that are already gone.
            logger.debug("Error while closing the browser (ignored).", exc_info=True)


def build_launch_args(config: BrowserConfig, timeouts: LoginTimeouts) -> list[str]:
    args: list[str] = []
    if not config.headless:
        args.append(f"--window-size={timeouts.viewport_width},{timeouts.viewport_height}")
    if config.disable_sandbox:
        args.append("--no-sandbox")
    if config.enable_chrome_network_service:
        args.append("--enable-features=NetworkService")
    if config.enable_chrome_seamless_sso:
        args += [
            f"--auth-server-whitelist={AZURE_AD_SSO}",
            f"--auth-negotiate-delegate-whitelist={AZURE_AD_SSO}",
        ]
    if config.disable_gpu:
        args.append("--disable-gpu")
    return args


async def _launch_with_fallback(launch: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
    # Prefer Playwright's bundled Chromium, but fall back to a system-installed browser if the
    # Playwright browser cache hasn't been populated (`playwright install chromium`).
    try:
        return await launch(*args, **kwargs)
    except PlaywrightError as e:
        msg = str(e)
        if "Executable doesn't exist" not in msg:
            raise

        logger.warning(
            "Playwright Chromium executable missing; falling back to system browser channel. (%s)",
            msg,
        )

        # Try Chrome first, then Edge.
        try:
            return await launch(*args, channel="chrome", **kwargs)
        except PlaywrightError:
            return await launch(*args, channel="msedge", **kwargs)


@asynccontextmanager
async def open_session(
    config: BrowserConfig,
    timeouts: LoginTimeouts,
    *,
    remember_me: bool = False,
) -> AsyncIterator[BrowserSession]:
    """
    Launch Chromium and yield a session over its first page. The browser is closed on every exit path.

    With `remember_me`, a persistent profile directory keeps the Azure AD "stay signed in" cookies.
    """
    launch_kwargs: dict[str, Any] = {
        "headless": config.headless,
        "args": build_launch_args(config, timeouts),
    }
    if config.no_disable_extensions:
        launch_kwargs["ignore_default_args"] = ["--disable-extensions"]
    if config.proxy:
        launch_kwargs["proxy"] = {"server": config.proxy}

    context_kwargs: dict[str, Any] = {
        "viewport": {"width": timeouts.viewport_width - 15, "height": timeouts.viewport_height - 35},
        "extra_http_headers": {"Accept-Language": "en"},
    }

    async with async_playwright() as p:
        if remember_me:
            user_data_dir = Path(config.user_data_dir).expanduser()
            user_data_dir.mkdir(parents=True, exist_ok=True)
            context = await _launch_with_fallback(
                p.chromium.launch_persistent_context,
                str(user_data_dir),
                **launch_kwargs,
                **context_kwargs,
            )
            page = context.pages[0] if context.pages else await context.new_page()
            session = BrowserSession(page, close_callback=context.close)
        else:
            browser = await _launch_with_fallback(p.chromium.launch, **launch_kwargs)
            context = await browser.new_context(**context_kwargs)
            page = await context.new_page()
            session = BrowserSession(page, close_callback=browser.close)

        try:
            yield session
        finally:
            await session.close()
