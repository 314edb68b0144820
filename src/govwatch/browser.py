"""Headless browser session used by the scrape pipeline.

Wraps Playwright's async API: launches Chromium with automation fingerprints
masked, blocks heavy resources, forwards console output into diagnostics and
exposes the small capability surface the pipeline needs (navigate, scroll,
read the DOM, take screenshots, observe responses).
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Protocol

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from .config import BrowserSettings
from .diagnostics import Diagnostics
from .models import BrowserLaunchError, NavigationOutcome

ResponseHandler = Callable[[Any], Awaitable[None]]

CHROMIUM_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
]
WEBDRIVER_MASK_SCRIPT = "Object.defineProperty(navigator, 'webdriver', {get: () => undefined})"

SCROLL_STEP_SCRIPT = """
(distance) => {
    window.scrollBy(0, distance);
    return document.body ? document.body.scrollHeight : 0;
}
"""


class PageSession(Protocol):
    """What the pipeline needs from a browser session."""

    current_url: str

    def on_response(self, handler: ResponseHandler) -> None:
        ...

    async def navigate(self, url: str, label: str) -> NavigationOutcome:
        ...

    async def content(self) -> str:
        ...

    async def screenshot(self, path: Path, *, full_page: bool = False) -> bool:
        ...

    async def drain_responses(self) -> None:
        ...

    async def __aenter__(self) -> "PageSession":
        ...

    async def __aexit__(self, exc_type, exc, tb) -> None:
        ...


SessionFactory = Callable[[BrowserSettings, Diagnostics], PageSession]


class BrowserSession:
    """Playwright-backed :class:`PageSession`."""

    def __init__(self, settings: BrowserSettings, diagnostics: Diagnostics) -> None:
        self.settings = settings
        self.diagnostics = diagnostics
        self.current_url = ""

        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None
        self._response_handlers: List[ResponseHandler] = []
        self._pending: List[asyncio.Future] = []

    async def __aenter__(self) -> "BrowserSession":
        await self.launch()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def launch(self) -> None:
        """Start Chromium and open the single page used for the run."""
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.settings.headless,
                args=CHROMIUM_ARGS + list(self.settings.extra_args),
            )
            self._context = await self._browser.new_context(
                viewport={"width": self.settings.viewport_width, "height": self.settings.viewport_height},
                user_agent=self.settings.user_agent,
            )
            await self._context.add_init_script(WEBDRIVER_MASK_SCRIPT)
            await self._context.route("**/*", self._route_request)
            self._page = await self._context.new_page()
        except PlaywrightError as exc:
            await self.close()
            raise BrowserLaunchError(str(exc)) from exc

        self._page.on("console", self._forward_console)
        self._page.on("pageerror", self._forward_page_error)
        self._page.on("response", self._dispatch_response)
        self.diagnostics.log("Browser launched")

    async def close(self) -> None:
        """Tear down page, context, browser and driver; safe to call twice."""
        await self.drain_responses()
        for resource in (self._context, self._browser):
            if resource is None:
                continue
            try:
                await resource.close()
            except PlaywrightError as exc:
                self.diagnostics.warning(f"Error while closing browser: {exc}")
        if self._playwright is not None:
            await self._playwright.stop()
        self._page = None
        self._context = None
        self._browser = None
        self._playwright = None

    # ------------------------------------------------------------------
    # Event plumbing
    # ------------------------------------------------------------------
    async def _route_request(self, route) -> None:
        if route.request.resource_type in self.settings.blocked_resource_types:
            await route.abort()
        else:
            await route.continue_()

    def _forward_console(self, message) -> None:
        text = message.text
        if "ERR_" in text:
            return
        self.diagnostics.log(f"[BROWSER] {text}")

    def _forward_page_error(self, error) -> None:
        self.diagnostics.warning(f"[BROWSER] page error: {error}")

    def on_response(self, handler: ResponseHandler) -> None:
        self._response_handlers.append(handler)

    def _dispatch_response(self, response) -> None:
        for handler in self._response_handlers:
            self._pending.append(asyncio.ensure_future(handler(response)))

    async def drain_responses(self) -> None:
        """Wait for every scheduled response handler to finish."""
        while self._pending:
            pending, self._pending = self._pending, []
            results = await asyncio.gather(*pending, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    self.diagnostics.warning(f"Response handler failed: {result}")

    # ------------------------------------------------------------------
    # Page operations
    # ------------------------------------------------------------------
    async def navigate(self, url: str, label: str) -> NavigationOutcome:
        """Load ``url`` and let it settle; timeouts are reported, not raised."""
        if self._page is None:
            raise BrowserLaunchError("navigate() called before launch()")

        self.diagnostics.log(f"Navigating to {url}")
        try:
            await self._page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=self.settings.navigation_timeout_ms,
            )
            self.current_url = self._page.url
            await asyncio.sleep(self.settings.settle_delay_ms / 1000)
            await self.auto_scroll()
            await asyncio.sleep(self.settings.post_scroll_delay_ms / 1000)
        except PlaywrightTimeoutError as exc:
            return await self._failed_navigation(url, label, f"Timeout loading {url}: {exc}")
        except PlaywrightError as exc:
            return await self._failed_navigation(url, label, f"Error loading {url}: {exc}")

        screenshot = self.diagnostics.screenshot_path(label)
        taken = await self.screenshot(screenshot)
        await self.drain_responses()
        self.diagnostics.log(f"Loaded {label}")
        return NavigationOutcome(
            label=label,
            url=url,
            ok=True,
            html=await self.content(),
            screenshot=str(screenshot) if taken else None,
        )

    async def _failed_navigation(self, url: str, label: str, message: str) -> NavigationOutcome:
        self.diagnostics.warning(message)
        if self._page is not None:
            self.current_url = self._page.url or url
        screenshot = self.diagnostics.screenshot_path(label, timeout=True)
        taken = await self.screenshot(screenshot)
        await self.drain_responses()
        return NavigationOutcome(
            label=label,
            url=url,
            ok=False,
            html=await self.content(),
            screenshot=str(screenshot) if taken else None,
            error=message,
        )

    async def auto_scroll(self) -> None:
        """Scroll down in fixed steps until the page end or the height ceiling."""
        scroll = self.settings.scroll
        travelled = 0
        for _ in range(scroll.max_steps):
            scroll_height = await self._page.evaluate(SCROLL_STEP_SCRIPT, scroll.step_px)
            travelled += scroll.step_px
            if travelled >= scroll_height or travelled > scroll.max_height_px:
                break
            await asyncio.sleep(scroll.interval_ms / 1000)

    async def content(self) -> str:
        if self._page is None:
            return ""
        try:
            return await self._page.content()
        except PlaywrightError as exc:
            self.diagnostics.warning(f"Could not read page content: {exc}")
            return ""

    async def screenshot(self, path: Path, *, full_page: bool = False) -> bool:
        if self._page is None:
            return False
        try:
            await self._page.screenshot(path=str(path), full_page=full_page)
        except PlaywrightError as exc:
            self.diagnostics.warning(f"Screenshot {path.name} failed: {exc}")
            return False
        self.diagnostics.log(f"Screenshot saved: {path.name}")
        return True


def default_session_factory(settings: BrowserSettings, diagnostics: Diagnostics) -> BrowserSession:
    return BrowserSession(settings, diagnostics)
