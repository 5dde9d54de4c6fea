"""
Browser module: Playwright implementation of the browser runtime.
"""

import asyncio
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from playwright.async_api import Browser, BrowserContext, Page, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .config import Settings
from .errors import ElementNotFound, NavigationUnexpected
from .runtime import Locator

_ELEMENT_INFO_JS = """el => ({
    tag: el.tagName.toLowerCase(),
    id: el.id || '',
    name: el.getAttribute('name') || '',
    type: el.getAttribute('type') || '',
    aria: el.getAttribute('aria-label') || '',
    automation: el.getAttribute('data-automation-id') || '',
})"""

_VISIBLE_LABELS_JS = """els => els
    .filter(e => e.getClientRects().length > 0)
    .map(e => (e.innerText || '').trim())
    .filter(Boolean)"""

_ARIA_LABELS_JS = """els => els
    .map(e => (e.getAttribute('aria-label') || '').trim())
    .filter(Boolean)"""

_SIMPLE_ID = re.compile(r"^[A-Za-z][\w-]*$")


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def build_stable_selector(info: Dict[str, Any]) -> Optional[str]:
    """Pick the most durable CSS selector for an element description.

    Preference: id, name, data-automation-id, type + aria-label,
    aria-label, type. Ids that are not valid CSS identifiers (e.g. React's
    numeric ids) use the attribute form.
    """
    tag = info.get("tag") or "input"
    el_id = info.get("id")
    if el_id:
        if _SIMPLE_ID.match(el_id):
            return f"#{el_id}"
        return f'{tag}[id="{_quote(el_id)}"]'
    if info.get("name"):
        return f'{tag}[name="{_quote(info["name"])}"]'
    if info.get("automation"):
        return f'{tag}[data-automation-id="{_quote(info["automation"])}"]'
    if info.get("type") and info.get("aria"):
        return f'{tag}[type="{_quote(info["type"])}"][aria-label="{_quote(info["aria"])}"]'
    if info.get("aria"):
        return f'{tag}[aria-label="{_quote(info["aria"])}"]'
    if info.get("type"):
        return f'{tag}[type="{_quote(info["type"])}"]'
    return None


class PlaywrightPage:
    """BrowserPage backed by a Playwright Page, with a timeout on every query."""

    def __init__(self, page: Page, query_timeout_ms: int = 5000, navigation_timeout_ms: int = 30000):
        self._page = page
        self.query_timeout_ms = query_timeout_ms
        self.navigation_timeout_ms = navigation_timeout_ms

    @property
    def url(self) -> str:
        return self._page.url

    def _resolve(self, locator: Locator):
        pattern = re.compile(re.escape(locator.value), re.IGNORECASE)
        if locator.kind == "css":
            return self._page.locator(locator.value)
        if locator.kind == "role":
            return self._page.get_by_role(locator.role, name=pattern)
        if locator.kind == "label":
            return self._page.get_by_label(pattern)
        if locator.kind == "placeholder":
            return self._page.get_by_placeholder(pattern)
        if locator.kind == "text":
            return self._page.get_by_text(pattern)
        raise ValueError(f"Unsupported locator kind: {locator.kind}")

    async def _bounded(self, locator: Optional[Locator], action: str, coro):
        """Await coro under the query timeout, translating Playwright failures."""
        try:
            return await asyncio.wait_for(coro, timeout=self.query_timeout_ms / 1000 + 1)
        except (PlaywrightTimeoutError, asyncio.TimeoutError) as e:
            raise ElementNotFound(f"{action} timed out for {locator}") from e
        except PlaywrightError as e:
            raise ElementNotFound(f"{action} failed for {locator}: {e.message}") from e

    async def goto(self, url: str) -> None:
        try:
            await self._page.goto(url, timeout=self.navigation_timeout_ms, wait_until="domcontentloaded")
        except PlaywrightError as e:
            raise NavigationUnexpected(f"Navigation to {url} failed: {e.message}") from e
        # Wait a bit for dynamic content
        await asyncio.sleep(1)

    async def go_back(self) -> None:
        try:
            await self._page.go_back(timeout=self.navigation_timeout_ms, wait_until="domcontentloaded")
        except PlaywrightError as e:
            raise NavigationUnexpected(f"Could not go back: {e.message}") from e

    async def content(self) -> str:
        return await self._bounded(None, "content", self._page.content())

    async def count(self, locator: Locator) -> int:
        return await self._bounded(locator, "count", self._resolve(locator).count())

    async def is_enabled(self, locator: Locator) -> bool:
        return await self._bounded(
            locator, "is_enabled",
            self._resolve(locator).first.is_enabled(timeout=self.query_timeout_ms),
        )

    async def input_value(self, locator: Locator) -> str:
        return await self._bounded(
            locator, "input_value",
            self._resolve(locator).first.input_value(timeout=self.query_timeout_ms),
        )

    async def fill(self, locator: Locator, value: str) -> None:
        await self._bounded(
            locator, "fill",
            self._resolve(locator).first.fill(value, timeout=self.query_timeout_ms),
        )

    async def attached_files(self, locator: Locator) -> List[str]:
        return await self._bounded(
            locator, "attached_files",
            self._resolve(locator).first.evaluate(
                "el => Array.from(el.files || []).map(f => f.name)",
                timeout=self.query_timeout_ms,
            ),
        )

    async def set_input_files(self, locator: Locator, path: str) -> None:
        element = self._resolve(locator).first
        await self._bounded(locator, "set_input_files", element.set_input_files(path, timeout=self.query_timeout_ms))
        # Some ATS frameworks only react to the synthetic events
        await self._bounded(
            locator, "dispatch",
            element.evaluate("""el => {
                el.dispatchEvent(new Event('change', { bubbles: true }));
                el.dispatchEvent(new Event('input', { bubbles: true }));
            }"""),
        )

    async def click(self, locator: Locator) -> None:
        await self._bounded(locator, "click", self._resolve(locator).first.click(timeout=self.query_timeout_ms))

    async def click_for_popup(self, locator: Locator) -> Optional["PlaywrightPage"]:
        element = self._resolve(locator).first
        try:
            async with self._page.context.expect_page(timeout=self.query_timeout_ms) as page_info:
                await element.click(timeout=self.query_timeout_ms)
            new_page = await page_info.value
        except PlaywrightTimeoutError:
            return None
        await new_page.wait_for_load_state("domcontentloaded", timeout=self.navigation_timeout_ms)
        return PlaywrightPage(new_page, self.query_timeout_ms, self.navigation_timeout_ms)

    async def stable_selector(self, locator: Locator) -> Optional[str]:
        info = await self._bounded(
            locator, "describe",
            self._resolve(locator).first.evaluate(_ELEMENT_INFO_JS, timeout=self.query_timeout_ms),
        )
        return build_stable_selector(info)

    async def label_texts(self) -> List[str]:
        return await self._bounded(None, "label_texts", self._page.locator("label").evaluate_all(_VISIBLE_LABELS_JS))

    async def aria_labels(self, limit: int = 20) -> List[str]:
        labels = await self._bounded(
            None, "aria_labels",
            self._page.locator("input[aria-label], textarea[aria-label], select[aria-label]").evaluate_all(
                _ARIA_LABELS_JS
            ),
        )
        return labels[:limit]

    async def press(self, key: str) -> None:
        await self._bounded(None, "press", self._page.keyboard.press(key))

    async def screenshot(self, path: str) -> None:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        await self._bounded(None, "screenshot", self._page.screenshot(path=path, full_page=True))

    async def wait(self, ms: int) -> None:
        await self._page.wait_for_timeout(ms)

    async def close(self) -> None:
        await self._page.close()


class PlaywrightSession:
    """BrowserSession over a Playwright context."""

    def __init__(self, context: BrowserContext, page: PlaywrightPage):
        self.context = context
        self.page = page

    async def start_tracing(self) -> None:
        await self.context.tracing.start(screenshots=True, snapshots=True)

    async def stop_tracing(self, path: str) -> None:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        await self.context.tracing.stop(path=path)


class BrowserManager:
    """Owns the Playwright browser: launches one, or attaches via CDP."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._session: Optional[PlaywrightSession] = None

    async def connect(self) -> PlaywrightSession:
        """Start the browser and open the working page."""
        self._playwright = await async_playwright().start()

        if self.settings.cdp_url:
            try:
                self._browser = await self._playwright.chromium.connect_over_cdp(self.settings.cdp_url)
            except PlaywrightError as e:
                raise ConnectionError(
                    f"Failed to connect to Chrome at {self.settings.cdp_url}. "
                    "Make sure Chrome is running with --remote-debugging-port=9222\n"
                    f"Error: {e}"
                )
            contexts = self._browser.contexts
            self._context = contexts[0] if contexts else await self._browser.new_context()
        else:
            self._browser = await self._playwright.chromium.launch(
                headless=self.settings.headless,
                slow_mo=self.settings.slow_mo,
            )
            storage_state = self.settings.storage_state_path
            if storage_state and Path(storage_state).exists():
                self._context = await self._browser.new_context(storage_state=storage_state)
            else:
                self._context = await self._browser.new_context()

        page = await self._context.new_page()
        self._session = PlaywrightSession(
            self._context,
            PlaywrightPage(page, self.settings.query_timeout_ms, self.settings.navigation_timeout_ms),
        )
        return self._session

    @property
    def session(self) -> Optional[PlaywrightSession]:
        return self._session

    async def close(self):
        """Close the page, then the browser (launched browsers only)."""
        if self._session:
            await self._session.page.close()
            self._session = None

        if self._browser and not self.settings.cdp_url:
            await self._browser.close()
        self._browser = None

        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
