# Copyright 2026 Firefly Software Solutions Inc
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Playwright browser adapter for BugScout.

``PlaywrightBrowser`` owns the Playwright lifecycle (launch, context, page,
cleanup) and implements the ``BrowserPort`` protocol the exploration loop
drives. Actions never raise for ordinary failures: a missing selector or a
navigation error is reported as a failed ``ActionOutcome`` so the loop can
record it and carry on. Console errors and failed network requests are
collected from page events and handed out with the next observation.
"""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

from playwright.async_api import Browser, BrowserContext, Page, async_playwright

from bugscout.exceptions import ActionExecutionError, BrowserError, PageExtractError
from bugscout.exploration.types import ActionOutcome, InteractiveElement, PageObservation
from bugscout.utils.logger import logger

# Collects visible text and actionable elements with a usable CSS selector.
_OBSERVE_SCRIPT = """
(maxElements) => {
    const selectorFor = (el) => {
        if (el.id) return '#' + CSS.escape(el.id);
        const name = el.getAttribute('name');
        if (name) return `${el.tagName.toLowerCase()}[name="${name}"]`;
        const testId = el.getAttribute('data-testid');
        if (testId) return `[data-testid="${testId}"]`;
        const parts = [];
        let node = el;
        while (node && node.nodeType === 1 && node !== document.body && parts.length < 4) {
            let part = node.tagName.toLowerCase();
            const parent = node.parentElement;
            if (parent) {
                const siblings = Array.from(parent.children).filter(c => c.tagName === node.tagName);
                if (siblings.length > 1) part += `:nth-of-type(${siblings.indexOf(node) + 1})`;
            }
            parts.unshift(part);
            node = parent;
        }
        return parts.join(' > ');
    };
    const typeOf = (el) => {
        const tag = el.tagName.toLowerCase();
        if (tag === 'a') return 'link';
        if (tag === 'button' || el.getAttribute('role') === 'button') return 'button';
        if (tag === 'input') return el.type === 'submit' ? 'button' : 'input';
        return tag;
    };
    const elements = [];
    const nodes = document.querySelectorAll(
        'a[href], button, input:not([type="hidden"]), textarea, select, [role="button"]'
    );
    for (const el of nodes) {
        if (elements.length >= maxElements) break;
        const rect = el.getBoundingClientRect();
        const style = window.getComputedStyle(el);
        const visible = rect.width > 0 && rect.height > 0 && style.visibility !== 'hidden';
        elements.push({
            selector: selectorFor(el),
            type: typeOf(el),
            text: (el.innerText || el.value || el.getAttribute('aria-label') || el.placeholder || '')
                .trim().substring(0, 100),
            href: el.tagName.toLowerCase() === 'a' ? el.getAttribute('href') : null,
            visible: visible,
        });
    }
    return {
        title: document.title,
        text: document.body ? document.body.innerText : '',
        elements: elements,
    };
}
"""

SCROLL_DISTANCE = 600
MAX_BUFFERED_ERRORS = 50


class PlaywrightBrowser:
    """
    Browser adapter backed by Playwright.

    Example:
        >>> async with PlaywrightBrowser(headless=True) as browser:
        ...     outcome = await browser.navigate("https://shop.example")
        ...     observation = await browser.extract_observation()
    """

    def __init__(
        self,
        headless: bool = True,
        browser_type: str = "chromium",
        action_timeout_seconds: float = 30.0,
        max_elements: int = 200,
        **launch_options: Any,
    ) -> None:
        """
        Args:
            headless: Run without a visible window
            browser_type: "chromium", "firefox" or "webkit"
            action_timeout_seconds: Playwright timeout for each action
            max_elements: Upper bound on elements collected per observation
            **launch_options: Passed through to ``browser_type.launch``
        """
        self.headless = headless
        self.browser_type = browser_type
        self.timeout_ms = int(action_timeout_seconds * 1000)
        self.max_elements = max_elements
        self.launch_options = launch_options
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._console_errors: List[str] = []
        self._network_errors: List[str] = []

    # Lifecycle

    async def start(self) -> None:
        """
        Launch the browser and open a page.

        Raises:
            BrowserError: If the browser fails to start
        """
        try:
            logger.info(f"[Browser] Starting {self.browser_type} (headless={self.headless})")
            self._playwright = await async_playwright().start()

            launcher = getattr(self._playwright, self.browser_type, None)
            if launcher is None or self.browser_type not in ("chromium", "firefox", "webkit"):
                raise BrowserError(f"Unsupported browser type: {self.browser_type}")

            self._browser = await launcher.launch(headless=self.headless, **self.launch_options)
            self._context = await self._browser.new_context(viewport={"width": 1366, "height": 900})
            self._context.set_default_timeout(self.timeout_ms)
            self._page = await self._context.new_page()
            self._attach_listeners(self._page)
            logger.info("[Browser] Started")
        except BrowserError:
            raise
        except Exception as e:
            logger.error(f"[Browser] Failed to start: {e}")
            raise BrowserError(f"Failed to start browser: {e}") from e

    async def stop(self) -> None:
        """Close the page, context, browser and Playwright driver."""
        try:
            if self._page:
                await self._page.close()
            if self._context:
                await self._context.close()
            if self._browser:
                await self._browser.close()
            if self._playwright:
                await self._playwright.stop()
            logger.info("[Browser] Stopped")
        except Exception as e:
            logger.error(f"[Browser] Error while stopping: {e}")
            raise BrowserError(f"Failed to stop browser: {e}") from e
        finally:
            self._page = self._context = self._browser = self._playwright = None

    async def __aenter__(self) -> "PlaywrightBrowser":
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()

    @property
    def page(self) -> Page:
        if not self._page:
            raise BrowserError("No active page. Call start() first.")
        return self._page

    # Event capture

    def _attach_listeners(self, page: Page) -> None:
        page.on("console", self._on_console)
        page.on("pageerror", self._on_pageerror)
        page.on("requestfailed", self._on_request_failed)
        page.on("response", self._on_response)

    def _buffer(self, target: List[str], message: str) -> None:
        if len(target) < MAX_BUFFERED_ERRORS:
            target.append(message)

    def _on_console(self, msg) -> None:
        if msg.type == "error":
            self._buffer(self._console_errors, msg.text)

    def _on_pageerror(self, error) -> None:
        self._buffer(self._console_errors, f"Uncaught: {error}")

    def _on_request_failed(self, request) -> None:
        failure = request.failure or "failed"
        self._buffer(self._network_errors, f"{request.method} {request.url}: {failure}")

    def _on_response(self, response) -> None:
        if response.status >= 400:
            self._buffer(self._network_errors, f"{response.status} {response.request.method} {response.url}")

    # Actions

    async def _run(self, action: str, operation, selector: Optional[str] = None) -> ActionOutcome:
        started = time.monotonic()
        try:
            await operation()
        except BrowserError as e:
            return ActionOutcome(success=False, error=str(e), duration_ms=(time.monotonic() - started) * 1000)
        except Exception as e:
            message = str(e).splitlines()[0] if str(e) else e.__class__.__name__
            error = ActionExecutionError(action, message, selector)
            logger.debug(f"[Browser] {error}")
            return ActionOutcome(success=False, error=str(error), duration_ms=(time.monotonic() - started) * 1000)
        return ActionOutcome(success=True, duration_ms=(time.monotonic() - started) * 1000)

    async def navigate(self, url: str) -> ActionOutcome:
        async def operation() -> None:
            response = await self.page.goto(url, wait_until="domcontentloaded", timeout=self.timeout_ms)
            if response is not None and response.status >= 400:
                raise BrowserError(f"navigate to {url} returned HTTP {response.status}")

        return await self._run("navigate", operation)

    async def click(self, selector: str) -> ActionOutcome:
        return await self._run("click", lambda: self.page.click(selector, timeout=self.timeout_ms), selector)

    async def fill(self, selector: str, value: str) -> ActionOutcome:
        return await self._run("fill", lambda: self.page.fill(selector, value, timeout=self.timeout_ms), selector)

    async def select(self, selector: str, value: str) -> ActionOutcome:
        return await self._run(
            "select",
            lambda: self.page.select_option(selector, value, timeout=self.timeout_ms),
            selector,
        )

    async def hover(self, selector: str) -> ActionOutcome:
        return await self._run("hover", lambda: self.page.hover(selector, timeout=self.timeout_ms), selector)

    async def scroll(self, direction: str = "down") -> ActionOutcome:
        delta = -SCROLL_DISTANCE if direction.lower() == "up" else SCROLL_DISTANCE
        return await self._run("scroll", lambda: self.page.mouse.wheel(0, delta))

    async def go_back(self) -> ActionOutcome:
        return await self._run("back", lambda: self.page.go_back(wait_until="domcontentloaded"))

    async def refresh(self) -> ActionOutcome:
        return await self._run("refresh", lambda: self.page.reload(wait_until="domcontentloaded"))

    # Inspection

    async def current_url(self) -> str:
        return self.page.url

    async def evaluate(self, script: str) -> Any:
        try:
            return await self.page.evaluate(script)
        except Exception as e:
            raise BrowserError(f"Failed to evaluate script: {e}") from e

    async def extract_observation(self) -> PageObservation:
        """
        Snapshot the current page and drain the buffered console and network errors.

        Raises:
            PageExtractError: If the page cannot be inspected
        """
        try:
            data: Dict[str, Any] = await self.page.evaluate(_OBSERVE_SCRIPT, self.max_elements)
        except Exception as e:
            raise PageExtractError(f"Failed to extract page state from {self.page.url}: {e}") from e

        elements = [
            InteractiveElement(
                selector=item.get("selector", ""),
                element_type=item.get("type", "element"),
                text=item.get("text", ""),
                href=item.get("href"),
                is_visible=bool(item.get("visible", True)),
            )
            for item in data.get("elements", [])
            if item.get("selector")
        ]
        console_errors, self._console_errors = self._console_errors, []
        network_errors, self._network_errors = self._network_errors, []

        return PageObservation(
            url=self.page.url,
            title=data.get("title", ""),
            visible_text=data.get("text", ""),
            elements=elements,
            console_errors=console_errors,
            network_errors=network_errors,
        )
