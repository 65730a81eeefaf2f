"""
Browser Navigation Probe

Sandboxed headless-browser navigation with Playwright. Catches redirects that
only happen once scripts run. Optional: install the ``browser`` extra and set
``LINKSCOPE_ENABLE_BROWSER_PROBE=true``.
"""

import asyncio
from typing import Optional

from playwright.async_api import Browser, Error as PlaywrightError, async_playwright

from linkscope.config.logging import get_logger
from linkscope.services.expansion_strategies import DEFAULT_USER_AGENT, BaseExpansionStrategy
from linkscope.services.interfaces import ExpansionOutcome, Failed, NoChange, Resolved, StrategyId

logger = get_logger(__name__)

BROWSER_ARGS = [
    '--no-sandbox',
    '--disable-dev-shm-usage',
    '--disable-gpu',
    '--disable-background-timer-throttling',
    '--disable-backgrounding-occluded-windows',
    '--disable-renderer-backgrounding',
    '--disable-features=TranslateUI',
    '--disable-client-side-phishing-detection',
    '--disable-sync',
    '--disable-default-apps',
    '--no-first-run',
    '--no-default-browser-check',
    '--disable-extensions'
]


class BrowserProbeStrategy(BaseExpansionStrategy):
    """Navigate in a throwaway browser context and report the settled URL."""

    strategy_id = StrategyId.BROWSER_PROBE

    def __init__(self, timeout: float = 3.0, user_agent: str = DEFAULT_USER_AGENT, headless: bool = True):
        super().__init__(timeout)
        self.user_agent = user_agent
        self.headless = headless
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._browser_lock = asyncio.Lock()

    async def _get_browser(self) -> Browser:
        """Get or create the shared browser instance."""
        async with self._browser_lock:
            if self._browser is None:
                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=self.headless,
                    args=BROWSER_ARGS
                )
            return self._browser

    async def _attempt(self, url: str) -> ExpansionOutcome:
        browser = await self._get_browser()
        context = await browser.new_context(
            user_agent=self.user_agent,
            java_script_enabled=True,
            ignore_https_errors=True,
            accept_downloads=False
        )
        try:
            page = await context.new_page()
            try:
                response = await page.goto(
                    url,
                    wait_until='domcontentloaded',
                    timeout=int(self.timeout * 1000)
                )
            except PlaywrightError as e:
                return Failed(f"navigation error: {e}")

            final_url = page.url
            if not final_url or final_url == url or final_url == "about:blank":
                return NoChange()
            headers = await response.all_headers() if response is not None else {}
            return Resolved(final_url, headers)
        finally:
            await context.close()

    async def close(self) -> None:
        """Cleanup browser resources."""
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None
