from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger
from playwright.async_api import async_playwright

LAUNCH_ARGS = (
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
)


class BrowserPool:
    """One lazily launched Chromium shared by every browser-backed fetch.

    Sessions isolate through per-fetch browser contexts, not separate
    processes. ``release`` tears the browser down for everyone; the next
    ``acquire`` launches a fresh one.
    """

    def __init__(self, *, launch_args: tuple[str, ...] = LAUNCH_ARGS):
        self.launch_args = launch_args
        self._playwright: Any | None = None
        self._browser: Any | None = None
        self._lock = asyncio.Lock()
        self.launch_count = 0

    @property
    def is_running(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    async def acquire(self, *, headless: bool = True) -> Any:
        if self.is_running:
            return self._browser
        async with self._lock:
            if self.is_running:
                return self._browser
            await self._shutdown()
            self._browser = await self._launch(headless)
            self.launch_count += 1
            logger.info(f"Launched shared browser (headless={headless}, launches={self.launch_count})")
            return self._browser

    async def release(self) -> None:
        async with self._lock:
            if self._browser is None and self._playwright is None:
                return
            await self._shutdown()
            logger.info("Released shared browser")

    async def _launch(self, headless: bool) -> Any:
        self._playwright = await async_playwright().start()
        try:
            return await self._playwright.chromium.launch(
                headless=headless,
                args=list(self.launch_args),
            )
        except Exception:
            await self._playwright.stop()
            self._playwright = None
            raise

    async def _shutdown(self) -> None:
        browser, playwright = self._browser, self._playwright
        self._browser = None
        self._playwright = None
        if browser is not None:
            try:
                await browser.close()
            except Exception as exc:
                logger.debug(f"Ignoring browser close failure: {exc}")
        if playwright is not None:
            try:
                await playwright.stop()
            except Exception as exc:
                logger.debug(f"Ignoring playwright stop failure: {exc}")


_pool: BrowserPool | None = None


def shared_browser_pool() -> BrowserPool:
    global _pool
    if _pool is None:
        _pool = BrowserPool()
    return _pool
