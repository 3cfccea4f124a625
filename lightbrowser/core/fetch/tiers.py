from __future__ import annotations

import time
from functools import partial
from typing import Any, Awaitable, Callable
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup
from loguru import logger
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from lightbrowser.core.errors import (
    BrowserError,
    check_status,
    invalid_url_error,
    timeout_error,
    unsupported_scheme_error,
    wrap_error,
)
from lightbrowser.core.fetch.browser_pool import BrowserPool, shared_browser_pool
from lightbrowser.core.models.interfaces import PageResult, Tier, TierRequest, TimingInfo

TierFetcher = Callable[[str, TierRequest], Awaitable[PageResult]]

DEFAULT_ACCEPT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

# Resource types the scripted DOM tier never downloads.
LIGHTWEIGHT_BLOCKED_RESOURCES = frozenset({"image", "media", "font", "stylesheet"})

DOM_QUIET_WINDOW_MS = 100
DOM_POLL_INTERVAL_MS = 50

_WAIT_FOR_DOM_STABLE_JS = """
([quietMs, pollMs, timeoutMs]) => new Promise((resolve) => {
  const target = document.body || document.documentElement;
  const started = Date.now();
  let lastMutation = started;
  const observer = new MutationObserver(() => { lastMutation = Date.now(); });
  observer.observe(target, { childList: true, subtree: true, attributes: true, characterData: true });
  const timer = setInterval(() => {
    const now = Date.now();
    if (now - lastMutation > quietMs || now - started >= timeoutMs) {
      clearInterval(timer);
      observer.disconnect();
      resolve(now - started);
    }
  }, pollMs);
})
"""


def validate_url(url: str) -> str:
    """Reject anything that is not an absolute http(s) URL."""
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        raise invalid_url_error(url) from None
    if not parsed.scheme:
        raise invalid_url_error(url)
    if parsed.scheme.lower() not in ("http", "https"):
        raise unsupported_scheme_error(url, parsed.scheme)
    if not parsed.netloc:
        raise invalid_url_error(url)
    return url.strip()


def _elapsed_ms(started: float) -> int:
    return int(round((time.monotonic() - started) * 1000))


def _parse_title(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    if soup.title and soup.title.string:
        return soup.title.string.strip()
    return ""


async def fetch_static(
    url: str,
    request: TierRequest,
    *,
    client: httpx.AsyncClient | None = None,
) -> PageResult:
    """Plain HTTP GET; the markup is returned exactly as served."""
    url = validate_url(url)
    started = time.monotonic()
    headers = {"User-Agent": request.user_agent, **DEFAULT_ACCEPT_HEADERS, **request.headers}

    async def _do_request(http: httpx.AsyncClient) -> httpx.Response:
        return await http.get(
            url,
            headers=headers,
            follow_redirects=request.follow_redirects,
        )

    try:
        if client is None:
            async with httpx.AsyncClient(
                timeout=max(request.timeout_ms / 1000.0, 0.001),
                max_redirects=request.max_redirects,
            ) as http:
                response = await _do_request(http)
        else:
            response = await _do_request(client)
    except httpx.TimeoutException as exc:
        raise timeout_error(url, request.timeout_ms) from exc
    except BrowserError:
        raise
    except Exception as exc:
        raise wrap_error(exc) from exc

    check_status(response.status_code, url)
    html = response.text
    fetch_ms = _elapsed_ms(started)

    return PageResult(
        final_url=str(response.url),
        title=_parse_title(html),
        html=html,
        status_code=int(response.status_code),
        headers={key.lower(): value for key, value in response.headers.items()},
        redirect_chain=tuple(str(previous.url) for previous in response.history),
        tier_used=Tier.STATIC,
        timing=TimingInfo(fetch_ms=fetch_ms, total_ms=_elapsed_ms(started)),
    )


async def fetch_scripted_dom(
    url: str,
    request: TierRequest,
    *,
    pool: BrowserPool | None = None,
) -> PageResult:
    """Run page scripts without paying for images, fonts or styles."""
    return await _fetch_with_browser(
        url,
        request,
        pool=pool or shared_browser_pool(),
        tier=Tier.SCRIPTED_DOM,
    )


async def fetch_full_browser(
    url: str,
    request: TierRequest,
    *,
    pool: BrowserPool | None = None,
) -> PageResult:
    return await _fetch_with_browser(
        url,
        request,
        pool=pool or shared_browser_pool(),
        tier=Tier.FULL_BROWSER,
    )


async def _block_heavy_resources(route: Any) -> None:
    if route.request.resource_type in LIGHTWEIGHT_BLOCKED_RESOURCES:
        await route.abort()
    else:
        await route.continue_()


def _redirect_chain(response: Any) -> tuple[str, ...]:
    chain: list[str] = []
    previous = response.request.redirected_from if response is not None else None
    while previous is not None:
        chain.insert(0, previous.url)
        previous = previous.redirected_from
    return tuple(chain)


async def _fetch_with_browser(
    url: str,
    request: TierRequest,
    *,
    pool: BrowserPool,
    tier: Tier,
) -> PageResult:
    url = validate_url(url)
    started = time.monotonic()
    lightweight = tier == Tier.SCRIPTED_DOM
    context = None
    try:
        browser = await pool.acquire(headless=request.headless)
        context = await browser.new_context(
            user_agent=request.user_agent,
            viewport={"width": request.viewport_width, "height": request.viewport_height},
            extra_http_headers=request.headers or None,
            java_script_enabled=request.run_scripts if lightweight else True,
        )
        page = await context.new_page()
        if lightweight:
            await page.route("**/*", _block_heavy_resources)

        if lightweight or not request.wait_for_network_idle:
            wait_until = "domcontentloaded"
        else:
            wait_until = "networkidle"
        response = await page.goto(url, timeout=request.timeout_ms, wait_until=wait_until)

        status_code = int(response.status) if response is not None else 200
        check_status(status_code, url)
        headers = await response.all_headers() if response is not None else {}

        if lightweight and request.run_scripts:
            await page.evaluate(
                _WAIT_FOR_DOM_STABLE_JS,
                [DOM_QUIET_WINDOW_MS, DOM_POLL_INTERVAL_MS, request.dom_settle_ms],
            )
        elif not lightweight and request.extra_wait_ms > 0:
            await page.wait_for_timeout(request.extra_wait_ms)

        fetch_ms = _elapsed_ms(started)
        html = await page.content()
        title = await page.title()
        return PageResult(
            final_url=page.url,
            title=title,
            html=html,
            status_code=status_code,
            headers=dict(headers),
            redirect_chain=_redirect_chain(response),
            tier_used=tier,
            timing=TimingInfo(fetch_ms=fetch_ms, total_ms=_elapsed_ms(started)),
        )
    except PlaywrightTimeoutError as exc:
        raise timeout_error(url, request.timeout_ms) from exc
    except BrowserError:
        raise
    except Exception as exc:
        raise wrap_error(exc) from exc
    finally:
        if context is not None:
            try:
                await context.close()
            except Exception as exc:
                logger.debug(f"Ignoring browser context close failure: {exc}")


def default_tier_fetchers(pool: BrowserPool | None = None) -> dict[Tier, TierFetcher]:
    pool = pool or shared_browser_pool()
    return {
        Tier.STATIC: fetch_static,
        Tier.SCRIPTED_DOM: partial(fetch_scripted_dom, pool=pool),
        Tier.FULL_BROWSER: partial(fetch_full_browser, pool=pool),
    }
