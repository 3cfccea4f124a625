from __future__ import annotations

import time
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Mapping, Sequence

from lightbrowser.config import Settings, resolve_user_agent, settings
from lightbrowser.core.errors import BrowserError, ErrorCode, internal_error, invalid_option_error, wrap_error
from lightbrowser.core.fetch.browser_pool import BrowserPool, shared_browser_pool
from lightbrowser.core.fetch.heuristics import (
    DEFAULT_ESCALATION_CHECKS,
    EscalationCheck,
    build_escalation_checks,
    needs_escalation,
)
from lightbrowser.core.fetch.tiers import TierFetcher, default_tier_fetchers, validate_url
from lightbrowser.core.models.interfaces import (
    EngineOptions,
    FetchOptions,
    PageResult,
    Tier,
    TierRequest,
    TimingInfo,
)
from lightbrowser.services import logger as log_service


class Action(StrEnum):
    ESCALATE = "escalate"
    RETURN = "return"
    FAIL = "fail"


@dataclass(frozen=True, slots=True)
class FetchState:
    tier: Tier
    ceiling: Tier
    auto_escalate: bool

    @property
    def can_escalate(self) -> bool:
        return self.auto_escalate and self.tier < self.ceiling


@dataclass(frozen=True, slots=True)
class FetchOutcome:
    result: PageResult | None = None
    error: BrowserError | None = None
    needs_more: bool = False


def transition(state: FetchState, outcome: FetchOutcome) -> tuple[FetchState, Action]:
    """Decide what follows one tier attempt. Pure; the engine only executes it."""
    if outcome.error is not None:
        # A 4xx/5xx belongs to the URL, not to the tier that fetched it.
        if outcome.error.is_http_error:
            return state, Action.FAIL
        if state.can_escalate:
            return replace(state, tier=Tier(state.tier + 1)), Action.ESCALATE
        return state, Action.FAIL

    if outcome.needs_more and state.can_escalate:
        return replace(state, tier=Tier(state.tier + 1)), Action.ESCALATE
    return state, Action.RETURN


def engine_options_from_settings(config: Settings, **overrides) -> EngineOptions:
    options = EngineOptions(
        max_tier=Tier(min(max(int(config.max_tier), Tier.STATIC), Tier.FULL_BROWSER)),
        auto_escalate=config.auto_escalate,
        timeout_ms=max(int(config.browser_timeout_ms), 1),
        user_agent=resolve_user_agent(config),
        headers=dict(config.extra_headers) or None,
        follow_redirects=config.follow_redirects,
        max_redirects=config.max_redirects,
        headless=config.browser_headless,
        javascript=config.browser_javascript,
        viewport_width=config.viewport_width,
        viewport_height=config.viewport_height,
        dom_settle_ms=config.scripted_dom_settle_ms,
        extra_wait_ms=config.full_browser_extra_wait_ms,
        wait_for_network_idle=config.full_browser_network_idle,
    )
    return replace(options, **overrides)


class Engine:
    """Fetches a URL at the cheapest tier that yields usable markup.

    One instance is one browsing session. The shared browser is only released
    by ``close()``, and only when this session actually used it.
    """

    def __init__(
        self,
        options: EngineOptions | None = None,
        *,
        fetchers: Mapping[Tier, TierFetcher] | None = None,
        escalation_checks: Mapping[Tier, Sequence[EscalationCheck]] | None = None,
        pool: BrowserPool | None = None,
    ):
        self.options = options or EngineOptions()
        self._pool = pool or shared_browser_pool()
        self._fetchers = dict(fetchers) if fetchers is not None else default_tier_fetchers(self._pool)
        self._checks = escalation_checks if escalation_checks is not None else DEFAULT_ESCALATION_CHECKS
        self._auto_escalate = self.options.auto_escalate
        self._pinned_tier: Tier | None = None
        self._used_browser = False
        self.current_tier = Tier.STATIC if self._auto_escalate else self.options.max_tier

    @classmethod
    def from_settings(cls, config: Settings, **kwargs) -> Engine:
        overrides = {
            key: kwargs.pop(key)
            for key in list(kwargs)
            if key in EngineOptions.__dataclass_fields__
        }
        checks = build_escalation_checks(
            min_body_chars=config.escalation_min_body_chars,
            min_noscript_chars=config.escalation_min_noscript_chars,
        )
        kwargs.setdefault("escalation_checks", checks)
        return cls(engine_options_from_settings(config, **overrides), **kwargs)

    @property
    def auto_escalate(self) -> bool:
        return self._auto_escalate

    @property
    def used_browser(self) -> bool:
        return self._used_browser

    def set_tier(self, tier: Tier | int) -> None:
        """Pin later fetches to ``tier`` and stop escalating until re-enabled."""
        if not _is_tier(tier):
            raise BrowserError(ErrorCode.INTERNAL_ERROR, f"Cannot set tier {tier!r}: not a known tier")
        if tier > self.options.max_tier:
            raise BrowserError(
                ErrorCode.INTERNAL_ERROR,
                f"Cannot set tier {int(tier)}: exceeds ceiling of {int(self.options.max_tier)}",
            )
        tier = Tier(tier)
        self._pinned_tier = tier
        self._auto_escalate = False
        self.current_tier = tier

    def enable_auto_escalate(self) -> None:
        self._pinned_tier = None
        self._auto_escalate = True

    async def fetch(self, url: str, fetch_options: FetchOptions | None = None) -> PageResult:
        url = validate_url(url)
        started = time.monotonic()
        state = self._initial_state(fetch_options)
        request = self._build_request(fetch_options)

        while state.tier <= state.ceiling:
            tier = state.tier
            self.current_tier = tier
            attempt_started = time.monotonic()
            try:
                result = await self._fetch_tier(url, tier, request)
            except Exception as exc:
                error = wrap_error(exc)
                outcome = FetchOutcome(error=error)
                log_service.log_tier_attempt(
                    url,
                    tier,
                    "error",
                    duration_ms=_elapsed_ms(attempt_started),
                    error=f"{error.code.name}: {error.message}",
                )
            else:
                try:
                    needs_more = state.can_escalate and needs_escalation(result.html, tier, self._checks)
                except Exception as exc:
                    raise internal_error(f"Escalation check failed at tier {int(tier)} for {url}: {exc!r}") from exc
                outcome = FetchOutcome(result=result, needs_more=needs_more)
                log_service.log_tier_attempt(
                    url,
                    tier,
                    "insufficient" if needs_more else "ok",
                    duration_ms=_elapsed_ms(attempt_started),
                )

            next_state, action = transition(state, outcome)
            if action is Action.RETURN and outcome.result is not None:
                return replace(
                    outcome.result,
                    tier_used=tier,
                    timing=TimingInfo(
                        fetch_ms=outcome.result.timing.fetch_ms,
                        total_ms=_elapsed_ms(started),
                    ),
                )
            if action is Action.FAIL and outcome.error is not None:
                raise outcome.error
            if action is Action.ESCALATE:
                reason = "insufficient markup" if outcome.error is None else outcome.error.code.name
                log_service.log_escalation(url, tier, next_state.tier, reason)
                state = next_state
                continue
            break

        raise internal_error(f"Failed to fetch {url} with all available tiers")

    async def close(self) -> None:
        if self._used_browser:
            await self._pool.release()
            self._used_browser = False

    async def __aenter__(self) -> Engine:
        return self

    async def __aexit__(self, *_exc_info) -> None:
        await self.close()

    def _initial_state(self, fetch_options: FetchOptions | None) -> FetchState:
        ceiling = self.options.max_tier
        auto_escalate = self._auto_escalate
        if fetch_options is not None:
            if fetch_options.max_tier is not None:
                if not _is_tier(fetch_options.max_tier):
                    raise invalid_option_error("max_tier", fetch_options.max_tier, "1, 2 or 3")
                ceiling = min(ceiling, Tier(fetch_options.max_tier))
            if fetch_options.auto_escalate is not None:
                auto_escalate = fetch_options.auto_escalate
        if auto_escalate:
            tier = Tier.STATIC
        else:
            tier = min(self._pinned_tier or ceiling, ceiling)
        return FetchState(tier=tier, ceiling=ceiling, auto_escalate=auto_escalate)

    def _build_request(self, fetch_options: FetchOptions | None) -> TierRequest:
        fetch_options = fetch_options or FetchOptions()
        headers = {**(self.options.headers or {}), **(fetch_options.headers or {})}
        return TierRequest(
            timeout_ms=self.options.timeout_ms,
            user_agent=self.options.user_agent or resolve_user_agent(settings),
            headers=headers,
            follow_redirects=(
                fetch_options.follow_redirects
                if fetch_options.follow_redirects is not None
                else self.options.follow_redirects
            ),
            max_redirects=(
                fetch_options.max_redirects
                if fetch_options.max_redirects is not None
                else self.options.max_redirects
            ),
            run_scripts=self.options.javascript,
            dom_settle_ms=self.options.dom_settle_ms,
            headless=self.options.headless,
            viewport_width=self.options.viewport_width,
            viewport_height=self.options.viewport_height,
            wait_for_network_idle=self.options.wait_for_network_idle,
            extra_wait_ms=self.options.extra_wait_ms,
        )

    async def _fetch_tier(self, url: str, tier: Tier, request: TierRequest) -> PageResult:
        fetcher = self._fetchers.get(tier)
        if fetcher is None:
            raise internal_error(f"No fetcher registered for tier {int(tier)}")
        if tier >= Tier.SCRIPTED_DOM:
            self._used_browser = True
        return await fetcher(url, request)


def _elapsed_ms(started: float) -> int:
    return int(round((time.monotonic() - started) * 1000))


def _is_tier(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value in {int(tier) for tier in Tier}
