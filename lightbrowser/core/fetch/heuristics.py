"""Markup checks that decide whether a cheaper tier's output is good enough.

Each check is a pure ``(html) -> bool`` predicate. Checks for a tier boundary
are evaluated in order and short-circuit on the first hit.
"""

from __future__ import annotations

from functools import partial
from typing import Callable, Mapping, Sequence

from bs4 import BeautifulSoup

from lightbrowser.core.models.interfaces import Tier

EscalationCheck = Callable[[str], bool]

MIN_VISIBLE_BODY_CHARS = 100
MIN_NOSCRIPT_CHARS = 50

SPA_ROOT_MARKERS = (
    'id="root"',
    'id="app"',
    'id="__next"',
    'id="__nuxt"',
    "ng-app",
    "ng-version",
    "data-reactroot",
    "v-cloak",
)

JAVASCRIPT_REQUIRED_PHRASES = (
    "please enable javascript",
    "requires javascript",
)

# Things the lightweight tier cannot execute faithfully.
FULL_BROWSER_MARKERS = (
    "__NEXT_DATA__",
    "__NUXT__",
    "webpackJsonp",
    "__webpack_require__",
    "customElements.define",
    "attachShadow",
    "IntersectionObserver",
    "requestIdleCallback",
)


def visible_body_text(html: str) -> str | None:
    soup = BeautifulSoup(html, "html.parser")
    body = soup.body
    if body is None:
        return None
    for tag in body.find_all(["script", "style"]):
        tag.decompose()
    return body.get_text(" ", strip=True)


def body_is_sparse(html: str, *, min_chars: int = MIN_VISIBLE_BODY_CHARS) -> bool:
    text = visible_body_text(html)
    if text is None:
        return False
    return len(text) < min_chars


def noscript_has_content(html: str, *, min_chars: int = MIN_NOSCRIPT_CHARS) -> bool:
    soup = BeautifulSoup(html, "html.parser")
    return any(
        len(block.get_text(" ", strip=True)) > min_chars
        for block in soup.find_all("noscript")
    )


def has_spa_root(html: str) -> bool:
    lowered = html.lower()
    return any(marker.lower() in lowered for marker in SPA_ROOT_MARKERS)


def requires_javascript(html: str) -> bool:
    lowered = html.lower()
    return any(phrase in lowered for phrase in JAVASCRIPT_REQUIRED_PHRASES)


def has_full_browser_markers(html: str) -> bool:
    return any(marker in html for marker in FULL_BROWSER_MARKERS)


def build_escalation_checks(
    *,
    min_body_chars: int = MIN_VISIBLE_BODY_CHARS,
    min_noscript_chars: int = MIN_NOSCRIPT_CHARS,
) -> dict[Tier, tuple[EscalationCheck, ...]]:
    """Checks keyed by the tier they would leave."""
    return {
        Tier.STATIC: (
            partial(body_is_sparse, min_chars=min_body_chars),
            partial(noscript_has_content, min_chars=min_noscript_chars),
            has_spa_root,
            requires_javascript,
        ),
        Tier.SCRIPTED_DOM: (has_full_browser_markers,),
    }


DEFAULT_ESCALATION_CHECKS = build_escalation_checks()


def needs_escalation(
    html: str,
    tier: Tier,
    checks: Mapping[Tier, Sequence[EscalationCheck]] | None = None,
) -> bool:
    tier_checks = (checks if checks is not None else DEFAULT_ESCALATION_CHECKS).get(tier, ())
    return any(check(html) for check in tier_checks)
