from __future__ import annotations

from lightbrowser.core.fetch.heuristics import (
    body_is_sparse,
    build_escalation_checks,
    has_full_browser_markers,
    has_spa_root,
    needs_escalation,
    noscript_has_content,
    requires_javascript,
    visible_body_text,
)
from lightbrowser.core.models.interfaces import Tier

LONG_TEXT = "A sentence with enough words to count as real visible content. " * 3


def test_visible_text_ignores_scripts_and_styles():
    html = (
        "<html><body><style>body { color: red; }</style>"
        "<script>var payload = 'x'.repeat(500);</script><p>Hello</p></body></html>"
    )
    assert visible_body_text(html) == "Hello"
    assert body_is_sparse(html) is True


def test_body_with_real_text_is_not_sparse():
    assert body_is_sparse(f"<html><body><p>{LONG_TEXT}</p></body></html>") is False


def test_markup_without_body_is_not_sparse():
    assert body_is_sparse("plain text response") is False


def test_noscript_threshold():
    short = "<html><body><noscript>Enable JS</noscript></body></html>"
    long = f"<html><body><noscript>{LONG_TEXT}</noscript></body></html>"
    assert noscript_has_content(short) is False
    assert noscript_has_content(long) is True


def test_spa_root_markers_are_case_insensitive():
    assert has_spa_root('<div ID="ROOT"></div>') is True
    assert has_spa_root('<div id="__next"></div>') is True
    assert has_spa_root("<html ng-app='demo'></html>") is True
    assert has_spa_root('<div id="main"></div>') is False


def test_full_browser_markers():
    assert has_full_browser_markers("<script>customElements.define('x-el', El)</script>") is True
    assert has_full_browser_markers("<script>console.log('plain')</script>") is False


def test_needs_escalation_is_keyed_by_tier_being_left():
    rich_spa = f'<html><body><div id="app">{LONG_TEXT}</div></body></html>'
    assert needs_escalation(rich_spa, Tier.STATIC) is True
    assert needs_escalation(rich_spa, Tier.SCRIPTED_DOM) is False
    assert needs_escalation("<script>__NUXT__</script>", Tier.FULL_BROWSER) is False


def test_thresholds_are_configurable():
    checks = build_escalation_checks(min_body_chars=5)
    html = "<html><body><p>Hello there</p></body></html>"
    assert needs_escalation(html, Tier.STATIC) is True
    assert needs_escalation(html, Tier.STATIC, checks) is False


def test_custom_predicates_can_be_plugged_in():
    checks = {Tier.STATIC: (lambda html: "paywall" in html,)}
    assert needs_escalation("<div class='paywall'></div>", Tier.STATIC, checks) is True
    assert needs_escalation("<div></div>", Tier.STATIC, checks) is False


def test_javascript_required_notice_escalates_rich_static_page():
    notice = f"<html><body><p>{LONG_TEXT}</p><p>This site requires JavaScript to work.</p></body></html>"
    assert requires_javascript(notice) is True
    assert requires_javascript("<p>Please ENABLE JavaScript in your browser.</p>") is True
    assert requires_javascript(f"<html><body><p>{LONG_TEXT}</p></body></html>") is False
    assert needs_escalation(notice, Tier.STATIC) is True
    assert needs_escalation(notice, Tier.SCRIPTED_DOM) is False
