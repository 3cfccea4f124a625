from __future__ import annotations

import pytest

from lightbrowser.core.budget.tokens import (
    MIDDLE_MARKER,
    TEXT_INDICATOR,
    estimate_tokens,
    node_priority,
    truncate,
    truncate_content,
    truncate_text,
)
from lightbrowser.core.models.interfaces import ContentNode, StructuredPayload, TextPayload

INDICATOR_ALLOWANCE = 20


def paragraph(text: str) -> ContentNode:
    return ContentNode(type="paragraph", text=text)


def is_subsequence(items: list[ContentNode], source: list[ContentNode]) -> bool:
    remaining = iter(source)
    return all(any(item is candidate for candidate in remaining) for item in items)


def test_estimate_tokens():
    assert estimate_tokens("") == 0
    assert estimate_tokens(None) == 0
    assert estimate_tokens("a" * 100) == 25
    assert estimate_tokens("abc") == 1
    assert estimate_tokens("abcde") == 2


def test_content_within_budget_is_returned_unchanged():
    nodes = [ContentNode(type="heading", level=1, text="Title"), paragraph("Short body text.")]

    result = truncate(nodes, 100)

    assert result.truncated is False
    assert result.content == StructuredPayload(nodes)
    assert result.items_omitted == 0
    assert result.returned_tokens == result.original_tokens


def test_text_within_budget_is_returned_unchanged():
    result = truncate("hello world", 10)
    assert result.content == TextPayload("hello world")
    assert result.truncated is False


def test_five_paragraphs_with_tiny_budget_keep_one_and_report_omissions():
    nodes = [paragraph(f"{i}" * 80) for i in range(5)]

    result = truncate_content(nodes, 20, add_indicator=True)

    kept = result.content.nodes
    synthetic = [node for node in kept if node not in nodes]
    originals = [node for node in kept if node in nodes]
    assert len(originals) >= 1
    assert len(synthetic) == 1
    assert str(result.items_omitted) in synthetic[0].text
    assert result.items_omitted >= 1
    assert result.truncated is True
    assert result.original_tokens == 100


@pytest.mark.parametrize("budget", [10, 25, 40, 60, 90])
def test_structured_budget_and_order_are_respected(budget: int):
    nodes = [
        paragraph("Opening paragraph " * 5),
        ContentNode(type="heading", level=2, text="Section heading"),
        paragraph("Middle paragraph " * 6),
        ContentNode(type="list", children=[paragraph("item one"), paragraph("item two")]),
        ContentNode(type="code", text="print('hello world')" * 3),
        paragraph("Closing paragraph " * 4),
    ]

    result = truncate_content(nodes, budget)

    kept = [node for node in result.content.nodes if any(node is original for original in nodes)]
    assert is_subsequence(kept, nodes)
    assert result.returned_tokens <= budget + INDICATOR_ALLOWANCE


def test_heading_that_fits_always_survives():
    nodes = [paragraph("Body text that takes space. " * 4) for _ in range(4)]
    heading = ContentNode(type="heading", level=3, text="Key heading")
    nodes.append(heading)

    result = truncate_content(nodes, 60)

    kept = result.content.nodes
    assert any(node is heading for node in kept)
    # Ranked first, but still emitted after the paragraph that preceded it.
    assert kept[0] is nodes[0]
    assert kept[1] is heading


def test_higher_level_headings_outrank_lower_ones():
    assert node_priority(ContentNode(type="heading", level=1, text="a")) == 100
    assert node_priority(ContentNode(type="heading", level=4, text="a")) == 70
    assert node_priority(paragraph("a")) == 40
    assert node_priority(ContentNode(type="image")) == 5


def test_custom_priority_order_overrides_defaults():
    code = ContentNode(type="code", text="x = 1\n" * 10)
    heading = ContentNode(type="heading", level=1, text="Heading " * 8)

    result = truncate_content([heading, code], 20, priority_order=["code"], add_indicator=False)

    assert result.content.nodes == [code]
    assert result.items_omitted == 1


def test_custom_priority_accepts_heading_level_keys():
    custom = {"h2": 1000, "paragraph": 999}
    assert node_priority(ContentNode(type="heading", level=2, text="a"), custom) == 1000
    assert node_priority(ContentNode(type="heading", level=1, text="a"), custom) == 100


def test_indicator_can_be_disabled():
    nodes = [paragraph("p" * 80) for _ in range(3)]

    result = truncate_content(nodes, 45, add_indicator=False)

    assert result.content.nodes == nodes[:2]
    assert result.items_omitted == 1
    assert result.returned_tokens == 40


def test_text_end_mode_cuts_and_appends_indicator():
    result = truncate_text("a" * 400, 20)

    assert result.truncated is True
    assert result.content.text.endswith(TEXT_INDICATOR)
    assert result.content.text.startswith("a" * 60)
    assert result.returned_tokens <= 20
    assert result.original_tokens == 100


def test_text_middle_mode_keeps_both_ends():
    result = truncate_text("a" * 200 + "b" * 200, 20, mode="middle")

    text = result.content.text
    assert MIDDLE_MARKER in text
    assert text.startswith("a" * 24)
    assert text.endswith("b" * 24)
    assert result.returned_tokens <= 20


def test_text_middle_mode_stays_within_budget():
    result = truncate_text("a" * 4000, 100, mode="middle")

    assert result.truncated is True
    assert result.returned_tokens <= 100
    assert result.returned_tokens == estimate_tokens(result.content.text)


def test_text_smart_mode_never_emits_partial_paragraphs():
    paragraphs = [f"Paragraph number {i} has a handful of words." for i in range(6)]
    text = "\n\n".join(paragraphs)

    result = truncate(text, 30, text_mode="smart")

    body = result.content.text[: -len(TEXT_INDICATOR)]
    kept = [part for part in body.split("\n\n") if part]
    assert kept
    assert all(part in paragraphs for part in kept)
    assert result.items_omitted == len(paragraphs) - len(kept)
    assert result.items_omitted >= 1
    assert result.returned_tokens <= 30 + INDICATOR_ALLOWANCE
