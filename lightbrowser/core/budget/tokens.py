"""Token estimation and budget-driven truncation.

Token counts use a flat four-characters-per-token ratio. That keeps the budget
logic free of any tokenizer dependency at the cost of being an estimate, so
``returned_tokens <= max_tokens`` is a best-effort bound.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Sequence

from lightbrowser.config import settings
from lightbrowser.core.models.interfaces import (
    ContentNode,
    Payload,
    StructuredPayload,
    TextMode,
    TextPayload,
    TruncationResult,
    as_payload,
)

CHARS_PER_TOKEN = 4

CONTENT_PRIORITY: dict[str, int] = {
    "heading": 100,
    "h1": 100,
    "h2": 90,
    "h3": 80,
    "h4": 70,
    "h5": 60,
    "h6": 50,
    "paragraph": 40,
    "list": 35,
    "list-item": 30,
    "blockquote": 25,
    "code": 20,
    "table": 15,
    "link": 10,
    "image": 5,
}

CUSTOM_PRIORITY_BASE = 1000

TEXT_INDICATOR = "\n\n... [truncated]"
MIDDLE_MARKER = "\n\n... [content truncated] ...\n\n"

_PARAGRAPH_BREAK = re.compile(r"\n\n+")


def estimate_tokens(text: str | None) -> int:
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def omitted_indicator_text(count: int) -> str:
    return f"[... {count} more items truncated due to token limit ...]"


def node_text(node: ContentNode) -> str:
    """Text of a node and all of its descendants, space separated."""
    parts = [node.text or ""]
    parts.extend(node_text(child) for child in node.children)
    return " ".join(part for part in parts if part).strip()


def node_priority(node: ContentNode, custom: dict[str, int] | None = None) -> int:
    level_key = f"h{node.level}" if node.type == "heading" and node.level else None
    if custom:
        if level_key and level_key in custom:
            return custom[level_key]
        if node.type in custom:
            return custom[node.type]
    if level_key:
        return CONTENT_PRIORITY.get(level_key, CONTENT_PRIORITY["heading"])
    return CONTENT_PRIORITY.get(node.type, 0)


@dataclass(slots=True)
class _Candidate:
    position: int
    node: ContentNode
    tokens: int
    priority: int


def truncate_content(
    nodes: Sequence[ContentNode],
    max_tokens: int,
    *,
    priority_order: Sequence[str] | None = None,
    add_indicator: bool = True,
    indicator_tokens: int | None = None,
) -> TruncationResult:
    """Keep the most important top-level nodes that fit ``max_tokens``.

    Nodes are ranked by type priority, then by position. Accepted nodes are
    emitted in their original order, followed by one synthetic paragraph
    counting what was dropped when ``add_indicator`` is set.
    """
    nodes = list(nodes)
    custom = None
    if priority_order:
        custom = {}
        for idx, key in enumerate(priority_order):
            custom.setdefault(key, CUSTOM_PRIORITY_BASE - idx)

    candidates = [
        _Candidate(
            position=position,
            node=node,
            tokens=estimate_tokens(node_text(node)),
            priority=node_priority(node, custom),
        )
        for position, node in enumerate(nodes)
    ]
    original_tokens = sum(candidate.tokens for candidate in candidates)

    if original_tokens <= max_tokens:
        return TruncationResult(
            content=StructuredPayload(nodes),
            original_tokens=original_tokens,
            returned_tokens=original_tokens,
            truncated=False,
            items_omitted=0,
        )

    allowance = settings.truncation_indicator_tokens if indicator_tokens is None else indicator_tokens
    reserve = allowance if add_indicator and allowance < max_tokens else 0

    ranked = sorted(candidates, key=lambda candidate: (-candidate.priority, candidate.position))
    accepted: set[int] = set()
    used = 0
    for candidate in ranked:
        if used + candidate.tokens + reserve <= max_tokens:
            accepted.add(candidate.position)
            used += candidate.tokens

    if not accepted:
        # A budget too small for the reserve still keeps the best node that fits.
        for candidate in ranked:
            if candidate.tokens <= max_tokens:
                accepted.add(candidate.position)
                used += candidate.tokens
                break

    kept = [candidate.node for candidate in candidates if candidate.position in accepted]
    items_omitted = len(nodes) - len(kept)
    returned_tokens = used
    if add_indicator and items_omitted > 0:
        indicator = ContentNode(type="paragraph", text=omitted_indicator_text(items_omitted))
        kept.append(indicator)
        returned_tokens += estimate_tokens(indicator.text)

    return TruncationResult(
        content=StructuredPayload(kept),
        original_tokens=original_tokens,
        returned_tokens=returned_tokens,
        truncated=True,
        items_omitted=items_omitted,
    )


def truncate_text(
    text: str,
    max_tokens: int,
    *,
    mode: TextMode = "end",
    indicator: str = TEXT_INDICATOR,
) -> TruncationResult:
    original_tokens = estimate_tokens(text)
    if original_tokens <= max_tokens:
        return TruncationResult(
            content=TextPayload(text),
            original_tokens=original_tokens,
            returned_tokens=original_tokens,
            truncated=False,
            items_omitted=0,
        )

    indicator_tokens = estimate_tokens(MIDDLE_MARKER if mode == "middle" else indicator)
    max_chars = max(max_tokens - indicator_tokens, 0) * CHARS_PER_TOKEN
    items_omitted = 0

    if mode == "middle":
        half = max_chars // 2
        head = text[:half]
        tail = text[len(text) - half:] if half else ""
        truncated = head + MIDDLE_MARKER + tail
    elif mode == "smart":
        paragraphs = _PARAGRAPH_BREAK.split(text)
        kept: list[str] = []
        used = 0
        for paragraph in paragraphs:
            cost = estimate_tokens(paragraph + "\n\n")
            if used + cost + indicator_tokens > max_tokens:
                break
            kept.append(paragraph)
            used += cost
        items_omitted = len(paragraphs) - len(kept)
        truncated = "\n\n".join(kept).strip() + indicator
    else:
        truncated = text[:max_chars] + indicator

    return TruncationResult(
        content=TextPayload(truncated),
        original_tokens=original_tokens,
        returned_tokens=estimate_tokens(truncated),
        truncated=True,
        items_omitted=items_omitted,
    )


def truncate(
    content: Payload | str | Sequence[ContentNode],
    max_tokens: int,
    *,
    priority_order: Sequence[str] | None = None,
    add_indicator: bool = True,
    text_mode: TextMode = "end",
    indicator_tokens: int | None = None,
) -> TruncationResult:
    payload = as_payload(content)
    if isinstance(payload, TextPayload):
        return truncate_text(payload.text, max_tokens, mode=text_mode)
    return truncate_content(
        payload.nodes,
        max_tokens,
        priority_order=priority_order,
        add_indicator=add_indicator,
        indicator_tokens=indicator_tokens,
    )
