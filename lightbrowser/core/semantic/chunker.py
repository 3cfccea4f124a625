from __future__ import annotations

import re
from typing import Sequence

from lightbrowser.core.extract.service import extract_all_text
from lightbrowser.core.models.interfaces import (
    ContentChunk,
    ContentNode,
    Payload,
    TextPayload,
    as_payload,
)

MIN_CHUNK_CHARS = 10
LONG_LINE_CHARS = 50
MERGED_CHUNK_CHARS = 100

_PARAGRAPH_BREAK = re.compile(r"\n\n+")
_LINE_BREAK = re.compile(r"\n+")


def _qualifies(text: str | None) -> bool:
    return bool(text) and len(text.strip()) > MIN_CHUNK_CHARS


def extract_chunks(nodes: Sequence[ContentNode]) -> list[ContentChunk]:
    """One chunk per substantial node, plus one per substantial list child."""
    chunks: list[ContentChunk] = []
    for node in nodes:
        if _qualifies(node.text):
            chunks.append(ContentChunk(text=node.text.strip(), index=len(chunks), type=node.type))
        for child in node.children:
            if _qualifies(child.text):
                chunks.append(ContentChunk(text=child.text.strip(), index=len(chunks), type="list-item"))
    return chunks


def extract_chunks_from_text(text: str) -> list[ContentChunk]:
    paragraphs = [part.strip() for part in _PARAGRAPH_BREAK.split(text or "")]
    return [
        ContentChunk(text=paragraph, index=index, type="paragraph")
        for index, paragraph in enumerate(p for p in paragraphs if len(p) > MIN_CHUNK_CHARS)
    ]


def extract_chunks_from_html(html: str) -> list[ContentChunk]:
    """Chunk every visible line of a page, whatever its markup looks like.

    Long lines stand alone; runs of short lines (menus, table cells, captions)
    are merged until they carry enough text to embed meaningfully.
    """
    lines = [line.strip() for line in _LINE_BREAK.split(extract_all_text(html))]
    lines = [line for line in lines if len(line) > MIN_CHUNK_CHARS]

    chunks: list[ContentChunk] = []
    pending = ""

    def flush() -> None:
        nonlocal pending
        if len(pending) > MIN_CHUNK_CHARS:
            chunks.append(ContentChunk(text=pending.strip(), index=len(chunks), type="text"))
        pending = ""

    for line in lines:
        if len(line) > LONG_LINE_CHARS:
            flush()
            chunks.append(ContentChunk(text=line, index=len(chunks), type="text"))
            continue
        pending = f"{pending} {line}" if pending else line
        if len(pending) > MERGED_CHUNK_CHARS:
            flush()
    flush()
    return chunks


def extract_chunks_from_payload(content: Payload | str | Sequence[ContentNode]) -> list[ContentChunk]:
    payload = as_payload(content)
    if isinstance(payload, TextPayload):
        return extract_chunks_from_text(payload.text)
    return extract_chunks(payload.nodes)
