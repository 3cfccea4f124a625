from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from typing import Any

from loguru import logger

from lightbrowser.config import settings
from lightbrowser.core.budget.tokens import truncate
from lightbrowser.core.extract.service import extract_from_html
from lightbrowser.core.fetch.engine import Engine
from lightbrowser.core.models.interfaces import (
    ExtractionOptions,
    FetchOptions,
    KeywordMode,
    OutputFormat,
    PageSnapshot,
    TextMode,
    TextPayload,
    Tier,
    TimingInfo,
    TruncationInfo,
    payload_to_json,
)
from lightbrowser.core.semantic.search import filter_by_query, filter_html_by_query
from lightbrowser.services.embeddings_local import EmbeddingProvider
from lightbrowser.services.logger import log_event


@dataclass(slots=True)
class BrowseRequest:
    url: str
    max_tier: Tier | None = None
    auto_escalate: bool | None = None
    headers: dict[str, str] | None = None

    format: OutputFormat | None = None
    selectors: list[str] | None = None
    exclude_selectors: list[str] | None = None
    keywords: list[str] | None = None
    keyword_mode: KeywordMode = "any"
    include_media: bool = True
    readability: bool = False

    query: str | None = None
    top_k: int | None = None
    threshold: float | None = None
    search_raw_html: bool = False

    max_tokens: int | None = None
    priority_order: list[str] | None = None
    text_mode: TextMode = "end"


def _elapsed_ms(started: float) -> int:
    return int(round((time.monotonic() - started) * 1000))


class BrowseService:
    """Fetch, extract, filter and budget one page into a ``PageSnapshot``.

    The service owns one engine session; ``close()`` ends it.
    """

    def __init__(self, engine: Engine | None = None, *, embedder: EmbeddingProvider | None = None):
        self.engine = engine or Engine.from_settings(settings)
        self._embedder = embedder

    async def browse(self, request: BrowseRequest) -> PageSnapshot:
        started = time.monotonic()
        page = await self.engine.fetch(
            request.url,
            FetchOptions(
                headers=request.headers,
                max_tier=request.max_tier,
                auto_escalate=request.auto_escalate,
            ),
        )

        extract_started = time.monotonic()
        extracted = extract_from_html(
            page.html,
            page.final_url,
            ExtractionOptions(
                format=request.format or settings.output_format,
                selectors=request.selectors,
                exclude_selectors=request.exclude_selectors,
                keywords=request.keywords,
                keyword_mode=request.keyword_mode,
                include_media=request.include_media,
                readability_mode=request.readability,
            ),
        )
        extract_ms = _elapsed_ms(extract_started)

        content = extracted.content
        semantic_ms = None
        total_chunks = None
        matched_chunks = None
        if request.query:
            semantic_started = time.monotonic()
            if request.search_raw_html:
                filtered = await filter_html_by_query(
                    page.html,
                    request.query,
                    top_k=request.top_k,
                    threshold=request.threshold,
                    embedder=self._embedder,
                )
            else:
                filtered = await filter_by_query(
                    content,
                    request.query,
                    top_k=request.top_k,
                    threshold=request.threshold,
                    embedder=self._embedder,
                )
            semantic_ms = _elapsed_ms(semantic_started)
            content = TextPayload(filtered.filtered_content)
            total_chunks = filtered.total_chunks
            matched_chunks = filtered.matched_chunks
            log_event(
                "semantic_filter",
                f"{matched_chunks}/{total_chunks} chunks matched",
                url=page.final_url,
                query=request.query,
            )

        truncation = None
        if request.max_tokens is not None:
            result = truncate(
                content,
                request.max_tokens,
                priority_order=request.priority_order,
                text_mode=request.text_mode,
            )
            content = result.content
            if result.truncated:
                truncation = TruncationInfo(
                    reason="token_budget",
                    original_tokens=result.original_tokens,
                    returned_tokens=result.returned_tokens,
                    items_omitted=result.items_omitted,
                )
                logger.debug(
                    f"Truncated {page.final_url} from {result.original_tokens} "
                    f"to {result.returned_tokens} tokens"
                )

        return PageSnapshot(
            url=page.final_url,
            title=page.title,
            content=content,
            links=extracted.links,
            forms=extracted.forms,
            media=extracted.media,
            metadata=extracted.metadata,
            timing=TimingInfo(
                fetch_ms=page.timing.fetch_ms,
                total_ms=_elapsed_ms(started),
                extract_ms=extract_ms,
                semantic_ms=semantic_ms,
            ),
            tier_used=page.tier_used,
            status_code=page.status_code,
            truncated=truncation is not None,
            truncation=truncation,
            total_chunks=total_chunks,
            matched_chunks=matched_chunks,
        )

    async def close(self) -> None:
        await self.engine.close()

    async def __aenter__(self) -> BrowseService:
        return self

    async def __aexit__(self, *_exc_info) -> None:
        await self.close()


def snapshot_to_dict(snapshot: PageSnapshot) -> dict[str, Any]:
    payload = asdict(snapshot)
    payload["content"] = payload_to_json(snapshot.content)
    payload["tier_used"] = int(snapshot.tier_used)
    return payload
