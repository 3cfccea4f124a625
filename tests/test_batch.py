from __future__ import annotations

import asyncio
import csv
import json
from typing import Callable

import pytest

from lightbrowser.core.browse.batch import (
    BatchResult,
    process_batch,
    read_urls_from_file,
    write_batch_results,
)
from lightbrowser.core.browse.service import BrowseRequest
from lightbrowser.core.errors import ErrorCode, http_client_error
from lightbrowser.core.models.interfaces import PageMetadata, PageSnapshot, TextPayload, Tier, TimingInfo


def make_snapshot(url: str) -> PageSnapshot:
    return PageSnapshot(
        url=url,
        title=f"Title for {url}",
        content=TextPayload("body"),
        links=[],
        forms=[],
        media=[],
        metadata=PageMetadata(),
        timing=TimingInfo(fetch_ms=1, total_ms=2),
        tier_used=Tier.STATIC,
    )


class FakeService:
    """Stands in for BrowseService; tracks overlap so the concurrency limit is observable."""

    def __init__(self, tracker: dict, failing: set[str]):
        self.tracker = tracker
        self.failing = failing
        self.requests: list[BrowseRequest] = []
        self.closed = False
        tracker["services"].append(self)

    async def browse(self, request: BrowseRequest) -> PageSnapshot:
        self.requests.append(request)
        self.tracker["active"] += 1
        self.tracker["peak"] = max(self.tracker["peak"], self.tracker["active"])
        self.tracker["closed_during_run"] |= any(service.closed for service in self.tracker["services"])
        try:
            # Later URLs finish first, so ordering has to come from the input.
            await asyncio.sleep(0.01 * (5 - len(self.tracker["services"]) % 5))
            if request.url in self.failing:
                if request.url.endswith("missing"):
                    raise http_client_error(404, request.url)
                raise RuntimeError("boom")
            return make_snapshot(request.url)
        finally:
            self.tracker["active"] -= 1

    async def close(self) -> None:
        self.closed = True


def factory_for(failing: set[str] | None = None) -> tuple[dict, Callable[[], FakeService]]:
    tracker = {"services": [], "active": 0, "peak": 0, "closed_during_run": False}
    return tracker, lambda: FakeService(tracker, failing or set())


URLS = [f"https://site.example/{i}" for i in range(5)]


@pytest.mark.asyncio
async def test_results_keep_input_order():
    _tracker, factory = factory_for()

    results = await process_batch(URLS, concurrency=5, service_factory=factory)

    assert [result.url for result in results] == URLS
    assert all(result.success for result in results)
    assert results[2].snapshot.title == "Title for https://site.example/2"


@pytest.mark.asyncio
async def test_concurrency_limit_is_respected():
    tracker, factory = factory_for()

    await process_batch(URLS, concurrency=2, service_factory=factory)

    assert tracker["peak"] <= 2
    assert len(tracker["services"]) == len(URLS)


@pytest.mark.asyncio
async def test_failures_are_reported_per_url():
    failing = {"https://site.example/missing", "https://site.example/broken"}
    urls = ["https://site.example/ok", "https://site.example/missing", "https://site.example/broken"]
    _tracker, factory = factory_for(failing)

    results = await process_batch(urls, concurrency=3, service_factory=factory)

    ok, missing, broken = results
    assert ok.success is True
    assert missing.success is False
    assert missing.error_code == int(ErrorCode.HTTP_CLIENT_ERROR) == 200
    assert "Page not found" in missing.error
    assert broken.success is False
    assert broken.error == "boom"
    assert broken.error_code == int(ErrorCode.NETWORK_ERROR)


@pytest.mark.asyncio
async def test_sessions_close_only_after_every_url_finishes():
    tracker, factory = factory_for({"https://site.example/3"})

    await process_batch(URLS, concurrency=2, service_factory=factory)

    assert tracker["closed_during_run"] is False
    assert all(service.closed for service in tracker["services"])


@pytest.mark.asyncio
async def test_template_options_apply_to_every_url_and_progress_is_reported():
    tracker, factory = factory_for()
    progress: list[tuple[int, int, str, bool]] = []

    await process_batch(
        URLS[:3],
        concurrency=1,
        template=BrowseRequest(url="", format="json", max_tokens=50),
        service_factory=factory,
        on_progress=lambda done, total, url, ok: progress.append((done, total, url, ok)),
    )

    requests = [request for service in tracker["services"] for request in service.requests]
    assert [request.url for request in requests] == URLS[:3]
    assert all(request.format == "json" and request.max_tokens == 50 for request in requests)
    assert [entry[0] for entry in progress] == [1, 2, 3]
    assert all(entry[1] == 3 and entry[3] for entry in progress)


@pytest.mark.asyncio
async def test_empty_batch():
    assert await process_batch([], service_factory=lambda: None) == []


def test_read_urls_skips_blanks_and_comments(tmp_path):
    source = tmp_path / "urls.txt"
    source.write_text("# seeds\nhttps://a.example\n\n  https://b.example  \n#https://c.example\n", encoding="utf-8")

    assert read_urls_from_file(source) == ["https://a.example", "https://b.example"]


def test_write_results_as_json(tmp_path):
    results = [
        BatchResult(url="https://a.example", success=True, snapshot=make_snapshot("https://a.example"), timing_ms=7),
        BatchResult(url="https://b.example", success=False, error="Page not found", error_code=200),
    ]
    target = tmp_path / "out.json"

    write_batch_results(results, target)

    payload = json.loads(target.read_text(encoding="utf-8"))
    assert payload[0]["snapshot"]["title"] == "Title for https://a.example"
    assert payload[0]["snapshot"]["tier_used"] == 1
    assert payload[0]["snapshot"]["content"] == "body"
    assert payload[1]["snapshot"] is None
    assert payload[1]["error_code"] == 200


def test_write_results_as_csv(tmp_path):
    results = [
        BatchResult(url="https://a.example", success=True, snapshot=make_snapshot("https://a.example"), timing_ms=7),
        BatchResult(url="https://b.example", success=False, error='He said "no"', error_code=200),
    ]
    target = tmp_path / "out.csv"

    write_batch_results(results, target, "csv")

    with target.open(encoding="utf-8", newline="") as handle:
        rows = list(csv.reader(handle))
    assert rows[0] == ["url", "success", "title", "tier_used", "timing_ms", "error"]
    assert rows[1][:4] == ["https://a.example", "true", "Title for https://a.example", "1"]
    assert rows[2][1] == "false"
    assert rows[2][5] == 'He said "no"'
