from __future__ import annotations

import asyncio
import csv
import json
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Literal, Sequence

from loguru import logger

from lightbrowser.config import settings
from lightbrowser.core.browse.service import BrowseRequest, BrowseService, snapshot_to_dict
from lightbrowser.core.errors import wrap_error
from lightbrowser.core.models.interfaces import PageSnapshot

ServiceFactory = Callable[[], BrowseService]
ProgressCallback = Callable[[int, int, str, bool], None]


@dataclass(slots=True)
class BatchResult:
    url: str
    success: bool
    snapshot: PageSnapshot | None = None
    error: str | None = None
    error_code: int | None = None
    timing_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "success": self.success,
            "snapshot": snapshot_to_dict(self.snapshot) if self.snapshot is not None else None,
            "error": self.error,
            "error_code": self.error_code,
            "timing_ms": self.timing_ms,
        }


async def process_batch(
    urls: Sequence[str],
    *,
    concurrency: int | None = None,
    template: BrowseRequest | None = None,
    service_factory: ServiceFactory | None = None,
    on_progress: ProgressCallback | None = None,
) -> list[BatchResult]:
    """Browse every URL with at most ``concurrency`` in flight; results keep input order.

    Each URL gets its own session. Sessions share the browser, so none is
    closed until the whole batch has finished.
    """
    limit = max(int(concurrency if concurrency is not None else settings.batch_concurrency), 1)
    semaphore = asyncio.Semaphore(limit)
    template = template or BrowseRequest(url="")
    factory = service_factory or BrowseService
    services: list[BrowseService] = []
    completed = 0

    async def run_one(url: str) -> BatchResult:
        nonlocal completed
        async with semaphore:
            started = time.monotonic()
            service = factory()
            services.append(service)
            try:
                snapshot = await service.browse(replace(template, url=url))
                result = BatchResult(url=url, success=True, snapshot=snapshot)
            except Exception as exc:
                error = wrap_error(exc)
                logger.warning(f"Batch item failed for {url}: {error.code.name}: {error.message}")
                result = BatchResult(
                    url=url,
                    success=False,
                    error=error.message,
                    error_code=int(error.code),
                )
            result.timing_ms = int(round((time.monotonic() - started) * 1000))
            completed += 1
            if on_progress is not None:
                on_progress(completed, len(urls), url, result.success)
            return result

    try:
        return list(await asyncio.gather(*(run_one(url) for url in urls)))
    finally:
        for service in services:
            await service.close()


def read_urls_from_file(path: str | Path) -> list[str]:
    lines = Path(path).read_text(encoding="utf-8").splitlines()
    return [line.strip() for line in lines if line.strip() and not line.strip().startswith("#")]


def write_batch_results(
    results: Sequence[BatchResult],
    path: str | Path,
    output_format: Literal["json", "csv"] = "json",
) -> None:
    target = Path(path)
    if output_format == "csv":
        with target.open("w", encoding="utf-8", newline="") as handle:
            writer = csv.writer(handle, quoting=csv.QUOTE_NONNUMERIC)
            writer.writerow(["url", "success", "title", "tier_used", "timing_ms", "error"])
            for result in results:
                snapshot = result.snapshot
                writer.writerow(
                    [
                        result.url,
                        str(result.success).lower(),
                        snapshot.title if snapshot is not None else "",
                        int(snapshot.tier_used) if snapshot is not None else "",
                        result.timing_ms,
                        result.error or "",
                    ]
                )
        return
    target.write_text(
        json.dumps([result.to_dict() for result in results], indent=2, ensure_ascii=False),
        encoding="utf-8",
    )
