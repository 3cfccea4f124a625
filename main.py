"""Light Browser - tiered content-extraction browser

Simple CLI for fetching pages as token-budgeted text or JSON.
"""

import argparse
import asyncio
import json
import sys

from lightbrowser.config import settings
from lightbrowser.core.browse.batch import process_batch, read_urls_from_file, write_batch_results
from lightbrowser.core.browse.service import BrowseRequest, BrowseService, snapshot_to_dict
from lightbrowser.core.errors import BrowserError
from lightbrowser.core.models.interfaces import PageSnapshot, TextPayload, Tier, payload_to_json
from lightbrowser.services.logger import configure_logging


def build_request(args: argparse.Namespace, url: str) -> BrowseRequest:
    return BrowseRequest(
        url=url,
        max_tier=Tier(args.tier) if args.tier else None,
        auto_escalate=False if args.no_escalate else None,
        format=args.format,
        selectors=args.selector or None,
        exclude_selectors=args.exclude or None,
        keywords=args.keyword or None,
        keyword_mode="all" if args.all_keywords else "any",
        include_media=not args.no_media,
        readability=args.readability,
        query=args.query,
        top_k=args.top_k,
        threshold=args.threshold,
        search_raw_html=args.search_html,
        max_tokens=args.max_tokens,
        priority_order=args.priority.split(",") if args.priority else None,
        text_mode=args.text_mode,
    )


def render_snapshot(snapshot: PageSnapshot, output_format: str) -> str:
    if output_format == "json":
        return json.dumps(snapshot_to_dict(snapshot), indent=2, ensure_ascii=False)

    lines = [f"# {snapshot.title}" if snapshot.title else f"# {snapshot.url}", f"URL: {snapshot.url}", ""]
    if isinstance(snapshot.content, TextPayload):
        lines.append(snapshot.content.text)
    else:
        lines.append(json.dumps(payload_to_json(snapshot.content), indent=2, ensure_ascii=False))
    if snapshot.links:
        lines.extend(["", "Links:"])
        lines.extend(f"  [{link.ref_number}] {link.resolved_url}" for link in snapshot.links)
    if snapshot.truncation is not None:
        info = snapshot.truncation
        lines.extend(
            ["", f"[truncated: {info.returned_tokens}/{info.original_tokens} tokens, {info.items_omitted} items omitted]"]
        )
    return "\n".join(lines)


async def run_single(args: argparse.Namespace) -> int:
    output_format = args.format or settings.output_format
    async with BrowseService() as service:
        try:
            snapshot = await service.browse(build_request(args, args.url))
        except BrowserError as exc:
            print(f"[!] Error {int(exc.code)}: {exc.message}", file=sys.stderr)
            if exc.suggestion:
                print(f"    Suggestion: {exc.suggestion}", file=sys.stderr)
            return 1

    rendered = render_snapshot(snapshot, output_format)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as handle:
            handle.write(rendered)
        print(f"[+] Wrote {args.output}")
    else:
        print(rendered)
    return 0


async def run_batch(args: argparse.Namespace) -> int:
    urls = read_urls_from_file(args.batch)
    print(f"Processing {len(urls)} URLs (concurrency {args.concurrency or settings.batch_concurrency})")
    print("-" * 50)

    def progress(done: int, total: int, url: str, success: bool) -> None:
        marker = "+" if success else "!"
        print(f"  [{marker}] {done}/{total} {url}")

    results = await process_batch(
        urls,
        concurrency=args.concurrency,
        template=build_request(args, ""),
        on_progress=progress,
    )
    failures = sum(1 for result in results if not result.success)
    print(f"\n[*] Batch complete: {len(results) - failures} succeeded, {failures} failed")

    if args.output:
        output_format = "csv" if args.output.endswith(".csv") else "json"
        write_batch_results(results, args.output, output_format)
        print(f"[+] Wrote {args.output}")
    return 1 if failures else 0


def main():
    parser = argparse.ArgumentParser(description="Light Browser - tiered content-extraction browser")
    parser.add_argument("url", nargs="?", help="URL to browse")
    parser.add_argument("--batch", "-b", help="File with one URL per line")
    parser.add_argument("--tier", "-t", type=int, choices=[1, 2, 3], help="Maximum tier (1=static, 2=scripted DOM, 3=full browser)")
    parser.add_argument("--no-escalate", action="store_true", help="Fetch at the maximum tier only")
    parser.add_argument("--format", "-f", choices=["text", "json"], help="Output format (default: from config)")
    parser.add_argument("--selector", "-s", action="append", help="CSS selector to extract (repeatable)")
    parser.add_argument("--exclude", "-x", action="append", help="CSS selector to drop (repeatable)")
    parser.add_argument("--keyword", "-k", action="append", help="Keep paragraphs containing this keyword (repeatable)")
    parser.add_argument("--all-keywords", action="store_true", help="Require every keyword instead of any")
    parser.add_argument("--no-media", action="store_true", help="Skip media extraction")
    parser.add_argument("--readability", action="store_true", help="Also strip footers from the main content")
    parser.add_argument("--query", "-q", help="Keep only content semantically related to this query")
    parser.add_argument("--top-k", type=int, help="Maximum semantic matches")
    parser.add_argument("--threshold", type=float, help="Minimum semantic similarity")
    parser.add_argument("--search-html", action="store_true", help="Search all visible page text, not just extracted content")
    parser.add_argument("--max-tokens", type=int, help="Token budget for the returned content")
    parser.add_argument("--priority", help="Comma-separated content types, most important first")
    parser.add_argument("--text-mode", choices=["end", "middle", "smart"], default="end", help="How plain text is truncated")
    parser.add_argument("--concurrency", "-c", type=int, help="Batch concurrency (default: from config)")
    parser.add_argument("--output", "-o", help="Write output to this file")
    parser.add_argument("--log-level", help="Log level (default: from config)")

    args = parser.parse_args()
    if not args.url and not args.batch:
        parser.error("a URL or --batch FILE is required")

    configure_logging(args.log_level)
    runner = run_batch if args.batch else run_single
    sys.exit(asyncio.run(runner(args)))


if __name__ == "__main__":
    main()
