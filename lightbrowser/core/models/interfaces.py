from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Literal


class Tier(IntEnum):
    """Rendering tiers, ordered by cost and capability."""

    STATIC = 1
    SCRIPTED_DOM = 2
    FULL_BROWSER = 3


NodeType = Literal["heading", "paragraph", "list", "table", "blockquote", "code", "image", "link"]
OutputFormat = Literal["json", "text"]
KeywordMode = Literal["any", "all"]
TextMode = Literal["end", "middle", "smart"]


# --- Fetching ---


@dataclass(frozen=True, slots=True)
class TimingInfo:
    fetch_ms: int
    total_ms: int
    extract_ms: int | None = None
    semantic_ms: int | None = None


@dataclass(frozen=True, slots=True)
class PageResult:
    final_url: str
    title: str
    html: str
    status_code: int
    headers: dict[str, str]
    redirect_chain: tuple[str, ...]
    tier_used: Tier
    timing: TimingInfo


@dataclass(frozen=True, slots=True)
class TierRequest:
    timeout_ms: int
    user_agent: str
    headers: dict[str, str] = field(default_factory=dict)
    follow_redirects: bool = True
    max_redirects: int = 10
    # scripted DOM
    run_scripts: bool = True
    dom_settle_ms: int = 500
    # full browser
    headless: bool = True
    viewport_width: int = 1280
    viewport_height: int = 720
    wait_for_network_idle: bool = True
    extra_wait_ms: int = 100


@dataclass(slots=True)
class FetchOptions:
    headers: dict[str, str] | None = None
    follow_redirects: bool | None = None
    max_redirects: int | None = None
    # Per-call ceiling; can only lower the engine's own.
    max_tier: Tier | None = None
    auto_escalate: bool | None = None


@dataclass(slots=True)
class EngineOptions:
    max_tier: Tier = Tier.FULL_BROWSER
    auto_escalate: bool = True
    timeout_ms: int = 30000
    user_agent: str | None = None
    headers: dict[str, str] | None = None
    follow_redirects: bool = True
    max_redirects: int = 10
    headless: bool = True
    javascript: bool = True
    viewport_width: int = 1280
    viewport_height: int = 720
    dom_settle_ms: int = 500
    extra_wait_ms: int = 100
    wait_for_network_idle: bool = True


# --- Content ---


@dataclass(slots=True)
class ContentNode:
    type: NodeType
    text: str = ""
    level: int | None = None
    children: list[ContentNode] = field(default_factory=list)
    attrs: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.type == "heading":
            if self.level is None or not 1 <= self.level <= 6:
                raise ValueError(f"Heading level must be in [1, 6], got {self.level!r}")
        elif self.level is not None:
            raise ValueError(f"Only heading nodes carry a level, got {self.type!r}")

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type}
        if self.level is not None:
            payload["level"] = self.level
        if self.text:
            payload["text"] = self.text
        if self.children:
            payload["children"] = [child.to_dict() for child in self.children]
        if self.attrs:
            payload["attrs"] = dict(self.attrs)
        return payload


@dataclass(frozen=True, slots=True)
class StructuredPayload:
    nodes: list[ContentNode]


@dataclass(frozen=True, slots=True)
class TextPayload:
    text: str


Payload = StructuredPayload | TextPayload


def as_payload(content: Payload | str | list[ContentNode]) -> Payload:
    if isinstance(content, (StructuredPayload, TextPayload)):
        return content
    if isinstance(content, str):
        return TextPayload(content)
    return StructuredPayload(list(content))


def payload_to_json(payload: Payload) -> list[dict[str, Any]] | str:
    if isinstance(payload, TextPayload):
        return payload.text
    return [node.to_dict() for node in payload.nodes]


@dataclass(slots=True)
class ContentChunk:
    text: str
    index: int
    type: str = "paragraph"
    embedding: list[float] | None = None


@dataclass(frozen=True, slots=True)
class SemanticMatch:
    chunk: ContentChunk
    score: float


@dataclass(slots=True)
class FilterResult:
    filtered_content: str
    matches: list[SemanticMatch]
    total_chunks: int
    matched_chunks: int


@dataclass(frozen=True, slots=True)
class TruncationResult:
    content: Payload
    original_tokens: int
    returned_tokens: int
    truncated: bool
    items_omitted: int


# --- Extraction ---


@dataclass(slots=True)
class Link:
    text: str
    href: str
    resolved_url: str
    type: Literal["navigation", "content", "external", "download", "anchor"]
    ref_number: int


@dataclass(slots=True)
class FormOption:
    value: str
    text: str
    selected: bool


@dataclass(slots=True)
class FormField:
    name: str
    type: str
    value: str
    required: bool
    hidden: bool
    label: str | None = None
    options: list[FormOption] | None = None


@dataclass(slots=True)
class Form:
    id: str
    action: str
    method: Literal["GET", "POST"]
    fields: list[FormField] = field(default_factory=list)


@dataclass(slots=True)
class MediaRef:
    type: Literal["image", "video", "audio"]
    src: str
    ref_number: int
    alt: str | None = None
    title: str | None = None
    width: int | None = None
    height: int | None = None


@dataclass(slots=True)
class PageMetadata:
    description: str | None = None
    keywords: list[str] | None = None
    og: dict[str, str] | None = None
    canonical: str | None = None
    lang: str | None = None
    charset: str | None = None


@dataclass(slots=True)
class ExtractionOptions:
    format: OutputFormat = "text"
    selectors: list[str] | None = None
    exclude_selectors: list[str] | None = None
    keywords: list[str] | None = None
    keyword_mode: KeywordMode = "any"
    include_media: bool = True
    readability_mode: bool = False


@dataclass(slots=True)
class ExtractedPage:
    content: Payload
    links: list[Link]
    forms: list[Form]
    media: list[MediaRef]
    metadata: PageMetadata


# --- Snapshot ---


@dataclass(frozen=True, slots=True)
class TruncationInfo:
    reason: Literal["token_budget"]
    original_tokens: int
    returned_tokens: int
    items_omitted: int


@dataclass(slots=True)
class PageSnapshot:
    url: str
    title: str
    content: Payload
    links: list[Link]
    forms: list[Form]
    media: list[MediaRef]
    metadata: PageMetadata
    timing: TimingInfo
    tier_used: Tier
    status_code: int = 200
    truncated: bool = False
    truncation: TruncationInfo | None = None
    total_chunks: int | None = None
    matched_chunks: int | None = None
