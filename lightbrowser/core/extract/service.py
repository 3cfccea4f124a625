from __future__ import annotations

import re
from typing import Iterable
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from lightbrowser.core.errors import extraction_error, parse_error
from lightbrowser.core.models.interfaces import (
    ContentNode,
    ExtractedPage,
    ExtractionOptions,
    Form,
    FormField,
    FormOption,
    Link,
    MediaRef,
    PageMetadata,
    StructuredPayload,
    TextPayload,
)

DEFAULT_EXCLUDE_SELECTORS = (
    "script",
    "style",
    "noscript",
    "svg",
    "iframe",
    "[hidden]",
    '[aria-hidden="true"]',
)

NAVIGATION_SELECTORS = (
    "nav",
    "header",
    '[role="navigation"]',
    '[role="banner"]',
    ".nav",
    ".navbar",
    ".navigation",
    ".header",
    "#nav",
    "#navbar",
    "#navigation",
    "#header",
)

FOOTER_SELECTORS = ("footer", '[role="contentinfo"]', ".footer", "#footer")

MAIN_CONTENT_SELECTORS = (
    "main",
    '[role="main"]',
    "article",
    ".content",
    "#content",
    ".post",
    ".article",
)

# Never visible to a reader, whatever the page layout.
INVISIBLE_SELECTORS = ("script", "style", "noscript", "[hidden]", '[aria-hidden="true"]', "img")

BLOCK_TAGS = (
    "p", "div", "section", "article", "main", "header", "footer", "aside", "nav",
    "h1", "h2", "h3", "h4", "h5", "h6", "li", "tr", "br", "blockquote", "pre",
    "table", "ul", "ol", "dl", "dt", "dd", "figure", "figcaption",
)

HEADING_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6")
KEYWORD_FILTERED_TYPES = ("paragraph", "list", "blockquote", "table")


def _normalize_text(text: str) -> str:
    text = text.replace("\xa0", " ")
    return re.sub(r"\s+", " ", text).strip()


def _resolve(url: str, base_url: str) -> str:
    try:
        return urljoin(base_url, url)
    except ValueError:
        return url


def _select(root: BeautifulSoup | Tag, selectors: Iterable[str]) -> list[Tag]:
    query = ", ".join(selectors)
    if not query:
        return []
    try:
        return root.select(query)
    except Exception as exc:
        raise extraction_error(f"Invalid selector {query!r}: {exc}") from exc


def _remove(root: BeautifulSoup | Tag, selectors: Iterable[str]) -> None:
    for element in _select(root, selectors):
        element.extract()


def extract_links(soup: BeautifulSoup, base_url: str) -> list[Link]:
    links: list[Link] = []
    page_host = urlparse(base_url).hostname
    for anchor in soup.select("a[href]"):
        href = (anchor.get("href") or "").strip()
        if not href or href == "#" or href.lower().startswith("javascript:"):
            continue
        resolved = _resolve(href, base_url)
        if anchor.find_parent("nav") is not None or anchor.find_parent(attrs={"role": "navigation"}) is not None:
            link_type = "navigation"
        elif anchor.has_attr("download"):
            link_type = "download"
        elif href.startswith("#"):
            link_type = "anchor"
        elif urlparse(resolved).hostname not in (None, page_host):
            link_type = "external"
        else:
            link_type = "content"
        text = _normalize_text(anchor.get_text(" "))
        links.append(
            Link(
                text=text or href,
                href=href,
                resolved_url=resolved,
                type=link_type,
                ref_number=len(links) + 1,
            )
        )
    return links


def _field_value(field: Tag) -> str:
    if field.name == "textarea":
        return field.get_text()
    if field.name == "select":
        options = field.find_all("option")
        chosen = next((opt for opt in options if opt.has_attr("selected")), options[0] if options else None)
        if chosen is None:
            return ""
        return chosen.get("value", _normalize_text(chosen.get_text()))
    return field.get("value", "")


def _field_label(soup: BeautifulSoup, field: Tag) -> str | None:
    field_id = field.get("id")
    if field_id:
        label = soup.find("label", attrs={"for": field_id})
        if label is not None and _normalize_text(label.get_text(" ")):
            return _normalize_text(label.get_text(" "))
    wrapper = field.find_parent("label")
    if wrapper is not None:
        # A wrapping label also holds the field itself (select options, textarea text).
        own = {id(text) for text in field.find_all(string=True)}
        label = " ".join(text for text in wrapper.find_all(string=True) if id(text) not in own)
        return _normalize_text(label) or None
    return None


def extract_forms(soup: BeautifulSoup) -> list[Form]:
    forms: list[Form] = []
    for index, form in enumerate(soup.find_all("form")):
        fields: list[FormField] = []
        for field in form.find_all(["input", "textarea", "select"]):
            field_type = (field.get("type") or field.name).lower()
            options = None
            if field.name == "select":
                options = [
                    FormOption(
                        value=option.get("value", _normalize_text(option.get_text())),
                        text=_normalize_text(option.get_text()),
                        selected=option.has_attr("selected"),
                    )
                    for option in field.find_all("option")
                ]
            fields.append(
                FormField(
                    name=field.get("name", ""),
                    type=field_type,
                    value=_field_value(field),
                    required=field.has_attr("required"),
                    hidden=field_type == "hidden",
                    label=_field_label(soup, field),
                    options=options,
                )
            )
        method = (form.get("method") or "GET").upper()
        forms.append(
            Form(
                id=form.get("id") or form.get("name") or f"form-{index}",
                action=form.get("action", ""),
                method="POST" if method == "POST" else "GET",
                fields=fields,
            )
        )
    return forms


def _int_attr(element: Tag, name: str) -> int | None:
    try:
        value = int(element.get(name, "0"))
    except (TypeError, ValueError):
        return None
    return value or None


def _source_of(element: Tag) -> str:
    src = element.get("src")
    if not src:
        source = element.find("source")
        src = source.get("src", "") if source is not None else ""
    return src


def extract_media(soup: BeautifulSoup, base_url: str) -> list[MediaRef]:
    media: list[MediaRef] = []
    for image in soup.find_all("img"):
        src = image.get("data-src") or image.get("data-lazy-src") or image.get("src")
        if not src:
            continue
        media.append(
            MediaRef(
                type="image",
                src=_resolve(src, base_url),
                ref_number=len(media) + 1,
                alt=image.get("alt"),
                title=image.get("title"),
                width=_int_attr(image, "width"),
                height=_int_attr(image, "height"),
            )
        )
    for video in soup.find_all("video"):
        src = _source_of(video)
        media.append(
            MediaRef(
                type="video",
                src=_resolve(src, base_url) if src else "",
                ref_number=len(media) + 1,
                title=video.get("title"),
                width=_int_attr(video, "width"),
                height=_int_attr(video, "height"),
            )
        )
    for audio in soup.find_all("audio"):
        src = _source_of(audio)
        media.append(
            MediaRef(
                type="audio",
                src=_resolve(src, base_url) if src else "",
                ref_number=len(media) + 1,
                title=audio.get("title"),
            )
        )
    return media


def extract_metadata(soup: BeautifulSoup) -> PageMetadata:
    metadata = PageMetadata()

    description = soup.find("meta", attrs={"name": "description"})
    if description is not None and description.get("content"):
        metadata.description = description["content"]

    keywords = soup.find("meta", attrs={"name": "keywords"})
    if keywords is not None and keywords.get("content"):
        metadata.keywords = [item.strip() for item in keywords["content"].split(",") if item.strip()]

    canonical = soup.find("link", rel="canonical")
    if canonical is not None and canonical.get("href"):
        metadata.canonical = canonical["href"]

    html_tag = soup.find("html")
    if html_tag is not None and html_tag.get("lang"):
        metadata.lang = html_tag["lang"]

    charset_tag = soup.find("meta", charset=True)
    if charset_tag is not None:
        metadata.charset = charset_tag["charset"]
    else:
        content_type = soup.find("meta", attrs={"http-equiv": re.compile("^content-type$", re.I)})
        match = re.search(r"charset=([^;]+)", content_type.get("content", "")) if content_type else None
        if match:
            metadata.charset = match.group(1).strip()

    og: dict[str, str] = {}
    for meta in soup.find_all("meta", attrs={"property": re.compile(r"^og:")}):
        key = meta["property"][3:]
        if key and meta.get("content"):
            og[key] = meta["content"]
    if og:
        metadata.og = og

    return metadata


def _ref_maps(links: list[Link], media: list[MediaRef]) -> tuple[dict[str, int], dict[str, int]]:
    link_refs: dict[str, int] = {}
    for link in links:
        link_refs.setdefault(link.href, link.ref_number)
        if link.text:
            link_refs.setdefault(link.text.lower(), link.ref_number)
    media_refs: dict[str, int] = {}
    for item in media:
        if item.type == "image":
            media_refs.setdefault(item.src, item.ref_number)
    return link_refs, media_refs


def _link_ref_text(anchor: Tag, link_refs: dict[str, int]) -> str:
    text = _normalize_text(anchor.get_text(" "))
    ref = link_refs.get((anchor.get("href") or "").strip()) or link_refs.get(text.lower())
    return f"{text} [{ref}]" if ref and text else text


def _image_ref_text(image: Tag, media_refs: dict[str, int], base_url: str) -> str:
    alt = image.get("alt") or "image"
    src = image.get("data-src") or image.get("data-lazy-src") or image.get("src") or ""
    ref = media_refs.get(_resolve(src, base_url)) if src else None
    return f"[{alt}] [img:{ref}]" if ref else f"[{alt}]"


def _inline_text(element: Tag, link_refs: dict[str, int], media_refs: dict[str, int], base_url: str) -> str:
    parts: list[str] = []
    for child in element.children:
        if isinstance(child, Comment):
            continue
        if isinstance(child, NavigableString):
            parts.append(str(child))
        elif isinstance(child, Tag):
            if child.name == "a":
                parts.append(_link_ref_text(child, link_refs))
            elif child.name == "img":
                parts.append(_image_ref_text(child, media_refs, base_url))
            else:
                parts.append(_inline_text(child, link_refs, media_refs, base_url))
    return "".join(parts)


def main_content(soup: BeautifulSoup, *, strip_navigation: bool = True, strip_footers: bool = False) -> Tag:
    """Best guess at the reading area: the first main/article-like block, else the body."""
    candidates = _select(soup, MAIN_CONTENT_SELECTORS)
    root = candidates[0] if candidates else (soup.body or soup)
    if strip_navigation:
        _remove(root, NAVIGATION_SELECTORS)
    if strip_footers:
        _remove(root, FOOTER_SELECTORS)
    return root


def _table_text(table: Tag) -> str:
    rows = []
    for row in table.find_all("tr"):
        cells = [_normalize_text(cell.get_text(" ")) for cell in row.find_all(["th", "td"])]
        cells = [cell for cell in cells if cell]
        if cells:
            rows.append(" | ".join(cells))
    return "\n".join(rows)


def extract_structured_content(
    root: Tag,
    *,
    link_refs: dict[str, int],
    media_refs: dict[str, int],
    base_url: str,
) -> list[ContentNode]:
    """Headings, paragraphs, lists, quotes, code and tables in document order."""
    nodes: list[ContentNode] = []

    def inline(element: Tag) -> str:
        return _normalize_text(_inline_text(element, link_refs, media_refs, base_url))

    def visit(element: Tag) -> None:
        name = element.name
        if name in HEADING_TAGS:
            text = inline(element)
            if text:
                nodes.append(ContentNode(type="heading", level=int(name[1]), text=text))
        elif name == "p":
            text = inline(element)
            if text:
                nodes.append(ContentNode(type="paragraph", text=text))
        elif name in ("ul", "ol"):
            items = [inline(item) for item in element.find_all("li", recursive=False)]
            children = [ContentNode(type="paragraph", text=text) for text in items if text]
            if children:
                nodes.append(ContentNode(type="list", children=children))
        elif name == "blockquote":
            text = inline(element)
            if text:
                nodes.append(ContentNode(type="blockquote", text=text))
        elif name == "pre":
            # Code keeps its own whitespace and gets no reference markers.
            text = element.get_text().strip()
            if text:
                nodes.append(ContentNode(type="code", text=text))
        elif name == "table":
            text = _table_text(element)
            if text:
                nodes.append(ContentNode(type="table", text=text))
        else:
            for child in element.children:
                if isinstance(child, Tag):
                    visit(child)

    visit(root)
    return nodes


def _matches_keywords(text: str, keywords: list[str], mode: str) -> bool:
    lowered = text.lower()
    hits = [keyword.lower() in lowered for keyword in keywords]
    return all(hits) if mode == "all" else any(hits)


def _linearize(root: Tag) -> str:
    for element in root.find_all(BLOCK_TAGS):
        element.insert_before("\n")
        element.insert_after("\n")
    paragraphs = re.split(r"\n\s*\n", root.get_text())
    return "\n\n".join(para for para in (_normalize_text(p) for p in paragraphs) if para)


def extract_plain_text(
    root: Tag,
    *,
    link_refs: dict[str, int],
    media_refs: dict[str, int],
    base_url: str,
) -> str:
    for anchor in root.find_all("a"):
        anchor.replace_with(_link_ref_text(anchor, link_refs))
    for image in root.find_all("img"):
        image.replace_with(_image_ref_text(image, media_refs, base_url))
    for table in root.find_all("table"):
        table.replace_with("\n\n" + _table_text(table) + "\n\n")
    return _linearize(root)


def extract_from_html(html: str, base_url: str, options: ExtractionOptions | None = None) -> ExtractedPage:
    options = options or ExtractionOptions()
    try:
        soup = BeautifulSoup(html or "", "html.parser")
        # Content extraction prunes the tree; links, forms and media read the pristine one.
        work = BeautifulSoup(html or "", "html.parser")
    except Exception as exc:
        raise parse_error(f"Could not parse markup from {base_url}: {exc}") from exc

    links = extract_links(soup, base_url)
    media = extract_media(soup, base_url) if options.include_media else []
    link_refs, media_refs = _ref_maps(links, media)

    if options.selectors:
        roots = _select(work, options.selectors)
    else:
        roots = [main_content(work, strip_footers=options.readability_mode)]

    excluded = list(DEFAULT_EXCLUDE_SELECTORS) + list(options.exclude_selectors or [])
    for root in roots:
        _remove(root, excluded)

    if options.format == "json":
        nodes: list[ContentNode] = []
        for root in roots:
            nodes.extend(
                extract_structured_content(root, link_refs=link_refs, media_refs=media_refs, base_url=base_url)
            )
        if options.keywords:
            nodes = [
                node
                for node in nodes
                if node.type not in KEYWORD_FILTERED_TYPES
                or _matches_keywords(_node_search_text(node), options.keywords, options.keyword_mode)
            ]
        content = StructuredPayload(nodes)
    else:
        blocks = [
            extract_plain_text(root, link_refs=link_refs, media_refs=media_refs, base_url=base_url)
            for root in roots
        ]
        text = "\n\n".join(block for block in blocks if block)
        if options.keywords:
            text = "\n\n".join(
                paragraph
                for paragraph in re.split(r"\n\n+", text)
                if _matches_keywords(paragraph, options.keywords, options.keyword_mode)
            )
        content = TextPayload(text)

    return ExtractedPage(
        content=content,
        links=links,
        forms=extract_forms(soup),
        media=media,
        metadata=extract_metadata(soup),
    )


def _node_search_text(node: ContentNode) -> str:
    return " ".join([node.text, *(child.text for child in node.children)])


def extract_all_text(html: str) -> str:
    """Every visible line of a page, whatever its markup; tables become ``a | b`` rows."""
    soup = BeautifulSoup(html or "", "html.parser")
    _remove(soup, INVISIBLE_SELECTORS)
    for row in soup.find_all("tr"):
        cells = [_normalize_text(cell.get_text(" ")) for cell in row.find_all(["th", "td"])]
        row.replace_with("\n" + " | ".join(cell for cell in cells if cell) + "\n")
    for element in soup.find_all(BLOCK_TAGS):
        element.insert_before("\n")
        element.insert_after("\n")
    lines = (_normalize_text(line) for line in soup.get_text().splitlines())
    return "\n".join(line for line in lines if line)
