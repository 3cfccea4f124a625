from __future__ import annotations

import pytest

from lightbrowser.core.errors import BrowserError, ErrorCode
from lightbrowser.core.extract.service import extract_from_html
from lightbrowser.core.models.interfaces import ExtractionOptions, StructuredPayload, TextPayload

BASE_URL = "https://birds.example/notes/page"

BIRDS_PAGE = """
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>Birds</title>
  <meta name="description" content="Field notes on wading birds">
  <meta name="keywords" content="birds, herons , wetlands">
  <meta property="og:title" content="Bird notes">
  <link rel="canonical" href="https://birds.example/notes">
</head>
<body>
  <header><nav><a href="/home">Home</a></nav></header>
  <main>
    <h1>Wading birds</h1>
    <p>Herons hunt in shallow water. Start with the <a href="/docs/intro">introduction</a> before heading out.</p>
    <p>See <a href="https://other.example/herons">an external guide</a> or the <a href="#maps">maps</a>.
       <img src="/img/heron.jpg" alt="Heron" width="640" height="480"></p>
    <ul><li>Grey heron</li><li>Little egret</li></ul>
    <blockquote>Patience is the birder's best tool.</blockquote>
    <pre>count = herons + egrets</pre>
    <table><tr><th>Bird</th><th>Length</th></tr><tr><td>Grey heron</td><td>95 cm</td></tr></table>
    <p>Download the <a href="/files/checklist.pdf" download>checklist</a>.</p>
    <script>window.tracking = true;</script>
    <div class="sidebar">Sidebar promo text <a href="javascript:void(0)">noop</a> <a href="#">top</a></div>
  </main>
  <footer><p>Footer copyright notice</p></footer>
  <form id="signup" action="/subscribe" method="post">
    <label for="email">Email address</label>
    <input id="email" name="email" type="email" required>
    <label>Region <select name="region"><option value="n">North</option><option value="s" selected>South</option></select></label>
    <input type="hidden" name="token" value="abc123">
    <textarea name="notes">Seen at dawn</textarea>
  </form>
</body>
</html>
"""


def extract(**options):
    return extract_from_html(BIRDS_PAGE, BASE_URL, ExtractionOptions(**options))


def test_structured_content_follows_document_order():
    page = extract(format="json")

    assert isinstance(page.content, StructuredPayload)
    nodes = page.content.nodes
    assert [node.type for node in nodes] == [
        "heading",
        "paragraph",
        "paragraph",
        "list",
        "blockquote",
        "code",
        "table",
        "paragraph",
    ]
    assert nodes[0].level == 1
    assert nodes[1].text == (
        "Herons hunt in shallow water. Start with the introduction [2] before heading out."
    )
    assert nodes[2].text == "See an external guide [3] or the maps [4]. [Heron] [img:1]"
    assert [child.text for child in nodes[3].children] == ["Grey heron", "Little egret"]
    assert nodes[5].text == "count = herons + egrets"
    assert nodes[6].text == "Bird | Length\nGrey heron | 95 cm"
    assert all("window.tracking" not in node.text for node in nodes)


def test_links_are_classified_and_numbered_in_document_order():
    page = extract()

    assert [(link.ref_number, link.type) for link in page.links] == [
        (1, "navigation"),
        (2, "content"),
        (3, "external"),
        (4, "anchor"),
        (5, "download"),
    ]
    assert page.links[1].resolved_url == "https://birds.example/docs/intro"
    assert page.links[1].text == "introduction"
    assert page.links[3].href == "#maps"


def test_media_is_resolved_against_the_page():
    page = extract()

    assert len(page.media) == 1
    image = page.media[0]
    assert image.type == "image"
    assert image.src == "https://birds.example/img/heron.jpg"
    assert image.alt == "Heron"
    assert (image.width, image.height) == (640, 480)


def test_media_can_be_disabled():
    page = extract(format="json", include_media=False)

    assert page.media == []
    assert page.content.nodes[2].text.endswith("[Heron]")


def test_forms_report_fields_labels_and_values():
    form = extract().forms[0]

    assert (form.id, form.action, form.method) == ("signup", "/subscribe", "POST")
    email, region, token, notes = form.fields
    assert (email.name, email.type, email.required, email.label) == ("email", "email", True, "Email address")
    assert region.type == "select"
    assert region.value == "s"
    assert region.label == "Region"
    assert [(option.text, option.selected) for option in region.options] == [("North", False), ("South", True)]
    assert token.hidden is True
    assert token.value == "abc123"
    assert notes.value == "Seen at dawn"
    assert notes.label is None


def test_metadata():
    metadata = extract().metadata

    assert metadata.description == "Field notes on wading birds"
    assert metadata.keywords == ["birds", "herons", "wetlands"]
    assert metadata.og == {"title": "Bird notes"}
    assert metadata.canonical == "https://birds.example/notes"
    assert metadata.lang == "en"
    assert metadata.charset == "utf-8"


def test_text_mode_inlines_reference_markers():
    page = extract(format="text")

    assert isinstance(page.content, TextPayload)
    text = page.content.text
    assert "Start with the introduction [2] before heading out." in text
    assert "[Heron] [img:1]" in text
    assert "Bird | Length" in text
    assert "Sidebar promo text" in text
    assert "window.tracking" not in text
    assert "Footer copyright notice" not in text
    assert "Home" not in text


def test_exclude_selectors_prune_content():
    page = extract(format="text", exclude_selectors=[".sidebar", "table"])

    assert "Sidebar promo text" not in page.content.text
    assert "Bird | Length" not in page.content.text


def test_selectors_restrict_extraction_to_matching_roots():
    page = extract(format="json", selectors=["blockquote", "pre"])

    assert [node.type for node in page.content.nodes] == ["blockquote", "code"]
    # Links and forms always come from the whole page.
    assert len(page.links) == 5
    assert len(page.forms) == 1


def test_invalid_selector_is_an_extraction_error():
    with pytest.raises(BrowserError) as excinfo:
        extract(selectors=["div["])

    assert excinfo.value.code == ErrorCode.EXTRACTION_ERROR


def test_keyword_filter_keeps_structural_nodes():
    page = extract(format="json", keywords=["EGRET"])

    assert [node.type for node in page.content.nodes] == ["heading", "list", "code"]


def test_keyword_filter_all_mode():
    page = extract(format="json", keywords=["heron", "cm"], keyword_mode="all")

    assert [node.type for node in page.content.nodes] == ["heading", "code", "table"]


def test_keyword_filter_in_text_mode_works_per_paragraph():
    page = extract(format="text", keywords=["patience"])

    assert page.content.text == "Patience is the birder's best tool."


def test_readability_mode_drops_footers_outside_main_landmarks():
    html = (
        "<html><body><nav><a href='/'>Home</a></nav><p>Body text worth reading.</p>"
        "<footer><p>Footer text</p></footer></body></html>"
    )

    plain = extract_from_html(html, BASE_URL, ExtractionOptions(format="text"))
    readable = extract_from_html(html, BASE_URL, ExtractionOptions(format="text", readability_mode=True))

    assert plain.content.text == "Body text worth reading.\n\nFooter text"
    assert readable.content.text == "Body text worth reading."


def test_empty_document_yields_empty_content():
    page = extract_from_html("", BASE_URL, ExtractionOptions(format="json"))

    assert page.content == StructuredPayload([])
    assert page.links == []
    assert page.forms == []
