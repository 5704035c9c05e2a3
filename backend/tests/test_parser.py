from arns_indexer.services.crawler import (
    ContentParser,
    CrawlConfig,
    hash_content,
    is_crawlable_content_type,
    is_html_content_type,
    normalize_link,
)

BASE = "https://x.example/"

PAGE = """
<html><head><title>  My   Page </title>
<meta name="description" content="About things">
<meta name="keywords" content="a, b">
<style>.x { color: red; }</style></head>
<body>
<h1>Welcome</h1>
<script>var hidden = 1;</script>
<h3>   </h3>
<h2>Details</h2>
<p>Some   text
here</p>
<a href="/docs">Docs</a>
<a href="/docs">Docs again</a>
<a href="https://other.example/x">Away</a>
<a href="page.html">Page</a>
<a href="mailto:me@example.com">Mail</a>
</body></html>
"""


def test_normalize_link_keeps_same_origin_path_and_query():
    assert normalize_link("https://x.example/foo?y=1", BASE) == "/foo?y=1"
    assert normalize_link("https://x.example", BASE) == "/"


def test_normalize_link_rejects_foreign_and_non_navigational_links():
    assert normalize_link("https://other.example/z", BASE) is None
    assert normalize_link("javascript:alert(1)", BASE) is None
    assert normalize_link("mailto:someone@x.example", BASE) is None
    assert normalize_link("tel:+100", BASE) is None
    assert normalize_link("#section", BASE) is None
    assert normalize_link("//x.example/cdn.js", BASE) is None


def test_normalize_link_resolves_relative_links_against_base_directory():
    assert normalize_link("/about", BASE) == "/about"
    assert normalize_link("page.html", "https://arweave.net/tx1/docs/index.html") == "/tx1/docs/page.html"
    assert normalize_link("page.html", "https://arweave.net/tx1") == "/page.html"


def test_parse_html_extracts_fields():
    parsed = ContentParser().parse_html(PAGE, "https://arweave.net/tx1/index.html")

    assert parsed.title == "My   Page"
    assert parsed.meta_description == "About things"
    assert parsed.meta_keywords == "a, b"
    assert parsed.headings == ["Welcome", "Details"]
    assert parsed.links == ["/docs", "/tx1/page.html"]
    assert parsed.body.startswith("Welcome")
    assert "Some text here" in parsed.body
    assert "hidden" not in parsed.body
    assert "color" not in parsed.body
    assert parsed.body_truncated is False
    assert parsed.content_hash == hash_content(parsed.body)
    assert parsed.content_length == len(PAGE)


def test_parse_html_joins_inline_text_without_separator():
    html = "<html><head><title>\n A  B \n</title></head><body><h1> Big  <em>news</em> </h1><p><b>foo</b>bar</p></body></html>"
    parsed = ContentParser().parse_html(html, BASE)

    assert parsed.title == "A  B"
    assert parsed.headings == ["Big  news"]
    assert parsed.body == "Big news foobar"


def test_parse_html_applies_caps():
    parser = ContentParser(CrawlConfig(max_title_size=2, max_headings_count=1, max_links_count=1, max_body_size=7))
    parsed = parser.parse_html(PAGE, "https://arweave.net/tx1/index.html")

    assert parsed.title == "My"
    assert parsed.headings == ["Welcome"]
    assert parsed.links == ["/docs"]
    assert parsed.body == "Welcome"
    assert parsed.body_truncated is True


def test_parse_text_truncates_and_leaves_html_fields_empty():
    parsed = ContentParser(CrawlConfig(max_body_size=10)).parse_text("  abcdefghijklmnop  ")

    assert parsed.body == "abcdefghij"
    assert parsed.body_truncated is True
    assert parsed.title is None
    assert parsed.meta_description is None
    assert parsed.headings == []
    assert parsed.links == []
    assert parsed.content_hash == hash_content("abcdefghij")


def test_parse_dispatches_on_content_type():
    parser = ContentParser()
    assert parser.parse("<title>T</title>", "text/html; charset=utf-8", BASE).title == "T"
    assert parser.parse("<title>T</title>", "text/plain", BASE).title is None


def test_hash_content_is_stable_and_sensitive():
    assert hash_content("hello world") == hash_content("hello world")
    assert hash_content("hello world") != hash_content("hello worle")
    assert len(hash_content("")) == 64


def test_content_type_checks_ignore_case_and_parameters():
    assert is_crawlable_content_type("TEXT/HTML; charset=utf-8")
    assert is_crawlable_content_type("text/css")
    assert is_crawlable_content_type("application/xhtml+xml")
    assert not is_crawlable_content_type("application/json")
    assert not is_crawlable_content_type(None)

    assert is_html_content_type("application/xhtml+xml")
    assert is_html_content_type("Text/Html;charset=UTF-8")
    assert not is_html_content_type("text/plain")
