"""Tests for the arXiv plugin and its Atom parsing."""

from __future__ import annotations

import httpx
import pytest

from bibsources.errors import CapabilityNotSupportedError
from bibsources.models import PdfSourceType, UnifiedQuery
from bibsources.plugins.arxiv import ArxivPlugin, parse_feed
from conftest import make_paper, mock_client

BASE = "https://arxiv.test/api/query"

FEED = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom"
      xmlns:opensearch="http://a9.com/-/spec/opensearch/1.1/"
      xmlns:arxiv="http://arxiv.org/schemas/atom">
  <title>ArXiv Query</title>
  <opensearch:totalResults>57</opensearch:totalResults>
  <opensearch:startIndex>0</opensearch:startIndex>
  <entry>
    <id>http://arxiv.org/abs/1706.03762v7</id>
    <published>2017-06-12T17:57:34Z</published>
    <title>Attention Is All
      You Need</title>
    <summary>  The dominant sequence transduction models are based on
      complex recurrent or convolutional neural networks. </summary>
    <author><name>Ashish Vaswani</name></author>
    <author><name>Noam Shazeer</name></author>
    <arxiv:journal_ref>Advances in Neural Information Processing Systems 30 (2017)</arxiv:journal_ref>
    <link href="http://arxiv.org/abs/1706.03762v7" rel="alternate" type="text/html"/>
    <link title="doi" href="http://dx.doi.org/10.48550/arXiv.1706.03762" rel="related"/>
    <category term="cs.CL" scheme="http://arxiv.org/schemas/atom"/>
    <category term="cs.LG" scheme="http://arxiv.org/schemas/atom"/>
  </entry>
</feed>
"""

ERROR_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <entry>
    <id>http://arxiv.org/api/errors#incorrect_id_format_for_1234</id>
    <title>Error</title>
    <summary>incorrect id format for 1234</summary>
  </entry>
</feed>
"""


def atom(text=FEED, status=200, headers=None):
    return httpx.Response(status, text=text, headers=headers or {"Content-Type": "application/atom+xml"})


def make_plugin(settings, handler):
    return ArxivPlugin(settings=settings, client=mock_client(handler), base_url=BASE)


def test_parse_feed():
    feed = parse_feed(FEED)
    assert feed["total"] == 57
    (paper,) = feed["papers"]
    assert paper.source == "arxiv"
    assert paper.source_id == "1706.03762"
    assert paper.arxiv_id == "1706.03762"
    assert paper.title == "Attention Is All You Need"
    assert paper.abstract.startswith("The dominant sequence")
    assert paper.authors == ("Ashish Vaswani", "Noam Shazeer")
    assert paper.year == 2017
    assert paper.doi == "10.48550/arXiv.1706.03762"
    assert paper.keywords == frozenset({"cs.CL", "cs.LG"})
    assert paper.journal.startswith("Advances in Neural")
    assert paper.url == "https://arxiv.org/abs/1706.03762"


def test_error_feed_raises():
    with pytest.raises(ValueError, match="incorrect id format"):
        parse_feed(ERROR_FEED)


@pytest.mark.asyncio
async def test_search_params(settings):
    seen = []

    def handler(request):
        seen.append(request)
        return atom()

    plugin = make_plugin(settings, handler)
    result = await plugin.search(UnifiedQuery(title="attention", sort_direction="asc", limit=1))

    params = seen[0].url.params
    assert params["search_query"] == 'ti:"attention"'
    assert params["start"] == "0"
    assert params["max_results"] == "1"
    assert params["sortBy"] == "submittedDate"
    assert params["sortOrder"] == "ascending"
    assert "Authorization" not in seen[0].headers

    assert result.total_results == 57
    assert result.next_cursor == "1"
    assert result.papers[0].source == "arxiv"


@pytest.mark.asyncio
async def test_get_record_uses_id_list(settings):
    seen = []

    def handler(request):
        seen.append(request.url.params["id_list"])
        return atom()

    plugin = make_plugin(settings, handler)
    paper = await plugin.get_by_arxiv("arXiv:1706.03762v5")
    assert paper.arxiv_id == "1706.03762"
    assert seen == ["1706.03762"]

    assert await plugin.get_record("10.1086/305772") is None
    assert len(seen) == 1


@pytest.mark.asyncio
async def test_get_batch_dedupes_ids(settings):
    seen = []

    def handler(request):
        seen.append((request.url.params["id_list"], request.url.params["max_results"]))
        return atom()

    plugin = make_plugin(settings, handler)
    papers = await plugin.get_batch(["1706.03762v1", "1706.03762", "hep-th/9711200", "garbage"])
    assert len(papers) == 1
    assert seen == [("1706.03762,hep-th/9711200", "2")]
    assert await plugin.get_batch(["garbage"]) == []


@pytest.mark.asyncio
async def test_pdf_sources_need_no_network(settings):
    plugin = make_plugin(settings, lambda r: pytest.fail("unexpected request"))
    sources = await plugin.get_pdf_sources("2401.12345v2")
    assert [(s.type, s.url, s.priority) for s in sources] == [
        (PdfSourceType.ARXIV, "https://arxiv.org/pdf/2401.12345.pdf", 0)
    ]
    assert await plugin.get_pdf_sources("not-arxiv") == []


@pytest.mark.asyncio
async def test_throttling_surfaces_error_and_status(settings):
    plugin = make_plugin(settings, lambda r: atom("Rate exceeded", status=503, headers={"Retry-After": "30"}))
    with pytest.raises(httpx.HTTPStatusError):
        await plugin.search(UnifiedQuery(title="x"))
    status = plugin.get_rate_limit_status()
    assert status.exhausted
    assert status.retry_after == 30.0


@pytest.mark.asyncio
async def test_unsupported_operations_fail_fast(settings):
    plugin = make_plugin(settings, lambda r: pytest.fail("unexpected request"))
    with pytest.raises(CapabilityNotSupportedError):
        await plugin.get_references("1706.03762")
    with pytest.raises(CapabilityNotSupportedError):
        await plugin.get_bibtex("1706.03762")
    assert await plugin.validate_auth() is True
    assert plugin.is_authenticated()


def test_record_url(settings):
    plugin = ArxivPlugin(settings=settings)
    assert plugin.get_record_url(make_paper("ads", "x", arxiv_id="1706.03762")) == "https://arxiv.org/abs/1706.03762"
    assert plugin.get_record_url(make_paper("ads", "x")) is None
