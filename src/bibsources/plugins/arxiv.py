"""
arXiv source plugin.

arXiv provides free, unauthenticated access to preprints in physics,
mathematics, computer science, and related fields.

Rate Limit: one request every 3 seconds (no API key)
API Docs: https://info.arxiv.org/help/api/index.html
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..config import Settings
from ..credentials import CredentialStore
from ..identifiers import is_arxiv_id, normalize_arxiv_id
from ..models import (
    Capability,
    Paper,
    PdfSource,
    PluginCapabilities,
    SearchCapabilities,
    SearchResult,
    SortKey,
    UnifiedQuery,
    create_paper,
)
from ..translate import QueryTranslator
from .base import HttpSourcePlugin, finalize_pdf_sources, operation

logger = logging.getLogger(__name__)

ARXIV_NS = {
    "atom": "http://www.w3.org/2005/Atom",
    "arxiv": "http://arxiv.org/schemas/atom",
    "opensearch": "http://a9.com/-/spec/opensearch/1.1/",
}
ARXIV_ABS_URL = "https://arxiv.org/abs/{arxiv_id}"
MAX_PAGE_SIZE = 2000


class ArxivQueryTranslator(QueryTranslator):
    language = "arxiv"
    joiner = " AND "
    field_prefixes = {
        "title": "ti:",
        "author": "au:",
        "abstract": "abs:",
        "full_text": "all:",
    }
    # arXiv has no bibcode or DOI field; fall back to a phrase search
    exact_templates = {
        "bibcode": "all:{quoted}",
        "doi": "all:{quoted}",
        "arxiv_id": "id:{value}",
    }
    year_template = "submittedDate:[{year}01010000 TO {year}12312359]"
    year_range_template = "submittedDate:[{start}01010000 TO {end}12312359]"
    keyword_prefix = "all:"
    sort_fields = {
        SortKey.DATE.value: "submittedDate",
        SortKey.RELEVANCE.value: "relevance",
    }
    directions = {"asc": "ascending", "desc": "descending"}


def _text(entry: ET.Element, path: str) -> Optional[str]:
    elem = entry.find(path, ARXIV_NS)
    if elem is None or elem.text is None:
        return None
    return " ".join(elem.text.split())


def parse_entry(entry: ET.Element) -> Optional[Paper]:
    """Parse an arXiv Atom entry into a Paper."""
    # URL format: http://arxiv.org/abs/2301.12345v1
    entry_url = _text(entry, "atom:id") or ""
    if "/abs/" not in entry_url:
        return None
    arxiv_id = normalize_arxiv_id(entry_url.split("/abs/")[-1])

    authors = [
        name
        for name in (_text(author, "atom:name") for author in entry.findall("atom:author", ARXIV_NS))
        if name
    ]

    year = None
    published = _text(entry, "atom:published")
    if published:
        try:
            year = datetime.fromisoformat(published.replace("Z", "+00:00")).year
        except ValueError:
            pass

    categories = [cat.get("term") for cat in entry.findall("atom:category", ARXIV_NS) if cat.get("term")]

    doi = _text(entry, "arxiv:doi")
    if not doi:
        for link in entry.findall("atom:link", ARXIV_NS):
            if link.get("title") == "doi" and "doi.org/" in link.get("href", ""):
                doi = link.get("href", "").split("doi.org/")[-1]
                break

    return create_paper(
        "arxiv",
        arxiv_id,
        arxiv_id=arxiv_id,
        title=_text(entry, "atom:title"),
        abstract=_text(entry, "atom:summary"),
        authors=authors,
        year=year,
        journal=_text(entry, "arxiv:journal_ref"),
        keywords=categories,
        doi=doi,
        url=ARXIV_ABS_URL.format(arxiv_id=arxiv_id),
    )


def parse_feed(xml_text: str) -> Dict[str, Any]:
    """Parse an Atom feed into ``{"total": int, "papers": [Paper, ...]}``.

    arXiv reports query errors as a single entry whose id points at
    ``/api/errors``; those raise ``ValueError``.
    """
    root = ET.fromstring(xml_text)
    entries = root.findall("atom:entry", ARXIV_NS)

    for entry in entries:
        if "/api/errors" in (_text(entry, "atom:id") or ""):
            raise ValueError(f"arXiv API error: {_text(entry, 'atom:summary')}")

    papers = [paper for paper in (parse_entry(entry) for entry in entries) if paper is not None]
    total_text = _text(root, "opensearch:totalResults")
    total = int(total_text) if total_text and total_text.isdigit() else len(papers)
    return {"total": total, "papers": papers}


class ArxivPlugin(HttpSourcePlugin):
    """
    arXiv API client.

    Features:
    - No API key required
    - Field search (ti:, au:, abs:, all:) and submission-date ranges
    - Direct lookup and batch lookup through ``id_list``
    - PDF access via arxiv.org/pdf/{id}.pdf

    Example usage:
        plugin = ArxivPlugin()
        result = await plugin.search(UnifiedQuery(title="transformer attention"))
    """

    id = "arxiv"
    name = "arXiv"
    icon = "\U0001F4C4"
    description = "arXiv preprint server - physics, mathematics, computer science"
    homepage = "https://arxiv.org/"

    capabilities = PluginCapabilities(
        search=True,
        lookup=True,
        pdf_download=True,
    )
    search_capabilities = SearchCapabilities(
        supports_full_text=False,
        supports_date_range=True,
        supports_boolean_operators=True,
        supports_field_search=True,
        max_results=MAX_PAGE_SIZE,
        query_language="arxiv",
        sort_options=(SortKey.DATE.value, SortKey.RELEVANCE.value),
    )
    translator = ArxivQueryTranslator()

    accept = "application/atom+xml"
    default_quota = 1000

    def __init__(
        self,
        settings: Optional[Settings] = None,
        credentials: Optional[CredentialStore] = None,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
    ) -> None:
        super().__init__(settings=settings, credentials=credentials, client=client, base_url=base_url)
        if not base_url:
            self.base_url = self.settings.arxiv_base_url

    async def validate_auth(self) -> bool:
        return True

    async def _fetch(self, params: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._request("GET", self.base_url, params=params)
        response.raise_for_status()
        return parse_feed(response.text)

    @operation(Capability.SEARCH)
    async def search(self, query: UnifiedQuery) -> SearchResult:
        search_query = self.translate_query(query)
        sort = self.translator.translate_sort(query.sort, query.sort_direction)

        feed = await self._fetch(
            {
                "search_query": search_query,
                "start": query.offset,
                "max_results": min(query.limit, MAX_PAGE_SIZE),
                "sortBy": sort.field,
                "sortOrder": sort.direction,
            }
        )
        papers: List[Paper] = feed["papers"]
        consumed = query.offset + len(papers)

        logger.info("arXiv search yielded %d papers for query: %s", len(papers), search_query[:50])
        return SearchResult(
            total_results=feed["total"],
            papers=papers,
            next_cursor=str(consumed) if papers and consumed < feed["total"] else None,
            metadata={"query": search_query, "sort": str(sort), "source": self.id},
        )

    @operation(Capability.LOOKUP)
    async def get_record(self, source_id: str) -> Optional[Paper]:
        arxiv_id = normalize_arxiv_id(source_id)
        if not is_arxiv_id(arxiv_id):
            return None

        feed = await self._fetch({"id_list": arxiv_id, "max_results": 1})
        return feed["papers"][0] if feed["papers"] else None

    @operation(Capability.LOOKUP)
    async def get_by_arxiv(self, arxiv_id: str) -> Optional[Paper]:
        return await self.get_record(arxiv_id)

    @operation(Capability.LOOKUP)
    async def get_batch(self, source_ids: Sequence[str]) -> List[Paper]:
        ids = [normalize_arxiv_id(value) for value in source_ids]
        ids = [value for value in dict.fromkeys(ids) if is_arxiv_id(value)]
        if not ids:
            return []

        feed = await self._fetch({"id_list": ",".join(ids), "max_results": len(ids)})
        return feed["papers"]

    @operation(Capability.PDF_DOWNLOAD)
    async def get_pdf_sources(self, source_id: str) -> List[PdfSource]:
        arxiv_id = normalize_arxiv_id(source_id)
        if not is_arxiv_id(arxiv_id):
            return []
        return finalize_pdf_sources([], arxiv_id)

    def record_id(self, paper: Paper) -> Optional[str]:
        return paper.arxiv_id or super().record_id(paper)

    def get_record_url(self, paper: Paper) -> Optional[str]:
        arxiv_id = self.record_id(paper)
        if not arxiv_id:
            return None
        return ARXIV_ABS_URL.format(arxiv_id=arxiv_id)


__all__ = ["ArxivPlugin", "ArxivQueryTranslator", "parse_entry", "parse_feed"]
