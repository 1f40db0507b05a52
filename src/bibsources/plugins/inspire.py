"""
INSPIRE-HEP source plugin.

INSPIRE is the high-energy physics literature database. Its REST API is
open (no key) and resolves DOIs and arXiv ids directly.

Rate Limit: 15 requests per 5 seconds per IP
API Docs: https://github.com/inspirehep/rest-api-doc
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote as url_quote

import httpx

from ..bibtex import split_bibtex
from ..config import Settings
from ..credentials import CredentialStore
from ..identifiers import is_inspire_id, normalize_arxiv_id, normalize_doi
from ..models import (
    Capability,
    Paper,
    PdfSource,
    PdfSourceType,
    PluginCapabilities,
    SearchCapabilities,
    SearchResult,
    SortKey,
    UnifiedQuery,
    create_paper,
)
from ..translate import NativeSort, QueryTranslator
from .base import DEFAULT_REFERENCE_LIMIT, HttpSourcePlugin, finalize_pdf_sources, operation

logger = logging.getLogger(__name__)

INSPIRE_FIELDS = ",".join(
    [
        "control_number",
        "titles",
        "authors.full_name",
        "abstracts",
        "publication_info",
        "earliest_date",
        "dois",
        "arxiv_eprints",
        "external_system_identifiers",
        "keywords",
        "citation_count",
    ]
)
INSPIRE_RECORD_URL = "https://inspirehep.net/literature/{recid}"
MAX_PAGE_SIZE = 1000


class InspireQueryTranslator(QueryTranslator):
    language = "inspire"
    joiner = " and "
    or_operator = "or"
    field_prefixes = {
        "title": "t ",
        "author": "a ",
        "abstract": "abstracts.value:",
        "full_text": "fulltext ",
    }
    exact_templates = {
        "bibcode": "external_system_identifiers.value:{quoted}",
        "doi": "doi {value}",
        "arxiv_id": "eprint {value}",
    }
    year_template = "date {year}"
    year_range_template = "date {start}->{end}"
    keyword_prefix = "k "
    sort_fields = {
        SortKey.DATE.value: "mostrecent",
        SortKey.CITATIONS.value: "mostcited",
        SortKey.RELEVANCE.value: "bestmatch",
    }

    def translate_sort(self, sort: Optional[str], direction: Optional[str] = "desc") -> NativeSort:
        # INSPIRE encodes direction in the sort name
        field = self.sort_fields.get(sort or "", self.sort_fields[SortKey.DATE.value])
        if field == "mostrecent" and direction == "asc":
            field = "leastrecent"
        return NativeSort(field, "")


def _first_value(items: Any, key: str = "value") -> Optional[str]:
    for item in items or []:
        if isinstance(item, dict) and item.get(key):
            return item[key]
    return None


def _year(metadata: Dict[str, Any]) -> Optional[int]:
    for info in metadata.get("publication_info") or []:
        if info.get("year"):
            return int(info["year"])
    earliest = metadata.get("earliest_date") or ""
    return int(earliest[:4]) if earliest[:4].isdigit() else None


def inspire_hit_to_paper(hit: Optional[Dict[str, Any]]) -> Optional[Paper]:
    """Convert an INSPIRE literature hit (``{"id", "metadata"}``) into a Paper."""
    if not hit:
        return None
    metadata = hit.get("metadata") or {}
    recid = metadata.get("control_number") or hit.get("id")
    if recid is None:
        return None
    recid = str(recid)

    bibcode = None
    for ext in metadata.get("external_system_identifiers") or []:
        if ext.get("schema") == "ADS":
            bibcode = ext.get("value")
            break

    return create_paper(
        "inspire",
        recid,
        inspire_id=recid,
        title=_first_value(metadata.get("titles"), "title"),
        authors=[a["full_name"] for a in metadata.get("authors") or [] if a.get("full_name")],
        year=_year(metadata),
        journal=_first_value(metadata.get("publication_info"), "journal_title"),
        abstract=_first_value(metadata.get("abstracts")),
        keywords=[k["value"] for k in metadata.get("keywords") or [] if k.get("value")],
        citation_count=metadata.get("citation_count"),
        doi=_first_value(metadata.get("dois")),
        arxiv_id=_first_value(metadata.get("arxiv_eprints")),
        bibcode=bibcode,
        url=INSPIRE_RECORD_URL.format(recid=recid),
    )


def documents_to_pdf_sources(metadata: Dict[str, Any]) -> List[PdfSource]:
    """PDF sources from a record's attached documents and open-access urls."""
    sources: List[PdfSource] = []
    for doc in metadata.get("documents") or []:
        url = doc.get("url") or ""
        if not url.startswith("http"):
            continue
        if doc.get("source") == "arxiv":
            sources.append(PdfSource(type=PdfSourceType.ARXIV, url=url, label="arXiv PDF"))
        elif doc.get("fulltext"):
            sources.append(PdfSource(type=PdfSourceType.OPEN_ACCESS, url=url, label="INSPIRE fulltext"))
    for link in metadata.get("urls") or []:
        url = link.get("value") or ""
        if url.startswith("http") and url.lower().endswith(".pdf"):
            sources.append(PdfSource(type=PdfSourceType.AUTHOR, url=url, label=link.get("description") or "Author PDF"))
    return finalize_pdf_sources(sources, _first_value(metadata.get("arxiv_eprints")))


class InspirePlugin(HttpSourcePlugin):
    """
    INSPIRE-HEP REST API client.

    Features:
    - SPIRES-style search syntax (``t``, ``a``, ``date``, ``k``)
    - Direct resolution of DOIs and arXiv ids
    - References and citations through ``citedby:`` / ``refersto:``
    - BibTeX through ``format=bibtex``

    Example usage:
        plugin = InspirePlugin()
        result = await plugin.search(UnifiedQuery(author="Maldacena", year=1997))
    """

    id = "inspire"
    name = "INSPIRE-HEP"
    icon = "\u269B"
    description = "INSPIRE-HEP - high-energy physics literature database"
    homepage = "https://inspirehep.net/"

    capabilities = PluginCapabilities(
        search=True,
        lookup=True,
        references=True,
        citations=True,
        pdf_download=True,
        bibtex=True,
    )
    search_capabilities = SearchCapabilities(
        supports_full_text=True,
        supports_references=True,
        supports_citations=True,
        supports_date_range=True,
        supports_boolean_operators=True,
        supports_field_search=True,
        max_results=MAX_PAGE_SIZE,
        query_language="inspire",
        sort_options=(SortKey.DATE.value, SortKey.CITATIONS.value, SortKey.RELEVANCE.value),
    )
    translator = InspireQueryTranslator()

    default_quota = 15
    rate_limit_window = timedelta(seconds=5)

    def __init__(
        self,
        settings: Optional[Settings] = None,
        credentials: Optional[CredentialStore] = None,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
    ) -> None:
        super().__init__(settings=settings, credentials=credentials, client=client, base_url=base_url)
        if not base_url:
            self.base_url = self.settings.inspire_base_url.rstrip("/")

    async def validate_auth(self) -> bool:
        return True

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def _literature(self, q: str, size: int, page: int = 1, sort: Optional[str] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {"q": q, "size": size, "page": page, "fields": INSPIRE_FIELDS}
        if sort:
            params["sort"] = sort
        response = await self._request("GET", f"{self.base_url}/literature", params=params)
        response.raise_for_status()
        return response.json().get("hits") or {}

    async def _literature_papers(self, q: str, size: int) -> List[Paper]:
        hits = await self._literature(q, size=min(size, MAX_PAGE_SIZE))
        papers = (inspire_hit_to_paper(hit) for hit in hits.get("hits") or [])
        return [paper for paper in papers if paper is not None]

    @operation(Capability.SEARCH)
    async def search(self, query: UnifiedQuery) -> SearchResult:
        """Search INSPIRE literature.

        The API pages by ``page``/``size``; an offset that is not a multiple
        of ``limit`` is served from the enclosing page with the leading
        records skipped.
        """
        inspire_query = self.translate_query(query)
        sort = str(self.translator.translate_sort(query.sort, query.sort_direction))
        size = min(query.limit, MAX_PAGE_SIZE)
        page, skip = divmod(query.offset, size)

        hits = await self._literature(inspire_query, size=size, page=page + 1, sort=sort)
        raw_hits = (hits.get("hits") or [])[skip:]
        papers = [paper for paper in (inspire_hit_to_paper(hit) for hit in raw_hits) if paper is not None]
        total = int(hits.get("total", len(papers)))

        consumed = query.offset + len(raw_hits)
        logger.info("INSPIRE search returned %d of %d for: %s", len(papers), total, inspire_query[:80])
        return SearchResult(
            total_results=total,
            papers=papers,
            next_cursor=str(consumed) if raw_hits and consumed < total else None,
            metadata={"query": inspire_query, "sort": sort, "source": self.id},
        )

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def _get_hit(self, path: str, fields: str = INSPIRE_FIELDS) -> Optional[Dict[str, Any]]:
        response = await self._request("GET", f"{self.base_url}/{path}", params={"fields": fields})
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    @operation(Capability.LOOKUP)
    async def get_record(self, source_id: str) -> Optional[Paper]:
        recid = source_id.strip()
        if not is_inspire_id(recid):
            return None
        return inspire_hit_to_paper(await self._get_hit(f"literature/{recid}"))

    @operation(Capability.LOOKUP)
    async def get_by_doi(self, doi: str) -> Optional[Paper]:
        return inspire_hit_to_paper(await self._get_hit(f"doi/{url_quote(normalize_doi(doi), safe='/')}"))

    @operation(Capability.LOOKUP)
    async def get_by_arxiv(self, arxiv_id: str) -> Optional[Paper]:
        return inspire_hit_to_paper(await self._get_hit(f"arxiv/{url_quote(normalize_arxiv_id(arxiv_id), safe='/')}"))

    @operation(Capability.LOOKUP)
    async def get_batch(self, source_ids: Sequence[str]) -> List[Paper]:
        ids = [value for value in dict.fromkeys(v.strip() for v in source_ids) if is_inspire_id(value)]
        if not ids:
            return []
        return await self._literature_papers(" or ".join(f"recid:{recid}" for recid in ids), size=len(ids))

    @operation(Capability.REFERENCES)
    async def get_references(self, source_id: str, limit: int = DEFAULT_REFERENCE_LIMIT) -> List[Paper]:
        papers = await self._literature_papers(f"citedby:recid:{source_id.strip()}", size=limit)
        return papers[:limit]

    @operation(Capability.CITATIONS)
    async def get_citations(self, source_id: str, limit: int = DEFAULT_REFERENCE_LIMIT) -> List[Paper]:
        papers = await self._literature_papers(f"refersto:recid:{source_id.strip()}", size=limit)
        return papers[:limit]

    # ------------------------------------------------------------------
    # PDFs
    # ------------------------------------------------------------------

    @operation(Capability.PDF_DOWNLOAD)
    async def get_pdf_sources(self, source_id: str) -> List[PdfSource]:
        recid = source_id.strip()
        if not is_inspire_id(recid):
            return []
        hit = await self._get_hit(f"literature/{recid}", fields="documents,urls,arxiv_eprints")
        if hit is None:
            return []
        return documents_to_pdf_sources(hit.get("metadata") or {})

    # ------------------------------------------------------------------
    # BibTeX
    # ------------------------------------------------------------------

    @operation(Capability.BIBTEX)
    async def get_bibtex(self, source_id: str) -> str:
        response = await self._request(
            "GET",
            f"{self.base_url}/literature/{url_quote(source_id.strip(), safe='')}",
            params={"format": "bibtex"},
        )
        response.raise_for_status()
        return response.text.strip()

    @operation(Capability.BIBTEX)
    async def get_bibtex_batch(self, source_ids: Sequence[str]) -> Dict[str, str]:
        ids = [value for value in dict.fromkeys(v.strip() for v in source_ids) if is_inspire_id(value)]
        if not ids:
            return {}
        response = await self._request(
            "GET",
            f"{self.base_url}/literature",
            params={
                "q": " or ".join(f"recid:{recid}" for recid in ids),
                "size": len(ids),
                "format": "bibtex",
            },
        )
        response.raise_for_status()
        return split_bibtex(response.text)

    def record_id(self, paper: Paper) -> Optional[str]:
        return paper.inspire_id or super().record_id(paper)

    def get_record_url(self, paper: Paper) -> Optional[str]:
        recid = self.record_id(paper)
        if not recid:
            return None
        return INSPIRE_RECORD_URL.format(recid=recid)


__all__ = [
    "InspirePlugin",
    "InspireQueryTranslator",
    "documents_to_pdf_sources",
    "inspire_hit_to_paper",
]
