"""
NASA ADS source plugin.

ADS (Astrophysics Data System) is the reference implementation of the
plugin contract: it declares every capability and requires an API token.

Rate Limit: 5000 requests/day per token, reported in X-RateLimit-* headers
API Docs: https://ui.adsabs.harvard.edu/help/api/
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence
from urllib.parse import quote as url_quote

import httpx

from ..bibtex import split_bibtex
from ..config import Settings
from ..credentials import CredentialStore
from ..identifiers import extract_arxiv_id
from ..models import (
    AuthConfig,
    AuthType,
    Capability,
    Paper,
    PdfSource,
    PdfSourceType,
    PluginCapabilities,
    RateLimitStatus,
    SearchCapabilities,
    SearchResult,
    SortKey,
    UnifiedQuery,
    create_paper,
)
from ..translate import QueryTranslator, quote
from .base import DEFAULT_REFERENCE_LIMIT, HttpSourcePlugin, finalize_pdf_sources, operation

logger = logging.getLogger(__name__)

ADS_SEARCH_FIELDS = ",".join(
    [
        "bibcode",
        "title",
        "author",
        "year",
        "doi",
        "abstract",
        "keyword",
        "pub",
        "identifier",
        "arxiv_class",
        "citation_count",
    ]
)
ADS_ABS_URL = "https://ui.adsabs.harvard.edu/abs/{bibcode}/abstract"
BATCH_SIZE = 200

# esource link_type -> (pdf type, label, requires institutional access)
ESOURCE_TYPES = (
    ("EPRINT_PDF", PdfSourceType.ARXIV, "arXiv PDF", False),
    ("PUB_PDF", PdfSourceType.PUBLISHER, "Publisher PDF", True),
    ("ADS_PDF", PdfSourceType.ADS_SCAN, "ADS Scan", False),
)


class AdsQueryTranslator(QueryTranslator):
    language = "ads"
    field_prefixes = {
        "title": "title:",
        "author": "author:",
        "abstract": "abs:",
        "full_text": "full:",
    }
    exact_templates = {
        "bibcode": "bibcode:{quoted}",
        "doi": "doi:{quoted}",
        "arxiv_id": "arxiv:{value}",
    }
    year_template = "year:{year}"
    year_range_template = "year:[{start} TO {end}]"
    keyword_prefix = "keyword:"
    sort_fields = {
        SortKey.DATE.value: "date",
        SortKey.CITATIONS.value: "citation_count",
        SortKey.RELEVANCE.value: "score",
    }


def _first(value: Any) -> Optional[str]:
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _parse_year(value: Any) -> Optional[int]:
    try:
        return int(str(value)[:4]) if value else None
    except ValueError:
        return None


def ads_doc_to_paper(doc: Optional[Dict[str, Any]]) -> Optional[Paper]:
    """Convert an ADS search document into a Paper."""
    if not doc or not doc.get("bibcode"):
        return None

    bibcode = doc["bibcode"]
    return create_paper(
        "ads",
        bibcode,
        bibcode=bibcode,
        arxiv_id=extract_arxiv_id(doc.get("identifier")),
        doi=_first(doc.get("doi")),
        title=_first(doc.get("title")),
        authors=doc.get("author") or [],
        year=_parse_year(doc.get("year")),
        journal=doc.get("pub"),
        abstract=doc.get("abstract"),
        keywords=doc.get("keyword") or [],
        citation_count=doc.get("citation_count"),
        url=ADS_ABS_URL.format(bibcode=url_quote(bibcode, safe="")),
    )


def extract_esource_records(payload: Any) -> List[Dict[str, Any]]:
    """The resolver answers in several shapes; return the flat record list."""
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, dict):
        return []
    links = payload.get("links")
    if isinstance(links, list):
        return links
    if isinstance(links, dict) and isinstance(links.get("records"), list):
        return links["records"]
    if isinstance(payload.get("records"), list):
        return payload["records"]
    return []


def esources_to_pdf_sources(esources: Iterable[Dict[str, Any]], arxiv_id: Optional[str] = None) -> List[PdfSource]:
    """Map esource records to priority-ordered PdfSources, one per type."""
    sources: List[PdfSource] = []
    for record in esources:
        link_type = record.get("link_type") or record.get("type") or ""
        url = record.get("url") or ""
        if not url.startswith("http"):
            continue
        for marker, pdf_type, label, requires_auth in ESOURCE_TYPES:
            if marker in link_type:
                sources.append(PdfSource(type=pdf_type, url=url, label=label, requires_auth=requires_auth))
                break
    return finalize_pdf_sources(sources, arxiv_id)


class AdsPlugin(HttpSourcePlugin):
    """
    NASA ADS API client.

    Features:
    - Field search with the ADS query language
    - References / citations through the ``references()`` and
      ``citations()`` second-order operators
    - PDF discovery through the link resolver (arXiv, publisher, ADS scans)
    - BibTeX export, single and batch

    Example usage:
        plugin = AdsPlugin()
        await plugin.initialize({"token": "..."})
        result = await plugin.search(UnifiedQuery(author="Witten", year=(2020, 2024)))
    """

    id = "ads"
    name = "NASA ADS"
    icon = "\U0001F52D"
    description = "NASA Astrophysics Data System - comprehensive astronomy and physics database"
    homepage = "https://ui.adsabs.harvard.edu/"

    capabilities = PluginCapabilities(
        search=True,
        lookup=True,
        references=True,
        citations=True,
        pdf_download=True,
        bibtex=True,
        metadata=True,
    )
    search_capabilities = SearchCapabilities(
        supports_full_text=True,
        supports_references=True,
        supports_citations=True,
        supports_date_range=True,
        supports_boolean_operators=True,
        supports_field_search=True,
        max_results=2000,
        query_language="ads",
        sort_options=(SortKey.DATE.value, SortKey.CITATIONS.value, SortKey.RELEVANCE.value),
    )
    auth = AuthConfig(
        type=AuthType.API_KEY,
        token_key="ads_api_token",
        description="NASA ADS API token",
        help_url="https://ui.adsabs.harvard.edu/user/settings/token",
    )
    translator = AdsQueryTranslator()

    default_quota = 5000
    rate_limit_window = timedelta(days=1)

    def __init__(
        self,
        settings: Optional[Settings] = None,
        credentials: Optional[CredentialStore] = None,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
    ) -> None:
        super().__init__(settings=settings, credentials=credentials, client=client, base_url=base_url)
        if not base_url:
            self.base_url = self.settings.ads_base_url.rstrip("/")

    def _settings_token(self) -> Optional[str]:
        token = self.settings.ads_api_token
        return token.get_secret_value() if token is not None else None

    # ------------------------------------------------------------------
    # Auth / quota
    # ------------------------------------------------------------------

    async def validate_auth(self) -> bool:
        if not self._token:
            return False
        try:
            response = await self._request(
                "GET",
                f"{self.base_url}/search/query",
                params={"q": "bibcode:0000", "fl": "bibcode", "rows": 1},
            )
            return response.status_code == 200
        except Exception as exc:  # noqa: BLE001
            logger.warning("ADS token validation failed: %s", exc)
            return False

    def _observe_response(self, response: httpx.Response) -> None:
        headers = response.headers
        if "X-RateLimit-Remaining" not in headers:
            super()._observe_response(response)
            return
        try:
            limit = int(headers.get("X-RateLimit-Limit", self._rate_limit_status.limit))
            remaining = int(headers["X-RateLimit-Remaining"])
            reset_epoch = headers.get("X-RateLimit-Reset")
            reset_at = (
                datetime.fromtimestamp(int(reset_epoch), tz=timezone.utc)
                if reset_epoch
                else self._rate_limit_status.reset_at
            )
        except ValueError:
            logger.debug("Ignoring malformed ADS rate-limit headers: %s", dict(headers))
            return

        retry_after = None
        if remaining <= 0:
            retry_after = max(0.0, (reset_at - datetime.now(timezone.utc)).total_seconds())
        self._rate_limit_status = RateLimitStatus(
            remaining=remaining,
            limit=max(limit, 1),
            reset_at=reset_at,
            retry_after=retry_after,
        )

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def _query(
        self,
        q: str,
        rows: int,
        start: int = 0,
        sort: Optional[str] = None,
        fields: str = ADS_SEARCH_FIELDS,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"q": q, "fl": fields, "rows": rows, "start": start}
        if sort:
            params["sort"] = sort
        response = await self._request("GET", f"{self.base_url}/search/query", params=params)
        response.raise_for_status()
        return response.json().get("response") or {}

    async def _query_papers(self, q: str, rows: int, sort: Optional[str] = None) -> List[Paper]:
        body = await self._query(q, rows=rows, sort=sort)
        papers = (ads_doc_to_paper(doc) for doc in body.get("docs") or [])
        return [paper for paper in papers if paper is not None]

    @operation(Capability.SEARCH, authenticated=True)
    async def search(self, query: UnifiedQuery) -> SearchResult:
        ads_query = self.translate_query(query)
        sort = str(self.translator.translate_sort(query.sort, query.sort_direction))

        body = await self._query(ads_query, rows=query.limit, start=query.offset, sort=sort)
        docs = body.get("docs") or []
        papers = [paper for paper in (ads_doc_to_paper(doc) for doc in docs) if paper is not None]
        total = int(body.get("numFound", len(papers)))

        consumed = query.offset + len(docs)
        logger.info("ADS search returned %d of %d for: %s", len(papers), total, ads_query[:80])
        return SearchResult(
            total_results=total,
            papers=papers,
            next_cursor=str(consumed) if docs and consumed < total else None,
            metadata={"query": ads_query, "sort": sort, "source": self.id},
        )

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def _first_paper(self, q: str) -> Optional[Paper]:
        papers = await self._query_papers(q, rows=1)
        return papers[0] if papers else None

    @operation(Capability.LOOKUP, authenticated=True)
    async def get_record(self, source_id: str) -> Optional[Paper]:
        return await self._first_paper(f"bibcode:{quote(source_id.strip())}")

    @operation(Capability.LOOKUP, authenticated=True)
    async def get_by_doi(self, doi: str) -> Optional[Paper]:
        return await self._first_paper(self.translator.exact_clause("doi", doi.strip()))

    @operation(Capability.LOOKUP, authenticated=True)
    async def get_by_arxiv(self, arxiv_id: str) -> Optional[Paper]:
        return await self._first_paper(self.translator.exact_clause("arxiv_id", arxiv_id))

    @operation(Capability.LOOKUP, authenticated=True)
    async def get_batch(self, source_ids: Sequence[str]) -> List[Paper]:
        papers: List[Paper] = []
        ids = [bibcode.strip() for bibcode in source_ids if bibcode and bibcode.strip()]
        for offset in range(0, len(ids), BATCH_SIZE):
            chunk = ids[offset:offset + BATCH_SIZE]
            q = "bibcode:(" + " OR ".join(quote(bibcode) for bibcode in chunk) + ")"
            papers.extend(await self._query_papers(q, rows=len(chunk)))
        return papers

    @operation(Capability.REFERENCES, authenticated=True)
    async def get_references(self, source_id: str, limit: int = DEFAULT_REFERENCE_LIMIT) -> List[Paper]:
        papers = await self._query_papers(f"references(bibcode:{quote(source_id)})", rows=limit)
        return papers[:limit]

    @operation(Capability.CITATIONS, authenticated=True)
    async def get_citations(self, source_id: str, limit: int = DEFAULT_REFERENCE_LIMIT) -> List[Paper]:
        papers = await self._query_papers(f"citations(bibcode:{quote(source_id)})", rows=limit)
        return papers[:limit]

    # ------------------------------------------------------------------
    # PDFs
    # ------------------------------------------------------------------

    async def get_esources(self, bibcode: str) -> List[Dict[str, Any]]:
        response = await self._request(
            "GET", f"{self.base_url}/resolver/{url_quote(bibcode, safe='')}/esource"
        )
        if response.status_code == 404:
            return []
        response.raise_for_status()
        return extract_esource_records(response.json())

    @operation(Capability.PDF_DOWNLOAD, authenticated=True)
    async def get_pdf_sources(self, source_id: str) -> List[PdfSource]:
        body = await self._query(f"bibcode:{quote(source_id)}", rows=1, fields="bibcode,identifier")
        docs = body.get("docs") or []
        arxiv_id = extract_arxiv_id(docs[0].get("identifier")) if docs else None

        esources = await self.get_esources(source_id)
        logger.debug("ADS returned %d esource(s) for %s", len(esources), source_id)
        return esources_to_pdf_sources(esources, arxiv_id)

    # ------------------------------------------------------------------
    # BibTeX
    # ------------------------------------------------------------------

    async def _export_bibtex(self, bibcodes: Sequence[str]) -> str:
        response = await self._request(
            "POST", f"{self.base_url}/export/bibtex", json={"bibcode": list(bibcodes)}
        )
        response.raise_for_status()
        return response.json().get("export", "")

    @operation(Capability.BIBTEX, authenticated=True)
    async def get_bibtex(self, source_id: str) -> str:
        return (await self._export_bibtex([source_id])).strip()

    @operation(Capability.BIBTEX, authenticated=True)
    async def get_bibtex_batch(self, source_ids: Sequence[str]) -> Dict[str, str]:
        if not source_ids:
            return {}
        return split_bibtex(await self._export_bibtex(source_ids))

    def record_id(self, paper: Paper) -> Optional[str]:
        return paper.bibcode or super().record_id(paper)

    def get_record_url(self, paper: Paper) -> Optional[str]:
        bibcode = self.record_id(paper)
        if not bibcode:
            return None
        return ADS_ABS_URL.format(bibcode=url_quote(bibcode, safe=""))


__all__ = [
    "AdsPlugin",
    "AdsQueryTranslator",
    "ads_doc_to_paper",
    "esources_to_pdf_sources",
    "extract_esource_records",
]
