"""Shared fixtures: fake plugins, a fake clock and httpx mock clients."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

import httpx
import pytest

from bibsources.config import Settings
from bibsources.manager import PluginManager
from bibsources.models import (
    Capability,
    Paper,
    PdfSource,
    PluginCapabilities,
    RateLimitStatus,
    SearchResult,
    UnifiedQuery,
)
from bibsources.plugins.base import SourcePlugin, operation
from bibsources.ratelimit import RateLimiter


class FakeClock:
    """Monotonic clock whose ``sleep`` records the delay and advances time."""

    def __init__(self, start: float = 1000.0, advance: bool = True) -> None:
        self.now = start
        self.advance = advance
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if self.advance:
            self.now += seconds
        else:
            await asyncio.sleep(0)


def make_paper(source: str = "fake", source_id: str = "1", **data: Any) -> Paper:
    data.setdefault("title", f"Paper {source_id}")
    return Paper(source=source, source_id=source_id, **data)


class FakePlugin(SourcePlugin):
    """In-memory plugin with scriptable results and failures."""

    def __init__(
        self,
        plugin_id: str = "fake",
        capabilities: Optional[PluginCapabilities] = None,
        *,
        papers: Optional[List[Paper]] = None,
        records: Optional[Dict[str, Paper]] = None,
        pdf_sources: Optional[List[PdfSource]] = None,
        search_error: Optional[Exception] = None,
        lookup_error: Optional[Exception] = None,
        pdf_error: Optional[Exception] = None,
        init_error: Optional[Exception] = None,
        shutdown_error: Optional[Exception] = None,
    ) -> None:
        self.id = plugin_id
        self.name = f"Fake {plugin_id}"
        self.capabilities = capabilities or PluginCapabilities(search=True, lookup=True, pdf_download=True)
        self.papers = papers if papers is not None else [make_paper(plugin_id, f"{plugin_id}-1")]
        self.records = records or {}
        self.pdf_sources = pdf_sources or []
        self.search_error = search_error
        self.lookup_error = lookup_error
        self.pdf_error = pdf_error
        self.init_error = init_error
        self.shutdown_error = shutdown_error
        self.status = RateLimitStatus(remaining=100, limit=100, reset_at=datetime.now(timezone.utc))
        self.calls: List[tuple] = []
        self.initialized_with: Optional[Mapping[str, Any]] = None
        self.shutdown_calls = 0

    async def validate_auth(self) -> bool:
        return True

    def get_rate_limit_status(self) -> RateLimitStatus:
        return self.status

    @operation(Capability.SEARCH)
    async def search(self, query: UnifiedQuery) -> SearchResult:
        self.calls.append(("search", query))
        if self.search_error:
            raise self.search_error
        return SearchResult(total_results=len(self.papers), papers=self.papers)

    @operation(Capability.LOOKUP)
    async def get_record(self, source_id: str) -> Optional[Paper]:
        return self._lookup("get_record", source_id)

    @operation(Capability.LOOKUP)
    async def get_by_doi(self, doi: str) -> Optional[Paper]:
        return self._lookup("get_by_doi", doi)

    @operation(Capability.LOOKUP)
    async def get_by_arxiv(self, arxiv_id: str) -> Optional[Paper]:
        return self._lookup("get_by_arxiv", arxiv_id)

    def _lookup(self, method: str, value: str) -> Optional[Paper]:
        self.calls.append((method, value))
        if self.lookup_error:
            raise self.lookup_error
        return self.records.get(value)

    @operation(Capability.PDF_DOWNLOAD)
    async def get_pdf_sources(self, source_id: str) -> List[PdfSource]:
        self.calls.append(("get_pdf_sources", source_id))
        if self.pdf_error:
            raise self.pdf_error
        return list(self.pdf_sources)

    async def initialize(self, options: Optional[Mapping[str, Any]] = None) -> None:
        self.initialized_with = options
        if self.init_error:
            raise self.init_error

    async def shutdown(self) -> None:
        self.shutdown_calls += 1
        if self.shutdown_error:
            raise self.shutdown_error


class RecordOnlyPlugin(SourcePlugin):
    """Lookup through ``get_record`` only; no identifier fast paths."""

    name = "Record only"
    capabilities = PluginCapabilities(lookup=True)

    def __init__(self, plugin_id: str = "records", records: Optional[Dict[str, Paper]] = None) -> None:
        self.id = plugin_id
        self.records = records or {}
        self.calls: List[tuple] = []

    async def validate_auth(self) -> bool:
        return True

    def get_rate_limit_status(self) -> RateLimitStatus:
        return RateLimitStatus(remaining=1, limit=1, reset_at=datetime.now(timezone.utc))

    async def get_record(self, source_id: str) -> Optional[Paper]:
        self.calls.append(("get_record", source_id))
        return self.records.get(source_id)


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, ads_api_token=None, user_agent="bibsources-tests")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiter(clock: FakeClock) -> RateLimiter:
    return RateLimiter(default_delay=0.0, clock=clock, sleep=clock.sleep)


@pytest.fixture
def manager(limiter: RateLimiter) -> PluginManager:
    return PluginManager(rate_limiter=limiter)


@pytest.fixture
def events(manager: PluginManager) -> List[tuple]:
    received: List[tuple] = []
    manager.subscribe(lambda event, payload: received.append((event.value, payload)))
    return received
