"""
Source plugin contract.

A plugin integrates one bibliographic database. It declares which
operations it implements through ``PluginCapabilities``; every declared
capability must be backed by an overridden method, which the Plugin Manager
checks once at registration (``validate_plugin``). Calling an operation the
plugin did not declare fails fast with ``CapabilityNotSupportedError``.

Plugins never retry: transport and parse errors propagate to the caller,
and pacing is the manager's job.
"""

from __future__ import annotations

import functools
import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, TypeVar

import httpx

from ..config import Settings, get_settings
from ..credentials import CredentialStore
from ..errors import AuthenticationRequiredError, CapabilityNotSupportedError
from ..http import build_headers, create_client
from ..identifiers import arxiv_pdf_url
from ..models import (
    AuthConfig,
    Capability,
    Paper,
    PdfSource,
    PdfSourceType,
    PluginCapabilities,
    RateLimitStatus,
    SearchCapabilities,
    SearchResult,
    UnifiedQuery,
)
from ..translate import QueryTranslator

logger = logging.getLogger(__name__)

PLUGIN_ID_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*$")
DEFAULT_REFERENCE_LIMIT = 200

# capability -> methods a plugin must override to declare it
CAPABILITY_METHODS: Dict[Capability, Tuple[str, ...]] = {
    Capability.SEARCH: ("search",),
    Capability.LOOKUP: ("get_record",),
    Capability.REFERENCES: ("get_references",),
    Capability.CITATIONS: ("get_citations",),
    Capability.PDF_DOWNLOAD: ("get_pdf_sources",),
    Capability.BIBTEX: ("get_bibtex", "get_bibtex_batch"),
    Capability.METADATA: (),
}

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])


def operation(capability: Capability, authenticated: bool = False) -> Callable[[F], F]:
    """Guard a plugin coroutine with its capability and, optionally, auth.

    Both checks run before the coroutine body, so no network call is
    attempted when either fails.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(self: "SourcePlugin", *args: Any, **kwargs: Any) -> Any:
            if not self.capabilities.supports(capability):
                raise CapabilityNotSupportedError(self.id, capability.value)
            if authenticated and not self.is_authenticated():
                raise AuthenticationRequiredError(self.id)
            return await func(self, *args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator


class SourcePlugin(ABC):
    """Abstract base class for bibliographic source plugins.

    Subclasses set the identity attributes and override the operations
    matching their declared capabilities. ``get_by_doi`` / ``get_by_arxiv``
    are optional fast paths; the manager uses them only when overridden.
    """

    id: str = ""
    name: str = ""
    icon: str = ""
    description: str = ""
    homepage: str = ""

    capabilities: PluginCapabilities = PluginCapabilities()
    search_capabilities: SearchCapabilities = SearchCapabilities()
    auth: AuthConfig = AuthConfig()
    translator: QueryTranslator = QueryTranslator()

    # ------------------------------------------------------------------
    # Auth and rate limits
    # ------------------------------------------------------------------

    def is_authenticated(self) -> bool:
        return not self.auth.required

    @abstractmethod
    async def validate_auth(self) -> bool:
        """Check that the configured credential works. Never raises."""

    @abstractmethod
    def get_rate_limit_status(self) -> RateLimitStatus:
        """Last-known quota; informational, not necessarily fresh."""

    # ------------------------------------------------------------------
    # Operations (override per declared capability)
    # ------------------------------------------------------------------

    def translate_query(self, query: UnifiedQuery) -> str:
        return self.translator.translate(query)

    async def search(self, query: UnifiedQuery) -> SearchResult:
        raise CapabilityNotSupportedError(self.id, Capability.SEARCH.value)

    async def get_record(self, source_id: str) -> Optional[Paper]:
        raise CapabilityNotSupportedError(self.id, Capability.LOOKUP.value)

    async def get_by_doi(self, doi: str) -> Optional[Paper]:
        raise CapabilityNotSupportedError(self.id, "doi lookup")

    async def get_by_arxiv(self, arxiv_id: str) -> Optional[Paper]:
        raise CapabilityNotSupportedError(self.id, "arxiv lookup")

    async def get_batch(self, source_ids: Sequence[str]) -> List[Paper]:
        """Best-effort batch lookup; unresolved ids are dropped."""
        papers: List[Paper] = []
        for source_id in source_ids:
            paper = await self.get_record(source_id)
            if paper is not None:
                papers.append(paper)
        return papers

    async def get_references(self, source_id: str, limit: int = DEFAULT_REFERENCE_LIMIT) -> List[Paper]:
        raise CapabilityNotSupportedError(self.id, Capability.REFERENCES.value)

    async def get_citations(self, source_id: str, limit: int = DEFAULT_REFERENCE_LIMIT) -> List[Paper]:
        raise CapabilityNotSupportedError(self.id, Capability.CITATIONS.value)

    async def get_pdf_sources(self, source_id: str) -> List[PdfSource]:
        raise CapabilityNotSupportedError(self.id, Capability.PDF_DOWNLOAD.value)

    async def get_bibtex(self, source_id: str) -> str:
        raise CapabilityNotSupportedError(self.id, Capability.BIBTEX.value)

    async def get_bibtex_batch(self, source_ids: Sequence[str]) -> Dict[str, str]:
        raise CapabilityNotSupportedError(self.id, Capability.BIBTEX.value)

    def record_id(self, paper: Paper) -> Optional[str]:
        """This source's key for ``paper``, when the paper carries one."""
        return paper.source_id if paper.source == self.id else None

    def get_record_url(self, paper: Paper) -> Optional[str]:
        return None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self, options: Optional[Mapping[str, Any]] = None) -> None:
        return None

    async def shutdown(self) -> None:
        return None

    # ------------------------------------------------------------------

    def implements(self, method: str) -> bool:
        """True when ``method`` is overridden rather than the base default."""
        own = getattr(type(self), method, None)
        return own is not None and own is not getattr(SourcePlugin, method, None)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r}>"


def validate_plugin(plugin: object) -> List[str]:
    """Return the list of contract violations (empty when valid)."""
    if not isinstance(plugin, SourcePlugin):
        return [f"{type(plugin).__name__} is not a SourcePlugin"]

    errors: List[str] = []
    for prop in ("id", "name"):
        if not getattr(plugin, prop, None):
            errors.append(f"Missing required property: {prop}")
    if not isinstance(plugin.capabilities, PluginCapabilities):
        errors.append("Missing required property: capabilities")
    if not isinstance(plugin.auth, AuthConfig):
        errors.append("Missing required property: auth")

    if plugin.id and not PLUGIN_ID_PATTERN.match(plugin.id):
        errors.append("Plugin ID must be lowercase alphanumeric with optional - or _")

    if isinstance(plugin.capabilities, PluginCapabilities):
        for capability in plugin.capabilities.declared():
            for method in CAPABILITY_METHODS[capability]:
                if not plugin.implements(method):
                    errors.append(
                        f"Plugin declares {capability.value} capability but has no {method}() method"
                    )
    return errors


def finalize_pdf_sources(sources: Iterable[PdfSource], arxiv_id: Optional[str] = None) -> List[PdfSource]:
    """Deduplicate by type, renumber priorities, add a constructed arXiv URL if missing.

    The first source of each type wins; order is preserved, so priority 0 is
    the preferred entry.
    """
    kept: List[PdfSource] = []
    seen = set()
    for source in sources:
        if source.type in seen:
            continue
        seen.add(source.type)
        kept.append(source)

    if arxiv_id and PdfSourceType.ARXIV not in seen:
        kept.append(
            PdfSource(
                type=PdfSourceType.ARXIV,
                url=arxiv_pdf_url(arxiv_id),
                label="arXiv PDF",
                requires_auth=False,
            )
        )

    return [
        PdfSource(
            type=source.type,
            url=source.url,
            label=source.label,
            requires_auth=source.requires_auth,
            priority=index,
        )
        for index, source in enumerate(kept)
    ]


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class HttpSourcePlugin(SourcePlugin):
    """Plugin backed by an ``httpx.AsyncClient``.

    The client is created lazily; an injected client is used as-is and left
    open on shutdown. Token resolution order at ``initialize``: the
    ``token`` option, the credential store under ``auth.token_key``, then
    the settings value.
    """

    base_url: str = ""
    accept: str = "application/json"
    rate_limit_window = timedelta(days=1)
    default_quota = 1000

    def __init__(
        self,
        settings: Optional[Settings] = None,
        credentials: Optional[CredentialStore] = None,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.credentials = credentials
        if base_url:
            self.base_url = base_url
        self._client = client
        self._owns_client = client is None
        self._token: Optional[str] = None
        self._rate_limit_status = RateLimitStatus(
            remaining=self.default_quota,
            limit=self.default_quota,
            reset_at=datetime.now(timezone.utc) + self.rate_limit_window,
        )

    # -- auth -----------------------------------------------------------

    @property
    def token(self) -> Optional[str]:
        return self._token

    def set_token(self, token: Optional[str]) -> None:
        self._token = token or None

    def is_authenticated(self) -> bool:
        if not self.auth.required:
            return True
        return bool(self._token)

    def _settings_token(self) -> Optional[str]:
        return None

    def _resolve_token(self, options: Mapping[str, Any]) -> Optional[str]:
        if options.get("token"):
            return str(options["token"])
        if self.credentials is not None and self.auth.token_key:
            stored = self.credentials.get(self.auth.token_key)
            if stored is not None and stored.get_secret_value():
                return stored.get_secret_value()
        return self._settings_token()

    async def validate_auth(self) -> bool:
        return self.is_authenticated()

    def get_rate_limit_status(self) -> RateLimitStatus:
        return self._rate_limit_status

    # -- http -----------------------------------------------------------

    def _default_headers(self) -> Dict[str, str]:
        return build_headers(self.settings.user_agent, accept=self.accept)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = create_client(
                base_url=self.base_url,
                headers=self._default_headers(),
                timeout=self.settings.http_timeout,
            )
            self._owns_client = True
        return self._client

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        client = await self._get_client()
        if self._token:
            headers = dict(kwargs.pop("headers", None) or {})
            headers.setdefault("Authorization", f"Bearer {self._token}")
            kwargs["headers"] = headers
        response = await client.request(method, url, **kwargs)
        self._observe_response(response)
        return response

    def _observe_response(self, response: httpx.Response) -> None:
        """Track quota from the response.

        Sources without quota headers only signal exhaustion through
        429/503 plus ``Retry-After``; any other status resets the quota.
        Plugins that read explicit quota headers override this.
        """
        limit = self._rate_limit_status.limit
        if response.status_code in (429, 503):
            retry_after = _parse_retry_after(response.headers.get("Retry-After"))
            self._rate_limit_status = RateLimitStatus(
                remaining=0,
                limit=limit,
                reset_at=datetime.now(timezone.utc) + timedelta(seconds=retry_after or 0),
                retry_after=retry_after,
            )
            logger.warning("%s: throttled (HTTP %d), retry after %s", self.id, response.status_code, retry_after)
        elif self._rate_limit_status.exhausted:
            self._rate_limit_status = RateLimitStatus(
                remaining=limit,
                limit=limit,
                reset_at=datetime.now(timezone.utc) + self.rate_limit_window,
            )

    # -- lifecycle ------------------------------------------------------

    async def initialize(self, options: Optional[Mapping[str, Any]] = None) -> None:
        token = self._resolve_token(options or {})
        if token:
            self.set_token(token)

    async def shutdown(self) -> None:
        self.set_token(None)
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        if self._owns_client:
            self._client = None


__all__ = [
    "SourcePlugin",
    "HttpSourcePlugin",
    "validate_plugin",
    "finalize_pdf_sources",
    "operation",
    "CAPABILITY_METHODS",
    "PLUGIN_ID_PATTERN",
    "DEFAULT_REFERENCE_LIMIT",
]
