"""
Data model shared by every source plugin.

Papers, queries and search results are pydantic models validated at the
boundary; the small descriptor records (capabilities, rate-limit status,
PDF sources, registrations) are plain dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, Generic, List, Optional, Tuple, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, PositiveInt, field_validator

from .identifiers import (
    is_arxiv_id,
    is_bibcode,
    is_doi,
    is_inspire_id,
    normalize_arxiv_id,
    normalize_doi,
)

if TYPE_CHECKING:
    from .plugins.base import SourcePlugin

UNTITLED = "Untitled"


# ============================================================================
# Enumerations
# ============================================================================

class Capability(str, Enum):
    """Operations a plugin may declare. Declared capabilities are a contract."""
    SEARCH = "search"
    LOOKUP = "lookup"
    REFERENCES = "references"
    CITATIONS = "citations"
    PDF_DOWNLOAD = "pdf_download"
    BIBTEX = "bibtex"
    METADATA = "metadata"


class SortKey(str, Enum):
    DATE = "date"
    CITATIONS = "citations"
    RELEVANCE = "relevance"


class PdfSourceType(str, Enum):
    ARXIV = "arxiv"
    PUBLISHER = "publisher"
    ADS_SCAN = "ads_scan"
    AUTHOR = "author"
    OPEN_ACCESS = "open_access"


class AuthType(str, Enum):
    NONE = "none"
    API_KEY = "api_key"
    OAUTH = "oauth"
    INSTITUTIONAL = "institutional"


# ============================================================================
# Paper
# ============================================================================

class Paper(BaseModel):
    """A normalised bibliographic record.

    Built fresh for every search or lookup response and never mutated;
    ``with_source`` returns a re-tagged copy.
    """

    model_config = ConfigDict(frozen=True)

    title: str = UNTITLED
    authors: Tuple[str, ...] = ()
    year: Optional[int] = None
    journal: Optional[str] = None
    abstract: Optional[str] = None
    keywords: FrozenSet[str] = frozenset()
    citation_count: Optional[NonNegativeInt] = None

    doi: Optional[str] = None
    arxiv_id: Optional[str] = None
    bibcode: Optional[str] = None
    inspire_id: Optional[str] = None

    bibtex: Optional[str] = None
    url: Optional[str] = None

    source: str
    source_id: str

    @field_validator("title", mode="before")
    @classmethod
    def _default_title(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return UNTITLED
        return value

    @field_validator("doi")
    @classmethod
    def _check_doi(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = normalize_doi(value)
        if not is_doi(value):
            raise ValueError(f"not a DOI: {value!r}")
        return value

    @field_validator("arxiv_id")
    @classmethod
    def _check_arxiv(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = normalize_arxiv_id(value)
        if not is_arxiv_id(value):
            raise ValueError(f"not an arXiv id: {value!r}")
        return value

    @field_validator("bibcode")
    @classmethod
    def _check_bibcode(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        if not is_bibcode(value):
            raise ValueError(f"not an ADS bibcode: {value!r}")
        return value

    @field_validator("inspire_id", mode="before")
    @classmethod
    def _check_inspire(cls, value: Any) -> Any:
        if value is None:
            return None
        value = str(value).strip()
        if not is_inspire_id(value):
            raise ValueError(f"not an INSPIRE record id: {value!r}")
        return value

    @field_validator("source", "source_id", mode="before")
    @classmethod
    def _required_text(cls, value: Any) -> Any:
        if value is None or not str(value).strip():
            raise ValueError("must be a non-empty string")
        return str(value)

    def with_source(self, plugin_id: str) -> "Paper":
        if self.source == plugin_id:
            return self
        return self.model_copy(update={"source": plugin_id})


def create_paper(source: str, source_id: str, **data: Any) -> Paper:
    """Build a Paper, dropping identifier values that do not match their pattern.

    Remote services occasionally return malformed identifiers; those are
    discarded rather than failing the whole response.
    """
    checks = {
        "doi": lambda v: is_doi(normalize_doi(v)),
        "arxiv_id": lambda v: is_arxiv_id(normalize_arxiv_id(v)),
        "bibcode": lambda v: is_bibcode(v.strip()),
        "inspire_id": lambda v: is_inspire_id(str(v).strip()),
    }
    for name, check in checks.items():
        value = data.get(name)
        if value is not None and not check(value):
            data[name] = None
    if data.get("citation_count") is not None and data["citation_count"] < 0:
        data["citation_count"] = None
    return Paper(source=source, source_id=source_id, **data)


# ============================================================================
# Queries and results
# ============================================================================

YearSpec = Union[int, Tuple[int, int]]


class UnifiedQuery(BaseModel):
    """Source-agnostic search request.

    ``raw`` is passed verbatim to the source and overrides every structured
    field. ``sort`` stays a free string so that translators can fall back to
    date ordering for keys they do not know.
    """

    model_config = ConfigDict(frozen=True)

    raw: Optional[str] = None

    title: Optional[str] = None
    author: Optional[str] = None
    abstract: Optional[str] = None
    full_text: Optional[str] = None
    year: Optional[YearSpec] = None

    doi: Optional[str] = None
    arxiv_id: Optional[str] = None
    bibcode: Optional[str] = None

    keywords: Tuple[str, ...] = ()

    sort: str = SortKey.DATE.value
    sort_direction: str = "desc"
    limit: PositiveInt = 25
    offset: NonNegativeInt = 0

    @field_validator("year")
    @classmethod
    def _check_year(cls, value: Optional[YearSpec]) -> Optional[YearSpec]:
        if isinstance(value, tuple) and value[0] > value[1]:
            raise ValueError(f"year range start {value[0]} is after end {value[1]}")
        return value

    @field_validator("keywords", mode="before")
    @classmethod
    def _dedupe_keywords(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, str):
            value = [value]
        seen: List[str] = []
        for keyword in value:
            if keyword and keyword not in seen:
                seen.append(keyword)
        return tuple(seen)

    @field_validator("sort", mode="before")
    @classmethod
    def _sort_value(cls, value: Any) -> Any:
        if isinstance(value, SortKey):
            return value.value
        return value or SortKey.DATE.value

    @field_validator("sort_direction")
    @classmethod
    def _check_direction(cls, value: str) -> str:
        value = value.lower()
        if value not in ("asc", "desc"):
            raise ValueError("sort_direction must be 'asc' or 'desc'")
        return value


class SearchResult(BaseModel):
    total_results: NonNegativeInt = 0
    papers: List[Paper] = Field(default_factory=list)
    next_cursor: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def with_source(self, plugin_id: str) -> "SearchResult":
        """Copy with every paper tagged as coming from ``plugin_id``."""
        return self.model_copy(update={"papers": [p.with_source(plugin_id) for p in self.papers]})


# ============================================================================
# Plugin descriptors
# ============================================================================

@dataclass(frozen=True)
class PluginCapabilities:
    search: bool = False
    lookup: bool = False
    references: bool = False
    citations: bool = False
    pdf_download: bool = False
    bibtex: bool = False
    metadata: bool = False

    def supports(self, capability: Union[Capability, str]) -> bool:
        return bool(getattr(self, Capability(capability).value, False))

    def declared(self) -> List[Capability]:
        return [Capability(f.name) for f in fields(self) if getattr(self, f.name)]

    def to_dict(self) -> Dict[str, bool]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class SearchCapabilities:
    supports_full_text: bool = False
    supports_references: bool = False
    supports_citations: bool = False
    supports_date_range: bool = True
    supports_boolean_operators: bool = False
    supports_field_search: bool = False
    max_results: int = 100
    query_language: str = "generic"
    sort_options: Tuple[str, ...] = (SortKey.DATE.value, SortKey.RELEVANCE.value)


@dataclass(frozen=True)
class AuthConfig:
    type: AuthType = AuthType.NONE
    token_key: Optional[str] = None
    description: Optional[str] = None
    help_url: Optional[str] = None

    @property
    def required(self) -> bool:
        return self.type != AuthType.NONE


@dataclass(frozen=True)
class RateLimitStatus:
    """Last-known quota reported by a source."""
    remaining: int
    limit: int
    reset_at: datetime
    retry_after: Optional[float] = None

    def __post_init__(self) -> None:
        if self.limit <= 0:
            raise ValueError("limit must be positive")
        if self.remaining < 0:
            object.__setattr__(self, "remaining", 0)

    @property
    def exhausted(self) -> bool:
        return self.remaining <= 0


@dataclass(frozen=True)
class PdfSource:
    type: PdfSourceType
    url: str
    label: str
    requires_auth: bool = False
    priority: int = 0


@dataclass
class PluginRegistration:
    id: str
    plugin: "SourcePlugin"
    enabled: bool = True
    registered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


T = TypeVar("T")


@dataclass
class Outcome(Generic[T]):
    """Result of one best-effort step: a value or the error that replaced it."""
    plugin_id: str
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


__all__ = [
    "Capability",
    "SortKey",
    "PdfSourceType",
    "AuthType",
    "Paper",
    "create_paper",
    "UnifiedQuery",
    "SearchResult",
    "PluginCapabilities",
    "SearchCapabilities",
    "AuthConfig",
    "RateLimitStatus",
    "PdfSource",
    "PluginRegistration",
    "Outcome",
    "UNTITLED",
]
