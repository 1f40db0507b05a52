"""Multi-source bibliographic search: NASA ADS, arXiv and INSPIRE behind one plugin contract."""

from .config import Settings, get_settings
from .errors import (
    AuthenticationRequiredError,
    BibSourcesError,
    CapabilityNotSupportedError,
    NoActivePluginError,
    PluginConfigurationError,
    PluginNotFoundError,
)
from .identifiers import IdentifierType, classify
from .manager import FederatedSearchResult, LookupReport, PluginEvent, PluginManager
from .models import (
    AuthConfig,
    AuthType,
    Capability,
    Outcome,
    Paper,
    PdfSource,
    PdfSourceType,
    PluginCapabilities,
    RateLimitStatus,
    SearchCapabilities,
    SearchResult,
    SortKey,
    UnifiedQuery,
)
from .plugins import AdsPlugin, ArxivPlugin, InspirePlugin, SourcePlugin, default_plugins
from .ratelimit import RateLimiter

__version__ = "0.1.0"

__all__ = [
    "AdsPlugin",
    "ArxivPlugin",
    "AuthConfig",
    "AuthType",
    "AuthenticationRequiredError",
    "BibSourcesError",
    "Capability",
    "CapabilityNotSupportedError",
    "FederatedSearchResult",
    "IdentifierType",
    "InspirePlugin",
    "LookupReport",
    "NoActivePluginError",
    "Outcome",
    "Paper",
    "PdfSource",
    "PdfSourceType",
    "PluginCapabilities",
    "PluginConfigurationError",
    "PluginEvent",
    "PluginManager",
    "PluginNotFoundError",
    "RateLimitStatus",
    "RateLimiter",
    "SearchCapabilities",
    "SearchResult",
    "Settings",
    "SortKey",
    "SourcePlugin",
    "UnifiedQuery",
    "classify",
    "default_plugins",
    "get_settings",
]
