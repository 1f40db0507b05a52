"""Package-wide configuration using Pydantic settings."""

from __future__ import annotations

from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration for the source plugins and their manager.

    Every field can be overridden with a ``BIBSOURCES_`` prefixed environment
    variable or through a local ``.env`` file.
    """

    model_config = SettingsConfigDict(env_file=".env", env_prefix="BIBSOURCES_", extra="ignore")

    environment: str = "development"
    log_level: str = "INFO"
    log_json: bool = False

    # HTTP collaborator
    http_timeout: float = 30.0
    user_agent: str = "bibsources/0.1 (reference manager; mailto:bibsources@localhost)"

    # NASA ADS
    ads_api_token: Optional[SecretStr] = None
    ads_base_url: str = "https://api.adsabs.harvard.edu/v1"

    # arXiv
    arxiv_base_url: str = "https://export.arxiv.org/api/query"

    # INSPIRE-HEP
    inspire_base_url: str = "https://inspirehep.net/api"

    # Pacing between requests, seconds per plugin id
    rate_limit_delays: Dict[str, float] = {
        "ads": 0.05,  # 5000/day
        "arxiv": 3.0,  # asks for 3s between calls
        "inspire": 0.35,  # 15 requests per 5s
    }
    default_rate_limit_delay: float = 0.1

    # Plugin selection
    enabled_plugins: List[str] = ["ads", "arxiv", "inspire"]
    active_plugin: Optional[str] = None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load and cache configuration for the current process."""

    return Settings()  # type: ignore[arg-type]


__all__ = ["Settings", "get_settings"]
