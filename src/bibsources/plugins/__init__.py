"""Source plugins and the default plugin set."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Type

from ..config import Settings, get_settings
from ..credentials import CredentialStore
from .ads import AdsPlugin
from .arxiv import ArxivPlugin
from .base import HttpSourcePlugin, SourcePlugin, finalize_pdf_sources, operation, validate_plugin
from .inspire import InspirePlugin

logger = logging.getLogger(__name__)

PLUGIN_CLASSES: Dict[str, Type[HttpSourcePlugin]] = {
    AdsPlugin.id: AdsPlugin,
    ArxivPlugin.id: ArxivPlugin,
    InspirePlugin.id: InspirePlugin,
}


def default_plugins(
    settings: Optional[Settings] = None,
    credentials: Optional[CredentialStore] = None,
) -> List[SourcePlugin]:
    """Instantiate the plugins named in ``settings.enabled_plugins``, in order."""
    settings = settings or get_settings()
    plugins: List[SourcePlugin] = []
    for plugin_id in settings.enabled_plugins:
        plugin_class = PLUGIN_CLASSES.get(plugin_id)
        if plugin_class is None:
            logger.warning("Unknown plugin id in settings: %s", plugin_id)
            continue
        plugins.append(plugin_class(settings=settings, credentials=credentials))
    return plugins


__all__ = [
    "AdsPlugin",
    "ArxivPlugin",
    "InspirePlugin",
    "SourcePlugin",
    "HttpSourcePlugin",
    "PLUGIN_CLASSES",
    "default_plugins",
    "finalize_pdf_sources",
    "operation",
    "validate_plugin",
]
