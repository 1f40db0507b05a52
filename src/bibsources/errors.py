"""Error taxonomy for the source plugin system.

Not-found is never an exception: lookups return ``None``. Transport and
parse failures surface as the underlying library errors (``httpx.HTTPError``,
``xml.etree.ElementTree.ParseError``, ``ValueError``).
"""

from __future__ import annotations

from typing import Iterable, List


class BibSourcesError(Exception):
    """Base class for all errors raised by this package."""


class PluginConfigurationError(BibSourcesError):
    """A plugin was rejected at registration time."""

    def __init__(self, plugin_id: object, problems: Iterable[str]):
        self.plugin_id = plugin_id
        self.problems: List[str] = list(problems)
        super().__init__(f'Invalid plugin "{plugin_id}": {", ".join(self.problems)}')


class PluginNotFoundError(BibSourcesError, KeyError):
    def __init__(self, plugin_id: str):
        self.plugin_id = plugin_id
        super().__init__(f'Plugin "{plugin_id}" is not registered')

    def __str__(self) -> str:
        return self.args[0]


class NoActivePluginError(BibSourcesError):
    def __init__(self) -> None:
        super().__init__("No active plugin")


class CapabilityNotSupportedError(BibSourcesError):
    def __init__(self, plugin_id: str, capability: str):
        self.plugin_id = plugin_id
        self.capability = capability
        super().__init__(f'Plugin "{plugin_id}" does not support {capability}')


class AuthenticationRequiredError(BibSourcesError):
    def __init__(self, plugin_id: str, message: str = ""):
        self.plugin_id = plugin_id
        super().__init__(message or f"{plugin_id} plugin not authenticated. Set a token first.")


__all__ = [
    "BibSourcesError",
    "PluginConfigurationError",
    "PluginNotFoundError",
    "NoActivePluginError",
    "CapabilityNotSupportedError",
    "AuthenticationRequiredError",
]
