"""
Plugin Manager: registry, dispatch and lifecycle for source plugins.

The manager is an explicit object owned by the application root; there is
no module-level singleton. It keeps registrations in insertion order, tracks
one active plugin, paces every dispatched call through a ``RateLimiter`` and
publishes state transitions to subscribed callbacks.

Example usage:
    manager = PluginManager.from_settings()
    async with manager:
        result = await manager.search(UnifiedQuery(author="Witten"))
        paper = await manager.lookup("10.1086/305772")
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from .config import Settings, get_settings
from .credentials import CredentialStore, MemoryCredentialStore
from .errors import (
    CapabilityNotSupportedError,
    NoActivePluginError,
    PluginConfigurationError,
    PluginNotFoundError,
)
from .identifiers import IdentifierType, classify
from .logging import get_logger
from .models import (
    Capability,
    Outcome,
    Paper,
    PdfSource,
    PluginRegistration,
    SearchResult,
    UnifiedQuery,
)
from .plugins import default_plugins
from .plugins.base import SourcePlugin, validate_plugin
from .ratelimit import RateLimiter

logger = get_logger(__name__)


class PluginEvent(str, Enum):
    REGISTERED = "plugin:registered"
    UNREGISTERED = "plugin:unregistered"
    ACTIVE_CHANGED = "plugin:active-changed"
    ENABLED = "plugin:enabled"
    DISABLED = "plugin:disabled"
    INITIALIZED = "initialized"
    SHUTDOWN = "shutdown"


#: ``callback(event, {"plugin_id": ..., "data": {...}})``
Listener = Callable[[PluginEvent, Dict[str, Any]], None]


@dataclass
class FederatedSearchResult:
    """Per-plugin outcome of a federated search; one entry per plugin."""
    results: Dict[str, SearchResult] = field(default_factory=dict)
    errors: Dict[str, BaseException] = field(default_factory=dict)


@dataclass
class LookupReport:
    """What ``lookup`` tried, in order.

    An attempt with neither value nor error is a miss.
    """
    identifier: str
    identifier_type: IdentifierType
    paper: Optional[Paper] = None
    attempts: List[Outcome[Paper]] = field(default_factory=list)

    @property
    def errors(self) -> Dict[str, BaseException]:
        return {a.plugin_id: a.error for a in self.attempts if a.error is not None}


@dataclass
class PdfSourcesReport:
    sources: List[PdfSource] = field(default_factory=list)
    outcomes: List[Outcome[List[PdfSource]]] = field(default_factory=list)


class PluginManager:
    """Registry of source plugins with a single active plugin."""

    def __init__(
        self,
        rate_limiter: Optional[RateLimiter] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings
        if rate_limiter is None:
            rate_limiter = (
                RateLimiter(settings.rate_limit_delays, settings.default_rate_limit_delay)
                if settings is not None
                else RateLimiter()
            )
        self.rate_limiter = rate_limiter
        self._registrations: Dict[str, PluginRegistration] = {}
        self._active_plugin_id: Optional[str] = None
        self._listeners: List[Listener] = []

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        credentials: Optional[CredentialStore] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ) -> "PluginManager":
        """Build a manager with the default plugin set registered."""
        settings = settings or get_settings()
        credentials = credentials or MemoryCredentialStore.from_settings(settings)
        manager = cls(rate_limiter=rate_limiter, settings=settings)
        for plugin in default_plugins(settings, credentials):
            manager.register(plugin)
        if settings.active_plugin and settings.active_plugin in manager._registrations:
            manager.set_active(settings.active_plugin)
        return manager

    # ==========================================================================
    # Events
    # ==========================================================================

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: PluginEvent, plugin_id: Optional[str] = None, **data: Any) -> None:
        payload = {"plugin_id": plugin_id, "data": data}
        for listener in list(self._listeners):
            try:
                listener(event, payload)
            except Exception:  # noqa: BLE001
                logger.exception("listener_failed", plugin_event=event.value, plugin_id=plugin_id)

    # ==========================================================================
    # Registry
    # ==========================================================================

    def register(self, plugin: SourcePlugin) -> None:
        """Validate and add ``plugin``; the first registered plugin becomes active."""
        problems = validate_plugin(plugin)
        plugin_id = getattr(plugin, "id", None)
        if problems:
            raise PluginConfigurationError(plugin_id, problems)
        if plugin_id in self._registrations:
            raise PluginConfigurationError(plugin_id, [f'Plugin "{plugin_id}" is already registered'])

        self._registrations[plugin_id] = PluginRegistration(id=plugin_id, plugin=plugin)
        logger.info("plugin_registered", plugin_id=plugin_id, name=plugin.name)
        self._emit(PluginEvent.REGISTERED, plugin_id, plugin=self._info(self._registrations[plugin_id]))

        if self._active_plugin_id is None:
            self._change_active(plugin_id)

    async def unregister(self, plugin_id: str) -> None:
        """Shut the plugin down and remove it, promoting another if it was active."""
        registration = self._require(plugin_id)
        try:
            await registration.plugin.shutdown()
        except Exception:  # noqa: BLE001
            logger.exception("plugin_shutdown_failed", plugin_id=plugin_id)

        del self._registrations[plugin_id]
        self.rate_limiter.forget(plugin_id)
        logger.info("plugin_unregistered", plugin_id=plugin_id)
        self._emit(PluginEvent.UNREGISTERED, plugin_id)

        if self._active_plugin_id == plugin_id:
            self._change_active(next(iter(self._registrations), None))

    def get(self, plugin_id: str) -> Optional[SourcePlugin]:
        registration = self._registrations.get(plugin_id)
        return registration.plugin if registration else None

    def get_active(self) -> Optional[SourcePlugin]:
        if self._active_plugin_id is None:
            return None
        return self.get(self._active_plugin_id)

    @property
    def active_plugin_id(self) -> Optional[str]:
        return self._active_plugin_id

    def set_active(self, plugin_id: str) -> None:
        """Make ``plugin_id`` active, enabling it first if it is disabled."""
        registration = self._require(plugin_id)
        if not registration.enabled:
            self.enable(plugin_id)
        self._change_active(plugin_id)

    def is_enabled(self, plugin_id: str) -> bool:
        return self._require(plugin_id).enabled

    def enable(self, plugin_id: str) -> None:
        registration = self._require(plugin_id)
        if registration.enabled:
            return
        registration.enabled = True
        logger.info("plugin_enabled", plugin_id=plugin_id)
        self._emit(PluginEvent.ENABLED, plugin_id)
        if self._active_plugin_id is None:
            self._change_active(plugin_id)

    def disable(self, plugin_id: str) -> None:
        """Disable a plugin; an active plugin is demoted in favour of the first enabled one."""
        registration = self._require(plugin_id)
        if not registration.enabled:
            return
        registration.enabled = False
        logger.info("plugin_disabled", plugin_id=plugin_id)
        self._emit(PluginEvent.DISABLED, plugin_id)

        if self._active_plugin_id == plugin_id:
            successor = next((r.id for r in self._registrations.values() if r.enabled), None)
            self._change_active(successor)

    def list(
        self,
        enabled_only: bool = False,
        capability: Optional[Union[Capability, str]] = None,
    ) -> List[SourcePlugin]:
        """Registered plugins in registration order, optionally filtered."""
        plugins = []
        for registration in self._registrations.values():
            if enabled_only and not registration.enabled:
                continue
            if capability is not None and not registration.plugin.capabilities.supports(capability):
                continue
            plugins.append(registration.plugin)
        return plugins

    def get_plugin_info(self) -> List[Dict[str, Any]]:
        """Read-only projection of every registration, for display."""
        return [self._info(registration) for registration in self._registrations.values()]

    def _info(self, registration: PluginRegistration) -> Dict[str, Any]:
        plugin = registration.plugin
        return {
            "id": plugin.id,
            "name": plugin.name,
            "icon": plugin.icon,
            "description": plugin.description,
            "active": plugin.id == self._active_plugin_id,
            "enabled": registration.enabled,
            "capabilities": plugin.capabilities.to_dict(),
            "auth": {"type": plugin.auth.type.value, "required": plugin.auth.required},
        }

    def _require(self, plugin_id: str) -> PluginRegistration:
        registration = self._registrations.get(plugin_id)
        if registration is None:
            raise PluginNotFoundError(plugin_id)
        return registration

    def _change_active(self, plugin_id: Optional[str]) -> None:
        previous = self._active_plugin_id
        if previous == plugin_id:
            return
        self._active_plugin_id = plugin_id
        logger.info("active_plugin_changed", previous=previous, current=plugin_id)
        self._emit(PluginEvent.ACTIVE_CHANGED, plugin_id, previous=previous, current=plugin_id)

    # ==========================================================================
    # Dispatch
    # ==========================================================================

    async def _call(self, plugin: SourcePlugin, func: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        await self.rate_limiter.acquire(plugin)
        return await func(*args)

    async def search(self, query: UnifiedQuery) -> SearchResult:
        """Search the active plugin; errors propagate."""
        plugin = self.get_active()
        if plugin is None:
            raise NoActivePluginError()
        if not plugin.capabilities.supports(Capability.SEARCH):
            raise CapabilityNotSupportedError(plugin.id, Capability.SEARCH.value)

        result = await self._call(plugin, plugin.search, query)
        return result.with_source(plugin.id)

    async def federated_search(self, query: UnifiedQuery) -> FederatedSearchResult:
        """Search every enabled search-capable plugin concurrently.

        All searches run to completion; a failing plugin lands in ``errors``
        and never affects the others.
        """
        plugins = self.list(enabled_only=True, capability=Capability.SEARCH)
        outcomes = await asyncio.gather(
            *(self._call(plugin, plugin.search, query) for plugin in plugins),
            return_exceptions=True,
        )

        federated = FederatedSearchResult()
        for plugin, outcome in zip(plugins, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.warning("federated_search_failed", plugin_id=plugin.id, error=str(outcome))
                federated.errors[plugin.id] = outcome
            else:
                federated.results[plugin.id] = outcome.with_source(plugin.id)
        logger.info(
            "federated_search_complete",
            succeeded=sorted(federated.results),
            failed=sorted(federated.errors),
        )
        return federated

    @staticmethod
    def _lookup_method(plugin: SourcePlugin, identifier_type: IdentifierType) -> Callable[[str], Awaitable[Optional[Paper]]]:
        if identifier_type == IdentifierType.DOI and plugin.implements("get_by_doi"):
            return plugin.get_by_doi
        if identifier_type == IdentifierType.ARXIV and plugin.implements("get_by_arxiv"):
            return plugin.get_by_arxiv
        return plugin.get_record

    def _lookup_order(self) -> List[SourcePlugin]:
        candidates = self.list(enabled_only=True, capability=Capability.LOOKUP)
        active = self.get_active()
        if active is not None and active in candidates:
            candidates.remove(active)
            candidates.insert(0, active)
        return candidates

    async def lookup_with_report(self, identifier: str) -> LookupReport:
        """Resolve ``identifier``, recording each plugin tried and how it fared."""
        value = identifier.strip()
        report = LookupReport(identifier=value, identifier_type=classify(value))

        for plugin in self._lookup_order():
            method = self._lookup_method(plugin, report.identifier_type)
            try:
                paper = await self._call(plugin, method, value)
            except Exception as exc:  # noqa: BLE001
                logger.warning("lookup_failed", plugin_id=plugin.id, identifier=value, error=str(exc))
                report.attempts.append(Outcome(plugin.id, error=exc))
                continue

            report.attempts.append(Outcome(plugin.id, value=paper))
            if paper is not None:
                report.paper = paper.with_source(plugin.id)
                break

        logger.debug(
            "lookup_complete",
            identifier=value,
            identifier_type=report.identifier_type.value,
            found=report.paper is not None,
            attempted=[a.plugin_id for a in report.attempts],
        )
        return report

    async def lookup(self, identifier: str) -> Optional[Paper]:
        """First Paper any enabled plugin resolves for ``identifier``; None if all miss."""
        return (await self.lookup_with_report(identifier)).paper

    async def get_pdf_sources_report(self, paper: Paper) -> PdfSourcesReport:
        origin = self.get(paper.source)
        if origin is not None and origin.capabilities.supports(Capability.PDF_DOWNLOAD):
            sources = await self._call(origin, origin.get_pdf_sources, origin.record_id(paper) or paper.source_id)
            return PdfSourcesReport(sources=list(sources), outcomes=[Outcome(origin.id, value=list(sources))])

        report = PdfSourcesReport()
        for plugin in self.list(enabled_only=True, capability=Capability.PDF_DOWNLOAD):
            try:
                sources = await self._call(plugin, plugin.get_pdf_sources, plugin.record_id(paper) or paper.source_id)
            except Exception as exc:  # noqa: BLE001
                logger.debug("pdf_sources_failed", plugin_id=plugin.id, error=str(exc))
                report.outcomes.append(Outcome(plugin.id, error=exc))
                continue
            report.outcomes.append(Outcome(plugin.id, value=list(sources)))
            report.sources.extend(sources)
        return report

    async def get_pdf_sources(self, paper: Paper) -> List[PdfSource]:
        """PDF sources from the paper's origin plugin, or from every PDF-capable plugin.

        Errors from the origin plugin propagate; in the aggregate path each
        plugin's failure is skipped.
        """
        return (await self.get_pdf_sources_report(paper)).sources

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    async def initialize(
        self, options: Optional[Mapping[str, Mapping[str, Any]]] = None
    ) -> List[Outcome[None]]:
        """Initialize every plugin concurrently; failures disable the plugin."""
        options = options or {}
        registrations = list(self._registrations.values())

        async def init_one(registration: PluginRegistration) -> Outcome[None]:
            try:
                await registration.plugin.initialize(options.get(registration.id) or {})
            except Exception as exc:  # noqa: BLE001
                logger.error("plugin_initialize_failed", plugin_id=registration.id, error=str(exc))
                return Outcome(registration.id, error=exc)
            logger.info("plugin_initialized", plugin_id=registration.id)
            return Outcome(registration.id)

        outcomes = await asyncio.gather(*(init_one(r) for r in registrations))
        for outcome in outcomes:
            if not outcome.ok and outcome.plugin_id in self._registrations:
                self.disable(outcome.plugin_id)

        self._emit(PluginEvent.INITIALIZED)
        return list(outcomes)

    async def shutdown(self) -> None:
        """Shut every plugin down concurrently, then clear the registry."""
        registrations = list(self._registrations.values())

        async def shutdown_one(registration: PluginRegistration) -> None:
            try:
                await registration.plugin.shutdown()
            except Exception:  # noqa: BLE001
                logger.exception("plugin_shutdown_failed", plugin_id=registration.id)

        await asyncio.gather(*(shutdown_one(r) for r in registrations))
        self._registrations.clear()
        self._active_plugin_id = None
        self.rate_limiter.reset()
        self._emit(PluginEvent.SHUTDOWN)

    async def __aenter__(self) -> "PluginManager":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    def __len__(self) -> int:
        return len(self._registrations)

    def __contains__(self, plugin_id: object) -> bool:
        return plugin_id in self._registrations


__all__ = [
    "PluginManager",
    "PluginEvent",
    "FederatedSearchResult",
    "LookupReport",
    "PdfSourcesReport",
    "Listener",
]
