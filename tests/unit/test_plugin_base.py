"""Tests for the plugin contract and the HTTP-backed base class."""

from __future__ import annotations

import httpx
import pytest

from bibsources.credentials import MemoryCredentialStore
from bibsources.errors import AuthenticationRequiredError, CapabilityNotSupportedError
from bibsources.models import (
    AuthConfig,
    AuthType,
    Capability,
    PdfSource,
    PdfSourceType,
    PluginCapabilities,
    UnifiedQuery,
)
from bibsources.plugins.base import HttpSourcePlugin, finalize_pdf_sources, operation, validate_plugin
from conftest import FakePlugin, RecordOnlyPlugin, make_paper, mock_client


class TokenPlugin(HttpSourcePlugin):
    id = "tokened"
    name = "Tokened"
    capabilities = PluginCapabilities(lookup=True)
    auth = AuthConfig(type=AuthType.API_KEY, token_key="tokened_token")

    @operation(Capability.LOOKUP, authenticated=True)
    async def get_record(self, source_id):
        response = await self._request("GET", f"{self.base_url}/records/{source_id}")
        response.raise_for_status()
        return None


class TestValidatePlugin:
    def test_valid_plugins_have_no_problems(self):
        assert validate_plugin(FakePlugin("ok")) == []
        assert validate_plugin(RecordOnlyPlugin()) == []

    def test_rejects_non_plugins(self):
        assert validate_plugin(object()) == ["object is not a SourcePlugin"]

    def test_rejects_bad_id(self):
        problems = validate_plugin(FakePlugin("Bad ID"))
        assert problems == ["Plugin ID must be lowercase alphanumeric with optional - or _"]

    def test_rejects_missing_name(self):
        plugin = FakePlugin("nameless")
        plugin.name = ""
        assert "Missing required property: name" in validate_plugin(plugin)

    def test_declared_capability_needs_its_method(self):
        plugin = RecordOnlyPlugin()
        plugin.capabilities = PluginCapabilities(lookup=True, references=True, bibtex=True)
        problems = validate_plugin(plugin)
        assert problems == [
            "Plugin declares references capability but has no get_references() method",
            "Plugin declares bibtex capability but has no get_bibtex() method",
            "Plugin declares bibtex capability but has no get_bibtex_batch() method",
        ]


@pytest.mark.asyncio
async def test_undeclared_capability_fails_fast():
    plugin = FakePlugin("nosearch", PluginCapabilities(lookup=True))
    with pytest.raises(CapabilityNotSupportedError):
        await plugin.search(UnifiedQuery(title="x"))
    assert plugin.calls == []


@pytest.mark.asyncio
async def test_base_defaults_raise_capability_errors():
    plugin = RecordOnlyPlugin()
    with pytest.raises(CapabilityNotSupportedError):
        await plugin.get_references("1")
    with pytest.raises(CapabilityNotSupportedError):
        await plugin.get_bibtex("1")
    assert not plugin.implements("get_by_doi")
    assert plugin.implements("get_record")


@pytest.mark.asyncio
async def test_default_get_batch_drops_misses():
    plugin = RecordOnlyPlugin(records={"a": make_paper("records", "a")})
    papers = await plugin.get_batch(["a", "missing"])
    assert [p.source_id for p in papers] == ["a"]


class TestFinalizePdfSources:
    def test_adds_constructed_arxiv_entry(self):
        sources = finalize_pdf_sources(
            [PdfSource(type=PdfSourceType.PUBLISHER, url="https://pub.test/a.pdf", label="Publisher PDF")],
            "2401.12345v2",
        )
        assert [s.type for s in sources] == [PdfSourceType.PUBLISHER, PdfSourceType.ARXIV]
        assert sources[1].url == "https://arxiv.org/pdf/2401.12345.pdf"
        assert [s.priority for s in sources] == [0, 1]

    def test_deduplicates_by_type_keeping_first(self):
        sources = finalize_pdf_sources(
            [
                PdfSource(type=PdfSourceType.ARXIV, url="https://arxiv.org/pdf/1.pdf", label="first"),
                PdfSource(type=PdfSourceType.ARXIV, url="https://mirror.test/1.pdf", label="second"),
            ],
            "2401.12345",
        )
        assert len(sources) == 1
        assert sources[0].label == "first"

    def test_no_arxiv_id_no_fallback(self):
        assert finalize_pdf_sources([], None) == []


class TestHttpSourcePlugin:
    @pytest.mark.asyncio
    async def test_authenticated_operation_fails_fast_without_token(self, settings):
        calls = []
        plugin = TokenPlugin(settings=settings, client=mock_client(lambda r: calls.append(r) or httpx.Response(200)))
        with pytest.raises(AuthenticationRequiredError):
            await plugin.get_record("1")
        assert calls == []

    @pytest.mark.asyncio
    async def test_token_resolution_order(self, settings):
        store = MemoryCredentialStore({"tokened_token": "from-store"})

        plugin = TokenPlugin(settings=settings, credentials=store)
        await plugin.initialize({"token": "from-options"})
        assert plugin.token == "from-options"

        plugin = TokenPlugin(settings=settings, credentials=store)
        await plugin.initialize()
        assert plugin.token == "from-store"

        plugin = TokenPlugin(settings=settings)
        await plugin.initialize()
        assert plugin.token is None
        assert not plugin.is_authenticated()

    @pytest.mark.asyncio
    async def test_bearer_header_sent_and_cleared_on_shutdown(self, settings):
        seen = []

        def handler(request):
            seen.append(request.headers.get("Authorization"))
            return httpx.Response(200)

        client = mock_client(handler)
        plugin = TokenPlugin(settings=settings, client=client, base_url="https://api.test")
        plugin.set_token("secret")
        await plugin.get_record("1")
        assert seen == ["Bearer secret"]

        await plugin.shutdown()
        assert plugin.token is None
        assert not client.is_closed  # injected clients stay open
        with pytest.raises(AuthenticationRequiredError):
            await plugin.get_record("1")

    @pytest.mark.asyncio
    async def test_throttle_response_marks_quota_exhausted(self, settings):
        responses = [httpx.Response(429, headers={"Retry-After": "4"}), httpx.Response(200)]
        plugin = TokenPlugin(settings=settings, client=mock_client(lambda r: responses.pop(0)), base_url="https://api.test")
        plugin.set_token("secret")

        with pytest.raises(httpx.HTTPStatusError):
            await plugin.get_record("1")
        status = plugin.get_rate_limit_status()
        assert status.remaining == 0
        assert status.retry_after == 4.0

        await plugin.get_record("1")
        assert plugin.get_rate_limit_status().remaining == plugin.default_quota

    @pytest.mark.asyncio
    async def test_owned_client_created_lazily_and_closed(self, settings):
        plugin = TokenPlugin(settings=settings, base_url="https://api.test")
        client = await plugin._get_client()
        assert client.headers["User-Agent"] == "bibsources-tests"
        await plugin.shutdown()
        assert client.is_closed
