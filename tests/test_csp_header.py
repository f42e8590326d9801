"""Tests for the CSP header middleware and tenant router."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from starlette.responses import Response

from csp_engine.config.registry_source import RegistrySourceError
from csp_engine.middleware.csp_header import CspHeaderMiddleware
from csp_engine.middleware.pipeline import RequestContext
from csp_engine.middleware.router import TenantRouter, tenant_key_from_host
from csp_engine.models.registry import DirectiveRegistry
from csp_engine.nonce import NonceManager
from tests.helpers.requests import make_request

CSP = "content-security-policy"


def _make_context(registry: DirectiveRegistry | None = None, nonce: str | None = None) -> RequestContext:
    return RequestContext(tenant_key="www.example.com", registry=registry, csp_nonce=nonce)


# ── Header injection ─────────────────────────────────────────────────────


class TestCspHeaderMiddleware:
    @pytest.mark.asyncio
    async def test_header_set(self):
        mw = CspHeaderMiddleware()
        ctx = _make_context(DirectiveRegistry(enabled=True, default_src="'self'"))

        result = await mw.process_response(Response(content="ok"), ctx)

        assert result.headers[CSP] == "default-src 'self'"

    @pytest.mark.asyncio
    async def test_uses_request_nonce(self):
        mw = CspHeaderMiddleware()
        registry = DirectiveRegistry(enabled=True, default_src="'self'", script_src="'self'", enable_nonce=True)
        ctx = _make_context(registry, nonce="XYZ")

        result = await mw.process_response(Response(content="ok"), ctx)

        assert result.headers[CSP] == "default-src 'self'; script-src 'self' 'nonce-XYZ'"

    @pytest.mark.asyncio
    async def test_creates_nonce_on_scope(self):
        mw = CspHeaderMiddleware(nonce_manager=NonceManager(nonce_length=16))
        registry = DirectiveRegistry(enabled=True, script_src="'self'", enable_nonce=True)
        ctx = _make_context(registry)

        result = await mw.process_response(Response(content="ok"), ctx)

        assert ctx.csp_nonce
        assert f"'nonce-{ctx.csp_nonce}'" in result.headers[CSP]

    @pytest.mark.asyncio
    async def test_replaces_existing_header(self):
        mw = CspHeaderMiddleware()
        ctx = _make_context(DirectiveRegistry(enabled=True, default_src="'self'"))
        response = Response(content="ok", headers={"Content-Security-Policy": "default-src *"})

        result = await mw.process_response(response, ctx)

        values = result.headers.getlist(CSP)
        assert values == ["default-src 'self'"]

    @pytest.mark.asyncio
    async def test_report_only_header_name(self):
        mw = CspHeaderMiddleware(header_name="Content-Security-Policy-Report-Only")
        ctx = _make_context(DirectiveRegistry(enabled=True, default_src="'self'"))

        result = await mw.process_response(Response(content="ok"), ctx)

        assert result.headers["content-security-policy-report-only"] == "default-src 'self'"
        assert CSP not in result.headers

    @pytest.mark.asyncio
    async def test_no_registry_no_header(self):
        result = await CspHeaderMiddleware().process_response(Response(content="ok"), _make_context())
        assert CSP not in result.headers

    @pytest.mark.asyncio
    async def test_disabled_registry_keeps_existing_header(self):
        """A disabled CMS policy leaves any platform-level header alone."""
        ctx = _make_context(DirectiveRegistry(enabled=False, default_src="'self'"))
        response = Response(content="ok", headers={"Content-Security-Policy": "default-src *"})

        result = await CspHeaderMiddleware().process_response(response, ctx)

        assert result.headers[CSP] == "default-src *"

    @pytest.mark.asyncio
    async def test_empty_header_not_set(self):
        ctx = _make_context(DirectiveRegistry(enabled=True))
        result = await CspHeaderMiddleware().process_response(Response(content="ok"), ctx)
        assert CSP not in result.headers

    @pytest.mark.asyncio
    async def test_skipped_request(self):
        ctx = _make_context(DirectiveRegistry(enabled=True, default_src="'self'"))
        ctx.skip_csp = True
        result = await CspHeaderMiddleware().process_response(Response(content="ok"), ctx)
        assert CSP not in result.headers

    @pytest.mark.asyncio
    async def test_random_source_failure_fails_open(self):
        manager = MagicMock(spec=NonceManager)
        manager.provider_for.return_value = MagicMock(side_effect=OSError("no entropy"))
        mw = CspHeaderMiddleware(nonce_manager=manager)
        ctx = _make_context(DirectiveRegistry(enabled=True, script_src="'self'", enable_nonce=True))

        result = await mw.process_response(Response(content="ok", status_code=200), ctx)

        assert result.status_code == 200
        assert CSP not in result.headers

    @pytest.mark.asyncio
    async def test_header_write_failure_returns_response(self):
        mw = CspHeaderMiddleware()
        ctx = _make_context(DirectiveRegistry(enabled=True, default_src="'self'"))
        response = MagicMock()
        response.headers.__contains__.return_value = False
        response.headers.__setitem__.side_effect = RuntimeError("headers already sent")

        result = await mw.process_response(response, ctx)

        assert result is response


# ── Tenant router ────────────────────────────────────────────────────────


class TestTenantRouter:
    def test_tenant_key_from_host(self):
        assert tenant_key_from_host("Shop.Example.com:8443", "default") == "shop.example.com"
        assert tenant_key_from_host("", "default") == "default"

    @pytest.mark.asyncio
    async def test_attaches_registry(self, write_registry_file):
        write_registry_file({
            "default": {"Enabled": True, "default-src": "'self'"},
            "tenants": {"shop.example.com": {"img-src": "'self' data:"}},
        })
        ctx = RequestContext()

        result = await TenantRouter().process_request(make_request("/", host="shop.example.com"), ctx)

        assert result is None
        assert ctx.tenant_key == "shop.example.com"
        assert ctx.registry == DirectiveRegistry(enabled=True, default_src="'self'", img_src="'self' data:")

    @pytest.mark.asyncio
    async def test_skipped_request_still_gets_registry(self, write_registry_file):
        write_registry_file({"default": {"Enabled": True, "default-src": "'self'"}})
        ctx = RequestContext()

        await TenantRouter().process_request(make_request("/static/app.js"), ctx)

        assert ctx.skip_csp is True
        assert ctx.registry == DirectiveRegistry(enabled=True, default_src="'self'")

    @pytest.mark.asyncio
    async def test_source_error_leaves_registry_unset(self):
        provider = MagicMock()
        provider.get_registry.side_effect = RegistrySourceError("bad yaml")
        ctx = RequestContext()

        with patch("csp_engine.middleware.router.get_settings_provider", return_value=provider):
            result = await TenantRouter().process_request(make_request("/"), ctx)

        assert result is None
        assert ctx.registry is None
