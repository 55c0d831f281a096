"""
Tenant resolution: host parsing, resolver lookups and the tenant middleware.
"""
from types import SimpleNamespace
from unittest.mock import MagicMock
import time

import redis

from portal.middleware.rate_limit import RateLimitMiddleware
from portal.services.tenant_resolver import (
    extract_subdomain,
    get_tenant_hosts,
    is_valid_domain,
    is_valid_subdomain,
    resolve_tenant_by_host,
    resolve_tenant_by_identifier,
)

from conftest import auth_headers


def test_extract_subdomain():
    assert extract_subdomain("acme.portal.local") == "acme"
    assert extract_subdomain("acme.portal.local:8000") == "acme"
    assert extract_subdomain("www.acme.portal.local") == "acme"
    assert extract_subdomain("ACME.Portal.Local") == "acme"


def test_extract_subdomain_ignores_platform_hosts():
    assert extract_subdomain("www.portal.local") is None
    assert extract_subdomain("api.portal.local") is None
    assert extract_subdomain("app.portal.local") is None
    assert extract_subdomain("portal.local") is None
    assert extract_subdomain("localhost:5173") is None


def test_domain_and_subdomain_validation():
    assert is_valid_domain("crm.acme.no")
    assert not is_valid_domain("acme")
    assert not is_valid_domain("bad domain.com")
    assert is_valid_subdomain("acme-2")
    assert not is_valid_subdomain("-acme")
    assert not is_valid_subdomain("")


def test_get_tenant_hosts(seed):
    assert get_tenant_hosts(seed.acme) == ["crm.acme.no", "acme", "localhost:5173"]
    assert get_tenant_hosts(seed.globex) == ["globex"]


def test_resolve_by_host_order(db, seed):
    assert resolve_tenant_by_host(db, "crm.acme.no").id == seed.acme.id
    assert resolve_tenant_by_host(db, "globex.portal.local").id == seed.globex.id
    assert resolve_tenant_by_host(db, "localhost:5173").id == seed.acme.id
    assert resolve_tenant_by_host(db, "nobody.portal.local") is None
    assert resolve_tenant_by_host(db, "") is None


def test_resolve_by_identifier(db, seed):
    assert resolve_tenant_by_identifier(db, "acme").id == seed.acme.id
    assert resolve_tenant_by_identifier(db, seed.globex.id).id == seed.globex.id
    assert resolve_tenant_by_identifier(db, "missing") is None


class TestTenantMiddleware:
    def test_missing_identifier(self, client, seed):
        response = client.get("/api/v1/companies")
        assert response.status_code == 400
        assert response.json()["type"] == "tenant_required"

    def test_unknown_slug(self, client, seed):
        response = client.get("/api/v1/companies", headers={"X-Tenant-Slug": "nope"})
        assert response.status_code == 404
        assert response.json()["type"] == "tenant_not_found"

    def test_unknown_subdomain(self, client, seed):
        response = client.get("/api/v1/companies", headers={"Host": "nope.portal.local"})
        assert response.status_code == 404

    def test_inactive_tenant(self, client, seed):
        response = client.get("/api/v1/companies", headers={"X-Tenant-Slug": "dormant"})
        assert response.status_code == 403
        assert response.json()["type"] == "tenant_inactive"

    def test_resolves_by_subdomain_host(self, client, seed):
        headers = auth_headers(seed.owner, seed.acme)
        del headers["X-Tenant-Slug"]
        headers["Host"] = "acme.portal.local"
        response = client.get("/api/v1/companies", headers=headers)
        assert response.status_code == 200

    def test_resolves_by_custom_domain(self, client, seed):
        headers = auth_headers(seed.owner, seed.acme)
        del headers["X-Tenant-Slug"]
        headers["Host"] = "crm.acme.no"
        response = client.get("/api/v1/auth/me", headers=headers)
        assert response.status_code == 200
        assert response.json()["tenant_id"] == seed.acme.id

    def test_excluded_paths_skip_tenant(self, client):
        assert client.get("/health").status_code == 200
        assert client.get("/").status_code == 200

    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-Id": "req-123"})
        assert response.headers["X-Request-Id"] == "req-123"
        assert "X-Process-Time" in response.headers

    def test_request_id_generated(self, client):
        response = client.get("/health")
        assert len(response.headers["X-Request-Id"]) == 36


class TestTokenBinding:
    def test_token_from_other_tenant_is_rejected(self, client, seed):
        headers = auth_headers(seed.owner, seed.acme, token_tenant=seed.globex)
        response = client.get("/api/v1/companies", headers=headers)
        assert response.status_code == 403
        assert response.json()["type"] == "tenant_isolation_error"

    def test_missing_token(self, client, seed):
        response = client.get("/api/v1/companies", headers={"X-Tenant-Slug": "acme"})
        assert response.status_code == 401
        assert response.json()["type"] == "authentication_error"

    def test_garbage_token(self, client, seed):
        response = client.get(
            "/api/v1/companies",
            headers={"X-Tenant-Slug": "acme", "Authorization": "Bearer not-a-jwt"},
        )
        assert response.status_code == 401

    def test_non_member_is_denied(self, client, seed):
        response = client.get("/api/v1/companies", headers=auth_headers(seed.globex_admin, seed.acme))
        assert response.status_code == 403
        assert response.json()["type"] == "permission_denied"

    def test_platform_admin_is_member_everywhere(self, client, seed):
        response = client.get("/api/v1/companies", headers=auth_headers(seed.platform, seed.globex))
        assert response.status_code == 200


class TestTenantRateLimit:
    TENANT = SimpleNamespace(id="t1", slug="acme", rate_limit_per_minute=60, rate_limit_burst=2)

    def limiter(self, client):
        return RateLimitMiddleware(app=MagicMock(), redis_client=client)

    def test_first_request_fills_bucket(self):
        client = MagicMock()
        client.get.return_value = None
        assert self.limiter(client)._check_rate_limit(self.TENANT) == (True, 0)
        client.setex.assert_any_call("rate_limit:t1", 60, 1)

    def test_empty_bucket_is_limited(self):
        client = MagicMock()
        client.get.side_effect = ["0", str(time.time())]
        allowed, retry_after = self.limiter(client)._check_rate_limit(self.TENANT)
        assert allowed is False
        assert retry_after >= 1

    def test_redis_errors_fail_open(self):
        client = MagicMock()
        client.get.side_effect = redis.ConnectionError("down")
        assert self.limiter(client)._check_rate_limit(self.TENANT) == (True, 0)
