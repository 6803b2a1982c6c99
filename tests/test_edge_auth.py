"""
Tests for kaizen_gate/api/edge.py - cookie sessions on the browser-facing edge.

The edge reaches the auth service in-process (see conftest.edge_client), so these
run the full login path: edge -> signed internal call -> store.
"""
import httpx
import pytest
from httpx import AsyncClient, ASGITransport

from tests.utils.licenses import ACME_LICENSE, EXPIRED_LICENSE, HMAC_SECRET, UNKNOWN_LICENSE


def _set_cookie_headers(response) -> dict:
    """Set-Cookie headers keyed by cookie name, lowercased for attribute checks."""
    cookies = {}
    for header in response.headers.get_list("set-cookie"):
        name = header.split("=", 1)[0]
        cookies[name] = header.lower()
    return cookies


@pytest.fixture
def edge_with_upstream(test_settings):
    """Build an edge client whose auth service is a stub transport."""
    from kaizen_gate.edge_main import create_edge_app
    from kaizen_gate.services.auth_client import AuthServiceClient

    def _build(handler):
        upstream = AuthServiceClient(
            base_url="http://auth",
            hmac_secret=HMAC_SECRET,
            timeout=5.0,
            transport=httpx.MockTransport(handler),
        )
        app = create_edge_app(config=test_settings, auth_client=upstream)
        return AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver")

    return _build


class TestEdgeLogin:

    @pytest.mark.asyncio
    async def test_login_sets_session_cookies(self, edge_client, seeded):
        response = await edge_client.post("/auth/license/login", json={"license": ACME_LICENSE})

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "prefix": "ACME"}

        cookies = _set_cookie_headers(response)
        assert set(cookies) == {"kaizen_at", "kaizen_rt"}
        for header in cookies.values():
            assert "httponly" in header
            assert "samesite=strict" in header
            assert "path=/" in header
            assert "; secure" not in header
        assert "max-age=900" in cookies["kaizen_at"]
        assert "max-age=2592000" in cookies["kaizen_rt"]

    @pytest.mark.asyncio
    async def test_tokens_never_appear_in_body(self, edge_client, seeded):
        response = await edge_client.post("/auth/login", json={"license": ACME_LICENSE})

        assert response.status_code == 200
        assert "tokens" not in response.json()

    @pytest.mark.asyncio
    async def test_authorization_failure_is_relayed(self, edge_client, seeded):
        response = await edge_client.post("/auth/license/login", json={"license": EXPIRED_LICENSE})

        assert response.status_code == 401
        assert response.json()["status"] == "expired"
        assert "set-cookie" not in response.headers

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body, expected", [
        ({"license": "nope"}, "invalid-license"),
        ({"license": ["ACME"]}, "missing-license"),
        ({}, "missing-license"),
    ])
    async def test_input_errors_are_relayed(self, edge_client, seeded, body, expected):
        response = await edge_client.post("/auth/license/login", json=body)

        assert response.status_code == 400
        assert response.json()["status"] == expected

    @pytest.mark.asyncio
    async def test_lockout_is_relayed_with_until(self, edge_client, seeded):
        for _ in range(5):
            await edge_client.post("/auth/license/login", json={"license": UNKNOWN_LICENSE})

        response = await edge_client.post("/auth/license/login", json={"license": ACME_LICENSE})

        assert response.status_code == 429
        body = response.json()
        assert body["status"] == "rate-limited"
        assert body["until"].endswith("Z")
        assert "Retry-After" in response.headers

    @pytest.mark.asyncio
    async def test_request_rate_limit(self, edge_client, seeded):
        """The edge's own per-IP request limit answers before the auth service is asked."""
        for _ in range(20):
            response = await edge_client.post("/auth/license/login", json={"license": "bad"})
            assert response.status_code == 400

        response = await edge_client.post("/auth/license/login", json={"license": "bad"})

        assert response.status_code == 429
        body = response.json()
        assert body["status"] == "rate-limited"
        assert "retryAfter" in body
        assert "Retry-After" in response.headers


class TestEdgeSession:

    @pytest.mark.asyncio
    async def test_me_after_login(self, edge_client, seeded):
        await edge_client.post("/auth/license/login", json={"license": ACME_LICENSE})

        response = await edge_client.get("/auth/me")

        assert response.status_code == 200
        assert response.json() == {
            "status": "ok",
            "user": {"id": str(seeded.acme.license_id), "tenantId": "ACME", "scope": ["dash:view"]},
        }

    @pytest.mark.asyncio
    async def test_me_without_cookies(self, edge_client):
        response = await edge_client.get("/auth/me")

        assert response.status_code == 401
        assert response.json()["status"] == "no-session"

    @pytest.mark.asyncio
    async def test_me_refreshes_from_refresh_cookie(self, edge_client, seeded, test_settings):
        """With only a refresh cookie the pair is renewed and both cookies re-set."""
        from kaizen_gate.core.security import SessionClaims, create_token_pair

        pair = create_token_pair(SessionClaims(sub=str(seeded.acme.license_id), tenant_id="ACME"), test_settings)
        edge_client.cookies.set("kaizen_rt", pair.refresh_token)

        response = await edge_client.get("/auth/me")

        assert response.status_code == 200
        assert response.json()["user"]["tenantId"] == "ACME"
        assert set(_set_cookie_headers(response)) == {"kaizen_at", "kaizen_rt"}

    @pytest.mark.asyncio
    async def test_me_with_invalid_refresh_cookie(self, edge_client, seeded):
        edge_client.cookies.set("kaizen_rt", "not-a-token")

        response = await edge_client.get("/auth/me")

        assert response.status_code == 401
        assert response.json()["status"] == "refresh-failed"

    @pytest.mark.asyncio
    async def test_me_refresh_for_revoked_license(self, edge_client, seeded, test_settings):
        from kaizen_gate.core.security import SessionClaims, create_token_pair

        pair = create_token_pair(SessionClaims(sub=str(seeded.revoked.license_id), tenant_id="RVKD"), test_settings)
        edge_client.cookies.set("kaizen_rt", pair.refresh_token)

        response = await edge_client.get("/auth/me")

        assert response.status_code == 401
        assert response.json()["status"] == "refresh-failed"

    @pytest.mark.asyncio
    async def test_logout_clears_cookies(self, edge_client, seeded):
        await edge_client.post("/auth/license/login", json={"license": ACME_LICENSE})

        response = await edge_client.post("/auth/logout")

        assert response.status_code == 204
        cookies = _set_cookie_headers(response)
        assert set(cookies) == {"kaizen_at", "kaizen_rt"}
        for header in cookies.values():
            assert "max-age=0" in header

    @pytest.mark.asyncio
    async def test_logout_without_session(self, edge_client):
        response = await edge_client.post("/auth/logout")

        assert response.status_code == 204


class TestUpstreamFailures:
    """Unusable auth-service replies become opaque 502s."""

    @pytest.mark.asyncio
    async def test_unreachable_auth_service(self, edge_with_upstream):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with edge_with_upstream(handler) as client:
            response = await client.post("/auth/license/login", json={"license": ACME_LICENSE})

        assert response.status_code == 502
        assert response.json()["status"] == "server-error"

    @pytest.mark.asyncio
    async def test_non_json_reply(self, edge_with_upstream):
        def handler(request):
            return httpx.Response(200, text="<html>gateway</html>")

        async with edge_with_upstream(handler) as client:
            response = await client.post("/auth/license/login", json={"license": ACME_LICENSE})

        assert response.status_code == 502
        assert response.json()["status"] == "bad-auth-response"

    @pytest.mark.asyncio
    async def test_requests_are_signed(self, edge_with_upstream):
        from kaizen_gate.core.security import verify_body_signature

        seen = {}

        def handler(request):
            seen["valid"] = verify_body_signature(request.content, request.headers.get("X-HMAC-Sign"), HMAC_SECRET)
            seen["path"] = request.url.path
            return httpx.Response(401, json={"status": "mismatch_or_not_found"})

        async with edge_with_upstream(handler) as client:
            response = await client.post("/auth/license/login", json={"license": ACME_LICENSE})

        assert response.status_code == 401
        assert seen == {"valid": True, "path": "/internal/auth/license/login"}

    @pytest.mark.asyncio
    async def test_health_does_not_call_upstream(self, edge_with_upstream):
        def handler(request):
            raise AssertionError("health must not reach the auth service")

        async with edge_with_upstream(handler) as client:
            response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestEdgeRequestLimitSettings:
    """The edge's request limit follows the settings it was built with."""

    async def _post_bad_logins(self, config, auth_app, count):
        from kaizen_gate.edge_main import create_edge_app
        from kaizen_gate.services.auth_client import AuthServiceClient

        upstream = AuthServiceClient(
            base_url="http://auth",
            hmac_secret=HMAC_SECRET,
            timeout=5.0,
            transport=ASGITransport(app=auth_app),
        )
        app = create_edge_app(config=config, auth_client=upstream)
        codes = []
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
            for _ in range(count):
                response = await client.post("/auth/license/login", json={"license": "bad"})
                codes.append(response.status_code)
        await upstream.close()
        return codes

    @pytest.mark.asyncio
    async def test_configured_limit_is_applied(self, test_settings, auth_app):
        config = test_settings.model_copy(update={"EDGE_AUTH_RATE_LIMIT": "2/minute"})

        codes = await self._post_bad_logins(config, auth_app, 3)

        assert codes == [400, 400, 429]

    @pytest.mark.asyncio
    async def test_limiter_can_be_disabled(self, test_settings, auth_app):
        config = test_settings.model_copy(update={"RATE_LIMIT_ENABLED": False})

        codes = await self._post_bad_logins(config, auth_app, 25)

        assert set(codes) == {400}
