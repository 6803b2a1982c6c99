"""
Edge-side client for the auth service's internal endpoints.

Every request body is serialized once, signed with HMAC-SHA256 over those exact
bytes and sent with the signature in X-HMAC-Sign. Requests are not retried.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from fastapi import status

from kaizen_gate.core.config import settings
from kaizen_gate.core.errors import GateError, SERVER_ERROR
from kaizen_gate.core.security import sign_body

logger = logging.getLogger("kaizen.auth_client")

SIGNATURE_HEADER = "X-HMAC-Sign"
LOGIN_PATH = "/internal/auth/license/login"
REFRESH_PATH = "/internal/auth/refresh"


@dataclass
class AuthResponse:
    """Parsed reply from the auth service."""
    status_code: int
    payload: Dict[str, Any]
    retry_after: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300 and self.payload.get("status") == "ok"


class AuthServiceClient:
    """
    Async HTTP client for the auth service.

    Uses httpx.AsyncClient with:
    - Request timeouts
    - HMAC body signatures
    - Opaque error mapping (502 on unusable replies, never upstream text)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        hmac_secret: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.AUTH_SERVICE_URL).rstrip("/")
        self.hmac_secret = hmac_secret if hmac_secret is not None else settings.EDGE_HMAC_SECRET
        self.timeout = timeout or settings.AUTH_SERVICE_TIMEOUT_SECONDS
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
                headers={"Content-Type": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _post_signed(self, path: str, body: Dict[str, Any]) -> AuthResponse:
        raw = json.dumps(body, separators=(",", ":")).encode("utf-8")
        headers = {SIGNATURE_HEADER: sign_body(raw, self.hmac_secret)}

        client = await self._get_client()
        try:
            response = await client.post(path, content=raw, headers=headers)
        except httpx.HTTPError as exc:
            logger.error(f"Auth service request to {path} failed: {exc.__class__.__name__}")
            raise GateError(status.HTTP_502_BAD_GATEWAY, SERVER_ERROR) from exc

        try:
            payload = response.json()
        except ValueError:
            logger.error(
                f"Auth service returned non-JSON for {path} (HTTP {response.status_code}): "
                f"{response.text[:400]!r}"
            )
            raise GateError(status.HTTP_502_BAD_GATEWAY, "bad-auth-response")

        if not isinstance(payload, dict):
            raise GateError(status.HTTP_502_BAD_GATEWAY, "bad-auth-response")
        return AuthResponse(
            status_code=response.status_code,
            payload=payload,
            retry_after=response.headers.get("Retry-After"),
        )

    async def license_login(
        self,
        license: str,
        client_ip: str,
        user_agent: str,
        edge_request_id: str,
    ) -> AuthResponse:
        body = {
            "license": license,
            "meta": {
                "clientIp": client_ip,
                "userAgent": user_agent,
                "edgeRequestId": edge_request_id,
            },
        }
        return await self._post_signed(LOGIN_PATH, body)

    async def refresh(self, refresh_token: str) -> AuthResponse:
        return await self._post_signed(REFRESH_PATH, {"refreshToken": refresh_token})
