from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional
import hashlib
import hmac

from jose import jwt, JWTError

from kaizen_gate.core.config import Settings, settings as default_settings

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"
DEFAULT_SCOPE = ["dash:view"]


@dataclass
class SessionClaims:
    """Claims minted for a license session. Never persisted server-side."""
    sub: str
    tenant_id: str
    scope: list[str] = field(default_factory=lambda: list(DEFAULT_SCOPE))
    exp: Optional[int] = None

    def as_payload(self) -> dict:
        return {"sub": self.sub, "tenant_id": self.tenant_id, "scope": list(self.scope)}

    @property
    def license_id(self) -> Optional[int]:
        try:
            return int(self.sub)
        except (TypeError, ValueError):
            return None


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    access_ttl: int
    refresh_ttl: int


def _encode(claims: SessionClaims, token_type: str, ttl_seconds: int, config: Settings) -> str:
    now = datetime.utcnow()
    to_encode = {
        **claims.as_payload(),
        "type": token_type,
        "iat": now,
        "exp": now + timedelta(seconds=ttl_seconds),
    }
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def create_token_pair(claims: SessionClaims, config: Settings = default_settings) -> TokenPair:
    """
    Mint a short-lived access token and a longer-lived refresh token.

    Args:
        claims: Subject (license id), tenant (client prefix) and scope
        config: Settings carrying the signing secret and lifetimes

    Returns:
        TokenPair with both encoded JWTs and their lifetimes in seconds
    """
    return TokenPair(
        access_token=_encode(claims, TOKEN_TYPE_ACCESS, config.ACCESS_TOKEN_TTL_SECONDS, config),
        refresh_token=_encode(claims, TOKEN_TYPE_REFRESH, config.REFRESH_TOKEN_TTL_SECONDS, config),
        access_ttl=config.ACCESS_TOKEN_TTL_SECONDS,
        refresh_ttl=config.REFRESH_TOKEN_TTL_SECONDS,
    )


def decode_token(
    token: Optional[str],
    expected_type: str,
    config: Settings = default_settings,
) -> Optional[SessionClaims]:
    """
    Verify a session token locally.

    Returns:
        SessionClaims if the signature, expiry and token type check out, None otherwise
    """
    if not token:
        return None
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except JWTError:
        return None

    if payload.get("type") != expected_type:
        return None
    sub = payload.get("sub")
    tenant_id = payload.get("tenant_id")
    if not sub or not tenant_id:
        return None

    scope = payload.get("scope") or []
    return SessionClaims(
        sub=str(sub),
        tenant_id=str(tenant_id),
        scope=[str(s) for s in scope],
        exp=payload.get("exp"),
    )


def sign_body(body: bytes, secret: str) -> str:
    """HMAC-SHA256 hex signature over the exact request body bytes."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_body_signature(body: bytes, signature: Optional[str], secret: str) -> bool:
    if not signature or not secret:
        return False
    return hmac.compare_digest(sign_body(body, secret), signature.strip().lower())


def hash_client_ip(ip: Optional[str]) -> str:
    """
    SHA256 of the client IP. Audit rows and lockout keys store only this.
    """
    return hashlib.sha256((ip or "unknown").encode("utf-8")).hexdigest()
