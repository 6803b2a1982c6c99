from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class EdgeMeta(BaseModel):
    client_ip: str = Field(default="", alias="clientIp")
    user_agent: str = Field(default="", alias="userAgent")
    edge_request_id: Optional[str] = Field(default=None, alias="edgeRequestId")


class InternalLoginRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    license: Optional[Any] = None
    meta: EdgeMeta = Field(default_factory=EdgeMeta)


class InternalRefreshRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")


class Claims(BaseModel):
    sub: str
    tenant_id: str = Field(serialization_alias="tenantId")
    scope: List[str]


class Tokens(BaseModel):
    access_token: str = Field(serialization_alias="accessToken")
    refresh_token: str = Field(serialization_alias="refreshToken")


class InternalTokenResponse(BaseModel):
    status: str = "ok"
    prefix: str
    claims: Claims
    tokens: Tokens
    access_ttl: int = Field(serialization_alias="accessTtl")
    refresh_ttl: int = Field(serialization_alias="refreshTtl")


class SessionUser(BaseModel):
    id: str
    tenant_id: str = Field(serialization_alias="tenantId")
    scope: List[str] = []


class SessionResponse(BaseModel):
    status: str = "ok"
    user: SessionUser
