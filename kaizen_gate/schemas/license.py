from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class LicenseLoginRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    # Non-string values are reported as missing-license.
    license: Optional[Any] = None


class LicenseLoginResponse(BaseModel):
    status: str = "ok"
    prefix: str


class LicenseValidateResponse(BaseModel):
    status: str = "ok"
    prefix: str
    exp: Optional[int] = None
