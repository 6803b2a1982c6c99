from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ReportOut(BaseModel):
    code: str
    name: str
    is_default: bool = Field(serialization_alias="isDefault")
    url: str


class ClientOut(BaseModel):
    prefix: str
    name: str


class LicenseStatusOut(BaseModel):
    status: str
    expiry_date: Optional[str] = Field(default=None, serialization_alias="expiryDate")
    expires_at: Optional[str] = Field(default=None, serialization_alias="expiresAt")


class ClientReportsResponse(BaseModel):
    """Shared by POST /reports/options and GET /reports/client-info."""
    model_config = ConfigDict(populate_by_name=True)

    status: str = "ok"
    client: ClientOut
    license: LicenseStatusOut
    default_report_code: Optional[str] = Field(default=None, serialization_alias="defaultReportCode")
    reports: List[ReportOut] = []


class ReportUrlResponse(BaseModel):
    status: str = "ok"
    url: str
    report_code: str = Field(serialization_alias="reportCode")
