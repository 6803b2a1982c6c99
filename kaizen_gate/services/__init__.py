# Services Package
# Store-facing services of the auth service, plus the edge's client for it

from kaizen_gate.services.auth_client import AuthResponse, AuthServiceClient
from kaizen_gate.services.license_issuance import IssuedLicense, issue_license
from kaizen_gate.services.license_resolver import LicenseResolver
from kaizen_gate.services.login_service import LoginOutcome, LoginService
from kaizen_gate.services.login_throttle import LoginThrottleStore

__all__ = [
    "AuthResponse",
    "AuthServiceClient",
    "IssuedLicense",
    "issue_license",
    "LicenseResolver",
    "LoginOutcome",
    "LoginService",
    "LoginThrottleStore",
]
