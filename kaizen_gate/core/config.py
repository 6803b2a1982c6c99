from typing import Optional, List
from urllib.parse import quote_plus

from pydantic import Field, AliasChoices, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Known insecure default values that must be changed in production
_INSECURE_JWT_SECRETS = {
    "change-me-jwt-secret-min-32-characters!!",
    "changeme",
    "secret",
    "development-secret",
}

_INSECURE_ALLOWED_ORIGINS_DEFAULTS = {
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
}

_VALID_SAMESITE = {"strict", "lax", "none"}


class Settings(BaseSettings):
    # Allow comma-separated env vars for list fields like ALLOWED_ORIGINS
    model_config = SettingsConfigDict(env_file=".env", env_parse_delimiter=",", extra="ignore")
    PROJECT_NAME: str = "Kaizen BI Gate"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # CORS
    # Accept either a JSON array or a comma-separated string; normalized by the validator below.
    ALLOWED_ORIGINS: List[str] | str = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"],
        validation_alias=AliasChoices("ALLOWED_ORIGINS", "CORS_ORIGIN"),
    )
    MAX_REQUEST_BYTES: int = 64 * 1024

    # Database settings (MySQL in production)
    MYSQL_HOST: str = "127.0.0.1"
    MYSQL_PORT: int = 3306
    MYSQL_USER: str = "kaizen"
    MYSQL_PASSWORD: str = ""
    MYSQL_DB: str = "kaizen"
    MYSQL_SSL_CA_PATH: Optional[str] = "./certs/server-ca.pem"
    MYSQL_SSL_CA_BASE64: Optional[str] = None
    MYSQL_SSL_REJECT_UNAUTHORIZED: bool = True

    # Full DB URL (preferred in CI/containers). If not provided, we build it from MYSQL_*.
    DATABASE_URL: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("DATABASE_URL", "SQLALCHEMY_DATABASE_URI"),
    )
    SQLALCHEMY_ECHO: bool = False

    # Connection pool and timeouts. Every store call is bounded so requests fail closed.
    DB_POOL_SIZE: int = Field(default=5, description="Number of persistent DB connections")
    DB_MAX_OVERFLOW: int = Field(default=5, description="Max additional connections under load")
    DB_POOL_TIMEOUT_SECONDS: int = 10
    DB_CONNECT_TIMEOUT_SECONDS: int = 10
    DB_QUERY_TIMEOUT_SECONDS: float = 15.0

    # License hashing
    AUTH_PEPPER: str = ""

    # Session tokens
    JWT_SECRET: str = Field(
        default="change-me-jwt-secret-min-32-characters!!",
        validation_alias=AliasChoices("JWT_SECRET", "JWT_VERIFY_SECRET"),
    )
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_TTL_SECONDS: int = 15 * 60
    REFRESH_TOKEN_TTL_SECONDS: int = 30 * 24 * 60 * 60

    # Edge -> auth service
    EDGE_HMAC_SECRET: str = ""
    AUTH_SERVICE_URL: str = "http://127.0.0.1:4001"
    AUTH_SERVICE_TIMEOUT_SECONDS: float = 15.0

    # Cookies
    JWT_COOKIE_DOMAIN: Optional[str] = None
    JWT_COOKIE_SECURE: bool = True
    JWT_COOKIE_SAMESITE: str = "strict"

    # Brute-force lockout
    LOGIN_MAX_ATTEMPTS: int = 5
    LOGIN_ATTEMPT_WINDOW_MINUTES: int = 15

    # Edge request limiter (slowapi)
    RATE_LIMIT_ENABLED: bool = True
    EDGE_AUTH_RATE_LIMIT: str = "20/minute"

    @computed_field
    @property
    def IS_PRODUCTION(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @computed_field
    @property
    def COOKIE_NAME_ACCESS(self) -> str:
        """__Host- prefixed names are only valid on secure cookies."""
        if self.IS_PRODUCTION and self.JWT_COOKIE_SECURE:
            return "__Host-kaizen_at"
        return "kaizen_at"

    @computed_field
    @property
    def COOKIE_NAME_REFRESH(self) -> str:
        if self.IS_PRODUCTION and self.JWT_COOKIE_SECURE:
            return "__Host-kaizen_rt"
        return "kaizen_rt"

    def model_post_init(self, __context):
        """
        Validate configuration on startup. In production, fail hard if insecure defaults are detected.
        """
        # Fill DATABASE_URL if it wasn't provided explicitly
        if not self.DATABASE_URL:
            self.DATABASE_URL = (
                f"mysql+aiomysql://{quote_plus(self.MYSQL_USER)}:{quote_plus(self.MYSQL_PASSWORD)}"
                f"@{self.MYSQL_HOST}:{self.MYSQL_PORT}/{self.MYSQL_DB}"
            )

        errors = []

        if self.JWT_COOKIE_SAMESITE.lower() not in _VALID_SAMESITE:
            errors.append("JWT_COOKIE_SAMESITE must be one of strict, lax, none.")

        if self.LOGIN_MAX_ATTEMPTS < 1 or self.LOGIN_ATTEMPT_WINDOW_MINUTES < 1:
            errors.append("LOGIN_MAX_ATTEMPTS and LOGIN_ATTEMPT_WINDOW_MINUTES must be positive.")

        if self.IS_PRODUCTION:
            if self.JWT_SECRET in _INSECURE_JWT_SECRETS or len(self.JWT_SECRET) < 32:
                errors.append(
                    "JWT_SECRET is insecure. Generate a new key with: "
                    "python -c \"import secrets; print(secrets.token_urlsafe(48))\""
                )
            if not self.AUTH_PEPPER.strip():
                errors.append("AUTH_PEPPER is required in production.")
            if not self.EDGE_HMAC_SECRET.strip():
                errors.append("EDGE_HMAC_SECRET is required in production.")
            if not self.JWT_COOKIE_SECURE:
                errors.append("JWT_COOKIE_SECURE must be true in production.")
            if self.DEBUG:
                errors.append("DEBUG must be False in production.")
            if not self.ALLOWED_ORIGINS or set(self.ALLOWED_ORIGINS).issubset(_INSECURE_ALLOWED_ORIGINS_DEFAULTS):
                errors.append(
                    "ALLOWED_ORIGINS must be set to your domain(s) in production (not localhost defaults)."
                )

        # Fail hard with all errors at once for easier debugging
        if errors:
            error_msg = "Configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
            raise ValueError(error_msg)

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def _split_origins(cls, value):
        if isinstance(value, str):
            return [v.strip() for v in value.split(",") if v.strip()]
        return value

    @property
    def login_window_seconds(self) -> int:
        return self.LOGIN_ATTEMPT_WINDOW_MINUTES * 60


settings = Settings()
