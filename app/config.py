import warnings
from typing import Optional
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ── Known insecure default keys (must never be used in production) ──
_INSECURE_KEYS = {
    "change_this",
    "change_this_to_a_secure_random_string",
    "secret",
}


class Settings(BaseSettings):
    APP_NAME: str = "LinkBio"
    APP_ENV: str = "development"
    API_V1_STR: str = "/api/v1"
    SECRET_KEY: str = "change_this"
    ALGORITHM: str = "HS256"

    # Internal service token for scheduler / admin triggers
    ADMIN_SERVICE_TOKEN: str = ""

    # CORS
    BACKEND_CORS_ORIGINS: str = ""

    # Database
    DATABASE_URL: Optional[str] = None
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "linkbio"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800  # seconds
    DB_ECHO: bool = False

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/0"

    # Rate limiting (DNS-triggering endpoints)
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_REDIS_URL: str = "redis://localhost:6379/1"
    RATE_LIMIT_VERIFY_PER_USER: int = 10   # verify requests / minute per user

    # Custom domains
    SERVER_IP: str = "72.61.227.134"         # A record target for custom domains
    DOMAIN_APP_NAME: str = "linkbio"         # drives TXT record name / value prefix
    MAIN_DOMAIN: str = "links.dalvi.cloud"   # dashboard host, never routed as a custom domain
    DOH_RESOLVER_URL: str = "https://cloudflare-dns.com/dns-query"
    DNS_LOOKUP_TIMEOUT_SECONDS: float = 5.0
    DOMAIN_RECHECK_DELAY_SECONDS: float = 0.1
    DOMAIN_RECHECK_INTERVAL_SECONDS: int = 60 * 60

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @model_validator(mode="after")
    def _validate_production_security(self) -> "Settings":
        """Block startup if critical secrets are insecure in production / staging."""
        if self.APP_ENV in ("production", "staging"):
            if self.SECRET_KEY in _INSECURE_KEYS or len(self.SECRET_KEY) < 32:
                raise ValueError(
                    f"SECRET_KEY is insecure ('{self.SECRET_KEY[:8]}…'). "
                    "Set a strong random key (≥ 32 chars) in .env or environment. "
                    f"Hint: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
                )
            if not self.DATABASE_URL and self.POSTGRES_PASSWORD in ("postgres", ""):
                raise ValueError(
                    "POSTGRES_PASSWORD is set to default 'postgres'. "
                    "Set a strong password in .env or environment."
                )
            if not self.ADMIN_SERVICE_TOKEN:
                warnings.warn(
                    "ADMIN_SERVICE_TOKEN is empty; the admin recheck endpoint is unprotected.",
                    UserWarning,
                    stacklevel=2,
                )
        return self

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_SERVER}/{self.POSTGRES_DB}"
        )

    @property
    def TXT_RECORD_NAME(self) -> str:
        return f"_{self.DOMAIN_APP_NAME}"

    @property
    def TXT_VERIFY_PREFIX(self) -> str:
        return f"{self.DOMAIN_APP_NAME}_verify"

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def is_staging(self) -> bool:
        return self.APP_ENV == "staging"

settings = Settings()
