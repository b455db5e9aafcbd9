import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, model_validator

load_dotenv()


_TRUTHY_VALUES = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: str = "") -> bool:
    return os.getenv(name, default).lower() in _TRUTHY_VALUES


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    database_url: str | None = os.getenv("DATABASE_URL")
    db_pool_size: int = int(os.getenv("DB_POOL_SIZE", "5"))
    db_max_overflow: int = int(os.getenv("DB_MAX_OVERFLOW", "10"))
    db_pool_timeout: int = int(os.getenv("DB_POOL_TIMEOUT", "30"))
    db_pool_recycle: int = int(os.getenv("DB_POOL_RECYCLE", "1800"))

    # Branding
    brand_name: str = os.getenv("BRAND_NAME", "The Das Board")
    app_url: str = os.getenv("APP_URL", "http://localhost:8000")

    # Collaborator backends
    record_store_backend: str = os.getenv("RECORD_STORE_BACKEND", "sql")
    identity_backend: str = os.getenv("IDENTITY_BACKEND", "local")
    notifier_backend: str = os.getenv("NOTIFIER_BACKEND", "smtp")

    # SMTP
    smtp_host: str = os.getenv("SMTP_HOST") or "localhost"
    smtp_port: int = int(os.getenv("SMTP_PORT", "587"))
    smtp_username: str | None = os.getenv("SMTP_USERNAME") or None
    smtp_password: str | None = os.getenv("SMTP_PASSWORD") or None
    smtp_use_tls: bool = _env_bool("SMTP_USE_TLS", "true")
    smtp_use_ssl: bool = _env_bool("SMTP_USE_SSL")
    smtp_from_email: str = os.getenv("SMTP_FROM_EMAIL") or "noreply@thedasboard.com"
    smtp_from_name: str | None = os.getenv("SMTP_FROM_NAME") or None

    # Supabase (only read when a supabase backend is selected)
    supabase_url: str | None = os.getenv("SUPABASE_URL") or None
    supabase_secret_key: str | None = os.getenv("SB_SECRET_KEY") or None
    supabase_service_role_key: str | None = os.getenv("SUPABASE_SERVICE_ROLE_KEY") or None

    # Auth
    jwt_secret: str | None = os.getenv("JWT_SECRET")
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")

    # Provisioning
    lookup_retries: int = int(os.getenv("LOOKUP_RETRIES", "2"))
    lookup_retry_delay_seconds: float = float(os.getenv("LOOKUP_RETRY_DELAY", "0.25"))

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_json: bool = _env_bool("LOG_JSON", "true")

    # Runtime flags
    testing: bool = _env_bool("TESTING")

    @model_validator(mode="after")
    def require_database_url_when_not_testing(self) -> "Settings":
        if not self.testing and not (self.database_url and self.database_url.strip()):
            raise ValueError("DATABASE_URL must be set when TESTING is false")
        return self

    @model_validator(mode="after")
    def check_backend_names(self) -> "Settings":
        if self.record_store_backend not in {"sql", "supabase"}:
            raise ValueError("RECORD_STORE_BACKEND must be 'sql' or 'supabase'")
        if self.identity_backend not in {"local", "supabase"}:
            raise ValueError("IDENTITY_BACKEND must be 'local' or 'supabase'")
        if self.notifier_backend not in {"smtp", "celery", "disabled"}:
            raise ValueError("NOTIFIER_BACKEND must be 'smtp', 'celery' or 'disabled'")
        return self


settings = Settings()
