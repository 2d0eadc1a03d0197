import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    storage_backend: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str
    assets_bucket: str

    admin_emails: tuple[str, ...]
    history_reconcile_delay_ms: int
    doc_number_prefix: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _parse_allowlist(raw: str) -> tuple[str, ...]:
    return tuple(sorted({e.strip().lower() for e in raw.split(",") if e.strip()}))


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///doctrack.db"),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "nyc3"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        assets_bucket=_getenv("ASSETS_BUCKET", "lgu-assets"),
        admin_emails=_parse_allowlist(_getenv("ADMIN_EMAILS", "")),
        history_reconcile_delay_ms=int(_getenv("HISTORY_RECONCILE_DELAY_MS", "250")),
        doc_number_prefix=_getenv("DOC_NUMBER_PREFIX", "LGU"),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "STORAGE_BACKEND": s.storage_backend,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        "ASSETS_BUCKET": s.assets_bucket,
        # identity -> role mapping; everyone else is an encoder
        "ADMIN_EMAILS": s.admin_emails,
        "HISTORY_RECONCILE_DELAY_MS": s.history_reconcile_delay_ms,
        "DOC_NUMBER_PREFIX": s.doc_number_prefix,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # logo uploads only (5MB)
        "MAX_CONTENT_LENGTH": 5 * 1024 * 1024,
    }
