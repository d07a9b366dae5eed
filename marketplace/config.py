"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from marketplace.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

DEFAULT_ALLOWED_ORIGINS = "http://localhost:3000"
DEFAULT_VIDEO_BUCKET = "teach-niche-videos"


@dataclass(frozen=True)
class Settings:
  """Typed settings for the marketplace API."""

  environment: str
  debug: bool
  app_version: str
  allowed_origins: tuple[str, ...]
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  log_policy_denials: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  gcp_project_id: str | None
  gcs_storage_host: str | None
  video_bucket: str
  video_url_ttl_seconds: int
  platform_fee_percent: int
  firebase_project_id: str | None
  firebase_service_account_json_path: str | None


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  origins = [origin.strip() for origin in (raw or DEFAULT_ALLOWED_ORIGINS).split(",") if origin.strip()]

  if not origins:
    raise ValueError("MARKETPLACE_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("MARKETPLACE_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None, *, default: bool = False) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None or raw.strip() == "":
    return default

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _database_dsn() -> str | None:
  # Support fallback to DATABASE_URL for hosted Postgres providers.
  return _optional_str(os.getenv("MARKETPLACE_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("MARKETPLACE_ENV", "development").strip().lower()
  debug = _parse_bool(os.getenv("MARKETPLACE_DEBUG"))

  log_max_bytes = _positive_int("MARKETPLACE_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("MARKETPLACE_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("MARKETPLACE_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # Signed video links default to four hours.
  video_url_ttl_seconds = _positive_int("MARKETPLACE_VIDEO_URL_TTL_SECONDS", "14400")

  platform_fee_percent = int(os.getenv("MARKETPLACE_PLATFORM_FEE_PERCENT", "15"))
  if not 0 <= platform_fee_percent <= 100:
    raise ValueError("MARKETPLACE_PLATFORM_FEE_PERCENT must be between 0 and 100.")

  return Settings(
    environment=environment,
    debug=debug,
    app_version=(os.getenv("MARKETPLACE_APP_VERSION") or "1.0.0").strip(),
    allowed_origins=_parse_origins(os.getenv("MARKETPLACE_ALLOWED_ORIGINS")),
    log_dir=(os.getenv("MARKETPLACE_LOG_DIR") or "./logs").strip(),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("MARKETPLACE_LOG_HTTP_4XX")),
    log_policy_denials=_parse_bool(os.getenv("MARKETPLACE_LOG_POLICY_DENIALS"), default=True),
    pg_dsn=_database_dsn(),
    pg_connect_timeout=_positive_int("MARKETPLACE_PG_CONNECT_TIMEOUT", "5"),
    gcp_project_id=_optional_str(os.getenv("GCP_PROJECT_ID")),
    gcs_storage_host=_optional_str(os.getenv("GCS_STORAGE_HOST")),
    video_bucket=_optional_str(os.getenv("MARKETPLACE_VIDEO_BUCKET")) or DEFAULT_VIDEO_BUCKET,
    video_url_ttl_seconds=video_url_ttl_seconds,
    platform_fee_percent=platform_fee_percent,
    firebase_project_id=_optional_str(os.getenv("FIREBASE_PROJECT_ID")),
    firebase_service_account_json_path=_optional_str(os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON_PATH")),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  debug = _parse_bool(os.getenv("MARKETPLACE_DEBUG"))
  pg_connect_timeout = _positive_int("MARKETPLACE_PG_CONNECT_TIMEOUT", "5")
  return DatabaseSettings(debug=debug, pg_dsn=_database_dsn(), pg_connect_timeout=pg_connect_timeout)
