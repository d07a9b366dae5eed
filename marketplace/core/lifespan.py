import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from marketplace.config import get_settings
from marketplace.core.database import get_db_engine
from marketplace.core.firebase import initialize_firebase
from marketplace.core.logging import _initialize_logging
from marketplace.services.storage_client import build_video_storage_client


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging, Firebase and the video bucket before serving; dispose the engine on shutdown."""
  settings = get_settings()
  logger = logging.getLogger("marketplace.core.lifespan")

  _initialize_logging(settings)
  logger.info("Startup environment=%s version=%s database=%s", settings.environment, settings.app_version, _redact_dsn(settings.pg_dsn))

  # Initialize Firebase before handling requests.
  initialize_firebase()
  # Only the emulator needs the bucket created; real GCS buckets are provisioned out of band.
  if settings.gcs_storage_host:
    try:
      storage_client = build_video_storage_client(settings)
      await storage_client.ensure_bucket()
      logger.info("Video bucket ensured: %s", storage_client.bucket_name)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Failed to ensure video bucket at startup: %s", exc)

  yield

  engine = get_db_engine()
  if engine is not None:
    await engine.dispose()
  logger.info("Shutdown complete.")


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
