"""GCS helper for private lesson video objects and signed playback links."""

from __future__ import annotations

import os
from datetime import timedelta
from urllib.parse import urlparse, urlunparse

from google.auth.credentials import AnonymousCredentials
from google.cloud import storage
from starlette.concurrency import run_in_threadpool

from marketplace.config import Settings


def video_object_name(lesson_id: str) -> str:
  """Return the bucket path holding a lesson's video."""
  return f"lessons/{lesson_id}/video.mp4"


class VideoStorageClient:
  """Thin wrapper over GCS and emulator access for lesson videos."""

  def __init__(self, settings: Settings) -> None:
    self._bucket_name = settings.video_bucket
    self._storage_host = settings.gcs_storage_host
    # Ensure emulator endpoint is visible to the SDK in local development.
    if self._storage_host:
      emulator_endpoint = _normalize_emulator_endpoint(self._storage_host)
      os.environ["STORAGE_EMULATOR_HOST"] = emulator_endpoint
      self._client = storage.Client(project=settings.gcp_project_id or "local-dev", credentials=AnonymousCredentials(), client_options={"api_endpoint": emulator_endpoint})
    else:
      self._client = storage.Client(project=settings.gcp_project_id)

  @property
  def bucket_name(self) -> str:
    return self._bucket_name

  async def ensure_bucket(self) -> None:
    """Create the video bucket when missing; only runs against the emulator."""
    if not self._storage_host:
      return
    bucket = self._client.bucket(self._bucket_name)

    def _create_if_missing() -> None:
      if not bucket.exists(client=self._client):
        self._client.create_bucket(bucket)

    await run_in_threadpool(_create_if_missing)

  async def generate_signed_url(self, *, object_name: str, ttl_seconds: int) -> str:
    """Generate a short-lived V4 signed URL for streaming a video."""
    if self._storage_host:
      # The emulator serves objects without signatures.
      return f"{_normalize_emulator_endpoint(self._storage_host)}/{self._bucket_name}/{object_name}"
    bucket = self._client.bucket(self._bucket_name)
    blob = bucket.blob(object_name)
    expiration = timedelta(seconds=int(ttl_seconds))
    return await run_in_threadpool(blob.generate_signed_url, version="v4", expiration=expiration, method="GET")


def build_video_storage_client(settings: Settings) -> VideoStorageClient:
  return VideoStorageClient(settings)


def _normalize_emulator_endpoint(raw_endpoint: str) -> str:
  """Normalize emulator endpoint so the SDK receives scheme+host+port only."""
  parsed = urlparse(raw_endpoint)
  if not parsed.scheme or not parsed.netloc:
    return raw_endpoint.rstrip("/")
  return urlunparse((parsed.scheme, parsed.netloc, "", "", "", "")).rstrip("/")
