"""Unit tests for application startup and shutdown."""

from __future__ import annotations

from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient
from google.auth.exceptions import DefaultCredentialsError

from marketplace.core import lifespan as lifespan_module
from marketplace.main import app


def _patch_startup(monkeypatch, settings, build_client: MagicMock) -> None:
  monkeypatch.setattr(lifespan_module, "get_settings", lambda: settings)
  monkeypatch.setattr(lifespan_module, "_initialize_logging", lambda settings: None)
  monkeypatch.setattr(lifespan_module, "initialize_firebase", lambda: None)
  monkeypatch.setattr(lifespan_module, "get_db_engine", lambda: None)
  monkeypatch.setattr(lifespan_module, "build_video_storage_client", build_client)


def test_startup_without_storage_emulator_skips_bucket_setup(monkeypatch, settings) -> None:
  build_client = MagicMock(side_effect=DefaultCredentialsError("File /missing.json was not found."))
  _patch_startup(monkeypatch, replace(settings, gcs_storage_host=None), build_client)

  with TestClient(app) as client:
    assert client.get("/health").status_code == 200

  build_client.assert_not_called()


def test_startup_survives_bucket_setup_failure(monkeypatch, settings) -> None:
  build_client = MagicMock(side_effect=DefaultCredentialsError("no credentials"))
  _patch_startup(monkeypatch, replace(settings, gcs_storage_host="http://localhost:4443"), build_client)

  with TestClient(app) as client:
    assert client.get("/health").status_code == 200

  build_client.assert_called_once()


def test_startup_ensures_emulator_bucket(monkeypatch, settings) -> None:
  storage_client = MagicMock(bucket_name="teach-niche-videos")
  storage_client.ensure_bucket = AsyncMock()
  _patch_startup(monkeypatch, replace(settings, gcs_storage_host="http://localhost:4443"), MagicMock(return_value=storage_client))

  with TestClient(app):
    pass

  storage_client.ensure_bucket.assert_awaited_once()
