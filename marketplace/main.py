from __future__ import annotations

import datetime

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from marketplace.api.models import HealthResponse
from marketplace.api.routes import auth, lessons, purchases, videos
from marketplace.config import get_settings
from marketplace.core.exceptions import global_exception_handler, http_exception_handler, lesson_error_handler, request_validation_exception_handler
from marketplace.core.lifespan import lifespan
from marketplace.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from marketplace.policy.errors import LessonServiceError
from marketplace.services.lesson_views import format_timestamp

settings = get_settings()

app = FastAPI(title="Lesson Marketplace API", version=settings.app_version, lifespan=lifespan)

app.add_middleware(CORSMiddleware, allow_origins=list(settings.allowed_origins), allow_credentials=True, allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"], allow_headers=["content-type", "authorization", "x-request-id"], expose_headers=["x-request-id"])

# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(LessonServiceError, lesson_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.get("/health", response_model=HealthResponse, include_in_schema=False)
async def health_check() -> HealthResponse:
  """Return a simple health status."""
  return HealthResponse(status="ok", timestamp=format_timestamp(datetime.datetime.now(datetime.UTC)), version=settings.app_version)


app.include_router(lessons.router, prefix="/api/lessons", tags=["lessons"])
app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(videos.router, prefix="/api/videos", tags=["videos"])
app.include_router(purchases.router, prefix="/api/purchases", tags=["purchases"])
