"""Shared FastAPI dependencies for API routes."""

from __future__ import annotations

import logging
import secrets

from fastapi import Header, HTTPException, Request

from trendpulse.config import get_settings
from trendpulse.db.session import get_db  # re-export
from trendpulse.services.entity_resolver import EntityResolver
from trendpulse.services.errors import (
    NotFoundError,
    PersistenceUnavailable,
    TrendPulseError,
    ValidationError,
)
from trendpulse.services.homepage_sections import HomepageSectionSelector

logger = logging.getLogger(__name__)

__all__ = [
    "get_db",
    "get_resolver",
    "get_section_selector",
    "http_error",
    "require_internal_token",
]


def require_internal_token(x_internal_token: str = Header(...)) -> None:
    """Validate the internal job token from the request header.

    Uses constant-time comparison to prevent timing attacks.
    Raises 403 if the token is empty or does not match the configured value.
    """
    expected = get_settings().internal_job_token
    if not expected or not secrets.compare_digest(x_internal_token, expected):
        logger.warning("Internal endpoint auth failed: invalid or missing token")
        raise HTTPException(status_code=403, detail="Invalid internal token")


def get_section_selector(request: Request) -> HomepageSectionSelector:
    return request.app.state.section_selector


def get_resolver(request: Request) -> EntityResolver:
    return request.app.state.resolver


def http_error(exc: TrendPulseError) -> HTTPException:
    """Map a service error to the HTTPException a route should raise."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, PersistenceUnavailable):
        return HTTPException(status_code=503, detail="Store temporarily unavailable")
    return HTTPException(status_code=409, detail=str(exc))
