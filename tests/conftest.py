"""
Pytest configuration and fixtures.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from contextlib import nullcontext
from datetime import UTC, datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from tests.test_constants import TEST_DATABASE_URL, TEST_INTERNAL_JOB_TOKEN

# Force an in-memory test DB; don't inherit from .env
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["INTERNAL_JOB_TOKEN"] = TEST_INTERNAL_JOB_TOKEN
os.environ.setdefault("SECTION_CACHE_TTL", "60")

NOW = datetime(2026, 6, 15, 12, 0, tzinfo=UTC)


@pytest.fixture
def now() -> datetime:
    """Fixed clock for deterministic day counts."""
    return NOW


@pytest.fixture
def db() -> Session:
    """Database session on a fresh schema; tables are dropped after each test."""
    from trendpulse import models  # noqa: F401
    from trendpulse.db.session import Base, SessionLocal, engine

    Base.metadata.create_all(engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture
def make_entity(db: Session) -> Callable:
    """Factory for persisted entities; keyword arguments override defaults."""
    from trendpulse.models import Entity
    from trendpulse.services.similarity import normalize_brand, normalize_name

    def _make(name: str = "Glow Serum", **kwargs):
        brand = kwargs.pop("brand", None)
        entity = Entity(
            canonical_name=name,
            normalized_name=normalize_name(name),
            brand=brand,
            brand_key=normalize_brand(brand) or None,
            **kwargs,
        )
        db.add(entity)
        db.commit()
        db.refresh(entity)
        return entity

    return _make


@pytest.fixture
def section_selector(db: Session):
    """Selector reading through the test session; closed after the test."""
    from trendpulse.services.homepage_sections import HomepageSectionSelector
    from trendpulse.services.section_cache import SectionCache

    selector = HomepageSectionSelector(
        lambda: nullcontext(db),
        SectionCache(60),
        timeout=5.0,
        min_price=5.0,
    )
    yield selector
    selector.close()


@pytest.fixture
def client(db: Session, section_selector) -> TestClient:
    """TestClient with get_db and the section selector bound to the test session."""
    from trendpulse.db.session import get_db
    from trendpulse.main import app

    def override_get_db():
        yield db

    previous_selector = app.state.section_selector
    app.dependency_overrides[get_db] = override_get_db
    app.state.section_selector = section_selector
    c = TestClient(app)
    yield c
    app.dependency_overrides.pop(get_db, None)
    app.state.section_selector = previous_selector


@pytest.fixture
def internal_headers() -> dict[str, str]:
    return {"X-Internal-Token": TEST_INTERNAL_JOB_TOKEN}
