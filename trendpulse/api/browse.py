"""Public browse routes: category pages, search, Peak Viral and New This Week."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from trendpulse.api.deps import get_section_selector
from trendpulse.config import get_settings
from trendpulse.schemas.sections import SectionResponse
from trendpulse.services.homepage_sections import HomepageSectionSelector

router = APIRouter()

SEARCH_DEFAULT_LIMIT = 20
CATEGORY_DEFAULT_LIMIT = 12


@router.get(
    "/trending/peak-viral",
    response_model=SectionResponse,
    summary="Entities at Peak Viral score",
)
def get_peak_viral(
    limit: int | None = Query(None, ge=1, le=50),
    selector: HomepageSectionSelector = Depends(get_section_selector),
) -> SectionResponse:
    return selector.select_peak_viral(limit or get_settings().default_section_limit)


@router.get(
    "/trending/new-this-week",
    response_model=SectionResponse,
    summary="Entities added in the last 7 days",
)
def get_new_this_week(
    limit: int | None = Query(None, ge=1, le=50),
    selector: HomepageSectionSelector = Depends(get_section_selector),
) -> SectionResponse:
    return selector.select_new_this_week(limit or get_settings().default_section_limit)


@router.get(
    "/trending/category/{category}",
    response_model=SectionResponse,
    summary="Trending entities in one category",
)
def get_category(
    category: str,
    limit: int = Query(CATEGORY_DEFAULT_LIMIT, ge=1, le=50),
    selector: HomepageSectionSelector = Depends(get_section_selector),
) -> SectionResponse:
    return selector.select_category(category, limit)


@router.get(
    "/search",
    response_model=SectionResponse,
    summary="Search entities by name or brand",
    description="Case-insensitive substring match. A blank query returns no entities.",
)
def search(
    q: str = Query("", max_length=200),
    limit: int = Query(SEARCH_DEFAULT_LIMIT, ge=1, le=50),
    selector: HomepageSectionSelector = Depends(get_section_selector),
) -> SectionResponse:
    return selector.select_search(q, limit)
