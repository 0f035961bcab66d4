"""Public homepage section routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from trendpulse.api.deps import get_section_selector
from trendpulse.config import get_settings
from trendpulse.schemas.sections import HomepageSections, SectionResponse
from trendpulse.services.homepage_sections import SECTION_NAMES, HomepageSectionSelector

router = APIRouter()


def _limit_or_default(limit: int | None) -> int:
    return limit if limit is not None else get_settings().default_section_limit


@router.get(
    "",
    response_model=HomepageSections,
    summary="Get all homepage sections",
    description="""Five mutually exclusive ranked lists: Trending Now, About to Explode,
Recently Hot, Rising Fast and Warming Up, each capped at ``limit``.

Results are cached briefly. When the store is slow or unavailable, every list
is empty and ``degraded`` is true.
""",
)
def list_sections(
    limit: int | None = Query(None, ge=1, le=50),
    selector: HomepageSectionSelector = Depends(get_section_selector),
) -> HomepageSections:
    return selector.select(_limit_or_default(limit))


@router.get("/{name}", response_model=SectionResponse, summary="Get one homepage section")
def get_section(
    name: str,
    limit: int | None = Query(None, ge=1, le=50),
    selector: HomepageSectionSelector = Depends(get_section_selector),
) -> SectionResponse:
    if name not in SECTION_NAMES:
        raise HTTPException(status_code=404, detail=f"Unknown section: {name}")
    sections = selector.select(_limit_or_default(limit))
    return SectionResponse(
        name=name,
        entities=getattr(sections, name),
        degraded=sections.degraded,
    )
