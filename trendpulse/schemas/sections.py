"""Homepage section schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field

from trendpulse.schemas.entity import EntityRead


class HomepageSections(BaseModel):
    """Named, ordered, mutually exclusive homepage sections."""

    trending_now: list[EntityRead] = Field(default_factory=list)
    about_to_explode: list[EntityRead] = Field(default_factory=list)
    recently_hot: list[EntityRead] = Field(default_factory=list)
    rising_fast: list[EntityRead] = Field(default_factory=list)
    warming_up: list[EntityRead] = Field(default_factory=list)
    degraded: bool = False  # True when the store was unavailable and sections are empty


class SectionResponse(BaseModel):
    """A single named homepage section."""

    name: str
    entities: list[EntityRead] = Field(default_factory=list)
    degraded: bool = False
