"""Validate loosely-typed collector records into RawSignal."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from trendpulse.schemas.signal import RawSignal
from trendpulse.services.errors import ValidationError

logger = logging.getLogger(__name__)

# Collector field aliases accepted alongside the canonical names
_ALIASES = {
    "name": "raw_name",
    "title": "raw_name",
    "brand": "raw_brand",
    "asin": "canonical_key",
    "key": "canonical_key",
    "score": "magnitude",
}


def parse_raw_signal(record: dict[str, Any]) -> RawSignal:
    """Return a validated RawSignal or raise ValidationError.

    Unknown keys are ignored; known aliases are mapped onto canonical field
    names unless the canonical name is already present.
    """
    if not isinstance(record, dict):
        raise ValidationError(f"Expected an object, got {type(record).__name__}")
    data = dict(record)
    for alias, field in _ALIASES.items():
        if alias in data and field not in data:
            data[field] = data.pop(alias)
    try:
        return RawSignal.model_validate(data)
    except PydanticValidationError as exc:
        fields = ", ".join(
            ".".join(str(p) for p in err["loc"]) or "record" for err in exc.errors()
        )
        raise ValidationError(f"Invalid raw signal ({fields})") from exc
