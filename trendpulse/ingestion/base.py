"""Abstract adapter interface for signal sources."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from trendpulse.schemas.signal import RawSignal


class SourceAdapter(ABC):
    """Pluggable collector for one signal source.

    Adapters return RawSignal instances. The ingestion loop handles entity
    resolution, attachment and rescoring. Adapters that read the momentum
    list should also expose the complete set of canonical keys seen in the
    pass via ``momentum_snapshot`` so absent entities can drop off.
    """

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Identifier for this adapter (e.g. 'movers_and_shakers', 'reddit')."""
        ...

    @abstractmethod
    def fetch_signals(self, since: datetime) -> list[RawSignal]:
        """Fetch raw observations from the source since the given datetime."""
        ...

    def momentum_snapshot(self) -> list[str] | None:
        """Canonical keys present on the momentum list in the last fetch, if authoritative."""
        return None
