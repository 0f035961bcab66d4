"""Signal ingestion: source adapters, raw-record validation and the resolve loop."""

from trendpulse.ingestion.base import SourceAdapter
from trendpulse.ingestion.ingest import run_adapter_ingest, run_ingest

__all__ = ["SourceAdapter", "run_adapter_ingest", "run_ingest"]
