"""SQLAlchemy models."""

from trendpulse.models.entity import Entity
from trendpulse.models.job_run import JobRun
from trendpulse.models.signal import Signal

__all__ = [
    "Entity",
    "JobRun",
    "Signal",
]
