"""TrendPulse: trend aggregation and age-decay scoring service."""

__version__ = "0.1.0"
