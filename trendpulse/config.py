"""
Application configuration. Loads from environment variables.
Secrets and sensitive config must never be hardcoded.
"""

import os

from dotenv import load_dotenv

load_dotenv()
from functools import lru_cache


@lru_cache(maxsize=1)
def get_settings() -> "Settings":
    """Return cached settings instance."""
    return Settings()


class Settings:
    """Application settings loaded from environment."""

    # App
    app_name: str = "TrendPulse"
    debug: bool = False

    # Database (postgresql+psycopg for psycopg3; sqlite:// accepted for local runs and tests)
    database_url: str = "postgresql+psycopg://localhost:5432/trendpulse_dev"
    db_connect_timeout: int = 10  # seconds

    # Security
    internal_job_token: str = ""  # Required for /internal/* endpoints

    # Entity resolution
    match_threshold: float = 0.5  # min similarity to attach an observation to an entity
    brand_bonus: float = 0.12  # added to token similarity when brands normalize equal

    # Homepage sections
    section_cache_ttl: int = 60  # seconds
    section_query_timeout: float = 5.0  # seconds; sections degrade to empty past this
    min_display_price: float = 5.0  # entities cheaper than this are hidden (unknown price passes)
    default_section_limit: int = 8

    def __init__(self) -> None:
        self.app_name = os.getenv("APP_NAME", self.app_name)
        self.debug = os.getenv("DEBUG", "false").lower() == "true"

        default_user = os.getenv("PGUSER") or os.getenv("USER") or "postgres"
        default_url = (
            f"postgresql+psycopg://{default_user}:"
            f"{os.getenv('PGPASSWORD', '')}@"
            f"{os.getenv('PGHOST', 'localhost')}:"
            f"{os.getenv('PGPORT', '5432')}/"
            f"{os.getenv('PGDATABASE', 'trendpulse_dev')}"
        )
        raw_url = os.getenv("DATABASE_URL", default_url)
        # Ensure psycopg3 driver if URL uses generic postgresql://
        if raw_url.startswith("postgresql://") and not raw_url.startswith("postgresql+psycopg"):
            raw_url = raw_url.replace("postgresql://", "postgresql+psycopg://", 1)
        self.database_url = raw_url
        self.db_connect_timeout = int(os.getenv("DB_CONNECT_TIMEOUT", str(self.db_connect_timeout)))

        self.internal_job_token = os.getenv("INTERNAL_JOB_TOKEN", "")

        self.match_threshold = float(os.getenv("MATCH_THRESHOLD", str(self.match_threshold)))
        self.brand_bonus = float(os.getenv("BRAND_BONUS", str(self.brand_bonus)))

        self.section_cache_ttl = int(
            os.getenv("SECTION_CACHE_TTL", str(self.section_cache_ttl))
        )
        self.section_query_timeout = float(
            os.getenv("SECTION_QUERY_TIMEOUT", str(self.section_query_timeout))
        )
        self.min_display_price = float(
            os.getenv("MIN_DISPLAY_PRICE", str(self.min_display_price))
        )
        self.default_section_limit = int(
            os.getenv("DEFAULT_SECTION_LIMIT", str(self.default_section_limit))
        )
