from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

MESA_BASE_URL = "https://anc.apm.activecommunities.com/mesaaz"

_PDF_BASE = (
    "https://www.mesaaz.gov/files/assets/public/v/{version}/activities-culture/"
    "prcf/facilities/pickleball-public-court-calendars/{name}.pdf"
)


class FacilityGroup(BaseModel):
    """One upstream facility group, fetched independently per date."""

    id: int
    name: str
    start_time: str = "09:00:00"
    end_time: str = "22:00:00"
    pdf_link: str | None = None

    @property
    def time_range(self) -> str:
        return f"{self.start_time} - {self.end_time}"


def default_facility_groups() -> list[FacilityGroup]:
    return [
        FacilityGroup(
            id=29,
            name="Kleinman Park",
            pdf_link=_PDF_BASE.format(version=237, name="kleinman-pickleball-court"),
        ),
        FacilityGroup(id=33, name="Gene Autry Park"),
        FacilityGroup(
            id=35,
            name="Monterey Park",
            pdf_link=_PDF_BASE.format(version=244, name="brady-pickleball-court"),
        ),
    ]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=Path(__file__).resolve().parent.parent / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"
    timezone: str = "America/Los_Angeles"
    data_dir: Path = Path("data")

    host: str = "0.0.0.0"
    port: int = 3000

    base_url: str = MESA_BASE_URL
    request_timeout_seconds: float = 15.0
    http_retries: int = 1          # 1 = single attempt
    token_ttl_seconds: int = 1800

    backfill_days_ahead: int = 3
    delay_between_requests: float = 0.5
    delay_between_dates: float = 1.0

    scheduler_enabled: bool = True
    daily_update_hour: int = 17
    daily_update_minute: int = 0
    run_on_startup: bool = True

    stale_after_hours: int = 48

    facility_groups: list[FacilityGroup] = Field(default_factory=default_facility_groups)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def setup_logging(level: str = "INFO") -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(levelname)-8s | %(name)-25s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
