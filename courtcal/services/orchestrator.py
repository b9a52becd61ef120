"""Backfill and refresh of the monthly cache.

Each date goes through ``pending → fetching-sources → merging → caching``
and ends ``done`` or ``failed``. Sources are fetched one after another with
a pause in between; a failing source never stops the others.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Iterable

from courtcal.config import FacilityGroup, Settings
from courtcal.models import (
    AuthContext,
    BackfillSummary,
    DateResult,
    DateState,
    FailureRecord,
    SourceResult,
)
from courtcal.services.base import BaseDataSource
from courtcal.services.cache_store import MonthlyCacheStore
from courtcal.services.cleanup import CacheCleaner
from courtcal.services.merger import merge_sources
from courtcal.services.tokens import TokenProvider, TokenResult
from courtcal.utils.dates import date_range, is_valid_date, today_in

logger = logging.getLogger(__name__)

CACHE_WRITE_FAILED = "Failed to cache data"


@dataclass
class BackfillOptions:
    skip_existing: bool = True
    delay_between_requests: float = 0.5
    delay_between_dates: float = 1.0
    days_ahead: int = 3

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> BackfillOptions:
        options = cls(
            delay_between_requests=settings.delay_between_requests,
            delay_between_dates=settings.delay_between_dates,
            days_ahead=settings.backfill_days_ahead,
        )
        for name, value in overrides.items():
            if value is not None:
                setattr(options, name, value)
        return options


class BackfillOrchestrator:
    def __init__(
        self,
        settings: Settings,
        store: MonthlyCacheStore,
        source: BaseDataSource,
        tokens: TokenProvider,
    ) -> None:
        self.settings = settings
        self.store = store
        self.source = source
        self.tokens = tokens
        self.cleaner = CacheCleaner(store.data_dir)
        self.facility_groups: list[FacilityGroup] = list(settings.facility_groups)

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def generate_date_range(self, days_ahead: int | None = None) -> list[str]:
        if days_ahead is None:
            days_ahead = self.settings.backfill_days_ahead
        return date_range(today_in(self.settings.timezone), days_ahead)

    async def run_backfill(self, options: BackfillOptions | None = None) -> BackfillSummary:
        options = options or BackfillOptions.from_settings(self.settings)
        started = time.monotonic()
        summary = BackfillSummary()
        logger.info(
            "Starting backfill (skip_existing=%s, delay_between_requests=%.1fs, "
            "delay_between_dates=%.1fs)",
            options.skip_existing, options.delay_between_requests, options.delay_between_dates,
        )

        try:
            dates = self.generate_date_range(options.days_ahead)
        except Exception as exc:
            logger.exception("Backfill failed before processing dates")
            summary.success = False
            summary.error = str(exc)
            summary.duration_ms = _elapsed_ms(started)
            return summary

        summary.total_dates = len(dates)
        if not dates:
            logger.warning("No dates to backfill (days_ahead=%s)", options.days_ahead)
            summary.duration_ms = _elapsed_ms(started)
            return summary
        logger.info("Processing %d dates from %s to %s", len(dates), dates[0], dates[-1])

        for day in dates:
            try:
                if options.skip_existing and self._has_valid_cache(day):
                    logger.info("Skipping %s, valid cache exists", day)
                    summary.skipped_dates += 1
                    continue

                summary.processed_dates += 1
                result = await self.process_date(day, options.delay_between_requests, summary)
            except Exception as exc:
                logger.exception("Unexpected error processing %s", day)
                summary.failed_dates += 1
                summary.errors.append(FailureRecord(date=day, error=str(exc)))
                continue

            if result.success:
                summary.successful_dates += 1
            else:
                summary.failed_dates += 1
                summary.errors.append(FailureRecord(date=day, error=result.error or "Unknown error"))

            if options.delay_between_dates > 0:
                await asyncio.sleep(options.delay_between_dates)

        summary.duration_ms = _elapsed_ms(started)
        logger.info(
            "Backfill completed in %dms: %d processed, %d skipped, %d ok, %d failed "
            "(%d/%d source requests ok)",
            summary.duration_ms, summary.processed_dates, summary.skipped_dates,
            summary.successful_dates, summary.failed_dates,
            summary.successful_api_requests, summary.total_api_requests,
        )
        return summary

    async def run_for_date(self, day: str, skip_existing: bool = False) -> DateResult:
        """Refresh one date regardless of the rest of the backfill window."""
        if not is_valid_date(day):
            return DateResult(
                success=False, date=day, state=DateState.FAILED,
                error=f"Invalid date format: {day!r}, expected YYYY-MM-DD",
            )
        if skip_existing and self._has_valid_cache(day):
            logger.info("Skipping %s, valid cache exists", day)
            return DateResult(success=True, date=day, state=DateState.DONE, skipped=True)

        logger.info("Fetching fresh data for %s", day)
        try:
            return await self.process_date(day, self.settings.delay_between_requests)
        except Exception as exc:
            logger.exception("Error fetching fresh data for %s", day)
            return DateResult(success=False, date=day, state=DateState.FAILED, error=str(exc))

    async def process_date(
        self,
        day: str,
        delay_between_requests: float = 0.0,
        summary: BackfillSummary | None = None,
    ) -> DateResult:
        started = time.monotonic()
        result = DateResult(success=False, date=day)

        result.state = DateState.FETCHING_SOURCES
        source_results = await self._fetch_sources(day, delay_between_requests, summary)

        result.state = DateState.MERGING
        merged = merge_sources(day, source_results)
        if summary is not None:
            # Fetched fine but unusable: recount as a failed request.
            for failure in merged.processing_errors:
                summary.successful_api_requests -= 1
                summary.failed_api_requests += 1
                summary.errors.append(failure)
        result.successful_facilities = merged.successful_sources
        result.failed_facilities = merged.failed_sources
        if not merged.success:
            return self._finish(result, started, merged.error)

        result.state = DateState.CACHING
        if not self.store.upsert_day(day, [park.to_dict() for park in merged.parks]):
            return self._finish(result, started, CACHE_WRITE_FAILED)

        result.parks_count = len(merged.parks)
        result.success = True
        result.state = DateState.DONE
        result.duration_ms = _elapsed_ms(started)
        logger.info(
            "Cached %s: %d parks from %d sources (%d failed)",
            day, result.parks_count, result.successful_facilities, result.failed_facilities,
        )
        return result

    def cleanup_outdated(
        self, max_age_days: int = 30, problematic_files: Iterable[str] = ()
    ) -> dict[str, Any]:
        return self.cleaner.cleanup_outdated(max_age_days, problematic_files)

    # ------------------------------------------------------------------
    # Status / diagnostics
    # ------------------------------------------------------------------

    def status(self) -> dict[str, Any]:
        return {
            "facilityGroups": [
                {
                    "id": group.id,
                    "name": group.name,
                    "timeRange": group.time_range,
                    "hasPdfLink": bool(group.pdf_link),
                }
                for group in self.facility_groups
            ],
            "timeout": int(self.settings.request_timeout_seconds * 1000),
            "baseUrl": self.settings.base_url,
            "csrfToken": self.tokens.status(),
        }

    async def refresh_token(self) -> TokenResult:
        logger.info("Forcing CSRF token refresh")
        return await self.tokens.get_valid_token(force_refresh=True)

    async def test_api_call(self, day: str | None = None) -> dict[str, Any]:
        """Fetch the first facility group once with the current token."""
        day = day or today_in(self.settings.timezone).isoformat()
        group = self.facility_groups[0]
        logger.info("Testing API call for %s on %s", group.name, day)

        token = await self.tokens.get_valid_token()
        if token.success:
            result = await self.source.fetch(day, group, token.auth)
            error = result.error
        else:
            error = f"Token error: {token.error}"

        return {
            "success": error is None,
            "date": day,
            "facilityGroup": group.name,
            "error": error,
            "tokenStatus": self.tokens.status(),
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _has_valid_cache(self, day: str) -> bool:
        try:
            return self.store.is_valid_for_date(day)
        except Exception as exc:
            logger.warning("Error checking cache validity for %s: %s", day, exc)
            return False

    async def _fetch_sources(
        self,
        day: str,
        delay_between_requests: float,
        summary: BackfillSummary | None,
    ) -> list[SourceResult]:
        token = await self.tokens.get_valid_token()
        auth: AuthContext | None = token.auth if token.success else None
        if not token.success:
            logger.error("No CSRF token for %s: %s", day, token.error)

        results: list[SourceResult] = []
        for index, group in enumerate(self.facility_groups):
            if index and delay_between_requests > 0:
                await asyncio.sleep(delay_between_requests)

            if auth is None:
                result = SourceResult(
                    success=False,
                    group_id=group.id,
                    group_name=group.name,
                    date=day,
                    pdf_link=group.pdf_link,
                    error=f"Failed to get CSRF token: {token.error}",
                )
            else:
                result = await self.source.fetch(day, group, auth)
            results.append(result)

            if summary is not None:
                summary.total_api_requests += 1
                if result.success:
                    summary.successful_api_requests += 1
                else:
                    summary.failed_api_requests += 1
                    summary.errors.append(
                        FailureRecord(date=day, error=result.error or "Unknown error",
                                      source=group.name)
                    )
        return results

    @staticmethod
    def _finish(result: DateResult, started: float, error: str | None) -> DateResult:
        result.state = DateState.FAILED
        result.error = error
        result.duration_ms = _elapsed_ms(started)
        logger.error("Failed to process %s: %s", result.date, error)
        return result


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
