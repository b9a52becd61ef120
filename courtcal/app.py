from __future__ import annotations

import logging

from aiohttp import web

from courtcal.config import Settings
from courtcal.handlers.api import SERVICES, Services, error_middleware, routes
from courtcal.handlers.scheduler import DailyUpdateScheduler
from courtcal.services.cache_store import MonthlyCacheStore
from courtcal.services.orchestrator import BackfillOptions, BackfillOrchestrator
from courtcal.services.reservations import ReservationClient
from courtcal.services.tokens import TokenProvider
from courtcal.utils.dates import today_in
from courtcal.utils.http import HttpClient

logger = logging.getLogger(__name__)


def build_services(settings: Settings) -> Services:
    http = HttpClient(timeout=settings.request_timeout_seconds, retries=settings.http_retries)
    tokens = TokenProvider(http, settings.base_url, ttl=settings.token_ttl_seconds)
    store = MonthlyCacheStore(settings.data_dir)
    orchestrator = BackfillOrchestrator(
        settings, store, ReservationClient(http, settings.base_url), tokens
    )
    scheduler = DailyUpdateScheduler(
        orchestrator,
        store,
        timezone=settings.timezone,
        hour=settings.daily_update_hour,
        minute=settings.daily_update_minute,
    )
    return Services(
        settings=settings,
        http=http,
        tokens=tokens,
        store=store,
        orchestrator=orchestrator,
        scheduler=scheduler,
    )


def create_application(settings: Settings, services: Services | None = None) -> web.Application:
    services = services or build_services(settings)

    app = web.Application(middlewares=[error_middleware])
    app[SERVICES] = services
    app.add_routes(routes)
    app.on_startup.append(_on_startup)
    app.on_cleanup.append(_on_cleanup)

    logger.info(
        "Application ready: %d facility groups, data in %s",
        len(settings.facility_groups), settings.data_dir,
    )
    return app


async def _on_startup(app: web.Application) -> None:
    services = app[SERVICES]
    settings = services.settings

    report = services.store.recover_cache()
    if report["corruptedFiles"]:
        logger.warning("Removed %d corrupted cache files: %s",
                       report["corruptedFiles"], report["removedFiles"])

    if settings.run_on_startup:
        today = today_in(settings.timezone).isoformat()
        logger.info("Fetching fresh data for today (%s)", today)
        result = await services.orchestrator.run_for_date(today)
        if result.success:
            logger.info(
                "Fresh data for today: %d parks, %d sources ok, %d failed",
                result.parks_count, result.successful_facilities, result.failed_facilities,
            )
        else:
            logger.warning("Failed to fetch fresh data for today: %s", result.error)

        summary = await services.orchestrator.run_backfill(
            BackfillOptions.from_settings(settings, skip_existing=True)
        )
        if not summary.success:
            logger.warning("Startup backfill failed, continuing: %s", summary.error)

    if settings.scheduler_enabled and services.scheduler.start():
        logger.info(
            "Daily updates scheduled at %02d:%02d %s",
            settings.daily_update_hour, settings.daily_update_minute, settings.timezone,
        )


async def _on_cleanup(app: web.Application) -> None:
    services = app[SERVICES]
    if services.scheduler.is_running:
        services.scheduler.stop()
    await services.http.close()
