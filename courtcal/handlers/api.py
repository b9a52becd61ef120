from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any

from aiohttp import web

from courtcal.config import Settings
from courtcal.handlers.scheduler import DailyUpdateScheduler
from courtcal.services.cache_store import MonthlyCacheStore
from courtcal.services.orchestrator import BackfillOptions, BackfillOrchestrator
from courtcal.services.tokens import TokenProvider
from courtcal.utils.colors import park_color
from courtcal.utils.dates import is_valid_month, iso_timestamp, parse_timestamp, today_in, utc_now
from courtcal.utils.http import HttpClient

logger = logging.getLogger(__name__)

routes = web.RouteTableDef()

DEFAULT_TEST_CRON = "*/2 * * * *"


@dataclass
class Services:
    settings: Settings
    http: HttpClient
    tokens: TokenProvider
    store: MonthlyCacheStore
    orchestrator: BackfillOrchestrator
    scheduler: DailyUpdateScheduler
    started: float = field(default_factory=time.monotonic)


SERVICES: web.AppKey[Services] = web.AppKey("services")


@web.middleware
async def error_middleware(request: web.Request, handler: Any) -> web.StreamResponse:
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception as exc:
        logger.exception("%s %s failed", request.method, request.path)
        return web.json_response(
            {"success": False, "error": str(exc), "timestamp": iso_timestamp()},
            status=500,
        )


# ----------------------------------------------------------------------
# Health
# ----------------------------------------------------------------------


@routes.get("/health")
async def health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok", "timestamp": iso_timestamp()})


@routes.get("/api/health")
async def system_health(request: web.Request) -> web.Response:
    services = request.app[SERVICES]
    cache = services.store.get_cache_health()
    scheduler = services.scheduler.status()
    backfill = services.orchestrator.status()

    warnings: list[str] = []
    if cache["totalFiles"] == 0:
        warnings.append("No cached data available")
    elif cache["staleFiles"] > cache["healthyFiles"]:
        warnings.append("Most cached data is stale")
    if not scheduler["isRunning"]:
        warnings.append("Scheduler is not running")

    body: dict[str, Any] = {
        "status": "degraded" if warnings else "ok",
        "timestamp": iso_timestamp(),
        "uptime": round(time.monotonic() - services.started, 3),
        "cache": cache,
        "scheduler": {
            "isRunning": scheduler["isRunning"],
            "lastUpdate": scheduler["lastUpdateStatus"],
            "currentTime": scheduler["currentTime"],
        },
        "backfill": {
            "facilityGroups": len(backfill["facilityGroups"]),
            "csrfTokenStatus": backfill["csrfToken"],
        },
    }
    if warnings:
        body["warnings"] = warnings
    return web.json_response(body)


# ----------------------------------------------------------------------
# Calendar data
# ----------------------------------------------------------------------


@routes.get("/api/calendar/{month}")
async def calendar_month(request: web.Request) -> web.Response:
    services = request.app[SERVICES]
    month = request.match_info["month"]

    if len(month) != 7 or month[4] != "-" or not (month[:4] + month[5:]).isdigit():
        return web.json_response(
            {"error": "Invalid month format. Expected YYYY-MM format.", "example": "2025-01"},
            status=400,
        )
    if not is_valid_month(month):
        return web.json_response(
            {"error": "Invalid month value. Month must be between 01 and 12.", "example": "2025-01"},
            status=400,
        )
    today = today_in(services.settings.timezone)
    if (int(month[:4]), int(month[5:])) > (today.year + 1, today.month):
        return web.json_response(
            {"error": "Month is too far in the future. Maximum 1 year ahead.", "requestedMonth": month},
            status=400,
        )

    cache = services.store.read_month(month)
    if cache is None:
        return _month_not_found(services, month)

    age = _data_age_hours(cache.last_updated)
    stale = age is not None and age > services.settings.stale_after_hours
    body = cache.to_dict()
    body["metadata"] = {
        "dataAgeHours": age,
        "isStale": stale,
        "serverTime": iso_timestamp(),
    }
    headers = {}
    if stale:
        headers = {"X-Data-Warning": "Data may be outdated", "X-Data-Age-Hours": str(age)}
    return web.json_response(body, headers=headers)


@routes.get("/api/parks")
async def parks(request: web.Request) -> web.Response:
    services = request.app[SERVICES]
    settings = services.settings
    current = today_in(settings.timezone).isoformat()[:7]

    cache = services.store.read_month(current)
    if cache is not None and cache.park_list:
        age = _data_age_hours(cache.last_updated)
        return web.json_response({
            "parks": cache.park_list,
            "source": f"Data from {current}",
            "lastUpdated": cache.last_updated,
            "metadata": {
                "dataAgeHours": age,
                "isStale": age is not None and age > settings.stale_after_hours,
                "serverTime": iso_timestamp(),
            },
        })

    months = services.store.available_months()
    if months:
        latest = months[-1]
        cache = services.store.read_month(latest)
        if cache is not None and cache.park_list:
            age = _data_age_hours(cache.last_updated)
            return web.json_response({
                "parks": cache.park_list,
                "source": f"Data from {latest}",
                "lastUpdated": cache.last_updated,
                "metadata": {
                    "dataAgeHours": age,
                    "isStale": age is not None and age > settings.stale_after_hours,
                    "fallbackUsed": True,
                    "message": "Using data from most recent available month",
                },
            })

    logger.warning("Using default park list as fallback")
    return web.json_response({
        "parks": [
            {"name": group.name, "color": park_color(group.name), "pdfLink": group.pdf_link}
            for group in settings.facility_groups
        ],
        "source": "Default configuration",
        "lastUpdated": None,
        "metadata": {
            "warning": "Using default park configuration due to data unavailability",
            "message": "Some features may be limited until data collection completes",
        },
    })


# ----------------------------------------------------------------------
# Scheduler
# ----------------------------------------------------------------------


@routes.get("/api/scheduler/status")
async def scheduler_status(request: web.Request) -> web.Response:
    return web.json_response(request.app[SERVICES].scheduler.status())


@routes.post("/api/scheduler/start")
async def scheduler_start(request: web.Request) -> web.Response:
    scheduler = request.app[SERVICES].scheduler
    ok = scheduler.start()
    return web.json_response({
        "success": ok,
        "message": "Scheduler started" if ok else "Failed to start scheduler",
        "status": scheduler.status(),
    })


@routes.post("/api/scheduler/stop")
async def scheduler_stop(request: web.Request) -> web.Response:
    scheduler = request.app[SERVICES].scheduler
    ok = scheduler.stop()
    return web.json_response({
        "success": ok,
        "message": "Scheduler stopped" if ok else "Failed to stop scheduler",
        "status": scheduler.status(),
    })


@routes.post("/api/scheduler/test")
async def scheduler_test(request: web.Request) -> web.Response:
    scheduler = request.app[SERVICES].scheduler
    body = await _json_body(request)
    expression = body.get("cronExpression") or DEFAULT_TEST_CRON

    if not scheduler.validate_cron_expression(expression):
        return web.json_response(
            {"success": False, "message": "Invalid cron expression", "expression": expression},
            status=400,
        )
    ok = scheduler.start_test_schedule(expression)
    return web.json_response({
        "success": ok,
        "message": (
            f"Test scheduler started with expression: {expression}"
            if ok else "Failed to start test scheduler"
        ),
        "expression": expression,
        "status": scheduler.status(),
    })


@routes.post("/api/scheduler/update")
async def scheduler_update(request: web.Request) -> web.Response:
    body = await _json_body(request)
    result = await request.app[SERVICES].scheduler.perform_update(body.get("date"))
    return web.json_response(result)


# ----------------------------------------------------------------------
# Backfill
# ----------------------------------------------------------------------


@routes.get("/api/backfill/status")
async def backfill_status(request: web.Request) -> web.Response:
    return web.json_response(request.app[SERVICES].orchestrator.status())


@routes.post("/api/backfill/run")
async def backfill_run(request: web.Request) -> web.Response:
    services = request.app[SERVICES]
    body = await _json_body(request)
    try:
        # Delays arrive in milliseconds.
        options = BackfillOptions.from_settings(
            services.settings,
            skip_existing=bool(body.get("skipExisting", True)),
            delay_between_requests=_seconds(body, "delayBetweenRequests"),
            delay_between_dates=_seconds(body, "delayBetweenDates"),
            days_ahead=_days_ahead(body),
        )
    except ValueError as exc:
        return web.json_response({"success": False, "error": str(exc)}, status=400)
    summary = await services.orchestrator.run_backfill(options)
    return web.json_response(summary.to_dict())


@routes.post("/api/backfill/token/sample")
async def backfill_sample_token(request: web.Request) -> web.Response:
    tokens = request.app[SERVICES].tokens
    body = await _json_body(request)
    token = body.get("token")
    if not token:
        return web.json_response({"success": False, "error": "Token is required"}, status=400)

    tokens.use_sample_token(str(token), body.get("sessionCookies"))
    return web.json_response({
        "success": True,
        "message": "Sample token configured",
        "tokenStatus": tokens.status(),
    })


@routes.post("/api/backfill/token/refresh")
async def backfill_refresh_token(request: web.Request) -> web.Response:
    result = await request.app[SERVICES].orchestrator.refresh_token()
    return web.json_response(result.to_dict())


@routes.post("/api/backfill/test")
async def backfill_test(request: web.Request) -> web.Response:
    body = await _json_body(request)
    result = await request.app[SERVICES].orchestrator.test_api_call(body.get("date"))
    return web.json_response(result)


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------


def _month_not_found(services: Services, month: str) -> web.Response:
    months = services.store.available_months()
    if not months:
        return web.json_response(
            {
                "error": "No data available for the requested month.",
                "month": month,
                "message": "No court data has been collected yet. The system may still be initializing.",
                "suggestion": "Please try again in a few minutes or contact support if this persists.",
            },
            status=404,
        )
    latest = months[-1]
    return web.json_response(
        {
            "error": "No data available for the requested month.",
            "month": month,
            "message": "Data may not have been collected yet for this month.",
            "availableMonths": months,
            "latestAvailable": latest,
            "suggestion": f"Try viewing {latest} or an earlier month with available data.",
        },
        status=404,
    )


def _data_age_hours(last_updated: str | None) -> int | None:
    updated = parse_timestamp(last_updated)
    if updated is None:
        return None
    return int((utc_now() - updated).total_seconds() // 3600)


def _seconds(body: dict[str, Any], key: str) -> float | None:
    """Milliseconds from the request body as seconds; ValueError if unusable."""
    value = body.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValueError(f"{key} must be a number of milliseconds")
    if value < 0:
        raise ValueError(f"{key} must not be negative")
    return value / 1000


def _days_ahead(body: dict[str, Any]) -> int | None:
    value = body.get("daysAhead")
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError("daysAhead must be a non-negative integer")
    return value


async def _json_body(request: web.Request) -> dict[str, Any]:
    if not request.can_read_body:
        return {}
    try:
        body = await request.json()
    except ValueError:
        raise web.HTTPBadRequest(
            text='{"success": false, "error": "Invalid JSON body"}',
            content_type="application/json",
        )
    return body if isinstance(body, dict) else {}
