"""REST endpoints served by the aiohttp application."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from aiohttp.test_utils import TestClient, TestServer

from courtcal.app import build_services, create_application
from courtcal.handlers.api import SERVICES
from courtcal.models import BackfillSummary, DateResult, DateState
from courtcal.utils.dates import today_in


@pytest_asyncio.fixture
async def client(settings):
    app = create_application(settings, build_services(settings))
    async with TestClient(TestServer(app)) as client:
        yield client


def _services(client: TestClient):
    return client.app[SERVICES]


def _park(name: str) -> dict:
    return {"name": name, "color": "#000000", "status": "available", "timeWindows": []}


class TestHealth:
    @pytest.mark.asyncio
    async def test_liveness(self, client):
        resp = await client.get("/health")
        assert resp.status == 200
        assert (await resp.json())["status"] == "ok"

    @pytest.mark.asyncio
    async def test_degraded_without_data_or_scheduler(self, client):
        resp = await client.get("/api/health")
        body = await resp.json()

        assert resp.status == 200
        assert body["status"] == "degraded"
        assert body["warnings"] == ["No cached data available", "Scheduler is not running"]
        assert body["backfill"]["facilityGroups"] == 3
        assert body["cache"]["totalFiles"] == 0

    @pytest.mark.asyncio
    async def test_ok_with_fresh_data_and_scheduler(self, client):
        services = _services(client)
        services.store.upsert_day("2025-07-04", [_park("Kleinman Park")])
        services.scheduler.start()

        body = await (await client.get("/api/health")).json()

        assert body["status"] == "ok"
        assert "warnings" not in body
        assert body["scheduler"]["isRunning"] is True


class TestCalendar:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("month", ["2025-8", "august", "2025_08"])
    async def test_bad_format(self, client, month):
        resp = await client.get(f"/api/calendar/{month}")
        assert resp.status == 400
        assert "Invalid month format" in (await resp.json())["error"]

    @pytest.mark.asyncio
    async def test_month_out_of_range(self, client):
        resp = await client.get("/api/calendar/2025-13")
        assert resp.status == 400
        assert "between 01 and 12" in (await resp.json())["error"]

    @pytest.mark.asyncio
    async def test_too_far_ahead(self, client, settings):
        month = f"{today_in(settings.timezone).year + 2}-01"
        resp = await client.get(f"/api/calendar/{month}")
        assert resp.status == 400
        assert (await resp.json())["requestedMonth"] == month

    @pytest.mark.asyncio
    async def test_nothing_collected(self, client):
        resp = await client.get("/api/calendar/2025-06")
        body = await resp.json()
        assert resp.status == 404
        assert "availableMonths" not in body
        assert body["month"] == "2025-06"

    @pytest.mark.asyncio
    async def test_not_collected_lists_available_months(self, client):
        _services(client).store.upsert_day("2025-07-04", [_park("Kleinman Park")])

        resp = await client.get("/api/calendar/2025-06")
        body = await resp.json()

        assert resp.status == 404
        assert body["availableMonths"] == ["2025-07"]
        assert body["latestAvailable"] == "2025-07"

    @pytest.mark.asyncio
    async def test_fresh_month(self, client):
        _services(client).store.upsert_day("2025-07-04", [_park("Kleinman Park")])

        resp = await client.get("/api/calendar/2025-07")
        body = await resp.json()

        assert resp.status == 200
        assert body["month"] == "2025-07"
        assert body["days"]["2025-07-04"]["parks"][0]["name"] == "Kleinman Park"
        assert body["parkList"][0]["name"] == "Kleinman Park"
        assert body["metadata"]["dataAgeHours"] == 0
        assert body["metadata"]["isStale"] is False
        assert "X-Data-Warning" not in resp.headers

    @pytest.mark.asyncio
    async def test_stale_month_headers(self, client):
        _services(client).store.write_month("2025-07", {
            "month": "2025-07",
            "lastUpdated": "2025-07-01T00:00:00.000Z",
            "parkList": [],
            "days": {},
        })

        resp = await client.get("/api/calendar/2025-07")
        body = await resp.json()

        assert resp.status == 200
        assert body["metadata"]["isStale"] is True
        assert resp.headers["X-Data-Warning"] == "Data may be outdated"
        assert int(resp.headers["X-Data-Age-Hours"]) == body["metadata"]["dataAgeHours"]


class TestParks:
    @pytest.mark.asyncio
    async def test_default_configuration(self, client):
        body = await (await client.get("/api/parks")).json()
        assert body["source"] == "Default configuration"
        assert [p["name"] for p in body["parks"]] == ["Kleinman Park", "Gene Autry Park", "Monterey Park"]
        assert body["parks"][1]["pdfLink"] is None

    @pytest.mark.asyncio
    async def test_latest_month_fallback(self, client):
        _services(client).store.upsert_day("2025-07-04", [_park("Kleinman Park")])

        body = await (await client.get("/api/parks")).json()

        assert body["source"] == "Data from 2025-07"
        assert body["metadata"]["fallbackUsed"] is True
        assert body["parks"][0]["name"] == "Kleinman Park"

    @pytest.mark.asyncio
    async def test_current_month(self, client, settings):
        today = today_in(settings.timezone).isoformat()
        _services(client).store.upsert_day(today, [_park("Monterey Park")])

        body = await (await client.get("/api/parks")).json()

        assert body["source"] == f"Data from {today[:7]}"
        assert body["parks"][0]["name"] == "Monterey Park"
        assert "fallbackUsed" not in body["metadata"]


class TestScheduler:
    @pytest.mark.asyncio
    async def test_start_stop(self, client):
        body = await (await client.post("/api/scheduler/start")).json()
        assert body["success"] is True
        assert body["status"]["isRunning"] is True

        body = await (await client.post("/api/scheduler/start")).json()
        assert body["success"] is False

        body = await (await client.post("/api/scheduler/stop")).json()
        assert body["success"] is True
        assert body["message"] == "Scheduler stopped"

        status = await (await client.get("/api/scheduler/status")).json()
        assert status["isRunning"] is False

    @pytest.mark.asyncio
    async def test_invalid_cron(self, client):
        resp = await client.post("/api/scheduler/test", json={"cronExpression": "nope"})
        assert resp.status == 400
        assert (await resp.json())["expression"] == "nope"

    @pytest.mark.asyncio
    async def test_test_schedule_default_expression(self, client):
        body = await (await client.post("/api/scheduler/test")).json()
        assert body["success"] is True
        assert body["expression"] == "*/2 * * * *"

    @pytest.mark.asyncio
    async def test_manual_update(self, client):
        scheduler = _services(client).scheduler
        scheduler.perform_update = AsyncMock(return_value={"success": True, "date": "2025-08-14"})

        body = await (await client.post("/api/scheduler/update", json={"date": "2025-08-14"})).json()

        assert body == {"success": True, "date": "2025-08-14"}
        scheduler.perform_update.assert_awaited_once_with("2025-08-14")

    @pytest.mark.asyncio
    async def test_invalid_json_body(self, client):
        resp = await client.post(
            "/api/scheduler/update", data="{oops", headers={"Content-Type": "application/json"}
        )
        assert resp.status == 400


class TestBackfill:
    @pytest.mark.asyncio
    async def test_status(self, client):
        body = await (await client.get("/api/backfill/status")).json()
        assert [g["id"] for g in body["facilityGroups"]] == [29, 33, 35]
        assert body["csrfToken"]["hasToken"] is False

    @pytest.mark.asyncio
    async def test_run_converts_milliseconds(self, client):
        services = _services(client)
        services.orchestrator = MagicMock()
        services.orchestrator.run_backfill = AsyncMock(return_value=BackfillSummary(total_dates=4))

        resp = await client.post(
            "/api/backfill/run",
            json={"skipExisting": False, "delayBetweenRequests": 250, "delayBetweenDates": 2000},
        )
        body = await resp.json()

        assert resp.status == 200
        assert body["totalDates"] == 4
        options = services.orchestrator.run_backfill.await_args.args[0]
        assert options.skip_existing is False
        assert options.delay_between_requests == 0.25
        assert options.delay_between_dates == 2.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("body", "message"),
        [
            ({"daysAhead": -1}, "daysAhead"),
            ({"daysAhead": "3"}, "daysAhead"),
            ({"delayBetweenRequests": "abc"}, "delayBetweenRequests"),
            ({"delayBetweenDates": -500}, "delayBetweenDates"),
        ],
    )
    async def test_run_rejects_bad_options(self, client, body, message):
        services = _services(client)
        services.orchestrator = MagicMock()
        services.orchestrator.run_backfill = AsyncMock()

        resp = await client.post("/api/backfill/run", json=body)

        assert resp.status == 400
        assert message in (await resp.json())["error"]
        services.orchestrator.run_backfill.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sample_token(self, client):
        resp = await client.post("/api/backfill/token/sample", json={})
        assert resp.status == 400

        resp = await client.post(
            "/api/backfill/token/sample", json={"token": "abcdefghijk", "sessionCookies": "JSESSIONID=1"}
        )
        body = await resp.json()
        assert body["success"] is True
        assert body["tokenStatus"]["isValid"] is True
        assert body["tokenStatus"]["tokenPreview"] == "abcdefgh..."

    @pytest.mark.asyncio
    async def test_unexpected_error_is_json_500(self, client):
        services = _services(client)
        services.orchestrator = MagicMock()
        services.orchestrator.test_api_call = AsyncMock(side_effect=RuntimeError("boom"))

        resp = await client.post("/api/backfill/test", json={"date": "2025-08-14"})
        body = await resp.json()

        assert resp.status == 500
        assert body["success"] is False
        assert body["error"] == "boom"


class TestStartup:
    @pytest.mark.asyncio
    async def test_startup_refreshes_today_then_backfills(self, settings):
        settings = settings.model_copy(update={"run_on_startup": True, "scheduler_enabled": True})
        services = build_services(settings)
        services.orchestrator = MagicMock()
        services.orchestrator.run_for_date = AsyncMock(
            return_value=DateResult(success=True, date="2025-08-14", state=DateState.DONE)
        )
        services.orchestrator.run_backfill = AsyncMock(return_value=BackfillSummary())

        app = create_application(settings, services)
        async with TestClient(TestServer(app)):
            services.orchestrator.run_for_date.assert_awaited_once_with(
                today_in(settings.timezone).isoformat()
            )
            options = services.orchestrator.run_backfill.await_args.args[0]
            assert options.skip_existing is True
            assert services.scheduler.is_running

        assert not services.scheduler.is_running
