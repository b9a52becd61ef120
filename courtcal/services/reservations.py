from __future__ import annotations

from typing import Any

from courtcal.config import FacilityGroup
from courtcal.models import AuthContext
from courtcal.services.base import BaseDataSource, DataSourceError
from courtcal.services.normalizer import validate_response
from courtcal.utils.dates import is_valid_date
from courtcal.utils.http import HttpClient, HttpError


class ReservationClient(BaseDataSource):
    """Quick-reservation availability endpoint of ActiveCommunities.

    This is the endpoint the public booking page calls when a facility group
    and date are picked. One POST returns every court of the group with its
    30-minute slot grid.
    """

    def __init__(self, http: HttpClient, base_url: str) -> None:
        super().__init__("reservations")
        self._http = http
        self._base_url = base_url.rstrip("/")

    @property
    def availability_url(self) -> str:
        return f"{self._base_url}/rest/reservation/quickreservation/availability?locale=en-US"

    @staticmethod
    def build_payload(day: str, group: FacilityGroup) -> dict[str, Any]:
        return {
            "facility_group_id": group.id,
            "customer_id": 0,
            "company_id": 0,
            "reserve_date": day,
            "change_time_range": False,
            "reload": False,
            "resident": True,
            "start_time": group.start_time,
            "end_time": group.end_time,
        }

    def build_headers(self, auth: AuthContext | None) -> dict[str, str]:
        headers = {
            "Accept": "*/*",
            "Accept-Language": "en-US,en;q=0.9",
            "Content-Type": "application/json;charset=utf-8",
            "Origin": "https://anc.apm.activecommunities.com",
            "Referer": f"{self._base_url}/reservation/landing/quick?locale=en-US&groupId=5",
            "X-Requested-With": "XMLHttpRequest",
            "page_info": '{"page_number":1,"total_records_per_page":20}',
        }
        if auth is not None:
            if auth.token:
                headers["X-CSRF-Token"] = auth.token
            if auth.session_cookies:
                headers["Cookie"] = auth.session_cookies
        return headers

    async def fetch_raw(self, day: str, group: FacilityGroup, auth: AuthContext | None) -> Any:
        if not is_valid_date(day):
            raise DataSourceError(f"Invalid date format: {day!r}, expected YYYY-MM-DD")

        self.logger.debug("Fetching %s (%d) for %s", group.name, group.id, day)
        try:
            return await self._http.post_json(
                self.availability_url,
                self.build_payload(day, group),
                headers=self.build_headers(auth),
            )
        except HttpError as exc:
            raise DataSourceError(str(exc)) from exc

    def validate(self, raw: Any) -> Any:
        return validate_response(raw)
