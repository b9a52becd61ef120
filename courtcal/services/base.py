from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from courtcal.config import FacilityGroup
from courtcal.models import AuthContext, SourceResult


class DataSourceError(Exception):
    """No usable data could be obtained from the upstream endpoint."""


class ResponseValidationError(DataSourceError):
    """The upstream payload does not have the expected structure."""


class BaseDataSource(ABC):
    """Contract for every availability source.

    Rules:
    - Return ONLY data fetched from the live reservation API.
    - Signal every failure by raising DataSourceError from fetch_raw/validate.
    - fetch() never raises: failures come back as SourceResult(success=False).
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self.logger = logging.getLogger(f"source.{name}")

    @abstractmethod
    async def fetch_raw(self, day: str, group: FacilityGroup, auth: AuthContext | None) -> Any:
        ...

    @abstractmethod
    def validate(self, raw: Any) -> Any:
        ...

    async def fetch(
        self, day: str, group: FacilityGroup, auth: AuthContext | None
    ) -> SourceResult:
        result = SourceResult(
            success=False,
            group_id=group.id,
            group_name=group.name,
            date=day,
            pdf_link=group.pdf_link,
        )
        try:
            raw = await self.fetch_raw(day, group, auth)
            result.data = self.validate(raw)
            result.success = True
            self.logger.info(
                "'%s' %s: %d resources",
                group.name, day, _resource_count(result.data),
            )
        except DataSourceError as exc:
            self.logger.warning("'%s' %s: %s", group.name, day, exc)
            result.error = str(exc)
        except Exception as exc:
            self.logger.exception("'%s' %s: unexpected failure", group.name, day)
            result.error = str(exc) or type(exc).__name__
        return result


def _resource_count(payload: Any) -> int:
    try:
        return len(payload["body"]["availability"]["resources"])
    except (KeyError, TypeError):
        return 0
