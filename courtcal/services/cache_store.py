"""Monthly JSON cache of per-day park availability.

One file per month, ``<data_dir>/YYYY-MM.json``::

    {"month": "2025-08",
     "lastUpdated": "2025-08-14T17:00:03.120Z",
     "parkList": [{"name": "Kleinman Park", "color": "#46f2b7", "pdfLink": "..."}],
     "days": {"2025-08-14": {"parks": [...]}}}

``lastUpdated`` is bumped on every write and is the freshness signal for the
whole file. Colors recorded in ``parkList`` are never recomputed.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Iterable

from courtcal.models import MonthlyCache
from courtcal.services.legacy import migrate_cache
from courtcal.utils.colors import park_color
from courtcal.utils.dates import (
    is_valid_month,
    iso_timestamp,
    month_of,
    parse_timestamp,
    utc_now,
)

logger = logging.getLogger(__name__)

FRESH_FOR = timedelta(hours=24)

_MONTH_FILE_RE = re.compile(r"^\d{4}-\d{2}\.json$")


class MonthlyCacheStore:
    def __init__(self, data_dir: str | Path = "data") -> None:
        self.data_dir = Path(data_dir)

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def file_path(self, month: str) -> Path:
        return self.data_dir / f"{month}.json"

    def month_files(self) -> list[Path]:
        if not self.data_dir.is_dir():
            return []
        return sorted(p for p in self.data_dir.iterdir() if _MONTH_FILE_RE.match(p.name))

    def available_months(self) -> list[str]:
        return [p.stem for p in self.month_files()]

    # ------------------------------------------------------------------
    # Read / write
    # ------------------------------------------------------------------

    def read_month(self, month: str) -> MonthlyCache | None:
        """Load a month; None when missing or unusable. Legacy records are migrated."""
        if not is_valid_month(month):
            logger.warning("Refusing to read cache for invalid month %r", month)
            return None

        path = self.file_path(month)
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            logger.error("Error reading cache for %s: %s", month, exc)
            return None

        cache = MonthlyCache.from_dict(raw)
        if cache is None:
            logger.warning("Invalid cache structure in %s", path)
            return None

        if migrate_cache(cache):
            logger.info("Migrated legacy booking details in %s", path)
            if not self.write_month(cache.month, cache):
                logger.warning("Failed to save migrated cache for %s", month)
        return cache

    def write_month(self, month: str, cache: MonthlyCache | dict[str, Any]) -> bool:
        """Replace the month file atomically; False if rejected or not written."""
        data = cache.to_dict() if isinstance(cache, MonthlyCache) else cache
        if MonthlyCache.from_dict(data) is None:
            logger.error(
                "Error writing cache for %s: invalid cache data structure - "
                "missing required fields", month,
            )
            return False
        if not is_valid_month(month):
            logger.error("Error writing cache: invalid month %r", month)
            return False

        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{month}.", suffix=".tmp", dir=self.data_dir
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(data, fh, indent=2)
                os.replace(tmp_name, self.file_path(month))
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except (OSError, TypeError, ValueError) as exc:
            logger.error("Error writing cache for %s: %s", month, exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Day records
    # ------------------------------------------------------------------

    def upsert_day(self, day: str, parks: Iterable[dict[str, Any]]) -> bool:
        """Store the park list of one date and refresh the month's park list."""
        parks = [dict(p) for p in parks]
        month = month_of(day)
        cache = self.read_month(month)
        if cache is None:
            cache = MonthlyCache(month=month, last_updated=iso_timestamp())

        _merge_park_list(cache.park_list, parks)
        colors = cache.park_colors()
        for park in parks:
            park["color"] = colors.get(park["name"]) or park_color(park["name"])

        cache.days[day] = {"parks": parks}
        cache.last_updated = iso_timestamp()
        if not self.write_month(month, cache):
            logger.error("Failed to cache data for %s", day)
            return False
        return True

    def get_day(self, day: str) -> dict[str, Any] | None:
        cache = self.read_month(month_of(day))
        if cache is None:
            return None
        return cache.days.get(day)

    # ------------------------------------------------------------------
    # Freshness
    # ------------------------------------------------------------------

    @staticmethod
    def is_fresh(last_updated: str | datetime | None, now: datetime | None = None) -> bool:
        updated = parse_timestamp(last_updated)
        if updated is None:
            return False
        return (now or utc_now()) - updated < FRESH_FOR

    def is_valid_for_date(self, day: str) -> bool:
        cache = self.read_month(month_of(day))
        if cache is None or day not in cache.days:
            return False
        return self.is_fresh(cache.last_updated)

    # ------------------------------------------------------------------
    # Health / recovery
    # ------------------------------------------------------------------

    def get_cache_health(self) -> dict[str, Any]:
        files = self.month_files()
        health: dict[str, Any] = {
            "totalFiles": len(files),
            "availableMonths": [p.stem for p in files],
            "healthyFiles": 0,
            "staleFiles": 0,
            "oldestData": None,
            "newestData": None,
        }
        oldest: datetime | None = None
        newest: datetime | None = None
        for path in files:
            cache = self.read_month(path.stem)
            updated = parse_timestamp(cache.last_updated) if cache else None
            if updated is None:
                continue
            oldest = updated if oldest is None or updated < oldest else oldest
            newest = updated if newest is None or updated > newest else newest
            if self.is_fresh(updated):
                health["healthyFiles"] += 1
            else:
                health["staleFiles"] += 1

        health["oldestData"] = iso_timestamp(oldest) if oldest else None
        health["newestData"] = iso_timestamp(newest) if newest else None
        return health

    def recover_cache(self) -> dict[str, Any]:
        """Delete month files that cannot be parsed or lack required fields."""
        files = self.month_files()
        report: dict[str, Any] = {
            "totalFiles": len(files),
            "validFiles": 0,
            "corruptedFiles": 0,
            "removedFiles": [],
            "errors": [],
        }
        for path in files:
            try:
                raw = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                logger.error("Error processing %s: %s", path.name, exc)
                report["errors"].append({"file": path.name, "error": str(exc)})
                self._remove_corrupted(path, report)
                continue

            if MonthlyCache.from_dict(raw) is not None:
                report["validFiles"] += 1
            else:
                logger.warning("Invalid cache structure in %s, removing", path.name)
                self._remove_corrupted(path, report)
        return report

    @staticmethod
    def _remove_corrupted(path: Path, report: dict[str, Any]) -> None:
        try:
            path.unlink()
        except OSError as exc:
            logger.error("Failed to remove corrupted file %s: %s", path.name, exc)
            return
        report["corruptedFiles"] += 1
        report["removedFiles"].append(path.name)


def _merge_park_list(park_list: list[dict[str, Any]], parks: list[dict[str, Any]]) -> None:
    """Add unseen park names (with a hash color) and refresh changed PDF links."""
    known = {entry["name"]: entry for entry in park_list if "name" in entry}
    for park in parks:
        name = park["name"]
        entry = known.get(name)
        if entry is None:
            entry = {"name": name, "color": park_color(name), "pdfLink": park.get("pdfLink")}
            park_list.append(entry)
            known[name] = entry
        elif "pdfLink" in park and entry.get("pdfLink") != park["pdfLink"]:
            entry["pdfLink"] = park["pdfLink"]
