from __future__ import annotations

import logging
from typing import Iterable

from courtcal.models import FailureRecord, MergeResult, SourceResult
from courtcal.services.aggregator import process_response
from courtcal.services.base import DataSourceError

logger = logging.getLogger(__name__)

NO_SOURCE_DATA = "No successful facility group data to cache"


def merge_sources(day: str, results: Iterable[SourceResult]) -> MergeResult:
    """Combine the parks of every successful facility group for one date.

    Parks are tagged with their facility group and kept as separate entries,
    even when two groups report a park with the same name. A fetched payload
    that cannot be processed counts as a failed source and is listed in
    ``processing_errors``.
    """
    merged = MergeResult(success=False, date=day)

    for result in results:
        if not result.success:
            merged.failed_sources += 1
            continue

        try:
            parks = process_response(result.data)
        except DataSourceError as exc:
            logger.warning("Failed to process %s on %s: %s", result.group_name, day, exc)
            merged.failed_sources += 1
            merged.processing_errors.append(
                FailureRecord(date=day, error=str(exc), source=result.group_name)
            )
            continue
        except Exception as exc:
            logger.exception("Unexpected error processing %s on %s", result.group_name, day)
            merged.failed_sources += 1
            merged.processing_errors.append(
                FailureRecord(date=day, error=f"Processing error: {exc}", source=result.group_name)
            )
            continue

        merged.successful_sources += 1
        for park in parks.values():
            park.facility_group_id = result.group_id
            park.facility_group_name = result.group_name
            park.pdf_link = result.pdf_link
            merged.parks.append(park)

    if merged.successful_sources == 0:
        merged.error = NO_SOURCE_DATA
        return merged

    merged.success = True
    return merged
