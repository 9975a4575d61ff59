"""Read-side queries over stored readings: listing, latest and statistics."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, time, timezone
from functools import lru_cache
from typing import Any, Dict, List, Optional

from datastore.document_store import DESCENDING, DocumentCollection, build_default_readings
from errors import ValidationError
from models.records import Reading
from services.ingestion import parse_kind
from services.statistics import KindSummary, StatisticsAggregator

DEFAULT_PAGE_SIZE = 15
DEFAULT_LATEST_LIMIT = 10
MAX_LIMIT = 100

_NEWEST_FIRST = [("timestamp", DESCENDING)]


def clamp_limit(limit: Optional[int], default: int) -> int:
    if limit is None:
        return default
    return max(1, min(MAX_LIMIT, limit))


def parse_date_bound(value: Optional[str], *, end_of_day: bool = False) -> Optional[datetime]:
    """Parse an ISO date or datetime query value.

    A date-only upper bound covers the whole day.
    """
    if value is None:
        return None
    candidate = value.strip()
    if not candidate:
        return None

    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValidationError(f"Invalid date {value!r}.") from exc

    if end_of_day and len(candidate) == 10:
        parsed = datetime.combine(parsed.date(), time.max)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed.astimezone(timezone.utc)


@dataclass
class ReadingPage:
    items: List[Reading]
    current_page: int
    total_pages: int
    total_records: int
    page_size: int


class ReadingQueries:

    def __init__(
        self,
        readings: DocumentCollection[Reading],
        aggregator: Optional[StatisticsAggregator] = None,
    ) -> None:
        self.readings = readings
        self.aggregator = aggregator or StatisticsAggregator()

    def list(
        self,
        sensor_id: Optional[str] = None,
        kind: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> ReadingPage:
        page_size = clamp_limit(limit, DEFAULT_PAGE_SIZE)
        current_page = max(1, page)
        criteria = self._build_filter(sensor_id, kind, start, end)

        total_records = self.readings.count(criteria)
        total_pages = math.ceil(total_records / page_size)
        items = self.readings.find(
            criteria,
            sort=_NEWEST_FIRST,
            skip=(current_page - 1) * page_size,
            limit=page_size,
        )
        return ReadingPage(
            items=items,
            current_page=current_page,
            total_pages=total_pages,
            total_records=total_records,
            page_size=page_size,
        )

    def latest(self, sensor_id: str, limit: Optional[int] = None) -> List[Reading]:
        return self.readings.find(
            {"sensor_id": sensor_id},
            sort=_NEWEST_FIRST,
            limit=clamp_limit(limit, DEFAULT_LATEST_LIMIT),
        )

    def statistics(self, sensor_id: Optional[str] = None) -> List[KindSummary]:
        criteria = {"sensor_id": sensor_id} if sensor_id else None
        return self.aggregator.aggregate(self.readings.find(criteria))

    @staticmethod
    def _build_filter(
        sensor_id: Optional[str],
        kind: Optional[str],
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> Dict[str, Any]:
        criteria: Dict[str, Any] = {}
        if sensor_id:
            criteria["sensor_id"] = sensor_id
        if kind:
            criteria["kind"] = parse_kind(kind)
        bounds: Dict[str, datetime] = {}
        if start is not None:
            bounds["$gte"] = start
        if end is not None:
            bounds["$lte"] = end
        if bounds:
            criteria["timestamp"] = bounds
        return criteria


@lru_cache
def build_default_queries() -> ReadingQueries:
    return ReadingQueries(readings=build_default_readings())
