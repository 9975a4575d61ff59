"""Aggregation logic for stored readings."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from models.records import Reading, ReadingKind


@dataclass
class KindSummary:
    """Computed statistics for one (sensor, kind) group."""

    sensor_id: str
    kind: ReadingKind
    count: int = 0
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    mean_value: Optional[float] = None
    last_timestamp: Optional[datetime] = None


class StatisticsAggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def aggregate(self, readings: Iterable[Reading]) -> List[KindSummary]:
        groups: Dict[Tuple[str, ReadingKind], KindSummary] = {}
        totals: Dict[Tuple[str, ReadingKind], float] = {}

        for reading in readings:
            key = (reading.sensor_id, reading.kind)
            summary = groups.get(key)
            if summary is None:
                summary = groups[key] = KindSummary(sensor_id=reading.sensor_id, kind=reading.kind)
                totals[key] = 0.0

            value = reading.value
            summary.count += 1
            totals[key] += value

            if summary.min_value is None or value < summary.min_value:
                summary.min_value = value
            if summary.max_value is None or value > summary.max_value:
                summary.max_value = value
            if summary.last_timestamp is None or reading.timestamp > summary.last_timestamp:
                summary.last_timestamp = reading.timestamp

        for key, summary in groups.items():
            summary.mean_value = round(totals[key] / summary.count, 2)

        return sorted(groups.values(), key=lambda item: (item.sensor_id, item.kind.value))
