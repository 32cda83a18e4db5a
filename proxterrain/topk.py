#!/usr/bin/env python3
"""
Bounded online selection of the closest terrain points.

A single pass over all longitude lines keeps the K points with the smallest
proximity value (closest to the Moon at perigee).  K is small, so the worst
retained entry is found with a linear scan on every admission.
"""

import math
from dataclasses import dataclass
from typing import Any, Iterator, List, NamedTuple, Sequence, Tuple

import logging

from proxterrain.columns import TerrainLongitudeLine
from proxterrain.errors import TopCountExceededError
from proxterrain.tilegrid import Tile

log = logging.getLogger(__name__)


class LatLong(NamedTuple):
    lat: float
    long: float


@dataclass(frozen=True)
class ClosestPointRecord:
    """
    Snapshot of one retained terrain point.

    Attributes:
        data_coordinates: (x, y) pixel on the tile raster
        lat_long: Geodetic position in radians
        proximity_value: Metres beyond the closest approach; smaller is closer
        tile: Tile holding the point
    """

    data_coordinates: Tuple[int, int]
    lat_long: LatLong
    proximity_value: float
    tile: Tile


class TopKTracker(object):
    """
    Keep the `capacity` entries with the smallest values seen so far.

    While fewer than `capacity` entries are held every value is admitted.
    After that a value is admitted only if it is strictly smaller than the
    current threshold (the worst value held), evicting the worst entry.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"Capacity must be positive, got {capacity}")
        self.capacity = int(capacity)
        self._entries: List[Tuple[float, Any]] = []
        self._threshold = math.inf

    def __len__(self):
        return len(self._entries)

    @property
    def threshold(self) -> float:
        """Worst retained value, or +inf while not yet full."""
        return self._threshold

    def admits(self, value: float) -> bool:
        return len(self._entries) < self.capacity or value < self._threshold

    def offer(self, value: float, item: Any) -> bool:
        """Offer an item; return True if it was retained."""
        if not self.admits(value):
            return False

        if len(self._entries) >= self.capacity:
            self._entries.pop(self._worst_index())
        self._entries.append((value, item))

        if len(self._entries) >= self.capacity:
            self._threshold = self._entries[self._worst_index()][0]
        return True

    def _worst_index(self) -> int:
        worst = 0
        for i in range(1, len(self._entries)):
            if self._entries[i][0] > self._entries[worst][0]:
                worst = i
        return worst

    def results(self) -> List[Any]:
        """Retained items, closest first."""
        return [item for _, item in sorted(self._entries, key=lambda e: e[0])]


class TopKSet(object):
    """Immutable, ascending set of the closest point records."""

    def __init__(self, records: Sequence[ClosestPointRecord], capacity: int):
        self._records = tuple(records)
        self.capacity = capacity

    def __len__(self):
        return len(self._records)

    def __iter__(self) -> Iterator[ClosestPointRecord]:
        return iter(self._records)

    def __getitem__(self, index):
        return self._records[index]

    def __repr__(self):
        return f"TopKSet({len(self._records)}/{self.capacity})"

    def top(self, count: int) -> List[ClosestPointRecord]:
        """
        Return the `count` closest records.

        Raises:
            TopCountExceededError: If count is larger than the capacity
        """
        if count > self.capacity:
            raise TopCountExceededError(count, self.capacity)
        if count < 0:
            raise ValueError(f"Count must not be negative, got {count}")
        return list(self._records[:count])


def closest_points(lines: Sequence[TerrainLongitudeLine], capacity: int) -> TopKSet:
    """Scan every point of every line once and keep the `capacity` closest."""
    tracker = TopKTracker(capacity)
    scanned = 0
    for line in lines:
        for point in line.points:
            scanned += 1
            # Raster proximity is larger-is-closer; records rank smaller-is-closer.
            value = -point.value
            if not tracker.admits(value):
                continue
            tracker.offer(value, ClosestPointRecord(
                data_coordinates=(line.x, point.y),
                lat_long=LatLong(point.latitude, line.longitude),
                proximity_value=value,
                tile=point.tile,
            ))

    records = tracker.results()
    log.info(f"Retained {len(records)} of {scanned} point(s) as closest")
    return TopKSet(records, capacity)
