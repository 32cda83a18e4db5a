#!/usr/bin/env python3
"""
Tile selection for a proximity path.

A proximity path is the sub-lunar track sampled around perigee.  Only the
samples within the halo (a few km of the closest approach) matter, so the
tiles under those samples are selected and arranged into columns:

    - tiles are ordered by descending path time (the track moves East to
      West over time, the layout runs West to East)
    - tiles sharing a start longitude form a column
    - each column is sorted North to South

The distinct start longitudes/latitudes, in first-seen order, are the two
1-D grids used to address a tile by (column, row) in an atlas.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import logging

from proxterrain.tilegrid import Tile, TileGrid, clamp_geodetic

log = logging.getLogger(__name__)


@dataclass
class ProximityPath:
    """
    Samples along a proximity path.

    Attributes:
        geodetic_coords: (longitude, latitude) in radians for each sample
        distances_above_min: km above the minimum distance for each sample
        unix_seconds: Time of each sample
        min_distance: Closest approach distance in km
        min_distance_index: Index of the closest approach sample
    """

    geodetic_coords: List[Tuple[float, float]]
    distances_above_min: List[float]
    unix_seconds: List[float]
    min_distance: float = 0.0
    min_distance_index: int = 0

    def __post_init__(self):
        self.geodetic_coords = [(float(lon), float(lat)) for lon, lat in self.geodetic_coords]
        self.distances_above_min = [float(d) for d in self.distances_above_min]
        self.unix_seconds = [float(t) for t in self.unix_seconds]
        count = len(self.geodetic_coords)
        if len(self.distances_above_min) != count or len(self.unix_seconds) != count:
            raise ValueError(
                f"Path sequences differ in length: coords={count}, "
                f"distances={len(self.distances_above_min)}, times={len(self.unix_seconds)}"
            )

    def __len__(self) -> int:
        return len(self.geodetic_coords)

    @classmethod
    def from_dict(cls, data: dict) -> "ProximityPath":
        """
        Create a path from its JSON form.

        Raises:
            KeyError: If a required key is missing
        """
        return cls(
            geodetic_coords=[tuple(c) for c in data["geodetic_coords"]],
            distances_above_min=data["distances_above_min"],
            unix_seconds=data["unix_seconds"],
            min_distance=float(data.get("min_distance", 0.0)),
            min_distance_index=int(data.get("min_distance_index", 0)),
        )


@dataclass(frozen=True)
class TileLayout:
    """
    Selected tiles grouped into columns.

    Every tile of a column shares its start longitude.  Columns keep the
    order they were built in, which is not necessarily longitude order
    (a layout may wrap the antimeridian).
    """

    grouped_ordered_tiles: Tuple[Tuple[Tile, ...], ...]
    start_longitudes: Tuple[float, ...] = field(default=())
    start_latitudes: Tuple[float, ...] = field(default=())

    @classmethod
    def from_groups(cls, groups: Sequence[Sequence[Tile]]) -> "TileLayout":
        grouped = tuple(tuple(g) for g in groups if len(g) > 0)
        longitudes: List[float] = []
        latitudes: List[float] = []
        for group in grouped:
            lon = group[0].start_longitude
            for tile in group:
                if tile.start_longitude != lon:
                    raise ValueError(
                        f"Tile {tile.identifier} does not share column longitude {lon}"
                    )
                if tile.start_latitude not in latitudes:
                    latitudes.append(tile.start_latitude)
            if lon not in longitudes:
                longitudes.append(lon)
        return cls(grouped, tuple(longitudes), tuple(latitudes))

    @property
    def column_count(self) -> int:
        return len(self.start_longitudes)

    @property
    def row_count(self) -> int:
        return len(self.start_latitudes)

    @property
    def tiles(self) -> List[Tile]:
        return [tile for group in self.grouped_ordered_tiles for tile in group]

    def is_empty(self) -> bool:
        return not self.grouped_ordered_tiles

    def tile_at_grid(self, column: int, row: int) -> Optional[Tile]:
        """Return the tile at a layout (column, row), or None for a gap."""
        lon = self.start_longitudes[column]
        lat = self.start_latitudes[row]
        for group in self.grouped_ordered_tiles:
            if group[0].start_longitude != lon:
                continue
            for tile in group:
                if tile.start_latitude == lat:
                    return tile
        return None


def select_tiles(path: ProximityPath, grid: TileGrid, halo_km: float) -> TileLayout:
    """
    Choose the tiles under the part of a path within halo_km of its
    closest approach and arrange them into a TileLayout.

    Returns an empty layout when no path sample is within the halo.
    """
    selected: Dict[int, Tuple[Tile, float]] = {}
    for (lon, lat), distance_above_min, seconds in zip(
            path.geodetic_coords, path.distances_above_min, path.unix_seconds):
        if distance_above_min >= halo_km:
            continue
        tile = grid.tile_at(*clamp_geodetic(lon, lat))
        if tile.index not in selected:
            selected[tile.index] = (tile, seconds)

    # Descending time: the path runs East to West, tiles are wanted West to East.
    ordered = [tile for tile, _ in sorted(selected.values(), key=lambda ts: ts[1], reverse=True)]

    # One column per distinct longitude, in first-seen order.  A path that
    # revisits a longitude adds to the existing column.
    columns: Dict[float, List[Tile]] = {}
    for tile in ordered:
        columns.setdefault(tile.start_longitude, []).append(tile)

    groups = list(columns.values())
    for group in groups:
        group.sort(key=lambda t: t.start_latitude, reverse=True)

    layout = TileLayout.from_groups(groups)
    log.info(f"Selected {len(ordered)} tile(s) in {len(groups)} column(s) within {halo_km} km halo")
    log.debug(f"Tile layout: {[[t.identifier for t in g] for g in layout.grouped_ordered_tiles]}")
    return layout
