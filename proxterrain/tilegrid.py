#!/usr/bin/env python3
"""
Fixed global tile addressing.

The Earth's equirectangular imagery is split into a grid of equal
longitude/latitude spans (32 x 16 for the full-resolution sources).  Tiles
are numbered column-major: column 0 starts at longitude -pi, row 0 starts
at latitude +pi/2 (the north pole), and

    index = column * row_count + row

A grid is an ordinary immutable value.  Build one per source configuration
and pass it around; tests use smaller grids.

Usage:
    from proxterrain.tilegrid import TileGrid

    grid = TileGrid()
    tile = grid.tile_at(math.radians(-122.3), math.radians(47.5))
    tile.identifier   # 'image5x3'
"""

import math
from dataclasses import dataclass
from typing import Iterator, List, Tuple

import logging

from proxterrain.errors import GeodeticRangeError
from proxterrain.utils.constants import (
    HALF_PI,
    HORIZONTAL_TILE_COUNT,
    TWO_PI,
    VERTICAL_TILE_COUNT,
)

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Tile:
    """
    One cell of the global grid.

    Attributes:
        index: Position in the grid (column * row_count + row)
        start_longitude: Western edge in radians
        start_latitude: Northern edge in radians
        identifier: Resource base name, e.g. 'image1x1'
    """

    index: int
    start_longitude: float
    start_latitude: float
    identifier: str

    def __repr__(self) -> str:
        return f"Tile({self.index}, {self.identifier})"


class TileGrid:
    """An immutable column/row partition of the globe."""

    def __init__(self, column_count: int = HORIZONTAL_TILE_COUNT, row_count: int = VERTICAL_TILE_COUNT):
        if column_count < 1 or row_count < 1:
            raise ValueError(f"Invalid grid size {column_count}x{row_count}")
        self._column_count = int(column_count)
        self._row_count = int(row_count)
        self._lon_span = TWO_PI / self._column_count
        self._lat_span = math.pi / self._row_count

        tiles = []
        for index in range(self._column_count * self._row_count):
            column, row = divmod(index, self._row_count)
            tiles.append(Tile(
                index=index,
                start_longitude=-math.pi + column * self._lon_span,
                start_latitude=HALF_PI - row * self._lat_span,
                identifier=f"image{column + 1}x{row + 1}",
            ))
        self._tiles = tuple(tiles)

    @classmethod
    def from_config(cls, cfg) -> "TileGrid":
        return cls(int(cfg.tiles.columns), int(cfg.tiles.rows))

    @property
    def column_count(self) -> int:
        return self._column_count

    @property
    def row_count(self) -> int:
        return self._row_count

    @property
    def longitude_span(self) -> float:
        """Radians of longitude covered by one tile."""
        return self._lon_span

    @property
    def latitude_span(self) -> float:
        """Radians of latitude covered by one tile."""
        return self._lat_span

    def __len__(self) -> int:
        return len(self._tiles)

    def __iter__(self) -> Iterator[Tile]:
        return iter(self._tiles)

    def __getitem__(self, index: int) -> Tile:
        return self._tiles[index]

    def __eq__(self, other):
        if not isinstance(other, TileGrid):
            return NotImplemented
        return (self._column_count, self._row_count) == (other._column_count, other._row_count)

    def __hash__(self):
        return hash((self._column_count, self._row_count))

    def __repr__(self) -> str:
        return f"TileGrid({self._column_count}x{self._row_count})"

    def grid_position(self, tile: Tile) -> Tuple[int, int]:
        """Return (column, row) of a tile."""
        return divmod(tile.index, self._row_count)

    def tile_at(self, longitude: float, latitude: float) -> Tile:
        """
        Return the tile containing a geodetic coordinate.

        Args:
            longitude: Radians in [-pi, pi)
            latitude: Radians in [-pi/2, pi/2]

        Raises:
            GeodeticRangeError: If either coordinate is out of range.
                Use clamp_geodetic() upstream for raw inputs.
        """
        if not (-math.pi <= longitude < math.pi) or not (-HALF_PI <= latitude <= HALF_PI):
            raise GeodeticRangeError(longitude, latitude)

        # Clamp guards the south pole (row == row_count) and float rounding
        # right below +pi.
        column = min(int(math.floor((longitude + math.pi) / self._lon_span)), self._column_count - 1)
        row = min(int(math.floor((HALF_PI - latitude) / self._lat_span)), self._row_count - 1)
        return self._tiles[column * self._row_count + row]

    def tile_dimensions(self, image_dimensions: Tuple[int, int]) -> Tuple[int, int]:
        """Split a full-Earth image size (width, height) into a per-tile size."""
        width, height = image_dimensions
        if width % self._column_count or height % self._row_count:
            raise ValueError(
                f"Image size {width}x{height} does not divide into a "
                f"{self._column_count}x{self._row_count} grid"
            )
        return width // self._column_count, height // self._row_count

    def position_to_geodetic(self, tile: Tile, position: Tuple[float, float],
                             tile_dimensions: Tuple[int, int]) -> Tuple[float, float]:
        """Convert a pixel position on a tile to (longitude, latitude) radians."""
        x, y = position
        width, height = tile_dimensions
        longitude = tile.start_longitude + (x / width) * self._lon_span
        latitude = tile.start_latitude - (y / height) * self._lat_span
        return longitude, latitude

    def tiles_in_column(self, column: int) -> List[Tile]:
        start = column * self._row_count
        return list(self._tiles[start:start + self._row_count])


def clamp_geodetic(longitude: float, latitude: float) -> Tuple[float, float]:
    """
    Normalize longitude into [-pi, pi) and clamp latitude into [-pi/2, pi/2].

    NaN is rejected, since no tile can be chosen for it.
    """
    if math.isnan(longitude) or math.isnan(latitude):
        raise GeodeticRangeError(longitude, latitude)

    longitude = ((longitude + math.pi) % TWO_PI) - math.pi
    if longitude >= math.pi:
        longitude = -math.pi
    latitude = max(-HALF_PI, min(HALF_PI, latitude))
    return longitude, latitude
