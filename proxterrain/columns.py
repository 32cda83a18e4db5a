#!/usr/bin/env python3
"""
Stitching of per-tile raster columns into longitude lines.

Every pixel column of a layout column is read North to South across all of
its tiles.  Only the contiguous run of samples above the inclusion
threshold is kept: the first sample at or below the threshold after the run
started ends the line, even if a later sample would qualify again.  Lines
with fewer than two points are dropped since they cannot form a segment.
"""

from dataclasses import dataclass, field
from typing import Callable, List, Sequence, Tuple

import numpy as np

import logging

from proxterrain.errors import RasterNotReadyError, RasterShapeError
from proxterrain.tilegrid import Tile, TileGrid

log = logging.getLogger(__name__)

# A line needs at least this many points to be drawn
MIN_LINE_POINTS = 2


@dataclass
class TerrainLongitudePoint:
    tile: Tile
    y: int
    latitude: float
    value: float


@dataclass
class TerrainLongitudeLine:
    x: int
    longitude: float
    points: List[TerrainLongitudePoint] = field(default_factory=list)


def inclusion_threshold(halo_km: float) -> float:
    """Proximity samples (metres, larger is closer) must exceed this value."""
    return -float(halo_km) * 1000.0


def column_points(tile_values: Sequence[Tuple[Tile, np.ndarray]], start_latitude: float,
                  latitude_step: float, x: int, threshold: float) -> List[TerrainLongitudePoint]:
    """
    Extract the contiguous in-range run of pixel column x.

    Args:
        tile_values: (tile, 2D raster) pairs ordered North to South
        start_latitude: Latitude of row 0 of the first tile
        latitude_step: Latitude change per row (negative going South)
        x: Pixel column
        threshold: Samples must be strictly greater than this

    Returns:
        The run as a list, empty if no sample is in range.
    """
    column = np.concatenate([np.asarray(data)[:, x] for _, data in tile_values])
    in_range = column > threshold
    if not in_range.any():
        return []

    start = int(np.argmax(in_range))
    out_of_range = ~in_range[start:]
    end = start + int(np.argmax(out_of_range)) if out_of_range.any() else len(column)

    # Map the run back to (tile, row).
    points = []
    row_offset = 0
    for tile, data in tile_values:
        height = data.shape[0]
        first = max(start, row_offset)
        last = min(end, row_offset + height)
        for i in range(first, last):
            points.append(TerrainLongitudePoint(
                tile=tile,
                y=i - row_offset,
                latitude=start_latitude + i * latitude_step,
                value=float(column[i]),
            ))
        row_offset += height
        if row_offset >= end:
            break
    return points


def extract_longitude_lines(grouped_ordered_tiles: Sequence[Sequence[Tile]],
                            raster_for: Callable[[Tile], np.ndarray],
                            grid: TileGrid,
                            tile_dimensions: Tuple[int, int],
                            threshold: float) -> List[TerrainLongitudeLine]:
    """
    Build one TerrainLongitudeLine per pixel column of every layout column,
    West to East.

    Args:
        grouped_ordered_tiles: Layout columns, each ordered North to South
        raster_for: Returns the proximity raster of a tile, shape (height, width)
        grid: The tile grid the tiles belong to
        tile_dimensions: (width, height) of every raster
        threshold: Inclusion threshold, see inclusion_threshold()

    Raises:
        RasterNotReadyError: If a tile has no raster yet
        RasterShapeError: If a raster does not match tile_dimensions
    """
    width, height = tile_dimensions
    latitude_step = -grid.latitude_span / height
    longitude_step = grid.longitude_span / width

    lines: List[TerrainLongitudeLine] = []
    dropped = 0
    for group in grouped_ordered_tiles:
        if not group:
            continue

        tile_values = []
        for tile in group:
            data = raster_for(tile)
            if data is None:
                raise RasterNotReadyError(f"Proximity raster for tile {tile.identifier} is not ready")
            data = np.asarray(data)
            if data.shape != (height, width):
                raise RasterShapeError(
                    f"Raster for tile {tile.identifier} has shape {data.shape}, expected {(height, width)}"
                )
            tile_values.append((tile, data))

        start_latitude = group[0].start_latitude
        start_longitude = group[0].start_longitude
        for x in range(width):
            points = column_points(tile_values, start_latitude, latitude_step, x, threshold)
            if len(points) >= MIN_LINE_POINTS:
                lines.append(TerrainLongitudeLine(x=x, longitude=start_longitude + longitude_step * x,
                                                  points=points))
            else:
                dropped += 1

    log.info(f"Extracted {len(lines)} longitude line(s), dropped {dropped} short column(s)")
    return lines
