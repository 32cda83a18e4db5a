#!/usr/bin/env python3
"""
Placement of layout tiles in a shared atlas.

An atlas is a single 2D target (a texture, or a plain 2D map) divided into
equal cells, one per (column, row) of a TileLayout.  Each tile's local
pixel grid is scaled into its cell:

    atlas_x = (column + x / tile_width)  * target_tile_width
    atlas_y = (row    + y / tile_height) * target_tile_height

and the reverse mapping recovers (tile, local position) from any atlas
position inside a populated cell.  Cells never overlap, so the mapping is
a bijection between tile pixels and atlas rectangles.
"""

import math
from dataclasses import dataclass
from typing import Dict, Tuple

import logging

from proxterrain.errors import TileNotInLayoutError
from proxterrain.tilegrid import Tile, TileGrid
from proxterrain.tilelayout import TileLayout

log = logging.getLogger(__name__)

# Tolerance for float rounding when locating the cell of an atlas position
_CELL_EPSILON = 1e-9


@dataclass(frozen=True)
class AtlasPlacement:
    """Affine mapping of one tile's pixels into the atlas."""

    tile: Tile
    column: int
    row: int
    x_offset: float
    y_offset: float
    scale_x: float
    scale_y: float

    def to_atlas(self, position: Tuple[float, float]) -> Tuple[float, float]:
        x, y = position
        return self.x_offset + x * self.scale_x, self.y_offset + y * self.scale_y


@dataclass(frozen=True)
class AtlasRect:
    x_offset: float
    y_offset: float
    width: float
    height: float


class AtlasMapper:
    """
    Maps tile-local positions to atlas positions for every tile of a layout.

    Args:
        target_dimensions: (width, height) of the whole atlas
        tile_dimensions: (width, height) of a single tile raster
        layout: The tiles to place
    """

    def __init__(self, target_dimensions: Tuple[float, float], tile_dimensions: Tuple[int, int],
                 layout: TileLayout):
        if layout.is_empty():
            raise ValueError("Cannot build an atlas for an empty tile layout")

        self.target_dimensions = target_dimensions
        self.tile_dimensions = tile_dimensions
        self.layout = layout

        width, height = target_dimensions
        self.target_tile_width = width / layout.column_count
        self.target_tile_height = height / layout.row_count

        tile_width, tile_height = tile_dimensions
        scale_x = self.target_tile_width / tile_width
        scale_y = self.target_tile_height / tile_height

        self._placements: Dict[int, AtlasPlacement] = {}
        for tile in layout.tiles:
            column = layout.start_longitudes.index(tile.start_longitude)
            row = layout.start_latitudes.index(tile.start_latitude)
            self._placements[tile.index] = AtlasPlacement(
                tile=tile,
                column=column,
                row=row,
                x_offset=column * self.target_tile_width,
                y_offset=row * self.target_tile_height,
                scale_x=scale_x,
                scale_y=scale_y,
            )

        log.debug(
            f"Atlas {width}x{height}: {layout.column_count}x{layout.row_count} cells of "
            f"{self.target_tile_width}x{self.target_tile_height}"
        )

    def placement(self, tile: Tile) -> AtlasPlacement:
        try:
            return self._placements[tile.index]
        except KeyError:
            raise TileNotInLayoutError(f"Tile {tile.identifier} not recognized") from None

    def target_rect(self, tile: Tile) -> AtlasRect:
        placement = self.placement(tile)
        return AtlasRect(placement.x_offset, placement.y_offset,
                         self.target_tile_width, self.target_tile_height)

    def to_atlas(self, tile: Tile, position: Tuple[float, float]) -> Tuple[float, float]:
        """Map a position on a tile to an atlas position."""
        return self.placement(tile).to_atlas(position)

    def from_atlas(self, atlas_position: Tuple[float, float]) -> Tuple[Tile, Tuple[float, float]]:
        """
        Map an atlas position back to (tile, position on tile).

        Raises:
            TileNotInLayoutError: If the position falls outside the atlas or
                on a cell with no tile.
        """
        x, y = atlas_position
        width, height = self.target_dimensions
        column_count = self.layout.column_count
        row_count = self.layout.row_count

        column = int(math.floor(column_count * (x / width) + _CELL_EPSILON))
        row = int(math.floor(row_count * (y / height) + _CELL_EPSILON))
        if not (0 <= column < column_count and 0 <= row < row_count):
            raise TileNotInLayoutError(f"Atlas position {atlas_position} is outside the atlas")

        tile = self.layout.tile_at_grid(column, row)
        if tile is None:
            raise TileNotInLayoutError(
                f"No tile found for startLon {self.layout.start_longitudes[column]} "
                f"and startLat {self.layout.start_latitudes[row]}"
            )

        lon_remainder = x - column * self.target_tile_width
        lat_remainder = y - row * self.target_tile_height
        tile_width, tile_height = self.tile_dimensions
        tile_x = max(0.0, (lon_remainder / self.target_tile_width) * tile_width)
        tile_y = max(0.0, (lat_remainder / self.target_tile_height) * tile_height)
        return tile, (tile_x, tile_y)


def texture_atlas(tile_dimensions: Tuple[int, int], layout: TileLayout,
                  max_texture_size: int) -> AtlasMapper:
    """
    Build an atlas where each tile is lined up horizontally in a texture no
    wider than max_texture_size.

    The width is the largest multiple of the tile width within the cap, and
    never more than one full tile per column.
    """
    tile_width, tile_height = tile_dimensions
    fitting_width = (int(max_texture_size) // tile_width) * tile_width
    if fitting_width <= 0:
        raise ValueError(f"Tile width {tile_width} exceeds maximum texture size {max_texture_size}")

    width = min(fitting_width, tile_width * layout.column_count)
    return AtlasMapper((width, tile_height), tile_dimensions, layout)


def map_atlas(tile_dimensions: Tuple[int, int], layout: TileLayout, grid: TileGrid) -> AtlasMapper:
    """Build an atlas in geodetic units for a flat 2D map of the layout."""
    width = (layout.column_count + 1) * grid.longitude_span
    height = -(layout.row_count + 1) * grid.latitude_span
    return AtlasMapper((width, height), tile_dimensions, layout)
