#!/usr/bin/env python3
"""
Query surface over the extracted proximity terrain.

ProximityTerrainData holds the result of one pipeline run: the tile layout,
the sampled rasters of every tile, the longitude lines and the retained
closest points.  Callers ask it for the N closest points, read raster
values at a tile position, build the decimated mesh, and map a position on
the 2D map back to a tile for picking.
"""

import math
from typing import Dict, List, Optional, Tuple

import numpy as np

import logging

from proxterrain.atlas import AtlasMapper
from proxterrain.columns import TerrainLongitudeLine
from proxterrain.errors import RasterNotReadyError, TileNotInLayoutError
from proxterrain.mesh import MeshTopology, build_mesh_topology
from proxterrain.tilegrid import Tile, TileGrid
from proxterrain.tilelayout import TileLayout
from proxterrain.topk import ClosestPointRecord, LatLong, TopKSet
from proxterrain.utils.constants import (
    CHANNEL_DISTANCE_ABOVE_MIN,
    CHANNEL_ELEVATION,
    CHANNEL_UNIX_SECONDS,
)

log = logging.getLogger(__name__)

TileRasters = Dict[str, np.ndarray]


class ProximityTerrainData(object):
    """
    Read-only result of a proximity terrain extraction.

    Args:
        grid: Tile grid the layout was selected from
        layout: Selected tiles
        tile_dimensions: (width, height) of every sampled raster
        rasters: tile index -> channel -> 2D raster
        lines: Extracted longitude lines, West to East
        top_set: The closest points retained during extraction
        mesh_point_spacing: Decimation stride for build_mesh_topology()
        map_atlas: Atlas of the flat 2D map, None for an empty result
        texture_atlas: Atlas of the color texture, None if there is none
        color_texture: Composed color texture image, if color was fetched
    """

    def __init__(self, grid: TileGrid, layout: TileLayout, tile_dimensions: Tuple[int, int],
                 rasters: Dict[int, TileRasters], lines: List[TerrainLongitudeLine], top_set: TopKSet,
                 mesh_point_spacing: int, map_atlas: Optional[AtlasMapper] = None,
                 texture_atlas: Optional[AtlasMapper] = None, color_texture: Optional[np.ndarray] = None):
        self.grid = grid
        self.layout = layout
        self.tile_dimensions = tuple(tile_dimensions)
        self._rasters = rasters
        self.lines = lines
        self.top_set = top_set
        self.mesh_point_spacing = int(mesh_point_spacing)
        self.map_atlas = map_atlas
        self.texture_atlas = texture_atlas
        self.color_texture = color_texture

    @classmethod
    def empty(cls, grid: TileGrid, tile_dimensions: Tuple[int, int], capacity: int,
              mesh_point_spacing: int) -> "ProximityTerrainData":
        """Result for a path with no terrain in range."""
        return cls(grid, TileLayout.from_groups([]), tile_dimensions, {}, [],
                   TopKSet([], capacity), mesh_point_spacing)

    def __repr__(self):
        return (f"ProximityTerrainData({len(self.layout.tiles)} tile(s), "
                f"{len(self.lines)} line(s), {self.top_set!r})")

    def is_empty(self) -> bool:
        return self.layout.is_empty()

    # -------------------------------------------------------------------------
    # Closest points
    # -------------------------------------------------------------------------

    def top_closest_points(self, count: int) -> List[ClosestPointRecord]:
        """
        The `count` closest points, closest first.

        Raises:
            TopCountExceededError: If more points are asked for than retained
        """
        return self.top_set.top(count)

    # -------------------------------------------------------------------------
    # Raster reads
    # -------------------------------------------------------------------------

    def _raster(self, tile: Tile, channel: str) -> np.ndarray:
        tile_rasters = self._rasters.get(tile.index)
        if tile_rasters is None or channel not in tile_rasters:
            raise RasterNotReadyError(f"No {channel} raster for tile {tile.identifier}")
        return tile_rasters[channel]

    def _pixel(self, position: Tuple[float, float]) -> Tuple[int, int]:
        width, height = self.tile_dimensions
        x, y = position
        x = min(max(int(math.floor(x)), 0), width - 1)
        y = min(max(int(math.floor(y)), 0), height - 1)
        return x, y

    def _value_at(self, tile: Tile, position: Tuple[float, float], channel: str) -> float:
        raster = self._raster(tile, channel)
        x, y = self._pixel(position)
        return float(raster[y, x])

    def lat_long_of(self, tile: Tile, position: Tuple[float, float]) -> LatLong:
        longitude, latitude = self.grid.position_to_geodetic(tile, position, self.tile_dimensions)
        return LatLong(latitude, longitude)

    def elevation_at(self, tile: Tile, position: Tuple[float, float]) -> float:
        """Metres above sea level."""
        return self._value_at(tile, position, CHANNEL_ELEVATION)

    def distance_above_min_at(self, tile: Tile, position: Tuple[float, float]) -> float:
        """Km above the closest approach distance."""
        return self._value_at(tile, position, CHANNEL_DISTANCE_ABOVE_MIN)

    def unix_seconds_at(self, tile: Tile, position: Tuple[float, float]) -> float:
        return self._value_at(tile, position, CHANNEL_UNIX_SECONDS)

    # -------------------------------------------------------------------------
    # Mesh and picking
    # -------------------------------------------------------------------------

    def _vertex_positions(self, tile: Tile, position: Tuple[int, int]):
        xy = self.map_atlas.to_atlas(tile, position)
        uv = None
        if self.texture_atlas is not None:
            # Rescale from the sampled raster to the color tile.
            width, height = self.tile_dimensions
            color_width, color_height = self.texture_atlas.tile_dimensions
            color_position = (position[0] * color_width / width, position[1] * color_height / height)
            ax, ay = self.texture_atlas.to_atlas(tile, color_position)
            texture_width, texture_height = self.texture_atlas.target_dimensions
            uv = (ax / texture_width, ay / texture_height)
        return xy, uv

    def build_mesh_topology(self) -> MeshTopology:
        """Decimated mesh of the extracted lines, closest points kept at full detail."""
        if self.map_atlas is None:
            return MeshTopology()
        return build_mesh_topology(self.lines, list(self.top_set), self.mesh_point_spacing,
                                   self._vertex_positions)

    def tile_position_from_map(self, map_xy: Tuple[float, float]) -> Tuple[Tile, Tuple[float, float]]:
        """
        Map a position on the 2D map back to (tile, position on tile).

        Raises:
            TileNotInLayoutError: If no selected tile lies under map_xy
        """
        if self.map_atlas is None:
            raise TileNotInLayoutError(f"No tiles to pick from at {map_xy}")
        return self.map_atlas.from_atlas(map_xy)
