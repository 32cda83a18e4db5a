#!/usr/bin/env python3
"""
Unit tests for the terrain query surface.

Tests cover:
- Top-N queries and their capacity limit
- Raster reads per channel and pixel clamping
- Errors for tiles without rasters
- Mesh building and map picking, including the empty result
"""

import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from proxterrain.atlas import map_atlas, texture_atlas
from proxterrain.columns import extract_longitude_lines
from proxterrain.errors import RasterNotReadyError, TileNotInLayoutError, TopCountExceededError
from proxterrain.terrain import ProximityTerrainData
from proxterrain.tilegrid import TileGrid
from proxterrain.tilelayout import TileLayout
from proxterrain.topk import closest_points
from proxterrain.utils.constants import (
    CHANNEL_DISTANCE_ABOVE_MIN,
    CHANNEL_ELEVATION,
    CHANNEL_PROXIMITY,
    CHANNEL_UNIX_SECONDS,
)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def grid():
    return TileGrid(8, 4)


@pytest.fixture
def tile(grid):
    return grid[17]


@pytest.fixture
def data(grid, tile):
    width, height = 4, 3
    proximity = np.array([
        [-1.0, 10.0, 20.0, -1.0],
        [-1.0, 30.0, 40.0, 5.0],
        [-1.0, -1.0, 50.0, 6.0],
    ])
    rasters = {tile.index: {
        CHANNEL_PROXIMITY: proximity,
        CHANNEL_ELEVATION: np.arange(12, dtype=np.float64).reshape(height, width) * 100,
        CHANNEL_DISTANCE_ABOVE_MIN: np.full((height, width), 2.5),
        CHANNEL_UNIX_SECONDS: np.full((height, width), 1700000000.0),
    }}
    layout = TileLayout.from_groups([[tile]])
    lines = extract_longitude_lines(layout.grouped_ordered_tiles, lambda t: rasters[t.index][CHANNEL_PROXIMITY],
                                    grid, (width, height), 0.0)
    return ProximityTerrainData(
        grid, layout, (width, height), rasters, lines, closest_points(lines, 4), 50,
        map_atlas=map_atlas((width, height), layout, grid),
        texture_atlas=texture_atlas((8, 6), layout, 4096),
    )


# =============================================================================
# Query Tests
# =============================================================================


class TestQueries:

    def test_top_closest_points(self, data):
        top = data.top_closest_points(3)
        assert [r.proximity_value for r in top] == [-50.0, -40.0, -30.0]
        assert top[0].data_coordinates == (2, 2)

    def test_top_count_exceeded(self, data):
        with pytest.raises(TopCountExceededError):
            data.top_closest_points(5)

    def test_raster_reads(self, data, tile):
        assert data.elevation_at(tile, (2, 1)) == 600.0
        assert data.distance_above_min_at(tile, (2, 1)) == 2.5
        assert data.unix_seconds_at(tile, (2, 1)) == 1700000000.0

    def test_fractional_and_edge_positions(self, data, tile):
        assert data.elevation_at(tile, (2.7, 1.2)) == 600.0
        assert data.elevation_at(tile, (4.0, 3.0)) == 1100.0

    def test_lat_long_of(self, data, tile, grid):
        lat_long = data.lat_long_of(tile, (2, 1))
        assert lat_long.long == pytest.approx(tile.start_longitude + 0.5 * grid.longitude_span)
        assert lat_long.lat == pytest.approx(tile.start_latitude - grid.latitude_span / 3)

    def test_not_ready(self, data, grid):
        with pytest.raises(RasterNotReadyError):
            data.elevation_at(grid[0], (0, 0))


# =============================================================================
# Mesh and Picking Tests
# =============================================================================


class TestMeshAndPicking:

    def test_mesh(self, data):
        topology = data.build_mesh_topology()
        assert len(topology.lines) == 3
        assert len(topology.vertices) == 7
        assert topology.triangle_indices
        for vertex in topology.vertices:
            u, v = vertex.uv
            assert 0.0 <= u <= 1.0 and 0.0 <= v <= 1.0

    def test_uv_rescaled_to_color_tile(self, data, tile):
        topology = data.build_mesh_topology()
        vertex = [v for v in topology.vertices if v.position == (2, 2)][0]
        assert vertex.uv == pytest.approx((0.5, 2 / 3))

    def test_pick_round_trip(self, data, tile):
        xy = data.map_atlas.to_atlas(tile, (1.5, 2.5))
        found, position = data.tile_position_from_map(xy)
        assert found == tile
        assert position == pytest.approx((1.5, 2.5))

    def test_pick_outside(self, data):
        with pytest.raises(TileNotInLayoutError):
            data.tile_position_from_map((100.0, 100.0))


class TestEmptyTerrain:

    @pytest.fixture
    def empty(self, grid):
        return ProximityTerrainData.empty(grid, (4, 3), capacity=10, mesh_point_spacing=50)

    def test_is_empty(self, empty):
        assert empty.is_empty()
        assert empty.top_closest_points(10) == []

    def test_capacity_still_enforced(self, empty):
        with pytest.raises(TopCountExceededError):
            empty.top_closest_points(11)

    def test_mesh_empty(self, empty):
        topology = empty.build_mesh_topology()
        assert topology.vertices == []
        assert topology.triangle_indices == []

    def test_pick_raises(self, empty):
        with pytest.raises(TileNotInLayoutError):
            empty.tile_position_from_map((0.0, 0.0))
