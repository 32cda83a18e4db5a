#!/usr/bin/env python3
"""
Unit tests for the global tile grid.

Tests cover:
- Tile numbering, start coordinates and identifiers
- tile_at containment over the whole globe
- Range errors and pole/antimeridian handling
- Per-tile raster sizes
"""

import math
import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from proxterrain.errors import GeodeticRangeError
from proxterrain.tilegrid import Tile, TileGrid, clamp_geodetic


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def grid():
    return TileGrid()


# =============================================================================
# Construction Tests
# =============================================================================


class TestTileGridConstruction:

    def test_default_size(self, grid):
        assert grid.column_count == 32
        assert grid.row_count == 16
        assert len(grid) == 512

    def test_spans(self, grid):
        assert grid.longitude_span == pytest.approx(2 * math.pi / 32)
        assert grid.latitude_span == pytest.approx(math.pi / 16)

    def test_first_tile(self, grid):
        tile = grid[0]
        assert tile.index == 0
        assert tile.start_longitude == pytest.approx(-math.pi)
        assert tile.start_latitude == pytest.approx(math.pi / 2)
        assert tile.identifier == "image1x1"

    def test_column_major_numbering(self, grid):
        """index = column * row_count + row"""
        tile = grid[3 * 16 + 5]
        assert tile.identifier == "image4x6"
        assert tile.start_longitude == pytest.approx(-math.pi + 3 * grid.longitude_span)
        assert tile.start_latitude == pytest.approx(math.pi / 2 - 5 * grid.latitude_span)
        assert grid.grid_position(tile) == (3, 5)

    def test_last_tile(self, grid):
        assert grid[511].identifier == "image32x16"

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            TileGrid(0, 16)

    def test_grids_compare_by_size(self):
        assert TileGrid(4, 2) == TileGrid(4, 2)
        assert TileGrid(4, 2) != TileGrid(2, 4)

    def test_tiles_in_column(self, grid):
        tiles = grid.tiles_in_column(2)
        assert len(tiles) == 16
        assert all(t.start_longitude == tiles[0].start_longitude for t in tiles)

    def test_tile_is_immutable(self, grid):
        with pytest.raises(Exception):
            grid[0].index = 5


# =============================================================================
# Lookup Tests
# =============================================================================


class TestTileAt:

    @pytest.mark.parametrize("lon_deg", [-180, -123.4, -0.001, 0, 45.5, 179.9])
    @pytest.mark.parametrize("lat_deg", [90, 47.5, 0.01, 0, -33.3, -89.9])
    def test_containment(self, grid, lon_deg, lat_deg):
        lon, lat = math.radians(lon_deg), math.radians(lat_deg)
        tile = grid.tile_at(lon, lat)
        assert tile.start_longitude <= lon < tile.start_longitude + grid.longitude_span + 1e-12
        assert tile.start_latitude - grid.latitude_span - 1e-12 < lat <= tile.start_latitude + 1e-12

    def test_north_pole(self, grid):
        assert grid.tile_at(0.0, math.pi / 2).identifier == "image17x1"

    def test_south_pole_in_last_row(self, grid):
        tile = grid.tile_at(0.0, -math.pi / 2)
        assert grid.grid_position(tile)[1] == 15

    def test_just_below_pi(self, grid):
        tile = grid.tile_at(math.pi - 1e-15, 0.0)
        assert grid.grid_position(tile)[0] == 31

    @pytest.mark.parametrize("lon,lat", [
        (math.pi, 0.0),
        (-math.pi - 0.1, 0.0),
        (0.0, math.pi / 2 + 0.01),
        (0.0, -math.pi / 2 - 0.01),
    ])
    def test_out_of_range(self, grid, lon, lat):
        with pytest.raises(GeodeticRangeError):
            grid.tile_at(lon, lat)

    def test_range_error_is_value_error(self, grid):
        with pytest.raises(ValueError):
            grid.tile_at(4.0, 0.0)


class TestClampGeodetic:

    def test_wraps_longitude(self):
        lon, lat = clamp_geodetic(math.pi, 0.0)
        assert lon == pytest.approx(-math.pi)

    def test_wraps_large_longitude(self):
        lon, _ = clamp_geodetic(3 * math.pi / 2, 0.0)
        assert lon == pytest.approx(-math.pi / 2)

    def test_clamps_latitude(self):
        _, lat = clamp_geodetic(0.0, 2.0)
        assert lat == pytest.approx(math.pi / 2)

    def test_rejects_nan(self):
        with pytest.raises(GeodeticRangeError):
            clamp_geodetic(float("nan"), 0.0)

    def test_clamped_values_are_addressable(self, grid):
        tile = grid.tile_at(*clamp_geodetic(7.0, -3.0))
        assert isinstance(tile, Tile)


# =============================================================================
# Raster Geometry Tests
# =============================================================================


class TestTileGeometry:

    def test_tile_dimensions(self, grid):
        assert grid.tile_dimensions((21600, 10800)) == (675, 675)

    def test_tile_dimensions_must_divide(self, grid):
        with pytest.raises(ValueError):
            grid.tile_dimensions((1000, 10800))

    def test_position_to_geodetic_origin(self, grid):
        tile = grid[40]
        lon, lat = grid.position_to_geodetic(tile, (0, 0), (675, 675))
        assert lon == pytest.approx(tile.start_longitude)
        assert lat == pytest.approx(tile.start_latitude)

    def test_position_to_geodetic_moves_south(self, grid):
        tile = grid[40]
        _, lat = grid.position_to_geodetic(tile, (0, 675), (675, 675))
        assert lat == pytest.approx(tile.start_latitude - grid.latitude_span)
