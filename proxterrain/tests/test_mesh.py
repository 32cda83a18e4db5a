#!/usr/bin/env python3
"""
Unit tests for mesh decimation, line matching and triangulation.

Tests cover:
- Line and point decimation by stride, ends and closest points
- Greedy pairwise matching coverage
- Strip triangulation between lines of unequal length
- Full topology construction
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from proxterrain.columns import TerrainLongitudeLine, TerrainLongitudePoint
from proxterrain.mesh import (
    MeshTopology,
    build_mesh_topology,
    latitude_correspondence,
    match_line_points,
    pairwise_matches,
    select_lines_for_mesh,
    strip_triangles,
)
from proxterrain.tilegrid import TileGrid
from proxterrain.topk import ClosestPointRecord, LatLong


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def tile():
    return TileGrid(8, 4)[9]


def make_line(tile, x, latitudes, longitude=None):
    return TerrainLongitudeLine(
        x=x,
        longitude=0.01 * x if longitude is None else longitude,
        points=[TerrainLongitudePoint(tile, y, lat, -1.0) for y, lat in enumerate(latitudes)],
    )


def record_for(line, point_index):
    point = line.points[point_index]
    return ClosestPointRecord(
        data_coordinates=(line.x, point.y),
        lat_long=LatLong(point.latitude, line.longitude),
        proximity_value=1.0,
        tile=point.tile,
    )


# =============================================================================
# Decimation Tests
# =============================================================================


class TestSelectLinesForMesh:

    def test_stride_and_ends(self, tile):
        lines = [make_line(tile, x, [0.1, 0.2]) for x in range(10)]
        kept = select_lines_for_mesh(lines, [], 5)
        assert [line.x for line in kept] == [0, 5, 9]

    def test_closest_longitude_kept(self, tile):
        lines = [make_line(tile, x, [0.1, 0.2]) for x in range(10)]
        kept = select_lines_for_mesh(lines, [record_for(lines[3], 0)], 5)
        assert [line.x for line in kept] == [0, 3, 5, 9]

    def test_point_stride_and_ends(self, tile):
        lines = [make_line(tile, 0, [0.01 * i for i in range(12)])]
        kept = select_lines_for_mesh(lines, [], 5)
        assert [p.y for p in kept[0].points] == [0, 5, 10, 11]

    def test_closest_point_kept(self, tile):
        lines = [make_line(tile, 0, [0.01 * i for i in range(12)])]
        kept = select_lines_for_mesh(lines, [record_for(lines[0], 7)], 5)
        assert [p.y for p in kept[0].points] == [0, 5, 7, 10, 11]

    def test_closest_latitude_on_other_line_ignored(self, tile):
        lines = [make_line(tile, x, [0.01 * i for i in range(12)]) for x in range(2)]
        kept = select_lines_for_mesh(lines, [record_for(lines[1], 7)], 5)
        assert [p.y for p in kept[0].points] == [0, 5, 10, 11]
        assert 7 in [p.y for p in kept[1].points]

    def test_input_not_modified(self, tile):
        lines = [make_line(tile, 0, [0.01 * i for i in range(12)])]
        select_lines_for_mesh(lines, [], 5)
        assert len(lines[0].points) == 12

    def test_single_line(self, tile):
        lines = [make_line(tile, 4, [0.1, 0.2, 0.3])]
        kept = select_lines_for_mesh(lines, [], 50)
        assert len(kept) == 1
        assert [p.y for p in kept[0].points] == [0, 2]

    def test_invalid_spacing(self, tile):
        with pytest.raises(ValueError):
            select_lines_for_mesh([], [], 0)


# =============================================================================
# Matching Tests
# =============================================================================


class TestPairwiseMatches:

    def test_three_to_five_covers_all(self, tile):
        a = make_line(tile, 0, [0.0, 0.2, 0.4]).points
        b = make_line(tile, 1, [0.0, 0.1, 0.2, 0.3, 0.4]).points
        matches = pairwise_matches(a, b, latitude_correspondence)
        assert len(matches) >= 5
        assert {m.index_a for m in matches} == {0, 1, 2}
        assert {m.index_b for m in matches} == {0, 1, 2, 3, 4}

    def test_exact_match_preferred(self, tile):
        a = make_line(tile, 0, [0.2]).points
        b = make_line(tile, 1, [0.1, 0.2, 0.21]).points
        first = pairwise_matches(a, b, latitude_correspondence)[0]
        assert (first.index_a, first.index_b) == (0, 1)

    def test_ties_keep_first(self):
        matches = pairwise_matches([5], [4, 6], lambda x, y: -abs(x - y))
        assert (matches[0].index_a, matches[0].index_b) == (0, 0)

    def test_unused_b_matched_once(self):
        matches = pairwise_matches([0], [0, 1, 2], lambda x, y: -abs(x - y))
        assert sorted(m.index_b for m in matches) == [0, 1, 2]
        assert len(matches) == 3

    def test_empty_group(self):
        assert pairwise_matches([], [1, 2], lambda x, y: 0) == []
        assert pairwise_matches([1], [], lambda x, y: 0) == []

    def test_match_line_points_orientation(self, tile):
        long_line = make_line(tile, 0, [0.0, 0.1, 0.2, 0.3, 0.4])
        short_line = make_line(tile, 1, [0.0, 0.4])
        pairs = match_line_points(long_line, short_line)
        # Indices stay (long_line, short_line) even though the short line leads
        assert {i for i, _ in pairs} == {0, 1, 2, 3, 4}
        assert {j for _, j in pairs} == {0, 1}

    def test_latitude_correspondence(self, tile):
        p, q = make_line(tile, 0, [0.1, 0.3]).points
        assert latitude_correspondence(p, q) == pytest.approx(5.0)
        assert latitude_correspondence(p, p) == float("inf")


# =============================================================================
# Triangulation Tests
# =============================================================================


class TestStripTriangles:

    def test_equal_lines(self):
        pairs = [(0, 0), (1, 1), (2, 2)]
        triangles = strip_triangles(pairs, 3, 3, offset_a=0, offset_b=3)
        assert triangles == [(0, 3, 1), (1, 3, 4), (1, 4, 2), (2, 4, 5)]

    def test_end_pair_makes_nothing(self):
        assert strip_triangles([(1, 1)], 2, 2) == []

    def test_one_side_continues(self):
        assert strip_triangles([(0, 1)], 2, 2, 0, 2) == [(0, 3, 1)]
        assert strip_triangles([(1, 0)], 2, 2, 0, 2) == [(1, 2, 3)]

    def test_duplicates_removed(self):
        triangles = strip_triangles([(0, 0), (0, 0)], 2, 2, 0, 2)
        assert triangles == [(0, 2, 1), (1, 2, 3)]

    def test_indices_in_range(self, tile):
        a = make_line(tile, 0, [0.0, 0.2, 0.4])
        b = make_line(tile, 1, [0.0, 0.1, 0.2, 0.3, 0.4])
        triangles = strip_triangles(match_line_points(a, b), 3, 5, 0, 3)
        assert triangles
        for triangle in triangles:
            assert len(set(triangle)) == 3
            assert all(0 <= i < 8 for i in triangle)


# =============================================================================
# Topology Tests
# =============================================================================


class TestBuildMeshTopology:

    def test_vertices_in_line_order(self, tile):
        lines = [make_line(tile, x, [0.1, 0.2, 0.3]) for x in range(3)]
        topology = build_mesh_topology(lines, [], 1)
        assert len(topology.vertices) == 9
        assert [v.position for v in topology.vertices[:3]] == [(0, 0), (0, 1), (0, 2)]
        assert topology.vertices[3].longitude == lines[1].longitude
        assert len(topology.triangle_indices) == 8

    def test_vertex_positions_callback(self, tile):
        lines = [make_line(tile, x, [0.1, 0.2]) for x in range(2)]

        def positions(t, pos):
            return (float(pos[0]), float(pos[1])), (pos[0] / 10.0, pos[1] / 10.0)

        topology = build_mesh_topology(lines, [], 1, positions)
        assert topology.vertices[3].xy == (1.0, 1.0)
        assert topology.vertices[3].uv == (0.1, 0.1)

    def test_single_line_has_no_triangles(self, tile):
        topology = build_mesh_topology([make_line(tile, 0, [0.1, 0.2])], [], 5)
        assert len(topology.vertices) == 2
        assert topology.is_empty()

    def test_empty(self):
        topology = build_mesh_topology([], [], 5)
        assert topology == MeshTopology()
