#!/usr/bin/env python3
"""
Decimated terrain mesh topology.

The longitude lines are far denser than a mesh needs.  Lines and points are
kept sparsely (first, last and every Nth) except where a closest point lies:
those keep full resolution so the closest approach is rendered exactly.

Adjacent kept lines usually end up with different point counts, so they are
joined by matching points on latitude and triangulating each matched pair.
"""

import math
from dataclasses import dataclass, field
from typing import Callable, Dict, List, NamedTuple, Optional, Sequence, Set, Tuple, TypeVar

import logging

from proxterrain.columns import TerrainLongitudeLine, TerrainLongitudePoint
from proxterrain.topk import ClosestPointRecord
from proxterrain.tilegrid import Tile

log = logging.getLogger(__name__)

T = TypeVar("T")

Triangle = Tuple[int, int, int]


class PairwiseMatch(NamedTuple):
    index_a: int
    index_b: int
    item_a: object
    item_b: object


@dataclass
class MeshVertex:
    """
    One kept point.

    Attributes:
        tile: Tile holding the point
        position: (x, y) pixel on the tile raster
        longitude, latitude: Geodetic position in radians
        xy: Position in the 2D map, if a position function was supplied
        uv: Texture coordinate in the color atlas, if supplied
    """

    tile: Tile
    position: Tuple[int, int]
    longitude: float
    latitude: float
    xy: Optional[Tuple[float, float]] = None
    uv: Optional[Tuple[float, float]] = None


@dataclass
class MeshTopology:
    lines: List[TerrainLongitudeLine] = field(default_factory=list)
    vertices: List[MeshVertex] = field(default_factory=list)
    triangle_indices: List[Triangle] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.triangle_indices


def _closest_latitudes_by_longitude(records: Sequence[ClosestPointRecord]) -> Dict[float, Set[float]]:
    lookup: Dict[float, Set[float]] = {}
    for record in records:
        lookup.setdefault(record.lat_long.long, set()).add(record.lat_long.lat)
    return lookup


def select_lines_for_mesh(lines: Sequence[TerrainLongitudeLine], records: Sequence[ClosestPointRecord],
                          spacing: int) -> List[TerrainLongitudeLine]:
    """
    Decimate lines and their points.

    A line is kept if it is the first or last, its index is a multiple of
    `spacing`, or a closest point lies on its longitude.  Points within a
    kept line follow the same rule, matching closest points on latitude.
    """
    if spacing < 1:
        raise ValueError(f"Spacing must be positive, got {spacing}")

    closest = _closest_latitudes_by_longitude(records)
    last_line = len(lines) - 1

    selected = []
    for line_index, line in enumerate(lines):
        if not (line_index == 0 or line_index == last_line or line_index % spacing == 0
                or line.longitude in closest):
            continue

        latitudes = closest.get(line.longitude, ())
        last_point = len(line.points) - 1
        points = [
            p for i, p in enumerate(line.points)
            if i == 0 or i == last_point or i % spacing == 0 or p.latitude in latitudes
        ]
        selected.append(TerrainLongitudeLine(x=line.x, longitude=line.longitude, points=points))

    log.debug(f"Mesh keeps {len(selected)} of {len(lines)} line(s)")
    return selected


def _best_index(items: Sequence[T], score: Callable[[T], float]) -> int:
    # Ties keep the earliest item
    best = 0
    best_score = score(items[0])
    for i in range(1, len(items)):
        s = score(items[i])
        if s > best_score:
            best, best_score = i, s
    return best


def pairwise_matches(group_a: Sequence[T], group_b: Sequence[T],
                     correspondence: Callable[[T, T], float]) -> List[PairwiseMatch]:
    """
    Greedily pair the items of two groups.

    Every item of group_a is paired with its best-corresponding item of
    group_b.  Then every item of group_b left unpaired is paired with its
    best item of group_a.  Every item of both groups appears in at least one
    pair, and there are at least max(len(group_a), len(group_b)) pairs.
    """
    if not group_a or not group_b:
        return []

    results = []
    used_b = [False] * len(group_b)
    for index_a, item_a in enumerate(group_a):
        index_b = _best_index(group_b, lambda item_b: correspondence(item_a, item_b))
        results.append(PairwiseMatch(index_a, index_b, item_a, group_b[index_b]))
        used_b[index_b] = True

    for index_b, item_b in enumerate(group_b):
        if used_b[index_b]:
            continue
        index_a = _best_index(group_a, lambda item_a: correspondence(item_a, item_b))
        results.append(PairwiseMatch(index_a, index_b, group_a[index_a], item_b))

    return results


def latitude_correspondence(a: TerrainLongitudePoint, b: TerrainLongitudePoint) -> float:
    """Score 1/|delta latitude|; identical latitudes score infinity."""
    delta = abs(a.latitude - b.latitude)
    if delta == 0:
        return math.inf
    return 1.0 / delta


def match_line_points(line_a: TerrainLongitudeLine, line_b: TerrainLongitudeLine) -> List[Tuple[int, int]]:
    """
    Pair the points of two adjacent lines, traversing the shorter line
    first.  Returns (index in line_a, index in line_b) pairs.
    """
    if len(line_a.points) <= len(line_b.points):
        matches = pairwise_matches(line_a.points, line_b.points, latitude_correspondence)
        return [(m.index_a, m.index_b) for m in matches]

    matches = pairwise_matches(line_b.points, line_a.points, latitude_correspondence)
    return [(m.index_b, m.index_a) for m in matches]


def strip_triangles(pairs: Sequence[Tuple[int, int]], count_a: int, count_b: int,
                    offset_a: int = 0, offset_b: int = 0) -> List[Triangle]:
    """
    Triangulate matched pairs between two lines.

    For a pair (i, j): if both i and j have a next point, the quad
    (a_i, b_j, b_j+1, a_i+1) is split in two; if only one side has a next
    point a single triangle is made; otherwise nothing.  Identical
    triangles from many-to-one pairs are emitted once.
    """
    triangles: List[Triangle] = []
    seen = set()

    def add(triangle):
        key = tuple(sorted(triangle))
        if key not in seen:
            seen.add(key)
            triangles.append(triangle)

    for i, j in pairs:
        a, b = offset_a + i, offset_b + j
        has_next_a = i + 1 < count_a
        has_next_b = j + 1 < count_b
        if has_next_a and has_next_b:
            add((a, b, a + 1))
            add((a + 1, b, b + 1))
        elif has_next_a:
            add((a, b, a + 1))
        elif has_next_b:
            add((a, b, b + 1))
    return triangles


def build_mesh_topology(lines: Sequence[TerrainLongitudeLine], records: Sequence[ClosestPointRecord],
                        spacing: int,
                        vertex_positions: Optional[Callable[[Tile, Tuple[int, int]],
                                                            Tuple[Tuple[float, float], Tuple[float, float]]]] = None
                        ) -> MeshTopology:
    """
    Build the decimated mesh: kept lines, their points as vertices (in line
    order) and triangle indices joining each pair of adjacent lines.

    Args:
        lines: All extracted longitude lines, West to East
        records: Closest point records whose positions keep full detail
        spacing: Decimation stride
        vertex_positions: Optional (tile, (x, y)) -> (xy, uv) callback
    """
    mesh_lines = select_lines_for_mesh(lines, records, spacing)
    topology = MeshTopology(lines=mesh_lines)

    offsets = []
    for line in mesh_lines:
        offsets.append(len(topology.vertices))
        for point in line.points:
            position = (line.x, point.y)
            xy = uv = None
            if vertex_positions is not None:
                xy, uv = vertex_positions(point.tile, position)
            topology.vertices.append(MeshVertex(
                tile=point.tile,
                position=position,
                longitude=line.longitude,
                latitude=point.latitude,
                xy=xy,
                uv=uv,
            ))

    for k in range(len(mesh_lines) - 1):
        line_a, line_b = mesh_lines[k], mesh_lines[k + 1]
        pairs = match_line_points(line_a, line_b)
        topology.triangle_indices.extend(strip_triangles(
            pairs, len(line_a.points), len(line_b.points), offsets[k], offsets[k + 1]))

    log.info(
        f"Mesh: {len(mesh_lines)} line(s), {len(topology.vertices)} vertices, "
        f"{len(topology.triangle_indices)} triangle(s)"
    )
    return topology
