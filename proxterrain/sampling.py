#!/usr/bin/env python3
"""
Per-tile raster sampling.

A sampler turns a tile into fixed-size 2D float arrays, one per channel:

    proximity           metres, larger is closer (elevation - distance above min)
    elevation           metres above sea level
    unix_seconds        time the path sample nearest to the pixel was taken
    distance_above_min  km the Moon is above its minimum distance, as seen
                        from the pixel

PathRasterSampler is the CPU reference.  Each path sample covers a cap of
the globe around it: moving an angle a away from the sample adds
R * (1 - cos a) km to its distance.  The cap ends where the distance reaches
the largest distance on the path.  Each pixel takes its values from the
nearest path sample; pixels outside every cap have no path data
(distance +inf, time NaN).
"""

import threading
from typing import Dict, Tuple

import numpy as np

import logging

from proxterrain.errors import RasterNotReadyError, RasterShapeError
from proxterrain.tilegrid import Tile, TileGrid
from proxterrain.tilelayout import ProximityPath
from proxterrain.ptstats import inc_stat
from proxterrain.utils.constants import (
    CHANNEL_DISTANCE_ABOVE_MIN,
    CHANNEL_ELEVATION,
    CHANNEL_PROXIMITY,
    CHANNEL_UNIX_SECONDS,
    EARTH_MEAN_RADIUS_KM,
    ELEVATION_SCALE_FACTOR,
)
from proxterrain.utils.geodesy import unit_vectors

log = logging.getLogger(__name__)


class RasterSampler(object):
    """Source of per-tile rasters, shape (tile_height, tile_width)."""

    tile_dimensions: Tuple[int, int] = (0, 0)

    def sample(self, tile: Tile, channel: str) -> np.ndarray:
        raise NotImplementedError


def decode_elevation(image, scale: float = ELEVATION_SCALE_FACTOR) -> np.ndarray:
    """Grey 0-255 pixels to metres.  Multi-band images use the first band."""
    data = np.asarray(image)
    if data.ndim == 3:
        data = data[:, :, 0]
    return data.astype(np.float64) / 255.0 * scale


class PathRasterSampler(RasterSampler):
    """
    Rasterize a proximity path onto tiles and combine it with elevation.

    Elevation images are handed over as they are fetched with
    set_elevation().  Path rasters need no resources and are computed on
    first use.
    """

    def __init__(self, path: ProximityPath, grid: TileGrid, tile_dimensions: Tuple[int, int],
                 elevation_scale: float = ELEVATION_SCALE_FACTOR, radius_km: float = EARTH_MEAN_RADIUS_KM):
        self.grid = grid
        self.tile_dimensions = tuple(tile_dimensions)
        self.elevation_scale = float(elevation_scale)
        self.radius_km = float(radius_km)

        coords = np.asarray(path.geodetic_coords, dtype=np.float64).reshape(-1, 2)
        self._vectors = unit_vectors(coords[:, 0], coords[:, 1])
        self._distances = np.asarray(path.distances_above_min, dtype=np.float64)
        self._seconds = np.asarray(path.unix_seconds, dtype=np.float64)
        self._distance_range = float(self._distances.max()) if len(self._distances) else 0.0

        # Cosine of each sample's cap radius.
        remaining = np.maximum(self._distance_range - self._distances, 0.0)
        self._cap_cos = np.clip((self.radius_km - remaining) / self.radius_km, -1.0, 1.0)

        self._lock = threading.RLock()
        self._elevation: Dict[int, np.ndarray] = {}
        self._path_rasters: Dict[int, Tuple[np.ndarray, np.ndarray]] = {}

    def set_elevation(self, tile: Tile, image) -> None:
        data = decode_elevation(image, self.elevation_scale)
        width, height = self.tile_dimensions
        if data.shape != (height, width):
            raise RasterShapeError(
                f"Elevation image for {tile.identifier} has shape {data.shape}, expected {(height, width)}"
            )
        with self._lock:
            self._elevation[tile.index] = data

    def has_elevation(self, tile: Tile) -> bool:
        with self._lock:
            return tile.index in self._elevation

    def sample(self, tile: Tile, channel: str) -> np.ndarray:
        """
        Raises:
            RasterNotReadyError: If an elevation-based channel is requested
                before set_elevation() for the tile
            ValueError: For an unknown channel
        """
        if channel == CHANNEL_DISTANCE_ABOVE_MIN:
            return self._path_raster(tile)[0]
        if channel == CHANNEL_UNIX_SECONDS:
            return self._path_raster(tile)[1]
        if channel == CHANNEL_ELEVATION:
            return self._elevation_raster(tile)
        if channel == CHANNEL_PROXIMITY:
            elevation = self._elevation_raster(tile)
            distance = self._path_raster(tile)[0]
            return elevation - distance * 1000.0
        raise ValueError(f"Unknown raster channel {channel!r}")

    def _elevation_raster(self, tile: Tile) -> np.ndarray:
        with self._lock:
            data = self._elevation.get(tile.index)
        if data is None:
            raise RasterNotReadyError(f"No elevation for tile {tile.identifier}")
        return data

    def _path_raster(self, tile: Tile) -> Tuple[np.ndarray, np.ndarray]:
        with self._lock:
            cached = self._path_rasters.get(tile.index)
        if cached is not None:
            return cached

        rasters = self._rasterize(tile)
        with self._lock:
            self._path_rasters.setdefault(tile.index, rasters)
            return self._path_rasters[tile.index]

    def _candidates(self, tile: Tile) -> np.ndarray:
        """Indices of path samples whose cap may reach the tile."""
        if not len(self._distances):
            return np.zeros(0, dtype=np.intp)

        lon_span = self.grid.longitude_span
        lat_span = self.grid.latitude_span
        center = unit_vectors(tile.start_longitude + lon_span / 2, tile.start_latitude - lat_span / 2)
        # No pixel is further from the centre than half a span in each direction.
        reach = lon_span / 2 + lat_span / 2
        cap_angle = np.arccos(self._cap_cos)
        center_angle = np.arccos(np.clip(self._vectors @ center, -1.0, 1.0))
        return np.nonzero(center_angle <= cap_angle + reach)[0]

    def _rasterize(self, tile: Tile) -> Tuple[np.ndarray, np.ndarray]:
        width, height = self.tile_dimensions
        distance = np.full((height, width), np.inf)
        seconds = np.full((height, width), np.nan)

        candidates = self._candidates(tile)
        inc_stat('tiles_rasterized')
        if not len(candidates):
            log.debug(f"No path samples reach {tile.identifier}")
            return distance, seconds

        vectors = self._vectors[candidates]
        sample_distances = self._distances[candidates]
        sample_seconds = self._seconds[candidates]
        cap_cos = self._cap_cos[candidates]

        longitudes = tile.start_longitude + np.arange(width) / width * self.grid.longitude_span
        latitudes = tile.start_latitude - np.arange(height) / height * self.grid.latitude_span

        for y, latitude in enumerate(latitudes):
            pixels = unit_vectors(longitudes, np.full(width, latitude))
            dots = np.clip(pixels @ vectors.T, -1.0, 1.0)
            nearest = np.argmax(dots, axis=1)
            best = dots[np.arange(width), nearest]
            covered = best >= cap_cos[nearest]
            distance[y, covered] = sample_distances[nearest[covered]] + self.radius_km * (1.0 - best[covered])
            seconds[y, covered] = sample_seconds[nearest[covered]]

        log.debug(f"Rasterized {len(candidates)} path sample(s) onto {tile.identifier}")
        return distance, seconds

