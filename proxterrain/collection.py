#!/usr/bin/env python3
"""
End to end proximity terrain extraction.

    path -> select tiles -> fetch color + elevation -> sample rasters
         -> stitch longitude lines -> keep closest points -> ProximityTerrainData

Resources are cached per tile for the life of the collection, so building
several nearby paths only fetches each tile once.

Usage:
    collection = ProximityTileCollection.from_config(CFG)
    data = collection.build(path)
    for record in data.top_closest_points(10):
        ...
"""

import concurrent.futures
from typing import Dict, Optional, Tuple

import numpy as np
from PIL import Image

import logging

from proxterrain.atlas import AtlasMapper, map_atlas, texture_atlas
from proxterrain.columns import extract_longitude_lines, inclusion_threshold
from proxterrain.ptstats import inc_stat, set_stat
from proxterrain.sampling import PathRasterSampler
from proxterrain.terrain import ProximityTerrainData
from proxterrain.tilecache import TileResourceCache, make_loader
from proxterrain.tilegrid import Tile, TileGrid
from proxterrain.tilelayout import ProximityPath, TileLayout, select_tiles
from proxterrain.topk import closest_points
from proxterrain.utils.constants import (
    CHANNEL_PROXIMITY,
    ELEVATION_SCALE_FACTOR,
    HIGHLIGHT_CLOSEST_KM,
    RASTER_CHANNELS,
)

log = logging.getLogger(__name__)


def compose_texture(atlas: AtlasMapper, images: Dict[int, np.ndarray]) -> np.ndarray:
    """
    Paste each tile image into its atlas cell, resizing to fit.

    Cells with no image stay black.
    """
    width, height = atlas.target_dimensions
    texture = np.zeros((int(height), int(width), 3), dtype=np.uint8)
    for tile in atlas.layout.tiles:
        image = images.get(tile.index)
        if image is None:
            continue
        rect = atlas.target_rect(tile)
        x0, y0 = int(round(rect.x_offset)), int(round(rect.y_offset))
        x1, y1 = int(round(rect.x_offset + rect.width)), int(round(rect.y_offset + rect.height))
        if x1 <= x0 or y1 <= y0:
            continue
        cell = Image.fromarray(np.asarray(image, dtype=np.uint8)).convert("RGB").resize((x1 - x0, y1 - y0))
        texture[y0:y1, x0:x1] = np.asarray(cell)
    return texture


class ProximityTileCollection(object):
    """
    Runs the extraction pipeline for proximity paths.

    Args:
        grid: Global tile grid
        elevation_cache: Fetches elevation images (grey, 0-255)
        elevation_tile_dimensions: (width, height) of an elevation tile
        color_cache: Optional, fetches color images (RGB)
        color_tile_dimensions: (width, height) of a color tile
        halo_km: Terrain within this distance of the closest approach is kept
        cached_top_count: Number of closest points retained
        mesh_point_spacing: Decimation stride for meshes
        max_texture_size: Width cap of the color texture atlas
        elevation_scale: Metres represented by elevation value 255
    """

    def __init__(self, grid: TileGrid, elevation_cache: TileResourceCache,
                 elevation_tile_dimensions: Tuple[int, int],
                 color_cache: Optional[TileResourceCache] = None,
                 color_tile_dimensions: Optional[Tuple[int, int]] = None,
                 halo_km: float = HIGHLIGHT_CLOSEST_KM, cached_top_count: int = 500,
                 mesh_point_spacing: int = 50, max_texture_size: int = 4096,
                 elevation_scale: float = ELEVATION_SCALE_FACTOR):
        self.grid = grid
        self.elevation_cache = elevation_cache
        self.elevation_tile_dimensions = tuple(elevation_tile_dimensions)
        self.color_cache = color_cache
        self.color_tile_dimensions = tuple(color_tile_dimensions or elevation_tile_dimensions)
        self.halo_km = float(halo_km)
        self.cached_top_count = int(cached_top_count)
        self.mesh_point_spacing = int(mesh_point_spacing)
        self.max_texture_size = int(max_texture_size)
        self.elevation_scale = float(elevation_scale)

    @classmethod
    def from_config(cls, cfg, elevation_base: Optional[str] = None,
                    color_base: Optional[str] = None) -> "ProximityTileCollection":
        """
        Build a collection from a PTConfig.  Explicit bases override the
        configured base URLs; an empty color base disables color fetching.
        """
        grid = TileGrid.from_config(cfg)
        threads = int(cfg.fetch.fetch_threads)
        timeout = float(cfg.fetch.timeout)

        elevation_base = elevation_base or cfg.fetch.elevation_base_url
        if not elevation_base:
            raise ValueError("No elevation source configured (fetch.elevation_base_url)")
        elevation_cache = TileResourceCache(
            make_loader(elevation_base, cfg.fetch.elevation_extension, mode="L",
                        timeout=timeout, pool_size=threads),
            max_workers=threads,
            name="elevation",
        )

        color_base = color_base or cfg.fetch.color_base_url
        color_cache = None
        if color_base:
            color_cache = TileResourceCache(
                make_loader(color_base, cfg.fetch.color_extension, mode="RGB",
                            timeout=timeout, pool_size=threads),
                max_workers=threads,
                name="color",
            )

        return cls(
            grid,
            elevation_cache,
            grid.tile_dimensions((int(cfg.tiles.elevation_width), int(cfg.tiles.elevation_height))),
            color_cache=color_cache,
            color_tile_dimensions=grid.tile_dimensions((int(cfg.tiles.color_width), int(cfg.tiles.color_height))),
            halo_km=float(cfg.terrain.halo_km),
            cached_top_count=int(cfg.terrain.cached_top_count),
            mesh_point_spacing=int(cfg.terrain.mesh_point_spacing),
            max_texture_size=int(cfg.atlas.max_texture_size),
            elevation_scale=float(cfg.tiles.elevation_scale),
        )

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def close(self):
        self.elevation_cache.close()
        if self.color_cache is not None:
            self.color_cache.close()

    def select(self, path: ProximityPath) -> TileLayout:
        return select_tiles(path, self.grid, self.halo_km)

    def _fetch(self, layout: TileLayout, sampler: PathRasterSampler) -> Dict[int, np.ndarray]:
        """Fetch color and elevation for every layout tile, concurrently."""
        color_images: Dict[int, np.ndarray] = {}

        def on_color(tile: Tile, image):
            color_images[tile.index] = image

        tiles = layout.tiles
        with concurrent.futures.ThreadPoolExecutor(max_workers=2, thread_name_prefix="resource_fetch") as ex:
            futures = [ex.submit(self.elevation_cache.fetch, tiles, sampler.set_elevation)]
            if self.color_cache is not None:
                futures.append(ex.submit(self.color_cache.fetch, tiles, on_color))
            # Both fetches finish before the first failure is raised.
            concurrent.futures.wait(futures)
            for future in futures:
                future.result()
        return color_images

    def build(self, path: ProximityPath) -> ProximityTerrainData:
        """
        Run the pipeline for a path.

        Returns an empty ProximityTerrainData if no path sample is within
        the halo.

        Raises:
            TileFetchError: If a tile resource could not be fetched
        """
        layout = self.select(path)
        if layout.is_empty():
            log.info("No tiles within the halo, nothing to extract")
            return ProximityTerrainData.empty(self.grid, self.elevation_tile_dimensions,
                                              self.cached_top_count, self.mesh_point_spacing)

        color_atlas = None
        if self.color_cache is not None:
            color_atlas = texture_atlas(self.color_tile_dimensions, layout, self.max_texture_size)
        flat_atlas = map_atlas(self.elevation_tile_dimensions, layout, self.grid)

        sampler = PathRasterSampler(path, self.grid, self.elevation_tile_dimensions,
                                    elevation_scale=self.elevation_scale)
        color_images = self._fetch(layout, sampler)

        rasters = {}
        for tile in layout.tiles:
            rasters[tile.index] = {channel: sampler.sample(tile, channel) for channel in RASTER_CHANNELS}
        inc_stat('tiles_sampled', len(rasters))

        lines = extract_longitude_lines(
            layout.grouped_ordered_tiles,
            lambda tile: rasters.get(tile.index, {}).get(CHANNEL_PROXIMITY),
            self.grid,
            self.elevation_tile_dimensions,
            inclusion_threshold(self.halo_km),
        )
        top_set = closest_points(lines, self.cached_top_count)
        set_stat('last_line_count', len(lines))

        color_texture = None
        if color_atlas is not None:
            color_texture = compose_texture(color_atlas, color_images)

        return ProximityTerrainData(
            self.grid,
            layout,
            self.elevation_tile_dimensions,
            rasters,
            lines,
            top_set,
            self.mesh_point_spacing,
            map_atlas=flat_atlas,
            texture_atlas=color_atlas,
            color_texture=color_texture,
        )

    def show_stats(self):
        self.elevation_cache.show_stats()
        if self.color_cache is not None:
            self.color_cache.show_stats()
