#!/usr/bin/env python3
"""
Per-tile resource fetching with deduplication.

TileResourceCache hands out one resource per tile index for its whole
lifetime.  Unresolved tiles are loaded concurrently on a thread pool; tiles
already resolved (or already being loaded by another caller) are never
loaded again.

Usage:
    cache = TileResourceCache(FileTileLoader("/data/earth-height", "png", mode="L"))
    cache.fetch(layout.tiles, lambda tile, image: rasters[tile.index] = image)
"""

import os
import threading
import concurrent.futures
from io import BytesIO
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import numpy as np
import requests
from PIL import Image

import logging

from proxterrain.errors import TileFetchError
from proxterrain.ptstats import inc_many, inc_stat
from proxterrain.tilegrid import Tile

log = logging.getLogger(__name__)


def create_http_session(pool_size=10):
    """
    Create a requests session sized for concurrent tile downloads.

    pool_block=False makes an exhausted pool raise instead of blocking
    forever on a slow server.
    """
    session = requests.Session()
    adapter = requests.adapters.HTTPAdapter(
        pool_connections=pool_size,
        pool_maxsize=pool_size,
        max_retries=0,
        pool_block=False,
    )
    session.mount('https://', adapter)
    session.mount('http://', adapter)
    return session


def _decode_image(source, mode: Optional[str]) -> np.ndarray:
    with Image.open(source) as img:
        if mode and img.mode != mode:
            img = img.convert(mode)
        return np.asarray(img)


class FileTileLoader(object):
    """Load tile images named <identifier>.<extension> from a local folder."""

    def __init__(self, folder, extension, mode=None):
        self.folder = folder
        self.extension = extension
        self.mode = mode

    def path_for(self, tile: Tile) -> str:
        return os.path.join(self.folder, f"{tile.identifier}.{self.extension}")

    def __call__(self, tile: Tile) -> np.ndarray:
        path = self.path_for(tile)
        log.debug(f"Loading {path}")
        return _decode_image(path, self.mode)

    def __repr__(self):
        return f"FileTileLoader({self.folder!r}, {self.extension!r})"


class HttpTileLoader(object):
    """Download tile images from <base_url><identifier>.<extension>."""

    def __init__(self, base_url, extension, mode=None, timeout=30.0, pool_size=10):
        self.base_url = base_url
        self.extension = extension
        self.mode = mode
        self.timeout = timeout
        self.pool_size = pool_size
        # requests.Session is not thread-safe, keep one per worker thread
        self.localdata = threading.local()

    def url_for(self, tile: Tile) -> str:
        return f"{self.base_url}{tile.identifier}.{self.extension}"

    def _session(self):
        session = getattr(self.localdata, 'session', None)
        if session is None:
            session = create_http_session(pool_size=self.pool_size)
            self.localdata.session = session
        return session

    def __call__(self, tile: Tile) -> np.ndarray:
        url = self.url_for(tile)
        log.debug(f"GET {url}")
        resp = self._session().get(url, timeout=self.timeout)
        try:
            resp.raise_for_status()
            inc_stat('bytes_dl', len(resp.content))
            return _decode_image(BytesIO(resp.content), self.mode)
        finally:
            resp.close()

    def __repr__(self):
        return f"HttpTileLoader({self.base_url!r}, {self.extension!r})"


def make_loader(base, extension, mode=None, timeout=30.0, pool_size=10):
    """Pick an HTTP or local folder loader for a configured resource base."""
    if str(base).startswith(('http://', 'https://')):
        return HttpTileLoader(base, extension, mode=mode, timeout=timeout, pool_size=pool_size)
    return FileTileLoader(base, extension, mode=mode)


class TileResourceCache(object):
    """
    Fetch-once cache of per-tile resources keyed by tile index.

    Entries are only ever added; a failed load is dropped so a later fetch
    may try again.
    """

    hits = 0
    misses = 0

    def __init__(self, loader: Callable[[Tile], object], max_workers: int = 8, name: str = "tile"):
        self.loader = loader
        self.name = name
        self._resources: Dict[int, concurrent.futures.Future] = {}
        self._lock = threading.RLock()
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix=f"{name}_fetch"
        )

    def __len__(self):
        with self._lock:
            return len(self._resources)

    def __contains__(self, tile: Tile):
        with self._lock:
            return tile.index in self._resources

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def _load(self, tile: Tile):
        resource = self.loader(tile)
        inc_stat(f'{self.name}_loaded')
        return resource

    def fetch(self, tiles: Iterable[Tile], on_each: Optional[Callable[[Tile, object], None]] = None) -> None:
        """
        Make sure every tile has a resource and hand each one to on_each.

        Tiles already resolved are handed over immediately.  The others are
        loaded concurrently and handed over as they complete.  Returns once
        on_each has run for every requested tile.

        Raises:
            TileFetchError: If any tile failed to load.  Every other tile
                has still been handed to on_each.
        """
        on_each = on_each or (lambda tile, resource: None)

        ready: List[Tuple[Tile, concurrent.futures.Future]] = []
        waiting: Dict[concurrent.futures.Future, List[Tile]] = {}
        seen = set()
        hits = misses = 0
        with self._lock:
            for tile in tiles:
                if tile.index in seen:
                    continue
                seen.add(tile.index)

                future = self._resources.get(tile.index)
                if future is None:
                    misses += 1
                    future = self._executor.submit(self._load, tile)
                    self._resources[tile.index] = future
                    waiting.setdefault(future, []).append(tile)
                elif future.done() and future.exception() is None:
                    hits += 1
                    ready.append((tile, future))
                else:
                    # Another caller is already loading this tile
                    waiting.setdefault(future, []).append(tile)

            self.hits += hits
            self.misses += misses
        inc_many({f"{self.name}_hit": hits, f"{self.name}_miss": misses})

        log.debug(f"{self.name}: {len(ready)} cached, {len(waiting)} loading")

        for tile, future in ready:
            on_each(tile, future.result())

        failures: List[Tuple[Tile, BaseException]] = []
        for future in concurrent.futures.as_completed(list(waiting)):
            for tile in waiting[future]:
                err = future.exception()
                if err is not None:
                    log.error(f"Failed loading {self.name} resource for {tile.identifier}: {err}")
                    inc_stat(f'{self.name}_failed')
                    failures.append((tile, err))
                    self._discard(tile, future)
                    continue
                on_each(tile, future.result())

        if failures:
            tile, err = failures[0]
            raise TileFetchError(tile, err) from err

    def _discard(self, tile: Tile, future: concurrent.futures.Future):
        with self._lock:
            if self._resources.get(tile.index) is future:
                del self._resources[tile.index]

    def get(self, tile: Tile, default=None):
        """Return the resolved resource for a tile, or default."""
        with self._lock:
            future = self._resources.get(tile.index)
        if future is None or not future.done() or future.exception() is not None:
            return default
        return future.result()

    def show_stats(self):
        log.info(f"{self.name} cache: {len(self)} resource(s), {self.hits} hit(s), {self.misses} miss(es)")

    def close(self):
        self._executor.shutdown(wait=True)
