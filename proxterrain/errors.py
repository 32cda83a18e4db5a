"""Exceptions raised by proxterrain.

Contract violations (bad coordinates, oversized top-K queries, queries made
before rasters exist) are caller bugs and are raised immediately.  Empty
selections are not errors and never raise.
"""


class ProxTerrainError(Exception):
    """Base class for all proxterrain errors."""


class GeodeticRangeError(ProxTerrainError, ValueError):
    def __init__(self, longitude, latitude):
        self.longitude = longitude
        self.latitude = latitude
        super().__init__(
            f"Geodetic coordinate out of range: lon={longitude!r} lat={latitude!r} "
            f"(expected lon in [-pi, pi), lat in [-pi/2, pi/2])"
        )


class TopCountExceededError(ProxTerrainError, ValueError):
    def __init__(self, requested, capacity):
        self.requested = requested
        self.capacity = capacity
        super().__init__(f"Only {capacity} closest points are stored (requested {requested}).")


class TileNotInLayoutError(ProxTerrainError, KeyError):
    def __str__(self):
        return str(self.args[0]) if self.args else "Tile not in layout"


class RasterNotReadyError(ProxTerrainError, RuntimeError):
    pass


class RasterShapeError(ProxTerrainError, ValueError):
    pass


class TileFetchError(ProxTerrainError):
    def __init__(self, tile, cause=None):
        self.tile = tile
        self.cause = cause
        super().__init__(f"Failed fetching resource for tile {tile.identifier}: {cause}")
