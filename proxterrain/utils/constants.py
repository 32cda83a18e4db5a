"""module to hold constants used throughout the project"""
import math


# Global tile grid (equirectangular source imagery split into tiles)
HORIZONTAL_TILE_COUNT = 32
VERTICAL_TILE_COUNT = 16

# https://visibleearth.nasa.gov/images/73934/topography
# "Data in these images were scaled 0-6400 meters"
ELEVATION_SCALE_FACTOR = 6400.0

# Terrain within this many km of the closest approach is of interest
HIGHLIGHT_CLOSEST_KM = 10.0

EARTH_MEAN_RADIUS_KM = 6371.0

HALF_PI = math.pi / 2
TWO_PI = 2 * math.pi

# Raster channels produced by the sampling service
CHANNEL_PROXIMITY = "proximity"
CHANNEL_ELEVATION = "elevation"
CHANNEL_UNIX_SECONDS = "unix_seconds"
CHANNEL_DISTANCE_ABOVE_MIN = "distance_above_min"
RASTER_CHANNELS = (
    CHANNEL_PROXIMITY,
    CHANNEL_ELEVATION,
    CHANNEL_UNIX_SECONDS,
    CHANNEL_DISTANCE_ABOVE_MIN,
)
