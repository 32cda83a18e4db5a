import os
import sys
import json
import argparse

import logging
import logging.handlers

from proxterrain.ptconfig import CFG
from proxterrain.utils.geodesy import to_degrees_lat_long
from proxterrain.version import __version__


def setuplogs():
    log_file = getattr(CFG.general, 'log_file', '') or os.path.join(
        os.path.expanduser("~"), ".proxterrain-data", "logs", "proxterrain.log")
    log_dir = os.path.dirname(log_file)
    if log_dir and not os.path.isdir(log_dir):
        os.makedirs(log_dir)

    # Get log levels from config
    file_log_level_str = getattr(CFG.general, 'file_log_level', 'DEBUG').upper()
    console_log_level_str = getattr(CFG.general, 'console_log_level', 'INFO').upper()

    # Override with PT_DEBUG environment variable if set (for development)
    if os.environ.get('PT_DEBUG'):
        file_log_level_str = 'DEBUG'
        console_log_level_str = 'DEBUG'

    file_log_level = getattr(logging, file_log_level_str, logging.DEBUG)
    console_log_level = getattr(logging, console_log_level_str, logging.INFO)

    # Root logger at the minimum level so all messages can flow through
    root_level = min(file_log_level, console_log_level)

    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    console_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    file_handler = logging.handlers.RotatingFileHandler(
        filename=log_file,
        maxBytes=10485760,
        backupCount=5
    )
    file_handler.setLevel(file_log_level)
    file_handler.setFormatter(file_formatter)

    # Console goes to stderr, stdout carries the JSON result
    handlers = [file_handler]
    if sys.stderr is not None:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(console_log_level)
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    logging.basicConfig(
        level=root_level,
        handlers=handlers
    )

    log = logging.getLogger(__name__)
    log.info(f"Setup logs: {log_file}")
    log.info(f"File log level: {file_log_level_str}, Console log level: {console_log_level_str}")


def record_to_dict(data, record):
    lat_deg, lon_deg = to_degrees_lat_long(record.lat_long.lat, record.lat_long.long)
    return {
        "tile": record.tile.identifier,
        "x": record.data_coordinates[0],
        "y": record.data_coordinates[1],
        "latitude": lat_deg,
        "longitude": lon_deg,
        "proximity_m": record.proximity_value,
        "elevation_m": data.elevation_at(record.tile, record.data_coordinates),
        "unix_seconds": data.unix_seconds_at(record.tile, record.data_coordinates),
    }


def non_negative_int(value):
    try:
        count = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value!r} is not an integer")
    if count < 0:
        raise argparse.ArgumentTypeError(f"{value!r} must not be negative")
    return count


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="proxterrain: terrain closest to the Moon along a perigee path"
    )
    parser.add_argument(
        "path",
        help = "Proximity path JSON file"
    )
    parser.add_argument(
        "--halo-km",
        type=float,
        default=None,
        help = "Keep terrain within this many km of the closest approach."
    )
    parser.add_argument(
        "--top",
        type=non_negative_int,
        default=10,
        help = "Number of closest points to print."
    )
    parser.add_argument(
        "--elevation-dir",
        default=None,
        help = "Folder or URL of elevation tiles (overrides config)."
    )
    parser.add_argument(
        "--color-dir",
        default=None,
        help = "Folder or URL of color tiles (overrides config)."
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )
    args = parser.parse_args(argv)

    setuplogs()
    log = logging.getLogger(__name__)
    log.info(f"proxterrain version: {__version__}")

    from proxterrain.collection import ProximityTileCollection
    from proxterrain.errors import ProxTerrainError
    from proxterrain.ptstats import log_stats
    from proxterrain.tilelayout import ProximityPath

    if args.halo_km is not None:
        CFG.terrain.halo_km = str(args.halo_km)

    with open(args.path) as h:
        path = ProximityPath.from_dict(json.load(h))
    log.info(f"Loaded {len(path)} path sample(s) from {args.path}")

    try:
        collection = ProximityTileCollection.from_config(
            CFG, elevation_base=args.elevation_dir, color_base=args.color_dir)
    except ValueError as err:
        parser.error(str(err))

    with collection:
        try:
            data = collection.build(path)
            count = min(args.top, len(data.top_set))
            records = [record_to_dict(data, r) for r in data.top_closest_points(count)]
        except ProxTerrainError as err:
            log.error(f"Extraction failed: {err}")
            return 1
        collection.show_stats()

    log_stats()
    print(json.dumps(records, indent=2))
    return 0


if __name__ == '__main__':
    sys.exit(main())
