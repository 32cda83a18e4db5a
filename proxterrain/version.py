import os

__version__ = "unknown"


def _find_version_file():
    """Find the .version file written next to the package at release time."""
    ver_file = os.path.join(os.path.dirname(os.path.realpath(__file__)), '.version')
    if os.path.exists(ver_file):
        try:
            with open(ver_file, 'r') as h:
                return h.read().strip()
        except OSError:
            return None
    return None


__version__ = _find_version_file() or "0.3.0"
