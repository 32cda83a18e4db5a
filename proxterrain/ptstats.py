import threading
from collections.abc import MutableMapping

import logging
log = logging.getLogger(__name__)


_local_lock = threading.RLock()
_local_stats = {}


class _StatsMapping(MutableMapping):
    """Dict-like view over the process-wide counters."""

    def __getitem__(self, key):
        with _local_lock:
            return _local_stats[key]

    def __setitem__(self, key, value):
        with _local_lock:
            _local_stats[key] = value

    def __delitem__(self, key):
        with _local_lock:
            del _local_stats[key]

    def __iter__(self):
        with _local_lock:
            return iter(dict(_local_stats).keys())

    def __len__(self):
        with _local_lock:
            return len(_local_stats)

    def get(self, key, default=None):
        with _local_lock:
            return _local_stats.get(key, default)

    def items(self):
        with _local_lock:
            return dict(_local_stats).items()


STATS = _StatsMapping()


def set_stat(stat, value):
    with _local_lock:
        _local_stats[stat] = value


def get_stat(stat):
    with _local_lock:
        return _local_stats.get(stat, 0)


def inc_stat(stat, amount=1):
    with _local_lock:
        _local_stats[stat] = _local_stats.get(stat, 0) + amount
        return _local_stats[stat]


def inc_many(items: dict):
    with _local_lock:
        for k, v in items.items():
            _local_stats[k] = _local_stats.get(k, 0) + int(v)


def clear_stats():
    with _local_lock:
        _local_stats.clear()


def log_stats():
    snap = dict(STATS.items())
    log.info(f"STATS: {snap}")
    return snap
