"""
On-disk cache of raw ESPN scoreboard events, keyed by (season, week).

File names are the first 8 bytes of sha256("espn-events-{season}-{week}")
in hex plus ".json". Expiry is a timedelta compared with the file mtime:
negative never expires, zero is always stale.
"""

import hashlib
import json
import logging
import os
import time
from datetime import timedelta

from football_pool.utils.espn_client import Event

logger = logging.getLogger(__name__)


class EventCache:
    def __init__(self, cache_dir, expiry=timedelta(hours=24)):
        self.cache_dir = cache_dir
        self.expiry = expiry

    @staticmethod
    def cache_key(season, week):
        digest = hashlib.sha256(f"espn-events-{season}-{week}".encode()).digest()
        return f"{digest[:8].hex()}.json"

    def cache_path(self, season, week):
        return os.path.join(self.cache_dir, self.cache_key(season, week))

    @property
    def never_expires(self):
        return self.expiry.total_seconds() < 0

    def _is_expired(self, mtime, now=None):
        if self.never_expires:
            return False
        if self.expiry.total_seconds() == 0:
            return True
        now = time.time() if now is None else now
        return now - mtime > self.expiry.total_seconds()

    def get(self, season, week):
        """
        Return (events, True) on a fresh, decodable entry, else ([], False).

        A stale file is removed; an undecodable one is left for the next
        set() to overwrite.
        """
        path = self.cache_path(season, week)

        try:
            mtime = os.stat(path).st_mtime
        except OSError:
            return [], False

        if self._is_expired(mtime):
            try:
                os.remove(path)
            except OSError as e:
                logger.warning(f"Failed to remove expired cache file {path}: {e}")
            return [], False

        try:
            with open(path, encoding="utf-8") as f:
                raw = json.load(f)
            if not isinstance(raw, list):
                raise ValueError("cache body is not a list of events")
            events = [e for e in map(Event.from_dict, raw) if e]
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to parse cache file {path}: {e}")
            return [], False

        logger.debug(f"Cache hit season={season} week={week}")
        return events, True

    def set(self, season, week, events):
        """Write events for (season, week); last write wins"""
        os.makedirs(self.cache_dir, exist_ok=True)
        path = self.cache_path(season, week)

        with open(path, "w", encoding="utf-8") as f:
            json.dump([event.to_dict() for event in events], f)

        logger.debug(f"Cache set season={season} week={week} events={len(events)}")

    def _cache_files(self):
        try:
            entries = list(os.scandir(self.cache_dir))
        except FileNotFoundError:
            return []
        return [entry for entry in entries if not entry.is_dir()]

    def clear_expired(self):
        """Remove expired cache files and return how many were removed"""
        if self.never_expires:
            return 0

        removed = 0
        now = time.time()
        for entry in self._cache_files():
            try:
                if not self._is_expired(entry.stat().st_mtime, now):
                    continue
                os.remove(entry.path)
                removed += 1
                logger.debug(f"Removed expired cache file {entry.path}")
            except OSError as e:
                logger.warning(f"Failed to remove expired cache file {entry.path}: {e}")
        return removed

    def clear_all(self):
        """Remove every cache file and return how many were removed"""
        removed = 0
        for entry in self._cache_files():
            try:
                os.remove(entry.path)
                removed += 1
                logger.debug(f"Removed cache file {entry.path}")
            except OSError as e:
                logger.warning(f"Failed to remove cache file {entry.path}: {e}")
        return removed
