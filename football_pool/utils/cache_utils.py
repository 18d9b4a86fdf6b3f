"""
Cache utilities for the football pool
Response caching for leaderboard routes, built on the Flask-Caching extension
"""

import functools
import logging

from flask import request

from football_pool import cache

logger = logging.getLogger(__name__)

LEADERBOARD_GENERATION_KEY = "leaderboard_generation"


def _generation():
    return cache.get(LEADERBOARD_GENERATION_KEY) or 0


def make_cache_key(key_prefix):
    """Cache key from the prefix, the current generation, path and query args"""
    args_str = "_".join(f"{k}_{v}" for k, v in sorted(request.args.items()))
    return f"{key_prefix}_{_generation()}_{request.path}_{args_str}".replace("/", "_")


def cached_route(timeout=300, key_prefix="leaderboard"):
    """
    Decorator for caching route payloads

    The wrapped view must return JSON-serializable data (not a Response) so
    the payload itself is what gets cached.

    Args:
        timeout: Cache timeout in seconds (default 5 minutes)
        key_prefix: Prefix for cache key
    """

    def decorator(f):
        @functools.wraps(f)
        def wrapped(*args, **kwargs):
            cache_key = make_cache_key(key_prefix)

            result = cache.get(cache_key)
            if result is not None:
                logger.debug(f"Cache hit for key: {cache_key}")
                return result

            result = f(*args, **kwargs)
            # Error responses come back as (Response, status) and are not cached
            if isinstance(result, (list, dict)):
                cache.set(cache_key, result, timeout=timeout)
                logger.debug(f"Cache set for key: {cache_key}")

            return result

        return wrapped

    return decorator


def invalidate_leaderboards():
    """
    Invalidate every cached leaderboard

    Bumping the generation orphans the old keys until they expire.
    """
    generation = _generation() + 1
    cache.set(LEADERBOARD_GENERATION_KEY, generation, timeout=0)
    logger.debug(f"Leaderboard cache generation is now {generation}")
