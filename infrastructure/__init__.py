"""Infrastructure helpers (Redis, etc.)

Expose a small public surface for Redis helpers used by workers and app startup.
"""
from .redis import (
    RedisClient,
    MatchEvents,
    match_channel,
    init_default_redis,
    close_default_redis,
    get_match_events,
)

__all__ = [
    "RedisClient",
    "MatchEvents",
    "match_channel",
    "init_default_redis",
    "close_default_redis",
    "get_match_events",
]
