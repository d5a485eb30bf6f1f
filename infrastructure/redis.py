from typing import Any, AsyncIterator, Optional
import json
import logging

import redis.asyncio as redis

logger = logging.getLogger(__name__)


def match_channel(match_id: str) -> str:
    return f"match:{match_id}"


class RedisClient:
    """Simple async Redis client wrapper with lifecycle management and pub/sub helpers.

    Usage:
        client = RedisClient("redis://localhost:6379/0")
        await client.init()
        await client.publish_json("match:abc", {"type": "MATCH_UPDATED"})
        await client.close()
    """

    def __init__(self, url: str, *, decode_responses: bool = True):
        self.url = url
        self.decode_responses = decode_responses
        self._client: Optional[redis.Redis] = None

    async def init(self) -> None:
        """Initialize the underlying redis connection. Must be awaited."""
        if self._client is not None:
            return
        self._client = redis.from_url(self.url, decode_responses=self.decode_responses)
        # verify connectivity
        await self._client.ping()

    async def close(self) -> None:
        """Close the connection cleanly."""
        if self._client is None:
            return
        await self._client.aclose()
        self._client = None

    def get(self) -> redis.Redis:
        """Return the underlying `redis.Redis` client. Raises if not initialized."""
        if self._client is None:
            raise RuntimeError("Redis client not initialized; call init() first")
        return self._client

    # ------ pub/sub helpers ------

    async def publish_json(self, channel: str, message: dict[str, Any]) -> int:
        """Publish `message` as JSON. Returns the number of subscribers that received it."""
        return await self.get().publish(channel, json.dumps(message))

    async def subscribe_json(self, channel: str) -> AsyncIterator[dict[str, Any]]:
        """Yield decoded JSON messages published on `channel` until the caller stops iterating."""
        pubsub = self.get().pubsub()
        await pubsub.subscribe(channel)
        try:
            async for raw in pubsub.listen():
                if raw.get("type") != "message":
                    continue
                try:
                    yield json.loads(raw["data"])
                except (TypeError, ValueError):
                    logger.warning(f"[REDIS] Dropping non-JSON message on {channel}: {raw.get('data')!r}")
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()


class MatchEvents:
    """Publishes a small notification on `match:{id}` after every match write.

    Subscribers (WebSocket connections in any API process) re-read the match
    from the store; the notification itself carries only the version.
    """

    def __init__(self, client: RedisClient):
        self.client = client

    async def publish(self, match: dict[str, Any], event: str = "MATCH_UPDATED") -> None:
        message = {
            "type": event,
            "matchId": match.get("matchId"),
            "status": match.get("status"),
            "currentRound": match.get("currentRound"),
            "version": match.get("version"),
        }
        try:
            await self.client.publish_json(match_channel(match["matchId"]), message)
        except (redis.RedisError, RuntimeError) as exc:
            # Notification loss only delays clients until their next read
            logger.warning(f"[REDIS] Failed to publish {event} for match {match.get('matchId')}: {exc}")

    def listen(self, match_id: str) -> AsyncIterator[dict[str, Any]]:
        return self.client.subscribe_json(match_channel(match_id))


# Module-level default client shared by the API process
_default_client: Optional[RedisClient] = None


async def init_default_redis(url: str, *, decode_responses: bool = True) -> RedisClient:
    """Initialize and register a module-level default RedisClient.

    Returns the initialized client.
    """
    global _default_client
    if _default_client is None:
        _default_client = RedisClient(url, decode_responses=decode_responses)
    await _default_client.init()
    return _default_client


async def close_default_redis() -> None:
    global _default_client
    if _default_client is not None:
        await _default_client.close()
        _default_client = None


def get_match_events() -> Optional[MatchEvents]:
    """MatchEvents bound to the default client, or None when notifications are disabled."""
    if _default_client is None:
        return None
    return MatchEvents(_default_client)
