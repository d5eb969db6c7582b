"""Redis-backed resumable stream store.

Per session there are two keys:

    <prefix><session_id>:events   LIST of JSON-encoded DeltaEvents (seq 1 at index 0)
    <prefix><session_id>:meta     HASH with status, chat_id, created_at

Writes run as Lua scripts so the contiguity check and the push happen
atomically on the server, which makes append exactly-once even when two
processes race on the same session. Every write refreshes the TTL of
both keys.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Protocol, runtime_checkable

from tinman.errors import SequenceConflictError
from tinman.schemas.events import DeltaEvent
from tinman.schemas.session import SessionStatus
from tinman.streaming.store import DEFAULT_RETENTION, ResumableStreamStore

logger = logging.getLogger(__name__)


@runtime_checkable
class AsyncRedisClient(Protocol):
    """The subset of redis.asyncio.Redis used by the store."""

    async def eval(self, script: str, numkeys: int, *keys_and_args: Any) -> Any: ...
    async def lrange(self, name: str, start: int, end: int) -> list[bytes]: ...
    async def llen(self, name: str) -> int: ...
    async def hget(self, name: str, key: str) -> bytes | None: ...
    async def ping(self) -> bool: ...
    async def aclose(self) -> None: ...


# KEYS: events, meta. ARGV: chat_id, created_at, ttl.
# Returns 1 when registered, 0 when the session already exists.
REGISTER_SCRIPT = """
if redis.call('EXISTS', KEYS[2]) == 1 then
  return 0
end
redis.call('HSET', KEYS[2], 'status', 'active', 'chat_id', ARGV[1], 'created_at', ARGV[2])
redis.call('EXPIRE', KEYS[2], ARGV[3])
return 1
"""

# KEYS: events, meta. ARGV: seq, payload, ttl.
# Returns {1, seq} on success, {0, last} on a gap or duplicate,
# {-1, last} when the session is terminal.
APPEND_SCRIPT = """
local status = redis.call('HGET', KEYS[2], 'status')
local last = redis.call('LLEN', KEYS[1])
if status == 'completed' or status == 'aborted' then
  return {-1, last}
end
if tonumber(ARGV[1]) ~= last + 1 then
  return {0, last}
end
redis.call('RPUSH', KEYS[1], ARGV[2])
if not status then
  redis.call('HSET', KEYS[2], 'status', 'active')
end
redis.call('EXPIRE', KEYS[1], ARGV[3])
redis.call('EXPIRE', KEYS[2], ARGV[3])
return {1, last + 1}
"""

# KEYS: events, meta. ARGV: status, ttl.
# Returns 1 when written, 0 when a terminal status was already present.
TERMINAL_SCRIPT = """
local status = redis.call('HGET', KEYS[2], 'status')
if status == 'completed' or status == 'aborted' then
  return 0
end
redis.call('HSET', KEYS[2], 'status', ARGV[1])
redis.call('EXPIRE', KEYS[2], ARGV[2])
if redis.call('EXISTS', KEYS[1]) == 1 then
  redis.call('EXPIRE', KEYS[1], ARGV[2])
end
return 1
"""


def _text(value: bytes | str | None) -> str | None:
    if isinstance(value, bytes):
        return value.decode()
    return value


class RedisStreamStore(ResumableStreamStore):
    """Stream store for multi-process deployments.

    Example:
        >>> store = RedisStreamStore.from_url("redis://localhost:6379/0")
        >>> await store.register("s1", "chat-1")
    """

    def __init__(
        self,
        client: AsyncRedisClient,
        *,
        prefix: str = "tinman:stream:",
        retention_seconds: int = DEFAULT_RETENTION,
    ) -> None:
        self._client = client
        self._prefix = prefix
        self._retention = retention_seconds

    @classmethod
    def from_url(
        cls,
        url: str = "redis://localhost:6379/0",
        *,
        prefix: str = "tinman:stream:",
        retention_seconds: int = DEFAULT_RETENTION,
        **redis_kwargs: Any,
    ) -> RedisStreamStore:
        """Create a store with a new redis.asyncio client."""
        import redis.asyncio as aioredis

        client = aioredis.from_url(url, **redis_kwargs)
        return cls(client, prefix=prefix, retention_seconds=retention_seconds)

    @property
    def client(self) -> AsyncRedisClient:
        return self._client

    def _keys(self, session_id: str) -> tuple[str, str]:
        base = f"{self._prefix}{session_id}"
        return f"{base}:events", f"{base}:meta"

    async def register(self, session_id: str, chat_id: str) -> None:
        events_key, meta_key = self._keys(session_id)
        created = await self._client.eval(
            REGISTER_SCRIPT, 2, events_key, meta_key,
            chat_id, f"{time.time():.3f}", self._retention,
        )
        if not int(created):
            last = await self.last_sequence(session_id)
            raise SequenceConflictError(session_id, last + 1, None)

    async def append(self, session_id: str, event: DeltaEvent) -> None:
        seq = self._check_storable(event)
        events_key, meta_key = self._keys(session_id)
        code, last = await self._client.eval(
            APPEND_SCRIPT, 2, events_key, meta_key,
            seq, event.model_dump_json(), self._retention,
        )
        if int(code) != 1:
            if int(code) == -1:
                logger.warning("Append to terminal stream %s rejected (seq %d)", session_id, seq)
            raise SequenceConflictError(session_id, int(last) + 1, seq)

    async def read_from(self, session_id: str, after_sequence: int = 0) -> list[DeltaEvent]:
        events_key, _ = self._keys(session_id)
        raw = await self._client.lrange(events_key, max(after_sequence, 0), -1)
        return [DeltaEvent.model_validate_json(item) for item in raw]

    async def get_status(self, session_id: str) -> SessionStatus | None:
        _, meta_key = self._keys(session_id)
        value = _text(await self._client.hget(meta_key, "status"))
        return SessionStatus(value) if value else None

    async def mark_terminal(self, session_id: str, status: SessionStatus) -> None:
        if not status.is_terminal:
            raise ValueError(f"{status} is not a terminal status")
        events_key, meta_key = self._keys(session_id)
        written = await self._client.eval(
            TERMINAL_SCRIPT, 2, events_key, meta_key, status.value, self._retention,
        )
        if not int(written):
            logger.debug("Stream %s already terminal, keeping first status", session_id)

    async def last_sequence(self, session_id: str) -> int:
        events_key, _ = self._keys(session_id)
        return int(await self._client.llen(events_key))

    async def ping(self) -> bool:
        """Check the Redis connection."""
        try:
            return bool(await self._client.ping())
        except Exception:
            logger.exception("Redis ping failed")
            return False

    async def close(self) -> None:
        await self._client.aclose()
