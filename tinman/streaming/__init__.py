"""Session coordination, stream stores, and subscriber transports."""

from tinman.streaming.coordinator import CoordinatorState, StreamCoordinator
from tinman.streaming.hub import StoreFollower, StreamHub, create_store
from tinman.streaming.redis_store import RedisStreamStore
from tinman.streaming.store import InMemoryStreamStore, ResumableStreamStore
from tinman.streaming.transport import StreamSnapshot, Subscriber, encode_sse

__all__ = [
    "CoordinatorState",
    "InMemoryStreamStore",
    "RedisStreamStore",
    "ResumableStreamStore",
    "StoreFollower",
    "StreamCoordinator",
    "StreamHub",
    "StreamSnapshot",
    "Subscriber",
    "create_store",
    "encode_sse",
]
