from redis import asyncio as aioredis  # Async client
import redis as redis_sync  # Sync client
from redis.asyncio.connection import ConnectionPool as AsyncConnectionPool
from redis.connection import ConnectionPool as SyncConnectionPool
from ..core.config import settings
import asyncio
import threading
from typing import Dict

# Per-event-loop async Redis clients to avoid cross-loop issues
_redis_async_by_loop: Dict[str, aioredis.Redis] = {}

# Single sync client/pool is fine (no event loop binding)
_redis_sync: redis_sync.Redis | None = None


def _current_loop_key() -> str:
	"""Key the async client by the running event loop, or by thread when there is none."""
	try:
		loop = asyncio.get_running_loop()
		return f"loop-{id(loop)}"
	except RuntimeError:
		return f"thread-{threading.get_ident()}"


def get_redis() -> aioredis.Redis:
	"""Get an async Redis client bound to the current event loop.

	Reusing a client created in another loop raises
	"Future attached to a different loop" when awaited.
	"""
	key = _current_loop_key()
	client = _redis_async_by_loop.get(key)
	if client is not None:
		return client

	pool = AsyncConnectionPool.from_url(
		settings.redis_url,
		decode_responses=True,
		max_connections=20,
		socket_connect_timeout=2,
		socket_timeout=2,
	)
	client = aioredis.Redis(connection_pool=pool)
	_redis_async_by_loop[key] = client
	return client


def get_redis_sync() -> redis_sync.Redis:
	"""Get a singleton sync Redis client (used from Celery tasks)."""
	global _redis_sync
	if _redis_sync is None:
		pool = SyncConnectionPool.from_url(
			settings.redis_url,
			decode_responses=True,
			max_connections=20,
			socket_connect_timeout=2,
			socket_timeout=2,
		)
		_redis_sync = redis_sync.Redis(connection_pool=pool)
	return _redis_sync
