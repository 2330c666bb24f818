"""
Response cache stores.

Two backends behind the same async contract:

  FileCacheStore   one JSON file per entry under CACHE_DIR; the file's
                   mtime is the freshness clock. Single-instance deployments.
  RedisCacheStore  SETEX with CACHE_TTL_SECONDS; shared between instances.

Caching is an optimisation only. Every storage failure is logged and
swallowed: get() reports a miss, set() drops the write. A corrupt entry
is deleted on sight and never served.
"""
import json
import logging
import os
import re
import tempfile
import time
from typing import Any, Callable, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from app.services.errors import CacheIOError
from config import Settings

logger = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


class CacheStore:
    """Async get/set contract shared by all backends."""

    backend = "none"

    async def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    async def set(self, key: str, payload: Any) -> None:
        raise NotImplementedError

    async def purge_expired(self) -> int:
        return 0

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


# ─────────────────────────────────────────────
# Filesystem backend
# ─────────────────────────────────────────────

class FileCacheStore(CacheStore):
    backend = "file"

    def __init__(
        self,
        directory: str,
        ttl_seconds: float,
        clock: Callable[[], float] = time.time,
    ):
        self.directory = directory
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def _ensure_dir(self) -> None:
        os.makedirs(self.directory, exist_ok=True)

    def path_for(self, key: str) -> str:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid cache key: {key!r}")
        return os.path.join(self.directory, f"{key}.json")

    def _is_fresh(self, mtime: float) -> bool:
        return self._clock() - mtime < self.ttl_seconds

    def _evict(self, path: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Cache evict failed for {os.path.basename(path)}: {e}")

    def _read(self, path: str) -> Optional[Any]:
        try:
            stats = os.stat(path)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CacheIOError(f"stat {path}: {e}") from e

        if not self._is_fresh(stats.st_mtime):
            logger.debug(f"Cache EXPIRED: {os.path.basename(path)}")
            self._evict(path)
            return None

        try:
            with open(path, "rb") as fh:
                raw = fh.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CacheIOError(f"read {path}: {e}") from e

        try:
            return json.loads(raw.decode("utf-8"))
        except ValueError:
            logger.warning(f"Cache CORRUPT, removing: {os.path.basename(path)}")
            self._evict(path)
            return None

    def _write(self, path: str, payload: Any) -> None:
        try:
            body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise CacheIOError(f"serialise {os.path.basename(path)}: {e}") from e
        try:
            self._ensure_dir()
            fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
            try:
                with os.fdopen(fd, "wb") as fh:
                    fh.write(body)
                os.replace(tmp_path, path)
            except BaseException:
                self._evict(tmp_path)
                raise
        except OSError as e:
            raise CacheIOError(f"write {path}: {e}") from e

    async def get(self, key: str) -> Optional[Any]:
        path = self.path_for(key)
        try:
            payload = self._read(path)
        except CacheIOError as e:
            logger.warning(f"Cache read error: {e}")
            return None
        if payload is not None:
            logger.debug(f"Cache HIT (file): {key}")
        return payload

    async def set(self, key: str, payload: Any) -> None:
        path = self.path_for(key)
        try:
            self._write(path, payload)
            logger.debug(f"Cache WRITE (file): {key}")
        except CacheIOError as e:
            logger.warning(f"Cache write error: {e}")

    async def purge_expired(self) -> int:
        """Delete every expired entry; returns how many were removed."""
        try:
            names = os.listdir(self.directory)
        except FileNotFoundError:
            return 0
        except OSError as e:
            logger.warning(f"Cache sweep failed to list {self.directory}: {e}")
            return 0

        removed = 0
        for name in names:
            if not name.endswith(".json"):
                continue
            path = os.path.join(self.directory, name)
            try:
                mtime = os.stat(path).st_mtime
            except OSError:
                continue
            if not self._is_fresh(mtime):
                self._evict(path)
                removed += 1
        return removed

    async def ping(self) -> bool:
        try:
            self._ensure_dir()
        except OSError:
            return False
        return os.access(self.directory, os.W_OK)


# ─────────────────────────────────────────────
# Redis backend
# ─────────────────────────────────────────────

class RedisCacheStore(CacheStore):
    backend = "redis"

    def __init__(self, client: aioredis.Redis, ttl_seconds: int, prefix: str = "astroask:"):
        self._redis = client
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int) -> "RedisCacheStore":
        return cls(aioredis.from_url(url, decode_responses=True), ttl_seconds)

    async def get(self, key: str) -> Optional[Any]:
        redis_key = self.prefix + key
        try:
            raw = await self._redis.get(redis_key)
            payload = None if raw is None else json.loads(raw)
        except RedisError as e:
            logger.warning(f"Redis read error: {e}")
            return None
        except ValueError:
            logger.warning(f"Cache CORRUPT (redis), removing: {key}")
            try:
                await self._redis.delete(redis_key)
            except RedisError as e:
                logger.warning(f"Redis delete error: {e}")
            return None

        if payload is not None:
            logger.debug(f"Cache HIT (redis): {key}")
        return payload

    async def set(self, key: str, payload: Any) -> None:
        try:
            body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as e:
            logger.warning(f"Cache entry not serialisable, skipping write: {key}: {e}")
            return
        try:
            await self._redis.setex(self.prefix + key, self.ttl_seconds, body)
            logger.debug(f"Cache WRITE (redis): {key}")
        except RedisError as e:
            logger.warning(f"Redis write error: {e}")

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError:
            return False

    async def close(self) -> None:
        await self._redis.aclose()


def build_cache_store(settings: Settings) -> CacheStore:
    backend = settings.CACHE_BACKEND.lower()
    if backend == "redis":
        logger.info(f"Cache backend: redis ({settings.REDIS_URL.split('@')[-1]})")
        return RedisCacheStore.from_url(settings.REDIS_URL, settings.CACHE_TTL_SECONDS)
    if backend == "file":
        store = FileCacheStore(settings.CACHE_DIR, settings.CACHE_TTL_SECONDS)
        try:
            store._ensure_dir()
        except OSError as e:
            logger.warning(f"Cache directory unavailable, running uncached until it is: {e}")
        logger.info(f"Cache backend: file ({os.path.abspath(settings.CACHE_DIR)})")
        return store
    raise ValueError(f"Unknown CACHE_BACKEND: {settings.CACHE_BACKEND}")
