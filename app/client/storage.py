import asyncio
import os
import re
import tempfile
from typing import Optional, Protocol

import redis.asyncio as aioredis
from loguru import logger

from config import settings

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class KeyValueStorage(Protocol):
    """Durable string storage the local cache persists into."""

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...

    async def close(self) -> None:
        ...


class FileKeyValueStorage:
    """One file per key in a directory; writes go through a temp file and os.replace."""

    def __init__(self, directory: str):
        self.directory = directory

    def _path(self, key: str) -> str:
        return os.path.join(self.directory, _UNSAFE_KEY_CHARS.sub("_", key) + ".json")

    def _read(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as f:
            return f.read()

    def _write(self, key: str, value: str) -> None:
        os.makedirs(self.directory, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.directory, text=True)
        os.close(fd)
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(value)
        os.replace(tmp, self._path(key))

    def _remove(self, key: str) -> None:
        path = self._path(key)
        if os.path.exists(path):
            os.remove(path)

    async def get(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write, key, value)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._remove, key)

    async def close(self) -> None:
        return None


class RedisKeyValueStorage:
    def __init__(self, client: aioredis.Redis):
        self.redis_client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisKeyValueStorage":
        return cls(aioredis.from_url(url, encoding="utf-8", decode_responses=False))

    async def get(self, key: str) -> Optional[str]:
        value = await self.redis_client.get(key)
        if value is None:
            return None
        return value.decode("utf-8") if isinstance(value, bytes) else value

    async def set(self, key: str, value: str) -> None:
        await self.redis_client.set(key, value.encode("utf-8"))

    async def delete(self, key: str) -> None:
        await self.redis_client.delete(key)

    async def close(self) -> None:
        await self.redis_client.aclose()
        logger.info("Redis connection closed")


def build_storage(backend: Optional[str] = None) -> KeyValueStorage:
    backend = backend or settings.LOCAL_CACHE_BACKEND
    if backend == "redis":
        logger.info(f"Local cache backed by Redis at {settings.REDIS_HOST}:{settings.REDIS_PORT}")
        return RedisKeyValueStorage.from_url(settings.REDIS_URL)
    if backend == "file":
        logger.info(f"Local cache backed by files in {settings.LOCAL_CACHE_DIR}")
        return FileKeyValueStorage(settings.LOCAL_CACHE_DIR)
    raise ValueError(f"Unknown local cache backend: {backend}")
