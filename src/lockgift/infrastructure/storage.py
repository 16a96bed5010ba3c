"""Storage abstractions and Redis implementation for repositories."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, List, Optional

from redis.exceptions import NoScriptError

from .database import DatabaseClient


class KeyValueStore(ABC):
    """Abstract key-value store with minimal operations used by repositories."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def mget(self, keys: List[str]) -> List[Optional[str]]:
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    async def zrevrange(self, key: str, start: int, end: int) -> list[str]:
        pass

    @abstractmethod
    async def zcard(self, key: str) -> int:
        pass

    @abstractmethod
    async def register_script(self, name: str, script: str) -> str:
        """Load a script into the server cache and remember it under ``name``."""
        pass

    @abstractmethod
    async def run_script(self, name: str, keys: List[str], args: List[str]) -> Any:
        """Execute a previously registered script by name."""
        pass


class RedisKeyValueStore(KeyValueStore):
    """Redis-backed implementation of KeyValueStore."""

    def __init__(self, db_client: DatabaseClient):
        self._db_client = db_client
        self._scripts: dict[str, str] = {}
        self._shas: dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        async with self._db_client.get_connection() as conn:
            return await conn.get(key)

    async def mget(self, keys: List[str]) -> List[Optional[str]]:
        if not keys:
            return []
        async with self._db_client.get_connection() as conn:
            return await conn.mget(keys)

    async def set(self, key: str, value: str) -> None:
        async with self._db_client.get_connection() as conn:
            await conn.set(key, value)

    async def zrevrange(self, key: str, start: int, end: int) -> list[str]:
        async with self._db_client.get_connection() as conn:
            return await conn.zrevrange(key, start, end)

    async def zcard(self, key: str) -> int:
        async with self._db_client.get_connection() as conn:
            return await conn.zcard(key)

    async def register_script(self, name: str, script: str) -> str:
        async with self._db_client.get_connection() as conn:
            sha = await conn.script_load(script)
        self._scripts[name] = script
        self._shas[name] = sha
        return sha

    async def run_script(self, name: str, keys: List[str], args: List[str]) -> Any:
        if name not in self._scripts:
            raise ValueError(f"Script '{name}' not registered")
        async with self._db_client.get_connection() as conn:
            try:
                return await conn.evalsha(self._shas[name], len(keys), *keys, *args)
            except NoScriptError:
                # Server script cache was flushed (restart, SCRIPT FLUSH)
                self._shas[name] = await conn.script_load(self._scripts[name])
                return await conn.evalsha(self._shas[name], len(keys), *keys, *args)
