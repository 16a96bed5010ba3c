"""In-memory implementation of KeyValueStore for testing."""

from __future__ import annotations

import json
from typing import Any, List, Optional

from lockgift.infrastructure.storage import KeyValueStore


class InMemoryKeyValueStore(KeyValueStore):
    """In-memory implementation of KeyValueStore for fast testing.

    Registered ledger scripts are executed by equivalent Python code, one
    script at a time, so they are atomic with respect to other coroutines
    just like EVALSHA on a Redis server.
    """

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._sorted_sets: dict[str, list[tuple[str, float]]] = {}
        self._script_cache: dict[str, str] = {}
        self._script_sources: dict[str, str] = {}
        self.script_calls: dict[str, int] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def mget(self, keys: List[str]) -> List[Optional[str]]:
        return [self._data.get(key) for key in keys]

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def _zadd(self, key: str, score: float, member: str) -> bool:
        entries = self._sorted_sets.setdefault(key, [])
        exists = any(m == member for m, _ in entries)
        entries[:] = [(m, s) for m, s in entries if m != member]
        entries.append((member, score))
        # Keep sorted by score (descending)
        entries.sort(key=lambda x: x[1], reverse=True)
        return not exists

    async def zrevrange(self, key: str, start: int, end: int) -> list[str]:
        """Get range from sorted set (already sorted descending)."""
        members = [m for m, _ in self._sorted_sets.get(key, [])]
        # Redis zrevrange is inclusive on both ends
        slice_end = None if end == -1 else end + 1
        return members[start:slice_end]

    def _zrem(self, key: str, member: str) -> int:
        entries = self._sorted_sets.get(key)
        if not entries:
            return 0
        original_len = len(entries)
        entries[:] = [(m, s) for m, s in entries if m != member]
        return 1 if len(entries) < original_len else 0

    async def zcard(self, key: str) -> int:
        return len(self._sorted_sets.get(key, []))

    async def register_script(self, name: str, script: str) -> str:
        """Register a script (return mock SHA1)."""
        self._script_cache[name] = f"sha1_{name}"
        self._script_sources[name] = script
        return f"sha1_{name}"

    async def run_script(self, name: str, keys: List[str], args: List[str]) -> Any:
        """Execute script by name."""
        if name not in self._script_cache:
            raise ValueError(f"Script '{name}' not registered")
        self.script_calls[name] = self.script_calls.get(name, 0) + 1
        if name == "allocate_deposit_index":
            return self._execute_allocate_deposit_index(keys, args)
        if name == "create_gift":
            return self._execute_create_gift(keys, args)
        if name == "transition_gift":
            return self._execute_transition_gift(keys, args)
        raise NotImplementedError(f"Script '{name}' not implemented in memory")

    def _execute_allocate_deposit_index(self, keys: List[str], args: List[str]) -> int:
        counter_key = keys[0]
        start = int(args[0])
        if counter_key not in self._data:
            self._data[counter_key] = str(start - 1)
        value = int(self._data[counter_key]) + 1
        self._data[counter_key] = str(value)
        return value

    def _execute_create_gift(self, keys: List[str], args: List[str]) -> list[Any]:
        gift_key, index_key, address_key, all_key, status_key = keys
        gift_json, gift_id, created_ts = args[0], args[1], float(args[2])

        if gift_key in self._data:
            return [0, ""]
        if index_key in self._data or address_key in self._data:
            return [2, ""]

        self._data[gift_key] = gift_json
        self._data[index_key] = gift_id
        self._data[address_key] = gift_id
        self._zadd(all_key, created_ts, gift_id)
        self._zadd(status_key, created_ts, gift_id)
        return [1, gift_json]

    def _execute_transition_gift(self, keys: List[str], args: List[str]) -> list[Any]:
        gift_key, old_status_key, new_status_key = keys
        expected_status = args[0]
        expected_revision = int(args[1])
        new_val, gift_id, created_ts = args[2], args[3], float(args[4])

        current_raw = self._data.get(gift_key)
        if not current_raw:
            return [2, ""]

        current = json.loads(current_raw)
        if current.get("status") != expected_status:
            return [0, current_raw]
        if int(current.get("revision", 0)) != expected_revision:
            return [3, current_raw]

        self._data[gift_key] = new_val
        if old_status_key != new_status_key:
            self._zrem(old_status_key, gift_id)
            self._zadd(new_status_key, created_ts, gift_id)
        return [1, new_val]

    def clear(self) -> None:
        """Clear all data (useful for test teardown)."""
        self._data.clear()
        self._sorted_sets.clear()
        self.script_calls.clear()
