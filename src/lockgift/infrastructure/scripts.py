"""Central registry for Redis Lua scripts backing the gift ledger.

The scripts are registered at application startup for EVALSHA optimization.
Every script returns a two element array ``{code, payload}``.

Return Code Conventions:
    - 0: Conflict - the record exists but is not in the expected state (or,
         for ``create_gift``, the gift id is already taken). The payload is
         the current record JSON, or an empty string.

    - 1: Success - the write was applied. The payload is the stored JSON.

    - 2: Missing / taken - for ``transition_gift`` the gift key does not
         exist; for ``create_gift`` the deposit index or deposit address is
         already bound to another gift. The payload is an empty string.

    - 3: Stale revision - the status matched but another writer bumped the
         revision in between the caller's read and write. The payload is the
         current record JSON. Callers re-read and retry.

``allocate_deposit_index`` is the exception: it returns the allocated
integer directly.
"""

from __future__ import annotations

from .storage import KeyValueStore

DEPOSIT_INDEX_KEY = "gifts:deposit_index"
ALL_GIFTS_KEY = "gifts:all"


def gift_key(gift_id: object) -> str:
    return f"gift:{gift_id}"


def status_key(status: str) -> str:
    return f"gifts:status:{status}"


def deposit_index_key(index: int) -> str:
    return f"gift:deposit_index:{index}"


def deposit_address_key(address: str) -> str:
    return f"gift:deposit_address:{address}"


LEDGER_SCRIPTS = {
    "allocate_deposit_index": """
        local counter_key = KEYS[1]
        local start = tonumber(ARGV[1])

        -- First allocation seeds the counter so INCR yields ``start``
        if redis.call('EXISTS', counter_key) == 0 then
            redis.call('SET', counter_key, start - 1)
        end
        return redis.call('INCR', counter_key)
    """,
    "create_gift": """
        local gift_key = KEYS[1]
        local index_key = KEYS[2]
        local address_key = KEYS[3]
        local all_key = KEYS[4]
        local status_key = KEYS[5]
        local gift_json = ARGV[1]
        local gift_id = ARGV[2]
        local created_ts = tonumber(ARGV[3])

        if redis.call('EXISTS', gift_key) == 1 then
            return {0, ''}
        end
        if redis.call('EXISTS', index_key) == 1 or redis.call('EXISTS', address_key) == 1 then
            return {2, ''}
        end

        redis.call('SET', gift_key, gift_json)
        redis.call('SET', index_key, gift_id)
        redis.call('SET', address_key, gift_id)
        redis.call('ZADD', all_key, created_ts, gift_id)
        redis.call('ZADD', status_key, created_ts, gift_id)

        return {1, gift_json}
    """,
    "transition_gift": """
        local gift_key = KEYS[1]
        local old_status_key = KEYS[2]
        local new_status_key = KEYS[3]
        local expected_status = ARGV[1]
        local expected_revision = tonumber(ARGV[2])
        local new_val = ARGV[3]
        local gift_id = ARGV[4]
        local created_ts = tonumber(ARGV[5])

        local current_raw = redis.call('GET', gift_key)
        if not current_raw then
            return {2, ''}
        end

        local current = cjson.decode(current_raw)
        if current.status ~= expected_status then
            return {0, current_raw}
        end
        if tonumber(current.revision) ~= expected_revision then
            return {3, current_raw}
        end

        redis.call('SET', gift_key, new_val)
        if old_status_key ~= new_status_key then
            redis.call('ZREM', old_status_key, gift_id)
            redis.call('ZADD', new_status_key, created_ts, gift_id)
        end

        return {1, new_val}
    """,
}


async def register_ledger_scripts(store: KeyValueStore) -> None:
    """Load all ledger scripts into the store's script cache."""
    for name, script in LEDGER_SCRIPTS.items():
        await store.register_script(name, script)
