"""Gift repository implementation over a storage abstraction."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, List, Optional
from uuid import UUID

from ...domain.errors import ConcurrencyConflict, GiftNotFoundError, InvalidTransition
from ...domain.gift.entities import Gift, GiftStatus, can_transition
from ...domain.gift.repositories import GiftRepository
from ..scripts import (
    ALL_GIFTS_KEY,
    DEPOSIT_INDEX_KEY,
    deposit_address_key,
    deposit_index_key,
    gift_key,
    status_key,
)
from ..storage import KeyValueStore

logger = logging.getLogger(__name__)


def _parse_script_result(result: Any) -> tuple[int, Optional[str]]:
    # result is a list-like: [code, json_or_empty]
    code = int(result[0]) if result and result[0] not in (None, "") else 0
    payload = result[1] if len(result) > 1 and result[1] else None
    return code, payload


class GiftRepositoryImpl(GiftRepository):
    """Gift repository using a KeyValueStore and the ledger Lua scripts."""

    def __init__(
        self,
        store: KeyValueStore,
        index_start: int = 0,
        max_stale_retries: int = 16,
    ):
        self.store = store
        self.index_start = index_start
        self.max_stale_retries = max_stale_retries

    async def allocate_next_index(self) -> int:
        result = await self.store.run_script(
            "allocate_deposit_index",
            keys=[DEPOSIT_INDEX_KEY],
            args=[str(self.index_start)],
        )
        return int(result)

    async def create(self, gift: Gift) -> Gift:
        payload_json = gift.model_dump_json()
        result = await self.store.run_script(
            "create_gift",
            keys=[
                gift_key(gift.id),
                deposit_index_key(gift.deposit_index),
                deposit_address_key(gift.deposit_address),
                ALL_GIFTS_KEY,
                status_key(gift.status.value),
            ],
            args=[payload_json, str(gift.id), str(gift.created_at.timestamp())],
        )
        code, payload = _parse_script_result(result)
        if code == 0:
            raise ValueError("Gift with this id already exists")
        if code == 2:
            raise ValueError("Deposit index or address is already in use")
        if payload is None:
            raise RuntimeError("Unexpected: create_gift returned success but no payload")
        return Gift.model_validate_json(payload)

    async def get_by_id(self, gift_id: UUID) -> Optional[Gift]:
        data = await self.store.get(gift_key(gift_id))
        if not data:
            return None
        return Gift.model_validate_json(data)

    async def get_by_deposit_address(self, address: str) -> Optional[Gift]:
        gift_id = await self.store.get(deposit_address_key(address))
        if not gift_id:
            return None
        return await self.get_by_id(UUID(gift_id))

    async def transition(
        self,
        gift_id: UUID,
        expected_status: GiftStatus,
        new_status: GiftStatus,
        **fields: Any,
    ) -> Optional[Gift]:
        if not can_transition(expected_status, new_status):
            raise InvalidTransition(
                f"Transition {expected_status.value} -> {new_status.value} is not allowed"
            )

        for _ in range(self.max_stale_retries):
            raw = await self.store.get(gift_key(gift_id))
            if raw is None:
                raise GiftNotFoundError(f"Gift {gift_id} not found")
            current = Gift.model_validate_json(raw)
            if current.status != expected_status:
                return None

            data = current.model_dump()
            data.update(fields)
            data["status"] = new_status
            data["revision"] = current.revision + 1
            data["updated_at"] = datetime.now(timezone.utc)
            updated = Gift.model_validate(data)

            result = await self.store.run_script(
                "transition_gift",
                keys=[
                    gift_key(gift_id),
                    status_key(expected_status.value),
                    status_key(new_status.value),
                ],
                args=[
                    expected_status.value,
                    str(current.revision),
                    updated.model_dump_json(),
                    str(gift_id),
                    str(current.created_at.timestamp()),
                ],
            )
            code, payload = _parse_script_result(result)
            if code == 1:
                if payload is None:
                    raise RuntimeError(
                        "Unexpected: transition_gift returned success but no payload"
                    )
                return Gift.model_validate_json(payload)
            if code == 0:
                return None
            if code == 2:
                raise GiftNotFoundError(f"Gift {gift_id} not found")
            # code == 3: same status, newer revision; re-read and retry
            logger.debug("Stale revision for gift %s, retrying", gift_id)

        raise ConcurrencyConflict(
            f"Gift {gift_id} kept changing during {expected_status.value} -> "
            f"{new_status.value}"
        )

    async def _load_many(self, ids: list[str]) -> List[Gift]:
        if not ids:
            return []
        raw_items = await self.store.mget([gift_key(gift_id) for gift_id in ids])
        return [Gift.model_validate_json(raw) for raw in raw_items if raw]

    async def list_by_status(
        self, status: GiftStatus, skip: int = 0, limit: int = 100
    ) -> List[Gift]:
        ids = await self.store.zrevrange(status_key(status.value), skip, skip + limit - 1)
        return await self._load_many(ids)

    async def list_all(self, skip: int = 0, limit: int = 100) -> List[Gift]:
        ids = await self.store.zrevrange(ALL_GIFTS_KEY, skip, skip + limit - 1)
        return await self._load_many(ids)

    async def count_by_status(self) -> dict[GiftStatus, int]:
        counts: dict[GiftStatus, int] = {}
        for status in GiftStatus:
            counts[status] = await self.store.zcard(status_key(status.value))
        return counts
