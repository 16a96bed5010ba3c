"""Gift ledger repository interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, List, Optional
from uuid import UUID

from .entities import Gift, GiftStatus


class GiftRepository(ABC):
    """Persisted store of gift records.

    The ledger owns every gift. Callers read snapshots and mutate state only
    through ``transition``, which is an atomic compare-and-set.
    """

    @abstractmethod
    async def allocate_next_index(self) -> int:
        """Atomically allocate a never-before-returned deposit index."""
        pass

    @abstractmethod
    async def create(self, gift: Gift) -> Gift:
        """Store a new gift. Fails if its id or deposit index is already used."""
        pass

    @abstractmethod
    async def get_by_id(self, gift_id: UUID) -> Optional[Gift]:
        pass

    @abstractmethod
    async def get_by_deposit_address(self, address: str) -> Optional[Gift]:
        pass

    @abstractmethod
    async def transition(
        self,
        gift_id: UUID,
        expected_status: GiftStatus,
        new_status: GiftStatus,
        **fields: Any,
    ) -> Optional[Gift]:
        """
        Atomically move a gift from ``expected_status`` to ``new_status`` and
        apply ``fields``.

        Returns:
          the updated gift -> this caller won the transition
          None             -> the gift was not in ``expected_status``
        """
        pass

    @abstractmethod
    async def list_by_status(
        self, status: GiftStatus, skip: int = 0, limit: int = 100
    ) -> List[Gift]:
        pass

    @abstractmethod
    async def list_all(self, skip: int = 0, limit: int = 100) -> List[Gift]:
        pass

    @abstractmethod
    async def count_by_status(self) -> dict[GiftStatus, int]:
        pass
