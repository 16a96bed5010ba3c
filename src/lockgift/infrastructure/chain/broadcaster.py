"""Submission of finalized transactions to the network."""

from __future__ import annotations

import logging

from prometheus_client import Counter

from ...domain.errors import BroadcastRejected, ProviderUnavailable
from ...domain.shared.chain_provider_protocol import ChainProviderProtocol

logger = logging.getLogger(__name__)

broadcast_total = Counter(
    "lockgift_broadcast_total",
    "Transactions submitted to the chain provider",
    ["result"],
)


class Broadcaster:
    """Submits a raw transaction exactly once. Never retries."""

    def __init__(self, provider: ChainProviderProtocol):
        self._provider = provider

    async def submit(self, raw_tx: bytes) -> str:
        """Broadcast ``raw_tx`` and return the txid the network reports.

        Raises:
            BroadcastRejected: the network refused the transaction.
            ProviderUnavailable: the provider could not be reached.
        """
        try:
            txid = await self._provider.broadcast(raw_tx.hex())
        except BroadcastRejected as e:
            broadcast_total.labels(result="rejected").inc()
            logger.warning("Broadcast rejected: %s", e.reason)
            raise
        except ProviderUnavailable:
            broadcast_total.labels(result="unavailable").inc()
            logger.warning("Chain provider unavailable during broadcast")
            raise
        broadcast_total.labels(result="accepted").inc()
        return txid.lower()
