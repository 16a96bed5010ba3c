"""Protocol interface for chain data provider implementations.

The reconciler only needs address lookups, fee estimation, transaction status
and broadcast. Any implementation satisfying this protocol (the mempool.space
REST client, a test double) can be injected.
"""

from __future__ import annotations

from typing import Optional, Protocol

from pydantic import BaseModel, Field, field_validator


class Utxo(BaseModel):
    """An unspent output reported at a deposit address."""

    txid: str
    vout: int = Field(ge=0)
    amount_sats: int = Field(ge=0)
    confirmations: int = 0

    @field_validator("txid")
    @classmethod
    def normalize_txid(cls, v: str) -> str:
        v = v.strip().lower()
        if len(v) != 64:
            raise ValueError("txid must be 32 bytes of hex")
        bytes.fromhex(v)
        return v


class TxStatus(BaseModel):
    """Whether a transaction is known to the network and how deep it is."""

    txid: str
    found: bool
    confirmed: bool = False
    block_height: Optional[int] = None


class ChainProviderProtocol(Protocol):
    """Contract consumed from the chain data provider."""

    async def get_utxos(self, address: str) -> list[Utxo]:
        """Return unspent outputs currently paying to ``address``.

        Raises:
            ProviderUnavailable: the provider could not be reached.
        """
        ...

    async def get_recommended_fee_rate(self) -> float:
        """Return the recommended fee rate in sat/vB.

        Raises:
            ProviderUnavailable: the provider could not be reached.
        """
        ...

    async def get_tx_status(self, txid: str) -> TxStatus:
        ...

    async def is_output_spent(self, txid: str, vout: int) -> bool:
        ...

    async def broadcast(self, raw_tx_hex: str) -> str:
        """Submit a raw transaction and return its txid.

        Raises:
            BroadcastRejected: the network refused the transaction.
            ProviderUnavailable: the provider could not be reached.
        """
        ...
