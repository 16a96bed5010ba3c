"""Chain provider backed by the mempool.space (esplora-compatible) REST API."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ...domain.errors import BroadcastRejected, ProviderUnavailable
from ...domain.shared.chain_provider_protocol import TxStatus, Utxo
from ..http.http_client import AsyncHttpClient

logger = logging.getLogger(__name__)

# Preferred keys of /v1/fees/recommended, most to least urgent
_FEE_KEYS = ("halfHourFee", "hourFee", "fastestFee", "economyFee", "minimumFee")


class MempoolChainProvider:
    """Implements ``ChainProviderProtocol`` over HTTP.

    Transport errors, timeouts and 5xx responses surface as
    ``ProviderUnavailable``. A 4xx answer to a broadcast surfaces as
    ``BroadcastRejected`` carrying the node's reject reason.
    """

    def __init__(self, http: AsyncHttpClient):
        self._http = http

    @classmethod
    def from_url(
        cls,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "MempoolChainProvider":
        return cls(AsyncHttpClient(base_url, timeout=timeout, transport=transport))

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _get(self, path: str) -> httpx.Response:
        try:
            return await self._http.get(path)
        except httpx.HTTPStatusError as e:
            raise ProviderUnavailable(
                f"GET {path} failed with status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise ProviderUnavailable(f"GET {path} failed: {e}") from e

    async def _get_json(self, path: str) -> Any:
        resp = await self._get(path)
        try:
            return resp.json()
        except ValueError as e:
            raise ProviderUnavailable(f"GET {path} returned invalid JSON") from e

    async def get_tip_height(self) -> int:
        resp = await self._get("/blocks/tip/height")
        try:
            return int(resp.text.strip())
        except ValueError as e:
            raise ProviderUnavailable("Tip height response is not an integer") from e

    async def get_utxos(self, address: str) -> list[Utxo]:
        items = await self._get_json(f"/address/{address}/utxo")
        if not isinstance(items, list):
            raise ProviderUnavailable("Unexpected UTXO response shape")

        tip_height: Optional[int] = None
        if any((item.get("status") or {}).get("confirmed") for item in items):
            tip_height = await self.get_tip_height()

        utxos: list[Utxo] = []
        for item in items:
            status = item.get("status") or {}
            confirmations = 0
            block_height = status.get("block_height")
            if status.get("confirmed") and tip_height is not None and block_height:
                confirmations = max(tip_height - int(block_height) + 1, 1)
            utxos.append(
                Utxo(
                    txid=item["txid"],
                    vout=int(item["vout"]),
                    amount_sats=int(item["value"]),
                    confirmations=confirmations,
                )
            )
        return utxos

    async def get_recommended_fee_rate(self) -> float:
        fees = await self._get_json("/v1/fees/recommended")
        if isinstance(fees, dict):
            for key in _FEE_KEYS:
                value = fees.get(key)
                if isinstance(value, (int, float)) and value > 0:
                    return float(value)
        raise ProviderUnavailable("Fee recommendation response has no usable rate")

    async def get_tx_status(self, txid: str) -> TxStatus:
        try:
            resp = await self._http.get(f"/tx/{txid}/status")
        except httpx.HTTPStatusError as e:
            if e.response.status_code in (400, 404):
                return TxStatus(txid=txid.lower(), found=False)
            raise ProviderUnavailable(
                f"Transaction status lookup failed with status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise ProviderUnavailable(f"Transaction status lookup failed: {e}") from e

        data = resp.json()
        return TxStatus(
            txid=txid.lower(),
            found=True,
            confirmed=bool(data.get("confirmed")),
            block_height=data.get("block_height"),
        )

    async def is_output_spent(self, txid: str, vout: int) -> bool:
        data = await self._get_json(f"/tx/{txid}/outspend/{vout}")
        return bool(data.get("spent"))

    async def broadcast(self, raw_tx_hex: str) -> str:
        try:
            resp = await self._http.post(
                "/tx",
                content=raw_tx_hex,
                headers={"Content-Type": "text/plain"},
            )
        except httpx.HTTPStatusError as e:
            if 400 <= e.response.status_code < 500:
                reason = e.response.text.strip() or f"HTTP {e.response.status_code}"
                raise BroadcastRejected(reason) from e
            raise ProviderUnavailable(
                f"Broadcast failed with status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise ProviderUnavailable(f"Broadcast failed: {e}") from e
        return resp.text.strip().lower()
