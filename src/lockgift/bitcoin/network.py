"""Bitcoin network parameters.

A single ``BitcoinNetwork`` value is built from settings at startup and passed
to every component that needs chain-specific constants.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from ..domain.errors import UnsupportedNetwork


class BitcoinNetwork(BaseModel):
    """Chain parameters used for derivation, addresses and dust policy."""

    model_config = ConfigDict(frozen=True)

    name: str
    bech32_hrp: str
    bip44_coin_type: int
    default_mempool_url: str
    p2wpkh_dust_sats: int = 294
    p2wsh_dust_sats: int = 330
    min_relay_fee_rate: int = 1

    @property
    def is_mainnet(self) -> bool:
        return self.name == "mainnet"


MAINNET = BitcoinNetwork(
    name="mainnet",
    bech32_hrp="bc",
    bip44_coin_type=0,
    default_mempool_url="https://mempool.space/api",
)

TESTNET = BitcoinNetwork(
    name="testnet",
    bech32_hrp="tb",
    bip44_coin_type=1,
    default_mempool_url="https://mempool.space/testnet/api",
)

SIGNET = BitcoinNetwork(
    name="signet",
    bech32_hrp="tb",
    bip44_coin_type=1,
    default_mempool_url="https://mempool.space/signet/api",
)

REGTEST = BitcoinNetwork(
    name="regtest",
    bech32_hrp="bcrt",
    bip44_coin_type=1,
    default_mempool_url="http://localhost:3002/api",
)

NETWORKS: dict[str, BitcoinNetwork] = {
    n.name: n for n in (MAINNET, TESTNET, SIGNET, REGTEST)
}


def get_network(name: str) -> BitcoinNetwork:
    """Resolve a network by name, raising ``UnsupportedNetwork`` otherwise."""
    try:
        return NETWORKS[name.strip().lower()]
    except (KeyError, AttributeError):
        raise UnsupportedNetwork(f"Unsupported network: {name!r}") from None
