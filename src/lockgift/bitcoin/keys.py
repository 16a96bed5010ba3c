"""Deterministic per-gift key derivation.

Every gift owns one BIP44 child of the operator seed:

    m/44'/<coin_type>'/0'/0/<deposit_index>

The child key is a pure function of ``(seed, network, index)``, so a gift's
signing key can always be re-derived from its stored ``deposit_index`` and no
per-gift secret is ever persisted.
"""

from __future__ import annotations

import binascii
from dataclasses import dataclass, field

from bip_utils import Bip44, Bip44Changes, Bip44Coins

from ..domain.errors import InvalidDerivationIndex, InvalidSeed
from .addresses import p2wpkh_address
from .network import BitcoinNetwork

MIN_SEED_BYTES = 16
MAX_SEED_BYTES = 64
MAX_NON_HARDENED_INDEX = 2**31 - 1


@dataclass(frozen=True)
class DerivedKey:
    """Child key material for one deposit index. Never persisted."""

    index: int
    path: str
    address: str
    public_key: bytes
    private_key: bytes = field(repr=False)


def parse_seed(seed_hex: str) -> bytes:
    """Decode and validate a hex-encoded BIP32 seed."""
    if not isinstance(seed_hex, str) or not seed_hex.strip():
        raise InvalidSeed("Seed must be a non-empty hex string")
    try:
        seed = binascii.unhexlify(seed_hex.strip())
    except (binascii.Error, ValueError) as e:
        raise InvalidSeed(f"Seed is not valid hex: {e}") from e
    if not MIN_SEED_BYTES <= len(seed) <= MAX_SEED_BYTES:
        raise InvalidSeed(
            f"Seed must be {MIN_SEED_BYTES}..{MAX_SEED_BYTES} bytes, got {len(seed)}"
        )
    return seed


def derivation_path(network: BitcoinNetwork, index: int) -> str:
    return f"m/44'/{network.bip44_coin_type}'/0'/0/{index}"


def _bip44_coin(network: BitcoinNetwork) -> Bip44Coins:
    if network.bip44_coin_type == 0:
        return Bip44Coins.BITCOIN
    return Bip44Coins.BITCOIN_TESTNET


def _check_index(index: int) -> None:
    if isinstance(index, bool) or not isinstance(index, int):
        raise InvalidDerivationIndex(f"Index must be an integer, got {index!r}")
    if not 0 <= index <= MAX_NON_HARDENED_INDEX:
        raise InvalidDerivationIndex(
            f"Index must be within 0..{MAX_NON_HARDENED_INDEX}, got {index}"
        )


def derive_key(seed_hex: str, network: BitcoinNetwork, index: int) -> DerivedKey:
    """Derive the deposit key and P2WPKH address for ``index``."""
    seed = parse_seed(seed_hex)
    _check_index(index)

    account = (
        Bip44.FromSeed(seed, _bip44_coin(network))
        .Purpose()
        .Coin()
        .Account(0)
        .Change(Bip44Changes.CHAIN_EXT)
    )
    child = account.AddressIndex(index)
    public_key = child.PublicKey().RawCompressed().ToBytes()

    return DerivedKey(
        index=index,
        path=derivation_path(network, index),
        address=p2wpkh_address(public_key, network),
        public_key=public_key,
        private_key=child.PrivateKey().Raw().ToBytes(),
    )


class KeyDeriver:
    """Binds the operator seed and network so callers only pass an index."""

    def __init__(self, seed_hex: str, network: BitcoinNetwork):
        # Fail fast on a malformed seed rather than at first derivation
        parse_seed(seed_hex)
        self._seed_hex = seed_hex
        self.network = network

    def derive(self, index: int) -> DerivedKey:
        return derive_key(self._seed_hex, self.network, index)

    def deposit_address(self, index: int) -> str:
        return self.derive(index).address
