"""Native segwit (witness v0) address helpers bound to a ``BitcoinNetwork``."""

from __future__ import annotations

import hashlib

from bitcoin.core import Hash160
from bitcoin.core.script import CScript, OP_0
from bitcoin.segwit_addr import decode as bech32_decode_address
from bitcoin.segwit_addr import encode as bech32_encode_address

from .network import BitcoinNetwork

P2WPKH_PROGRAM_SIZE = 20
P2WSH_PROGRAM_SIZE = 32


def hash160(data: bytes) -> bytes:
    return bytes(Hash160(data))


def decode_segwit_address(address: str, network: BitcoinNetwork) -> tuple[int, bytes]:
    """Return ``(witness_version, program)`` for a v0 address of ``network``.

    Raises ``ValueError`` for anything else (wrong network, bad checksum,
    legacy base58 or taproot addresses).
    """
    if not isinstance(address, str) or not address:
        raise ValueError("Address must be a non-empty string")
    witver, program = bech32_decode_address(network.bech32_hrp, address.strip())
    if witver is None or program is None:
        raise ValueError(
            f"Not a native segwit address for {network.name}: {address!r}"
        )
    if witver != 0:
        raise ValueError(f"Unsupported witness version {witver}")
    return witver, bytes(program)


def encode_segwit_address(program: bytes, network: BitcoinNetwork) -> str:
    address = bech32_encode_address(network.bech32_hrp, 0, list(program))
    if address is None:
        raise ValueError("Witness program cannot be encoded as an address")
    return address


def p2wpkh_address(public_key: bytes, network: BitcoinNetwork) -> str:
    return encode_segwit_address(hash160(public_key), network)


def p2wpkh_script_pubkey(pubkey_hash: bytes) -> CScript:
    return CScript([OP_0, pubkey_hash])


def p2wsh_script_pubkey(witness_script: bytes) -> CScript:
    return CScript([OP_0, hashlib.sha256(witness_script).digest()])


def p2wsh_address(witness_script: bytes, network: BitcoinNetwork) -> str:
    return encode_segwit_address(hashlib.sha256(witness_script).digest(), network)


def address_to_script_pubkey(address: str, network: BitcoinNetwork) -> CScript:
    _, program = decode_segwit_address(address, network)
    return CScript([OP_0, program])


def dust_threshold(script_pubkey: bytes, network: BitcoinNetwork) -> int:
    """Minimum standard output value for a witness v0 output script."""
    if len(script_pubkey) == 2 + P2WPKH_PROGRAM_SIZE:
        return network.p2wpkh_dust_sats
    return network.p2wsh_dust_sats
