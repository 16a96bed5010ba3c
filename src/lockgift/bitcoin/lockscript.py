"""CLTV redeem script construction and spend-condition evaluation.

The locked output pays to the P2WSH commitment of

    <unlock_time> OP_CHECKLOCKTIMEVERIFY OP_DROP
    OP_DUP OP_HASH160 <beneficiary_pubkey_hash> OP_EQUALVERIFY OP_CHECKSIG

The unlock time is pushed as a minimally encoded script number. Timestamps
from 2038 onwards need five bytes; a fixed four-byte little-endian push would
be read back as a negative number and make the output unspendable.
"""

from __future__ import annotations

import hashlib
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import coincurve
from bitcoin.core.script import (
    CScript,
    CScriptInvalidError,
    OP_1,
    OP_16,
    OP_1NEGATE,
    OP_CHECKSIG,
    OP_DROP,
    OP_DUP,
    OP_EQUAL,
    OP_EQUALVERIFY,
    OP_HASH160,
    OP_NOP2,
    OP_VERIFY,
)

from ..domain.errors import InvalidBeneficiary, UnlockTimeOutOfRange
from .addresses import (
    P2WPKH_PROGRAM_SIZE,
    decode_segwit_address,
    hash160,
    p2wsh_address,
    p2wsh_script_pubkey,
)
from .network import BitcoinNetwork

# BIP65 redefines OP_NOP2
OP_CHECKLOCKTIMEVERIFY = OP_NOP2

LOCKTIME_THRESHOLD = 500_000_000
MAX_LOCKTIME = 0xFFFFFFFF
SEQUENCE_FINAL = 0xFFFFFFFF
SECONDS_PER_YEAR = 365 * 24 * 60 * 60
DEFAULT_MAX_HORIZON_SECONDS = 50 * SECONDS_PER_YEAR

SignatureChecker = Callable[[bytes, bytes], bool]


def encode_script_number(value: int) -> bytes:
    """Encode ``value`` as a minimal little-endian sign-magnitude script number."""
    if value == 0:
        return b""
    negative = value < 0
    magnitude = abs(value)
    out = bytearray()
    while magnitude:
        out.append(magnitude & 0xFF)
        magnitude >>= 8
    if out[-1] & 0x80:
        out.append(0x80 if negative else 0x00)
    elif negative:
        out[-1] |= 0x80
    return bytes(out)


def decode_script_number(
    data: bytes, max_size: int = 4, require_minimal: bool = True
) -> int:
    """Decode a script number, enforcing size and minimal-encoding rules."""
    if len(data) > max_size:
        raise ValueError(f"Script number overflow: {len(data)} > {max_size} bytes")
    if not data:
        return 0
    if require_minimal and (data[-1] & 0x7F) == 0:
        if len(data) == 1 or not data[-2] & 0x80:
            raise ValueError("Non-minimally encoded script number")
    result = int.from_bytes(data, "little")
    if data[-1] & 0x80:
        return -(result & ~(0x80 << (8 * (len(data) - 1))))
    return result


def _cast_to_bool(data: bytes) -> bool:
    for i, byte in enumerate(data):
        if byte != 0:
            # Negative zero is false
            return not (i == len(data) - 1 and byte == 0x80)
    return False


@dataclass(frozen=True)
class LockScript:
    """Redeem script and the P2WSH output that commits to it."""

    redeem_script: bytes
    script_pubkey: bytes
    address: str
    unlock_timestamp: int
    beneficiary_pubkey_hash: bytes


def beneficiary_pubkey_hash(beneficiary: str, network: BitcoinNetwork) -> bytes:
    """Return the HASH160 the locked output pays to.

    Accepts a P2WPKH address of ``network`` or a compressed public key in hex.
    """
    if not isinstance(beneficiary, str) or not beneficiary.strip():
        raise InvalidBeneficiary("Beneficiary is required")
    candidate = beneficiary.strip()

    if len(candidate) == 66 and candidate[:2] in ("02", "03"):
        try:
            public_key = bytes.fromhex(candidate)
            coincurve.PublicKey(public_key)
        except ValueError as e:
            raise InvalidBeneficiary(f"Invalid beneficiary public key: {e}") from e
        return hash160(public_key)

    try:
        _, program = decode_segwit_address(candidate, network)
    except ValueError as e:
        raise InvalidBeneficiary(str(e)) from e
    if len(program) != P2WPKH_PROGRAM_SIZE:
        raise InvalidBeneficiary(
            "Beneficiary address must be a single-key (P2WPKH) address"
        )
    return program


def validate_unlock_timestamp(
    unlock_timestamp: int,
    *,
    now: Optional[int] = None,
    max_horizon_seconds: int = DEFAULT_MAX_HORIZON_SECONDS,
) -> int:
    if isinstance(unlock_timestamp, bool) or not isinstance(unlock_timestamp, int):
        raise UnlockTimeOutOfRange("Unlock timestamp must be an integer")
    if unlock_timestamp < LOCKTIME_THRESHOLD:
        raise UnlockTimeOutOfRange(
            f"Unlock value {unlock_timestamp} is below {LOCKTIME_THRESHOLD} and "
            "would be interpreted as a block height, not a time"
        )
    if unlock_timestamp > MAX_LOCKTIME:
        raise UnlockTimeOutOfRange("Unlock timestamp does not fit in nLockTime")
    current = int(time.time()) if now is None else now
    if unlock_timestamp <= current:
        raise UnlockTimeOutOfRange("Unlock time must be in the future")
    if unlock_timestamp > current + max_horizon_seconds:
        raise UnlockTimeOutOfRange(
            "Unlock time exceeds the maximum lock horizon "
            f"of {max_horizon_seconds // SECONDS_PER_YEAR} years"
        )
    return unlock_timestamp


def build_redeem_script(pubkey_hash: bytes, unlock_timestamp: int) -> CScript:
    # CScript pushes ints as minimal script numbers
    return CScript(
        [
            unlock_timestamp,
            OP_CHECKLOCKTIMEVERIFY,
            OP_DROP,
            OP_DUP,
            OP_HASH160,
            pubkey_hash,
            OP_EQUALVERIFY,
            OP_CHECKSIG,
        ]
    )


class LockScriptBuilder:
    """Builds the CLTV redeem script and its witness-script-hash output."""

    def __init__(
        self,
        network: BitcoinNetwork,
        max_horizon_seconds: int = DEFAULT_MAX_HORIZON_SECONDS,
    ):
        self.network = network
        self.max_horizon_seconds = max_horizon_seconds

    def build(
        self, beneficiary: str, unlock_timestamp: int, *, now: Optional[int] = None
    ) -> LockScript:
        validate_unlock_timestamp(
            unlock_timestamp, now=now, max_horizon_seconds=self.max_horizon_seconds
        )
        pubkey_hash = beneficiary_pubkey_hash(beneficiary, self.network)
        redeem_script = build_redeem_script(pubkey_hash, unlock_timestamp)
        return LockScript(
            redeem_script=bytes(redeem_script),
            script_pubkey=bytes(p2wsh_script_pubkey(redeem_script)),
            address=p2wsh_address(redeem_script, self.network),
            unlock_timestamp=unlock_timestamp,
            beneficiary_pubkey_hash=pubkey_hash,
        )


def _check_lock_time(
    stack: list[bytes], tx_lock_time: int, input_sequence: int
) -> bool:
    if not stack:
        return False
    try:
        required = decode_script_number(stack[-1], max_size=5)
    except ValueError:
        return False
    if required < 0:
        return False
    if (tx_lock_time < LOCKTIME_THRESHOLD) != (required < LOCKTIME_THRESHOLD):
        return False
    if required > tx_lock_time:
        return False
    return input_sequence != SEQUENCE_FINAL


def evaluate_lock_spend(
    lock: LockScript,
    witness: Sequence[bytes],
    *,
    tx_lock_time: int,
    input_sequence: int,
    signature_checker: SignatureChecker,
) -> bool:
    """Evaluate a P2WSH witness against ``lock`` the way a validating node would.

    Only the opcodes the lock script uses are supported; any other opcode makes
    the spend fail. ``signature_checker(signature, public_key)`` verifies a
    signature (with its sighash byte) against the spending transaction.
    """
    if len(witness) < 1:
        return False
    witness_script = bytes(witness[-1])
    if hashlib.sha256(witness_script).digest() != lock.script_pubkey[2:]:
        return False

    stack: list[bytes] = [bytes(item) for item in witness[:-1]]
    try:
        for opcode, data, _ in CScript(witness_script).raw_iter():
            if data is not None:
                stack.append(bytes(data))
            elif opcode == OP_1NEGATE:
                stack.append(encode_script_number(-1))
            elif OP_1 <= opcode <= OP_16:
                stack.append(encode_script_number(opcode - OP_1 + 1))
            elif opcode == OP_CHECKLOCKTIMEVERIFY:
                if not _check_lock_time(stack, tx_lock_time, input_sequence):
                    return False
            elif opcode == OP_DROP:
                if not stack:
                    return False
                stack.pop()
            elif opcode == OP_DUP:
                if not stack:
                    return False
                stack.append(stack[-1])
            elif opcode == OP_HASH160:
                if not stack:
                    return False
                stack.append(hash160(stack.pop()))
            elif opcode in (OP_EQUAL, OP_EQUALVERIFY):
                if len(stack) < 2:
                    return False
                equal = stack.pop() == stack.pop()
                if opcode == OP_EQUALVERIFY:
                    if not equal:
                        return False
                else:
                    stack.append(b"\x01" if equal else b"")
            elif opcode == OP_VERIFY:
                if not stack or not _cast_to_bool(stack.pop()):
                    return False
            elif opcode == OP_CHECKSIG:
                if len(stack) < 2:
                    return False
                public_key = stack.pop()
                signature = stack.pop()
                valid = bool(signature) and signature_checker(signature, public_key)
                stack.append(b"\x01" if valid else b"")
            else:
                return False
    except CScriptInvalidError:
        return False

    # Witness scripts must leave exactly one true element (clean stack)
    return len(stack) == 1 and _cast_to_bool(stack[0])
