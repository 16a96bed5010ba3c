"""Construction of the deposit-splitting transaction.

One P2WPKH deposit input is spent into an operator fee output (omitted when
the fee is zero or below dust) and the time-locked P2WSH output. Amount rules:

- ``fee_sats = floor(funding * fee_percent / 100)`` on the full deposit
- the network relay fee is charged to the locked output, never the fee output
- ``fee_sats + locked_sats + network_fee_sats == funding``
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_CEILING, ROUND_FLOOR, Decimal, InvalidOperation
from typing import Optional, Union

import coincurve
from bitcoin.core import (
    CMutableTransaction,
    CMutableTxIn,
    CMutableTxOut,
    COutPoint,
    CTransaction,
    CTxInWitness,
    CTxWitness,
    b2lx,
    lx,
)
from bitcoin.core.script import (
    CScript,
    CScriptWitness,
    OP_CHECKSIG,
    OP_DUP,
    OP_EQUALVERIFY,
    OP_HASH160,
    SIGHASH_ALL,
    SIGVERSION_WITNESS_V0,
    SignatureHash,
)

from ..domain.errors import AmountTooSmall, InvalidFeePercent, SigningError
from ..domain.shared.chain_provider_protocol import Utxo
from .addresses import dust_threshold, hash160
from .keys import DerivedKey
from .lockscript import SignatureChecker
from .network import BitcoinNetwork

TX_VERSION = 2
# Opts in to replace-by-fee and keeps nLockTime enforceable
INPUT_SEQUENCE = 0xFFFFFFFD

# Serialized sizes used for the virtual size estimate
_TX_OVERHEAD_BYTES = 4 + 1 + 1 + 4  # version, vin count, vout count, locktime
_P2WPKH_INPUT_BYTES = 32 + 4 + 1 + 4  # outpoint, empty scriptSig, sequence
# marker + flag, item count, <len sig+hashtype>, <len pubkey>
_P2WPKH_WITNESS_BYTES = 2 + 1 + (1 + 72) + (1 + 33)

FeeRate = Union[int, float, Decimal]


@dataclass(frozen=True)
class SplitTransaction:
    """A fully signed, finalized splitting transaction."""

    raw_tx: bytes
    txid: str
    fee_sats: int
    locked_sats: int
    network_fee_sats: int
    vsize: int
    lock_vout: int
    fee_vout: Optional[int]

    @property
    def raw_hex(self) -> str:
        return self.raw_tx.hex()


def _to_decimal_percent(fee_percent: Union[Decimal, int, str]) -> Decimal:
    try:
        percent = Decimal(str(fee_percent))
    except (InvalidOperation, ValueError) as e:
        raise InvalidFeePercent(f"Invalid fee percent: {fee_percent!r}") from e
    if not percent.is_finite() or percent < 0 or percent >= 100:
        raise InvalidFeePercent(f"Fee percent must be in [0, 100), got {percent}")
    return percent


def split_amounts(
    funding_sats: int, fee_percent: Union[Decimal, int, str]
) -> tuple[int, int]:
    """Split a deposit into ``(fee_sats, locked_sats)`` with no satoshi lost."""
    if funding_sats <= 0:
        raise AmountTooSmall(f"Funding amount must be positive, got {funding_sats}")
    percent = _to_decimal_percent(fee_percent)
    fee_sats = int(
        (Decimal(funding_sats) * percent / Decimal(100)).to_integral_value(
            rounding=ROUND_FLOOR
        )
    )
    locked_sats = funding_sats - fee_sats
    return fee_sats, locked_sats


def _varint_size(n: int) -> int:
    if n < 0xFD:
        return 1
    if n <= 0xFFFF:
        return 3
    if n <= 0xFFFFFFFF:
        return 5
    return 9


def estimate_vsize(output_scripts: list[bytes]) -> int:
    """Virtual size of a one-input P2WPKH transaction with the given outputs."""
    base = _TX_OVERHEAD_BYTES + _P2WPKH_INPUT_BYTES
    for script in output_scripts:
        base += 8 + _varint_size(len(script)) + len(script)
    weight = base * 4 + _P2WPKH_WITNESS_BYTES
    return math.ceil(weight / 4)


def relay_fee(vsize: int, fee_rate: FeeRate, network: BitcoinNetwork) -> int:
    rate = max(Decimal(str(fee_rate)), Decimal(network.min_relay_fee_rate))
    return int((Decimal(vsize) * rate).to_integral_value(rounding=ROUND_CEILING))


def p2wpkh_script_code(public_key: bytes) -> CScript:
    """BIP143 scriptCode for spending a P2WPKH output."""
    return CScript([OP_DUP, OP_HASH160, hash160(public_key), OP_EQUALVERIFY, OP_CHECKSIG])


def make_signature_checker(
    tx: CTransaction, input_index: int, script_code: bytes, amount: int
) -> SignatureChecker:
    """Build a BIP143 signature checker for one input of ``tx``."""

    def check(signature: bytes, public_key: bytes) -> bool:
        if len(signature) < 2:
            return False
        hash_type = signature[-1]
        sighash = SignatureHash(
            CScript(script_code),
            tx,
            input_index,
            hash_type,
            amount=amount,
            sigversion=SIGVERSION_WITNESS_V0,
        )
        try:
            return coincurve.PublicKey(public_key).verify(
                signature[:-1], sighash, hasher=None
            )
        except ValueError:
            return False

    return check


def sign_witness_v0(
    tx: CTransaction,
    input_index: int,
    script_code: bytes,
    amount: int,
    private_key: bytes,
) -> bytes:
    """Produce a DER signature with a ``SIGHASH_ALL`` byte for a segwit input."""
    sighash = SignatureHash(
        CScript(script_code),
        tx,
        input_index,
        SIGHASH_ALL,
        amount=amount,
        sigversion=SIGVERSION_WITNESS_V0,
    )
    der = coincurve.PrivateKey(private_key).sign(sighash, hasher=None)
    return der + bytes([SIGHASH_ALL])


def parse_transaction(raw_tx: bytes) -> CTransaction:
    return CTransaction.deserialize(raw_tx)


class SplitTransactionAssembler:
    """Builds, signs and finalizes the fee + time-lock splitting transaction."""

    def __init__(self, network: BitcoinNetwork):
        self.network = network

    def assemble(
        self,
        funding_utxo: Utxo,
        signing_key: DerivedKey,
        fee_output_script: bytes,
        lock_script_pubkey: bytes,
        fee_percent: Union[Decimal, int, str],
        fee_rate: FeeRate,
    ) -> SplitTransaction:
        funding_sats = funding_utxo.amount_sats
        fee_sats, locked_sats = split_amounts(funding_sats, fee_percent)

        # A fee output below dust could never be relayed; the fee is waived
        # into the locked output instead.
        if 0 < fee_sats < dust_threshold(fee_output_script, self.network):
            locked_sats += fee_sats
            fee_sats = 0

        output_scripts: list[bytes] = []
        if fee_sats > 0:
            output_scripts.append(bytes(fee_output_script))
        output_scripts.append(bytes(lock_script_pubkey))

        vsize = estimate_vsize(output_scripts)
        network_fee_sats = relay_fee(vsize, fee_rate, self.network)
        lock_value = locked_sats - network_fee_sats
        lock_dust = dust_threshold(lock_script_pubkey, self.network)
        if lock_value <= 0 or lock_value < lock_dust:
            raise AmountTooSmall(
                f"Locked output of {lock_value} sats (after {network_fee_sats} sats "
                f"network fee) is below the dust threshold of {lock_dust} sats"
            )

        txin = CMutableTxIn(
            COutPoint(lx(funding_utxo.txid), funding_utxo.vout),
            nSequence=INPUT_SEQUENCE,
        )
        txouts = []
        fee_vout: Optional[int] = None
        if fee_sats > 0:
            fee_vout = len(txouts)
            txouts.append(CMutableTxOut(fee_sats, CScript(fee_output_script)))
        lock_vout = len(txouts)
        txouts.append(CMutableTxOut(lock_value, CScript(lock_script_pubkey)))

        tx = CMutableTransaction([txin], txouts, nLockTime=0, nVersion=TX_VERSION)

        script_code = p2wpkh_script_code(signing_key.public_key)
        signature = sign_witness_v0(
            tx, 0, script_code, funding_sats, signing_key.private_key
        )
        checker = make_signature_checker(tx, 0, script_code, funding_sats)
        if not checker(signature, signing_key.public_key):
            raise SigningError("Produced signature does not verify")

        tx.wit = CTxWitness(
            [CTxInWitness(CScriptWitness([signature, signing_key.public_key]))]
        )

        return SplitTransaction(
            raw_tx=tx.serialize(),
            txid=b2lx(tx.GetTxid()),
            fee_sats=fee_sats,
            locked_sats=lock_value,
            network_fee_sats=network_fee_sats,
            vsize=vsize,
            lock_vout=lock_vout,
            fee_vout=fee_vout,
        )
