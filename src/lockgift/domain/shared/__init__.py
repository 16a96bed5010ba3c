"""Shared domain utilities.

This package is domain-accessible and should not depend on application code.
"""

from .chain_provider_protocol import ChainProviderProtocol, TxStatus, Utxo

__all__ = ["ChainProviderProtocol", "TxStatus", "Utxo"]
