"""
Network backends for the deposit pipeline.

Available backends:
- EsploraBackend: Blockstream / mempool.space REST API
"""

from viadeposit.backends.base import DepositBackend
from viadeposit.backends.esplora import EsploraBackend

__all__ = [
    "DepositBackend",
    "EsploraBackend",
]
