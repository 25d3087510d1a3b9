"""Protocol interfaces for the cooperative client."""
from .chain import ChainClient
from .signer import TxSigner

__all__ = ["ChainClient", "TxSigner"]
