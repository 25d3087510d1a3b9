"""Signer protocol: signs and broadcasts transactions for a bound account."""
from typing import Any, Protocol


class TxSigner(Protocol):
    """Key management lives behind this interface."""

    async def sign_and_broadcast(
        self,
        sender: str,
        messages: list[dict[str, Any]],
        fee: str = "auto",
        memo: str = "",
    ) -> dict[str, Any]:
        """Return the chain's ``tx_response`` (txhash, code, raw_log, events...)."""
        ...
