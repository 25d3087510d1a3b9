"""Chain client protocol, the external chain interface."""
from collections.abc import Sequence
from typing import Any, Protocol

from ..models import Coin, TxResult


class ChainClient(Protocol):
    """Signs and submits execute calls and runs read-only smart queries."""

    async def execute(
        self,
        sender: str,
        contract: str,
        msg: dict[str, Any],
        fee: str = "auto",
        memo: str = "",
        funds: Sequence[Coin] = (),
    ) -> TxResult: ...

    async def query(self, contract: str, msg: dict[str, Any]) -> dict[str, Any]: ...
