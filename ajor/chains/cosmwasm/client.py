"""CosmWasm chain client with LCD endpoint fallback."""
import asyncio
import base64
import json
import logging
import ssl
from collections.abc import Sequence
from typing import Any
from urllib.parse import quote

import aiohttp
import certifi

from ...config import ChainConfig
from ...errors import MalformedMessageError, NotConnectedError, RemoteRejectionError, TransportError
from ...interfaces.signer import TxSigner
from ...models import Coin, TxResult

logger = logging.getLogger(__name__)

MSG_EXECUTE_CONTRACT = "/cosmwasm.wasm.v1.MsgExecuteContract"

_TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError)


def encode_query(msg: dict[str, Any]) -> str:
    """Base64 of the compact JSON query, escaped for use as a path segment."""
    raw = json.dumps(msg, separators=(",", ":")).encode()
    return quote(base64.b64encode(raw).decode(), safe="")


def parse_tx_response(tx: dict[str, Any]) -> TxResult:
    """Turn a ``tx_response`` into a TxResult, raising on a non-zero code."""
    if not isinstance(tx, dict) or "txhash" not in tx:
        raise MalformedMessageError("tx response is missing 'txhash'")

    code = int(tx.get("code", 0) or 0)
    if code != 0:
        raise RemoteRejectionError(tx.get("raw_log") or f"transaction failed with code {code}", code=code)

    events = list(tx.get("events") or [])
    if not events:
        for log in tx.get("logs") or []:
            events.extend(log.get("events", []))

    return TxResult(
        transaction_hash=tx["txhash"],
        events=tuple(events),
        height=int(tx.get("height", 0) or 0),
        gas_used=int(tx.get("gas_used", 0) or 0),
    )


class CosmWasmClient:
    """Smart queries over LCD REST; execute calls go through a TxSigner."""

    def __init__(self, config: ChainConfig, signer: TxSigner | None = None) -> None:
        self.endpoints = list(config.lcd_endpoints)
        self.timeout = config.rpc_timeout
        self.current_endpoint_index = 0
        self._signer = signer

    async def rest_get(self, path: str) -> dict[str, Any]:
        """GET *path* with fallback to alternative endpoints.

        A contract error body (``code`` + ``message``) is a rejection and is
        raised at once; only transport failures move on to the next endpoint.
        """
        ssl_context = ssl.create_default_context(cafile=certifi.where())

        last_error: Exception | None = None
        for attempt in range(len(self.endpoints)):
            index = (self.current_endpoint_index + attempt) % len(self.endpoints)
            url = self.endpoints[index].rstrip("/") + path

            try:
                connector = aiohttp.TCPConnector(ssl=ssl_context)
                async with aiohttp.ClientSession(connector=connector) as session:
                    async with session.get(
                        url,
                        timeout=aiohttp.ClientTimeout(total=self.timeout),
                    ) as response:
                        body = await response.json(content_type=None)
                        if response.status != 200:
                            if isinstance(body, dict) and "message" in body:
                                raise RemoteRejectionError(
                                    body["message"], code=body.get("code")
                                )
                            raise aiohttp.ClientError(f"HTTP {response.status}")

                        if index != self.current_endpoint_index:
                            logger.info("Switched to LCD endpoint: %s", self.endpoints[index])
                            self.current_endpoint_index = index

                        return body
            except RemoteRejectionError:
                raise
            except (*_TRANSPORT_ERRORS, ValueError) as e:
                last_error = e
                logger.warning("LCD endpoint %s failed: %s", url, e)
                if attempt < len(self.endpoints) - 1:
                    logger.info("Trying next endpoint...")
                continue

        raise TransportError(f"All LCD endpoints failed. Last error: {last_error}")

    async def query(self, contract: str, msg: dict[str, Any]) -> dict[str, Any]:
        """Run a smart query and return its ``data`` payload."""
        body = await self.rest_get(
            f"/cosmwasm/wasm/v1/contract/{contract}/smart/{encode_query(msg)}"
        )
        if "data" not in body:
            raise MalformedMessageError("smart query response is missing 'data'")
        return body["data"]

    async def execute(
        self,
        sender: str,
        contract: str,
        msg: dict[str, Any],
        fee: str = "auto",
        memo: str = "",
        funds: Sequence[Coin] = (),
    ) -> TxResult:
        """Sign and broadcast one MsgExecuteContract. Never retried here."""
        if self._signer is None:
            raise NotConnectedError()

        message = {
            "@type": MSG_EXECUTE_CONTRACT,
            "sender": sender,
            "contract": contract,
            "msg": msg,
            "funds": [coin.to_wire() for coin in funds],
        }

        try:
            tx = await self._signer.sign_and_broadcast(sender, [message], fee=fee, memo=memo)
        except _TRANSPORT_ERRORS as e:
            raise TransportError(f"Broadcast failed: {e}") from e

        return parse_tx_response(tx)
