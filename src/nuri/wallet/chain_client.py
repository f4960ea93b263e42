"""
Public chain data provider client (mempool.space / Esplora REST API).

Endpoints used:
    GET  /address/{address}/utxo
    GET  /tx/{txid}
    GET  /v1/fees/recommended
    POST /tx                       (raw hex body, returns txid text)

Every call is a single attempt; failures surface immediately.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
from dataclasses import dataclass
from typing import Any, List, Optional

import aiohttp

from nuri.core import config
from nuri.core.codec import hex_to_bytes
from nuri.core.config import FeePriority
from nuri.core.exceptions import BroadcastError, MalformedProviderResponseError, NetworkError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Utxo:
    txid: str
    vout: int
    value: int
    confirmed: bool = True


@dataclass(frozen=True)
class TxOut:
    value: int
    script_pubkey: bytes


class MempoolClient:
    """
    Async client for address UTXOs, parent transactions, fee rates and
    broadcast.

    Usage:
        client = MempoolClient()
        utxos = await client.get_utxos("bc1p...")
        rate = await client.get_recommended_fee_rate()
    """

    def __init__(
        self,
        base_url: str = config.MEMPOOL_API_BASE,
        timeout: float = config.HTTP_TIMEOUT_SECONDS,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def _request(self, method: str, path: str, data: Optional[str] = None) -> tuple[int, str]:
        url = f"{self.base_url}{path}"
        headers = {"Content-Type": "text/plain"} if data is not None else None
        try:
            async with aiohttp.ClientSession() as session:
                async with session.request(
                    method,
                    url,
                    data=data,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    return response.status, await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise NetworkError(f"Chain API request failed: {exc}", details={"path": path}) from exc

    async def _get_json(self, path: str) -> Any:
        status, text = await self._request("GET", path)
        if not 200 <= status < 300:
            raise NetworkError(
                f"Chain API request failed: {status} {text}",
                status=status,
                details={"path": path, "body": text},
            )
        try:
            return json.loads(text)
        except ValueError as exc:
            raise MalformedProviderResponseError(
                "Chain API returned a non-JSON response",
                details={"path": path},
            ) from exc

    async def get_utxos(self, address: str) -> List[Utxo]:
        """Unspent outputs currently paying ``address``."""
        data = await self._get_json(f"/address/{address}/utxo")
        if not isinstance(data, list):
            raise MalformedProviderResponseError("UTXO listing is not a list", details={"address": address})
        try:
            utxos = [
                Utxo(
                    txid=str(entry["txid"]),
                    vout=int(entry["vout"]),
                    value=int(entry["value"]),
                    confirmed=bool((entry.get("status") or {}).get("confirmed", True)),
                )
                for entry in data
            ]
        except (KeyError, TypeError, ValueError) as exc:
            raise MalformedProviderResponseError(
                f"UTXO entry missing fields: {exc}",
                details={"address": address},
            ) from exc
        logger.debug(
            "Fetched UTXOs",
            extra={"event": "chain.utxos", "address": address, "count": len(utxos)},
        )
        return utxos

    async def get_prevout(self, txid: str, vout: int) -> TxOut:
        """Output ``vout`` of parent transaction ``txid`` (exact script and value)."""
        data = await self._get_json(f"/tx/{txid}")
        outputs = data.get("vout") if isinstance(data, dict) else None
        if not isinstance(outputs, list) or not 0 <= vout < len(outputs):
            raise MalformedProviderResponseError(
                "Parent transaction has no such output",
                details={"txid": txid, "vout": vout},
            )
        output = outputs[vout]
        try:
            return TxOut(value=int(output["value"]), script_pubkey=hex_to_bytes(output["scriptpubkey"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise MalformedProviderResponseError(
                f"Parent output malformed: {exc}",
                details={"txid": txid, "vout": vout},
            ) from exc

    async def get_recommended_fee_rate(self, priority: FeePriority = config.FEE_PRIORITY) -> float:
        """Recommended fee rate in sat/vByte for ``priority``, fractional rates kept as-is."""
        data = await self._get_json("/v1/fees/recommended")
        rate = data.get(priority.value) if isinstance(data, dict) else None
        if isinstance(rate, bool) or not isinstance(rate, (int, float)) or not math.isfinite(rate) or rate <= 0:
            raise MalformedProviderResponseError(
                "Fee recommendation missing or invalid",
                details={"priority": priority.value},
            )
        return rate

    async def broadcast(self, tx_hex: str) -> str:
        """
        Submit a signed raw transaction and return its txid.

        Raises:
            BroadcastError: The endpoint rejected the transaction; the message
                is the provider's text verbatim.
        """
        status, text = await self._request("POST", "/tx", data=tx_hex)
        if not 200 <= status < 300:
            raise BroadcastError(text, status=status, details={"body": text})
        txid = text.strip()
        if not txid:
            raise MalformedProviderResponseError("Broadcast returned an empty txid")
        logger.info("Transaction broadcast", extra={"event": "chain.broadcast", "txid": txid})
        return txid
