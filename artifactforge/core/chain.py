"""Read-only JSON-RPC client for the generator and token contracts.

Calls are ABI-encoded with eth-abi and carried over a shared httpx
AsyncClient. The client holds no per-call state, so one instance serves
every concurrent job.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Sequence
from typing import Any

import httpx
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import decode_hex, encode_hex, function_signature_to_4byte_selector

from artifactforge.core.errors import AssemblyError, TransientFetchError

logger = logging.getLogger(__name__)

# JSON-RPC error code for a reverted eth_call (EIP-1474 / geth convention)
_REVERT_CODES = {3}


def _argument_types(signature: str) -> list[str]:
    """Split ``name(t1,t2)`` into ``["t1", "t2"]`` (flat types only)."""
    inner = signature[signature.index("(") + 1 : signature.rindex(")")]
    return [part.strip() for part in inner.split(",") if part.strip()]


class ChainClient:
    """Minimal ``eth_call`` / ``eth_getCode`` client.

    Parameters
    ----------
    rpc_url:
        HTTP JSON-RPC endpoint.
    timeout:
        Per-request timeout in seconds.
    client:
        Optional pre-built ``httpx.AsyncClient`` (tests pass one with a
        ``MockTransport``). When omitted the chain client owns its own.
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._rpc_url = rpc_url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _rpc(self, method: str, params: list[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        try:
            response = await self._client.post(self._rpc_url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as exc:
            raise TransientFetchError(f"RPC {method} failed: {exc}") from exc
        except ValueError as exc:
            raise TransientFetchError(f"RPC {method} returned invalid JSON") from exc

        error = body.get("error")
        if error:
            message = error.get("message", "unknown error")
            if error.get("code") in _REVERT_CODES or "revert" in message.lower():
                raise AssemblyError(f"RPC {method} reverted: {message}")
            raise TransientFetchError(f"RPC {method} error {error.get('code')}: {message}")
        if "result" not in body:
            raise TransientFetchError(f"RPC {method} response has no result")
        return body["result"]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_code(self, address: str) -> bytes:
        """Return the deployed bytecode at ``address``."""
        result = await self._rpc("eth_getCode", [address, "latest"])
        return decode_hex(result)

    async def call(
        self,
        to: str,
        signature: str,
        args: Sequence[Any] = (),
        output_types: Sequence[str] = (),
    ) -> tuple[Any, ...]:
        """ABI-encode a view call, execute it, and decode the return data.

        Parameters
        ----------
        to:
            Contract address.
        signature:
            Canonical function signature, e.g. ``"getTokenData(uint256)"``.
        args:
            Positional arguments matching the signature's types.
        output_types:
            ABI types of the return values.
        """
        selector = function_signature_to_4byte_selector(signature)
        data = selector + encode(_argument_types(signature), list(args))
        logger.debug("eth_call %s on %s", signature, to)
        result = await self._rpc("eth_call", [{"to": to, "data": encode_hex(data)}, "latest"])
        try:
            return decode(list(output_types), decode_hex(result))
        except (DecodingError, ValueError) as exc:
            raise AssemblyError(f"Cannot decode {signature} result: {exc}") from exc
