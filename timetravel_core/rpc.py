"""
JSON-RPC acquisition client.

Built on ``aiohttp``.  Talks JSON-RPC 2.0 over HTTP to a node (or a
state-export service in front of it) and returns decoded staking states.

Methods used
------------
system_chain                        chain name → runtime profile
chain_getBlockHash [number]         block hash (latest when omitted)
timetravel_exportStakingState [at]  staking state export at a block hash

``RpcClient.connect`` keeps retrying until the endpoint answers
``system_chain``; every other call fails fast with ``RpcError`` and
leaves retrying to the caller.

Usage:
    async with await RpcClient.connect("http://127.0.0.1:9933") as rpc:
        states = await fetch_states(rpc, ["0xaa..", "0xbb.."])
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, Optional, Sequence

import aiohttp

from timetravel_core.errors import RpcError
from timetravel_core.profile import profile_for_chain
from timetravel_core.state import StakingState

logger = logging.getLogger("timetravel.rpc")

DEFAULT_URI = "http://127.0.0.1:9933"
EXPORT_METHOD = "timetravel_exportStakingState"


class RpcClient:
    """Minimal JSON-RPC 2.0 client over an ``aiohttp.ClientSession``."""

    def __init__(
        self,
        uri: str = DEFAULT_URI,
        request_timeout: float = 600.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.uri = uri
        self._timeout = aiohttp.ClientTimeout(total=request_timeout)
        self._session = session
        self._owns_session = session is None
        self._ids = itertools.count(1)

    @classmethod
    async def connect(
        cls,
        uri: str = DEFAULT_URI,
        connection_timeout: float = 60.0,
        request_timeout: float = 600.0,
        retry_delay: float = 2.5,
        max_attempts: int = 0,
    ) -> "RpcClient":
        """Open a client, retrying every *retry_delay* s until ``system_chain`` answers.

        ``max_attempts`` of 0 retries forever.
        """
        attempt = 0
        while True:
            attempt += 1
            client = cls(uri, request_timeout=request_timeout)
            try:
                await asyncio.wait_for(client.system_chain(), timeout=connection_timeout)
                return client
            except (RpcError, aiohttp.ClientError, asyncio.TimeoutError) as exc:
                await client.close()
                if max_attempts and attempt >= max_attempts:
                    raise RpcError(f"could not connect to {uri}: {exc}") from exc
                logger.warning(
                    "failed to connect to client due to %r, retrying soon..", exc,
                )
                await asyncio.sleep(retry_delay)

    async def __aenter__(self) -> "RpcClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def request(self, method: str, params: Sequence[Any] = ()) -> Any:
        """Send one JSON-RPC request and return its ``result``."""
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": list(params),
        }
        session = self._get_session()
        try:
            async with session.post(self.uri, json=payload) as resp:
                if resp.status != 200:
                    raise RpcError(f"{method}: HTTP {resp.status}")
                body = await resp.json(content_type=None)
        except aiohttp.ClientError as exc:
            raise RpcError(f"{method}: {exc}") from exc

        if not isinstance(body, dict):
            raise RpcError(f"{method}: malformed response")
        if body.get("error") is not None:
            error = body["error"]
            raise RpcError(str(error.get("message", error)), code=error.get("code"))
        if "result" not in body:
            raise RpcError(f"{method}: response without result")
        return body["result"]

    # ── typed helpers ────────────────────────────────────────────

    async def system_chain(self) -> str:
        return str(await self.request("system_chain"))

    async def block_hash(self, number: Optional[int] = None) -> str:
        params = [] if number is None else [number]
        result = await self.request("chain_getBlockHash", params)
        if result is None:
            raise RpcError(f"no block hash for block {number}")
        return str(result)

    async def export_staking_state(self, at: str) -> StakingState:
        raw = await self.request(EXPORT_METHOD, [at])
        if not isinstance(raw, dict):
            raise RpcError(f"{EXPORT_METHOD}: expected an object for {at}")
        raw.setdefault("block_hash", at)
        try:
            return StakingState.from_dict(raw)
        except (KeyError, TypeError, ValueError) as exc:
            raise RpcError(f"{EXPORT_METHOD}: malformed state for {at}: {exc}") from exc


async def fetch_states(client: RpcClient, hashes: Sequence[str]) -> list[StakingState]:
    """Fetch the states at *hashes* concurrently; returns them in input order."""
    states = await asyncio.gather(*(client.export_staking_state(h) for h in hashes))
    return list(states)


async def chain_profile(client: RpcClient):
    """Runtime profile of the chain the client is connected to."""
    chain = await client.system_chain()
    logger.info("connected to chain %r", chain)
    return profile_for_chain(chain)
