"""Batched read-only contract calls through Multicall3.

``ChainReader.batch`` is the single primitive every reader and price tier is
built on. Each call comes back as a tagged ``CallResult`` so a failed read can
never be mistaken for a zero value.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from ...abi import MULTICALL_GET_ETH_BALANCE, MULTICALL_TRY_AGGREGATE, Function
from ...config import ContractsConfig, NetworkConfig
from ...errors import ReadFailure
from ...interfaces.chain import RpcTransport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Call:
    target: str
    function: Function
    args: tuple[Any, ...] = ()

    def encode(self) -> bytes:
        return self.function.encode_call(self.args)


@dataclass(frozen=True)
class CallResult:
    """Outcome of one call: ``ok`` with a decoded ``value`` or a ``reason``."""

    ok: bool
    value: Any = None
    reason: ReadFailure | None = None

    @classmethod
    def success(cls, value: Any) -> CallResult:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, kind: str, detail: str = "") -> CallResult:
        return cls(ok=False, reason=ReadFailure(kind, detail))

    def unwrap_or(self, default: Any) -> Any:
        return self.value if self.ok else default


class ChainReader:
    """Executes groups of read-only calls against a single EVM network."""

    def __init__(
        self,
        transport: RpcTransport,
        network: NetworkConfig,
        contracts: ContractsConfig,
    ) -> None:
        self._transport = transport
        self._multicall = contracts.multicall
        self._timeout = network.call_timeout
        self._chunk_size = max(1, network.max_batch_size)

    @property
    def multicall_address(self) -> str:
        return self._multicall

    def eth_balance_call(self, wallet: str) -> Call:
        """Native balance read expressed as a multicall-compatible call."""
        return Call(self._multicall, MULTICALL_GET_ETH_BALANCE, (wallet,))

    async def call(self, call: Call) -> CallResult:
        return (await self.batch([call]))[0]

    async def batch(self, calls: Sequence[Call]) -> list[CallResult]:
        """Run ``calls`` and return one result per call, in order. Never raises."""
        calls = list(calls)
        if not calls:
            return []

        chunks = [
            calls[i : i + self._chunk_size]
            for i in range(0, len(calls), self._chunk_size)
        ]
        chunk_results = await asyncio.gather(*(self._run_chunk(c) for c in chunks))

        results: list[CallResult] = []
        for chunk in chunk_results:
            results.extend(chunk)
        return results

    async def _run_chunk(self, calls: list[Call]) -> list[CallResult]:
        encoded: list[tuple[str, bytes]] = []
        for call in calls:
            try:
                encoded.append((call.target, call.encode()))
            except Exception as e:
                logger.debug("Cannot encode %s: %s", call.function.signature, e)
                # Keep positions aligned; an empty target call is reported as failed below.
                encoded.append((call.target, b""))

        payload = MULTICALL_TRY_AGGREGATE.encode_call((False, encoded))
        try:
            raw = await asyncio.wait_for(
                self._transport.eth_call(self._multicall, payload),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Batch of %d calls timed out", len(calls))
            return [CallResult.failure(ReadFailure.TIMEOUT) for _ in calls]
        except Exception as e:
            logger.warning("Batch of %d calls failed: %s", len(calls), e)
            return [CallResult.failure(ReadFailure.TRANSPORT, str(e)) for _ in calls]

        try:
            returned = MULTICALL_TRY_AGGREGATE.decode_output(raw)
        except Exception as e:
            logger.warning("Cannot decode multicall response: %s", e)
            return [CallResult.failure(ReadFailure.DECODE, str(e)) for _ in calls]

        if len(returned) != len(calls):
            detail = f"expected {len(calls)} results, got {len(returned)}"
            return [CallResult.failure(ReadFailure.DECODE, detail) for _ in calls]

        return [
            self._decode_one(call, data, success, bool(call_data))
            for call, (success, data), (_, call_data) in zip(calls, returned, encoded)
        ]

    @staticmethod
    def _decode_one(call: Call, data: bytes, success: bool, encoded: bool) -> CallResult:
        if not encoded:
            return CallResult.failure(ReadFailure.DECODE, "arguments could not be encoded")
        if not success:
            return CallResult.failure(ReadFailure.REVERTED, call.function.signature)
        if not data:
            # Calls to addresses without code succeed with empty return data
            return CallResult.failure(ReadFailure.DECODE, f"{call.function.signature}: empty")
        try:
            return CallResult.success(call.function.decode_output(data))
        except Exception as e:
            return CallResult.failure(ReadFailure.DECODE, f"{call.function.signature}: {e}")
