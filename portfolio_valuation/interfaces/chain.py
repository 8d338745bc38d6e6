"""Chain protocols — JSON-RPC transport and batched reads."""
from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from ..chains.evm.reader import Call, CallResult


class RpcTransport(Protocol):
    """Raw JSON-RPC access to an EVM node."""

    async def eth_call(self, to: str, data: bytes, block: str = "latest") -> bytes: ...

    async def block_number(self) -> int: ...

    async def gas_price(self) -> int: ...

    async def get_block(self, number: int | str = "latest") -> dict[str, Any]: ...


class BatchReader(Protocol):
    """Batched read-only contract calls with per-call success or failure."""

    async def batch(self, calls: Sequence[Call]) -> list[CallResult]: ...

    async def call(self, call: Call) -> CallResult: ...
