"""Network status probe — informational only, never feeds valuation."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timezone

from ..config import NetworkConfig
from ..interfaces.chain import RpcTransport
from ..models import NetworkStatus

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NetworkStatusProbe:
    def __init__(
        self,
        transport: RpcTransport,
        config: NetworkConfig,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._transport = transport
        self._network = config.name
        self._max_age = config.max_block_age_seconds
        self._clock = clock

    async def check(self) -> NetworkStatus:
        """Latest block, gas price and freshness. Degrades instead of raising."""
        try:
            block_number, gas_price_wei = await asyncio.gather(
                self._transport.block_number(), self._transport.gas_price()
            )
            block = await self._transport.get_block(block_number)
            timestamp = datetime.fromtimestamp(int(block["timestamp"], 16), tz=timezone.utc)
        except Exception as e:
            logger.error("Error fetching network status: %s", e)
            return NetworkStatus(
                block_number=0,
                gas_price_gwei=0.0,
                is_healthy=False,
                last_block_timestamp=self._clock(),
                network=self._network,
                error=str(e) or type(e).__name__,
            )

        age_seconds = (self._clock() - timestamp).total_seconds()
        return NetworkStatus(
            block_number=block_number,
            gas_price_gwei=round(gas_price_wei / 1e9, 2),
            is_healthy=age_seconds < self._max_age,
            last_block_timestamp=timestamp,
            network=self._network,
        )
