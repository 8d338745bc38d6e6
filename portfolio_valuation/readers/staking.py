"""Staking pool reader."""
from __future__ import annotations

import logging

from ..abi import (
    STAKING_PENDING_REWARDS,
    STAKING_POOL_INFO,
    STAKING_POOL_LENGTH,
    STAKING_USER_STAKED,
    normalize_address,
)
from ..chains.evm.reader import Call
from ..interfaces.chain import BatchReader
from ..models import StakingPool
from ..registry import TokenRegistry

logger = logging.getLogger(__name__)


def active_pools(pools: list[StakingPool]) -> list[StakingPool]:
    return [p for p in pools if p.is_active]


class StakingReader:
    """Read every pool of a staking contract together with a wallet's stake."""

    def __init__(self, reader: BatchReader, registry: TokenRegistry, staking_address: str) -> None:
        self._reader = reader
        self._registry = registry
        self._staking = staking_address

    async def read_pools(self, wallet_address: str) -> list[StakingPool]:
        if not self._staking:
            return []

        count_result = await self._reader.call(Call(self._staking, STAKING_POOL_LENGTH))
        if not count_result.ok:
            logger.warning("poolLength() failed: %s", count_result.reason)
            return []
        pool_count = int(count_result.value)
        if pool_count == 0:
            return []

        calls: list[Call] = []
        for pool_id in range(pool_count):
            calls.append(Call(self._staking, STAKING_POOL_INFO, (pool_id,)))
            calls.append(Call(self._staking, STAKING_USER_STAKED, (pool_id, wallet_address)))
            calls.append(Call(self._staking, STAKING_PENDING_REWARDS, (pool_id, wallet_address)))
        results = await self._reader.batch(calls)

        raw_pools = []
        for pool_id in range(pool_count):
            info, staked, rewards = results[3 * pool_id : 3 * pool_id + 3]
            if not info.ok:
                logger.warning("Dropping pool %d: info read failed (%s)", pool_id, info.reason)
                continue
            if not staked.ok or not rewards.ok:
                logger.debug("Pool %d: user balance reads incomplete", pool_id)
            raw_pools.append((pool_id, info.value, staked.unwrap_or(0), rewards.unwrap_or(0)))

        addresses = set()
        for _, info, _, _ in raw_pools:
            addresses.add(normalize_address(info[0]))
            addresses.add(normalize_address(info[1]))
        tokens = await self._registry.resolve(addresses)

        pools: list[StakingPool] = []
        for pool_id, info, staked, rewards in raw_pools:
            staking_token, rewards_token, apr_bps, lock_period, total_staked = info
            staking_desc = tokens.get(normalize_address(staking_token))
            rewards_desc = tokens.get(normalize_address(rewards_token))
            if staking_desc is None or rewards_desc is None:
                logger.warning("Dropping pool %d: token metadata unavailable", pool_id)
                continue
            pools.append(
                StakingPool(
                    pool_id=pool_id,
                    staking_token=staking_desc,
                    rewards_token=rewards_desc,
                    apr_basis_points=int(apr_bps),
                    lock_period_seconds=int(lock_period),
                    total_staked=int(total_staked),
                    user_staked=int(staked),
                    user_pending_rewards=int(rewards),
                )
            )

        logger.info(
            "Read %d staking pools (%d active) for %s",
            len(pools), len(active_pools(pools)), wallet_address,
        )
        return pools
