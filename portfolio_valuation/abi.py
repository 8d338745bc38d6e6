"""Well-known contract functions read by the engine.

Every on-chain read is expressed as a ``Function`` from this table plus its
arguments; the chain reader takes care of encoding and decoding.
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from typing import Any

from eth_abi import decode, encode
from eth_utils import keccak


@dataclass(frozen=True)
class Function:
    name: str
    inputs: tuple[str, ...] = ()
    outputs: tuple[str, ...] = ()

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @cached_property
    def selector(self) -> bytes:
        return keccak(text=self.signature)[:4]

    def encode_call(self, args: tuple[Any, ...] = ()) -> bytes:
        return self.selector + encode(list(self.inputs), list(args))

    def decode_output(self, data: bytes) -> Any:
        """Decode return data; single-value outputs are unwrapped."""
        values = decode(list(self.outputs), data)
        if len(values) == 1:
            return values[0]
        return tuple(values)


# ERC-20
ERC20_SYMBOL = Function("symbol", (), ("string",))
ERC20_NAME = Function("name", (), ("string",))
ERC20_DECIMALS = Function("decimals", (), ("uint8",))
ERC20_BALANCE_OF = Function("balanceOf", ("address",), ("uint256",))
ERC20_TOTAL_SUPPLY = Function("totalSupply", (), ("uint256",))

# Multicall3
MULTICALL_TRY_AGGREGATE = Function(
    "tryAggregate",
    ("bool", "(address,bytes)[]"),
    ("(bool,bytes)[]",),
)
MULTICALL_GET_ETH_BALANCE = Function("getEthBalance", ("address",), ("uint256",))

# Concentrated-liquidity quoter (QuoterV2 layout)
QUOTER_QUOTE_EXACT_INPUT_SINGLE = Function(
    "quoteExactInputSingle",
    ("(address,address,uint256,uint24,uint160)",),
    ("uint256", "uint160", "uint32", "uint256"),
)

# Constant-product factory and pair
FACTORY_GET_PAIR = Function("getPair", ("address", "address"), ("address",))
FACTORY_ALL_PAIRS_LENGTH = Function("allPairsLength", (), ("uint256",))
FACTORY_ALL_PAIRS = Function("allPairs", ("uint256",), ("address",))
PAIR_TOKEN0 = Function("token0", (), ("address",))
PAIR_TOKEN1 = Function("token1", (), ("address",))
PAIR_GET_RESERVES = Function("getReserves", (), ("uint112", "uint112", "uint32"))

# Staking pools
STAKING_POOL_LENGTH = Function("poolLength", (), ("uint256",))
STAKING_POOL_INFO = Function(
    "poolInfo",
    ("uint256",),
    ("address", "address", "uint256", "uint256", "uint256"),
)
STAKING_USER_STAKED = Function("userStaked", ("uint256", "address"), ("uint256",))
STAKING_PENDING_REWARDS = Function(
    "pendingRewards", ("uint256", "address"), ("uint256",)
)

ZERO_ADDRESS = "0x" + "0" * 40


def normalize_address(address: str) -> str:
    return address.lower()
