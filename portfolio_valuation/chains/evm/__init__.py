"""EVM chain access: JSON-RPC transport and batched reads."""
from .client import EvmRpcClient
from .reader import Call, CallResult, ChainReader

__all__ = ["Call", "CallResult", "ChainReader", "EvmRpcClient"]
