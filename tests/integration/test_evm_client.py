"""Integration tests for the EVM client — RPC fallback and error handling."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from portfolio_valuation.chains.evm.client import EvmRpcClient
from portfolio_valuation.config import NetworkConfig


@pytest.fixture()
def client() -> EvmRpcClient:
    return EvmRpcClient(
        NetworkConfig(
            rpc_endpoints=(
                "https://rpc1.example.com",
                "https://rpc2.example.com",
                "https://rpc3.example.com",
            ),
            rpc_timeout=5,
        )
    )


def _mock_session(response_data: dict | None = None, error: Exception | None = None):
    """Create a mock aiohttp session that returns given data or raises error."""
    mock_response = AsyncMock()
    if error:
        mock_response.json = AsyncMock(side_effect=error)
    else:
        mock_response.json = AsyncMock(return_value=response_data or {})
    mock_response.__aenter__ = AsyncMock(return_value=mock_response)
    mock_response.__aexit__ = AsyncMock(return_value=None)

    mock_session = AsyncMock()
    if error:
        mock_session.post = MagicMock(side_effect=error)
    else:
        mock_session.post = MagicMock(return_value=mock_response)
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)

    return mock_session


class TestRpcCall:
    @pytest.mark.asyncio
    async def test_successful_call(self, client: EvmRpcClient) -> None:
        mock_session = _mock_session({"jsonrpc": "2.0", "result": "0x10"})

        with patch("portfolio_valuation.chains.evm.client.aiohttp.ClientSession", return_value=mock_session):
            with patch("portfolio_valuation.chains.evm.client.aiohttp.TCPConnector"):
                result = await client.rpc_call("eth_blockNumber", [])

        assert result == "0x10"

    @pytest.mark.asyncio
    async def test_rpc_error_raises(self, client: EvmRpcClient) -> None:
        mock_session = _mock_session(
            {"jsonrpc": "2.0", "error": {"code": -32000, "message": "bad"}}
        )

        with patch("portfolio_valuation.chains.evm.client.aiohttp.ClientSession", return_value=mock_session):
            with patch("portfolio_valuation.chains.evm.client.aiohttp.TCPConnector"):
                with pytest.raises(RuntimeError, match="All RPC endpoints failed"):
                    await client.rpc_call("eth_call", [])

    @pytest.mark.asyncio
    async def test_fallback_on_connection_error(self, client: EvmRpcClient) -> None:
        """When first endpoint fails, should try the next one."""
        call_count = 0

        success_response = AsyncMock()
        success_response.json = AsyncMock(return_value={"jsonrpc": "2.0", "result": "0x1"})
        success_response.__aenter__ = AsyncMock(return_value=success_response)
        success_response.__aexit__ = AsyncMock(return_value=None)

        def side_effect(*args, **kwargs):
            nonlocal call_count
            call_count += 1
            if call_count == 1:
                raise ConnectionError("first endpoint down")
            return success_response

        mock_session = AsyncMock()
        mock_session.post = MagicMock(side_effect=side_effect)
        mock_session.__aenter__ = AsyncMock(return_value=mock_session)
        mock_session.__aexit__ = AsyncMock(return_value=None)

        with patch("portfolio_valuation.chains.evm.client.aiohttp.ClientSession", return_value=mock_session):
            with patch("portfolio_valuation.chains.evm.client.aiohttp.TCPConnector"):
                result = await client.rpc_call("eth_blockNumber", [])

        assert result == "0x1"
        assert client.current_rpc_index == 1

    @pytest.mark.asyncio
    async def test_all_endpoints_fail(self, client: EvmRpcClient) -> None:
        mock_session = _mock_session(error=ConnectionError("down"))

        with patch("portfolio_valuation.chains.evm.client.aiohttp.ClientSession", return_value=mock_session):
            with patch("portfolio_valuation.chains.evm.client.aiohttp.TCPConnector"):
                with pytest.raises(RuntimeError, match="All RPC endpoints failed"):
                    await client.rpc_call("eth_blockNumber", [])


class TestTypedCalls:
    @pytest.mark.asyncio
    async def test_eth_call_hex_roundtrip(self, client: EvmRpcClient) -> None:
        client.rpc_call = AsyncMock(return_value="0xdeadbeef")

        data = await client.eth_call("0x" + "11" * 20, b"\x01\x02")

        assert data == bytes.fromhex("deadbeef")
        params = client.rpc_call.call_args[0][1]
        assert params[0] == {"to": "0x" + "11" * 20, "data": "0x0102"}
        assert params[1] == "latest"

    @pytest.mark.asyncio
    async def test_eth_call_empty_result(self, client: EvmRpcClient) -> None:
        client.rpc_call = AsyncMock(return_value=None)
        assert await client.eth_call("0x" + "11" * 20, b"") == b""

    @pytest.mark.asyncio
    async def test_block_number_and_gas_price(self, client: EvmRpcClient) -> None:
        client.rpc_call = AsyncMock(side_effect=["0x12a05f200", "0x3b9aca00"])
        assert await client.block_number() == 5_000_000_000
        assert await client.gas_price() == 1_000_000_000

    @pytest.mark.asyncio
    async def test_get_block_hex_tag(self, client: EvmRpcClient) -> None:
        client.rpc_call = AsyncMock(return_value={"timestamp": "0x10"})
        block = await client.get_block(255)
        assert block == {"timestamp": "0x10"}
        client.rpc_call.assert_called_once_with("eth_getBlockByNumber", ["0xff", False])
