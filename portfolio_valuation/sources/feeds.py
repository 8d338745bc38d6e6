"""HTTP JSON feed for externally indexed positions (lending, collections)."""
import logging
import ssl
from typing import Any

import aiohttp
import certifi

logger = logging.getLogger(__name__)


class JsonPositionFeed:
    """GET ``{base_url}/{wallet}`` and return the JSON list it serves."""

    def __init__(self, base_url: str, timeout: int = 15, name: str = "feed") -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.name = name

    async def fetch(self, wallet_address: str) -> list[dict[str, Any]]:
        url = f"{self.base_url}/{wallet_address}"

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(
                    url, timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as response:
                    if response.status != 200:
                        logger.error(
                            "Error fetching %s: HTTP %s", self.name, response.status
                        )
                        return []
                    data = await response.json()
        except Exception as e:
            logger.error("Error fetching %s: %s", self.name, e)
            return []

        if isinstance(data, dict):
            data = data.get("positions", data.get("items", []))
        if not isinstance(data, list):
            logger.error("Unexpected %s payload: %s", self.name, type(data).__name__)
            return []
        return [entry for entry in data if isinstance(entry, dict)]
