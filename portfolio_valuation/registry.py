"""Token registry — static allow-list merged with discovered tokens."""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from .abi import ERC20_DECIMALS, ERC20_NAME, ERC20_SYMBOL, normalize_address
from .chains.evm.reader import Call
from .config import AppConfig, TokenConfig
from .interfaces.chain import BatchReader
from .models import NATIVE_ADDRESS, DiscoveredToken, TokenDescriptor

logger = logging.getLogger(__name__)

DEFAULT_DECIMALS = 18
UNKNOWN_SYMBOL = "UNKNOWN"


@dataclass(frozen=True)
class OnChainMetadata:
    """What a token contract reports about itself. Fields are None when unreadable."""

    symbol: str | None = None
    name: str | None = None
    decimals: int | None = None


def descriptor_from_config(token: TokenConfig) -> TokenDescriptor:
    return TokenDescriptor(
        address=normalize_address(token.address),
        symbol=token.symbol,
        decimals=token.decimals,
        display_name=token.name or token.symbol,
        logo_uri=token.logo_uri,
    )


def merge(
    static_allow_list: Iterable[TokenDescriptor],
    discovered: Iterable[DiscoveredToken],
    introspected: Mapping[str, OnChainMetadata] | None = None,
) -> dict[str, TokenDescriptor]:
    """Build the address → descriptor map.

    Static entries keep their display name and logo. Decimals come from the
    freshest source: discovery, then on-chain introspection, then the static
    list. Unknown decimals default to 18.
    """
    introspected = introspected or {}
    merged: dict[str, TokenDescriptor] = {}

    for token in static_allow_list:
        merged[normalize_address(token.address)] = token

    for found in discovered:
        address = normalize_address(found.address)
        static = merged.get(address)
        onchain = introspected.get(address, OnChainMetadata())

        symbol = found.symbol or onchain.symbol
        if static is not None:
            symbol = symbol or static.symbol
        symbol = symbol or UNKNOWN_SYMBOL

        decimals = found.decimals
        if decimals is None:
            decimals = onchain.decimals
        if decimals is None and static is not None:
            decimals = static.decimals
        if decimals is None:
            decimals = DEFAULT_DECIMALS

        if static is not None:
            display_name = static.display_name
            logo_uri = static.logo_uri or found.logo_uri
        else:
            display_name = found.name or onchain.name or symbol
            logo_uri = found.logo_uri

        merged[address] = TokenDescriptor(
            address=address,
            symbol=symbol,
            decimals=int(decimals),
            display_name=display_name,
            logo_uri=logo_uri,
        )

    return merged


class TokenRegistry:
    """Holds the merged token map; rebuilt wholesale, never patched in place."""

    def __init__(self, reader: BatchReader, config: AppConfig) -> None:
        self._reader = reader
        pricing = config.pricing
        self.native = TokenDescriptor(
            address=NATIVE_ADDRESS,
            symbol=pricing.native.symbol,
            decimals=pricing.native.decimals,
            display_name=pricing.native.name or pricing.native.symbol,
            logo_uri=pricing.native.logo_uri,
        )
        self.base_asset = descriptor_from_config(pricing.base_asset)
        self.reference_stablecoin = descriptor_from_config(pricing.reference_stablecoin)

        static = [self.native, self.base_asset, self.reference_stablecoin]
        static.extend(descriptor_from_config(t) for t in config.tokens)
        self._static: tuple[TokenDescriptor, ...] = tuple(static)

        self._discovered: tuple[DiscoveredToken, ...] = ()
        self._introspected: dict[str, OnChainMetadata] = {}
        self._tokens: dict[str, TokenDescriptor] = merge(self._static, ())

    @property
    def tokens(self) -> Mapping[str, TokenDescriptor]:
        return self._tokens

    @property
    def discovered(self) -> tuple[DiscoveredToken, ...]:
        return self._discovered

    def get(self, address: str) -> TokenDescriptor | None:
        return self._tokens.get(normalize_address(address))

    def __contains__(self, address: object) -> bool:
        return isinstance(address, str) and normalize_address(address) in self._tokens

    def __len__(self) -> int:
        return len(self._tokens)

    async def refresh(self, discovered: Iterable[DiscoveredToken]) -> dict[str, TokenDescriptor]:
        """Rebuild the map from a fresh discovery result."""
        discovered = tuple(discovered)
        missing = [
            d.address
            for d in discovered
            if d.symbol is None or d.decimals is None or d.name is None
        ]
        fresh = await self.introspect(missing)

        # resolve() may have introspected other tokens during the await.
        self._discovered = discovered
        self._introspected = {**self._introspected, **fresh}
        self._rebuild()
        logger.info("Token registry rebuilt with %d tokens", len(self._tokens))
        return self._tokens

    def reset(self) -> None:
        """Forget every wallet-scoped token, leaving only the static list."""
        self._discovered = ()
        self._introspected = {}
        self._rebuild()

    async def resolve(self, addresses: Iterable[str]) -> dict[str, TokenDescriptor]:
        """Descriptors for ``addresses``, introspecting any the registry has not seen."""
        wanted = {normalize_address(a) for a in addresses}
        unknown = sorted(a for a in wanted if a not in self._tokens)
        if unknown:
            fresh = await self.introspect(unknown)
            self._introspected = {**self._introspected, **fresh}
            self._rebuild()
        return {a: self._tokens[a] for a in wanted if a in self._tokens}

    async def introspect(self, addresses: Iterable[str]) -> dict[str, OnChainMetadata]:
        """Read symbol, name and decimals straight from the token contracts."""
        targets = sorted({normalize_address(a) for a in addresses if a != NATIVE_ADDRESS})
        if not targets:
            return {}

        calls: list[Call] = []
        for address in targets:
            calls.append(Call(address, ERC20_SYMBOL))
            calls.append(Call(address, ERC20_NAME))
            calls.append(Call(address, ERC20_DECIMALS))
        results = await self._reader.batch(calls)

        metadata: dict[str, OnChainMetadata] = {}
        for i, address in enumerate(targets):
            symbol, name, decimals = results[3 * i : 3 * i + 3]
            if not decimals.ok:
                logger.debug("decimals() unreadable for %s, defaulting to 18", address)
            metadata[address] = OnChainMetadata(
                symbol=symbol.value if symbol.ok and symbol.value else None,
                name=name.value if name.ok and name.value else None,
                decimals=int(decimals.value) if decimals.ok else None,
            )
        return metadata

    def _rebuild(self) -> None:
        # Addresses only ever introspected (referenced by pools or pairs) join as
        # discovery records without metadata or balance.
        discovered_addresses = {normalize_address(d.address) for d in self._discovered}
        extras = tuple(
            DiscoveredToken(address=a)
            for a in sorted(self._introspected)
            if a not in discovered_addresses
        )
        self._tokens = merge(self._static, extras + self._discovered, self._introspected)
