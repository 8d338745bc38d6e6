"""Plain-text rendering of snapshots and network status."""
from __future__ import annotations

from datetime import datetime

from eth_utils import is_address, to_checksum_address

from ..models import NetworkStatus, PortfolioSnapshot, Position, PriceQuote, Venue

_VENUE_TITLES = {
    Venue.STAKING: "Staking",
    Venue.LIQUIDITY: "Liquidity",
    Venue.LENDING: "Lending",
    Venue.COLLECTION: "Collections",
}


def format_wallet(address: str) -> str:
    if is_address(address):
        address = to_checksum_address(address)
    if len(address) > 16:
        return f"{address[:10]}...{address[-6:]}"
    return address


def _time_str(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%d %H:%M:%S")


def _position_line(position: Position) -> str:
    line = f"  {position.label}: ${position.net_usd_value:,.2f}"
    if position.ltv is not None and position.health_factor is not None:
        line += f" · LTV: {position.ltv:.2f}% · HF: {position.health_factor:.2f}"
    if position.unpriced:
        line += " (unpriced)"
    return line


def build_snapshot_report(snapshot: PortfolioSnapshot, holdings_display_usd=None) -> str:
    """Multi-line summary: totals by venue, then each position grouped by venue."""
    holdings_usd = snapshot.holdings_usd if holdings_display_usd is None else holdings_display_usd
    lines = [
        f"📋 Portfolio · {format_wallet(snapshot.wallet_address)}",
        "",
        f"Total: ${snapshot.total_usd:,.2f}",
        f"Holdings: ${holdings_usd:,.2f} ({snapshot.asset_count} assets)",
        f"Staking: ${snapshot.staking_usd:,.2f}",
        f"Liquidity: ${snapshot.liquidity_usd:,.2f}",
        f"Lending (net): ${snapshot.lending_net_usd:,.2f}",
        f"Collections: ${snapshot.collections_usd:,.2f}",
    ]

    for venue, title in _VENUE_TITLES.items():
        positions = [p for p in snapshot.positions if p.venue is venue]
        if positions:
            lines.append("")
            lines.append(f"━━ {title} ━━")
            lines.extend(_position_line(p) for p in positions)

    if snapshot.unpriced_count:
        lines.append("")
        lines.append(
            f"⚠️ {snapshot.unpriced_count} item(s) without a price: "
            + ", ".join(format_wallet(t) for t in snapshot.unpriced_tokens)
        )

    lines.append("")
    lines.append(f"{_time_str(snapshot.computed_at)} UTC")
    return "\n".join(lines)


def build_network_report(status: NetworkStatus) -> str:
    state = "✅ Healthy" if status.is_healthy else "⚠️ Degraded"
    lines = [
        f"🌐 {status.network or 'network'} · {state}",
        f"Block: {status.block_number}",
        f"Gas: {status.gas_price_gwei:.2f} gwei",
        f"Last block: {_time_str(status.last_block_timestamp)} UTC",
    ]
    if status.error:
        lines.append(f"Error: {status.error}")
    return "\n".join(lines)


def build_quote_report(symbol: str, quote: PriceQuote | None) -> str:
    if quote is None:
        return f"{symbol}: no price available"
    return (
        f"{symbol}: ${quote.usd_price_per_unit:,.6f} "
        f"(via {quote.source_tier.value}, {_time_str(quote.resolved_at)} UTC)"
    )
