"""Service modules"""
from .monitor import PortfolioMonitor
from .report import build_network_report, build_quote_report, build_snapshot_report
from .visibility import VisibilityFilter

__all__ = [
    "PortfolioMonitor",
    "VisibilityFilter",
    "build_network_report",
    "build_quote_report",
    "build_snapshot_report",
]
