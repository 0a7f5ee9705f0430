"""Feature modules for LedgerLens.

Tabular views over normalized transactions.
"""
from . import asset_flows

from .asset_flows import asset_flow_summary, conservation_report, transactions_to_frame

__all__ = [
    "asset_flows",
    "asset_flow_summary",
    "conservation_report",
    "transactions_to_frame",
]
