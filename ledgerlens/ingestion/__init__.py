"""Ingestion modules for LedgerLens.

Provides fetching of raw explorer API records and their normalization into
the canonical transaction model.
"""
from ledgerlens.ingestion.client import ExplorerClient
from ledgerlens.ingestion.config import ExplorerConfig, load_config
from ledgerlens.ingestion.normalizer import normalize_transaction
from ledgerlens.ingestion.query import assemble_page
from ledgerlens.ingestion.service import TransactionService

__all__ = [
    "ExplorerClient",
    "ExplorerConfig",
    "TransactionService",
    "assemble_page",
    "load_config",
    "normalize_transaction",
]
