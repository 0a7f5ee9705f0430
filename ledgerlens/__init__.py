"""LedgerLens: normalization of explorer API ledger records.

Turns raw transaction and UTXO records from a multi-chain indexing API into
canonical, exactly-denominated transaction models.
"""
