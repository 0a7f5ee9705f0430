"""Flatten normalized transactions into per-asset flow tables for auditing.

Amounts stay ``Decimal`` objects (object dtype) so that sums remain exact;
they are never converted to floats here.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Iterable

import pandas as pd

from ledgerlens.schema import Transaction

FLOW_COLUMNS = ["transaction_id", "timestamp", "kind", "asset_id", "direction", "amount"]


def _exact_sum(values: pd.Series) -> Decimal:
    return sum(values, Decimal(0))


def transactions_to_frame(transactions: Iterable[Transaction]) -> pd.DataFrame:
    """One row per transaction, asset and direction (``in``, ``out`` or ``fee``).

    Examples:
        >>> frame = transactions_to_frame([])
        >>> list(frame.columns)
        ['transaction_id', 'timestamp', 'kind', 'asset_id', 'direction', 'amount']
    """
    rows = []
    for tx in transactions:
        for direction, totals in (("in", tx.input_totals), ("out", tx.output_totals)):
            for asset_id, amount in totals.items():
                rows.append((tx.id, tx.timestamp, tx.kind.value, asset_id, direction, amount))
        if tx.fee and tx.fee_asset_id:
            rows.append((tx.id, tx.timestamp, tx.kind.value, tx.fee_asset_id, "fee", tx.fee))
    frame = pd.DataFrame(rows, columns=FLOW_COLUMNS)
    frame["amount"] = frame["amount"].astype(object)
    return frame


def asset_flow_summary(frame: pd.DataFrame) -> pd.DataFrame:
    """Total in, out and fee amounts per asset, plus ``net = in - out - fee``.

    Args:
        frame: Output of ``transactions_to_frame``.

    Returns:
        DataFrame indexed by asset id with columns ``in``, ``out``, ``fee``
        and ``net``, all exact ``Decimal`` values.
    """
    missing = [col for col in ("asset_id", "direction", "amount") if col not in frame.columns]
    if missing:
        raise ValueError(f"DataFrame missing required columns: {', '.join(missing)}")

    summary = pd.DataFrame(
        index=pd.Index(sorted(frame["asset_id"].unique()), name="asset_id"),
        columns=["in", "out", "fee"],
        dtype=object,
    )
    for direction in ("in", "out", "fee"):
        subset = frame[frame["direction"] == direction]
        totals = subset.groupby("asset_id")["amount"].agg(_exact_sum)
        summary[direction] = [totals.get(asset_id, Decimal(0)) for asset_id in summary.index]
    summary["net"] = [
        row["in"] - row["out"] - row["fee"] for _, row in summary.iterrows()
    ]
    return summary


def conservation_report(transactions: Iterable[Transaction]) -> pd.DataFrame:
    """Per-transaction conservation status.

    Exempt kinds (stake removals, atomic transfers, minting) report
    ``required=False``; their ``balanced`` column is informational only.
    """
    rows = [
        (tx.id, tx.kind.value, tx.conservation_required, tx.is_balanced())
        for tx in transactions
    ]
    return pd.DataFrame(rows, columns=["transaction_id", "kind", "required", "balanced"])
