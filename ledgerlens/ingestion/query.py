"""Assemble a page of raw explorer transactions into a ``TransactionQuery``."""
from __future__ import annotations

import logging
from typing import Mapping, Optional

from ledgerlens.exceptions import MalformedRecord, UnrecognizedOutputKind
from ledgerlens.ingestion.normalizer import normalize_transaction
from ledgerlens.schema import AssetMetadata, RecordAnomaly, TransactionQuery

logger = logging.getLogger("ledgerlens.ingestion.query")


def assemble_page(
    page: dict,
    assets: Mapping[str, AssetMetadata],
    *,
    fee_asset_id: Optional[str] = None,
    degrade_unknown_outputs: bool = True,
) -> TransactionQuery:
    """Normalize every transaction of a raw page.

    A record that fails to normalize is left out of ``transactions`` and
    reported in ``anomalies``; anomalies recorded on successfully normalized
    transactions are reported there too.
    """
    result = TransactionQuery(
        start_time=page.get("startTime") or "",
        end_time=page.get("endTime") or "",
        next_cursor=page.get("next") or "",
    )
    for raw in page.get("transactions") or ():
        tx_id = raw.get("id") if isinstance(raw, dict) else None
        try:
            tx = normalize_transaction(
                raw,
                assets,
                fee_asset_id=fee_asset_id,
                degrade_unknown_outputs=degrade_unknown_outputs,
            )
        except (MalformedRecord, UnrecognizedOutputKind) as exc:
            logger.warning("Skipping transaction %s: %s", tx_id, exc.message)
            result.anomalies.append(
                RecordAnomaly(
                    transaction_id=tx_id,
                    error=exc.__class__.__name__,
                    message=exc.message,
                )
            )
            continue
        result.transactions.append(tx)
        result.anomalies.extend(tx.anomalies)
    logger.debug(
        "Assembled page: %d transactions, %d anomalies",
        len(result.transactions), len(result.anomalies),
    )
    return result
