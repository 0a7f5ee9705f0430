"""Staking reward reconciliation.

A stake-add transaction locks stake until its window ends. The protocol then
issues a stake-remove transaction that returns the stake out of thin air
(no inputs), and a decision block follows it. Decision blocks hold zero or
one transaction: one means the reward was committed, zero means the stake
went unrewarded. The reward itself is therefore only visible through that
block's transaction count, never through the stake-remove's UTXOs.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from ledgerlens.exceptions import MalformedRecord, ReconciliationError
from ledgerlens.schema import Block, BlockType, RewardStatus, Transaction, TransactionKind

logger = logging.getLogger("ledgerlens.ingestion.rewards")


def parse_block(data: dict[str, Any]) -> Block:
    """Parse an explorer block JSON dict into a ``Block``.

    Transactions may be listed as ids or as embedded transaction objects.
    """
    try:
        block_type = BlockType(str(data.get("type") or "").capitalize())
    except ValueError:
        raise MalformedRecord(
            f"Unknown block type: {data.get('type')!r}", record_id=data.get("id")
        ) from None
    txs = data.get("transactions") or data.get("txs") or []
    tx_ids = tuple(tx["id"] if isinstance(tx, dict) else str(tx) for tx in txs)
    return Block(
        id=data.get("id") or "",
        type=block_type,
        transaction_ids=tx_ids,
        parent_id=data.get("parentID") or "",
    )


def matches_stake(stake_add: Transaction, stake_remove: Transaction) -> bool:
    """Whether ``stake_remove`` ends the stake opened by ``stake_add``."""
    return (
        stake_remove.kind is TransactionKind.STAKE_REMOVE
        and bool(stake_add.validator_node_id)
        and stake_add.validator_node_id == stake_remove.validator_node_id
        and stake_add.validator_start == stake_remove.validator_start
        and stake_add.validator_end == stake_remove.validator_end
    )


def reconcile_reward(
    stake_add: Transaction,
    stake_remove: Optional[Transaction],
    decision_block: Optional[Block],
) -> RewardStatus:
    """Decide the reward status of a stake.

    Args:
        stake_add: The transaction that opened the stake.
        stake_remove: The matching removal, or ``None`` if not yet observed.
        decision_block: The block that finalized the removal, or ``None`` if
            not yet observed.

    Returns:
        ``pending`` until both the removal and its decision block are known;
        then ``rewarded`` if the block holds exactly one transaction and
        ``missed`` otherwise, timestamped with the removal time.

    Raises:
        ReconciliationError: If the transactions are not a matching pair.
    """
    if stake_add.kind is not TransactionKind.STAKE_ADD:
        raise ReconciliationError(
            f"Transaction {stake_add.id} is not a stake-add ({stake_add.type})",
            {"transaction_id": stake_add.id},
        )
    if stake_remove is None:
        return RewardStatus.pending()
    if not matches_stake(stake_add, stake_remove):
        raise ReconciliationError(
            f"Transaction {stake_remove.id} does not end the stake of {stake_add.id}",
            {"stake_add": stake_add.id, "stake_remove": stake_remove.id},
        )
    if decision_block is None:
        return RewardStatus.pending()

    tx_count = len(decision_block.transaction_ids)
    if tx_count == 1:
        return RewardStatus.rewarded(stake_remove.timestamp)
    if tx_count > 1:
        logger.warning(
            "Decision block %s holds %d transactions; stake %s counted as missed",
            decision_block.id, tx_count, stake_add.id,
        )
    return RewardStatus.missed(stake_remove.timestamp)
