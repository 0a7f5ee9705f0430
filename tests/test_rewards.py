"""Tests for ledgerlens.ingestion.rewards."""
from datetime import datetime, timezone

import pytest

from ledgerlens.exceptions import MalformedRecord, ReconciliationError
from ledgerlens.ingestion.rewards import matches_stake, parse_block, reconcile_reward
from ledgerlens.schema import Block, BlockType, RewardState, Transaction, TransactionKind

REMOVED_AT = datetime(2021, 6, 1, 12, 0, tzinfo=timezone.utc)


def _stake_tx(tx_id, kind, **overrides):
    fields = dict(
        id=tx_id,
        chain_id="p_chain",
        type="add_validator" if kind is TransactionKind.STAKE_ADD else "reward_validator",
        kind=kind,
        inputs=(),
        outputs=(),
        memo=b"",
        input_totals={},
        output_totals={},
        fee=0,
        fee_asset_id=None,
        timestamp=REMOVED_AT,
        validator_node_id="NodeID-abc",
        validator_start=1600000000,
        validator_end=1610000000,
    )
    fields.update(overrides)
    return Transaction(**fields)


@pytest.fixture()
def stake_add():
    return _stake_tx("add_1", TransactionKind.STAKE_ADD)


@pytest.fixture()
def stake_remove():
    return _stake_tx("remove_1", TransactionKind.STAKE_REMOVE, tx_block_id="block_1")


# -- Tests: parse_block -------------------------------------------------------


def test_parse_block_with_transaction_ids():
    block = parse_block({"id": "block_1", "type": "commit", "transactions": ["remove_1"]})
    assert block == Block(id="block_1", type=BlockType.COMMIT, transaction_ids=("remove_1",))


def test_parse_block_with_embedded_transactions():
    block = parse_block({"id": "b", "type": "Abort", "txs": [{"id": "t1"}, {"id": "t2"}]})
    assert block.type is BlockType.ABORT
    assert block.transaction_ids == ("t1", "t2")


def test_parse_block_rejects_unknown_type():
    with pytest.raises(MalformedRecord):
        parse_block({"id": "b", "type": "sideways"})


# -- Tests: matching ----------------------------------------------------------


def test_matches_stake_on_node_and_window(stake_add, stake_remove):
    assert matches_stake(stake_add, stake_remove) is True


@pytest.mark.parametrize("field,value", [
    ("validator_node_id", "NodeID-other"),
    ("validator_start", 1),
    ("validator_end", 2),
])
def test_matches_stake_rejects_different_window(stake_add, field, value):
    other = _stake_tx("remove_2", TransactionKind.STAKE_REMOVE, **{field: value})
    assert matches_stake(stake_add, other) is False


def test_matches_stake_requires_removal_kind(stake_add):
    assert matches_stake(stake_add, _stake_tx("x", TransactionKind.STAKE_ADD)) is False


# -- Tests: reconcile_reward --------------------------------------------------


def test_commit_block_with_one_transaction_is_rewarded(stake_add, stake_remove):
    block = Block(id="block_1", type=BlockType.COMMIT, transaction_ids=("remove_1",))
    status = reconcile_reward(stake_add, stake_remove, block)

    assert status.state is RewardState.REWARDED
    assert status.is_rewarded is True
    assert status.rewarded_time == REMOVED_AT


def test_empty_block_is_missed(stake_add, stake_remove):
    block = Block(id="block_1", type=BlockType.ABORT)
    status = reconcile_reward(stake_add, stake_remove, block)

    assert status.state is RewardState.MISSED
    assert status.is_rewarded is False
    assert status.at == REMOVED_AT


def test_block_with_several_transactions_is_missed(stake_add, stake_remove):
    block = Block(id="block_1", type=BlockType.COMMIT, transaction_ids=("a", "b"))
    assert reconcile_reward(stake_add, stake_remove, block).state is RewardState.MISSED


def test_no_removal_is_pending(stake_add):
    status = reconcile_reward(stake_add, None, None)
    assert status.state is RewardState.PENDING
    assert status.rewarded_time is None


def test_no_decision_block_is_pending(stake_add, stake_remove):
    assert reconcile_reward(stake_add, stake_remove, None).state is RewardState.PENDING


def test_mismatched_pair_raises(stake_add):
    stranger = _stake_tx("remove_9", TransactionKind.STAKE_REMOVE, validator_node_id="NodeID-zzz")
    with pytest.raises(ReconciliationError):
        reconcile_reward(stake_add, stranger, Block(id="b", type=BlockType.COMMIT))


def test_non_stake_add_raises(stake_remove):
    with pytest.raises(ReconciliationError):
        reconcile_reward(stake_remove, None, None)
