"""Canonical transaction model produced by the normalizer.

Ledger records are finalized, so every type here is an immutable dataclass.
Reward reconciliation returns a modified copy of a ``Transaction`` rather
than mutating it.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional


class OutputKind(str, enum.Enum):
    """Semantic kind of a UTXO. Values are the explorer display labels."""

    TRANSFERABLE = ""
    NFT_TRANSFERABLE = "NFT"
    MINT_RIGHTS = "Mint"
    NFT_MINT_RIGHTS = "NFT Minting Rights"
    ATOMIC_EXPORT = "Atomic Export"
    ATOMIC_IMPORT = "Atomic Import"


class TransactionKind(str, enum.Enum):
    TRANSFER = "transfer"
    CREATE_ASSET = "create_asset"
    NFT_OPERATION = "nft_operation"
    STAKE_ADD = "stake_add"
    STAKE_REMOVE = "stake_remove"
    ATOMIC_EXPORT = "atomic_export"
    ATOMIC_IMPORT = "atomic_import"
    CHAIN_ADMIN = "chain_admin"


# Kinds where value is created or crosses a chain boundary, so inputs need
# not equal outputs plus fee.
CONSERVATION_EXEMPT_KINDS = frozenset({
    TransactionKind.STAKE_REMOVE,
    TransactionKind.ATOMIC_EXPORT,
    TransactionKind.ATOMIC_IMPORT,
    TransactionKind.CREATE_ASSET,
    TransactionKind.NFT_OPERATION,
})


class BlockType(str, enum.Enum):
    PROPOSAL = "Proposal"
    ABORT = "Abort"
    COMMIT = "Commit"
    STANDARD = "Standard"
    ATOMIC = "Atomic"


class RewardState(str, enum.Enum):
    PENDING = "pending"
    MISSED = "missed"
    REWARDED = "rewarded"


@dataclass(frozen=True)
class RewardStatus:
    """Tri-state staking reward outcome.

    ``at`` is ``None`` while pending, otherwise the time the decision was
    observed (``rejectedAt`` for missed, ``rewardedAt`` for rewarded).
    """

    state: RewardState = RewardState.PENDING
    at: Optional[datetime] = None

    @classmethod
    def pending(cls) -> RewardStatus:
        return cls()

    @classmethod
    def missed(cls, at: datetime) -> RewardStatus:
        return cls(RewardState.MISSED, at)

    @classmethod
    def rewarded(cls, at: datetime) -> RewardStatus:
        return cls(RewardState.REWARDED, at)

    @property
    def is_rewarded(self) -> bool:
        return self.state is RewardState.REWARDED

    @property
    def rewarded_time(self) -> Optional[datetime]:
        """Mirror of the API's ``rewardedTime``: null only while pending."""
        return self.at


@dataclass(frozen=True)
class Credential:
    signature: str = ""
    public_key: str = ""
    address: str = ""


@dataclass(frozen=True)
class OutputFlags:
    """Independent boolean facts about an output, kept alongside its kind."""

    stake: bool = False
    stakeable: bool = False
    stake_locktime: int = 0
    reward: bool = False
    frozen: bool = False
    genesis: bool = False


@dataclass(frozen=True)
class Output:
    id: str
    transaction_id: str
    redeeming_transaction_id: str
    output_index: int
    chain_id: str
    asset_id: str
    raw_amount: str
    denomination: int
    amount: Decimal
    output_type: int
    kind: OutputKind
    flags: OutputFlags = field(default_factory=OutputFlags)
    addresses: tuple[str, ...] = ()
    caddresses: tuple[str, ...] = ()
    group_id: Optional[int] = None
    payload: Optional[bytes] = None
    threshold: int = 0
    locktime: int = 0
    timestamp: Optional[datetime] = None
    block: str = ""
    nonce: int = 0

    @property
    def is_spent(self) -> bool:
        return bool(self.redeeming_transaction_id)


@dataclass(frozen=True)
class Input:
    """A spend of a previously created output. Carries no amount of its own."""

    output: Output
    credentials: tuple[Credential, ...] = ()

    @property
    def asset_id(self) -> str:
        return self.output.asset_id

    @property
    def amount(self) -> Decimal:
        return self.output.amount


@dataclass(frozen=True)
class Transaction:
    id: str
    chain_id: str
    type: str
    kind: TransactionKind
    inputs: tuple[Input, ...]
    outputs: tuple[Output, ...]
    memo: bytes
    input_totals: dict[str, Decimal]
    output_totals: dict[str, Decimal]
    fee: Decimal
    fee_asset_id: Optional[str]
    timestamp: datetime
    epoch: int = 0
    vertex_id: str = ""
    genesis: bool = False
    validator_node_id: str = ""
    validator_start: int = 0
    validator_end: int = 0
    tx_block_id: str = ""
    reward_status: RewardStatus = field(default_factory=RewardStatus.pending)
    anomalies: tuple[RecordAnomaly, ...] = ()

    @property
    def conservation_required(self) -> bool:
        return self.kind not in CONSERVATION_EXEMPT_KINDS

    def is_balanced(self) -> bool:
        """Check ``sum(inputs) == sum(outputs) + fee`` for every asset.

        The fee is charged against ``fee_asset_id`` only. A nonzero fee with
        no fee asset cannot be attributed and never balances.
        """
        if self.fee and not self.fee_asset_id:
            return False
        assets = set(self.input_totals) | set(self.output_totals)
        if self.fee and self.fee_asset_id:
            assets.add(self.fee_asset_id)
        for asset_id in assets:
            spent = self.input_totals.get(asset_id, Decimal(0))
            produced = self.output_totals.get(asset_id, Decimal(0))
            if asset_id == self.fee_asset_id:
                produced += self.fee
            if spent != produced:
                return False
        return True


@dataclass(frozen=True)
class NFTPayload:
    payload: bytes
    group_id: int


@dataclass(frozen=True)
class Block:
    id: str
    type: BlockType
    transaction_ids: tuple[str, ...] = ()
    parent_id: str = ""

    @property
    def is_decision(self) -> bool:
        return self.type in (BlockType.COMMIT, BlockType.ABORT)


@dataclass(frozen=True)
class AssetMetadata:
    asset_id: str
    symbol: str
    denomination: int
    is_nft: bool = False
    name: str = ""


@dataclass(frozen=True)
class DenominatedValue:
    asset_id: str
    symbol: str
    amount: str
    is_nft: bool = False


@dataclass(frozen=True)
class RecordAnomaly:
    """A per-record problem reported alongside an otherwise usable page."""

    transaction_id: Optional[str]
    error: str
    message: str


@dataclass
class TransactionQuery:
    start_time: str
    end_time: str
    next_cursor: str
    transactions: list[Transaction] = field(default_factory=list)
    anomalies: list[RecordAnomaly] = field(default_factory=list)

    @classmethod
    def empty(cls) -> TransactionQuery:
        return cls(start_time="", end_time="", next_cursor="")
