"""Request-level entry points tying the fetch client to the normalizer.

Lookups are awaited one after another: each one's result (an asset list, a
redeeming transaction id, a decision block id) determines the next request.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional
from urllib.parse import parse_qsl

from ledgerlens.exceptions import MalformedRecord, ReconciliationError
from ledgerlens.ingestion.assets import AssetCache, referenced_asset_ids
from ledgerlens.ingestion.client import ExplorerClient
from ledgerlens.ingestion.config import ExplorerConfig
from ledgerlens.ingestion.nft import extract_payloads, find_mint_rights, redemption_id
from ledgerlens.ingestion.normalizer import normalize_transaction
from ledgerlens.ingestion.query import assemble_page
from ledgerlens.ingestion.rewards import matches_stake, parse_block, reconcile_reward
from ledgerlens.schema import (
    AssetMetadata,
    Block,
    NFTPayload,
    RewardStatus,
    Transaction,
    TransactionKind,
    TransactionQuery,
)

logger = logging.getLogger("ledgerlens.ingestion.service")

STAKE_REMOVAL_PAGE_SIZE = 50
STAKE_REMOVAL_MAX_PAGES = 10


def _next_page_params(params: Mapping[str, Any], cursor: str) -> dict[str, Any]:
    # The cursor is a query string overriding the previous parameters, or an
    # opaque token.
    overrides = dict(parse_qsl(cursor.lstrip("?")))
    if not overrides:
        overrides = {"cursor": cursor}
    return {**params, **overrides}


class TransactionService:
    """Normalized views over the explorer API.

    Args:
        client: An open ``ExplorerClient`` (or any object with the same fetch
            coroutines).
        config: Settings; defaults to the client's configuration.
    """

    def __init__(
        self,
        client: ExplorerClient,
        config: Optional[ExplorerConfig] = None,
    ) -> None:
        self._client = client
        self._config = config or getattr(client, "config", None) or ExplorerConfig()
        self._assets = AssetCache(self._config.asset_cache_ttl_seconds)

    @property
    def asset_cache(self) -> AssetCache:
        return self._assets

    async def _asset_map(self, raw_transactions: Iterable[dict[str, Any]]) -> dict[str, AssetMetadata]:
        """Metadata for every asset the raw transactions reference, plus the fee asset."""
        asset_ids = referenced_asset_ids(raw_transactions)
        if self._config.fee_asset_id:
            asset_ids.add(self._config.fee_asset_id)

        assets = self._assets.snapshot(asset_ids)
        for asset_id in sorted(asset_ids - set(assets)):
            try:
                meta = await self._client.fetch_asset_metadata(asset_id)
            except MalformedRecord as exc:
                # Records using this asset fail individually in the normalizer.
                logger.warning("Ignoring metadata of asset %s: %s", asset_id, exc.message)
                continue
            self._assets.put(meta)
            assets[asset_id] = meta
        return assets

    def _normalize(self, raw: dict[str, Any], assets: Mapping[str, AssetMetadata]) -> Transaction:
        return normalize_transaction(
            raw,
            assets,
            fee_asset_id=self._config.fee_asset_id,
            degrade_unknown_outputs=self._config.degrade_unknown_outputs,
        )

    async def get_transaction(self, tx_id: str) -> Transaction:
        """Fetch and normalize one transaction. Any record failure is raised."""
        raw = await self._client.fetch_transaction(tx_id)
        assets = await self._asset_map([raw])
        return self._normalize(raw, assets)

    async def get_transactions(self, params: Mapping[str, Any]) -> TransactionQuery:
        """Fetch and normalize one page; failing records become anomalies."""
        page = await self._client.fetch_transactions(params)
        assets = await self._asset_map(page.get("transactions") or ())
        return assemble_page(
            page,
            assets,
            fee_asset_id=self._config.fee_asset_id,
            degrade_unknown_outputs=self._config.degrade_unknown_outputs,
        )

    async def _find_stake_removal(self, stake_add: Transaction) -> Optional[Transaction]:
        if not stake_add.validator_end:
            return None
        window_end = datetime.fromtimestamp(stake_add.validator_end, tz=timezone.utc)
        params: dict[str, Any] = {
            "chainID": stake_add.chain_id,
            "startTime": window_end.isoformat().replace("+00:00", "Z"),
            "sort": "timestamp-asc",
            "limit": STAKE_REMOVAL_PAGE_SIZE,
        }
        for _ in range(STAKE_REMOVAL_MAX_PAGES):
            page = await self.get_transactions(params)
            for tx in page.transactions:
                if matches_stake(stake_add, tx):
                    return tx
            if not page.next_cursor:
                return None
            params = _next_page_params(params, page.next_cursor)
        logger.info(
            "No removal of stake %s within %d pages", stake_add.id, STAKE_REMOVAL_MAX_PAGES
        )
        return None

    async def _find_decision_block(self, stake_remove: Transaction) -> Optional[Block]:
        """The commit or abort block that decided ``stake_remove``.

        The removal itself sits in a proposal block; the decision is that
        block's child. A block id that already names a decision block is
        used as is.
        """
        block = parse_block(await self._client.fetch_block(stake_remove.tx_block_id))
        if block.is_decision:
            return block
        page = await self._client.fetch_blocks({"parentID": block.id})
        for raw in page.get("blocks") or ():
            child = parse_block(raw)
            if child.is_decision:
                return child
        return None

    async def get_reward_status(self, stake_add_tx_id: str) -> RewardStatus:
        """Reward status of the stake opened by ``stake_add_tx_id``."""
        stake_add = await self.get_transaction(stake_add_tx_id)
        if stake_add.kind is not TransactionKind.STAKE_ADD:
            raise ReconciliationError(
                f"Transaction {stake_add.id} is not a stake-add ({stake_add.type})",
                {"transaction_id": stake_add.id},
            )

        stake_remove = await self._find_stake_removal(stake_add)
        decision_block = None
        if stake_remove is not None and stake_remove.tx_block_id:
            decision_block = await self._find_decision_block(stake_remove)
        status = reconcile_reward(stake_add, stake_remove, decision_block)
        logger.info("Stake %s reward status: %s", stake_add.id, status.state.value)
        return status

    async def get_nft_payloads(self, mint_tx_id: str) -> list[NFTPayload]:
        """Distinct payloads of the NFT family created by ``mint_tx_id``."""
        mint_tx = await self.get_transaction(mint_tx_id)
        mint_rights = find_mint_rights(mint_tx)
        redemption = await self.get_transaction(redemption_id(mint_rights))
        return extract_payloads(redemption)
