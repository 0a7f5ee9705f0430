"""Asset metadata parsing and the per-service metadata cache."""
from __future__ import annotations

import time
from typing import Any, Callable, Iterable, Optional

from ledgerlens.exceptions import MalformedRecord
from ledgerlens.schema import AssetMetadata


def parse_asset_metadata(data: dict[str, Any]) -> AssetMetadata:
    """Parse an explorer asset JSON dict into ``AssetMetadata``."""
    asset_id = data.get("id") or data.get("assetID")
    if not asset_id:
        raise MalformedRecord("Asset record without id")
    try:
        denomination = int(data.get("denomination") or 0)
    except (TypeError, ValueError) as exc:
        raise MalformedRecord(
            f"Invalid denomination: {data.get('denomination')!r}", record_id=asset_id
        ) from exc
    if denomination < 0:
        raise MalformedRecord(f"Negative denomination {denomination}", record_id=asset_id)
    return AssetMetadata(
        asset_id=asset_id,
        symbol=data.get("symbol") or "",
        denomination=denomination,
        is_nft=bool(data.get("nft") or data.get("isNFT")),
        name=data.get("name") or "",
    )


def referenced_asset_ids(transactions: Iterable[dict[str, Any]]) -> set[str]:
    """Collect the asset ids used by the inputs and outputs of raw transactions."""
    asset_ids = set()
    for tx in transactions:
        for raw_input in tx.get("inputs") or ():
            asset_id = (raw_input.get("output") or {}).get("assetID")
            if asset_id:
                asset_ids.add(asset_id)
        for raw_output in tx.get("outputs") or ():
            asset_id = raw_output.get("assetID")
            if asset_id:
                asset_ids.add(asset_id)
    return asset_ids


class AssetCache:
    """Asset metadata keyed by asset id, with entries expiring after ``ttl_seconds``.

    A cache belongs to one ``TransactionService``; nothing is shared between
    instances.
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must be non-negative")
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, AssetMetadata]] = {}

    def get(self, asset_id: str) -> Optional[AssetMetadata]:
        entry = self._entries.get(asset_id)
        if entry is None:
            return None
        stored_at, meta = entry
        if self._clock() - stored_at > self._ttl:
            del self._entries[asset_id]
            return None
        return meta

    def put(self, meta: AssetMetadata) -> None:
        self._entries[meta.asset_id] = (self._clock(), meta)

    def snapshot(self, asset_ids: Iterable[str]) -> dict[str, AssetMetadata]:
        """Fresh entries for ``asset_ids`` as a plain mapping."""
        result = {}
        for asset_id in asset_ids:
            meta = self.get(asset_id)
            if meta is not None:
                result[asset_id] = meta
        return result

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
