"""Assign a semantic ``OutputKind`` to raw UTXO records.

The explorer API encodes output semantics as a numeric type code plus a set
of ownership fields and flags that are not mutually exclusive. This module
is the single place where that combination is interpreted; the rules are
evaluated in a fixed precedence order and the first match wins.
"""
from __future__ import annotations

from typing import Any

from ledgerlens.exceptions import MalformedRecord, UnrecognizedOutputKind
from ledgerlens.schema import OutputFlags, OutputKind

SECP256K1_MINT_OUTPUT = 6
SECP256K1_TRANSFER_OUTPUT = 7
NFT_MINT_OUTPUT = 10
NFT_TRANSFER_OUTPUT = 11
STAKEABLE_LOCK_OUTPUT = 22
# Pseudo type codes the indexer uses for cross-chain artifacts.
ATOMIC_EXPORT_OUTPUT = 0xFFFFFFF1
ATOMIC_IMPORT_OUTPUT = 0xFFFFFFF2

TRANSFERABLE_CODES = frozenset({
    SECP256K1_TRANSFER_OUTPUT,
    STAKEABLE_LOCK_OUTPUT,
    ATOMIC_EXPORT_OUTPUT,
    ATOMIC_IMPORT_OUTPUT,
})


def output_type_code(data: dict[str, Any]) -> int:
    """Return the numeric ``outputType`` of a raw output."""
    value = data.get("outputType")
    if isinstance(value, bool):
        value = None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise UnrecognizedOutputKind(
            f"Unparseable output type code: {value!r}",
            output_id=data.get("id"),
        ) from None


def output_flags(data: dict[str, Any]) -> OutputFlags:
    """Extract the independent stake/reward/vesting flags of a raw output."""
    try:
        stake_locktime = int(data.get("stakeLocktime") or 0)
    except (TypeError, ValueError) as exc:
        raise MalformedRecord(
            f"Invalid stakeLocktime: {data.get('stakeLocktime')!r}",
            record_id=data.get("id"),
        ) from exc
    return OutputFlags(
        stake=bool(data.get("stake")),
        stakeable=bool(data.get("stakeableout")),
        stake_locktime=stake_locktime,
        reward=bool(data.get("rewardUtxo")),
        frozen=bool(data.get("frozen")),
        genesis=bool(data.get("genesisutxo")),
    )


def _has_nft_marker(data: dict[str, Any]) -> bool:
    return bool(data.get("payload")) or data.get("groupID") is not None


def classify_output(data: dict[str, Any]) -> OutputKind:
    """Classify a raw output record.

    Precedence:

    1. contract address and no owner addresses: atomic import
    2. no owner addresses and the atomic export type code: atomic export
    3. NFT marker with an NFT mint or NFT transfer code
    4. fungible mint code: mint rights
    5. any other known code: transferable

    Raises:
        UnrecognizedOutputKind: For unknown type codes, and for NFT codes
            that carry neither payload nor group id.
    """
    addresses = data.get("addresses") or []
    caddresses = data.get("caddresses") or []
    code = output_type_code(data)

    if caddresses and not addresses:
        return OutputKind.ATOMIC_IMPORT
    if not addresses and code == ATOMIC_EXPORT_OUTPUT:
        return OutputKind.ATOMIC_EXPORT

    if code in (NFT_MINT_OUTPUT, NFT_TRANSFER_OUTPUT):
        if not _has_nft_marker(data):
            raise UnrecognizedOutputKind(
                f"NFT output type {code} without payload or group id",
                output_id=data.get("id"),
                output_type=code,
            )
        if code == NFT_MINT_OUTPUT:
            return OutputKind.NFT_MINT_RIGHTS
        return OutputKind.NFT_TRANSFERABLE

    if code == SECP256K1_MINT_OUTPUT:
        return OutputKind.MINT_RIGHTS
    if code in TRANSFERABLE_CODES:
        return OutputKind.TRANSFERABLE

    raise UnrecognizedOutputKind(
        f"Unknown output type code {code}",
        output_id=data.get("id"),
        output_type=code,
    )
