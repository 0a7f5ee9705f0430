"""Recover the payloads attached to an NFT family.

Payloads are not stored on the asset creation transaction. They appear on
the outputs of the transaction that redeemed the creation's NFT minting
rights output.
"""
from __future__ import annotations

from ledgerlens.exceptions import MintRightsNotFound, RedemptionNotFound
from ledgerlens.schema import NFTPayload, Output, OutputKind, Transaction


def find_mint_rights(tx: Transaction) -> Output:
    """Return the first NFT minting-rights output of ``tx``."""
    for output in tx.outputs:
        if output.kind is OutputKind.NFT_MINT_RIGHTS:
            return output
    raise MintRightsNotFound(
        f"Transaction {tx.id} has no NFT minting rights output",
        {"transaction_id": tx.id},
    )


def redemption_id(mint_rights: Output) -> str:
    """Return the id of the transaction that spent ``mint_rights``."""
    if not mint_rights.redeeming_transaction_id:
        raise RedemptionNotFound(
            f"Minting rights output {mint_rights.id} has not been redeemed",
            {"output_id": mint_rights.id},
        )
    return mint_rights.redeeming_transaction_id


def extract_payloads(redemption: Transaction) -> list[NFTPayload]:
    """List distinct non-empty (payload, group) pairs in first-seen order."""
    seen = set()
    payloads = []
    for output in redemption.outputs:
        if not output.payload:
            continue
        entry = NFTPayload(payload=output.payload, group_id=output.group_id or 0)
        if entry in seen:
            continue
        seen.add(entry)
        payloads.append(entry)
    return payloads
