"""Transaction normalizer for turning explorer records into ``Transaction`` models."""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import replace
from typing import Mapping, Optional, Sequence

from ledgerlens.exceptions import MalformedRecord, UnrecognizedOutputKind
from ledgerlens.ingestion.amounts import aggregate_amounts, decode_amount, parse_raw_amount
from ledgerlens.ingestion.classifier import classify_output
from ledgerlens.ingestion.parsers import (
    _int,
    _parse_datetime,
    decode_memo,
    parse_input,
    parse_output,
)
from ledgerlens.schema import (
    AssetMetadata,
    Input,
    Output,
    OutputKind,
    RecordAnomaly,
    RewardStatus,
    Transaction,
    TransactionKind,
)

logger = logging.getLogger("ledgerlens.ingestion.normalizer")

TYPE_KINDS = {
    "base": TransactionKind.TRANSFER,
    "create_asset": TransactionKind.CREATE_ASSET,
    "operation": TransactionKind.NFT_OPERATION,
    "import": TransactionKind.ATOMIC_IMPORT,
    "pvm_import": TransactionKind.ATOMIC_IMPORT,
    "atomic_import": TransactionKind.ATOMIC_IMPORT,
    "export": TransactionKind.ATOMIC_EXPORT,
    "pvm_export": TransactionKind.ATOMIC_EXPORT,
    "atomic_export": TransactionKind.ATOMIC_EXPORT,
    "add_validator": TransactionKind.STAKE_ADD,
    "add_delegator": TransactionKind.STAKE_ADD,
    "reward_validator": TransactionKind.STAKE_REMOVE,
    "remove_validator": TransactionKind.STAKE_REMOVE,
    "remove_delegator": TransactionKind.STAKE_REMOVE,
    "add_subnet_validator": TransactionKind.CHAIN_ADMIN,
    "create_subnet": TransactionKind.CHAIN_ADMIN,
    "create_chain": TransactionKind.CHAIN_ADMIN,
    "advance_time": TransactionKind.CHAIN_ADMIN,
}

_NFT_KINDS = (OutputKind.NFT_MINT_RIGHTS, OutputKind.NFT_TRANSFERABLE)


def _infer_kind(inputs: Sequence[Input], outputs: Sequence[Output]) -> TransactionKind:
    """Guess a transaction kind from its shape alone."""
    kinds = {o.kind for o in outputs}
    if OutputKind.ATOMIC_IMPORT in kinds:
        return TransactionKind.ATOMIC_IMPORT
    if OutputKind.ATOMIC_EXPORT in kinds:
        return TransactionKind.ATOMIC_EXPORT
    if not inputs and outputs:
        return TransactionKind.STAKE_REMOVE
    if kinds.intersection(_NFT_KINDS):
        return TransactionKind.NFT_OPERATION
    return TransactionKind.TRANSFER


def classify_transaction(
    tx_type: str,
    inputs: Sequence[Input],
    outputs: Sequence[Output],
) -> tuple[TransactionKind, list[tuple[str, str]]]:
    """Map the upstream ``type`` to a ``TransactionKind``.

    The type field is authoritative. The structural shape is only used to
    cross-check stake removals and to fall back when the type is unknown.
    Returns the kind and any (error, message) anomalies noticed along the way.
    """
    anomalies = []
    kind = TYPE_KINDS.get(tx_type)
    if kind is None:
        kind = _infer_kind(inputs, outputs)
        anomalies.append((
            "UnknownTransactionType",
            f"Unknown transaction type {tx_type!r}, inferred {kind.value} from shape",
        ))
    elif kind is TransactionKind.STAKE_REMOVE and inputs:
        anomalies.append((
            "ShapeMismatch",
            f"Stake removal of type {tx_type!r} has {len(inputs)} input(s)",
        ))
    return kind, anomalies


def _infer_fee_asset(
    inputs: Sequence[Input], outputs: Sequence[Output], raw_fee: int
) -> Optional[str]:
    """The single asset whose raw inputs exceed its raw outputs by ``raw_fee``."""
    deltas: dict[str, int] = defaultdict(int)
    for inp in inputs:
        deltas[inp.asset_id] += parse_raw_amount(inp.output.raw_amount)
    for output in outputs:
        deltas[output.asset_id] -= parse_raw_amount(output.raw_amount)
    matches = [asset_id for asset_id, delta in deltas.items() if delta == raw_fee]
    return matches[0] if len(matches) == 1 else None


def _denomination(assets: Mapping[str, AssetMetadata], asset_id: str) -> int:
    meta = assets.get(asset_id)
    if meta is None:
        raise MalformedRecord(f"No metadata for asset {asset_id!r}", record_id=asset_id)
    return meta.denomination


def _build_output(
    data: dict,
    assets: Mapping[str, AssetMetadata],
    degrade_unknown_outputs: bool,
    anomalies: list[tuple[str, str]],
) -> Output:
    try:
        kind = classify_output(data)
    except UnrecognizedOutputKind as exc:
        if not degrade_unknown_outputs:
            raise
        anomalies.append((
            "UnrecognizedOutputKind",
            f"{exc.message}; output {exc.output_id} treated as transferable",
        ))
        kind = OutputKind.TRANSFERABLE
    return parse_output(data, _denomination(assets, data.get("assetID") or ""), kind)


def normalize_transaction(
    data: dict,
    assets: Mapping[str, AssetMetadata],
    *,
    fee_asset_id: Optional[str] = None,
    degrade_unknown_outputs: bool = True,
) -> Transaction:
    """Transform a raw explorer transaction into a ``Transaction``.

    Args:
        data: Decoded JSON of one transaction.
        assets: Metadata for every asset the transaction touches, keyed by id.
        fee_asset_id: Asset the fee is charged in. Without it the fee asset is
            inferred as the single asset whose inputs exceed its outputs by
            exactly the fee; a fee that matches no asset stays a raw integer
            and leaves the transaction unbalanced.
        degrade_unknown_outputs: Classify unrecognized outputs as transferable
            (recording an anomaly) instead of raising.

    Raises:
        MalformedRecord: If a field cannot be interpreted.
        UnrecognizedOutputKind: If an output cannot be classified and
            ``degrade_unknown_outputs`` is false.
    """
    tx_id = data.get("id")
    if not tx_id:
        raise MalformedRecord("Transaction without id")

    anomalies: list[tuple[str, str]] = []
    try:
        inputs = tuple(
            parse_input(
                raw_input,
                _build_output(
                    raw_input.get("output") or {}, assets, degrade_unknown_outputs, anomalies
                ),
            )
            for raw_input in data.get("inputs") or ()
        )
        outputs = tuple(
            _build_output(raw_output, assets, degrade_unknown_outputs, anomalies)
            for raw_output in data.get("outputs") or ()
        )

        tx_type = data.get("type") or ""
        kind, kind_anomalies = classify_transaction(tx_type, inputs, outputs)
        anomalies.extend(kind_anomalies)

        raw_fee = parse_raw_amount(data.get("txFee") or 0)
        if fee_asset_id is None and raw_fee:
            fee_asset_id = _infer_fee_asset(inputs, outputs, raw_fee)
        if fee_asset_id is not None:
            fee = decode_amount(raw_fee, _denomination(assets, fee_asset_id))
        else:
            fee = decode_amount(raw_fee, 0)

        chain_id = data.get("chainID") or ""
        timestamp = _parse_datetime(data.get("timestamp"))
        memo = decode_memo(data.get("memo"))
        input_totals = aggregate_amounts(inputs, key=lambda i: i.output)
        output_totals = aggregate_amounts(outputs)
        epoch = _int(data, "epoch")
        validator_start = _int(data, "validatorStart")
        validator_end = _int(data, "validatorEnd")
    except (MalformedRecord, UnrecognizedOutputKind) as exc:
        exc.context.setdefault("transaction_id", tx_id)
        raise

    # Chain ids are known to be inconsistent on some atomic transactions;
    # report the mismatch without altering the record. Imported inputs spend
    # outputs of the source chain, so they are not compared.
    checked = list(outputs)
    if kind is not TransactionKind.ATOMIC_IMPORT:
        checked.extend(i.output for i in inputs)
    for output in checked:
        if output.chain_id and chain_id and output.chain_id != chain_id:
            anomalies.append((
                "MalformedRecord",
                f"Output {output.id} has chain id "
                f"{output.chain_id}, transaction has {chain_id}",
            ))

    tx = Transaction(
        id=tx_id,
        chain_id=chain_id,
        type=tx_type,
        kind=kind,
        inputs=inputs,
        outputs=outputs,
        memo=memo,
        input_totals=input_totals,
        output_totals=output_totals,
        fee=fee,
        fee_asset_id=fee_asset_id,
        timestamp=timestamp,
        epoch=epoch,
        vertex_id=data.get("vertexId") or "",
        genesis=bool(data.get("genesis")),
        validator_node_id=data.get("validatorNodeID") or "",
        validator_start=validator_start,
        validator_end=validator_end,
        tx_block_id=data.get("txBlockId") or "",
        reward_status=RewardStatus.pending(),
    )

    if tx.conservation_required and not tx.is_balanced():
        anomalies.append((
            "ConservationViolation",
            f"Inputs {tx.input_totals} do not equal outputs {tx.output_totals} plus fee {tx.fee}",
        ))

    if not anomalies:
        return tx
    for error, message in anomalies:
        logger.warning("Transaction %s: %s: %s", tx_id, error, message)
    return replace(
        tx,
        anomalies=tuple(
            RecordAnomaly(transaction_id=tx_id, error=error, message=message)
            for error, message in anomalies
        ),
    )
