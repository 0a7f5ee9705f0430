"""Parse explorer API JSON records into canonical model fields.

Each ``parse_*`` function accepts a dict (decoded JSON from the explorer
API) and returns the corresponding model instance. These functions perform
no I/O and are safe to call from any context. Fields that cannot be
interpreted raise ``MalformedRecord``.
"""
from __future__ import annotations

import base64
import binascii
import re
from datetime import datetime
from typing import Any, Optional

from ledgerlens.exceptions import MalformedRecord
from ledgerlens.ingestion.amounts import decode_amount
from ledgerlens.ingestion.classifier import output_flags
from ledgerlens.schema import Credential, Input, Output, OutputKind

_FRACTION = re.compile(r"\.(\d+)")


def _six_digit_fraction(match: re.Match) -> str:
    return "." + match.group(1)[:6].ljust(6, "0")


def _parse_datetime(iso_string: str) -> datetime:
    """Parse an ISO 8601 timestamp from the API into a timezone-aware datetime."""
    if not isinstance(iso_string, str) or not iso_string:
        raise MalformedRecord(f"Missing or non-string timestamp: {iso_string!r}")
    # The indexer trims trailing zeros and may emit nanoseconds; fromisoformat
    # on older interpreters only takes 3 or 6 fractional digits.
    text = _FRACTION.sub(_six_digit_fraction, iso_string.replace("Z", "+00:00"))
    try:
        return datetime.fromisoformat(text)
    except ValueError as exc:
        raise MalformedRecord(f"Unparseable timestamp: {iso_string!r}") from exc


def _optional_datetime(value: Optional[str]) -> Optional[datetime]:
    return _parse_datetime(value) if value else None


def _int(data: dict, key: str, default: int = 0) -> int:
    value = data.get(key)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise MalformedRecord(
            f"Field {key!r} is not an integer: {value!r}", record_id=data.get("id")
        ) from exc


def _output_type(data: dict) -> int:
    # Judging the code is the classifier's job; unparseable codes become -1.
    try:
        return int(data.get("outputType"))
    except (TypeError, ValueError):
        return -1


def _decode_base64(value: Optional[str], what: str) -> bytes:
    if not value:
        return b""
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MalformedRecord(f"{what} is not valid base64: {value!r}") from exc


def decode_memo(value: Optional[str]) -> bytes:
    """Decode the base64 wire encoding of a transaction memo."""
    return _decode_base64(value, "Memo")


def parse_credentials(data: Any) -> tuple[Credential, ...]:
    """Parse input credentials, which the API sends as one object or a list."""
    if not data:
        return ()
    if isinstance(data, dict):
        data = [data]
    return tuple(
        Credential(
            signature=item.get("signature") or "",
            public_key=item.get("public_key") or "",
            address=item.get("address") or "",
        )
        for item in data
    )


def parse_output(data: dict, denomination: int, kind: OutputKind) -> Output:
    """Parse an explorer output JSON dict into an ``Output``.

    Args:
        data: Decoded JSON of one UTXO.
        denomination: Denomination of the output's asset.
        kind: Semantic kind, as decided by the classifier.
    """
    output_id = data.get("id") or ""
    addresses = tuple(data.get("addresses") or ())
    caddresses = tuple(data.get("caddresses") or ())
    if addresses and caddresses:
        raise MalformedRecord(
            "Output is owned by both addresses and a contract address",
            record_id=output_id,
        )

    raw_amount = data.get("amount")
    if raw_amount is None:
        raw_amount = "0"
    amount = decode_amount(raw_amount, denomination)

    group_id = data.get("groupID")
    payload = data.get("payload")

    return Output(
        id=output_id,
        transaction_id=data.get("transactionID") or "",
        redeeming_transaction_id=data.get("redeemingTransactionID") or "",
        output_index=_int(data, "outputIndex"),
        chain_id=data.get("chainID") or "",
        asset_id=data.get("assetID") or "",
        raw_amount=str(raw_amount),
        denomination=denomination,
        amount=amount,
        output_type=_output_type(data),
        kind=kind,
        flags=output_flags(data),
        addresses=addresses,
        caddresses=caddresses,
        group_id=_int(data, "groupID") if group_id is not None else None,
        payload=_decode_base64(payload, "Payload") if payload else None,
        threshold=_int(data, "threshold"),
        locktime=_int(data, "locktime"),
        timestamp=_optional_datetime(data.get("timestamp")),
        block=data.get("block") or "",
        nonce=_int(data, "nonce"),
    )


def parse_input(data: dict, output: Output) -> Input:
    """Build an ``Input`` from its JSON dict and the already parsed output."""
    return Input(output=output, credentials=parse_credentials(data.get("credentials")))
